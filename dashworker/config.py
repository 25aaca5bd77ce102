import re
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices, field_validator
from typing import Optional, List, Union, Any

from urllib.parse import urlparse

from dashworker.domain.exceptions import ConfigurationError

_MINUTE_STEP_CRON = re.compile(r"^\*/(\d+)\s+\*\s+\*\s+\*\s+\*$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="", case_sensitive=False
    )

    # Required
    supabase_url: str = Field(
        default="", validation_alias=AliasChoices("SUPABASE_URL")
    )
    supabase_service_role_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_KEY"
        ),
    )

    # Optional with defaults
    supabase_anon_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"
        ),
    )
    database_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DATABASE_URL")
    )
    app_name: str = "dashworker"
    app_version: str = "1.0.0"
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))
    log_file_path: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("LOG_FILE_PATH")
    )
    error_log_file_path: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ERROR_LOG_FILE_PATH")
    )
    log_pretty_console: bool = Field(
        default=False, validation_alias=AliasChoices("LOG_PRETTY_CONSOLE")
    )
    host: str = Field(default="0.0.0.0", validation_alias=AliasChoices("HOST"))
    port: int = Field(default=8080, validation_alias=AliasChoices("PORT"))
    reload: bool = False

    request_timeout_ms: int = Field(
        default=10000, validation_alias=AliasChoices("REQUEST_TIMEOUT_MS")
    )

    cors_origin: Union[List[str], str] = Field(
        default_factory=lambda: ["*"], validation_alias=AliasChoices("CORS_ORIGIN")
    )

    redact_log_fields: Union[List[str], str] = Field(
        default_factory=lambda: [
            "authorization",
            "apikey",
            "token",
            "supabase_service_role_key",
        ],
        validation_alias=AliasChoices("REDACT_LOG_FIELDS"),
    )

    # Response cache
    cache_ttl_seconds: int = Field(
        default=30, validation_alias=AliasChoices("CACHE_TTL_SECONDS")
    )

    # Materialized view refresh
    refresh_enabled: bool = Field(
        default=True, validation_alias=AliasChoices("REFRESH_ENABLED")
    )
    refresh_cron: str = Field(
        default="*/10 * * * *", validation_alias=AliasChoices("REFRESH_CRON")
    )
    refresh_interval_seconds: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("REFRESH_INTERVAL_SECONDS")
    )
    run_refresh_on_startup: bool = Field(
        default=False, validation_alias=AliasChoices("RUN_REFRESH_ON_STARTUP")
    )

    allowed_roles: Union[List[str], str] = Field(
        default_factory=lambda: ["organiser", "lead_organiser", "admin"],
        validation_alias=AliasChoices("ALLOWED_ROLES"),
    )

    @field_validator("cors_origin", "redact_log_fields", "allowed_roles")
    @classmethod
    def parse_comma_separated(cls, v: Union[List[str], str]) -> List[str]:
        """Parse comma-separated string values into lists for configuration fields.

        Handles both string inputs (splitting by commas) and already-list inputs.
        Empty strings are converted to empty lists.
        """
        if isinstance(v, str):
            if v.strip() == "":
                return []
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("refresh_cron")
    @classmethod
    def validate_refresh_cron(cls, v: str) -> str:
        """Only minute-step expressions (``*/N * * * *``) are supported."""
        match = _MINUTE_STEP_CRON.match(v.strip())
        if not match or int(match.group(1)) < 1:
            raise ValueError(
                f"REFRESH_CRON must look like '*/N * * * *' with N >= 1, got {v!r}"
            )
        return v.strip()

    def __init__(self, **kwargs: Any) -> None:
        """Initialize settings object and perform validation.

        Raises:
            ConfigurationError: If the backing store settings are missing or invalid
        """
        super().__init__(**kwargs)
        self._validate_backing_store()

    @property
    def refresh_interval(self) -> int:
        """Seconds between scheduled refresh ticks."""
        if self.refresh_interval_seconds:
            return self.refresh_interval_seconds
        match = _MINUTE_STEP_CRON.match(self.refresh_cron)
        if match is None or int(match.group(1)) < 1:
            raise ConfigurationError(
                f"Unsupported REFRESH_CRON {self.refresh_cron!r}", config_key="refresh_cron"
            )
        return int(match.group(1)) * 60

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000.0

    @property
    def public_api_key(self) -> str:
        """Key sent as ``apikey`` on caller-scoped requests."""
        return self.supabase_anon_key or self.supabase_service_role_key

    def _validate_backing_store(self) -> None:
        """Validate that the Supabase URL and service credential are configured."""
        errors = []

        if not (self.supabase_url and self.supabase_url.strip()):
            errors.append(
                "SUPABASE_URL is required. Set it in your environment or .env."
            )
        else:
            parsed = urlparse(self.supabase_url)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                errors.append("SUPABASE_URL is invalid.")

        if not (
            self.supabase_service_role_key and self.supabase_service_role_key.strip()
        ):
            errors.append(
                "SUPABASE_SERVICE_ROLE_KEY is required. Set it in your environment or .env."
            )

        if errors:
            raise ConfigurationError("\n".join(errors), config_key="supabase")
