"""
Supabase client factory.
Owns the pooled HTTP client and hands out credential-bound Supabase clients.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from .client import SupabaseClient
from ...config import Settings


class Environment(Enum):
    """Deployment environment types."""

    LOCAL = "local"
    PRODUCTION = "production"


@dataclass
class ConnectionLimits:
    """Connection pool configuration."""

    max_keepalive: int
    max_connections: int
    keepalive_expiry: float

    @classmethod
    def for_environment(cls, env: Environment) -> "ConnectionLimits":
        """Create connection limits based on environment."""
        if env == Environment.LOCAL:
            return cls(max_keepalive=10, max_connections=50, keepalive_expiry=30)
        return cls(max_keepalive=50, max_connections=200, keepalive_expiry=120)


class SupabaseClientFactory:
    """Builds caller-scoped clients and a lazily created privileged client.

    All clients share one ``httpx.AsyncClient``; httpx manages the connection
    pool.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._http: Optional[httpx.AsyncClient] = None
        self._service_client: Optional[SupabaseClient] = None

    @staticmethod
    def _get_environment() -> Environment:
        """Determine current deployment environment."""
        is_local = os.getenv("IS_LOCAL_DEPLOYMENT", "False").lower() == "true"
        return Environment.LOCAL if is_local else Environment.PRODUCTION

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            limits = ConnectionLimits.for_environment(self._get_environment())
            self._http = httpx.AsyncClient(
                base_url=self._settings.supabase_url.rstrip("/"),
                timeout=httpx.Timeout(self._settings.request_timeout_seconds),
                limits=httpx.Limits(
                    max_keepalive_connections=limits.max_keepalive,
                    max_connections=limits.max_connections,
                    keepalive_expiry=limits.keepalive_expiry,
                ),
            )
            logging.info(
                f"Supabase HTTP client created for {self._settings.supabase_url} "
                f"(max_connections={limits.max_connections})"
            )
        return self._http

    def service_client(self) -> SupabaseClient:
        """Privileged client, not scoped to any caller. Built once."""
        if self._service_client is None:
            key = self._settings.supabase_service_role_key
            self._service_client = SupabaseClient(self.http, api_key=key, access_token=key)
        return self._service_client

    def user_client(self, access_token: str) -> SupabaseClient:
        """Client that queries with the caller's token so RLS applies."""
        return SupabaseClient(
            self.http,
            api_key=self._settings.public_api_key,
            access_token=access_token,
        )

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            self._service_client = None
