"""Custom exception hierarchy for the dashboard worker.

Request-scoped errors carry the HTTP status and the safe message that is
returned to the caller. The underlying backing-store detail stays on the
exception for logging only.
"""

from typing import Optional, Dict, Any


class DashWorkerException(Exception):
    """Base exception for all dashboard worker exceptions."""

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.details = details or {}


class AuthenticationMissingError(DashWorkerException):
    """Raised when the bearer token is absent, malformed or rejected."""

    status_code = 401
    public_message = "Unauthorized"


class AuthorizationError(DashWorkerException):
    """Raised when the caller's role is not allowed to read dashboard data."""

    status_code = 403
    public_message = "Forbidden"

    def __init__(
        self,
        message: str,
        role: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.role = role


class ProfileLoadError(DashWorkerException):
    """Raised when the caller's profile row cannot be read."""

    public_message = "Unable to load user profile"


class BackingStoreQueryError(DashWorkerException):
    """Raised when a PostgREST query, RPC or auth call fails."""

    public_message = "Backing store query failed"

    def __init__(
        self,
        message: str,
        resource: Optional[str] = None,
        upstream_status: Optional[int] = None,
        code: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.resource = resource
        self.upstream_status = upstream_status
        self.code = code


class FallbackExhaustedError(BackingStoreQueryError):
    """Raised when both the mapping view and the source-table fallback failed."""


class RefreshError(DashWorkerException):
    """Raised when a materialized view refresh fails. Never reaches a caller."""

    def __init__(
        self,
        message: str,
        view: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.view = view


class ConfigurationError(DashWorkerException):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.config_key = config_key
