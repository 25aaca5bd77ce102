"""Bearer token extraction and caller authorization."""

from typing import Iterable, Optional

from fastapi import Request

from ...constants import PROFILES_TABLE
from ...domain.exceptions import (
    AuthenticationMissingError,
    AuthorizationError,
    BackingStoreQueryError,
    ProfileLoadError,
)
from ...domain.models import AuthorizedCaller
from ...infrastructure.supabase.client import SupabaseClient
from ...logging import error, warning, LogRecord, LogEvent


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of a ``Bearer <token>`` header, else None.

    The header must split on single spaces into exactly two parts and the
    scheme is matched case-insensitively.
    """
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1]:
        return parts[1]
    return None


async def get_bearer_token(request: Request) -> str:
    """FastAPI dependency; rejects the request before any query is issued."""
    token = extract_bearer_token(request.headers.get("authorization"))
    if token is None:
        raise AuthenticationMissingError(
            "Missing or malformed Authorization header",
            request_id=getattr(request.state, "request_id", None),
        )
    return token


async def authorize_caller(
    client: SupabaseClient,
    allowed_roles: Iterable[str],
    request_id: Optional[str] = None,
) -> AuthorizedCaller:
    """Resolve the token's user and check the role on its profile."""
    try:
        user = await client.get_user()
    except BackingStoreQueryError as e:
        warning(
            LogRecord(
                LogEvent.AUTH_FAILURE.value,
                "Token rejected by auth service",
                request_id,
                {"upstream_status": e.upstream_status},
            )
        )
        raise AuthenticationMissingError("Token rejected", request_id=request_id) from e

    user_id = user.get("id")
    if not user_id:
        raise AuthenticationMissingError("Token has no user", request_id=request_id)

    try:
        result = await (
            client.table(PROFILES_TABLE)
            .select("role, last_seen_projects_at")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
    except BackingStoreQueryError as e:
        error(
            LogRecord(
                LogEvent.PROFILE_LOAD_FAILED.value,
                "Profile load failed",
                request_id,
                {"user_id": user_id},
            ),
            exc=e,
        )
        raise ProfileLoadError(
            f"Profile load failed: {e.message}", request_id=request_id
        ) from e

    profile = result.data[0] if result.data else None
    role = profile.get("role") if profile else None
    if role not in set(allowed_roles):
        raise AuthorizationError(
            f"Role {role!r} may not read dashboard data",
            role=role,
            request_id=request_id,
        )
    return AuthorizedCaller(
        user_id=str(user_id),
        role=role,
        last_seen_projects_at=profile.get("last_seen_projects_at"),
    )
