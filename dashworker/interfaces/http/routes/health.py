from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import ORJSONResponse

from ....constants import PROJECT_LIST_VIEW
from ....domain.exceptions import BackingStoreQueryError
from ....infrastructure.supabase.factory import SupabaseClientFactory
from ....logging import error, LogRecord, LogEvent

router = APIRouter()


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return (
        datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    )


@router.get("/health")
async def health_check(request: Request) -> ORJSONResponse:
    """Check that the privileged client can reach the project list view.

    Returns:
        ORJSONResponse: ``{"status": "ok", "time": ...}`` with 200, or
            ``{"status": "degraded"}`` with 503 when the backing store fails.
    """
    factory: SupabaseClientFactory = request.app.state.supabase
    try:
        await (
            factory.service_client()
            .table(PROJECT_LIST_VIEW)
            .select("*", count="exact", head=True)
            .execute()
        )
    except BackingStoreQueryError as e:
        error(
            LogRecord(
                LogEvent.HEALTH_CHECK.value,
                "Health check failed",
                getattr(request.state, "request_id", None),
                {"resource": e.resource, "upstream_status": e.upstream_status},
            ),
            exc=e,
        )
        return ORJSONResponse({"status": "degraded"}, status_code=503)
    return ORJSONResponse({"status": "ok", "time": utc_timestamp()})
