from fastapi import APIRouter, Depends, Request
from fastapi.responses import ORJSONResponse

from ....application.cache import TTLCache, fingerprint_token, make_cache_key
from ....application.dashboard import DashboardService
from ....application.filters import parse_dashboard_filters
from ....config import Settings
from ....domain.exceptions import BackingStoreQueryError
from ....infrastructure.supabase.factory import SupabaseClientFactory
from ..auth import authorize_caller, get_bearer_token
from ..errors import log_and_return_error_response
from ..responses import cache_hit_response, cache_miss_response

router = APIRouter()

OPERATION = "dashboard"


@router.get("/v1/dashboard")
async def get_dashboard(
    request: Request, token: str = Depends(get_bearer_token)
) -> ORJSONResponse:
    """Aggregated dashboard metrics, optionally scoped to patches."""
    settings: Settings = request.app.state.settings
    cache: TTLCache = request.app.state.response_cache
    factory: SupabaseClientFactory = request.app.state.supabase
    service: DashboardService = request.app.state.dashboard_service
    request_id = request.state.request_id

    filters = parse_dashboard_filters(request.query_params)
    cache_key = make_cache_key(OPERATION, fingerprint_token(token), filters.cache_params())
    cached = cache.get(cache_key)
    if cached is not None:
        return cache_hit_response(cached)

    client = factory.user_client(token)
    await authorize_caller(client, settings.allowed_roles, request_id)
    try:
        envelope = await service.build(client, filters, request_id)
    except BackingStoreQueryError as e:
        return await log_and_return_error_response(
            request, 500, "Failed to fetch dashboard", caught_exception=e
        )

    body = envelope.model_dump(mode="json")
    cache.set(cache_key, body)
    return cache_miss_response(body, cache.default_ttl)
