from fastapi import APIRouter, Depends, Request
from fastapi.responses import ORJSONResponse

from ....application.cache import TTLCache, fingerprint_token, make_cache_key
from ....application.filters import parse_project_filters
from ....application.projects import ProjectsService
from ....config import Settings
from ....domain.exceptions import BackingStoreQueryError
from ....infrastructure.supabase.factory import SupabaseClientFactory
from ..auth import authorize_caller, get_bearer_token
from ..errors import log_and_return_error_response
from ..responses import cache_hit_response, cache_miss_response

router = APIRouter()

OPERATION = "projects"


@router.get("/v1/projects")
async def list_projects(
    request: Request, token: str = Depends(get_bearer_token)
) -> ORJSONResponse:
    """Paged, filtered project list for the caller.

    The cache is consulted before the token is verified, so a hit costs no
    backing-store round trip. The key carries the token fingerprint, which
    keeps one caller's envelopes out of another's reach.
    """
    settings: Settings = request.app.state.settings
    cache: TTLCache = request.app.state.response_cache
    factory: SupabaseClientFactory = request.app.state.supabase
    service: ProjectsService = request.app.state.projects_service
    request_id = request.state.request_id

    filters = parse_project_filters(request.query_params)
    # Keyed on the raw `since`. With newOnly and no `since`, the profile's last
    # visit is only known after authorization, so a changed last visit shows
    # up once the entry expires.
    cache_key = make_cache_key(OPERATION, fingerprint_token(token), filters.cache_params())
    cached = cache.get(cache_key)
    if cached is not None:
        return cache_hit_response(cached)

    client = factory.user_client(token)
    caller = await authorize_caller(client, settings.allowed_roles, request_id)
    try:
        envelope = await service.list_projects(client, filters, caller, request_id)
    except BackingStoreQueryError as e:
        return await log_and_return_error_response(
            request, 500, "Failed to fetch projects", caught_exception=e
        )

    body = envelope.model_dump(mode="json")
    cache.set(cache_key, body)
    return cache_miss_response(body, cache.default_ttl)
