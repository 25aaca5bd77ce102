from typing import Any, Dict

from fastapi.responses import ORJSONResponse

from ...constants import CACHE_CONTROL_TEMPLATE


def cache_hit_response(body: Dict[str, Any]) -> ORJSONResponse:
    return ORJSONResponse(body, headers={"X-Cache": "HIT"})


def cache_miss_response(body: Dict[str, Any], ttl_seconds: float) -> ORJSONResponse:
    return ORJSONResponse(
        body,
        headers={
            "X-Cache": "MISS",
            "Cache-Control": CACHE_CONTROL_TEMPLATE.format(ttl=int(ttl_seconds)),
        },
    )
