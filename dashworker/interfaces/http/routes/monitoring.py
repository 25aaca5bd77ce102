"""Cache and refresh monitoring endpoints."""

from fastapi import APIRouter, Request
from fastapi.responses import ORJSONResponse

from ....application.refresh import RefreshScheduler

router = APIRouter()


@router.get("/v1/cache/stats")
async def get_cache_stats(request: Request) -> ORJSONResponse:
    """Get response cache statistics and the outcome of the last refresh tick."""
    scheduler: RefreshScheduler = request.app.state.refresh_scheduler
    last_report = scheduler.refresher.last_report
    return ORJSONResponse(
        content={
            "response_cache": request.app.state.response_cache.get_stats(),
            "refresh": {
                "running": scheduler.running,
                "ticks": scheduler.ticks,
                "last_report": last_report.to_dict() if last_report else None,
            },
        }
    )


@router.post("/v1/cache/clear")
async def clear_cache(request: Request) -> ORJSONResponse:
    """Drop every cached response envelope."""
    request.app.state.response_cache.clear()
    return ORJSONResponse(content={"status": "cache_cleared"})
