import time
from typing import Optional

from fastapi import Request
from fastapi.responses import ORJSONResponse

from ...domain.exceptions import DashWorkerException
from ...logging import error, warning, LogRecord, LogEvent


def build_error_response(status_code: int, message: str) -> ORJSONResponse:
    """Error body is always ``{"error": "<safe message>"}``."""
    return ORJSONResponse(status_code=status_code, content={"error": message})


async def log_and_return_error_response(
    request: Request,
    status_code: int,
    error_message: str,
    caught_exception: Optional[BaseException] = None,
) -> ORJSONResponse:
    """Log the failure with its detail, reply with the safe message only."""
    request_id = getattr(request.state, "request_id", "unknown")
    start_time_mono = getattr(request.state, "start_time_monotonic", time.monotonic())
    duration_ms = (time.monotonic() - start_time_mono) * 1000

    log_data = {
        "status_code": status_code,
        "duration_ms": duration_ms,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else "unknown",
    }
    if isinstance(caught_exception, DashWorkerException):
        log_data["error_type"] = type(caught_exception).__name__
        log_data["detail"] = caught_exception.message
        log_data.update(caught_exception.details)

    record = LogRecord(
        event=(
            LogEvent.AUTH_FAILURE.value
            if status_code in (401, 403)
            else LogEvent.REQUEST_FAILURE.value
        ),
        message=f"Request failed: {error_message}",
        request_id=request_id,
        data=log_data,
    )
    if status_code < 500:
        warning(record)
    else:
        error(record, exc=caught_exception)
    return build_error_response(status_code, error_message)
