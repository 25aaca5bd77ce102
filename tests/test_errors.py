"""Tests for error response formatting and logging."""

from unittest.mock import patch

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from dashworker.domain.exceptions import BackingStoreQueryError
from dashworker.interfaces.http.errors import (
    build_error_response,
    log_and_return_error_response,
)
from dashworker.interfaces.http.middleware import logging_middleware


def test_build_error_response_body():
    response = build_error_response(403, "Forbidden")
    assert response.status_code == 403
    assert response.body == b'{"error":"Forbidden"}'


def _app(status_code: int, exc=None) -> FastAPI:
    app = FastAPI()

    @app.middleware("http")
    async def middleware(request: Request, call_next):
        return await logging_middleware(request, call_next)

    @app.get("/fail")
    async def fail(request: Request):
        return await log_and_return_error_response(
            request, status_code, "Failed to fetch projects", caught_exception=exc
        )

    return app


class TestLogAndReturnErrorResponse:
    def test_server_error_logs_detail_but_returns_safe_message(self):
        exc = BackingStoreQueryError(
            'project_list_comprehensive_view: column "x" does not exist',
            resource="project_list_comprehensive_view",
            upstream_status=400,
        )
        with patch("dashworker.interfaces.http.errors.error") as mock_error:
            response = TestClient(_app(500, exc)).get("/fail")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch projects"}
        record = mock_error.call_args[0][0]
        assert record.event == "request_failure"
        assert record.data["error_type"] == "BackingStoreQueryError"
        assert 'column "x"' in record.data["detail"]
        assert mock_error.call_args.kwargs["exc"] is exc

    @pytest.mark.parametrize("status_code", [401, 403])
    def test_auth_failures_log_warning(self, status_code):
        with patch("dashworker.interfaces.http.errors.warning") as mock_warning, patch(
            "dashworker.interfaces.http.errors.error"
        ) as mock_error:
            response = TestClient(_app(status_code)).get("/fail")

        assert response.status_code == status_code
        assert mock_warning.call_args[0][0].event == "auth_failure"
        mock_error.assert_not_called()

    def test_request_id_is_logged(self):
        with patch("dashworker.interfaces.http.errors.error") as mock_error:
            response = TestClient(_app(500)).get("/fail")

        record = mock_error.call_args[0][0]
        assert record.request_id == response.headers["X-Request-ID"]
