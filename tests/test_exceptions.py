"""Tests for dashboard worker domain exceptions."""

import pytest

from dashworker.domain.exceptions import (
    AuthenticationMissingError,
    AuthorizationError,
    BackingStoreQueryError,
    ConfigurationError,
    DashWorkerException,
    FallbackExhaustedError,
    ProfileLoadError,
    RefreshError,
)


class TestDashWorkerException:
    """Test base DashWorkerException."""

    def test_basic_exception(self):
        exc = DashWorkerException("Test error")
        assert str(exc) == "Test error"
        assert exc.message == "Test error"
        assert exc.request_id is None
        assert exc.details == {}
        assert exc.status_code == 500
        assert exc.public_message == "Internal server error"

    def test_exception_with_all_params(self):
        exc = DashWorkerException("Test error", request_id="req-123", details={"count": 42})
        assert exc.request_id == "req-123"
        assert exc.details == {"count": 42}


class TestRequestErrors:
    """Status code and safe message per request-scoped error."""

    @pytest.mark.parametrize(
        "exc_class,status,public",
        [
            (AuthenticationMissingError, 401, "Unauthorized"),
            (AuthorizationError, 403, "Forbidden"),
            (ProfileLoadError, 500, "Unable to load user profile"),
            (BackingStoreQueryError, 500, "Backing store query failed"),
            (FallbackExhaustedError, 500, "Backing store query failed"),
        ],
    )
    def test_status_and_public_message(self, exc_class, status, public):
        exc = exc_class("internal detail")
        assert isinstance(exc, DashWorkerException)
        assert exc.status_code == status
        assert exc.public_message == public
        assert "internal detail" not in exc.public_message

    def test_authorization_error_keeps_role(self):
        exc = AuthorizationError("role viewer not allowed", role="viewer")
        assert exc.role == "viewer"

    def test_backing_store_error_fields(self):
        exc = BackingStoreQueryError(
            "projects: timeout", resource="projects", upstream_status=504, code="57014"
        )
        assert exc.resource == "projects"
        assert exc.upstream_status == 504
        assert exc.code == "57014"

    def test_fallback_is_a_backing_store_error(self):
        with pytest.raises(BackingStoreQueryError):
            raise FallbackExhaustedError("job_sites: down", resource="job_sites")


class TestOtherErrors:
    def test_refresh_error(self):
        exc = RefreshError("refresh failed", view="refresh_worker_list_view")
        assert exc.view == "refresh_worker_list_view"

    def test_configuration_error(self):
        exc = ConfigurationError("missing", config_key="supabase", request_id="r1")
        assert exc.config_key == "supabase"
        assert exc.request_id == "r1"
