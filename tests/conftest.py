from typing import Iterator

from unittest.mock import MagicMock, patch
import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from dashworker.config import Settings
from dashworker.interfaces.http.app import create_app

SUPABASE_URL = "https://test.supabase.co"
TOKEN = "user-token-abc"


# Configure anyio to only use asyncio backend
@pytest.fixture
def anyio_backend() -> str:
    """Force tests to use asyncio backend only."""
    return "asyncio"


@pytest.fixture(autouse=True, scope="session")
def mock_logger() -> Iterator[MagicMock]:
    with patch("dashworker.logging._logger", MagicMock()) as mock_logger:
        mock_logger.log.return_value = None
        yield mock_logger


@pytest.fixture
def settings(monkeypatch) -> Settings:
    """Settings built from a clean test environment, refresh loop disabled."""
    monkeypatch.setenv("SUPABASE_URL", SUPABASE_URL)
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("REFRESH_ENABLED", "false")
    monkeypatch.setenv("RUN_REFRESH_ON_STARTUP", "false")
    return Settings(_env_file=None)


@pytest.fixture
def supabase_mock() -> Iterator[respx.MockRouter]:
    """Intercept every request to the test Supabase project."""
    with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
        yield mock


@pytest.fixture
def authorized(supabase_mock: respx.MockRouter) -> respx.MockRouter:
    """Token resolves to an organiser."""
    supabase_mock.get("/auth/v1/user", name="auth").mock(
        return_value=httpx.Response(200, json={"id": "user-1", "email": "o@example.org"})
    )
    supabase_mock.get("/rest/v1/profiles", name="profile").mock(
        return_value=httpx.Response(
            200,
            json=[{"role": "organiser", "last_seen_projects_at": "2024-05-01T00:00:00Z"}],
        )
    )
    return supabase_mock


@pytest.fixture
def app(settings: Settings):
    return create_app(settings)


@pytest.fixture
def client(app, supabase_mock: respx.MockRouter) -> Iterator[TestClient]:
    """Test client whose lifespan runs inside the Supabase mock."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {TOKEN}"}
