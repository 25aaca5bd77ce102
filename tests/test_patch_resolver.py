"""Tests for patch -> project resolution and its fallback."""

from unittest.mock import MagicMock

import httpx
import pytest
import respx

from dashworker.application.patch_resolver import PatchProjectResolver, unique_project_ids
from dashworker.domain.exceptions import BackingStoreQueryError, FallbackExhaustedError
from dashworker.domain.models import PatchFilteringMethod
from dashworker.infrastructure.supabase import SupabaseClient

SUPABASE_URL = "https://test.supabase.co"
VIEW = "/rest/v1/patch_project_mapping_view"
JOB_SITES = "/rest/v1/job_sites"


@pytest.fixture
async def sb():
    async with httpx.AsyncClient(base_url=SUPABASE_URL) as http:
        yield SupabaseClient(http, api_key="anon-key", access_token="user-token")


@pytest.fixture
def trigger() -> MagicMock:
    return MagicMock()


@pytest.fixture
def resolver(trigger: MagicMock) -> PatchProjectResolver:
    return PatchProjectResolver(trigger_refresh=trigger)


class TestPatchProjectResolver:
    @pytest.mark.anyio
    async def test_mapping_view_rows_used(self, sb, resolver, trigger):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            view = mock.get(VIEW).mock(
                return_value=httpx.Response(
                    200, json=[{"project_id": "a"}, {"project_id": "b"}, {"project_id": "a"}]
                )
            )
            fallback = mock.get(JOB_SITES)
            result = await resolver.resolve(sb, ["P1", "P2"])

        assert result.method == PatchFilteringMethod.MATERIALIZED_VIEW
        assert result.project_ids == ["a", "b"]
        assert result.row_count == 3
        assert view.calls.last.request.url.params["patch_id"] == 'in.("P1","P2")'
        assert not fallback.called
        trigger.assert_not_called()

    @pytest.mark.anyio
    async def test_empty_view_falls_back_and_triggers_refresh_once(self, sb, resolver, trigger):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get(VIEW).mock(return_value=httpx.Response(200, json=[]))
            fallback = mock.get(JOB_SITES).mock(
                return_value=httpx.Response(200, json=[{"project_id": "x"}, {"project_id": "y"}])
            )
            result = await resolver.resolve(sb, ["P1", "P2"])

        assert result.method == PatchFilteringMethod.FALLBACK_JOB_SITES
        assert result.used_fallback
        assert result.project_ids == ["x", "y"]
        params = fallback.calls.last.request.url.params
        assert params["patch_id"] == 'in.("P1","P2")'
        assert params["project_id"] == "not.is.null"
        trigger.assert_called_once_with("refresh_patch_project_mapping_view")

    @pytest.mark.anyio
    async def test_view_error_treated_as_empty(self, sb, resolver, trigger):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get(VIEW).mock(return_value=httpx.Response(500, json={"message": "boom"}))
            mock.get(JOB_SITES).mock(
                return_value=httpx.Response(200, json=[{"project_id": "x"}])
            )
            result = await resolver.resolve(sb, ["P1"])

        assert result.method == PatchFilteringMethod.FALLBACK_JOB_SITES
        assert result.project_ids == ["x"]
        trigger.assert_called_once()

    @pytest.mark.anyio
    async def test_non_json_view_body_treated_as_empty(self, sb, resolver, trigger):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get(VIEW).mock(
                return_value=httpx.Response(200, text="<html>bad gateway</html>")
            )
            fallback = mock.get(JOB_SITES).mock(
                return_value=httpx.Response(200, json=[{"project_id": "x"}])
            )
            result = await resolver.resolve(sb, ["P1"])

        assert result.method == PatchFilteringMethod.FALLBACK_JOB_SITES
        assert result.project_ids == ["x"]
        assert fallback.called
        trigger.assert_called_once_with("refresh_patch_project_mapping_view")

    @pytest.mark.anyio
    async def test_fallback_error_is_fatal(self, sb, resolver, trigger):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get(VIEW).mock(return_value=httpx.Response(200, json=[]))
            mock.get(JOB_SITES).mock(
                return_value=httpx.Response(503, json={"message": "unavailable"})
            )
            with pytest.raises(FallbackExhaustedError) as exc_info:
                await resolver.resolve(sb, ["P1"])

        assert isinstance(exc_info.value, BackingStoreQueryError)
        assert exc_info.value.upstream_status == 503
        trigger.assert_not_called()

    @pytest.mark.anyio
    async def test_nothing_anywhere_resolves_to_empty(self, sb, resolver):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get(VIEW).mock(return_value=httpx.Response(200, json=[]))
            mock.get(JOB_SITES).mock(return_value=httpx.Response(200, json=[]))
            result = await resolver.resolve(sb, ["P9"])

        assert result.is_empty
        assert result.method == PatchFilteringMethod.FALLBACK_JOB_SITES

    @pytest.mark.anyio
    async def test_no_patch_ids_issues_no_query(self, sb, resolver):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            result = await resolver.resolve(sb, [])

        assert mock.calls.call_count == 0
        assert result.method == PatchFilteringMethod.NONE

    @pytest.mark.anyio
    async def test_works_without_trigger(self, sb):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get(VIEW).mock(return_value=httpx.Response(200, json=[]))
            mock.get(JOB_SITES).mock(return_value=httpx.Response(200, json=[{"project_id": "x"}]))
            result = await PatchProjectResolver().resolve(sb, ["P1"])

        assert result.project_ids == ["x"]


def test_unique_project_ids_drops_nulls_and_keeps_order():
    rows = [{"project_id": "b"}, {"project_id": None}, {"project_id": "a"}, {"project_id": "b"}, {}]
    assert unique_project_ids(rows) == ["b", "a"]
