"""Tests for the PostgREST query builder and client."""

import httpx
import pytest
import respx

from dashworker.domain.exceptions import BackingStoreQueryError
from dashworker.infrastructure.supabase import QueryBuilder, SupabaseClient
from dashworker.infrastructure.supabase.query import (
    format_value,
    parse_content_range,
    quote_list_item,
)

SUPABASE_URL = "https://test.supabase.co"


@pytest.fixture
async def http():
    async with httpx.AsyncClient(base_url=SUPABASE_URL) as client:
        yield client


@pytest.fixture
def sb(http) -> SupabaseClient:
    return SupabaseClient(http, api_key="anon-key", access_token="user-token")


class TestQueryBuilderParams:
    def _builder(self) -> QueryBuilder:
        return QueryBuilder(client=None, table="things")

    def test_select_strips_whitespace(self):
        params = self._builder().select("id,\n  name, nested(code)").build_params()
        assert params == [("select", "id,name,nested(code)")]

    def test_filters_in_call_order(self):
        params = (
            self._builder()
            .select("*")
            .eq("tier", "tier_1")
            .gt("total_workers", 0)
            .eq("has_builder", False)
            .is_not("project_id", None)
            .ilike("search_text", "%crane%")
            .build_params()
        )
        assert params[1:] == [
            ("tier", "eq.tier_1"),
            ("total_workers", "gt.0"),
            ("has_builder", "eq.false"),
            ("project_id", "not.is.null"),
            ("search_text", "ilike.%crane%"),
        ]

    def test_in_quotes_values(self):
        params = self._builder().in_("patch_id", ["P1", 'we"ird']).build_params()
        assert params[1] == ("patch_id", 'in.("P1","we\\"ird")')

    def test_order_with_nulls(self):
        params = (
            self._builder()
            .order("value", ascending=False, nulls_first=False)
            .order("name")
            .build_params()
        )
        assert ("order", "value.desc.nullslast,name.asc") in params

    def test_range_translates_to_offset_and_limit(self):
        params = dict(self._builder().range(10, 19).build_params())
        assert params["offset"] == "10"
        assert params["limit"] == "10"

    def test_count_header(self):
        assert self._builder().select("*", count="exact").build_headers() == {
            "Prefer": "count=exact"
        }
        assert self._builder().select("*").build_headers() == {}


class TestHelpers:
    def test_format_value(self):
        assert format_value(None) == "null"
        assert format_value(True) == "true"
        assert format_value(3) == "3"

    def test_quote_list_item_escapes_backslash(self):
        assert quote_list_item("a\\b") == '"a\\\\b"'

    @pytest.mark.parametrize(
        "header,expected",
        [("0-9/42", 42), ("*/0", 0), ("0-9/*", None), (None, None), ("garbage", None)],
    )
    def test_parse_content_range(self, header, expected):
        assert parse_content_range(header) == expected


class TestSupabaseClient:
    @pytest.mark.anyio
    async def test_execute_returns_rows_and_count(self, sb: SupabaseClient):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            route = mock.get("/rest/v1/projects").mock(
                return_value=httpx.Response(
                    200, json=[{"id": "1"}], headers={"Content-Range": "0-0/7"}
                )
            )
            result = await sb.table("projects").select("id", count="exact").execute()

        assert result.data == [{"id": "1"}]
        assert result.count == 7
        request = route.calls.last.request
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["authorization"] == "Bearer user-token"
        assert request.headers["prefer"] == "count=exact"

    @pytest.mark.anyio
    async def test_head_query_uses_head_method(self, sb: SupabaseClient):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            route = mock.head("/rest/v1/workers").mock(
                return_value=httpx.Response(200, headers={"Content-Range": "*/123"})
            )
            result = await sb.table("workers").select("*", count="exact", head=True).execute()

        assert route.called
        assert result.data == []
        assert result.count == 123

    @pytest.mark.anyio
    async def test_error_status_raises_backing_store_error(self, sb: SupabaseClient):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get("/rest/v1/projects").mock(
                return_value=httpx.Response(
                    400, json={"message": "column does not exist", "code": "42703"}
                )
            )
            with pytest.raises(BackingStoreQueryError) as exc_info:
                await sb.table("projects").select("nope").execute()

        assert exc_info.value.upstream_status == 400
        assert exc_info.value.code == "42703"
        assert exc_info.value.resource == "projects"
        assert "column does not exist" in exc_info.value.message

    @pytest.mark.anyio
    async def test_transport_error_raises_backing_store_error(self, sb: SupabaseClient):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get("/rest/v1/projects").mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(BackingStoreQueryError) as exc_info:
                await sb.table("projects").select("*").execute()

        assert exc_info.value.upstream_status is None

    @pytest.mark.anyio
    async def test_rpc_posts_to_function(self, sb: SupabaseClient):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            route = mock.post("/rest/v1/rpc/refresh_worker_list_view").mock(
                return_value=httpx.Response(204)
            )
            assert await sb.rpc("refresh_worker_list_view") is None

        assert route.call_count == 1

    @pytest.mark.anyio
    async def test_get_user(self, sb: SupabaseClient):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get("/auth/v1/user").mock(
                return_value=httpx.Response(200, json={"id": "u1", "role": "authenticated"})
            )
            user = await sb.get_user()

        assert user["id"] == "u1"

    @pytest.mark.anyio
    async def test_non_json_rows_raise_backing_store_error(self, sb: SupabaseClient):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get("/rest/v1/projects").mock(
                return_value=httpx.Response(200, text="<html>bad gateway</html>")
            )
            with pytest.raises(BackingStoreQueryError) as exc_info:
                await sb.table("projects").select("*").execute()

        assert exc_info.value.resource == "projects"
        assert exc_info.value.upstream_status == 200
        assert "invalid JSON body" in exc_info.value.message

    @pytest.mark.anyio
    async def test_non_json_rpc_raises_backing_store_error(self, sb: SupabaseClient):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.post("/rest/v1/rpc/refresh_worker_list_view").mock(
                return_value=httpx.Response(200, text="not json")
            )
            with pytest.raises(BackingStoreQueryError) as exc_info:
                await sb.rpc("refresh_worker_list_view")

        assert exc_info.value.resource == "refresh_worker_list_view"

    @pytest.mark.anyio
    async def test_non_json_user_raises_backing_store_error(self, sb: SupabaseClient):
        with respx.mock(base_url=SUPABASE_URL, assert_all_called=False) as mock:
            mock.get("/auth/v1/user").mock(return_value=httpx.Response(200, text="oops"))
            with pytest.raises(BackingStoreQueryError) as exc_info:
                await sb.get_user()

        assert exc_info.value.resource == "auth.user"
