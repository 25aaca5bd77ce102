"""Tests for query-string normalization."""

import pytest

from dashworker.application.filters import (
    clamp_page,
    clamp_page_size,
    parse_dashboard_filters,
    parse_direction,
    parse_id_list,
    parse_int,
    parse_project_filters,
)
from dashworker.domain.models import SortDirection


class TestParseInt:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("5", 5),
            (" 7 ", 7),
            ("12abc", 12),
            ("-3", -3),
            ("abc", 24),
            ("", 24),
            (None, 24),
            ("+", 24),
        ],
    )
    def test_parse_int(self, raw, expected):
        assert parse_int(raw, 24) == expected


class TestClamping:
    @pytest.mark.parametrize("page,expected", [(-5, 1), (0, 1), (1, 1), (9, 9)])
    def test_clamp_page(self, page, expected):
        assert clamp_page(page) == expected

    @pytest.mark.parametrize(
        "size,expected", [(-1, 1), (0, 1), (1, 1), (50, 50), (100, 100), (101, 100), (10_000, 100)]
    )
    def test_clamp_page_size(self, size, expected):
        assert clamp_page_size(size) == expected


class TestParseProjectFilters:
    def test_defaults(self):
        filters = parse_project_filters({})
        assert filters.page == 1
        assert filters.page_size == 24
        assert filters.sort == "name"
        assert filters.dir == SortDirection.ASC
        assert filters.q is None
        assert filters.patch_ids == ()
        assert filters.tier == "all"
        assert filters.eba == "all"
        assert filters.new_only is False
        assert filters.since is None

    def test_page_size_clamped_to_maximum(self):
        assert parse_project_filters({"pageSize": "1000"}).page_size == 100

    def test_non_numeric_pagination_uses_defaults(self):
        filters = parse_project_filters({"page": "two", "pageSize": "many"})
        assert filters.page == 1
        assert filters.page_size == 24

    def test_search_is_lowercased(self):
        assert parse_project_filters({"q": "Tower CRANE"}).q == "tower crane"

    def test_patch_list_trimmed_and_empty_entries_dropped(self):
        filters = parse_project_filters({"patch": " P1, ,P2,,"})
        assert filters.patch_ids == ("P1", "P2")

    @pytest.mark.parametrize("raw", ["1", "true"])
    def test_new_only_truthy_values(self, raw):
        assert parse_project_filters({"newOnly": raw}).new_only is True

    @pytest.mark.parametrize("raw", ["0", "false", "yes", ""])
    def test_new_only_other_values(self, raw):
        assert parse_project_filters({"newOnly": raw}).new_only is False

    def test_filters_are_frozen(self):
        filters = parse_project_filters({})
        with pytest.raises(Exception):
            filters.page = 3

    def test_cache_params_use_wire_names(self):
        params = parse_project_filters({"pageSize": "10", "patch": "P1"}).cache_params()
        assert params["pageSize"] == 10
        assert params["patchIds"] == ["P1"]
        assert params["dir"] == "asc"


class TestParseDirection:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("desc", SortDirection.DESC),
            ("DESC", SortDirection.DESC),
            ("asc", SortDirection.ASC),
            ("ASC", SortDirection.ASC),
            ("sideways", SortDirection.DESC),
            ("", SortDirection.ASC),
            (None, SortDirection.ASC),
        ],
    )
    def test_parse_direction(self, raw, expected):
        assert parse_direction(raw) == expected


def test_parse_id_list_empty():
    assert parse_id_list(None) == []
    assert parse_id_list("") == []
    assert parse_id_list(" , ") == []


class TestParseDashboardFilters:
    def test_absent_values_are_none(self):
        filters = parse_dashboard_filters({})
        assert filters.tier is None
        assert filters.patch_ids is None

    def test_patch_ids(self):
        filters = parse_dashboard_filters({"patchIds": "a, b", "tier": "tier_1"})
        assert filters.patch_ids == ("a", "b")
        assert filters.tier == "tier_1"
        assert filters.cache_params()["patchIds"] == ["a", "b"]
