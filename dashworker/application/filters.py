"""Query-string normalization for the gateway endpoints."""

from typing import List, Mapping, Optional

from ..constants import (
    DEFAULT_DIRECTION,
    DEFAULT_PAGE,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT,
    MAX_PAGE_SIZE,
)
from ..domain.models import DashboardFilters, ProjectFilters, SortDirection


def parse_int(raw: Optional[str], default: int) -> int:
    """Parse a leading integer the way ``parseInt`` does; fall back to ``default``."""
    if raw is None:
        return default
    text = raw.strip()
    digits = ""
    for index, char in enumerate(text):
        if char.isdigit() or (index == 0 and char in "+-"):
            digits += char
        else:
            break
    try:
        return int(digits)
    except ValueError:
        return default


def clamp_page(page: int) -> int:
    return max(1, page)


def clamp_page_size(page_size: int) -> int:
    return max(1, min(MAX_PAGE_SIZE, page_size))


def parse_id_list(raw: Optional[str]) -> List[str]:
    """Split a comma list, trimming entries and dropping empty ones."""
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_direction(raw: Optional[str]) -> SortDirection:
    """Only ``asc`` sorts ascending; any other value sorts descending."""
    value = (raw or DEFAULT_DIRECTION).strip().lower()
    return SortDirection.ASC if value == SortDirection.ASC.value else SortDirection.DESC


def parse_flag(raw: Optional[str]) -> bool:
    return raw in ("1", "true")


def _choice(params: Mapping[str, str], name: str) -> str:
    return params.get(name) or "all"


def parse_project_filters(params: Mapping[str, str]) -> ProjectFilters:
    q = params.get("q")
    return ProjectFilters(
        page=clamp_page(parse_int(params.get("page"), DEFAULT_PAGE)),
        page_size=clamp_page_size(parse_int(params.get("pageSize"), DEFAULT_PAGE_SIZE)),
        sort=params.get("sort") or DEFAULT_SORT,
        dir=parse_direction(params.get("dir")),
        q=q.lower() if q else None,
        patch_ids=tuple(parse_id_list(params.get("patch"))),
        tier=_choice(params, "tier"),
        universe=_choice(params, "universe"),
        stage=_choice(params, "stage"),
        workers=_choice(params, "workers"),
        special=_choice(params, "special"),
        eba=_choice(params, "eba"),
        new_only=parse_flag(params.get("newOnly")),
        since=params.get("since") or None,
    )


def parse_dashboard_filters(params: Mapping[str, str]) -> DashboardFilters:
    raw_patch = params.get("patchIds")
    return DashboardFilters(
        tier=params.get("tier") or None,
        stage=params.get("stage") or None,
        universe=params.get("universe") or None,
        patch_ids=tuple(parse_id_list(raw_patch)) if raw_patch else None,
    )
