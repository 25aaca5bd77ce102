"""Paged project listing over ``project_list_comprehensive_view``."""

import math
import time
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..constants import (
    FALLBACK_SORT_COLUMN,
    NULLS_LAST_SORTS,
    PROJECT_LIST_VIEW,
    SORT_COLUMNS,
)
from ..domain.models import (
    AuthorizedCaller,
    Pagination,
    PatchFilteringMethod,
    ProjectFilters,
    ProjectItem,
    ProjectListRow,
    ProjectsDebug,
    ProjectsResponse,
    ProjectSummary,
    SortDirection,
)
from ..infrastructure.supabase.client import SupabaseClient
from ..infrastructure.supabase.query import QueryBuilder
from ..logging import debug, warning, LogRecord, LogEvent
from .patch_resolver import PatchProjectResolver


def effective_since(filters: ProjectFilters, caller: Optional[AuthorizedCaller]) -> Optional[str]:
    """Explicit ``since`` wins over the caller's last visit to the projects page."""
    if filters.since:
        return filters.since
    return caller.last_seen_projects_at if caller else None


def page_range(page: int, page_size: int) -> Tuple[int, int]:
    """Inclusive row range for a 1-based page."""
    start = (page - 1) * page_size
    return start, start + page_size - 1


def total_pages(total_count: int, page_size: int) -> int:
    return math.ceil(total_count / page_size) if page_size else 0


def apply_search(query: QueryBuilder, q: Optional[str]) -> QueryBuilder:
    if q:
        query = query.ilike("search_text", f"%{q}%")
    return query


def apply_categorical_filters(
    query: QueryBuilder, filters: ProjectFilters, since: Optional[str]
) -> QueryBuilder:
    if filters.tier != "all":
        query = query.eq("tier", filters.tier)
    if filters.universe != "all":
        query = query.eq("organising_universe", filters.universe)
    if filters.stage != "all":
        query = query.eq("stage_class", filters.stage)

    if filters.workers == "zero":
        query = query.eq("total_workers", 0)
    elif filters.workers == "nonzero":
        query = query.gt("total_workers", 0)

    if filters.special == "noBuilderWithEmployers":
        query = query.eq("has_builder", False).gt("engaged_employer_count", 0)

    if filters.eba == "eba_active":
        query = query.eq("has_builder", True).eq("builder_has_eba", True)
    elif filters.eba == "eba_inactive":
        query = query.eq("has_builder", True).eq("builder_has_eba", False)
    elif filters.eba == "builder_unknown":
        query = query.eq("has_builder", False)

    if filters.new_only and since:
        query = query.gt("created_at", since)
    return query


def apply_sort(query: QueryBuilder, sort: str, direction: SortDirection) -> QueryBuilder:
    """Order by a whitelisted column; unknown names sort newest first."""
    column = SORT_COLUMNS.get(sort)
    ascending = direction == SortDirection.ASC
    if column is None:
        return query.order(FALLBACK_SORT_COLUMN, ascending=False)
    if sort in NULLS_LAST_SORTS:
        return query.order(column, ascending=ascending, nulls_first=False)
    if sort == "delegates":
        return query.order(column, ascending=ascending, nulls_first=not ascending)
    return query.order(column, ascending=ascending)


def shape_rows(
    rows: List[Dict[str, Any]], request_id: Optional[str] = None
) -> Tuple[List[ProjectItem], Dict[str, ProjectSummary]]:
    """Split view rows into list items and per-project summaries."""
    projects: List[ProjectItem] = []
    summaries: Dict[str, ProjectSummary] = {}
    for raw in rows:
        try:
            row = ProjectListRow.model_validate(raw)
        except ValidationError as e:
            warning(
                LogRecord(
                    LogEvent.BACKING_STORE_ERROR.value,
                    f"Skipping malformed {PROJECT_LIST_VIEW} row",
                    request_id,
                    {"errors": e.error_count()},
                )
            )
            continue
        projects.append(
            ProjectItem(
                id=row.id,
                name=row.name,
                main_job_site_id=row.main_job_site_id,
                value=row.value,
                tier=row.tier,
                organising_universe=row.organising_universe,
                stage_class=row.stage_class,
                builder_name=row.builder_name,
                created_at=row.created_at,
                full_address=row.full_address,
                project_assignments=row.project_assignments_data,
            )
        )
        summaries[row.id] = ProjectSummary(
            project_id=row.id,
            total_workers=row.total_workers,
            total_members=row.total_members,
            engaged_employer_count=row.engaged_employer_count,
            eba_active_employer_count=row.eba_active_employer_count,
            estimated_total=row.estimated_total,
            eba_coverage_percent=row.eba_coverage_percent,
            delegate_name=row.delegate_name,
            first_patch_name=row.first_patch_name,
            organiser_names=row.organiser_names,
        )
    return projects, summaries


class ProjectsService:
    """Builds the projects envelope for one normalized filter set."""

    def __init__(self, resolver: PatchProjectResolver):
        self._resolver = resolver

    @staticmethod
    def _applied_filters(filters: ProjectFilters, since: Optional[str]) -> Dict[str, Any]:
        return {
            "q": filters.q,
            "patchIds": list(filters.patch_ids),
            "tier": filters.tier,
            "universe": filters.universe,
            "stage": filters.stage,
            "workers": filters.workers,
            "special": filters.special,
            "eba": filters.eba,
            "sort": filters.sort,
            "dir": filters.dir.value,
            "newOnly": filters.new_only,
            "since": since,
        }

    async def list_projects(
        self,
        client: SupabaseClient,
        filters: ProjectFilters,
        caller: Optional[AuthorizedCaller] = None,
        request_id: Optional[str] = None,
    ) -> ProjectsResponse:
        started = time.monotonic()
        since = effective_since(filters, caller)
        query = client.table(PROJECT_LIST_VIEW).select("*", count="exact")

        patch_row_count = 0
        method = PatchFilteringMethod.NONE
        if filters.patch_ids:
            resolution = await self._resolver.resolve(client, filters.patch_ids, request_id)
            patch_row_count = resolution.row_count
            method = resolution.method
            if resolution.is_empty:
                return ProjectsResponse(
                    projects=[],
                    summaries={},
                    pagination=Pagination(
                        page=filters.page,
                        pageSize=filters.page_size,
                        totalCount=0,
                        totalPages=0,
                    ),
                    debug=ProjectsDebug(
                        queryTime=round((time.monotonic() - started) * 1000, 1),
                        appliedFilters=self._applied_filters(filters, since),
                        patchProjectCount=patch_row_count,
                        patchFilteringUsed=True,
                        patchFilteringMethod=method,
                    ),
                )
            query = query.in_("id", resolution.project_ids)

        query = apply_search(query, filters.q)
        query = apply_categorical_filters(query, filters, since)
        query = apply_sort(query, filters.sort, filters.dir)
        start, end = page_range(filters.page, filters.page_size)
        query = query.range(start, end)

        result = await query.execute()
        projects, summaries = shape_rows(result.data, request_id)
        total_count = result.count or 0
        query_time = round((time.monotonic() - started) * 1000, 1)

        debug(
            LogRecord(
                LogEvent.BACKING_STORE_QUERY.value,
                f"{PROJECT_LIST_VIEW} returned {len(projects)} of {total_count}",
                request_id,
                {"range": [start, end], "query_time_ms": query_time},
            )
        )
        return ProjectsResponse(
            projects=projects,
            summaries=summaries,
            pagination=Pagination(
                page=filters.page,
                pageSize=filters.page_size,
                totalCount=total_count,
                totalPages=total_pages(total_count, filters.page_size),
            ),
            debug=ProjectsDebug(
                queryTime=query_time,
                appliedFilters=self._applied_filters(filters, since),
                patchProjectCount=patch_row_count,
                patchFilteringUsed=bool(filters.patch_ids),
                patchFilteringMethod=method,
            ),
        )
