"""Dashboard aggregation.

Counts projects by organising universe and stage, rolls up builder and
employer EBA coverage for active projects, and adds organisation-wide
totals. Only the project list itself is fatal when it fails; every other
query degrades to zero and is reported in ``errors``.
"""

import time
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

import anyio
from pydantic import ValidationError

from ..constants import (
    COMPANY_EBA_RECORDS_TABLE,
    CORE_TRADE_CODES,
    EMPLOYER_ANALYTICS_VIEW,
    EMPLOYERS_TABLE,
    JOB_SITES_TABLE,
    PROJECT_ASSIGNMENTS_TABLE,
    PROJECT_COUNT_BUCKETS,
    PROJECTS_TABLE,
    UNION_ACTIVITIES_TABLE,
    WORKERS_TABLE,
)
from ..domain.exceptions import BackingStoreQueryError
from ..domain.models import (
    ActiveConstructionMetrics,
    ActivePreConstructionMetrics,
    AssignmentRow,
    DashboardDebug,
    DashboardFilters,
    DashboardProjectRow,
    DashboardResponse,
    DashboardTotals,
    EbaExpiry,
    EbaRecordRow,
    EmployerAnalyticsRow,
    PatchFilteringMethod,
    ProjectCounts,
)
from ..infrastructure.supabase.client import SupabaseClient
from ..infrastructure.supabase.query import QueryBuilder
from ..logging import warning, LogRecord, LogEvent
from .patch_resolver import PatchProjectResolver

CONSTRUCTION_ASSIGNMENT_COLUMNS = """
    project_id,
    employer_id,
    assignment_type,
    estimated_worker_count,
    assigned_worker_count,
    organiser_worker_count,
    delegate_type,
    is_hsr,
    is_hsr_chair_delegate,
    has_full_health_and_safety_committee,
    contractor_role_types(code),
    trade_types(code),
    employers!inner(id, enterprise_agreement_status, company_eba_records(id, fwc_certified_date))
"""

PRE_CONSTRUCTION_ASSIGNMENT_COLUMNS = """
    project_id,
    employer_id,
    assignment_type,
    estimated_worker_count,
    assigned_worker_count,
    organiser_worker_count,
    employers!inner(id, company_eba_records(id, fwc_certified_date))
"""

EBA_EXPIRY_COLUMNS = "nominal_expiry_date, fwc_certified_date, date_eba_signed, eba_lodged_fwc"

SIX_WEEKS = timedelta(weeks=6)
THREE_MONTHS = timedelta(days=90)
SIX_MONTHS = timedelta(days=180)


def map_trade_code_to_core(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    normalized = code.lower()
    for key, codes in CORE_TRADE_CODES.items():
        if normalized in codes:
            return key
    return None


def average(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0


def percentage(part: int, whole: int) -> float:
    return part / whole * 100 if whole > 0 else 0


def count_projects(rows: List[DashboardProjectRow]) -> ProjectCounts:
    """Bucket projects by ``<universe>_<stage>``; missing parts count as excluded/archived."""
    buckets: Dict[str, int] = defaultdict(int)
    for row in rows:
        buckets[f"{row.organising_universe or 'excluded'}_{row.stage_class or 'archived'}"] += 1
    counts = {name: buckets.get(name, 0) for name in PROJECT_COUNT_BUCKETS}
    return ProjectCounts(**counts, total=len(rows))


def _per_project_averages(assignments: List[AssignmentRow]) -> Dict[str, float]:
    """Average each worker figure per project, then across projects."""
    by_project: Dict[str, Dict[str, List[float]]] = {}
    for a in assignments:
        entry = by_project.setdefault(
            a.project_id, {"estimated": [], "assigned": [], "members": []}
        )
        if a.estimated_worker_count is not None:
            entry["estimated"].append(a.estimated_worker_count)
        if a.assigned_worker_count is not None:
            entry["assigned"].append(a.assigned_worker_count)
        if a.organiser_worker_count is not None:
            entry["members"].append(a.organiser_worker_count)
    return {
        field: average(average(values[field]) for values in by_project.values())
        for field in ("estimated", "assigned", "members")
    }


def _distinct_employers(assignments: Iterable[AssignmentRow]) -> Set[str]:
    return {a.employer_id for a in assignments if a.employer_id}


class CoreTradeTally:
    """Distinct employers per project per core trade, with an EBA subset."""

    def __init__(self) -> None:
        self._employers: Dict[str, Dict[str, Set[str]]] = {}
        self._eba_employers: Dict[str, Dict[str, Set[str]]] = {}

    @staticmethod
    def _sets(store: Dict[str, Dict[str, Set[str]]], project_id: str) -> Dict[str, Set[str]]:
        if project_id not in store:
            store[project_id] = {key: set() for key in CORE_TRADE_CODES}
        return store[project_id]

    def add(self, assignment: AssignmentRow) -> None:
        if assignment.assignment_type != "trade_work" or not assignment.employer_id:
            return
        core = map_trade_code_to_core(assignment.trade_code)
        if core is None:
            return
        self._sets(self._employers, assignment.project_id)[core].add(assignment.employer_id)
        if assignment.employers is not None and assignment.employers.has_active_eba():
            self._sets(self._eba_employers, assignment.project_id)[core].add(
                assignment.employer_id
            )

    @staticmethod
    def _totals(store: Dict[str, Dict[str, Set[str]]]) -> Dict[str, int]:
        totals = {key: 0 for key in CORE_TRADE_CODES}
        for sets in store.values():
            for key, employers in sets.items():
                totals[key] += len(employers)
        return totals

    def totals(self) -> Dict[str, int]:
        return self._totals(self._employers)

    def eba_totals(self) -> Dict[str, int]:
        return self._totals(self._eba_employers)


def construction_metrics(
    project_ids: List[str],
    assignments: List[AssignmentRow],
    tally: CoreTradeTally,
    financial_audit_activities: int,
) -> ActiveConstructionMetrics:
    builders = _distinct_employers(assignments)
    eba_builders = _distinct_employers(
        a for a in assignments if a.employers is not None and a.employers.has_eba_records()
    )
    employer_assignments = [a for a in assignments if a.assignment_type == "employer"]
    employers = _distinct_employers(employer_assignments)
    eba_employers = _distinct_employers(
        a
        for a in employer_assignments
        if a.employers is not None and a.employers.has_certified_eba()
    )
    for a in assignments:
        tally.add(a)
    averages = _per_project_averages(assignments)

    return ActiveConstructionMetrics(
        total_projects=len(project_ids),
        total_builders=len(builders),
        eba_builders=len(eba_builders),
        eba_builder_percentage=percentage(len(eba_builders), len(builders)),
        total_employers=len(employers),
        eba_employers=len(eba_employers),
        eba_employer_percentage=percentage(len(eba_employers), len(employers)),
        core_trades=tally.totals(),
        core_trades_eba=tally.eba_totals(),
        projects_with_site_delegates=sum(
            1 for a in assignments if a.delegate_type == "site_delegate"
        ),
        projects_with_company_delegates=sum(
            1 for a in assignments if a.delegate_type == "company_delegate"
        ),
        projects_with_hsrs=sum(1 for a in assignments if a.is_hsr),
        projects_with_hsr_chair_delegate=sum(1 for a in assignments if a.is_hsr_chair_delegate),
        projects_with_full_hs_committee=sum(
            1 for a in assignments if a.has_full_health_and_safety_committee
        ),
        avg_estimated_workers=averages["estimated"],
        avg_assigned_workers=averages["assigned"],
        avg_members=averages["members"],
        financial_audit_activities=financial_audit_activities,
    )


def pre_construction_metrics(
    project_ids: List[str], assignments: List[AssignmentRow]
) -> ActivePreConstructionMetrics:
    contractor_assignments = [a for a in assignments if a.assignment_type == "contractor_role"]
    builders = _distinct_employers(contractor_assignments)
    eba_builders = _distinct_employers(
        a
        for a in contractor_assignments
        if a.employers is not None and a.employers.has_certified_eba()
    )
    employer_assignments = [a for a in assignments if a.assignment_type == "employer"]
    employers = _distinct_employers(employer_assignments)
    eba_employers = _distinct_employers(
        a
        for a in employer_assignments
        if a.employers is not None and a.employers.has_certified_eba()
    )
    averages = _per_project_averages(assignments)

    return ActivePreConstructionMetrics(
        total_projects=len(project_ids),
        total_builders=len(builders),
        eba_builders=len(eba_builders),
        eba_builder_percentage=percentage(len(eba_builders), len(builders)),
        total_employers=len(employers),
        eba_employers=len(eba_employers),
        eba_employer_percentage=percentage(len(eba_employers), len(employers)),
        avg_estimated_workers=averages["estimated"],
        avg_assigned_workers=averages["assigned"],
        avg_members=averages["members"],
    )


def eba_expiry_buckets(rows: List[EbaRecordRow], now: datetime) -> EbaExpiry:
    expiry = EbaExpiry()
    for row in rows:
        if row.fwc_certified_date:
            expiry.certified += 1
        if row.date_eba_signed:
            expiry.signed += 1
        if row.eba_lodged_fwc:
            expiry.lodged += 1
        if row.nominal_expiry_date is None:
            continue
        expires_at = datetime(
            row.nominal_expiry_date.year,
            row.nominal_expiry_date.month,
            row.nominal_expiry_date.day,
            tzinfo=timezone.utc,
        )
        if expires_at < now:
            expiry.expired += 1
        elif expires_at <= now + SIX_WEEKS:
            expiry.expiring6Weeks += 1
        elif expires_at <= now + THREE_MONTHS:
            expiry.expiring3Months += 1
        elif expires_at <= now + SIX_MONTHS:
            expiry.expiring6Months += 1
    return expiry


def average_member_density(rows: List[EmployerAnalyticsRow]) -> float:
    mapped = [r for r in rows if r.estimated_worker_count > 0 and r.current_worker_count > 0]
    return average(r.member_density_percent for r in mapped)


def _validate_rows(model: Any, rows: List[Dict[str, Any]]) -> List[Any]:
    valid = []
    for raw in rows:
        try:
            valid.append(model.model_validate(raw))
        except ValidationError:
            continue
    return valid


class DashboardService:
    def __init__(
        self,
        resolver: PatchProjectResolver,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._resolver = resolver
        self._now = now or (lambda: datetime.now(timezone.utc))

    @staticmethod
    async def _rows_or_empty(
        query: QueryBuilder, errors: List[str], request_id: Optional[str]
    ) -> List[Dict[str, Any]]:
        try:
            return (await query.execute()).data
        except BackingStoreQueryError as e:
            errors.append(f"{query.table}: {e.message}")
            warning(
                LogRecord(
                    LogEvent.BACKING_STORE_ERROR.value,
                    f"Dashboard query on {query.table} failed",
                    request_id,
                ),
                exc=e,
            )
            return []

    @staticmethod
    async def _count_or_zero(
        query: QueryBuilder, errors: List[str], request_id: Optional[str]
    ) -> int:
        try:
            return (await query.execute()).count or 0
        except BackingStoreQueryError as e:
            errors.append(f"{query.table}: {e.message}")
            warning(
                LogRecord(
                    LogEvent.BACKING_STORE_ERROR.value,
                    f"Dashboard count on {query.table} failed",
                    request_id,
                ),
                exc=e,
            )
            return 0

    async def _totals(
        self, client: SupabaseClient, errors: List[str], request_id: Optional[str]
    ) -> DashboardTotals:
        def head(table: str) -> QueryBuilder:
            return client.table(table).select("*", count="exact", head=True)

        counts: Dict[str, int] = {}
        analytics: List[Dict[str, Any]] = []

        async def count(name: str, query: QueryBuilder) -> None:
            counts[name] = await self._count_or_zero(query, errors, request_id)

        async def load_analytics() -> None:
            analytics.extend(
                await self._rows_or_empty(
                    client.table(EMPLOYER_ANALYTICS_VIEW).select("*"), errors, request_id
                )
            )

        async with anyio.create_task_group() as tg:
            tg.start_soon(count, "workers", head(WORKERS_TABLE))
            tg.start_soon(count, "employers", head(EMPLOYERS_TABLE))
            tg.start_soon(count, "sites", head(JOB_SITES_TABLE))
            tg.start_soon(count, "activities", head(UNION_ACTIVITIES_TABLE))
            tg.start_soon(count, "ebas", head(COMPANY_EBA_RECORDS_TABLE))
            tg.start_soon(
                count,
                "members",
                head(WORKERS_TABLE).eq("union_membership_status", "member"),
            )
            tg.start_soon(load_analytics)

        return DashboardTotals(
            totalWorkers=counts["workers"],
            totalEmployers=counts["employers"],
            totalSites=counts["sites"],
            totalActivities=counts["activities"],
            totalEbas=counts["ebas"],
            memberCount=counts["members"],
            ebaPercentage=percentage(counts["ebas"], counts["employers"]),
            avgMemberDensity=average_member_density(
                _validate_rows(EmployerAnalyticsRow, analytics)
            ),
        )

    async def build(
        self,
        client: SupabaseClient,
        filters: DashboardFilters,
        request_id: Optional[str] = None,
    ) -> DashboardResponse:
        started = time.monotonic()
        errors: List[str] = []

        method = PatchFilteringMethod.NONE
        scoped_ids: Optional[List[str]] = None
        if filters.patch_ids:
            resolution = await self._resolver.resolve(client, filters.patch_ids, request_id)
            method = resolution.method
            scoped_ids = resolution.project_ids

        project_rows: List[DashboardProjectRow] = []
        if scoped_ids is None or scoped_ids:
            query = client.table(PROJECTS_TABLE).select(
                "id, organising_universe, stage_class, tier"
            )
            if scoped_ids:
                query = query.in_("id", scoped_ids)
            if filters.tier and filters.tier != "all":
                query = query.eq("tier", filters.tier)
            if filters.universe and filters.universe != "all":
                query = query.eq("organising_universe", filters.universe)
            if filters.stage and filters.stage != "all":
                query = query.eq("stage_class", filters.stage)
            project_rows = _validate_rows(DashboardProjectRow, (await query.execute()).data)

        construction_ids = [
            p.id
            for p in project_rows
            if p.organising_universe == "active" and p.stage_class == "construction"
        ]
        pre_construction_ids = [
            p.id
            for p in project_rows
            if p.organising_universe == "active" and p.stage_class == "pre_construction"
        ]

        tally = CoreTradeTally()
        construction = ActiveConstructionMetrics(
            core_trades=tally.totals(), core_trades_eba=tally.eba_totals()
        )
        if construction_ids:
            assignments = _validate_rows(
                AssignmentRow,
                await self._rows_or_empty(
                    client.table(PROJECT_ASSIGNMENTS_TABLE)
                    .select(CONSTRUCTION_ASSIGNMENT_COLUMNS)
                    .in_("project_id", construction_ids),
                    errors,
                    request_id,
                ),
            )
            audits = await self._count_or_zero(
                client.table(UNION_ACTIVITIES_TABLE)
                .select("*", count="exact", head=True)
                .eq("activity_type", "financial_audit")
                .in_("project_id", construction_ids),
                errors,
                request_id,
            )
            construction = construction_metrics(construction_ids, assignments, tally, audits)

        pre_construction = ActivePreConstructionMetrics()
        if pre_construction_ids:
            assignments = _validate_rows(
                AssignmentRow,
                await self._rows_or_empty(
                    client.table(PROJECT_ASSIGNMENTS_TABLE)
                    .select(PRE_CONSTRUCTION_ASSIGNMENT_COLUMNS)
                    .in_("project_id", pre_construction_ids),
                    errors,
                    request_id,
                ),
            )
            pre_construction = pre_construction_metrics(pre_construction_ids, assignments)

        totals = await self._totals(client, errors, request_id)
        eba_rows = _validate_rows(
            EbaRecordRow,
            await self._rows_or_empty(
                client.table(COMPANY_EBA_RECORDS_TABLE).select(EBA_EXPIRY_COLUMNS),
                errors,
                request_id,
            ),
        )

        return DashboardResponse(
            project_counts=count_projects(project_rows),
            active_construction=construction,
            active_pre_construction=pre_construction,
            errors=errors,
            totals=totals,
            ebaExpiry=eba_expiry_buckets(eba_rows, self._now()),
            debug=DashboardDebug(
                queryTime=round((time.monotonic() - started) * 1000, 1),
                patchFilteringMethod=method,
                scopedProjectCount=len(scoped_ids) if scoped_ids is not None else None,
            ),
        )
