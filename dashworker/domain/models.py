from datetime import date
from enum import StrEnum
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _number_or_zero(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def _number_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _first_or_self(value: Any) -> Any:
    """PostgREST embeds to-one relations as objects but sometimes as arrays."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


class PatchFilteringMethod(StrEnum):
    NONE = "none"
    MATERIALIZED_VIEW = "materialized_view"
    FALLBACK_JOB_SITES = "fallback_job_sites"


# ---------------------------------------------------------------------------
# Filter sets
# ---------------------------------------------------------------------------


class ProjectFilters(BaseModel):
    """Normalized query parameters of ``GET /v1/projects``.

    Built once per request by :func:`dashworker.application.filters.parse_project_filters`
    and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    page: int = 1
    page_size: int = 24
    sort: str = "name"
    dir: SortDirection = SortDirection.ASC
    q: Optional[str] = None
    patch_ids: Tuple[str, ...] = ()
    tier: str = "all"
    universe: str = "all"
    stage: str = "all"
    workers: str = "all"
    special: str = "all"
    eba: str = "all"
    new_only: bool = False
    since: Optional[str] = None

    def cache_params(self) -> Dict[str, Any]:
        """Parameters that identify this request in the response cache."""
        return {
            "page": self.page,
            "pageSize": self.page_size,
            "sort": self.sort,
            "dir": self.dir.value,
            "q": self.q,
            "patchIds": list(self.patch_ids),
            "tier": self.tier,
            "universe": self.universe,
            "stage": self.stage,
            "workers": self.workers,
            "special": self.special,
            "eba": self.eba,
            "newOnly": self.new_only,
            "since": self.since,
        }


class DashboardFilters(BaseModel):
    """Normalized query parameters of ``GET /v1/dashboard``."""

    model_config = ConfigDict(frozen=True)

    tier: Optional[str] = None
    stage: Optional[str] = None
    universe: Optional[str] = None
    patch_ids: Optional[Tuple[str, ...]] = None

    def cache_params(self) -> Dict[str, Any]:
        return {
            "tier": self.tier,
            "stage": self.stage,
            "universe": self.universe,
            "patchIds": list(self.patch_ids) if self.patch_ids is not None else None,
        }


class AuthorizedCaller(BaseModel):
    """The authenticated user behind a bearer token."""

    user_id: str
    role: Optional[str] = None
    last_seen_projects_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Backing-store rows
# ---------------------------------------------------------------------------


class PatchProjectRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    project_id: Optional[str] = None


class ProjectListRow(BaseModel):
    """A row of ``project_list_comprehensive_view``.

    Counters default to zero when missing or malformed; ``id`` is mandatory.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    main_job_site_id: Optional[str] = None
    value: Optional[float] = None
    tier: Optional[str] = None
    organising_universe: Optional[str] = None
    stage_class: Optional[str] = None
    builder_name: Optional[str] = None
    created_at: Optional[str] = None
    full_address: Optional[str] = None
    project_assignments_data: List[Any] = Field(default_factory=list)
    total_workers: int = 0
    total_members: int = 0
    engaged_employer_count: int = 0
    eba_active_employer_count: int = 0
    estimated_total: int = 0
    eba_coverage_percent: float = 0
    delegate_name: Optional[str] = None
    first_patch_name: Optional[str] = None
    organiser_names: Optional[Any] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("value", mode="before")
    @classmethod
    def _optional_number(cls, v: Any) -> Optional[float]:
        if v is None:
            return None
        return _number_or_zero(v)

    @field_validator(
        "total_workers",
        "total_members",
        "engaged_employer_count",
        "eba_active_employer_count",
        "estimated_total",
        mode="before",
    )
    @classmethod
    def _int_or_zero(cls, v: Any) -> int:
        return int(_number_or_zero(v))

    @field_validator("eba_coverage_percent", mode="before")
    @classmethod
    def _float_or_zero(cls, v: Any) -> float:
        return float(_number_or_zero(v))

    @field_validator("project_assignments_data", mode="before")
    @classmethod
    def _list_or_empty(cls, v: Any) -> List[Any]:
        return v if isinstance(v, list) else []


class DashboardProjectRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    organising_universe: Optional[str] = None
    stage_class: Optional[str] = None
    tier: Optional[str] = None


class EbaRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    fwc_certified_date: Optional[str] = None


class EmployerRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    enterprise_agreement_status: Optional[bool] = None
    company_eba_records: List[EbaRef] = Field(default_factory=list)

    @field_validator("enterprise_agreement_status", mode="before")
    @classmethod
    def _strict_bool(cls, v: Any) -> Optional[bool]:
        return v if isinstance(v, bool) else None

    @field_validator("company_eba_records", mode="before")
    @classmethod
    def _records_list(cls, v: Any) -> List[Any]:
        if not isinstance(v, list):
            return []
        return [r for r in v if isinstance(r, dict)]

    def has_eba_records(self) -> bool:
        return len(self.company_eba_records) > 0

    def has_certified_eba(self) -> bool:
        return any(r.fwc_certified_date for r in self.company_eba_records)

    def has_active_eba(self) -> bool:
        if self.enterprise_agreement_status is True:
            return True
        return self.has_certified_eba()


class AssignmentRow(BaseModel):
    """A ``project_assignments`` row with its embedded employer and trade."""

    model_config = ConfigDict(extra="ignore")

    project_id: str
    employer_id: Optional[str] = None
    assignment_type: Optional[str] = None
    estimated_worker_count: Optional[float] = None
    assigned_worker_count: Optional[float] = None
    organiser_worker_count: Optional[float] = None
    delegate_type: Optional[str] = None
    is_hsr: bool = False
    is_hsr_chair_delegate: bool = False
    has_full_health_and_safety_committee: bool = False
    trade_types: Optional[Dict[str, Any]] = None
    employers: Optional[EmployerRef] = None

    @field_validator(
        "estimated_worker_count",
        "assigned_worker_count",
        "organiser_worker_count",
        mode="before",
    )
    @classmethod
    def _numbers_only(cls, v: Any) -> Optional[float]:
        return _number_or_none(v)

    @field_validator(
        "is_hsr",
        "is_hsr_chair_delegate",
        "has_full_health_and_safety_committee",
        mode="before",
    )
    @classmethod
    def _truthy(cls, v: Any) -> bool:
        return bool(v)

    @field_validator("trade_types", "employers", mode="before")
    @classmethod
    def _unwrap_relation(cls, v: Any) -> Any:
        v = _first_or_self(v)
        return v if isinstance(v, dict) else None

    @property
    def trade_code(self) -> Optional[str]:
        if not self.trade_types:
            return None
        code = self.trade_types.get("code")
        return code if isinstance(code, str) and code else None


class EbaRecordRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    nominal_expiry_date: Optional[date] = None
    fwc_certified_date: Optional[Any] = None
    date_eba_signed: Optional[Any] = None
    eba_lodged_fwc: Optional[Any] = None

    @field_validator("nominal_expiry_date", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> Optional[date]:
        if v is None or isinstance(v, date):
            return v
        try:
            return date.fromisoformat(str(v)[:10])
        except ValueError:
            return None


class EmployerAnalyticsRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    estimated_worker_count: float = 0
    current_worker_count: float = 0
    member_density_percent: float = 0

    @field_validator("*", mode="before")
    @classmethod
    def _float_or_zero(cls, v: Any) -> float:
        return float(_number_or_zero(v))


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------


class ProjectItem(BaseModel):
    id: str
    name: Optional[str] = None
    main_job_site_id: Optional[str] = None
    value: Optional[float] = None
    tier: Optional[str] = None
    organising_universe: Optional[str] = None
    stage_class: Optional[str] = None
    builder_name: Optional[str] = None
    created_at: Optional[str] = None
    full_address: Optional[str] = None
    project_assignments: List[Any] = Field(default_factory=list)


class ProjectSummary(BaseModel):
    project_id: str
    total_workers: int = 0
    total_members: int = 0
    engaged_employer_count: int = 0
    eba_active_employer_count: int = 0
    estimated_total: int = 0
    eba_coverage_percent: float = 0
    delegate_name: Optional[str] = None
    first_patch_name: Optional[str] = None
    organiser_names: Optional[Any] = None


class Pagination(BaseModel):
    page: int
    pageSize: int
    totalCount: int
    totalPages: int


class ProjectsDebug(BaseModel):
    queryTime: float
    cacheHit: bool = False
    appliedFilters: Dict[str, Any]
    patchProjectCount: int = 0
    patchFilteringUsed: bool = False
    patchFilteringMethod: PatchFilteringMethod = PatchFilteringMethod.NONE


class ProjectsResponse(BaseModel):
    projects: List[ProjectItem]
    summaries: Dict[str, ProjectSummary]
    pagination: Pagination
    debug: ProjectsDebug


class ProjectCounts(BaseModel):
    active_construction: int = 0
    active_pre_construction: int = 0
    potential_construction: int = 0
    potential_pre_construction: int = 0
    potential_future: int = 0
    potential_archived: int = 0
    excluded_construction: int = 0
    excluded_pre_construction: int = 0
    excluded_future: int = 0
    excluded_archived: int = 0
    total: int = 0


class ActiveConstructionMetrics(BaseModel):
    total_projects: int = 0
    total_builders: int = 0
    eba_builders: int = 0
    eba_builder_percentage: float = 0
    total_employers: int = 0
    eba_employers: int = 0
    eba_employer_percentage: float = 0
    core_trades: Dict[str, int] = Field(default_factory=dict)
    core_trades_eba: Dict[str, int] = Field(default_factory=dict)
    projects_with_site_delegates: int = 0
    projects_with_company_delegates: int = 0
    projects_with_hsrs: int = 0
    projects_with_hsr_chair_delegate: int = 0
    projects_with_full_hs_committee: int = 0
    avg_estimated_workers: float = 0
    avg_assigned_workers: float = 0
    avg_members: float = 0
    financial_audit_activities: int = 0


class ActivePreConstructionMetrics(BaseModel):
    total_projects: int = 0
    total_builders: int = 0
    eba_builders: int = 0
    eba_builder_percentage: float = 0
    total_employers: int = 0
    eba_employers: int = 0
    eba_employer_percentage: float = 0
    avg_estimated_workers: float = 0
    avg_assigned_workers: float = 0
    avg_members: float = 0


class DashboardTotals(BaseModel):
    totalWorkers: int = 0
    totalEmployers: int = 0
    totalSites: int = 0
    totalActivities: int = 0
    totalEbas: int = 0
    memberCount: int = 0
    ebaPercentage: float = 0
    avgMemberDensity: float = 0


class EbaExpiry(BaseModel):
    expired: int = 0
    expiring6Weeks: int = 0
    expiring3Months: int = 0
    expiring6Months: int = 0
    certified: int = 0
    signed: int = 0
    lodged: int = 0


class DashboardDebug(BaseModel):
    queryTime: float
    patchFilteringMethod: PatchFilteringMethod = PatchFilteringMethod.NONE
    scopedProjectCount: Optional[int] = None


class DashboardResponse(BaseModel):
    project_counts: ProjectCounts
    active_construction: ActiveConstructionMetrics
    active_pre_construction: ActivePreConstructionMetrics
    projects: List[Any] = Field(default_factory=list)
    errors: List[Union[str, Dict[str, Any]]] = Field(default_factory=list)
    totals: DashboardTotals
    ebaExpiry: EbaExpiry
    debug: DashboardDebug
