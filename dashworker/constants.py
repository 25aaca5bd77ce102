"""Constants module for the dashboard worker.

Backing-store resource names, query defaults, sort whitelist and the
refresh sequence used by the scheduler.
"""

from typing import Dict, FrozenSet, Tuple

# Resource names
PROJECT_LIST_VIEW = "project_list_comprehensive_view"
PATCH_PROJECT_MAPPING_VIEW = "patch_project_mapping_view"
JOB_SITES_TABLE = "job_sites"
PROFILES_TABLE = "profiles"
PROJECTS_TABLE = "projects"
PROJECT_ASSIGNMENTS_TABLE = "project_assignments"
UNION_ACTIVITIES_TABLE = "union_activities"
WORKERS_TABLE = "workers"
EMPLOYERS_TABLE = "employers"
COMPANY_EBA_RECORDS_TABLE = "company_eba_records"
EMPLOYER_ANALYTICS_VIEW = "employer_analytics"

# Refresh RPCs. The first two are the core unit of every scheduled tick.
REFRESH_PATCH_PROJECT_MAPPING = "refresh_patch_project_mapping_view"
REFRESH_PROJECT_LIST = "refresh_project_list_comprehensive_view"
CORE_REFRESH_SEQUENCE: Tuple[str, ...] = (
    REFRESH_PATCH_PROJECT_MAPPING,
    REFRESH_PROJECT_LIST,
)
OPTIONAL_REFRESH_SEQUENCE: Tuple[str, ...] = (
    "refresh_employers_search_view",
    "refresh_employer_list_view",
    "refresh_worker_list_view",
)

# Pagination
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 24
MAX_PAGE_SIZE = 100

# Cache
DEFAULT_CACHE_TTL_SECONDS = 30
CACHE_CONTROL_TEMPLATE = "public, max-age={ttl}"
ANONYMOUS_FINGERPRINT = "anon"
FINGERPRINT_LENGTH = 16

DEFAULT_SORT = "name"
DEFAULT_DIRECTION = "asc"

# sort name -> view column
SORT_COLUMNS: Dict[str, str] = {
    "name": "name",
    "value": "value",
    "tier": "tier",
    "workers": "total_workers",
    "members": "total_members",
    "employers": "engaged_employer_count",
    "eba_coverage": "eba_coverage_percent",
    "delegates": "delegate_name",
}
NULLS_LAST_SORTS: FrozenSet[str] = frozenset({"value", "tier"})
FALLBACK_SORT_COLUMN = "created_at"

# Dashboard
CORE_TRADE_CODES: Dict[str, Tuple[str, ...]] = {
    "demolition": ("demolition",),
    "piling": ("piling",),
    "concreting": ("concrete", "concreting"),
    "formwork": ("form_work", "formwork"),
    "scaffold": ("scaffolding", "scaffold"),
    "cranes": ("tower_crane", "mobile_crane", "crane", "cranes"),
}
PROJECT_COUNT_BUCKETS: Tuple[str, ...] = (
    "active_construction",
    "active_pre_construction",
    "potential_construction",
    "potential_pre_construction",
    "potential_future",
    "potential_archived",
    "excluded_construction",
    "excluded_pre_construction",
    "excluded_future",
    "excluded_archived",
)
