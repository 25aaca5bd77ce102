"""Patch -> project resolution with a source-table fallback.

``patch_project_mapping_view`` is only as fresh as its last refresh. When it
has no rows for the requested patches the same mapping is derived from
``job_sites`` and a refresh of the view is fired in the background.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from ..constants import (
    JOB_SITES_TABLE,
    PATCH_PROJECT_MAPPING_VIEW,
    REFRESH_PATCH_PROJECT_MAPPING,
)
from ..domain.exceptions import BackingStoreQueryError, FallbackExhaustedError
from ..domain.models import PatchFilteringMethod, PatchProjectRow
from ..infrastructure.supabase.client import SupabaseClient
from ..logging import info, warning, LogRecord, LogEvent
from .refresh import RefreshTrigger


@dataclass
class PatchResolution:
    project_ids: List[str] = field(default_factory=list)
    row_count: int = 0
    method: PatchFilteringMethod = PatchFilteringMethod.NONE

    @property
    def used_fallback(self) -> bool:
        return self.method == PatchFilteringMethod.FALLBACK_JOB_SITES

    @property
    def is_empty(self) -> bool:
        return not self.project_ids


def unique_project_ids(rows: Iterable[Dict[str, Any]]) -> List[str]:
    """Distinct, non-null project ids in first-seen order."""
    seen: Dict[str, None] = {}
    for raw in rows:
        try:
            row = PatchProjectRow.model_validate(raw)
        except ValidationError:
            continue
        if row.project_id:
            seen.setdefault(str(row.project_id), None)
    return list(seen)


class PatchProjectResolver:
    def __init__(self, trigger_refresh: Optional[RefreshTrigger] = None):
        self._trigger_refresh = trigger_refresh

    async def resolve(
        self,
        client: SupabaseClient,
        patch_ids: Sequence[str],
        request_id: Optional[str] = None,
    ) -> PatchResolution:
        if not patch_ids:
            return PatchResolution()

        rows: List[Dict[str, Any]] = []
        try:
            result = await (
                client.table(PATCH_PROJECT_MAPPING_VIEW)
                .select("project_id")
                .in_("patch_id", patch_ids)
                .execute()
            )
            rows = result.data
        except BackingStoreQueryError as e:
            warning(
                LogRecord(
                    LogEvent.PATCH_VIEW_ERROR.value,
                    f"{PATCH_PROJECT_MAPPING_VIEW} error, falling back",
                    request_id,
                    {"patch_ids": list(patch_ids)},
                ),
                exc=e,
            )

        method = PatchFilteringMethod.MATERIALIZED_VIEW
        if not rows:
            try:
                result = await (
                    client.table(JOB_SITES_TABLE)
                    .select("project_id")
                    .in_("patch_id", patch_ids)
                    .is_not("project_id", None)
                    .execute()
                )
            except BackingStoreQueryError as e:
                raise FallbackExhaustedError(
                    f"Patch fallback query failed: {e.message}",
                    resource=JOB_SITES_TABLE,
                    upstream_status=e.upstream_status,
                    code=e.code,
                    request_id=request_id,
                ) from e
            rows = result.data
            method = PatchFilteringMethod.FALLBACK_JOB_SITES
            info(
                LogRecord(
                    LogEvent.PATCH_FALLBACK.value,
                    "Patch filtering served from job_sites",
                    request_id,
                    {"patch_ids": list(patch_ids), "rows": len(rows)},
                )
            )
            if self._trigger_refresh is not None:
                self._trigger_refresh(REFRESH_PATCH_PROJECT_MAPPING)

        return PatchResolution(
            project_ids=unique_project_ids(rows),
            row_count=len(rows),
            method=method,
        )
