"""Materialized view refreshes: scheduled ticks and on-demand triggers."""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import anyio
from anyio.abc import TaskGroup, TaskStatus

from ..constants import CORE_REFRESH_SEQUENCE, OPTIONAL_REFRESH_SEQUENCE
from ..domain.exceptions import BackingStoreQueryError, RefreshError
from ..infrastructure.supabase.client import SupabaseClient
from ..logging import error, info, warning, LogRecord, LogEvent

RefreshTrigger = Callable[[str], None]


@dataclass
class RefreshOutcome:
    name: str
    ok: bool
    elapsed_ms: float
    error: Optional[str] = None


@dataclass
class RefreshReport:
    """Result of one scheduled tick."""

    outcomes: List[RefreshOutcome] = field(default_factory=list)
    core_failed: bool = False
    elapsed_ms: float = 0.0

    @property
    def failed(self) -> List[str]:
        return [o.name for o in self.outcomes if not o.ok]

    @property
    def partially_failed(self) -> bool:
        return bool(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "core_failed": self.core_failed,
            "failed": self.failed,
            "elapsed_ms": round(self.elapsed_ms, 1),
            "refreshed": [o.name for o in self.outcomes if o.ok],
        }


class ViewRefresher:
    """Runs refresh RPCs with the privileged client.

    The first sequence is the core unit: its failures are reported as a single
    error for the tick. Every refresh in the optional sequence fails on its own
    with a warning, so a view that is not migrated yet never blocks the rest.
    """

    def __init__(
        self,
        client_provider: Callable[[], SupabaseClient],
        core_sequence: Sequence[str] = CORE_REFRESH_SEQUENCE,
        optional_sequence: Sequence[str] = OPTIONAL_REFRESH_SEQUENCE,
    ):
        self._client_provider = client_provider
        self._core_sequence = tuple(core_sequence)
        self._optional_sequence = tuple(optional_sequence)
        self.last_report: Optional[RefreshReport] = None

    async def refresh_view(self, name: str) -> None:
        try:
            await self._client_provider().rpc(name)
        except BackingStoreQueryError as e:
            raise RefreshError(f"Refresh {name} failed: {e.message}", view=name) from e

    async def _timed_refresh(self, name: str) -> RefreshOutcome:
        started = time.monotonic()
        try:
            await self.refresh_view(name)
        except RefreshError as e:
            return RefreshOutcome(
                name, False, (time.monotonic() - started) * 1000, error=e.message
            )
        return RefreshOutcome(name, True, (time.monotonic() - started) * 1000)

    async def run_once(self) -> RefreshReport:
        """Run one scheduled tick: core unit first, then each optional refresh."""
        started = time.monotonic()
        report = RefreshReport()

        core_outcomes = [await self._timed_refresh(name) for name in self._core_sequence]
        report.outcomes.extend(core_outcomes)
        core_failures = [o for o in core_outcomes if not o.ok]
        if core_failures:
            report.core_failed = True
            error(
                LogRecord(
                    LogEvent.REFRESH_FAILED.value,
                    "Core materialized view refresh failed",
                    None,
                    {"failures": {o.name: o.error for o in core_failures}},
                )
            )

        for name in self._optional_sequence:
            outcome = await self._timed_refresh(name)
            report.outcomes.append(outcome)
            if not outcome.ok:
                warning(
                    LogRecord(
                        LogEvent.REFRESH_FAILED.value,
                        f"Optional refresh {name} failed",
                        None,
                        {"view": name, "error": outcome.error},
                    )
                )

        report.elapsed_ms = (time.monotonic() - started) * 1000
        self.last_report = report
        info(
            LogRecord(
                LogEvent.REFRESH_TICK.value,
                "Materialized view refresh tick "
                + ("partially failed" if report.partially_failed else "completed"),
                None,
                report.to_dict(),
            )
        )
        return report

    async def refresh_in_background(self, name: str) -> None:
        """Best-effort single refresh. Outcome is logged, never raised."""
        try:
            await self.refresh_view(name)
        except RefreshError as e:
            warning(
                LogRecord(
                    LogEvent.REFRESH_FAILED.value,
                    f"Background refresh of {name} failed",
                    None,
                    {"view": name},
                ),
                exc=e,
            )
            return
        except Exception as e:
            error(
                LogRecord(
                    LogEvent.REFRESH_FAILED.value,
                    f"Unexpected error in background refresh of {name}",
                    None,
                    {"view": name},
                ),
                exc=e,
            )
            return
        info(
            LogRecord(
                LogEvent.REFRESH_TRIGGERED.value,
                f"Background refresh of {name} completed",
                None,
                {"view": name},
            )
        )


class RefreshScheduler:
    """Owns the refresh loop and the detached on-demand refresh tasks.

    Ticks are aligned to wall-clock multiples of the interval, so a 600 s
    interval fires at :00, :10, :20 ... like ``*/10 * * * *``.
    """

    def __init__(
        self,
        refresher: ViewRefresher,
        interval_seconds: int,
        enabled: bool = True,
        run_on_startup: bool = False,
        clock: Optional[Callable[[], float]] = None,
    ):
        if interval_seconds < 1:
            raise ValueError(
                f"interval_seconds must be at least 1, got {interval_seconds}"
            )
        self._refresher = refresher
        self._interval = interval_seconds
        self._enabled = enabled
        self._run_on_startup = run_on_startup
        self._clock = clock or time.time
        self._task_group: Optional[TaskGroup] = None
        self._loop_scope: Optional[anyio.CancelScope] = None
        self.ticks = 0

    @property
    def refresher(self) -> ViewRefresher:
        return self._refresher

    @property
    def running(self) -> bool:
        return self._task_group is not None

    def seconds_until_next_tick(self) -> float:
        now = self._clock()
        return self._interval - (now % self._interval)

    async def start(self) -> None:
        """Enter the task group; must be stopped from the same task."""
        if self._task_group is not None:
            return
        tg = anyio.create_task_group()
        await tg.__aenter__()
        self._task_group = tg
        if self._enabled:
            await tg.start(self._loop)
            info(
                LogRecord(
                    LogEvent.STARTUP.value,
                    f"Materialized view refresh scheduled every {self._interval}s",
                    None,
                    {"interval_seconds": self._interval},
                )
            )

    async def stop(self) -> None:
        """Cancel the loop and wait for in-flight triggered refreshes."""
        if self._task_group is None:
            return
        tg, self._task_group = self._task_group, None
        if self._loop_scope is not None:
            self._loop_scope.cancel()
            self._loop_scope = None
        await tg.__aexit__(None, None, None)

    def trigger(self, name: str) -> None:
        """Spawn a detached refresh of ``name``; the handle is discarded."""
        if self._task_group is None:
            warning(
                LogRecord(
                    LogEvent.REFRESH_FAILED.value,
                    f"Refresh of {name} skipped: scheduler not running",
                    None,
                    {"view": name},
                )
            )
            return
        self._task_group.start_soon(self._refresher.refresh_in_background, name)

    async def _tick(self) -> None:
        self.ticks += 1
        try:
            await self._refresher.run_once()
        except Exception as e:
            error(
                LogRecord(
                    LogEvent.REFRESH_FAILED.value,
                    "Unexpected error in refresh tick",
                    None,
                    {"tick": self.ticks},
                ),
                exc=e,
            )

    async def _loop(self, *, task_status: TaskStatus = anyio.TASK_STATUS_IGNORED) -> None:
        with anyio.CancelScope() as scope:
            self._loop_scope = scope
            task_status.started()
            if self._run_on_startup:
                await self._tick()
            while True:
                await anyio.sleep(self.seconds_until_next_tick())
                await self._tick()
