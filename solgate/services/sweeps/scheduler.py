"""
Single process-wide owner of sweep timing.

Full runs never overlap: an interval tick while busy is dropped, manual
triggers while busy collapse into one follow-up run. Single-session sweeps
(after a payment commit) run as tracked background tasks.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from solgate.core.logging import short_id
from solgate.services.sessions.base import SessionStore
from solgate.services.sweeps.sweeper import (
    SweepConfigurationError,
    SweepReport,
    TransferAttempt,
    TransferSweeper,
)
from solgate.utils.metrics import sweep_run_duration_seconds, sweep_runs_total, sweep_scheduler_running

logger = logging.getLogger(__name__)


class TriggerKind(str, Enum):
    INTERVAL = "interval"
    MANUAL = "manual"
    SESSION = "session"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    QUEUED = "queued"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass(frozen=True)
class SweepRunResult:
    status: RunStatus
    report: SweepReport | None = None
    error: str | None = None


class SweepScheduler:
    def __init__(
        self,
        sweeper: TransferSweeper,
        store: SessionStore,
        interval_seconds: int = 300,
        cleanup: Callable[[], int] | None = None,
        cleanup_interval_seconds: int = 300,
    ):
        self.sweeper = sweeper
        self.store = store
        self.interval_seconds = interval_seconds
        self.cleanup = cleanup
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._running = False
        self._pending_manual = False
        self._tasks: set[asyncio.Task] = set()
        self._batch: asyncio.Task | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self.last_report: SweepReport | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def has_pending_run(self) -> bool:
        return self._pending_manual

    def start(self) -> None:
        """Register interval jobs and start APScheduler on the running loop."""
        if self._scheduler is not None:
            return
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self._interval_tick,
            IntervalTrigger(seconds=self.interval_seconds),
            id="sweep_all",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if self.cleanup is not None:
            scheduler.add_job(
                self._cleanup_tick,
                IntervalTrigger(seconds=self.cleanup_interval_seconds),
                id="session_cleanup",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "sweep_scheduler_started",
            extra={"trigger": TriggerKind.INTERVAL.value, "duration_ms": self.interval_seconds * 1000},
        )

    async def stop(self) -> None:
        """Stop timers, then wait for the running full sweep and in-flight single-session sweeps."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        batch = self._batch
        if batch is not None:
            await asyncio.gather(batch, return_exceptions=True)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("sweep_scheduler_stopped")

    async def trigger(self, kind: TriggerKind = TriggerKind.MANUAL) -> SweepRunResult:
        """Run a full sweep unless one is in progress (see module docstring)."""
        if self._running:
            if kind == TriggerKind.MANUAL:
                self._pending_manual = True
                sweep_runs_total.labels(trigger=kind.value, status=RunStatus.QUEUED.value).inc()
                logger.info("sweep_run_queued", extra={"trigger": kind.value})
                return SweepRunResult(status=RunStatus.QUEUED)
            sweep_runs_total.labels(trigger=kind.value, status=RunStatus.IGNORED.value).inc()
            logger.info("sweep_run_ignored", extra={"trigger": kind.value, "reason": "busy"})
            return SweepRunResult(status=RunStatus.IGNORED)

        self._running = True
        sweep_scheduler_running.set(1)
        self._batch = asyncio.get_running_loop().create_task(self._drain(kind))
        try:
            return await self._batch
        finally:
            self._batch = None
            self._running = False
            sweep_scheduler_running.set(0)

    async def _drain(self, kind: TriggerKind) -> SweepRunResult:
        result = await self._run(kind)
        while self._pending_manual:
            self._pending_manual = False
            await self._run(TriggerKind.MANUAL)
        return result

    def trigger_session(self, session_id: str) -> asyncio.Task:
        """Fire-and-forget sweep of one session; called right after a payment commit."""
        task = asyncio.get_running_loop().create_task(self._sweep_session(session_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _sweep_session(self, session_id: str) -> TransferAttempt | None:
        session = await asyncio.to_thread(self.store.get, session_id)
        if session is None or not session.is_paid:
            return None
        try:
            return await self.sweeper.sweep_one(session)
        except SweepConfigurationError as e:
            logger.error(
                "sweep_configuration_error",
                extra={"trigger": TriggerKind.SESSION.value, "session_id": short_id(session_id), "error": str(e)},
            )
            return None

    async def _run(self, kind: TriggerKind) -> SweepRunResult:
        started = time.perf_counter()
        try:
            sessions = await asyncio.to_thread(self.store.list_all)
            report = await self.sweeper.sweep_all(sessions)
        except SweepConfigurationError as e:
            sweep_runs_total.labels(trigger=kind.value, status=RunStatus.FAILED.value).inc()
            logger.error("sweep_configuration_error", extra={"trigger": kind.value, "error": str(e)})
            return SweepRunResult(status=RunStatus.FAILED, error=str(e))

        elapsed = time.perf_counter() - started
        sweep_run_duration_seconds.observe(elapsed)
        sweep_runs_total.labels(trigger=kind.value, status=RunStatus.COMPLETED.value).inc()
        self.last_report = report
        logger.info(
            "sweep_run_completed",
            extra={
                "trigger": kind.value,
                "succeeded": report.succeeded,
                "skipped": report.skipped,
                "failed": report.failed,
                "total_amount": report.total_amount,
                "duration_ms": int(elapsed * 1000),
            },
        )
        return SweepRunResult(status=RunStatus.COMPLETED, report=report)

    async def _interval_tick(self) -> None:
        await self.trigger(TriggerKind.INTERVAL)

    async def _cleanup_tick(self) -> None:
        deleted = await asyncio.to_thread(self.cleanup)
        logger.info("session_cleanup_tick", extra={"deleted": deleted})
