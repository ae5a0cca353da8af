"""Cron scheduler and heartbeat for sync jobs."""

import logging
from datetime import timedelta
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from shopsync.api.services.sync_state_store import SyncStateStore
from shopsync.core.config import Settings
from shopsync.core.data_objects import (
    DataObjectKind,
    DataObjectsConfig,
    SyncTrigger,
    active_schedule,
    enabled_kinds,
)
from shopsync.core.database import utcnow
from shopsync.core.queue import JobHandle, JobPriority, JobQueue, JobType

logger = logging.getLogger(__name__)

HEARTBEAT_JOB_ID = "heartbeat"


def cron_job_id(kind: DataObjectKind) -> str:
    return f"sync_{kind.value}"


class Scheduler:
    """Turns cron schedules into queued sync jobs and watches for stuck syncs.

    Owns one APScheduler job per enabled cron-triggered kind plus a
    heartbeat. Never touches jobs already running in the queue.
    """

    def __init__(
        self,
        queue: JobQueue,
        states: SyncStateStore,
        data_objects: DataObjectsConfig,
        settings: Settings,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.queue = queue
        self.states = states
        self.data_objects = data_objects
        self.settings = settings
        self._scheduler = scheduler or AsyncIOScheduler()
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Register cron jobs and the heartbeat, then run one heartbeat."""
        if self._started:
            logger.warning("Scheduler already started")
            return

        for kind in enabled_kinds(self.data_objects):
            if self.data_objects[kind].trigger == SyncTrigger.CRON:
                self._schedule_kind(kind)

        self._scheduler.add_job(
            self.heartbeat,
            trigger=IntervalTrigger(seconds=self.settings.heartbeat_interval_seconds),
            id=HEARTBEAT_JOB_ID,
            name="Sync Heartbeat",
            replace_existing=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        self._started = True
        logger.info(f"Scheduler started in {self.settings.run_mode} mode")

        await self.heartbeat()

    def stop(self) -> None:
        """Remove cron jobs and the heartbeat. In-flight jobs keep running."""
        if not self._started:
            return
        for job in self._scheduler.get_jobs():
            job.remove()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Scheduler stopped")

    def _schedule_kind(self, kind: DataObjectKind) -> bool:
        expression = active_schedule(self.data_objects, kind, self.settings.run_mode)
        if not expression:
            logger.warning(f"No schedule for {kind.value}, skipping")
            return False
        try:
            trigger = CronTrigger.from_crontab(expression)
        except ValueError as e:
            logger.error(f"Invalid cron expression {expression!r} for {kind.value}: {e}")
            return False

        self._scheduler.add_job(
            self._on_cron,
            trigger=trigger,
            args=[kind],
            id=cron_job_id(kind),
            name=f"Sync {kind.value}",
            replace_existing=True,
        )
        logger.info(f"Scheduled {kind.value} sync: {expression}")
        return True

    async def _on_cron(self, kind: DataObjectKind) -> None:
        logger.debug(f"Cron fired for {kind.value}")
        self.trigger_sync(kind)

    # =========================================================================
    # Heartbeat
    # =========================================================================

    async def heartbeat(self) -> list[DataObjectKind]:
        """Log queue depth and warn about syncs running too long.

        Returns:
            Kinds currently considered stuck
        """
        status = self.queue.get_status()
        if status.queued or status.running:
            logger.info(f"Heartbeat: {status.running} running, {status.queued} queued")
        else:
            logger.debug("Heartbeat: queue idle")

        stuck = []
        threshold = timedelta(seconds=self.settings.stuck_threshold_seconds)
        now = utcnow()
        for kind, config in self.data_objects.items():
            if not config.enabled:
                continue
            state = self.states.get(kind)
            if state.status == "running" and state.last_sync_at and now - state.last_sync_at > threshold:
                minutes = (now - state.last_sync_at).total_seconds() / 60
                logger.warning(
                    f"Sync for {kind.value} appears stuck: running for {minutes:.0f} minutes"
                )
                stuck.append(kind)
        return stuck

    # =========================================================================
    # Triggers
    # =========================================================================

    def trigger_sync(self, kind: DataObjectKind | str) -> JobHandle | None:
        """Queue a NORMAL priority sync. Disabled kinds are skipped."""
        return self._trigger(DataObjectKind(kind), JobPriority.NORMAL)

    def trigger_immediate_sync(self, kind: DataObjectKind | str) -> JobHandle | None:
        """Queue a HIGH priority sync. Disabled kinds are skipped."""
        return self._trigger(DataObjectKind(kind), JobPriority.HIGH)

    def trigger_all_syncs(self) -> list[JobHandle]:
        """Queue a sync for every enabled cron kind, in dependency order."""
        handles = []
        for kind in enabled_kinds(self.data_objects):
            if self.data_objects[kind].trigger == SyncTrigger.CRON:
                handle = self.trigger_sync(kind)
                if handle is not None:
                    handles.append(handle)
        logger.info(f"Triggered {len(handles)} syncs")
        return handles

    def _trigger(self, kind: DataObjectKind, priority: JobPriority) -> JobHandle | None:
        config = self.data_objects[kind]
        if not config.enabled:
            logger.warning(f"Cannot sync {kind.value}: disabled")
            return None
        return self.queue.enqueue(
            kind,
            JobType.SYNC,
            priority=priority,
            dependencies=config.dependencies,
        )

    def update_schedule(self, kind: DataObjectKind | str) -> bool:
        """Re-read the schedule of ``kind`` and replace its cron job."""
        kind = DataObjectKind(kind)
        if self._scheduler.get_job(cron_job_id(kind)):
            self._scheduler.remove_job(cron_job_id(kind))
        config = self.data_objects[kind]
        if not config.enabled or config.trigger != SyncTrigger.CRON:
            return False
        return self._schedule_kind(kind)

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_status(self) -> dict[str, Any]:
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
            })
        return {
            "running": self._started,
            "mode": self.settings.run_mode,
            "jobs": jobs,
            "queue": self.queue.get_status().to_dict(),
        }
