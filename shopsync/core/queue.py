"""Priority job queue with dependency gating.

Jobs run as asyncio tasks on the caller's event loop. At most
``max_concurrent`` handlers run at once; a queued job only starts when none
of its dependency kinds is running or queued ahead of it.
"""

import asyncio
import itertools
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from shopsync.core.data_objects import DataObjectKind
from shopsync.core.database import utcnow
from shopsync.core.exceptions import HandlerNotRegisteredError

logger = logging.getLogger(__name__)


class JobPriority(IntEnum):
    """Lower value runs first."""

    HIGH = 0
    NORMAL = 1
    LOW = 2


class JobType(str, Enum):
    SYNC = "sync"
    WEBHOOK = "webhook"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}


@dataclass
class Job:
    """A unit of work for one data object kind. Mutated only by the queue."""

    id: str
    kind: DataObjectKind
    job_type: JobType
    priority: JobPriority = JobPriority.NORMAL
    status: JobStatus = JobStatus.QUEUED
    dependencies: list[DataObjectKind] = field(default_factory=list)
    payload: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    stats: Any = None
    _done: asyncio.Future | None = field(default=None, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "job_type": self.job_type.value,
            "priority": self.priority.name,
            "status": self.status.value,
            "dependencies": [dep.value for dep in self.dependencies],
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


class JobHandle:
    """Returned by ``enqueue``. Awaiting it yields the job in its terminal state."""

    def __init__(self, job: Job):
        self._job = job

    @property
    def id(self) -> str:
        return self._job.id

    @property
    def job(self) -> Job:
        return self._job

    def done(self) -> bool:
        return self._job.is_terminal

    def __await__(self):
        return asyncio.shield(self._job._done).__await__()

    def __repr__(self) -> str:
        return f"<JobHandle {self._job.id} {self._job.status.value}>"


@dataclass
class QueueStatus:
    queued: int
    running: int
    jobs: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"queued": self.queued, "running": self.running, "jobs": self.jobs}


JobHandler = Callable[[Job], Awaitable[Any]]


class JobQueue:
    """In-memory priority queue that dispatches jobs to registered handlers."""

    def __init__(self, max_concurrent: int = 1):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._queue: list[Job] = []
        self._running: dict[str, Job] = {}
        self._handlers: dict[DataObjectKind, JobHandler] = {}
        self._tasks: set[asyncio.Task] = set()
        self._counter = itertools.count(1)
        self._idle = asyncio.Event()
        self._idle.set()

    # =========================================================================
    # Handlers
    # =========================================================================

    def register_handler(self, kind: DataObjectKind | str, handler: JobHandler) -> None:
        kind = DataObjectKind(kind)
        self._handlers[kind] = handler
        logger.debug(f"Registered handler for {kind.value}")

    def has_handler(self, kind: DataObjectKind | str) -> bool:
        return DataObjectKind(kind) in self._handlers

    # =========================================================================
    # Enqueue / dispatch
    # =========================================================================

    def enqueue(
        self,
        kind: DataObjectKind | str,
        job_type: JobType | str,
        priority: JobPriority = JobPriority.NORMAL,
        dependencies: list[DataObjectKind] | tuple = (),
        payload: dict[str, Any] | None = None,
    ) -> JobHandle:
        """Add a job unless one of the same kind and type is queued or running.

        Must be called from the event loop thread.

        Returns:
            Handle of the new job, or of the existing duplicate
        """
        kind = DataObjectKind(kind)
        job_type = JobType(job_type)

        existing = self._find_active(kind, job_type)
        if existing is not None:
            logger.debug(
                f"Job for {kind.value}/{job_type.value} already {existing.status.value} "
                f"({existing.id}), skipping"
            )
            return JobHandle(existing)

        job = Job(
            id=f"job_{int(time.time() * 1000)}_{next(self._counter)}",
            kind=kind,
            job_type=job_type,
            priority=JobPriority(priority),
            dependencies=[DataObjectKind(dep) for dep in dependencies],
            payload=payload,
            _done=asyncio.get_running_loop().create_future(),
        )

        # stable: after every job of the same or higher priority
        index = next(
            (i for i, queued in enumerate(self._queue) if queued.priority > job.priority),
            len(self._queue),
        )
        self._queue.insert(index, job)
        self._idle.clear()
        logger.info(
            f"Enqueued {job.id} ({kind.value}/{job_type.value}, {job.priority.name}) "
            f"at position {index + 1}/{len(self._queue)}"
        )

        self._process_next()
        return JobHandle(job)

    def _find_active(self, kind: DataObjectKind, job_type: JobType) -> Job | None:
        for job in itertools.chain(self._queue, self._running.values()):
            if job.kind == kind and job.job_type == job_type:
                return job
        return None

    def _dependencies_satisfied(self, job: Job) -> bool:
        """A dependency blocks while running or queued at equal or higher priority."""
        for dep in job.dependencies:
            if any(running.kind == dep for running in self._running.values()):
                return False
            if any(
                queued.kind == dep and queued.priority <= job.priority
                for queued in self._queue
                if queued is not job
            ):
                return False
        return True

    def _next_runnable(self) -> Job | None:
        for job in self._queue:
            if self._dependencies_satisfied(job):
                return job
        return None

    def _process_next(self) -> None:
        while len(self._running) < self.max_concurrent and self._queue:
            job = self._next_runnable()
            if job is None:
                logger.debug(f"{len(self._queue)} queued jobs blocked on dependencies")
                break
            self._queue.remove(job)

            if job.kind not in self._handlers:
                error = HandlerNotRegisteredError(job.kind.value)
                logger.error(f"Job {job.id} failed: {error}")
                self._finish(job, JobStatus.FAILED, str(error))
                continue

            job.status = JobStatus.RUNNING
            job.started_at = utcnow()
            self._running[job.id] = job
            task = asyncio.get_running_loop().create_task(
                self._execute(job), name=f"shopsync-{job.id}"
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        self._update_idle()

    async def _execute(self, job: Job) -> None:
        handler = self._handlers[job.kind]
        logger.info(f"Starting job {job.id} ({job.kind.value}/{job.job_type.value})")
        status, error = JobStatus.COMPLETED, None
        try:
            job.stats = await handler(job)
        except asyncio.CancelledError:
            status, error = JobStatus.CANCELLED, "Cancelled during shutdown"
            raise
        except Exception as e:
            status, error = JobStatus.FAILED, str(e) or type(e).__name__
            logger.error(f"Job {job.id} failed: {error}", exc_info=True)
        finally:
            self._running.pop(job.id, None)
            self._finish(job, status, error)
            if status != JobStatus.CANCELLED:
                self._process_next()
            else:
                self._update_idle()

        duration = (job.completed_at - job.started_at).total_seconds()
        if status == JobStatus.COMPLETED:
            logger.info(f"Job {job.id} completed in {duration:.2f}s")

    def _finish(self, job: Job, status: JobStatus, error: str | None = None) -> None:
        job.status = status
        job.error = error
        job.completed_at = utcnow()
        if job._done is not None and not job._done.done():
            job._done.set_result(job)

    def _update_idle(self) -> None:
        if self.is_idle():
            self._idle.set()
        else:
            self._idle.clear()

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel(self, job_id: str) -> bool:
        """Cancel a queued job. Running jobs are never interrupted."""
        for job in self._queue:
            if job.id == job_id:
                self._queue.remove(job)
                self._finish(job, JobStatus.CANCELLED)
                logger.info(f"Cancelled job {job_id}")
                # a cancelled job may have been gating a dependent one
                self._process_next()
                return True
        return False

    def cancel_all(self, kind: DataObjectKind | str) -> int:
        """Cancel every queued job of ``kind``."""
        kind = DataObjectKind(kind)
        return self._cancel_where(lambda job: job.kind == kind)

    def clear(self) -> int:
        """Cancel every queued job."""
        return self._cancel_where(lambda job: True)

    def _cancel_where(self, predicate: Callable[[Job], bool]) -> int:
        cancelled = [job for job in self._queue if predicate(job)]
        self._queue = [job for job in self._queue if not predicate(job)]
        for job in cancelled:
            self._finish(job, JobStatus.CANCELLED)
        if cancelled:
            logger.info(f"Cancelled {len(cancelled)} queued jobs")
        self._process_next()
        return len(cancelled)

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_status(self) -> QueueStatus:
        jobs = [job.to_dict() for job in self._running.values()]
        jobs.extend(job.to_dict() for job in self._queue)
        return QueueStatus(queued=len(self._queue), running=len(self._running), jobs=jobs)

    def is_idle(self) -> bool:
        return not self._queue and not self._running

    async def wait_for_idle(self, timeout: float | None = None) -> bool:
        """Wait until nothing is queued or running.

        Returns:
            True when idle, False if ``timeout`` seconds elapsed first
        """
        if self.is_idle():
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except TimeoutError:
            return False
        return True
