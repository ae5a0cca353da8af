"""Tests for the priority job queue."""

import asyncio

import pytest

from shopsync.core.data_objects import DataObjectKind
from shopsync.core.queue import JobPriority, JobQueue, JobStatus, JobType

PRODUCTS = DataObjectKind.PRODUCTS
INVENTORY = DataObjectKind.INVENTORY
ORDERS = DataObjectKind.ORDERS
CUSTOMERS = DataObjectKind.CUSTOMERS


class RecordingHandler:
    """Records the order jobs start in; kinds with a gate block until it opens."""

    def __init__(self):
        self.calls: list[str] = []
        self.gates: dict[DataObjectKind, asyncio.Event] = {}

    def gate(self, kind: DataObjectKind) -> asyncio.Event:
        self.gates[kind] = asyncio.Event()
        return self.gates[kind]

    async def __call__(self, job):
        self.calls.append(job.kind.value)
        gate = self.gates.get(job.kind)
        if gate is not None:
            await gate.wait()
        return {"kind": job.kind.value}


def make_queue(max_concurrent: int = 1) -> tuple[JobQueue, RecordingHandler]:
    queue = JobQueue(max_concurrent=max_concurrent)
    handler = RecordingHandler()
    for kind in DataObjectKind:
        queue.register_handler(kind, handler)
    return queue, handler


class TestPriorityOrdering:
    """Test suite for dispatch order."""

    @pytest.mark.asyncio
    async def test_higher_priority_runs_first(self):
        """Queued jobs start by priority, not by arrival."""
        # Setup
        queue, handler = make_queue()
        gate = handler.gate(PRODUCTS)
        queue.enqueue(PRODUCTS, JobType.SYNC, JobPriority.LOW)

        # Execute
        queue.enqueue(ORDERS, JobType.SYNC, JobPriority.NORMAL)
        queue.enqueue(INVENTORY, JobType.SYNC, JobPriority.LOW)
        queue.enqueue(CUSTOMERS, JobType.SYNC, JobPriority.HIGH)
        gate.set()
        assert await queue.wait_for_idle(1.0)

        # Verify
        assert handler.calls == ["products", "customers", "orders", "inventory"]

    @pytest.mark.asyncio
    async def test_equal_priority_is_fifo(self):
        """Jobs of the same priority run in enqueue order."""
        queue, handler = make_queue()
        gate = handler.gate(PRODUCTS)
        queue.enqueue(PRODUCTS, JobType.SYNC)

        queue.enqueue(CUSTOMERS, JobType.SYNC)
        queue.enqueue(ORDERS, JobType.SYNC)
        queue.enqueue(INVENTORY, JobType.SYNC)
        gate.set()
        await queue.wait_for_idle(1.0)

        assert handler.calls == ["products", "customers", "orders", "inventory"]

    @pytest.mark.asyncio
    async def test_respects_max_concurrent(self):
        """No more than max_concurrent handlers run at once."""
        queue, handler = make_queue(max_concurrent=2)
        gates = [handler.gate(kind) for kind in (PRODUCTS, ORDERS, CUSTOMERS)]

        for kind in (PRODUCTS, ORDERS, CUSTOMERS):
            queue.enqueue(kind, JobType.SYNC)
        await asyncio.sleep(0)

        status = queue.get_status()
        assert status.running == 2
        assert status.queued == 1

        for gate in gates:
            gate.set()
        assert await queue.wait_for_idle(1.0)


class TestDependencyGating:
    """Test suite for dependency-aware dispatch."""

    @pytest.mark.asyncio
    async def test_waits_for_running_dependency(self):
        """A job does not start while a dependency kind is running."""
        # Setup
        queue, handler = make_queue(max_concurrent=2)
        gate = handler.gate(PRODUCTS)
        queue.enqueue(PRODUCTS, JobType.SYNC)

        # Execute
        handle = queue.enqueue(INVENTORY, JobType.SYNC, dependencies=[PRODUCTS])
        await asyncio.sleep(0)

        # Verify - slot free but inventory still queued
        assert handle.job.status == JobStatus.QUEUED
        assert queue.get_status().running == 1

        gate.set()
        job = await handle
        assert job.status == JobStatus.COMPLETED
        assert handler.calls == ["products", "inventory"]

    @pytest.mark.asyncio
    async def test_waits_for_queued_dependency_of_equal_priority(self):
        """A dependency queued behind the dependent still runs first."""
        queue, handler = make_queue()
        gate = handler.gate(CUSTOMERS)
        queue.enqueue(CUSTOMERS, JobType.SYNC)

        queue.enqueue(INVENTORY, JobType.SYNC, dependencies=[PRODUCTS])
        queue.enqueue(PRODUCTS, JobType.SYNC)
        gate.set()
        await queue.wait_for_idle(1.0)

        assert handler.calls == ["customers", "products", "inventory"]

    @pytest.mark.asyncio
    async def test_lower_priority_dependency_does_not_block(self):
        """Only dependencies at equal or higher priority block."""
        queue, handler = make_queue()
        gate = handler.gate(CUSTOMERS)
        queue.enqueue(CUSTOMERS, JobType.SYNC)

        queue.enqueue(INVENTORY, JobType.SYNC, JobPriority.HIGH, dependencies=[PRODUCTS])
        queue.enqueue(PRODUCTS, JobType.SYNC, JobPriority.LOW)
        gate.set()
        await queue.wait_for_idle(1.0)

        assert handler.calls == ["customers", "inventory", "products"]


class TestEnqueueDeduplication:
    """Test suite for enqueue idempotence."""

    @pytest.mark.asyncio
    async def test_duplicate_of_queued_job_returns_existing_id(self):
        """Enqueueing the same kind and type twice keeps one job."""
        queue, handler = make_queue()
        gate = handler.gate(CUSTOMERS)
        queue.enqueue(CUSTOMERS, JobType.SYNC)

        first = queue.enqueue(PRODUCTS, JobType.SYNC)
        second = queue.enqueue(PRODUCTS, JobType.SYNC, JobPriority.HIGH)

        assert first.id == second.id
        assert queue.get_status().queued == 1
        gate.set()
        await queue.wait_for_idle(1.0)
        assert handler.calls.count("products") == 1

    @pytest.mark.asyncio
    async def test_duplicate_of_running_job_returns_existing_id(self):
        """A running job also absorbs duplicates."""
        queue, handler = make_queue()
        gate = handler.gate(PRODUCTS)
        first = queue.enqueue(PRODUCTS, JobType.SYNC)
        await asyncio.sleep(0)

        second = queue.enqueue(PRODUCTS, JobType.SYNC)

        assert first.id == second.id
        assert queue.get_status().queued == 0
        gate.set()
        await queue.wait_for_idle(1.0)

    @pytest.mark.asyncio
    async def test_different_job_types_are_not_duplicates(self):
        """Sync and webhook jobs of one kind coexist."""
        queue, handler = make_queue()
        gate = handler.gate(CUSTOMERS)
        queue.enqueue(CUSTOMERS, JobType.SYNC)

        sync = queue.enqueue(ORDERS, JobType.SYNC)
        webhook = queue.enqueue(ORDERS, JobType.WEBHOOK, JobPriority.HIGH)

        assert sync.id != webhook.id
        gate.set()
        await queue.wait_for_idle(1.0)


class TestJobFailures:
    """Test suite for failing and unhandled jobs."""

    @pytest.mark.asyncio
    async def test_missing_handler_fails_job(self):
        """A job with no registered handler fails without running."""
        queue = JobQueue()

        handle = queue.enqueue(PRODUCTS, JobType.SYNC)
        job = await handle

        assert job.status == JobStatus.FAILED
        assert "No handler registered" in job.error
        assert queue.is_idle()

    @pytest.mark.asyncio
    async def test_handler_exception_fails_job_and_continues(self):
        """A raising handler fails its job; later jobs still run."""
        queue, handler = make_queue()

        async def boom(job):
            raise RuntimeError("sheet unavailable")

        queue.register_handler(PRODUCTS, boom)
        failed = queue.enqueue(PRODUCTS, JobType.SYNC)
        ok = queue.enqueue(ORDERS, JobType.SYNC)

        assert (await failed).status == JobStatus.FAILED
        assert failed.job.error == "sheet unavailable"
        assert (await ok).status == JobStatus.COMPLETED
        assert ok.job.stats == {"kind": "orders"}


class TestCancellation:
    """Test suite for cancel, cancel_all and clear."""

    @pytest.mark.asyncio
    async def test_cancel_queued_job(self):
        """Cancelling a queued job resolves its handle as cancelled."""
        queue, handler = make_queue()
        gate = handler.gate(PRODUCTS)
        queue.enqueue(PRODUCTS, JobType.SYNC)
        handle = queue.enqueue(ORDERS, JobType.SYNC)

        assert queue.cancel(handle.id) is True
        assert (await handle).status == JobStatus.CANCELLED

        gate.set()
        await queue.wait_for_idle(1.0)
        assert "orders" not in handler.calls

    @pytest.mark.asyncio
    async def test_cancel_running_job_is_refused(self):
        """Running jobs are never interrupted."""
        queue, handler = make_queue()
        gate = handler.gate(PRODUCTS)
        handle = queue.enqueue(PRODUCTS, JobType.SYNC)
        await asyncio.sleep(0)

        assert queue.cancel(handle.id) is False
        assert queue.cancel("job_missing") is False

        gate.set()
        assert (await handle).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancel_all_and_clear(self):
        """cancel_all removes one kind, clear removes everything queued."""
        queue, handler = make_queue()
        gate = handler.gate(PRODUCTS)
        queue.enqueue(PRODUCTS, JobType.SYNC)
        queue.enqueue(ORDERS, JobType.SYNC)
        queue.enqueue(ORDERS, JobType.WEBHOOK)
        queue.enqueue(CUSTOMERS, JobType.SYNC)

        assert queue.cancel_all(ORDERS) == 2
        assert queue.clear() == 1
        assert queue.get_status().queued == 0

        gate.set()
        assert await queue.wait_for_idle(1.0)

    @pytest.mark.asyncio
    async def test_cancel_all_releases_dependent_job(self):
        """Cancelling the only blocker starts the job that waited on it."""
        # Setup
        queue, handler = make_queue(max_concurrent=2)
        gate = handler.gate(CUSTOMERS)
        queue.enqueue(CUSTOMERS, JobType.SYNC)
        queue.enqueue(PRODUCTS, JobType.SYNC, dependencies=[CUSTOMERS])
        handle = queue.enqueue(INVENTORY, JobType.SYNC, dependencies=[PRODUCTS])
        await asyncio.sleep(0)
        assert handle.job.status == JobStatus.QUEUED

        # Execute
        assert queue.cancel_all(PRODUCTS) == 1

        # Verify
        assert handle.job.status == JobStatus.RUNNING
        gate.set()
        assert (await handle).status == JobStatus.COMPLETED
        assert handler.calls == ["customers", "inventory"]

    @pytest.mark.asyncio
    async def test_cancel_releases_dependent_job(self):
        queue, handler = make_queue(max_concurrent=2)
        gate = handler.gate(CUSTOMERS)
        queue.enqueue(CUSTOMERS, JobType.SYNC)
        blocker = queue.enqueue(PRODUCTS, JobType.SYNC, dependencies=[CUSTOMERS])
        handle = queue.enqueue(INVENTORY, JobType.SYNC, dependencies=[PRODUCTS])

        assert queue.cancel(blocker.id) is True

        assert handle.job.status == JobStatus.RUNNING
        gate.set()
        assert await queue.wait_for_idle(1.0)


class TestIdleWait:
    """Test suite for wait_for_idle."""

    @pytest.mark.asyncio
    async def test_idle_queue_returns_immediately(self):
        """An empty queue is idle."""
        queue = JobQueue()
        assert queue.is_idle()
        assert await queue.wait_for_idle(0.01) is True

    @pytest.mark.asyncio
    async def test_times_out_while_busy(self):
        """Returns False when work outlasts the timeout."""
        queue, handler = make_queue()
        gate = handler.gate(PRODUCTS)
        queue.enqueue(PRODUCTS, JobType.SYNC)

        assert await queue.wait_for_idle(0.05) is False

        gate.set()
        assert await queue.wait_for_idle(1.0) is True
        assert queue.is_idle()

    @pytest.mark.asyncio
    async def test_status_lists_running_and_queued(self):
        """get_status reports both running and queued jobs."""
        queue, handler = make_queue()
        gate = handler.gate(PRODUCTS)
        queue.enqueue(PRODUCTS, JobType.SYNC)
        queue.enqueue(ORDERS, JobType.WEBHOOK, JobPriority.HIGH, payload={"event_id": 1})
        await asyncio.sleep(0)

        status = queue.get_status().to_dict()

        assert status["running"] == 1
        assert status["queued"] == 1
        assert [j["status"] for j in status["jobs"]] == ["running", "queued"]
        assert status["jobs"][1]["priority"] == "HIGH"

        gate.set()
        await queue.wait_for_idle(1.0)

    def test_rejects_zero_concurrency(self):
        """max_concurrent must be positive."""
        with pytest.raises(ValueError):
            JobQueue(max_concurrent=0)
