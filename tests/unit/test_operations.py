"""Tests for the operation tracker."""

import asyncio

from cardflow.operations import OperationTracker, new_operation_id


class TestOperationIds:
    def test_ids_are_prefixed_and_unique(self):
        ids = {new_operation_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("op-") for i in ids)


class TestOperationTracker:
    """Tasks keyed by operation id, cancelled on request."""

    async def test_running_then_finished(self):
        tracker = OperationTracker()
        release = asyncio.Event()

        async def work():
            await release.wait()

        task = tracker.start("op-1", work())
        assert tracker.is_running("op-1")
        assert tracker.running() == ["op-1"]

        release.set()
        await task
        await asyncio.sleep(0)
        assert not tracker.is_running("op-1")
        assert tracker.running() == []

    async def test_cancel_running(self):
        tracker = OperationTracker()
        started = asyncio.Event()

        async def work():
            started.set()
            await asyncio.sleep(60)

        task = tracker.start("op-1", work())
        await started.wait()

        assert tracker.cancel("op-1") is True
        await asyncio.gather(task, return_exceptions=True)
        assert task.cancelled()

    async def test_cancel_unknown_is_false(self):
        assert OperationTracker().cancel("op-never") is False

    async def test_cancel_finished_is_false(self):
        tracker = OperationTracker()

        async def work():
            return 1

        await tracker.start("op-1", work())
        await asyncio.sleep(0)
        assert tracker.cancel("op-1") is False

    async def test_failure_is_contained(self):
        tracker = OperationTracker()

        async def work():
            raise RuntimeError("boom")

        task = tracker.start("op-1", work())
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)
        assert not tracker.is_running("op-1")

    async def test_cancel_all(self):
        tracker = OperationTracker()
        tasks = [tracker.start(f"op-{i}", asyncio.sleep(60)) for i in range(3)]
        await asyncio.sleep(0)

        assert tracker.cancel_all() == 3
        await asyncio.gather(*tasks, return_exceptions=True)
        assert all(t.cancelled() for t in tasks)
