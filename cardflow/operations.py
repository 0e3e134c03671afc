"""Operation tracker — maps operation ids to the asyncio tasks doing the work."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from typing import Any

logger = logging.getLogger(__name__)


def new_operation_id() -> str:
    return f"op-{uuid.uuid4().hex[:12]}"


class OperationTracker:
    """Running operations for one session.

    Cancellation is cooperative: ``cancel`` only requests it, and the task
    itself reports the ``cancelled`` stage before it exits.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    def start(self, operation_id: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro, name=operation_id)
        self._tasks[operation_id] = task
        task.add_done_callback(lambda t: self._finished(operation_id, t))
        return task

    def _finished(self, operation_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(operation_id, None)
        if task.cancelled():
            logger.info(f"Operation {operation_id} cancelled")
        elif task.exception() is not None:
            logger.error(f"Operation {operation_id} failed", exc_info=task.exception())

    def is_running(self, operation_id: str) -> bool:
        task = self._tasks.get(operation_id)
        return task is not None and not task.done()

    def cancel(self, operation_id: str) -> bool:
        """Request cancellation. False when the operation is unknown or already done."""
        task = self._tasks.get(operation_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def tasks(self) -> list[asyncio.Task]:
        return list(self._tasks.values())

    def running(self) -> list[str]:
        return [op_id for op_id, task in self._tasks.items() if not task.done()]

    def cancel_all(self) -> int:
        count = 0
        for operation_id in self.running():
            self._tasks[operation_id].cancel()
            count += 1
        return count
