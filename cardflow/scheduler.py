"""Scheduler — enforces the client-side enhance timeout using APScheduler."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

logger = logging.getLogger(__name__)


def build_trigger(deadline_ms: int) -> DateTrigger:
    """Convert an epoch-millisecond deadline into a one-shot trigger."""
    return DateTrigger(run_date=datetime.fromtimestamp(deadline_ms / 1000, tz=timezone.utc))


class EnhanceWatchdog:
    """One pending job per card; re-arming a card replaces its job."""

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self.scheduler = scheduler or AsyncIOScheduler()

    @staticmethod
    def job_id(card_id: str) -> str:
        return f"enhance_{card_id}"

    def arm(self, card_id: str, deadline_ms: int, callback: Callable[[], Any]) -> None:
        # Coroutine jobs run on the event loop; plain callables would go to a worker thread.
        async def expire() -> None:
            callback()

        self.scheduler.add_job(
            expire,
            trigger=build_trigger(deadline_ms),
            id=self.job_id(card_id),
            replace_existing=True,
        )
        logger.debug(f"Enhance watchdog armed for card {card_id}")

    def disarm(self, card_id: str) -> None:
        job_id = self.job_id(card_id)
        if self.scheduler.get_job(job_id) is not None:
            self.scheduler.remove_job(job_id)

    def pending(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def start(self) -> None:
        self.scheduler.start()

    def shutdown(self) -> None:
        self.scheduler.shutdown(wait=False)


def setup_watchdog() -> EnhanceWatchdog:
    """Build a watchdog on a fresh scheduler. Call ``start()`` inside a running loop."""
    return EnhanceWatchdog(AsyncIOScheduler())
