"""Tests for the enhance watchdog."""

import asyncio
import threading
from datetime import datetime, timezone

from cardflow.cards.store import CardStore
from cardflow.scheduler import EnhanceWatchdog, build_trigger, setup_watchdog


def _noop():
    return None


class TestBuildTrigger:
    def test_deadline_converted_to_utc(self):
        trigger = build_trigger(1_700_000_000_000)
        assert trigger.run_date == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)


class TestEnhanceWatchdog:
    """One job per card, replaced on re-arm."""

    async def test_arm_and_disarm(self):
        watchdog = setup_watchdog()
        watchdog.start()
        try:
            watchdog.arm("card-1", 4_102_444_800_000, _noop)
            assert watchdog.pending() == [EnhanceWatchdog.job_id("card-1")]

            watchdog.arm("card-1", 4_102_444_900_000, _noop)
            assert len(watchdog.pending()) == 1

            watchdog.disarm("card-1")
            assert watchdog.pending() == []
        finally:
            watchdog.shutdown()

    async def test_disarm_unknown_card(self):
        watchdog = setup_watchdog()
        watchdog.start()
        try:
            watchdog.disarm("never-armed")
            assert watchdog.pending() == []
        finally:
            watchdog.shutdown()

    def test_job_id(self):
        assert EnhanceWatchdog.job_id("abc") == "enhance_abc"


class TestWatchdogFires:
    """An expired enhance deadline is enforced on the event loop thread."""

    async def test_expiry_runs_on_loop_thread(self, sent, make_message):
        watchdog = setup_watchdog()
        watchdog.start()
        store = CardStore(sent.append, enhance_timeout_seconds=0.2, watchdog=watchdog)
        threads = []
        expire = store.expire_enhancements

        def recording_expire(now=None):
            threads.append(threading.get_ident())
            return expire(now)

        store.expire_enhancements = recording_expire
        try:
            card = store.handle(make_message(text="x"))
            store.enhance_card(card.id)
            for _ in range(100):
                if store.card(card.id).enhance_status == "unavailable":
                    break
                await asyncio.sleep(0.05)
        finally:
            watchdog.shutdown()

        assert store.card(card.id).enhance_status == "unavailable"
        assert threads == [threading.get_ident()]
