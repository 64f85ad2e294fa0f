"""Tests for the turn schedulers."""

import asyncio

from npc_dialogue.runtime import AsyncioScheduler, ManualScheduler


class TestManualScheduler:
    def test_fires_in_time_order(self):
        scheduler = ManualScheduler()
        fired = []
        scheduler.call_later(2, lambda: fired.append("b"))
        scheduler.call_later(1, lambda: fired.append("a"))
        scheduler.call_later(1, lambda: fired.append("a2"))

        assert scheduler.advance(1) == 2
        assert fired == ["a", "a2"]
        assert scheduler.now() == 1
        assert scheduler.pending == 1

    def test_cancelled_timer_never_fires(self):
        scheduler = ManualScheduler()
        fired = []
        handle = scheduler.call_later(1, lambda: fired.append("x"))
        handle.cancel()
        assert scheduler.pending == 0
        assert scheduler.run_pending() == 0
        assert fired == []

    def test_callbacks_can_schedule_more(self):
        scheduler = ManualScheduler()
        fired = []

        def first():
            fired.append(scheduler.now())
            scheduler.call_later(1, lambda: fired.append(scheduler.now()))

        scheduler.call_later(1, first)
        assert scheduler.run_pending() == 2
        assert fired == [1, 2]

    def test_negative_delay_is_now(self):
        scheduler = ManualScheduler(start=5)
        fired = []
        scheduler.call_later(-3, lambda: fired.append(scheduler.now()))
        scheduler.advance(0)
        assert fired == [5]


class TestAsyncioScheduler:
    def test_call_later_runs_on_loop(self):
        async def run():
            scheduler = AsyncioScheduler()
            done = asyncio.Event()
            started = scheduler.now()
            scheduler.call_later(0.01, done.set)
            await asyncio.wait_for(done.wait(), timeout=5)
            return scheduler.now() - started

        assert asyncio.run(run()) >= 0

    def test_cancel(self):
        async def run():
            scheduler = AsyncioScheduler()
            fired = []
            handle = scheduler.call_later(0.01, lambda: fired.append(1))
            handle.cancel()
            await asyncio.sleep(0.05)
            return fired

        assert asyncio.run(run()) == []
