"""
Escalation Timer Tests
======================

EscalationTimer is advanced by hand; CountdownRunner is driven by the
ManualClock from conftest so no test waits on the wall clock.

Run with: python -m pytest tests/test_escalation_timer.py -v
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import ManualClock
from band_bridge.core.escalation_timer import CountdownRunner, EscalationTimer
from band_bridge.schemas.telemetry import TelemetryRecord


def fall_record(**fields):
    return TelemetryRecord.model_validate({"fall": True, **fields})


# ============================================================================
# EscalationTimer
# ============================================================================

class TestEscalationTimer:
    def test_starts_disarmed(self):
        timer = EscalationTimer()
        assert not timer.is_armed
        assert timer.remaining_ticks == 0
        assert timer.triggering_record is None

    def test_arm_sets_seven_ticks(self):
        timer = EscalationTimer()
        record = fall_record(bpm=60)

        assert timer.arm(record) is True
        assert timer.is_armed
        assert timer.remaining_ticks == 7
        assert timer.triggering_record is record

    def test_rearm_while_armed_is_noop(self):
        timer = EscalationTimer()
        first, second = fall_record(bpm=60), fall_record(bpm=90)
        timer.arm(first)
        timer.tick()
        timer.tick()

        assert timer.arm(second) is False
        assert timer.remaining_ticks == 5
        assert timer.triggering_record is first

    def test_ticks_down_then_returns_record_once(self):
        timer = EscalationTimer()
        record = fall_record()
        timer.arm(record)

        seen = []
        for _ in range(6):
            assert timer.tick() is None
            seen.append(timer.remaining_ticks)
        assert seen == [6, 5, 4, 3, 2, 1]

        assert timer.tick() is record
        assert not timer.is_armed
        assert timer.remaining_ticks == 0
        assert timer.tick() is None

    def test_cancel_discards_record(self):
        timer = EscalationTimer()
        timer.arm(fall_record())
        timer.tick()

        assert timer.cancel() is True
        assert not timer.is_armed
        assert timer.triggering_record is None
        for _ in range(10):
            assert timer.tick() is None

    def test_cancel_is_idempotent(self):
        timer = EscalationTimer()
        assert timer.cancel() is False
        timer.arm(fall_record())
        timer.cancel()
        assert timer.cancel() is False

    def test_can_arm_again_after_expiry(self):
        timer = EscalationTimer(ticks=1)
        timer.arm(fall_record())
        timer.tick()
        assert timer.arm(fall_record()) is True

    def test_zero_ticks_rejected(self):
        with pytest.raises(ValueError):
            EscalationTimer(ticks=0)


# ============================================================================
# CountdownRunner
# ============================================================================

class TestCountdownRunner:
    def _runner(self, clock, ticks=7):
        dispatch = AsyncMock()
        seen = []
        runner = CountdownRunner(EscalationTimer(ticks), dispatch, on_tick=seen.append, sleep=clock.sleep)
        return runner, dispatch, seen

    def test_expiry_dispatches_once_with_original_record(self):
        async def scenario():
            clock = ManualClock()
            runner, dispatch, seen = self._runner(clock)
            record = fall_record(bpm=60)

            assert runner.start(record) is True
            await clock.advance(3)
            assert runner.start(fall_record(bpm=120)) is False
            await clock.advance(4)
            await runner.wait_closed()
            return dispatch, seen, record

        dispatch, seen, record = asyncio.run(scenario())
        dispatch.assert_awaited_once_with(record)
        assert seen == [7, 6, 5, 4, 3, 2, 1, 0, None]

    def test_cancel_mid_countdown_prevents_dispatch(self):
        async def scenario():
            clock = ManualClock()
            runner, dispatch, seen = self._runner(clock)
            runner.start(fall_record())
            await clock.advance(3)
            assert runner.cancel() is True
            await clock.advance(10)
            return runner, dispatch, seen

        runner, dispatch, seen = asyncio.run(scenario())
        dispatch.assert_not_awaited()
        assert seen == [7, 6, 5, 4, None]
        assert not runner.is_armed

    def test_cancel_when_idle_is_noop(self):
        async def scenario():
            clock = ManualClock()
            runner, dispatch, seen = self._runner(clock)
            return runner.cancel(), seen

        cancelled, seen = asyncio.run(scenario())
        assert cancelled is False
        assert seen == []

    def test_cancel_after_expiry_does_not_undo_dispatch(self):
        async def scenario():
            clock = ManualClock()
            runner, dispatch, _ = self._runner(clock, ticks=2)
            runner.start(fall_record())
            await clock.advance(2)
            cancelled = runner.cancel()
            await runner.wait_closed()
            return cancelled, dispatch

        cancelled, dispatch = asyncio.run(scenario())
        assert cancelled is False
        dispatch.assert_awaited_once()

    def test_rearm_after_cancel_starts_fresh(self):
        async def scenario():
            clock = ManualClock()
            runner, dispatch, seen = self._runner(clock, ticks=3)
            runner.start(fall_record(bpm=1))
            await clock.advance(1)
            runner.cancel()
            second = fall_record(bpm=2)
            runner.start(second)
            await clock.advance(3)
            await runner.wait_closed()
            return dispatch, seen, second

        dispatch, seen, second = asyncio.run(scenario())
        dispatch.assert_awaited_once_with(second)
        assert seen == [3, 2, None, 3, 2, 1, 0, None]

    def test_instant_sleep_runs_to_expiry(self):
        async def no_wait(_):
            return None

        async def scenario():
            dispatch = AsyncMock()
            runner = CountdownRunner(EscalationTimer(), dispatch, sleep=no_wait)
            runner.start(fall_record())
            await runner.wait_closed()
            return dispatch

        asyncio.run(scenario()).assert_awaited_once()

    def test_close_stops_countdown(self):
        async def scenario():
            clock = ManualClock()
            runner, dispatch, _ = self._runner(clock)
            runner.start(fall_record())
            await clock.advance(2)
            await runner.close()
            await clock.advance(10)
            return runner, dispatch

        runner, dispatch = asyncio.run(scenario())
        dispatch.assert_not_awaited()
        assert not runner.is_armed

    def test_close_waits_for_dispatch_of_superseded_countdown(self):
        async def scenario():
            clock = ManualClock()
            release = asyncio.Event()
            delivered = []

            async def slow_dispatch(record):
                await release.wait()
                delivered.append(record)

            runner = CountdownRunner(EscalationTimer(1), slow_dispatch, sleep=clock.sleep)
            first, second = fall_record(bpm=60), fall_record(bpm=90)
            runner.start(first)
            await clock.advance(1)
            # first countdown expired and is still posting; a new fall re-arms
            assert runner.start(second) is True

            closing = asyncio.create_task(runner.close())
            await clock.settle()
            still_waiting = not closing.done()
            release.set()
            await closing
            return runner, delivered, first, still_waiting

        runner, delivered, first, still_waiting = asyncio.run(scenario())
        assert still_waiting
        assert delivered == [first]
        assert not runner.is_armed
        assert not runner._tasks

    def test_close_lets_in_flight_dispatch_finish(self):
        async def scenario():
            clock = ManualClock()
            release = asyncio.Event()
            delivered = []

            async def slow_dispatch(record):
                await release.wait()
                delivered.append(record)

            runner = CountdownRunner(EscalationTimer(1), slow_dispatch, sleep=clock.sleep)
            record = fall_record()
            runner.start(record)
            await clock.advance(1)
            closing = asyncio.create_task(runner.close())
            await clock.settle()
            release.set()
            await closing
            return delivered, record

        delivered, record = asyncio.run(scenario())
        assert delivered == [record]

    def test_wait_closed_logs_dispatch_failure(self, caplog):
        async def scenario():
            dispatch = AsyncMock(side_effect=RuntimeError("boom"))
            runner = CountdownRunner(EscalationTimer(1), dispatch, sleep=AsyncMock())
            runner.start(fall_record())
            await runner.wait_closed()
            return dispatch

        dispatch = asyncio.run(scenario())
        dispatch.assert_awaited_once()
        assert "Fall alert dispatch failed: boom" in caplog.text
