"""Tests for the periodic page-state monitor."""

from __future__ import annotations

import asyncio

import pytest

from conftest import modal
from extimpact.page_state import detection, monitor


def _monitor(target, settings) -> monitor.PageStateMonitor:
    return monitor.PageStateMonitor(detection.PageStateDetector(target, settings=settings), settings)


def _monitor_tasks() -> list[asyncio.Task]:
    return [t for t in asyncio.all_tasks() if t.get_name() == "page-state-monitor" and not t.done()]


class TestLifecycle:
    """Start/stop semantics."""

    def test_stop_before_start(self, target, settings) -> None:
        result = asyncio.run(_monitor(target, settings).stop())
        assert result.success
        assert not result.was_active

    def test_stop_is_idempotent(self, target, settings) -> None:
        async def scenario():
            mon = _monitor(target, settings)
            await mon.start(50)
            await asyncio.sleep(0.12)
            return await mon.stop(), await mon.stop()

        first, second = asyncio.run(scenario())
        assert first.was_active
        assert first.ticks >= 2
        assert second.success
        assert not second.was_active

    def test_double_start_keeps_one_loop(self, target, settings) -> None:
        async def scenario():
            mon = _monitor(target, settings)
            await mon.start(50)
            await asyncio.sleep(0.06)
            status = await mon.start(80, auto_handle=False)
            running = len(_monitor_tasks())
            await mon.stop()
            return status, running, len(_monitor_tasks())

        status, running, after_stop = asyncio.run(scenario())
        assert running == 1
        assert after_stop == 0
        assert status.interval_ms == 80
        assert status.auto_handle is False

    @pytest.mark.parametrize("interval", [0, -100, 1.5])
    def test_invalid_interval(self, target, settings, interval) -> None:
        with pytest.raises(ValueError):
            asyncio.run(_monitor(target, settings).start(interval))

    def test_status_when_idle(self, target, settings) -> None:
        status = _monitor(target, settings).status()
        assert not status.active
        assert status.last_state is None


class TestTicks:
    """Edge-triggered callbacks and remediation."""

    def test_modal_appears_and_is_cleared(self, target, settings) -> None:
        changes: list[tuple[str, float]] = []

        async def scenario():
            loop = asyncio.get_running_loop()
            started = loop.time()
            mon = _monitor(target, settings)
            loop.call_later(2.0, target.show_modal, modal(1, buttons=("OK",)))
            await mon.start(500, True, lambda s: changes.append((s.state, loop.time() - started)))
            await asyncio.sleep(3.6)
            status = mon.status()
            await mon.stop()
            return status

        status = asyncio.run(scenario())
        assert [state for state, _ in changes] == ["blocked", "normal"]
        assert 1.9 <= changes[0][1] <= 3.0
        assert 2.4 <= changes[1][1] <= 3.5
        assert target.clicked == ["OK"]
        assert [(t.from_state, t.to_state) for t in status.transitions] == [("normal", "blocked"), ("blocked", "normal")]
        assert status.transitions[0].auto_handled

    def test_no_callback_without_change(self, target, settings) -> None:
        changes: list[str] = []

        async def scenario():
            mon = _monitor(target, settings)
            await mon.start(50, True, lambda s: changes.append(s.state))
            await asyncio.sleep(0.3)
            await mon.stop()

        asyncio.run(scenario())
        assert changes == []

    def test_auto_handle_off(self, target, settings) -> None:
        changes: list[str] = []
        target.show_modal(modal(1))

        async def scenario():
            mon = _monitor(target, settings)
            await mon.start(50, False, lambda s: changes.append(s.state))
            await asyncio.sleep(0.3)
            await mon.stop()

        asyncio.run(scenario())
        assert changes == ["blocked"]
        assert target.clicked == []

    def test_native_dialog_accepted(self, target, settings) -> None:
        target.native = "Stay on page?"

        async def scenario():
            mon = _monitor(target, settings)
            await mon.start(50)
            await asyncio.sleep(0.2)
            await mon.stop()

        asyncio.run(scenario())
        assert target.native_results == ["accept"]

    def test_async_callback(self, target, settings) -> None:
        seen: list[str] = []
        target.show_modal(modal(1))

        async def record(state):
            await asyncio.sleep(0)
            seen.append(state.state)

        async def scenario():
            mon = _monitor(target, settings)
            await mon.start(50, True, record)
            await asyncio.sleep(0.3)
            await mon.stop()

        asyncio.run(scenario())
        assert seen == ["blocked", "normal"]

    def test_callback_error_does_not_stop_loop(self, target, settings) -> None:
        target.show_modal(modal(1))

        def explode(state):
            raise RuntimeError("callback bug")

        async def scenario():
            mon = _monitor(target, settings)
            await mon.start(50, True, explode)
            await asyncio.sleep(0.3)
            status = mon.status()
            await mon.stop()
            return status

        status = asyncio.run(scenario())
        assert status.ticks >= 3
        assert len(status.transitions) == 2

    def test_detection_timeout_skips_tick(self, target, settings) -> None:
        changes: list[str] = []
        target.evaluate_delay = 1.0

        async def scenario():
            mon = _monitor(target, settings)
            await mon.start(100, True, lambda s: changes.append(s.state))
            await asyncio.sleep(1.2)
            status = mon.status()
            await mon.stop()
            return status

        status = asyncio.run(scenario())
        assert status.failed_ticks >= 1
        assert status.last_state.state == "normal"
        assert changes == []

    def test_overrunning_tick_skips_missed_ticks(self, target, settings) -> None:
        target.evaluate_delay = 0.25

        async def scenario():
            mon = _monitor(target, settings)
            await mon.start(100)
            await asyncio.sleep(0.9)
            status = mon.status()
            await mon.stop()
            return status

        status = asyncio.run(scenario())
        assert status.skipped_ticks >= 2
        assert status.ticks <= 4

    def test_unexpected_error_does_not_stop_loop(self, target, settings) -> None:
        target.evaluate_errors = [RuntimeError("Execution context was destroyed, most likely because of a navigation")]

        async def scenario():
            mon = _monitor(target, settings)
            await mon.start(50)
            await asyncio.sleep(0.3)
            status = mon.status()
            running = len(_monitor_tasks())
            await mon.stop()
            return status, running

        status, running = asyncio.run(scenario())
        assert running == 1
        assert status.active
        assert status.failed_ticks == 1
        assert status.ticks >= 3
        assert status.last_state.state == "normal"
