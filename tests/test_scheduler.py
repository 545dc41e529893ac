"""Tests for the reconciliation scheduler."""

import threading
from unittest.mock import MagicMock

from docmatch.matching.engine import CycleReport
from docmatch.matching.scheduler import ReconciliationScheduler


class TestReconciliationScheduler:
    """Tests for run-lock and background worker behaviour."""

    def test_run_once_returns_report(self) -> None:
        engine = MagicMock()
        engine.run_cycle.return_value = CycleReport(examined=2, matched=2)
        scheduler = ReconciliationScheduler(engine, interval_seconds=1)

        report = scheduler.run_once()

        assert report.matched == 2
        assert scheduler.busy is False

    def test_overlapping_trigger_refused(self) -> None:
        started = threading.Event()
        release = threading.Event()

        def slow_cycle() -> CycleReport:
            started.set()
            release.wait(5)
            return CycleReport()

        engine = MagicMock()
        engine.run_cycle.side_effect = slow_cycle
        scheduler = ReconciliationScheduler(engine)

        worker = threading.Thread(target=scheduler.run_once)
        worker.start()
        assert started.wait(5)

        assert scheduler.busy is True
        assert scheduler.run_once() is None

        release.set()
        worker.join(5)
        assert engine.run_cycle.call_count == 1
        assert scheduler.busy is False

    def test_lock_released_after_failure(self) -> None:
        engine = MagicMock()
        engine.run_cycle.side_effect = [RuntimeError("db gone"), CycleReport()]
        scheduler = ReconciliationScheduler(engine)

        scheduler._tick()

        assert scheduler.busy is False
        assert scheduler.run_once() == CycleReport()

    def test_start_and_stop(self) -> None:
        ran = threading.Event()

        def cycle() -> CycleReport:
            ran.set()
            return CycleReport()

        engine = MagicMock()
        engine.run_cycle.side_effect = cycle
        scheduler = ReconciliationScheduler(engine, interval_seconds=60)

        scheduler.start()
        assert ran.wait(5)
        assert scheduler.running is True

        scheduler.stop(timeout=5)
        assert scheduler.running is False
