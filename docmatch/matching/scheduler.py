"""Timer that runs matching cycles one at a time."""

import threading

from docmatch.utils.logger import get_logger

from .engine import CycleReport, MatchingEngine

logger = get_logger(__name__)


class ReconciliationScheduler:
    """Runs :meth:`MatchingEngine.run_cycle` on a fixed interval.

    Cycles never overlap: a run-lock is held for the duration of each
    cycle, and a trigger arriving while one is in flight is refused.

    Args:
        engine: Matching engine to drive.
        interval_seconds: Wait between the end of one cycle and the next.
    """

    def __init__(self, engine: MatchingEngine, interval_seconds: float = 60) -> None:
        self.engine = engine
        self.interval_seconds = interval_seconds
        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """Whether the background worker is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def busy(self) -> bool:
        """Whether a cycle is in flight."""
        return self._run_lock.locked()

    def run_once(self) -> CycleReport | None:
        """Run one cycle unless another is already running.

        Returns:
            The cycle report, or ``None`` if a cycle was in flight.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.info("Matching cycle already running, skipping trigger")
            return None
        try:
            return self.engine.run_cycle()
        finally:
            self._run_lock.release()

    def _tick(self) -> None:
        try:
            self.run_once()
        except Exception:
            logger.exception("Matching cycle failed")

    def _loop(self) -> None:
        logger.info("Reconciliation scheduler started (every %ss)", self.interval_seconds)
        while not self._stop.is_set():
            self._tick()
            self._stop.wait(self.interval_seconds)
        logger.info("Reconciliation scheduler stopped")

    def start(self) -> None:
        """Start the background worker; no-op if it is already running."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="reconciliation-scheduler", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Signal the worker to stop and wait for it to finish its cycle."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_forever(self) -> None:
        """Run cycles in the calling thread until :meth:`stop` is called."""
        self._stop.clear()
        try:
            self._loop()
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping scheduler")
