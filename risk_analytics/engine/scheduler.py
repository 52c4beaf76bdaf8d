"""
Cycle Scheduler
===============
Drives one recomputation cycle per fixed period on a background thread.

Cycles never overlap: a trigger that arrives while a cycle is running is
skipped and counted. ``trigger()`` runs a cycle on the calling thread so
tests can step the engine without wall-clock time.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class CycleScheduler:
    """Periodic, non-reentrant ticker around a cycle callable."""

    def __init__(self, cycle: Callable[[], Any], period_seconds: float = 45.0):
        if period_seconds <= 0:
            raise ValueError("period_seconds must be positive")
        self.cycle = cycle
        self.period_seconds = period_seconds
        self.cycles_run = 0
        self.cycles_skipped = 0
        self._running = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_active(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    @property
    def in_cycle(self) -> bool:
        return self._running.locked()

    def trigger(self, cycle: Optional[Callable[[], Any]] = None) -> bool:
        """
        Run one cycle now unless one is already in flight.

        ``cycle`` replaces the registered callable for this run only; it
        is guarded by the same lock. Returns True if the cycle ran. Errors
        raised by the cycle are logged; the scheduler keeps going.
        """
        if not self._running.acquire(blocking=False):
            self.cycles_skipped += 1
            logger.debug("Cycle already running; trigger skipped")
            return False
        try:
            (cycle or self.cycle)()
            self.cycles_run += 1
        except Exception:
            logger.exception("Recomputation cycle failed")
        finally:
            self._running.release()
        return True

    def start(self, run_immediately: bool = False) -> None:
        if self.is_active:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, args=(run_immediately,),
            name="risk-cycle-scheduler", daemon=True,
        )
        self._thread.start()
        logger.info("Continuous risk analysis started (every %.1fs)", self.period_seconds)

    def _loop(self, run_immediately: bool) -> None:
        if run_immediately and not self._stop.is_set():
            self.trigger()
        while not self._stop.wait(self.period_seconds):
            self.trigger()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Prevent future cycles. An in-flight cycle is allowed to finish."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.info("Continuous risk analysis stopped")
