"""Cancellable periodic background task.

PeriodicTask runs a callable on a daemon thread every ``interval_seconds``.
A failure inside one tick is logged and the schedule continues.  ``stop()``
is idempotent and joins the thread, so the scheduling resource is released
deterministically.

Example
-------
>>> task = PeriodicTask("demo", 60.0, lambda: None)
>>> task.start()
>>> task.running
True
>>> task.stop()
>>> task.running
False
"""
from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs *func* every *interval_seconds* on a background thread.

    Parameters
    ----------
    name:
        Thread name, also used in log messages.
    interval_seconds:
        Delay between the end of one tick and the start of the next.
    func:
        Zero-argument callable executed each tick.
    """

    def __init__(self, name: str, interval_seconds: float, func: Callable[[], object]) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self._name = name
        self._interval = interval_seconds
        self._func = func
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._tick_count = 0
        self._failure_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the schedule; a no-op when already running."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()
        logger.info("Started periodic task %r (every %.1fs).", self._name, self._interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Cancel the schedule and wait for the thread to exit."""
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()
        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("Stopped periodic task %r.", self._name)

    def run_once(self) -> bool:
        """Run one tick synchronously; returns ``False`` when it failed."""
        try:
            self._func()
        except Exception:
            self._failure_count += 1
            logger.exception("Periodic task %r failed; schedule continues.", self._name)
            return False
        finally:
            self._tick_count += 1
        return True

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def failure_count(self) -> int:
        return self._failure_count

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(self) -> None:
        stop_event = self._stop_event
        while not stop_event.wait(self._interval):
            self.run_once()
