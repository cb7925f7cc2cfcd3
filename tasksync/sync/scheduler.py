"""Periodic sync cycles on a background thread.

Usage::

    scheduler = SyncScheduler(engine, interval_seconds=60)
    scheduler.start()
    ...
    scheduler.stop()
"""
from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(self, engine, interval_seconds: float) -> None:
        self._engine = engine
        self._interval = float(interval_seconds)
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self):
        """Run one cycle, logging instead of raising so the loop survives."""
        try:
            return self._engine.sync()
        except Exception:  # noqa: BLE001
            logger.exception("Scheduled sync cycle crashed")
            return None

    def start(self) -> None:
        if self._interval <= 0:
            raise ValueError("interval_seconds must be positive")
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="tasksync-scheduler", daemon=True)
        self._thread.start()
        logger.info("Sync scheduler started (every %.1fs)", self._interval)

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Sync scheduler stopped")

    def _loop(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.run_once()
