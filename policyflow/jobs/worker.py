"""
Generic interval polling loop running in a daemon thread.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class PollingWorker:
    """
    Runs ``work`` immediately on start, then once per interval until stopped.

    An exception raised by one tick is logged and the loop continues; the
    next tick retries. Tests drive the loop with ``run_once()`` instead of
    starting the thread.
    """

    def __init__(self, name: str, interval: float, work: Callable[[], object]):
        self.name = name
        self.interval = interval
        self.work = work
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._tick_count = 0
        self._error_count = 0
        self._last_run: Optional[datetime] = None

    def run_once(self) -> bool:
        """Execute a single tick. Returns False if the tick raised."""
        self._tick_count += 1
        self._last_run = datetime.now()
        try:
            self.work()
            return True
        except Exception as e:
            self._error_count += 1
            logger.exception(f"{self.name}: tick {self._tick_count} failed: {e}")
            return False

    def run(self) -> None:
        """Blocking loop; returns once stop() is called."""
        logger.info(f"{self.name} started (interval={self.interval}s)")
        self.run_once()
        while not self._stop_event.wait(self.interval):
            self.run_once()
        logger.info(f"{self.name} stopped after {self._tick_count} ticks")

    def start(self) -> None:
        if self.is_running:
            if self._stop_event.is_set():
                logger.warning(f"{self.name} is still stopping, not restarted")
            else:
                logger.warning(f"{self.name} already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, daemon=True, name=self.name)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 10) -> None:
        """Signal the loop to exit and wait for the in-flight tick to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                # Old loop still running; start() must not clear its event
                logger.warning(f"{self.name} still finishing its tick after {timeout}s")
                return
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def status(self) -> dict:
        return {
            "name": self.name,
            "running": self.is_running,
            "interval": self.interval,
            "ticks": self._tick_count,
            "errors": self._error_count,
            "last_run": self._last_run.isoformat() if self._last_run else None,
        }
