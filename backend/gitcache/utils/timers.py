"""Repeating background timer used by the refresh loops."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTimer:
    """
    Calls ``callback`` every ``interval`` seconds on a daemon thread.

    An optional ``initial_delay`` fires one extra tick shortly after start.
    ``cancel`` only prevents future ticks; a tick already running is left to
    finish. Callback exceptions are logged and do not stop the timer.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        initial_delay: Optional[float] = None,
        name: Optional[str] = None,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self.callback = callback
        self.initial_delay = initial_delay
        self.name = name or "periodic-timer"
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        self._stop_event.set()

    def _fire(self) -> None:
        try:
            self.callback()
        except Exception as e:
            logger.error(f"Timer {self.name} callback failed: {e}", exc_info=True)

    def _run(self) -> None:
        if self.initial_delay is not None:
            if self._stop_event.wait(self.initial_delay):
                return
            self._fire()

        while not self._stop_event.wait(self.interval):
            self._fire()
