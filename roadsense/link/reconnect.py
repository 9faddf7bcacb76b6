"""Automatic reconnection layered on top of ``RoadsenseLink``.

The link itself never retries. This watcher observes the link state and,
after an ERROR, tries ``connect()`` again with exponential backoff.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from ..config import ReconnectConfig
from ..models import ConnectionState, LinkStatus
from .engine import RoadsenseLink

logger = logging.getLogger(__name__)


def backoff_delays(config: ReconnectConfig):
    """Yield the delay before each reconnect attempt."""
    delay = config.base_delay
    for _ in range(config.max_attempts):
        yield min(delay, config.max_delay)
        delay *= config.multiplier


class AutoReconnector:
    """Reconnects a link after transport failures.

    Example:
        >>> reconnector = AutoReconnector(link)
        >>> reconnector.start()
        >>> # ... link drops, reconnector retries in the background ...
        >>> reconnector.stop()
    """

    def __init__(self, link: RoadsenseLink, config: Optional[ReconnectConfig] = None):
        self._link = link
        self._config = config or ReconnectConfig()

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def running(self) -> bool:
        """True while a reconnect loop is in progress."""
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Begin watching the link state."""
        if self._unsubscribe is not None:
            return
        self._stop.clear()
        self._unsubscribe = self._link.subscribe_state(self._on_state)

    def stop(self) -> None:
        """Stop watching and cancel any reconnect loop in progress."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self._stop.set()
        with self._lock:
            thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=1.0)

    def _on_state(self, state: ConnectionState) -> None:
        if state.status != LinkStatus.ERROR:
            return
        if self._stop.is_set():
            return

        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            logger.info(f"Link error ({state.reason}), scheduling reconnect")
            self._thread = threading.Thread(
                target=self._reconnect_loop,
                daemon=True,
                name="RoadsenseReconnect"
            )
            self._thread.start()

    def _reconnect_loop(self) -> None:
        logger.info("Autoreconnect loop started")
        attempt = 0
        for delay in backoff_delays(self._config):
            attempt += 1
            if self._stop.wait(delay):
                break
            if self._link.is_connected():
                break

            logger.info(f"Reconnect attempt {attempt}/{self._config.max_attempts}")
            if self._link.connect():
                logger.info("Autoreconnect successful")
                break
        else:
            logger.error(f"Giving up after {self._config.max_attempts} reconnect attempts")
        logger.info("Autoreconnect loop stopped")
