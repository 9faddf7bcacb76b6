"""Fan-out of decoded telemetry and link state to downstream consumers."""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, TypeVar

from ..models import ConnectionState, LinkStatus, TelemetrySample

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TelemetryPublisher:
    """Holds the latest sample and link state and notifies subscribers.

    Subscribers are called synchronously from the publishing thread (usually
    the reader thread) and should return quickly. A subscriber that raises
    is logged and does not affect the others.
    """

    def __init__(self):
        self._latest_sample: Optional[TelemetrySample] = None
        self._latest_state = ConnectionState(status=LinkStatus.DISCONNECTED)
        self._published = 0
        self._lock = threading.Lock()

        self._sample_callbacks: List[Callable[[Optional[TelemetrySample]], None]] = []
        self._state_callbacks: List[Callable[[ConnectionState], None]] = []
        self._callback_lock = threading.Lock()

    @property
    def latest_sample(self) -> Optional[TelemetrySample]:
        with self._lock:
            return self._latest_sample

    @property
    def latest_state(self) -> ConnectionState:
        with self._lock:
            return self._latest_state

    @property
    def published_count(self) -> int:
        """Number of samples published since creation or the last reset."""
        with self._lock:
            return self._published

    def publish_sample(self, sample: Optional[TelemetrySample]) -> None:
        """Publish a new sample, or None to signal that no live data is available."""
        with self._lock:
            self._latest_sample = sample
            if sample is not None:
                self._published += 1
        self._notify(self._sample_callbacks, sample)

    def publish_state(self, state: ConnectionState) -> None:
        with self._lock:
            self._latest_state = state
        self._notify(self._state_callbacks, state)

    def clear_sample(self) -> None:
        """Publish None if a sample is currently held."""
        if self.latest_sample is not None:
            self.publish_sample(None)

    def subscribe_samples(
        self,
        callback: Callable[[Optional[TelemetrySample]], None]
    ) -> Callable[[], None]:
        """Subscribe to samples. The latest sample, if any, is delivered immediately."""
        unsubscribe = self._subscribe(self._sample_callbacks, callback)
        latest = self.latest_sample
        if latest is not None:
            self._call(callback, latest)
        return unsubscribe

    def subscribe_state(
        self,
        callback: Callable[[ConnectionState], None]
    ) -> Callable[[], None]:
        """Subscribe to link state. The current state is delivered immediately."""
        unsubscribe = self._subscribe(self._state_callbacks, callback)
        self._call(callback, self.latest_state)
        return unsubscribe

    def reset(self) -> None:
        with self._lock:
            self._latest_sample = None
            self._published = 0

    def _subscribe(self, callbacks: List[Callable[[T], None]], callback: Callable[[T], None]) -> Callable[[], None]:
        with self._callback_lock:
            callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def _notify(self, callbacks: List[Callable[[T], None]], value: T) -> None:
        with self._callback_lock:
            snapshot = list(callbacks)

        for callback in snapshot:
            self._call(callback, value)

    @staticmethod
    def _call(callback: Callable[[T], None], value: T) -> None:
        try:
            callback(value)
        except Exception as e:
            logger.error(f"Error in subscriber callback: {e}")
