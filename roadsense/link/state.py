"""Connection state machine for the logger link.

    DISCONNECTED -> CONNECTING -> CONNECTED
         ^              |             |
         |              v             v
         +---------- ERROR <----------+

ERROR is always followed by a teardown back to DISCONNECTED.
``mark_disconnected`` is accepted from every state.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, FrozenSet, List, Optional

from ..errors import InvalidTransitionError
from ..models import ConnectionState, LinkStatus

logger = logging.getLogger(__name__)

_ALLOWED: Dict[LinkStatus, FrozenSet[LinkStatus]] = {
    LinkStatus.DISCONNECTED: frozenset({LinkStatus.CONNECTING}),
    LinkStatus.CONNECTING: frozenset({LinkStatus.CONNECTED, LinkStatus.ERROR}),
    LinkStatus.CONNECTED: frozenset({LinkStatus.ERROR}),
    LinkStatus.ERROR: frozenset(),
}


class ConnectionStateMachine:
    """Thread-safe holder of the current ``ConnectionState``.

    Listeners are invoked after every transition, outside the internal lock,
    in the thread that caused the transition.
    """

    def __init__(self):
        self._state = ConnectionState(status=LinkStatus.DISCONNECTED, timestamp=time.time())
        self._lock = threading.Lock()
        self._listeners: List[Callable[[ConnectionState], None]] = []
        self._listener_lock = threading.Lock()

    @property
    def current(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def status(self) -> LinkStatus:
        return self.current.status

    def begin_connect(self) -> ConnectionState:
        """DISCONNECTED -> CONNECTING.

        Raises:
            InvalidTransitionError: If a connection is already in progress or established
        """
        return self._transition(LinkStatus.CONNECTING)

    def mark_connected(self) -> ConnectionState:
        """CONNECTING -> CONNECTED."""
        return self._transition(LinkStatus.CONNECTED)

    def mark_error(self, reason: str) -> ConnectionState:
        """CONNECTING/CONNECTED -> ERROR."""
        return self._transition(LinkStatus.ERROR, reason)

    def mark_disconnected(self) -> ConnectionState:
        """Any state -> DISCONNECTED. No-op if already disconnected."""
        with self._lock:
            if self._state.status == LinkStatus.DISCONNECTED:
                return self._state
            new_state = ConnectionState(status=LinkStatus.DISCONNECTED, timestamp=time.time())
            self._state = new_state
        self._notify(new_state)
        return new_state

    def subscribe(self, callback: Callable[[ConnectionState], None]) -> Callable[[], None]:
        """Subscribe to state transitions.

        Returns:
            Unsubscribe function
        """
        with self._listener_lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._listener_lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _transition(self, status: LinkStatus, reason: Optional[str] = None) -> ConnectionState:
        with self._lock:
            current = self._state.status
            if status not in _ALLOWED[current]:
                raise InvalidTransitionError(
                    f"Cannot transition from {current.value} to {status.value}"
                )
            new_state = ConnectionState(status=status, reason=reason, timestamp=time.time())
            self._state = new_state

        logger.debug(f"Link state {current.value} -> {status.value}")
        self._notify(new_state)
        return new_state

    def _notify(self, state: ConnectionState) -> None:
        with self._listener_lock:
            listeners = list(self._listeners)

        for callback in listeners:
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error in state listener: {e}")
