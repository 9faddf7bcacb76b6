"""Link layer: state machine, command dispatcher, publisher and engine."""

from .dispatcher import CommandDispatcher, CommandTicket
from .engine import RoadsenseLink
from .publisher import TelemetryPublisher
from .reconnect import AutoReconnector
from .state import ConnectionStateMachine

__all__ = [
    "RoadsenseLink",
    "AutoReconnector",
    "CommandDispatcher",
    "CommandTicket",
    "ConnectionStateMachine",
    "TelemetryPublisher",
]
