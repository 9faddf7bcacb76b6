"""RoadSense link - protocol engine for the road-roughness logger bridge."""

from .config import LinkConfig, load_config
from .errors import (
    ChecksumError,
    ConnectError,
    FrameError,
    ReadError,
    TransportError,
    WriteError,
)
from .link import AutoReconnector, RoadsenseLink
from .models import (
    CommandMetrics,
    CommandNotConnected,
    CommandResult,
    CommandSendError,
    CommandSuccess,
    CommandTimeout,
    CommandValidationError,
    ConnectionState,
    LinkStatus,
    SampleSource,
    TelemetrySample,
)
from .transport import ByteStream, create_stream

__all__ = [
    "RoadsenseLink",
    "AutoReconnector",
    "LinkConfig",
    "load_config",
    "ByteStream",
    "create_stream",
    "TelemetrySample",
    "SampleSource",
    "ConnectionState",
    "LinkStatus",
    "CommandResult",
    "CommandSuccess",
    "CommandTimeout",
    "CommandValidationError",
    "CommandNotConnected",
    "CommandSendError",
    "CommandMetrics",
    "TransportError",
    "ConnectError",
    "ReadError",
    "WriteError",
    "FrameError",
    "ChecksumError",
]
