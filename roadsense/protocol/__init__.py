"""Protocol layer for the RoadSense logger line stream."""

from .base import LineProtocol
from .checksum import append_checksum, compute_checksum, verify_checksum
from .classifier import Frame, FrameClassifier, FrameKind
from .commands import DeviceCommand, calibration_command, encode_command
from .decoders import decode_key_value_frame, decode_pipe_frame
from .framer import LineFramer
from .roadsense_protocol import RoadsenseProtocol
from .status import DeviceStatus

__all__ = [
    "LineProtocol",
    "RoadsenseProtocol",
    "LineFramer",
    "Frame",
    "FrameClassifier",
    "FrameKind",
    "DeviceCommand",
    "DeviceStatus",
    "calibration_command",
    "encode_command",
    "decode_pipe_frame",
    "decode_key_value_frame",
    "compute_checksum",
    "verify_checksum",
    "append_checksum",
]
