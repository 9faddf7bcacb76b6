"""RoadSense logger protocol implementation.

Wraps the frame classifier and the command encoder.
"""
from __future__ import annotations

from typing import Iterable, Optional

from ..constants import RESPONSE_PREFIXES
from .base import LineProtocol
from .classifier import Frame, FrameClassifier
from .commands import encode_command


class RoadsenseProtocol(LineProtocol):
    """Line protocol of the RoadSense logger bridge.

    Uses:
    - DATA|...|CRC pipe frames (legacy, checksummed)
    - RS2,KEY=value frames (current, no checksum)
    - CMD:<NAME> commands answered by ACK:<NAME>,OK or STATUS,...
    """

    def __init__(self, response_prefixes: Iterable[str] = RESPONSE_PREFIXES):
        self._classifier = FrameClassifier(response_prefixes)

    def classify(self, line: str, received_at: Optional[float] = None) -> Frame:
        return self._classifier.classify(line, received_at=received_at)

    def encode_command(self, command: str) -> bytes:
        return encode_command(command)

    @property
    def name(self) -> str:
        return "roadsense"
