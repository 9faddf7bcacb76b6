"""Line classification for the shared telemetry/response stream.

Every complete line is exactly one of:

- TELEMETRY: a valid pipe or key/value frame, decoded into a sample
- INVALID:   carries a telemetry prefix but failed decoding (dropped)
- RESPONSE:  starts with a known response prefix (ACK:, STATUS, ...)
- UNKNOWN:   anything else (dropped)

Discrimination is by literal prefix, so a line can never be both telemetry
and a command response.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from ..constants import KEY_VALUE_FRAME_PREFIX, RESPONSE_PREFIXES
from ..errors import FrameError
from ..models import TelemetrySample
from .decoders import PIPE_FRAME_PREFIX, decode_key_value_frame, decode_pipe_frame


class FrameKind(Enum):
    """Classification of a single line."""
    TELEMETRY = "telemetry"
    RESPONSE = "response"
    INVALID = "invalid"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Frame:
    """A classified line.

    Attributes:
        kind: Classification result
        line: The original line
        sample: Decoded sample, for TELEMETRY
        error: Decoding failure, for INVALID
    """
    kind: FrameKind
    line: str
    sample: Optional[TelemetrySample] = None
    error: Optional[FrameError] = None


class FrameClassifier:
    """Decides what a line is and decodes telemetry.

    Examples:
        >>> classifier = FrameClassifier()
        >>> classifier.classify("ACK:START,OK").kind
        <FrameKind.RESPONSE: 'response'>
        >>> classifier.classify("hello").kind
        <FrameKind.UNKNOWN: 'unknown'>
    """

    def __init__(self, response_prefixes: Iterable[str] = RESPONSE_PREFIXES):
        self._response_prefixes: Tuple[str, ...] = tuple(response_prefixes)

    def classify(self, line: str, received_at: Optional[float] = None) -> Frame:
        """Classify a single trimmed line.

        Never raises for malformed input.
        """
        if received_at is None:
            received_at = time.time()

        decoder = None
        if line.startswith(PIPE_FRAME_PREFIX):
            decoder = decode_pipe_frame
        elif line.startswith(KEY_VALUE_FRAME_PREFIX):
            decoder = decode_key_value_frame

        if decoder is not None:
            try:
                sample = decoder(line, received_at=received_at)
            except FrameError as e:
                return Frame(kind=FrameKind.INVALID, line=line, error=e)
            return Frame(kind=FrameKind.TELEMETRY, line=line, sample=sample)

        if self.is_response(line):
            return Frame(kind=FrameKind.RESPONSE, line=line)

        return Frame(kind=FrameKind.UNKNOWN, line=line)

    def is_response(self, line: str) -> bool:
        return line.startswith(self._response_prefixes)

    @property
    def response_prefixes(self) -> Tuple[str, ...]:
        return self._response_prefixes
