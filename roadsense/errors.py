"""Exception taxonomy for the protocol engine.

Transport and frame errors are raised inside the engine and handled there.
Command failures never surface as exceptions; see ``roadsense.models`` for
the command result types.
"""
from __future__ import annotations

from typing import Optional


class TransportError(RuntimeError):
    """Base class for byte-stream failures."""
    pass


class ConnectError(TransportError):
    """Raised when the byte stream cannot be opened."""
    pass


class ReadError(TransportError):
    """Raised when reading from the byte stream fails."""
    pass


class EndOfStreamError(ReadError):
    """Raised when the peer closed the byte stream."""
    pass


class WriteError(TransportError):
    """Raised when writing to the byte stream fails."""
    pass


class FrameError(ValueError):
    """Raised when a line is malformed or fails its checksum."""

    def __init__(self, reason: str, line: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.line = line


class ChecksumError(FrameError):
    """Raised when a checksummed frame does not match its checksum field."""
    pass


class InvalidTransitionError(RuntimeError):
    """Raised on an illegal connection state transition."""
    pass
