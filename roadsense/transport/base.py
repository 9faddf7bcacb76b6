"""Abstract byte-stream contract used by the protocol engine.

The engine only needs four primitives from the physical link: open, read a
chunk, write bytes and close. Device discovery, pairing and socket setup
belong to the concrete implementation.

Key principles:
- A read that times out with no data returns ``b""``
- A dead link raises ``ReadError`` (``EndOfStreamError`` when the peer hung up)
- ``close()`` is idempotent and may be called from another thread to
  unblock a pending read
"""
from __future__ import annotations

from abc import ABC, abstractmethod


class ByteStream(ABC):
    """Abstract bidirectional byte stream."""

    @abstractmethod
    def open(self) -> None:
        """Open the underlying link.

        Raises:
            ConnectError: If the link cannot be opened
        """
        pass

    @abstractmethod
    def read_chunk(self, size: int) -> bytes:
        """Read up to ``size`` bytes.

        Blocks at most for the implementation's read timeout.

        Returns:
            Bytes read, or ``b""`` if nothing arrived before the timeout

        Raises:
            ReadError: If the link is down
        """
        pass

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write all of ``data`` to the link.

        Raises:
            WriteError: If the bytes could not be written
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the link. Safe to call multiple times and from any thread."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the link is open."""
        pass

    @property
    def description(self) -> str:
        """Human-readable link identifier for logs."""
        return type(self).__name__

    def __enter__(self) -> ByteStream:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
