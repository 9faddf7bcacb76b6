"""Newline framer for the logger byte stream.

Accumulates raw chunks and yields complete lines. Knows nothing about what
the lines mean.
"""
from __future__ import annotations

import logging
from typing import List

from ..constants import DEFAULT_MAX_LINE_LENGTH

logger = logging.getLogger(__name__)

DELIMITER = b"\n"


class LineFramer:
    """Splits a byte stream into trimmed, non-empty text lines.

    Not thread-safe: the reader thread is its only user.
    """

    def __init__(self, max_line_length: int = DEFAULT_MAX_LINE_LENGTH):
        """Initialize framer.

        Args:
            max_line_length: Maximum bytes accepted for one line. A longer
                line is dropped whole, up to and including its delimiter.
        """
        self._max_line_length = max_line_length
        self._buffer = bytearray()
        self._overflow_count = 0
        # Skipping the rest of an over-long line until its delimiter
        self._discarding = False

    def feed(self, chunk: bytes) -> List[str]:
        """Append a chunk and extract every complete line.

        Args:
            chunk: Raw bytes as read from the transport

        Returns:
            Lines in arrival order, delimiter and surrounding whitespace removed.
            Empty and over-long lines are skipped.
        """
        if chunk:
            self._buffer.extend(chunk)

        lines: List[str] = []
        while True:
            idx = self._buffer.find(DELIMITER)
            if idx == -1:
                break

            raw = bytes(self._buffer[:idx])
            del self._buffer[:idx + 1]

            if self._discarding:
                self._discarding = False
                continue
            if len(raw) > self._max_line_length:
                self._overflow(len(raw))
                continue

            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                lines.append(line)

        if len(self._buffer) > self._max_line_length:
            if not self._discarding:
                self._overflow(len(self._buffer))
                self._discarding = True
            self._buffer.clear()

        return lines

    @property
    def pending(self) -> int:
        """Number of buffered bytes belonging to an unterminated line."""
        return len(self._buffer)

    @property
    def overflow_count(self) -> int:
        return self._overflow_count

    def reset(self) -> None:
        """Drop any partial line, e.g. after a reconnect."""
        self._buffer.clear()
        self._discarding = False

    def _overflow(self, size: int) -> None:
        self._overflow_count += 1
        logger.warning(f"Discarding line of {size}+ bytes (limit {self._max_line_length})")
