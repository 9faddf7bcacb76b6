"""Checksum of the pipe-delimited telemetry format.

The checksum is a 16-bit XOR fold of the character codes of everything
before the final ``|``, rendered as four uppercase hex digits. It catches
line corruption; it does not detect deliberate tampering.
"""
from __future__ import annotations

from typing import Tuple

FIELD_SEPARATOR = "|"


def compute_checksum(payload: str) -> str:
    """Compute the checksum field for a line payload.

    Args:
        payload: Line text without the trailing ``|<checksum>``

    Returns:
        Four uppercase hex digits

    Examples:
        >>> compute_checksum("AB")
        '0003'
    """
    acc = 0
    for char in payload:
        acc = (acc ^ ord(char)) & 0xFFFF
    return f"{acc:04X}"


def split_checksum(line: str) -> Tuple[str, str]:
    """Split a line into (payload, transmitted checksum) at the last separator."""
    payload, sep, checksum = line.rpartition(FIELD_SEPARATOR)
    if not sep:
        return line, ""
    return payload, checksum


def verify_checksum(line: str) -> bool:
    """Check the transmitted checksum of a complete pipe-format line."""
    payload, checksum = split_checksum(line)
    if not checksum:
        return False
    return compute_checksum(payload) == checksum


def append_checksum(payload: str) -> str:
    """Return ``payload`` with its checksum field appended."""
    return f"{payload}{FIELD_SEPARATOR}{compute_checksum(payload)}"
