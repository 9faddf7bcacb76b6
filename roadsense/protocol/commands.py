"""Host-to-logger command text.

Commands are newline-terminated ASCII. Action commands are acknowledged with
``ACK:<NAME>,OK``; the status query is answered with a line starting with
``STATUS``.
"""
from __future__ import annotations

from enum import Enum

from ..constants import (
    LINE_TERMINATOR,
    MAX_PULSES_PER_ROTATION,
    MAX_WHEEL_DIAMETER_CM,
    MIN_PULSES_PER_ROTATION,
    MIN_WHEEL_DIAMETER_CM,
)

CALIBRATION_RESPONSE_PREFIX = "ACK:CAL"


class DeviceCommand(Enum):
    """Fixed commands and the response prefix that acknowledges them."""
    START = ("CMD:START", "ACK:START")
    STOP = ("CMD:STOP", "ACK:STOP")
    PAUSE = ("CMD:PAUSE", "ACK:PAUSE")
    RESUME = ("CMD:RESUME", "ACK:RESUME")
    STATUS = ("CMD:STATUS", "STATUS")

    @property
    def text(self) -> str:
        return self.value[0]

    @property
    def expected_prefix(self) -> str:
        return self.value[1]


def calibration_command(wheel_diameter_cm: float, pulses_per_rotation: int) -> str:
    """Build the wheel calibration command.

    Protocol: CMD:CAL,DIAM=<cm>,PULSE=<n>

    Raises:
        ValueError: If either parameter is outside the supported range

    Examples:
        >>> calibration_command(60, 20)
        'CMD:CAL,DIAM=60.0,PULSE=20'
    """
    diameter = float(wheel_diameter_cm)
    if not MIN_WHEEL_DIAMETER_CM <= diameter <= MAX_WHEEL_DIAMETER_CM:
        raise ValueError(
            f"Wheel diameter {diameter} cm outside "
            f"[{MIN_WHEEL_DIAMETER_CM}, {MAX_WHEEL_DIAMETER_CM}]"
        )
    if isinstance(pulses_per_rotation, bool) or int(pulses_per_rotation) != pulses_per_rotation:
        raise ValueError(f"Pulses per rotation must be an integer, got {pulses_per_rotation!r}")
    pulses = int(pulses_per_rotation)
    if not MIN_PULSES_PER_ROTATION <= pulses <= MAX_PULSES_PER_ROTATION:
        raise ValueError(
            f"Pulses per rotation {pulses} outside "
            f"[{MIN_PULSES_PER_ROTATION}, {MAX_PULSES_PER_ROTATION}]"
        )
    return f"CMD:CAL,DIAM={diameter},PULSE={pulses}"


def encode_command(command: str) -> bytes:
    """Encode command text as wire bytes with a single line terminator.

    Raises:
        ValueError: If the command is empty, spans lines or is not ASCII
    """
    text = command.strip()
    if not text:
        raise ValueError("Empty command")
    if "\n" in text or "\r" in text:
        raise ValueError(f"Command must be a single line: {command!r}")
    return (text + LINE_TERMINATOR).encode("ascii")
