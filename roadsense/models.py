"""Immutable data models for telemetry, connection state and command outcomes.

All models are frozen dataclasses so they can be handed across the reader
thread, the command path and subscribers without copying.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Union

from . import constants


class SampleSource(Enum):
    """Wire format a telemetry sample was decoded from."""
    PIPE_CHECKSUMMED = "pipe"
    KEY_VALUE = "key_value"


class QualityClass(Enum):
    """Coarse ride quality derived from the roughness index."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    BAD = "bad"


def classify_roughness(roughness_index: float) -> QualityClass:
    """Map a roughness index onto the fixed quality breakpoints."""
    if roughness_index < constants.ROUGHNESS_EXCELLENT_MAX:
        return QualityClass.EXCELLENT
    if roughness_index < constants.ROUGHNESS_GOOD_MAX:
        return QualityClass.GOOD
    if roughness_index < constants.ROUGHNESS_FAIR_MAX:
        return QualityClass.FAIR
    if roughness_index < constants.ROUGHNESS_POOR_MAX:
        return QualityClass.POOR
    return QualityClass.BAD


def quality_score(speed_kmh: float, accel_z: float, battery_voltage: Optional[float] = None) -> float:
    """Score a sample between 0.0 and 1.0 using the deduction ladder.

    Args:
        speed_kmh: Vehicle speed reported by the logger
        accel_z: Raw Z-axis acceleration
        battery_voltage: Logger battery voltage, if reported

    Returns:
        Score clamped to [0.0, 1.0]
    """
    score = 1.0

    if speed_kmh < 0.0 or speed_kmh > constants.MAX_REASONABLE_SPEED_KMH:
        score -= 0.3
    elif speed_kmh > constants.SPEED_WARNING_KMH:
        score -= 0.1

    if abs(accel_z) > constants.VIBRATION_EXTREME_THRESHOLD:
        score -= 0.3
    elif abs(accel_z) > constants.VIBRATION_SPIKE_THRESHOLD:
        score -= 0.1

    if battery_voltage is not None:
        if battery_voltage < constants.BATTERY_CRITICAL_VOLTAGE:
            score -= 0.2
        elif battery_voltage < constants.BATTERY_LOW_VOLTAGE:
            score -= 0.1

    return max(0.0, min(1.0, score))


@dataclass(frozen=True)
class GpsFix:
    """GPS position attached to a sample by the logger.

    Attributes:
        latitude: Degrees
        longitude: Degrees
        altitude: Meters, if reported
        speed: GPS ground speed, if reported
        accuracy: Horizontal accuracy in meters, if reported
    """
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    speed: Optional[float] = None
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class TelemetrySample:
    """One decoded telemetry line.

    A sample only exists if its line passed every structural check (and the
    checksum, for the pipe format). ``source`` records which format produced
    it so consumers can weigh checksummed and unchecksummed data differently.

    Attributes:
        source: Wire format of the originating line
        timestamp: Epoch milliseconds (pipe format) or ISO-8601 string (key/value format)
        distance_m: Cumulative distance (odometer) in meters
        speed_kmh: Speed in km/h
        accel_z: Raw Z-axis acceleration
        session_id: Logger session identifier, if reported
        trip_distance_m: Trip distance in meters, if reported
        roughness_index: Ride roughness index, if reported
        gps: GPS fix, present iff latitude and longitude both parsed
        battery_voltage: Logger battery voltage, if reported
        temperature_c: Logger temperature, if reported
        system_state: Logger state tag (e.g. RUNNING), if reported
        packet_count: Logger packet counter, if reported
        error_count: Logger error counter, if reported
        quality_class: Quality derived from roughness_index, if present
        quality_score: Deduction-ladder score in [0.0, 1.0]
        checksum_verified: True if the line carried a checksum that matched
        received_at: Host wall-clock time of decoding
    """
    source: SampleSource
    timestamp: Union[int, str]
    distance_m: float
    speed_kmh: float
    accel_z: float
    session_id: Optional[str] = None
    trip_distance_m: Optional[float] = None
    roughness_index: Optional[float] = None
    gps: Optional[GpsFix] = None
    battery_voltage: Optional[float] = None
    temperature_c: Optional[float] = None
    system_state: Optional[str] = None
    packet_count: Optional[int] = None
    error_count: Optional[int] = None
    quality_class: Optional[QualityClass] = None
    quality_score: float = 1.0
    checksum_verified: bool = False
    valid: bool = True
    received_at: float = 0.0

    @property
    def gps_available(self) -> bool:
        return self.gps is not None

    def timestamp_millis(self) -> int:
        """Return the sample timestamp as epoch milliseconds.

        Raises:
            ValueError: If an ISO-8601 timestamp cannot be parsed
        """
        if isinstance(self.timestamp, int):
            return self.timestamp
        text = self.timestamp.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)

    def is_valid_for_recording(self) -> bool:
        """Check whether the vehicle is moving at a plausible speed and vibration."""
        return (
            0.0 < self.speed_kmh < constants.MAX_REASONABLE_SPEED_KMH
            and abs(self.accel_z) < constants.VIBRATION_MAX_VALID
        )

    @property
    def status(self) -> str:
        if not self.is_valid_for_recording():
            return "INVALID"
        if self.speed_kmh < constants.MIN_MOVING_SPEED_KMH:
            return "STOPPED"
        if abs(self.accel_z) > constants.VIBRATION_SPIKE_THRESHOLD:
            return "HIGH_VIBRATION"
        if self.battery_voltage is not None and self.battery_voltage < constants.BATTERY_LOW_VOLTAGE:
            return "LOW_BATTERY"
        return "NORMAL"


# Connection state

class LinkStatus(Enum):
    """Lifecycle of the logical link to the logger."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionState:
    """Snapshot of the link state.

    Attributes:
        status: Current lifecycle status
        reason: Failure description when status is ERROR
        timestamp: Wall-clock time of the transition
    """
    status: LinkStatus
    reason: Optional[str] = None
    timestamp: float = 0.0

    @property
    def is_connected(self) -> bool:
        return self.status == LinkStatus.CONNECTED

    @property
    def is_error(self) -> bool:
        return self.status == LinkStatus.ERROR


# Command outcomes

@dataclass(frozen=True)
class CommandSuccess:
    """A matching response was received.

    Attributes:
        command: Command text that was sent
        response: Response line that resolved the command
        attempts: Attempts used, including the successful one
        latency: Seconds from the start of the successful attempt to the response
    """
    command: str
    response: str
    attempts: int = 1
    latency: float = 0.0

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class CommandTimeout:
    """No response arrived within the per-attempt timeout on any attempt."""
    command: str
    attempts_used: int

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class CommandValidationError:
    """The last response did not start with the expected prefix."""
    command: str
    response: str
    attempts_used: int

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class CommandNotConnected:
    """The link was not connected, or dropped while the command was in flight."""
    command: str
    message: str = "Logger not connected"

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class CommandSendError:
    """The last attempt could not be written to the transport."""
    command: str
    message: str
    attempts_used: int

    @property
    def ok(self) -> bool:
        return False


CommandResult = Union[
    CommandSuccess,
    CommandTimeout,
    CommandValidationError,
    CommandNotConnected,
    CommandSendError,
]


@dataclass(frozen=True)
class CommandMetrics:
    """Accumulated command counters.

    Each call of ``send_command_with_ack`` that reaches a terminal outcome
    after at least one attempt is counted exactly once.
    """
    total_commands: int = 0
    successful_commands: int = 0
    failed_commands: int = 0
    timeout_commands: int = 0
    average_response_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        """Percentage of successful commands, 0.0 when nothing was sent."""
        if self.total_commands == 0:
            return 0.0
        return self.successful_commands / self.total_commands * 100.0


@dataclass(frozen=True)
class LinkStats:
    """Read-path counters for diagnostics."""
    lines: int = 0
    samples: Dict[SampleSource, int] = field(default_factory=dict)
    responses: int = 0
    unknown_lines: int = 0
    invalid_lines: int = 0
    checksum_failures: int = 0
    framer_overflows: int = 0

    @property
    def total_samples(self) -> int:
        return sum(self.samples.values())
