"""Decoders for the two telemetry line formats.

Pipe format (checksummed, positional, 15 fields)::

    DATA|<session>|<timestamp_ms>|<distance_m>|<speed_kmh>|<accel_z>|<iri>|
    <lat>|<lon>|<alt_m>|<gps_speed>|<gps_acc>|<battery_v>|<state>|<CRC4HEX>

Key/value format (no checksum)::

    RS2,ODO=<m>,TRIP=<m>,SPD=<kmh>,Z=<g>,TIME=<iso8601>[,BAT=<v>][,TEMP=<c>]
    [,SID=<id>][,PKT=<n>][,ERR=<n>]

Both decoders are pure functions: they return a complete ``TelemetrySample``
or raise ``FrameError``. There is no partially decoded sample.
"""
from __future__ import annotations

import math
import time
from typing import Dict, Optional

from ..constants import KEY_VALUE_FRAME_PREFIX, PIPE_FRAME_FIELD_COUNT, PIPE_FRAME_TAG
from ..errors import ChecksumError, FrameError
from ..models import GpsFix, SampleSource, TelemetrySample, classify_roughness, quality_score
from .checksum import FIELD_SEPARATOR, compute_checksum, split_checksum

PIPE_FRAME_PREFIX = PIPE_FRAME_TAG + FIELD_SEPARATOR

KEY_VALUE_REQUIRED_KEYS = ("ODO", "TRIP", "SPD", "Z", "TIME")


def decode_pipe_frame(line: str, received_at: Optional[float] = None) -> TelemetrySample:
    """Decode a checksummed pipe-delimited telemetry line.

    Args:
        line: Complete, trimmed line
        received_at: Host timestamp to record, or None for now

    Returns:
        Decoded sample with ``source`` set to PIPE_CHECKSUMMED

    Raises:
        ChecksumError: If the transmitted checksum does not match
        FrameError: If the line is not a well-formed pipe frame

    Examples:
        >>> from roadsense.protocol.checksum import append_checksum
        >>> line = append_checksum("DATA|S1|1000|10.0|5.0|0.1|1.0|1.0|1.0|1.0|1.0|1.0|3.9|RUNNING")
        >>> decode_pipe_frame(line).distance_m
        10.0
    """
    fields = line.split(FIELD_SEPARATOR)

    if fields[0] != PIPE_FRAME_TAG:
        raise FrameError("Missing DATA tag", line)

    if len(fields) != PIPE_FRAME_FIELD_COUNT:
        raise FrameError(
            f"Expected {PIPE_FRAME_FIELD_COUNT} fields, got {len(fields)}", line
        )

    payload, transmitted = split_checksum(line)
    expected = compute_checksum(payload)
    if transmitted != expected:
        raise ChecksumError(
            f"Checksum mismatch: transmitted {transmitted!r}, computed {expected!r}", line
        )

    session_id = fields[1].strip()
    if not session_id:
        raise FrameError("Empty session id", line)

    timestamp = _required_int(fields[2], "timestamp", line)
    distance = _required_float(fields[3], "distance", line)
    speed = _required_float(fields[4], "speed", line)
    accel_z = _required_float(fields[5], "accel_z", line)
    roughness = _required_float(fields[6], "roughness_index", line)

    latitude = _optional_float(fields[7])
    longitude = _optional_float(fields[8])
    gps = None
    if latitude is not None and longitude is not None:
        gps = GpsFix(
            latitude=latitude,
            longitude=longitude,
            altitude=_optional_float(fields[9]),
            speed=_optional_float(fields[10]),
            accuracy=_optional_float(fields[11]),
        )

    battery = _optional_float(fields[12])
    state = fields[13].strip() or None

    return TelemetrySample(
        source=SampleSource.PIPE_CHECKSUMMED,
        timestamp=timestamp,
        distance_m=distance,
        speed_kmh=speed,
        accel_z=accel_z,
        session_id=session_id,
        roughness_index=roughness,
        gps=gps,
        battery_voltage=battery,
        system_state=state,
        quality_class=classify_roughness(roughness),
        quality_score=quality_score(speed, accel_z, battery),
        checksum_verified=True,
        received_at=time.time() if received_at is None else received_at,
    )


def decode_key_value_frame(line: str, received_at: Optional[float] = None) -> TelemetrySample:
    """Decode an unchecksummed ``RS2,`` key/value telemetry line.

    Args:
        line: Complete, trimmed line
        received_at: Host timestamp to record, or None for now

    Returns:
        Decoded sample with ``source`` set to KEY_VALUE

    Raises:
        FrameError: If the prefix is wrong or a required key is missing or invalid

    Examples:
        >>> sample = decode_key_value_frame(
        ...     "RS2,ODO=1234.56,TRIP=567.89,SPD=45.2,Z=-0.15,TIME=2025-02-11T10:30:45Z")
        >>> sample.speed_kmh
        45.2
    """
    if not line.startswith(KEY_VALUE_FRAME_PREFIX):
        raise FrameError("Missing RS2 prefix", line)

    params = parse_key_value_pairs(line[len(KEY_VALUE_FRAME_PREFIX):])

    missing = [key for key in KEY_VALUE_REQUIRED_KEYS if not params.get(key)]
    if missing:
        raise FrameError(f"Missing required keys: {', '.join(missing)}", line)

    odometer = _required_float(params["ODO"], "ODO", line)
    trip = _required_float(params["TRIP"], "TRIP", line)
    speed = _required_float(params["SPD"], "SPD", line)
    accel_z = _required_float(params["Z"], "Z", line)
    battery = _optional_float(params.get("BAT"))

    return TelemetrySample(
        source=SampleSource.KEY_VALUE,
        timestamp=params["TIME"],
        distance_m=odometer,
        speed_kmh=speed,
        accel_z=accel_z,
        session_id=params.get("SID") or None,
        trip_distance_m=trip,
        battery_voltage=battery,
        temperature_c=_optional_float(params.get("TEMP")),
        packet_count=_optional_int(params.get("PKT")),
        error_count=_optional_int(params.get("ERR")),
        quality_score=quality_score(speed, accel_z, battery),
        checksum_verified=False,
        received_at=time.time() if received_at is None else received_at,
    )


def parse_key_value_pairs(data: str) -> Dict[str, str]:
    """Parse ``KEY=value`` pairs separated by commas.

    Tokens without ``=`` are ignored. Later duplicates win.
    """
    result: Dict[str, str] = {}
    for part in data.split(","):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        result[key.strip().upper()] = value.strip()
    return result


def _required_float(token: str, name: str, line: str) -> float:
    value = _optional_float(token)
    if value is None:
        raise FrameError(f"Invalid {name}: {token!r}", line)
    return value


def _required_int(token: str, name: str, line: str) -> int:
    value = _optional_int(token)
    if value is None:
        raise FrameError(f"Invalid {name}: {token!r}", line)
    return value


def _optional_float(token: Optional[str]) -> Optional[float]:
    if token is None:
        return None
    token = token.strip()
    if not token:
        return None
    try:
        value = float(token)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def _optional_int(token: Optional[str]) -> Optional[int]:
    if token is None:
        return None
    token = token.strip()
    if not token:
        return None
    try:
        return int(token)
    except ValueError:
        pass
    # Integral floats such as "1000.0"
    value = _optional_float(token)
    if value is None or not value.is_integer():
        return None
    return int(value)
