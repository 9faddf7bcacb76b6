"""Parsing of ``STATUS`` replies.

Reply format: STATUS,<STATE>[,KEY=value...], e.g. ``STATUS,RUNNING,SESSION=12345``.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, Optional

STATUS_PREFIX = "STATUS"


@dataclass(frozen=True)
class DeviceStatus:
    """Logger status reported in reply to CMD:STATUS.

    Attributes:
        state: Logger state tag (e.g. RUNNING, PAUSED, IDLE), or None if absent
        fields: Remaining KEY=value pairs
        raw: Original reply line
        timestamp: Host time when the reply was parsed
    """
    state: Optional[str]
    fields: Dict[str, str] = field(default_factory=dict)
    raw: str = ""
    timestamp: float = 0.0

    @property
    def session_id(self) -> Optional[str]:
        return self.fields.get("SESSION") or self.fields.get("SID")

    @classmethod
    def from_response(cls, response: str, timestamp: Optional[float] = None) -> Optional[DeviceStatus]:
        """Parse a STATUS reply.

        Returns:
            DeviceStatus, or None if the line is not a STATUS reply
        """
        text = response.strip()
        if not text.startswith(STATUS_PREFIX):
            return None

        parts = [part.strip() for part in text.split(",")]
        # Tolerate "STATUS:RUNNING" as well as "STATUS,RUNNING"
        head = parts[0][len(STATUS_PREFIX):].lstrip(":").strip()

        state: Optional[str] = head or None
        fields: Dict[str, str] = {}
        for part in parts[1:]:
            if not part:
                continue
            key, sep, value = part.partition("=")
            if sep:
                fields[key.strip().upper()] = value.strip()
            elif state is None:
                state = part

        return cls(
            state=state,
            fields=fields,
            raw=text,
            timestamp=time.time() if timestamp is None else timestamp,
        )
