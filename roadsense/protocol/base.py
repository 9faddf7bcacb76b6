"""Abstract line protocol spoken over the logger byte stream.

Defines the interface for classifying incoming lines and encoding commands.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .classifier import Frame


class LineProtocol(ABC):
    """Abstract protocol for the logger link.

    Protocols handle:
    - Classifying incoming lines (telemetry, response, other)
    - Serializing command text into wire format
    """

    @abstractmethod
    def classify(self, line: str, received_at: Optional[float] = None) -> Frame:
        """Classify a complete line.

        Args:
            line: Trimmed text line from the framer
            received_at: Host timestamp, or None for now

        Returns:
            Classified frame; never raises for malformed input
        """
        pass

    @abstractmethod
    def encode_command(self, command: str) -> bytes:
        """Serialize command text into wire bytes."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Protocol identifier."""
        pass
