"""Serial byte stream for the logger bridge.

The logger is reached through a serial port: a USB CDC adapter, a Bluetooth
SPP device bound to ``/dev/rfcomm*``, or any pyserial URL such as
``socket://host:port`` or ``rfc2217://host:port``.

This is a RAW BYTE STREAM layer. It does not interpret lines; the engine
feeds whatever it reads into the line framer.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

import serial

from ..constants import DEFAULT_BAUDRATE, DEFAULT_READ_TIMEOUT
from ..errors import ConnectError, EndOfStreamError, ReadError, WriteError
from .base import ByteStream

logger = logging.getLogger(__name__)


class SerialByteStream(ByteStream):
    """pyserial-backed byte stream.

    Example:
        >>> stream = SerialByteStream("/dev/rfcomm0", baudrate=115200)
        >>> stream.open()
        >>> stream.write(b"CMD:STATUS\\n")
        >>> stream.read_chunk(1024)
        b'STATUS,RUNNING,SESSION=12345\\n'
        >>> stream.close()
    """

    def __init__(self,
                 port: str,
                 baudrate: int = DEFAULT_BAUDRATE,
                 timeout: float = DEFAULT_READ_TIMEOUT):
        """Initialize serial stream.

        Args:
            port: Serial port path (e.g. '/dev/rfcomm0', 'COM5') or pyserial URL
            baudrate: Serial baud rate
            timeout: Read timeout in seconds
        """
        self._port = port
        self._baudrate = baudrate
        self._timeout = timeout

        self._serial: Optional[serial.Serial] = None
        self._lock = threading.Lock()

    def open(self) -> None:
        """Open the serial port and clear stale buffered bytes."""
        with self._lock:
            if self._serial is not None:
                logger.warning(f"{self._port} already open")
                return

            try:
                if "://" in self._port:
                    port = serial.serial_for_url(
                        self._port,
                        baudrate=self._baudrate,
                        timeout=self._timeout,
                    )
                else:
                    port = serial.Serial(
                        port=self._port,
                        baudrate=self._baudrate,
                        timeout=self._timeout,
                    )
                port.reset_input_buffer()
                port.reset_output_buffer()
            except (serial.SerialException, OSError, ValueError) as e:
                raise ConnectError(f"Failed to open {self._port}: {e}") from e

            self._serial = port

        logger.info(f"Opened {self._port} @ {self._baudrate} baud")

    def read_chunk(self, size: int) -> bytes:
        port = self._serial
        if port is None:
            raise EndOfStreamError(f"{self._port} is closed")

        try:
            return port.read(size)
        except serial.SerialException as e:
            raise ReadError(f"Serial read error on {self._port}: {e}") from e
        except (OSError, TypeError, AttributeError) as e:
            # pyserial raises these when the port is closed under a pending read
            raise EndOfStreamError(f"{self._port} closed during read: {e}") from e

    def write(self, data: bytes) -> None:
        port = self._serial
        if port is None:
            raise WriteError(f"{self._port} is closed")

        try:
            port.write(data)
            port.flush()
        except (serial.SerialException, OSError) as e:
            raise WriteError(f"Serial write error on {self._port}: {e}") from e

    def close(self) -> None:
        with self._lock:
            port, self._serial = self._serial, None

        if port is None:
            return

        try:
            port.close()
        except (serial.SerialException, OSError) as e:
            logger.error(f"Error closing serial port: {e}")
        else:
            logger.info(f"Closed {self._port}")

    @property
    def is_open(self) -> bool:
        return self._serial is not None

    @property
    def description(self) -> str:
        return self._port
