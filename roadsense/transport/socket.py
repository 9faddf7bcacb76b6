"""TCP byte stream for loggers bridged onto the network."""
from __future__ import annotations

import logging
import socket
import threading
from typing import Optional

from ..constants import DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT
from ..errors import ConnectError, EndOfStreamError, ReadError, WriteError
from .base import ByteStream

logger = logging.getLogger(__name__)


class SocketByteStream(ByteStream):
    """Byte stream over a connected stream socket."""

    def __init__(self,
                 host: str,
                 port: int,
                 connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
                 read_timeout: float = DEFAULT_READ_TIMEOUT):
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout

        self._sock: Optional[socket.socket] = None
        self._lock = threading.Lock()

    def open(self) -> None:
        with self._lock:
            if self._sock is not None:
                return
            try:
                sock = socket.create_connection(
                    (self._host, self._port), timeout=self._connect_timeout
                )
            except OSError as e:
                raise ConnectError(f"Failed to connect to {self.description}: {e}") from e

            sock.settimeout(self._read_timeout)
            self._sock = sock

        logger.info(f"Connected to {self.description}")

    def read_chunk(self, size: int) -> bytes:
        sock = self._sock
        if sock is None:
            raise EndOfStreamError(f"{self.description} is closed")

        try:
            data = sock.recv(size)
        except socket.timeout:
            return b""
        except OSError as e:
            raise ReadError(f"Socket read error on {self.description}: {e}") from e

        if not data:
            raise EndOfStreamError(f"{self.description} closed by peer")
        return data

    def write(self, data: bytes) -> None:
        sock = self._sock
        if sock is None:
            raise WriteError(f"{self.description} is closed")

        try:
            sock.sendall(data)
        except OSError as e:
            raise WriteError(f"Socket write error on {self.description}: {e}") from e

    def close(self) -> None:
        with self._lock:
            sock, self._sock = self._sock, None

        if sock is None:
            return

        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer may already be gone
            pass
        sock.close()
        logger.info(f"Closed {self.description}")

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    @property
    def description(self) -> str:
        return f"{self._host}:{self._port}"
