"""Build a byte stream from transport configuration."""
from __future__ import annotations

from ..config import TransportConfig
from .base import ByteStream
from .serial import SerialByteStream
from .socket import SocketByteStream

TCP_SCHEME = "tcp://"


def create_stream(config: TransportConfig) -> ByteStream:
    """Create the stream named by ``config.port``.

    ``tcp://host:port`` selects a plain TCP socket; anything else (device
    path or pyserial URL) is opened with pyserial.
    """
    if config.port.startswith(TCP_SCHEME):
        host, sep, port = config.port[len(TCP_SCHEME):].rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"Invalid TCP address: {config.port!r}")
        return SocketByteStream(
            host,
            int(port),
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
        )

    return SerialByteStream(
        config.port,
        baudrate=config.baudrate,
        timeout=config.read_timeout,
    )
