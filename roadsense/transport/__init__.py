"""Byte-stream transports for the logger bridge."""

from .base import ByteStream
from .factory import create_stream
from .serial import SerialByteStream
from .socket import SocketByteStream

__all__ = ["ByteStream", "SerialByteStream", "SocketByteStream", "create_stream"]
