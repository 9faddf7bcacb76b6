"""Configuration loader for the logger link."""

from __future__ import annotations

import logging
from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Tuple

from . import constants

DEFAULT_PORT = "/dev/rfcomm0"


@dataclass(frozen=True)
class TransportConfig:
    port: str = DEFAULT_PORT
    baudrate: int = constants.DEFAULT_BAUDRATE
    read_timeout: float = constants.DEFAULT_READ_TIMEOUT
    connect_timeout: float = constants.DEFAULT_CONNECT_TIMEOUT
    chunk_size: int = constants.DEFAULT_CHUNK_SIZE
    max_line_length: int = constants.DEFAULT_MAX_LINE_LENGTH


@dataclass(frozen=True)
class CommandConfig:
    max_attempts: int = constants.DEFAULT_COMMAND_ATTEMPTS
    response_timeout: float = constants.DEFAULT_RESPONSE_TIMEOUT  # per attempt
    retry_delay: float = constants.DEFAULT_RETRY_DELAY
    wait_timeout: float = constants.DEFAULT_WAIT_FOR_RESPONSE_TIMEOUT
    response_prefixes: Tuple[str, ...] = constants.RESPONSE_PREFIXES


@dataclass(frozen=True)
class ReconnectConfig:
    enabled: bool = True
    base_delay: float = constants.RECONNECT_BASE_DELAY
    max_delay: float = constants.RECONNECT_MAX_DELAY
    multiplier: float = constants.RECONNECT_MULTIPLIER
    max_attempts: int = constants.RECONNECT_MAX_ATTEMPTS


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class LinkConfig:
    transport: TransportConfig = field(default_factory=TransportConfig)
    commands: CommandConfig = field(default_factory=CommandConfig)
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _parse_list(value: str, *, default: Iterable[str]) -> Tuple[str, ...]:
    if not value:
        return tuple(default)
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_config(path: Optional[Path] = None) -> LinkConfig:
    """Load configuration from an INI file, applying defaults where necessary.

    A missing file yields the defaults.
    """
    parser = ConfigParser()
    parser.read_dict(
        {
            "transport": {
                "port": DEFAULT_PORT,
                "baudrate": str(constants.DEFAULT_BAUDRATE),
                "read_timeout": str(constants.DEFAULT_READ_TIMEOUT),
                "connect_timeout": str(constants.DEFAULT_CONNECT_TIMEOUT),
                "chunk_size": str(constants.DEFAULT_CHUNK_SIZE),
                "max_line_length": str(constants.DEFAULT_MAX_LINE_LENGTH),
            },
            "commands": {
                "max_attempts": str(constants.DEFAULT_COMMAND_ATTEMPTS),
                "response_timeout": str(constants.DEFAULT_RESPONSE_TIMEOUT),
                "retry_delay": str(constants.DEFAULT_RETRY_DELAY),
                "wait_timeout": str(constants.DEFAULT_WAIT_FOR_RESPONSE_TIMEOUT),
                "response_prefixes": ",".join(constants.RESPONSE_PREFIXES),
            },
            "reconnect": {
                "enabled": "true",
                "base_delay": str(constants.RECONNECT_BASE_DELAY),
                "max_delay": str(constants.RECONNECT_MAX_DELAY),
                "multiplier": str(constants.RECONNECT_MULTIPLIER),
                "max_attempts": str(constants.RECONNECT_MAX_ATTEMPTS),
            },
            "logging": {
                "level": "INFO",
            },
        }
    )

    if path is not None and Path(path).exists():
        parser.read(path)

    transport = TransportConfig(
        port=parser.get("transport", "port"),
        baudrate=parser.getint("transport", "baudrate"),
        read_timeout=parser.getfloat("transport", "read_timeout"),
        connect_timeout=parser.getfloat("transport", "connect_timeout"),
        chunk_size=parser.getint("transport", "chunk_size"),
        max_line_length=parser.getint("transport", "max_line_length"),
    )

    commands = CommandConfig(
        max_attempts=max(1, parser.getint("commands", "max_attempts")),
        response_timeout=parser.getfloat("commands", "response_timeout"),
        retry_delay=parser.getfloat("commands", "retry_delay"),
        wait_timeout=parser.getfloat("commands", "wait_timeout"),
        response_prefixes=_parse_list(
            parser.get("commands", "response_prefixes"),
            default=constants.RESPONSE_PREFIXES,
        ),
    )

    reconnect = ReconnectConfig(
        enabled=parser.getboolean("reconnect", "enabled"),
        base_delay=parser.getfloat("reconnect", "base_delay"),
        max_delay=parser.getfloat("reconnect", "max_delay"),
        multiplier=parser.getfloat("reconnect", "multiplier"),
        max_attempts=parser.getint("reconnect", "max_attempts"),
    )

    return LinkConfig(
        transport=transport,
        commands=commands,
        reconnect=reconnect,
        logging=LoggingConfig(level=parser.get("logging", "level").upper()),
    )


def configure_logging(config: LinkConfig) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=getattr(logging, config.logging.level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
