"""Protocol engine tying transport, framer, classifier and dispatcher together.

Data flow::

    ByteStream --read_chunk--> LineFramer --lines--> LineProtocol.classify
        TELEMETRY -> TelemetryPublisher
        RESPONSE  -> CommandDispatcher.offer_response
        INVALID / UNKNOWN -> logged and dropped

One reader thread owns the inbound side of the stream. Each session hands
its reader a stop event, and a new session only starts once the previous
reader has left its last read. Commands are written from the caller's
thread under an I/O lock that teardown also takes, so a write never
interleaves with close().
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

from ..config import LinkConfig
from ..constants import DEFAULT_PULSES_PER_ROTATION, DEFAULT_WHEEL_DIAMETER_CM
from ..errors import ChecksumError, InvalidTransitionError, TransportError, WriteError
from ..models import (
    CommandResult,
    ConnectionState,
    LinkStats,
    SampleSource,
    TelemetrySample,
)
from ..protocol.base import LineProtocol
from ..protocol.classifier import Frame, FrameKind
from ..protocol.framer import LineFramer
from ..protocol.roadsense_protocol import RoadsenseProtocol
from ..protocol.status import DeviceStatus
from ..transport.base import ByteStream
from .dispatcher import CommandDispatcher
from .publisher import TelemetryPublisher
from .state import ConnectionStateMachine

logger = logging.getLogger(__name__)

READER_JOIN_TIMEOUT = 1.0  # seconds


class RoadsenseLink:
    """Live link to a RoadSense logger.

    Responsibilities:
    - Open and release the byte stream
    - Run the reader thread and route every line
    - Drive the connection state machine
    - Expose command, telemetry and state APIs

    Example:
        >>> from roadsense.transport import SerialByteStream
        >>> link = RoadsenseLink(SerialByteStream("/dev/rfcomm0"))
        >>> link.subscribe_samples(lambda s: print(s and s.speed_kmh))
        >>> if link.connect():
        ...     link.start_survey()
        >>> link.disconnect()
    """

    def __init__(
        self,
        stream: ByteStream,
        protocol: Optional[LineProtocol] = None,
        config: Optional[LinkConfig] = None,
    ):
        """Initialize link.

        Args:
            stream: Byte stream to the logger (not yet opened)
            protocol: Line protocol, or None for ``RoadsenseProtocol``
            config: Link configuration, or None for defaults
        """
        self._config = config or LinkConfig()
        commands = self._config.commands

        self._stream = stream
        self._protocol = protocol or RoadsenseProtocol(commands.response_prefixes)
        self._framer = LineFramer(self._config.transport.max_line_length)
        self._chunk_size = self._config.transport.chunk_size

        self._publisher = TelemetryPublisher()
        self._state = ConnectionStateMachine()
        self._state.subscribe(self._publisher.publish_state)

        self._dispatcher = CommandDispatcher(
            self._write_command,
            self.is_connected,
            max_attempts=commands.max_attempts,
            response_timeout=commands.response_timeout,
            retry_delay=commands.retry_delay,
            wait_timeout=commands.wait_timeout,
        )

        # Threading
        self._active = False
        self._reader_thread: Optional[threading.Thread] = None
        # Set when the session owning the current reader ends
        self._session_stop = threading.Event()
        self._session_stop.set()
        # Upper bound for a previous reader to leave a blocking read
        self._reader_drain_timeout = self._config.transport.read_timeout + READER_JOIN_TIMEOUT
        self._lifecycle_lock = threading.RLock()
        self._io_lock = threading.Lock()

        # Read-path counters, written by the reader thread only
        self._stats_lock = threading.Lock()
        self._lines = 0
        self._samples: Dict[SampleSource, int] = {}
        self._responses = 0
        self._unknown = 0
        self._invalid = 0
        self._checksum_failures = 0

    # --- Lifecycle ---

    def connect(self) -> bool:
        """Open the stream and start the reader thread.

        Returns:
            True if connected (or already connected), False otherwise.
            Open failures are reported through the state as ERROR followed
            by DISCONNECTED.
        """
        if not self._await_previous_reader():
            return False

        with self._lifecycle_lock:
            if self.is_connected():
                logger.warning("Already connected")
                return True

            try:
                self._state.begin_connect()
            except InvalidTransitionError as e:
                logger.warning(f"Cannot connect: {e}")
                return False

            try:
                self._stream.open()
            except TransportError as e:
                logger.error(f"Failed to open {self._stream.description}: {e}")
                self._state.mark_error(str(e))
                self._release_stream()
                self._state.mark_disconnected()
                return False

            self._framer.reset()
            self._session_stop = threading.Event()
            self._active = True
            self._state.mark_connected()
            self._start_reader_thread(self._session_stop)

        logger.info(f"Connected to logger on {self._stream.description}")
        return True

    def disconnect(self) -> None:
        """Stop the reader, release the stream and return to DISCONNECTED.

        Safe to call from any thread, including subscriber callbacks, and
        more than once.
        """
        with self._lifecycle_lock:
            was_active = self._active
            self._active = False
            self._session_stop.set()
            self._dispatcher.abort_pending("Disconnected")
            self._release_stream()
            reader = self._reader_thread

        if reader is not None and reader is not threading.current_thread() and reader.is_alive():
            reader.join(timeout=READER_JOIN_TIMEOUT)

        self._state.mark_disconnected()
        self._publisher.clear_sample()

        if was_active:
            logger.info("Disconnected from logger")

    def is_connected(self) -> bool:
        return self._active and self._state.current.is_connected

    @property
    def state(self) -> ConnectionState:
        return self._state.current

    def __enter__(self) -> RoadsenseLink:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    # --- Commands ---

    @property
    def commands(self) -> CommandDispatcher:
        """Command dispatcher, for metrics and lower-level access."""
        return self._dispatcher

    def send_command_with_ack(
        self,
        command: str,
        expected_prefix: Optional[str] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        return self._dispatcher.send_command_with_ack(command, expected_prefix, max_attempts, timeout)

    def start_survey(self) -> CommandResult:
        return self._dispatcher.start_survey()

    def stop_survey(self) -> CommandResult:
        return self._dispatcher.stop_survey()

    def pause_survey(self) -> CommandResult:
        return self._dispatcher.pause_survey()

    def resume_survey(self) -> CommandResult:
        return self._dispatcher.resume_survey()

    def request_status(self) -> CommandResult:
        return self._dispatcher.request_status()

    def query_status(self) -> Optional[DeviceStatus]:
        return self._dispatcher.query_status()

    def calibrate(
        self,
        wheel_diameter_cm: float = DEFAULT_WHEEL_DIAMETER_CM,
        pulses_per_rotation: int = DEFAULT_PULSES_PER_ROTATION,
    ) -> CommandResult:
        return self._dispatcher.calibrate(wheel_diameter_cm, pulses_per_rotation)

    # --- Subscriptions ---

    def subscribe_samples(
        self,
        callback: Callable[[Optional[TelemetrySample]], None]
    ) -> Callable[[], None]:
        """Subscribe to decoded samples. ``None`` means live data stopped.

        Returns:
            Unsubscribe function
        """
        return self._publisher.subscribe_samples(callback)

    def subscribe_state(self, callback: Callable[[ConnectionState], None]) -> Callable[[], None]:
        return self._publisher.subscribe_state(callback)

    def subscribe_responses(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self._dispatcher.subscribe_responses(callback)

    @property
    def latest_sample(self) -> Optional[TelemetrySample]:
        return self._publisher.latest_sample

    @property
    def stats(self) -> LinkStats:
        with self._stats_lock:
            return LinkStats(
                lines=self._lines,
                samples=dict(self._samples),
                responses=self._responses,
                unknown_lines=self._unknown,
                invalid_lines=self._invalid,
                checksum_failures=self._checksum_failures,
                framer_overflows=self._framer.overflow_count,
            )

    # --- Internal methods ---

    def _write_command(self, command: str) -> None:
        data = self._protocol.encode_command(command)
        with self._io_lock:
            if not self.is_connected():
                raise WriteError("Link is not connected")
            self._stream.write(data)

    def _release_stream(self) -> None:
        with self._io_lock:
            try:
                self._stream.close()
            except TransportError as e:
                logger.error(f"Error closing {self._stream.description}: {e}")

    def _await_previous_reader(self) -> bool:
        """Wait for the reader of an ended session to leave its last read.

        Returns:
            False if that reader is still running after the drain timeout
        """
        reader = self._reader_thread
        if (reader is None
                or not self._session_stop.is_set()
                or reader is threading.current_thread()):
            return True

        reader.join(timeout=self._reader_drain_timeout)
        if reader.is_alive():
            logger.warning("Previous reader is still blocked in a read, not connecting")
            return False
        return True

    def _start_reader_thread(self, stop: threading.Event) -> None:
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            args=(stop,),
            daemon=True,
            name="RoadsenseReader"
        )
        self._reader_thread.start()

    def _reader_loop(self, stop: threading.Event) -> None:
        """Read chunks, frame them and route every line until ``stop`` is set.

        ``stop`` belongs to one session; a reader never outlives it.
        """
        logger.debug("Reader thread started")

        while not stop.is_set():
            try:
                chunk = self._stream.read_chunk(self._chunk_size)
            except TransportError as e:
                if not stop.is_set():
                    logger.error(f"Read error: {e}")
                    self._handle_transport_failure(stop, str(e))
                break
            except Exception as e:
                if not stop.is_set():
                    logger.error(f"Reader error: {e}")
                    self._handle_transport_failure(stop, f"Reader error: {e}")
                break

            if not chunk or stop.is_set():
                continue

            received_at = time.time()
            for line in self._framer.feed(chunk):
                try:
                    self._dispatch_line(line, received_at)
                except Exception as e:
                    logger.error(f"Error handling line {line!r}: {e}")

        logger.debug("Reader thread exiting")

    def _dispatch_line(self, line: str, received_at: float) -> None:
        frame = self._protocol.classify(line, received_at=received_at)
        self._count(frame)

        if frame.kind == FrameKind.TELEMETRY:
            self._publisher.publish_sample(frame.sample)
        elif frame.kind == FrameKind.RESPONSE:
            self._dispatcher.offer_response(line)
        elif frame.kind == FrameKind.INVALID:
            logger.warning(f"Dropped invalid frame ({frame.error.reason}): {line!r}")
        else:
            logger.debug(f"Dropped unrecognized line: {line!r}")

    def _count(self, frame: Frame) -> None:
        with self._stats_lock:
            self._lines += 1
            if frame.kind == FrameKind.TELEMETRY:
                source = frame.sample.source
                self._samples[source] = self._samples.get(source, 0) + 1
            elif frame.kind == FrameKind.RESPONSE:
                self._responses += 1
            elif frame.kind == FrameKind.INVALID:
                self._invalid += 1
                if isinstance(frame.error, ChecksumError):
                    self._checksum_failures += 1
            else:
                self._unknown += 1

    def _handle_transport_failure(self, stop: threading.Event, reason: str) -> None:
        """Tear down after a mid-session failure: ERROR, then DISCONNECTED.

        Runs on the reader thread, so it does not join it.
        """
        with self._lifecycle_lock:
            if stop.is_set():
                return
            stop.set()
            self._active = False
            self._dispatcher.abort_pending(reason)
            self._release_stream()

        try:
            self._state.mark_error(reason)
        except InvalidTransitionError as e:
            logger.debug(f"Error state not recorded: {e}")
        self._state.mark_disconnected()
        self._publisher.clear_sample()
        logger.info("Connection closed due to error")
