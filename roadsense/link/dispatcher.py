"""Command dispatcher with acknowledgement, retries and metrics.

Protocol::

    host   -> logger: CMD:START\\n
    logger -> host:   ACK:START,OK\\n

    host   -> logger: CMD:STATUS\\n
    logger -> host:   STATUS,RUNNING,SESSION=12345\\n

Responses carry no command identifier, so correlation is positional: the
outstanding ticket claims the next response line. This is only sound with a
single command in flight, so ``send_command_with_ack`` calls are serialized
and concurrent callers queue on a lock. If the firmware ever echoes a
command id, matching should move to that id.
"""
from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional

from ..constants import (
    DEFAULT_COMMAND_ATTEMPTS,
    DEFAULT_PULSES_PER_ROTATION,
    DEFAULT_RESPONSE_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    DEFAULT_WAIT_FOR_RESPONSE_TIMEOUT,
    DEFAULT_WHEEL_DIAMETER_CM,
)
from ..errors import TransportError
from ..models import (
    CommandMetrics,
    CommandNotConnected,
    CommandResult,
    CommandSendError,
    CommandSuccess,
    CommandTimeout,
    CommandValidationError,
)
from ..protocol.commands import CALIBRATION_RESPONSE_PREFIX, DeviceCommand, calibration_command
from ..protocol.status import DeviceStatus

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class CommandTicket:
    """Bookkeeping for one in-flight command attempt.

    The ticket resolves at most once, either with a response line or with
    an abort reason.
    """
    ticket_id: int
    command: str
    expected_prefix: Optional[str]
    attempt: int
    started_at: float
    deadline: float
    response: Optional[str] = None
    resolved_at: Optional[float] = None
    abort_reason: Optional[str] = None
    _event: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def resolved(self) -> bool:
        return self._event.is_set()

    @property
    def aborted(self) -> bool:
        return self.abort_reason is not None

    def resolve(self, response: str, now: float) -> bool:
        if self._event.is_set():
            return False
        self.response = response
        self.resolved_at = now
        self._event.set()
        return True

    def abort(self, reason: str) -> bool:
        if self._event.is_set():
            return False
        self.abort_reason = reason
        self._event.set()
        return True

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)


class CommandDispatcher:
    """Sends commands over the link and matches their responses.

    Responsibilities:
    - Serialize commands (one outstanding ticket at a time)
    - Write command lines through the link
    - Wait for the response with a per-attempt timeout
    - Retry on timeout, prefix mismatch or write failure
    - Track command metrics
    """

    def __init__(
        self,
        send_line: Callable[[str], None],
        is_connected: Callable[[], bool],
        *,
        max_attempts: int = DEFAULT_COMMAND_ATTEMPTS,
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        wait_timeout: float = DEFAULT_WAIT_FOR_RESPONSE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize dispatcher.

        Args:
            send_line: Writes one command line to the transport; raises
                TransportError on failure
            is_connected: Returns True while the link accepts commands
            max_attempts: Default attempt budget per command
            response_timeout: Default per-attempt response timeout in seconds
            retry_delay: Pause between attempts in seconds
            wait_timeout: Default timeout for ``wait_for_response``
            clock: Monotonic clock used for deadlines and latency
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self._send_line = send_line
        self._is_connected = is_connected
        self._max_attempts = max_attempts
        self._response_timeout = response_timeout
        self._retry_delay = retry_delay
        self._wait_timeout = wait_timeout
        self._clock = clock

        # One command at a time; callers queue here
        self._command_lock = threading.Lock()

        # Pending ticket slot, shared with the reader thread
        self._ticket_lock = threading.Lock()
        self._pending: Optional[CommandTicket] = None
        self._ticket_ids = itertools.count(1)

        # Set by abort_pending() to cut the inter-attempt delay short
        self._abort = threading.Event()

        self._metrics = CommandMetrics()
        self._metrics_lock = threading.Lock()

        self._response_callbacks: List[Callable[[str], None]] = []
        self._callback_lock = threading.Lock()

    # --- Command path ---

    def send_command_with_ack(
        self,
        command: str,
        expected_prefix: Optional[str] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Send a command and wait for its response, retrying as needed.

        Args:
            command: Command text without line terminator (e.g. "CMD:START")
            expected_prefix: Response must start with this (e.g. "ACK:START")
            max_attempts: Attempt budget, or None for the default
            timeout: Per-attempt timeout in seconds, or None for the default

        Returns:
            CommandSuccess, CommandTimeout, CommandValidationError,
            CommandNotConnected or CommandSendError. A command that cannot
            be encoded is a CommandSendError without a retry. Never raises
            for link or peer failures.
        """
        attempts = self._max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        attempt_timeout = self._response_timeout if timeout is None else timeout

        if not self._is_connected():
            logger.warning(f"Cannot send {command}: not connected")
            return CommandNotConnected(command)

        with self._command_lock:
            self._abort.clear()
            return self._run(command, expected_prefix, attempts, attempt_timeout)

    def _run(
        self,
        command: str,
        expected_prefix: Optional[str],
        attempts: int,
        timeout: float,
    ) -> CommandResult:
        last_failure: Optional[CommandResult] = None

        for attempt in range(1, attempts + 1):
            if not self._is_connected():
                if attempt == 1:
                    logger.warning(f"Cannot send {command}: not connected")
                    return CommandNotConnected(command)
                return self._lost_connection(command, "Connection lost during command")

            ticket = self._open_ticket(command, expected_prefix, attempt, timeout)
            try:
                try:
                    self._send_line(command)
                except ValueError as e:
                    logger.error(f"Cannot encode {command!r}: {e}")
                    self._record_failure()
                    return CommandSendError(command, str(e), attempt)
                except TransportError as e:
                    logger.warning(f"Failed to send {command} (attempt {attempt}/{attempts}): {e}")
                    if not self._is_connected():
                        return self._lost_connection(command, str(e))
                    last_failure = CommandSendError(command, str(e), attempt)
                else:
                    logger.debug(f"Sent command #{ticket.ticket_id}: {command} (attempt {attempt}/{attempts})")
                    ticket.wait(timeout)

                    if ticket.aborted:
                        return self._lost_connection(command, ticket.abort_reason or "Aborted")

                    if not ticket.resolved:
                        logger.warning(f"Command #{ticket.ticket_id} {command} timed out (attempt {attempt}/{attempts})")
                        last_failure = CommandTimeout(command, attempt)
                    elif expected_prefix and not ticket.response.startswith(expected_prefix):
                        logger.warning(
                            f"Unexpected response for #{ticket.ticket_id}: {ticket.response!r} "
                            f"(expected prefix {expected_prefix!r})"
                        )
                        last_failure = CommandValidationError(command, ticket.response, attempt)
                    else:
                        latency = ticket.resolved_at - ticket.started_at
                        self._record_success(latency)
                        logger.debug(f"Command #{ticket.ticket_id} succeeded in {latency * 1000:.0f}ms: {ticket.response}")
                        return CommandSuccess(command, ticket.response, attempt, latency)
            finally:
                self._close_ticket(ticket)

            if attempt < attempts and self._abort.wait(self._retry_delay):
                return self._lost_connection(command, "Aborted")

        if isinstance(last_failure, CommandTimeout):
            logger.error(f"{command} timed out after {attempts} attempts")
            self._record_timeout()
        else:
            logger.error(f"{command} failed after {attempts} attempts: {last_failure}")
            self._record_failure()
        return last_failure

    def _lost_connection(self, command: str, reason: str) -> CommandNotConnected:
        logger.warning(f"{command} aborted: {reason}")
        self._record_failure()
        return CommandNotConnected(command, reason)

    # --- Ticket slot ---

    def _open_ticket(self, command: str, expected_prefix: Optional[str], attempt: int, timeout: float) -> CommandTicket:
        now = self._clock()
        ticket = CommandTicket(
            ticket_id=next(self._ticket_ids),
            command=command,
            expected_prefix=expected_prefix,
            attempt=attempt,
            started_at=now,
            deadline=now + timeout,
        )
        with self._ticket_lock:
            self._pending = ticket
        return ticket

    def _close_ticket(self, ticket: CommandTicket) -> None:
        with self._ticket_lock:
            if self._pending is ticket:
                self._pending = None

    @property
    def has_pending(self) -> bool:
        with self._ticket_lock:
            return self._pending is not None

    def offer_response(self, line: str) -> bool:
        """Hand a response-shaped line to the outstanding ticket.

        Called from the reader thread.

        Returns:
            True if a pending ticket claimed the line
        """
        now = self._clock()
        with self._ticket_lock:
            ticket = self._pending
            claimed = ticket is not None and ticket.resolve(line, now)
            if claimed:
                self._pending = None

        if claimed:
            logger.debug(f"Response for #{ticket.ticket_id}: {line}")
        else:
            logger.debug(f"Unsolicited response dropped: {line}")

        self._notify_response(line)
        return claimed

    def abort_pending(self, reason: str) -> None:
        """Abort the in-flight command, if any, and cut retry delays short.

        Safe to call from any thread.
        """
        with self._ticket_lock:
            ticket, self._pending = self._pending, None
        if ticket is not None and ticket.abort(reason):
            logger.debug(f"Aborted command #{ticket.ticket_id}: {reason}")
        self._abort.set()

    # --- Convenience commands ---

    def send_device_command(self, command: DeviceCommand, **kwargs) -> CommandResult:
        return self.send_command_with_ack(command.text, command.expected_prefix, **kwargs)

    def start_survey(self) -> CommandResult:
        return self.send_device_command(DeviceCommand.START)

    def stop_survey(self) -> CommandResult:
        return self.send_device_command(DeviceCommand.STOP)

    def pause_survey(self) -> CommandResult:
        return self.send_device_command(DeviceCommand.PAUSE)

    def resume_survey(self) -> CommandResult:
        return self.send_device_command(DeviceCommand.RESUME)

    def request_status(self) -> CommandResult:
        return self.send_device_command(DeviceCommand.STATUS)

    def query_status(self) -> Optional[DeviceStatus]:
        """Request and parse the logger status. Returns None on any failure."""
        result = self.request_status()
        if not isinstance(result, CommandSuccess):
            return None
        return DeviceStatus.from_response(result.response)

    def calibrate(
        self,
        wheel_diameter_cm: float = DEFAULT_WHEEL_DIAMETER_CM,
        pulses_per_rotation: int = DEFAULT_PULSES_PER_ROTATION,
    ) -> CommandResult:
        """Send wheel calibration parameters.

        Raises:
            ValueError: If a parameter is outside the supported range
        """
        command = calibration_command(wheel_diameter_cm, pulses_per_rotation)
        return self.send_command_with_ack(command, CALIBRATION_RESPONSE_PREFIX)

    # --- Response observers ---

    def subscribe_responses(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """Subscribe to every response line, claimed or not.

        Returns:
            Unsubscribe function
        """
        with self._callback_lock:
            self._response_callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in self._response_callbacks:
                    self._response_callbacks.remove(callback)

        return unsubscribe

    def wait_for_response(self, pattern: str, timeout: Optional[float] = None) -> Optional[str]:
        """Block until a response line containing ``pattern`` arrives.

        Useful for waiting on unsolicited firmware status changes.

        Returns:
            The matching line, or None on timeout
        """
        matched: List[str] = []
        event = threading.Event()

        def on_response(line: str) -> None:
            if pattern in line and not event.is_set():
                matched.append(line)
                event.set()

        unsubscribe = self.subscribe_responses(on_response)
        try:
            event.wait(self._wait_timeout if timeout is None else timeout)
        finally:
            unsubscribe()

        return matched[0] if matched else None

    def _notify_response(self, line: str) -> None:
        with self._callback_lock:
            callbacks = list(self._response_callbacks)

        for callback in callbacks:
            try:
                callback(line)
            except Exception as e:
                logger.error(f"Error in response callback: {e}")

    # --- Metrics ---

    @property
    def metrics(self) -> CommandMetrics:
        with self._metrics_lock:
            return self._metrics

    def reset_metrics(self) -> None:
        with self._metrics_lock:
            self._metrics = CommandMetrics()

    def _record_success(self, latency: float) -> None:
        with self._metrics_lock:
            m = self._metrics
            successful = m.successful_commands + 1
            self._metrics = replace(
                m,
                total_commands=m.total_commands + 1,
                successful_commands=successful,
                average_response_ms=m.average_response_ms + (latency * 1000.0 - m.average_response_ms) / successful,
            )

    def _record_timeout(self) -> None:
        with self._metrics_lock:
            m = self._metrics
            self._metrics = replace(
                m,
                total_commands=m.total_commands + 1,
                timeout_commands=m.timeout_commands + 1,
            )

    def _record_failure(self) -> None:
        with self._metrics_lock:
            m = self._metrics
            self._metrics = replace(
                m,
                total_commands=m.total_commands + 1,
                failed_commands=m.failed_commands + 1,
            )
