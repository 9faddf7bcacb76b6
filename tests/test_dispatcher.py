"""Unit tests for the command dispatcher.

Tests verify:
- Success, retry, timeout, validation and send failures
- Positional correlation with one command in flight
- Metrics are counted once per call
"""
import threading
import time
import unittest
from unittest.mock import MagicMock

from roadsense.errors import WriteError
from roadsense.link.dispatcher import CommandDispatcher
from roadsense.models import (
    CommandNotConnected,
    CommandSendError,
    CommandSuccess,
    CommandTimeout,
    CommandValidationError,
)
from roadsense.protocol.status import DeviceStatus


class DispatcherTestCase(unittest.TestCase):
    """Dispatcher wired to a mocked line writer."""

    def setUp(self):
        self.connected = True
        self.send_line = MagicMock()
        self.dispatcher = CommandDispatcher(
            self.send_line,
            lambda: self.connected,
            max_attempts=3,
            response_timeout=0.1,
            retry_delay=0.05,
            wait_timeout=0.2,
        )

    def reply_with(self, *responses):
        """Answer each write synchronously with the next response (None = silence)."""
        replies = iter(responses)

        def send(command):
            response = next(replies, None)
            if response is not None:
                self.dispatcher.offer_response(response)

        self.send_line.side_effect = send


class TestSendCommandWithAck(DispatcherTestCase):

    def test_success_first_attempt(self):
        self.reply_with("ACK:START,OK")
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.assertIsInstance(result, CommandSuccess)
        self.assertTrue(result.ok)
        self.assertEqual(result.response, "ACK:START,OK")
        self.assertEqual(result.attempts, 1)
        self.send_line.assert_called_once_with("CMD:START")
        self.assertFalse(self.dispatcher.has_pending)

    def test_no_expected_prefix_accepts_any_response(self):
        self.reply_with("ERR:BUSY")
        result = self.dispatcher.send_command_with_ack("CMD:X")
        self.assertIsInstance(result, CommandSuccess)

    def test_retry_after_silence(self):
        self.reply_with(None, "ACK:STOP,OK")
        result = self.dispatcher.send_command_with_ack("CMD:STOP", "ACK:STOP")
        self.assertIsInstance(result, CommandSuccess)
        self.assertEqual(result.attempts, 2)
        self.assertEqual(self.send_line.call_count, 2)

    def test_timeout_after_all_attempts(self):
        start = time.monotonic()
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START", max_attempts=3, timeout=0.1)
        elapsed = time.monotonic() - start

        self.assertIsInstance(result, CommandTimeout)
        self.assertFalse(result.ok)
        self.assertEqual(result.attempts_used, 3)
        self.assertEqual(self.send_line.call_count, 3)
        self.assertGreaterEqual(elapsed, 2 * 0.05 + 3 * 0.1 - 0.01)

        metrics = self.dispatcher.metrics
        self.assertEqual(metrics.total_commands, 1)
        self.assertEqual(metrics.timeout_commands, 1)
        self.assertEqual(metrics.failed_commands, 0)

    def test_prefix_mismatch_is_validation_error(self):
        self.reply_with("NAK:START", "NAK:START", "NAK:START")
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.assertIsInstance(result, CommandValidationError)
        self.assertEqual(result.response, "NAK:START")
        self.assertEqual(result.attempts_used, 3)
        self.assertEqual(self.dispatcher.metrics.failed_commands, 1)

    def test_mismatch_then_match(self):
        self.reply_with("STATUS,IDLE", "ACK:START,OK")
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.assertIsInstance(result, CommandSuccess)
        self.assertEqual(result.attempts, 2)

    def test_write_failure_consumes_attempt(self):
        self.send_line.side_effect = WriteError("broken pipe")
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.assertIsInstance(result, CommandSendError)
        self.assertEqual(result.attempts_used, 3)
        self.assertIn("broken pipe", result.message)
        self.assertEqual(self.dispatcher.metrics.failed_commands, 1)

    def test_write_failure_then_success(self):
        calls = []

        def send(command):
            calls.append(command)
            if len(calls) == 1:
                raise WriteError("glitch")
            self.dispatcher.offer_response("ACK:START,OK")

        self.send_line.side_effect = send
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.assertIsInstance(result, CommandSuccess)
        self.assertEqual(result.attempts, 2)

    def test_write_failure_with_lost_connection(self):
        def send(command):
            self.connected = False
            raise WriteError("device gone")

        self.send_line.side_effect = send
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.assertIsInstance(result, CommandNotConnected)
        self.assertEqual(self.send_line.call_count, 1)
        self.assertEqual(self.dispatcher.metrics.failed_commands, 1)

    def test_unencodable_command_is_send_error_without_retry(self):
        self.send_line.side_effect = ValueError("Command must be a single line")
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.assertIsInstance(result, CommandSendError)
        self.assertEqual(result.attempts_used, 1)
        self.assertIn("single line", result.message)
        self.assertEqual(self.send_line.call_count, 1)
        self.assertEqual(self.dispatcher.metrics.total_commands, 1)
        self.assertEqual(self.dispatcher.metrics.failed_commands, 1)

    def test_unencodable_command_releases_slot(self):
        self.send_line.side_effect = UnicodeEncodeError("ascii", "CMD:Ä", 4, 5, "ordinal not in range")
        self.assertIsInstance(self.dispatcher.send_command_with_ack("CMD:Ä"), CommandSendError)

        self.reply_with("ACK:START,OK")
        self.assertIsInstance(self.dispatcher.start_survey(), CommandSuccess)

    def test_not_connected_never_touches_transport(self):
        self.connected = False
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.assertIsInstance(result, CommandNotConnected)
        self.send_line.assert_not_called()
        self.assertEqual(self.dispatcher.metrics.total_commands, 0)

    def test_invalid_attempt_budget(self):
        with self.assertRaises(ValueError):
            self.dispatcher.send_command_with_ack("CMD:START", max_attempts=0)


class TestCorrelation(DispatcherTestCase):

    def test_late_response_not_applied_to_next_command(self):
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START", max_attempts=1)
        self.assertIsInstance(result, CommandTimeout)

        # Arrives after the ticket expired
        self.assertFalse(self.dispatcher.offer_response("ACK:START,OK"))

        self.reply_with("ACK:STOP,OK")
        result = self.dispatcher.send_command_with_ack("CMD:STOP", "ACK:STOP")
        self.assertIsInstance(result, CommandSuccess)
        self.assertEqual(result.response, "ACK:STOP,OK")

    def test_unsolicited_response_dropped(self):
        self.assertFalse(self.dispatcher.offer_response("STATUS,RUNNING"))
        self.assertFalse(self.dispatcher.has_pending)

    def test_response_claimed_once(self):
        claimed = []

        def send(command):
            claimed.append(self.dispatcher.offer_response("ACK:START,OK"))
            claimed.append(self.dispatcher.offer_response("ACK:START,OK"))

        self.send_line.side_effect = send
        self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.assertEqual(claimed, [True, False])

    def test_concurrent_callers_are_serialized(self):
        in_flight = []
        overlap = []
        lock = threading.Lock()

        def send(command):
            with lock:
                in_flight.append(command)
                if len(in_flight) > 1:
                    overlap.append(list(in_flight))
            name = command.split(":", 1)[1]

            def answer():
                with lock:
                    in_flight.remove(command)
                self.dispatcher.offer_response(f"ACK:{name},OK")

            threading.Timer(0.02, answer).start()

        self.send_line.side_effect = send
        results = {}

        def run(name):
            results[name] = self.dispatcher.send_command_with_ack(f"CMD:{name}", f"ACK:{name}", timeout=1.0)

        threads = [threading.Thread(target=run, args=(name,)) for name in ("START", "PAUSE", "RESUME", "STOP")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5.0)

        self.assertEqual(overlap, [])
        for name, result in results.items():
            self.assertIsInstance(result, CommandSuccess, name)
            self.assertEqual(result.response, f"ACK:{name},OK")
        self.assertEqual(self.dispatcher.metrics.successful_commands, 4)

    def test_abort_pending_cancels_wait(self):
        self.dispatcher = CommandDispatcher(
            self.send_line, lambda: self.connected, response_timeout=5.0, retry_delay=5.0
        )

        def abort_soon(command):
            threading.Timer(0.05, self.dispatcher.abort_pending, args=("Disconnected",)).start()

        self.send_line.side_effect = abort_soon
        start = time.monotonic()
        result = self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")

        self.assertLess(time.monotonic() - start, 2.0)
        self.assertIsInstance(result, CommandNotConnected)
        self.assertEqual(result.message, "Disconnected")
        self.assertFalse(self.dispatcher.has_pending)


class TestMetrics(DispatcherTestCase):

    def test_successes_and_timeouts(self):
        successes, timeouts = 3, 2
        for _ in range(successes):
            self.reply_with("ACK:START,OK")
            self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.send_line.side_effect = None
        for _ in range(timeouts):
            self.dispatcher.send_command_with_ack("CMD:START", "ACK:START", max_attempts=2)

        metrics = self.dispatcher.metrics
        self.assertEqual(metrics.total_commands, successes + timeouts)
        self.assertEqual(metrics.successful_commands, successes)
        self.assertEqual(metrics.timeout_commands, timeouts)
        self.assertEqual(metrics.failed_commands, 0)
        self.assertAlmostEqual(metrics.success_rate, 60.0)

    def test_average_latency(self):
        clock = MagicMock(side_effect=[10.0, 10.25, 20.0, 20.75])
        self.dispatcher = CommandDispatcher(self.send_line, lambda: True, clock=clock)
        self.reply_with("ACK:START,OK", "ACK:STOP,OK")
        self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.dispatcher.send_command_with_ack("CMD:STOP", "ACK:STOP")
        self.assertAlmostEqual(self.dispatcher.metrics.average_response_ms, 500.0)

    def test_reset_metrics(self):
        self.reply_with("ACK:START,OK")
        self.dispatcher.send_command_with_ack("CMD:START", "ACK:START")
        self.dispatcher.reset_metrics()
        self.assertEqual(self.dispatcher.metrics.total_commands, 0)
        self.assertEqual(self.dispatcher.metrics.success_rate, 0.0)


class TestConvenienceCommands(DispatcherTestCase):

    def test_survey_commands(self):
        for method, command in (
            (self.dispatcher.start_survey, "CMD:START"),
            (self.dispatcher.stop_survey, "CMD:STOP"),
            (self.dispatcher.pause_survey, "CMD:PAUSE"),
            (self.dispatcher.resume_survey, "CMD:RESUME"),
        ):
            with self.subTest(command=command):
                self.reply_with(f"ACK:{command[4:]},OK")
                self.assertIsInstance(method(), CommandSuccess)
                self.assertEqual(self.send_line.call_args.args[0], command)

    def test_calibrate(self):
        self.reply_with("ACK:CAL,OK")
        result = self.dispatcher.calibrate(60, 20)
        self.assertIsInstance(result, CommandSuccess)
        self.send_line.assert_called_once_with("CMD:CAL,DIAM=60.0,PULSE=20")

    def test_calibrate_defaults(self):
        self.reply_with("ACK:CAL,OK")
        self.assertIsInstance(self.dispatcher.calibrate(), CommandSuccess)
        self.send_line.assert_called_once_with("CMD:CAL,DIAM=60.0,PULSE=20")

    def test_calibrate_rejects_out_of_range(self):
        with self.assertRaises(ValueError):
            self.dispatcher.calibrate(150, 20)
        self.send_line.assert_not_called()

    def test_query_status(self):
        self.reply_with("STATUS,RUNNING,SESSION=12345")
        status = self.dispatcher.query_status()
        self.assertIsInstance(status, DeviceStatus)
        self.assertEqual(status.state, "RUNNING")
        self.assertEqual(status.session_id, "12345")

    def test_query_status_failure(self):
        self.connected = False
        self.assertIsNone(self.dispatcher.query_status())


class TestResponseObservers(DispatcherTestCase):

    def test_subscribers_see_all_responses(self):
        seen = []
        unsubscribe = self.dispatcher.subscribe_responses(seen.append)
        self.dispatcher.offer_response("STATUS,PAUSED")
        self.reply_with("ACK:START,OK")
        self.dispatcher.start_survey()
        unsubscribe()
        self.dispatcher.offer_response("STATUS,IDLE")
        self.assertEqual(seen, ["STATUS,PAUSED", "ACK:START,OK"])

    def test_wait_for_response(self):
        threading.Timer(0.02, self.dispatcher.offer_response, args=("STATUS,IDLE",)).start()
        self.assertEqual(self.dispatcher.wait_for_response("IDLE", timeout=2.0), "STATUS,IDLE")

    def test_wait_for_response_timeout(self):
        self.assertIsNone(self.dispatcher.wait_for_response("NEVER", timeout=0.05))


if __name__ == '__main__':
    unittest.main()
