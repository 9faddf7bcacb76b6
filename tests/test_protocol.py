"""Unit tests for the protocol layer.

Tests verify:
- Line classification by prefix
- Command text and wire encoding
- STATUS reply parsing
"""
import unittest

from roadsense.errors import ChecksumError
from roadsense.models import SampleSource
from roadsense.protocol import (
    DeviceCommand,
    DeviceStatus,
    FrameClassifier,
    FrameKind,
    RoadsenseProtocol,
    append_checksum,
    calibration_command,
    encode_command,
)

PIPE_LINE = append_checksum("DATA|S1|1000|10.0|5.0|0.1|1.0|1.0|1.0|1.0|1.0|1.0|3.9|RUNNING")
KEY_VALUE_LINE = "RS2,ODO=1234.56,TRIP=567.89,SPD=45.2,Z=-0.15,TIME=2025-02-11T10:30:45Z"


class TestFrameClassifier(unittest.TestCase):
    """Test classification of complete lines."""

    def setUp(self):
        self.classifier = FrameClassifier()

    def test_pipe_telemetry(self):
        frame = self.classifier.classify(PIPE_LINE)
        self.assertEqual(frame.kind, FrameKind.TELEMETRY)
        self.assertEqual(frame.sample.source, SampleSource.PIPE_CHECKSUMMED)
        self.assertIsNone(frame.error)

    def test_key_value_telemetry(self):
        frame = self.classifier.classify(KEY_VALUE_LINE)
        self.assertEqual(frame.kind, FrameKind.TELEMETRY)
        self.assertEqual(frame.sample.source, SampleSource.KEY_VALUE)

    def test_bad_checksum_is_invalid(self):
        frame = self.classifier.classify(PIPE_LINE[:-4] + "ZZZZ")
        self.assertEqual(frame.kind, FrameKind.INVALID)
        self.assertIsInstance(frame.error, ChecksumError)
        self.assertIsNone(frame.sample)

    def test_incomplete_key_value_is_invalid(self):
        frame = self.classifier.classify("RS2,ODO=1,SPD=2")
        self.assertEqual(frame.kind, FrameKind.INVALID)

    def test_responses(self):
        for line in ("ACK:START,OK", "STATUS,RUNNING,SESSION=1", "NAK:CAL,RANGE", "ERR:UNKNOWN"):
            with self.subTest(line=line):
                frame = self.classifier.classify(line)
                self.assertEqual(frame.kind, FrameKind.RESPONSE)
                self.assertEqual(frame.line, line)

    def test_unknown_lines(self):
        for line in ("hello", "DATA", "RS2", "ack:start,ok", "BOOT v1.2"):
            with self.subTest(line=line):
                self.assertEqual(self.classifier.classify(line).kind, FrameKind.UNKNOWN)

    def test_custom_response_prefixes(self):
        classifier = FrameClassifier(response_prefixes=("OK",))
        self.assertEqual(classifier.classify("OK START").kind, FrameKind.RESPONSE)
        self.assertEqual(classifier.classify("ACK:START,OK").kind, FrameKind.UNKNOWN)

    def test_received_at_propagated(self):
        frame = self.classifier.classify(KEY_VALUE_LINE, received_at=42.0)
        self.assertEqual(frame.sample.received_at, 42.0)


class TestCommands(unittest.TestCase):
    """Test command text builders."""

    def test_device_commands(self):
        self.assertEqual(DeviceCommand.START.text, "CMD:START")
        self.assertEqual(DeviceCommand.START.expected_prefix, "ACK:START")
        self.assertEqual(DeviceCommand.RESUME.expected_prefix, "ACK:RESUME")
        self.assertEqual(DeviceCommand.STATUS.text, "CMD:STATUS")
        self.assertEqual(DeviceCommand.STATUS.expected_prefix, "STATUS")

    def test_calibration_command(self):
        self.assertEqual(calibration_command(60, 20), "CMD:CAL,DIAM=60.0,PULSE=20")
        self.assertEqual(calibration_command(20.5, 1), "CMD:CAL,DIAM=20.5,PULSE=1")

    def test_calibration_out_of_range(self):
        for diameter, pulses in ((19.9, 20), (100.1, 20), (60, 0), (60, 101), (60, 2.5), (60, True)):
            with self.subTest(diameter=diameter, pulses=pulses):
                with self.assertRaises(ValueError):
                    calibration_command(diameter, pulses)

    def test_encode_command(self):
        self.assertEqual(encode_command("CMD:START"), b"CMD:START\n")
        self.assertEqual(encode_command(" CMD:STOP \n"), b"CMD:STOP\n")

    def test_encode_rejects_bad_input(self):
        with self.assertRaises(ValueError):
            encode_command("   ")
        with self.assertRaises(ValueError):
            encode_command("CMD:A\nCMD:B")

    def test_protocol_wrapper(self):
        protocol = RoadsenseProtocol()
        self.assertEqual(protocol.name, "roadsense")
        self.assertEqual(protocol.encode_command("CMD:PAUSE"), b"CMD:PAUSE\n")
        self.assertEqual(protocol.classify("ACK:PAUSE,OK").kind, FrameKind.RESPONSE)


class TestDeviceStatus(unittest.TestCase):
    """Test STATUS reply parsing."""

    def test_parse_status(self):
        status = DeviceStatus.from_response("STATUS,RUNNING,SESSION=12345", timestamp=1.0)
        self.assertEqual(status.state, "RUNNING")
        self.assertEqual(status.session_id, "12345")
        self.assertEqual(status.raw, "STATUS,RUNNING,SESSION=12345")
        self.assertEqual(status.timestamp, 1.0)

    def test_colon_variant(self):
        status = DeviceStatus.from_response("STATUS:PAUSED,SID=7,bat=3.8")
        self.assertEqual(status.state, "PAUSED")
        self.assertEqual(status.session_id, "7")
        self.assertEqual(status.fields["BAT"], "3.8")

    def test_bare_status(self):
        status = DeviceStatus.from_response("STATUS")
        self.assertIsNone(status.state)
        self.assertEqual(status.fields, {})

    def test_not_a_status_reply(self):
        self.assertIsNone(DeviceStatus.from_response("ACK:START,OK"))


if __name__ == '__main__':
    unittest.main()
