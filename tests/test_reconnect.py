"""Unit tests for automatic reconnection."""
import unittest

from fakes import FakeByteStream, wait_for
from roadsense.config import ReconnectConfig
from roadsense.errors import ReadError
from roadsense.link import AutoReconnector, RoadsenseLink
from roadsense.link.reconnect import backoff_delays
from roadsense.models import LinkStatus

FAST = ReconnectConfig(base_delay=0.01, max_delay=0.04, multiplier=2.0, max_attempts=4)


class TestBackoff(unittest.TestCase):

    def test_default_schedule(self):
        self.assertEqual(list(backoff_delays(ReconnectConfig())), [1.0, 2.0, 4.0, 8.0, 16.0])

    def test_capped(self):
        config = ReconnectConfig(base_delay=5.0, max_delay=8.0, max_attempts=3)
        self.assertEqual(list(backoff_delays(config)), [5.0, 8.0, 8.0])


class TestAutoReconnector(unittest.TestCase):

    def setUp(self):
        self.stream = FakeByteStream()
        self.link = RoadsenseLink(self.stream)
        self.reconnector = AutoReconnector(self.link, FAST)
        self.reconnector.start()

    def tearDown(self):
        self.reconnector.stop()
        self.link.disconnect()

    def test_reconnects_after_read_failure(self):
        self.assertTrue(self.link.connect())
        self.stream.fail_read(ReadError("Device unplugged"))

        self.assertTrue(wait_for(lambda: self.stream.open_count == 2))
        self.assertTrue(wait_for(self.link.is_connected))

    def test_retries_failed_open_until_success(self):
        self.reconnector.stop()
        self.reconnector = AutoReconnector(
            self.link, ReconnectConfig(base_delay=0.01, max_delay=0.02, max_attempts=100)
        )
        self.reconnector.start()
        self.stream.fail_open = True
        self.assertFalse(self.link.connect())
        self.assertTrue(wait_for(lambda: self.stream.open_count >= 3))

        self.stream.fail_open = False
        self.assertTrue(wait_for(self.link.is_connected))

    def test_gives_up_after_budget(self):
        self.stream.fail_open = True
        self.link.connect()
        self.assertTrue(wait_for(lambda: self.stream.open_count == 1 + FAST.max_attempts))
        self.assertTrue(wait_for(lambda: not self.reconnector.running))
        self.assertEqual(self.link.state.status, LinkStatus.DISCONNECTED)

    def test_manual_disconnect_does_not_reconnect(self):
        self.link.connect()
        self.link.disconnect()
        self.assertFalse(self.reconnector.running)
        self.assertEqual(self.stream.open_count, 1)

    def test_stop(self):
        self.reconnector.stop()
        self.stream.fail_open = True
        self.link.connect()
        self.assertFalse(self.reconnector.running)
        self.assertEqual(self.stream.open_count, 1)


if __name__ == '__main__':
    unittest.main()
