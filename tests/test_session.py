import threading
import unittest
from unittest.mock import patch

from ocp_link import config
from ocp_link.link import LinkError
from ocp_link.monitor import ConnectionMonitor, ConnectionState, FailureCountPolicy
from ocp_link.ports import PortCatalog
from ocp_link.session import ReconnectOrchestrator, SessionContext, run_session
from ocp_link.sink import ApplyResult, SettingsSink
from support import StubLink

FAST = config.LinkSettings(reconnect_delay_s=0.0, reconnect_retry_delay_s=0.0)


class RecordingSink(SettingsSink):
    """Collects applied maps and stops the session after `limit` maps."""

    def __init__(self, stop_event, limit):
        self.stop_event = stop_event
        self.limit = limit
        self.maps = []

    def begin(self, settings):
        self.maps.append(dict(settings))
        if len(self.maps) >= self.limit:
            self.stop_event.set()

    def apply_setting(self, key, value):
        return ApplyResult.success(key)


class TestReconnectOrchestrator(unittest.TestCase):

    def setUp(self):
        self.stop = threading.Event()
        self.context = SessionContext(FAST, PortCatalog(lambda: []), SettingsSink())
        self.old_link = StubLink()
        self.context.attach(self.old_link)
        self.orchestrator = ReconnectOrchestrator(self.context, self.stop)

    @patch('ocp_link.session.discover_and_connect')
    def test_success(self, mock_discover):
        new_link = StubLink(port="/dev/ttyACM1")
        mock_discover.return_value = new_link

        self.assertTrue(self.orchestrator.reconnect("No heartbeat"))

        self.assertEqual(self.old_link.close_count, 1)
        self.assertIs(self.context.link, new_link)
        self.assertIs(self.context.reader.link, new_link)
        self.assertEqual(self.context.monitor.state, ConnectionState.CONNECTED)
        self.assertEqual(self.context.stats.reconnections, 1)

    @patch('ocp_link.session.discover_and_connect')
    def test_failure_stays_reconnecting(self, mock_discover):
        mock_discover.return_value = None

        with patch('ocp_link.utils.wait_or_cancel', return_value=True) as mock_wait:
            self.assertFalse(self.orchestrator.reconnect("Panel disconnected"))

        self.assertIsNone(self.context.link)
        self.assertEqual(self.context.monitor.state, ConnectionState.RECONNECTING)
        waits = [c.args[0] for c in mock_wait.call_args_list]
        self.assertEqual(waits, [FAST.reconnect_delay_s, FAST.reconnect_retry_delay_s])

    @patch('ocp_link.session.discover_and_connect')
    def test_cancelled_before_discovery(self, mock_discover):
        self.stop.set()

        self.assertFalse(self.orchestrator.reconnect("Panel disconnected"))

        mock_discover.assert_not_called()
        self.assertEqual(self.old_link.close_count, 1)


class TestRunSession(unittest.TestCase):

    def setUp(self):
        self.stop = threading.Event()

    def make_context(self, sink, monitor=None, settings=FAST):
        return SessionContext(settings, PortCatalog(lambda: []), sink, monitor=monitor)

    def test_decodes_and_applies(self):
        sink = RecordingSink(self.stop, limit=2)
        context = self.make_context(sink)
        context.attach(StubLink([
            b'TEENSY_OCP_001,1.0.0,1,0,0,2,1,25\n',
            b'\r\n',
            b'{"ocp": \n',
            b'SPINDLE=1200\n',
        ]))

        stats = run_session(context, self.stop)

        self.assertEqual(stats.decoded, 2)
        self.assertEqual(stats.decode_failures, 2)
        self.assertTrue(sink.maps[0]["switch_feedhold"])
        self.assertEqual(sink.maps[1], {"SPINDLE": 1200})

    def test_handshake_backlog_is_decoded_first(self):
        sink = RecordingSink(self.stop, limit=2)
        context = self.make_context(sink)
        link = StubLink([b'FEED=50\n'])
        link.backlog = b'SPINDLE=1200\n'
        context.attach(link)

        run_session(context, self.stop)

        self.assertEqual(sink.maps, [{"SPINDLE": 1200}, {"FEED": 50}])

    @patch('ocp_link.session.discover_and_connect')
    def test_link_error_triggers_reconnect(self, mock_discover):
        first = StubLink([LinkError("device disconnected")])
        second = StubLink([b'heartbeat\n'], port="/dev/ttyACM1")
        mock_discover.return_value = second
        sink = RecordingSink(self.stop, limit=1)
        context = self.make_context(sink)
        context.attach(first)

        stats = run_session(context, self.stop)

        self.assertEqual(first.close_count, 1)
        self.assertEqual(stats.reconnections, 1)
        self.assertEqual(sink.maps, [{"Command": "heartbeat"}])
        mock_discover.assert_called_once()

    @patch('ocp_link.session.discover_and_connect')
    def test_failure_count_policy_triggers_once(self, mock_discover):
        second = StubLink([b'TEENSY_OCP_001,1.0.0\n'], port="/dev/ttyACM1")
        mock_discover.return_value = second
        sink = RecordingSink(self.stop, limit=1)
        monitor = ConnectionMonitor(FailureCountPolicy(max_failures=3))
        context = self.make_context(sink, monitor=monitor)
        first = StubLink()
        context.attach(first)

        stats = run_session(context, self.stop)

        self.assertEqual(stats.empty_reads, 3)
        self.assertEqual(stats.reconnections, 1)
        self.assertEqual(first.close_count, 1)
        self.assertEqual(monitor.state, ConnectionState.CONNECTED)
        self.assertEqual(monitor.policy.consecutive_failures, 0)
        mock_discover.assert_called_once()

    @patch('ocp_link.session.discover_and_connect')
    def test_retries_until_device_returns(self, mock_discover):
        link = StubLink([b'heartbeat\n'])
        mock_discover.side_effect = [None, None, link]
        sink = RecordingSink(self.stop, limit=1)
        context = self.make_context(sink)

        stats = run_session(context, self.stop)

        self.assertEqual(mock_discover.call_count, 3)
        self.assertEqual(stats.reconnections, 1)
        self.assertIs(context.link, link)

    def test_stops_when_cancelled(self):
        self.stop.set()
        context = self.make_context(RecordingSink(self.stop, limit=1))
        context.attach(StubLink([b'heartbeat\n']))

        stats = run_session(context, self.stop)

        self.assertEqual(stats.decoded, 0)


if __name__ == '__main__':
    unittest.main()
