import signal
import unittest
from unittest.mock import patch

from app import main as app_main
from support import StubLink


@patch('signal.signal')
class TestMain(unittest.TestCase):

    @patch('app.main.discover_and_connect')
    def test_interrupt_during_discovery_exits_cleanly(self, mock_discover, mock_signal):
        def interrupted(catalog, settings, stop_event):
            stop_event.set()
            return None
        mock_discover.side_effect = interrupted

        self.assertEqual(app_main.main([]), 0)

        handler = mock_signal.call_args_list[0][0][1]
        self.assertEqual(mock_signal.call_args_list[0][0][0], signal.SIGINT)
        self.assertTrue(callable(handler))
        self.assertEqual(mock_signal.call_count, 2)

    @patch('app.main.discover_and_connect', return_value=None)
    def test_no_panel_found(self, mock_discover, mock_signal):
        with self.assertLogs(level='ERROR'):
            self.assertEqual(app_main.main([]), 1)

        _, _, stop_event = mock_discover.call_args[0]
        self.assertFalse(stop_event.is_set())

    @patch('app.main.run_session')
    @patch('app.main.discover_and_connect')
    def test_session_link_closed_on_exit(self, mock_discover, mock_run, mock_signal):
        link = StubLink()
        mock_discover.return_value = link

        self.assertEqual(app_main.main(["--policy", "failure_count"]), 0)

        context, stop_event = mock_run.call_args[0]
        self.assertIs(stop_event, mock_discover.call_args[0][2])
        self.assertEqual(context.settings.health_policy, "failure_count")
        self.assertEqual(link.close_count, 1)


if __name__ == '__main__':
    unittest.main()
