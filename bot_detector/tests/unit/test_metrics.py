"""Tests for the monitoring module."""

import unittest
from unittest.mock import patch

from bot_detector.monitoring.metrics import PrometheusExporter, RequestTimer


class TestPrometheusExporter(unittest.TestCase):
    """Test cases for the PrometheusExporter class."""

    def setUp(self):
        """Set up test environment."""
        self.exporter = PrometheusExporter()

    def test_init(self):
        self.assertEqual(self.exporter.port, 8000)
        self.assertFalse(self.exporter.server_started)

    def test_start_server(self):
        with patch("bot_detector.monitoring.metrics.start_http_server") as mock_start_server:
            self.exporter.start_server()
            self.exporter.start_server()

            mock_start_server.assert_called_once_with(8000)
            self.assertTrue(self.exporter.server_started)

    def test_start_server_failure_is_logged(self):
        with patch("bot_detector.monitoring.metrics.start_http_server", side_effect=OSError("in use")):
            with self.assertLogs("bot_detector.monitoring.metrics", level="ERROR"):
                self.exporter.start_server()
            self.assertFalse(self.exporter.server_started)

    def test_record_activity_extracted(self):
        with patch("bot_detector.monitoring.metrics.ACTIVITY_EXTRACTED") as mock_counter:
            self.exporter.record_activity_extracted("python", 25)

            mock_counter.labels.assert_called_once_with(community="python")
            mock_counter.labels.return_value.inc.assert_called_once_with(25)

    def test_record_authors_extracted(self):
        with patch("bot_detector.monitoring.metrics.AUTHORS_EXTRACTED") as mock_counter:
            self.exporter.record_authors_extracted("python", 7)

            mock_counter.labels.assert_called_once_with(community="python")
            mock_counter.labels.return_value.inc.assert_called_once_with(7)

    def test_record_author_fetch_failure(self):
        with patch("bot_detector.monitoring.metrics.AUTHOR_FETCH_FAILURES") as mock_counter:
            self.exporter.record_author_fetch_failure()
            mock_counter.inc.assert_called_once()

    def test_record_api_error(self):
        with patch("bot_detector.monitoring.metrics.API_ERRORS") as mock_counter:
            self.exporter.record_api_error("5xx")

            mock_counter.labels.assert_called_once_with(error_type="5xx")
            mock_counter.labels.return_value.inc.assert_called_once()

    def test_record_verdict(self):
        with patch("bot_detector.monitoring.metrics.VERDICTS") as mock_counter:
            self.exporter.record_verdict(True)
            self.exporter.record_verdict(False)

            self.assertEqual(
                [c.kwargs for c in mock_counter.labels.call_args_list],
                [{"classification": "bot"}, {"classification": "organic"}],
            )

    def test_record_pipeline_run(self):
        with patch("bot_detector.monitoring.metrics.PIPELINE_RUNS") as mock_counter:
            self.exporter.record_pipeline_run("failed")

            mock_counter.labels.assert_called_once_with(outcome="failed")
            mock_counter.labels.return_value.inc.assert_called_once()

    def test_time_request(self):
        with patch("bot_detector.monitoring.metrics.REQUEST_DURATION") as mock_histogram, \
                patch("bot_detector.monitoring.metrics.time.time", side_effect=[10.0, 12.5]):
            timer = self.exporter.time_request()
            self.assertIsInstance(timer, RequestTimer)

            with timer:
                pass

            mock_histogram.observe.assert_called_once_with(2.5)


if __name__ == "__main__":
    unittest.main()
