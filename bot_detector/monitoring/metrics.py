"""Prometheus metrics for monitoring the bot detection pipeline."""

import logging
import time
from typing import Optional

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

ACTIVITY_EXTRACTED = Counter(
    "bot_detector_activity_extracted_total",
    "Total number of posts and comments extracted",
    ["community"],
)

AUTHORS_EXTRACTED = Counter(
    "bot_detector_authors_extracted_total",
    "Total number of author profiles extracted",
    ["community"],
)

AUTHOR_FETCH_FAILURES = Counter(
    "bot_detector_author_fetch_failures_total",
    "Number of author profile fetches that were skipped after failing",
)

API_ERRORS = Counter(
    "bot_detector_api_errors_total",
    "Number of upstream API errors encountered",
    ["error_type"],
)

VERDICTS = Counter(
    "bot_detector_verdicts_total",
    "Number of accounts scored, by classification",
    ["classification"],
)

PIPELINE_RUNS = Counter(
    "bot_detector_pipeline_runs_total",
    "Number of pipeline runs, by outcome",
    ["outcome"],
)

REQUEST_DURATION = Histogram(
    "bot_detector_request_duration_seconds",
    "Duration of upstream API requests in seconds",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)


class PrometheusExporter:
    """Prometheus metrics exporter for the bot detection pipeline."""

    def __init__(self, port: int = 8000):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
        """
        self.port = port
        self.server_started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server."""
        if not self.server_started:
            try:
                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Started Prometheus metrics server on port {self.port}")
            except Exception as e:
                logger.error(f"Failed to start Prometheus metrics server: {str(e)}")

    def record_activity_extracted(self, community: str, count: int) -> None:
        ACTIVITY_EXTRACTED.labels(community=community).inc(count)

    def record_authors_extracted(self, community: str, count: int) -> None:
        AUTHORS_EXTRACTED.labels(community=community).inc(count)

    def record_author_fetch_failure(self) -> None:
        AUTHOR_FETCH_FAILURES.inc()

    def record_api_error(self, error_type: str) -> None:
        """
        Record an API error.

        Args:
            error_type: Type of API error (e.g., '5xx', '429', 'connection')
        """
        API_ERRORS.labels(error_type=error_type).inc()

    def record_verdict(self, is_bot: bool) -> None:
        VERDICTS.labels(classification="bot" if is_bot else "organic").inc()

    def record_pipeline_run(self, outcome: str) -> None:
        """
        Record a finished pipeline run.

        Args:
            outcome: 'completed' or 'failed'
        """
        PIPELINE_RUNS.labels(outcome=outcome).inc()

    def time_request(self) -> "RequestTimer":
        """
        Create a context manager for timing API requests.

        Returns:
            RequestTimer context manager
        """
        return RequestTimer()


class RequestTimer:
    """Context manager for timing API requests."""

    def __init__(self):
        self.start_time: Optional[float] = None

    def __enter__(self) -> "RequestTimer":
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            REQUEST_DURATION.observe(time.time() - self.start_time)
