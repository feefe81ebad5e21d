import pytest

from bot_detector.collector.extraction import ExtractionStage
from bot_detector.collector.rate_limiter import RateLimiter
from bot_detector.config import Config, DatabaseConfig, RateLimitConfig, RetryConfig
from bot_detector.core.pipeline import PipelineOrchestrator
from bot_detector.core.service import BotDetectionService
from bot_detector.core.session_manager import SessionManager
from bot_detector.detection.engine import BotProbabilityEngine
from bot_detector.storage import Store, create_db_engine, init_schema
from bot_detector.tests.stubs.upstream_stub import default_source, fixed_clock


@pytest.fixture
def store():
    """Store backed by a fresh in-memory SQLite database."""
    engine = create_db_engine(DatabaseConfig(url="sqlite://"))
    init_schema(engine)
    yield Store(engine)
    engine.dispose()


@pytest.fixture
def config():
    """Configuration with no request spacing and no retry delays."""
    return Config(
        client_id="test-id",
        client_secret="test-secret",
        rate_limit=RateLimitConfig(min_request_interval_ms=0, sleep_buffer_sec=0),
        retry=RetryConfig(profile_max_retries=1, initial_backoff=0.0, max_backoff=0.0),
        database=DatabaseConfig(url="sqlite://"),
    )


@pytest.fixture
def stub_source():
    return default_source()


@pytest.fixture
def extraction_stage(stub_source, store, config):
    return ExtractionStage(stub_source, store, RateLimiter(config.rate_limit), config, clock=fixed_clock)


@pytest.fixture
def session_manager(store):
    return SessionManager(store, clock=fixed_clock)


@pytest.fixture
def orchestrator(session_manager, extraction_stage, store, config):
    return PipelineOrchestrator(
        session_manager,
        extraction_stage,
        BotProbabilityEngine(config.detection, clock=fixed_clock),
        store,
        detection_config=config.detection,
    )


@pytest.fixture
def service(session_manager, orchestrator, stub_source):
    return BotDetectionService(session_manager, orchestrator, data_source=stub_source)
