"""
Entry points of the bot detection service.

:class:`BotDetectionService` exposes typed operations for surrounding tooling.
``dispatch`` maps the action strings used by request/response transports onto
those operations.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from bot_detector.collector.extraction import ExtractionStage
from bot_detector.collector.rate_limiter import RateLimiter
from bot_detector.config import Config
from bot_detector.core.pipeline import PipelineOrchestrator
from bot_detector.core.session_manager import SessionManager
from bot_detector.detection.engine import BotProbabilityEngine
from bot_detector.exceptions import ConfigurationError, UnknownActionError, ValidationError
from bot_detector.models import AnalysisSessionDTO, DetectionResult, PipelineResult
from bot_detector.monitoring.metrics import PrometheusExporter
from bot_detector.storage import Store, create_db_engine, init_schema
from bot_detector.upstream import RedditClient

logger = logging.getLogger(__name__)

ACTIONS = ("create", "get", "list", "delete", "run-full-analysis")


class BotDetectionService:
    """Facade over session management and the detection pipeline."""

    def __init__(
        self,
        session_manager: SessionManager,
        orchestrator: PipelineOrchestrator,
        data_source: Any = None,
    ):
        """
        Args:
            session_manager: Owner of the session lifecycle
            orchestrator: Pipeline that runs sessions
            data_source: Upstream client closed by :meth:`close`, if it has a ``close`` coroutine
        """
        self.session_manager = session_manager
        self.orchestrator = orchestrator
        self.data_source = data_source

    def create_session(
        self,
        community: str,
        name: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> AnalysisSessionDTO:
        return self.session_manager.create_session(community, name=name, parameters=parameters)

    def get_session(self, session_id: str) -> AnalysisSessionDTO:
        return self.session_manager.get_session(session_id)

    def list_sessions(self) -> List[AnalysisSessionDTO]:
        """Sessions ordered by creation time, newest first."""
        return self.session_manager.list_sessions()

    def delete_session(self, session_id: str, force: bool = False) -> None:
        self.session_manager.delete_session(session_id, force=force)

    async def run_pipeline(
        self,
        session_id: str,
        usernames: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        force: bool = False,
    ) -> PipelineResult:
        return await self.orchestrator.run_pipeline(session_id, usernames=usernames, limit=limit, force=force)

    def run_detection(self, usernames: Optional[Sequence[str]] = None) -> DetectionResult:
        """Score stored accounts without running extraction or touching any session."""
        return self.orchestrator.run_detection(usernames)

    async def dispatch(self, action: str, payload: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Run the operation named by ``action`` and return a JSON-ready response.

        Args:
            action: One of ``create``, ``get``, ``list``, ``delete``, ``run-full-analysis``
            payload: Operation arguments (``session_name``, ``subreddit``, ``session_id``,
                ``usernames``, ``limit``, ``force``)

        Raises:
            UnknownActionError: If ``action`` is not recognised
            ValidationError: If a required argument is missing or refers to nothing
        """
        payload = payload or {}

        if action == "create":
            session = self.create_session(
                payload.get("subreddit"),
                name=payload.get("session_name"),
            )
            return {
                "success": True,
                "session": session.model_dump(mode="json"),
                "message": "Analysis session created successfully",
            }

        if action == "get":
            session = self.get_session(_require(payload, "session_id"))
            return {"success": True, "session": session.model_dump(mode="json")}

        if action == "list":
            sessions = self.list_sessions()
            return {"success": True, "sessions": [s.model_dump(mode="json") for s in sessions]}

        if action == "delete":
            self.delete_session(_require(payload, "session_id"), force=bool(payload.get("force")))
            return {"success": True, "message": "Analysis session deleted successfully"}

        if action == "run-full-analysis":
            result = await self.run_pipeline(
                _require(payload, "session_id"),
                usernames=payload.get("usernames"),
                limit=payload.get("limit"),
                force=bool(payload.get("force")),
            )
            return {
                "success": True,
                "extraction_result": result.extraction.model_dump(mode="json"),
                "detection_result": result.detection.model_dump(mode="json"),
                "message": "Full analysis pipeline completed successfully",
            }

        raise UnknownActionError(f"Unknown action: {action}")

    async def close(self) -> None:
        """Release the upstream client's resources."""
        close = getattr(self.data_source, "close", None)
        if close is not None:
            await close()


def _require(payload: Mapping[str, Any], key: str) -> Any:
    value = payload.get(key)
    if not value:
        raise ValidationError(f"Missing required parameter: {key}")
    return value


def build_service(
    config: Config,
    data_source: Any = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> BotDetectionService:
    """
    Wire the store, upstream client and pipeline from configuration.

    Args:
        config: Application configuration
        data_source: Upstream source to use instead of a RedditClient
        clock: Returns the current UTC time; defaults to the system clock

    Returns:
        A ready-to-use service

    Raises:
        ConfigurationError: If any setting is invalid. Missing credentials are
            reported later, when extraction first needs them.
    """
    credential_errors = set(config.credential_errors())
    errors = [error for error in config.validate() if error not in credential_errors]
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise ConfigurationError("Invalid configuration: " + "; ".join(errors))

    engine = create_db_engine(config.database)
    init_schema(engine)
    store = Store(engine)

    prometheus_exporter = None
    if config.monitoring.enable_prometheus:
        prometheus_exporter = PrometheusExporter(port=config.monitoring.prometheus_port)
        prometheus_exporter.start_server()

    rate_limiter = RateLimiter(config.rate_limit)
    if data_source is None:
        data_source = RedditClient(config, rate_limiter=rate_limiter)

    extraction_stage = ExtractionStage(
        data_source,
        store,
        rate_limiter,
        config,
        prometheus_exporter=prometheus_exporter,
        clock=clock,
    )
    session_manager = SessionManager(store, clock=clock)
    orchestrator = PipelineOrchestrator(
        session_manager,
        extraction_stage,
        BotProbabilityEngine(config.detection, clock=clock),
        store,
        detection_config=config.detection,
        prometheus_exporter=prometheus_exporter,
    )
    logger.info("Bot detection service initialized")
    return BotDetectionService(session_manager, orchestrator, data_source=data_source)
