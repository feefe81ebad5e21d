"""
Pipeline orchestrator for the bot detection service.

Sequences extraction, scoring and verdict persistence for one analysis
session, keeping the session status in step with each stage boundary.
"""

import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select

from bot_detector.collector.extraction import ExtractionStage
from bot_detector.config import DetectionConfig
from bot_detector.core.session_manager import SessionManager
from bot_detector.detection.engine import BotProbabilityEngine
from bot_detector.exceptions import BotDetectionError, PipelineError
from bot_detector.models import (
    AccountORM,
    AccountRecord,
    ActivityAggregates,
    BotVerdict,
    BotVerdictORM,
    CommentORM,
    DetectionResult,
    PipelineResult,
    PostORM,
    SessionStatus,
)
from bot_detector.storage import Store

logger = logging.getLogger(__name__)

AGGREGATE_CHUNK_SIZE = 500


class PipelineOrchestrator:
    """
    Runs extraction, then scoring, then persistence for a session.

    A failure at any stage marks the session ``failed`` and is re-raised as a
    single :class:`~bot_detector.exceptions.PipelineError`. A cancelled or
    interrupted run also marks the session ``failed`` before the interruption
    propagates. Upserts that already happened are kept; re-running the
    session is safe.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        extraction_stage: ExtractionStage,
        engine: BotProbabilityEngine,
        store: Store,
        detection_config: Optional[DetectionConfig] = None,
        prometheus_exporter=None,
    ):
        logger.info("Initializing pipeline orchestrator")
        self.session_manager = session_manager
        self.extraction_stage = extraction_stage
        self.engine = engine
        self.store = store
        self.detection_config = detection_config or DetectionConfig()
        self.prometheus_exporter = prometheus_exporter

    async def run_pipeline(
        self,
        session_id: str,
        usernames: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        force: bool = False,
    ) -> PipelineResult:
        """
        Run the full pipeline for an existing session.

        Args:
            session_id: Session to run
            usernames: Restrict scoring to these accounts (default: every stored account)
            limit: Feed page size passed to the extraction stage
            force: Restart a session left mid-flight by an interrupted run

        Returns:
            Extraction counts and detection results

        Raises:
            SessionNotFoundError: If the session does not exist
            InvalidTransitionError: If the session is already running and ``force`` is not set
            PipelineError: If any stage fails
        """
        session = self.session_manager.get_session(session_id)
        self.session_manager.transition(session_id, SessionStatus.EXTRACTING_DATA, force=force)
        logger.info(f"Starting pipeline for session {session_id} (r/{session.subreddit})")

        stage = "extraction"
        try:
            extraction = await self.extraction_stage.run(session.subreddit, limit=limit)
            self.session_manager.transition(session_id, SessionStatus.DATA_EXTRACTED)

            stage = "analysis"
            self.session_manager.transition(session_id, SessionStatus.ANALYZING)
            detection = self.run_detection(usernames)

            stage = "completion"
            self.session_manager.complete(session_id, detection.users_analyzed, detection.bots_detected)
        except BaseException as e:
            message = str(e) or type(e).__name__
            logger.error(f"Pipeline for session {session_id} failed during {stage}: {message}", exc_info=True)
            self._mark_failed(session_id, message)
            if self.prometheus_exporter:
                self.prometheus_exporter.record_pipeline_run("failed")
            # Cancellation and interrupts keep propagating as themselves
            if not isinstance(e, Exception):
                raise
            raise PipelineError(session_id, stage, message) from e

        if self.prometheus_exporter:
            self.prometheus_exporter.record_pipeline_run("completed")
        logger.info(
            f"Pipeline for session {session_id} completed: {extraction.activity_count} activity items, "
            f"{detection.users_analyzed} accounts analysed, {detection.bots_detected} bots"
        )
        return PipelineResult(session_id=session_id, extraction=extraction, detection=detection)

    def _mark_failed(self, session_id: str, message: str) -> None:
        try:
            self.session_manager.fail(session_id, message)
        except BotDetectionError as e:
            logger.error(f"Could not mark session {session_id} as failed: {str(e)}")

    def run_detection(self, usernames: Optional[Sequence[str]] = None) -> DetectionResult:
        """
        Score stored accounts and persist their verdicts.

        Args:
            usernames: Restrict scoring to these accounts; None or empty scores all

        Returns:
            Number of accounts scored, number classified as bots, and the verdicts
        """
        filters = {"username": list(usernames)} if usernames else None
        rows = self.store.list(AccountORM, filters=filters, order_by="username")
        accounts = [AccountRecord.model_validate(row) for row in rows]

        if not accounts:
            logger.info("No accounts to analyse")
            return DetectionResult()

        aggregates = self._load_aggregates([account.username for account in accounts])
        verdicts = self.engine.score_batch(accounts, aggregates)
        self._persist_verdicts(verdicts)

        threshold = self.detection_config.bot_threshold
        bots_detected = sum(1 for verdict in verdicts if verdict.bot_probability > threshold)
        if self.prometheus_exporter:
            for verdict in verdicts:
                self.prometheus_exporter.record_verdict(verdict.bot_probability > threshold)

        logger.info(f"Analysis completed. Detected {bots_detected} potential bots out of {len(verdicts)} accounts")
        return DetectionResult(users_analyzed=len(verdicts), bots_detected=bots_detected, verdicts=verdicts)

    def _load_aggregates(self, usernames: List[str]) -> Dict[str, ActivityAggregates]:
        """Post count, post score sum and comment count per author."""
        aggregates = {username: ActivityAggregates() for username in usernames}
        chunks = [usernames[i:i + AGGREGATE_CHUNK_SIZE] for i in range(0, len(usernames), AGGREGATE_CHUNK_SIZE)]

        with self.store.session_scope() as session:
            for chunk in chunks:
                post_stmt = (
                    select(PostORM.author_username, func.count(), func.coalesce(func.sum(PostORM.score), 0))
                    .where(PostORM.author_username.in_(chunk))
                    .group_by(PostORM.author_username)
                )
                comment_stmt = (
                    select(CommentORM.author_username, func.count())
                    .where(CommentORM.author_username.in_(chunk))
                    .group_by(CommentORM.author_username)
                )
                for username, post_count, score_sum in session.execute(post_stmt):
                    aggregates[username].post_count = post_count
                    aggregates[username].post_score_sum = float(score_sum or 0)
                for username, comment_count in session.execute(comment_stmt):
                    aggregates[username].comment_count = comment_count
        return aggregates

    def _persist_verdicts(self, verdicts: List[BotVerdict]) -> None:
        records = [verdict.model_dump() for verdict in verdicts]
        self.store.upsert(BotVerdictORM, records, "username")
        logger.info(f"Stored {len(records)} bot detection results")
