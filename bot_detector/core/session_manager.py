"""Analysis session lifecycle."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional

from bot_detector.exceptions import InvalidTransitionError, SessionNotFoundError, ValidationError
from bot_detector.models import AnalysisSessionDTO, AnalysisSessionORM, SessionStatus
from bot_detector.storage import Store

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.EXTRACTING_DATA, SessionStatus.FAILED}),
    SessionStatus.EXTRACTING_DATA: frozenset({SessionStatus.DATA_EXTRACTED, SessionStatus.FAILED}),
    SessionStatus.DATA_EXTRACTED: frozenset({SessionStatus.ANALYZING, SessionStatus.FAILED}),
    SessionStatus.ANALYZING: frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED}),
    # A finished session can be re-submitted as a whole
    SessionStatus.COMPLETED: frozenset({SessionStatus.EXTRACTING_DATA}),
    SessionStatus.FAILED: frozenset({SessionStatus.EXTRACTING_DATA}),
}

IN_FLIGHT_STATUSES = frozenset({
    SessionStatus.EXTRACTING_DATA,
    SessionStatus.DATA_EXTRACTED,
    SessionStatus.ANALYZING,
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """
    Owns creation, status transitions and final counters of analysis sessions.

    ``completed_at`` is written together with a terminal status and cleared
    when a finished session is re-submitted, so it is set exactly when the
    status is terminal.
    """

    def __init__(self, store: Store, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or _utcnow

    def create_session(
        self,
        community: str,
        name: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> AnalysisSessionDTO:
        """
        Create a ``pending`` session for ``community``.

        Args:
            community: Community (subreddit) the session analyses
            name: Display name; defaults to ``Analysis <timestamp>``
            parameters: Extra parameters stored with the session

        Returns:
            The new session
        """
        community = (community or "").strip()
        if not community:
            raise ValidationError("A community (subreddit) is required to create a session")

        now = self.clock()
        analysis_parameters = {"subreddit": community, "created_at": now.isoformat()}
        analysis_parameters.update(parameters or {})

        with self.store.session_scope() as session:
            orm = AnalysisSessionORM(
                session_name=name or f"Analysis {now.isoformat()}",
                subreddit=community,
                status=SessionStatus.PENDING.value,
                total_accounts_analyzed=0,
                bots_detected=0,
                analysis_parameters=analysis_parameters,
                started_at=now,
                created_at=now,
            )
            session.add(orm)
            session.flush()
            dto = AnalysisSessionDTO.model_validate(orm)

        logger.info(f"Created analysis session {dto.id} for r/{community}")
        return dto

    def get_session(self, session_id: str) -> AnalysisSessionDTO:
        """
        Raises:
            SessionNotFoundError: If no session has this id
        """
        if not session_id:
            raise ValidationError("A session id is required")
        orm = self.store.get(AnalysisSessionORM, session_id)
        if orm is None:
            raise SessionNotFoundError(session_id)
        return AnalysisSessionDTO.model_validate(orm)

    def list_sessions(self, limit: Optional[int] = None) -> List[AnalysisSessionDTO]:
        """All sessions, newest first."""
        rows = self.store.list(AnalysisSessionORM, order_by="created_at", descending=True, limit=limit)
        return [AnalysisSessionDTO.model_validate(row) for row in rows]

    def delete_session(self, session_id: str, force: bool = False) -> None:
        """
        Delete a session that is not currently running.

        Args:
            session_id: Session to delete
            force: Delete even if the session looks mid-flight (e.g. after an interrupted run)

        Raises:
            SessionNotFoundError: If no session has this id
            ValidationError: If the session is mid-flight and ``force`` is not set
        """
        current = self.get_session(session_id)
        if current.status in IN_FLIGHT_STATUSES and not force:
            raise ValidationError(
                f"Session {session_id} is {current.status.value} and cannot be deleted until it finishes"
            )
        if not self.store.delete(AnalysisSessionORM, session_id):
            raise SessionNotFoundError(session_id)
        logger.info(f"Deleted analysis session {session_id}")

    def transition(
        self,
        session_id: str,
        status: SessionStatus,
        values: Optional[Mapping[str, Any]] = None,
        force: bool = False,
    ) -> AnalysisSessionDTO:
        """
        Move a session to ``status``.

        Args:
            session_id: Session to update
            status: Target status
            values: Extra columns written together with the status
            force: Skip the transition check; the last writer wins

        Raises:
            SessionNotFoundError: If no session has this id
            InvalidTransitionError: If ``status`` is not reachable from the current status
        """
        current = self.get_session(session_id)
        if not force and status not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransitionError(
                f"Session {session_id} cannot move from {current.status.value} to {status.value}"
            )

        update: Dict[str, Any] = {"status": status.value}
        if status.is_terminal:
            update["completed_at"] = self.clock()
        elif status == SessionStatus.EXTRACTING_DATA and current.status != SessionStatus.PENDING:
            # Re-submission starts a fresh run
            update.update(completed_at=None, error_message=None, started_at=self.clock())
        update.update(values or {})

        orm = self.store.update(AnalysisSessionORM, session_id, update)
        if orm is None:
            raise SessionNotFoundError(session_id)
        logger.info(f"Session {session_id}: {current.status.value} -> {status.value}")
        return AnalysisSessionDTO.model_validate(orm)

    def complete(self, session_id: str, total_accounts_analyzed: int, bots_detected: int) -> AnalysisSessionDTO:
        """Mark the session completed and record its final counters."""
        return self.transition(
            session_id,
            SessionStatus.COMPLETED,
            {"total_accounts_analyzed": total_accounts_analyzed, "bots_detected": bots_detected},
        )

    def fail(self, session_id: str, message: str) -> AnalysisSessionDTO:
        """Mark the session failed with ``message``."""
        return self.transition(session_id, SessionStatus.FAILED, {"error_message": message})
