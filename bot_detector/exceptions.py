"""Exception hierarchy for the bot detection pipeline."""

from typing import Optional


class BotDetectionError(Exception):
    """Base class for all errors raised by the pipeline."""


class ConfigurationError(BotDetectionError):
    """Required configuration (e.g. upstream credentials) is missing or invalid."""


class UpstreamFetchError(BotDetectionError):
    """A fatal failure talking to the upstream data source (auth or page fetch)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class PerAuthorFetchError(BotDetectionError):
    """Fetching a single author's profile failed. Recoverable: the author is skipped."""

    def __init__(self, username: str, message: str):
        super().__init__(f"Failed to fetch profile for {username}: {message}")
        self.username = username


class PersistenceError(BotDetectionError):
    """A read or write against the persistent store failed."""


class ValidationError(BotDetectionError):
    """A request-level error: bad input, unknown ids, or illegal operations."""


class SessionNotFoundError(ValidationError):
    """No analysis session exists with the given id."""

    def __init__(self, session_id: str):
        super().__init__(f"Analysis session not found: {session_id}")
        self.session_id = session_id


class InvalidTransitionError(ValidationError):
    """The requested session status change is not allowed from the current status."""


class UnknownActionError(ValidationError):
    """An action string did not map to any entry-point operation."""


class PipelineError(BotDetectionError):
    """Single pipeline-level failure reported to callers of ``run_pipeline``."""

    def __init__(self, session_id: str, stage: str, message: str):
        super().__init__(f"Pipeline for session {session_id} failed during {stage}: {message}")
        self.session_id = session_id
        self.stage = stage
