"""
Pydantic Data Transfer Objects (DTOs) for the bot detection pipeline.

These models carry data between the upstream client, the extraction stage,
the scoring engine and the entry points.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    PENDING = "pending"
    EXTRACTING_DATA = "extracting_data"
    DATA_EXTRACTED = "data_extracted"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


class ActivityItem(BaseModel):
    """A post or comment as returned by the upstream data source."""
    platform_id: str
    kind: Literal["post", "comment"] = "post"
    author_username: Optional[str] = None
    community: Optional[str] = None
    score: int = 0
    created_utc: Optional[float] = None
    # Post fields
    title: Optional[str] = None
    content: Optional[str] = None
    upvote_ratio: Optional[float] = None
    num_comments: int = 0
    is_self: bool = False
    domain: Optional[str] = None
    url: Optional[str] = None
    # Comment fields
    post_id: Optional[str] = None
    parent_id: Optional[str] = None
    is_submitter: bool = False


class Profile(BaseModel):
    """An author's public profile as returned by the upstream data source."""
    username: str
    created_utc: float
    comment_karma: int = 0
    link_karma: int = 0
    is_verified: bool = False
    has_verified_email: bool = False
    is_premium: bool = False


class AccountRecord(BaseModel):
    """
    Stored profile of one author.

    Numeric fields are optional: the feature extractor coerces missing values to 0.
    """
    username: str
    account_age_days: Optional[int] = None
    comment_karma: Optional[int] = None
    link_karma: Optional[int] = None
    is_verified: Optional[bool] = None
    has_verified_email: Optional[bool] = None
    is_premium: Optional[bool] = None
    account_created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ActivityAggregates(BaseModel):
    """Per-author activity totals derived from stored posts and comments."""
    post_count: int = 0
    comment_count: int = 0
    post_score_sum: float = 0.0


class FeatureVector(BaseModel):
    """Ten-dimensional numeric projection of one account. Never persisted."""
    account_age_days: float = 0.0
    comment_karma: float = 0.0
    link_karma: float = 0.0
    karma_ratio: float = 0.0
    posting_frequency: float = 0.0
    avg_post_score: float = 0.0
    post_comment_ratio: float = 0.0
    is_verified: float = 0.0
    has_verified_email: float = 0.0
    is_premium: float = 0.0

    def as_list(self) -> List[float]:
        """Values in the fixed feature order."""
        return [getattr(self, name) for name in FEATURE_NAMES]


FEATURE_NAMES = tuple(FeatureVector.model_fields.keys())


class BotVerdict(BaseModel):
    username: str
    bot_probability: float = Field(ge=0.0, le=1.0)
    confidence_score: float = Field(ge=0.0, le=1.0)
    detection_method: str
    features_analyzed: Dict[str, Any] = Field(default_factory=dict)
    risk_factors: List[str] = Field(default_factory=list)
    analysis_timestamp: datetime

    model_config = {"from_attributes": True}


class AnalysisSessionDTO(BaseModel):
    id: str
    session_name: str
    subreddit: str
    status: SessionStatus
    total_accounts_analyzed: int = 0
    bots_detected: int = 0
    analysis_parameters: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ExtractionResult(BaseModel):
    activity_count: int = Field(default=0, ge=0)
    author_count: int = Field(default=0, ge=0)
    skipped_authors: int = Field(default=0, ge=0)


class DetectionResult(BaseModel):
    users_analyzed: int = 0
    bots_detected: int = 0
    verdicts: List[BotVerdict] = Field(default_factory=list)


class PipelineResult(BaseModel):
    session_id: str
    extraction: ExtractionResult
    detection: DetectionResult
