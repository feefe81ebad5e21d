"""
Models package for the bot detection pipeline.

This package contains SQLAlchemy ORM models and Pydantic DTOs.
"""

from .base import Base
from .orm import (
    AccountORM,
    AnalysisSessionORM,
    BotVerdictORM,
    CommentORM,
    PostORM,
)
from .dtos import (
    FEATURE_NAMES,
    AccountRecord,
    ActivityAggregates,
    ActivityItem,
    AnalysisSessionDTO,
    BotVerdict,
    DetectionResult,
    ExtractionResult,
    FeatureVector,
    PipelineResult,
    Profile,
    SessionStatus,
)

__all__ = [
    # Base
    "Base",
    # ORMs
    "AccountORM",
    "AnalysisSessionORM",
    "BotVerdictORM",
    "CommentORM",
    "PostORM",
    # DTOs
    "FEATURE_NAMES",
    "AccountRecord",
    "ActivityAggregates",
    "ActivityItem",
    "AnalysisSessionDTO",
    "BotVerdict",
    "DetectionResult",
    "ExtractionResult",
    "FeatureVector",
    "PipelineResult",
    "Profile",
    "SessionStatus",
]
