"""
SQLAlchemy ORM models for the bot detection tables.

Natural keys (``username`` for accounts and verdicts, ``reddit_id`` for
activity) are the primary keys so that every write can be an idempotent upsert.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import BigInteger, Boolean, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.sqltypes import TIMESTAMP

from .base import Base, JSONType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_session_id() -> str:
    return str(uuid.uuid4())


class AnalysisSessionORM(Base):
    """
    One submitted analysis job and its lifecycle.

    ``completed_at`` is non-null exactly when ``status`` is terminal
    (``completed`` or ``failed``).
    """
    __tablename__ = "analysis_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_session_id)
    session_name: Mapped[str] = mapped_column(Text, nullable=False)
    subreddit: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", index=True)
    total_accounts_analyzed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bots_detected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    analysis_parameters: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AnalysisSessionORM(id={self.id}, subreddit='{self.subreddit}', status='{self.status}')>"


class AccountORM(Base):
    """Profile snapshot of one author, last-write-wins on re-extraction."""
    __tablename__ = "reddit_accounts"

    username: Mapped[str] = mapped_column(Text, primary_key=True)
    account_created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    comment_karma: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    link_karma: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_verified_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    account_age_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subreddit_activity: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<AccountORM(username='{self.username}', age_days={self.account_age_days})>"


class PostORM(Base):
    """A submission observed in a community feed."""
    __tablename__ = "reddit_posts"

    reddit_id: Mapped[str] = mapped_column(Text, primary_key=True)
    author_username: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subreddit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    upvote_ratio: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    num_comments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_utc: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    is_self: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    domain: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_reddit_posts_author", "author_username"),
        Index("idx_reddit_posts_subreddit", "subreddit"),
    )


class CommentORM(Base):
    """A comment observed in a community feed."""
    __tablename__ = "reddit_comments"

    reddit_id: Mapped[str] = mapped_column(Text, primary_key=True)
    post_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author_username: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_utc: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    is_submitter: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subreddit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_reddit_comments_author", "author_username"),
    )


class BotVerdictORM(Base):
    """Current verdict for one username; each analysis overwrites the previous one."""
    __tablename__ = "bot_detection_results"

    username: Mapped[str] = mapped_column(Text, primary_key=True)
    bot_probability: Mapped[float] = mapped_column(Float, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    detection_method: Mapped[str] = mapped_column(Text, nullable=False)
    features_analyzed: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    risk_factors: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    analysis_timestamp: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_bot_detection_results_probability", "bot_probability"),
    )

    def __repr__(self) -> str:
        return f"<BotVerdictORM(username='{self.username}', bot_probability={self.bot_probability})>"
