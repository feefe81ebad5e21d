"""
Feature extraction for bot scoring.

Projects one stored account plus its activity totals onto the fixed
ten-dimensional :class:`~bot_detector.models.FeatureVector`. Malformed or
missing inputs never raise: they are coerced to 0 first.
"""

import math
from typing import Any, Optional

from bot_detector.models import AccountRecord, ActivityAggregates, FeatureVector

_TRUE_STRINGS = frozenset({"1", "true", "t", "yes", "y"})


def coerce_number(value: Any) -> float:
    """Return ``value`` as a finite float, or 0.0 if it is missing or not numeric."""
    if value is None or isinstance(value, bool):
        return float(value or 0)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def coerce_flag(value: Any) -> float:
    """Return 1.0 for truthy flags (including strings such as ``"true"``), else 0.0."""
    if isinstance(value, str):
        return 1.0 if value.strip().lower() in _TRUE_STRINGS else 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return 1.0 if coerce_number(value) != 0 else 0.0
    return 1.0 if value is True else 0.0


def extract_features(
    account: AccountRecord,
    aggregates: Optional[ActivityAggregates] = None,
) -> FeatureVector:
    """
    Build the feature vector for one account.

    Args:
        account: Stored profile of the author
        aggregates: Activity totals for the author; None is treated as no activity

    Returns:
        FeatureVector in the fixed dimension order
    """
    aggregates = aggregates or ActivityAggregates()

    age_days = coerce_number(account.account_age_days)
    comment_karma = coerce_number(account.comment_karma)
    link_karma = coerce_number(account.link_karma)
    post_count = coerce_number(aggregates.post_count)
    comment_count = coerce_number(aggregates.comment_count)
    post_score_sum = coerce_number(aggregates.post_score_sum)

    total_karma = comment_karma + link_karma
    karma_ratio = comment_karma / total_karma if total_karma != 0 else 0.0

    posting_frequency = (post_count + comment_count) / age_days if age_days > 0 else 0.0
    avg_post_score = post_score_sum / post_count if post_count > 0 else 0.0
    post_comment_ratio = post_count / comment_count if comment_count > 0 else post_count

    return FeatureVector(
        account_age_days=age_days,
        comment_karma=comment_karma,
        link_karma=link_karma,
        karma_ratio=karma_ratio,
        posting_frequency=posting_frequency,
        avg_post_score=avg_post_score,
        post_comment_ratio=post_comment_ratio,
        is_verified=coerce_flag(account.is_verified),
        has_verified_email=coerce_flag(account.has_verified_email),
        is_premium=coerce_flag(account.is_premium),
    )
