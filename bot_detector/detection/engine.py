"""
Bot probability engine.

Turns stored accounts into :class:`~bot_detector.models.BotVerdict` objects
using a fixed, explainable rule table. When ``anomaly_weight`` is set, a
population-relative anomaly score computed over the batch is blended in as a
second weighted term; with a weight of 0 the rule table is the sole signal.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from bot_detector.config import DetectionConfig
from bot_detector.detection.anomaly import AnomalyScorer
from bot_detector.detection.features import extract_features
from bot_detector.models import AccountRecord, ActivityAggregates, BotVerdict, FeatureVector

logger = logging.getLogger(__name__)

RULE_BASED_METHOD = "rule_based_scoring"
ANOMALY_BLEND_METHOD = "rule_based_anomaly_scoring"

RISK_NEW_ACCOUNT = "Very new account"
RISK_LOW_KARMA = "Low karma for account age"
RISK_HIGH_FREQUENCY = "High posting frequency"
RISK_UNVERIFIED_EMAIL = "Unverified email"
RISK_LINK_KARMA_RATIO = "Unusually high link karma ratio"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def rule_based_probability(features: FeatureVector) -> float:
    """Sum the weights of every triggered rule, clamped to [0, 1]."""
    score = 0.0

    age = features.account_age_days
    if age < 7:
        score += 0.3
    elif age < 30:
        score += 0.2
    elif age < 90:
        score += 0.1

    if features.comment_karma < 5:
        score += 0.2
    if features.link_karma == 0 and features.comment_karma == 0:
        score += 0.3

    if features.posting_frequency > 5:
        score += 0.2
    if features.avg_post_score < 1:
        score += 0.1

    if not features.has_verified_email:
        score += 0.1
    if not features.is_verified and age > 365:
        score += 0.05

    return min(max(round(score, 4), 0.0), 1.0)


def risk_factors(features: FeatureVector) -> List[str]:
    """Human-readable labels explaining a verdict, in a fixed order."""
    factors = []
    age = features.account_age_days

    if age < 30:
        factors.append(RISK_NEW_ACCOUNT)
    if features.comment_karma < 10 and age > 90:
        factors.append(RISK_LOW_KARMA)
    if features.posting_frequency > 10:
        factors.append(RISK_HIGH_FREQUENCY)
    if not features.has_verified_email and age > 7:
        factors.append(RISK_UNVERIFIED_EMAIL)
    if features.karma_ratio < 0.1 and features.link_karma > 100:
        factors.append(RISK_LINK_KARMA_RATIO)

    return factors


def confidence_from_risk_factors(factor_count: int) -> float:
    """Confidence reflects how many independent risk factors corroborate the verdict."""
    if factor_count <= 0:
        return 0.5
    return min(round(0.7 + 0.1 * factor_count, 4), 1.0)


class BotProbabilityEngine:
    """Scores accounts independently; a batch never aborts because of one account."""

    def __init__(
        self,
        config: Optional[DetectionConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            config: Detection settings (anomaly weight, worker count)
            clock: Returns the analysis timestamp; defaults to the current UTC time
        """
        self.config = config or DetectionConfig()
        self.clock = clock or _utcnow

    def analyze(
        self,
        account: AccountRecord,
        aggregates: Optional[ActivityAggregates] = None,
        anomaly: Optional[float] = None,
    ) -> BotVerdict:
        """
        Score a single account.

        Args:
            account: Stored profile of the author
            aggregates: The author's activity totals (None means no activity)
            anomaly: Precomputed anomaly score to blend in, if any

        Returns:
            The account's verdict
        """
        aggregates = aggregates or ActivityAggregates()
        features = extract_features(account, aggregates)
        return self._verdict(account.username, features, aggregates, anomaly)

    def _verdict(
        self,
        username: str,
        features: FeatureVector,
        aggregates: ActivityAggregates,
        anomaly: Optional[float],
    ) -> BotVerdict:
        rule_score = rule_based_probability(features)
        factors = risk_factors(features)

        features_analyzed: Dict[str, float] = features.model_dump()
        features_analyzed["post_count"] = aggregates.post_count
        features_analyzed["comment_count"] = aggregates.comment_count

        weight = self.config.anomaly_weight
        if anomaly is not None and weight > 0:
            probability = (1.0 - weight) * rule_score + weight * anomaly
            probability = min(max(round(probability, 4), 0.0), 1.0)
            method = ANOMALY_BLEND_METHOD
            features_analyzed["rule_score"] = rule_score
            features_analyzed["anomaly_score"] = anomaly
        else:
            probability = rule_score
            method = RULE_BASED_METHOD

        return BotVerdict(
            username=username,
            bot_probability=probability,
            confidence_score=confidence_from_risk_factors(len(factors)),
            detection_method=method,
            features_analyzed=features_analyzed,
            risk_factors=factors,
            analysis_timestamp=self.clock(),
        )

    def _features_or_default(
        self,
        account: AccountRecord,
        aggregates: Optional[ActivityAggregates],
    ) -> FeatureVector:
        try:
            return extract_features(account, aggregates)
        except Exception as e:
            logger.warning(f"Falling back to zeroed features for {account.username}: {str(e)}")
            return FeatureVector()

    def score_batch(
        self,
        accounts: Sequence[AccountRecord],
        aggregates: Optional[Mapping[str, ActivityAggregates]] = None,
    ) -> List[BotVerdict]:
        """
        Score every account in the batch.

        Accounts without aggregates are scored as having no activity. Verdicts
        are returned in the same order as ``accounts``.

        Args:
            accounts: Accounts to score
            aggregates: Activity totals keyed by username

        Returns:
            One verdict per account
        """
        if not accounts:
            return []

        aggregates = aggregates or {}
        per_account = [aggregates.get(account.username) or ActivityAggregates() for account in accounts]
        vectors = [
            self._features_or_default(account, totals)
            for account, totals in zip(accounts, per_account)
        ]

        anomalies: List[Optional[float]] = [None] * len(accounts)
        if self.config.anomaly_weight > 0:
            scorer = AnomalyScorer().fit([vector.as_list() for vector in vectors])
            anomalies = scorer.score_many([vector.as_list() for vector in vectors])

        def score_one(index: int) -> BotVerdict:
            username = accounts[index].username
            try:
                return self._verdict(username, vectors[index], per_account[index], anomalies[index])
            except Exception as e:
                logger.warning(f"Scoring {username} with zeroed defaults after error: {str(e)}")
                return self._verdict(username, FeatureVector(), ActivityAggregates(), None)

        indexes = range(len(accounts))
        if self.config.max_workers > 1 and len(accounts) > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                verdicts = list(executor.map(score_one, indexes))
        else:
            verdicts = [score_one(i) for i in indexes]

        logger.info(f"Scored {len(verdicts)} accounts using {verdicts[0].detection_method}")
        return verdicts
