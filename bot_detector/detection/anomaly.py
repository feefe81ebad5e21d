"""Population-relative anomaly scoring over feature vectors."""

import logging
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5
Z_SCORE_CLIP = 3.0


class AnomalyScorer:
    """
    Scores how far a sample lies from a reference population.

    Each dimension contributes ``min(|z| / 3, 1)`` where ``z`` is the sample's
    z-score against the population mean and (population) standard deviation;
    the score is the mean contribution across dimensions. Dimensions that are
    constant in the population contribute 0. With no population the scorer has
    no information and returns ``NEUTRAL_SCORE``.
    """

    def __init__(self, clip: float = Z_SCORE_CLIP):
        self.clip = clip
        self.mean: Optional[np.ndarray] = None
        self.std: Optional[np.ndarray] = None
        self.constant: Optional[np.ndarray] = None

    @property
    def is_fitted(self) -> bool:
        return self.mean is not None

    def fit(self, population: Sequence[Sequence[float]]) -> "AnomalyScorer":
        """
        Compute per-dimension statistics of the population.

        Args:
            population: Rows of feature vectors, all of the same length

        Returns:
            self
        """
        matrix = np.asarray(population, dtype=float)
        if matrix.size == 0:
            self.mean = self.std = self.constant = None
            return self
        if matrix.ndim != 2:
            raise ValueError(f"Population must be a 2-D matrix, got shape {matrix.shape}")

        self.mean = matrix.mean(axis=0)
        self.std = matrix.std(axis=0)
        # ptp is exact for constant columns; std can carry float noise
        self.constant = np.ptp(matrix, axis=0) == 0
        logger.debug(f"Fitted anomaly scorer on {matrix.shape[0]} vectors of {matrix.shape[1]} dimensions")
        return self

    def score(self, sample: Sequence[float]) -> float:
        """Return the anomaly score of one sample in [0, 1]."""
        if not self.is_fitted:
            return NEUTRAL_SCORE

        vector = np.asarray(sample, dtype=float)
        if vector.shape != self.mean.shape:
            raise ValueError(
                f"Sample has {vector.shape[0] if vector.ndim else 0} dimensions, "
                f"population has {self.mean.shape[0]}"
            )

        safe_std = np.where(self.constant, 1.0, self.std)
        z_scores = np.abs(vector - self.mean) / safe_std
        contributions = np.minimum(z_scores / self.clip, 1.0)
        contributions = np.where(self.constant, 0.0, contributions)
        return float(np.clip(contributions.mean(), 0.0, 1.0))

    def score_many(self, samples: Sequence[Sequence[float]]) -> list:
        return [self.score(sample) for sample in samples]


def anomaly_score(population: Sequence[Sequence[float]], sample: Sequence[float]) -> float:
    """Score ``sample`` against ``population`` in one call."""
    return AnomalyScorer().fit(population).score(sample)
