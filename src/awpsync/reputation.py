"""
Reputation math -- confidence, time decay, and EWMA folding.

Scores live in [0, 1] and drift back toward a neutral baseline of 0.5
when no new signals arrive. Each new signal is blended into the
decayed score with an exponentially weighted moving average.

    confidence = 1 - 1 / (1 + n * 0.1)
    decayed    = 0.5 + (score - 0.5) * exp(-rate * months)
    new_score  = alpha * signal + (1 - alpha) * decayed
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable, Optional

from .models import ReputationDimension, utcnow

EWMA_ALPHA = 0.15
DECAY_RATE = 0.02
BASELINE = 0.5
SECONDS_PER_MONTH = 30.44 * 24 * 60 * 60


def compute_confidence(sample_size: int) -> float:
    """Confidence from sample count, rounded to 2 decimals."""
    return round(1 - 1 / (1 + sample_size * 0.1), 2)


def months_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_MONTH


def compute_decayed_score(
    dim: ReputationDimension,
    now: Optional[datetime] = None,
    decay_rate: float = DECAY_RATE,
) -> float:
    """Decay a dimension's score toward the baseline.

    Args:
        dim: The dimension to decay.
        now: Reference time. Defaults to now.
        decay_rate: Monthly decay rate.

    Returns:
        The decayed score (3 decimals), or the stored score unchanged
        when no time has elapsed.
    """
    months = months_between(dim.last_signal, now or utcnow())
    if months <= 0:
        return dim.score

    factor = math.exp(-decay_rate * months)
    return round(BASELINE + (dim.score - BASELINE) * factor, 3)


def update_dimension(
    existing: Optional[ReputationDimension],
    signal_score: float,
    now: Optional[datetime] = None,
    alpha: float = EWMA_ALPHA,
    decay_rate: float = DECAY_RATE,
) -> ReputationDimension:
    """Fold one signal into a dimension.

    The stored score is decayed up to ``now`` first, then blended
    with the signal score via EWMA.

    Args:
        existing: Current dimension, or None for the first signal.
        signal_score: Observation in [0, 1].
        now: Time of the observation. Defaults to now.
        alpha: EWMA learning rate.
        decay_rate: Monthly decay rate applied before blending.

    Returns:
        A new ReputationDimension; ``existing`` is not modified.
    """
    now = now or utcnow()

    if existing is None:
        return ReputationDimension(
            score=round(signal_score, 3),
            confidence=compute_confidence(1),
            sample_size=1,
            last_signal=now,
        )

    decayed = compute_decayed_score(existing, now, decay_rate)
    new_score = alpha * signal_score + (1 - alpha) * decayed
    sample_size = existing.sample_size + 1

    return ReputationDimension(
        score=round(new_score, 3),
        confidence=compute_confidence(sample_size),
        sample_size=sample_size,
        last_signal=now,
    )


def compute_weighted_score(scores: Iterable[tuple[float, float]]) -> float:
    """Weighted mean of (score, weight) pairs; baseline if no weight."""
    total_weight = 0.0
    weighted_sum = 0.0
    for score, weight in scores:
        weighted_sum += score * weight
        total_weight += weight

    if total_weight == 0:
        return BASELINE
    return round(weighted_sum / total_weight, 3)
