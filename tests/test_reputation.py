"""Tests for reputation math -- confidence, decay, EWMA."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from awpsync.models import ReputationDimension
from awpsync.reputation import (
    BASELINE,
    EWMA_ALPHA,
    SECONDS_PER_MONTH,
    compute_confidence,
    compute_decayed_score,
    compute_weighted_score,
    update_dimension,
)

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _months(n: float) -> timedelta:
    return timedelta(seconds=n * SECONDS_PER_MONTH)


def _dim(score: float, sample_size: int = 5) -> ReputationDimension:
    return ReputationDimension(
        score=score,
        confidence=compute_confidence(sample_size),
        sample_size=sample_size,
        last_signal=T0,
    )


class TestConfidence:
    """compute_confidence grows with sample size."""

    def test_zero_samples(self):
        assert compute_confidence(0) == 0.0

    def test_known_values(self):
        """Spot checks, rounded to 2 decimals."""
        assert compute_confidence(1) == 0.09
        assert compute_confidence(10) == 0.5
        assert compute_confidence(2) == 0.17

    def test_monotonic(self):
        """Never decreases as samples accumulate."""
        values = [compute_confidence(n) for n in range(0, 500)]
        assert all(b >= a for a, b in zip(values, values[1:]))

    def test_stays_below_one(self):
        """Approaches but never reaches 1 for realistic sample sizes."""
        assert compute_confidence(100) < 1.0
        assert compute_confidence(1000) < 1.0


class TestDecay:
    """compute_decayed_score pulls toward the 0.5 baseline."""

    def test_no_elapsed_time(self):
        """Zero elapsed months returns the stored score untouched."""
        assert compute_decayed_score(_dim(0.9), now=T0) == 0.9

    def test_negative_elapsed_time(self):
        """A reference time before the last signal is a no-op."""
        assert compute_decayed_score(_dim(0.9), now=T0 - _months(3)) == 0.9

    def test_moves_toward_baseline_from_above(self):
        """High scores fall strictly, month over month."""
        dim = _dim(0.9)
        scores = [compute_decayed_score(dim, now=T0 + _months(m)) for m in (1, 6, 12, 48)]
        assert all(BASELINE < s < 0.9 for s in scores)
        assert scores == sorted(scores, reverse=True)
        assert len(set(scores)) == len(scores)

    def test_moves_toward_baseline_from_below(self):
        """Low scores rise strictly, month over month."""
        dim = _dim(0.1)
        scores = [compute_decayed_score(dim, now=T0 + _months(m)) for m in (1, 6, 12, 48)]
        assert all(0.1 < s < BASELINE for s in scores)
        assert scores == sorted(scores)

    def test_baseline_is_fixed_point(self):
        assert compute_decayed_score(_dim(0.5), now=T0 + _months(24)) == 0.5

    def test_decay_rate(self):
        """One month at rate 0.02 keeps ~98% of the distance."""
        assert compute_decayed_score(_dim(1.0), now=T0 + _months(1)) == pytest.approx(0.990, abs=1e-3)


class TestUpdateDimension:
    """update_dimension folds one signal in."""

    def test_first_signal(self):
        """No prior dimension: the signal becomes the score."""
        dim = update_dimension(None, 0.8, now=T0)
        assert dim.sample_size == 1
        assert dim.score == 0.8
        assert dim.confidence == compute_confidence(1)
        assert dim.last_signal == T0

    def test_ewma_without_decay(self):
        """Same-instant update is a plain EWMA."""
        first = update_dimension(None, 0.8, now=T0)
        second = update_dimension(first, 0.4, now=T0)
        assert second.score == round(EWMA_ALPHA * 0.4 + (1 - EWMA_ALPHA) * 0.8, 3)
        assert second.sample_size == 2
        assert second.confidence == compute_confidence(2)

    def test_decays_before_blending(self):
        """The stored score is decayed up to the new signal first."""
        existing = _dim(0.9)
        later = T0 + _months(12)
        decayed = compute_decayed_score(existing, now=later)
        updated = update_dimension(existing, 0.9, now=later)
        assert updated.score == round(EWMA_ALPHA * 0.9 + (1 - EWMA_ALPHA) * decayed, 3)
        assert updated.last_signal == later

    def test_existing_not_modified(self):
        existing = _dim(0.7)
        update_dimension(existing, 0.1, now=T0 + _months(1))
        assert existing.score == 0.7
        assert existing.sample_size == 5

    def test_custom_alpha(self):
        first = update_dimension(None, 1.0, now=T0)
        second = update_dimension(first, 0.0, now=T0, alpha=0.5)
        assert second.score == 0.5


class TestWeightedScore:
    """compute_weighted_score combines dimensions."""

    def test_weighted_mean(self):
        assert compute_weighted_score([(0.8, 2.0), (0.2, 1.0)]) == 0.6

    def test_zero_weight_falls_back_to_baseline(self):
        assert compute_weighted_score([(0.9, 0.0)]) == BASELINE

    def test_empty(self):
        assert compute_weighted_score([]) == BASELINE
