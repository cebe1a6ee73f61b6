"""
Statistics primitives and the two scoring curves.

Every function degrades to a defined sentinel on insufficient data instead
of raising: empty input gives 0, one-element spread gives 0, and so on.
"""

import math
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from .models import (
    MAD_MULTIPLIER,
    MAX_PILLAR_SCORE,
    MIN_MAD_PERCENT,
    MIN_PILLAR_SCORE,
    NO_DATA_SCORE,
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def round_to(value: float, places: int) -> float:
    scale = 10 ** places
    return round_half_up(value * scale) / scale


def clamp(value, lo, hi):
    return min(hi, max(lo, value))


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def stddev(values: Sequence[float]) -> float:
    """Sample standard deviation (n-1 denominator)."""
    if len(values) < 2:
        return 0.0
    return float(np.std(values, ddof=1))


def coefficient_of_variation(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    m = mean(values)
    if m == 0:
        return 0.0
    return stddev(values) / m


def median(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.median(values))


def mad(values: Sequence[float]) -> float:
    """Median absolute deviation from the median."""
    if len(values) < 2:
        return 0.0
    arr = np.asarray(values, dtype=float)
    return median(np.abs(arr - np.median(arr)))


def effective_mad(cohort_values: Sequence[float], absolute_min_mad: float = 0.0) -> float:
    """Cohort MAD floored at MIN_MAD_PERCENT of |median| and at absolute_min_mad."""
    cohort_median = median(cohort_values)
    return max(mad(cohort_values), abs(cohort_median) * MIN_MAD_PERCENT, absolute_min_mad)


def _bounded(score: float) -> int:
    return clamp(round_half_up(score), MIN_PILLAR_SCORE, MAX_PILLAR_SCORE)


def mad_score(
    value: float,
    cohort_values: Sequence[float],
    higher_is_better: bool = True,
    absolute_min_mad: float = 0.0,
) -> int:
    """
    Median-anchored MAD score of ``value`` against a peer cohort.

    At the cohort median the score is 50; each effective MAD away moves it by
    MAD_MULTIPLIER (~16.67) points, so 3 MADs reach the 10 / 100 bounds.

    Fallbacks:
        0 peers           -> 50
        1 peer            -> ratio scaling, 50 +/- (value/peer - 1) * 100
        effective MAD 0   -> interpolation across the cohort range (50 if flat)
    """
    n = len(cohort_values)
    if n == 0:
        return NO_DATA_SCORE

    if n == 1:
        peer = cohort_values[0]
        if peer == 0:
            return NO_DATA_SCORE
        delta = (value / peer - 1) * 100
        return _bounded(NO_DATA_SCORE + delta if higher_is_better else NO_DATA_SCORE - delta)

    cohort_median = median(cohort_values)
    spread = effective_mad(cohort_values, absolute_min_mad)

    if spread == 0:
        lo, hi = min(cohort_values), max(cohort_values)
        if hi == lo:
            return NO_DATA_SCORE
        position = (value - lo) / (hi - lo)
        return _bounded(position * 100 if higher_is_better else (1 - position) * 100)

    normalized = (value - cohort_median) / spread
    if higher_is_better:
        return _bounded(NO_DATA_SCORE + normalized * MAD_MULTIPLIER)
    return _bounded(NO_DATA_SCORE - normalized * MAD_MULTIPLIER)


def graduated_case_score(minutes_over: float, floor_minutes: float) -> float:
    """1.0 within grace, linear decay to 0.0 at floor_minutes past grace."""
    if minutes_over <= 0:
        return 1.0
    if minutes_over >= floor_minutes:
        return 0.0
    return 1.0 - minutes_over / floor_minutes


def weighted_blend(pairs: Iterable[Tuple[float, float]]) -> int:
    """Round the weight-proportional mean of (score, weight) pairs."""
    pairs = list(pairs)
    total = sum(w for _, w in pairs)
    if total <= 0:
        return NO_DATA_SCORE
    return round_half_up(sum(score * (w / total) for score, w in pairs))


def percent_score(case_scores: List[float]) -> int:
    """Mean per-case score scaled to 0-100 and clamped to the pillar range."""
    return _bounded(mean(case_scores) * 100)
