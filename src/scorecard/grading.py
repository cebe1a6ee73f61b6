"""Composite score, letter grade and period-over-period trend."""

from typing import Optional

from .models import FALLBACK_GRADE, GRADE_THRESHOLDS, PILLARS, GradeInfo, PillarScores
from .stats import round_half_up


def compute_composite(pillars: PillarScores) -> int:
    """Weighted sum of the four pillars, rounded."""
    return round_half_up(sum((pillars.get(p.key) or 0) * p.weight for p in PILLARS))


def get_grade(score: int) -> GradeInfo:
    for threshold, letter, label in GRADE_THRESHOLDS:
        if score >= threshold:
            return GradeInfo(letter, label)
    return GradeInfo(*FALLBACK_GRADE)


def compute_trend(composite: int, previous: Optional[int]) -> str:
    if previous is None or composite == previous:
        return "stable"
    return "up" if composite > previous else "down"
