"""
Absolute pillars: Schedule Adherence and Availability.

No peer comparison here. Each case is scored 0.0-1.0 by graduated linear
decay past a grace window and the pillar is the mean case score as a
percentage.
"""

import logging
from typing import List, Optional

from .cohorts import prep_to_incision
from .models import (
    DELAY_RATE_PENALTY,
    DELAY_WEIGHT,
    GAP_WEIGHT,
    MAX_PILLAR_SCORE,
    MIN_GAP_CASES,
    MIN_PILLAR_SCORE,
    NO_DATA_SCORE,
    AdherenceDiagnostics,
    AvailabilityDiagnostics,
    ScorecardCase,
    ScorecardFlag,
    ScorecardSettings,
)
from .stats import clamp, graduated_case_score, mean, percent_score, round_half_up, round_to
from .timing import time_to_minutes, utc_to_local_minutes

logger = logging.getLogger(__name__)


def score_cases_for_adherence(
    cases: List[ScorecardCase],
    settings: ScorecardSettings,
    timezone: str,
) -> List[float]:
    """Per-case on-time scores for cases with a scheduled start and an actual start milestone."""
    scores = []
    for c in cases:
        actual = c.incision_at if settings.start_time_milestone == "incision" else c.patient_in_at
        if not actual or not c.start_time:
            continue
        scheduled_min = time_to_minutes(c.start_time)
        actual_min = utc_to_local_minutes(actual, timezone)
        if scheduled_min is None or actual_min is None:
            continue
        minutes_over = max(0, actual_min - scheduled_min - settings.start_time_grace_minutes)
        scores.append(graduated_case_score(minutes_over, settings.start_time_floor_minutes))
    return scores


def calculate_schedule_adherence(
    surgeon_cases: List[ScorecardCase],
    settings: ScorecardSettings,
    timezone: str,
    diag: Optional[AdherenceDiagnostics] = None,
) -> int:
    case_scores = score_cases_for_adherence(surgeon_cases, settings, timezone)

    if not case_scores:
        if diag is not None:
            diag.final_score = NO_DATA_SCORE
        return NO_DATA_SCORE

    final = percent_score(case_scores)
    if diag is not None:
        diag.total_cases_scored = len(case_scores)
        diag.avg_case_score = round_to(mean(case_scores), 3)
        diag.cases_within_grace = sum(1 for s in case_scores if s == 1.0)
        diag.cases_at_zero = sum(1 for s in case_scores if s == 0.0)
        diag.final_score = final
    return final


def score_cases_for_availability(cases: List[ScorecardCase], settings: ScorecardSettings) -> List[float]:
    """Per-case scores for the prep/drape-complete to incision gap."""
    scores = []
    for c in cases:
        gap = prep_to_incision(c)
        if gap is None:
            continue
        minutes_over = max(0, gap - settings.waiting_on_surgeon_minutes)
        scores.append(graduated_case_score(minutes_over, settings.waiting_on_surgeon_floor_minutes))
    return scores


def delay_rate_percent(cases: List[ScorecardCase], flags: List[ScorecardFlag]) -> float:
    """Delay flags on these cases as a percentage of the case count."""
    if not cases:
        return 0.0
    case_ids = {c.id for c in cases}
    delays = sum(1 for f in flags if f.case_id in case_ids and f.flag_type == "delay")
    return delays / len(cases) * 100


def calculate_availability(
    surgeon_cases: List[ScorecardCase],
    flags: List[ScorecardFlag],
    settings: ScorecardSettings,
    diag: Optional[AvailabilityDiagnostics] = None,
) -> int:
    """Prep-to-incision gap and delay rate, blended 50/50."""
    if not surgeon_cases:
        return NO_DATA_SCORE

    gap_scores = score_cases_for_availability(surgeon_cases, settings)
    gap_score = NO_DATA_SCORE
    if len(gap_scores) >= MIN_GAP_CASES:
        gap_score = percent_score(gap_scores)

    delay_rate = delay_rate_percent(surgeon_cases, flags)
    delay_score = clamp(round_half_up(100 - delay_rate * DELAY_RATE_PENALTY),
                        MIN_PILLAR_SCORE, MAX_PILLAR_SCORE)

    final = clamp(round_half_up(gap_score * GAP_WEIGHT + delay_score * DELAY_WEIGHT),
                  MIN_PILLAR_SCORE, MAX_PILLAR_SCORE)
    logger.debug("Availability: gap %d (%d cases), delay rate %.1f%% -> %d",
                 gap_score, len(gap_scores), delay_rate, final)

    if diag is not None:
        diag.gap_cases_scored = len(gap_scores)
        diag.avg_gap_score = round_to(mean(gap_scores), 3) if gap_scores else 0.0
        diag.delay_rate = round_to(delay_rate, 1)
        diag.gap_pillar_score = gap_score
        diag.delay_pillar_score = delay_score
        diag.final_score = final
    return final
