"""
Peer-relative pillars: Profitability and Consistency.

Each procedure type the surgeon performed is scored against that procedure's
peer cohort with median-anchored MAD scoring, then the per-procedure scores
are volume-weighted into one pillar score.
"""

import logging
from typing import List, Mapping, Optional, Tuple

import pandas as pd

from .cohorts import (
    case_duration,
    group_by_procedure,
    margin_per_minute,
    peer_cvs,
    peer_median_mpms,
)
from .models import (
    MIN_ABSOLUTE_MAD_CV,
    NO_DATA_SCORE,
    ConsistencyCohort,
    ProfitabilityCohort,
    RelativePillarDiagnostics,
    ScorecardCase,
    ScorecardFinancials,
)
from .stats import (
    coefficient_of_variation,
    effective_mad,
    mad,
    mad_score,
    median,
    round_to,
    weighted_blend,
)

logger = logging.getLogger(__name__)


def _finish(scores: List[Tuple[int, int]], diag: Optional[RelativePillarDiagnostics]) -> int:
    if not scores:
        if diag is not None:
            diag.final_score = NO_DATA_SCORE
            diag.method = "default (no valid procedure cohorts)"
        return NO_DATA_SCORE

    final = weighted_blend(scores)
    if diag is not None:
        diag.final_score = final
        diag.method = "single cohort" if len(scores) == 1 else f"volume-weighted across {len(scores)} cohorts"
    return final


def calculate_profitability(
    surgeon_cases: List[ScorecardCase],
    peer_table: pd.DataFrame,
    financials_map: Mapping[str, ScorecardFinancials],
    min_proc_cases: int,
    diag: Optional[RelativePillarDiagnostics] = None,
) -> int:
    """Median margin per OR minute per procedure, MAD-scored against peers (higher is better)."""
    scores: List[Tuple[int, int]] = []

    for proc_id, cases in group_by_procedure(surgeon_cases).items():
        proc_name = cases[0].procedure_name or proc_id

        mpms: List[float] = []
        with_financials = 0
        with_duration = 0
        for c in cases:
            fin = financials_map.get(c.id)
            if fin is None or fin.profit is None:
                continue
            with_financials += 1
            duration = case_duration(c)
            if not duration or duration <= 0:
                continue
            with_duration += 1
            mpms.append(margin_per_minute(c, financials_map, duration))

        if len(mpms) < min_proc_cases:
            if diag is not None:
                diag.procedure_cohorts.append(ProfitabilityCohort(
                    procedure_id=proc_id,
                    procedure_name=proc_name,
                    surgeon_median_mpm=0, cohort_median=0, cohort_mad=0, effective_mad=0,
                    cohort_size=0,
                    valid_cases=len(mpms),
                    total_cases=len(cases),
                    raw_score=0,
                    skipped_reason=(
                        f"Only {len(mpms)} valid cases (need {min_proc_cases}). "
                        f"{len(cases)} total, {with_financials} with financials, "
                        f"{with_duration} with duration."
                    ),
                ))
            continue

        surgeon_mpm = median(mpms)
        peers = peer_median_mpms(peer_table, proc_id, min_proc_cases)
        score = mad_score(surgeon_mpm, peers, higher_is_better=True)
        scores.append((score, len(mpms)))
        logger.debug("Profitability %s: median MPM %.2f vs %d peers -> %d",
                     proc_id, surgeon_mpm, len(peers), score)

        if diag is not None:
            diag.procedure_cohorts.append(ProfitabilityCohort(
                procedure_id=proc_id,
                procedure_name=proc_name,
                surgeon_median_mpm=round_to(surgeon_mpm, 2),
                cohort_median=round_to(median(peers), 2),
                cohort_mad=round_to(mad(peers), 2),
                effective_mad=round_to(effective_mad(peers), 2),
                cohort_size=len(peers),
                valid_cases=len(mpms),
                total_cases=len(cases),
                raw_score=score,
            ))

    return _finish(scores, diag)


def calculate_consistency(
    surgeon_cases: List[ScorecardCase],
    peer_table: pd.DataFrame,
    min_proc_cases: int,
    diag: Optional[RelativePillarDiagnostics] = None,
) -> int:
    """Duration CV per procedure, MAD-scored against peer CVs (lower is better)."""
    scores: List[Tuple[int, int]] = []

    for proc_id, cases in group_by_procedure(surgeon_cases).items():
        proc_name = cases[0].procedure_name or proc_id
        durations = [d for d in (case_duration(c) for c in cases) if d is not None and d > 0]

        if len(durations) < min_proc_cases:
            if diag is not None:
                diag.procedure_cohorts.append(ConsistencyCohort(
                    procedure_id=proc_id,
                    procedure_name=proc_name,
                    surgeon_cv=0, cohort_median=0, cohort_mad=0, effective_mad=0,
                    cohort_size=0,
                    valid_cases=len(durations),
                    raw_score=0,
                    skipped_reason=f"Only {len(durations)} valid durations (need {min_proc_cases})",
                ))
            continue

        surgeon_cv = coefficient_of_variation(durations)
        peers = peer_cvs(peer_table, proc_id, min_proc_cases)
        score = mad_score(surgeon_cv, peers, higher_is_better=False, absolute_min_mad=MIN_ABSOLUTE_MAD_CV)
        scores.append((score, len(durations)))
        logger.debug("Consistency %s: CV %.3f vs %d peers -> %d",
                     proc_id, surgeon_cv, len(peers), score)

        if diag is not None:
            diag.procedure_cohorts.append(ConsistencyCohort(
                procedure_id=proc_id,
                procedure_name=proc_name,
                surgeon_cv=round_to(surgeon_cv, 3),
                cohort_median=round_to(median(peers), 3),
                cohort_mad=round_to(mad(peers), 3),
                effective_mad=round_to(effective_mad(peers, MIN_ABSOLUTE_MAD_CV), 3),
                cohort_size=len(peers),
                valid_cases=len(durations),
                raw_score=score,
            ))

    return _finish(scores, diag)
