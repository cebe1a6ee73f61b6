"""
ORbit scorecard engine.

Pure function over pre-fetched, already-joined records: groups the
facility's cases by surgeon, scores the four pillars for every surgeon with
at least MIN_CASE_THRESHOLD cases, combines them into a composite and grade,
compares against the previous period when one is supplied, and returns the
scorecards sorted by composite, best first.

Nothing is cached between calls; each run builds its own peer tables.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

import pandas as pd

from .absolute import calculate_availability, calculate_schedule_adherence
from .cohorts import (
    build_financials_map,
    build_peer_table,
    detect_flip_room,
    group_by_surgeon,
)
from .grading import compute_composite, compute_trend, get_grade
from .models import (
    DEFAULT_MIN_PROCEDURE_CASES,
    MIN_CASE_THRESHOLD,
    AdherenceDiagnostics,
    AvailabilityDiagnostics,
    OrbitScorecard,
    PillarDiagnostics,
    PillarScores,
    ProcedureCount,
    RelativePillarDiagnostics,
    ScorecardCase,
    ScorecardFinancials,
    ScorecardFlag,
    ScorecardInput,
    ScorecardSettings,
)
from .relative import calculate_consistency, calculate_profitability

logger = logging.getLogger(__name__)


@dataclass
class PeriodData:
    """Everything the pillar calculations need for one scoring period."""

    cases: List[ScorecardCase]
    financials_map: Mapping[str, ScorecardFinancials]
    flags: List[ScorecardFlag]
    peer_table: pd.DataFrame
    settings: ScorecardSettings
    timezone: str
    min_proc_cases: int

    @classmethod
    def build(cls, cases, financials, flags, settings, timezone) -> "PeriodData":
        financials_map = build_financials_map(financials or [])
        return cls(
            cases=list(cases),
            financials_map=financials_map,
            flags=list(flags or []),
            peer_table=build_peer_table(cases, financials_map),
            settings=settings,
            timezone=timezone,
            min_proc_cases=settings.min_procedure_cases or DEFAULT_MIN_PROCEDURE_CASES,
        )


def new_diagnostics() -> PillarDiagnostics:
    return PillarDiagnostics(
        profitability=RelativePillarDiagnostics(),
        consistency=RelativePillarDiagnostics(),
        sched_adherence=AdherenceDiagnostics(),
        availability=AvailabilityDiagnostics(),
    )


def score_pillars(
    surgeon_cases: List[ScorecardCase],
    period: PeriodData,
    diagnostics: Optional[PillarDiagnostics] = None,
) -> PillarScores:
    """Score one surgeon's four pillars. Diagnostics are filled in place and never change scores."""
    d = diagnostics
    return PillarScores(
        profitability=calculate_profitability(
            surgeon_cases, period.peer_table, period.financials_map, period.min_proc_cases,
            d.profitability if d else None,
        ),
        consistency=calculate_consistency(
            surgeon_cases, period.peer_table, period.min_proc_cases,
            d.consistency if d else None,
        ),
        sched_adherence=calculate_schedule_adherence(
            surgeon_cases, period.settings, period.timezone,
            d.sched_adherence if d else None,
        ),
        availability=calculate_availability(
            surgeon_cases, period.flags, period.settings,
            d.availability if d else None,
        ),
    )


def previous_composites(data: ScorecardInput) -> Dict[str, int]:
    """Composite per surgeon for the previous period, for surgeons meeting the case threshold."""
    if not data.previous_period_cases:
        return {}

    period = PeriodData.build(
        data.previous_period_cases,
        data.previous_period_financials,
        data.previous_period_flags if data.previous_period_flags is not None else data.flags,
        data.settings,
        data.timezone,
    )
    composites = {}
    for surgeon_id, surgeon_cases in group_by_surgeon(period.cases).items():
        if len(surgeon_cases) < MIN_CASE_THRESHOLD:
            continue
        composites[surgeon_id] = compute_composite(score_pillars(surgeon_cases, period))
    logger.info("Previous period: %d surgeons scored for trend", len(composites))
    return composites


def procedure_breakdown(cases: List[ScorecardCase]) -> List[ProcedureCount]:
    """Case count per procedure name, most frequent first."""
    counts = Counter(c.procedure_name for c in cases)
    # ties keep first-seen order
    return [ProcedureCount(name, count)
            for name, count in sorted(counts.items(), key=lambda kv: kv[1], reverse=True)]


def calculate_orbit_scores(data: ScorecardInput) -> List[OrbitScorecard]:
    """Score every surgeon with enough cases and return scorecards sorted by composite, descending."""
    period = PeriodData.build(data.cases, data.financials, data.flags,
                              data.settings, data.timezone)
    prior = previous_composites(data)

    scorecards: List[OrbitScorecard] = []
    skipped = 0
    for surgeon_id, surgeon_cases in group_by_surgeon(period.cases).items():
        if len(surgeon_cases) < MIN_CASE_THRESHOLD:
            skipped += 1
            continue

        first = surgeon_cases[0]
        diagnostics = new_diagnostics() if data.enable_diagnostics else None
        pillars = score_pillars(surgeon_cases, period, diagnostics)
        composite = compute_composite(pillars)
        previous = prior.get(surgeon_id)
        breakdown = procedure_breakdown(surgeon_cases)

        scorecards.append(OrbitScorecard(
            surgeon_id=surgeon_id,
            surgeon_name=f"Dr. {first.surgeon_last_name}",
            first_name=first.surgeon_first_name,
            last_name=first.surgeon_last_name,
            case_count=len(surgeon_cases),
            procedures=[p.name for p in breakdown],
            procedure_breakdown=breakdown,
            flip_room=detect_flip_room(surgeon_cases),
            pillars=pillars,
            composite=composite,
            grade=get_grade(composite),
            trend=compute_trend(composite, previous),
            previous_composite=previous,
            diagnostics=diagnostics,
        ))

    scorecards.sort(key=lambda s: s.composite, reverse=True)
    logger.info(
        "Scored %d surgeons for %s to %s (%d below %d-case threshold)",
        len(scorecards), data.date_range[0], data.date_range[1], skipped, MIN_CASE_THRESHOLD,
    )
    return scorecards
