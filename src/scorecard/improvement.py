"""
Improvement plan generator.

Works backwards from a scorecard: every pillar below the improvement
threshold gets a target score, a data-driven insight drawn from the pillar
diagnostics, a short list of concrete actions and a projected annual
time/dollar impact. Pillars at or above the threshold are reported as
strengths when they reach 75.

Impact heuristics assume an ASSUMED_CASE_MINUTES OR case and annualize
the scoring period with ``annual_case_multiplier``.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional

from .grading import compute_composite, get_grade
from .models import (
    ASSUMED_CASE_MINUTES,
    PILLARS,
    ImprovementConfig,
    ImprovementPlan,
    ImprovementRecommendation,
    OrbitScorecard,
    PillarDefinition,
    ScorecardSettings,
    Strength,
)
from .stats import round_half_up, round_to

logger = logging.getLogger(__name__)

STRONG_SCORE = 75
TOP_TIER_SCORE = 85
STRETCH_FROM_SCORE = 55


@dataclass
class _Narrative:
    headline: str = ""
    insight: str = ""
    actions: List[str] = field(default_factory=list)
    minutes_saved: int = 0


def target_score_for(score: int, threshold: int) -> int:
    """Pillars close to the threshold aim for 75, the rest for the threshold itself."""
    return STRONG_SCORE if score >= STRETCH_FROM_SCORE else threshold


def _fixed(value: float, places: int = 0) -> str:
    """Fixed-point text with halves rounded away from zero ($2.50 -> "3")."""
    scale = 10 ** places
    magnitude = round_half_up(abs(value) * scale) / scale
    return f"{-magnitude if value < 0 else magnitude:.{places}f}"


def _profitability(diag, config: ImprovementConfig) -> Optional[_Narrative]:
    scored = [c for c in diag.procedure_cohorts if not c.skipped_reason]
    if not scored:
        return None
    worst = min(scored, key=lambda c: c.raw_score)

    mpm_gap = worst.cohort_median - worst.surgeon_median_mpm
    if mpm_gap > 0:
        headline = f"${_fixed(mpm_gap)}/min below peers on {worst.procedure_name}"
    else:
        headline = "Close to peer median — small optimizations add up"

    if worst.surgeon_median_mpm > 0:
        detail = ("This suggests longer OR times are diluting per-minute revenue."
                  if mpm_gap > 5 else
                  "The gap is modest — focus on consistency to maximize scheduling.")
        insight = (
            f"Your {worst.procedure_name} cases generate ${_fixed(worst.surgeon_median_mpm, 2)}/min "
            f"vs the peer median of ${_fixed(worst.cohort_median, 2)}/min. {detail}"
        )
    else:
        insight = (
            f"Your {worst.procedure_name} cases are operating at a loss "
            f"(${_fixed(worst.surgeon_median_mpm, 2)}/min). Reducing OR time is the most direct "
            f"path to profitability."
        )

    actions = [
        "Review case setup and equipment positioning protocols to reduce non-cutting time",
        "Identify the 10% longest cases — look for common patterns (equipment, team, time of day)",
        "Work with OR coordinator to ensure preferred instrument trays are pre-staged",
    ]
    if mpm_gap > 10:
        actions.append("Consider a focused OR time reduction initiative with a target of "
                       "reducing average case time by 10-15 minutes")

    # Close half the MPM gap across the cohort's annualized cases
    cohort_cases = worst.valid_cases * config.annual_case_multiplier
    per_case = mpm_gap * 0.5 if mpm_gap > 0 else 2
    return _Narrative(headline, insight, actions, round_half_up(per_case * cohort_cases))


def _consistency(diag, config: ImprovementConfig) -> Optional[_Narrative]:
    scored = [c for c in diag.procedure_cohorts if not c.skipped_reason]
    if not scored:
        return None
    worst = max(scored, key=lambda c: c.surgeon_cv)

    cv_pct = _fixed(worst.surgeon_cv * 100, 1)
    peer_cv_pct = _fixed(worst.cohort_median * 100, 1)
    variability = round_half_up(worst.surgeon_cv * ASSUMED_CASE_MINUTES)
    peer_variability = round_half_up(worst.cohort_median * ASSUMED_CASE_MINUTES)

    headline = (f"±{variability} min variability on {worst.procedure_name} "
                f"(peers: ±{peer_variability} min)")
    insight = (
        f"Your {worst.procedure_name} CV is {cv_pct}% vs the peer median of {peer_cv_pct}%. "
        f"This means your case durations vary by approximately ±{variability} minutes around "
        f"your average — making it harder for schedulers to plan accurately."
    )
    actions = [
        "Request consistent OR team assignments — familiar teams reduce variability",
        "Standardize your pre-incision checklist to eliminate variable setup time",
        "Track cases that run 20%+ over your average and identify the root cause",
        "Consider dictating expected duration to the scheduler per case rather than using defaults",
    ]

    cohort_cases = worst.valid_cases * config.annual_case_multiplier
    excess = max(0, variability - peer_variability)
    return _Narrative(headline, insight, actions, round_half_up(excess * 0.5 * cohort_cases))


def _schedule_adherence(diag, settings: ScorecardSettings, target: int,
                        annual_cases: int) -> _Narrative:
    floor = settings.start_time_floor_minutes
    grace = settings.start_time_grace_minutes
    at_zero = diag.cases_at_zero

    # A mean case score of x means (1 - x) * floor minutes past grace
    avg_late = round_half_up((1 - diag.avg_case_score) * floor)
    target_late = round_half_up((1 - target / 100) * floor)
    zero_pct = 0
    if diag.total_cases_scored:
        zero_pct = round_half_up(at_zero / diag.total_cases_scored * 100)

    headline = f"Starting ~{avg_late} min late on average ({at_zero} cases severely late)"
    insight = (
        f"Your average on-time score is {round_half_up(diag.avg_case_score * 100)}% across "
        f"{diag.total_cases_scored} cases. {at_zero} cases scored zero "
        f"({zero_pct}%), meaning they started "
        f"{floor:g}+ minutes late. Late starts cascade through the schedule, pushing every "
        f"subsequent case later."
    )
    actions = [
        f"Arrive to pre-op {grace + 5:g} minutes before scheduled start to complete assessments "
        f"within the grace window",
        (f"Investigate the {at_zero} severely late cases — are they clustered on certain days, "
         f"rooms, or case positions?")
        if at_zero > 3 else
        "Maintain awareness of the scheduled start time for each case position",
        "Coordinate with the OR front desk to receive 15-minute pre-start alerts",
        "For first cases of the day, verify that pre-op assessment is complete before "
        "scheduled OR time",
    ]
    return _Narrative(headline, insight, actions, max(0, avg_late - target_late) * annual_cases)


def _availability(diag, settings: ScorecardSettings, target: int,
                  annual_cases: int) -> _Narrative:
    gap_floor = settings.waiting_on_surgeon_floor_minutes
    gap_grace = settings.waiting_on_surgeon_minutes

    avg_excess = round_half_up((1 - diag.avg_gap_score) * gap_floor)

    if avg_excess > 0:
        headline = f"OR team waiting ~{avg_excess} min per case for surgeon"
        insight = (
            f"Your average prep-to-incision gap score is {round_half_up(diag.avg_gap_score * 100)}% "
            f"across {diag.gap_cases_scored} cases. The team completes patient prep and waits "
            f"approximately {avg_excess} minutes for you beyond the expected {gap_grace:g}-minute "
            f"window. This is idle OR time with full staff standing by."
        )
    else:
        headline = (f"{_fixed(diag.delay_rate)}% of cases have surgeon-caused delays"
                    if diag.delay_rate > 0 else "Availability score below target")
        insight = (f"Your delay rate of {_fixed(diag.delay_rate, 1)}% indicates surgeon-caused delays "
                   f"are impacting the schedule.")

    actions = [
        "Scrub in during patient prep — be present in the OR before draping is complete",
        f"Target being gowned and gloved within {gap_grace:g} minutes of the patient entering the room",
        "Use the callback system to time your arrival precisely with prep completion",
        "For flip-room setups, transition to the next room immediately after closing",
    ]

    target_excess = round_half_up((1 - target / 100) * gap_floor)
    return _Narrative(headline, insight, actions, max(0, avg_excess - target_excess) * annual_cases)


def _fallback(p: PillarDefinition, score: int, threshold: int, annual_cases: int) -> _Narrative:
    return _Narrative(
        headline=f"{p.label} at {score} — below the facility target of {threshold}",
        insight=("This pillar is scoring below the facility B threshold. Review the detailed "
                 "diagnostics for specific areas to address."),
        actions=["Review pillar diagnostics with your OR director",
                 "Identify the top 2-3 cases that scored lowest"],
        minutes_saved=round_half_up(annual_cases * 2),
    )


def _strength_message(label: str, score: int) -> str:
    if score >= TOP_TIER_SCORE:
        return f"Top-tier {label.lower()} — a model for peers"
    return f"Strong {label.lower()} — above facility average"


def generate_improvement_plan(
    scorecard: OrbitScorecard,
    settings: ScorecardSettings,
    config: Optional[ImprovementConfig] = None,
) -> ImprovementPlan:
    """Build a prioritized improvement plan for one scorecard (diagnostics recommended)."""
    config = config or ImprovementConfig()
    threshold = config.improvement_threshold
    annual_cases = scorecard.case_count * config.annual_case_multiplier
    diag = scorecard.diagnostics

    recommendations: List[ImprovementRecommendation] = []
    strengths: List[Strength] = []

    for p in PILLARS:
        score = scorecard.pillars.get(p.key)

        if score >= threshold:
            if score >= STRONG_SCORE:
                strengths.append(Strength(p.label, score, _strength_message(p.label, score)))
            continue

        target = target_score_for(score, threshold)
        impact = round_half_up((target - score) * p.weight)

        narrative = None
        if diag is not None:
            if p.key == "profitability":
                narrative = _profitability(diag.profitability, config)
            elif p.key == "consistency":
                narrative = _consistency(diag.consistency, config)
            elif p.key == "sched_adherence":
                narrative = _schedule_adherence(diag.sched_adherence, settings, target, annual_cases)
            elif p.key == "availability":
                narrative = _availability(diag.availability, settings, target, annual_cases)
        if narrative is None:
            narrative = _fallback(p, score, threshold, annual_cases)

        minutes = narrative.minutes_saved
        recommendations.append(ImprovementRecommendation(
            pillar=p.key,
            pillar_label=p.label,
            priority=0,
            current_score=score,
            target_score=target,
            composite_impact=impact,
            headline=narrative.headline,
            insight=narrative.insight,
            actions=narrative.actions,
            projected_minutes_saved=minutes,
            projected_annual_hours=round_to(minutes / 60, 1),
            projected_annual_dollars=round_half_up(minutes * config.or_cost_per_minute),
        ))

    recommendations.sort(key=lambda r: r.composite_impact, reverse=True)
    for i, r in enumerate(recommendations, start=1):
        r.priority = i

    projected_pillars = replace(scorecard.pillars, **{r.pillar: r.target_score for r in recommendations})
    projected = compute_composite(projected_pillars)

    logger.info("Improvement plan for %s: %d recommendations, composite %d -> %d",
                scorecard.surgeon_name, len(recommendations), scorecard.composite, projected)

    return ImprovementPlan(
        surgeon_name=scorecard.surgeon_name,
        current_composite=scorecard.composite,
        current_grade=scorecard.grade,
        projected_composite=projected,
        projected_grade=get_grade(projected),
        total_projected_hours=round_to(sum(r.projected_annual_hours for r in recommendations), 1),
        total_projected_dollars=sum(r.projected_annual_dollars for r in recommendations),
        recommendations=recommendations,
        strengths=strengths,
    )
