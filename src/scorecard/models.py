"""
Record types, settings and output types for the ORbit surgeon scorecard.

Four pillars measure surgeon-controllable operational behavior:

    Profitability       30%   margin per OR minute, peer-relative (MAD)
    Consistency         25%   CV of case duration, peer-relative (MAD)
    Schedule Adherence  25%   graduated decay of late starts
    Availability        20%   prep-to-incision gap + delay rate

Input records are produced by the data-fetch layer already joined and
filtered to completed, data-validated cases; nothing here mutates them.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Tuple

# Surgeons need this many cases in the period to be scored at all
MIN_CASE_THRESHOLD = 15

# No pillar scores below this, keeps composites recoverable
MIN_PILLAR_SCORE = 10
MAX_PILLAR_SCORE = 100

# Neutral score used whenever there is nothing to compare against
NO_DATA_SCORE = 50

# 3 MADs from the cohort median reaches the 10 / 100 extremes
MAD_BAND = 3
MAD_MULTIPLIER = 50 / MAD_BAND

# Effective MAD is at least 5% of |cohort median|
MIN_MAD_PERCENT = 0.05

# CV values cluster around 0.04-0.06, so the percentage floor is too small there
MIN_ABSOLUTE_MAD_CV = 0.01

# Availability: prep-to-incision needs this many scoreable cases
MIN_GAP_CASES = 3
# Availability: score = 100 - delay_rate_percent * DELAY_RATE_PENALTY
DELAY_RATE_PENALTY = 2
GAP_WEIGHT = 0.5
DELAY_WEIGHT = 0.5

DEFAULT_MIN_PROCEDURE_CASES = 3
DEFAULT_TIMEZONE = "America/Chicago"

# Improvement plan assumes a 90-minute OR case
ASSUMED_CASE_MINUTES = 90

START_MILESTONES = ("patient_in", "incision")

# (minimum composite, letter, label), checked top-down
GRADE_THRESHOLDS: List[Tuple[int, str, str]] = [
    (80, "A", "Elite"),
    (65, "B", "Strong"),
    (50, "C", "Developing"),
]
FALLBACK_GRADE = ("D", "Needs Improvement")


@dataclass(frozen=True)
class PillarDefinition:
    key: str
    label: str
    weight: float
    description: str


PILLARS: List[PillarDefinition] = [
    PillarDefinition("profitability",   "Profitability",      0.30, "Margin per OR minute"),
    PillarDefinition("consistency",     "Consistency",        0.25, "Case duration predictability"),
    PillarDefinition("sched_adherence", "Schedule Adherence", 0.25, "Cases starting on time"),
    PillarDefinition("availability",    "Availability",       0.20, "Surgeon readiness"),
]


def _pick(cls, row: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only the keys that are fields of the dataclass."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in row.items() if k in names}


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScorecardCase:
    id: str
    surgeon_id: str
    procedure_type_id: str
    or_room_id: str
    scheduled_date: str
    surgeon_first_name: str = ""
    surgeon_last_name: str = ""
    procedure_name: str = "Unknown"
    start_time: Optional[str] = None              # scheduled, facility-local "HH:MM"
    patient_in_at: Optional[str] = None           # UTC ISO timestamps
    incision_at: Optional[str] = None
    prep_drape_complete_at: Optional[str] = None
    closing_at: Optional[str] = None
    patient_out_at: Optional[str] = None

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "ScorecardCase":
        return cls(**_pick(cls, row))


@dataclass(frozen=True)
class ScorecardFinancials:
    case_id: str
    profit: Optional[float] = None                # 0 is break-even, None is missing
    reimbursement: Optional[float] = None
    or_time_cost: Optional[float] = None

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "ScorecardFinancials":
        return cls(**_pick(cls, row))


@dataclass(frozen=True)
class ScorecardFlag:
    case_id: str
    flag_type: str
    severity: str = ""
    delay_type_name: Optional[str] = None
    created_by: Optional[str] = None

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "ScorecardFlag":
        return cls(**_pick(cls, row))


@dataclass(frozen=True)
class ScorecardSettings:
    """Facility scoring configuration. Defaults match the facility settings lookup."""

    start_time_milestone: str = "patient_in"
    start_time_grace_minutes: float = 3
    start_time_floor_minutes: float = 20
    waiting_on_surgeon_minutes: float = 3
    waiting_on_surgeon_floor_minutes: float = 10
    min_procedure_cases: int = DEFAULT_MIN_PROCEDURE_CASES

    def __post_init__(self):
        if self.start_time_milestone not in START_MILESTONES:
            raise ValueError(
                f"start_time_milestone must be one of {START_MILESTONES}, "
                f"got {self.start_time_milestone!r}"
            )
        for name in ("start_time_grace_minutes", "start_time_floor_minutes",
                     "waiting_on_surgeon_minutes", "waiting_on_surgeon_floor_minutes"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    @classmethod
    def from_mapping(cls, row: Optional[Mapping[str, Any]]) -> "ScorecardSettings":
        """Build settings from a stored row, falling back to defaults for missing keys."""
        if not row:
            return cls()
        values = {k: v for k, v in _pick(cls, row).items() if v is not None}
        if not values.get("start_time_milestone"):
            values.pop("start_time_milestone", None)
        return cls(**values)


@dataclass
class ScorecardInput:
    cases: List[ScorecardCase]
    financials: List[ScorecardFinancials]
    flags: List[ScorecardFlag]
    settings: ScorecardSettings
    date_range: Tuple[str, str]
    timezone: str = DEFAULT_TIMEZONE
    previous_period_cases: Optional[List[ScorecardCase]] = None
    previous_period_financials: Optional[List[ScorecardFinancials]] = None
    previous_period_flags: Optional[List[ScorecardFlag]] = None
    enable_diagnostics: bool = False


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

@dataclass
class ProfitabilityCohort:
    procedure_id: str
    procedure_name: str
    surgeon_median_mpm: float
    cohort_median: float
    cohort_mad: float
    effective_mad: float
    cohort_size: int
    valid_cases: int
    total_cases: int
    raw_score: int
    skipped_reason: Optional[str] = None


@dataclass
class ConsistencyCohort:
    procedure_id: str
    procedure_name: str
    surgeon_cv: float
    cohort_median: float
    cohort_mad: float
    effective_mad: float
    cohort_size: int
    valid_cases: int
    raw_score: int
    skipped_reason: Optional[str] = None


@dataclass
class RelativePillarDiagnostics:
    procedure_cohorts: list = field(default_factory=list)
    final_score: int = 0
    method: str = ""


@dataclass
class AdherenceDiagnostics:
    total_cases_scored: int = 0
    avg_case_score: float = 0.0
    cases_within_grace: int = 0
    cases_at_zero: int = 0
    final_score: int = 0


@dataclass
class AvailabilityDiagnostics:
    gap_cases_scored: int = 0
    avg_gap_score: float = 0.0
    delay_rate: float = 0.0
    gap_pillar_score: int = 0
    delay_pillar_score: int = 0
    final_score: int = 0


@dataclass
class PillarDiagnostics:
    profitability: RelativePillarDiagnostics
    consistency: RelativePillarDiagnostics
    sched_adherence: AdherenceDiagnostics
    availability: AvailabilityDiagnostics


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PillarScores:
    profitability: int
    consistency: int
    sched_adherence: int
    availability: int

    def get(self, key: str) -> int:
        return getattr(self, key)


@dataclass(frozen=True)
class GradeInfo:
    letter: str
    label: str


@dataclass(frozen=True)
class ProcedureCount:
    name: str
    count: int


@dataclass
class OrbitScorecard:
    surgeon_id: str
    surgeon_name: str
    first_name: str
    last_name: str
    case_count: int
    procedures: List[str]
    procedure_breakdown: List[ProcedureCount]
    flip_room: bool
    pillars: PillarScores
    composite: int
    grade: GradeInfo
    trend: str                                   # "up" | "down" | "stable"
    previous_composite: Optional[int] = None
    diagnostics: Optional[PillarDiagnostics] = None


@dataclass(frozen=True)
class ImprovementConfig:
    or_cost_per_minute: float = 60
    annual_case_multiplier: int = 4              # periods per year, 4 for quarterly data
    improvement_threshold: int = 65              # pillars below this get recommendations


@dataclass
class ImprovementRecommendation:
    pillar: str
    pillar_label: str
    priority: int
    current_score: int
    target_score: int
    composite_impact: int
    headline: str
    insight: str
    actions: List[str]
    projected_minutes_saved: int
    projected_annual_hours: float
    projected_annual_dollars: int


@dataclass(frozen=True)
class Strength:
    pillar_label: str
    score: int
    message: str


@dataclass
class ImprovementPlan:
    surgeon_name: str
    current_composite: int
    current_grade: GradeInfo
    projected_composite: int
    projected_grade: GradeInfo
    total_projected_hours: float
    total_projected_dollars: int
    recommendations: List[ImprovementRecommendation]
    strengths: List[Strength]
