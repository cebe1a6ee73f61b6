"""
Cohort builder.

Groups a surgeon's cases by procedure type and builds the facility-wide
peer table from which per-procedure comparison populations are drawn.

Peer populations include every surgeon meeting the minimum-cases floor,
the surgeon being scored among them.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Mapping, Optional

import pandas as pd

from .models import ScorecardCase, ScorecardFinancials
from .stats import coefficient_of_variation, median
from .timing import minutes_between

logger = logging.getLogger(__name__)

PEER_COLUMNS = ["case_id", "surgeon_id", "procedure_type_id", "duration", "mpm"]


def group_by_procedure(cases: List[ScorecardCase]) -> Dict[str, List[ScorecardCase]]:
    """Partition cases by procedure_type_id, keeping first-seen order."""
    grouped: Dict[str, List[ScorecardCase]] = OrderedDict()
    for c in cases:
        grouped.setdefault(c.procedure_type_id, []).append(c)
    return grouped


def group_by_surgeon(cases: List[ScorecardCase]) -> Dict[str, List[ScorecardCase]]:
    grouped: Dict[str, List[ScorecardCase]] = OrderedDict()
    for c in cases:
        grouped.setdefault(c.surgeon_id, []).append(c)
    return grouped


def detect_flip_room(cases: List[ScorecardCase]) -> bool:
    """True if on any scheduled date the cases span more than one OR room."""
    rooms_by_date: Dict[str, set] = {}
    for c in cases:
        rooms_by_date.setdefault(c.scheduled_date, set()).add(c.or_room_id)
    return any(len(rooms) > 1 for rooms in rooms_by_date.values())


def case_duration(case: ScorecardCase) -> Optional[float]:
    """Patient-in to patient-out, in minutes."""
    return minutes_between(case.patient_in_at, case.patient_out_at)


def prep_to_incision(case: ScorecardCase) -> Optional[float]:
    """Prep/drape complete to incision, in minutes."""
    return minutes_between(case.prep_drape_complete_at, case.incision_at)


def margin_per_minute(
    case: ScorecardCase,
    financials_map: Mapping[str, ScorecardFinancials],
    duration: Optional[float] = None,
) -> Optional[float]:
    """Profit per OR minute. None when profit is missing or duration is unusable."""
    fin = financials_map.get(case.id)
    if fin is None or fin.profit is None:
        return None
    if duration is None:
        duration = case_duration(case)
    if not duration or duration <= 0:
        return None
    return fin.profit / duration


def build_financials_map(financials: List[ScorecardFinancials]) -> Dict[str, ScorecardFinancials]:
    return {f.case_id: f for f in financials}


def build_peer_table(
    all_cases: List[ScorecardCase],
    financials_map: Mapping[str, ScorecardFinancials],
) -> pd.DataFrame:
    """One row per facility case with its duration and margin per minute (NaN when unusable)."""
    rows = []
    for c in all_cases:
        duration = case_duration(c)
        rows.append({
            "case_id": c.id,
            "surgeon_id": c.surgeon_id,
            "procedure_type_id": c.procedure_type_id,
            "duration": duration,
            "mpm": margin_per_minute(c, financials_map, duration),
        })
    table = pd.DataFrame(rows, columns=PEER_COLUMNS)
    table["duration"] = pd.to_numeric(table["duration"], errors="coerce")
    table["mpm"] = pd.to_numeric(table["mpm"], errors="coerce")
    logger.debug("Built peer table: %d cases, %d with MPM", len(table), table["mpm"].notna().sum())
    return table


def _per_surgeon(table: pd.DataFrame, procedure_type_id: str, column: str) -> Dict[str, List[float]]:
    """Valid values of ``column`` for one procedure, grouped by surgeon."""
    subset = table[(table["procedure_type_id"] == procedure_type_id) & table[column].notna()]
    if subset.empty:
        return {}
    return {sid: values.tolist() for sid, values in subset.groupby("surgeon_id", sort=False)[column]}


def peer_median_mpms(table: pd.DataFrame, procedure_type_id: str, min_cases: int) -> List[float]:
    """Median MPM of every surgeon with at least min_cases valid cases of this procedure."""
    by_surgeon = _per_surgeon(table, procedure_type_id, "mpm")
    return [median(v) for v in by_surgeon.values() if len(v) >= min_cases]


def peer_cvs(table: pd.DataFrame, procedure_type_id: str, min_cases: int) -> List[float]:
    """Duration CV of every surgeon with at least min_cases valid durations of this procedure."""
    by_surgeon = _per_surgeon(table, procedure_type_id, "duration")
    return [coefficient_of_variation(v) for v in by_surgeon.values() if len(v) >= min_cases]
