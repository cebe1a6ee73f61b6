"""
Batch Scorecard Runner

Loads pre-fetched case / financial / flag extracts, splits them into the
scoring window and the equal-length window immediately before it (for
trend), computes ORbit scorecards and optionally improvement plans, and
writes the results as JSON.

Usage:
    python -m src.scorecard.runner --cases output/cases.csv \
        --financials output/financials.csv --flags output/flags.csv \
        --start-date 2025-01-01 --end-date 2025-03-31 --improvement-plans
"""

import argparse
import json
import logging
import os
from dataclasses import asdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .engine import calculate_orbit_scores
from .improvement import generate_improvement_plan
from .models import (
    DEFAULT_TIMEZONE,
    ImprovementConfig,
    ScorecardCase,
    ScorecardFinancials,
    ScorecardFlag,
    ScorecardInput,
    ScorecardSettings,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 90

# Identifier and clock columns stay text ("07:30", zero-padded ids)
TEXT_COLUMNS = [
    "id", "case_id", "surgeon_id", "procedure_type_id", "or_room_id",
    "scheduled_date", "start_time", "surgeon_first_name", "surgeon_last_name",
    "procedure_name", "patient_in_at", "incision_at", "prep_drape_complete_at",
    "closing_at", "patient_out_at", "flag_type", "severity", "delay_type_name",
    "created_by",
]


def load_records(path: str) -> List[Dict[str, Any]]:
    """Load records from a CSV or JSON file. Missing values come back as None."""
    try:
        if path.endswith(".json"):
            with open(path) as f:
                df = pd.DataFrame(json.load(f))
        else:
            df = pd.read_csv(path, dtype={c: str for c in TEXT_COLUMNS}, keep_default_na=True)
    except (OSError, ValueError) as e:
        logger.error("Failed to load %s: %s", path, e)
        raise
    df = df.astype(object).where(df.notna(), None)
    logger.info("Loaded %d records from %s", len(df), path)
    return df.to_dict("records")


def load_settings(path: Optional[str]) -> ScorecardSettings:
    if not path:
        return ScorecardSettings()
    with open(path) as f:
        return ScorecardSettings.from_mapping(json.load(f))


def previous_window(start: date, end: date) -> Tuple[date, date]:
    """Half-open window of the same length immediately before ``start``."""
    length = end - start
    return start - length, start


def split_periods(
    cases: List[ScorecardCase],
    financials: List[ScorecardFinancials],
    flags: List[ScorecardFlag],
    start: date,
    end: date,
) -> Dict[str, Any]:
    """Partition records into the current [start, end] and previous [prev_start, start) windows."""
    prev_start, _ = previous_window(start, end)
    s, e, p = start.isoformat(), end.isoformat(), prev_start.isoformat()

    current = [c for c in cases if s <= c.scheduled_date[:10] <= e]
    previous = [c for c in cases if p <= c.scheduled_date[:10] < s]
    current_ids = {c.id for c in current}
    previous_ids = {c.id for c in previous}

    return {
        "cases": current,
        "financials": [f for f in financials if f.case_id in current_ids],
        "flags": [f for f in flags if f.case_id in current_ids],
        "previous_period_cases": previous or None,
        "previous_period_financials": [f for f in financials if f.case_id in previous_ids] or None,
        "previous_period_flags": [f for f in flags if f.case_id in previous_ids] or None,
    }


def run_scorecards(
    cases_path: str,
    financials_path: str,
    flags_path: Optional[str],
    output_dir: str,
    start: date,
    end: date,
    tz: str = DEFAULT_TIMEZONE,
    settings_path: Optional[str] = None,
    diagnostics: bool = False,
    improvement_plans: bool = False,
    improvement_config: Optional[ImprovementConfig] = None,
) -> Dict[str, Any]:
    """Run the full scoring pipeline over file extracts and write JSON results."""
    os.makedirs(output_dir, exist_ok=True)

    cases = [ScorecardCase.from_dict(r) for r in load_records(cases_path)]
    financials = [ScorecardFinancials.from_dict(r) for r in load_records(financials_path)]
    flags = [ScorecardFlag.from_dict(r) for r in load_records(flags_path)] if flags_path else []
    settings = load_settings(settings_path)

    periods = split_periods(cases, financials, flags, start, end)
    logger.info(
        "Scoring window %s to %s: %d cases (%d in previous window)",
        start, end, len(periods["cases"]), len(periods["previous_period_cases"] or []),
    )

    scorecards = calculate_orbit_scores(ScorecardInput(
        settings=settings,
        date_range=(start.isoformat(), end.isoformat()),
        timezone=tz,
        enable_diagnostics=diagnostics or improvement_plans,
        **periods,
    ))

    results: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "date_range": {"start": start.isoformat(), "end": end.isoformat()},
        "timezone": tz,
        "scorecards": [asdict(s) for s in scorecards],
    }
    with open(os.path.join(output_dir, "scorecards.json"), "w") as f:
        json.dump(results, f, indent=2, default=str)

    if improvement_plans:
        plans = [asdict(generate_improvement_plan(s, settings, improvement_config)) for s in scorecards]
        results["improvement_plans"] = plans
        with open(os.path.join(output_dir, "improvement_plans.json"), "w") as f:
            json.dump(plans, f, indent=2, default=str)

    logger.info("Scorecard results written to %s", output_dir)
    return results


def _parse_date(value: str) -> date:
    return datetime.strptime(value, "%Y-%m-%d").date()


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    parser = argparse.ArgumentParser(description="ORbit surgeon scorecards")
    parser.add_argument("--cases", required=True, help="Case extract (.csv or .json)")
    parser.add_argument("--financials", required=True, help="Financials extract (.csv or .json)")
    parser.add_argument("--flags", default=None, help="Flags extract (.csv or .json)")
    parser.add_argument("--settings", default=None, help="Facility scoring settings (.json)")
    parser.add_argument("--start-date", type=str, default=None, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end-date", type=str, default=None, help="End date (YYYY-MM-DD)")
    parser.add_argument("--timezone", default=os.getenv("ORBIT_TIMEZONE", DEFAULT_TIMEZONE))
    parser.add_argument("--diagnostics", action="store_true", help="Include pillar diagnostics")
    parser.add_argument("--improvement-plans", action="store_true",
                        help="Also write improvement plans (implies --diagnostics)")
    parser.add_argument("--or-cost-per-minute", type=float, default=60)
    parser.add_argument("--annual-case-multiplier", type=int, default=4)
    parser.add_argument("--output-dir", default=os.getenv("ORBIT_OUTPUT_DIR", "output/scorecards"))
    args = parser.parse_args()

    end = _parse_date(args.end_date) if args.end_date else datetime.now(timezone.utc).date()
    start = _parse_date(args.start_date) if args.start_date else end - timedelta(days=DEFAULT_WINDOW_DAYS)

    run_scorecards(
        args.cases, args.financials, args.flags, args.output_dir, start, end,
        tz=args.timezone,
        settings_path=args.settings,
        diagnostics=args.diagnostics,
        improvement_plans=args.improvement_plans,
        improvement_config=ImprovementConfig(
            or_cost_per_minute=args.or_cost_per_minute,
            annual_case_multiplier=args.annual_case_multiplier,
        ),
    )


if __name__ == "__main__":
    main()
