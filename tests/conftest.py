"""Shared record factories and a synthetic facility for scorecard tests."""

from datetime import datetime, timedelta, timezone

import pytest

from src.scorecard.models import (
    ScorecardCase,
    ScorecardFinancials,
    ScorecardFlag,
    ScorecardInput,
    ScorecardSettings,
)


def make_case(
    case_id,
    surgeon_id="s1",
    procedure_type_id="p1",
    procedure_name="Knee arthroscopy",
    room="OR-1",
    date="2025-01-06",
    start_time="07:30",
    late_minutes=0,
    duration=90,
    prep_gap=2,
    last_name=None,
):
    """A completed case whose clock is UTC (so facility-local == UTC when timezone='UTC')."""
    scheduled = datetime.fromisoformat(f"{date}T{start_time}:00").replace(tzinfo=timezone.utc)
    patient_in = scheduled + timedelta(minutes=late_minutes)
    prep_done = patient_in + timedelta(minutes=20)
    incision = prep_done + timedelta(minutes=prep_gap) if prep_gap is not None else None
    patient_out = patient_in + timedelta(minutes=duration) if duration is not None else None
    return ScorecardCase(
        id=case_id,
        surgeon_id=surgeon_id,
        surgeon_first_name=f"First-{surgeon_id}",
        surgeon_last_name=last_name or f"Last-{surgeon_id}",
        procedure_type_id=procedure_type_id,
        procedure_name=procedure_name,
        or_room_id=room,
        scheduled_date=date,
        start_time=start_time,
        patient_in_at=patient_in.isoformat(),
        incision_at=incision.isoformat() if incision else None,
        prep_drape_complete_at=prep_done.isoformat(),
        closing_at=None,
        patient_out_at=patient_out.isoformat() if patient_out else None,
    )


def case_dates(n, start="2025-01-06"):
    """n weekday dates starting at ``start``."""
    day = datetime.fromisoformat(start)
    dates = []
    while len(dates) < n:
        if day.weekday() < 5:
            dates.append(day.strftime("%Y-%m-%d"))
        day += timedelta(days=1)
    return dates


def build_facility(
    surgeon_ids=("s1", "s2", "s3", "s4", "s5"),
    cases_per_surgeon=20,
    duration=90,
    mpm=20.0,
    start="2025-01-06",
    prefix="c",
):
    """Every surgeon does the same procedure with identical duration and margin per minute."""
    cases, financials = [], []
    dates = case_dates(cases_per_surgeon, start)
    for sid in surgeon_ids:
        for i in range(cases_per_surgeon):
            cid = f"{prefix}-{sid}-{i}"
            cases.append(make_case(cid, surgeon_id=sid, date=dates[i], duration=duration))
            financials.append(ScorecardFinancials(cid, profit=mpm * duration))
    return cases, financials


@pytest.fixture
def settings():
    return ScorecardSettings()


@pytest.fixture
def uniform_facility():
    return build_facility()


@pytest.fixture
def uniform_input(uniform_facility, settings):
    cases, financials = uniform_facility
    return ScorecardInput(
        cases=cases,
        financials=financials,
        flags=[],
        settings=settings,
        date_range=("2025-01-06", "2025-01-31"),
        timezone="UTC",
    )


@pytest.fixture
def delay_flag():
    def _make(case_id, flag_type="delay"):
        return ScorecardFlag(case_id=case_id, flag_type=flag_type, severity="warning")
    return _make
