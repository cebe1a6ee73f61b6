"""Tests for the graduated-decay pillars (Schedule Adherence, Availability)."""

from dataclasses import replace

import pytest

from conftest import make_case
from src.scorecard.absolute import (
    calculate_availability,
    calculate_schedule_adherence,
    delay_rate_percent,
    score_cases_for_adherence,
    score_cases_for_availability,
)
from src.scorecard.models import AdherenceDiagnostics, AvailabilityDiagnostics, ScorecardSettings


@pytest.fixture
def adherence_settings():
    return ScorecardSettings(start_time_grace_minutes=3, start_time_floor_minutes=20)


class TestScheduleAdherence:
    def test_thirteen_minutes_late_scores_half(self, adherence_settings):
        case = make_case("a", late_minutes=13)
        assert score_cases_for_adherence([case], adherence_settings, "UTC") == [pytest.approx(0.5)]

    def test_within_grace_is_full_credit(self, adherence_settings):
        cases = [make_case("a", late_minutes=3), make_case("b", late_minutes=-10)]
        assert score_cases_for_adherence(cases, adherence_settings, "UTC") == [1.0, 1.0]

    def test_pillar_is_mean_case_score(self, adherence_settings):
        cases = [make_case("a", late_minutes=0), make_case("b", late_minutes=13)]
        diag = AdherenceDiagnostics()
        assert calculate_schedule_adherence(cases, adherence_settings, "UTC", diag) == 75
        assert diag.total_cases_scored == 2
        assert diag.avg_case_score == 0.75
        assert diag.cases_within_grace == 1
        assert diag.cases_at_zero == 0
        assert diag.final_score == 75

    def test_always_very_late_is_floored(self, adherence_settings):
        cases = [make_case(str(i), late_minutes=60) for i in range(5)]
        assert calculate_schedule_adherence(cases, adherence_settings, "UTC") == 10

    def test_no_scoreable_cases_defaults_to_50(self, adherence_settings):
        case = make_case("a")
        unscheduled = replace(case, start_time=None)
        diag = AdherenceDiagnostics()
        assert calculate_schedule_adherence([unscheduled], adherence_settings, "UTC", diag) == 50
        assert diag.total_cases_scored == 0

    def test_incision_milestone(self):
        settings = ScorecardSettings(start_time_milestone="incision")
        # patient in on time; incision 22 minutes later -> 22 - 3 grace = 19 of 20 floor
        case = make_case("a", late_minutes=0)
        assert score_cases_for_adherence([case], settings, "UTC") == [pytest.approx(0.05)]

    def test_facility_timezone_conversion(self, adherence_settings):
        case = make_case("a", start_time="13:30")
        local = replace(case, start_time="07:30")
        # 13:30 UTC is 07:30 in Chicago in January
        assert score_cases_for_adherence([local], adherence_settings, "America/Chicago") == [1.0]

    def test_unparseable_actual_start_is_skipped(self, adherence_settings):
        case = make_case("a")
        broken = replace(case, patient_in_at="not-a-time")
        assert score_cases_for_adherence([broken], adherence_settings, "UTC") == []


class TestAvailability:
    def test_gap_within_grace_and_no_delays(self, settings):
        cases = [make_case(str(i), prep_gap=2) for i in range(5)]
        diag = AvailabilityDiagnostics()
        assert calculate_availability(cases, [], settings, diag) == 100
        assert diag.gap_pillar_score == 100
        assert diag.delay_pillar_score == 100

    def test_gap_decays_against_floor(self, settings):
        # 8 min gap: 5 over the 3 min grace, floor 10 -> 0.5
        cases = [make_case(str(i), prep_gap=8) for i in range(4)]
        assert score_cases_for_availability(cases, settings) == [pytest.approx(0.5)] * 4
        assert calculate_availability(cases, [], settings) == 75

    def test_too_few_gap_cases_default_gap_to_50(self, settings):
        cases = [make_case(str(i), prep_gap=None) for i in range(18)]
        cases += [make_case("g1", prep_gap=30), make_case("g2", prep_gap=30)]
        diag = AvailabilityDiagnostics()
        assert calculate_availability(cases, [], settings, diag) == 75
        assert diag.gap_cases_scored == 2
        assert diag.gap_pillar_score == 50

    def test_delay_rate(self, settings, delay_flag):
        cases = [make_case(str(i)) for i in range(20)]
        flags = [delay_flag(str(i)) for i in range(5)]
        flags.append(delay_flag("7", flag_type="threshold"))
        flags.append(delay_flag("someone-else"))
        assert delay_rate_percent(cases, flags) == pytest.approx(25.0)
        diag = AvailabilityDiagnostics()
        # gap 100, delay 100 - 25 * 2 = 50
        assert calculate_availability(cases, flags, settings, diag) == 75
        assert diag.delay_rate == 25.0
        assert diag.delay_pillar_score == 50

    def test_heavy_delays_floor_delay_score(self, settings, delay_flag):
        cases = [make_case(str(i)) for i in range(10)]
        flags = [delay_flag(str(i)) for i in range(10)]
        diag = AvailabilityDiagnostics()
        calculate_availability(cases, flags, settings, diag)
        assert diag.delay_pillar_score == 10

    def test_no_cases(self, settings):
        assert calculate_availability([], [], settings) == 50
