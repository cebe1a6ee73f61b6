"""Tests for the cohort builder."""

import pytest

from conftest import make_case
from src.scorecard.cohorts import (
    build_financials_map,
    build_peer_table,
    case_duration,
    detect_flip_room,
    group_by_procedure,
    margin_per_minute,
    peer_cvs,
    peer_median_mpms,
    prep_to_incision,
)
from src.scorecard.models import ScorecardFinancials


class TestGrouping:
    def test_group_by_procedure_preserves_order(self):
        cases = [
            make_case("a", procedure_type_id="p2"),
            make_case("b", procedure_type_id="p1"),
            make_case("c", procedure_type_id="p2"),
        ]
        grouped = group_by_procedure(cases)
        assert list(grouped) == ["p2", "p1"]
        assert [c.id for c in grouped["p2"]] == ["a", "c"]

    def test_flip_room_detected_on_same_day(self):
        cases = [
            make_case("a", room="OR-1", date="2025-01-06"),
            make_case("b", room="OR-2", date="2025-01-06"),
        ]
        assert detect_flip_room(cases) is True

    def test_different_rooms_on_different_days_is_not_flip(self):
        cases = [
            make_case("a", room="OR-1", date="2025-01-06"),
            make_case("b", room="OR-2", date="2025-01-07"),
            make_case("c", room="OR-2", date="2025-01-07"),
        ]
        assert detect_flip_room(cases) is False


class TestCaseMetrics:
    def test_case_duration(self):
        assert case_duration(make_case("a", duration=75)) == pytest.approx(75)
        assert case_duration(make_case("a", duration=None)) is None

    def test_prep_to_incision(self):
        assert prep_to_incision(make_case("a", prep_gap=7)) == pytest.approx(7)
        assert prep_to_incision(make_case("a", prep_gap=None)) is None
        # zero gap is not measurable
        assert prep_to_incision(make_case("a", prep_gap=0)) is None

    def test_break_even_profit_counts(self):
        fin = build_financials_map([ScorecardFinancials("a", profit=0)])
        assert margin_per_minute(make_case("a"), fin) == 0

    def test_missing_profit_is_excluded(self):
        fin = build_financials_map([ScorecardFinancials("a", profit=None)])
        assert margin_per_minute(make_case("a"), fin) is None
        assert margin_per_minute(make_case("b"), fin) is None

    def test_unmeasurable_duration_is_excluded(self):
        fin = build_financials_map([ScorecardFinancials("a", profit=900)])
        assert margin_per_minute(make_case("a", duration=None), fin) is None


@pytest.fixture
def facility():
    """s1: 3 cases at 10/min, s2: 3 cases at 20/min, s3: 2 cases (below floor), all p1."""
    cases, financials = [], []
    for sid, n, mpm in [("s1", 3, 10), ("s2", 3, 20), ("s3", 2, 99)]:
        for i in range(n):
            cid = f"{sid}-{i}"
            cases.append(make_case(cid, surgeon_id=sid, duration=60 + 10 * i))
            financials.append(ScorecardFinancials(cid, profit=mpm * (60 + 10 * i)))
    cases.append(make_case("other", surgeon_id="s1", procedure_type_id="p9"))
    return cases, build_financials_map(financials)


class TestPeerCohorts:
    def test_peer_table_shape(self, facility):
        cases, fin = facility
        table = build_peer_table(cases, fin)
        assert len(table) == len(cases)
        assert list(table.columns) == ["case_id", "surgeon_id", "procedure_type_id", "duration", "mpm"]
        assert table.loc[table["case_id"] == "other", "mpm"].isna().all()

    def test_peer_median_mpms_filters_small_surgeons(self, facility):
        cases, fin = facility
        table = build_peer_table(cases, fin)
        assert sorted(peer_median_mpms(table, "p1", 3)) == pytest.approx([10, 20])
        assert sorted(peer_median_mpms(table, "p1", 2)) == pytest.approx([10, 20, 99])

    def test_peer_population_includes_the_scored_surgeon(self, facility):
        cases, fin = facility
        table = build_peer_table(cases, fin)
        # s1's own median MPM is part of the population it is compared against
        assert 10 in peer_median_mpms(table, "p1", 3)

    def test_peer_cvs(self, facility):
        cases, fin = facility
        table = build_peer_table(cases, fin)
        cvs = peer_cvs(table, "p1", 3)
        assert len(cvs) == 2
        # durations 60, 70, 80 -> sd 10, mean 70
        assert cvs == pytest.approx([10 / 70, 10 / 70])

    def test_unknown_procedure_has_no_peers(self, facility):
        cases, fin = facility
        table = build_peer_table(cases, fin)
        assert peer_median_mpms(table, "nope", 3) == []
        assert peer_cvs(table, "nope", 3) == []

    def test_empty_facility(self):
        table = build_peer_table([], {})
        assert peer_median_mpms(table, "p1", 3) == []
        assert peer_cvs(table, "p1", 3) == []
