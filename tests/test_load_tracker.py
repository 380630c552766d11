"""Tests for interviewer capacity, fatigue and panel ranking."""

from __future__ import annotations

from datetime import timedelta

import pytest

from models.errors import CapacityExceeded
from services.eligibility_validator import EligibilityValidator
from services.load_tracker import LoadTracker
from services.settings import EngineSettings


@pytest.fixture
def make_tracker(clock):
    def _make(*capacities, **overrides):
        tracker = LoadTracker(EngineSettings(**overrides), EligibilityValidator(), clock)
        tracker.load_directory(capacities)
        return tracker
    return _make


class TestCapacity:
    def test_round_names_must_match_exactly(self, make_capacity):
        capacity = make_capacity(round_types=("Technical Round", "Round", ""))

        assert capacity.serves("  technical   ROUND ")
        assert not capacity.serves("Final Round")
        assert not capacity.serves("Technical")
        assert not capacity.serves("")

    def test_load_is_the_tighter_of_day_and_week(self, make_capacity):
        capacity = make_capacity(interviews_today=2, interviews_this_week=5)
        assert capacity.load_percentage == 50
        assert capacity.load_badge == "Optimal"

    def test_zero_limit_counts_as_full(self, make_capacity):
        assert make_capacity(daily_limit=0).load_percentage == 100

    def test_reads_are_copies(self, make_tracker, make_capacity):
        tracker = make_tracker(make_capacity("eng-1"))
        snapshot = tracker.capacity("eng-1")
        snapshot.interviews_today = 3
        snapshot.soft_violations.append("edited")

        fresh = tracker.capacity("eng-1")
        assert fresh.interviews_today == 0
        assert fresh.soft_violations == []

    def test_unknown_interviewer(self, make_tracker):
        tracker = make_tracker()
        with pytest.raises(KeyError):
            tracker.capacity("nobody")


class TestEligiblePanel:
    def test_full_interviewer_is_excluded(self, make_tracker, make_capacity):
        tracker = make_tracker(
            make_capacity("eng-1", interviews_today=4),
            make_capacity("eng-2", role="Staff Engineer", seniority="staff", interviews_today=1),
        )

        assert [c.interviewer_id for c in tracker.eligible_panel("Technical Round")] == ["eng-2"]
        everyone = tracker.eligible_panel("Technical Round", exclude_overloaded=False)
        assert {c.interviewer_id for c in everyone} == {"eng-1", "eng-2"}

    def test_ineligible_roles_are_dropped(self, make_tracker, make_capacity):
        tracker = make_tracker(
            make_capacity("eng-1"),
            make_capacity("rec-1", role="Recruiter", round_types=("Technical Round",)),
            make_capacity("eng-3", role="Software Engineer", seniority="mid"),
        )
        assert [c.interviewer_id for c in tracker.eligible_panel("Technical Round")] == ["eng-1"]

    def test_ranked_by_load_availability_and_fatigue(self, make_tracker, make_capacity):
        tracker = make_tracker(
            make_capacity("eng-1", fatigue_score=50),
            make_capacity("eng-2", role="Staff Engineer", seniority="staff"),
        )
        assert [c.interviewer_id for c in tracker.eligible_panel("Technical Round")] == ["eng-2", "eng-1"]

    def test_tie_goes_to_closest_seniority(self, make_tracker, make_capacity):
        tracker = make_tracker(
            make_capacity("eng-p", role="Principal Engineer", seniority="principal"),
            make_capacity("eng-s", role="Senior Engineer", seniority="senior"),
        )
        assert [c.interviewer_id for c in tracker.eligible_panel("Technical Round")] == ["eng-s", "eng-p"]

    def test_final_round_tie_prefers_most_senior(self, make_tracker, make_capacity):
        tracker = make_tracker(
            make_capacity("hm-1", role="Hiring Manager", seniority="senior", round_types=("Final Round",)),
            make_capacity("hm-2", role="Hiring Manager", seniority="principal", round_types=("Final Round",)),
        )
        assert [c.interviewer_id for c in tracker.eligible_panel("Final Round")] == ["hm-2", "hm-1"]

    def test_slot_filter(self, make_tracker, make_capacity):
        tracker = make_tracker(make_capacity("eng-1", slots=("S1",)))
        assert tracker.eligible_panel("Technical Round", slot_id="S2") == []
        assert len(tracker.eligible_panel("Technical Round", slot_id="S1")) == 1

    def test_average_load(self, make_tracker, make_capacity):
        tracker = make_tracker(
            make_capacity("eng-1", interviews_today=4),
            make_capacity("eng-2", role="Staff Engineer", seniority="staff", interviews_today=2),
        )
        assert tracker.average_load("Technical Round") == 75
        assert tracker.average_load("Final Round") is None

    def test_backup_panel_under_threshold(self, make_tracker, make_capacity):
        tracker = make_tracker(
            make_capacity("eng-1", is_backup_panel=True, interviews_today=2),
            make_capacity("eng-2", role="Staff Engineer", seniority="staff",
                          is_backup_panel=True, daily_limit=20, interviews_today=17),
            make_capacity("eng-3", role="Staff Engineer", seniority="staff"),
        )
        assert [c.interviewer_id for c in tracker.suggest_backup_panel("Technical Round")] == ["eng-1"]


class TestRecordAssignment:
    def test_counts_fatigue_and_slot(self, make_tracker, make_capacity):
        tracker = make_tracker(make_capacity("eng-1"))

        capacity = tracker.record_assignment("eng-1", "S1")

        assert (capacity.interviews_today, capacity.interviews_this_week) == (1, 1)
        assert capacity.fatigue_score == 15
        assert capacity.available_slots == frozenset({"S2"})
        assert capacity.availability_score == 50

    def test_consecutive_penalty(self, make_tracker, make_capacity):
        tracker = make_tracker(make_capacity("eng-1", daily_limit=10, weekly_limit=50))
        for _ in range(4):
            capacity = tracker.record_assignment("eng-1")
        assert capacity.fatigue_score == 70

    def test_load_never_drops_within_a_day(self, make_tracker, make_capacity, clock):
        tracker = make_tracker(make_capacity("eng-1", daily_limit=10, weekly_limit=50))
        loads = []
        for _ in range(6):
            clock.advance(minutes=40)
            tracker.rebalance()
            loads.append(tracker.record_assignment("eng-1").load_percentage)
        assert loads == sorted(loads)

    def test_refused_at_capacity(self, make_tracker, make_capacity):
        tracker = make_tracker(make_capacity("eng-1", daily_limit=3, interviews_today=3))

        with pytest.raises(CapacityExceeded) as exc_info:
            tracker.record_assignment("eng-1", "S1")

        assert exc_info.value.entity_id == "eng-1"
        assert tracker.capacity("eng-1").interviews_today == 3

    def test_soft_violation_when_not_enforced(self, make_tracker, make_capacity):
        tracker = make_tracker(
            make_capacity("eng-1", daily_limit=3, interviews_today=3),
            enforce_load_balancing=False,
        )

        capacity = tracker.record_assignment("eng-1")

        assert capacity.interviews_today == 4
        assert len(capacity.soft_violations) == 1
        assert "daily limit 3 reached" in capacity.soft_violations[0]

    def test_release_slot_keeps_counts(self, make_tracker, make_capacity):
        tracker = make_tracker(make_capacity("eng-1"))
        tracker.record_assignment("eng-1", "S1")

        capacity = tracker.release_slot("eng-1", "S1")

        assert "S1" in capacity.available_slots
        assert capacity.availability_score == 100
        assert capacity.interviews_today == 1


class TestPeriods:
    def test_daily_rollover(self, make_tracker, make_capacity, clock):
        tracker = make_tracker(make_capacity("eng-1"))
        tracker.record_assignment("eng-1")

        clock.advance(days=1)
        capacity = tracker.capacity("eng-1")

        assert capacity.interviews_today == 0
        assert capacity.interviews_this_week == 1

    def test_weekly_rollover(self, make_tracker, make_capacity, clock):
        tracker = make_tracker(make_capacity("eng-1"))
        tracker.record_assignment("eng-1")

        clock.advance(days=7)

        assert tracker.capacity("eng-1").interviews_this_week == 0

    def test_rebalance_decays_fatigue_and_resets_streak(self, make_tracker, make_capacity, clock):
        tracker = make_tracker(make_capacity("eng-1"))
        tracker.record_assignment("eng-1")
        tracker.record_assignment("eng-1")

        loads = tracker.rebalance(clock.now + timedelta(hours=2))

        capacity = tracker.capacity("eng-1")
        assert loads == {"eng-1": 50}
        assert capacity.fatigue_score == 20
        assert capacity.consecutive_today == 0
