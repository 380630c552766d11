"""Tests for the interview lifecycle state machine and SLA escalation."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from models.entities import InterviewState, SlaStatus
from models.errors import IllegalTransition
from models.intents import EscalationEvent
from services.lifecycle_coordinator import LifecycleCoordinator
from services.settings import EngineSettings, SlaPolicy

S = InterviewState

HAPPY_PATH = [S.SLOTS_GENERATED, S.SLOT_CONFIRMED, S.NOTIFIED, S.IN_PROGRESS, S.COMPLETED, S.CLOSED]


@pytest.fixture
def published():
    return []


@pytest.fixture
def archived():
    return []


@pytest.fixture
def lifecycle(settings, published, archived, clock):
    return LifecycleCoordinator(settings, published.append, clock, on_archived=archived.append)


@pytest.fixture
def interview(lifecycle, slots):
    return lifecycle.create("INT-1", "cand-a", "job-1", "Technical Round", slots["S1"], ["eng-1"])


class TestTransitions:
    def test_created_with_sla_deadline(self, interview, clock):
        assert interview.current_state == S.CREATED
        assert interview.sla_deadline == clock.now + timedelta(hours=1)
        assert interview.sla_status == SlaStatus.ON_TRACK

    def test_duplicate_id_rejected(self, lifecycle, interview, slots):
        with pytest.raises(ValueError):
            lifecycle.create("INT-1", "cand-b", "job-1", "Technical Round", slots["S2"], ["eng-2"])

    def test_happy_path_ends_archived(self, lifecycle, interview, archived, clock):
        for state in HAPPY_PATH:
            clock.advance(minutes=5)
            assert lifecycle.transition("INT-1", state) is True

        assert lifecycle.active() == []
        assert [i.interview_id for i in lifecycle.archived()] == ["INT-1"]
        assert archived == [interview]
        assert [e.state for e in lifecycle.history("INT-1")] == [S.CREATED] + HAPPY_PATH

    def test_history_timestamps_never_go_back(self, lifecycle, interview, clock):
        lifecycle.transition("INT-1", S.SLOTS_GENERATED, at=clock.now + timedelta(minutes=10))
        lifecycle.transition("INT-1", S.SLOT_CONFIRMED, at=clock.now + timedelta(minutes=2))

        stamps = [e.timestamp for e in lifecycle.history("INT-1")]
        assert stamps == sorted(stamps)

    def test_redelivered_event_is_ignored(self, lifecycle, interview):
        assert lifecycle.transition("INT-1", S.SLOTS_GENERATED) is True
        assert lifecycle.transition("INT-1", S.SLOTS_GENERATED) is False
        lifecycle.transition("INT-1", S.SLOT_CONFIRMED)
        # Late copy of an earlier event
        assert lifecycle.transition("INT-1", S.SLOTS_GENERATED) is False
        assert len(lifecycle.history("INT-1")) == 3

    def test_skipping_states_is_illegal(self, lifecycle, interview):
        with pytest.raises(IllegalTransition):
            lifecycle.transition("INT-1", S.NOTIFIED)

    def test_closed_is_terminal(self, lifecycle, interview):
        for state in HAPPY_PATH:
            lifecycle.transition("INT-1", state)

        assert lifecycle.transition("INT-1", S.CLOSED) is False
        with pytest.raises(IllegalTransition):
            lifecycle.transition("INT-1", S.RESCHEDULED)

    def test_no_show_then_reschedule_then_new_slot(self, lifecycle, interview, slots):
        for state in (S.SLOTS_GENERATED, S.SLOT_CONFIRMED, S.NOTIFIED, S.NO_SHOW, S.RESCHEDULED):
            lifecycle.transition("INT-1", state)

        lifecycle.reassign("INT-1", slots["S2"], ["eng-2"], priority_score=70)
        assert lifecycle.transition("INT-1", S.SLOTS_GENERATED) is True

        instance = lifecycle.get("INT-1")
        assert instance.slot.id == "S2"
        assert instance.interviewer_ids == ["eng-2"]
        assert instance.priority_score == 70

    def test_reassign_requires_rescheduled(self, lifecycle, interview, slots):
        with pytest.raises(IllegalTransition):
            lifecycle.reassign("INT-1", slots["S2"], ["eng-2"])

    def test_archive_requires_closed(self, lifecycle, interview):
        with pytest.raises(IllegalTransition):
            lifecycle.archive("INT-1")

    def test_unknown_interview(self, lifecycle):
        with pytest.raises(KeyError):
            lifecycle.transition("INT-404", S.SLOTS_GENERATED)


class TestSla:
    def test_overdue_escalates_once(self, lifecycle, interview, published, clock):
        clock.advance(hours=1, minutes=1)

        events = lifecycle.evaluate_sla()
        again = lifecycle.evaluate_sla()

        assert [e.severity for e in events] == ["critical"]
        assert again == []
        assert published == events
        assert interview.sla_status == SlaStatus.OVERDUE
        assert interview.escalation_flag is True

    def test_deadline_itself_is_not_a_breach(self, lifecycle, interview, clock):
        clock.advance(hours=1)
        assert lifecycle.evaluate_sla() == []
        assert interview.sla_status == SlaStatus.ON_TRACK

    def test_at_risk_warning_then_breach(self, lifecycle, interview, published, clock):
        lifecycle.transition("INT-1", S.SLOTS_GENERATED)
        lifecycle.transition("INT-1", S.SLOT_CONFIRMED)

        clock.advance(hours=25)
        lifecycle.evaluate_sla()
        assert interview.sla_status == SlaStatus.AT_RISK

        clock.advance(hours=24)
        lifecycle.evaluate_sla()
        lifecycle.evaluate_sla()

        assert [e.severity for e in published] == ["warning", "critical"]

    def test_new_state_clears_escalation(self, lifecycle, interview, clock):
        clock.advance(hours=2)
        lifecycle.evaluate_sla()

        lifecycle.transition("INT-1", S.SLOTS_GENERATED)

        assert interview.escalation_flag is False
        assert interview.sla_status == SlaStatus.ON_TRACK
        assert interview.sla_deadline == clock.now + timedelta(minutes=30)

    def test_in_progress_has_no_sla(self, lifecycle, interview, published, clock):
        for state in HAPPY_PATH[:4]:
            lifecycle.transition("INT-1", state)

        clock.advance(days=3)

        assert lifecycle.evaluate_sla() == []
        assert interview.sla_deadline is None

    @pytest.mark.asyncio
    async def test_watch_escalates_overdue_state(self, slots):
        published = []
        settings = EngineSettings(sla_policies={S.CREATED: SlaPolicy(0.2 / 3600)})
        lifecycle = LifecycleCoordinator(settings, published.append)
        lifecycle.create("INT-1", "cand-a", "job-1", "Technical Round", slots["S1"], ["eng-1"])

        task = asyncio.create_task(lifecycle.watch("INT-1"))
        for _ in range(100):
            if published:
                break
            await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert isinstance(published[0], EscalationEvent)
        assert published[0].severity == "critical"

    @pytest.mark.asyncio
    async def test_watch_ends_when_archived(self, lifecycle, interview):
        task = asyncio.create_task(lifecycle.watch("INT-1"))
        await asyncio.sleep(0)

        for state in HAPPY_PATH:
            lifecycle.transition("INT-1", state)

        await asyncio.wait_for(task, timeout=1)
        assert task.done()
