"""Tests for backup candidate search and swaps."""

from __future__ import annotations

from datetime import timedelta

import pytest

from models.entities import PriorityWeights, ResourceKey, Slot, SwapContext
from models.errors import SwapExhausted
from models.intents import SwapConfirmation, SwapProposal
from services.availability_service import AvailabilityService
from services.priority_ranker import PriorityRanker
from services.scheduling_queue import SchedulingQueue
from services.settings import EngineSettings
from services.swap_resolver import SwapResolver


@pytest.fixture
def long_slot(slots):
    """A 100-minute slot so coverage minutes read as percentages."""
    start = slots["S1"].start
    return Slot("S-LONG", start, start + timedelta(minutes=100))


@pytest.fixture
def windows(long_slot, make_window):
    def covering(minutes):
        window = make_window(10, 0, 10, 0)
        window.end = long_slot.start + timedelta(minutes=minutes)
        return [window]

    return {
        "cand-a": covering(100),
        "cand-b": covering(92),
        "cand-c": covering(87),
        "cand-d": covering(76),
        "cand-e": [],
        "cand-f": covering(100),
    }


@pytest.fixture
def queue(make_request):
    queue = SchedulingQueue(PriorityRanker(PriorityWeights(), lambda round_name: 50.0))
    for candidate_id in ("cand-a", "cand-b", "cand-c", "cand-d", "cand-e"):
        queue.submit(make_request(candidate_id.split("-")[1], candidate_id=candidate_id, pipeline_position=3))
    queue.submit(make_request("f", candidate_id="cand-f", round_name="Final Round", pipeline_position=3))
    return queue


@pytest.fixture
def published():
    return []


@pytest.fixture
def make_resolver(queue, windows, long_slot, published, clock):
    def _make(**overrides):
        return SwapResolver(
            EngineSettings(**overrides),
            queue,
            AvailabilityService([long_slot]),
            lambda candidate_id: windows.get(candidate_id, []),
            published.append,
            clock,
        )
    return _make


@pytest.fixture
def context(long_slot):
    return SwapContext(
        interview_id="INT-1",
        round_name="Technical Round",
        job_id="job-1",
        slot=long_slot,
        original_candidate_id="cand-a",
        interviewer_ids=["eng-1"],
    )


class TestFindBackups:
    def test_ranked_by_priority_and_availability(self, make_resolver, context):
        backups = make_resolver().find_backups(context)

        assert [b.candidate_id for b in backups] == ["cand-b", "cand-c", "cand-d"]
        assert [b.availability_match for b in backups] == [92, 87, 76]
        assert backups[0].combined_score == (backups[0].priority_score + 92) / 2

    def test_nobody_left(self, make_resolver, context):
        context.round_name = "System Design"
        with pytest.raises(SwapExhausted) as exc_info:
            make_resolver().handle(context)
        assert exc_info.value.entity_id == "INT-1"


class TestExecuteSwap:
    def test_auto_swap_above_threshold(self, make_resolver, context, queue, published):
        result = make_resolver(auto_swap_enabled=True, auto_swap_threshold=85).handle(context)

        assert result.status == "confirmed"
        assert result.candidate.candidate_id == "cand-b"
        request = queue.get("b")
        assert request.preferred_slots[0] == "S-LONG"
        assert request.manual_override is True
        assert request.source == "swap"
        assert [type(p) for p in published] == [SwapConfirmation]
        assert published[0].approved_by == "auto"

    def test_confirmed_backup_may_claim_the_slot_it_lost_before(self, make_resolver, context, queue, long_slot):
        tomorrow = ResourceKey("2025-03-04", "10:00", "eng-1")
        queue.update("b", denied_resources=[ResourceKey.for_slot(long_slot, "eng-1"), tomorrow])

        make_resolver(auto_swap_enabled=True).handle(context)

        request = queue.get("b")
        assert request.denied_resources == [tomorrow]
        assert request.reserved_slot_id == "S-LONG"

    def test_threshold_is_strict(self, make_resolver, context, published):
        result = make_resolver(auto_swap_enabled=True, auto_swap_threshold=92).handle(context)

        assert result.status == "pending_approval"
        assert [type(p) for p in published] == [SwapProposal]

    def test_manual_mode_waits_for_approval(self, make_resolver, context, queue, published):
        resolver = make_resolver()

        result = resolver.handle(context)

        assert result.status == "pending_approval"
        assert resolver.pending() == [result.proposal]
        assert result.proposal.original_candidate_id == "cand-a"
        assert queue.get("b").manual_override is False
        assert published == [result.proposal]

    def test_approve(self, make_resolver, context, queue, published):
        resolver = make_resolver()
        proposal = resolver.handle(context).proposal

        request = resolver.approve(proposal.proposal_id, approved_by="ops")

        assert request.request_id == "b"
        assert queue.get("b").manual_override is True
        assert resolver.pending() == []
        assert published[-1].approved_by == "ops"

    def test_reject_keeps_backup_untouched(self, make_resolver, context, queue):
        resolver = make_resolver()
        proposal = resolver.handle(context).proposal

        returned = resolver.reject(proposal.proposal_id, rejected_by="ops", reason="candidate withdrew")

        assert returned is context
        assert resolver.pending() == []
        assert queue.get("b").source == "intake"
        with pytest.raises(KeyError):
            resolver.approve(proposal.proposal_id, approved_by="ops")
