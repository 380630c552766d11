"""Tests for conflict detection and resolution strategies."""

from __future__ import annotations

from datetime import timedelta

import pytest

from models.entities import ConflictStrategy, ContestedResource, ResolutionState
from models.errors import NoEligibleInterviewer, ResolutionInProgress
from services.conflict_resolver import ConflictResolver
from services.settings import EngineSettings


@pytest.fixture
def resolver(clock):
    return ConflictResolver(EngineSettings(), clock=clock)


@pytest.fixture
def contest(make_request, make_claim):
    """cand-a scores 89, cand-b scores 87; both want S1 with eng-1."""
    def _make(a_kwargs=None, b_kwargs=None):
        a = make_claim(make_request("a", candidate_id="cand-a", **(a_kwargs or {})), 89)
        b = make_claim(make_request("b", candidate_id="cand-b", **(b_kwargs or {})), 87)
        return ContestedResource(resource=a.resource, claims=[a, b])
    return _make


class TestDetect:
    def test_single_claim_is_an_assignment(self, make_request, make_claim):
        a = make_claim(make_request("a"), 89)
        b = make_claim(make_request("b"), 87)
        c = make_claim(make_request("c"), 50, slot_id="S2")

        assignments, conflicts = ConflictResolver.detect([a, b, c])

        assert assignments == [c]
        assert len(conflicts) == 1
        assert conflicts[0].claims == [a, b]
        assert conflicts[0].state == ResolutionState.OPEN

    def test_contested_resource_needs_two_claims(self, make_request, make_claim):
        claim = make_claim(make_request("a"), 89)
        with pytest.raises(ValueError):
            ContestedResource(resource=claim.resource, claims=[claim])


class TestStrategies:
    def test_priority_picks_highest_score(self, resolver, contest):
        contested = contest()

        resolution = resolver.resolve(contested)

        assert resolution.winner.request.candidate_id == "cand-a"
        assert resolution.strategy == ConflictStrategy.PRIORITY
        assert contested.state == ResolutionState.RESOLVED

    def test_urgency_flag_beats_score(self, resolver, contest):
        resolution = resolver.resolve(contest(b_kwargs={"urgency_flag": True}), ConflictStrategy.URGENCY)

        assert resolution.winner.request.candidate_id == "cand-b"
        assert resolution.reason == "urgent flag"

    def test_urgency_without_flags_falls_back_to_score(self, resolver, contest):
        resolution = resolver.resolve(contest(), ConflictStrategy.URGENCY)
        assert resolution.winner.request.candidate_id == "cand-a"

    def test_stage_picks_furthest_candidate(self, resolver, contest):
        contested = contest(a_kwargs={"pipeline_position": 3}, b_kwargs={"pipeline_position": 5})

        resolution = resolver.resolve(contested, ConflictStrategy.STAGE)

        assert resolution.winner.request.candidate_id == "cand-b"

    def test_fair_picks_fewest_recent_wins(self, resolver, contest):
        resolver.record_win("cand-a")

        resolution = resolver.resolve(contest(), ConflictStrategy.FAIR)

        assert resolution.winner.request.candidate_id == "cand-b"
        assert resolution.requeued[0].availability_bump == 10

    def test_fair_window_forgets_old_wins(self, resolver, contest, clock):
        resolver.record_win("cand-a", at=clock.now - timedelta(days=8))

        resolution = resolver.resolve(contest(), ConflictStrategy.FAIR)

        assert resolution.winner.request.candidate_id == "cand-a"
        assert resolver.wins_in_window("cand-a") == 1

    def test_equal_scores_go_to_earliest_request(self, resolver, make_request, make_claim):
        early = make_request("z-early")
        late = make_request("a-late", last_updated=early.last_updated + timedelta(minutes=5))
        claims = [make_claim(late, 70), make_claim(early, 70)]

        winner, _ = resolver.pick_winner(claims, ConflictStrategy.PRIORITY)

        assert winner.request.request_id == "z-early"

    @pytest.mark.parametrize("strategy", list(ConflictStrategy))
    def test_confirmed_swap_keeps_its_slot(self, resolver, contest, strategy):
        contested = contest(
            a_kwargs={"urgency_flag": True, "pipeline_position": 5},
            b_kwargs={"source": "swap", "reserved_slot_id": "S1"},
        )

        resolution = resolver.resolve(contested, strategy)

        assert resolution.winner.request.candidate_id == "cand-b"
        assert resolution.reason == "slot S1 held by a confirmed swap"

    def test_reservation_of_another_slot_does_not_count(self, resolver, contest):
        resolution = resolver.resolve(contest(b_kwargs={"source": "swap", "reserved_slot_id": "S2"}))
        assert resolution.winner.request.candidate_id == "cand-a"


class TestResolve:
    def test_loser_is_requeued_for_the_next_resource(self, resolver, contest):
        contested = contest()
        original = contested.claims[1].request

        resolution = resolver.resolve(contested)

        assert [c.request.request_id for c in resolution.losers] == ["b"]
        requeued = resolution.requeued[0]
        assert requeued.request_id == original.request_id
        assert requeued.last_updated == original.last_updated
        assert requeued.denied_resources == [contested.resource]
        assert requeued.requeue_count == 1
        assert requeued.source == "requeue"
        assert requeued.availability_bump == 0

    def test_same_input_same_winner(self, resolver, contest):
        contested = contest()
        first, _ = resolver.pick_winner(contested.claims, ConflictStrategy.PRIORITY)
        second, _ = resolver.pick_winner(list(reversed(contested.claims)), ConflictStrategy.PRIORITY)
        assert first is second

    def test_resolving_twice_returns_the_stored_resolution(self, resolver, contest):
        contested = contest()
        assert resolver.resolve(contested) is resolver.resolve(contested)

    def test_blocked_claims_cannot_win(self, clock, contest):
        resolver = ConflictResolver(
            EngineSettings(),
            eligibility_check=lambda claim: claim.request.candidate_id != "cand-a",
            clock=clock,
        )

        resolution = resolver.resolve(contest())

        assert resolution.winner.request.candidate_id == "cand-b"
        assert [c.request.candidate_id for c in resolution.losers] == ["cand-a"]

    def test_all_blocked(self, clock, contest):
        resolver = ConflictResolver(EngineSettings(), eligibility_check=lambda claim: False, clock=clock)
        contested = contest()

        with pytest.raises(NoEligibleInterviewer):
            resolver.resolve(contested)
        assert contested.state == ResolutionState.RESOLVED

    def test_concurrent_resolution_is_rejected(self, resolver, contest):
        contested = contest()
        contested.lock.acquire()
        try:
            with pytest.raises(ResolutionInProgress) as exc_info:
                resolver.resolve(contested)
        finally:
            contested.lock.release()

        assert exc_info.value.retryable is True
        assert contested.state == ResolutionState.OPEN
