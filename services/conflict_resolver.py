"""Resolution of competing claims on the same interviewer and slot."""

import logging
import threading
from collections import defaultdict, deque
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from models.entities import (
    Claim,
    ConflictStrategy,
    ContestedResource,
    Resolution,
    ResolutionState,
    ResourceKey,
    SchedulingRequest,
    utcnow,
)
from models.errors import NoEligibleInterviewer, ResolutionInProgress
from services.settings import EngineSettings

logger = logging.getLogger(__name__)


def _priority_key(claim: Claim):
    """Highest total first, then earliest request, then id for stability."""
    return (-claim.score.total, claim.request.last_updated, claim.request.request_id)


class ConflictResolver:
    """
    Picks one winner per contested resource and re-queues the losers.

    The strategy is fixed per engine (tenant). Resolution of one resource
    is atomic: it runs under the resource's lock and walks
    open -> resolving -> resolved.
    """

    def __init__(
        self,
        settings: EngineSettings,
        eligibility_check: Optional[Callable[[Claim], bool]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.strategy = settings.conflict_strategy
        self.eligibility_check = eligibility_check or (lambda claim: True)
        self.clock = clock
        self._wins: deque[tuple[str, datetime]] = deque()
        self._wins_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    @staticmethod
    def detect(claims: Iterable[Claim]) -> tuple[list[Claim], list[ContestedResource]]:
        """
        Split claims into uncontested assignments and contested resources.

        A resource with a single claimant is an assignment, not a conflict.
        """
        grouped: dict[ResourceKey, list[Claim]] = defaultdict(list)
        for claim in claims:
            grouped[claim.resource].append(claim)

        assignments = []
        conflicts = []
        for resource, group in grouped.items():
            if len(group) == 1:
                assignments.append(group[0])
            else:
                conflicts.append(ContestedResource(resource=resource, claims=group))
        return assignments, conflicts

    # ------------------------------------------------------------------
    # Fair-strategy win log
    # ------------------------------------------------------------------

    def wins_in_window(self, candidate_id: str, now: Optional[datetime] = None) -> int:
        now = now or self.clock()
        cutoff = now - timedelta(days=self.settings.fair_window_days)
        with self._wins_lock:
            while self._wins and self._wins[0][1] < cutoff:
                self._wins.popleft()
            return sum(1 for cid, _ in self._wins if cid == candidate_id)

    def record_win(self, candidate_id: str, at: Optional[datetime] = None) -> None:
        with self._wins_lock:
            self._wins.append((candidate_id, at or self.clock()))

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def pick_winner(
        self,
        claims: list[Claim],
        strategy: ConflictStrategy,
        now: Optional[datetime] = None,
    ) -> tuple[Claim, str]:
        """Deterministically choose a winner among claims (no side effects)."""
        by_priority = sorted(claims, key=_priority_key)
        reserved = [c for c in by_priority if c.request.reserved_slot_id == c.slot.id]
        if reserved:
            return reserved[0], f"slot {reserved[0].slot.id} held by a confirmed swap"

        if strategy == ConflictStrategy.URGENCY:
            for claim in by_priority:
                if claim.request.urgency_flag:
                    return claim, "urgent flag"
            winner = by_priority[0]
            return winner, f"no urgent candidates, highest priority score {winner.score.total:g}"

        if strategy == ConflictStrategy.STAGE:
            winner = min(
                by_priority,
                key=lambda c: (-c.request.pipeline_position,) + _priority_key(c),
            )
            return winner, f"furthest pipeline stage ({winner.request.pipeline_position})"

        if strategy == ConflictStrategy.FAIR:
            now = now or self.clock()
            wins = {c.request.candidate_id: self.wins_in_window(c.request.candidate_id, now) for c in claims}
            winner = min(
                by_priority,
                key=lambda c: (wins[c.request.candidate_id],) + _priority_key(c),
            )
            return winner, f"fewest recent wins ({wins[winner.request.candidate_id]})"

        winner = by_priority[0]
        return winner, f"highest priority score {winner.score.total:g}"

    def resolve(
        self,
        contested: ContestedResource,
        strategy: Optional[ConflictStrategy] = None,
    ) -> Resolution:
        """
        Resolve a contested resource into a winner and re-queued losers.

        Raises:
            ResolutionInProgress: Another resolver holds the resource
            NoEligibleInterviewer: Every claim is blocked by eligibility rules
        """
        strategy = strategy or self.strategy
        if not contested.lock.acquire(blocking=False):
            raise ResolutionInProgress(
                f"Resolution of {contested.resource} is already running", str(contested.resource)
            )
        try:
            if contested.state == ResolutionState.RESOLVED and contested.resolution is not None:
                return contested.resolution
            contested.state = ResolutionState.RESOLVING

            eligible = [c for c in contested.claims if self.eligibility_check(c)]
            blocked = [c for c in contested.claims if c not in eligible]
            if not eligible:
                contested.state = ResolutionState.RESOLVED
                request_ids = ", ".join(c.request.request_id for c in contested.claims)
                raise NoEligibleInterviewer(
                    f"Interviewer {contested.resource.interviewer_id} may not serve any of the "
                    f"competing requests ({request_ids})",
                    request_id=contested.claims[0].request.request_id,
                )

            now = self.clock()
            winner, reason = self.pick_winner(eligible, strategy, now)
            losers = [c for c in contested.claims if c is not winner]
            requeued = [self._requeue(c, strategy) for c in losers]
            self.record_win(winner.request.candidate_id, now)

            resolution = Resolution(
                resource=contested.resource,
                strategy=strategy,
                winner=winner,
                losers=losers,
                requeued=requeued,
                reason=reason,
            )
            contested.resolution = resolution
            contested.state = ResolutionState.RESOLVED
            logger.info(
                "Resolved %s with %s strategy: winner=%s (%s), losers=%s, blocked=%d",
                contested.resource,
                strategy.value,
                winner.request.request_id,
                reason,
                [c.request.request_id for c in losers],
                len(blocked),
            )
            return resolution
        finally:
            contested.lock.release()

    def _requeue(self, claim: Claim, strategy: ConflictStrategy) -> SchedulingRequest:
        """Loser goes back to the queue aiming at its next compatible resource."""
        request = claim.request
        bump = request.availability_bump
        if strategy == ConflictStrategy.FAIR:
            # Denied a slot: treated as less flexible
            bump = min(bump + self.settings.fair_availability_bump, 100)
        return replace(
            request,
            denied_resources=list(request.denied_resources) + [claim.resource],
            availability_bump=bump,
            requeue_count=request.requeue_count + 1,
            source="requeue",
        )
