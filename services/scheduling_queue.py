"""The engine's single ordered queue of pending scheduling requests."""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from models.entities import PriorityScore, RankedRequest, SchedulingRequest, normalize_round, utcnow
from services.priority_ranker import PriorityRanker

logger = logging.getLogger(__name__)


class SchedulingQueue:
    """
    Pending requests plus their one active PriorityScore each.

    All reads and writes go through one lock so a re-rank never races
    with a resolve pass.
    """

    def __init__(self, ranker: PriorityRanker, clock: Callable[[], datetime] = utcnow):
        self.ranker = ranker
        self.clock = clock
        self._requests: dict[str, SchedulingRequest] = {}
        self._scores: dict[str, PriorityScore] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def __contains__(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._requests

    def submit(self, request: SchedulingRequest) -> PriorityScore:
        """Add or replace a request and score it."""
        with self._lock:
            self._requests[request.request_id] = request
            score = self.ranker.score(request)
            self._scores[request.request_id] = score
            logger.info(
                "Queued request %s (%s, %s) score=%.2f",
                request.request_id,
                request.candidate_id,
                request.round_name,
                score.total,
            )
            return score

    def get(self, request_id: str) -> Optional[SchedulingRequest]:
        with self._lock:
            return self._requests.get(request_id)

    def score_of(self, request_id: str) -> Optional[PriorityScore]:
        with self._lock:
            return self._scores.get(request_id)

    def update(self, request_id: str, **changes) -> PriorityScore:
        """Change request fields and recompute its score."""
        with self._lock:
            current = self._requests[request_id]
            changes.setdefault("last_updated", self.clock())
            return self.submit(replace(current, **changes))

    def apply_override(self, request_id: str, reason: str) -> PriorityScore:
        logger.info("Manual override on %s: %s", request_id, reason)
        return self.update(request_id, manual_override=True, override_reason=reason)

    def clear_override(self, request_id: str) -> PriorityScore:
        return self.update(request_id, manual_override=False, override_reason=None)

    def withdraw(self, request_id: str) -> Optional[SchedulingRequest]:
        """Remove a request that was assigned or withdrawn."""
        with self._lock:
            self._scores.pop(request_id, None)
            return self._requests.pop(request_id, None)

    def pop_assigned(self, request_ids) -> list[SchedulingRequest]:
        """Remove every request of a pass that got an interview."""
        with self._lock:
            popped = []
            for request_id in request_ids:
                self._scores.pop(request_id, None)
                request = self._requests.pop(request_id, None)
                if request is not None:
                    popped.append(request)
            return popped

    def rescore_all(self) -> None:
        """Recompute every score, e.g. after the load picture changed."""
        with self._lock:
            for request_id, request in self._requests.items():
                self._scores[request_id] = self.ranker.score(request)

    def ranked(self, rescore: bool = True) -> list[RankedRequest]:
        with self._lock:
            if rescore:
                self.rescore_all()
            return self.ranker.rank(list(self._requests.values()), dict(self._scores))

    def pending_for_round(self, round_name: str, exclude_candidate: Optional[str] = None) -> list[SchedulingRequest]:
        wanted = normalize_round(round_name)
        with self._lock:
            return [
                r for r in self._requests.values()
                if normalize_round(r.round_name) == wanted and r.candidate_id != exclude_candidate
            ]
