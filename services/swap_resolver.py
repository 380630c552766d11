"""Backup candidate search and approval-gated swaps."""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Literal, Optional

from models.entities import BackupCandidate, SchedulingRequest, SwapContext, TimeSlot, utcnow
from models.errors import SwapExhausted
from models.intents import SwapConfirmation, SwapProposal
from services.availability_service import AvailabilityService
from services.scheduling_queue import SchedulingQueue
from services.settings import EngineSettings

logger = logging.getLogger(__name__)


@dataclass
class SwapResult:
    status: Literal["confirmed", "pending_approval"]
    context: SwapContext
    candidate: BackupCandidate
    proposal: Optional[SwapProposal] = None
    request: Optional[SchedulingRequest] = None


class SwapResolver:
    """
    Finds replacement candidates for a freed slot.

    A swap never books anything itself: a confirmed swap becomes a new
    SchedulingRequest in the queue and goes through ranking and conflict
    resolution like any other request.
    """

    def __init__(
        self,
        settings: EngineSettings,
        queue: SchedulingQueue,
        availability: AvailabilityService,
        candidate_windows: Callable[[str], list[TimeSlot]],
        publish: Callable[[object], None],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.queue = queue
        self.availability = availability
        self.candidate_windows = candidate_windows
        self.publish = publish
        self.clock = clock
        self._pending: dict[str, tuple[SwapProposal, SwapContext, BackupCandidate]] = {}
        self._lock = threading.Lock()

    def find_backups(self, context: SwapContext) -> list[BackupCandidate]:
        """Queued candidates of the same round, best (priority + availability) / 2 first."""
        backups = []
        for request in self.queue.pending_for_round(context.round_name, exclude_candidate=context.original_candidate_id):
            score = self.queue.score_of(request.request_id)
            if score is None:
                continue
            match = self.availability.availability_match(self.candidate_windows(request.candidate_id), context.slot)
            if match <= 0:
                continue
            backups.append(BackupCandidate(
                candidate_id=request.candidate_id,
                job_id=request.job_id,
                round_name=request.round_name,
                priority_score=score.total,
                availability_match=match,
                request_id=request.request_id,
            ))
        backups.sort(key=lambda b: (-b.combined_score, -b.availability_match, b.candidate_id))
        return backups

    def should_auto_execute(self, candidate: BackupCandidate) -> bool:
        return (
            self.settings.auto_swap_enabled
            and candidate.availability_match > self.settings.auto_swap_threshold
        )

    def execute_swap(self, context: SwapContext, chosen: BackupCandidate) -> SwapResult:
        """Confirm the swap when auto mode allows it, otherwise queue it for approval."""
        if self.should_auto_execute(chosen):
            request = self._produce_request(context, chosen, approved_by="auto")
            return SwapResult(status="confirmed", context=context, candidate=chosen, request=request)

        proposal = SwapProposal(
            proposal_id=f"swap-{context.interview_id}-{chosen.candidate_id}",
            interview_id=context.interview_id,
            candidate_id=chosen.candidate_id,
            original_candidate_id=context.original_candidate_id,
            slot_id=context.slot.id,
            priority_score=chosen.priority_score,
            availability_match=chosen.availability_match,
        )
        with self._lock:
            self._pending[proposal.proposal_id] = (proposal, context, chosen)
        logger.info(
            "Swap for %s awaits approval: %s (match %.0f%%)",
            context.interview_id,
            chosen.candidate_id,
            chosen.availability_match,
        )
        self.publish(proposal)
        return SwapResult(status="pending_approval", context=context, candidate=chosen, proposal=proposal)

    def handle(self, context: SwapContext) -> SwapResult:
        """Search backups for a freed slot and act on the best one."""
        backups = self.find_backups(context)
        if not backups:
            raise SwapExhausted(
                f"No backup candidate for {context.round_name} at {context.slot.id}; reschedule manually",
                context.interview_id,
            )
        return self.execute_swap(context, backups[0])

    def pending(self) -> list[SwapProposal]:
        with self._lock:
            return [proposal for proposal, _, _ in self._pending.values()]

    def approve(self, proposal_id: str, approved_by: str) -> SchedulingRequest:
        with self._lock:
            try:
                _, context, chosen = self._pending.pop(proposal_id)
            except KeyError:
                raise KeyError(f"Unknown swap proposal {proposal_id}") from None
        return self._produce_request(context, chosen, approved_by=approved_by)

    def reject(self, proposal_id: str, rejected_by: str, reason: str = "") -> SwapContext:
        """Drop a proposal; the backup stays in the queue untouched."""
        with self._lock:
            try:
                proposal, context, _ = self._pending.pop(proposal_id)
            except KeyError:
                raise KeyError(f"Unknown swap proposal {proposal_id}") from None
        logger.info("Swap %s rejected by %s: %s", proposal.proposal_id, rejected_by, reason or "no reason given")
        return context

    def _produce_request(self, context: SwapContext, chosen: BackupCandidate, approved_by: str) -> SchedulingRequest:
        current = self.queue.get(chosen.request_id) if chosen.request_id else None
        if current is None:
            current = SchedulingRequest(
                request_id=f"swap-{context.interview_id}-{chosen.candidate_id}",
                candidate_id=chosen.candidate_id,
                job_id=chosen.job_id,
                round_name=chosen.round_name,
            )
        preferred = [context.slot.id] + [s for s in current.preferred_slots if s != context.slot.id]
        freed = (context.slot.date_key, context.slot.time_key)
        request = replace(
            current,
            preferred_slots=preferred,
            denied_resources=[r for r in current.denied_resources if (r.date_key, r.time_key) != freed],
            reserved_slot_id=context.slot.id,
            manual_override=True,
            override_reason=f"Backup for {context.original_candidate_id} ({context.reason})",
            source="swap",
            last_updated=self.clock(),
        )
        self.queue.submit(request)
        logger.info(
            "Swap confirmed for %s: %s replaces %s (by %s)",
            context.interview_id,
            chosen.candidate_id,
            context.original_candidate_id,
            approved_by,
        )
        self.publish(SwapConfirmation(
            interview_id=context.interview_id,
            candidate_id=chosen.candidate_id,
            original_candidate_id=context.original_candidate_id,
            slot_id=context.slot.id,
            approved_by=approved_by,
        ))
        return request
