"""
Coordination engine: ranking, conflict resolution, capacity, lifecycle,
join monitoring and swaps wired into one service.
"""

import itertools
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

from models.entities import (
    CandidateProfile,
    Claim,
    DirectorySnapshot,
    InterviewInstance,
    InterviewState,
    PriorityScore,
    RankedRequest,
    Resolution,
    ResourceKey,
    SchedulingRequest,
    Slot,
    SwapContext,
    TimeSlot,
    utcnow,
)
from models.errors import (
    CapacityExceeded,
    CollaboratorError,
    IllegalTransition,
    NoEligibleInterviewer,
    ResolutionInProgress,
    SchedulingError,
    SwapExhausted,
)
from models.intents import AssignmentIntent, EscalationEvent, OperatorItem, RetryNotification
from services.availability_service import AvailabilityService
from services.conflict_resolver import ConflictResolver
from services.eligibility_validator import EligibilityValidator
from services.join_monitor import JoinMonitor, NoShowDeclaration
from services.lifecycle_coordinator import LifecycleCoordinator
from services.load_tracker import LoadTracker
from services.messaging_service_mock import MessagingServiceMock
from services.operator_queue import OperatorQueue
from services.priority_ranker import PriorityRanker
from services.scheduling_queue import SchedulingQueue
from services.settings import EngineSettings
from services.swap_resolver import SwapResolver, SwapResult
from services.task_registry import TaskRegistry

logger = logging.getLogger(__name__)

# States in which an interview no longer holds its slot
RELEASED_STATES = (InterviewState.NO_SHOW, InterviewState.RESCHEDULED)


@dataclass
class PassReport:
    """What one run_scheduling_pass() call did."""
    passes: int = 0
    assigned: list[InterviewInstance] = field(default_factory=list)
    resolutions: list[Resolution] = field(default_factory=list)
    requeued: list[SchedulingRequest] = field(default_factory=list)
    operator_items: list[OperatorItem] = field(default_factory=list)


class CoordinationEngine:
    """
    One engine per tenant.

    The scheduling queue and the capacity store are the only shared,
    mutable state; per-interview timers (SLA watcher, join monitor) run as
    tasks in a TaskRegistry once start() is called inside an event loop.
    Without a running loop, tick(now) drives the same timers.

    Args:
        settings: Validated engine settings
        messaging: Collaborator with a publish(intent) method
        directory: Optional initial directory snapshot
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        messaging: Optional[Any] = None,
        directory: Optional[DirectorySnapshot] = None,
        clock=utcnow,
    ):
        self.settings = (settings or EngineSettings()).validate()
        self.clock = clock
        self.messaging = messaging if messaging is not None else MessagingServiceMock()
        self.operator_queue = OperatorQueue(clock)
        self.tasks = TaskRegistry(report_error=self._report_error)

        self.validator = EligibilityValidator()
        self.load_tracker = LoadTracker(self.settings, self.validator, clock)
        self.ranker = PriorityRanker(self.settings.weights, self.load_tracker.average_load)
        self.queue = SchedulingQueue(self.ranker, clock)
        self.availability = AvailabilityService()
        self.resolver = ConflictResolver(self.settings, eligibility_check=self._claim_is_eligible, clock=clock)
        self.lifecycle = LifecycleCoordinator(
            self.settings,
            self.publish,
            clock,
            on_archived=self._on_archived,
            report_error=self._report_error,
        )
        self.swaps = SwapResolver(
            self.settings, self.queue, self.availability, self.candidate_windows, self.publish, clock
        )

        self.candidates: dict[str, CandidateProfile] = {}
        self.join_monitors: dict[str, JoinMonitor] = {}
        self.undelivered: list[Any] = []
        self._requests_by_interview: dict[str, SchedulingRequest] = {}
        self._booked: dict[ResourceKey, str] = {}
        self._parked: set[str] = set()
        self._interview_seq = itertools.count(1)
        self._reschedule_seq = itertools.count(1)
        self._running = False

        if directory is not None:
            self.load_directory(directory)

    # ------------------------------------------------------------------
    # Directory and intake
    # ------------------------------------------------------------------

    def load_directory(self, snapshot: DirectorySnapshot) -> None:
        for rule in snapshot.role_rules:
            self.validator.add_rule(rule)
        self.load_tracker.load_directory(snapshot.interviewers)
        self.availability.register_slots(snapshot.slots)
        for candidate in snapshot.candidates:
            self.candidates[candidate.candidate_id] = candidate
        self.queue.rescore_all()
        logger.info(
            "Directory loaded: %d interviewer(s), %d candidate(s), %d slot(s)",
            len(snapshot.interviewers),
            len(snapshot.candidates),
            len(snapshot.slots),
        )

    def candidate_windows(self, candidate_id: str) -> list[TimeSlot]:
        profile = self.candidates.get(candidate_id)
        return list(profile.availability) if profile else []

    def submit_request(self, request: SchedulingRequest) -> PriorityScore:
        """
        Queue a request for assignment.

        When the request names no preferred slots and the candidate's
        availability is known, its compatible slots are derived from the
        slots eligible interviewers offer. Reschedules keep the slots they
        were given, so a freed slot never comes back to its candidate.
        """
        fresh = not request.preferred_slots and request.source != "reschedule"
        if fresh and self.candidate_windows(request.candidate_id):
            compatible = self.compatible_slots(request.candidate_id, request.round_name)
            request = replace(request, preferred_slots=compatible, availability_slots=len(compatible))
        elif request.preferred_slots and not request.availability_slots:
            request = replace(request, availability_slots=len(request.preferred_slots))
        self._parked.discard(request.request_id)
        return self.queue.submit(request)

    def compatible_slots(self, candidate_id: str, round_name: str) -> list[str]:
        """Slots offered by eligible interviewers that fit the candidate's availability."""
        windows = self.candidate_windows(candidate_id)
        if not windows:
            return []
        offered: set[str] = set()
        for capacity in self.load_tracker.eligible_panel(round_name, exclude_overloaded=False):
            offered |= capacity.available_slots
        return self.availability.compatible_slots(windows, offered)

    def withdraw_request(self, request_id: str) -> Optional[SchedulingRequest]:
        self._parked.discard(request_id)
        return self.queue.withdraw(request_id)

    def apply_override(self, request_id: str, reason: str) -> PriorityScore:
        return self.queue.apply_override(request_id, reason)

    def clear_override(self, request_id: str) -> PriorityScore:
        return self.queue.clear_override(request_id)

    def release_parked(self, request_id: str) -> bool:
        """Let a request that had no eligible interviewer take part in passes again."""
        if request_id not in self._parked:
            return False
        self._parked.discard(request_id)
        self.operator_queue.resolve("no_eligible_interviewer", request_id)
        self.operator_queue.resolve("mandatory_unavailable", request_id)
        return True

    def ranked_queue(self) -> list[RankedRequest]:
        return self.queue.ranked()

    # ------------------------------------------------------------------
    # Scheduling passes
    # ------------------------------------------------------------------

    def run_scheduling_pass(self, now: Optional[datetime] = None) -> PassReport:
        """
        Assign queued requests until no request can claim a resource.

        Each round ranks the queue, lets every request claim its best open
        (slot, interviewer) resource, resolves contested resources and
        books the winners. Losers go back to the queue aiming at their next
        resource. At most settings.max_passes rounds run per call.
        """
        now = now or self.clock()
        report = PassReport()
        self.load_tracker.rebalance(now)

        for _ in range(self.settings.max_passes):
            report.passes += 1
            ranked = [e for e in self.queue.ranked() if e.request.request_id not in self._parked]
            claims = []
            for entry in ranked:
                claim = self._claim_for(entry, now)
                if claim is not None:
                    claims.append(claim)
                    continue
                item = self._unassignable(entry.request)
                if item is not None and item not in report.operator_items:
                    report.operator_items.append(item)
            if not claims:
                break

            assignments, conflicts = self.resolver.detect(claims)
            for contested in conflicts:
                try:
                    resolution = self.resolver.resolve(contested)
                except NoEligibleInterviewer as exc:
                    report.operator_items.append(self.operator_queue.report(exc))
                    for claim in contested.claims:
                        self._deny(claim, report)
                    continue
                except ResolutionInProgress as exc:
                    logger.info("Skipping %s this round: %s", contested.resource, exc)
                    continue
                report.resolutions.append(resolution)
                assignments.append(resolution.winner)
                for request in resolution.requeued:
                    self.queue.submit(request)
                    report.requeued.append(request)

            order = {e.request.request_id: e.position for e in ranked}
            assignments.sort(key=lambda c: order[c.request.request_id])
            booked = []
            for claim in assignments:
                instance = self._book(claim, now, report)
                if instance is not None:
                    booked.append(claim.request.request_id)
                    report.assigned.append(instance)
            self.queue.pop_assigned(booked)

        logger.info(
            "Scheduling pass: %d round(s), %d assigned, %d conflict(s), %d requeued, %d still queued",
            report.passes,
            len(report.assigned),
            len(report.resolutions),
            len(report.requeued),
            len(self.queue),
        )
        return report

    def _claim_for(self, entry: RankedRequest, now: datetime) -> Optional[Claim]:
        request = entry.request
        denied = set(request.denied_resources)
        for slot_id in request.preferred_slots:
            if not self.availability.has_slot(slot_id):
                continue
            slot = self.availability.slot(slot_id)
            if slot.end <= now or self._candidate_busy(request.candidate_id, slot):
                continue
            for capacity in self.load_tracker.eligible_panel(request.round_name, slot_id=slot_id):
                resource = ResourceKey.for_slot(slot, capacity.interviewer_id)
                if resource in denied or resource in self._booked:
                    continue
                return Claim(request=request, slot=slot, interviewer_id=capacity.interviewer_id, score=entry.score)
        return None

    def _candidate_busy(self, candidate_id: str, slot: Slot) -> bool:
        for instance in self.lifecycle.active():
            if instance.candidate_id != candidate_id or instance.current_state in RELEASED_STATES:
                continue
            if instance.slot.start < slot.end and slot.start < instance.slot.end:
                return True
        return False

    def _unassignable(self, request: SchedulingRequest) -> Optional[OperatorItem]:
        """Explain why a request could not claim anything; None when it just has to wait."""
        if not self.load_tracker.eligible_panel(request.round_name, exclude_overloaded=False):
            rule = self.validator.rule_for(request.round_name)
            error = NoEligibleInterviewer(
                f"No interviewer may serve {request.round_name} for candidate {request.candidate_id}",
                request.request_id,
            )
            kind = "mandatory_unavailable" if rule is not None and rule.mandatory_roles else None
            self._parked.add(request.request_id)
            return self.operator_queue.report(error, kind)
        if not self.load_tracker.eligible_panel(request.round_name):
            return self.operator_queue.push(OperatorItem(
                kind="interviewer_overload",
                entity_type="request",
                entity_id=request.request_id,
                reason=f"Every eligible interviewer for {request.round_name} is at maximum capacity",
                retryable=True,
            ))
        logger.debug("No open resource for %s yet", request.request_id)
        return None

    def _deny(self, claim: Claim, report: PassReport) -> None:
        request = replace(
            claim.request,
            denied_resources=list(claim.request.denied_resources) + [claim.resource],
            requeue_count=claim.request.requeue_count + 1,
            source="requeue",
        )
        self.queue.submit(request)
        report.requeued.append(request)

    def _book(self, claim: Claim, now: datetime, report: PassReport) -> Optional[InterviewInstance]:
        request = claim.request
        if claim.resource in self._booked:
            self._deny(claim, report)
            return None
        try:
            self.load_tracker.record_assignment(claim.interviewer_id, claim.slot.id, now)
        except CapacityExceeded as exc:
            logger.info("Assignment refused, moving to the next interviewer: %s", exc)
            self._deny(claim, report)
            return None

        interviewer_ids = [claim.interviewer_id] + self._co_panelists(claim, now)
        rescheduled = self.lifecycle.get(request.interview_id) if request.interview_id else None
        if rescheduled is not None and rescheduled.current_state == InterviewState.RESCHEDULED:
            interview_id = rescheduled.interview_id
            instance = self.lifecycle.reassign(interview_id, claim.slot, interviewer_ids, claim.score.total)
        else:
            interview_id = f"INT-{next(self._interview_seq):04d}"
            instance = self.lifecycle.create(
                interview_id,
                candidate_id=request.candidate_id,
                job_id=request.job_id,
                round_name=request.round_name,
                slot=claim.slot,
                interviewer_ids=interviewer_ids,
                request_id=request.request_id,
                priority_score=claim.score.total,
                triggered_by="scheduling_pass",
                at=now,
            )

        self._requests_by_interview[interview_id] = request
        for interviewer_id in interviewer_ids:
            self._booked[ResourceKey.for_slot(claim.slot, interviewer_id)] = interview_id

        intent = AssignmentIntent(
            interview_id=interview_id,
            candidate_id=request.candidate_id,
            interviewer_ids=tuple(interviewer_ids),
            slot_id=claim.slot.id,
            slot_start=claim.slot.start,
            slot_end=claim.slot.end,
        )
        if self.publish(intent):
            self.lifecycle.transition(interview_id, InterviewState.SLOTS_GENERATED, "scheduling_pass", now)
        self._watch(interview_id)
        return instance

    def _co_panelists(self, claim: Claim, now: datetime) -> list[str]:
        rule = self.validator.rule_for(claim.request.round_name)
        needed = (rule.minimum_required if rule is not None else 1) - 1
        panel: list[str] = []
        if needed <= 0:
            return panel
        for capacity in self.load_tracker.eligible_panel(claim.request.round_name, slot_id=claim.slot.id):
            if len(panel) >= needed:
                break
            if capacity.interviewer_id == claim.interviewer_id:
                continue
            if ResourceKey.for_slot(claim.slot, capacity.interviewer_id) in self._booked:
                continue
            try:
                self.load_tracker.record_assignment(capacity.interviewer_id, claim.slot.id, now)
            except CapacityExceeded:
                continue
            panel.append(capacity.interviewer_id)
        if len(panel) < needed:
            self.operator_queue.push(OperatorItem(
                kind="panel_incomplete",
                entity_type="request",
                entity_id=claim.request.request_id,
                reason=(
                    f"{rule.round} needs {rule.minimum_required} interviewer(s) at {claim.slot.id}, "
                    f"booked {len(panel) + 1}"
                ),
            ))
        return panel

    def _claim_is_eligible(self, claim: Claim) -> bool:
        capacity = self.load_tracker.capacity(claim.interviewer_id)
        return self.validator.validate_interviewer(claim.request.round_name, capacity) is None

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def on_slot_confirmed(self, candidate_id: str, slot_id: str, at: Optional[datetime] = None) -> InterviewInstance:
        """The candidate accepted the slot offered for one of their interviews."""
        for instance in self.lifecycle.active():
            if instance.candidate_id != candidate_id or instance.slot.id != slot_id:
                continue
            if instance.current_state in RELEASED_STATES:
                continue
            self.lifecycle.transition(instance.interview_id, InterviewState.SLOT_CONFIRMED, "candidate", at)
            return instance
        raise KeyError(f"No interview of {candidate_id} is offering slot {slot_id}")

    def on_notification_sent(self, interview_id: str, at: Optional[datetime] = None) -> bool:
        """Invitations went out; the join window is watched from the slot start."""
        changed = self.lifecycle.transition(interview_id, InterviewState.NOTIFIED, "messaging", at)
        if changed:
            self._start_join_monitor(self.lifecycle.get(interview_id))
        return changed

    def on_join_event(self, interview_id: str, participant_id: str, joined_at: Optional[datetime] = None) -> bool:
        monitor = self.join_monitors.get(interview_id)
        if monitor is None:
            raise KeyError(f"Interview {interview_id} has no live join window")
        return monitor.record_join(participant_id, joined_at)

    def on_interview_ended(self, interview_id: str, at: Optional[datetime] = None) -> bool:
        instance = self.lifecycle.get(interview_id)
        if instance is None:
            raise KeyError(f"Unknown interview {interview_id}")
        changed = self.lifecycle.transition(interview_id, InterviewState.COMPLETED, "video_provider", at)
        if changed:
            for interviewer_id in instance.interviewer_ids:
                self.load_tracker.record_completion(interviewer_id, at)
            self.join_monitors.pop(interview_id, None)
            self.tasks.cancel_one(interview_id, "join")
        return changed

    def on_feedback_received(self, interview_id: str, at: Optional[datetime] = None) -> bool:
        return self.lifecycle.transition(interview_id, InterviewState.CLOSED, "feedback", at)

    def on_cancellation(
        self,
        interview_id: str,
        reason: str = "cancellation",
        at: Optional[datetime] = None,
    ) -> Optional[SwapResult]:
        """
        An interview was called off before it happened.

        Its timers stop, the slot goes back to its interviewers, a backup
        candidate is searched for the freed slot and the original candidate
        is queued again for a new slot.
        """
        instance = self.lifecycle.get(interview_id)
        if instance is None:
            raise KeyError(f"Unknown interview {interview_id}")
        at = at or self.clock()
        if not self.lifecycle.transition(interview_id, InterviewState.RESCHEDULED, "cancellation", at):
            return None
        self.tasks.cancel(interview_id)
        self.join_monitors.pop(interview_id, None)
        self._free_resources(instance, instance.interviewer_ids)
        result = self._swap(instance, reason, instance.interviewer_ids, at)
        self._requeue_original(instance, at)
        return result

    # ------------------------------------------------------------------
    # Join window
    # ------------------------------------------------------------------

    def _start_join_monitor(self, instance: InterviewInstance) -> JoinMonitor:
        monitor = JoinMonitor(
            interview_id=instance.interview_id,
            candidate_id=instance.candidate_id,
            interviewer_ids=instance.interviewer_ids,
            start=instance.slot.start,
            settings=self.settings,
            publish=self.publish,
            on_no_show=self._on_no_show,
            on_all_joined=self._on_all_joined,
            clock=self.clock,
            report_error=self._report_error,
        )
        self.join_monitors[instance.interview_id] = monitor
        if self._running:
            self.tasks.spawn(instance.interview_id, "join", monitor.run())
        return monitor

    def manual_retry(self, interview_id: str, participant_id: Optional[str] = None) -> Optional[RetryNotification]:
        monitor = self.join_monitors.get(interview_id)
        if monitor is None:
            raise KeyError(f"Interview {interview_id} has no live join window")
        return monitor.manual_retry(participant_id)

    def mark_no_show(
        self,
        interview_id: str,
        participant_id: str,
        at: Optional[datetime] = None,
    ) -> Optional[NoShowDeclaration]:
        monitor = self.join_monitors.get(interview_id)
        if monitor is None:
            raise KeyError(f"Interview {interview_id} has no live join window")
        return monitor.mark_no_show(participant_id, at)

    def _on_all_joined(self, interview_id: str) -> None:
        try:
            self.lifecycle.transition(interview_id, InterviewState.IN_PROGRESS, "join_monitor")
        except IllegalTransition as exc:
            logger.warning("Everyone joined but the interview cannot start: %s", exc)
            self.operator_queue.report(exc, kind="lifecycle_conflict")
        self.tasks.cancel_one(interview_id, "join")

    def _on_no_show(self, declaration: NoShowDeclaration) -> None:
        interview_id = declaration.interview_id
        instance = self.lifecycle.get(interview_id)
        trigger = "operator" if declaration.manual else "join_monitor"
        at = declaration.declared_at
        self.lifecycle.transition(interview_id, InterviewState.NO_SHOW, trigger, at)
        self.join_monitors.pop(interview_id, None)

        absent_interviewers = declaration.interviewer_no_shows
        if absent_interviewers:
            self.publish(EscalationEvent(
                interview_id=interview_id,
                reason=f"Interviewer no-show: {', '.join(absent_interviewers)}",
                severity="critical",
                raised_at=at,
            ))
        present = [i for i in instance.interviewer_ids if i not in absent_interviewers]
        self._free_resources(instance, present)

        if declaration.candidate_no_show:
            self._swap(instance, "no_show", present, at)
            override = None
        else:
            override = "Interviewer no-show"

        self.lifecycle.transition(interview_id, InterviewState.RESCHEDULED, trigger, at)
        self._requeue_original(instance, at, override_reason=override)

    # ------------------------------------------------------------------
    # Swaps and rescheduling
    # ------------------------------------------------------------------

    def _free_resources(self, instance: InterviewInstance, release_for: list[str]) -> None:
        for interviewer_id in instance.interviewer_ids:
            self._booked.pop(ResourceKey.for_slot(instance.slot, interviewer_id), None)
        for interviewer_id in release_for:
            self.load_tracker.release_slot(interviewer_id, instance.slot.id)

    def _swap(
        self,
        instance: InterviewInstance,
        reason: str,
        interviewer_ids: list[str],
        at: datetime,
    ) -> Optional[SwapResult]:
        if instance.slot.end <= at:
            logger.info("Slot %s of %s is already over; no swap", instance.slot.id, instance.interview_id)
            return None
        context = SwapContext(
            interview_id=instance.interview_id,
            round_name=instance.round_name,
            job_id=instance.job_id,
            slot=instance.slot,
            original_candidate_id=instance.candidate_id,
            interviewer_ids=list(interviewer_ids),
            reason=reason,
        )
        try:
            return self.swaps.handle(context)
        except SwapExhausted as exc:
            self.operator_queue.report(exc)
            self.publish(EscalationEvent(
                interview_id=instance.interview_id, reason=exc.message, severity="warning", raised_at=at,
            ))
            return None

    def _requeue_original(
        self,
        instance: InterviewInstance,
        at: datetime,
        override_reason: Optional[str] = None,
    ) -> SchedulingRequest:
        base = self._requests_by_interview.get(instance.interview_id) or SchedulingRequest(
            request_id=instance.request_id or instance.interview_id,
            candidate_id=instance.candidate_id,
            job_id=instance.job_id,
            round_name=instance.round_name,
        )
        options = base.preferred_slots or self.compatible_slots(instance.candidate_id, instance.round_name)
        preferred = [s for s in options if s != instance.slot.id]
        freed = [ResourceKey.for_slot(instance.slot, i) for i in instance.interviewer_ids]
        request = replace(
            base,
            request_id=f"{instance.interview_id}-R{next(self._reschedule_seq)}",
            preferred_slots=preferred,
            availability_slots=len(preferred),
            denied_resources=freed,
            availability_bump=0,
            requeue_count=0,
            manual_override=override_reason is not None,
            override_reason=override_reason,
            source="reschedule",
            interview_id=instance.interview_id,
            last_updated=at,
        )
        self.submit_request(request)
        logger.info("Candidate %s queued again for %s (%s)", instance.candidate_id, instance.interview_id, request.request_id)
        return request

    def pending_swaps(self):
        return self.swaps.pending()

    def approve_swap(self, proposal_id: str, approved_by: str) -> SchedulingRequest:
        """Approved backups go back through ranking and conflict resolution."""
        return self.swaps.approve(proposal_id, approved_by)

    def reject_swap(self, proposal_id: str, rejected_by: str, reason: str = "") -> OperatorItem:
        context = self.swaps.reject(proposal_id, rejected_by, reason)
        return self.operator_queue.push(OperatorItem(
            kind="manual_reschedule",
            entity_type="interview",
            entity_id=context.interview_id,
            reason=f"Swap for slot {context.slot.id} rejected by {rejected_by}; reschedule manually",
        ))

    # ------------------------------------------------------------------
    # Outbound intents
    # ------------------------------------------------------------------

    def publish(self, intent: Any) -> bool:
        """Hand an intent to the messaging collaborator; failures land on the operator queue."""
        try:
            self.messaging.publish(intent)
            return True
        except CollaboratorError as exc:
            logger.exception("Delivery of %s failed", getattr(intent, "kind", type(intent).__name__))
            self.undelivered.append(intent)
            self.operator_queue.report(exc)
            return False

    def redeliver(self) -> int:
        """Retry every undelivered intent; returns how many went through."""
        pending, self.undelivered = self.undelivered, []
        delivered = []
        for intent in pending:
            if not self.publish(intent):
                continue
            delivered.append(intent)
            if isinstance(intent, AssignmentIntent):
                try:
                    self.lifecycle.transition(intent.interview_id, InterviewState.SLOTS_GENERATED, "scheduling_pass")
                except IllegalTransition as exc:
                    logger.warning("Late assignment delivery for %s: %s", intent.interview_id, exc)
        still_failing = {getattr(i, "interview_id", None) for i in self.undelivered}
        for intent in delivered:
            entity_id = getattr(intent, "interview_id", None)
            if entity_id not in still_failing:
                self.operator_queue.resolve("collaborator_failure", entity_id)
        return len(delivered)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start timer tasks for every live interview (call inside a running event loop)."""
        if self._running:
            return
        self._running = True
        for instance in self.lifecycle.active():
            self._watch(instance.interview_id)
        for interview_id, monitor in self.join_monitors.items():
            if not monitor.finished:
                self.tasks.spawn(interview_id, "join", monitor.run())
        logger.info("Coordination engine started")

    async def stop(self) -> None:
        self._running = False
        await self.tasks.shutdown()
        logger.info("Coordination engine stopped")

    def tick(self, now: Optional[datetime] = None) -> list[EscalationEvent]:
        """Evaluate SLAs and due join checkpoints without background tasks."""
        now = now or self.clock()
        events = self.lifecycle.evaluate_sla(now)
        for monitor in list(self.join_monitors.values()):
            if not monitor.finished:
                monitor.tick(now)
        return events

    def _watch(self, interview_id: str) -> None:
        if self._running:
            self.tasks.spawn(interview_id, "sla", self.lifecycle.watch(interview_id))

    def _on_archived(self, instance: InterviewInstance) -> None:
        self.tasks.cancel(instance.interview_id)
        self.join_monitors.pop(instance.interview_id, None)
        self._requests_by_interview.pop(instance.interview_id, None)

    def _report_error(self, error: SchedulingError) -> None:
        self.operator_queue.report(error)
