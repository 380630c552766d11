"""Interview lifecycle state machine with SLA timers."""

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from models.entities import (
    InterviewEvent,
    InterviewInstance,
    InterviewState,
    SlaStatus,
    Slot,
    utcnow,
)
from models.errors import DuplicateTransition, IllegalTransition, SchedulingError, SlaBreach
from models.intents import EscalationEvent
from services.settings import EngineSettings, SlaPolicy

logger = logging.getLogger(__name__)

S = InterviewState

TRANSITIONS: dict[InterviewState, frozenset[InterviewState]] = {
    S.CREATED: frozenset({S.SLOTS_GENERATED, S.RESCHEDULED}),
    S.SLOTS_GENERATED: frozenset({S.SLOT_CONFIRMED, S.RESCHEDULED}),
    S.SLOT_CONFIRMED: frozenset({S.NOTIFIED, S.RESCHEDULED}),
    S.NOTIFIED: frozenset({S.IN_PROGRESS, S.NO_SHOW, S.RESCHEDULED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.NO_SHOW}),
    S.NO_SHOW: frozenset({S.RESCHEDULED}),
    S.RESCHEDULED: frozenset({S.SLOTS_GENERATED}),
    S.COMPLETED: frozenset({S.CLOSED}),
    S.CLOSED: frozenset(),
}

# Upper bound on how long a watcher sleeps without re-checking
MAX_WATCH_SLEEP_SECONDS = 60.0


class LifecycleCoordinator:
    """
    Drives InterviewInstances from created to closed.

    Transitions come only from outside events (ATS intake, candidate
    confirmation, join monitor, feedback). History is append-only and
    time-ordered; re-delivered events are ignored. Closed interviews are
    archived and their watcher stops.
    """

    def __init__(
        self,
        settings: EngineSettings,
        publish: Callable[[object], None],
        clock: Callable[[], datetime] = utcnow,
        on_archived: Optional[Callable[[InterviewInstance], None]] = None,
        report_error: Optional[Callable[[SchedulingError], None]] = None,
    ):
        self.settings = settings
        self.publish = publish
        self.clock = clock
        self.on_archived = on_archived
        self.report_error = report_error
        self._instances: dict[str, InterviewInstance] = {}
        self._archive: dict[str, InterviewInstance] = {}
        self._changed: dict[str, asyncio.Event] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def create(
        self,
        interview_id: str,
        candidate_id: str,
        job_id: str,
        round_name: str,
        slot: Slot,
        interviewer_ids: list[str],
        request_id: Optional[str] = None,
        priority_score: Optional[float] = None,
        triggered_by: str = "ats",
        at: Optional[datetime] = None,
    ) -> InterviewInstance:
        at = at or self.clock()
        with self._lock:
            if interview_id in self._instances or interview_id in self._archive:
                raise ValueError(f"Interview {interview_id} already exists")
            instance = InterviewInstance(
                interview_id=interview_id,
                candidate_id=candidate_id,
                job_id=job_id,
                round_name=round_name,
                slot=slot,
                interviewer_ids=list(interviewer_ids),
                request_id=request_id,
                priority_score=priority_score,
            )
            self._enter(instance, S.CREATED, triggered_by, at)
            self._instances[interview_id] = instance
            logger.info("Interview %s created for %s (%s)", interview_id, candidate_id, round_name)
            return instance

    def get(self, interview_id: str) -> Optional[InterviewInstance]:
        with self._lock:
            return self._instances.get(interview_id) or self._archive.get(interview_id)

    def active(self) -> list[InterviewInstance]:
        with self._lock:
            return list(self._instances.values())

    def archived(self) -> list[InterviewInstance]:
        with self._lock:
            return list(self._archive.values())

    def history(self, interview_id: str) -> list[InterviewEvent]:
        instance = self.get(interview_id)
        if instance is None:
            raise KeyError(f"Unknown interview {interview_id}")
        return list(instance.state_history)

    def reassign(
        self,
        interview_id: str,
        slot: Slot,
        interviewer_ids: list[str],
        priority_score: Optional[float] = None,
    ) -> InterviewInstance:
        """Point a rescheduled interview at its new slot and panel."""
        with self._lock:
            instance = self._instances.get(interview_id)
            if instance is None:
                raise KeyError(f"Unknown or closed interview {interview_id}")
            if instance.current_state != S.RESCHEDULED:
                raise IllegalTransition(
                    f"Only rescheduled interviews take a new slot (now {instance.current_state.value})",
                    interview_id,
                )
            instance.slot = slot
            instance.interviewer_ids = list(interviewer_ids)
            if priority_score is not None:
                instance.priority_score = priority_score
            logger.info("Interview %s moved to slot %s with %s", interview_id, slot.id, interviewer_ids)
            return instance

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        interview_id: str,
        target: InterviewState,
        triggered_by: str = "system",
        at: Optional[datetime] = None,
    ) -> bool:
        """
        Apply an externally driven transition.

        Returns:
            True when the state changed, False for a re-delivered event

        Raises:
            IllegalTransition: The target is not reachable from the current state
        """
        target = InterviewState(target)
        with self._lock:
            instance = self._instances.get(interview_id)
            if instance is None:
                archived = self._archive.get(interview_id)
                if archived is None:
                    raise KeyError(f"Unknown interview {interview_id}")
                if target == S.CLOSED:
                    logger.debug("Interview %s already closed", interview_id)
                    return False
                raise IllegalTransition(
                    f"Interview is closed; cannot move to {target.value}", interview_id
                )

            try:
                self._check_transition(instance, target)
            except DuplicateTransition as exc:
                logger.debug("Ignoring re-delivered event: %s", exc)
                return False

            moment = at or self.clock()
            self._enter(instance, target, triggered_by, moment)
            logger.info(
                "Interview %s -> %s (by %s)", interview_id, target.value, triggered_by
            )

        self._notify_changed(interview_id)
        if target == S.CLOSED:
            self.archive(interview_id)
        return True

    def archive(self, interview_id: str) -> InterviewInstance:
        """Move a closed interview out of the active set."""
        with self._lock:
            instance = self._archive.get(interview_id)
            if instance is not None:
                return instance
            instance = self._instances.get(interview_id)
            if instance is None:
                raise KeyError(f"Unknown interview {interview_id}")
            if instance.current_state != S.CLOSED:
                raise IllegalTransition(
                    f"Only closed interviews can be archived (now {instance.current_state.value})",
                    interview_id,
                )
            del self._instances[interview_id]
            self._archive[interview_id] = instance
        logger.info("Interview %s archived", interview_id)
        self._notify_changed(interview_id)
        if self.on_archived is not None:
            self.on_archived(instance)
        return instance

    def _check_transition(self, instance: InterviewInstance, target: InterviewState) -> None:
        current = instance.current_state
        if target == current:
            raise DuplicateTransition(f"already in {target.value}", instance.interview_id)
        if target in TRANSITIONS[current]:
            return
        if any(event.state == target for event in instance.state_history):
            raise DuplicateTransition(
                f"{target.value} was already passed (now {current.value})", instance.interview_id
            )
        raise IllegalTransition(
            f"Cannot move from {current.value} to {target.value}", instance.interview_id
        )

    def _enter(self, instance: InterviewInstance, state: InterviewState, triggered_by: str, at: datetime) -> None:
        if instance.state_history and at < instance.state_history[-1].timestamp:
            # Late delivery never rewinds the clock of the history
            at = instance.state_history[-1].timestamp
        instance.state_history.append(InterviewEvent(state=state, timestamp=at, triggered_by=triggered_by))
        instance.current_state = state
        instance.sla_status = SlaStatus.ON_TRACK
        instance.escalation_flag = False
        instance.warning_sent = False
        policy = self.policy_for(state)
        instance.sla_deadline = at + timedelta(hours=policy.sla_hours) if policy else None

    # ------------------------------------------------------------------
    # SLA
    # ------------------------------------------------------------------

    def policy_for(self, state: InterviewState) -> Optional[SlaPolicy]:
        return self.settings.sla_policies.get(state)

    def sla_status(self, instance: InterviewInstance, now: Optional[datetime] = None) -> SlaStatus:
        policy = self.policy_for(instance.current_state)
        entered = instance.entered_state_at
        if policy is None or entered is None:
            return SlaStatus.ON_TRACK
        now = now or self.clock()
        hours_in_state = (now - entered).total_seconds() / 3600
        if hours_in_state > policy.sla_hours:
            return SlaStatus.OVERDUE
        threshold = policy.escalation_threshold_hours
        if threshold is not None and hours_in_state >= policy.sla_hours - threshold:
            return SlaStatus.AT_RISK
        return SlaStatus.ON_TRACK

    def next_check_at(self, instance: InterviewInstance) -> Optional[datetime]:
        """When the SLA status of an instance can next change."""
        policy = self.policy_for(instance.current_state)
        entered = instance.entered_state_at
        if policy is None or entered is None or instance.escalation_flag:
            return None
        threshold = policy.escalation_threshold_hours
        if threshold is not None and not instance.warning_sent:
            return entered + timedelta(hours=policy.sla_hours - threshold)
        # Breach is strictly after the deadline
        return entered + timedelta(hours=policy.sla_hours, microseconds=1)

    def evaluate_instance(self, interview_id: str, now: Optional[datetime] = None) -> list[EscalationEvent]:
        """Refresh the SLA status of one interview and emit escalations once."""
        now = now or self.clock()
        with self._lock:
            instance = self._instances.get(interview_id)
            if instance is None:
                return []
            status = self.sla_status(instance, now)
            instance.sla_status = status
            state = instance.current_state
            pending_breach = status == SlaStatus.OVERDUE and not instance.escalation_flag
            pending_warning = status == SlaStatus.AT_RISK and not instance.warning_sent

        emitted = []
        if pending_breach:
            policy = self.policy_for(state)
            breach = SlaBreach(
                f"{state.value} exceeded its {policy.sla_hours:g}h SLA", interview_id
            )
            logger.warning("SLA breach: %s", breach)
            event = EscalationEvent(interview_id=interview_id, reason=str(breach), severity="critical", raised_at=now)
            self.publish(event)
            with self._lock:
                if instance.current_state == state:
                    instance.escalation_flag = True
                    instance.warning_sent = True
            emitted.append(event)
        elif pending_warning:
            policy = self.policy_for(state)
            event = EscalationEvent(
                interview_id=interview_id,
                reason=(
                    f"{state.value} is within {policy.escalation_threshold_hours:g}h "
                    f"of its {policy.sla_hours:g}h SLA"
                ),
                severity="warning",
                raised_at=now,
            )
            logger.warning("SLA at risk for %s: %s", interview_id, event.reason)
            self.publish(event)
            with self._lock:
                if instance.current_state == state:
                    instance.warning_sent = True
            emitted.append(event)
        return emitted

    def evaluate_sla(self, now: Optional[datetime] = None) -> list[EscalationEvent]:
        """Sweep every active interview."""
        now = now or self.clock()
        events = []
        for instance in self.active():
            events.extend(self.evaluate_instance(instance.interview_id, now))
        return events

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _notify_changed(self, interview_id: str) -> None:
        event = self._changed.get(interview_id)
        if event is not None:
            event.set()

    async def watch(self, interview_id: str) -> None:
        """SLA timer task for one interview; ends when it is archived."""
        changed = self._changed.setdefault(interview_id, asyncio.Event())
        try:
            while True:
                with self._lock:
                    instance = self._instances.get(interview_id)
                    if instance is None:
                        return
                    wake_at = self.next_check_at(instance)
                    changed.clear()

                timeout = MAX_WATCH_SLEEP_SECONDS
                if wake_at is not None:
                    timeout = min(timeout, max((wake_at - self.clock()).total_seconds(), 0.0))
                try:
                    await asyncio.wait_for(changed.wait(), timeout)
                except asyncio.TimeoutError:
                    pass

                try:
                    self.evaluate_instance(interview_id)
                except SchedulingError as exc:
                    logger.exception("SLA evaluation failed for %s", interview_id)
                    if self.report_error is not None:
                        self.report_error(exc)
                    await asyncio.sleep(min(timeout or MAX_WATCH_SLEEP_SECONDS, MAX_WATCH_SLEEP_SECONDS))
        finally:
            self._changed.pop(interview_id, None)
