"""Live join monitoring with timed retries and no-show detection."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from models.entities import JoinStatus, utcnow
from models.errors import SchedulingError
from models.intents import EscalationEvent, RetryNotification
from services.settings import EngineSettings

logger = logging.getLogger(__name__)


class JoinPhase(str, Enum):
    WAITING = "waiting"
    RETRY_3MIN = "retry_3min"
    RETRY_5MIN = "retry_5min"
    ALL_JOINED = "all_joined"
    NO_SHOW = "no_show"


@dataclass
class NoShowDeclaration:
    interview_id: str
    participants: list[JoinStatus]
    declared_at: datetime
    manual: bool = False

    @property
    def candidate_no_show(self) -> bool:
        return any(p.participant_type == "candidate" for p in self.participants)

    @property
    def interviewer_no_shows(self) -> list[str]:
        return [p.participant_id for p in self.participants if p.participant_type == "interviewer"]


@dataclass
class _Checkpoint:
    name: str
    offset: timedelta
    done: bool = field(default=False)


class JoinMonitor:
    """
    Watches one interview from its scheduled start to the end of the join window.

    Two retry notifications go to absent participants (default +3 and +5
    minutes, the second with an early escalation); at the end of the window
    (default +10) every absent participant is declared a no-show, once.
    Operators can retry or mark a no-show at any point in the window.
    """

    def __init__(
        self,
        interview_id: str,
        candidate_id: str,
        interviewer_ids: list[str],
        start: datetime,
        settings: EngineSettings,
        publish: Callable[[object], None],
        on_no_show: Callable[[NoShowDeclaration], None],
        on_all_joined: Optional[Callable[[str], None]] = None,
        clock: Callable[[], datetime] = utcnow,
        report_error: Optional[Callable[[SchedulingError], None]] = None,
    ):
        self.interview_id = interview_id
        self.start = start
        self.settings = settings
        self.publish = publish
        self.on_no_show = on_no_show
        self.on_all_joined = on_all_joined
        self.clock = clock
        self.report_error = report_error
        self.phase = JoinPhase.WAITING
        self.declaration: Optional[NoShowDeclaration] = None
        self.retries_sent = 0

        self.statuses: dict[str, JoinStatus] = {
            candidate_id: JoinStatus(participant_id=candidate_id, participant_type="candidate")
        }
        for interviewer_id in interviewer_ids:
            self.statuses[interviewer_id] = JoinStatus(
                participant_id=interviewer_id, participant_type="interviewer"
            )

        self._checkpoints = [
            _Checkpoint("first_retry", timedelta(minutes=settings.first_retry_minutes)),
            _Checkpoint("second_retry", timedelta(minutes=settings.second_retry_minutes)),
            _Checkpoint("finalize", timedelta(minutes=settings.join_window_minutes)),
        ]

    @property
    def window_end(self) -> datetime:
        return self.start + timedelta(minutes=self.settings.join_window_minutes)

    @property
    def finished(self) -> bool:
        return self.phase in (JoinPhase.ALL_JOINED, JoinPhase.NO_SHOW)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        return not self.finished and self.start <= now <= self.window_end

    def absent(self) -> list[JoinStatus]:
        return [s for s in self.statuses.values() if not s.joined and not s.no_show]

    # ------------------------------------------------------------------
    # Presence events
    # ------------------------------------------------------------------

    def record_join(self, participant_id: str, at: Optional[datetime] = None) -> bool:
        """Mark a participant as joined; returns False when the window is over."""
        status = self.statuses.get(participant_id)
        if status is None:
            raise KeyError(f"{participant_id} is not a participant of interview {self.interview_id}")
        if self.finished:
            logger.info("Late join of %s ignored for %s (%s)", participant_id, self.interview_id, self.phase.value)
            return False
        if status.joined:
            return False
        status.joined = True
        status.join_time = at or self.clock()
        logger.info("%s joined interview %s", participant_id, self.interview_id)

        if all(s.joined for s in self.statuses.values()):
            self.phase = JoinPhase.ALL_JOINED
            if self.on_all_joined is not None:
                self.on_all_joined(self.interview_id)
        return True

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def tick(self, now: Optional[datetime] = None) -> list[str]:
        """Run every checkpoint that is due; returns the names of those run."""
        now = now or self.clock()
        ran = []
        for checkpoint in self._checkpoints:
            if self.finished:
                break
            if checkpoint.done or now < self.start + checkpoint.offset:
                continue
            checkpoint.done = True
            ran.append(checkpoint.name)
            if checkpoint.name == "first_retry":
                self.phase = JoinPhase.RETRY_3MIN
                self._send_retry()
            elif checkpoint.name == "second_retry":
                self.phase = JoinPhase.RETRY_5MIN
                self._send_retry()
                self._early_escalation(now)
            else:
                self._finalize(now)
        return ran

    def _send_retry(self, participant_ids: Optional[list[str]] = None, manual: bool = False) -> Optional[RetryNotification]:
        targets = [
            s for s in self.absent()
            if participant_ids is None or s.participant_id in participant_ids
        ]
        if not targets:
            return None
        for status in targets:
            status.retry_count += 1
        self.retries_sent += 1
        notification = RetryNotification(
            interview_id=self.interview_id,
            participant_ids=tuple(s.participant_id for s in targets),
            attempt=self.retries_sent,
            manual=manual,
        )
        logger.info(
            "Join retry #%d for %s: %s", self.retries_sent, self.interview_id, list(notification.participant_ids)
        )
        self.publish(notification)
        return notification

    def _early_escalation(self, now: datetime) -> None:
        absent = self.absent()
        if not absent:
            return
        self.publish(EscalationEvent(
            interview_id=self.interview_id,
            reason=f"{len(absent)} participant(s) not joined after second retry: "
                   + ", ".join(s.participant_id for s in absent),
            severity="warning",
            raised_at=now,
        ))

    def _finalize(self, now: datetime, manual: bool = False) -> Optional[NoShowDeclaration]:
        absent = self.absent() if not manual else [s for s in self.statuses.values() if s.no_show]
        if not absent:
            self.phase = JoinPhase.ALL_JOINED
            return None
        for status in absent:
            status.no_show = True
        self.phase = JoinPhase.NO_SHOW
        self.declaration = NoShowDeclaration(
            interview_id=self.interview_id,
            participants=absent,
            declared_at=now,
            manual=manual,
        )
        logger.warning(
            "No-show declared for %s: %s", self.interview_id, [s.participant_id for s in absent]
        )
        self.on_no_show(self.declaration)
        return self.declaration

    # ------------------------------------------------------------------
    # Operator overrides
    # ------------------------------------------------------------------

    def manual_retry(self, participant_id: Optional[str] = None) -> Optional[RetryNotification]:
        if self.finished:
            return None
        targets = [participant_id] if participant_id else None
        return self._send_retry(targets, manual=True)

    def mark_no_show(self, participant_id: str, at: Optional[datetime] = None) -> Optional[NoShowDeclaration]:
        """Declare one participant a no-show now and close the window."""
        status = self.statuses.get(participant_id)
        if status is None:
            raise KeyError(f"{participant_id} is not a participant of interview {self.interview_id}")
        if self.finished:
            return None
        status.no_show = True
        for checkpoint in self._checkpoints:
            checkpoint.done = True
        return self._finalize(at or self.clock(), manual=True)

    # ------------------------------------------------------------------
    # Timer task
    # ------------------------------------------------------------------

    async def run(self) -> Optional[NoShowDeclaration]:
        """Sleep until each checkpoint and run it; cancellable at any await."""
        for checkpoint in self._checkpoints:
            if self.finished:
                break
            delay = (self.start + checkpoint.offset - self.clock()).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            try:
                self.tick()
            except SchedulingError as exc:
                logger.exception("Join checkpoint %s failed for %s", checkpoint.name, self.interview_id)
                if self.report_error is not None:
                    self.report_error(exc)
        return self.declaration
