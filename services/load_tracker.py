"""Live interviewer capacity, fatigue and panel ranking."""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from models.entities import InterviewerCapacity, seniority_rank, utcnow
from models.errors import CapacityExceeded
from services.eligibility_validator import EligibilityValidator
from services.settings import EngineSettings

logger = logging.getLogger(__name__)

FINAL_ROUND_MARKERS = ("final",)


def _day_key(moment: datetime) -> str:
    return moment.date().isoformat()


def _week_key(moment: datetime) -> str:
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


class LoadTracker:
    """
    Owns the InterviewerCapacity records of one engine.

    Every write to a record happens under that record's lock, so a record
    has a single writer at a time. Readers get copies, never the live
    record. Counts only go down through a day/week rollover, which happens
    on the next write or on rebalance().
    """

    def __init__(
        self,
        settings: EngineSettings,
        validator: EligibilityValidator,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.validator = validator
        self.clock = clock
        self._records: dict[str, InterviewerCapacity] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._initial_slot_counts: dict[str, int] = {}
        self._decayed_at: dict[str, datetime] = {}
        self._registry_lock = threading.RLock()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def load_directory(self, interviewers: Iterable[InterviewerCapacity]) -> int:
        """Register (or replace) interviewers from a directory snapshot."""
        count = 0
        for capacity in interviewers:
            self.register(capacity)
            count += 1
        logger.info("Loaded %d interviewer capacity record(s)", count)
        return count

    def register(self, capacity: InterviewerCapacity) -> None:
        now = self.clock()
        with self._registry_lock:
            record = replace(capacity, soft_violations=list(capacity.soft_violations))
            if not record.day_key:
                record.day_key = _day_key(now)
            if not record.week_key:
                record.week_key = _week_key(now)
            self._records[record.interviewer_id] = record
            self._locks.setdefault(record.interviewer_id, threading.Lock())
            self._initial_slot_counts[record.interviewer_id] = len(record.available_slots)
            self._decayed_at[record.interviewer_id] = record.last_activity_at or now

    def _lock_for(self, interviewer_id: str) -> threading.Lock:
        with self._registry_lock:
            if interviewer_id not in self._records:
                raise KeyError(f"Unknown interviewer {interviewer_id}")
            return self._locks[interviewer_id]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def capacity(self, interviewer_id: str) -> InterviewerCapacity:
        """Snapshot of one interviewer's capacity (after any period rollover)."""
        with self._lock_for(interviewer_id):
            record = self._records[interviewer_id]
            self._roll_period(record, self.clock())
            return self._snapshot(record)

    def all_capacities(self) -> list[InterviewerCapacity]:
        with self._registry_lock:
            ids = list(self._records)
        return [self.capacity(i) for i in ids]

    def is_at_capacity(self, capacity: InterviewerCapacity) -> bool:
        return capacity.load_percentage >= self.settings.max_capacity_threshold

    def panel_score(self, capacity: InterviewerCapacity) -> float:
        return (100 - capacity.load_percentage) + capacity.availability_score + (100 - capacity.fatigue_score)

    def eligible_panel(
        self,
        round_name: str,
        exclude_overloaded: bool = True,
        slot_id: Optional[str] = None,
    ) -> list[InterviewerCapacity]:
        """
        Interviewers who may serve a round, best first.

        Args:
            round_name: Round/stage the panel is for
            exclude_overloaded: Drop interviewers at or above the max-capacity threshold
            slot_id: Only keep interviewers available in this slot

        Returns:
            Capacities ranked by (100 - load) + availability + (100 - fatigue);
            ties go to the closest seniority match for the round.
        """
        panel = []
        for capacity in self.all_capacities():
            if not capacity.serves(round_name):
                continue
            if self.validator.validate_interviewer(round_name, capacity) is not None:
                continue
            if slot_id is not None and slot_id not in capacity.available_slots:
                continue
            if exclude_overloaded and self.is_at_capacity(capacity):
                continue
            panel.append(capacity)

        prefer_senior = self.settings.senior_preference_final_rounds and any(
            marker in round_name.lower() for marker in FINAL_ROUND_MARKERS
        )

        def sort_key(c: InterviewerCapacity):
            if prefer_senior:
                # Final rounds lean towards the most senior interviewer on ties
                tie = -seniority_rank(c.seniority)
            else:
                tie = self.validator.seniority_gap(round_name, c.seniority)
            return (-round(self.panel_score(c), 6), tie, c.interviewer_id)

        panel.sort(key=sort_key)
        return panel

    def average_load(self, round_name: str) -> Optional[float]:
        """Average load of every eligible interviewer for a round (None if nobody)."""
        panel = self.eligible_panel(round_name, exclude_overloaded=False)
        if not panel:
            return None
        return sum(c.load_percentage for c in panel) / len(panel)

    def suggest_backup_panel(self, round_name: str) -> list[InterviewerCapacity]:
        """Backup-panel members still under the backup threshold."""
        return [
            c for c in self.eligible_panel(round_name)
            if c.is_backup_panel and c.load_percentage < self.settings.backup_panel_threshold
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_assignment(
        self,
        interviewer_id: str,
        slot_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> InterviewerCapacity:
        """Count a confirmed assignment against an interviewer."""
        now = at or self.clock()
        with self._lock_for(interviewer_id):
            record = self._records[interviewer_id]
            self._roll_period(record, now)
            self._decay_fatigue(record, now)

            problems = []
            if record.load_percentage >= self.settings.max_capacity_threshold:
                problems.append(
                    f"load {record.load_percentage:.0f}% is at maximum capacity "
                    f"({self.settings.max_capacity_threshold:.0f}%)"
                )
            if record.interviews_today + 1 > record.daily_limit:
                problems.append(f"daily limit {record.daily_limit} reached")
            if record.interviews_this_week + 1 > record.weekly_limit:
                problems.append(f"weekly limit {record.weekly_limit} reached")

            if problems:
                message = f"{record.name}: " + "; ".join(problems)
                if self.settings.enforce_load_balancing:
                    raise CapacityExceeded(message, interviewer_id)
                record.soft_violations.append(message)
                logger.warning("Soft capacity violation for %s: %s", interviewer_id, message)

            record.interviews_today += 1
            record.interviews_this_week += 1
            record.consecutive_today += 1
            record.fatigue_score += self.settings.fatigue_per_assignment
            if record.consecutive_today > self.settings.max_consecutive_interviews:
                record.fatigue_score += self.settings.fatigue_consecutive_penalty
            record.fatigue_score = min(record.fatigue_score, 100.0)
            record.last_activity_at = now

            if slot_id is not None and slot_id in record.available_slots:
                record.available_slots = record.available_slots - {slot_id}
                initial = self._initial_slot_counts.get(interviewer_id) or 0
                if initial:
                    record.availability_score = round(100 * len(record.available_slots) / initial, 2)

            logger.info(
                "Assignment recorded for %s: today=%d/%d week=%d/%d load=%.0f%% fatigue=%.0f",
                interviewer_id,
                record.interviews_today,
                record.daily_limit,
                record.interviews_this_week,
                record.weekly_limit,
                record.load_percentage,
                record.fatigue_score,
            )
            return self._snapshot(record)

    def record_completion(self, interviewer_id: str, at: Optional[datetime] = None) -> InterviewerCapacity:
        """Note that an interviewer finished an interview (idle time starts now)."""
        now = at or self.clock()
        with self._lock_for(interviewer_id):
            record = self._records[interviewer_id]
            self._roll_period(record, now)
            self._decay_fatigue(record, now)
            record.last_activity_at = now
            return self._snapshot(record)

    def release_slot(self, interviewer_id: str, slot_id: str) -> InterviewerCapacity:
        """
        Offer a slot again after its interview fell through.

        Counts stay as they are; a freed slot does not undo the load of an
        assignment that was already confirmed.
        """
        with self._lock_for(interviewer_id):
            record = self._records[interviewer_id]
            if slot_id not in record.available_slots:
                record.available_slots = record.available_slots | {slot_id}
                initial = self._initial_slot_counts.get(interviewer_id) or 0
                if initial:
                    record.availability_score = round(
                        min(100.0, 100 * len(record.available_slots) / initial), 2
                    )
                logger.info("Slot %s released for %s", slot_id, interviewer_id)
            return self._snapshot(record)

    def rebalance(self, now: Optional[datetime] = None) -> dict[str, float]:
        """
        Refresh load and fatigue projections.

        Applies period rollover, fatigue decay for idle time and resets
        back-to-back streaks after the cooldown. Never touches confirmed
        interviews. Returns the resulting load per interviewer.
        """
        now = now or self.clock()
        with self._registry_lock:
            ids = list(self._records)

        loads = {}
        cooldown_hours = self.settings.cooldown_period_mins / 60
        for interviewer_id in ids:
            with self._lock_for(interviewer_id):
                record = self._records[interviewer_id]
                was_full = record.load_percentage >= self.settings.max_capacity_threshold
                self._roll_period(record, now)
                self._decay_fatigue(record, now)
                if record.last_activity_at is not None:
                    idle_hours = (now - record.last_activity_at).total_seconds() / 3600
                    if idle_hours >= cooldown_hours:
                        record.consecutive_today = 0
                loads[interviewer_id] = record.load_percentage
                if was_full and record.load_percentage < self.settings.max_capacity_threshold:
                    logger.info("Interviewer %s is available for auto-assignment again", interviewer_id)
        return loads

    # ------------------------------------------------------------------
    # Internals (callers hold the record lock)
    # ------------------------------------------------------------------

    def _roll_period(self, record: InterviewerCapacity, now: datetime) -> None:
        day = _day_key(now)
        week = _week_key(now)
        if record.day_key and day > record.day_key:
            record.interviews_today = 0
            record.consecutive_today = 0
        if record.week_key and week > record.week_key:
            record.interviews_this_week = 0
        record.day_key = max(day, record.day_key or day)
        record.week_key = max(week, record.week_key or week)

    def _decay_fatigue(self, record: InterviewerCapacity, now: datetime) -> None:
        marked = self._decayed_at.get(record.interviewer_id)
        if marked is not None and now > marked:
            hours = (now - marked).total_seconds() / 3600
            record.fatigue_score = max(0.0, record.fatigue_score - hours * self.settings.fatigue_decay_per_hour)
        if marked is None or now > marked:
            self._decayed_at[record.interviewer_id] = now

    @staticmethod
    def _snapshot(record: InterviewerCapacity) -> InterviewerCapacity:
        return replace(record, soft_violations=list(record.soft_violations))
