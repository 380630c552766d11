"""Slot catalogue and availability overlap between candidates and interviewers."""

from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

import pytz

from models.entities import Slot, TimeSlot


class AvailabilityService:
    """Answers which slots a candidate can make and how well a slot fits them."""

    def __init__(self, slots: Optional[Iterable[Slot]] = None):
        """Initialize with an optional slot catalogue."""
        self._slots: dict[str, Slot] = {}
        if slots:
            self.register_slots(slots)

    def register_slots(self, slots: Iterable[Slot]) -> None:
        for slot in slots:
            self._slots[slot.id] = slot

    def slot(self, slot_id: str) -> Slot:
        try:
            return self._slots[slot_id]
        except KeyError:
            raise KeyError(f"Unknown slot {slot_id}") from None

    def has_slot(self, slot_id: str) -> bool:
        return slot_id in self._slots

    def slots(self) -> list[Slot]:
        return sorted(self._slots.values(), key=lambda s: (s.start, s.id))

    def business_hours(
        self,
        timezone: str,
        start_date: date,
        end_date: date,
        business_hours_start: int = 9,
        business_hours_end: int = 18,
    ) -> list[TimeSlot]:
        """Weekday business-hour windows in a local timezone, as UTC windows."""
        tz = pytz.timezone(timezone)
        windows = []
        current_date = start_date
        while current_date <= end_date:
            # Skip weekends
            if current_date.weekday() < 5:
                local_start = tz.localize(datetime.combine(current_date, time(business_hours_start, 0)))
                local_end = tz.localize(datetime.combine(current_date, time(business_hours_end, 0)))
                windows.append(TimeSlot(
                    start=local_start.astimezone(pytz.UTC),
                    end=local_end.astimezone(pytz.UTC),
                    source="business_hours",
                ))
            current_date += timedelta(days=1)
        return windows

    @staticmethod
    def intersect(windows1: list[TimeSlot], windows2: list[TimeSlot]) -> list[TimeSlot]:
        """Find intersection of two window lists."""
        result = []
        for w1 in windows1:
            for w2 in windows2:
                overlap_start = max(w1.start, w2.start)
                overlap_end = min(w1.end, w2.end)
                if overlap_start < overlap_end:
                    result.append(TimeSlot(
                        start=overlap_start,
                        end=overlap_end,
                        participants=sorted(set(w1.participants + w2.participants)),
                        source="intersection",
                    ))
        return result

    @staticmethod
    def split_by_duration(windows: list[TimeSlot], duration_minutes: int) -> list[TimeSlot]:
        """Split long windows into interview-sized chunks."""
        result = []
        duration_delta = timedelta(minutes=duration_minutes)
        for window in windows:
            current_start = window.start
            while current_start + duration_delta <= window.end:
                result.append(TimeSlot(
                    start=current_start,
                    end=current_start + duration_delta,
                    participants=window.participants,
                    source=window.source,
                ))
                current_start += duration_delta
        return result

    @staticmethod
    def _merge(windows: list[TimeSlot]) -> list[tuple[datetime, datetime]]:
        spans = sorted((w.start, w.end) for w in windows if w.start < w.end)
        merged: list[tuple[datetime, datetime]] = []
        for start, end in spans:
            if merged and start <= merged[-1][1]:
                merged[-1] = (merged[-1][0], max(merged[-1][1], end))
            else:
                merged.append((start, end))
        return merged

    def availability_match(self, windows: list[TimeSlot], slot: Slot) -> float:
        """Percentage (0-100) of a slot covered by someone's availability windows."""
        length = (slot.end - slot.start).total_seconds()
        if length <= 0:
            return 0.0
        covered = 0.0
        for start, end in self._merge(windows):
            overlap = (min(end, slot.end) - max(start, slot.start)).total_seconds()
            if overlap > 0:
                covered += overlap
        return round(min(covered / length, 1.0) * 100, 2)

    def compatible_slots(
        self,
        windows: list[TimeSlot],
        interviewer_slot_ids: Optional[Iterable[str]] = None,
    ) -> list[str]:
        """
        Slots fully inside someone's availability, earliest first.

        Args:
            windows: Candidate availability windows (UTC)
            interviewer_slot_ids: When given, only slots at least one
                interviewer offers are kept
        """
        allowed = set(interviewer_slot_ids) if interviewer_slot_ids is not None else None
        result = []
        for slot in self.slots():
            if allowed is not None and slot.id not in allowed:
                continue
            if self.availability_match(windows, slot) >= 100:
                result.append(slot.id)
        return result
