"""Tests for slot compatibility and availability overlap."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest
import pytz

from services.availability_service import AvailabilityService


@pytest.fixture
def service(slots):
    return AvailabilityService(slots.values())


class TestAvailabilityMatch:
    def test_full_cover(self, service, slots, make_window):
        assert service.availability_match([make_window(9, 0, 17, 0)], slots["S1"]) == 100

    def test_overlapping_windows_are_merged(self, service, slots, make_window):
        windows = [make_window(10, 0, 10, 30), make_window(10, 15, 10, 45)]
        assert service.availability_match(windows, slots["S1"]) == 75

    def test_no_overlap(self, service, slots, make_window):
        assert service.availability_match([make_window(14, 0, 15, 0)], slots["S1"]) == 0
        assert service.availability_match([], slots["S1"]) == 0


class TestCompatibleSlots:
    def test_only_fully_covered_slots(self, service, make_window):
        assert service.compatible_slots([make_window(9, 0, 11, 30)]) == ["S1"]

    def test_restricted_to_interviewer_slots(self, service, make_window):
        windows = [make_window(9, 0, 17, 0)]
        assert service.compatible_slots(windows) == ["S1", "S2"]
        assert service.compatible_slots(windows, {"S2"}) == ["S2"]
        assert service.compatible_slots(windows, set()) == []

    def test_unknown_slot(self, service):
        assert service.has_slot("S9") is False
        with pytest.raises(KeyError):
            service.slot("S9")


class TestWindows:
    def test_business_hours_in_candidate_timezone(self):
        windows = AvailabilityService().business_hours("Asia/Kolkata", date(2025, 3, 3), date(2025, 3, 9))

        assert len(windows) == 5
        assert windows[0].start == pytz.UTC.localize(datetime(2025, 3, 3, 3, 30))
        assert windows[0].end - windows[0].start == timedelta(hours=9)

    def test_intersect_and_split(self, make_window):
        candidate = [make_window(9, 0, 12, 0, participants=["cand-a"])]
        interviewer = [make_window(10, 0, 13, 0, participants=["eng-1"])]

        overlap = AvailabilityService.intersect(candidate, interviewer)
        chunks = AvailabilityService.split_by_duration(overlap, 45)

        assert len(overlap) == 1
        assert overlap[0].participants == ["cand-a", "eng-1"]
        assert [(c.start.hour, c.start.minute) for c in chunks] == [(10, 0), (10, 45)]
