"""Shared fixtures: a controllable clock, directory builders and a wired engine."""

from datetime import datetime, timedelta

import pytest
import pytz

from models.entities import (
    CandidateProfile,
    Claim,
    DirectorySnapshot,
    InterviewerCapacity,
    PriorityScore,
    PriorityWeights,
    SchedulingRequest,
    Slot,
    TimeSlot,
)
from services.coordination_engine import CoordinationEngine
from services.messaging_service_mock import MessagingServiceMock
from services.settings import EngineSettings

# A Monday morning, before the first slot of the day
MONDAY = datetime(2025, 3, 3, 8, 0, tzinfo=pytz.UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, moment: datetime) -> datetime:
        self.now = moment
        return self.now


@pytest.fixture
def clock():
    return FakeClock(MONDAY)


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def outbox():
    return MessagingServiceMock()


@pytest.fixture
def slots():
    """Two one-hour slots on Monday: S1 at 10:00 and S2 at 11:00 UTC."""
    s1 = MONDAY.replace(hour=10)
    s2 = MONDAY.replace(hour=11)
    return {
        "S1": Slot("S1", s1, s1 + timedelta(hours=1)),
        "S2": Slot("S2", s2, s2 + timedelta(hours=1)),
    }


@pytest.fixture
def make_window():
    """Availability window on MONDAY between two (hour, minute) pairs."""
    def _make(start_hour, start_minute, end_hour, end_minute, participants=()):
        return TimeSlot(
            MONDAY.replace(hour=start_hour, minute=start_minute),
            MONDAY.replace(hour=end_hour, minute=end_minute),
            participants=list(participants),
        )
    return _make


@pytest.fixture
def make_capacity():
    def _make(interviewer_id="eng-1", role="Senior Engineer", seniority="senior",
              daily_limit=4, weekly_limit=20, round_types=("Technical Round",),
              slots=("S1", "S2"), **kwargs):
        return InterviewerCapacity(
            interviewer_id=interviewer_id,
            name=kwargs.pop("name", interviewer_id.title()),
            role=role,
            seniority=seniority,
            daily_limit=daily_limit,
            weekly_limit=weekly_limit,
            round_types=frozenset(round_types),
            available_slots=frozenset(slots),
            **kwargs,
        )
    return _make


@pytest.fixture
def make_request():
    def _make(request_id, candidate_id=None, round_name="Technical Round", **kwargs):
        kwargs.setdefault("last_updated", MONDAY - timedelta(days=1))
        return SchedulingRequest(
            request_id=request_id,
            candidate_id=candidate_id or f"cand-{request_id}",
            job_id=kwargs.pop("job_id", "job-1"),
            round_name=round_name,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_claim(slots):
    def _make(request, total, slot_id="S1", interviewer_id="eng-1"):
        score = PriorityScore(
            urgency=0, pipeline_stage=0, availability=0, interviewer_load=0,
            weights=PriorityWeights(), total=total,
        )
        return Claim(request=request, slot=slots[slot_id], interviewer_id=interviewer_id, score=score)
    return _make


@pytest.fixture
def directory(make_capacity, slots):
    """eng-1 (senior) and eng-2 (staff) both interview Technical Round in S1 and S2."""
    window = TimeSlot(MONDAY.replace(hour=9), MONDAY.replace(hour=17))
    return DirectorySnapshot(
        interviewers=[
            make_capacity("eng-1", role="Senior Engineer", seniority="senior"),
            make_capacity("eng-2", role="Staff Engineer", seniority="staff"),
        ],
        candidates=[
            CandidateProfile(cid, cid.title(), f"{cid}@example.com", availability=[window])
            for cid in ("cand-a", "cand-b", "cand-c")
        ],
        slots=list(slots.values()),
    )


@pytest.fixture
def make_engine(outbox, directory, clock):
    def _make(snapshot=None, **overrides):
        return CoordinationEngine(
            EngineSettings(**overrides),
            messaging=outbox,
            directory=snapshot or directory,
            clock=clock,
        )
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()
