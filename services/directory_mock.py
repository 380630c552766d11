"""Mock ATS directory with synthetic interviewers, candidates and slots."""

from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz

from models.entities import (
    CandidateProfile,
    DirectorySnapshot,
    InterviewerCapacity,
    SchedulingRequest,
    Slot,
    utcnow,
)
from services.availability_service import AvailabilityService
from services.eligibility_validator import DEFAULT_ROLE_RULES

# Slot start hours (UTC) offered every business day
SLOT_HOURS = (9, 10, 11, 14, 15, 16)


class DirectoryMock:
    """Mock directory returning the same shape as ATSClient.fetch_directory()."""

    def __init__(self, start: Optional[date] = None, days: int = 5):
        """Initialize with synthetic data for `days` business days from `start`."""
        self.start = start or (utcnow() + timedelta(days=1)).date()
        self.days = days
        self._slots = self._generate_slots()
        self._interviewers = self._generate_interviewers()
        self._candidates = self._generate_candidates()

    def _business_days(self) -> list[date]:
        days = []
        current = self.start
        while len(days) < self.days:
            # Skip weekends
            if current.weekday() < 5:
                days.append(current)
            current += timedelta(days=1)
        return days

    def _generate_slots(self) -> list[Slot]:
        slots = []
        for day in self._business_days():
            for hour in SLOT_HOURS:
                start = pytz.UTC.localize(datetime.combine(day, time(hour, 0)))
                slots.append(Slot(
                    id=f"{day.isoformat()}T{hour:02d}00",
                    start=start,
                    end=start + timedelta(hours=1),
                ))
        return slots

    def _slot_ids(self, hours: tuple[int, ...]) -> frozenset[str]:
        return frozenset(s.id for s in self._slots if s.start.hour in hours)

    def _generate_interviewers(self) -> list[InterviewerCapacity]:
        """Generate synthetic interviewers."""
        return [
            InterviewerCapacity(
                interviewer_id="int-1",
                name="Sarah Johnson",
                role="Hiring Manager",
                seniority="senior",
                daily_limit=4,
                weekly_limit=15,
                department="Engineering",
                interviews_today=3,
                interviews_this_week=12,
                availability_score=75,
                fatigue_score=65,
                round_types=frozenset({"Technical Round", "System Design", "Final Round"}),
                available_slots=self._slot_ids((9, 10, 14, 15)),
            ),
            InterviewerCapacity(
                interviewer_id="int-2",
                name="Michael Chen",
                role="Staff Engineer",
                seniority="staff",
                daily_limit=4,
                weekly_limit=12,
                department="Engineering",
                interviews_today=1,
                interviews_this_week=8,
                availability_score=90,
                fatigue_score=25,
                round_types=frozenset({"Technical Round", "System Design"}),
                is_backup_panel=True,
                available_slots=self._slot_ids((9, 10, 15, 16)),
            ),
            InterviewerCapacity(
                interviewer_id="int-3",
                name="Elena Rodriguez",
                role="Principal Engineer",
                seniority="principal",
                daily_limit=4,
                weekly_limit=20,
                department="Engineering",
                interviews_today=4,
                interviews_this_week=16,
                availability_score=45,
                fatigue_score=85,
                round_types=frozenset({"System Design", "Final Round", "Architecture"}),
                available_slots=self._slot_ids((14, 15, 16)),
            ),
            InterviewerCapacity(
                interviewer_id="int-4",
                name="David Kim",
                role="Senior Recruiter",
                seniority="senior",
                daily_limit=5,
                weekly_limit=18,
                department="Talent",
                interviews_today=2,
                interviews_this_week=10,
                availability_score=85,
                fatigue_score=40,
                round_types=frozenset({"Recruiter Screen"}),
                is_backup_panel=True,
                available_slots=self._slot_ids(SLOT_HOURS),
            ),
            InterviewerCapacity(
                interviewer_id="int-5",
                name="Priya Patel",
                role="Engineering Manager",
                seniority="senior",
                daily_limit=3,
                weekly_limit=12,
                department="Engineering",
                interviews_today=2,
                interviews_this_week=7,
                availability_score=70,
                fatigue_score=45,
                round_types=frozenset({"Technical Round", "Behavioral", "Final Round"}),
                available_slots=self._slot_ids((9, 10, 11, 14)),
            ),
            InterviewerCapacity(
                interviewer_id="int-6",
                name="Tom Okafor",
                role="Senior Engineer",
                seniority="senior",
                daily_limit=3,
                weekly_limit=10,
                department="Engineering",
                interviews_this_week=2,
                round_types=frozenset({"Technical Round"}),
                available_slots=self._slot_ids((10, 11, 14, 15)),
            ),
        ]

    def _generate_candidates(self) -> list[CandidateProfile]:
        """Generate synthetic candidates with business-hour availability in their own timezone."""
        people = [
            ("cand_001", "Rajesh Kumar", "rajesh.kumar@example.com", "Asia/Kolkata"),
            ("cand_002", "Priya Sharma", "priya.sharma@example.com", "Asia/Kolkata"),
            ("cand_003", "Michael Chen", "michael.chen@example.com", "America/Los_Angeles"),
            ("cand_004", "Sarah Johnson", "sarah.johnson@example.com", "America/New_York"),
            ("cand_005", "Amit Patel", "amit.patel@example.com", "Asia/Kolkata"),
            ("cand_006", "Emma Wilson", "emma.wilson@example.com", "Europe/London"),
        ]
        days = self._business_days()
        candidates = []
        for candidate_id, name, email, timezone in people:
            windows = AvailabilityService().business_hours(timezone, days[0], days[-1])
            for window in windows:
                window.participants = [candidate_id]
                window.source = "candidate_availability"
            candidates.append(CandidateProfile(
                candidate_id=candidate_id,
                name=name,
                email=email,
                timezone=timezone,
                availability=windows,
            ))
        return candidates

    def fetch_directory(self) -> DirectorySnapshot:
        return DirectorySnapshot(
            interviewers=list(self._interviewers),
            candidates=list(self._candidates),
            role_rules=list(DEFAULT_ROLE_RULES),
            slots=list(self._slots),
        )

    def sample_requests(self) -> list[SchedulingRequest]:
        """A small pending queue spread over the mock's rounds."""
        return [
            SchedulingRequest("req-001", "cand_001", "job-eng-1", "Technical Round",
                              urgency_flag=True, pipeline_position=3, candidate_timezone="Asia/Kolkata"),
            SchedulingRequest("req-002", "cand_002", "job-eng-1", "Technical Round",
                              notice_period="immediate", pipeline_position=3, candidate_timezone="Asia/Kolkata"),
            SchedulingRequest("req-003", "cand_003", "job-pm-2", "Final Round",
                              notice_period="1 month", pipeline_position=5,
                              candidate_timezone="America/Los_Angeles"),
            SchedulingRequest("req-004", "cand_004", "job-eng-1", "System Design",
                              notice_period="2 weeks", pipeline_position=4,
                              candidate_timezone="America/New_York"),
            SchedulingRequest("req-005", "cand_005", "job-eng-3", "Recruiter Screen",
                              pipeline_position=1, candidate_timezone="Asia/Kolkata"),
            SchedulingRequest("req-006", "cand_006", "job-eng-3", "Technical Round",
                              notice_period="2 weeks", pipeline_position=3,
                              candidate_timezone="Europe/London"),
        ]
