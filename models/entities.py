"""Domain models for the interview coordination engine."""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

import pytz


SENIORITY_LEVELS = ["junior", "mid", "senior", "staff", "principal"]

ParticipantType = Literal["candidate", "interviewer"]
RequestSource = Literal["intake", "requeue", "swap", "reschedule"]


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(pytz.UTC)


def normalize_round(name: str) -> str:
    """Case- and whitespace-insensitive form of a round name."""
    return " ".join(name.lower().split())


def seniority_rank(level: Optional[str]) -> int:
    """Position of a seniority level on the ladder (-1 when unknown)."""
    if not level:
        return -1
    try:
        return SENIORITY_LEVELS.index(level.strip().lower())
    except ValueError:
        return -1


class InterviewState(str, Enum):
    """Lifecycle states of an interview."""
    CREATED = "created"
    SLOTS_GENERATED = "slots_generated"
    SLOT_CONFIRMED = "slot_confirmed"
    NOTIFIED = "notified"
    IN_PROGRESS = "in_progress"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CLOSED = "closed"


class SlaStatus(str, Enum):
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    OVERDUE = "overdue"


class ConflictStrategy(str, Enum):
    """Conflict resolution strategies (one per tenant)."""
    PRIORITY = "priority"
    URGENCY = "urgency"
    STAGE = "stage"
    FAIR = "fair"


class ResolutionState(str, Enum):
    OPEN = "open"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


class ViolationType(str, Enum):
    BLOCKED_ROLE = "BlockedRole"
    MISSING_MANDATORY_ROLE = "MissingMandatoryRole"
    NOT_ELIGIBLE = "NotEligible"
    INSUFFICIENT_SENIORITY = "InsufficientSeniority"
    BELOW_MINIMUM = "BelowMinimum"


@dataclass(frozen=True)
class Slot:
    """A bookable interview slot (UTC)."""
    id: str
    start: datetime
    end: datetime

    @property
    def date_key(self) -> str:
        return self.start.astimezone(pytz.UTC).date().isoformat()

    @property
    def time_key(self) -> str:
        return self.start.astimezone(pytz.UTC).strftime("%H:%M")

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


@dataclass
class TimeSlot:
    """Represents a window of time (free or busy)."""
    start: datetime
    end: datetime
    participants: list[str] = field(default_factory=list)
    source: Optional[str] = None  # e.g., "candidate_availability"


@dataclass(frozen=True)
class ResourceKey:
    """The scarce resource requests compete for: (date, time, interviewer)."""
    date_key: str
    time_key: str
    interviewer_id: str

    @classmethod
    def for_slot(cls, slot: Slot, interviewer_id: str) -> "ResourceKey":
        return cls(slot.date_key, slot.time_key, interviewer_id)

    def __str__(self) -> str:
        return f"{self.date_key} {self.time_key} / {self.interviewer_id}"


@dataclass
class SchedulingRequest:
    """A candidate waiting for an interviewer and slot in a given round."""
    request_id: str
    candidate_id: str
    job_id: str
    round_name: str
    urgency_flag: bool = False
    notice_period: str = ""  # "immediate", "2 weeks", "1 month", ...
    pipeline_position: int = 1  # 1=screening ... 5=final round
    availability_slots: int = 0
    preferred_slots: list[str] = field(default_factory=list)  # slot ids, best first
    manual_override: bool = False
    override_reason: Optional[str] = None
    last_updated: datetime = field(default_factory=utcnow)
    denied_resources: list[ResourceKey] = field(default_factory=list)
    availability_bump: int = 0
    requeue_count: int = 0
    source: RequestSource = "intake"
    candidate_timezone: str = "UTC"
    interview_id: Optional[str] = None  # set when rescheduling an existing interview
    reserved_slot_id: Optional[str] = None  # freed slot a confirmed swap holds for this request


@dataclass(frozen=True)
class PriorityWeights:
    """Percentage weights of the four priority signals."""
    urgency: float = 40
    pipeline_stage: float = 25
    availability: float = 20
    interviewer_load: float = 15

    def total(self) -> float:
        return self.urgency + self.pipeline_stage + self.availability + self.interviewer_load


@dataclass(frozen=True)
class PriorityScore:
    urgency: float
    pipeline_stage: float
    availability: float
    interviewer_load: float
    weights: PriorityWeights
    total: float


@dataclass
class RankedRequest:
    """A queue entry as shown to operators."""
    position: int
    request: SchedulingRequest
    score: PriorityScore
    tier: str
    pinned: bool = False  # manual override

    @property
    def label(self) -> str:
        marker = "[override] " if self.pinned else ""
        return f"{marker}{self.request.candidate_id} ({self.tier}, {self.score.total:.1f})"


@dataclass
class InterviewerCapacity:
    """Live capacity state for one interviewer."""
    interviewer_id: str
    name: str
    role: str
    seniority: str
    daily_limit: int
    weekly_limit: int
    department: str = ""
    interviews_today: int = 0
    interviews_this_week: int = 0
    availability_score: float = 100.0  # rolling, 0-100
    fatigue_score: float = 0.0  # 0-100, higher = more tired
    round_types: frozenset[str] = frozenset()
    is_backup_panel: bool = False
    available_slots: frozenset[str] = frozenset()
    consecutive_today: int = 0
    last_activity_at: Optional[datetime] = None
    day_key: str = ""
    week_key: str = ""
    soft_violations: list[str] = field(default_factory=list)

    @property
    def load_percentage(self) -> float:
        ratios = []
        if self.daily_limit > 0:
            ratios.append(self.interviews_today / self.daily_limit)
        else:
            ratios.append(1.0)
        if self.weekly_limit > 0:
            ratios.append(self.interviews_this_week / self.weekly_limit)
        else:
            ratios.append(1.0)
        return min(max(ratios) * 100, 100.0)

    @property
    def load_badge(self) -> str:
        load = self.load_percentage
        if load >= 90:
            return "Overloaded"
        if load >= 70:
            return "High"
        if load >= 40:
            return "Optimal"
        return "Light"

    def serves(self, round_name: str) -> bool:
        wanted = normalize_round(round_name)
        return bool(wanted) and any(normalize_round(r) == wanted for r in self.round_types)


@dataclass
class RoleRule:
    """Declarative eligibility policy for an interview round."""
    round: str
    allowed_roles: list[str]
    preferred_roles: list[str] = field(default_factory=list)
    blocked_roles: list[str] = field(default_factory=list)
    minimum_required: int = 1
    seniority_requirement: Optional[str] = None
    mandatory_roles: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Violation:
    """Why an interviewer may not serve a round."""
    type: ViolationType
    round: str
    role: str
    message: str
    suggestion: str
    severity: Literal["high", "medium", "low"] = "high"


@dataclass
class CandidateProfile:
    """Candidate as known to the ATS directory."""
    candidate_id: str
    name: str
    email: str
    timezone: str = "UTC"
    availability: list[TimeSlot] = field(default_factory=list)


@dataclass
class DirectorySnapshot:
    """Candidate/interviewer directory as delivered by the ATS."""
    interviewers: list[InterviewerCapacity] = field(default_factory=list)
    candidates: list[CandidateProfile] = field(default_factory=list)
    role_rules: list[RoleRule] = field(default_factory=list)
    slots: list[Slot] = field(default_factory=list)


@dataclass
class Claim:
    """A request's bid on one resource during a scheduling pass."""
    request: SchedulingRequest
    slot: Slot
    interviewer_id: str
    score: PriorityScore

    @property
    def resource(self) -> ResourceKey:
        return ResourceKey.for_slot(self.slot, self.interviewer_id)


@dataclass
class ContestedResource:
    """Two or more claims on the same resource, alive until resolved."""
    resource: ResourceKey
    claims: list[Claim]
    conflict_type: str = "slot_competition"
    state: ResolutionState = ResolutionState.OPEN
    created_at: datetime = field(default_factory=utcnow)
    resolution: Optional["Resolution"] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self):
        if len(self.claims) < 2:
            raise ValueError(
                f"Contested resource {self.resource} needs at least two claims, got {len(self.claims)}"
            )


@dataclass
class Resolution:
    """Outcome of resolving one contested resource."""
    resource: ResourceKey
    strategy: ConflictStrategy
    winner: Claim
    losers: list[Claim]
    requeued: list[SchedulingRequest] = field(default_factory=list)
    reason: str = ""


@dataclass(frozen=True)
class InterviewEvent:
    """Immutable entry of an interview's state history."""
    state: InterviewState
    timestamp: datetime
    triggered_by: str


@dataclass
class InterviewInstance:
    """A confirmed interview driven through the lifecycle."""
    interview_id: str
    candidate_id: str
    job_id: str
    round_name: str
    slot: Slot
    interviewer_ids: list[str]
    request_id: Optional[str] = None
    priority_score: Optional[float] = None
    current_state: InterviewState = InterviewState.CREATED
    state_history: list[InterviewEvent] = field(default_factory=list)
    sla_deadline: Optional[datetime] = None
    sla_status: SlaStatus = SlaStatus.ON_TRACK
    escalation_flag: bool = False
    warning_sent: bool = False

    @property
    def entered_state_at(self) -> Optional[datetime]:
        if not self.state_history:
            return None
        return self.state_history[-1].timestamp


@dataclass
class JoinStatus:
    """Presence of one participant during the live window."""
    participant_id: str
    participant_type: ParticipantType
    joined: bool = False
    join_time: Optional[datetime] = None
    retry_count: int = 0
    no_show: bool = False


@dataclass(frozen=True)
class BackupCandidate:
    """A candidate that could take over a freed slot."""
    candidate_id: str
    job_id: str
    round_name: str
    priority_score: float
    availability_match: float
    request_id: Optional[str] = None

    @property
    def combined_score(self) -> float:
        return (self.priority_score + self.availability_match) / 2


@dataclass
class SwapContext:
    """What was freed and why."""
    interview_id: str
    round_name: str
    job_id: str
    slot: Slot
    original_candidate_id: str
    interviewer_ids: list[str] = field(default_factory=list)
    reason: str = "no_show"
