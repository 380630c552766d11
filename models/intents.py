"""Outbound intents emitted by the engine and the operator queue entries."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from models.entities import utcnow

Severity = Literal["info", "warning", "critical"]


@dataclass(frozen=True)
class AssignmentIntent:
    """Ask the calendar/notification collaborator to book an interview."""
    interview_id: str
    candidate_id: str
    interviewer_ids: tuple[str, ...]
    slot_id: str
    slot_start: datetime
    slot_end: datetime
    kind: str = "assignment"


@dataclass(frozen=True)
class EscalationEvent:
    interview_id: str
    reason: str
    severity: Severity
    kind: str = "escalation"
    raised_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class RetryNotification:
    """Nudge not-yet-joined participants to join the call."""
    interview_id: str
    participant_ids: tuple[str, ...]
    attempt: int
    manual: bool = False
    kind: str = "join_retry"


@dataclass(frozen=True)
class SwapProposal:
    """A backup candidate surfaced for manual approval."""
    proposal_id: str
    interview_id: str
    candidate_id: str
    original_candidate_id: str
    slot_id: str
    priority_score: float
    availability_match: float
    kind: str = "swap_proposal"


@dataclass(frozen=True)
class SwapConfirmation:
    interview_id: str
    candidate_id: str
    original_candidate_id: str
    slot_id: str
    approved_by: str
    kind: str = "swap_confirmation"


@dataclass
class OperatorItem:
    """Something only a human can unblock."""
    kind: str  # no_eligible_interviewer / swap_exhausted / collaborator_failure / ...
    entity_type: str
    entity_id: Optional[str]
    reason: str
    retryable: bool = False
    created_at: Optional[datetime] = None  # stamped by the operator queue


def intent_payload(intent: Any) -> dict:
    """Serialize an intent dataclass into a JSON-friendly dict."""
    payload = asdict(intent)
    for key, value in payload.items():
        if isinstance(value, datetime):
            payload[key] = value.isoformat()
        elif isinstance(value, tuple):
            payload[key] = list(value)
    return payload
