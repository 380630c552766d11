"""Error taxonomy of the coordination engine.

Every error names the entity it is about so an operator can act on it
directly from the operator queue.
"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for coordination errors."""

    retryable = False

    def __init__(
        self,
        message: str,
        entity_type: str = "",
        entity_id: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.entity_type = entity_type
        self.entity_id = entity_id
        if retryable is not None:
            self.retryable = retryable

    def __str__(self) -> str:
        if self.entity_type and self.entity_id:
            return f"[{self.entity_type}:{self.entity_id}] {self.message}"
        return self.message


class ConfigurationError(SchedulingError):
    """Invalid engine configuration (raised at load time only)."""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(message, entity_type="setting", entity_id=setting)


class NoEligibleInterviewer(SchedulingError):
    """Nobody may serve the round; goes to the operator queue."""

    def __init__(self, message: str, request_id: Optional[str] = None):
        super().__init__(message, entity_type="request", entity_id=request_id)


class CapacityExceeded(SchedulingError):
    """Assignment refused because the interviewer is at maximum capacity."""

    def __init__(self, message: str, interviewer_id: str):
        super().__init__(message, entity_type="interviewer", entity_id=interviewer_id)


class SlaBreach(SchedulingError):
    """An interview stayed too long in its current state."""

    def __init__(self, message: str, interview_id: str):
        super().__init__(message, entity_type="interview", entity_id=interview_id)


class DuplicateTransition(SchedulingError):
    """A transition to the state the interview is already in."""

    def __init__(self, message: str, interview_id: str):
        super().__init__(message, entity_type="interview", entity_id=interview_id)


class IllegalTransition(SchedulingError):
    def __init__(self, message: str, interview_id: str):
        super().__init__(message, entity_type="interview", entity_id=interview_id)


class SwapExhausted(SchedulingError):
    """No backup candidate meets the swap criteria."""

    def __init__(self, message: str, interview_id: str):
        super().__init__(message, entity_type="interview", entity_id=interview_id)


class ResolutionInProgress(SchedulingError):
    def __init__(self, message: str, resource: str):
        super().__init__(message, entity_type="resource", entity_id=resource, retryable=True)


class CollaboratorError(SchedulingError):
    """An external collaborator call failed or timed out."""

    retryable = True

    def __init__(self, message: str, collaborator: str, entity_id: Optional[str] = None):
        super().__init__(message, entity_type=collaborator, entity_id=entity_id)
        self.collaborator = collaborator
