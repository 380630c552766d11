"""In-memory messaging collaborator that records intents instead of sending them."""

from datetime import datetime
from typing import Any, Optional

from models.entities import utcnow
from models.errors import CollaboratorError
from models.intents import intent_payload


class MessagingServiceMock:
    """Mock messaging service that logs intents instead of delivering them."""

    def __init__(self):
        self.sent: list[Any] = []
        self.sent_at: list[datetime] = []
        self.failing_kinds: set[str] = set()

    def publish(self, intent: Any) -> dict:
        kind = getattr(intent, "kind", "unknown")
        if kind in self.failing_kinds:
            raise CollaboratorError(f"Simulated delivery failure for {kind}", "messaging", getattr(intent, "interview_id", None))
        self.sent.append(intent)
        self.sent_at.append(utcnow())
        return intent_payload(intent)

    def get_sent(self, kind: Optional[str] = None) -> list[Any]:
        """Get recorded intents, optionally of one kind."""
        if kind is None:
            return self.sent.copy()
        return [i for i in self.sent if getattr(i, "kind", None) == kind]

    def clear(self):
        """Clear the log (for testing/reset)."""
        self.sent = []
        self.sent_at = []
