"""Work items that need a human: unassignable requests, exhausted swaps, failed deliveries."""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from models.errors import (
    CapacityExceeded,
    CollaboratorError,
    NoEligibleInterviewer,
    SchedulingError,
    SwapExhausted,
)
from models.entities import utcnow
from models.intents import OperatorItem

logger = logging.getLogger(__name__)

ERROR_KINDS = {
    NoEligibleInterviewer: "no_eligible_interviewer",
    SwapExhausted: "swap_exhausted",
    CollaboratorError: "collaborator_failure",
    CapacityExceeded: "interviewer_overload",
}


class OperatorQueue:
    """
    Open items for operators, oldest first.

    An entity has at most one open item per kind; reporting the same
    problem again does not pile up duplicates.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._items: list[OperatorItem] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def push(self, item: OperatorItem) -> OperatorItem:
        with self._lock:
            for existing in self._items:
                if existing.kind == item.kind and existing.entity_id == item.entity_id:
                    return existing
            if item.created_at is None:
                item.created_at = self.clock()
            self._items.append(item)
        logger.warning(
            "Operator item %s for %s %s: %s", item.kind, item.entity_type, item.entity_id, item.reason
        )
        return item

    def report(self, error: SchedulingError, kind: Optional[str] = None) -> OperatorItem:
        """Turn an error into an operator item attributed to its entity."""
        if kind is None:
            kind = next(
                (name for cls, name in ERROR_KINDS.items() if isinstance(error, cls)),
                "scheduling_error",
            )
        return self.push(OperatorItem(
            kind=kind,
            entity_type=error.entity_type,
            entity_id=error.entity_id,
            reason=error.message,
            retryable=error.retryable,
        ))

    def items(self, kind: Optional[str] = None) -> list[OperatorItem]:
        with self._lock:
            if kind is None:
                return list(self._items)
            return [i for i in self._items if i.kind == kind]

    def resolve(self, kind: str, entity_id: Optional[str]) -> bool:
        """Close the open item of a kind for an entity."""
        with self._lock:
            for index, item in enumerate(self._items):
                if item.kind == kind and item.entity_id == entity_id:
                    del self._items[index]
                    logger.info("Operator item %s for %s resolved", kind, entity_id)
                    return True
        return False
