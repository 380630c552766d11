"""Tests for the operator queue."""

from __future__ import annotations

from datetime import datetime

import pytz

from models.errors import CollaboratorError, NoEligibleInterviewer, SlaBreach, SwapExhausted
from models.intents import OperatorItem
from services.operator_queue import OperatorQueue


class TestOperatorQueue:
    def test_errors_map_to_kinds(self):
        queue = OperatorQueue()

        queue.report(NoEligibleInterviewer("nobody for Final Round", "req-1"))
        queue.report(SwapExhausted("no backups", "INT-0001"))
        queue.report(CollaboratorError("timed out", "messaging", "INT-0002"))
        queue.report(SlaBreach("created exceeded its 1h SLA", "INT-0003"))

        assert [i.kind for i in queue.items()] == [
            "no_eligible_interviewer", "swap_exhausted", "collaborator_failure", "scheduling_error",
        ]
        assert [i.retryable for i in queue.items()] == [False, False, True, False]

    def test_item_names_its_entity(self):
        queue = OperatorQueue()
        item = queue.report(NoEligibleInterviewer("nobody for Final Round", "req-1"), kind="mandatory_unavailable")
        assert (item.kind, item.entity_type, item.entity_id) == ("mandatory_unavailable", "request", "req-1")
        assert item.reason == "nobody for Final Round"

    def test_same_problem_is_not_duplicated(self):
        queue = OperatorQueue()
        first = queue.push(OperatorItem("interviewer_overload", "request", "req-1", "all busy"))
        second = queue.push(OperatorItem("interviewer_overload", "request", "req-1", "still busy"))
        queue.push(OperatorItem("interviewer_overload", "request", "req-2", "all busy"))

        assert second is first
        assert len(queue) == 2

    def test_resolve(self):
        queue = OperatorQueue()
        queue.push(OperatorItem("panel_incomplete", "request", "req-1", "one short"))

        assert queue.resolve("panel_incomplete", "req-1") is True
        assert queue.resolve("panel_incomplete", "req-1") is False
        assert queue.items("panel_incomplete") == []

    def test_items_are_stamped_with_the_queue_clock(self):
        moment = pytz.UTC.localize(datetime(2025, 3, 3, 8, 0))
        queue = OperatorQueue(clock=lambda: moment)

        item = queue.report(SwapExhausted("no backups", "INT-0001"))

        assert item.created_at == moment
