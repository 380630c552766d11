"""Composite priority scoring of pending scheduling requests."""

from typing import Callable, Iterable, Optional

from models.entities import PriorityScore, PriorityWeights, RankedRequest, SchedulingRequest
from services.settings import validate_weights


NOTICE_PERIOD_SCORES = {
    "immediate": 95,
    "2 weeks": 75,
    "1 month": 50,
}
URGENT_FLAG_SCORE = 90
DEFAULT_URGENCY_SCORE = 25

# (minimum total, tier name), highest first
PRIORITY_TIERS = [
    (80, "Critical"),
    (65, "High"),
    (45, "Medium"),
    (0, "Low"),
]
TIER_ORDER = {name: index for index, (_, name) in enumerate(PRIORITY_TIERS)}


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


class PriorityRanker:
    """
    Scores requests from urgency, pipeline stage, availability and
    interviewer load, and orders them into the scheduling queue.

    Scoring is pure given the current load snapshot; callers re-rank after
    any load change.
    """

    def __init__(
        self,
        weights: PriorityWeights,
        load_source: Callable[[str], Optional[float]],
    ):
        """
        Args:
            weights: Percentages that must sum to exactly 100
            load_source: Returns the average load (0-100) of the interviewers
                eligible for a round, or None when nobody is eligible
        """
        self.weights = validate_weights(weights)
        self.load_source = load_source

    def set_weights(self, weights: PriorityWeights) -> None:
        self.weights = validate_weights(weights)

    @staticmethod
    def urgency_score(request: SchedulingRequest) -> float:
        # The flag is checked before the notice period
        if request.urgency_flag:
            return URGENT_FLAG_SCORE
        notice = (request.notice_period or "").strip().lower()
        return NOTICE_PERIOD_SCORES.get(notice, DEFAULT_URGENCY_SCORE)

    @staticmethod
    def pipeline_score(request: SchedulingRequest) -> float:
        return _clamp(request.pipeline_position * 20)

    @staticmethod
    def availability_score(request: SchedulingRequest) -> float:
        base = min(max(request.availability_slots, 0) * 20, 100)
        return _clamp(base + request.availability_bump)

    def interviewer_load_score(self, request: SchedulingRequest) -> float:
        avg_load = self.load_source(request.round_name)
        if avg_load is None:
            # Nobody can take the round: lowest load score
            return 0.0
        return _clamp(100 - avg_load)

    def score(self, request: SchedulingRequest, weights: Optional[PriorityWeights] = None) -> PriorityScore:
        weights = validate_weights(weights) if weights is not None else self.weights
        urgency = self.urgency_score(request)
        pipeline = self.pipeline_score(request)
        availability = self.availability_score(request)
        load = self.interviewer_load_score(request)
        total = (
            urgency * weights.urgency / 100
            + pipeline * weights.pipeline_stage / 100
            + availability * weights.availability / 100
            + load * weights.interviewer_load / 100
        )
        return PriorityScore(
            urgency=urgency,
            pipeline_stage=pipeline,
            availability=availability,
            interviewer_load=load,
            weights=weights,
            total=round(_clamp(total), 2),
        )

    @staticmethod
    def tier(total: float) -> str:
        for minimum, name in PRIORITY_TIERS:
            if total >= minimum:
                return name
        return PRIORITY_TIERS[-1][1]

    def rank(
        self,
        requests: Iterable[SchedulingRequest],
        scores: Optional[dict[str, PriorityScore]] = None,
    ) -> list[RankedRequest]:
        """
        Order requests for scheduling.

        Tiers first (Critical to Low); inside a tier, manual overrides are
        pinned on top, then descending total score, then the earliest
        last-updated timestamp.
        """
        scored = []
        for request in requests:
            score = (scores or {}).get(request.request_id) or self.score(request)
            scored.append((request, score, self.tier(score.total)))

        scored.sort(
            key=lambda item: (
                TIER_ORDER[item[2]],
                0 if item[0].manual_override else 1,
                -item[1].total,
                item[0].last_updated,
                item[0].request_id,
            )
        )
        return [
            RankedRequest(
                position=index,
                request=request,
                score=score,
                tier=tier,
                pinned=request.manual_override,
            )
            for index, (request, score, tier) in enumerate(scored, 1)
        ]
