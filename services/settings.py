"""Engine configuration loaded from the environment (.env supported)."""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from models.entities import ConflictStrategy, InterviewState, PriorityWeights
from models.errors import ConfigurationError


@dataclass(frozen=True)
class SlaPolicy:
    """Allowed hours in a state and the early-warning window before breach."""
    sla_hours: float
    escalation_threshold_hours: Optional[float] = None


DEFAULT_SLA_POLICIES: dict[InterviewState, SlaPolicy] = {
    InterviewState.CREATED: SlaPolicy(1),
    InterviewState.SLOTS_GENERATED: SlaPolicy(0.5),
    InterviewState.SLOT_CONFIRMED: SlaPolicy(48, 24),
    InterviewState.NOTIFIED: SlaPolicy(0.25),
    InterviewState.COMPLETED: SlaPolicy(24, 4),
}


@dataclass
class EngineSettings:
    weights: PriorityWeights = field(default_factory=PriorityWeights)
    conflict_strategy: ConflictStrategy = ConflictStrategy.PRIORITY
    fair_window_days: int = 7
    fair_availability_bump: int = 10

    # Load balancing
    enforce_load_balancing: bool = True
    max_capacity_threshold: float = 90.0
    fatigue_per_assignment: float = 15.0
    fatigue_consecutive_penalty: float = 10.0
    fatigue_decay_per_hour: float = 5.0
    max_consecutive_interviews: int = 3
    cooldown_period_mins: int = 30
    backup_panel_threshold: float = 80.0
    senior_preference_final_rounds: bool = True

    # Lifecycle
    sla_policies: dict[InterviewState, SlaPolicy] = field(
        default_factory=lambda: dict(DEFAULT_SLA_POLICIES)
    )

    # Join monitor checkpoints, minutes after scheduled start
    first_retry_minutes: float = 3
    second_retry_minutes: float = 5
    join_window_minutes: float = 10

    # Smart swap
    auto_swap_enabled: bool = False
    auto_swap_threshold: float = 85.0

    # Scheduling passes
    max_passes: int = 10

    # Collaborators
    ats_base_url: str = "http://localhost:8021/api"
    messaging_base_url: str = "http://localhost:8022/api"
    http_timeout_seconds: float = 10.0
    api_token: str = ""

    def validate(self) -> "EngineSettings":
        """Raise ConfigurationError for anything the engine cannot run with."""
        validate_weights(self.weights)
        for name in ("max_capacity_threshold", "backup_panel_threshold", "auto_swap_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(f"{name} must be within [0, 100], got {value}", name)
        if not 0 < self.first_retry_minutes < self.second_retry_minutes < self.join_window_minutes:
            raise ConfigurationError(
                "Join checkpoints must be strictly increasing: "
                f"{self.first_retry_minutes}, {self.second_retry_minutes}, {self.join_window_minutes}",
                "join_checkpoints",
            )
        for state, policy in self.sla_policies.items():
            if state in (InterviewState.IN_PROGRESS, InterviewState.CLOSED):
                raise ConfigurationError(f"State {state.value} cannot carry an SLA", "sla_policies")
            if policy.sla_hours <= 0:
                raise ConfigurationError(f"SLA for {state.value} must be positive", "sla_policies")
            threshold = policy.escalation_threshold_hours
            if threshold is not None and not 0 < threshold <= policy.sla_hours:
                raise ConfigurationError(
                    f"Escalation threshold for {state.value} must be within (0, {policy.sla_hours}]",
                    "sla_policies",
                )
        if self.http_timeout_seconds <= 0:
            raise ConfigurationError("http_timeout_seconds must be positive", "http_timeout_seconds")
        if self.max_passes < 1:
            raise ConfigurationError("max_passes must be at least 1", "max_passes")
        return self


def validate_weights(weights: PriorityWeights) -> PriorityWeights:
    values = (weights.urgency, weights.pipeline_stage, weights.availability, weights.interviewer_load)
    if any(v < 0 for v in values):
        raise ConfigurationError(f"Priority weights must be non-negative: {values}", "weights")
    if abs(weights.total() - 100) > 1e-9:
        raise ConfigurationError(
            f"Priority weights must sum to exactly 100, got {weights.total():g}", "weights"
        )
    return weights


def _parse_floats(raw: str, setting: str) -> list[float]:
    try:
        return [float(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ConfigurationError(f"Could not parse {setting}={raw!r}", setting) from None


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _get_number(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", name) from None


def load_settings(env_file: Optional[str] = None) -> EngineSettings:
    """Build validated settings from INTERVIEW_* environment variables."""
    load_dotenv(env_file)

    settings = EngineSettings()

    raw_weights = os.getenv("INTERVIEW_PRIORITY_WEIGHTS")
    if raw_weights:
        values = _parse_floats(raw_weights, "INTERVIEW_PRIORITY_WEIGHTS")
        if len(values) != 4:
            raise ConfigurationError(
                "INTERVIEW_PRIORITY_WEIGHTS needs four values: urgency,pipeline,availability,load",
                "weights",
            )
        settings.weights = PriorityWeights(*values)

    raw_strategy = os.getenv("INTERVIEW_CONFLICT_STRATEGY")
    if raw_strategy:
        try:
            settings.conflict_strategy = ConflictStrategy(raw_strategy.strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown conflict strategy {raw_strategy!r}", "conflict_strategy"
            ) from None

    raw_checkpoints = os.getenv("INTERVIEW_JOIN_CHECKPOINTS")
    if raw_checkpoints:
        values = _parse_floats(raw_checkpoints, "INTERVIEW_JOIN_CHECKPOINTS")
        if len(values) != 3:
            raise ConfigurationError(
                "INTERVIEW_JOIN_CHECKPOINTS needs three values in minutes", "join_checkpoints"
            )
        settings.first_retry_minutes, settings.second_retry_minutes, settings.join_window_minutes = values

    settings.fair_window_days = int(_get_number("INTERVIEW_FAIR_WINDOW_DAYS", settings.fair_window_days))
    settings.enforce_load_balancing = _get_bool(
        "INTERVIEW_ENFORCE_LOAD_BALANCING", settings.enforce_load_balancing
    )
    settings.max_capacity_threshold = _get_number(
        "INTERVIEW_MAX_CAPACITY_THRESHOLD", settings.max_capacity_threshold
    )
    settings.auto_swap_enabled = _get_bool("INTERVIEW_AUTO_SWAP", settings.auto_swap_enabled)
    settings.auto_swap_threshold = _get_number("INTERVIEW_SWAP_THRESHOLD", settings.auto_swap_threshold)
    settings.ats_base_url = os.getenv("INTERVIEW_ATS_BASE_URL", settings.ats_base_url)
    settings.messaging_base_url = os.getenv("INTERVIEW_MESSAGING_BASE_URL", settings.messaging_base_url)
    settings.http_timeout_seconds = _get_number("INTERVIEW_HTTP_TIMEOUT", settings.http_timeout_seconds)
    settings.api_token = os.getenv("INTERVIEW_API_TOKEN", settings.api_token)

    return settings.validate()


def configure_logging(level: Optional[str] = None) -> None:
    level_name = (level or os.getenv("INTERVIEW_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
