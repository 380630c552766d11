"""ATS directory client: interviewers, candidates, round rules and bookable slots."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import pytz

from models.entities import (
    CandidateProfile,
    DirectorySnapshot,
    InterviewerCapacity,
    RoleRule,
    Slot,
    TimeSlot,
)
from models.errors import CollaboratorError

logger = logging.getLogger(__name__)


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 timestamp as an aware UTC datetime (naive values are taken as UTC)."""
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return pytz.UTC.localize(parsed)
    return parsed.astimezone(pytz.UTC)


class ATSClient:
    """
    Client for the applicant-tracking system's directory endpoint.

    Field names vary between ATS exports, so every mapper accepts the
    common spellings of a field.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        api_token: str = "",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize ATS client.

        Args:
            base_url: ATS API root, e.g. http://ats:8021/api
            timeout_seconds: Upper bound for every request
            api_token: Bearer token (optional)
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.api_token = api_token
        self.transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    @staticmethod
    def _get_field(data: Dict[str, Any], *keys: str, default: Any = "") -> Any:
        """Helper to get value with multiple field name variations."""
        for key in keys:
            value = data.get(key)
            if value not in (None, ""):
                return value
        return default

    def fetch_directory(self) -> DirectorySnapshot:
        """
        Fetch the directory snapshot.

        Raises:
            CollaboratorError: The ATS timed out, failed or returned garbage
        """
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = client.get(f"{self.base_url}/directory", headers=self._get_headers())
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as e:
            raise CollaboratorError(
                f"ATS directory timed out after {self.timeout_seconds:g}s", "ats"
            ) from e
        except httpx.HTTPStatusError as e:
            raise CollaboratorError(
                f"ATS directory request failed with HTTP {e.response.status_code}", "ats"
            ) from e
        except httpx.HTTPError as e:
            raise CollaboratorError(f"ATS unreachable: {e}", "ats") from e
        except ValueError as e:
            raise CollaboratorError("ATS directory returned invalid JSON", "ats") from e

        if not isinstance(payload, dict):
            raise CollaboratorError("ATS directory payload is not an object", "ats")
        return self.map_directory(payload)

    def map_directory(self, payload: Dict[str, Any]) -> DirectorySnapshot:
        snapshot = DirectorySnapshot(
            interviewers=self._map_all(payload.get("interviewers", []), self._map_interviewer),
            candidates=self._map_all(payload.get("candidates", []), self._map_candidate),
            role_rules=self._map_all(payload.get("role_rules", []), self._map_role_rule),
            slots=self._map_all(payload.get("slots", []), self._map_slot),
        )
        logger.info(
            "ATS directory: %d interviewer(s), %d candidate(s), %d rule(s), %d slot(s)",
            len(snapshot.interviewers),
            len(snapshot.candidates),
            len(snapshot.role_rules),
            len(snapshot.slots),
        )
        return snapshot

    @staticmethod
    def _map_all(records: List[Dict[str, Any]], mapper) -> list:
        mapped = []
        for record in records:
            try:
                mapped.append(mapper(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed ATS record %r: %s", record, e)
        return mapped

    def _map_interviewer(self, data: Dict[str, Any]) -> InterviewerCapacity:
        interviewer_id = str(self._get_field(data, "interviewer_id", "id", "employee_id"))
        if not interviewer_id:
            raise ValueError("interviewer without id")
        return InterviewerCapacity(
            interviewer_id=interviewer_id,
            name=str(self._get_field(data, "name", "full_name", default=interviewer_id)),
            role=str(self._get_field(data, "role", "designation", "job_title")),
            seniority=str(self._get_field(data, "seniority", "level", default="mid")).lower(),
            daily_limit=int(self._get_field(data, "daily_limit", "max_per_day", default=4)),
            weekly_limit=int(self._get_field(data, "weekly_limit", "max_per_week", default=15)),
            department=str(self._get_field(data, "department")),
            interviews_today=int(self._get_field(data, "interviews_today", "current_load_today", default=0)),
            interviews_this_week=int(self._get_field(data, "interviews_this_week", "current_load_week", default=0)),
            availability_score=float(self._get_field(data, "availability_score", default=100)),
            fatigue_score=float(self._get_field(data, "fatigue_score", default=0)),
            round_types=frozenset(self._get_field(data, "round_types", "rounds", default=[])),
            is_backup_panel=bool(self._get_field(data, "is_backup_panel", "backup_panel", default=False)),
            available_slots=frozenset(self._get_field(data, "available_slots", "slots", default=[])),
        )

    def _map_candidate(self, data: Dict[str, Any]) -> CandidateProfile:
        candidate_id = str(self._get_field(data, "candidate_id", "id"))
        if not candidate_id:
            raise ValueError("candidate without id")
        windows = [
            TimeSlot(
                start=parse_timestamp(w["start"]),
                end=parse_timestamp(w["end"]),
                participants=[candidate_id],
                source="candidate_availability",
            )
            for w in self._get_field(data, "availability", "availability_windows", default=[])
        ]
        return CandidateProfile(
            candidate_id=candidate_id,
            name=str(self._get_field(data, "name", "full_name", default=candidate_id)),
            email=str(self._get_field(data, "email", "email_id")),
            timezone=str(self._get_field(data, "timezone", "location_timezone", default="UTC")),
            availability=windows,
        )

    def _map_role_rule(self, data: Dict[str, Any]) -> RoleRule:
        return RoleRule(
            round=str(data["round"]),
            allowed_roles=list(data.get("allowed_roles", [])),
            preferred_roles=list(data.get("preferred_roles", [])),
            blocked_roles=list(data.get("blocked_roles", [])),
            minimum_required=int(data.get("minimum_required", 1)),
            seniority_requirement=data.get("seniority_requirement") or None,
            mandatory_roles=list(data.get("mandatory_roles", [])),
        )

    def _map_slot(self, data: Dict[str, Any]) -> Slot:
        start = parse_timestamp(data["start"])
        end = parse_timestamp(data["end"])
        if end <= start:
            raise ValueError(f"slot ends before it starts: {data}")
        return Slot(id=str(self._get_field(data, "id", "slot_id")), start=start, end=end)
