"""HTTP client delivering outbound intents to the messaging collaborator."""

import logging
from typing import Any, Dict, Optional

import httpx

from models.errors import CollaboratorError
from models.intents import intent_payload

logger = logging.getLogger(__name__)


class MessagingClient:
    """
    Posts assignment intents, escalations, swap proposals/confirmations and
    join retries to the calendar/notification collaborator.

    Every call has a bounded timeout. Failures are raised as retryable
    CollaboratorError so callers can put them on the operator queue.
    """

    ROUTES = {
        "assignment": "/assignments",
        "escalation": "/escalations",
        "swap_proposal": "/swaps/proposals",
        "swap_confirmation": "/swaps/confirmations",
        "join_retry": "/retries",
    }

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        api_token: str = "",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize messaging client.

        Args:
            base_url: Collaborator API root, e.g. http://messaging:8022/api
            timeout_seconds: Upper bound for every request
            api_token: Bearer token (optional)
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.api_token = api_token
        self.transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def publish(self, intent: Any) -> Dict[str, Any]:
        """Deliver one intent; returns the collaborator's JSON acknowledgement."""
        kind = getattr(intent, "kind", None)
        route = self.ROUTES.get(kind)
        if route is None:
            raise ValueError(f"No route for intent kind {kind!r}")

        entity_id = getattr(intent, "interview_id", None)
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = client.post(
                    f"{self.base_url}{route}",
                    json=intent_payload(intent),
                    headers=self._get_headers(),
                )
                response.raise_for_status()
                if not response.content:
                    return {}
                return response.json()
        except httpx.TimeoutException as e:
            raise CollaboratorError(
                f"Messaging timed out after {self.timeout_seconds:g}s delivering {kind}", "messaging", entity_id
            ) from e
        except httpx.HTTPStatusError as e:
            raise CollaboratorError(
                f"Messaging rejected {kind} with HTTP {e.response.status_code}", "messaging", entity_id
            ) from e
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Messaging unreachable delivering {kind}: {e}", "messaging", entity_id) from e
        except ValueError as e:
            raise CollaboratorError(f"Messaging returned invalid JSON for {kind}", "messaging", entity_id) from e
