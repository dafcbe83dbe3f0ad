"""
HTTP client for the platform backend API (providers, appointments, audit log).
"""

import logging
from typing import Any, Dict, List, Optional

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import BackendError
from ..domain.models import AuditEntry, Provider, Role, format_instant

logger = logging.getLogger(__name__)


class BackendClient:
    """
    Client for the backend REST API.

    Implements the provider and appointment repositories and the audit sink
    used by ``AvailabilityService``.
    """

    def __init__(self, base_url: str, access_token: str, timeout: float = 30):
        """
        Initialize the backend client.

        Args:
            base_url: Backend root URL, e.g. https://api.example.com
            access_token: Bearer token issued by the identity provider
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        })

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        """
        Fetch a provider with its settings.

        Returns:
            Provider, or None if the backend reports 404

        Raises:
            BackendError: If the API call fails
        """
        url = f"{self.base_url}/api/providers/{provider_id}"

        try:
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise BackendError(f"Failed to fetch provider {provider_id}: {e}") from e

        return self._parse_provider(data)

    def find_active_appointment_starts(
        self,
        provider_id: str,
        start: DateTime,
        end: DateTime,
    ) -> List[DateTime]:
        """
        Fetch start times of the provider's non-cancelled appointments.

        Raises:
            BackendError: If the API call fails
        """
        url = f"{self.base_url}/api/appointments"
        params = {
            "doctorId": provider_id,
            "startGte": format_instant(start),
            "startLte": format_instant(end),
            "excludeStatus": "CANCELLED",
        }

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise BackendError(f"Failed to fetch appointments for provider {provider_id}: {e}") from e

        return self._parse_appointment_starts(data)

    def record(self, entry: AuditEntry) -> None:
        """
        Store an audit entry in the backend audit log.

        Raises:
            BackendError: If the API call fails
        """
        url = f"{self.base_url}/api/audit-logs"

        try:
            response = self.session.post(url, json=entry.to_dict(), timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise BackendError(f"Failed to record audit entry {entry.action}: {e}") from e

    def _parse_provider(self, data: Dict[str, Any]) -> Provider:
        """
        Parse a provider payload.

        Payload format:
        {
            "id": "...",
            "name": "Dr. Jane Doe",
            "role": "PROVIDER",
            "settings": {"workingHours": {"start": 9, "end": 17, "slotDuration": 30}}
        }
        """
        try:
            settings = data.get("settings") or {}
            return Provider(
                id=data["id"],
                name=data.get("name") or "",
                role=Role.parse(data.get("role")) or Role.PATIENT,
                working_hours=settings.get("workingHours"),
            )
        except (KeyError, AttributeError) as e:
            raise BackendError(f"Malformed provider payload: {e}") from e

    def _parse_appointment_starts(self, data: Dict[str, Any]) -> List[DateTime]:
        """
        Parse an appointment list payload: {"appointments": [{"startTime": "..."}]}.
        Items that cannot be parsed are skipped with a warning.
        """
        starts: List[DateTime] = []

        for item in data.get("appointments", []):
            try:
                starts.append(pendulum.parse(item["startTime"]))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Could not parse appointment item: %s", e)

        return starts
