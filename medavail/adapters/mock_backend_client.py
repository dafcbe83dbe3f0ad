"""
Mock backend client for running without a live backend.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.models import AuditEntry, Provider, Role

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_backend_data.json"


class MockBackendClient:
    """
    Mock client that serves providers and appointments from a JSON file.

    Audit entries are kept in memory in ``audit_entries``.
    """

    def __init__(self, data_file: Path | None = None, data: Dict[str, Any] | None = None):
        """
        Initialize the mock client.

        Args:
            data_file: JSON file with "providers" and "appointments" lists
            data: Already-loaded data, takes precedence over ``data_file``
        """
        self.data_file = data_file or DEFAULT_DATA_FILE
        self.audit_entries: List[AuditEntry] = []
        self._data = data if data is not None else self._load_data()

    def _load_data(self) -> Dict[str, Any]:
        """Load mock data from the JSON file."""
        if not self.data_file.exists():
            logger.warning("Mock data file %s not found, starting empty", self.data_file)
            return {"providers": [], "appointments": []}

        with open(self.data_file, "r", encoding="utf-8") as f:
            return json.load(f)

    def list_providers(self) -> List[Provider]:
        """Return every provider in the mock data."""
        return [
            self._to_provider(item)
            for item in self._data.get("providers", [])
            if Role.parse(item.get("role")) == Role.PROVIDER
        ]

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        for item in self._data.get("providers", []):
            if item.get("id") == provider_id:
                return self._to_provider(item)
        return None

    def find_active_appointment_starts(
        self,
        provider_id: str,
        start: DateTime,
        end: DateTime,
    ) -> List[DateTime]:
        """Return non-cancelled appointment starts in [start, end]."""
        starts: List[DateTime] = []

        for appointment in self._data.get("appointments", []):
            if appointment.get("doctorId") != provider_id:
                continue
            if str(appointment.get("status", "")).upper() == "CANCELLED":
                continue

            try:
                start_time = pendulum.parse(appointment["startTime"])
            except (KeyError, ValueError) as e:
                logger.warning("Skipping invalid mock appointment: %s", e)
                continue

            if start <= start_time <= end:
                starts.append(start_time)

        return starts

    def record(self, entry: AuditEntry) -> None:
        self.audit_entries.append(entry)

    @staticmethod
    def _to_provider(item: Dict[str, Any]) -> Provider:
        settings = item.get("settings") or {}
        return Provider(
            id=item["id"],
            name=item.get("name", ""),
            role=Role.parse(item.get("role")) or Role.PATIENT,
            working_hours=settings.get("workingHours"),
        )
