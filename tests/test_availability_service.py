"""
Tests for the AvailabilityService request-handling layer.
"""

from typing import Dict, List, Optional

import pendulum
import pytest

from medavail.adapters.mock_backend_client import MockBackendClient
from medavail.domain.exceptions import (
    AuthenticationError,
    InvalidConfiguration,
    InvalidRange,
    ProviderNotFound,
)
from medavail.domain.models import DEFAULT_WORKING_HOURS, AuditEntry, CollisionMode, Provider, Role, Session
from medavail.services.availability import (
    CHECK_AVAILABILITY_ACTION,
    AvailabilityService,
    error_payload,
    resolve_working_hours,
)

NOW = pendulum.parse("2024-06-01T00:00:00Z")
DAY_START = "2024-06-03T00:00:00.000Z"
DAY_END = "2024-06-03T23:59:59.000Z"
PATIENT = Session(user_id="patient-1", role=Role.PATIENT)


class StubBackend:
    """Minimal stub matching the repository and audit protocols."""

    def __init__(self, providers: Dict[str, Provider], booked: Optional[List] = None):
        self._providers = providers
        self._booked = booked or []
        self.appointment_calls: List[tuple] = []
        self.audit_entries: List[AuditEntry] = []

    def get_provider(self, provider_id):
        return self._providers.get(provider_id)

    def find_active_appointment_starts(self, provider_id, start, end):
        self.appointment_calls.append((provider_id, start, end))
        return list(self._booked)

    def record(self, entry):
        self.audit_entries.append(entry)


def _build_service(backend: StubBackend, **kwargs) -> AvailabilityService:
    return AvailabilityService(
        providers=backend,
        appointments=backend,
        audit=backend,
        default_working_hours=DEFAULT_WORKING_HOURS,
        **kwargs,
    )


def _provider(working_hours=None, role=Role.PROVIDER) -> Provider:
    return Provider(id="prov-1", name="Dr. Jane Doe", role=role, working_hours=working_hours)


def test_default_working_hours_and_response_shape():
    """Providers without settings use the default 09-17 / 30 min grid."""
    backend = StubBackend({"prov-1": _provider()})
    service = _build_service(backend)

    result = service.check_availability(
        session=PATIENT, provider_id="prov-1", start_date=DAY_START, end_date=DAY_END, now=NOW
    )
    payload = result.to_dict()

    assert payload["providerId"] == "prov-1"
    assert payload["providerName"] == "Dr. Jane Doe"
    assert payload["workingHours"] == {"start": 9, "end": 17, "slotDuration": 30}
    assert len(payload["availableSlots"]) == 16
    assert payload["availableSlots"][0] == "2024-06-03T09:00:00.000Z"


def test_booked_appointments_are_fetched_for_whole_days():
    backend = StubBackend({"prov-1": _provider()}, booked=[pendulum.parse("2024-06-03T09:00:00Z")])
    service = _build_service(backend)

    result = service.check_availability(
        session=PATIENT, provider_id="prov-1", start_date=DAY_START, end_date=DAY_END, now=NOW
    )

    provider_id, start, end = backend.appointment_calls[0]
    assert provider_id == "prov-1"
    assert start == pendulum.datetime(2024, 6, 3, tz="UTC")
    assert end == pendulum.datetime(2024, 6, 3, 23, 59, 59, 999999, tz="UTC")
    assert len(result.slots) == 15
    assert "2024-06-03T09:00:00.000Z" not in result.to_dict()["availableSlots"]


def test_mid_day_window_still_excludes_earlier_booking():
    """A window opening at noon must not offer the morning's booked slot."""
    client = MockBackendClient(data={
        "providers": [{"id": "prov-1", "name": "Dr. Jane Doe", "role": "PROVIDER"}],
        "appointments": [
            {"id": "apt-1", "doctorId": "prov-1", "startTime": "2024-06-03T09:00:00Z", "status": "SCHEDULED"},
            {"id": "apt-2", "doctorId": "prov-1", "startTime": "2024-06-03T16:30:00Z", "status": "SCHEDULED"},
        ],
    })
    service = AvailabilityService(
        providers=client,
        appointments=client,
        audit=client,
        default_working_hours=DEFAULT_WORKING_HOURS,
    )

    result = service.check_availability(
        session=PATIENT,
        provider_id="prov-1",
        start_date="2024-06-03T12:00:00Z",
        end_date="2024-06-03T14:00:00Z",
        now=NOW,
    )
    slots = result.to_dict()["availableSlots"]

    assert slots[0] == "2024-06-03T09:30:00.000Z"
    assert "2024-06-03T09:00:00.000Z" not in slots
    assert "2024-06-03T16:30:00.000Z" not in slots
    assert len(slots) == 14


def test_bookings_are_fetched_for_days_in_the_provider_timezone():
    settings = {"start": 8, "end": 12, "slotDuration": 60, "timezone": "Europe/Berlin"}
    backend = StubBackend({"prov-1": _provider(working_hours=settings)})
    service = _build_service(backend)

    service.check_availability(
        session=PATIENT,
        provider_id="prov-1",
        start_date="2024-06-03T12:00:00Z",
        end_date="2024-06-03T12:30:00Z",
        now=NOW,
    )

    _, start, end = backend.appointment_calls[0]
    assert start == pendulum.datetime(2024, 6, 2, 22, tz="UTC")
    assert end == pendulum.datetime(2024, 6, 3, 21, 59, 59, 999999, tz="UTC")


def test_overlap_mode_is_forwarded_to_calculator():
    backend = StubBackend({"prov-1": _provider()}, booked=[pendulum.parse("2024-06-03T09:15:00Z")])
    service = _build_service(backend, collision_mode=CollisionMode.OVERLAP)

    result = service.check_availability(
        session=PATIENT, provider_id="prov-1", start_date=DAY_START, end_date=DAY_END, now=NOW
    )

    # 09:15-09:45 overlaps both the 09:00 and the 09:30 slot
    assert result.to_dict()["availableSlots"][0] == "2024-06-03T10:00:00.000Z"


def test_json_string_settings_are_used():
    """Settings persisted as a JSON string override the default."""
    backend = StubBackend({"prov-1": _provider('{"start": 9, "end": 11, "slotDuration": 60}')})
    service = _build_service(backend)

    result = service.check_availability(
        session=PATIENT, provider_id="prov-1", start_date=DAY_START, end_date=DAY_END, now=NOW
    )

    assert result.to_dict()["availableSlots"] == [
        "2024-06-03T09:00:00.000Z",
        "2024-06-03T10:00:00.000Z",
    ]
    assert result.to_dict()["workingHours"] == {"start": 9, "end": 11, "slotDuration": 60}


def test_check_is_audited():
    backend = StubBackend({"prov-1": _provider()})
    service = _build_service(backend)

    service.check_availability(
        session=PATIENT, provider_id="prov-1", start_date=DAY_START, end_date=DAY_END, now=NOW
    )

    assert len(backend.audit_entries) == 1
    entry = backend.audit_entries[0]
    assert entry.action == CHECK_AVAILABILITY_ACTION
    assert entry.user_id == "patient-1"
    assert entry.resource_id == "prov-1"
    assert entry.details == "Checked availability for provider Dr. Jane Doe"


def test_missing_session_is_rejected_before_lookup():
    backend = StubBackend({"prov-1": _provider()})
    service = _build_service(backend)

    with pytest.raises(AuthenticationError):
        service.check_availability(
            session=None, provider_id="prov-1", start_date=DAY_START, end_date=DAY_END, now=NOW
        )

    assert backend.appointment_calls == []
    assert backend.audit_entries == []


@pytest.mark.parametrize("provider", [None, _provider(role=Role.PATIENT)])
def test_unknown_or_non_provider_user_is_not_found(provider):
    backend = StubBackend({"prov-1": provider} if provider else {})
    service = _build_service(backend)

    with pytest.raises(ProviderNotFound):
        service.check_availability(
            session=PATIENT, provider_id="prov-1", start_date=DAY_START, end_date=DAY_END, now=NOW
        )


@pytest.mark.parametrize("start_date", ["yesterday", "2024-06-03", "", "2024-13-40T00:00:00Z"])
def test_malformed_dates_are_invalid_range(start_date):
    backend = StubBackend({"prov-1": _provider()})
    service = _build_service(backend)

    with pytest.raises(InvalidRange) as exc_info:
        service.check_availability(
            session=PATIENT, provider_id="prov-1", start_date=start_date, end_date=DAY_END, now=NOW
        )

    status, body = error_payload(exc_info.value)
    assert status == 400
    assert body["error"] == "Invalid query parameters"
    assert body["details"][0]["path"] == ["startDate"]


def test_too_wide_range_is_invalid():
    backend = StubBackend({"prov-1": _provider()})
    service = _build_service(backend, max_range_days=31)

    with pytest.raises(InvalidRange, match="at most 31 days"):
        service.check_availability(
            session=PATIENT,
            provider_id="prov-1",
            start_date="2024-06-01T00:00:00Z",
            end_date="2024-08-01T00:00:00Z",
            now=NOW,
        )


def test_reversed_range_returns_no_slots():
    backend = StubBackend({"prov-1": _provider()})
    service = _build_service(backend)

    result = service.check_availability(
        session=PATIENT, provider_id="prov-1", start_date=DAY_END, end_date=DAY_START, now=NOW
    )

    assert result.slots == []
    assert len(backend.audit_entries) == 1


def test_malformed_settings_raise_invalid_configuration():
    backend = StubBackend({"prov-1": _provider({"start": 17, "end": 9, "slotDuration": 30})})
    service = _build_service(backend)

    with pytest.raises(InvalidConfiguration):
        service.check_availability(
            session=PATIENT, provider_id="prov-1", start_date=DAY_START, end_date=DAY_END, now=NOW
        )


class TestResolveWorkingHours:
    """Tests for provider settings resolution."""

    @pytest.mark.parametrize("raw", [None, "", "null"])
    def test_empty_settings_fall_back(self, raw):
        assert resolve_working_hours(raw, DEFAULT_WORKING_HOURS) is DEFAULT_WORKING_HOURS

    def test_optional_fields_inherit_from_default(self):
        hours = resolve_working_hours(
            {"start": 8, "end": 12, "slotDuration": 15, "timezone": "Europe/Berlin"},
            DEFAULT_WORKING_HOURS,
        )

        assert hours.start == 8
        assert hours.slot_duration_minutes == 15
        assert hours.timezone == "Europe/Berlin"
        assert hours.excluded_weekdays == DEFAULT_WORKING_HOURS.excluded_weekdays

    def test_excluded_weekdays_override(self):
        hours = resolve_working_hours(
            {"start": 8, "end": 12, "slotDuration": 15, "excludedWeekdays": [6]},
            DEFAULT_WORKING_HOURS,
        )

        assert hours.excluded_weekdays == frozenset({6})

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", {"start": 9}, {"start": 9, "end": 17, "slotDuration": 45}])
    def test_malformed_settings(self, raw):
        with pytest.raises(InvalidConfiguration):
            resolve_working_hours(raw, DEFAULT_WORKING_HOURS)


class TestErrorPayload:
    """Tests for mapping errors to HTTP responses."""

    def test_known_errors_keep_status(self):
        assert error_payload(ProviderNotFound("Provider not found")) == (404, {"error": "Provider not found"})
        assert error_payload(AuthenticationError("Unauthorized")) == (401, {"error": "Unauthorized"})

    def test_unknown_errors_are_internal(self):
        assert error_payload(RuntimeError("boom")) == (500, {"error": "Internal server error"})
