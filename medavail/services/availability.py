"""
Application service answering "when can I book this provider?".

The service coordinates fetching the provider and its bookings through
repository protocols, resolves the provider's working hours, and delegates the
slot enumeration to the domain-level calculator. Every successful check is
recorded in the audit trail.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import pendulum
from pendulum import DateTime
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..domain.exceptions import (
    AuthenticationError,
    AvailabilityError,
    InvalidConfiguration,
    InvalidRange,
    ProviderNotFound,
)
from ..domain.models import (
    AuditEntry,
    CollisionMode,
    Provider,
    Role,
    Session,
    Slot,
    SlotQuery,
    WorkingHours,
)
from ..domain.slot_calculator import compute_available_slots

logger = logging.getLogger(__name__)

CHECK_AVAILABILITY_ACTION = "CHECK_PROVIDER_AVAILABILITY"


class ProviderRepository(Protocol):
    """Lookup of provider records."""

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        """Return the provider, or None if no such user exists."""


class AppointmentRepository(Protocol):
    """Lookup of existing bookings."""

    def find_active_appointment_starts(
        self,
        provider_id: str,
        start: DateTime,
        end: DateTime,
    ) -> List[DateTime]:
        """Return start times of non-cancelled appointments with start in [start, end]."""


class AuditSink(Protocol):
    """Destination for audit entries."""

    def record(self, entry: AuditEntry) -> None:
        """Persist one audit entry."""


class AvailabilityQueryParams(BaseModel):
    """Query string of an availability request."""

    model_config = ConfigDict(populate_by_name=True)

    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_datetime(cls, value: str) -> str:
        """Require a full ISO-8601 date-time."""
        try:
            parsed = pendulum.parse(value, exact=True)
        except ValueError as exc:
            raise ValueError(f"Invalid datetime: {value}") from exc
        if not isinstance(parsed, DateTime):
            raise ValueError(f"Expected a date-time, got: {value}")
        return value

    def start(self) -> DateTime:
        return pendulum.parse(self.start_date)

    def end(self) -> DateTime:
        return pendulum.parse(self.end_date)


class WorkingHoursSettings(BaseModel):
    """Working hours as persisted in provider settings."""

    model_config = ConfigDict(populate_by_name=True)

    start: int
    end: int
    slot_duration: int = Field(alias="slotDuration")
    excluded_weekdays: Optional[List[int]] = Field(default=None, alias="excludedWeekdays")
    timezone: Optional[str] = None

    def to_working_hours(self, fallback: WorkingHours) -> WorkingHours:
        """Build the domain value, inheriting unset fields from ``fallback``."""
        return WorkingHours(
            start=self.start,
            end=self.end,
            slot_duration_minutes=self.slot_duration,
            excluded_weekdays=(
                fallback.excluded_weekdays
                if self.excluded_weekdays is None
                else frozenset(self.excluded_weekdays)
            ),
            timezone=self.timezone or fallback.timezone,
        )


@dataclass
class AvailabilityResult:
    """Outcome of an availability check."""
    provider_id: str
    provider_name: str
    slots: List[Slot]
    working_hours: WorkingHours

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON payload returned to the web client."""
        return {
            "providerId": self.provider_id,
            "providerName": self.provider_name,
            "availableSlots": [slot.to_iso() for slot in self.slots],
            "workingHours": self.working_hours.to_dict(),
        }


def resolve_working_hours(raw_settings: Any, default: WorkingHours) -> WorkingHours:
    """
    Turn persisted provider settings into ``WorkingHours``.

    Settings may be a mapping, a JSON string, or empty (falls back to
    ``default``).

    Raises:
        InvalidConfiguration: If the settings are present but malformed
    """
    if raw_settings is None or raw_settings == "":
        return default

    if isinstance(raw_settings, str):
        try:
            raw_settings = json.loads(raw_settings)
        except json.JSONDecodeError as exc:
            raise InvalidConfiguration(f"Working hours settings are not valid JSON: {exc}") from exc

    if raw_settings is None:
        return default

    if not isinstance(raw_settings, dict):
        raise InvalidConfiguration("Working hours settings must be an object")

    try:
        settings = WorkingHoursSettings.model_validate(raw_settings)
    except ValidationError as exc:
        raise InvalidConfiguration(f"Invalid working hours settings: {exc.error_count()} error(s)") from exc

    return settings.to_working_hours(default)


class AvailabilityService:
    """
    Answers provider availability requests.

    Collaborators are injected as protocols so the HTTP backend adapter or
    the mock implementation can be plugged in.
    """

    def __init__(
        self,
        providers: ProviderRepository,
        appointments: AppointmentRepository,
        audit: AuditSink,
        default_working_hours: WorkingHours,
        max_range_days: int = 62,
        collision_mode: CollisionMode = CollisionMode.EXACT,
    ) -> None:
        self._providers = providers
        self._appointments = appointments
        self._audit = audit
        self._default_working_hours = default_working_hours
        self._max_range_days = max_range_days
        self._collision_mode = collision_mode

    def check_availability(
        self,
        *,
        session: Optional[Session],
        provider_id: str,
        start_date: str,
        end_date: str,
        now: Optional[DateTime] = None,
    ) -> AvailabilityResult:
        """
        Compute open slots for a provider and record the check.

        Args:
            session: Authenticated caller; None is rejected
            provider_id: Provider user id
            start_date: ISO-8601 date-time, start of the window
            end_date: ISO-8601 date-time, end of the window
            now: Reference time, defaults to the current UTC time

        Raises:
            AuthenticationError: If there is no session
            InvalidRange: If the dates are malformed or the window too wide
            ProviderNotFound: If no provider has this id
            InvalidConfiguration: If the provider's settings are malformed
        """
        if session is None or not session.user_id:
            raise AuthenticationError("Unauthorized")

        range_start, range_end = self._parse_range(start_date, end_date)

        provider = self._providers.get_provider(provider_id)
        if provider is None or provider.role != Role.PROVIDER:
            raise ProviderNotFound("Provider not found")

        working_hours = resolve_working_hours(provider.working_hours, self._default_working_hours)

        # The calculator fills every touched day, so bookings are needed for whole days
        tz = working_hours.timezone
        booked = self._appointments.find_active_appointment_starts(
            provider.id,
            range_start.in_timezone(tz).start_of("day"),
            range_end.in_timezone(tz).end_of("day"),
        )

        query = SlotQuery(
            range_start=range_start,
            range_end=range_end,
            working_hours=working_hours,
            booked=frozenset(booked),
            now=now or pendulum.now("UTC"),
            collision_mode=self._collision_mode,
        )
        slots = compute_available_slots(query)

        logger.info(
            "Provider %s has %d open slot(s) between %s and %s",
            provider.id, len(slots), range_start, range_end,
        )

        self._audit.record(
            AuditEntry(
                action=CHECK_AVAILABILITY_ACTION,
                user_id=session.user_id,
                resource_id=provider.id,
                details=f"Checked availability for provider {provider.name}",
            )
        )

        return AvailabilityResult(
            provider_id=provider.id,
            provider_name=provider.name,
            slots=slots,
            working_hours=working_hours,
        )

    def _parse_range(self, start_date: str, end_date: str) -> Tuple[DateTime, DateTime]:
        try:
            params = AvailabilityQueryParams(startDate=start_date, endDate=end_date)
        except ValidationError as exc:
            raise InvalidRange("Invalid query parameters") from exc

        range_start, range_end = params.start(), params.end()

        # Reversed ranges are tolerated and simply produce no slots
        if range_end > range_start and (range_end - range_start).in_days() > self._max_range_days:
            raise InvalidRange(
                f"Date range may span at most {self._max_range_days} days"
            )

        return range_start, range_end


def error_payload(exc: BaseException) -> Tuple[int, Dict[str, Any]]:
    """
    Map an exception to an HTTP status and JSON error body.
    """
    if isinstance(exc, AvailabilityError):
        body: Dict[str, Any] = {"error": str(exc)}
        cause = exc.__cause__
        if isinstance(cause, ValidationError):
            body["details"] = _validation_details(cause.errors())
        return exc.status_code, body

    logger.error("Unhandled error checking provider availability: %s", exc)
    return 500, {"error": "Internal server error"}


def _validation_details(errors: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {"path": [str(part) for part in error.get("loc", ())], "message": error.get("msg", "")}
        for error in errors
    ]
