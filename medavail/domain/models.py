"""
Domain models for working hours, bookings and appointment slots.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Iterable, Optional

import pendulum
from pendulum import DateTime

from .exceptions import InvalidConfiguration


def to_instant(value: datetime) -> DateTime:
    """
    Normalize a datetime to a UTC pendulum DateTime.

    Naive datetimes are interpreted as UTC.
    """
    return pendulum.instance(value, tz="UTC").in_timezone("UTC")


def format_instant(value: datetime) -> str:
    """Format an instant as an ISO-8601 UTC string with milliseconds."""
    utc = to_instant(value)
    return f"{utc.strftime('%Y-%m-%dT%H:%M:%S')}.{utc.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start


@dataclass(frozen=True)
class WorkingHours:
    """
    A provider's bookable window.

    Slots start on the hour grid from ``start`` (inclusive) to ``end``
    (exclusive), every ``slot_duration_minutes``. Weekday numbers follow
    Python's convention: 0=Monday, 6=Sunday.
    """
    start: int
    end: int
    slot_duration_minutes: int
    excluded_weekdays: FrozenSet[int] = frozenset({5, 6})
    timezone: str = "UTC"

    def __post_init__(self):
        # Coerce lists/sets from configuration into a hashable frozenset
        object.__setattr__(self, "excluded_weekdays", frozenset(self.excluded_weekdays))
        self.validate()

    def validate(self) -> None:
        """
        Check the configuration.

        Raises:
            InvalidConfiguration: If any value is out of range
        """
        for name, value in (
            ("start", self.start),
            ("end", self.end),
            ("slot_duration_minutes", self.slot_duration_minutes),
        ):
            # bool is an int subclass
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfiguration(f"Working hours {name} must be an integer, got {value!r}")

        for name, hour in (("start", self.start), ("end", self.end)):
            if not 0 <= hour <= 23:
                raise InvalidConfiguration(f"Working hours {name} must be between 0 and 23, got {hour}")

        if self.start >= self.end:
            raise InvalidConfiguration(
                f"Working hours start ({self.start}) must be before end ({self.end})"
            )

        if self.slot_duration_minutes <= 0:
            raise InvalidConfiguration(
                f"Slot duration must be positive, got {self.slot_duration_minutes}"
            )

        if 60 % self.slot_duration_minutes != 0:
            raise InvalidConfiguration(
                f"Slot duration must evenly divide 60 minutes, got {self.slot_duration_minutes}"
            )

        invalid_days = sorted(day for day in self.excluded_weekdays if day not in range(7))
        if invalid_days:
            raise InvalidConfiguration(f"Excluded weekdays must be between 0 and 6, got {invalid_days}")

        try:
            pendulum.timezone(self.timezone)
        except (KeyError, ValueError) as exc:
            raise InvalidConfiguration(f"Unknown timezone: {self.timezone}") from exc

    def is_working_day(self, weekday: int) -> bool:
        """Check if a weekday (0=Monday) is bookable."""
        return weekday not in self.excluded_weekdays

    def to_dict(self) -> dict:
        """Serialize in the shape the web client expects."""
        return {
            "start": self.start,
            "end": self.end,
            "slotDuration": self.slot_duration_minutes,
        }


DEFAULT_WORKING_HOURS = WorkingHours(start=9, end=17, slot_duration_minutes=30)


class CollisionMode(str, enum.Enum):
    """How existing bookings block candidate slots."""

    EXACT = "exact"  # slot start equals a booked instant
    OVERLAP = "overlap"  # slot interval overlaps a booked appointment


@dataclass(frozen=True, order=True)
class Slot:
    """
    A bookable appointment start time.
    """
    timestamp: DateTime
    duration_minutes: int = field(default=30, compare=False)

    @property
    def end(self) -> DateTime:
        return self.timestamp.add(minutes=self.duration_minutes)

    def to_iso(self) -> str:
        return format_instant(self.timestamp)


@dataclass(frozen=True)
class SlotQuery:
    """
    Input to one availability computation.

    ``now`` is supplied by the caller so the computation never reads a clock.
    """
    range_start: DateTime
    range_end: DateTime
    working_hours: WorkingHours
    booked: FrozenSet[DateTime] = frozenset()
    now: Optional[DateTime] = None
    collision_mode: CollisionMode = CollisionMode.EXACT
    appointment_duration_minutes: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "range_start", to_instant(self.range_start))
        object.__setattr__(self, "range_end", to_instant(self.range_end))
        object.__setattr__(self, "booked", normalize_booked(self.booked))
        if self.now is None:
            raise ValueError("SlotQuery requires an explicit 'now'")
        object.__setattr__(self, "now", to_instant(self.now))
        if self.appointment_duration_minutes is not None and self.appointment_duration_minutes <= 0:
            raise InvalidConfiguration(
                f"Appointment duration must be positive, got {self.appointment_duration_minutes}"
            )


def normalize_booked(booked: Iterable[datetime]) -> FrozenSet[DateTime]:
    """Collapse booked instants into a set of UTC instants."""
    return frozenset(to_instant(instant) for instant in booked)


class Role(str, enum.Enum):
    """User roles issued by the identity provider."""

    PATIENT = "PATIENT"
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Role"]:
        """Parse a role claim, returning None for missing or unknown values."""
        if not value:
            return None
        try:
            return cls(value.upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class Session:
    """An authenticated caller as reported by the identity provider."""
    user_id: str
    role: Optional[Role] = None
    session_id: str = ""
    name: str = ""


@dataclass
class Provider:
    """
    A provider record as stored by the backend.

    ``working_hours`` holds the raw persisted settings (mapping, JSON string
    or None); it is validated by the service layer.
    """
    id: str
    name: str
    role: Role = Role.PROVIDER
    working_hours: object = None


@dataclass(frozen=True)
class AuditEntry:
    """A HIPAA audit log record."""
    action: str
    user_id: str
    details: str
    resource_id: Optional[str] = None
    timestamp: DateTime = field(default_factory=lambda: pendulum.now("UTC"))

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "userId": self.user_id,
            "details": {
                "resourceId": self.resource_id,
                "description": self.details,
            },
            "timestamp": format_instant(self.timestamp),
        }
