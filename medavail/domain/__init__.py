"""
Domain layer - Pure business logic without external dependencies.
"""

from .access import AccessDecision, authorize_route
from .exceptions import (
    AuthenticationError,
    AvailabilityError,
    BackendError,
    InvalidConfiguration,
    InvalidRange,
    ProviderNotFound,
)
from .models import (
    DEFAULT_WORKING_HOURS,
    AuditEntry,
    CollisionMode,
    Provider,
    Role,
    Session,
    Slot,
    SlotQuery,
    TimeRange,
    WorkingHours,
)
from .slot_calculator import SlotCalculator, compute_available_slots

__all__ = [
    "AccessDecision",
    "authorize_route",
    "AuthenticationError",
    "AvailabilityError",
    "BackendError",
    "InvalidConfiguration",
    "InvalidRange",
    "ProviderNotFound",
    "DEFAULT_WORKING_HOURS",
    "AuditEntry",
    "CollisionMode",
    "Provider",
    "Role",
    "Session",
    "Slot",
    "SlotQuery",
    "TimeRange",
    "WorkingHours",
    "SlotCalculator",
    "compute_available_slots",
]
