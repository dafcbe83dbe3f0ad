"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import (
    AppointmentRepository,
    AuditSink,
    AvailabilityResult,
    AvailabilityService,
    ProviderRepository,
    error_payload,
    resolve_working_hours,
)

__all__ = [
    "AppointmentRepository",
    "AuditSink",
    "AvailabilityResult",
    "AvailabilityService",
    "ProviderRepository",
    "error_payload",
    "resolve_working_hours",
]
