"""
HIPAA audit trail: every entry is logged locally and forwarded to the backend.
"""

import logging
from typing import Optional

from ..domain.models import AuditEntry
from ..services.availability import AuditSink

audit_log = logging.getLogger("medavail.audit")


class AuditLogger:
    """
    Audit sink that writes each entry to the ``medavail.audit`` logger and,
    when a downstream sink is configured, persists it there as well.
    """

    def __init__(self, sink: Optional[AuditSink] = None):
        self._sink = sink

    def record(self, entry: AuditEntry) -> None:
        audit_log.info(
            "%s user=%s resource=%s: %s",
            entry.action, entry.user_id, entry.resource_id or "-", entry.details,
        )

        if self._sink is not None:
            self._sink.record(entry)
