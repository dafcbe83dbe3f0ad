"""
Adapters layer - External integrations (backend API, identity provider, audit trail).
"""

from .audit_logger import AuditLogger
from .authenticator import IdentityAuthenticator, MockAuthenticator, session_from_claims
from .backend_client import BackendClient
from .mock_backend_client import MockBackendClient

__all__ = [
    "AuditLogger",
    "IdentityAuthenticator",
    "MockAuthenticator",
    "session_from_claims",
    "BackendClient",
    "MockBackendClient",
]
