"""
Role-based route authorization.

Decides, for a requested path and the caller's session, whether the request
may proceed or must be redirected (to login, to user sync, or to the caller's
own dashboard).
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode

from .models import Role, Session

LOGIN_PATH = "/auth/login"
SYNC_USER_PATH = "/auth/sync-user"
MAX_REDIRECT_CYCLES = 2

PUBLIC_PATHS: Tuple[str, ...] = (
    "/",
    "/auth/login",
    "/auth/register",
    "/auth/forgot-password",
    "/auth/reset-password",
    "/auth/verify-email",
    "/auth/sync-user",
    "/unauthorized",
    "/privacy-policy",
    "/terms-of-service",
    "/sso-callback",
)

PUBLIC_PREFIXES: Tuple[str, ...] = (
    "/profile/mfa",
    "/api/auth/",
    "/api/webhooks/",
)

DEFAULT_ROUTES: Dict[Role, str] = {
    Role.PATIENT: "/patient/dashboard",
    Role.PROVIDER: "/provider/dashboard",
    Role.ADMIN: "/admin/dashboard",
}

# Path prefix -> the only role allowed under it
ROLE_AREAS: Tuple[Tuple[str, Role], ...] = (
    ("/provider", Role.PROVIDER),
    ("/patient", Role.PATIENT),
)


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of a route check."""
    allowed: bool
    redirect_to: Optional[str] = None

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(allowed=True)

    @classmethod
    def redirect(cls, location: str) -> "AccessDecision":
        return cls(allowed=False, redirect_to=location)


def is_public_path(pathname: str) -> bool:
    """Check whether a path is reachable without a session."""
    return pathname in PUBLIC_PATHS or pathname.startswith(PUBLIC_PREFIXES)


def authorize_route(
    pathname: str,
    session: Optional[Session],
    cycle: int = 0,
) -> AccessDecision:
    """
    Decide whether ``session`` may open ``pathname``.

    Args:
        pathname: Requested path, without query string
        session: Authenticated session, or None for anonymous callers
        cycle: Number of role redirects already performed for this request

    Returns:
        AccessDecision describing whether to continue or where to redirect
    """
    public = is_public_path(pathname)

    if session is None and not public:
        return AccessDecision.redirect(f"{LOGIN_PATH}?{urlencode({'redirect_url': pathname})}")

    if public or pathname.startswith("/admin"):
        return AccessDecision.allow()

    if session.role is None or cycle > MAX_REDIRECT_CYCLES:
        return AccessDecision.redirect(SYNC_USER_PATH)

    for prefix, required_role in ROLE_AREAS:
        if pathname.startswith(prefix) and session.role != required_role:
            target = DEFAULT_ROUTES[session.role]
            return AccessDecision.redirect(f"{target}?{urlencode({'cycle': cycle + 1})}")

    return AccessDecision.allow()
