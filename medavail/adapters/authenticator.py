"""
Identity provider authentication using MSAL (Device Code Flow).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import keyring
import msal
from keyring.errors import KeyringError
from rich.console import Console

from ..domain.exceptions import AuthenticationError
from ..domain.models import Role, Session

logger = logging.getLogger(__name__)

console = Console()


KEYRING_SERVICE_NAME = "medavail"

DEFAULT_SCOPES = ["User.Read"]


class IdentityAuthenticator:
    """
    Handles sign-in with the identity provider using Device Code Flow.

    The resulting access token authorizes backend calls; the ID token claims
    identify the caller and carry their platform role.
    """

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        authority_url: str | None = None,
        scopes: List[str] | None = None,
        cache_file: Path | None = None
    ):
        """
        Initialize the authenticator.

        Args:
            client_id: Application (client) ID registered with the identity provider
            tenant_id: Tenant ID
            authority_url: Optional custom authority URL
            scopes: Scopes to request for the backend API
            cache_file: Optional path to the plaintext token cache fallback
        """
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.authority = authority_url or f"https://login.microsoftonline.com/{tenant_id}"
        self.scopes = list(scopes or DEFAULT_SCOPES)

        self.cache_file = cache_file or Path.home() / ".medavail_token_cache.json"
        self._key_identifier = f"{self.client_id}:{self.tenant_id}"
        self._keyring_supported = True
        self._cache_backend = "keyring"
        self._insecure_storage_warning: Optional[str] = None
        self._last_claims: Dict[str, Any] = {}
        self.cache = self._load_cache()

        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache
        )

    @property
    def cache_backend(self) -> str:
        """Return the active cache backend (keyring or file)."""
        return self._cache_backend

    @property
    def insecure_storage_warning(self) -> Optional[str]:
        """Provide a warning message when the cache falls back to plaintext storage."""
        return self._insecure_storage_warning

    def _load_cache(self) -> msal.SerializableTokenCache:
        """Load token cache from keyring or disk if it exists."""
        cache = msal.SerializableTokenCache()

        serialized = self._load_cache_from_keyring()
        if serialized is None:
            serialized = self._load_cache_from_file()

        if serialized:
            try:
                cache.deserialize(serialized)
            except ValueError as exc:
                logger.warning("Could not deserialize token cache: %s", exc)

        return cache

    def _load_cache_from_keyring(self) -> Optional[str]:
        if not self._keyring_supported:
            return None

        try:
            return keyring.get_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:
            self._handle_keyring_failure(f"reading credentials failed: {exc}")
            return None

    def _load_cache_from_file(self) -> Optional[str]:
        if self.cache_file.exists():
            try:
                with open(self.cache_file, "r", encoding="utf-8") as file_handle:
                    return file_handle.read()
            except OSError as exc:
                logger.warning("Could not load token cache file %s: %s", self.cache_file, exc)
        return None

    def _save_cache(self) -> None:
        """Save token cache to the configured backend."""
        if not self.cache.has_state_changed:
            return

        serialized = self.cache.serialize()

        if self._keyring_supported and self._save_cache_to_keyring(serialized):
            return

        self._save_cache_to_file(serialized)

    def _save_cache_to_keyring(self, serialized: str) -> bool:
        try:
            keyring.set_password(KEYRING_SERVICE_NAME, self._key_identifier, serialized)
            self._cache_backend = "keyring"
            return True
        except KeyringError as exc:
            self._handle_keyring_failure(f"writing credentials failed: {exc}")
            return False

    def _save_cache_to_file(self, serialized: str) -> None:
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as file_handle:
                file_handle.write(serialized)
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save token cache to %s: %s", self.cache_file, exc)

    def _handle_keyring_failure(self, reason: str) -> None:
        if self._keyring_supported:
            logger.warning(
                "Secure credential storage unavailable (%s). Falling back to plaintext cache.",
                reason,
            )
        self._keyring_supported = False
        self._cache_backend = "file"
        if not self._insecure_storage_warning:
            self._insecure_storage_warning = (
                f"Secure credential storage unavailable ({reason}). "
                f"Falling back to plaintext cache at {self.cache_file}."
            )

    def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Get a valid access token, using cache or requesting a new one.

        Args:
            force_refresh: Force authentication even if cached token exists

        Returns:
            Access token string

        Raises:
            AuthenticationError: If authentication fails
        """
        if not force_refresh:
            accounts = self.app.get_accounts()
            if accounts:
                result = self.app.acquire_token_silent(scopes=self.scopes, account=accounts[0])
                if result and "access_token" in result:
                    self._remember(result)
                    self._save_cache()
                    return result["access_token"]

        return self._authenticate_device_code_flow()

    def get_session(self) -> Session:
        """
        Build the caller's session from the most recent ID token claims.

        Raises:
            AuthenticationError: If no sign-in has happened yet
        """
        if not self._last_claims:
            self.get_access_token()
        return session_from_claims(self._last_claims)

    def _remember(self, result: Dict[str, Any]) -> None:
        claims = result.get("id_token_claims")
        if claims:
            self._last_claims = claims

    def _authenticate_device_code_flow(self) -> str:
        """
        Perform device code flow authentication.

        Raises:
            AuthenticationError: If authentication fails
        """
        console.print("\n[bold cyan]🔐 Sign-in required[/bold cyan]")
        console.print("You need to sign in to check provider availability.\n")

        try:
            flow = self.app.initiate_device_flow(scopes=self.scopes)
        except ValueError as exc:  # pragma: no cover - MSAL internal failure
            raise AuthenticationError(f"Failed to initiate device flow: {exc}") from exc

        if "user_code" not in flow:
            raise AuthenticationError(
                f"Failed to initiate device flow: {flow.get('error_description', 'Unknown error')}"
            )

        console.print("[bold]Please follow these steps:[/bold]")
        console.print(f"1. Open a browser and go to: [bold cyan]{flow['verification_uri']}[/bold cyan]")
        console.print(f"2. Enter this code: [bold yellow]{flow['user_code']}[/bold yellow]")
        console.print("3. Sign in with your platform account\n")
        console.print("[dim]Waiting for authentication...[/dim]\n")

        result = self.app.acquire_token_by_device_flow(flow)

        if "access_token" not in result:
            error = result.get("error_description", "Unknown error")
            raise AuthenticationError(f"Authentication failed: {error}")

        console.print("[bold green]✓ Authentication successful![/bold green]\n")

        self._remember(result)
        self._save_cache()

        return result["access_token"]

    def clear_cache(self) -> None:
        """Clear the token cache (force re-authentication next time)."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        try:
            keyring.delete_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            logger.warning("Could not remove credentials from keyring: %s", exc)
        self.cache = msal.SerializableTokenCache()
        self._last_claims = {}


def session_from_claims(claims: Dict[str, Any]) -> Session:
    """
    Map ID token claims to a Session.

    The role is read from the ``roles`` claim (first entry) or the
    ``extension_role`` custom attribute.

    Raises:
        AuthenticationError: If the claims carry no subject
    """
    user_id = claims.get("oid") or claims.get("sub")
    if not user_id:
        raise AuthenticationError("ID token has no subject claim")

    roles = claims.get("roles") or []
    role_claim = roles[0] if roles else claims.get("extension_role")

    return Session(
        user_id=user_id,
        role=Role.parse(role_claim),
        session_id=claims.get("sid", ""),
        name=claims.get("name", ""),
    )


class MockAuthenticator:
    """
    Mock authenticator that bypasses the identity provider.
    """

    def __init__(self, role: Role = Role.PATIENT, user_id: str = "mock-user", **kwargs):
        self.role = role
        self.user_id = user_id

    def get_access_token(self, force_refresh: bool = False) -> str:
        return "mock_access_token_12345"

    def get_session(self) -> Session:
        return Session(user_id=self.user_id, role=self.role, session_id="mock-session", name="Mock User")

    def clear_cache(self) -> None:
        """Mock cache clear (does nothing)."""
