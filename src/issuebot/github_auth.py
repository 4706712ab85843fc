"""GitHub App authentication for issuebot.

Signs a short-lived RS256 assertion with the App's private key and exchanges
it for an installation-scoped access token. Only one exchange runs per
process at a time; concurrent callers wait for the one in flight.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt
import requests

from .config import DEFAULT_API_URL, DEFAULT_USER_AGENT, BotConfig
from .errors import AuthError, redact
from .logging import get_logger

MACHINE_MAN_PREVIEW = "application/vnd.github.machine-man-preview+json"
ASSERTION_LIFETIME = timedelta(minutes=10)

# Serialises every assertion exchange in the process.
_EXCHANGE_LOCK = threading.Lock()


@dataclass
class GitHubAppConfig:
    """Configuration for GitHub App authentication."""

    app_id: str | None
    private_key_path: str | None
    api_url: str = DEFAULT_API_URL
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0

    @classmethod
    def from_bot_config(cls, config: BotConfig) -> GitHubAppConfig:
        return cls(
            app_id=config.app_id,
            private_key_path=config.private_key_path,
            api_url=config.api_url,
            user_agent=config.user_agent,
            timeout=config.timeout,
        )


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: datetime | None = None

    def __repr__(self) -> str:
        return f"AccessToken(token=<redacted>, expires_at={self.expires_at!r})"


class CredentialManager:
    """Obtains installation access tokens for a single GitHub App."""

    def __init__(self, config: GitHubAppConfig, session: requests.Session | None = None):
        self.config = config
        self.logger = get_logger()
        self._session = session or requests.Session()
        self._private_key: str | None = None

    def is_enabled(self) -> bool:
        """Check if the App identity and key location are configured."""
        return bool(self.config.app_id and self.config.private_key_path)

    def _load_private_key(self) -> str:
        """Read the PEM key once and keep it for the process lifetime."""
        if self._private_key is not None:
            return self._private_key
        if not self.config.private_key_path:
            raise AuthError("Private key path not configured")
        key_path = Path(self.config.private_key_path)
        try:
            private_key = key_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise AuthError(f"Private key file not readable: {key_path}") from exc
        if not private_key.strip():
            raise AuthError(f"Private key file is empty: {key_path}")
        self._private_key = private_key
        return private_key

    def generate_jwt(self, now: datetime | None = None) -> str:
        """Generate the signed assertion identifying the App."""
        if not self.config.app_id:
            raise AuthError("GitHub App id not configured")
        private_key = self._load_private_key()
        now = now or datetime.now(timezone.utc)
        payload = {
            "iat": int(now.timestamp()),
            "exp": int((now + ASSERTION_LIFETIME).timestamp()),
            "iss": self.config.app_id,
        }
        try:
            signed: Any = jwt.encode(payload, private_key, algorithm="RS256")
        except (jwt.exceptions.PyJWTError, ValueError, TypeError) as exc:
            raise AuthError(f"Failed to sign JWT: {exc}") from exc
        if isinstance(signed, bytes):
            signed = signed.decode("utf-8")
        return str(signed)

    def _exchange(self, assertion: str, installation_id: str) -> AccessToken:
        url = f"{self.config.api_url.rstrip('/')}/app/installations/{installation_id}/access_tokens"
        headers = {
            "Authorization": f"Bearer {assertion}",
            "Accept": MACHINE_MAN_PREVIEW,
            "User-Agent": self.config.user_agent,
        }
        try:
            response = self._session.post(url, headers=headers, timeout=self.config.timeout)
        except requests.RequestException as exc:
            raise AuthError(f"Token exchange failed: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise AuthError(
                f"Token exchange for installation {installation_id} "
                f"returned {response.status_code}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise AuthError("Token exchange response was not JSON") from exc
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthError("Token exchange response had no token")

        expires_at: datetime | None = None
        expires_str = data.get("expires_at")
        if isinstance(expires_str, str) and expires_str:
            try:
                # GitHub uses ISO format: 2025-01-01T10:00:00Z
                expires_at = datetime.fromisoformat(expires_str.replace("Z", "+00:00"))
            except ValueError:
                expires_at = None
        return AccessToken(token=token, expires_at=expires_at)

    def obtain_access_token(self, installation_id: str) -> AccessToken:
        """Sign an assertion and exchange it for an installation token.

        Raises :class:`AuthError` on any failure; callers decide on retries.
        """
        with _EXCHANGE_LOCK:
            try:
                assertion = self.generate_jwt()
                access = self._exchange(assertion, installation_id)
            except AuthError as exc:
                self.logger.log_error(
                    "GitHub App authentication failed",
                    error=redact(str(exc)),
                    installation_id=installation_id,
                )
                raise
        self.logger.log_operation(
            "github_app_token_generated",
            installation_id=installation_id,
            expires_at=access.expires_at.isoformat() if access.expires_at else "",
        )
        return access


def create_credential_manager(
    config: BotConfig, session: requests.Session | None = None
) -> CredentialManager:
    """Factory function to create a credential manager from bot configuration."""
    return CredentialManager(GitHubAppConfig.from_bot_config(config), session=session)


__all__ = [
    "AccessToken",
    "CredentialManager",
    "GitHubAppConfig",
    "MACHINE_MAN_PREVIEW",
    "create_credential_manager",
]
