"""
Base Connector Classes for the Escalation Engine.

This module provides the identity provider contract used by the gateway
and the lifecycle workflows, together with an in-memory provider for
testing and development without real service credentials.
"""

import logging
import secrets
import threading
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models import AccountRecord

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """
    Error reported by the identity provider.

    ``code`` classifies the failure so callers can decide whether to
    retry ("unavailable") or map it to a definitive outcome.
    """

    USER_NOT_FOUND = "user-not-found"
    EMAIL_EXISTS = "email-already-exists"
    INVALID_EMAIL = "invalid-email"
    UNAVAILABLE = "unavailable"
    MALFORMED = "malformed"
    INVALID = "invalid"
    EXPIRED = "expired"
    REVOKED = "revoked"
    DISABLED = "disabled"
    PROJECT_MISMATCH = "project-mismatch"

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message or code

    def __str__(self):
        return f"[{self.code}] {self.message}"


class ConnectorResult:
    """Result of a connector operation."""

    def __init__(self, success: bool, message: str = "", data: Optional[Any] = None,
                 error: Optional[str] = None):
        self.success = success
        self.message = message
        self.data = data
        self.error = error

    def __bool__(self):
        return self.success

    def __str__(self):
        return f"{'✓' if self.success else '✗'} {self.message}"


class IdentityProvider(ABC):
    """
    Abstract base class for identity providers.

    Every operation raises ProviderError on failure.
    """

    def __init__(self, project_id: Optional[str] = None, mock_mode: bool = False):
        self.project_id = project_id
        self.mock_mode = mock_mode
        logger.info(f"Initialized {self.__class__.__name__} (mock_mode={mock_mode})")

    @abstractmethod
    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a bearer credential.

        Args:
            token: Raw credential taken from the Authorization header

        Returns:
            Decoded claims, always including ``uid`` and ``email``
        """
        pass

    @abstractmethod
    def get_account_by_email(self, email: str) -> AccountRecord:
        """Look up an account. Raises ProviderError(user-not-found)."""
        pass

    @abstractmethod
    def get_account(self, uid: str) -> AccountRecord:
        """Look up an account by uid."""
        pass

    @abstractmethod
    def create_account(self, email: str, password: str, display_name: str) -> AccountRecord:
        """Create an account. Raises ProviderError(email-already-exists)."""
        pass

    @abstractmethod
    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        """Replace the custom claims attached to an account."""
        pass

    @abstractmethod
    def set_disabled(self, uid: str, disabled: bool) -> None:
        """Enable or disable login for an account."""
        pass

    @abstractmethod
    def delete_account(self, uid: str) -> None:
        """Delete an account. Raises ProviderError(user-not-found)."""
        pass

    @abstractmethod
    def generate_password_reset_link(self, email: str, continue_url: str) -> str:
        """Produce a password-reset link that returns to ``continue_url``."""
        pass

    def get_system_name(self) -> str:
        return "identity"

    def is_mock_mode(self) -> bool:
        return self.mock_mode


class MockIdentityProvider(IdentityProvider):
    """
    In-memory identity provider.

    Issues opaque tokens of the form ``mock.<project>.<random>`` so the
    full authentication path can be exercised in tests.
    """

    def __init__(self, project_id: Optional[str] = None):
        super().__init__(project_id or "mock-project", mock_mode=True)
        self._lock = threading.Lock()
        self.accounts: Dict[str, AccountRecord] = {}
        self.passwords: Dict[str, str] = {}
        self._by_email: Dict[str, str] = {}
        self._tokens: Dict[str, Dict[str, Any]] = {}
        self.reset_links: List[str] = []

    def issue_token(self, uid: str, ttl_seconds: int = 3600,
                    project_id: Optional[str] = None) -> str:
        """Issue a credential for an existing account."""
        with self._lock:
            if uid not in self.accounts:
                raise ProviderError(ProviderError.USER_NOT_FOUND, f"No account {uid}")
            project = project_id or self.project_id
            token = f"mock.{project}.{secrets.token_urlsafe(16)}"
            self._tokens[token] = {
                "uid": uid,
                "project": project,
                "expires_at": time.time() + ttl_seconds,
                "revoked": False,
            }
        return token

    def revoke_tokens(self, uid: str) -> None:
        """Revoke every credential issued to ``uid``."""
        with self._lock:
            for entry in self._tokens.values():
                if entry["uid"] == uid:
                    entry["revoked"] = True

    def verify_token(self, token: str) -> Dict[str, Any]:
        parts = token.split(".")
        if len(parts) != 3 or parts[0] != "mock":
            raise ProviderError(ProviderError.MALFORMED, "Credential is not well formed")

        with self._lock:
            entry = self._tokens.get(token)
            if entry is None:
                raise ProviderError(ProviderError.INVALID, "Credential was not issued here")
            if entry["project"] != self.project_id:
                raise ProviderError(ProviderError.PROJECT_MISMATCH,
                                    f"Credential belongs to project {entry['project']}")
            if entry["expires_at"] < time.time():
                raise ProviderError(ProviderError.EXPIRED, "Credential has expired")
            if entry["revoked"]:
                raise ProviderError(ProviderError.REVOKED, "Credential has been revoked")

            account = self.accounts.get(entry["uid"])
            if account is None:
                raise ProviderError(ProviderError.INVALID, "Account no longer exists")
            if account.disabled:
                raise ProviderError(ProviderError.DISABLED, "Account is disabled")

            claims = dict(account.custom_claims)
            claims.update({"uid": account.uid, "email": account.email, "aud": self.project_id})
            if account.display_name:
                claims.setdefault("name", account.display_name)
            return claims

    def get_account_by_email(self, email: str) -> AccountRecord:
        with self._lock:
            uid = self._by_email.get(email.lower())
            if uid is None:
                raise ProviderError(ProviderError.USER_NOT_FOUND, f"No account for {email}")
            return self.accounts[uid].model_copy(deep=True)

    def get_account(self, uid: str) -> AccountRecord:
        with self._lock:
            if uid not in self.accounts:
                raise ProviderError(ProviderError.USER_NOT_FOUND, f"No account {uid}")
            return self.accounts[uid].model_copy(deep=True)

    def create_account(self, email: str, password: str, display_name: str) -> AccountRecord:
        with self._lock:
            if "@" not in email:
                raise ProviderError(ProviderError.INVALID_EMAIL, f"Malformed email {email}")
            if email.lower() in self._by_email:
                raise ProviderError(ProviderError.EMAIL_EXISTS, f"Account {email} already exists")

            uid = uuid.uuid4().hex[:28]
            account = AccountRecord(uid=uid, email=email, display_name=display_name)
            self.accounts[uid] = account
            self.passwords[uid] = password
            self._by_email[email.lower()] = uid

        logger.info(f"Mock created account: {uid}")
        return account.model_copy(deep=True)

    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        with self._lock:
            if uid not in self.accounts:
                raise ProviderError(ProviderError.USER_NOT_FOUND, f"No account {uid}")
            self.accounts[uid].custom_claims = dict(claims)
        logger.info(f"Mock set claims on {uid}")

    def set_disabled(self, uid: str, disabled: bool) -> None:
        with self._lock:
            if uid not in self.accounts:
                raise ProviderError(ProviderError.USER_NOT_FOUND, f"No account {uid}")
            self.accounts[uid].disabled = disabled
        logger.info(f"Mock {'disabled' if disabled else 'enabled'} account {uid}")

    def delete_account(self, uid: str) -> None:
        with self._lock:
            account = self.accounts.pop(uid, None)
            if account is None:
                raise ProviderError(ProviderError.USER_NOT_FOUND, f"No account {uid}")
            self._by_email.pop(account.email.lower(), None)
            self.passwords.pop(uid, None)
        logger.info(f"Mock deleted account {uid}")

    def generate_password_reset_link(self, email: str, continue_url: str) -> str:
        with self._lock:
            if email.lower() not in self._by_email:
                raise ProviderError(ProviderError.USER_NOT_FOUND, f"No account for {email}")
            link = (f"https://{self.project_id}.mock-auth.local/reset"
                    f"?oobCode={secrets.token_urlsafe(12)}&continueUrl={continue_url}")
            self.reset_links.append(link)
        return link
