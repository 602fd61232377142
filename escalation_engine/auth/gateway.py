"""
Identity Gateway for the Escalation Engine.

Verifies bearer credentials and resolves the caller's authorization by
combining the signed claims with the authoritative employee record. Also
wraps the identity provider's account operations with bounded retry.
"""

import logging
import threading
from typing import Any, Dict, Optional, Tuple

from ..config import EngineConfig
from ..connectors.base_connector import IdentityProvider, ProviderError
from ..engine.state_manager import RecordStore
from ..errors import Conflict, NotFound, Unauthenticated, UpstreamFailure, ValidationError
from ..models import ADMIN_ROLE, AccountRecord, Principal, ReasonCode
from ..workflows.helpers import generate_temp_password, is_oversight_role, run_with_retry

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
AUTHORIZATION_CLAIMS = ("isAdmin", "isOversight", "isCRM", "isHostelOffice", "role")

_REASONS = {
    ProviderError.MALFORMED: ReasonCode.MALFORMED,
    ProviderError.EXPIRED: ReasonCode.EXPIRED,
    ProviderError.REVOKED: ReasonCode.REVOKED,
    ProviderError.DISABLED: ReasonCode.DISABLED,
    ProviderError.PROJECT_MISMATCH: ReasonCode.PROJECT_MISMATCH,
}


def _claim_flag(claims: Dict[str, Any], *names: str) -> bool:
    return any(claims.get(name) is True for name in names)


def _authorization_view(claims: Dict[str, Any]) -> Dict[str, Any]:
    return {name: claims.get(name) for name in AUTHORIZATION_CLAIMS}


class IdentityGateway:
    """
    Entry point for authentication and identity-provider account operations.

    The last-seen memo is advisory only: nothing reads it to make a
    decision. A refresh compares against it to log changed claims.
    """

    def __init__(self, provider: IdentityProvider, store: RecordStore, config: EngineConfig):
        self.provider = provider
        self.store = store
        self.config = config
        self._memo_lock = threading.Lock()
        self._last_seen: Dict[str, Dict[str, Any]] = {}

    def _call(self, operation, description: str, timeout: float):
        retry = self.config.retry
        return run_with_retry(
            operation,
            description=description,
            attempts=retry.attempts,
            timeout=timeout,
            backoff_seconds=retry.backoff_seconds,
        )

    def authenticate(self, authorization: Optional[str]) -> Principal:
        """
        Authenticate a request from its Authorization header.

        Raises:
            Unauthenticated: missing, malformed or rejected credential
        """
        if not authorization:
            raise Unauthenticated("Missing authorization header", ReasonCode.MISSING)
        if not authorization.startswith(BEARER_PREFIX):
            raise Unauthenticated("Authorization header must use the Bearer scheme",
                                  ReasonCode.MALFORMED)
        token = authorization[len(BEARER_PREFIX):].strip()
        if not token:
            raise Unauthenticated("Empty bearer credential", ReasonCode.MALFORMED)

        try:
            claims = self._call(lambda: self.provider.verify_token(token),
                                "verify credential", self.config.retry.lookup_timeout)
        except ProviderError as e:
            reason = _REASONS.get(e.code, ReasonCode.INVALID)
            logger.info(f"Rejected credential ({reason.value})")
            raise Unauthenticated(f"Invalid credential: {reason.value}", reason)

        return self.resolve_authorization(claims)

    def resolve_authorization(self, claims: Dict[str, Any]) -> Principal:
        """
        Build the principal from credential claims and the employee record.

        Elevated flags are OR-combined across both sources. Display name and
        affiliation come from the record whenever it can be read.
        """
        uid = claims.get("uid") or claims.get("sub")
        if not uid:
            raise Unauthenticated("Credential carries no subject", ReasonCode.INVALID)

        claim_role = claims.get("role")
        is_admin = _claim_flag(claims, "isAdmin") or claim_role == ADMIN_ROLE
        is_oversight = (_claim_flag(claims, "isOversight", "isCRM", "isHostelOffice")
                        or is_oversight_role(claim_role, self.config.oversight_role))

        principal = Principal(
            id=uid,
            email=claims.get("email"),
            is_admin=is_admin,
            is_oversight=is_oversight,
            role=claim_role,
            display_name=claims.get("name"),
        )

        try:
            found = self.store.find_employee(uid)
        except Exception as e:
            logger.warning(f"Employee record unavailable for {uid}, using claims only: {e}")
            found = None

        if found:
            _, employee = found
            principal.is_admin = principal.is_admin or employee.is_admin or employee.role == ADMIN_ROLE
            principal.is_oversight = (principal.is_oversight or employee.is_oversight
                                      or is_oversight_role(employee.role, self.config.oversight_role))
            principal.role = employee.role or principal.role
            principal.department = employee.department
            principal.hostel = employee.hostel
            principal.display_name = employee.name
            principal.email = principal.email or employee.email

        with self._memo_lock:
            self._last_seen[uid] = {"email": principal.email, "claims": dict(claims)}

        return principal

    def refresh_principal(self, uid: str) -> Principal:
        """Re-read claims from the identity provider instead of the credential."""
        account = self._call(lambda: self.provider.get_account(uid),
                             "get account", self.config.retry.lookup_timeout)
        claims = dict(account.custom_claims)
        claims.update({"uid": account.uid, "email": account.email})
        if account.display_name:
            claims["name"] = account.display_name

        previous = self.last_seen(uid)
        if previous and _authorization_view(previous["claims"]) != _authorization_view(claims):
            logger.info(f"Authorization claims for {uid} changed since its last request")
        return self.resolve_authorization(claims)

    def last_seen(self, uid: str) -> Optional[Dict[str, Any]]:
        with self._memo_lock:
            entry = self._last_seen.get(uid)
            return dict(entry) if entry else None

    def provision_account(self, email: str, display_name: str) -> Tuple[AccountRecord, bool]:
        """
        Get or create a login-capable account for ``email``.

        Returns:
            (account, created) where ``created`` is False for an existing account

        Raises:
            Conflict: the provider reports the email as taken but cannot return it
        """
        lookup_timeout = self.config.retry.lookup_timeout

        def lookup() -> Optional[AccountRecord]:
            try:
                return self._call(lambda: self.provider.get_account_by_email(email),
                                  "get account by email", lookup_timeout)
            except ProviderError as e:
                if e.code == ProviderError.USER_NOT_FOUND:
                    return None
                raise UpstreamFailure(f"Account lookup failed: {e.message}", "get account by email")

        existing = lookup()
        if existing:
            logger.info(f"Account already exists for {email}: {existing.uid}")
            return existing, False

        password = generate_temp_password()
        try:
            account = self._call(
                lambda: self.provider.create_account(email, password, display_name),
                "create account", lookup_timeout)
        except ProviderError as e:
            if e.code == ProviderError.INVALID_EMAIL:
                raise ValidationError(f"Invalid email format: {email}")
            if e.code != ProviderError.EMAIL_EXISTS:
                raise UpstreamFailure(f"Account creation failed: {e.message}", "create account")
            # Lost a race with a concurrent creation for the same email
            existing = lookup()
            if existing:
                logger.info(f"Account for {email} was created concurrently: {existing.uid}")
                return existing, False
            raise Conflict(f"An account for {email} already exists")

        logger.info(f"Created account {account.uid} for {email}")
        return account, True

    def set_authorization_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        try:
            self._call(lambda: self.provider.set_custom_claims(uid, claims),
                       "set authorization claims", self.config.retry.write_timeout)
        except ProviderError as e:
            raise UpstreamFailure(f"Setting claims failed: {e.message}", "set authorization claims")
        logger.info(f"Set authorization claims on {uid}")

    def mirror_role(self, uid: str, role: str) -> None:
        """Copy a changed role into the account's claims, keeping other claims."""
        def update():
            account = self.provider.get_account(uid)
            claims = dict(account.custom_claims)
            claims["role"] = role
            self.provider.set_custom_claims(uid, claims)

        try:
            self._call(update, "mirror role claim", self.config.retry.write_timeout)
        except ProviderError as e:
            raise UpstreamFailure(f"Mirroring role failed: {e.message}", "mirror role claim")

    def set_login_enabled(self, uid: str, enabled: bool) -> None:
        try:
            self._call(lambda: self.provider.set_disabled(uid, not enabled),
                       "set login enabled", self.config.retry.write_timeout)
        except ProviderError as e:
            if e.code == ProviderError.USER_NOT_FOUND:
                raise NotFound(f"Login account for {uid} not found")
            raise UpstreamFailure(f"Updating login state failed: {e.message}", "set login enabled")
        logger.info(f"{'Enabled' if enabled else 'Disabled'} login for {uid}")

    def remove_account(self, uid: str) -> bool:
        """
        Remove an account.

        Returns:
            True if an account was removed, False if it was already gone
        """
        try:
            self._call(lambda: self.provider.delete_account(uid),
                       "remove account", self.config.retry.write_timeout)
        except ProviderError as e:
            if e.code == ProviderError.USER_NOT_FOUND:
                logger.info(f"Account {uid} was already removed")
                return False
            raise UpstreamFailure(f"Removing account failed: {e.message}", "remove account")
        logger.info(f"Removed account {uid}")
        return True

    def generate_password_reset_link(self, email: str) -> str:
        try:
            return self._call(
                lambda: self.provider.generate_password_reset_link(
                    email, self.config.reset_password_url),
                "generate password reset link", self.config.retry.lookup_timeout)
        except ProviderError as e:
            raise UpstreamFailure(f"Generating reset link failed: {e.message}",
                                  "generate password reset link")
