"""
Firebase Connector for the Escalation Engine.

Provides the production identity provider on top of Firebase
Authentication: credential verification with revocation checks,
account provisioning, custom claims and password-reset links.
"""

import logging
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import auth, credentials, exceptions

from .base_connector import IdentityProvider, ProviderError
from ..config import FirebaseSettings
from ..models import AccountRecord

logger = logging.getLogger(__name__)


def get_firebase_app(settings: FirebaseSettings) -> firebase_admin.App:
    """
    Return the shared Firebase app, initializing it on first use.

    Credentials come from a service-account file, from an inline client
    email and private key, or from application default credentials.
    """
    try:
        return firebase_admin.get_app(settings.app_name)
    except ValueError:
        pass

    if settings.credentials_path:
        cred = credentials.Certificate(settings.credentials_path)
    elif settings.client_email and settings.private_key:
        cred = credentials.Certificate({
            "type": "service_account",
            "project_id": settings.project_id,
            "client_email": settings.client_email,
            "private_key": settings.private_key,
            "token_uri": "https://oauth2.googleapis.com/token",
        })
    else:
        cred = credentials.ApplicationDefault()

    options = {"projectId": settings.project_id} if settings.project_id else None
    app = firebase_admin.initialize_app(cred, options, name=settings.app_name)
    logger.info(f"Initialized Firebase app {settings.app_name} for project {settings.project_id}")
    return app


def _to_account(record: auth.UserRecord) -> AccountRecord:
    return AccountRecord(
        uid=record.uid,
        email=record.email or "",
        display_name=record.display_name,
        disabled=record.disabled,
        custom_claims=dict(record.custom_claims or {}),
    )


def _classify(error: Exception) -> ProviderError:
    """Map Firebase SDK errors onto provider error codes."""
    if isinstance(error, auth.UserNotFoundError):
        return ProviderError(ProviderError.USER_NOT_FOUND, str(error))
    if isinstance(error, auth.EmailAlreadyExistsError):
        return ProviderError(ProviderError.EMAIL_EXISTS, str(error))
    if isinstance(error, ValueError):
        # Argument validation in the SDK, e.g. a malformed email
        return ProviderError(ProviderError.INVALID_EMAIL, str(error))
    if isinstance(error, exceptions.FirebaseError):
        if error.code in ("UNAVAILABLE", "DEADLINE_EXCEEDED", "INTERNAL", "UNKNOWN"):
            return ProviderError(ProviderError.UNAVAILABLE, str(error))
        return ProviderError(error.code.lower(), str(error))
    return ProviderError(ProviderError.UNAVAILABLE, str(error))


class FirebaseIdentityProvider(IdentityProvider):
    """Firebase Authentication identity provider."""

    def __init__(self, settings: FirebaseSettings, app: Optional[firebase_admin.App] = None):
        super().__init__(settings.project_id, mock_mode=False)
        self.settings = settings
        self.app = app or get_firebase_app(settings)

    def verify_token(self, token: str) -> Dict[str, Any]:
        try:
            claims = auth.verify_id_token(token, app=self.app, check_revoked=True)
        except auth.ExpiredIdTokenError as e:
            raise ProviderError(ProviderError.EXPIRED, str(e))
        except auth.RevokedIdTokenError as e:
            raise ProviderError(ProviderError.REVOKED, str(e))
        except auth.UserDisabledError as e:
            raise ProviderError(ProviderError.DISABLED, str(e))
        except auth.InvalidIdTokenError as e:
            if '"aud"' in str(e):
                raise ProviderError(ProviderError.PROJECT_MISMATCH, str(e))
            raise ProviderError(ProviderError.INVALID, str(e))
        except auth.CertificateFetchError as e:
            raise ProviderError(ProviderError.UNAVAILABLE, str(e))
        except ValueError as e:
            raise ProviderError(ProviderError.MALFORMED, str(e))

        claims.setdefault("uid", claims.get("sub"))
        return claims

    def get_account_by_email(self, email: str) -> AccountRecord:
        try:
            return _to_account(auth.get_user_by_email(email, app=self.app))
        except Exception as e:
            raise _classify(e)

    def get_account(self, uid: str) -> AccountRecord:
        try:
            return _to_account(auth.get_user(uid, app=self.app))
        except Exception as e:
            raise _classify(e)

    def create_account(self, email: str, password: str, display_name: str) -> AccountRecord:
        try:
            record = auth.create_user(
                email=email,
                password=password,
                display_name=display_name,
                email_verified=False,
                disabled=False,
                app=self.app,
            )
        except Exception as e:
            raise _classify(e)

        logger.info(f"Created Firebase account {record.uid}")
        return _to_account(record)

    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        try:
            auth.set_custom_user_claims(uid, claims, app=self.app)
        except Exception as e:
            raise _classify(e)

    def set_disabled(self, uid: str, disabled: bool) -> None:
        try:
            auth.update_user(uid, disabled=disabled, app=self.app)
        except Exception as e:
            raise _classify(e)

    def delete_account(self, uid: str) -> None:
        try:
            auth.delete_user(uid, app=self.app)
        except Exception as e:
            raise _classify(e)

    def generate_password_reset_link(self, email: str, continue_url: str) -> str:
        action_settings = auth.ActionCodeSettings(url=continue_url, handle_code_in_app=True)
        try:
            return auth.generate_password_reset_link(email, action_settings, app=self.app)
        except Exception as e:
            raise _classify(e)
