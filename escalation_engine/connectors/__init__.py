"""
Connectors Package for the Escalation Engine.

This package provides the identity provider (Firebase Authentication)
and the mail relay used for notifications, each with an in-memory
counterpart for development and testing.
"""

from .base_connector import ConnectorResult, IdentityProvider, MockIdentityProvider, ProviderError
from .mail_connector import HttpMailTransport, MailTransport, MockMailTransport


def get_identity_provider(config) -> IdentityProvider:
    """Build the identity provider selected by ``config.mock_mode``."""
    if config.mock_mode:
        return MockIdentityProvider(config.firebase.project_id)

    # Imported here so mock deployments never initialize the Firebase SDK
    from .firebase_connector import FirebaseIdentityProvider

    return FirebaseIdentityProvider(config.firebase)


def get_mail_transport(config) -> MailTransport:
    """Build the mail transport selected by ``config.mock_mode``."""
    if config.mock_mode:
        return MockMailTransport()
    # Raises when no relay endpoint is configured
    return HttpMailTransport(config.mail)


__all__ = [
    "ConnectorResult",
    "IdentityProvider",
    "MockIdentityProvider",
    "ProviderError",
    "MailTransport",
    "HttpMailTransport",
    "MockMailTransport",
    "get_identity_provider",
    "get_mail_transport",
]
