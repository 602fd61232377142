"""
Service wiring for the Escalation Engine.

Builds the identity provider, record store, mail transport and the
workflows on top of them from one EngineConfig. The API server and the
CLI both start from ``create_services``.
"""

import logging
from typing import Optional

from .audit.audit_logger import AuditLogger
from .auth.gateway import IdentityGateway
from .config import EngineConfig, load_config
from .connectors import IdentityProvider, MailTransport, get_identity_provider, get_mail_transport
from .engine.settings_manager import SettingsManager
from .engine.state_manager import RecordStore, StateManager
from .notifications.dispatcher import NotificationDispatcher
from .workflows.employee_lifecycle import EmployeeLifecycleManager
from .workflows.escalation_workflow import EscalationWorkflowEngine

logger = logging.getLogger(__name__)


class Services:
    """Container for the wired components."""

    def __init__(self, config: EngineConfig, provider: IdentityProvider, store: RecordStore,
                 transport: MailTransport):
        self.config = config
        self.provider = provider
        self.store = store
        self.transport = transport

        self.audit_logger = AuditLogger(config.audit_dir)
        self.settings = SettingsManager(store)
        self.dispatcher = NotificationDispatcher(transport, max_workers=config.notification_workers)
        self.gateway = IdentityGateway(provider, store, config)

        common = dict(store=store, settings=self.settings, dispatcher=self.dispatcher,
                      audit_logger=self.audit_logger, config=config)
        self.lifecycle = EmployeeLifecycleManager(self.gateway, **common)
        self.escalations = EscalationWorkflowEngine(**common)

    def shutdown(self, wait: bool = True):
        self.dispatcher.shutdown(wait=wait)
        logger.info("Services shut down")


def create_store(config: EngineConfig) -> RecordStore:
    """Build the record store selected by ``config.mock_mode``."""
    if config.mock_mode:
        return StateManager(config.state_file)

    from .connectors.firebase_connector import get_firebase_app
    from .engine.firestore_store import FirestoreRecordStore

    return FirestoreRecordStore(get_firebase_app(config.firebase))


def create_services(
    config: Optional[EngineConfig] = None,
    store: Optional[RecordStore] = None,
    identity_provider: Optional[IdentityProvider] = None,
    transport: Optional[MailTransport] = None,
) -> Services:
    """
    Wire every component.

    Any collaborator passed explicitly replaces the one ``config`` selects.
    """
    config = config or load_config()
    services = Services(
        config=config,
        provider=identity_provider or get_identity_provider(config),
        store=store or create_store(config),
        transport=transport or get_mail_transport(config),
    )
    services.settings.get_settings()
    logger.info(f"Services ready (mock_mode={config.mock_mode})")
    return services
