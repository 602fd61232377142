"""
Mail Connector for the Escalation Engine.

Notifications are delivered through a mail relay that accepts
``{to, subject, body, type}`` JSON documents and answers with
``{success, skipped}``.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

import requests

from .base_connector import ConnectorResult
from ..config import MailSettings

logger = logging.getLogger(__name__)


class MailTransport(ABC):
    """Abstract mail transport. Implementations never raise."""

    def __init__(self, mock_mode: bool = False):
        self.mock_mode = mock_mode
        logger.info(f"Initialized {self.__class__.__name__} (mock_mode={mock_mode})")

    @abstractmethod
    def send(self, to: str, subject: str, body: str, message_type: str) -> ConnectorResult:
        """
        Deliver one message.

        Args:
            to: Recipient email address
            subject: Message subject
            body: HTML body
            message_type: Notification kind, e.g. ``new-escalation``

        Returns:
            ConnectorResult with success status
        """
        pass

    def get_system_name(self) -> str:
        return "notifications"


class HttpMailTransport(MailTransport):
    """Mail relay reached over HTTP."""

    def __init__(self, settings: MailSettings, session: Optional[requests.Session] = None):
        super().__init__(mock_mode=False)
        if not settings.endpoint:
            raise ValueError("Mail endpoint is required for real mode")

        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if settings.api_key:
            self.session.headers.update({"Authorization": f"Bearer {settings.api_key}"})

    def send(self, to: str, subject: str, body: str, message_type: str) -> ConnectorResult:
        payload = {"to": to, "subject": subject, "body": body, "type": message_type}
        try:
            response = self.session.post(self.settings.endpoint, json=payload,
                                         timeout=self.settings.timeout)
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            error_msg = f"Failed to send {message_type} message to {to}: {e}"
            logger.error(error_msg)
            return ConnectorResult(False, error_msg, error=str(e))

        if not result.get("success"):
            error_msg = f"Mail relay rejected {message_type} message to {to}"
            logger.error(error_msg)
            return ConnectorResult(False, error_msg, data=result)

        if result.get("skipped"):
            logger.warning(f"Mail relay skipped {message_type} message to {to}")
        else:
            logger.info(f"Sent {message_type} message to {to}")
        return ConnectorResult(True, f"Sent {message_type} to {to}", data=result)


class MockMailTransport(MailTransport):
    """
    In-memory mail transport.

    Records every message in ``outbox``. Addresses listed in
    ``failing_recipients`` are rejected so partial delivery can be tested.
    """

    def __init__(self, failing_recipients: Optional[Set[str]] = None):
        super().__init__(mock_mode=True)
        self._lock = threading.Lock()
        self.outbox: List[Dict[str, Any]] = []
        self.failing_recipients = set(failing_recipients or ())

    def send(self, to: str, subject: str, body: str, message_type: str) -> ConnectorResult:
        if to in self.failing_recipients:
            logger.info(f"Mock rejected {message_type} message to {to}")
            return ConnectorResult(False, f"Delivery to {to} failed", error="rejected")

        with self._lock:
            self.outbox.append({"to": to, "subject": subject, "body": body, "type": message_type})
        logger.info(f"Mock sent {message_type} message to {to}")
        return ConnectorResult(True, f"Sent {message_type} to {to}")

    def messages_for(self, to: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [m for m in self.outbox if m["to"] == to]
