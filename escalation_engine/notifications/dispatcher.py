"""
Notification Dispatcher for the Escalation Engine.

Delivers workflow notifications without blocking the triggering
request: messages are composed and handed to a background pool, and a
fan-out to several recipients sends to all of them concurrently.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Iterable, List

from . import templates
from ..connectors.mail_connector import MailTransport
from ..models import Escalation, NotificationReport

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Best-effort notification delivery.

    ``fan_out`` never raises; per-recipient failures are counted in the
    returned NotificationReport. The ``dispatch_*`` methods return a
    Future immediately.
    """

    def __init__(self, transport: MailTransport, max_workers: int = 8):
        self.transport = transport
        self._background = ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")
        self._senders = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify-send")

    def _send_one(self, to: str, subject: str, body: str, message_type: str) -> bool:
        try:
            return bool(self.transport.send(to, subject, body, message_type))
        except Exception as e:
            logger.warning(f"Error sending {message_type} notification to {to}: {e}")
            return False

    def fan_out(self, recipients: Iterable[str], subject: str, body: str,
                message_type: str) -> NotificationReport:
        """
        Send one message to every recipient concurrently.

        Returns:
            NotificationReport with sent and failed counts
        """
        recipients = list(recipients)
        report = NotificationReport()
        if not recipients:
            logger.info(f"No recipients for {message_type} notification")
            return report

        futures = [
            (to, self._senders.submit(self._send_one, to, subject, body, message_type))
            for to in recipients
        ]
        for to, future in futures:
            try:
                delivered = future.result()
            except Exception as e:
                logger.warning(f"Notification task for {to} failed: {e}")
                delivered = False
            if delivered:
                report.total_sent += 1
            else:
                report.total_failed += 1
                report.failed_recipients.append(to)

        log = logger.info if report.total_failed == 0 else logger.warning
        log(f"{message_type} notifications: {report.total_sent} sent, {report.total_failed} failed")
        return report

    def _submit(self, recipients: List[str], subject: str, body: str,
                message_type: str) -> "Future[NotificationReport]":
        return self._background.submit(self.fan_out, recipients, subject, body, message_type)

    def notify_status_update(self, recipients: Iterable[str], escalation_id: str, student_name: str,
                             department: str, old_status: str, new_status: str,
                             updated_by: str) -> NotificationReport:
        """Send the status-update notice to every oversight recipient and wait."""
        subject, body = templates.status_update(escalation_id, student_name, department,
                                                old_status, new_status, updated_by)
        return self.fan_out(recipients, subject, body, templates.STATUS_UPDATE)

    def dispatch_status_update(self, recipients: Iterable[str], escalation: Escalation,
                               old_status: str, updated_by: str) -> "Future[NotificationReport]":
        subject, body = templates.status_update(escalation.id, escalation.student_name,
                                                escalation.department, old_status,
                                                escalation.status, updated_by)
        return self._submit(list(recipients), subject, body, templates.STATUS_UPDATE)

    def dispatch_new_escalation(self, escalation: Escalation) -> "Future[NotificationReport]":
        subject, body = templates.new_escalation(escalation.id, escalation.student_name,
                                                 escalation.department)
        return self._submit([escalation.supervisor_email], subject, body, templates.NEW_ESCALATION)

    def dispatch_team_member_assignment(self, escalation: Escalation) -> "Future[NotificationReport]":
        subject, body = templates.team_member_assignment(
            escalation.id, escalation.student_name, escalation.department,
            escalation.assigned_to, escalation.description)
        return self._submit([escalation.assigned_team_member_email], subject, body,
                            templates.TEAM_MEMBER_ASSIGNMENT)

    def dispatch_invitation(self, email: str, name: str, reset_link: str) -> "Future[NotificationReport]":
        subject, body = templates.invitation(name, reset_link)
        return self._submit([email], subject, body, templates.INVITATION)

    def shutdown(self, wait: bool = True):
        self._background.shutdown(wait=wait)
        self._senders.shutdown(wait=wait)
