"""
Escalation Workflow for the Escalation Engine.

Files tickets, routes them to the supervisor of the chosen department,
assigns team members and moves tickets between the configured statuses.
Transition legality is a runtime membership check against the current
status list, since administrators can edit it.
"""

import logging
import uuid
from concurrent.futures import Future
from typing import List, NamedTuple, Optional

from ..engine.policy import Action, require
from ..errors import NotFound, UnroutableDepartment, ValidationError
from ..models import Escalation, EscalationDraft, NotificationReport, Principal, StatusChange
from .base_workflow import BaseWorkflow, WorkflowRun, WorkflowStep
from .helpers import (
    build_supervisor_map,
    is_valid_email,
    oversight_recipients,
    validate_escalation_draft,
)

logger = logging.getLogger(__name__)


class TransitionOutcome(NamedTuple):
    escalation: Escalation
    change: StatusChange
    notification: Optional["Future[NotificationReport]"]


def _involved(*emails: Optional[str]) -> List[str]:
    seen = set()
    result = []
    for email in emails:
        if email and email.lower() not in seen:
            seen.add(email.lower())
            result.append(email)
    return result


class EscalationWorkflowEngine(BaseWorkflow):
    """Workflow for escalation tickets."""

    def _load(self, escalation_id: str) -> Escalation:
        escalation = self._call(lambda: self.store.get_escalation(escalation_id), "read escalation")
        if escalation is None:
            raise NotFound(f"Escalation {escalation_id} not found")
        return escalation

    def _active_team_member(self, email: str):
        employee = self._call(lambda: self.store.get_employee_by_email(email), "find team member")
        if employee is None or not employee.is_active:
            raise ValidationError(f"{email} is not an active employee")
        return employee

    def create_escalation(self, principal: Principal, draft: EscalationDraft) -> Escalation:
        """
        File a new escalation.

        The owning supervisor is resolved from the current employee set.
        No ticket is stored when the department has no supervisor.

        Raises:
            ValidationError: invalid fields or unknown team member
            UnroutableDepartment: no supervisor for the department
        """
        require(principal, Action.CREATE_ESCALATION)

        settings = self.settings.get_settings()
        errors = validate_escalation_draft(draft, settings)
        if errors:
            raise ValidationError("; ".join(errors))

        employees = self._call(self.store.list_employees, "list employees")
        supervisor = build_supervisor_map(employees, self.config.supervisor_roles).get(draft.department)
        if supervisor is None:
            logger.warning(f"No supervisor configured for department {draft.department}")
            raise UnroutableDepartment(draft.department)

        team_member_email = draft.assigned_team_member_email or None
        if team_member_email:
            team_member_email = self._active_team_member(team_member_email.strip()).email

        created_by = principal.email or principal.id
        escalation = Escalation(
            id=str(uuid.uuid4()),
            student_name=draft.student_name.strip(),
            student_email=draft.student_email.strip(),
            hostel_name=draft.hostel_name.strip(),
            room_number=draft.room_number.strip(),
            description=draft.description.strip(),
            department=draft.department,
            status=settings.default_status,
            assigned_to=supervisor.name,
            supervisor_email=supervisor.email,
            assigned_team_member_email=team_member_email,
            involved_users=_involved(created_by, supervisor.email, team_member_email),
            created_by=created_by,
        )

        run = WorkflowRun("create_escalation", principal, escalation.id)
        self._execute_step(
            run, WorkflowStep("records", "write_escalation", escalation.id),
            lambda: self._call(lambda: self.store.save_escalation(escalation), "write escalation"))

        self._execute_step(
            run, WorkflowStep("notifications", "notify_supervisor", supervisor.email, required=False),
            lambda: self.dispatcher.dispatch_new_escalation(escalation))
        if team_member_email:
            self._execute_step(
                run, WorkflowStep("notifications", "notify_team_member", team_member_email, required=False),
                lambda: self.dispatcher.dispatch_team_member_assignment(escalation))

        logger.info(f"Created escalation {escalation.id} for {escalation.department}, "
                    f"routed to {supervisor.email}")
        return escalation

    def assign_team_member(self, principal: Principal, escalation_id: str,
                           team_member_email: str) -> Escalation:
        """Assign the front-line team member of a ticket and notify them."""
        if not is_valid_email(team_member_email):
            raise ValidationError("A valid team member email is required")

        escalation = self._load(escalation_id)
        require(principal, Action.ASSIGN_TEAM_MEMBER, escalation)

        member = self._active_team_member(team_member_email.strip())
        escalation.assigned_team_member_email = member.email
        escalation.involved_users = _involved(*escalation.involved_users, member.email)

        run = WorkflowRun("assign_team_member", principal, escalation_id)
        self._execute_step(
            run, WorkflowStep("records", "write_escalation", escalation_id),
            lambda: self._call(lambda: self.store.save_escalation(escalation), "write escalation"))
        self._execute_step(
            run, WorkflowStep("notifications", "notify_team_member", member.email, required=False),
            lambda: self.dispatcher.dispatch_team_member_assignment(escalation))

        logger.info(f"Assigned {member.email} to escalation {escalation_id}")
        return escalation

    def update_status(self, principal: Principal, escalation_id: str,
                      new_status: str) -> TransitionOutcome:
        """
        Move a ticket to another configured status.

        Appends exactly one history entry and fans the change out to every
        oversight recipient in the background.
        """
        escalation = self._load(escalation_id)
        require(principal, Action.TRANSITION_ESCALATION, escalation)

        settings = self.settings.get_settings()
        if new_status not in settings.statuses:
            raise ValidationError(f"Unknown status: {new_status}")
        if new_status == escalation.status:
            raise ValidationError(f"Escalation is already {new_status}")

        old_status = escalation.status
        change = StatusChange(old_status=old_status, new_status=new_status, actor=principal.label)
        escalation.status = new_status
        escalation.history = [*escalation.history, change]
        if new_status in self.config.resolved_statuses:
            escalation.resolved_at = escalation.resolved_at or change.timestamp
        else:
            escalation.resolved_at = None

        run = WorkflowRun("update_status", principal, escalation_id)
        self._execute_step(
            run, WorkflowStep("records", "write_escalation", escalation_id),
            lambda: self._call(lambda: self.store.save_escalation(escalation), "write escalation"))

        def notify():
            employees = self._call(self.store.list_employees, "list employees")
            recipients = oversight_recipients(employees, self.config.oversight_role)
            logger.info(f"Notifying {len(recipients)} oversight recipient(s) of {escalation_id}")
            return self.dispatcher.dispatch_status_update(recipients, escalation, old_status,
                                                          principal.label)

        # The transition is committed; notification failures stay in the run
        notification = self._execute_step(
            run, WorkflowStep("notifications", "notify_oversight", escalation_id, required=False),
            notify)

        logger.info(f"Escalation {escalation_id}: {old_status} -> {new_status} by {principal.id}")
        return TransitionOutcome(escalation, change, notification)

    def get_escalation(self, principal: Principal, escalation_id: str) -> Escalation:
        escalation = self._load(escalation_id)
        require(principal, Action.VIEW_ESCALATION, escalation)
        return escalation

    def list_escalations(self, principal: Principal, status: Optional[str] = None,
                         department: Optional[str] = None) -> List[Escalation]:
        require(principal, Action.VIEW_ESCALATION)
        return self._call(lambda: self.store.list_escalations(status, department), "list escalations")

    def notify_status_update(self, escalation_id: str, student_name: str, department: str,
                             old_status: str, new_status: str, updated_by: str) -> NotificationReport:
        """Send a status-update notice to every oversight recipient and wait for the outcome."""
        employees = self._call(self.store.list_employees, "list employees")
        recipients = oversight_recipients(employees, self.config.oversight_role)
        return self.dispatcher.notify_status_update(recipients, escalation_id, student_name,
                                                    department, old_status, new_status, updated_by)
