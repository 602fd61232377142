"""
Employee Lifecycle Workflow for the Escalation Engine.

Creates, edits, disables and deletes employee accounts. Each operation
touches both the identity provider and the employee record; the record is
the source of truth and secondary identity-provider steps are best effort.
"""

import logging
from typing import Any, Dict, List, NamedTuple, Union

from ..engine.policy import Action, is_self_target, require
from ..errors import Forbidden, NotFound, ValidationError
from ..models import (
    ADMIN_ROLE,
    Employee,
    EmployeeAction,
    NewEmployeeRequest,
    Principal,
    ProvisionResult,
    WorkflowResult,
)
from .base_workflow import BaseWorkflow, WorkflowRun, WorkflowStep
from .helpers import build_claims, is_oversight_role, validate_new_employee

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"department", "role"}


class EmployeeUpdate(NamedTuple):
    employee: Employee
    updated_fields: List[str]
    workflow: WorkflowResult


class EmployeeLifecycleManager(BaseWorkflow):
    """
    Workflow for employee account lifecycle events.

    ``gateway`` is the IdentityGateway used for every identity-provider call.
    """

    def __init__(self, gateway, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gateway = gateway

    def _require_admin(self, principal: Principal, action: Action):
        if not principal.is_admin:
            logger.warning(f"Denied {action.value} for non-admin {principal.id}")
            raise Forbidden("Only administrators can manage employees")

    def _find(self, employee_id: str):
        found = self._call(lambda: self.store.find_employee(employee_id), "find employee record")
        if not found:
            raise NotFound(f"Employee {employee_id} not found")
        return found

    def add_employee(self, principal: Principal, request: NewEmployeeRequest) -> ProvisionResult:
        """
        Invite a new employee, or refresh an existing one with the same email.

        Steps: get-or-create the identity account, set its authorization
        claims, write the employee record, then issue a password-reset link
        and hand the invitation to the dispatcher (both best effort).

        Raises:
            Forbidden: caller is not an admin
            ValidationError: missing or contradictory fields
            Conflict: identity provider reports the email taken but cannot return it
            UpstreamTimeout/UpstreamFailure: external calls exhausted their retries
        """
        require(principal, Action.CREATE_EMPLOYEE)

        request = request.model_copy(update={
            "full_name": request.full_name.strip(),
            "email": request.email.strip().lower(),
        })
        errors = validate_new_employee(request, self.settings.get_settings(),
                                       self.config.oversight_role)
        if errors:
            raise ValidationError("; ".join(errors))
        if request.email == (principal.email or "").strip().lower():
            raise ValidationError("You cannot modify your own account")

        is_oversight = request.is_oversight or is_oversight_role(request.role, self.config.oversight_role)
        role = request.role or (ADMIN_ROLE if request.is_admin else self.config.oversight_role)

        run = WorkflowRun("add_employee", principal)
        logger.info(f"Starting add_employee workflow {run.workflow_id} for {request.email}")

        account, created = self._execute_step(
            run, WorkflowStep("identity", "provision_account", request.email),
            lambda: self.gateway.provision_account(request.email, request.full_name))
        run.target_id = account.uid
        # Tokens without an email claim are only caught by account id
        if is_self_target(principal, account.uid):
            raise ValidationError("You cannot modify your own account")

        claims = build_claims(role, request.is_admin, is_oversight)
        self._execute_step(
            run, WorkflowStep("identity", "set_authorization_claims", account.uid),
            lambda: self.gateway.set_authorization_claims(account.uid, claims))

        def write_record():
            found = self.store.find_employee(account.uid)
            doc_key, previous = found if found else (None, None)
            employee = Employee(
                id=account.uid,
                name=request.full_name,
                email=request.email,
                role=role,
                department=request.department,
                hostel=request.hostel,
                is_admin=request.is_admin,
                is_oversight=is_oversight,
                is_active=True,
            )
            if previous:
                employee.created_at = previous.created_at
            return self.store.save_employee(employee, doc_key)

        self._execute_step(
            run, WorkflowStep("records", "write_employee", account.uid),
            lambda: self._call(write_record, "write employee record"))

        reset_link = self._execute_step(
            run, WorkflowStep("identity", "generate_password_reset_link", account.uid, required=False),
            lambda: self.gateway.generate_password_reset_link(request.email))

        if reset_link:
            self._execute_step(
                run, WorkflowStep("notifications", "send_invitation", request.email, required=False),
                lambda: self.dispatcher.dispatch_invitation(request.email, request.full_name, reset_link))

        message = ("Employee added successfully. An invitation email has been sent."
                   if created else "Employee already exists; account and record have been updated.")
        if run.errors:
            message += " Some follow-up steps failed: " + "; ".join(run.errors)

        logger.info(f"Completed add_employee workflow {run.workflow_id}: {len(run.steps)} steps, "
                    f"{len(run.errors)} errors")
        return ProvisionResult(
            employee_id=account.uid,
            email=request.email,
            created=created,
            message=message,
            workflow=run.to_result(message),
        )

    def update_employee(self, principal: Principal, employee_id: str,
                        updates: Dict[str, Any]) -> EmployeeUpdate:
        """
        Apply a partial update of department and/or role.

        The record is updated first; mirroring a changed role into the
        identity provider's claims is best effort.
        """
        self._require_admin(principal, Action.EDIT_EMPLOYEE)

        if not employee_id or not updates:
            raise ValidationError("Missing required fields: employeeId and updates")

        invalid = sorted(set(updates) - UPDATABLE_FIELDS)
        if invalid:
            raise ValidationError(f"Invalid fields for update: {', '.join(invalid)}. "
                                  f"Only department and role can be updated.")

        if is_self_target(principal, employee_id):
            raise ValidationError("You cannot modify your own account")

        settings = self.settings.get_settings()
        role = updates.get("role")
        department = updates.get("department")
        if "role" in updates and role not in settings.roles:
            raise ValidationError(f"Unknown role: {role}")
        if "department" in updates and department is not None and department not in settings.departments:
            raise ValidationError(f"Unknown department: {department}")

        doc_key, current = self._find(employee_id)
        require(principal, Action.EDIT_EMPLOYEE, current)

        run = WorkflowRun("update_employee", principal, employee_id)
        fields = {name: updates[name] for name in sorted(updates)}

        employee = self._execute_step(
            run, WorkflowStep("records", "update_employee", employee_id),
            lambda: self._call(lambda: self.store.update_employee(doc_key, fields),
                               "update employee record"))

        if "role" in fields and fields["role"] != current.role:
            self._execute_step(
                run, WorkflowStep("identity", "mirror_role", employee_id, required=False),
                lambda: self.gateway.mirror_role(employee_id, fields["role"]))

        message = "Employee updated successfully"
        if run.errors:
            message += " (role claim could not be refreshed; it will apply on the next record read)"

        return EmployeeUpdate(employee, list(fields), run.to_result(message))

    def set_employee_status(self, principal: Principal, employee_id: str,
                            action: Union[EmployeeAction, str]) -> WorkflowResult:
        """
        Disable login for an employee or delete the employee.

        ``disable`` leaves the record untouched. ``delete`` removes the
        record first, then best-effort removes the identity account; an
        account that is already gone does not fail the operation.
        """
        self._require_admin(principal, Action.DELETE_EMPLOYEE)

        if not employee_id or not action:
            raise ValidationError("Missing required fields: employeeId and action")
        try:
            action = EmployeeAction(action)
        except ValueError:
            raise ValidationError('Invalid action. Must be "disable" or "delete"')

        if is_self_target(principal, employee_id):
            raise ValidationError(f"You cannot {action.value} your own account")

        doc_key, employee = self._find(employee_id)
        policy_action = Action.DISABLE_EMPLOYEE if action == EmployeeAction.DISABLE else Action.DELETE_EMPLOYEE
        require(principal, policy_action, employee)

        run = WorkflowRun(f"{action.value}_employee", principal, employee_id)

        if action == EmployeeAction.DISABLE:
            self._execute_step(
                run, WorkflowStep("identity", "disable_login", employee_id),
                lambda: self.gateway.set_login_enabled(employee_id, False))
            return run.to_result("Employee account disabled successfully")

        self._execute_step(
            run, WorkflowStep("records", "delete_employee", employee_id),
            lambda: self._call(lambda: self.store.delete_employee(doc_key), "delete employee record"))

        removed = self._execute_step(
            run, WorkflowStep("identity", "remove_account", employee_id, required=False),
            lambda: self.gateway.remove_account(employee_id))

        if removed:
            message = "Employee deleted successfully"
        elif run.errors:
            message = "Employee record deleted; the login account could not be removed"
        else:
            message = "Employee record deleted; the login account was already removed"

        logger.info(f"Deleted employee {employee_id}: {message}")
        return run.to_result(message)

    def list_employees(self, principal: Principal) -> List[Employee]:
        """All employees, ordered by name."""
        employees = self._call(self.store.list_employees, "list employees")
        return sorted(employees, key=lambda e: e.name.lower())
