"""
Authorization Policy for the Escalation Engine.

Pure decision functions: given an authenticated principal, an action
and optionally its target, decide whether the action is allowed.
"""

import logging
from enum import Enum
from typing import Optional, Union

from ..errors import Forbidden
from ..models import Employee, Escalation, Principal

logger = logging.getLogger(__name__)


class Action(str, Enum):
    """Mutations and reads gated by the policy."""
    CREATE_EMPLOYEE = "create_employee"
    EDIT_EMPLOYEE = "edit_employee"
    DISABLE_EMPLOYEE = "disable_employee"
    DELETE_EMPLOYEE = "delete_employee"
    EDIT_SETTINGS = "edit_settings"
    CREATE_ESCALATION = "create_escalation"
    VIEW_ESCALATION = "view_escalation"
    ASSIGN_TEAM_MEMBER = "assign_team_member"
    TRANSITION_ESCALATION = "transition_escalation"


ADMIN_ACTIONS = {
    Action.CREATE_EMPLOYEE,
    Action.EDIT_EMPLOYEE,
    Action.DISABLE_EMPLOYEE,
    Action.DELETE_EMPLOYEE,
    Action.EDIT_SETTINGS,
}

# Nobody may change their own privileges or login capability
SELF_PROTECTED_ACTIONS = {
    Action.EDIT_EMPLOYEE,
    Action.DISABLE_EMPLOYEE,
    Action.DELETE_EMPLOYEE,
}

Target = Union[str, Employee, Escalation, None]


def _same_email(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()


def is_self_target(principal: Principal, target: Target) -> bool:
    """True when an employee target refers to the principal itself."""
    if isinstance(target, Employee):
        return target.id == principal.id or _same_email(target.email, principal.email)
    if isinstance(target, str):
        return target == principal.id
    return False


def is_supervisor_of(principal: Principal, escalation: Escalation) -> bool:
    return _same_email(principal.email, escalation.supervisor_email)


def is_assigned_team_member(principal: Principal, escalation: Escalation) -> bool:
    return _same_email(principal.email, escalation.assigned_team_member_email)


def can_perform(principal: Principal, action: Action, target: Target = None) -> bool:
    """
    Decide whether ``principal`` may perform ``action`` on ``target``.

    Args:
        principal: Authenticated caller
        action: Requested action
        target: Employee id or record for employee actions, the
                escalation for ticket actions

    Returns:
        True if allowed
    """
    if action in SELF_PROTECTED_ACTIONS and is_self_target(principal, target):
        return False

    if action in ADMIN_ACTIONS:
        return principal.is_admin

    if action in (Action.CREATE_ESCALATION, Action.VIEW_ESCALATION):
        return True

    if not isinstance(target, Escalation):
        return principal.is_admin

    if action == Action.ASSIGN_TEAM_MEMBER:
        return principal.is_admin or is_supervisor_of(principal, target)

    if action == Action.TRANSITION_ESCALATION:
        return (principal.is_admin
                or is_supervisor_of(principal, target)
                or is_assigned_team_member(principal, target))

    return False


def require(principal: Principal, action: Action, target: Target = None) -> None:
    """Raise Forbidden unless the action is allowed."""
    if not can_perform(principal, action, target):
        logger.warning(f"Denied {action.value} for principal {principal.id}")
        raise Forbidden(f"You are not allowed to {action.value.replace('_', ' ')}")
