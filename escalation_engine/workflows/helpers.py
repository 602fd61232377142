"""
Workflow Helper Functions for the Escalation Engine.

Utility functions for workflow processing, including bounded retry of
external calls, input validation, supervisor routing and recipient
selection.
"""

import logging
import re
import secrets
import string
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from ..connectors.base_connector import ProviderError
from ..errors import EngineError, UpstreamFailure, UpstreamTimeout
from ..models import ConfigurationSet, Employee, EscalationDraft, NewEmployeeRequest, WorkflowResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

OVERSIGHT_ROLE_ALIASES = ("CRM",)


def is_retryable(error: BaseException) -> bool:
    """
    Decide whether a failed external call may be attempted again.

    Provider errors carrying a definitive code (not found, already
    exists, invalid credential) and classified engine errors are final.
    """
    if isinstance(error, ProviderError):
        return error.code == ProviderError.UNAVAILABLE
    if isinstance(error, EngineError):
        return False
    return True


def run_with_retry(
    operation: Callable[[], T],
    *,
    description: str,
    attempts: int = 3,
    timeout: float = 30.0,
    backoff_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    retryable: Callable[[BaseException], bool] = is_retryable,
) -> T:
    """
    Run a blocking external call with a per-attempt timeout and bounded retry.

    Args:
        operation: Zero-argument callable performing the call
        description: Short label used in logs and error messages
        attempts: Attempt ceiling
        timeout: Wall-clock limit for a single attempt, in seconds
        backoff_seconds: Delay multiplied by the attempt number between attempts
        sleep: Sleep function, replaceable in tests
        retryable: Predicate deciding whether an error may be retried

    Returns:
        The operation's return value

    Raises:
        Non-retryable errors unchanged, UpstreamTimeout when the final
        attempt timed out, UpstreamFailure otherwise.
    """
    last_error: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(operation)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            last_error = TimeoutError(f"{description} timed out after {timeout}s")
            logger.warning(f"{description}: attempt {attempt}/{attempts} timed out")
        except Exception as e:
            if not retryable(e):
                raise
            last_error = e
            logger.warning(f"{description}: attempt {attempt}/{attempts} failed: {e}")
        finally:
            # A timed-out call keeps running in its worker; do not wait for it
            executor.shutdown(wait=False)

        if attempt < attempts and backoff_seconds > 0:
            sleep(backoff_seconds * attempt)

    if isinstance(last_error, TimeoutError):
        logger.error(f"{description}: timed out after {attempts} attempts")
        raise UpstreamTimeout(f"{description} timed out", operation=description)

    logger.error(f"{description}: failed after {attempts} attempts: {last_error}")
    raise UpstreamFailure(f"{description} failed: upstream service unavailable",
                          operation=description)


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email.strip()))


def is_oversight_role(role: Optional[str], oversight_role: str) -> bool:
    """True for the oversight role and its legacy alias."""
    return bool(role) and (role == oversight_role or role in OVERSIGHT_ROLE_ALIASES)


def validate_new_employee(
    request: NewEmployeeRequest,
    settings: ConfigurationSet,
    oversight_role: str,
) -> List[str]:
    """
    Validate an add-employee request.

    A role is required unless the account is an admin or carries the
    oversight capability. The oversight role is affiliated with a hostel,
    every other role with a department.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if not request.full_name or not request.full_name.strip():
        errors.append("Full name is required")

    if not request.email or not request.email.strip():
        errors.append("Email is required")
    elif not is_valid_email(request.email):
        errors.append("Invalid email format")

    if request.department and request.hostel:
        errors.append("An employee is affiliated with a department or a hostel, not both")

    privileged = request.is_admin or request.is_oversight
    if not privileged:
        if not request.role:
            errors.append("Role is required for non-admin employees")
        elif is_oversight_role(request.role, oversight_role):
            if not request.hostel:
                errors.append(f"Hostel is required for the {request.role} role")
        elif not request.department:
            errors.append("Department is required for this role")

    if request.role and request.role not in settings.roles:
        errors.append(f"Unknown role: {request.role}")
    if request.department and request.department not in settings.departments:
        errors.append(f"Unknown department: {request.department}")
    if request.hostel and request.hostel not in settings.hostels:
        errors.append(f"Unknown hostel: {request.hostel}")

    return errors


def validate_escalation_draft(draft: EscalationDraft, settings: ConfigurationSet) -> List[str]:
    """
    Validate the fields of a new escalation.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if len(draft.student_name.strip()) < 2:
        errors.append("Student name must be at least 2 characters")
    if not is_valid_email(draft.student_email):
        errors.append("Please enter a valid student email")
    if not draft.hostel_name.strip():
        errors.append("Hostel name is required")
    if not draft.room_number.strip():
        errors.append("Room number is required")

    description = draft.description.strip()
    if len(description) < 10:
        errors.append("Description must be at least 10 characters")
    elif len(description) > 500:
        errors.append("Description must not exceed 500 characters")

    if not draft.department:
        errors.append("Department is required")
    elif draft.department not in settings.departments:
        errors.append(f"Unknown department: {draft.department}")

    if draft.assigned_team_member_email and not is_valid_email(draft.assigned_team_member_email):
        errors.append("Invalid team member email")

    return errors


def build_supervisor_map(employees: Iterable[Employee], supervisor_roles: List[str]) -> Dict[str, Employee]:
    """
    Map each department to its routing supervisor.

    Only active employees holding a supervisor role count. When several
    supervisors share a department the earliest created wins, so routing
    stays stable as supervisors are added.
    """
    supervisors: Dict[str, Employee] = {}
    candidates = sorted(
        (e for e in employees if e.is_active and e.department and e.role in supervisor_roles),
        key=lambda e: (e.created_at, e.id),
    )
    for employee in candidates:
        supervisors.setdefault(employee.department, employee)
    return supervisors


def oversight_recipients(employees: Iterable[Employee], oversight_role: str) -> List[str]:
    """Distinct emails of active employees holding the oversight capability."""
    recipients: List[str] = []
    seen = set()
    for employee in employees:
        if not employee.is_active:
            continue
        if not (employee.is_oversight or is_oversight_role(employee.role, oversight_role)):
            continue
        key = employee.email.lower()
        if key not in seen:
            seen.add(key)
            recipients.append(employee.email)
    return recipients


def build_claims(role: Optional[str], is_admin: bool, is_oversight: bool) -> Dict[str, Any]:
    """Custom claims attached to an account so credentials carry its flags."""
    claims: Dict[str, Any] = {"isAdmin": bool(is_admin), "isOversight": bool(is_oversight)}
    if role:
        claims["role"] = role
    return claims


def generate_temp_password(length: int = 16) -> str:
    """Generate a one-time password satisfying common complexity rules."""
    alphabet = string.ascii_letters + string.digits + "!@#$%^&*"
    while True:
        password = ''.join(secrets.choice(alphabet) for _ in range(length))
        if (any(c.islower() for c in password) and any(c.isupper() for c in password)
                and any(c.isdigit() for c in password)):
            return password


def create_audit_summary(workflow_result: WorkflowResult) -> Dict[str, Any]:
    """
    Create a summary of an operation for auditing and CLI output.

    Args:
        workflow_result: WorkflowResult object

    Returns:
        Dictionary with audit summary
    """
    successful_actions = len([a for a in workflow_result.actions_taken if a.get('success', False)])
    total_actions = len(workflow_result.actions_taken)

    return {
        'workflow_id': workflow_result.workflow_id,
        'operation': workflow_result.operation,
        'target_id': workflow_result.target_id,
        'started_at': workflow_result.started_at.isoformat() if workflow_result.started_at else None,
        'completed_at': workflow_result.completed_at.isoformat() if workflow_result.completed_at else None,
        'success': workflow_result.success,
        'partial': workflow_result.partial,
        'total_actions': total_actions,
        'successful_actions': successful_actions,
        'failed_actions': total_actions - successful_actions,
        'errors': workflow_result.errors
    }
