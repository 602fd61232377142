"""
Workflows Package for the Escalation Engine.

This package provides the employee lifecycle and escalation workflows
together with the shared step, retry and validation helpers.
"""

from .base_workflow import BaseWorkflow, WorkflowRun, WorkflowStep
from .employee_lifecycle import EmployeeLifecycleManager, EmployeeUpdate
from .escalation_workflow import EscalationWorkflowEngine, TransitionOutcome
from .helpers import (
    build_claims,
    build_supervisor_map,
    create_audit_summary,
    oversight_recipients,
    run_with_retry,
    validate_escalation_draft,
    validate_new_employee,
)

__all__ = [
    "BaseWorkflow",
    "WorkflowRun",
    "WorkflowStep",
    "EmployeeLifecycleManager",
    "EmployeeUpdate",
    "EscalationWorkflowEngine",
    "TransitionOutcome",
    "build_claims",
    "build_supervisor_map",
    "create_audit_summary",
    "oversight_recipients",
    "run_with_retry",
    "validate_escalation_draft",
    "validate_new_employee",
]
