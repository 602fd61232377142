"""
Base Workflow Classes for the Escalation Engine.

Each multi-step mutation runs as a sequence of steps inside a
request-scoped WorkflowRun. A failed required step stops the operation;
a failed optional step is recorded and the operation continues. Earlier
steps are never rolled back.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..audit.audit_logger import AuditLogger
from ..config import EngineConfig
from ..engine.settings_manager import SettingsManager
from ..engine.state_manager import RecordStore
from ..errors import EngineError
from ..models import AuditRecord, Principal, WorkflowResult
from ..notifications.dispatcher import NotificationDispatcher
from .helpers import run_with_retry

logger = logging.getLogger(__name__)


class WorkflowStep:
    """Represents a single step in a workflow execution."""

    def __init__(
        self,
        system: str,
        operation: str,
        resource: str = "",
        required: bool = True,
    ):
        self.system = system
        self.operation = operation
        self.resource = resource
        self.required = required
        self.executed_at: Optional[datetime] = None
        self.success: bool = False
        self.error: Optional[str] = None

    def mark_success(self):
        """Mark step as successful."""
        self.executed_at = datetime.now(timezone.utc)
        self.success = True

    def mark_failure(self, error: str):
        """Mark step as failed."""
        self.executed_at = datetime.now(timezone.utc)
        self.success = False
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        """Convert step to dictionary for serialization."""
        return {
            "system": self.system,
            "operation": self.operation,
            "resource": self.resource,
            "required": self.required,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "success": self.success,
            "error": self.error,
        }


class WorkflowRun:
    """Request-scoped execution state of one operation."""

    def __init__(self, operation: str, principal: Principal, target_id: str = ""):
        self.workflow_id = str(uuid.uuid4())
        self.operation = operation
        self.principal = principal
        self.target_id = target_id
        self.started_at = datetime.now(timezone.utc)
        self.steps: List[WorkflowStep] = []
        self.errors: List[str] = []

    def to_result(self, message: str = "", success: bool = True) -> WorkflowResult:
        return WorkflowResult(
            workflow_id=self.workflow_id,
            operation=self.operation,
            target_id=self.target_id,
            started_at=self.started_at,
            completed_at=datetime.now(timezone.utc),
            success=success,
            message=message,
            actions_taken=[step.to_dict() for step in self.steps],
            errors=self.errors.copy(),
        )


class BaseWorkflow:
    """
    Common machinery for the lifecycle and escalation workflows.

    Instances are shared across requests; all per-operation state lives
    in WorkflowRun.
    """

    def __init__(
        self,
        store: RecordStore,
        settings: SettingsManager,
        dispatcher: NotificationDispatcher,
        audit_logger: AuditLogger,
        config: EngineConfig,
    ):
        self.store = store
        self.settings = settings
        self.dispatcher = dispatcher
        self.audit_logger = audit_logger
        self.config = config
        logger.info(f"Initialized {self.__class__.__name__}")

    def _call(self, operation: Callable[[], Any], description: str,
              timeout: Optional[float] = None) -> Any:
        """Run a record-store call with the configured retry policy."""
        retry = self.config.retry
        return run_with_retry(
            operation,
            description=description,
            attempts=retry.attempts,
            timeout=timeout or retry.write_timeout,
            backoff_seconds=retry.backoff_seconds,
        )

    def _execute_step(self, run: WorkflowRun, step: WorkflowStep,
                      action: Callable[[], Any]) -> Any:
        """
        Execute a single workflow step.

        Args:
            run: The operation the step belongs to
            step: Step description
            action: Callable performing the step

        Returns:
            The action's return value, or None when an optional step failed

        Raises:
            The action's error when the step is required
        """
        run.steps.append(step)
        try:
            result = action()
        except Exception as e:
            message = e.message if isinstance(e, EngineError) else str(e)
            step.mark_failure(message)
            run.errors.append(f"{step.system}.{step.operation}: {message}")
            self._log_audit_event(run, step)
            if step.required:
                logger.error(f"Step failed: {step.system}.{step.operation}({step.resource}): {message}")
                raise
            logger.warning(f"Optional step failed: {step.system}.{step.operation}({step.resource}): {message}")
            return None

        step.mark_success()
        self._log_audit_event(run, step)
        logger.info(f"Step completed: {step.system}.{step.operation}({step.resource})")
        return result

    def _log_audit_event(self, run: WorkflowRun, step: WorkflowStep,
                         metadata: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """
        Log an audit event for a step.

        Returns:
            Audit record ID, or None if the audit write failed
        """
        audit_record = AuditRecord(
            id=str(uuid.uuid4()),
            event_type=run.operation,
            actor=run.principal.email or run.principal.id,
            target_id=run.target_id or step.resource,
            system=step.system,
            action=step.operation,
            success=step.success,
            error_message=step.error,
            workflow_id=run.workflow_id,
            metadata=metadata or {},
        )
        try:
            return self.audit_logger.log_event(audit_record)
        except OSError as e:
            logger.error(f"Audit write failed for workflow {run.workflow_id}: {e}")
            return None
