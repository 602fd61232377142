"""
Core data models for the Escalation Engine.

This module defines the Pydantic models used throughout the system
for principals, employees, escalation tickets, configuration sets,
audit records and workflow results.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ADMIN_ROLE = "Admin"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model exchanged with the UI and the document store in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmployeeAction(str, Enum):
    """Status actions an administrator can take on an employee account."""
    DISABLE = "disable"
    DELETE = "delete"


class SettingKind(str, Enum):
    """Admin-editable configuration lists."""
    DEPARTMENTS = "departments"
    STATUSES = "statuses"
    ROLES = "roles"
    HOSTELS = "hostels"


class ReasonCode(str, Enum):
    """Why a credential was rejected."""
    MISSING = "missing"
    MALFORMED = "malformed"
    EXPIRED = "expired"
    REVOKED = "revoked"
    DISABLED = "disabled"
    INVALID = "invalid"
    PROJECT_MISMATCH = "project-mismatch"


def _check_email(v: Optional[str]) -> Optional[str]:
    if v is not None and '@' not in v:
        raise ValueError('Invalid email format')
    return v


class Principal(CamelModel):
    """An authenticated caller, derived per request."""
    id: str
    email: Optional[str] = None
    is_admin: bool = False
    is_oversight: bool = False
    role: Optional[str] = None
    department: Optional[str] = None
    hostel: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        """Name used when the principal appears in history and notifications."""
        return self.display_name or self.email or self.id


class AccountRecord(CamelModel):
    """An account held by the identity provider."""
    uid: str
    email: str
    display_name: Optional[str] = None
    disabled: bool = False
    custom_claims: Dict[str, Any] = Field(default_factory=dict)


class Employee(CamelModel):
    """A managed employee account. ``id`` equals the identity provider uid."""
    id: str
    name: str
    email: str
    role: str
    department: Optional[str] = Field(None, description="Department affiliation")
    hostel: Optional[str] = Field(None, description="Hostel affiliation (oversight role)")
    is_admin: bool = False
    is_oversight: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class NewEmployeeRequest(CamelModel):
    """Input to the add-employee operation."""
    full_name: str = ""
    email: str = ""
    role: Optional[str] = None
    department: Optional[str] = None
    hostel: Optional[str] = None
    is_admin: bool = False
    is_oversight: bool = False


class StatusChange(CamelModel):
    """One immutable entry of an escalation's status history."""
    model_config = ConfigDict(frozen=True)

    old_status: str
    new_status: str
    actor: str
    timestamp: datetime = Field(default_factory=utcnow)


class EscalationDraft(CamelModel):
    """Fields supplied when a new escalation is filed."""
    student_name: str = ""
    student_email: str = ""
    hostel_name: str = ""
    room_number: str = ""
    description: str = ""
    department: str = ""
    assigned_team_member_email: Optional[str] = None


class Escalation(CamelModel):
    """A hostel maintenance/complaint ticket."""
    id: str
    student_name: str
    student_email: str
    hostel_name: str
    room_number: str
    description: str
    department: str
    status: str
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    assigned_to: str = Field(..., description="Display name of the owning supervisor")
    supervisor_email: str = Field(..., description="Routing target for the ticket")
    assigned_team_member_email: Optional[str] = None
    involved_users: List[str] = Field(default_factory=list)
    created_by: str
    history: List[StatusChange] = Field(default_factory=list)


class ConfigurationSet(CamelModel):
    """Admin-editable lists. ``statuses[0]`` is the initial ticket status."""
    departments: List[str] = Field(default_factory=list)
    statuses: List[str] = Field(default_factory=list)
    roles: List[str] = Field(default_factory=list)
    hostels: List[str] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_unique(self) -> 'ConfigurationSet':
        for kind in SettingKind:
            values = getattr(self, kind.value)
            if len(set(values)) != len(values):
                raise ValueError(f"Duplicate entries in {kind.value}")
        return self

    def values_for(self, kind: SettingKind) -> List[str]:
        return list(getattr(self, kind.value))

    @property
    def default_status(self) -> str:
        if not self.statuses:
            raise ValueError("No statuses are configured")
        return self.statuses[0]


class AuditRecord(BaseModel):
    """Audit record of a single workflow step."""
    id: str = Field(..., description="Unique audit record ID")
    timestamp: datetime = Field(default_factory=utcnow)
    event_type: str = Field(..., description="Operation that produced the step")
    actor: str = Field(..., description="Principal that triggered the operation")
    target_id: str = Field("", description="Employee or escalation affected")
    system: str = Field(..., description="identity, records or notifications")
    action: str
    success: bool
    error_message: Optional[str] = None
    workflow_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WorkflowResult(BaseModel):
    """Result of a complete multi-step operation."""
    workflow_id: str
    operation: str
    target_id: str = ""
    started_at: datetime
    completed_at: Optional[datetime] = None
    success: bool = True
    message: str = ""
    actions_taken: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def partial(self) -> bool:
        """True when the operation succeeded but a best-effort step failed."""
        return self.success and bool(self.errors)


class ProvisionResult(BaseModel):
    """Outcome of adding an employee."""
    employee_id: str
    email: str
    created: bool
    message: str
    workflow: WorkflowResult


class NotificationReport(BaseModel):
    """Aggregate outcome of a notification fan-out."""
    total_sent: int = 0
    total_failed: int = 0
    failed_recipients: List[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.total_sent + self.total_failed
