"""
FastAPI Server for the Escalation Engine.

Provides the JSON API consumed by the web UI: employee management,
escalation tickets, configuration sets, the session endpoint and the
internal status-notification trigger.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, Field

from .. import __version__
from ..config import load_config
from ..errors import EngineError, Forbidden, ValidationError
from ..models import CamelModel, EscalationDraft, NewEmployeeRequest, Principal, SettingKind
from ..services import Services, create_services

logger = logging.getLogger(__name__)


# Pydantic models for API requests
class AddEmployeeRequest(CamelModel):
    """Add employee request."""
    full_name: str = Field("", description="Employee full name")
    email: str = Field("", description="Login email")
    role: Optional[str] = None
    department: Optional[str] = None
    hostel: Optional[str] = None
    is_admin: bool = False
    is_oversight: bool = Field(
        False, validation_alias=AliasChoices("isOversight", "isCRM", "is_oversight"))


class ManageStatusRequest(CamelModel):
    """Disable or delete an employee."""
    employee_id: str = ""
    action: str = ""


class UpdateEmployeeRequest(CamelModel):
    """Partial update of an employee's department and role."""
    employee_id: str = ""
    updates: Dict[str, Any] = Field(default_factory=dict)


class StatusNotificationRequest(CamelModel):
    """Internal trigger for the oversight status notification."""
    escalation_id: Optional[str] = None
    student_name: Optional[str] = None
    department: Optional[str] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    updated_by: Optional[str] = None


class StatusTransitionRequest(CamelModel):
    status: str


class AssignTeamMemberRequest(CamelModel):
    team_member_email: str


class SettingValueRequest(CamelModel):
    value: str


class SettingRenameRequest(CamelModel):
    old_value: str
    new_value: str


# Global components (initialized on startup)
services: Optional[Services] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global services

    if services is None:
        logger.info("Initializing Escalation Engine API server components")
        services = create_services(load_config(os.environ.get("ESCALATION_CONFIG")))

    yield

    logger.info("Shutting down Escalation Engine API server")
    services.shutdown(wait=False)


# Create FastAPI app
app = FastAPI(
    title="Escalation Engine API",
    description="Hostel escalation tracking - employee lifecycle and ticket workflow API",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    )
    return JSONResponse(status_code=400,
                        content=ValidationError(f"Invalid request: {details}").to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={
        "success": False, "error": "internal_error", "message": "Internal server error"})


def get_services() -> Services:
    if services is None:
        raise EngineError("Service components are not initialized")
    return services


def get_principal(authorization: Optional[str] = Header(None),
                  svc: Services = Depends(get_services)) -> Principal:
    """Authenticate the caller from the Authorization header."""
    return svc.gateway.authenticate(authorization)


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Escalation Engine API", "version": __version__, "status": "running"}


@app.get("/health")
def health_check(svc: Services = Depends(get_services)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "mock_mode": svc.provider.is_mock_mode(),
        "components": {
            svc.provider.get_system_name(): svc.provider.__class__.__name__,
            "record_store": svc.store.__class__.__name__,
            svc.transport.get_system_name(): svc.transport.__class__.__name__,
        },
    }


@app.post("/api/employees/add")
def add_employee(body: AddEmployeeRequest, principal: Principal = Depends(get_principal),
                 svc: Services = Depends(get_services)):
    """Invite an employee: identity account, claims, record and reset link."""
    request = NewEmployeeRequest(**body.model_dump())
    result = svc.lifecycle.add_employee(principal, request)
    return {
        "success": True,
        "employeeId": result.employee_id,
        "email": result.email,
        "message": result.message,
    }


@app.post("/api/employees/manage-status")
def manage_employee_status(body: ManageStatusRequest, principal: Principal = Depends(get_principal),
                           svc: Services = Depends(get_services)):
    """Disable login for an employee or delete the employee."""
    result = svc.lifecycle.set_employee_status(principal, body.employee_id, body.action)
    return {"success": True, "message": result.message}


@app.put("/api/employees/update")
def update_employee(body: UpdateEmployeeRequest, principal: Principal = Depends(get_principal),
                    svc: Services = Depends(get_services)):
    """Update an employee's department and/or role."""
    outcome = svc.lifecycle.update_employee(principal, body.employee_id, body.updates)
    return {
        "success": True,
        "message": outcome.workflow.message,
        "updatedFields": outcome.updated_fields,
    }


@app.get("/api/employees")
def list_employees(principal: Principal = Depends(get_principal),
                   svc: Services = Depends(get_services)):
    employees = svc.lifecycle.list_employees(principal)
    return {"success": True, "employees": [_dump(e) for e in employees]}


@app.get("/stats")
def get_system_stats(days: int = Query(30, ge=1, description="Audit period in days"),
                     principal: Principal = Depends(get_principal),
                     svc: Services = Depends(get_services)):
    """Record counts and audited activity for administrators."""
    if not principal.is_admin:
        raise Forbidden("Only administrators can view system statistics")

    end_date = datetime.now(timezone.utc)
    report = svc.audit_logger.generate_activity_report(end_date - timedelta(days=days), end_date)
    return {
        "timestamp": end_date.isoformat(),
        "records": svc.store.get_state_summary(),
        "activity": report,
    }


@app.post("/api/notifications/crm-status-update")
def status_update_notification(body: StatusNotificationRequest,
                               svc: Services = Depends(get_services)):
    """Send a status-update notice to every oversight recipient."""
    fields = body.model_dump()
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise ValidationError("Missing required fields")

    report = svc.escalations.notify_status_update(**fields)
    return {
        "success": True,
        "message": (f"Status notifications sent: {report.total_sent} successful, "
                    f"{report.total_failed} failed"),
        "totalSent": report.total_sent,
        "totalFailed": report.total_failed,
    }


@app.post("/api/escalations")
def create_escalation(body: EscalationDraft, principal: Principal = Depends(get_principal),
                      svc: Services = Depends(get_services)):
    escalation = svc.escalations.create_escalation(principal, body)
    return {"success": True, "escalation": _dump(escalation)}


@app.get("/api/escalations")
def list_escalations(
    status: Optional[str] = Query(None, description="Filter by status"),
    department: Optional[str] = Query(None, description="Filter by department"),
    principal: Principal = Depends(get_principal),
    svc: Services = Depends(get_services),
):
    escalations = svc.escalations.list_escalations(principal, status, department)
    return {"success": True, "escalations": [_dump(e) for e in escalations]}


@app.get("/api/escalations/{escalation_id}")
def get_escalation(escalation_id: str, principal: Principal = Depends(get_principal),
                   svc: Services = Depends(get_services)):
    escalation = svc.escalations.get_escalation(principal, escalation_id)
    return {"success": True, "escalation": _dump(escalation)}


@app.post("/api/escalations/{escalation_id}/status")
def update_escalation_status(escalation_id: str, body: StatusTransitionRequest,
                             principal: Principal = Depends(get_principal),
                             svc: Services = Depends(get_services)):
    outcome = svc.escalations.update_status(principal, escalation_id, body.status)
    return {
        "success": True,
        "message": f"Status changed from {outcome.change.old_status} to {outcome.change.new_status}",
        "escalation": _dump(outcome.escalation),
    }


@app.post("/api/escalations/{escalation_id}/assign")
def assign_team_member(escalation_id: str, body: AssignTeamMemberRequest,
                       principal: Principal = Depends(get_principal),
                       svc: Services = Depends(get_services)):
    escalation = svc.escalations.assign_team_member(principal, escalation_id, body.team_member_email)
    return {"success": True, "escalation": _dump(escalation)}


@app.get("/api/settings")
def get_settings(principal: Principal = Depends(get_principal),
                 svc: Services = Depends(get_services)):
    return {"success": True, "settings": _dump(svc.settings.get_settings())}


@app.post("/api/settings/{kind}")
def add_setting(kind: SettingKind, body: SettingValueRequest,
                principal: Principal = Depends(get_principal),
                svc: Services = Depends(get_services)):
    settings = svc.settings.add_setting(principal, kind, body.value)
    return {"success": True, "settings": _dump(settings)}


@app.put("/api/settings/{kind}")
def rename_setting(kind: SettingKind, body: SettingRenameRequest,
                   principal: Principal = Depends(get_principal),
                   svc: Services = Depends(get_services)):
    settings = svc.settings.rename_setting(principal, kind, body.old_value, body.new_value)
    return {"success": True, "settings": _dump(settings)}


@app.delete("/api/settings/{kind}/{value}")
def remove_setting(kind: SettingKind, value: str, principal: Principal = Depends(get_principal),
                   svc: Services = Depends(get_services)):
    settings = svc.settings.remove_setting(principal, kind, value)
    return {"success": True, "settings": _dump(settings)}


@app.get("/api/me")
def current_principal(principal: Principal = Depends(get_principal)):
    """The resolved caller: identity, flags and affiliation."""
    return {"success": True, "principal": _dump(principal)}


@app.post("/api/me/refresh")
def refresh_principal(principal: Principal = Depends(get_principal),
                      svc: Services = Depends(get_services)):
    """Re-read the caller's claims from the identity provider."""
    refreshed = svc.gateway.refresh_principal(principal.id)
    return {"success": True, "principal": _dump(refreshed)}


def start_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Start the FastAPI server."""
    uvicorn.run(
        "escalation_engine.api.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    start_server()
