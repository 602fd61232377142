"""
Shared fixtures for the Escalation Engine tests.

Everything runs in mock mode: in-memory identity provider, record store
and mail transport, with zero retry backoff and audit logs under tmp_path.
"""

from typing import Optional

import pytest

from escalation_engine.config import EngineConfig, RetryPolicy
from escalation_engine.connectors import MockIdentityProvider, MockMailTransport
from escalation_engine.engine.state_manager import StateManager
from escalation_engine.models import Employee, EscalationDraft, Principal
from escalation_engine.services import create_services
from escalation_engine.workflows.helpers import build_claims

PROJECT_ID = "test-project"


@pytest.fixture
def config(tmp_path):
    """Engine configuration for tests."""
    return EngineConfig(
        mock_mode=True,
        audit_dir=str(tmp_path / "audit"),
        app_url="http://localhost:3001",
        retry=RetryPolicy(attempts=3, backoff_seconds=0, lookup_timeout=5, write_timeout=5),
    )


@pytest.fixture
def provider():
    return MockIdentityProvider(PROJECT_ID)


@pytest.fixture
def store():
    return StateManager()


@pytest.fixture
def transport():
    return MockMailTransport()


@pytest.fixture
def services(config, provider, store, transport):
    """Fully wired services on top of the in-memory collaborators."""
    svc = create_services(config, store=store, identity_provider=provider, transport=transport)
    yield svc
    svc.shutdown(wait=True)


def make_employee(services, name: str, email: str, role: str, department: Optional[str] = None,
                  hostel: Optional[str] = None, is_admin: bool = False, is_oversight: bool = False,
                  is_active: bool = True, claims: Optional[dict] = None) -> Employee:
    """Create an identity account and matching record directly, bypassing the workflows."""
    account = services.provider.create_account(email, "Temp-Passw0rd!", name)
    services.provider.set_custom_claims(
        account.uid, claims if claims is not None else build_claims(role, is_admin, is_oversight))
    employee = Employee(id=account.uid, name=name, email=email, role=role, department=department,
                        hostel=hostel, is_admin=is_admin, is_oversight=is_oversight,
                        is_active=is_active)
    services.store.save_employee(employee)
    return employee


def principal_for(services, employee: Employee) -> Principal:
    """Resolve the principal the gateway would build for ``employee``."""
    account = services.provider.get_account(employee.id)
    claims = dict(account.custom_claims)
    claims.update({"uid": account.uid, "email": account.email})
    return services.gateway.resolve_authorization(claims)


def auth_header(services, employee: Employee) -> dict:
    return {"Authorization": f"Bearer {services.provider.issue_token(employee.id)}"}


@pytest.fixture
def admin(services):
    return make_employee(services, "Alice Admin", "admin@hostel.edu", "Admin", is_admin=True)


@pytest.fixture
def admin_principal(services, admin):
    return principal_for(services, admin)


@pytest.fixture
def supervisor(services):
    return make_employee(services, "Sam Supervisor", "sam@hostel.edu", "Supervisor",
                         department="Water")


@pytest.fixture
def team_member(services):
    return make_employee(services, "Tina Team", "tina@hostel.edu", "Team Member",
                         department="Water")


@pytest.fixture
def staff(services):
    """A regular employee without elevated flags."""
    return make_employee(services, "Rita Regular", "rita@hostel.edu", "Team Member",
                         department="Mess")


@pytest.fixture
def oversight_staff(services):
    return [
        make_employee(services, "Olga Office", "olga@hostel.edu", "Hostel Office", hostel="Hostel A"),
        make_employee(services, "Omar Office", "omar@hostel.edu", "Hostel Office", hostel="Hostel B"),
    ]


@pytest.fixture
def draft():
    return EscalationDraft(
        student_name="Ravi Kumar",
        student_email="ravi@student.edu",
        hostel_name="Hostel A",
        room_number="A-214",
        description="No water supply on the second floor since morning.",
        department="Water",
    )
