"""
Tests for the employee lifecycle workflow.
"""

from unittest.mock import patch

import pytest

from conftest import make_employee, principal_for
from escalation_engine.connectors.base_connector import ProviderError
from escalation_engine.errors import Forbidden, NotFound, UpstreamFailure, ValidationError
from escalation_engine.models import Employee, NewEmployeeRequest, Principal


@pytest.fixture
def lifecycle(services):
    return services.lifecycle


class TestAddEmployee:

    def test_add_supervisor(self, services, lifecycle, admin_principal):
        """Test a new employee gets an account, claims, record and invitation link."""
        request = NewEmployeeRequest(full_name="  Jane Doe ", email=" Jane@X.com ",
                                     role="Supervisor", department="Water")

        result = lifecycle.add_employee(admin_principal, request)

        assert result.created
        assert result.email == "jane@x.com"
        account = services.provider.get_account(result.employee_id)
        assert account.custom_claims == {"isAdmin": False, "isOversight": False, "role": "Supervisor"}

        _, employee = services.store.find_employee(result.employee_id)
        assert employee.name == "Jane Doe"
        assert employee.department == "Water"
        assert employee.is_active

        assert len(services.provider.reset_links) == 1
        operations = [a["operation"] for a in result.workflow.actions_taken]
        assert operations == ["provision_account", "set_authorization_claims", "write_employee",
                              "generate_password_reset_link", "send_invitation"]
        assert not result.workflow.errors

    def test_adding_twice_is_idempotent(self, services, lifecycle, admin_principal):
        request = NewEmployeeRequest(full_name="Jane Doe", email="jane@x.com",
                                     role="Supervisor", department="Water")

        first = lifecycle.add_employee(admin_principal, request)
        second = lifecycle.add_employee(admin_principal, request)

        assert second.employee_id == first.employee_id
        assert not second.created
        assert "already exists" in second.message
        matching = [e for e in services.store.list_employees() if e.email == "jane@x.com"]
        assert len(matching) == 1

    def test_readd_keeps_document_key(self, services, lifecycle, admin_principal):
        account = services.provider.create_account("kim@hostel.edu", "pw", "Kim")
        services.store.save_employee(
            Employee(id=account.uid, name="Kim", email="kim@hostel.edu", role="Team Member",
                     department="Mess"), doc_key="legacy-doc")

        lifecycle.add_employee(admin_principal, NewEmployeeRequest(
            full_name="Kim", email="kim@hostel.edu", role="Team Member", department="Water"))

        doc_key, employee = services.store.find_employee(account.uid)
        assert doc_key == "legacy-doc"
        assert employee.department == "Water"

    def test_round_trip_team_member(self, services, lifecycle, admin_principal):
        """Test an added employee authenticates with the role and department just set."""
        result = lifecycle.add_employee(admin_principal, NewEmployeeRequest(
            full_name="Tom Fixer", email="tom@hostel.edu", role="Team Member",
            department="Maintenance"))

        token = services.provider.issue_token(result.employee_id)
        principal = services.gateway.authenticate(f"Bearer {token}")

        assert principal.role == "Team Member"
        assert principal.department == "Maintenance"
        assert not principal.is_admin
        assert not principal.is_oversight

    def test_oversight_role_sets_flag(self, services, lifecycle, admin_principal):
        result = lifecycle.add_employee(admin_principal, NewEmployeeRequest(
            full_name="Olga", email="olga@hostel.edu", role="Hostel Office", hostel="Hostel A"))

        _, employee = services.store.find_employee(result.employee_id)
        assert employee.is_oversight
        assert services.provider.get_account(result.employee_id).custom_claims["isOversight"]

    def test_admin_without_role(self, services, lifecycle, admin_principal):
        result = lifecycle.add_employee(admin_principal, NewEmployeeRequest(
            full_name="Second Admin", email="admin2@hostel.edu", is_admin=True))

        _, employee = services.store.find_employee(result.employee_id)
        assert employee.role == "Admin"
        assert employee.is_admin

    def test_non_admin_forbidden(self, services, lifecycle, staff):
        with pytest.raises(Forbidden):
            lifecycle.add_employee(principal_for(services, staff), NewEmployeeRequest(
                full_name="X", email="x@hostel.edu", role="Supervisor", department="Water"))

    def test_validation_errors_are_joined(self, lifecycle, admin_principal):
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.add_employee(admin_principal, NewEmployeeRequest(email="bad"))

        assert "Full name is required" in exc_info.value.message
        assert "Invalid email format" in exc_info.value.message

    def test_reset_link_failure_is_partial(self, services, lifecycle, admin_principal):
        """Test a failed invitation does not fail the operation."""
        down = ProviderError(ProviderError.UNAVAILABLE, "backend down")

        with patch.object(services.provider, "generate_password_reset_link", side_effect=down):
            result = lifecycle.add_employee(admin_principal, NewEmployeeRequest(
                full_name="Pat", email="pat@hostel.edu", role="Supervisor", department="Mess"))

        assert result.workflow.partial
        assert services.store.find_employee(result.employee_id) is not None
        assert "Some follow-up steps failed" in result.message

    def test_claims_failure_stops_before_record(self, services, lifecycle, admin_principal):
        down = ProviderError(ProviderError.UNAVAILABLE, "backend down")

        with patch.object(services.provider, "set_custom_claims", side_effect=down):
            with pytest.raises(UpstreamFailure):
                lifecycle.add_employee(admin_principal, NewEmployeeRequest(
                    full_name="Pat", email="pat@hostel.edu", role="Supervisor", department="Mess"))

        assert services.store.get_employee_by_email("pat@hostel.edu") is None

    def test_audit_trail_written(self, services, lifecycle, admin_principal):
        result = lifecycle.add_employee(admin_principal, NewEmployeeRequest(
            full_name="Jane Doe", email="jane@x.com", role="Supervisor", department="Water"))

        events = services.audit_logger.get_events(workflow_id=result.workflow.workflow_id)

        assert len(events) == 5
        assert all(e.actor == "admin@hostel.edu" for e in events)

    def test_readding_own_email_rejected(self, services, lifecycle, admin_principal, admin):
        """Test an admin cannot overwrite their own flags through a re-invite."""
        claims_before = services.provider.get_account(admin.id).custom_claims

        with pytest.raises(ValidationError):
            lifecycle.add_employee(admin_principal, NewEmployeeRequest(
                full_name="Alice Admin", email="ADMIN@hostel.edu", role="Team Member",
                department="Mess"))

        assert services.provider.get_account(admin.id).custom_claims == claims_before
        _, employee = services.store.find_employee(admin.id)
        assert employee.is_admin
        assert employee.role == "Admin"

    def test_own_account_matched_by_id(self, services, lifecycle, admin):
        caller = Principal(id=admin.id, is_admin=True)

        with pytest.raises(ValidationError):
            lifecycle.add_employee(caller, NewEmployeeRequest(
                full_name="Alice Admin", email="admin@hostel.edu", role="Team Member",
                department="Mess"))

        _, employee = services.store.find_employee(admin.id)
        assert employee.is_admin


class TestUpdateEmployee:

    def test_update_department_and_role(self, services, lifecycle, admin_principal, staff):
        outcome = lifecycle.update_employee(admin_principal, staff.id,
                                            {"role": "Supervisor", "department": "Water"})

        assert outcome.updated_fields == ["department", "role"]
        assert outcome.employee.role == "Supervisor"
        assert services.provider.get_account(staff.id).custom_claims["role"] == "Supervisor"

    def test_disallowed_fields_leave_record_untouched(self, services, lifecycle, admin_principal,
                                                      staff):
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.update_employee(admin_principal, staff.id,
                                      {"department": "Water", "isAdmin": True})

        assert "isAdmin" in exc_info.value.message
        _, employee = services.store.find_employee(staff.id)
        assert employee.department == "Mess"
        assert not employee.is_admin

    def test_self_update_rejected(self, lifecycle, admin_principal):
        with pytest.raises(ValidationError):
            lifecycle.update_employee(admin_principal, admin_principal.id, {"department": "Water"})

    def test_non_admin_forbidden(self, services, lifecycle, staff, supervisor):
        with pytest.raises(Forbidden):
            lifecycle.update_employee(principal_for(services, staff), supervisor.id,
                                      {"department": "Mess"})

    def test_unknown_values(self, lifecycle, admin_principal, staff):
        with pytest.raises(ValidationError):
            lifecycle.update_employee(admin_principal, staff.id, {"role": "Janitor"})
        with pytest.raises(ValidationError):
            lifecycle.update_employee(admin_principal, staff.id, {"department": "Laundry"})

    def test_missing_employee(self, lifecycle, admin_principal):
        with pytest.raises(NotFound):
            lifecycle.update_employee(admin_principal, "nobody", {"department": "Water"})

    def test_role_mirror_failure_is_partial(self, services, lifecycle, admin_principal, staff):
        """Test the record update stands when the claim refresh fails."""
        with patch.object(services.gateway, "mirror_role",
                          side_effect=UpstreamFailure("identity down")):
            outcome = lifecycle.update_employee(admin_principal, staff.id, {"role": "Supervisor"})

        assert outcome.workflow.partial
        _, employee = services.store.find_employee(staff.id)
        assert employee.role == "Supervisor"

    def test_update_with_foreign_document_key(self, services, lifecycle, admin_principal):
        account = services.provider.create_account("lee@hostel.edu", "pw", "Lee")
        services.store.save_employee(
            Employee(id=account.uid, name="Lee", email="lee@hostel.edu", role="Team Member",
                     department="Mess"), doc_key="random-doc-key")

        outcome = lifecycle.update_employee(admin_principal, account.uid, {"department": "Water"})

        assert outcome.employee.department == "Water"
        assert services.store.find_employee(account.uid)[0] == "random-doc-key"


class TestSetEmployeeStatus:

    def test_disable_keeps_record(self, services, lifecycle, admin_principal, staff):
        result = lifecycle.set_employee_status(admin_principal, staff.id, "disable")

        assert result.message == "Employee account disabled successfully"
        assert services.provider.get_account(staff.id).disabled
        assert services.store.find_employee(staff.id) is not None

    def test_delete_removes_record_and_account(self, services, lifecycle, admin_principal, staff):
        result = lifecycle.set_employee_status(admin_principal, staff.id, "delete")

        assert result.message == "Employee deleted successfully"
        assert services.store.find_employee(staff.id) is None
        assert staff.id not in services.provider.accounts

    def test_disable_when_login_account_missing(self, services, lifecycle, admin_principal, staff):
        services.provider.delete_account(staff.id)

        with pytest.raises(NotFound):
            lifecycle.set_employee_status(admin_principal, staff.id, "disable")

        assert services.store.find_employee(staff.id) is not None

    def test_delete_when_account_already_gone(self, services, lifecycle, admin_principal, staff):
        """Test deletion succeeds when the identity account was removed out of band."""
        services.provider.delete_account(staff.id)

        result = lifecycle.set_employee_status(admin_principal, staff.id, "delete")

        assert result.success
        assert "already removed" in result.message
        assert not result.errors
        assert services.store.find_employee(staff.id) is None

    def test_delete_with_account_removal_failure(self, services, lifecycle, admin_principal, staff):
        down = ProviderError(ProviderError.UNAVAILABLE, "backend down")

        with patch.object(services.provider, "delete_account", side_effect=down):
            result = lifecycle.set_employee_status(admin_principal, staff.id, "delete")

        assert result.partial
        assert "could not be removed" in result.message
        assert services.store.find_employee(staff.id) is None

    def test_non_admin_delete_forbidden(self, services, lifecycle, staff, supervisor):
        with pytest.raises(Forbidden):
            lifecycle.set_employee_status(principal_for(services, staff), supervisor.id, "delete")

        assert services.store.find_employee(supervisor.id) is not None

    @pytest.mark.parametrize("action", ["disable", "delete"])
    def test_self_target_rejected(self, lifecycle, admin_principal, action):
        with pytest.raises(ValidationError):
            lifecycle.set_employee_status(admin_principal, admin_principal.id, action)

    def test_invalid_action(self, lifecycle, admin_principal, staff):
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.set_employee_status(admin_principal, staff.id, "suspend")
        assert "disable" in exc_info.value.message

    def test_missing_employee(self, lifecycle, admin_principal):
        with pytest.raises(NotFound):
            lifecycle.set_employee_status(admin_principal, "nobody", "delete")


class TestListEmployees:

    def test_sorted_by_name(self, lifecycle, admin_principal, staff, supervisor):
        names = [e.name for e in lifecycle.list_employees(admin_principal)]
        assert names == sorted(names, key=str.lower)
        assert len(names) == 3

    def test_employee_helper_creates_record(self, services):
        employee = make_employee(services, "Zed", "zed@hostel.edu", "Team Member", department="Mess")
        assert services.store.get_employee_by_email("zed@hostel.edu").id == employee.id
