"""
API endpoint tests for the Escalation Engine.

This module contains tests for the REST API endpoints, ensuring proper
authentication, request handling, response formats and error conditions.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import auth_header
from escalation_engine.api import server
from escalation_engine.errors import UpstreamFailure


@pytest.fixture
def client(services, monkeypatch):
    """Test client wired to the in-memory services."""
    monkeypatch.setattr(server, "services", services)
    with TestClient(server.app) as client:
        yield client


@pytest.fixture
def admin_headers(services, admin):
    return auth_header(services, admin)


@pytest.fixture
def staff_headers(services, staff):
    return auth_header(services, staff)


JANE = {"fullName": "Jane Doe", "email": "jane@x.com", "role": "Supervisor", "department": "Water"}


class TestHealthEndpoints:
    """Tests for health check and system status endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "running"
        assert "version" in data

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["mock_mode"] is True
        assert data["components"]["record_store"] == "StateManager"
        assert data["components"]["identity"] == "MockIdentityProvider"
        assert data["components"]["notifications"] == "MockMailTransport"

    def test_stats_for_admin(self, client, admin_headers, staff):
        client.post("/api/employees/manage-status",
                    json={"employeeId": staff.id, "action": "disable"}, headers=admin_headers)

        response = client.get("/stats", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["records"]["total_employees"] == 2
        assert data["activity"]["summary"]["total_events"] == 1

    def test_stats_requires_admin(self, client, staff_headers):
        response = client.get("/stats", headers=staff_headers)
        assert response.status_code == 403


class TestAuthentication:

    def test_missing_credential(self, client):
        response = client.get("/api/employees")

        assert response.status_code == 401
        assert response.json()["reason"] == "missing"

    def test_malformed_credential(self, client):
        response = client.get("/api/employees", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401
        assert response.json()["reason"] == "malformed"

    def test_session_endpoint(self, client, staff_headers, staff):
        response = client.get("/api/me", headers=staff_headers)
        assert response.status_code == 200

        principal = response.json()["principal"]
        assert principal["id"] == staff.id
        assert principal["isAdmin"] is False
        assert principal["department"] == "Mess"

    def test_refresh_picks_up_new_claims(self, client, services, staff, staff_headers):
        services.provider.set_custom_claims(staff.id, {"isOversight": True})

        response = client.post("/api/me/refresh", headers=staff_headers)

        assert response.status_code == 200
        assert response.json()["principal"]["isOversight"] is True


class TestEmployeeEndpoints:
    """Tests for employee lifecycle endpoints."""

    def test_add_employee(self, client, admin_headers):
        response = client.post("/api/employees/add", json=JANE, headers=admin_headers)
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["email"] == "jane@x.com"
        assert data["employeeId"]

    def test_add_employee_twice_returns_same_id(self, client, admin_headers):
        first = client.post("/api/employees/add", json=JANE, headers=admin_headers).json()
        second = client.post("/api/employees/add", json=JANE, headers=admin_headers).json()

        assert second["employeeId"] == first["employeeId"]
        assert "already exists" in second["message"]

    def test_add_employee_legacy_oversight_flag(self, client, services, admin_headers):
        body = {"fullName": "Carl Office", "email": "carl@hostel.edu", "hostel": "Hostel B",
                "isCRM": True}

        response = client.post("/api/employees/add", json=body, headers=admin_headers)

        assert response.status_code == 200
        employee = services.store.get_employee_by_email("carl@hostel.edu")
        assert employee.is_oversight
        assert employee.role == "Hostel Office"

    def test_add_employee_validation(self, client, admin_headers):
        response = client.post("/api/employees/add", json={"email": "jane@x.com"},
                               headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_add_employee_requires_admin(self, client, staff_headers):
        response = client.post("/api/employees/add", json=JANE, headers=staff_headers)
        assert response.status_code == 403

    def test_non_admin_delete_forbidden(self, client, services, staff_headers, supervisor):
        response = client.post("/api/employees/manage-status",
                               json={"employeeId": supervisor.id, "action": "delete"},
                               headers=staff_headers)

        assert response.status_code == 403
        assert services.store.find_employee(supervisor.id) is not None

    def test_self_delete_rejected(self, client, admin, admin_headers):
        response = client.post("/api/employees/manage-status",
                               json={"employeeId": admin.id, "action": "delete"},
                               headers=admin_headers)
        assert response.status_code == 400

    def test_delete_with_account_already_removed(self, client, services, admin_headers, staff):
        services.provider.delete_account(staff.id)

        response = client.post("/api/employees/manage-status",
                               json={"employeeId": staff.id, "action": "delete"},
                               headers=admin_headers)

        assert response.status_code == 200
        assert "already removed" in response.json()["message"]
        assert services.store.find_employee(staff.id) is None

    def test_disable_employee(self, client, services, admin_headers, staff):
        response = client.post("/api/employees/manage-status",
                               json={"employeeId": staff.id, "action": "disable"},
                               headers=admin_headers)

        assert response.status_code == 200
        assert services.provider.get_account(staff.id).disabled

    def test_disable_without_login_account(self, client, services, admin_headers, staff):
        services.provider.delete_account(staff.id)

        response = client.post("/api/employees/manage-status",
                               json={"employeeId": staff.id, "action": "disable"},
                               headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_update_employee(self, client, admin_headers, staff):
        response = client.put("/api/employees/update",
                              json={"employeeId": staff.id, "updates": {"department": "Water"}},
                              headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["updatedFields"] == ["department"]

    def test_update_rejects_other_fields(self, client, services, admin_headers, staff):
        """Test a request touching a protected field is refused without any mutation."""
        response = client.put("/api/employees/update",
                              json={"employeeId": staff.id,
                                    "updates": {"department": "Water", "isAdmin": True}},
                              headers=admin_headers)

        assert response.status_code == 400
        _, employee = services.store.find_employee(staff.id)
        assert employee.department == "Mess"
        assert not employee.is_admin

    def test_list_employees(self, client, admin_headers, staff):
        response = client.get("/api/employees", headers=admin_headers)

        assert response.status_code == 200
        emails = [e["email"] for e in response.json()["employees"]]
        assert emails == ["admin@hostel.edu", "rita@hostel.edu"]


class TestEscalationEndpoints:

    @pytest.fixture
    def draft_body(self):
        return {
            "studentName": "Ravi Kumar",
            "studentEmail": "ravi@student.edu",
            "hostelName": "Hostel A",
            "roomNumber": "A-214",
            "description": "No water supply on the second floor since morning.",
            "department": "Water",
        }

    def test_file_and_resolve(self, client, services, staff_headers, supervisor, draft_body):
        created = client.post("/api/escalations", json=draft_body, headers=staff_headers)
        assert created.status_code == 200
        escalation = created.json()["escalation"]
        assert escalation["status"] == "New"
        assert escalation["supervisorEmail"] == "sam@hostel.edu"

        response = client.post(f"/api/escalations/{escalation['id']}/status",
                               json={"status": "Resolved"},
                               headers=auth_header(services, supervisor))

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Status changed from New to Resolved"
        assert len(data["escalation"]["history"]) == 1
        assert data["escalation"]["resolvedAt"] is not None

    def test_unroutable_department(self, client, services, staff_headers, draft_body):
        response = client.post("/api/escalations", json={**draft_body, "department": "Internet"},
                               headers=staff_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "unroutable_department"
        assert services.store.list_escalations() == []

    def test_transition_by_unrelated_employee(self, client, staff_headers, supervisor, draft_body):
        escalation = client.post("/api/escalations", json=draft_body,
                                 headers=staff_headers).json()["escalation"]

        response = client.post(f"/api/escalations/{escalation['id']}/status",
                               json={"status": "Closed"}, headers=staff_headers)

        assert response.status_code == 403

    def test_list_and_get(self, client, staff_headers, supervisor, draft_body):
        escalation = client.post("/api/escalations", json=draft_body,
                                 headers=staff_headers).json()["escalation"]

        listed = client.get("/api/escalations", params={"status": "New"}, headers=staff_headers)
        fetched = client.get(f"/api/escalations/{escalation['id']}", headers=staff_headers)
        missing = client.get("/api/escalations/nope", headers=staff_headers)

        assert [e["id"] for e in listed.json()["escalations"]] == [escalation["id"]]
        assert fetched.json()["escalation"]["roomNumber"] == "A-214"
        assert missing.status_code == 404

    def test_assign_team_member(self, client, services, staff_headers, supervisor, team_member,
                                draft_body):
        escalation = client.post("/api/escalations", json=draft_body,
                                 headers=staff_headers).json()["escalation"]

        response = client.post(f"/api/escalations/{escalation['id']}/assign",
                               json={"teamMemberEmail": team_member.email},
                               headers=auth_header(services, supervisor))

        assert response.status_code == 200
        assert response.json()["escalation"]["assignedTeamMemberEmail"] == "tina@hostel.edu"

    def test_missing_body_field(self, client, staff_headers):
        response = client.post("/api/escalations/any/status", json={}, headers=staff_headers)
        assert response.status_code == 400


class TestStatusNotificationEndpoint:

    ENDPOINT = "/api/notifications/crm-status-update"

    def test_missing_fields(self, client):
        response = client.post(self.ENDPOINT, json={"escalationId": "esc-1"})

        assert response.status_code == 400
        assert response.json()["message"] == "Missing required fields"

    def test_fan_out_counts(self, client, transport, oversight_staff):
        transport.failing_recipients.add("omar@hostel.edu")
        body = {"escalationId": "esc-1", "studentName": "Ravi", "department": "Water",
                "oldStatus": "New", "newStatus": "Resolved", "updatedBy": "Sam"}

        response = client.post(self.ENDPOINT, json=body)

        assert response.status_code == 200
        data = response.json()
        assert data["totalSent"] == 1
        assert data["totalFailed"] == 1


class TestSettingsEndpoints:

    def test_get_settings(self, client, staff_headers):
        response = client.get("/api/settings", headers=staff_headers)

        assert response.status_code == 200
        assert response.json()["settings"]["statuses"][0] == "New"

    def test_admin_edits(self, client, admin_headers):
        added = client.post("/api/settings/departments", json={"value": "Laundry"},
                            headers=admin_headers)
        renamed = client.put("/api/settings/departments",
                             json={"oldValue": "Laundry", "newValue": "Linen"},
                             headers=admin_headers)
        removed = client.delete("/api/settings/departments/Linen", headers=admin_headers)

        assert "Laundry" in added.json()["settings"]["departments"]
        assert "Linen" in renamed.json()["settings"]["departments"]
        assert "Linen" not in removed.json()["settings"]["departments"]

    def test_duplicate_value(self, client, admin_headers):
        response = client.post("/api/settings/statuses", json={"value": "New"},
                               headers=admin_headers)
        assert response.status_code == 409

    def test_non_admin_forbidden(self, client, staff_headers):
        response = client.post("/api/settings/hostels", json={"value": "Hostel Z"},
                               headers=staff_headers)
        assert response.status_code == 403

    def test_unknown_kind(self, client, admin_headers):
        response = client.post("/api/settings/colours", json={"value": "Blue"},
                               headers=admin_headers)
        assert response.status_code == 400


class TestErrorHandling:

    def test_unexpected_error_is_500(self, services, admin_headers, monkeypatch):
        monkeypatch.setattr(server, "services", services)

        with patch.object(services.lifecycle, "list_employees", side_effect=RuntimeError("boom")):
            with TestClient(server.app, raise_server_exceptions=False) as client:
                response = client.get("/api/employees", headers=admin_headers)

        assert response.status_code == 500
        assert response.json()["message"] == "Internal server error"

    def test_upstream_failure_is_500(self, client, services, admin_headers):
        with patch.object(services.lifecycle, "list_employees",
                          side_effect=UpstreamFailure("store unavailable")):
            response = client.get("/api/employees", headers=admin_headers)

        assert response.status_code == 500
        assert response.json()["error"] == "upstream_failure"
