"""Tests for department endpoints and duplicate handling."""

import pytest
from fastapi import status

from app.models import AuditLog, Department, DuplicateDetectionLog


@pytest.fixture
def department(client, auth_headers):
    """Create a sample department as the administrator."""
    response = client.post(
        "/api/departments",
        json={"name": "Operations", "department_code": "OPS", "description": "Day-to-day running"},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


def bearer(session):
    return {"Authorization": f"Bearer {session['token']}"}


class TestCreateDepartment:
    def test_create(self, client, department):
        assert department["id"] > 0
        assert department["name"] == "Operations"
        assert department["department_code"] == "OPS"
        assert department["is_active"] is True
        assert department["updated_at"] is None

    def test_html_is_stripped(self, client, auth_headers):
        response = client.post(
            "/api/departments",
            json={"name": "<b>Finance</b>", "department_code": "FIN"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["name"] == "Finance"

    def test_create_is_audited(self, client, department, db_session):
        entry = db_session.query(AuditLog).filter(AuditLog.table_name == "Departments").one()

        assert entry.action == "CREATE"
        assert entry.record_id == str(department["id"])
        assert entry.risk_level == "LOW"
        assert '"name":"Operations"' in entry.new_values

    def test_name_conflict_then_duplicate_submission(self, client, auth_headers, department, db_session):
        """
        A payload that collides with an existing department is rejected as a
        conflict the first time and as a duplicate submission afterwards.
        """
        payload = {"name": "Operations", "department_code": "OPS", "description": "Day-to-day running"}

        first = client.post("/api/departments", json=payload, headers=auth_headers)
        assert first.status_code == status.HTTP_409_CONFLICT
        assert first.json()["error_code"] == "ALREADY_EXISTS"
        assert first.json()["detail"] == "Department name already exists"

        second = client.post("/api/departments", json=payload, headers=auth_headers)
        assert second.status_code == status.HTTP_409_CONFLICT
        assert second.json()["error_code"] == "DUPLICATE_SUBMISSION"

        attempts = db_session.query(DuplicateDetectionLog).order_by(DuplicateDetectionLog.id).all()
        assert [a.entity_id for a in attempts] == [str(department["id"]), "0"]
        assert all(a.was_blocked for a in attempts)
        assert db_session.query(Department).count() == 1

    def test_name_conflict_is_case_insensitive(self, client, auth_headers, department):
        response = client.post(
            "/api/departments",
            json={"name": "OPERATIONS", "department_code": "OPS2"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"] == "Department name already exists"

    def test_code_conflict(self, client, auth_headers, department):
        response = client.post(
            "/api/departments",
            json={"name": "Logistics", "department_code": "OPS"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"] == "Department code already exists"

    def test_name_of_deleted_department_can_be_reused(self, client, auth_headers, department):
        client.delete(f"/api/departments/{department['id']}", headers=auth_headers)

        response = client.post(
            "/api/departments",
            json={"name": "Operations", "department_code": "OPS-NEW"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED

    def test_missing_name(self, client, auth_headers):
        response = client.post("/api/departments", json={"department_code": "X"}, headers=auth_headers)

        assert response.status_code == 422


class TestPermissions:
    def test_requires_authentication(self, client):
        assert client.get("/api/departments").status_code == status.HTTP_401_UNAUTHORIZED

    def test_employee_can_read_but_not_write(self, client, department, register_user):
        employee = bearer(register_user("emp@example.com", role="Employee"))

        assert client.get("/api/departments", headers=employee).status_code == status.HTTP_200_OK

        response = client.post("/api/departments", json={"name": "Sales"}, headers=employee)
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error_code"] == "FORBIDDEN"

        response = client.delete(f"/api/departments/{department['id']}", headers=employee)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_director_can_write(self, client, register_user):
        director = bearer(register_user("dir@example.com", role="Director"))

        response = client.post("/api/departments", json={"name": "Sales"}, headers=director)

        assert response.status_code == status.HTTP_201_CREATED


class TestReadDepartments:
    def test_list(self, client, auth_headers, department):
        client.post("/api/departments", json={"name": "Finance", "department_code": "FIN"}, headers=auth_headers)

        response = client.get("/api/departments", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 2
        assert [d["name"] for d in data["departments"]] == ["Finance", "Operations"]

    def test_search(self, client, auth_headers, department):
        client.post("/api/departments", json={"name": "Finance", "department_code": "FIN"}, headers=auth_headers)

        response = client.get("/api/departments", params={"search": "fin"}, headers=auth_headers)

        assert [d["name"] for d in response.json()["departments"]] == ["Finance"]

    def test_inactive_hidden_by_default(self, client, auth_headers, department):
        client.delete(f"/api/departments/{department['id']}", headers=auth_headers)

        active = client.get("/api/departments", headers=auth_headers).json()
        everything = client.get(
            "/api/departments", params={"include_inactive": True}, headers=auth_headers
        ).json()

        assert active["total"] == 0
        assert everything["total"] == 1
        assert everything["departments"][0]["is_active"] is False

    def test_get(self, client, auth_headers, department):
        response = client.get(f"/api/departments/{department['id']}", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["name"] == "Operations"

    def test_get_missing(self, client, auth_headers):
        response = client.get("/api/departments/999", headers=auth_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"] == "Department not found"


class TestUpdateDepartment:
    def test_update(self, client, auth_headers, department, clock, db_session):
        clock.advance(minutes=5)

        response = client.put(
            f"/api/departments/{department['id']}",
            json={"description": "Runs everything"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["name"] == "Operations"
        assert data["description"] == "Runs everything"
        assert data["updated_at"] is not None

        entry = db_session.query(AuditLog).filter(AuditLog.action == "UPDATE").one()
        assert entry.changed_fields == "description"
        assert entry.risk_level == "MEDIUM"

    def test_rename_to_existing_name(self, client, auth_headers, department):
        other = client.post(
            "/api/departments", json={"name": "Finance", "department_code": "FIN"}, headers=auth_headers
        ).json()

        response = client.put(
            f"/api/departments/{other['id']}",
            json={"name": "operations"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_keeping_own_name_is_not_a_conflict(self, client, auth_headers, department):
        response = client.put(
            f"/api/departments/{department['id']}",
            json={"name": "Operations", "department_code": "OPS"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_200_OK

    def test_update_missing(self, client, auth_headers):
        response = client.put("/api/departments/999", json={"name": "X"}, headers=auth_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestDeleteDepartment:
    def test_soft_delete(self, client, auth_headers, department, db_session):
        response = client.delete(f"/api/departments/{department['id']}", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "Department deleted successfully"

        row = db_session.get(Department, department["id"])
        db_session.refresh(row)
        assert row.is_active is False

        entry = db_session.query(AuditLog).filter(AuditLog.action == "DELETE").one()
        assert entry.risk_level == "HIGH"

    def test_delete_twice(self, client, auth_headers, department):
        client.delete(f"/api/departments/{department['id']}", headers=auth_headers)

        response = client.delete(f"/api/departments/{department['id']}", headers=auth_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND
