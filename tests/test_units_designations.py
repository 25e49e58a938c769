"""
tests/test_units_designations.py -- Integration tests for /api/units and
/api/designations.

Coverage:
  - create with code uniqueness, parent validation, whitespace trimming
  - get with parent name, list filters and ordering
  - partial update: self-parent, parent clearing, code clash
  - soft delete guards: child units, assigned users
  - role gates: any role reads, manager or admin writes
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import seed_user


class TestUnits:
    def test_create_and_get_with_parent(self, app_client: TestClient, as_role) -> None:
        headers = as_role("manager")
        parent = app_client.post("/api/units", json={"name": "Engineering", "code": "ENG"}, headers=headers)
        assert parent.status_code == 201
        parent_id = parent.json()["unit"]["id"]

        child = app_client.post(
            "/api/units",
            json={"name": "  Backend  ", "code": "ENG-BE", "parentUnitId": parent_id, "description": "APIs"},
            headers=headers,
        )
        assert child.status_code == 201
        unit = child.json()["unit"]
        assert unit["name"] == "Backend"
        assert unit["parentUnitId"] == parent_id

        fetched = app_client.get(f"/api/units/{unit['id']}", headers=as_role("user"))
        assert fetched.status_code == 200
        assert fetched.json()["unit"]["parentUnitName"] == "Engineering"

    def test_duplicate_code(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        app_client.post("/api/units", json={"name": "Legal", "code": "LEG"}, headers=headers)
        resp = app_client.post("/api/units", json={"name": "Legal Two", "code": "LEG"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Unit code already exists"

    def test_unknown_parent(self, app_client: TestClient, as_role) -> None:
        resp = app_client.post(
            "/api/units", json={"name": "Lost", "code": "LOST", "parentUnitId": "nope"}, headers=as_role("admin")
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Parent unit not found"

    def test_cannot_be_own_parent(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        unit_id = app_client.post("/api/units", json={"name": "Loop", "code": "LOOP"}, headers=headers).json()["unit"]["id"]
        resp = app_client.put(f"/api/units/{unit_id}", json={"parentUnitId": unit_id}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Unit cannot be its own parent"

    def test_update_and_clear_parent(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        parent_id = app_client.post("/api/units", json={"name": "Sales", "code": "SAL"}, headers=headers).json()["unit"]["id"]
        unit_id = app_client.post(
            "/api/units", json={"name": "EMEA", "code": "SAL-EMEA", "parentUnitId": parent_id}, headers=headers
        ).json()["unit"]["id"]

        renamed = app_client.put(f"/api/units/{unit_id}", json={"name": "Europe"}, headers=headers)
        assert renamed.json()["unit"]["name"] == "Europe"
        assert renamed.json()["unit"]["parentUnitId"] == parent_id

        cleared = app_client.put(f"/api/units/{unit_id}", json={"parentUnitId": None}, headers=headers)
        assert cleared.status_code == 200
        assert cleared.json()["unit"]["parentUnitId"] is None

    def test_update_code_clash(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        app_client.post("/api/units", json={"name": "Taken", "code": "TAKEN"}, headers=headers)
        unit_id = app_client.post("/api/units", json={"name": "Free", "code": "FREE"}, headers=headers).json()["unit"]["id"]
        resp = app_client.put(f"/api/units/{unit_id}", json={"code": "TAKEN"}, headers=headers)
        assert resp.status_code == 400
        same = app_client.put(f"/api/units/{unit_id}", json={"code": "FREE"}, headers=headers)
        assert same.status_code == 200

    def test_delete_blocked_by_children(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        parent_id = app_client.post("/api/units", json={"name": "HR", "code": "HR"}, headers=headers).json()["unit"]["id"]
        app_client.post("/api/units", json={"name": "Payroll", "code": "HR-PAY", "parentUnitId": parent_id}, headers=headers)
        resp = app_client.delete(f"/api/units/{parent_id}", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Cannot delete unit with child units"

    def test_delete_blocked_by_users(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        unit_id = app_client.post("/api/units", json={"name": "Staffed", "code": "STAFFED"}, headers=headers).json()["unit"]["id"]
        seed_user(app_client, "member@test.dev", "user", unit_id=unit_id)
        resp = app_client.delete(f"/api/units/{unit_id}", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Cannot delete unit with assigned users"

    def test_soft_delete(self, app_client: TestClient, as_role) -> None:
        headers = as_role("manager")
        unit_id = app_client.post("/api/units", json={"name": "Temp", "code": "TEMP"}, headers=headers).json()["unit"]["id"]
        resp = app_client.delete(f"/api/units/{unit_id}", headers=headers)
        assert resp.json() == {"message": "Unit deleted successfully"}
        fetched = app_client.get(f"/api/units/{unit_id}", headers=headers)
        assert fetched.json()["unit"]["isActive"] is False

        inactive = app_client.get("/api/units", params={"isActive": "false"}, headers=headers).json()
        assert unit_id in [u["id"] for u in inactive["units"]]

    def test_get_missing(self, app_client: TestClient, as_role) -> None:
        resp = app_client.get("/api/units/missing", headers=as_role("user"))
        assert resp.status_code == 404
        assert resp.json()["error"] == "Unit not found"

    def test_user_role_cannot_write(self, app_client: TestClient, as_role) -> None:
        resp = app_client.post("/api/units", json={"name": "Nope", "code": "NOPE"}, headers=as_role("user"))
        assert resp.status_code == 403


class TestDesignations:
    def test_create_and_list_by_level(self, app_client: TestClient, as_role) -> None:
        headers = as_role("manager")
        for title, code, level in [("VP", "D-VP", 1), ("Associate", "D-ASSOC", 5), ("Contractor", "D-CON", None)]:
            body = {"title": title, "code": code}
            if level is not None:
                body["level"] = level
            assert app_client.post("/api/designations", json=body, headers=headers).status_code == 201

        resp = app_client.get("/api/designations", params={"search": "D-", "limit": 100}, headers=as_role("user"))
        assert resp.status_code == 200
        codes = [d["code"] for d in resp.json()["designations"]]
        assert codes == ["D-VP", "D-ASSOC", "D-CON"]
        assert resp.json()["pagination"]["total"] == 3

    def test_level_filter(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        app_client.post("/api/designations", json={"title": "Principal", "code": "LVL-9", "level": 9}, headers=headers)
        resp = app_client.get("/api/designations", params={"level": 9}, headers=headers)
        assert [d["code"] for d in resp.json()["designations"]] == ["LVL-9"]

    def test_negative_level_rejected(self, app_client: TestClient, as_role) -> None:
        resp = app_client.post(
            "/api/designations", json={"title": "Bad", "code": "BAD", "level": -1}, headers=as_role("admin")
        )
        assert resp.status_code == 400

    def test_duplicate_code(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        app_client.post("/api/designations", json={"title": "Clerk", "code": "CLERK"}, headers=headers)
        resp = app_client.post("/api/designations", json={"title": "Clerk II", "code": "CLERK"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Designation code already exists"

    def test_update(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        created = app_client.post("/api/designations", json={"title": "Lead", "code": "LEAD", "level": 3}, headers=headers)
        designation_id = created.json()["designation"]["id"]
        resp = app_client.put(
            f"/api/designations/{designation_id}", json={"title": "Team Lead", "level": 2}, headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["designation"]["title"] == "Team Lead"
        assert resp.json()["designation"]["level"] == 2

        [entry] = app_client.app.state.audit_store.list_entries(entity_type="designation", entity_id=designation_id, action="UPDATE")
        assert entry.changes["old"]["title"] == "Lead"

    def test_delete_blocked_by_users(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        designation_id = app_client.post(
            "/api/designations", json={"title": "Held", "code": "HELD"}, headers=headers
        ).json()["designation"]["id"]
        seed_user(app_client, "holder@test.dev", "user", designation_id=designation_id)
        resp = app_client.delete(f"/api/designations/{designation_id}", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Cannot delete designation with assigned users"

    def test_soft_delete(self, app_client: TestClient, as_role) -> None:
        headers = as_role("admin")
        designation_id = app_client.post(
            "/api/designations", json={"title": "Gone", "code": "GONE"}, headers=headers
        ).json()["designation"]["id"]
        resp = app_client.delete(f"/api/designations/{designation_id}", headers=headers)
        assert resp.json() == {"message": "Designation deleted successfully"}
        [entry] = app_client.app.state.audit_store.list_entries(entity_id=designation_id, action="DELETE")
        assert entry.changes["new"] is None

    def test_get_missing(self, app_client: TestClient, as_role) -> None:
        resp = app_client.get("/api/designations/missing", headers=as_role("user"))
        assert resp.status_code == 404
