"""
Tests for api.personnel module.
"""

ADMIN = {"X-Admin-Identity": "8-9-9"}


class TestAdminValidation:
    """POST /api/admin/validate."""

    def test_known_admin(self, client, admin_table):
        response = client.post("/api/admin/validate", json={"identity": "8-9-9"})

        assert response.status_code == 200
        assert response.json()["name"] == "Rosa Díaz"
        assert response.json()["role"] == "Supervisor"

    def test_unknown_identity(self, client, admin_table):
        response = client.post("/api/admin/validate", json={"identity": "8-1-1"})

        assert response.status_code == 403
        assert response.json()["detail"]["error_code"] == "ADMIN_REQUIRED"

    def test_inactive_admin(self, client, admin_table):
        assert client.post("/api/admin/validate", json={"identity": "8-7-7"}).status_code == 403


class TestAdminHeader:

    def test_missing_header(self, client, admin_table, personnel_table):
        response = client.post("/api/personnel", json={"identity": "8-3-3", "name": "Eva Sol"})

        assert response.status_code == 403
        assert personnel_table.row_count == 3

    def test_no_roster(self, client, personnel_table):
        assert client.get("/api/personnel/8-1-1", headers=ADMIN).status_code == 403


class TestPersonnelCrud:

    def test_get(self, client, admin_table, personnel_table):
        response = client.get("/api/personnel/8-1-1", headers=ADMIN)

        assert response.status_code == 200
        assert response.json() == {"identity": "8-1-1", "name": "Ana Gómez", "company": "Acme"}

    def test_get_unknown(self, client, admin_table, personnel_table):
        response = client.get("/api/personnel/9-9-9", headers=ADMIN)

        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "RECORD_NOT_FOUND"

    def test_add_then_register_access(self, client, admin_table, personnel_table, ledger_table):
        response = client.post("/api/personnel", headers=ADMIN,
                               json={"identity": "8-3-3", "name": "Eva Sol", "company": "Initech"})

        assert response.status_code == 201
        assert response.json()["record"]["company"] == "Initech"

        access = client.post("/api/access", json={"identity": "8-3-3", "direction": "entry"}).json()
        assert access["status"] == "Access granted"
        assert access["name"] == "Eva Sol"

    def test_add_duplicate(self, client, admin_table, personnel_table):
        response = client.post("/api/personnel", headers=ADMIN,
                               json={"identity": "8-1-1", "name": "Ana Again"})

        assert response.status_code == 409
        assert response.json()["detail"]["error_code"] == "DUPLICATE_IDENTITY"

    def test_add_blank_name(self, client, admin_table, personnel_table):
        response = client.post("/api/personnel", headers=ADMIN, json={"identity": "8-3-3", "name": " "})

        assert response.status_code == 422
        assert response.json()["detail"]["error_code"] == "INVALID_REQUEST"

    def test_update(self, client, admin_table, personnel_table):
        response = client.put("/api/personnel/8-2-2", headers=ADMIN, json={"name": "Luis A. Pérez"})

        assert response.status_code == 200
        assert response.json()["record"] == {"identity": "8-2-2", "name": "Luis A. Pérez", "company": "Globex"}

    def test_update_to_taken_identity(self, client, admin_table, personnel_table):
        response = client.put("/api/personnel/8-2-2", headers=ADMIN, json={"identity": "8-1-1"})

        assert response.status_code == 409

    def test_update_unknown(self, client, admin_table, personnel_table):
        assert client.put("/api/personnel/9-9-9", headers=ADMIN, json={"name": "X"}).status_code == 404

    def test_delete(self, client, admin_table, personnel_table):
        response = client.delete("/api/personnel/8-1-1", headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["record"]["name"] == "Ana Gómez"
        assert client.get("/api/personnel/8-1-1", headers=ADMIN).status_code == 404

    def test_delete_unknown(self, client, admin_table, personnel_table):
        assert client.delete("/api/personnel/9-9-9", headers=ADMIN).status_code == 404
