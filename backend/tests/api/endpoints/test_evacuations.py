"""
Tests for api.evacuations module.
"""

from datetime import datetime

DAY = datetime(2024, 5, 6)


def at(hour, minute=0):
    return DAY.replace(hour=hour, minute=minute)


class TestCreateEvacuation:
    """POST /api/evacuations."""

    def test_real_evacuation(self, client, ledger_table, personnel_table, add_ledger_row):
        add_ledger_row("8-1-1", entry=at(8))
        add_ledger_row("8-2-2", entry=at(9))

        response = client.post("/api/evacuations", json={
            "targets": ["8-1-1"],
            "mode": "REAL",
            "operator": "guard-1",
            "timestamp": at(17).isoformat(),
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["mode"] == "REAL"
        assert data["total_evacuated"] == 1
        assert data["resolved"][0]["name"] == "Ana Gómez"
        assert data["resolved"][0]["duration_label"] == "9h 0m"
        assert data["resolved"][0]["exit_timestamp"] == "2024-05-06T17:00:00"
        assert [r["identity"] for r in data["remaining"]] == ["8-2-2"]
        assert ledger_table.get_all_rows()[1][5] == at(17)

    def test_follow_up_occupancy(self, client, ledger_table, add_ledger_row):
        add_ledger_row("8-1-1", entry=at(8))

        client.post("/api/evacuations", json={"targets": ["8-1-1"], "timestamp": at(17).isoformat()})

        assert client.get("/api/occupancy").json()["totalDentro"] == 0

    def test_simulated_leaves_ledger(self, client, ledger_table, add_ledger_row):
        add_ledger_row("8-1-1", entry=at(8))
        before = ledger_table.get_all_rows()

        response = client.post("/api/evacuations", json={
            "targets": ["8-1-1"], "mode": "SIMULATED", "timestamp": at(17).isoformat(),
        })

        data = response.json()
        assert data["success"] is True
        assert data["resolved"][0]["exit_timestamp"] is None
        assert data["resolved"][0]["projected_exit_timestamp"] == "2024-05-06T17:00:00"
        assert ledger_table.get_all_rows() == before

    def test_empty_targets_rejected(self, client, ledger_table):
        response = client.post("/api/evacuations", json={"targets": []})

        assert response.status_code == 422
        assert response.json()["detail"]["error_code"] == "INVALID_REQUEST"

    def test_invalid_mode_rejected(self, client, ledger_table):
        response = client.post("/api/evacuations", json={"targets": ["8-1-1"], "mode": "PARTIAL"})

        assert response.status_code == 422

    def test_missing_ledger_is_failed_outcome(self, client):
        response = client.post("/api/evacuations", json={"targets": ["8-1-1"]})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["resolved"] == []


class TestCreateDrill:
    """POST /api/evacuations/drill."""

    def test_mode_forced_to_simulated(self, client, ledger_table, add_ledger_row, memory_store):
        add_ledger_row("8-1-1", entry=at(8))
        before = ledger_table.get_all_rows()

        response = client.post("/api/evacuations/drill", json={
            "targets": ["8-1-1"], "mode": "REAL", "timestamp": at(17).isoformat(),
        })

        assert response.json()["mode"] == "SIMULATED"
        assert ledger_table.get_all_rows() == before
        assert memory_store.get_table("Log_Simulacros").row_count == 1
        assert memory_store.get_table("Log_Emergencias") is None


class TestAuditTrail:
    """GET /api/evacuations/audit."""

    def test_entries_by_mode(self, client, ledger_table, add_ledger_row):
        add_ledger_row("8-1-1", entry=at(8))
        real = client.post("/api/evacuations", json={
            "targets": ["8-1-1"], "operator": "guard-1", "timestamp": at(17).isoformat(),
        }).json()
        client.post("/api/evacuations/drill", json={"targets": ["8-2-2"]})

        response = client.get("/api/evacuations/audit", params={"mode": "REAL"})

        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "REAL"
        assert data["count"] == 1
        assert data["entries"][0]["Session_ID"] == real["session_id"]
        assert data["entries"][0]["Operador"] == "guard-1"

    def test_empty_trail(self, client):
        data = client.get("/api/evacuations/audit", params={"mode": "SIMULATED"}).json()

        assert data == {"mode": "SIMULATED", "count": 0, "entries": []}

    def test_limit_bounds(self, client):
        assert client.get("/api/evacuations/audit", params={"limit": 0}).status_code == 422
