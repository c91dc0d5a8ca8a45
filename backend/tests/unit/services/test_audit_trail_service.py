"""
Unit tests for the audit trail writer.
"""

from datetime import datetime
from unittest.mock import Mock, PropertyMock

import pytest

from models.schemas import (
    EvacuationMode, EvacuationOutcome, EvacuationRequest, ResolvedPerson
)
from services.evacuation.audit_trail_service import (
    NO_PERSONS_DETAIL, build_detail
)
from services.ledger.ledger_schema import AUDIT_ERROR_HEADERS, AUDIT_HEADERS

STAMP = datetime(2024, 5, 6, 17, 0)


def person(identity="8-1-1", name="Ana Gómez"):
    return ResolvedPerson(identity=identity, name=name, company="Acme",
                          entry_timestamp=datetime(2024, 5, 6, 8, 0), row_order=1)


def outcome(mode=EvacuationMode.REAL, resolved=None, session_id="session-1"):
    resolved = [person()] if resolved is None else resolved
    return EvacuationOutcome(session_id=session_id, mode=mode, resolved=resolved, success=True,
                             message="ok", total_evacuated=len(resolved), timestamp=STAMP)


class TestBuildDetail:

    def test_joined(self):
        detail = build_detail([person(), person("8-2-2", "Luis Pérez")])
        assert detail == "8-1-1-Ana Gómez; 8-2-2-Luis Pérez"

    def test_missing_parts(self):
        assert build_detail([person(identity="", name="")]) == "NO_IDENTITY-NO_NAME"

    def test_no_persons(self):
        assert build_detail([]) == NO_PERSONS_DETAIL
        assert build_detail(None) == NO_PERSONS_DETAIL

    def test_formatting_failure_degrades(self):
        broken = Mock()
        type(broken).identity = PropertyMock(side_effect=ValueError("bad row"))

        detail = build_detail([broken, broken])

        assert detail == "Error formatting 2 person(s): bad row"


class TestRecord:
    """One row per invocation, in the table of the mode."""

    def test_real_record(self, audit_writer, memory_store):
        request = EvacuationRequest(targets=["8-1-1"], operator="guard-1", notes="drill of floor 2")

        audit_writer.record(outcome(), request)

        rows = memory_store.get_table("Log_Emergencias").get_all_rows()
        assert rows[0] == AUDIT_HEADERS
        assert len(rows) == 2
        session_id, timestamp, kind, operator, count, detail, status, observations, notes = rows[1]
        assert session_id == "session-1"
        assert timestamp == STAMP
        assert kind == "REAL_EVACUATION"
        assert operator == "guard-1"
        assert count == 1
        assert detail == "8-1-1-Ana Gómez"
        assert status == "COMPLETED"
        assert observations.startswith("REAL evacuation executed")
        assert notes == "drill of floor 2"

    def test_simulated_uses_separate_table(self, audit_writer, memory_store):
        audit_writer.record(outcome(EvacuationMode.SIMULATED), EvacuationRequest(targets=["8-1-1"]))

        assert memory_store.get_table("Log_Emergencias") is None
        row = memory_store.get_table("Log_Simulacros").get_all_rows()[1]
        assert row[2] == "SIMULATED_EVACUATION"
        assert row[3] == "test_operator"
        assert row[8] == "No additional notes"

    def test_appends(self, audit_writer, memory_store):
        request = EvacuationRequest(targets=["8-1-1"])
        audit_writer.record(outcome(session_id="a"), request)
        audit_writer.record(outcome(session_id="b"), request)

        rows = memory_store.get_table("Log_Emergencias").get_all_rows()
        assert [r[0] for r in rows[1:]] == ["a", "b"]

    def test_storage_failure_falls_back_to_error_table(self, audit_writer, memory_store):
        failing = memory_store.create_table("Log_Emergencias", AUDIT_HEADERS)
        failing.append_row = Mock(side_effect=OSError("disk full"))

        audit_writer.record(outcome(), EvacuationRequest(targets=["8-1-1"]))

        rows = memory_store.get_table("Log_Errores").get_all_rows()
        assert rows[0] == AUDIT_ERROR_HEADERS
        assert rows[1][1] == "LOG_ERROR"
        assert "disk full" in rows[1][2]
        assert rows[1][3] == "8-1-1-Ana Gómez"

    def test_double_failure_never_raises(self, audit_writer):
        audit_writer.store = Mock()
        audit_writer.store.get_or_create_table.side_effect = OSError("store offline")

        audit_writer.record(outcome(), EvacuationRequest(targets=["8-1-1"]))


class TestRecentEntries:

    def test_newest_first_with_limit(self, audit_writer):
        request = EvacuationRequest(targets=["8-1-1"])
        for session_id in ["a", "b", "c"]:
            audit_writer.record(outcome(session_id=session_id), request)

        entries = audit_writer.recent_entries(EvacuationMode.REAL, limit=2)

        assert [e["Session_ID"] for e in entries] == ["c", "b"]
        assert entries[0]["Tipo_Evento"] == "REAL_EVACUATION"

    def test_missing_table(self, audit_writer):
        assert audit_writer.recent_entries(EvacuationMode.SIMULATED) == []

    @pytest.mark.parametrize("mode", list(EvacuationMode))
    def test_modes_isolated(self, audit_writer, mode):
        audit_writer.record(outcome(mode), EvacuationRequest(targets=["8-1-1"]))
        other = EvacuationMode.SIMULATED if mode == EvacuationMode.REAL else EvacuationMode.REAL

        assert len(audit_writer.recent_entries(mode)) == 1
        assert audit_writer.recent_entries(other) == []
