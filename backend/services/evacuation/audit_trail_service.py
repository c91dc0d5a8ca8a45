"""
Audit Trail Service

Appends one immutable record per evacuation attempt to the audit table of
its mode. Recording is best effort: nothing raised here reaches the caller.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog

from models.schemas import (
    AuditEntry, AuditEventKind, EvacuationMode, EvacuationOutcome, EvacuationRequest,
    ResolvedPerson
)
from services.error_handler import AuditError, get_error_handler
from services.ledger.ledger_schema import AUDIT_ERROR_HEADERS, AUDIT_HEADERS
from services.ledger.table_store_service import TableStore

logger = structlog.get_logger(__name__)

NO_IDENTITY = "NO_IDENTITY"
DETAIL_NO_NAME = "NO_NAME"
NO_PERSONS_DETAIL = "No specific persons"
NO_NOTES = "No additional notes"

EVENT_KIND_BY_MODE = {
    EvacuationMode.REAL: AuditEventKind.REAL_EVACUATION,
    EvacuationMode.SIMULATED: AuditEventKind.SIMULATED_EVACUATION,
}


def build_detail(persons: Optional[Sequence[ResolvedPerson]]) -> str:
    """"{identity}-{name}" per person joined with "; ", never raises."""
    if not persons:
        return NO_PERSONS_DETAIL
    try:
        detail = "; ".join(
            f"{person.identity or NO_IDENTITY}-{person.name or DETAIL_NO_NAME}"
            for person in persons
        )
        return detail or f"{len(persons)} person(s) with incomplete data"
    except Exception as e:
        logger.warning("Failed to format audit detail", error=str(e))
        return f"Error formatting {len(persons)} person(s): {e}"


class AuditTrailWriter:
    """Writes evacuation audit records to the REAL / SIMULATED audit tables."""

    def __init__(
        self,
        store: TableStore,
        real_table: str,
        simulated_table: str,
        error_table: str,
        default_operator: str = "unknown_operator",
        error_log_dir: Optional[str] = None,
    ):
        self.store = store
        self.tables = {
            EvacuationMode.REAL: real_table,
            EvacuationMode.SIMULATED: simulated_table,
        }
        self.error_table = error_table
        self.default_operator = default_operator
        self.error_handler = get_error_handler("audit_trail", log_dir=error_log_dir)

    def build_entry(self, outcome: EvacuationOutcome, request: EvacuationRequest) -> AuditEntry:
        return AuditEntry(
            session_id=outcome.session_id,
            timestamp=outcome.timestamp,
            event_kind=EVENT_KIND_BY_MODE[outcome.mode],
            operator=request.operator or self.default_operator,
            affected_count=len(outcome.resolved),
            detail=build_detail(outcome.resolved),
            notes=request.notes or NO_NOTES,
        )

    def record(self, outcome: EvacuationOutcome, request: EvacuationRequest) -> None:
        """Append the audit row; fall back to the error table, then to the log."""
        entry = None
        try:
            entry = self.build_entry(outcome, request)
            table_name = self.tables[outcome.mode]
            observations = f"{outcome.mode.value} evacuation executed - {datetime.now().isoformat()}"
            try:
                table = self.store.get_or_create_table(table_name, AUDIT_HEADERS)
                table.append_row(entry.to_row(observations))
            except Exception as e:
                raise AuditError(f"Failed to write audit record to '{table_name}': {e}") from e

            logger.info("Audit record written", table=table_name, session_id=entry.session_id,
                        affected=entry.affected_count)

        except Exception as e:
            self.error_handler.handle_error(e, operation_name="record_audit",
                                            error_code="AUDIT_WRITE_FAILED",
                                            session_id=outcome.session_id)
            detail = entry.detail if entry else f"session {outcome.session_id}"
            self._record_failure(str(e), detail)

    def _record_failure(self, message: str, detail: str) -> None:
        try:
            table = self.store.get_or_create_table(self.error_table, AUDIT_ERROR_HEADERS)
            table.append_row([datetime.now(), AuditEventKind.LOG_ERROR.value, message, detail])
        except Exception as e:
            logger.error("Failed to write audit error record", error=str(e), original_error=message)

    def recent_entries(self, mode: EvacuationMode = EvacuationMode.REAL, limit: int = 100) -> List[Dict[str, Any]]:
        """Audit rows of a mode, newest first, keyed by the table headers."""
        table = self.store.get_table(self.tables[mode])
        if table is None:
            return []

        rows = table.get_all_rows()
        headers = [str(h) for h in rows[0]]
        entries = []
        for row in reversed(rows[1:]):
            if len(entries) >= limit:
                break
            entries.append({header: row[i] if i < len(row) else "" for i, header in enumerate(headers)})
        return entries
