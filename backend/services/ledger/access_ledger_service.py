"""
Access Ledger Service

The append-only table of entry/exit events. Columns are resolved by header
name at the start of every operation. Every mutation entry point takes an
explicit dry_run flag and refuses to write while it is set.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog

from models.schemas import (
    AccessEvent, AccessStatus, EventType, MutationResult, NO_COMPANY, NO_NAME, to_local_naive
)
from services.error_handler import ConcurrentModificationError, NotFoundError
from services.identity.identity_normalizer_service import match_key, normalize
from services.ledger.ledger_schema import (
    ColumnMap, DEFAULT_LEDGER_HEADERS, LEDGER_REQUIRED_FIELDS, resolve_columns
)
from services.ledger.table_store_service import Table, TableStore

logger = structlog.get_logger(__name__)

NO_ENTRY_LABEL = "No entry"
BLOCKED_MESSAGE = "Ledger write blocked: simulation in progress"


def is_blank(value: Any) -> bool:
    """True for empty cells (None or whitespace-only text)."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def format_duration(entry: Any, exit_time: Any) -> Optional[str]:
    """
    Duration label "{h}h {m}m", minutes floored.

    Returns None when either side is not a datetime or the exit precedes
    the entry.
    """
    if not isinstance(entry, datetime) or not isinstance(exit_time, datetime):
        return None
    delta = to_local_naive(exit_time) - to_local_naive(entry)

    total_minutes = int(delta.total_seconds() // 60)
    if total_minutes < 0:
        return None
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def _cell_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip()).date()
        except ValueError:
            return None
    return None


class LedgerView:
    """Read-only parse of the ledger taken at one point in time."""

    def __init__(self, table: Table, columns: ColumnMap):
        self.table = table
        self.columns = columns
        self._rows = table.get_all_rows()
        self._events: Optional[List[AccessEvent]] = None
        self._latest: Optional[Dict[str, AccessEvent]] = None

    @property
    def row_count(self) -> int:
        return len(self._rows) - 1

    def parse_row(self, row_order: int) -> Optional[AccessEvent]:
        """Parse one data row; None when the identity cell is empty."""
        row = self._rows[row_order]
        raw_identity = self.columns.cell(row, "identity")
        if is_blank(raw_identity):
            return None

        identity_raw = str(raw_identity).strip()
        entry = self.columns.cell(row, "entry")
        exit_time = self.columns.cell(row, "exit")
        entry = None if is_blank(entry) else entry
        exit_time = None if is_blank(exit_time) else exit_time

        if entry is not None and exit_time is not None:
            event_type = EventType.ENTRY_EXIT
        elif entry is not None:
            event_type = EventType.ENTRY
        elif exit_time is not None:
            event_type = EventType.EXIT
        else:
            event_type = None

        duration = self.columns.cell(row, "duration")
        return AccessEvent(
            identity_raw=identity_raw,
            identity_normalized=normalize(identity_raw),
            name=str(self.columns.cell(row, "name", "") or "").strip(),
            company=str(self.columns.cell(row, "company", "") or "").strip(),
            event_type=event_type,
            entry_timestamp=entry,
            exit_timestamp=exit_time,
            duration_label=None if is_blank(duration) else str(duration),
            row_order=row_order,
            without_prior_entry=entry is None and exit_time is not None,
        )

    def events(self) -> List[AccessEvent]:
        """Every row with an identity, newest first."""
        if self._events is None:
            parsed = []
            for row_order in range(len(self._rows) - 1, 0, -1):
                event = self.parse_row(row_order)
                if event is not None:
                    parsed.append(event)
            self._events = parsed
        return list(self._events)

    def latest_by_key(self) -> Dict[str, AccessEvent]:
        """Newest row of every identity, keyed by match key."""
        if self._latest is None:
            latest = {}
            for event in self.events():
                latest.setdefault(match_key(event.identity_raw), event)
            self._latest = latest
        return self._latest

    def find_open_session(self, identity_raw: str) -> Optional[AccessEvent]:
        """
        Open session for one identity under the "latest row wins" rule.

        The newest row belonging to the identity decides: it is returned when
        open, otherwise the identity has no open session.
        """
        key = match_key(identity_raw)
        if not key:
            return None
        event = self.latest_by_key().get(key)
        if event is not None and event.is_open:
            return event
        return None


class AccessLedger:
    """Access ledger bound to one table of a TableStore."""

    def __init__(self, store: TableStore, table_name: str):
        self.store = store
        self.table_name = table_name

    def _table(self) -> Table:
        table = self.store.get_table(self.table_name)
        if table is None:
            raise NotFoundError(f"Ledger table '{self.table_name}' not found")
        return table

    def _columns(self, table: Table) -> ColumnMap:
        columns = resolve_columns(table.headers)
        missing = columns.missing(LEDGER_REQUIRED_FIELDS)
        if missing:
            raise NotFoundError(
                f"Ledger table '{self.table_name}' has no column for: {', '.join(missing)}"
            )
        return columns

    def exists(self) -> bool:
        return self.store.get_table(self.table_name) is not None

    def ensure_table(self) -> Table:
        """Create the ledger with the default headers if it does not exist."""
        return self.store.get_or_create_table(self.table_name, DEFAULT_LEDGER_HEADERS)

    def load(self) -> LedgerView:
        """Parse the current ledger. Raises NotFoundError when unusable."""
        table = self._table()
        return LedgerView(table, self._columns(table))

    def close_session(
        self,
        event: AccessEvent,
        exit_time: datetime,
        session_id: Optional[str] = None,
        dry_run: bool = False,
        note: Optional[str] = None,
        company: Optional[str] = None,
    ) -> MutationResult:
        """
        Close an open session: write the exit time, the duration label and an
        optional note on the exit cell.

        The exit cell is re-read under the table lock first; a session closed
        by another writer since the scan raises ConcurrentModificationError.
        """
        if dry_run:
            logger.warning("Blocked ledger write during simulation",
                           identity=event.identity_raw, row=event.row_order, session_id=session_id)
            return MutationResult(applied=False, blocked_by_simulation=True,
                                  row_order=event.row_order, message=BLOCKED_MESSAGE)

        table = self._table()
        with table.lock:
            columns = self._columns(table)
            row = event.row_order
            exit_col = columns.get("exit")

            if row > table.row_count:
                raise ConcurrentModificationError(f"Ledger row {row} no longer exists")
            current_identity = table.read_cell(row, columns.get("identity"))
            if str(current_identity).strip() != event.identity_raw:
                raise ConcurrentModificationError(
                    f"Ledger row {row} no longer belongs to identity '{event.identity_raw}'"
                )
            if not is_blank(table.read_cell(row, exit_col)):
                raise ConcurrentModificationError(
                    f"Session for '{event.identity_raw}' at row {row} was already closed"
                )

            exit_time = to_local_naive(exit_time)
            table.write_cell(row, exit_col, exit_time)

            duration = format_duration(event.entry_timestamp, exit_time)
            if duration and columns.has("duration"):
                table.write_cell(row, columns.get("duration"), duration)
            if company and columns.has("company"):
                table.write_cell(row, columns.get("company"), company)
            if note:
                table.set_note(row, exit_col, note)

        logger.info("Closed ledger session", identity=event.identity_raw, row=row,
                    duration=duration, session_id=session_id)
        return MutationResult(applied=True, row_order=row, duration_label=duration,
                              message="Exit recorded")

    def register_entry(
        self,
        identity: str,
        name: str = NO_NAME,
        company: str = NO_COMPANY,
        status: AccessStatus = AccessStatus.GRANTED,
        at: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> MutationResult:
        """
        Append an open row for the identity.

        An identity with an open session already is refused: the ledger keeps
        at most one open row per identity.
        """
        if dry_run:
            logger.warning("Blocked entry registration during simulation", identity=identity)
            return MutationResult(applied=False, blocked_by_simulation=True, message=BLOCKED_MESSAGE)

        at = to_local_naive(at) or datetime.now()
        table = self.ensure_table()
        with table.lock:
            columns = self._columns(table)
            open_session = LedgerView(table, columns).find_open_session(identity)
            if open_session is not None:
                logger.warning("Entry refused, session already open", identity=identity,
                               row=open_session.row_order)
                return MutationResult(applied=False, already_open=True,
                                      row_order=open_session.row_order,
                                      message="Entry already recorded, no exit since")

            row_order = table.append_row(self._build_row(
                table, columns, identity, name, company, status, entry=at,
            ))
        logger.info("Registered entry", identity=identity, row=row_order)
        return MutationResult(applied=True, row_order=row_order, message="Entry recorded")

    def register_exit(
        self,
        identity: str,
        name: str = NO_NAME,
        company: str = NO_COMPANY,
        status: AccessStatus = AccessStatus.GRANTED,
        at: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> MutationResult:
        """
        Close the latest open session of the identity, or append an orphan
        exit row when there is none.
        """
        if dry_run:
            logger.warning("Blocked exit registration during simulation", identity=identity)
            return MutationResult(applied=False, blocked_by_simulation=True, message=BLOCKED_MESSAGE)

        at = to_local_naive(at) or datetime.now()
        table = self.ensure_table()
        with table.lock:
            columns = self._columns(table)

            open_session = LedgerView(table, columns).find_open_session(identity)
            if open_session is not None:
                return self.close_session(open_session, at, company=company)

            row_order = table.append_row(self._build_row(
                table, columns, identity, name, company, status, exit_time=at, duration=NO_ENTRY_LABEL,
            ))
        logger.info("Registered exit without prior entry", identity=identity, row=row_order)
        return MutationResult(applied=True, row_order=row_order, duration_label=NO_ENTRY_LABEL,
                              without_prior_entry=True, message="Exit recorded without prior entry")

    def daily_counts(self, day: date) -> Tuple[int, int]:
        """(entries, exits) registered on the given day."""
        entries = exits = 0
        for event in self.load().events():
            if _cell_date(event.entry_timestamp) == day:
                entries += 1
            if _cell_date(event.exit_timestamp) == day:
                exits += 1
        return entries, exits

    def _build_row(self, table: Table, columns: ColumnMap, identity: str, name: str,
                   company: str, status: AccessStatus, entry: Optional[datetime] = None,
                   exit_time: Optional[datetime] = None, duration: str = "") -> list:
        row = [""] * max(len(table.headers), columns.width)
        values = {
            "date": entry or exit_time,
            "identity": identity,
            "name": name,
            "status": status.value,
            "entry": entry if entry is not None else "",
            "exit": exit_time if exit_time is not None else "",
            "duration": duration,
            "company": company,
        }
        for field_name, value in values.items():
            index = columns.get(field_name)
            if index is not None:
                row[index] = value
        return row
