"""
Table storage service for the Facility Occupancy & Evacuation service.

This module provides the row/cell storage collaborator used by the ledger,
the personnel directory and the audit trail: an in-memory backend for tests
and a JSON-file backend with write-through persistence.
"""

import json
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from core.config import Settings

logger = structlog.get_logger(__name__)


class TableJSONEncoder(json.JSONEncoder):
    """JSON encoder that tags datetimes so they survive a round trip."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return {"type": "datetime", "value": obj.isoformat()}
        return super().default(obj)


def _decode_tagged(obj: Dict[str, Any]):
    if obj.get("type") == "datetime" and "value" in obj and len(obj) == 2:
        return datetime.fromisoformat(obj["value"])
    return obj


class Table:
    """
    A named table: a header row followed by data rows.

    Row indices are positions in get_all_rows(); the header is row 0, so
    data rows start at 1.

    Mutations hold the table lock while they change the rows and persist them;
    callers that read then write (check-then-act) take the same lock around
    the whole sequence.
    """

    def __init__(self, name: str, headers: Sequence[Any],
                 rows: Optional[List[List[Any]]] = None,
                 notes: Optional[Dict[str, str]] = None,
                 on_change: Optional[Callable[["Table"], None]] = None):
        self.name = name
        self._rows: List[List[Any]] = [list(headers)] + [list(r) for r in (rows or [])]
        self._notes: Dict[str, str] = dict(notes or {})
        self._on_change = on_change
        self.lock = threading.RLock()

    @property
    def headers(self) -> List[Any]:
        return list(self._rows[0])

    @property
    def row_count(self) -> int:
        """Number of data rows (header excluded)."""
        return len(self._rows) - 1

    def get_all_rows(self) -> List[List[Any]]:
        """Copy of every row, header first."""
        with self.lock:
            return [list(row) for row in self._rows]

    def append_row(self, row: Sequence[Any]) -> int:
        with self.lock:
            self._rows.append(list(row))
            try:
                self._changed()
            except Exception:
                self._rows.pop()
                raise
            return len(self._rows) - 1

    def read_cell(self, row_index: int, column_index: int) -> Any:
        with self.lock:
            row = self._data_row(row_index)
            if column_index < 0:
                raise IndexError(f"Invalid column index {column_index} for table '{self.name}'")
            if column_index >= len(row):
                return ""
            return row[column_index]

    def write_cell(self, row_index: int, column_index: int, value: Any) -> None:
        with self.lock:
            row = self._data_row(row_index)
            if column_index < 0:
                raise IndexError(f"Invalid column index {column_index} for table '{self.name}'")
            previous = list(row)
            if column_index >= len(row):
                row.extend([""] * (column_index + 1 - len(row)))
            row[column_index] = value
            try:
                self._changed()
            except Exception:
                row[:] = previous
                raise

    def delete_row(self, row_index: int) -> List[Any]:
        """Remove a data row; rows below it move up by one."""
        with self.lock:
            self._data_row(row_index)
            previous_rows = list(self._rows)
            previous_notes = dict(self._notes)
            removed = self._rows.pop(row_index)
            self._notes = self._shift_notes(row_index)
            try:
                self._changed()
            except Exception:
                self._rows = previous_rows
                self._notes = previous_notes
                raise
            return removed

    def set_note(self, row_index: int, column_index: int, note: str) -> None:
        with self.lock:
            self._data_row(row_index)
            key = f"{row_index}:{column_index}"
            previous = self._notes.get(key)
            self._notes[key] = note
            try:
                self._changed()
            except Exception:
                if previous is None:
                    self._notes.pop(key, None)
                else:
                    self._notes[key] = previous
                raise

    def get_note(self, row_index: int, column_index: int) -> Optional[str]:
        with self.lock:
            return self._notes.get(f"{row_index}:{column_index}")

    def to_document(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "headers": self._rows[0],
            "rows": self._rows[1:],
            "notes": self._notes,
        }

    def _shift_notes(self, deleted_row: int) -> Dict[str, str]:
        notes = {}
        for key, note in self._notes.items():
            row_index, column_index = (int(part) for part in key.split(":"))
            if row_index == deleted_row:
                continue
            if row_index > deleted_row:
                row_index -= 1
            notes[f"{row_index}:{column_index}"] = note
        return notes

    def _data_row(self, row_index: int) -> List[Any]:
        if row_index < 1 or row_index >= len(self._rows):
            raise IndexError(f"Row {row_index} out of range for table '{self.name}'")
        return self._rows[row_index]

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self)


class TableStore:
    """Base class for table storage backends."""

    _store_lock = threading.RLock()

    def get_table(self, name: str) -> Optional[Table]:
        raise NotImplementedError

    def create_table(self, name: str, headers: Sequence[Any]) -> Table:
        raise NotImplementedError

    def table_names(self) -> List[str]:
        raise NotImplementedError

    def get_or_create_table(self, name: str, headers: Sequence[Any]) -> Table:
        """Return the table, creating it with the given headers if absent."""
        with self._store_lock:
            table = self.get_table(name)
            if table is None:
                logger.info("Creating table", table=name)
                table = self.create_table(name, headers)
            return table


class InMemoryTableStore(TableStore):
    """Ephemeral table storage."""

    def __init__(self):
        self._tables: Dict[str, Table] = {}
        self._store_lock = threading.RLock()

    def get_table(self, name: str) -> Optional[Table]:
        return self._tables.get(name)

    def create_table(self, name: str, headers: Sequence[Any]) -> Table:
        with self._store_lock:
            if name in self._tables:
                raise ValueError(f"Table already exists: {name}")
            table = Table(name, headers)
            self._tables[name] = table
            return table

    def table_names(self) -> List[str]:
        return list(self._tables)


class JsonTableStore(TableStore):
    """Tables persisted as one JSON document each, written through on every change."""

    def __init__(self, base_path: str):
        self.base_path = Path(base_path) / "tables"
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._tables: Dict[str, Table] = {}
        self._store_lock = threading.RLock()

    def get_table(self, name: str) -> Optional[Table]:
        with self._store_lock:
            if name in self._tables:
                return self._tables[name]

            file_path = self._table_path(name)
            if not file_path.exists():
                return None

            with open(file_path, 'r', encoding='utf-8') as f:
                document = json.load(f, object_hook=_decode_tagged)

            table = Table(
                name,
                document.get("headers", []),
                rows=document.get("rows", []),
                notes=document.get("notes", {}),
                on_change=self._persist,
            )
            self._tables[name] = table
            return table

    def create_table(self, name: str, headers: Sequence[Any]) -> Table:
        with self._store_lock:
            if self.get_table(name) is not None:
                raise ValueError(f"Table already exists: {name}")
            table = Table(name, headers, on_change=self._persist)
            self._persist(table)
            self._tables[name] = table
            return table

    def table_names(self) -> List[str]:
        on_disk = {self._name_from_path(p) for p in self.base_path.glob("*.json")}
        with self._store_lock:
            return sorted(on_disk | set(self._tables))

    def _persist(self, table: Table) -> None:
        """Write the table document atomically; called with the table lock held."""
        file_path = self._table_path(table.name)
        with table.lock:
            with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=self.base_path,
                                             prefix=f"{file_path.stem}.", suffix=".tmp",
                                             delete=False) as f:
                tmp_path = f.name
                try:
                    json.dump(table.to_document(), f, cls=TableJSONEncoder, ensure_ascii=False, indent=2)
                except Exception:
                    f.close()
                    os.unlink(tmp_path)
                    raise
            os.replace(tmp_path, file_path)

    def _table_path(self, name: str) -> Path:
        safe_name = "".join(c if c.isalnum() or c in "-_" else "_" for c in name)
        return self.base_path / f"{safe_name}.json"

    def _name_from_path(self, path: Path) -> str:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f).get("name", path.stem)
        except (OSError, ValueError):
            return path.stem


def create_table_store(settings: Settings) -> TableStore:
    """Build the table store selected by STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == "memory":
        return InMemoryTableStore()
    return JsonTableStore(settings.LOCAL_STORAGE_PATH)
