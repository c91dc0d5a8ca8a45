"""
Personnel Directory Service
Identity lookup over the personnel table, used to enrich ledger rows and to
decide whether access is granted. Administrators maintain the table through
add, update and remove.
"""

from typing import List, Optional, Sequence

import structlog

from models.schemas import NO_COMPANY, NO_NAME, PersonRecord
from services.error_handler import (
    DuplicateIdentityError, NotFoundError, RecordNotFoundError, ValidationError
)
from services.identity.identity_normalizer_service import match_key
from services.ledger.ledger_schema import (
    DEFAULT_PERSONNEL_HEADERS, PERSONNEL_REQUIRED_FIELDS, PERSONNEL_WRITE_FIELDS,
    ColumnMap, resolve_columns
)
from services.ledger.table_store_service import Table, TableStore

logger = structlog.get_logger(__name__)

SIMILAR_PREFIX_LENGTH = 5


def _text(value) -> str:
    return str(value or "").strip()


def _required(value, label: str) -> str:
    text = _text(value)
    if not text:
        raise ValidationError(f"{label} is required")
    return text


def _to_record(row: Sequence, columns: ColumnMap) -> PersonRecord:
    return PersonRecord(
        identity=_text(columns.cell(row, "identity", "")),
        name=_text(columns.cell(row, "name", "")) or NO_NAME,
        company=_text(columns.cell(row, "company", "")) or NO_COMPANY,
    )


class PersonnelDirectory:
    """View over the personnel table."""

    def __init__(self, store: TableStore, table_name: str):
        self.store = store
        self.table_name = table_name

    def _records(self) -> List[PersonRecord]:
        table = self.store.get_table(self.table_name)
        if table is None:
            logger.warning("Personnel table not found", table=self.table_name)
            return []

        rows = table.get_all_rows()
        columns = resolve_columns(rows[0])
        if columns.missing(PERSONNEL_REQUIRED_FIELDS):
            logger.warning("Personnel table has no identity column", table=self.table_name)
            return []

        return [_to_record(row, columns) for row in rows[1:]
                if _text(columns.cell(row, "identity", ""))]

    def find_by_identity(self, identity: str) -> Optional[PersonRecord]:
        """First directory entry whose identity is raw-equal or key-equal."""
        text = _text(identity)
        if not text:
            return None
        key = match_key(text)
        for record in self._records():
            if record.identity == text or match_key(record.identity) == key:
                return record
        return None

    def find_similar(self, identity: str, limit: int = 5) -> List[str]:
        """Known identities sharing the first five characters of the key."""
        prefix = match_key(identity)[:SIMILAR_PREFIX_LENGTH]
        if len(prefix) < SIMILAR_PREFIX_LENGTH:
            return []

        similar = []
        for record in self._records():
            if match_key(record.identity).startswith(prefix) and record.identity not in similar:
                similar.append(record.identity)
                if len(similar) >= limit:
                    break
        return similar

    # ----- Administration -----

    def add(self, identity: str, name: str, company: Optional[str] = None) -> PersonRecord:
        """
        Append a personnel entry, creating the table on first use.

        Raises:
            ValidationError: blank identity or name
            DuplicateIdentityError: an entry with the same identity exists
            NotFoundError: the table lacks an identity or name column
        """
        identity = _required(identity, "Identity")
        name = _required(name, "Name")
        company = _text(company) or NO_COMPANY

        table = self.store.get_or_create_table(self.table_name, DEFAULT_PERSONNEL_HEADERS)
        with table.lock:
            rows = table.get_all_rows()
            columns = self._write_columns(rows[0])
            if self._locate(rows, columns, identity) is not None:
                raise DuplicateIdentityError(f"Identity {identity} is already registered")

            row = [""] * max(len(rows[0]), columns.width)
            row[columns.get("identity")] = identity
            row[columns.get("name")] = name
            if columns.has("company"):
                row[columns.get("company")] = company
            table.append_row(row)

        logger.info("Personnel record added", identity=identity, company=company)
        return PersonRecord(identity=identity, name=name, company=company)

    def update(self, original_identity: str, identity: Optional[str] = None,
               name: Optional[str] = None, company: Optional[str] = None) -> PersonRecord:
        """
        Rewrite the entry matching original_identity. Blank or omitted fields
        keep the stored value.

        Raises:
            RecordNotFoundError: no entry matches original_identity
            DuplicateIdentityError: the new identity belongs to another entry
        """
        original = _required(original_identity, "Identity")
        table = self._existing_table(original)
        with table.lock:
            rows = table.get_all_rows()
            columns = self._write_columns(rows[0])
            index = self._locate(rows, columns, original)
            if index is None:
                raise RecordNotFoundError(f"No personnel record for identity {original}")

            current = rows[index]
            stored_identity = _text(columns.cell(current, "identity", ""))
            new_identity = _text(identity) or stored_identity
            new_name = _text(name) or _text(columns.cell(current, "name", ""))
            new_company = _text(company) or _text(columns.cell(current, "company", "")) or NO_COMPANY

            if new_identity != stored_identity and \
                    self._locate(rows, columns, new_identity, skip_row=index) is not None:
                raise DuplicateIdentityError(f"Identity {new_identity} is already in use")

            for field, value in (("identity", new_identity), ("name", new_name),
                                 ("company", new_company)):
                if columns.has(field) and columns.cell(current, field, "") != value:
                    table.write_cell(index, columns.get(field), value)

        logger.info("Personnel record updated", original_identity=original,
                    identity=new_identity, company=new_company)
        return PersonRecord(identity=new_identity, name=new_name or NO_NAME, company=new_company)

    def remove(self, identity: str) -> PersonRecord:
        """
        Delete the entry matching identity and return it.

        Raises:
            RecordNotFoundError: no entry matches identity
        """
        identity = _required(identity, "Identity")
        table = self._existing_table(identity)
        with table.lock:
            rows = table.get_all_rows()
            columns = resolve_columns(rows[0])
            if columns.missing(PERSONNEL_REQUIRED_FIELDS):
                raise NotFoundError(f"Personnel table '{self.table_name}' has no identity column")
            index = self._locate(rows, columns, identity)
            if index is None:
                raise RecordNotFoundError(f"No personnel record for identity {identity}")
            removed = table.delete_row(index)

        record = _to_record(removed, columns)
        logger.info("Personnel record removed", identity=record.identity, company=record.company)
        return record

    def _existing_table(self, identity: str) -> Table:
        table = self.store.get_table(self.table_name)
        if table is None:
            raise RecordNotFoundError(f"No personnel record for identity {identity}")
        return table

    def _write_columns(self, headers: Sequence) -> ColumnMap:
        columns = resolve_columns(headers)
        missing = columns.missing(PERSONNEL_WRITE_FIELDS)
        if missing:
            raise NotFoundError(
                f"Personnel table '{self.table_name}' is missing columns: {', '.join(missing)}"
            )
        return columns

    @staticmethod
    def _locate(rows: List[List], columns: ColumnMap, identity: str,
                skip_row: Optional[int] = None) -> Optional[int]:
        key = match_key(identity)
        for index, row in enumerate(rows[1:], start=1):
            if index == skip_row:
                continue
            existing = _text(columns.cell(row, "identity", ""))
            if existing and (existing == identity or match_key(existing) == key):
                return index
        return None
