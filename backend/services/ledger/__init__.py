"""
Ledger services: table storage, header resolution and the access ledger.

Columns are always resolved by header name, never by position.
"""

from .ledger_schema import ColumnMap, resolve_columns
from .table_store_service import InMemoryTableStore, JsonTableStore, Table, TableStore, create_table_store
from .access_ledger_service import AccessLedger, LedgerView, format_duration

__all__ = [
    "AccessLedger",
    "ColumnMap",
    "InMemoryTableStore",
    "JsonTableStore",
    "LedgerView",
    "Table",
    "TableStore",
    "create_table_store",
    "format_duration",
    "resolve_columns"
]
