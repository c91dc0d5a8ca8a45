"""
Administrator roster lookup.

The roster table lists the identities allowed to maintain the personnel
directory. Matching follows the directory: raw-equal or key-equal.
"""

from typing import Optional

import structlog

from models.schemas import AdminUser
from services.error_handler import AuthorizationError
from services.identity.identity_normalizer_service import match_key
from services.ledger.ledger_schema import ADMIN_COLUMN_SYNONYMS, ADMIN_REQUIRED_FIELDS, resolve_columns
from services.ledger.table_store_service import TableStore

logger = structlog.get_logger(__name__)

INACTIVE_STATUSES = {"inactivo", "inactive", "suspendido", "suspended"}


class AdminRoster:
    """Read-only view over the administrator table."""

    def __init__(self, store: TableStore, table_name: str):
        self.store = store
        self.table_name = table_name

    def find_admin(self, identity: str) -> Optional[AdminUser]:
        text = str(identity or "").strip()
        if not text:
            return None

        table = self.store.get_table(self.table_name)
        if table is None:
            logger.warning("Admin table not found", table=self.table_name)
            return None

        rows = table.get_all_rows()
        columns = resolve_columns(rows[0], ADMIN_COLUMN_SYNONYMS)
        if columns.missing(ADMIN_REQUIRED_FIELDS):
            logger.warning("Admin table has no identity column", table=self.table_name)
            return None

        key = match_key(text)
        for row in rows[1:]:
            stored = str(columns.cell(row, "identity", "") or "").strip()
            if stored and (stored == text or match_key(stored) == key):
                defaults = AdminUser(identity=stored)
                return AdminUser(
                    identity=stored,
                    name=str(columns.cell(row, "name", "") or "").strip() or defaults.name,
                    role=str(columns.cell(row, "role", "") or "").strip() or defaults.role,
                    email=str(columns.cell(row, "email", "") or "").strip(),
                    status=str(columns.cell(row, "status", "") or "").strip() or defaults.status,
                )
        return None

    def authorize(self, identity: Optional[str]) -> AdminUser:
        """
        The roster entry for identity.

        Raises:
            AuthorizationError: blank, unknown or inactive identity
        """
        if not str(identity or "").strip():
            raise AuthorizationError("An administrator identity is required")

        admin = self.find_admin(identity)
        if admin is None:
            logger.warning("Administrative access refused", identity=identity)
            raise AuthorizationError(f"Identity {identity} is not authorized for administrative access")
        if admin.status.lower() in INACTIVE_STATUSES:
            logger.warning("Inactive administrator refused", identity=admin.identity, status=admin.status)
            raise AuthorizationError(f"Administrator {admin.identity} is {admin.status}")

        logger.info("Administrative access granted", identity=admin.identity, role=admin.role)
        return admin
