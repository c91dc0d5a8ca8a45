"""
Occupancy Reconciler Service

Derives who is currently inside from the access ledger. There is no
"current occupants" table: the newest ledger row of each identity decides
whether that identity is present.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

import structlog

from models.schemas import (
    DailySummary, NO_COMPANY, NO_NAME, OccupancyRecord, OccupancySnapshot, OccupantView
)
from services.error_handler import EvacuationServiceError
from services.identity.identity_normalizer_service import match_key
from services.ledger.access_ledger_service import AccessLedger

logger = structlog.get_logger(__name__)


@dataclass
class ReconciliationResult:
    """Occupancy map keyed by identity key, in scan order (newest first)."""

    success: bool
    message: str
    occupants: Dict[str, OccupancyRecord] = field(default_factory=dict)
    rows_scanned: int = 0

    @property
    def records(self) -> List[OccupancyRecord]:
        return list(self.occupants.values())


def format_entry_time(value) -> str:
    """HH:MM for datetimes, the stripped text otherwise."""
    if isinstance(value, datetime):
        return value.strftime("%H:%M")
    return str(value or "").strip()


class OccupancyReconciler:
    """Read-only reconciliation over an AccessLedger."""

    def reconcile(self, ledger: AccessLedger) -> ReconciliationResult:
        """
        Scan the ledger newest to oldest. The first row met for an identity
        classifies it: open rows make the identity present, any other row
        only marks it as seen so older rows are ignored.

        Never raises; an unusable ledger yields an empty map with success=False.
        """
        try:
            view = ledger.load()
        except EvacuationServiceError as e:
            logger.warning("Occupancy reconciliation failed", table=ledger.table_name, error=str(e))
            return ReconciliationResult(success=False, message=str(e))
        except Exception as e:
            logger.error("Unexpected error reading ledger", table=ledger.table_name, error=str(e))
            return ReconciliationResult(success=False, message=f"Error reading ledger: {e}")

        seen = set()
        occupants: Dict[str, OccupancyRecord] = {}
        rows_scanned = 0

        try:
            for event in view.events():
                rows_scanned += 1
                key = match_key(event.identity_raw)
                if key in seen:
                    continue
                seen.add(key)

                if event.is_open:
                    occupants[key] = OccupancyRecord(
                        identity=event.identity_raw,
                        name=event.name or NO_NAME,
                        company=event.company or NO_COMPANY,
                        entry_timestamp=event.entry_timestamp,
                        row_order=event.row_order,
                    )
        except Exception as e:
            logger.error("Unexpected error reconciling occupancy", table=ledger.table_name, error=str(e))
            return ReconciliationResult(success=False, message=f"Error reconciling occupancy: {e}")

        logger.debug("Occupancy reconciled", rows=rows_scanned, inside=len(occupants))
        return ReconciliationResult(
            success=True,
            message=f"{len(occupants)} people inside",
            occupants=occupants,
            rows_scanned=rows_scanned,
        )

    def snapshot(self, ledger: AccessLedger, result: Optional[ReconciliationResult] = None) -> OccupancySnapshot:
        """Occupancy payload for the UI layer."""
        result = result or self.reconcile(ledger)
        people = [
            OccupantView(
                identity=record.identity,
                name=record.name,
                company=record.company,
                entry_time=format_entry_time(record.entry_timestamp),
            )
            for record in result.records
        ]
        return OccupancySnapshot(
            success=result.success,
            message=result.message,
            total_inside=len(people),
            people_inside=people,
        )

    def daily_summary(self, ledger: AccessLedger, day: Optional[date] = None) -> DailySummary:
        """Entries and exits registered on a day plus current occupancy."""
        day = day or date.today()
        result = self.reconcile(ledger)
        entries = exits = 0
        if result.success:
            try:
                entries, exits = ledger.daily_counts(day)
            except EvacuationServiceError as e:
                logger.warning("Daily counts unavailable", error=str(e))
        return DailySummary(
            day=day.isoformat(),
            entries=entries,
            exits=exits,
            inside=len(result.occupants),
        )
