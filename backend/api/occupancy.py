"""
Occupancy API endpoints.
Exposes who is currently inside the facility and the daily access summary.
"""

from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
import structlog

from models.schemas import DailySummary
from services.ledger.access_ledger_service import AccessLedger
from services.occupancy.occupancy_reconciler_service import OccupancyReconciler
from services.service_registry import get_access_ledger, get_occupancy_reconciler

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/occupancy")
async def get_occupancy(
    ledger: AccessLedger = Depends(get_access_ledger),
    reconciler: OccupancyReconciler = Depends(get_occupancy_reconciler),
) -> Dict[str, Any]:
    """
    Current occupancy snapshot.

    Returns {success, message, totalDentro, personasDentro, timestamp}; an
    unusable ledger is reported with success=false rather than an HTTP error.
    """
    snapshot = reconciler.snapshot(ledger)
    logger.info("Occupancy requested", total_inside=snapshot.total_inside, success=snapshot.success)
    return snapshot.to_payload()


@router.get("/occupancy/summary", response_model=DailySummary)
async def get_daily_summary(
    day: Optional[date] = Query(default=None, description="Day to summarize, defaults to today"),
    ledger: AccessLedger = Depends(get_access_ledger),
    reconciler: OccupancyReconciler = Depends(get_occupancy_reconciler),
) -> DailySummary:
    """Entries and exits registered on a day plus the current occupancy count."""
    return reconciler.daily_summary(ledger, day)
