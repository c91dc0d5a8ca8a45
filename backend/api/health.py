"""
Health check endpoints for the Facility Occupancy & Evacuation service.
"""

import os
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import structlog

from core.config import get_settings, Settings
from services.error_handler import get_error_handler
from services.ledger.ledger_schema import (
    LEDGER_REQUIRED_FIELDS, PERSONNEL_REQUIRED_FIELDS, resolve_columns
)
from services.ledger.table_store_service import TableStore
from services.service_registry import get_table_store

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """
    Health check endpoint (liveness check).
    Returns basic service health status.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": "Facility Occupancy & Evacuation Service",
        "version": "1.0.0"
    }


def _table_check(store: TableStore, name: str, required) -> Dict[str, Any]:
    table = store.get_table(name)
    if table is None:
        return {"status": "not_ready", "error": f"Table '{name}' not found"}
    missing = resolve_columns(table.headers).missing(required)
    if missing:
        return {"status": "not_ready", "error": f"Missing columns: {', '.join(missing)}"}
    return {"status": "ready", "details": f"{table.row_count} rows"}


@router.get("/ready")
async def readiness_check(
    settings: Settings = Depends(get_settings),
    store: TableStore = Depends(get_table_store),
) -> JSONResponse:
    """
    Readiness check endpoint.
    Verifies storage access and the ledger and personnel table headers.
    """
    checks = {}
    overall_ready = True

    # Check storage system
    try:
        test_path = os.path.join(settings.LOCAL_STORAGE_PATH, "test_file.txt")
        os.makedirs(os.path.dirname(test_path), exist_ok=True)

        with open(test_path, 'w') as f:
            f.write("test")
        os.remove(test_path)
        checks["storage"] = {"status": "ready", "details": "Local storage accessible"}

    except OSError as e:
        checks["storage"] = {"status": "not_ready", "error": str(e)}
        overall_ready = False

    checks["ledger"] = _table_check(store, settings.LEDGER_TABLE, LEDGER_REQUIRED_FIELDS)
    checks["personnel"] = _table_check(store, settings.PERSONNEL_TABLE, PERSONNEL_REQUIRED_FIELDS)
    if checks["ledger"]["status"] != "ready":
        overall_ready = False
    # personnel lookups degrade to "unknown person", not fatal

    checks["errors"] = get_error_handler("evacuation_processor").get_error_statistics()

    response_data = {
        "status": "ready" if overall_ready else "not_ready",
        "timestamp": datetime.utcnow().isoformat(),
        "checks": checks
    }
    return JSONResponse(
        content=response_data,
        status_code=200 if overall_ready else 503
    )
