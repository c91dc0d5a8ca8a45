"""
Evacuations API endpoints.
Runs REAL evacuations and drills and exposes their audit trail.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
import structlog

from models.schemas import EvacuationMode, EvacuationOutcome, EvacuationRequest
from services.error_handler import ValidationError
from services.evacuation.audit_trail_service import AuditTrailWriter
from services.evacuation.evacuation_processor_service import EvacuationProcessor
from services.service_registry import get_audit_trail_writer, get_evacuation_processor

logger = structlog.get_logger(__name__)
router = APIRouter()


def _run(processor: EvacuationProcessor, request: EvacuationRequest) -> EvacuationOutcome:
    try:
        return processor.process(request)
    except ValidationError as e:
        logger.warning("Rejected evacuation request", error=str(e), mode=request.mode.value)
        raise HTTPException(status_code=422, detail={"error_code": e.error_code, "message": str(e)})


@router.post("/evacuations", response_model=EvacuationOutcome)
def create_evacuation(
    request: EvacuationRequest,
    processor: EvacuationProcessor = Depends(get_evacuation_processor),
) -> EvacuationOutcome:
    """
    Evacuate the selected people.

    REAL mode closes their open sessions in the ledger; SIMULATED mode only
    projects the outcome. Failures during processing come back with
    success=false; malformed requests are rejected with 422.
    """
    return _run(processor, request)


@router.post("/evacuations/drill", response_model=EvacuationOutcome)
def create_drill(
    request: EvacuationRequest,
    processor: EvacuationProcessor = Depends(get_evacuation_processor),
) -> EvacuationOutcome:
    """Run an evacuation drill; the mode is always SIMULATED."""
    return _run(processor, request.model_copy(update={"mode": EvacuationMode.SIMULATED}))


@router.get("/evacuations/audit")
async def get_audit_trail(
    mode: EvacuationMode = Query(default=EvacuationMode.REAL),
    limit: int = Query(default=100, ge=1, le=1000),
    writer: AuditTrailWriter = Depends(get_audit_trail_writer),
) -> Dict[str, Any]:
    """Recent audit records of a mode, newest first."""
    entries: List[Dict[str, Any]] = writer.recent_entries(mode, limit)
    return {
        "mode": mode.value,
        "count": len(entries),
        "entries": entries,
    }
