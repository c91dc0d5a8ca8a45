"""
Access registration API endpoint.
Records entries and exits at the facility gate.
"""

from fastapi import APIRouter, Depends, HTTPException
import structlog

from models.schemas import AccessRegistrationRequest, AccessRegistrationResult
from services.access_registration_service import AccessRegistrationService
from services.error_handler import NotFoundError, ProcessingError, ValidationError
from services.service_registry import get_access_registration_service

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/access", response_model=AccessRegistrationResult)
def register_access(
    request: AccessRegistrationRequest,
    service: AccessRegistrationService = Depends(get_access_registration_service),
) -> AccessRegistrationResult:
    """Register an entry or an exit for one identity."""
    try:
        return service.register(request.identity, request.direction, at=request.timestamp)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"error_code": e.error_code, "message": str(e)})
    except NotFoundError as e:
        logger.error("Access registration failed", identity=request.identity, error=str(e))
        raise HTTPException(status_code=503, detail={"error_code": e.error_code, "message": str(e)})
    except ProcessingError as e:
        logger.warning("Access registration conflicted", identity=request.identity, error=str(e))
        raise HTTPException(status_code=409, detail={"error_code": e.error_code, "message": str(e)})
