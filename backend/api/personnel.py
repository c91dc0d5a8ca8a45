"""
Personnel administration API endpoints.
Administrators add, update and remove personnel directory entries.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
import structlog

from models.schemas import (
    AdminUser, AdminValidationRequest, PersonnelChangeResult, PersonnelCreateRequest,
    PersonnelUpdateRequest, PersonRecord
)
from services.error_handler import (
    AuthorizationError, DuplicateIdentityError, EvacuationServiceError, NotFoundError,
    RecordNotFoundError, ValidationError
)
from services.identity.admin_roster_service import AdminRoster
from services.identity.personnel_directory_service import PersonnelDirectory
from services.service_registry import get_admin_roster, get_personnel_directory

logger = structlog.get_logger(__name__)
router = APIRouter()


def _http_error(status_code: int, error: EvacuationServiceError) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error_code": error.error_code, "message": str(error)})


def _status_for(error: EvacuationServiceError) -> int:
    if isinstance(error, DuplicateIdentityError):
        return 409
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, RecordNotFoundError):
        return 404
    if isinstance(error, NotFoundError):
        return 503
    return 500


def require_admin(
    x_admin_identity: Optional[str] = Header(default=None),
    roster: AdminRoster = Depends(get_admin_roster),
) -> AdminUser:
    """Resolve the X-Admin-Identity header against the administrator roster."""
    try:
        return roster.authorize(x_admin_identity)
    except AuthorizationError as e:
        raise _http_error(403, e)


@router.post("/admin/validate", response_model=AdminUser)
def validate_admin(
    request: AdminValidationRequest,
    roster: AdminRoster = Depends(get_admin_roster),
) -> AdminUser:
    """Check whether an identity may use the administration screens."""
    try:
        return roster.authorize(request.identity)
    except AuthorizationError as e:
        raise _http_error(403, e)


@router.get("/personnel/{identity}", response_model=PersonRecord)
def get_person(
    identity: str,
    admin: AdminUser = Depends(require_admin),
    directory: PersonnelDirectory = Depends(get_personnel_directory),
) -> PersonRecord:
    person = directory.find_by_identity(identity)
    if person is None:
        raise _http_error(404, RecordNotFoundError(f"No personnel record for identity {identity}"))
    return person


@router.post("/personnel", response_model=PersonnelChangeResult, status_code=201)
def add_person(
    request: PersonnelCreateRequest,
    admin: AdminUser = Depends(require_admin),
    directory: PersonnelDirectory = Depends(get_personnel_directory),
) -> PersonnelChangeResult:
    """Add a personnel entry; duplicates by identity are rejected with 409."""
    try:
        record = directory.add(request.identity, request.name, request.company)
    except EvacuationServiceError as e:
        logger.warning("Personnel add rejected", identity=request.identity, admin=admin.identity,
                       error_code=e.error_code)
        raise _http_error(_status_for(e), e)

    logger.info("Personnel added", identity=record.identity, admin=admin.identity)
    return PersonnelChangeResult(message="Record added", record=record)


@router.put("/personnel/{identity}", response_model=PersonnelChangeResult)
def update_person(
    identity: str,
    request: PersonnelUpdateRequest,
    admin: AdminUser = Depends(require_admin),
    directory: PersonnelDirectory = Depends(get_personnel_directory),
) -> PersonnelChangeResult:
    """Update the entry matching the path identity; omitted fields are kept."""
    try:
        record = directory.update(identity, identity=request.identity, name=request.name,
                                  company=request.company)
    except EvacuationServiceError as e:
        logger.warning("Personnel update rejected", identity=identity, admin=admin.identity,
                       error_code=e.error_code)
        raise _http_error(_status_for(e), e)

    logger.info("Personnel updated", original_identity=identity, identity=record.identity,
                admin=admin.identity)
    return PersonnelChangeResult(message="Record updated", record=record)


@router.delete("/personnel/{identity}", response_model=PersonnelChangeResult)
def remove_person(
    identity: str,
    admin: AdminUser = Depends(require_admin),
    directory: PersonnelDirectory = Depends(get_personnel_directory),
) -> PersonnelChangeResult:
    try:
        record = directory.remove(identity)
    except EvacuationServiceError as e:
        logger.warning("Personnel removal rejected", identity=identity, admin=admin.identity,
                       error_code=e.error_code)
        raise _http_error(_status_for(e), e)

    logger.info("Personnel removed", identity=record.identity, admin=admin.identity)
    return PersonnelChangeResult(message="Record removed", record=record)
