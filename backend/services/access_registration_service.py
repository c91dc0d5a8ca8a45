"""
Access registration service.

Registers single entries and exits at the facility gate: the identity is
normalized, checked against the personnel directory and written to the
access ledger. Unknown people are still recorded, flagged as denied.
"""

from datetime import datetime
from typing import Optional, Union

import structlog

from models.schemas import (
    AccessDirection, AccessRegistrationResult, AccessStatus, DENIED_NAME, NO_COMPANY, to_local_naive
)
from services.error_handler import ValidationError
from services.identity.identity_normalizer_service import normalize
from services.identity.personnel_directory_service import PersonnelDirectory
from services.ledger.access_ledger_service import AccessLedger

logger = structlog.get_logger(__name__)


class AccessRegistrationService:
    """Gate registrations against one ledger and one personnel directory."""

    def __init__(self, ledger: AccessLedger, directory: PersonnelDirectory):
        self.ledger = ledger
        self.directory = directory

    def register(
        self,
        identity_raw: str,
        direction: Union[AccessDirection, str],
        at: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> AccessRegistrationResult:
        """
        Register an entry or exit.

        Raises:
            ValidationError: blank identity or unknown direction
        """
        if not isinstance(identity_raw, str) or not identity_raw.strip():
            raise ValidationError("Identity is required")
        try:
            direction = AccessDirection(str(getattr(direction, "value", direction)).strip().lower())
        except ValueError:
            raise ValidationError(f"Invalid direction: {direction}")

        identity = normalize(identity_raw)
        at = to_local_naive(at)
        person = self.directory.find_by_identity(identity)
        similar = []
        if person is not None:
            name, company, status = person.name, person.company, AccessStatus.GRANTED
        else:
            name, company, status = DENIED_NAME, NO_COMPANY, AccessStatus.DENIED
            similar = self.directory.find_similar(identity)
            logger.warning("Identity not found in personnel directory", identity=identity,
                           similar=len(similar))

        if direction == AccessDirection.ENTRY:
            result = self.ledger.register_entry(identity, name, company, status, at=at, dry_run=dry_run)
        else:
            result = self.ledger.register_exit(identity, name, company, status, at=at, dry_run=dry_run)

        if result.blocked_by_simulation:
            message = "Registration blocked: evacuation drill in progress"
        elif result.already_open:
            message = f"{name} is already inside, no exit recorded since the last entry"
        elif result.without_prior_entry:
            message = "Exit recorded without a previous entry"
        elif direction == AccessDirection.ENTRY:
            message = f"Entry recorded for {name}"
        else:
            message = f"Exit recorded for {name}"

        logger.info("Access registered", identity=identity, direction=direction.value,
                    status=status.value, applied=result.applied)
        return AccessRegistrationResult(
            identity=identity,
            name=name,
            company=company,
            direction=direction,
            status=status,
            message=message,
            duration_label=result.duration_label,
            without_prior_entry=result.without_prior_entry,
            already_inside=result.already_open,
            blocked_by_simulation=result.blocked_by_simulation,
            similar_identities=similar,
        )
