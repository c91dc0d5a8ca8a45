"""
Evacuation Processor Service

Orchestrates an evacuation request over the people currently inside:
validation, identity normalization, mode dispatch, ledger mutation (REAL
only), audit recording, notification (REAL only) and the post-operation
occupancy snapshot.

SIMULATED runs are read-only. The processing path carries an explicit
dry_run flag down to every ledger mutation entry point, which refuses to
write while it is set.
"""

import threading
import time
import uuid
from datetime import datetime
from typing import List, Optional

import structlog

from models.schemas import (
    AccessEvent, DENIED_NAME, EvacuationMode, EvacuationOutcome, EvacuationRequest,
    NO_COMPANY, NO_NAME, OccupancyRecord, ResolvedPerson, to_local_naive
)
from services.error_handler import (
    NotFoundError, ProcessingError, ValidationError, get_error_handler
)
from services.evacuation.audit_trail_service import AuditTrailWriter
from services.identity.identity_normalizer_service import match_key, normalize
from services.identity.personnel_directory_service import PersonnelDirectory
from services.ledger.access_ledger_service import AccessLedger, format_duration
from services.notification_service import NotificationService
from services.occupancy.occupancy_reconciler_service import OccupancyReconciler

logger = structlog.get_logger(__name__)

# Names that mean the ledger row carries no usable person data
UNKNOWN_NAMES = {"", NO_NAME, DENIED_NAME, "Sin nombre", "DENEGADO"}
UNKNOWN_COMPANIES = {"", NO_COMPANY, "No especificada"}


def evacuation_note(timestamp: datetime, session_id: str) -> str:
    """Cell note attached to the exit cell of an evacuated session."""
    return f"EVACUATION - {timestamp.strftime('%H:%M')} - Session: {session_id}"


def validate_request(request: Optional[EvacuationRequest]) -> None:
    """Raise ValidationError for a malformed request."""
    if request is None:
        raise ValidationError("Evacuation request is required")
    if not isinstance(request.targets, list) or not request.targets:
        raise ValidationError("No people selected for evacuation")
    for target in request.targets:
        if not isinstance(target, str) or not target.strip():
            raise ValidationError("Every evacuation target must be a non-empty identity string")
    if not isinstance(request.mode, EvacuationMode):
        raise ValidationError(f"Invalid evacuation mode: {request.mode}")


def collapse_targets(targets: List[str]) -> List[str]:
    """Normalize targets and drop duplicates by identity key, first occurrence wins."""
    unique = []
    seen = set()
    for target in targets:
        normalized = normalize(target)
        key = match_key(normalized)
        if key in seen:
            continue
        seen.add(key)
        unique.append(normalized)
    return unique


class EvacuationProcessor:
    """Runs REAL and SIMULATED evacuations against one access ledger."""

    def __init__(
        self,
        ledger: AccessLedger,
        audit_writer: AuditTrailWriter,
        reconciler: Optional[OccupancyReconciler] = None,
        directory: Optional[PersonnelDirectory] = None,
        notifier: Optional[NotificationService] = None,
        notify: bool = True,
        error_log_dir: Optional[str] = None,
    ):
        self.ledger = ledger
        self.audit_writer = audit_writer
        self.reconciler = reconciler or OccupancyReconciler()
        self.directory = directory
        self.notifier = notifier
        self.notify = notify
        self.error_handler = get_error_handler("evacuation_processor", log_dir=error_log_dir)
        # single writer per process for REAL runs
        self._write_lock = threading.Lock()

    def process(self, request: EvacuationRequest) -> EvacuationOutcome:
        """
        Process an evacuation request.

        Raises:
            ValidationError: malformed request, before any ledger access

        Every other failure is reported through the returned outcome with
        success=False. A failure aborts the whole batch; REAL writes already
        made for earlier targets of the batch are not rolled back.
        """
        validate_request(request)

        started = time.perf_counter()
        session_id = str(uuid.uuid4())
        timestamp = to_local_naive(request.timestamp) or datetime.now()
        dry_run = request.mode == EvacuationMode.SIMULATED

        logger.info("Processing evacuation", session_id=session_id, mode=request.mode.value,
                    targets=len(request.targets), operator=request.operator)

        try:
            targets = collapse_targets(request.targets)
            if dry_run:
                resolved = self._resolve(targets, timestamp, session_id, dry_run=True)
            else:
                with self._write_lock:
                    resolved = self._resolve(targets, timestamp, session_id, dry_run=False)

        except NotFoundError as e:
            self.error_handler.handle_error(e, operation_name="process_evacuation", session_id=session_id)
            return self._failed(session_id, request, timestamp, str(e), started)

        except Exception as e:
            self.error_handler.handle_error(e, operation_name="process_evacuation", session_id=session_id,
                                            additional_data={"mode": request.mode.value})
            return self._failed(session_id, request, timestamp, f"Evacuation failed: {e}", started)

        outcome = EvacuationOutcome(
            session_id=session_id,
            mode=request.mode,
            resolved=resolved,
            success=True,
            message=self._summary_message(request.mode, len(resolved)),
            total_evacuated=len(resolved),
            timestamp=timestamp,
        )

        if resolved:
            self._audit(outcome, request)
            if not dry_run:
                self._notify(outcome)

        outcome = outcome.model_copy(update={
            "remaining": self._remaining(),
            "elapsed_ms": self._elapsed_ms(started),
        })
        logger.info("Evacuation processed", session_id=session_id, mode=request.mode.value,
                    evacuated=outcome.total_evacuated, remaining=len(outcome.remaining),
                    elapsed_ms=outcome.elapsed_ms)
        return outcome

    def _resolve(self, targets: List[str], timestamp: datetime, session_id: str,
                 dry_run: bool) -> List[ResolvedPerson]:
        """Locate each target's open session and close it unless dry_run."""
        view = self.ledger.load()
        resolved = []
        for target in targets:
            event = view.find_open_session(target)
            if event is None:
                logger.debug("No open session for target", target=target, session_id=session_id)
                continue
            resolved.append(self._resolve_one(event, timestamp, session_id, dry_run))
        return resolved

    def _resolve_one(self, event: AccessEvent, timestamp: datetime,
                     session_id: str, dry_run: bool) -> ResolvedPerson:
        name, company = self._enrich(event)

        if dry_run:
            return ResolvedPerson(
                identity=event.identity_raw,
                name=name,
                company=company,
                entry_timestamp=event.entry_timestamp,
                projected_exit_timestamp=timestamp,
                duration_label=format_duration(event.entry_timestamp, timestamp),
                row_order=event.row_order,
            )

        result = self.ledger.close_session(
            event,
            timestamp,
            session_id=session_id,
            dry_run=dry_run,
            note=evacuation_note(timestamp, session_id),
        )
        if not result.applied:
            raise ProcessingError(
                f"Ledger write for '{event.identity_raw}' was not applied: {result.message}"
            )
        return ResolvedPerson(
            identity=event.identity_raw,
            name=name,
            company=company,
            entry_timestamp=event.entry_timestamp,
            exit_timestamp=timestamp,
            duration_label=result.duration_label,
            row_order=event.row_order,
        )

    def _enrich(self, event: AccessEvent):
        """Name and company, filled in from the personnel directory when missing."""
        name = event.name.strip()
        company = event.company.strip()
        if self.directory is not None and (name in UNKNOWN_NAMES or company in UNKNOWN_COMPANIES):
            person = self.directory.find_by_identity(event.identity_raw)
            if person is not None:
                if name in UNKNOWN_NAMES:
                    name = person.name
                if company in UNKNOWN_COMPANIES:
                    company = person.company
        return name or NO_NAME, company or NO_COMPANY

    def _audit(self, outcome: EvacuationOutcome, request: EvacuationRequest) -> None:
        try:
            self.audit_writer.record(outcome, request)
        except Exception as e:
            self.error_handler.handle_error(e, operation_name="record_audit",
                                            error_code="AUDIT_WRITE_FAILED",
                                            session_id=outcome.session_id)

    def _notify(self, outcome: EvacuationOutcome) -> None:
        if not self.notify or self.notifier is None:
            return
        try:
            self.notifier.notify_evacuation(outcome)
        except Exception as e:
            self.error_handler.handle_error(e, operation_name="notify_evacuation",
                                            error_code="NOTIFICATION_FAILED",
                                            session_id=outcome.session_id)

    def _remaining(self) -> List[OccupancyRecord]:
        return self.reconciler.reconcile(self.ledger).records

    def _failed(self, session_id: str, request: EvacuationRequest, timestamp: datetime,
                message: str, started: float) -> EvacuationOutcome:
        return EvacuationOutcome(
            session_id=session_id,
            mode=request.mode,
            success=False,
            message=message,
            remaining=self._remaining(),
            elapsed_ms=self._elapsed_ms(started),
            timestamp=timestamp,
        )

    @staticmethod
    def _summary_message(mode: EvacuationMode, count: int) -> str:
        if count == 0:
            return "No open sessions found for the selected people"
        if mode == EvacuationMode.SIMULATED:
            return f"Drill completed: {count} person(s) would be evacuated"
        return f"Evacuation completed: {count} person(s) evacuated"

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)
