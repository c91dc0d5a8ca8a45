"""
Global service instances wired from the application settings.

The API layer resolves its collaborators through these getters, so tests can
swap them with FastAPI dependency overrides or reset them between runs.
"""

from typing import Optional

from core.config import get_settings
from services.access_registration_service import AccessRegistrationService
from services.evacuation.audit_trail_service import AuditTrailWriter
from services.evacuation.evacuation_processor_service import EvacuationProcessor
from services.identity.admin_roster_service import AdminRoster
from services.identity.personnel_directory_service import PersonnelDirectory
from services.ledger.access_ledger_service import AccessLedger
from services.ledger.table_store_service import TableStore, create_table_store
from services.notification_service import get_notification_service
from services.occupancy.occupancy_reconciler_service import OccupancyReconciler

_table_store: Optional[TableStore] = None
_evacuation_processor: Optional[EvacuationProcessor] = None


def get_table_store() -> TableStore:
    """Get the global table store instance."""
    global _table_store
    if _table_store is None:
        _table_store = create_table_store(get_settings())
    return _table_store


def get_access_ledger() -> AccessLedger:
    return AccessLedger(get_table_store(), get_settings().LEDGER_TABLE)


def get_personnel_directory() -> PersonnelDirectory:
    return PersonnelDirectory(get_table_store(), get_settings().PERSONNEL_TABLE)


def get_admin_roster() -> AdminRoster:
    return AdminRoster(get_table_store(), get_settings().ADMIN_TABLE)


def get_occupancy_reconciler() -> OccupancyReconciler:
    return OccupancyReconciler()


def get_audit_trail_writer() -> AuditTrailWriter:
    settings = get_settings()
    return AuditTrailWriter(
        get_table_store(),
        real_table=settings.REAL_AUDIT_TABLE,
        simulated_table=settings.SIMULATED_AUDIT_TABLE,
        error_table=settings.AUDIT_ERROR_TABLE,
        default_operator=settings.DEFAULT_OPERATOR,
        error_log_dir=settings.ERROR_LOG_DIR,
    )


def get_evacuation_processor() -> EvacuationProcessor:
    """Get the global evacuation processor (it owns the REAL-run lock)."""
    global _evacuation_processor
    if _evacuation_processor is None:
        settings = get_settings()
        _evacuation_processor = EvacuationProcessor(
            ledger=get_access_ledger(),
            audit_writer=get_audit_trail_writer(),
            reconciler=get_occupancy_reconciler(),
            directory=get_personnel_directory(),
            notifier=get_notification_service() if settings.NOTIFY_EVACUATIONS else None,
            notify=settings.NOTIFY_EVACUATIONS,
            error_log_dir=settings.ERROR_LOG_DIR,
        )
    return _evacuation_processor


def get_access_registration_service() -> AccessRegistrationService:
    return AccessRegistrationService(get_access_ledger(), get_personnel_directory())


def reset_services() -> None:
    """Drop the global instances (used by tests)."""
    global _table_store, _evacuation_processor
    _table_store = None
    _evacuation_processor = None
