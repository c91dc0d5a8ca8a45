"""
Pytest configuration and shared fixtures for the backend test suite.
"""

import os
import shutil
import tempfile
from datetime import datetime
from typing import Callable, Generator
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from core.config import Settings, get_settings
from main import create_application
from services import service_registry
from services.evacuation.audit_trail_service import AuditTrailWriter
from services.evacuation.evacuation_processor_service import EvacuationProcessor
from services.identity.personnel_directory_service import PersonnelDirectory
from services.ledger.access_ledger_service import AccessLedger
from services.ledger.ledger_schema import (
    DEFAULT_ADMIN_HEADERS, DEFAULT_LEDGER_HEADERS, DEFAULT_PERSONNEL_HEADERS
)
from services.ledger.table_store_service import InMemoryTableStore, Table
from services.notification_service import NotificationService
from services.occupancy.occupancy_reconciler_service import OccupancyReconciler

LEDGER_TABLE = "Historial"
PERSONNEL_TABLE = "Base de Datos"
ADMIN_TABLE = "Clave"
REAL_AUDIT_TABLE = "Log_Emergencias"
SIMULATED_AUDIT_TABLE = "Log_Simulacros"
AUDIT_ERROR_TABLE = "Log_Errores"

DAY = datetime(2024, 5, 6)


@pytest.fixture
def temp_storage_dir() -> Generator[str, None, None]:
    """Create a temporary directory for test storage."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def test_settings(temp_storage_dir: str) -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        DEBUG=True,
        HOST="127.0.0.1",
        PORT=8001,
        LOCAL_STORAGE_PATH=temp_storage_dir,
        STORAGE_BACKEND="memory",
        LEDGER_TABLE=LEDGER_TABLE,
        PERSONNEL_TABLE=PERSONNEL_TABLE,
        ADMIN_TABLE=ADMIN_TABLE,
        NOTIFY_EVACUATIONS=False,
        ERROR_LOG_DIR=os.path.join(temp_storage_dir, "logs", "errors"),
        ALLOWED_ORIGINS="http://localhost:3000"
    )


@pytest.fixture
def memory_store() -> InMemoryTableStore:
    """Empty in-memory table store."""
    return InMemoryTableStore()


@pytest.fixture
def ledger_table(memory_store: InMemoryTableStore) -> Table:
    """Ledger table with the default headers and no rows."""
    return memory_store.create_table(LEDGER_TABLE, DEFAULT_LEDGER_HEADERS)


@pytest.fixture
def add_ledger_row(ledger_table: Table) -> Callable[..., int]:
    """Append a ledger row laid out like the default headers; returns its index."""

    def _add(identity: str, entry=None, exit_time=None, name: str = "", company: str = "",
             duration: str = "", status: str = "Access granted") -> int:
        return ledger_table.append_row([
            entry or exit_time or DAY,
            identity,
            name,
            status,
            entry if entry is not None else "",
            exit_time if exit_time is not None else "",
            duration,
            company,
        ])

    return _add


@pytest.fixture
def personnel_table(memory_store: InMemoryTableStore) -> Table:
    """Personnel directory with three known people."""
    table = memory_store.create_table(PERSONNEL_TABLE, DEFAULT_PERSONNEL_HEADERS)
    table.append_row(["8-1-1", "Ana Gómez", "Acme"])
    table.append_row(["8-2-2", "Luis Pérez", "Globex"])
    table.append_row(["8-123-456", "Marta Ruiz", ""])
    return table


@pytest.fixture
def admin_table(memory_store: InMemoryTableStore) -> Table:
    """Administrator roster with one active and one inactive entry."""
    table = memory_store.create_table(ADMIN_TABLE, DEFAULT_ADMIN_HEADERS)
    table.append_row(["8-9-9", "Rosa Díaz", "Supervisor", "rosa@example.com", "Activo"])
    table.append_row(["8-7-7", "Pedro Gil", "", "", "Inactivo"])
    return table


@pytest.fixture
def ledger(memory_store: InMemoryTableStore, ledger_table: Table) -> AccessLedger:
    return AccessLedger(memory_store, LEDGER_TABLE)


@pytest.fixture
def directory(memory_store: InMemoryTableStore, personnel_table: Table) -> PersonnelDirectory:
    return PersonnelDirectory(memory_store, PERSONNEL_TABLE)


@pytest.fixture
def audit_writer(memory_store: InMemoryTableStore) -> AuditTrailWriter:
    return AuditTrailWriter(
        memory_store,
        real_table=REAL_AUDIT_TABLE,
        simulated_table=SIMULATED_AUDIT_TABLE,
        error_table=AUDIT_ERROR_TABLE,
        default_operator="test_operator",
    )


@pytest.fixture
def mock_notifier() -> Mock:
    """Notification collaborator double."""
    return Mock(spec=NotificationService)


@pytest.fixture
def processor(ledger: AccessLedger, audit_writer: AuditTrailWriter,
              directory: PersonnelDirectory, mock_notifier: Mock) -> EvacuationProcessor:
    return EvacuationProcessor(
        ledger=ledger,
        audit_writer=audit_writer,
        reconciler=OccupancyReconciler(),
        directory=directory,
        notifier=mock_notifier,
    )


@pytest.fixture
def app(test_settings: Settings, memory_store: InMemoryTableStore,
        monkeypatch: pytest.MonkeyPatch, mock_notifier: Mock):
    """FastAPI application bound to the in-memory store."""
    monkeypatch.setattr(service_registry, "get_settings", lambda: test_settings)
    monkeypatch.setattr(service_registry, "_table_store", memory_store)
    monkeypatch.setattr(service_registry, "_evacuation_processor", None)
    monkeypatch.setattr(service_registry, "get_notification_service", lambda: mock_notifier)

    application = create_application()
    application.dependency_overrides[get_settings] = lambda: test_settings
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """Create test client for FastAPI app."""
    return TestClient(app)
