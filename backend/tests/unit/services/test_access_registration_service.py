"""
Unit tests for gate access registration.
"""

from datetime import datetime, timezone

import pytest

from models.schemas import AccessDirection, AccessStatus
from services.access_registration_service import AccessRegistrationService
from services.error_handler import ValidationError

DAY = datetime(2024, 5, 6)


@pytest.fixture
def service(ledger, directory):
    return AccessRegistrationService(ledger, directory)


class TestRegister:

    def test_known_person_entry(self, service, ledger_table):
        result = service.register("Texto - 8-1-1", "entry", at=DAY.replace(hour=8))

        assert result.identity == "8-1-1"
        assert result.name == "Ana Gómez"
        assert result.status == AccessStatus.GRANTED
        assert result.direction == AccessDirection.ENTRY
        assert ledger_table.get_all_rows()[1][1] == "8-1-1"

    def test_entry_then_exit(self, service, ledger_table):
        service.register("8-1-1", AccessDirection.ENTRY, at=DAY.replace(hour=8))
        result = service.register("8-1-1", "EXIT", at=DAY.replace(hour=12, minute=15))

        assert result.duration_label == "4h 15m"
        assert not result.without_prior_entry
        assert ledger_table.row_count == 1

    def test_orphan_exit(self, service, ledger_table):
        result = service.register("8-2-2", "exit", at=DAY.replace(hour=9))

        assert result.without_prior_entry
        assert result.duration_label == "No entry"
        assert "without a previous entry" in result.message

    def test_unknown_person_is_denied(self, service, ledger_table):
        result = service.register("8-123-999", "entry", at=DAY.replace(hour=8))

        assert result.status == AccessStatus.DENIED
        assert result.name == "DENIED"
        assert result.similar_identities == ["8-123-456"]
        row = ledger_table.get_all_rows()[1]
        assert row[2] == "DENIED"
        assert row[3] == "Access denied"

    def test_dry_run(self, service, ledger_table):
        result = service.register("8-1-1", "entry", dry_run=True)

        assert result.blocked_by_simulation
        assert ledger_table.row_count == 0

    @pytest.mark.parametrize("identity, direction", [
        ("", "entry"), ("   ", "exit"), (None, "entry"), ("8-1-1", "sideways"),
    ])
    def test_validation(self, service, identity, direction):
        with pytest.raises(ValidationError):
            service.register(identity, direction)


class TestRepeatedEntry:

    def test_already_inside(self, service, ledger_table):
        service.register("8-1-1", "entry", at=DAY.replace(hour=8))

        result = service.register("8-1-1", "entry", at=DAY.replace(hour=9))

        assert result.already_inside
        assert "already inside" in result.message
        assert ledger_table.row_count == 1

    def test_aware_time_is_stored_local(self, service, ledger_table):
        service.register("8-1-1", "entry", at=DAY.replace(hour=8).astimezone(timezone.utc))
        result = service.register("8-1-1", "exit", at=DAY.replace(hour=17).astimezone())

        assert result.duration_label == "9h 0m"
        assert ledger_table.get_all_rows()[1][4] == DAY.replace(hour=8)
