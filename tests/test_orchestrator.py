"""
Tests for the PersonalLedger facade and its audit trail.

Flows run end to end against the in-memory backend; the audit storage is
inspected to check what was recorded.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from ledger.audit import AuditLogger, create_correlation_id
from ledger.config import get_settings, validate_all_settings
from ledger.errors import AccessDeniedError, ConflictError, InvalidArgumentError, NotFoundError
from ledger.models.account import AccountCreate, AccountType, AccountUpdate, DeleteOutcome
from ledger.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from ledger.models.entry import CarryOverRequest, EntryUpdate, InstallmentCreate, PartialPaymentRequest
from ledger.orchestrator import PersonalLedger, create_app_components
from ledger.services.storage import AuditStorageInterface, InMemoryLedgerStorage
from tests.conftest import OTHER_OWNER, OWNER, entry_request, fixed_clock


async def events_of(audit_storage, event_type: AuditEventType) -> list:
    return [
        e for e in await audit_storage.get_recent_events(limit=1000)
        if e.event_type == event_type
    ]


class BrokenAuditStorage(AuditStorageInterface):
    """Audit storage whose writes always fail."""

    async def append_event(self, event):
        raise RuntimeError("audit sheet unavailable")

    async def get_events_by_correlation_id(self, correlation_id):
        return []

    async def get_events_by_entity(self, entity_type, entity_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


class TestAccountFlows:
    """Account operations through the facade."""

    @pytest.mark.asyncio
    async def test_create_account_is_audited(self, ledger, audit_storage):
        correlation_id = create_correlation_id()

        account = await ledger.create_account(
            OWNER,
            AccountCreate(name="Wallet", type=AccountType.CASH),
            correlation_id=correlation_id,
        )

        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [AuditEventType.ACCOUNT_CREATED]
        assert events[0].entity_id == account.id
        assert events[0].owner_id == OWNER

    @pytest.mark.asyncio
    async def test_update_and_delete(self, ledger, audit_storage):
        account = await ledger.create_account(OWNER, AccountCreate(name="Old", type=AccountType.CASH))

        renamed = await ledger.update_account(OWNER, account.id, AccountUpdate(name="New"))
        outcome = await ledger.delete_account(OWNER, account.id)

        assert renamed.name == "New"
        assert outcome is DeleteOutcome.HARD
        updated = await events_of(audit_storage, AuditEventType.ACCOUNT_UPDATED)
        assert updated[0].details["changes"] == {"name": "New"}
        assert len(await events_of(audit_storage, AuditEventType.ACCOUNT_DELETED)) == 1

    @pytest.mark.asyncio
    async def test_seed_accounts_audited_once(self, ledger, audit_storage):
        created = await ledger.seed_accounts(OWNER)
        again = await ledger.seed_accounts(OWNER)

        assert [a.type for a in created] == [AccountType.CASH, AccountType.CARRY_OVER]
        assert again == []
        assert len(await events_of(audit_storage, AuditEventType.ACCOUNTS_SEEDED)) == 1
        assert [a.name for a in await ledger.list_accounts(OWNER)] == ["Cash", "Carry-over"]

    @pytest.mark.asyncio
    async def test_reorder(self, ledger, audit_storage):
        a = await ledger.create_account(OWNER, AccountCreate(name="A", type=AccountType.CASH))
        b = await ledger.create_account(OWNER, AccountCreate(name="B", type=AccountType.CASH))

        accounts = await ledger.reorder_accounts(OWNER, [b.id, a.id])

        assert [x.id for x in accounts] == [b.id, a.id]
        assert len(await events_of(audit_storage, AuditEventType.ACCOUNTS_REORDERED)) == 1


class TestPostingFlows:
    """Posting operations through the facade."""

    @pytest.mark.asyncio
    async def test_month_end_flow(self, ledger, audit_storage):
        """Seed, post, split a bill, then roll March into April."""
        correlation_id = create_correlation_id()
        await ledger.seed_accounts(OWNER)
        card = await ledger.create_account(
            OWNER, AccountCreate(name="Visa", type=AccountType.CREDIT_CARD)
        )

        bill = await ledger.create_entry(
            OWNER,
            entry_request(card.id, "-3490", description="Phone bill"),
            correlation_id=correlation_id,
        )
        await ledger.create_entry(OWNER, entry_request(card.id, "30000", description="Salary"))
        result = await ledger.partial_payment(
            OWNER,
            PartialPaymentRequest(
                entry_id=bill.entry.id,
                paid_amount=Decimal("2000"),
                interest_amount=Decimal("100"),
            ),
            correlation_id=correlation_id,
        )

        march = await ledger.monthly_summary(OWNER, 2026, 3)
        carried = await ledger.carry_over(
            OWNER,
            CarryOverRequest(from_year=2026, from_month=3, amount=march.net),
            correlation_id=correlation_id,
        )
        april = await ledger.monthly_summary(OWNER, 2026, 4)

        assert result.total_next_month == Decimal("1590")
        assert march.net == Decimal("28000")
        assert (await ledger.monthly_summary(OWNER, 2026, 3)).has_carried_over is True
        assert carried.entry.tx_date == date(2026, 3, 31)
        # 28000 carried in, 1490 remainder and 100 interest due
        assert april.net == Decimal("26410")

        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.ENTRY_CREATED,
            AuditEventType.PARTIAL_PAYMENT_POSTED,
            AuditEventType.CARRY_OVER_POSTED,
        ]
        assert events[1].details["next_period"] == "2026-04"
        assert events[2].details["from_period"] == "2026-03"
        assert events[2].details["to_period"] == "2026-04"

    @pytest.mark.asyncio
    async def test_installment_plan_and_group_delete(self, ledger, audit_storage):
        card = await ledger.create_account(
            OWNER, AccountCreate(name="Visa", type=AccountType.CREDIT_CARD)
        )
        plan = await ledger.create_installment_plan(
            OWNER,
            InstallmentCreate(
                account_id=card.id,
                tx_date=date(2026, 3, 1),
                posted_year=2026,
                posted_month=3,
                amount=Decimal("-500"),
                description="Laptop",
                installment_total=4,
            ),
        )
        group_id = plan[0].entry.installment_group_id

        upcoming = await ledger.upcoming_installments(OWNER)
        deleted = await ledger.delete_installment_group(OWNER, group_id)

        assert upcoming[0].remaining == 4
        assert deleted == 4
        assert await ledger.list_entries(OWNER) == []
        created = await events_of(audit_storage, AuditEventType.INSTALLMENT_PLAN_CREATED)
        assert created[0].details["first_period"] == "2026-03"
        assert created[0].entity_id == group_id

    @pytest.mark.asyncio
    async def test_edit_and_delete_entry(self, ledger, audit_storage):
        cash = await ledger.create_account(OWNER, AccountCreate(name="Wallet", type=AccountType.CASH))
        created = await ledger.create_entry(OWNER, entry_request(cash.id, "-45"))

        edited = await ledger.update_entry(
            OWNER, created.entry.id, EntryUpdate(description="Lunch")
        )
        await ledger.delete_entry(OWNER, created.entry.id)

        assert edited.entry.description == "Lunch"
        assert await ledger.list_entries(OWNER) == []
        assert len(await events_of(audit_storage, AuditEventType.ENTRY_UPDATED)) == 1
        assert len(await events_of(audit_storage, AuditEventType.ENTRY_DELETED)) == 1

    @pytest.mark.asyncio
    async def test_suspicious_amount_is_audited_as_warning(self, ledger, audit_storage):
        correlation_id = create_correlation_id()
        card = await ledger.create_account(
            OWNER, AccountCreate(name="Visa", type=AccountType.CREDIT_CARD)
        )

        created = await ledger.create_entry(
            OWNER,
            entry_request(card.id, "-50000000", tx_date=date(2020, 1, 1)),
            correlation_id=correlation_id,
        )

        assert len(created.warnings) == 2
        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.ENTRY_CREATED,
            AuditEventType.VALIDATION_WARNING,
        ]
        warning = events[1]
        assert warning.severity == AuditSeverity.WARNING
        assert warning.entity_id == created.entry.id
        assert warning.details["operation"] == "create_entry"
        assert {i["field"] for i in warning.details["issues"]} == {"amount", "posted_period"}

    @pytest.mark.asyncio
    async def test_clean_posting_has_no_warning_event(self, ledger, audit_storage):
        cash = await ledger.create_account(OWNER, AccountCreate(name="Wallet", type=AccountType.CASH))
        await ledger.create_entry(OWNER, entry_request(cash.id, "-45"))

        assert await events_of(audit_storage, AuditEventType.VALIDATION_WARNING) == []


class TestFailureAuditing:
    """Refusals and unexpected errors are audited, then re-raised."""

    @pytest.mark.asyncio
    async def test_conflict_is_rejected(self, ledger, audit_storage):
        card = await ledger.create_account(
            OWNER, AccountCreate(name="Visa", type=AccountType.CREDIT_CARD)
        )
        bill = await ledger.create_entry(OWNER, entry_request(card.id, "-3490"))
        request = PartialPaymentRequest(entry_id=bill.entry.id, paid_amount=Decimal("2000"))
        await ledger.partial_payment(OWNER, request)

        with pytest.raises(ConflictError):
            await ledger.partial_payment(OWNER, request)

        rejected = await events_of(audit_storage, AuditEventType.OPERATION_REJECTED)
        assert len(rejected) == 1
        assert rejected[0].severity == AuditSeverity.WARNING
        assert rejected[0].error_code == "conflict"
        assert rejected[0].details["operation"] == "partial_payment"
        assert len(await events_of(audit_storage, AuditEventType.PARTIAL_PAYMENT_POSTED)) == 1

    @pytest.mark.asyncio
    async def test_invalid_argument_is_rejected(self, ledger, audit_storage):
        card = await ledger.create_account(
            OWNER, AccountCreate(name="Visa", type=AccountType.CREDIT_CARD)
        )

        with pytest.raises(InvalidArgumentError):
            await ledger.create_installment_plan(
                OWNER,
                InstallmentCreate(
                    account_id=card.id,
                    tx_date=date(2026, 3, 1),
                    posted_year=2026,
                    posted_month=3,
                    amount=Decimal("-500"),
                    installment_total=1,
                ),
            )

        rejected = await events_of(audit_storage, AuditEventType.OPERATION_REJECTED)
        assert rejected[0].error_code == "invalid_argument"
        assert await events_of(audit_storage, AuditEventType.INSTALLMENT_PLAN_CREATED) == []

    @pytest.mark.asyncio
    async def test_reads_are_guarded(self, ledger, audit_storage):
        bob = await ledger.create_account(
            OTHER_OWNER, AccountCreate(name="Bob", type=AccountType.CASH)
        )

        with pytest.raises(AccessDeniedError):
            await ledger.account_summary(OWNER, bob.id, 2026, 3)

        rejected = await events_of(audit_storage, AuditEventType.OPERATION_REJECTED)
        assert rejected[0].error_code == "access_denied"
        assert rejected[0].owner_id == OWNER

    @pytest.mark.asyncio
    async def test_unexpected_error_is_system_error(self, ledger, storage, audit_storage, monkeypatch):
        cash = await ledger.create_account(OWNER, AccountCreate(name="Wallet", type=AccountType.CASH))

        async def broken_insert(entries):
            raise RuntimeError("disk full")

        monkeypatch.setattr(storage, "insert_entries", broken_insert)

        with pytest.raises(RuntimeError):
            await ledger.create_entry(OWNER, entry_request(cash.id, "-1"))

        errors = await events_of(audit_storage, AuditEventType.SYSTEM_ERROR)
        assert len(errors) == 1
        assert errors[0].severity == AuditSeverity.ERROR
        assert errors[0].details["operation"] == "create_entry"
        assert "disk full" in errors[0].error_message


class TestAuditLogger:
    """Audit persistence failures never fail the caller."""

    @pytest.mark.asyncio
    async def test_storage_failure_is_swallowed(self):
        audit = AuditLogger(BrokenAuditStorage())
        event = AuditEventBuilder.accounts_seeded(OWNER, 2)

        assert await audit.log(event) is False

    @pytest.mark.asyncio
    async def test_no_storage(self):
        assert await AuditLogger().log(AuditEventBuilder.accounts_seeded(OWNER, 2)) is True

    @pytest.mark.asyncio
    async def test_posting_survives_broken_audit(self, settings):
        ledger = PersonalLedger(
            InMemoryLedgerStorage(),
            audit_logger=AuditLogger(BrokenAuditStorage()),
            settings=settings,
            today=fixed_clock,
        )

        account = await ledger.create_account(
            OWNER, AccountCreate(name="Wallet", type=AccountType.CASH)
        )

        assert (await ledger.get_account(OWNER, account.id)).name == "Wallet"


class TestCreateAppComponents:
    """Tests for the component factory."""

    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in ("GOOGLE_SHEETS_CREDENTIALS_PATH", "GOOGLE_SHEETS_SPREADSHEET_ID"):
            monkeypatch.delenv(name, raising=False)
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    @pytest.mark.asyncio
    async def test_memory_backend(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "memory")

        ledger, sheets_client = create_app_components(today=fixed_clock)

        assert sheets_client is None
        assert isinstance(ledger.storage, InMemoryLedgerStorage)
        assert await ledger.list_accounts(OWNER) == []

    def test_use_storage_false_ignores_backend(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "google_sheets")

        ledger, sheets_client = create_app_components(use_storage=False)

        assert sheets_client is None
        assert isinstance(ledger.storage, InMemoryLedgerStorage)

    def test_unconfigured_sheets_falls_back_to_memory(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "google_sheets")

        ledger, sheets_client = create_app_components()

        assert sheets_client is None
        assert isinstance(ledger.storage, InMemoryLedgerStorage)

    @pytest.mark.asyncio
    async def test_unknown_entry(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "memory")
        ledger, _ = create_app_components()

        with pytest.raises(NotFoundError):
            await ledger.get_entry(OWNER, uuid4())

    def test_debug_mode_forces_debug_logging(self, monkeypatch):
        levels = []
        monkeypatch.setattr("ledger.orchestrator.configure_logging", levels.append)
        monkeypatch.setenv("LEDGER_LOG_LEVEL", "WARNING")
        monkeypatch.setenv("LEDGER_DEBUG_MODE", "true")

        create_app_components()

        assert levels == ["DEBUG"]

    def test_log_level_without_debug_mode(self, monkeypatch):
        levels = []
        monkeypatch.setattr("ledger.orchestrator.configure_logging", levels.append)
        monkeypatch.setenv("LEDGER_LOG_LEVEL", "WARNING")

        create_app_components()

        assert levels == ["WARNING"]

    def test_unconfigured_sheets_is_reported(self, monkeypatch):
        log = MagicMock()
        monkeypatch.setattr("ledger.orchestrator.logger", log)
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "google_sheets")

        create_app_components()

        events = [c.args[0] for c in log.warning.call_args_list]
        assert events == ["settings_invalid", "storage_not_configured"]
        assert log.warning.call_args_list[0].kwargs["google_sheets"] is False

    def test_valid_memory_settings_are_quiet(self, monkeypatch):
        log = MagicMock()
        monkeypatch.setattr("ledger.orchestrator.logger", log)
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "memory")

        create_app_components()

        log.warning.assert_not_called()


class TestValidateAllSettings:
    """Tests for the startup settings check."""

    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in ("GOOGLE_SHEETS_CREDENTIALS_PATH", "GOOGLE_SHEETS_SPREADSHEET_ID"):
            monkeypatch.delenv(name, raising=False)
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_memory_backend_skips_sheets(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "memory")
        assert validate_all_settings() == {"app": True}

    def test_missing_sheets_settings(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "google_sheets")

        results = validate_all_settings()

        assert results["app"] is True
        assert results["google_sheets"] is False
        assert "spreadsheet_id" in results["google_sheets_error"]

    def test_sheets_settings_from_environment(self, monkeypatch, tmp_path):
        credentials = tmp_path / "credentials.json"
        credentials.write_text("{}")
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "google_sheets")
        monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", str(credentials))
        monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-123")

        assert validate_all_settings() == {"app": True, "google_sheets": True}

    def test_invalid_app_settings(self, monkeypatch):
        monkeypatch.setenv("LEDGER_LOCALE", "fr")

        results = validate_all_settings()

        assert results["app"] is False
        assert "locale" in results["app_error"]
