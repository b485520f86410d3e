"""
Main Orchestrator for the Personal Ledger

This module ties together all the components and exposes one facade,
PersonalLedger, to whatever calling layer sits on top (HTTP API, CLI, UI):
1. Accounts (registry)
2. Ledger postings (posting engine)
3. Reads and summaries (entry queries, summary aggregator)

DESIGN DECISION: The orchestrator enforces the boundaries:
- The owner id is passed explicitly on every call; there is no session state
- Every mutation is audited with a correlation id
- Every refusal is audited as OPERATION_REJECTED, every unexpected failure
  as SYSTEM_ERROR, and then re-raised unchanged

The orchestrator holds no business rules of its own.
"""

from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from ledger.accounts import AccountRegistry
from ledger.audit import AuditLogger, configure_logging, create_correlation_id
from ledger.config import AppSettings, get_settings, validate_all_settings
from ledger.errors import LedgerError
from ledger.models.account import Account, AccountCreate, AccountUpdate, DeleteOutcome
from ledger.models.entry import (
    CarryOverRequest,
    EntryCreate,
    EntryUpdate,
    EntryWithAccount,
    InstallmentCreate,
    PartialPaymentRequest,
)
from ledger.models.summary import (
    AccountSummary,
    InstallmentProjection,
    MonthlySummary,
    PartialPaymentResult,
)
from ledger.periods import Period, next_period
from ledger.posting import PostingEngine
from ledger.queries import EntryQueries, SummaryAggregator
from ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
)
from ledger.validation import PostingValidator

logger = structlog.get_logger("ledger.orchestrator")


class PersonalLedger:
    """
    Facade over the ledger components.

    Flow of a mutation:
    1. Correlation id created (or taken from the caller)
    2. Component call (ownership check, validation, one storage transaction)
    3. Audit event on success, OPERATION_REJECTED / SYSTEM_ERROR on failure
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        today: Callable[[], date] = date.today,
    ):
        self._settings = settings or get_settings().app
        self._audit = audit_logger or AuditLogger()
        self._storage = storage

        validator = PostingValidator(self._settings)
        self._registry = AccountRegistry(storage, self._settings)
        self._engine = PostingEngine(
            storage,
            self._registry,
            validator=validator,
            settings=self._settings,
            today=today,
        )
        self._entries = EntryQueries(storage, self._registry, validator)
        self._summaries = SummaryAggregator(
            storage,
            self._registry,
            settings=self._settings,
            today=today,
        )

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    @asynccontextmanager
    async def _guard(
        self,
        operation: str,
        owner_id: str,
        correlation_id: UUID,
    ) -> AsyncIterator[None]:
        """Audit failures of one operation, then let them propagate."""
        try:
            yield
        except (LedgerError, ValidationError) as e:
            await self._audit.log_rejected(
                operation=operation,
                error_code=getattr(e, "code", "invalid_argument"),
                error_message=str(e),
                owner_id=owner_id,
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._audit.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"operation": operation},
                owner_id=owner_id,
                correlation_id=correlation_id,
            )
            raise

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def list_accounts(self, owner_id: str) -> list[Account]:
        async with self._guard("list_accounts", owner_id, create_correlation_id()):
            return await self._registry.list_active(owner_id)

    async def get_account(self, owner_id: str, account_id: UUID) -> Account:
        async with self._guard("get_account", owner_id, create_correlation_id()):
            return await self._registry.get_owned(account_id, owner_id)

    async def create_account(
        self,
        owner_id: str,
        request: AccountCreate,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("create_account", owner_id, correlation_id):
            account = await self._registry.create(
                owner_id,
                request.name,
                request.type,
                request.sort_order,
            )
        await self._audit.log_account_created(
            owner_id=owner_id,
            account_id=account.id,
            name=account.name,
            account_type=account.type.value,
            correlation_id=correlation_id,
        )
        return account

    async def update_account(
        self,
        owner_id: str,
        account_id: UUID,
        changes: AccountUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("update_account", owner_id, correlation_id):
            account = await self._registry.update(account_id, owner_id, changes)
        await self._audit.log_account_updated(
            owner_id=owner_id,
            account_id=account.id,
            changes=changes.model_dump(exclude_none=True, mode="json"),
            correlation_id=correlation_id,
        )
        return account

    async def delete_account(
        self,
        owner_id: str,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> DeleteOutcome:
        """Hard delete if the account is unused, otherwise deactivate it."""
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("delete_account", owner_id, correlation_id):
            outcome = await self._registry.delete(account_id, owner_id)
        await self._audit.log_account_removed(
            owner_id=owner_id,
            account_id=account_id,
            hard=outcome is DeleteOutcome.HARD,
            correlation_id=correlation_id,
        )
        return outcome

    async def reorder_accounts(
        self,
        owner_id: str,
        ordered_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> list[Account]:
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("reorder_accounts", owner_id, correlation_id):
            accounts = await self._registry.reorder(owner_id, ordered_ids)
        await self._audit.log_accounts_reordered(
            owner_id=owner_id,
            ordered_ids=ordered_ids,
            correlation_id=correlation_id,
        )
        return accounts

    async def seed_accounts(
        self,
        owner_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[Account]:
        """Create the default accounts for a new owner; no-op otherwise."""
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("seed_accounts", owner_id, correlation_id):
            created = await self._registry.seed_defaults(owner_id)
        if created:
            await self._audit.log_accounts_seeded(
                owner_id=owner_id,
                created=len(created),
                correlation_id=correlation_id,
            )
        return created

    # =========================================================================
    # LEDGER READS
    # =========================================================================

    async def list_entries(
        self,
        owner_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> list[EntryWithAccount]:
        async with self._guard("list_entries", owner_id, create_correlation_id()):
            return await self._entries.list_for_owner(owner_id, year, month)

    async def list_entries_by_account(
        self,
        owner_id: str,
        account_id: UUID,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> list[EntryWithAccount]:
        async with self._guard("list_entries_by_account", owner_id, create_correlation_id()):
            return await self._entries.list_by_account(owner_id, account_id, year, month)

    async def list_entries_by_date_range(
        self,
        owner_id: str,
        start: date,
        end: date,
    ) -> list[EntryWithAccount]:
        async with self._guard("list_entries_by_date_range", owner_id, create_correlation_id()):
            return await self._entries.list_by_date_range(owner_id, start, end)

    async def get_entry(self, owner_id: str, entry_id: UUID) -> EntryWithAccount:
        async with self._guard("get_entry", owner_id, create_correlation_id()):
            return await self._entries.get(owner_id, entry_id)

    # =========================================================================
    # LEDGER POSTINGS
    # =========================================================================

    async def create_entry(
        self,
        owner_id: str,
        request: EntryCreate,
        correlation_id: Optional[UUID] = None,
    ) -> EntryWithAccount:
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("create_entry", owner_id, correlation_id):
            created = await self._engine.create_entry(owner_id, request)
        await self._audit.log_entry_created(
            owner_id=owner_id,
            entry_id=created.entry.id,
            account_id=created.account.id,
            amount=created.entry.amount,
            period=created.entry.posted_period,
            correlation_id=correlation_id,
        )
        await self._audit.log_validation_warnings(
            operation="create_entry",
            issues=created.warnings,
            owner_id=owner_id,
            entity_type="entry",
            entity_id=created.entry.id,
            correlation_id=correlation_id,
        )
        return created

    async def create_installment_plan(
        self,
        owner_id: str,
        request: InstallmentCreate,
        correlation_id: Optional[UUID] = None,
    ) -> list[EntryWithAccount]:
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("create_installment_plan", owner_id, correlation_id):
            created = await self._engine.create_installment_plan(owner_id, request)
        await self._audit.log_installment_plan_created(
            owner_id=owner_id,
            group_id=created[0].entry.installment_group_id,
            installments=len(created),
            amount=request.amount,
            first_period=Period(request.posted_year, request.posted_month),
            correlation_id=correlation_id,
        )
        # Every installment passed the same checks
        await self._audit.log_validation_warnings(
            operation="create_installment_plan",
            issues=created[0].warnings,
            owner_id=owner_id,
            entity_type="installment_group",
            entity_id=created[0].entry.installment_group_id,
            correlation_id=correlation_id,
        )
        return created

    async def update_entry(
        self,
        owner_id: str,
        entry_id: UUID,
        changes: EntryUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> EntryWithAccount:
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("update_entry", owner_id, correlation_id):
            updated = await self._engine.update_entry(owner_id, entry_id, changes)
        await self._audit.log_entry_updated(
            owner_id=owner_id,
            entry_id=entry_id,
            changes=changes.model_dump(exclude_none=True, mode="json"),
            correlation_id=correlation_id,
        )
        await self._audit.log_validation_warnings(
            operation="update_entry",
            issues=updated.warnings,
            owner_id=owner_id,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
        )
        return updated

    async def delete_entry(
        self,
        owner_id: str,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("delete_entry", owner_id, correlation_id):
            await self._engine.delete_entry(owner_id, entry_id)
        await self._audit.log_entry_deleted(
            owner_id=owner_id,
            entry_id=entry_id,
            correlation_id=correlation_id,
        )

    async def delete_installment_group(
        self,
        owner_id: str,
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """Returns the number of deleted entries."""
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("delete_installment_group", owner_id, correlation_id):
            deleted = await self._engine.delete_installment_group(owner_id, group_id)
        await self._audit.log_installment_group_deleted(
            owner_id=owner_id,
            group_id=group_id,
            deleted=deleted,
            correlation_id=correlation_id,
        )
        return deleted

    async def carry_over(
        self,
        owner_id: str,
        request: CarryOverRequest,
        correlation_id: Optional[UUID] = None,
    ) -> EntryWithAccount:
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("carry_over", owner_id, correlation_id):
            created = await self._engine.carry_over(
                owner_id,
                request.from_year,
                request.from_month,
                request.amount,
            )
        await self._audit.log_carry_over_posted(
            owner_id=owner_id,
            entry_id=created.entry.id,
            from_period=Period(request.from_year, request.from_month),
            to_period=next_period(request.from_year, request.from_month),
            amount=request.amount,
            correlation_id=correlation_id,
        )
        return created

    async def partial_payment(
        self,
        owner_id: str,
        request: PartialPaymentRequest,
        correlation_id: Optional[UUID] = None,
    ) -> PartialPaymentResult:
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard("partial_payment", owner_id, correlation_id):
            result = await self._engine.partial_payment(
                owner_id,
                request.entry_id,
                request.paid_amount,
                request.interest_amount,
            )
        await self._audit.log_partial_payment_posted(
            owner_id=owner_id,
            entry_id=request.entry_id,
            paid_amount=result.paid_amount,
            remaining_amount=result.remaining_amount,
            interest_amount=result.interest_amount,
            next_period=result.next_period,
            correlation_id=correlation_id,
        )
        await self._audit.log_validation_warnings(
            operation="partial_payment",
            issues=result.warnings,
            owner_id=owner_id,
            entity_type="entry",
            entity_id=request.entry_id,
            correlation_id=correlation_id,
        )
        return result

    # =========================================================================
    # SUMMARIES
    # =========================================================================

    async def monthly_summary(self, owner_id: str, year: int, month: int) -> MonthlySummary:
        async with self._guard("monthly_summary", owner_id, create_correlation_id()):
            return await self._summaries.monthly_summary(owner_id, year, month)

    async def year_summary(self, owner_id: str, year: int) -> list[MonthlySummary]:
        async with self._guard("year_summary", owner_id, create_correlation_id()):
            return await self._summaries.year_summary(owner_id, year)

    async def account_summary(
        self,
        owner_id: str,
        account_id: UUID,
        year: int,
        month: int,
    ) -> AccountSummary:
        async with self._guard("account_summary", owner_id, create_correlation_id()):
            return await self._summaries.account_summary(owner_id, account_id, year, month)

    async def all_accounts_summary(
        self,
        owner_id: str,
        year: int,
        month: int,
    ) -> list[AccountSummary]:
        async with self._guard("all_accounts_summary", owner_id, create_correlation_id()):
            return await self._summaries.all_accounts_summary(owner_id, year, month)

    async def upcoming_installments(
        self,
        owner_id: str,
        months_ahead: Optional[int] = None,
    ) -> list[InstallmentProjection]:
        async with self._guard("upcoming_installments", owner_id, create_correlation_id()):
            return await self._summaries.upcoming_installments(owner_id, months_ahead)


def create_app_components(
    use_storage: bool = True,
    today: Callable[[], date] = date.today,
) -> tuple[PersonalLedger, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Settings are checked up front; problems are logged as "settings_invalid".
    LEDGER_DEBUG_MODE=true forces DEBUG logging regardless of LEDGER_LOG_LEVEL.

    Args:
        use_storage: Whether to use the configured storage backend.
                    Set to False for testing with the in-memory backend.
        today: Clock used for "dated today" entries and the upcoming window

    Returns:
        (ledger, sheets_client); sheets_client is None unless the Google
        Sheets backend is in use.
    """
    settings = get_settings()
    checks = validate_all_settings()
    if not all(value for key, value in checks.items() if not key.endswith("_error")):
        logger.warning("settings_invalid", **checks)

    app = settings.app
    configure_logging("DEBUG" if app.debug_mode else app.log_level)

    sheets_client = None
    storage: LedgerStorageInterface
    audit_logger: AuditLogger

    if use_storage and app.uses_google_sheets and checks.get("google_sheets"):
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage unreachable - continue in memory
            logger.warning("storage_not_configured", error=str(e), fallback="memory")
            sheets_client = None
            storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        if use_storage and app.uses_google_sheets:
            logger.warning(
                "storage_not_configured",
                error=checks.get("google_sheets_error"),
                fallback="memory",
            )
        storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    ledger = PersonalLedger(
        storage,
        audit_logger=audit_logger,
        settings=app,
        today=today,
    )
    return ledger, sheets_client
