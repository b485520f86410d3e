"""
Posting Engine

Turns one user action into one or more ledger entries.

DESIGN DECISION: Every operation is a single-shot unit of work:
1. Ownership check through the AccountRegistry
2. Request validation (PostingValidator)
3. Period arithmetic for the target period(s)
4. All writes inside ONE storage transaction

Nothing here retries, schedules or deduplicates. A failed operation leaves
the ledger exactly as it was.

Synthetic entries (carry-over, remainder, interest) get their descriptions
from the DescriptionFormatter so they follow LEDGER_LOCALE.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID, uuid4

from ledger.accounts import AccountRegistry
from ledger.config import AppSettings, get_settings
from ledger.errors import ConflictError, ForbiddenError, NotFoundError
from ledger.models.account import Account
from ledger.models.entry import (
    EntryCreate,
    EntryUpdate,
    EntryWithAccount,
    InstallmentCreate,
    LedgerEntry,
)
from ledger.models.summary import PartialPaymentResult
from ledger.periods import add_months, last_day_of_month, next_period
from ledger.posting.descriptions import DescriptionFormatter
from ledger.services.storage import LedgerStorageInterface
from ledger.validation import PostingValidator


class PostingEngine:
    """
    Applies posting rules to the ledger.

    Args:
        storage: Ledger storage backend
        registry: Account registry used for every ownership check
        validator: Request validator; built from settings if omitted
        today: Clock for "dated today" entries (partial payment remainders)
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        registry: AccountRegistry,
        validator: Optional[PostingValidator] = None,
        settings: Optional[AppSettings] = None,
        today: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self._registry = registry
        self._settings = settings or get_settings().app
        self._validator = validator or PostingValidator(self._settings)
        self._descriptions = DescriptionFormatter(self._settings.locale)
        self._today = today

    async def _get_owned_entry(
        self,
        entry_id: UUID,
        owner_id: str,
    ) -> tuple[LedgerEntry, Account]:
        entry = await self._storage.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Transaction {entry_id} not found")
        account = await self._registry.get_owned(entry.account_id, owner_id)
        return entry, account

    # =========================================================================
    # SIMPLE TRANSACTION
    # =========================================================================

    async def create_entry(self, owner_id: str, request: EntryCreate) -> EntryWithAccount:
        """Post one entry to an owned account."""
        checked = self._validator.ensure_valid(self._validator.validate_entry(request))

        async with self._storage.transaction():
            account = await self._registry.get_owned(request.account_id, owner_id)
            entry = LedgerEntry(
                account_id=account.id,
                amount=request.amount,
                description=request.description,
                tx_date=request.tx_date,
                posted_year=request.posted_year,
                posted_month=request.posted_month,
            )
            await self._storage.insert_entries([entry])

        return EntryWithAccount(entry=entry, account=account, warnings=checked.warning_issues)

    # =========================================================================
    # INSTALLMENT PLAN
    # =========================================================================

    async def create_installment_plan(
        self,
        owner_id: str,
        request: InstallmentCreate,
    ) -> list[EntryWithAccount]:
        """
        Lay out an installment purchase across consecutive months.

        Installment i (0-based) is posted to posted period + i months. All
        entries share the group id and the signed per-installment amount.
        Returned ordered by installment_index.

        Raises:
            InvalidArgumentError: installment_total < 2
        """
        account = await self._registry.get_owned(request.account_id, owner_id)
        checked = self._validator.ensure_valid(self._validator.validate_installment_plan(request))

        group_id = uuid4()
        entries = []
        for i in range(request.installment_total):
            period = add_months(request.posted_year, request.posted_month, i)
            entries.append(LedgerEntry(
                account_id=account.id,
                amount=request.amount,
                description=request.description,
                tx_date=request.tx_date,
                posted_year=period.year,
                posted_month=period.month,
                installment_group_id=group_id,
                installment_index=i + 1,
                installment_total=request.installment_total,
            ))

        async with self._storage.transaction():
            # Re-check inside the unit of work; the account may have moved on
            await self._registry.get_owned(account.id, owner_id)
            await self._storage.insert_entries(entries)

        return [
            EntryWithAccount(entry=e, account=account, warnings=checked.warning_issues)
            for e in entries
        ]

    # =========================================================================
    # CARRY-OVER
    # =========================================================================

    async def carry_over(
        self,
        owner_id: str,
        from_year: int,
        from_month: int,
        amount: Decimal,
    ) -> EntryWithAccount:
        """
        Roll a month's net into the following month.

        The entry goes to the owner's carry-over account, dated the last day
        of the source month and posted to the month after it.

        Raises:
            NotFoundError: The owner has no carry-over account
            ConflictError: Already carried over (only with
                LEDGER_REJECT_DUPLICATE_CARRY_OVER=true)
        """
        async with self._storage.transaction():
            account = await self._registry.find_carry_over_account(owner_id)
            if account is None:
                raise NotFoundError(
                    "Carry over account not found. Please create one first."
                )

            if self._settings.reject_duplicate_carry_over:
                existing = await self._storage.list_entries(
                    account_ids=await self._registry.owned_account_ids(owner_id),
                    is_carry_over=True,
                    carry_from_year=from_year,
                    carry_from_month=from_month,
                )
                if existing:
                    raise ConflictError(
                        f"{from_year}-{from_month:02d} has already been carried over"
                    )

            destination = next_period(from_year, from_month)
            entry = LedgerEntry(
                account_id=account.id,
                amount=amount,
                description=self._descriptions.carry_over(from_year, from_month),
                tx_date=last_day_of_month(from_year, from_month),
                posted_year=destination.year,
                posted_month=destination.month,
                is_carry_over=True,
                carry_from_year=from_year,
                carry_from_month=from_month,
            )
            await self._storage.insert_entries([entry])

        return EntryWithAccount(entry=entry, account=account)

    # =========================================================================
    # PARTIAL PAYMENT
    # =========================================================================

    async def partial_payment(
        self,
        owner_id: str,
        entry_id: UUID,
        paid_amount: Decimal,
        interest_amount: Decimal = Decimal("0"),
    ) -> PartialPaymentResult:
        """
        Pay part of an expense now and push the rest to the next month.

        The original entry is rewritten to the paid amount and flagged; a
        remainder entry (and an interest entry if interest > 0) is posted to
        the month after the original's posted period, dated today.

        Raises:
            NotFoundError / AccessDeniedError: Entry missing or not owned
            ConflictError: The entry was already partially paid
            ForbiddenError: The account type doesn't allow partial payment
            InvalidArgumentError: Bad amounts, or nothing would remain
        """
        async with self._storage.transaction():
            entry, account = await self._get_owned_entry(entry_id, owner_id)

            if entry.is_partially_paid:
                raise ConflictError("This transaction has already been partially paid")
            if not account.type.allows_partial_payment:
                raise ForbiddenError(
                    f"Partial payment is not allowed on {account.type.value} accounts"
                )
            checked = self._validator.ensure_valid(
                self._validator.validate_partial_payment(entry, paid_amount, interest_amount)
            )

            original_amount = abs(entry.amount)
            remaining_amount = original_amount - paid_amount
            destination = next_period(entry.posted_year, entry.posted_month)
            today = self._today()

            remainder = LedgerEntry(
                account_id=entry.account_id,
                amount=-remaining_amount,
                description=self._descriptions.remainder(entry.description),
                tx_date=today,
                posted_year=destination.year,
                posted_month=destination.month,
            )
            new_entries = [remainder]

            interest: Optional[LedgerEntry] = None
            if interest_amount > 0:
                interest = LedgerEntry(
                    account_id=entry.account_id,
                    amount=-interest_amount,
                    description=self._descriptions.interest(entry.description),
                    tx_date=today,
                    posted_year=destination.year,
                    posted_month=destination.month,
                )
                new_entries.append(interest)

            await self._storage.insert_entries(new_entries)

            paid_entry = LedgerEntry.model_validate({
                **entry.model_dump(),
                "is_partially_paid": True,
                "amount": -paid_amount,
                "description": self._descriptions.paid(entry.description, paid_amount),
                "updated_at": datetime.utcnow(),
            })
            await self._storage.update_entry(paid_entry)

        return PartialPaymentResult(
            original_amount=original_amount,
            paid_amount=paid_amount,
            remaining_amount=remaining_amount,
            interest_amount=interest_amount,
            total_next_month=remaining_amount + interest_amount,
            next_period=destination,
            remainder_entry_id=remainder.id,
            interest_entry_id=interest.id if interest else None,
            warnings=checked.warning_issues,
        )

    # =========================================================================
    # EDIT / DELETE
    # =========================================================================

    async def update_entry(
        self,
        owner_id: str,
        entry_id: UUID,
        changes: EntryUpdate,
    ) -> EntryWithAccount:
        """
        Partially update an entry.

        Moving it to another account requires owning that account too.
        """
        checked = self._validator.ensure_valid(self._validator.validate_entry_update(changes))

        async with self._storage.transaction():
            entry, account = await self._get_owned_entry(entry_id, owner_id)
            if changes.account_id is not None and changes.account_id != entry.account_id:
                account = await self._registry.get_owned(changes.account_id, owner_id)

            updated = LedgerEntry.model_validate({
                **entry.model_dump(),
                **changes.model_dump(exclude_none=True),
                "updated_at": datetime.utcnow(),
            })
            await self._storage.update_entry(updated)

        return EntryWithAccount(entry=updated, account=account, warnings=checked.warning_issues)

    async def delete_entry(self, owner_id: str, entry_id: UUID) -> LedgerEntry:
        """Delete one entry; returns what was deleted."""
        async with self._storage.transaction():
            entry, _ = await self._get_owned_entry(entry_id, owner_id)
            await self._storage.delete_entry(entry.id)
        return entry

    async def delete_installment_group(self, owner_id: str, group_id: UUID) -> int:
        """
        Delete every entry of an installment plan.

        Ownership is checked through the first entry found.

        Returns:
            Number of deleted entries
        """
        async with self._storage.transaction():
            members = await self._storage.list_entries(installment_group_id=group_id)
            if not members:
                raise NotFoundError("Installment group not found")
            await self._registry.get_owned(members[0].account_id, owner_id)
            return await self._storage.delete_entries_by_group(group_id)
