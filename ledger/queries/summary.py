"""
Summary Aggregator

Derives monthly, per-account and upcoming-installment views from ledger
entries. Read-only: nothing here writes to storage.

DESIGN DECISION: Summaries are always computed from the entries, never
cached or stored. Every total is a plain signed Decimal sum, so a summary
can be re-derived and checked by hand from the entry list.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from ledger.accounts import AccountRegistry
from ledger.config import AppSettings, get_settings
from ledger.models.account import Account
from ledger.models.entry import LedgerEntry
from ledger.models.summary import (
    AccountSummary,
    AccountSummaryEntry,
    InstallmentProjection,
    MonthlySummary,
    ScheduledInstallment,
)
from ledger.periods import current_period, period_range
from ledger.services.storage import LedgerStorageInterface

# How many upcoming payments each projection lists
NEXT_PAYMENTS_SHOWN = 3


class SummaryAggregator:
    """Builds read-side summaries for one owner at a time."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        registry: AccountRegistry,
        settings: Optional[AppSettings] = None,
        today: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self._registry = registry
        self._settings = settings or get_settings().app
        self._today = today

    # =========================================================================
    # MONTHLY
    # =========================================================================

    @staticmethod
    def _monthly(
        year: int,
        month: int,
        entries: list[LedgerEntry],
        carried: list[LedgerEntry],
    ) -> MonthlySummary:
        income = sum((e.amount for e in entries if e.amount > 0), Decimal("0"))
        expense = sum((e.amount for e in entries if e.amount < 0), Decimal("0"))
        return MonthlySummary(
            year=year,
            month=month,
            income=income,
            expense=expense,
            net=income + expense,
            has_carried_over=bool(carried),
        )

    async def monthly_summary(self, owner_id: str, year: int, month: int) -> MonthlySummary:
        """
        Income, expense and net of one posted period across all owned accounts.

        has_carried_over tells whether (year, month) has already been rolled
        forward, i.e. a carry-over entry with this source period exists.
        """
        account_ids = await self._registry.owned_account_ids(owner_id)
        entries = await self._storage.list_entries(
            account_ids=account_ids,
            posted_year=year,
            posted_month=month,
        )
        carried = await self._storage.list_entries(
            account_ids=account_ids,
            is_carry_over=True,
            carry_from_year=year,
            carry_from_month=month,
        )
        return self._monthly(year, month, entries, carried)

    async def year_summary(self, owner_id: str, year: int) -> list[MonthlySummary]:
        """
        Twelve monthly summaries, January first.

        The year's entries are read once and split by month, so the number
        of storage reads doesn't grow with the number of months.
        """
        account_ids = await self._registry.owned_account_ids(owner_id)
        entries = await self._storage.list_entries(account_ids=account_ids, posted_year=year)
        carried = await self._storage.list_entries(
            account_ids=account_ids,
            is_carry_over=True,
            carry_from_year=year,
        )

        by_month: dict[int, list[LedgerEntry]] = {month: [] for month in range(1, 13)}
        for entry in entries:
            by_month[entry.posted_month].append(entry)
        carried_by_month: dict[int, list[LedgerEntry]] = {month: [] for month in range(1, 13)}
        for entry in carried:
            carried_by_month[entry.carry_from_month].append(entry)

        return [
            self._monthly(year, month, by_month[month], carried_by_month[month])
            for month in range(1, 13)
        ]

    # =========================================================================
    # PER ACCOUNT
    # =========================================================================

    def _account_summary(
        self,
        account: Account,
        year: int,
        month: int,
        entries: list[LedgerEntry],
    ) -> AccountSummary:
        return AccountSummary(
            account_id=account.id,
            account_name=account.name,
            account_type=account.type,
            sort_order=account.sort_order,
            year=year,
            month=month,
            total=sum((e.amount for e in entries), Decimal("0")),
            entries=[
                AccountSummaryEntry(
                    id=e.id,
                    description=e.description,
                    amount=e.amount,
                    tx_date=e.tx_date,
                    installment_index=e.installment_index,
                    installment_total=e.installment_total,
                    installment_group_id=e.installment_group_id,
                    is_carry_over=e.is_carry_over,
                    is_partially_paid=e.is_partially_paid,
                )
                for e in entries
            ],
        )

    async def account_summary(
        self,
        owner_id: str,
        account_id: UUID,
        year: int,
        month: int,
    ) -> AccountSummary:
        """One owned account in one posted period (entries newest first)."""
        account = await self._registry.get_owned(account_id, owner_id)
        entries = await self._storage.list_entries(
            account_ids=[account.id],
            posted_year=year,
            posted_month=month,
        )
        return self._account_summary(account, year, month, entries)

    async def all_accounts_summary(
        self,
        owner_id: str,
        year: int,
        month: int,
    ) -> list[AccountSummary]:
        """Summaries of active accounts that have entries in the period, by sort_order."""
        summaries = []
        for account in await self._registry.list_active(owner_id):
            entries = await self._storage.list_entries(
                account_ids=[account.id],
                posted_year=year,
                posted_month=month,
            )
            if entries:
                summaries.append(self._account_summary(account, year, month, entries))
        return summaries

    # =========================================================================
    # UPCOMING INSTALLMENTS
    # =========================================================================

    async def upcoming_installments(
        self,
        owner_id: str,
        months_ahead: Optional[int] = None,
    ) -> list[InstallmentProjection]:
        """
        Installment plans with payments between the current period and
        months_ahead months later (both ends inclusive).

        Plans are listed in the order their first in-window payment appears.
        NOTE: remaining is the number of payments inside the window only.
        """
        if months_ahead is None:
            months_ahead = self._settings.upcoming_months_default

        start = current_period(self._today())
        end = period_range(start.year, start.month, months_ahead)

        accounts = {a.id: a for a in await self._storage.list_accounts(owner_id)}
        entries = await self._storage.list_entries(
            account_ids=list(accounts),
            has_installment_group=True,
            period_from=start,
            period_to=end,
        )
        entries.sort(key=lambda e: (e.posted_year, e.posted_month, e.installment_index))

        grouped: dict[UUID, list[LedgerEntry]] = {}
        for entry in entries:
            grouped.setdefault(entry.installment_group_id, []).append(entry)

        return [
            InstallmentProjection(
                group_id=group_id,
                description=members[0].description,
                account_name=accounts[members[0].account_id].name,
                amount_per_installment=members[0].amount,
                remaining=len(members),
                total=members[0].installment_total,
                next_payments=[
                    ScheduledInstallment(
                        year=m.posted_year,
                        month=m.posted_month,
                        index=m.installment_index,
                    )
                    for m in members[:NEXT_PAYMENTS_SHOWN]
                ],
            )
            for group_id, members in grouped.items()
        ]
