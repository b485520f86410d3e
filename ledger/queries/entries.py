"""
Entry Queries

Owner-scoped reads of ledger entries.

DESIGN DECISION: Queries are DETERMINISTIC and read-only. An owner sees the
entries of every account they own, inactive (soft-deleted) accounts included,
so history never disappears from reports. Every result carries its account.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from ledger.accounts import AccountRegistry
from ledger.errors import NotFoundError
from ledger.models.account import Account
from ledger.models.entry import EntryWithAccount, LedgerEntry
from ledger.services.storage import LedgerStorageInterface
from ledger.validation import PostingValidator


class EntryQueries:
    """Reads entries on behalf of one owner at a time."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        registry: AccountRegistry,
        validator: Optional[PostingValidator] = None,
    ):
        self._storage = storage
        self._registry = registry
        self._validator = validator or PostingValidator()

    async def _owned_accounts(self, owner_id: str) -> dict[UUID, Account]:
        return {a.id: a for a in await self._storage.list_accounts(owner_id)}

    @staticmethod
    def _attach(
        entries: list[LedgerEntry],
        accounts: dict[UUID, Account],
    ) -> list[EntryWithAccount]:
        return [
            EntryWithAccount(entry=entry, account=accounts[entry.account_id])
            for entry in entries
        ]

    async def list_for_owner(
        self,
        owner_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> list[EntryWithAccount]:
        """All of the owner's entries, optionally limited to a posted year/month."""
        accounts = await self._owned_accounts(owner_id)
        entries = await self._storage.list_entries(
            account_ids=list(accounts),
            posted_year=year,
            posted_month=month,
        )
        return self._attach(entries, accounts)

    async def list_by_account(
        self,
        owner_id: str,
        account_id: UUID,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> list[EntryWithAccount]:
        account = await self._registry.get_owned(account_id, owner_id)
        entries = await self._storage.list_entries(
            account_ids=[account.id],
            posted_year=year,
            posted_month=month,
        )
        return self._attach(entries, {account.id: account})

    async def list_by_date_range(
        self,
        owner_id: str,
        start: date,
        end: date,
    ) -> list[EntryWithAccount]:
        """
        Entries whose tx_date falls in [start, end].

        Raises:
            InvalidArgumentError: start is after end
        """
        self._validator.ensure_valid(self._validator.validate_date_range(start, end))

        accounts = await self._owned_accounts(owner_id)
        entries = await self._storage.list_entries(
            account_ids=list(accounts),
            date_from=start,
            date_to=end,
        )
        return self._attach(entries, accounts)

    async def get(self, owner_id: str, entry_id: UUID) -> EntryWithAccount:
        """
        Raises:
            NotFoundError: No entry with this ID
            AccessDeniedError: The entry's account belongs to someone else
        """
        entry = await self._storage.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Transaction {entry_id} not found")
        account = await self._registry.get_owned(entry.account_id, owner_id)
        return EntryWithAccount(entry=entry, account=account)
