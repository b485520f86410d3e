"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep Google Sheets as a user-visible backend
2. Use in-memory storage for testing
3. Swap in a relational database later
4. Keep posting rules decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Only conjunctive exact-match filters and one fixed ordering.

CRITICAL: Every multi-row write of one logical operation must run inside
``async with storage.transaction():``. Either every write inside the block
is applied or none is.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import date
from typing import Optional
from uuid import UUID

from ledger.models.account import Account, AccountType
from ledger.models.audit import AuditEvent
from ledger.models.entry import LedgerEntry
from ledger.periods import Period


class LedgerStorageInterface(ABC):
    """
    Abstract interface for account and ledger entry storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """
        Open a unit of work.

        Writes made inside the block are committed together when it exits
        normally and discarded if it raises. Nested blocks join the
        outermost one.

        Raises:
            TransactionError: If the commit itself fails
        """
        pass

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[Account]:
        """
        Retrieve an account by ID, regardless of owner.

        Callers outside the account registry must not use this directly;
        ownership has to be checked first.
        """
        pass

    @abstractmethod
    async def list_accounts(
        self,
        owner_id: str,
        active_only: bool = False,
        account_type: Optional[AccountType] = None,
    ) -> list[Account]:
        """
        List an owner's accounts ordered by sort_order ascending.

        Args:
            owner_id: Owning user
            active_only: Skip soft-deleted accounts
            account_type: Only accounts of this type
        """
        pass

    @abstractmethod
    async def max_sort_order(self, owner_id: str) -> Optional[int]:
        """Highest sort_order among the owner's accounts, None if there are none."""
        pass

    @abstractmethod
    async def insert_account(self, account: Account) -> Account:
        """
        Insert a new account.

        Raises:
            DuplicateError: If an account with the same ID exists
        """
        pass

    @abstractmethod
    async def update_account(self, account: Account) -> Account:
        """
        Replace a stored account.

        Raises:
            NotFoundError: If the account doesn't exist
        """
        pass

    @abstractmethod
    async def delete_account(self, account_id: UUID) -> bool:
        """Hard-delete an account. Returns False if it didn't exist."""
        pass

    # -------------------------------------------------------------------------
    # Ledger entries
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_entry(self, entry_id: UUID) -> Optional[LedgerEntry]:
        """Retrieve an entry by ID, None if absent."""
        pass

    @abstractmethod
    async def list_entries(
        self,
        account_ids: Optional[list[UUID]] = None,
        posted_year: Optional[int] = None,
        posted_month: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        installment_group_id: Optional[UUID] = None,
        has_installment_group: Optional[bool] = None,
        is_carry_over: Optional[bool] = None,
        carry_from_year: Optional[int] = None,
        carry_from_month: Optional[int] = None,
        period_from: Optional[Period] = None,
        period_to: Optional[Period] = None,
    ) -> list[LedgerEntry]:
        """
        List entries matching ALL given filters.

        Args:
            account_ids: Only entries on these accounts (empty list = nothing)
            posted_year: Posted year equals
            posted_month: Posted month equals
            date_from: tx_date on or after
            date_to: tx_date on or before
            installment_group_id: Member of this installment group
            has_installment_group: Whether the entry belongs to any group
            is_carry_over: Carry-over flag equals
            carry_from_year: Carried from this year
            carry_from_month: Carried from this month
            period_from: Posted period on or after
            period_to: Posted period on or before

        Returns:
            Matching entries, newest tx_date first, then newest created_at
        """
        pass

    @abstractmethod
    async def count_entries(self, account_id: UUID) -> int:
        """Number of entries referencing an account."""
        pass

    @abstractmethod
    async def insert_entries(self, entries: list[LedgerEntry]) -> list[LedgerEntry]:
        """
        Batch-insert entries. All of them are written or none is.

        Raises:
            DuplicateError: If any entry ID already exists
        """
        pass

    @abstractmethod
    async def update_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Replace a stored entry.

        Raises:
            NotFoundError: If the entry doesn't exist
        """
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: UUID) -> bool:
        """Delete one entry. Returns False if it didn't exist."""
        pass

    @abstractmethod
    async def delete_entries_by_group(self, group_id: UUID) -> int:
        """Delete every entry of an installment group. Returns the count removed."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one user action, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class TransactionError(StorageError):
    """A unit of work could not be committed; nothing was applied."""
    pass


def entry_sort_key(entry: LedgerEntry) -> tuple:
    """Sort key for the canonical listing order (use with reverse=True)."""
    return (entry.tx_date, entry.created_at)


def entry_matches(
    entry: LedgerEntry,
    account_ids: Optional[list[UUID]] = None,
    posted_year: Optional[int] = None,
    posted_month: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    installment_group_id: Optional[UUID] = None,
    has_installment_group: Optional[bool] = None,
    is_carry_over: Optional[bool] = None,
    carry_from_year: Optional[int] = None,
    carry_from_month: Optional[int] = None,
    period_from: Optional[Period] = None,
    period_to: Optional[Period] = None,
) -> bool:
    """
    Apply list_entries filters to one entry.

    Shared by backends that filter in Python.
    """
    if account_ids is not None and entry.account_id not in account_ids:
        return False
    if posted_year is not None and entry.posted_year != posted_year:
        return False
    if posted_month is not None and entry.posted_month != posted_month:
        return False
    if date_from is not None and entry.tx_date < date_from:
        return False
    if date_to is not None and entry.tx_date > date_to:
        return False
    if installment_group_id is not None and entry.installment_group_id != installment_group_id:
        return False
    if has_installment_group is not None and (
        (entry.installment_group_id is not None) != has_installment_group
    ):
        return False
    if is_carry_over is not None and entry.is_carry_over != is_carry_over:
        return False
    if carry_from_year is not None and entry.carry_from_year != carry_from_year:
        return False
    if carry_from_month is not None and entry.carry_from_month != carry_from_month:
        return False
    if period_from is not None and entry.posted_period < tuple(period_from):
        return False
    if period_to is not None and entry.posted_period > tuple(period_to):
        return False
    return True
