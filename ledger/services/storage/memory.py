"""
In-Memory Storage Implementation

Dict-backed storage used by the test-suite and for local runs without any
Google credentials.

Transactions snapshot both tables on entry and restore them if the block
raises, so a failed installment batch or partial payment leaves nothing
behind. Only one transaction runs at a time; nested blocks in the same task
join the outer one.
"""

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator, Optional
from uuid import UUID

from ledger.errors import NotFoundError
from ledger.models.account import Account, AccountType
from ledger.models.audit import AuditEvent
from ledger.models.entry import LedgerEntry
from ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    entry_matches,
    entry_sort_key,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger storage kept in process memory."""

    def __init__(self):
        self._accounts: dict[UUID, Account] = {}
        self._entries: dict[UUID, LedgerEntry] = {}
        self._lock = asyncio.Lock()
        self._depth: ContextVar[int] = ContextVar(f"memory_tx_depth_{id(self)}", default=0)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        depth = self._depth.get()
        if depth > 0:
            token = self._depth.set(depth + 1)
            try:
                yield
            finally:
                self._depth.reset(token)
            return

        async with self._lock:
            accounts_snapshot = dict(self._accounts)
            entries_snapshot = dict(self._entries)
            token = self._depth.set(1)
            try:
                yield
            except BaseException:
                self._accounts = accounts_snapshot
                self._entries = entries_snapshot
                raise
            finally:
                self._depth.reset(token)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy() if account else None

    async def list_accounts(
        self,
        owner_id: str,
        active_only: bool = False,
        account_type: Optional[AccountType] = None,
    ) -> list[Account]:
        accounts = [
            a.model_copy()
            for a in self._accounts.values()
            if a.owner_id == owner_id
            and (not active_only or a.is_active)
            and (account_type is None or a.type == account_type)
        ]
        accounts.sort(key=lambda a: a.sort_order)
        return accounts

    async def max_sort_order(self, owner_id: str) -> Optional[int]:
        orders = [a.sort_order for a in self._accounts.values() if a.owner_id == owner_id]
        return max(orders) if orders else None

    async def insert_account(self, account: Account) -> Account:
        if account.id in self._accounts:
            raise DuplicateError(f"Account already exists: {account.id}")
        self._accounts[account.id] = account.model_copy()
        return account

    async def update_account(self, account: Account) -> Account:
        if account.id not in self._accounts:
            raise NotFoundError(f"Account not found: {account.id}")
        self._accounts[account.id] = account.model_copy()
        return account

    async def delete_account(self, account_id: UUID) -> bool:
        return self._accounts.pop(account_id, None) is not None

    # -------------------------------------------------------------------------
    # Ledger entries
    # -------------------------------------------------------------------------

    async def get_entry(self, entry_id: UUID) -> Optional[LedgerEntry]:
        entry = self._entries.get(entry_id)
        return entry.model_copy() if entry else None

    async def list_entries(self, account_ids=None, **filters) -> list[LedgerEntry]:
        entries = [
            e.model_copy()
            for e in self._entries.values()
            if entry_matches(e, account_ids=account_ids, **filters)
        ]
        entries.sort(key=entry_sort_key, reverse=True)
        return entries

    async def count_entries(self, account_id: UUID) -> int:
        return sum(1 for e in self._entries.values() if e.account_id == account_id)

    async def insert_entries(self, entries: list[LedgerEntry]) -> list[LedgerEntry]:
        ids = [e.id for e in entries]
        if len(set(ids)) != len(ids) or any(i in self._entries for i in ids):
            raise DuplicateError("Entry batch contains an existing or repeated ID")
        for entry in entries:
            self._entries[entry.id] = entry.model_copy()
        return entries

    async def update_entry(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.id not in self._entries:
            raise NotFoundError(f"Entry not found: {entry.id}")
        self._entries[entry.id] = entry.model_copy()
        return entry

    async def delete_entry(self, entry_id: UUID) -> bool:
        return self._entries.pop(entry_id, None) is not None

    async def delete_entries_by_group(self, group_id: UUID) -> int:
        doomed = [
            e.id for e in self._entries.values()
            if e.installment_group_id == group_id
        ]
        for entry_id in doomed:
            del self._entries[entry_id]
        return len(doomed)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in process memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
