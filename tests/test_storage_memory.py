"""Tests for the in-memory storage backend."""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger.models.account import Account, AccountType
from ledger.models.audit import AuditEventBuilder
from ledger.models.entry import LedgerEntry
from ledger.periods import Period
from ledger.services.storage import (
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)


def _account(owner_id="u1", **overrides) -> Account:
    values = {"owner_id": owner_id, "name": "Wallet", "type": AccountType.CASH}
    values.update(overrides)
    return Account(**values)


def _entry(account_id, **overrides) -> LedgerEntry:
    values = {
        "account_id": account_id,
        "amount": Decimal("-10"),
        "tx_date": date(2026, 3, 1),
        "posted_year": 2026,
        "posted_month": 3,
    }
    values.update(overrides)
    return LedgerEntry(**values)


class TestTransactions:
    """Tests for transaction rollback and nesting."""

    @pytest.mark.asyncio
    async def test_commit(self):
        storage = InMemoryLedgerStorage()
        account = _account()

        async with storage.transaction():
            await storage.insert_account(account)

        assert await storage.get_account(account.id) is not None

    @pytest.mark.asyncio
    async def test_rollback_on_exception(self):
        storage = InMemoryLedgerStorage()
        account = _account()
        await storage.insert_account(account)

        with pytest.raises(RuntimeError):
            async with storage.transaction():
                await storage.insert_entries([_entry(account.id), _entry(account.id)])
                await storage.delete_account(account.id)
                raise RuntimeError("boom")

        assert await storage.get_account(account.id) is not None
        assert await storage.count_entries(account.id) == 0

    @pytest.mark.asyncio
    async def test_nested_transaction_joins_outer(self):
        """An inner block does not commit on its own; the outer failure undoes it."""
        storage = InMemoryLedgerStorage()
        account = _account()

        with pytest.raises(RuntimeError):
            async with storage.transaction():
                async with storage.transaction():
                    await storage.insert_account(account)
                assert await storage.get_account(account.id) is not None
                raise RuntimeError("boom")

        assert await storage.get_account(account.id) is None

    @pytest.mark.asyncio
    async def test_duplicate_batch_leaves_nothing(self):
        storage = InMemoryLedgerStorage()
        account = _account()
        await storage.insert_account(account)
        first = _entry(account.id)

        with pytest.raises(DuplicateError):
            await storage.insert_entries([first, first])

        assert await storage.count_entries(account.id) == 0


class TestAccounts:
    """Tests for account storage."""

    @pytest.mark.asyncio
    async def test_duplicate_account(self):
        storage = InMemoryLedgerStorage()
        account = _account()
        await storage.insert_account(account)
        with pytest.raises(DuplicateError):
            await storage.insert_account(account)

    @pytest.mark.asyncio
    async def test_list_accounts_filters(self):
        storage = InMemoryLedgerStorage()
        cash = await storage.insert_account(_account(sort_order=2))
        carry = await storage.insert_account(
            _account(name="Carry", type=AccountType.CARRY_OVER, sort_order=1)
        )
        closed = await storage.insert_account(_account(name="Old", is_active=False, sort_order=3))
        await storage.insert_account(_account(owner_id="u2"))

        assert [a.id for a in await storage.list_accounts("u1")] == [carry.id, cash.id, closed.id]
        assert [a.id for a in await storage.list_accounts("u1", active_only=True)] == [
            carry.id,
            cash.id,
        ]
        assert [
            a.id for a in await storage.list_accounts("u1", account_type=AccountType.CARRY_OVER)
        ] == [carry.id]

    @pytest.mark.asyncio
    async def test_max_sort_order(self):
        storage = InMemoryLedgerStorage()
        assert await storage.max_sort_order("u1") is None
        await storage.insert_account(_account(sort_order=7))
        assert await storage.max_sort_order("u1") == 7

    @pytest.mark.asyncio
    async def test_returned_copies_are_detached(self):
        storage = InMemoryLedgerStorage()
        account = await storage.insert_account(_account())

        fetched = await storage.get_account(account.id)
        fetched.name = "Changed"

        assert (await storage.get_account(account.id)).name == "Wallet"


class TestEntries:
    """Tests for entry listing and filters."""

    @pytest.mark.asyncio
    async def test_newest_first(self):
        storage = InMemoryLedgerStorage()
        account_id = uuid4()
        older = _entry(account_id, tx_date=date(2026, 3, 1))
        newer = _entry(account_id, tx_date=date(2026, 3, 5))
        same_day_later = _entry(
            account_id,
            tx_date=date(2026, 3, 5),
            created_at=datetime(2030, 1, 1),
        )
        await storage.insert_entries([older, newer, same_day_later])

        listed = await storage.list_entries(account_ids=[account_id])

        assert [e.id for e in listed] == [same_day_later.id, newer.id, older.id]

    @pytest.mark.asyncio
    async def test_empty_account_list_matches_nothing(self):
        storage = InMemoryLedgerStorage()
        await storage.insert_entries([_entry(uuid4())])
        assert await storage.list_entries(account_ids=[]) == []

    @pytest.mark.asyncio
    async def test_period_window(self):
        storage = InMemoryLedgerStorage()
        account_id = uuid4()
        entries = [
            _entry(account_id, posted_year=2025, posted_month=12),
            _entry(account_id, posted_year=2026, posted_month=1),
            _entry(account_id, posted_year=2026, posted_month=6),
            _entry(account_id, posted_year=2026, posted_month=7),
        ]
        await storage.insert_entries(entries)

        listed = await storage.list_entries(
            period_from=Period(2026, 1),
            period_to=Period(2026, 6),
        )

        assert {e.id for e in listed} == {entries[1].id, entries[2].id}

    @pytest.mark.asyncio
    async def test_carry_over_filters(self):
        storage = InMemoryLedgerStorage()
        account_id = uuid4()
        carried = _entry(
            account_id,
            is_carry_over=True,
            carry_from_year=2026,
            carry_from_month=2,
        )
        await storage.insert_entries([carried, _entry(account_id)])

        found = await storage.list_entries(
            is_carry_over=True,
            carry_from_year=2026,
            carry_from_month=2,
        )

        assert [e.id for e in found] == [carried.id]
        assert await storage.list_entries(is_carry_over=True, carry_from_month=3) == []

    @pytest.mark.asyncio
    async def test_group_delete(self):
        storage = InMemoryLedgerStorage()
        account_id = uuid4()
        group_id = uuid4()
        members = [
            _entry(
                account_id,
                installment_group_id=group_id,
                installment_index=i,
                installment_total=3,
            )
            for i in (1, 2, 3)
        ]
        loose = _entry(account_id)
        await storage.insert_entries(members + [loose])

        assert len(await storage.list_entries(has_installment_group=True)) == 3
        assert await storage.delete_entries_by_group(group_id) == 3
        assert [e.id for e in await storage.list_entries()] == [loose.id]


class TestAuditStorage:
    """Tests for the in-memory audit log."""

    @pytest.mark.asyncio
    async def test_lookup_by_correlation_and_entity(self):
        audit = InMemoryAuditStorage()
        correlation_id = uuid4()
        account_id = uuid4()
        await audit.append_event(
            AuditEventBuilder.account_created("u1", account_id, "Wallet", "CASH", correlation_id)
        )
        await audit.append_event(AuditEventBuilder.accounts_reordered("u1", [account_id]))

        assert len(await audit.get_events_by_correlation_id(correlation_id)) == 1
        assert len(await audit.get_events_by_entity("account", account_id)) == 1
        assert len(await audit.get_recent_events(limit=1)) == 1
