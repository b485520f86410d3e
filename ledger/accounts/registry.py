"""
Account Registry

Owner-scoped account lookup and mutation.

DESIGN DECISION: Every component that touches an account by id goes through
``get_owned``. A raw storage lookup never leaves this module, so an account
belonging to someone else can't leak into a posting by accident.

The carry-over account is special:
- it can't be deleted (soft or hard), retyped or deactivated
- an owner has at most one; a second one is rejected at create/update time
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from ledger.config import AppSettings, get_settings
from ledger.errors import AccessDeniedError, ConflictError, ForbiddenError, NotFoundError
from ledger.models.account import (
    Account,
    AccountType,
    AccountUpdate,
    DeleteOutcome,
)
from ledger.services.storage import LedgerStorageInterface


class AccountRegistry:
    """Creates, finds and guards accounts on behalf of one owner at a time."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().app

    async def list_active(self, owner_id: str) -> list[Account]:
        """Active accounts of an owner, ordered by sort_order."""
        return await self._storage.list_accounts(owner_id, active_only=True)

    async def owned_account_ids(self, owner_id: str) -> list[UUID]:
        """IDs of every account of an owner, inactive ones included."""
        return [a.id for a in await self._storage.list_accounts(owner_id)]

    async def get_owned(self, account_id: UUID, owner_id: str) -> Account:
        """
        Look up an account and check it belongs to owner_id.

        Raises:
            NotFoundError: No account with this ID
            AccessDeniedError: The account belongs to someone else
        """
        account = await self._storage.get_account(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        if account.owner_id != owner_id:
            raise AccessDeniedError("Access denied to this account")
        return account

    async def find_carry_over_account(self, owner_id: str) -> Optional[Account]:
        """
        The owner's carry-over account, or None.

        If duplicates slipped in (e.g. through an older import), the one with
        the lowest sort_order wins so the choice is deterministic.
        """
        candidates = await self._storage.list_accounts(
            owner_id, account_type=AccountType.CARRY_OVER
        )
        return candidates[0] if candidates else None

    async def create(
        self,
        owner_id: str,
        name: str,
        account_type: AccountType,
        sort_order: Optional[int] = None,
    ) -> Account:
        """
        Create an account.

        Without sort_order the account goes after the owner's last one
        (or gets 0 when it's the first).

        Raises:
            ConflictError: A second carry-over account was requested
        """
        async with self._storage.transaction():
            if account_type is AccountType.CARRY_OVER:
                await self._ensure_no_carry_over(owner_id)

            if sort_order is None:
                current_max = await self._storage.max_sort_order(owner_id)
                sort_order = 0 if current_max is None else current_max + 1

            account = Account(
                owner_id=owner_id,
                name=name,
                type=account_type,
                sort_order=sort_order,
            )
            await self._storage.insert_account(account)
        return account

    async def update(
        self,
        account_id: UUID,
        owner_id: str,
        changes: AccountUpdate,
    ) -> Account:
        """
        Rename, retype, move or (re)activate an account.

        Raises:
            ForbiddenError: Retyping or deactivating the carry-over account
            ConflictError: Retyping into a second carry-over account
        """
        async with self._storage.transaction():
            account = await self.get_owned(account_id, owner_id)

            if account.is_carry_over:
                if changes.type is not None and changes.type is not AccountType.CARRY_OVER:
                    raise ForbiddenError("The carry-over account can't change type")
                if changes.is_active is False:
                    raise ForbiddenError("The carry-over account can't be deactivated")
            elif changes.type is AccountType.CARRY_OVER:
                await self._ensure_no_carry_over(owner_id)

            updated = account.model_copy(
                update={
                    **changes.model_dump(exclude_none=True),
                    "updated_at": datetime.utcnow(),
                }
            )
            await self._storage.update_account(updated)
        return updated

    async def delete(self, account_id: UUID, owner_id: str) -> DeleteOutcome:
        """
        Remove an account.

        Hard delete when no entry references it, otherwise soft delete
        (is_active=False). The entry count and the delete happen in one
        transaction.

        Raises:
            ForbiddenError: The account type is never removable (carry-over)
        """
        async with self._storage.transaction():
            account = await self.get_owned(account_id, owner_id)
            if not account.type.is_removable:
                raise ForbiddenError("Cannot delete the carry-over account")

            if await self._storage.count_entries(account.id) == 0:
                await self._storage.delete_account(account.id)
                return DeleteOutcome.HARD

            deactivated = account.model_copy(
                update={"is_active": False, "updated_at": datetime.utcnow()}
            )
            await self._storage.update_account(deactivated)
            return DeleteOutcome.SOFT

    async def reorder(self, owner_id: str, ordered_ids: list[UUID]) -> list[Account]:
        """
        Set sort_order to each ID's position in ordered_ids.

        IDs that are unknown or belong to another owner are skipped
        silently. Returns the refreshed active list.
        """
        async with self._storage.transaction():
            owned = {a.id: a for a in await self._storage.list_accounts(owner_id)}
            now = datetime.utcnow()
            for index, account_id in enumerate(ordered_ids):
                account = owned.get(account_id)
                if account is None:
                    continue
                await self._storage.update_account(
                    account.model_copy(update={"sort_order": index, "updated_at": now})
                )
        return await self.list_active(owner_id)

    async def seed_defaults(self, owner_id: str) -> list[Account]:
        """
        Bootstrap a new owner with a cash account and a carry-over account.

        Does nothing (returns []) if the owner already has any account.
        """
        async with self._storage.transaction():
            if await self._storage.list_accounts(owner_id):
                return []

            defaults = [
                Account(
                    owner_id=owner_id,
                    name=self._settings.default_cash_account_name,
                    type=AccountType.CASH,
                    sort_order=1,
                ),
                Account(
                    owner_id=owner_id,
                    name=self._settings.default_carry_over_account_name,
                    type=AccountType.CARRY_OVER,
                    sort_order=100,
                ),
            ]
            for account in defaults:
                await self._storage.insert_account(account)
        return defaults

    async def _ensure_no_carry_over(self, owner_id: str) -> None:
        if await self.find_carry_over_account(owner_id) is not None:
            raise ConflictError("Owner already has a carry-over account")
