"""
Account Models

An account is a money bucket owned by exactly one user: a wallet, a credit
card, a bank account, or the special carry-over account that receives
month-to-month rollovers.

DESIGN DECISION: Account type is a closed enumeration, not a class hierarchy.
Type-specific rules live as properties on the enum so every rule has to
answer for every member.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class AccountType(str, Enum):
    """Supported account types."""
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    BANK_ACCOUNT = "BANK_ACCOUNT"
    CARRY_OVER = "CARRY_OVER"  # Destination of carry-over entries, one per owner

    @property
    def is_removable(self) -> bool:
        """Can an account of this type ever be deleted (soft or hard)?"""
        if self is AccountType.CARRY_OVER:
            return False
        if self in (AccountType.CASH, AccountType.CREDIT_CARD, AccountType.BANK_ACCOUNT):
            return True
        raise ValueError(f"Unhandled account type: {self}")

    @property
    def allows_partial_payment(self) -> bool:
        """Can entries on an account of this type be partially settled?"""
        if self is AccountType.CARRY_OVER:
            return False
        if self in (AccountType.CASH, AccountType.CREDIT_CARD, AccountType.BANK_ACCOUNT):
            return True
        raise ValueError(f"Unhandled account type: {self}")


class DeleteOutcome(str, Enum):
    """What an account delete actually did."""
    HARD = "hard"  # Row removed, account had no entries
    SOFT = "soft"  # Marked inactive, entries still reference it


class Account(BaseModel):
    """
    A single owned account.

    CRITICAL: Accounts are only ever handed out after an ownership check.
    Never return an Account looked up by id alone.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique account ID"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="ID of the owning user"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    type: AccountType
    sort_order: int = Field(
        default=0,
        description="Display ordering, ascending"
    )
    is_active: bool = Field(
        default=True,
        description="False once soft-deleted"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_carry_over(self) -> bool:
        return self.type is AccountType.CARRY_OVER


class AccountCreate(BaseModel):
    """Fields accepted when creating an account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    sort_order: Optional[int] = Field(
        default=None,
        description="Omit to append after the owner's last account"
    )


class AccountUpdate(BaseModel):
    """Partial update; unset fields are left untouched."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[AccountType] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None
