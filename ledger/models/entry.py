"""
Ledger Entry Models

A ledger entry (a "transaction" to the user) is one signed amount on one
account, counted toward a posted (year, month) period.

DESIGN DECISION: The sign of the amount is the only income/expense
discriminator. Positive = income, negative = expense. There is no separate
"direction" field that could disagree with the amount.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ledger.models.account import Account
from ledger.models.validation import ValidationIssue
from ledger.periods import Period

DESCRIPTION_MAX_LENGTH = 500


class LedgerEntry(BaseModel):
    """
    A single ledger entry.

    Entries are created singly, as an installment batch, or synthetically
    (carry-over, partial-payment remainder). They are mutated in place only
    by a partial payment or a general edit.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(default_factory=uuid4)
    account_id: UUID = Field(..., description="Owning account")

    # Money and meaning
    amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="Signed amount: positive = income, negative = expense"
    )
    description: str = Field(default="", max_length=DESCRIPTION_MAX_LENGTH)

    # When it happened vs. when it counts
    tx_date: date = Field(..., description="Real-world date of the event")
    posted_year: int = Field(..., ge=1900, le=9999)
    posted_month: int = Field(..., ge=1, le=12)

    # Installment plan membership
    installment_group_id: Optional[UUID] = None
    installment_index: Optional[int] = Field(default=None, ge=1)
    installment_total: Optional[int] = Field(default=None, ge=1)

    # Carry-over
    is_carry_over: bool = False
    carry_from_year: Optional[int] = None
    carry_from_month: Optional[int] = Field(default=None, ge=1, le=12)

    # Partial payment
    is_partially_paid: bool = False

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_derived_fields(self) -> 'LedgerEntry':
        """Keep the optional field groups internally consistent."""
        has_carry_from = (
            self.carry_from_year is not None
            and self.carry_from_month is not None
        )
        if self.is_carry_over and not has_carry_from:
            raise ValueError("Carry-over entry must record the period it was carried from")
        if not self.is_carry_over and (
            self.carry_from_year is not None or self.carry_from_month is not None
        ):
            raise ValueError("Carry-from period is only allowed on carry-over entries")

        if self.installment_group_id is not None:
            if self.installment_index is None or self.installment_total is None:
                raise ValueError("Installment entry needs both index and total")
            if self.installment_index > self.installment_total:
                raise ValueError("Installment index cannot exceed installment total")
        elif self.installment_index is not None or self.installment_total is not None:
            raise ValueError("Installment index/total require an installment group")

        return self

    @property
    def is_income(self) -> bool:
        return self.amount > 0

    @property
    def is_expense(self) -> bool:
        return self.amount < 0

    @property
    def posted_period(self) -> Period:
        return Period(self.posted_year, self.posted_month)

    @property
    def carry_from_period(self) -> Optional[Period]:
        if not self.is_carry_over:
            return None
        return Period(self.carry_from_year, self.carry_from_month)


class EntryWithAccount(BaseModel):
    """
    An entry with its owning account attached, as returned by reads.

    Posting operations also attach the warning-level validation issues
    the request passed with.
    """

    entry: LedgerEntry
    account: Account
    warnings: list[ValidationIssue] = Field(default_factory=list)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class EntryCreate(BaseModel):
    """A simple transaction as submitted by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: UUID
    tx_date: date
    posted_year: int = Field(..., ge=1900, le=9999)
    posted_month: int = Field(..., ge=1, le=12)
    amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="Positive for income, negative for expense"
    )
    description: str = Field(default="", max_length=DESCRIPTION_MAX_LENGTH)


class InstallmentCreate(EntryCreate):
    """
    An installment purchase.

    posted_year/posted_month is the period of the first installment and
    amount is the signed amount of EACH installment.
    """

    installment_total: int = Field(..., description="Number of monthly installments")


class EntryUpdate(BaseModel):
    """Partial update; unset fields are left untouched."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: Optional[UUID] = None
    tx_date: Optional[date] = None
    posted_year: Optional[int] = Field(default=None, ge=1900, le=9999)
    posted_month: Optional[int] = Field(default=None, ge=1, le=12)
    amount: Optional[Decimal] = Field(default=None, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)


class CarryOverRequest(BaseModel):
    """Move a month's net into the following month."""

    from_year: int = Field(..., ge=1900, le=9999)
    from_month: int = Field(..., ge=1, le=12)
    amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="Signed net to carry (negative if deficit)"
    )


class PartialPaymentRequest(BaseModel):
    """Settle part of an entry now and push the rest to next month."""

    entry_id: UUID
    paid_amount: Decimal = Field(..., decimal_places=2, description="Amount actually paid")
    interest_amount: Decimal = Field(
        default=Decimal("0"),
        decimal_places=2,
        description="Flat interest added to next month"
    )
