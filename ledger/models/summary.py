"""
Summary and result models.

These are read-side views derived from ledger entries. Nothing here is ever
persisted.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ledger.models.account import AccountType
from ledger.models.validation import ValidationIssue
from ledger.periods import Period


class MonthlySummary(BaseModel):
    """Income/expense totals for one owner and one posted period."""

    year: int
    month: int = Field(..., ge=1, le=12)
    income: Decimal = Field(..., description="Sum of positive amounts")
    expense: Decimal = Field(..., description="Sum of negative amounts, kept negative")
    net: Decimal
    has_carried_over: bool = Field(
        ...,
        description="Has this month already been rolled forward into the next?"
    )


class AccountSummaryEntry(BaseModel):
    """One entry as listed inside an account summary."""

    id: UUID
    description: str
    amount: Decimal
    tx_date: date
    installment_index: Optional[int] = None
    installment_total: Optional[int] = None
    installment_group_id: Optional[UUID] = None
    is_carry_over: bool = False
    is_partially_paid: bool = False


class AccountSummary(BaseModel):
    """Entries and signed total of one account in one posted period."""

    account_id: UUID
    account_name: str
    account_type: AccountType
    sort_order: int
    year: int
    month: int
    total: Decimal
    entries: list[AccountSummaryEntry] = Field(default_factory=list)


class ScheduledInstallment(BaseModel):
    """A (period, index) pair of an installment plan."""

    year: int
    month: int
    index: int


class InstallmentProjection(BaseModel):
    """
    One installment plan as seen through the upcoming window.

    NOTE: remaining counts the installments found inside the query window,
    not every installment left in the plan.
    """

    group_id: UUID
    description: str
    account_name: str
    amount_per_installment: Decimal
    remaining: int = Field(..., ge=0)
    total: int
    next_payments: list[ScheduledInstallment] = Field(default_factory=list)


class PartialPaymentResult(BaseModel):
    """Outcome of splitting an entry into paid now / owed next month."""

    original_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    interest_amount: Decimal
    total_next_month: Decimal
    next_period: Period
    remainder_entry_id: UUID
    interest_entry_id: Optional[UUID] = None
    warnings: list[ValidationIssue] = Field(default_factory=list)
