"""
Shared fixtures.

Every test runs against a fresh in-memory backend and a fixed clock, so
"today" is always 2026-03-15.
"""

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio

from ledger.accounts import AccountRegistry
from ledger.audit import AuditLogger
from ledger.config import AppSettings
from ledger.models.account import AccountType
from ledger.models.entry import EntryCreate
from ledger.orchestrator import PersonalLedger
from ledger.posting import PostingEngine
from ledger.queries import EntryQueries, SummaryAggregator
from ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage
from ledger.validation import PostingValidator

OWNER = "owner-alice"
OTHER_OWNER = "owner-bob"
FIXED_TODAY = date(2026, 3, 15)


def fixed_clock() -> date:
    return FIXED_TODAY


def make_settings(**overrides) -> AppSettings:
    """AppSettings with defaults only; the environment and .env are ignored."""
    values = {
        "environment": "test",
        "storage_backend": "memory",
        "locale": "en",
        "reject_duplicate_carry_over": False,
        "upcoming_months_default": 6,
    }
    values.update(overrides)
    return AppSettings(_env_file=None, **values)


@pytest.fixture
def settings() -> AppSettings:
    return make_settings()


@pytest.fixture
def storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def registry(storage, settings) -> AccountRegistry:
    return AccountRegistry(storage, settings)


@pytest.fixture
def validator(settings) -> PostingValidator:
    return PostingValidator(settings)


@pytest.fixture
def engine(storage, registry, validator, settings) -> PostingEngine:
    return PostingEngine(
        storage,
        registry,
        validator=validator,
        settings=settings,
        today=fixed_clock,
    )


@pytest.fixture
def summaries(storage, registry, settings) -> SummaryAggregator:
    return SummaryAggregator(storage, registry, settings=settings, today=fixed_clock)


@pytest.fixture
def entry_queries(storage, registry, validator) -> EntryQueries:
    return EntryQueries(storage, registry, validator)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def ledger(storage, audit_storage, settings) -> PersonalLedger:
    return PersonalLedger(
        storage,
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
        today=fixed_clock,
    )


@pytest_asyncio.fixture
async def cash_account(registry):
    return await registry.create(OWNER, "Wallet", AccountType.CASH)


@pytest_asyncio.fixture
async def card_account(registry):
    return await registry.create(OWNER, "Visa", AccountType.CREDIT_CARD)


@pytest_asyncio.fixture
async def carry_account(registry):
    return await registry.create(OWNER, "Carry-over", AccountType.CARRY_OVER, sort_order=100)


@pytest_asyncio.fixture
async def foreign_account(registry):
    return await registry.create(OTHER_OWNER, "Bob's wallet", AccountType.CASH)


def entry_request(account_id, amount, year=2026, month=3, description="", tx_date=None) -> EntryCreate:
    """Build an EntryCreate with sensible defaults."""
    return EntryCreate(
        account_id=account_id,
        tx_date=tx_date or date(year, month, 10),
        posted_year=year,
        posted_month=month,
        amount=Decimal(str(amount)),
        description=description,
    )
