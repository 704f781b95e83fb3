"""
Shared pytest fixtures.

Unit tests run against mocked repositories; ledger tests run against an
in-memory SQLite database so commits, rollbacks and constraints behave as
they do in production.  ``USE_SQLITE`` is forced before the application
modules are imported so settings never require PostgreSQL credentials.
"""

import os

os.environ.setdefault("USE_SQLITE", "true")

import uuid  # noqa: E402
from datetime import date, datetime, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import returns_api.db.base  # noqa: E402,F401
from returns_api.core.cache import TTLCache  # noqa: E402
from returns_api.db.session import create_sqlite_engine  # noqa: E402
from returns_api.models.calculation import CalculationType, InterestCalculation  # noqa: E402
from returns_api.models.investment import (  # noqa: E402
    CompoundingFrequency,
    Investment,
    InvestmentCategory,
    InvestmentStatus,
    ReturnType,
)
from returns_api.models.transaction import Transaction, TransactionType  # noqa: E402

# ────────────────────────────────────────────────────────────────────────────
# Factory helpers: create domain objects with sensible defaults
# ────────────────────────────────────────────────────────────────────────────

INVESTMENT_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")
INVESTMENT_ID_2 = uuid.UUID("44444444-4444-4444-4444-444444444444")
TRANSACTION_ID = uuid.UUID("55555555-5555-5555-5555-555555555555")
CALCULATION_ID = uuid.UUID("66666666-6666-6666-6666-666666666666")

# Fixed "now" used by clock-injected services.
NOW = datetime(2025, 7, 1, 9, 30, tzinfo=timezone.utc)
TODAY = NOW.date()


def fixed_clock(now: datetime = NOW):
    return lambda: now


def make_investment(
    *,
    id: uuid.UUID = INVESTMENT_ID,
    name: str = "Term Deposit",
    return_type: ReturnType = ReturnType.FIXED,
    interest_rate: Optional[Decimal] = Decimal("12.0000"),
    initial_amount: Decimal = Decimal("10000.00"),
    current_balance: Optional[Decimal] = None,
    start_date: date = date(2025, 6, 1),
    status: InvestmentStatus = InvestmentStatus.ACTIVE,
    compounding_frequency: CompoundingFrequency = CompoundingFrequency.DAILY,
    auto_calculate: bool = False,
    category: InvestmentCategory = InvestmentCategory.BONDS,
    currency: str = "USD",
) -> Investment:
    """Create an Investment domain object with sensible test defaults."""
    return Investment(
        id=id,
        name=name,
        currency=currency,
        category=category,
        initial_amount=initial_amount,
        current_balance=initial_amount if current_balance is None else current_balance,
        start_date=start_date,
        return_type=return_type,
        interest_rate=interest_rate,
        status=status,
        auto_calculate=auto_calculate,
        compounding_frequency=compounding_frequency,
        created_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
        updated_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
    )


def make_variable_investment(**kwargs) -> Investment:
    kwargs.setdefault("name", "Equity Fund")
    kwargs.setdefault("return_type", ReturnType.VARIABLE)
    kwargs.setdefault("interest_rate", None)
    kwargs.setdefault("initial_amount", Decimal("5000.00"))
    kwargs.setdefault("category", InvestmentCategory.STOCKS)
    return make_investment(**kwargs)


def make_transaction(
    *,
    id: Optional[uuid.UUID] = None,
    investment_id: uuid.UUID = INVESTMENT_ID,
    sequence: int = 1,
    type: TransactionType = TransactionType.DEPOSIT,
    amount: Decimal = Decimal("1000.00"),
    balance: Decimal = Decimal("11000.00"),
    transaction_date: date = date(2025, 6, 15),
    idempotency_key: Optional[str] = None,
) -> Transaction:
    """Create a Transaction domain object with sensible test defaults."""
    return Transaction(
        id=id or uuid.uuid4(),
        investment_id=investment_id,
        sequence=sequence,
        type=type,
        amount=amount,
        balance=balance,
        transaction_date=transaction_date,
        idempotency_key=idempotency_key,
        created_at=datetime(2025, 6, 15, tzinfo=timezone.utc),
    )


def make_calculation(
    *,
    id: uuid.UUID = CALCULATION_ID,
    investment_id: uuid.UUID = INVESTMENT_ID,
    sequence: int = 1,
    period_start: date = date(2025, 6, 1),
    period_end: date = date(2025, 7, 1),
    principal_amount: Decimal = Decimal("10000.00"),
    interest_earned: Decimal = Decimal("98.63"),
    transaction_id: uuid.UUID = TRANSACTION_ID,
    is_reverted: bool = False,
) -> InterestCalculation:
    """Create an InterestCalculation domain object with sensible test defaults."""
    return InterestCalculation(
        id=id,
        investment_id=investment_id,
        sequence=sequence,
        calculation_type=CalculationType.MANUAL,
        calculated_at=NOW,
        period_start=period_start,
        period_end=period_end,
        days=(period_end - period_start).days,
        compounding_frequency=CompoundingFrequency.DAILY,
        principal_amount=principal_amount,
        interest_rate=Decimal("12.0000"),
        interest_earned=interest_earned,
        new_balance=principal_amount + interest_earned,
        transaction_id=transaction_id,
        is_reverted=is_reverted,
    )


# ────────────────────────────────────────────────────────────────────────────
# Pytest fixtures
# ────────────────────────────────────────────────────────────────────────────


@pytest.fixture()
def mock_db():
    """A mocked AsyncSession that tracks add/commit/refresh/rollback calls."""
    session = AsyncMock()
    session.add = MagicMock()
    session.commit = AsyncMock()
    session.refresh = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    return session


@pytest_asyncio.fixture()
async def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_sqlite_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def test_cache():
    """A fresh TTL cache instance for test isolation."""
    return TTLCache(ttl=30.0, max_size=100, enabled=True)


@pytest.fixture()
def disabled_cache():
    """A disabled TTL cache; every operation is a no-op."""
    return TTLCache(ttl=30.0, max_size=100, enabled=False)


@pytest.fixture(autouse=True)
def _clear_global_cache():
    """Clear the global cache around every test."""
    from returns_api.core.cache import cache

    cache.clear()
    yield
    cache.clear()
