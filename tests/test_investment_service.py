"""
Unit tests for InvestmentService: business logic layer.

Repository calls are mocked except where the ledger itself is under test.
Tests cover:
- get_investment / list_investments (including the cached path)
- create_investment: balance, accrual schedule, IntegrityError
- update_status: allowed transitions, CLOSED is terminal, no-op
- record_transaction: balance effects, RETURN rejected, negative balance,
  inactive investments, chronology
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from returns_api.core.cache import cache
from returns_api.core.exceptions import (
    BusinessRuleViolation,
    InvestmentNotEligible,
    NegativeBalanceRejected,
    NotFoundException,
    ValidationFailed,
)
from returns_api.core.locks import InvestmentLockRegistry
from returns_api.models.investment import (
    CompoundingFrequency,
    Investment,
    InvestmentStatus,
    ReturnType,
)
from returns_api.models.transaction import Transaction, TransactionType
from returns_api.repositories.investment_repo import InvestmentRepository
from returns_api.repositories.transaction_repo import TransactionRepository
from returns_api.schemas.investment import InvestmentCreate
from returns_api.schemas.transaction import TransactionCreate
from returns_api.services.investment_service import InvestmentService

from .conftest import INVESTMENT_ID, NOW, fixed_clock, make_investment, make_variable_investment

# ────────────────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────────────────


@pytest.fixture()
def invest_repo():
    return AsyncMock()


@pytest.fixture()
def tx_repo():
    return AsyncMock()


@pytest.fixture()
def service(invest_repo, tx_repo):
    return InvestmentService(
        invest_repo, tx_repo, clock=fixed_clock(NOW), locks=InvestmentLockRegistry()
    )


def _sqlite_service(session) -> InvestmentService:
    return InvestmentService(
        InvestmentRepository(Investment, session),
        TransactionRepository(Transaction, session),
        clock=fixed_clock(NOW),
    )


def _fixed_payload(**overrides) -> InvestmentCreate:
    data = dict(
        name="Term Deposit",
        start_date=date(2025, 6, 1),
        return_type=ReturnType.FIXED,
        interest_rate=Decimal("12"),
        initial_amount=Decimal("10000.00"),
    )
    data.update(overrides)
    return InvestmentCreate(**data)


# ────────────────────────────────────────────────────────────────────────────
# Queries
# ────────────────────────────────────────────────────────────────────────────


class TestGetInvestment:
    @pytest.mark.asyncio
    async def test_returns_investment(self, service, invest_repo):
        invest_repo.get.return_value = make_investment()

        result = await service.get_investment(INVESTMENT_ID)

        assert result.id == INVESTMENT_ID
        invest_repo.get.assert_awaited_once_with(INVESTMENT_ID)

    @pytest.mark.asyncio
    async def test_raises_not_found(self, service, invest_repo):
        invest_repo.get.return_value = None

        with pytest.raises(NotFoundException) as exc_info:
            await service.get_investment(INVESTMENT_ID)
        assert exc_info.value.status_code == 404
        assert "Investment" in exc_info.value.message


class TestListInvestments:
    @pytest.mark.asyncio
    async def test_returns_page_and_total(self, service, invest_repo):
        invest_repo.list.return_value = [make_investment()]
        invest_repo.count_by_status.return_value = 7

        items, total = await service.list_investments(page=2, limit=5)

        assert len(items) == 1
        assert total == 7
        invest_repo.list.assert_awaited_once_with(skip=5, limit=5, status=None)

    @pytest.mark.asyncio
    async def test_second_call_is_served_from_cache(self, service, invest_repo):
        invest_repo.list.return_value = [make_investment()]
        invest_repo.count_by_status.return_value = 1

        await service.list_investments(status=InvestmentStatus.ACTIVE)
        await service.list_investments(status=InvestmentStatus.ACTIVE)

        invest_repo.list.assert_awaited_once()
        assert cache.get("investments:ACTIVE:1:20") is not None

    @pytest.mark.asyncio
    async def test_filters_are_cached_separately(self, service, invest_repo):
        invest_repo.list.return_value = []
        invest_repo.count_by_status.return_value = 0

        await service.list_investments(status=InvestmentStatus.ACTIVE)
        await service.list_investments(status=InvestmentStatus.CLOSED)

        assert invest_repo.list.await_count == 2


# ────────────────────────────────────────────────────────────────────────────
# create_investment
# ────────────────────────────────────────────────────────────────────────────


class TestCreateInvestment:
    @pytest.mark.asyncio
    async def test_fixed_investment_gets_schedule(self, service, invest_repo):
        invest_repo.create.side_effect = lambda investment: investment

        result = await service.create_investment(
            _fixed_payload(compounding_frequency=CompoundingFrequency.MONTHLY)
        )

        assert result.current_balance == Decimal("10000.00")
        assert result.status == InvestmentStatus.ACTIVE
        assert result.compounding_frequency == CompoundingFrequency.MONTHLY
        assert result.next_interest_due == datetime(2025, 7, 1, tzinfo=timezone.utc)
        assert result.created_at == NOW

    @pytest.mark.asyncio
    async def test_default_frequency_from_settings(self, service, invest_repo):
        invest_repo.create.side_effect = lambda investment: investment

        result = await service.create_investment(_fixed_payload())

        assert result.compounding_frequency == CompoundingFrequency.DAILY
        assert result.next_interest_due == datetime(2025, 6, 2, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_variable_investment_has_no_schedule(self, service, invest_repo):
        invest_repo.create.side_effect = lambda investment: investment

        result = await service.create_investment(
            _fixed_payload(return_type=ReturnType.VARIABLE, interest_rate=None)
        )

        assert result.next_interest_due is None

    @pytest.mark.asyncio
    async def test_create_invalidates_cached_lists(self, service, invest_repo):
        invest_repo.create.side_effect = lambda investment: investment
        cache.set("investments:all:1:20", ([], 0))

        await service.create_investment(_fixed_payload())

        assert cache.get("investments:all:1:20") is None

    @pytest.mark.asyncio
    async def test_integrity_error_becomes_business_rule_violation(self, service, invest_repo):
        invest_repo.create.side_effect = IntegrityError("INSERT", {}, Exception("constraint"))

        with pytest.raises(BusinessRuleViolation, match="constraint"):
            await service.create_investment(_fixed_payload())
        invest_repo.rollback.assert_awaited_once()


# ────────────────────────────────────────────────────────────────────────────
# update_status
# ────────────────────────────────────────────────────────────────────────────


class TestUpdateStatus:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "current, target",
        [
            (InvestmentStatus.PENDING, InvestmentStatus.ACTIVE),
            (InvestmentStatus.ACTIVE, InvestmentStatus.PENDING),
            (InvestmentStatus.ACTIVE, InvestmentStatus.CLOSED),
            (InvestmentStatus.PENDING, InvestmentStatus.CLOSED),
        ],
    )
    async def test_allowed_transitions(self, service, invest_repo, current, target):
        invest_repo.get_for_update.return_value = make_investment(status=current)

        result = await service.update_status(INVESTMENT_ID, target)

        assert result.status == target
        assert result.updated_at == NOW
        invest_repo.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_closed_is_terminal(self, service, invest_repo):
        invest_repo.get_for_update.return_value = make_investment(status=InvestmentStatus.CLOSED)

        with pytest.raises(ValidationFailed, match="CLOSED to ACTIVE"):
            await service.update_status(INVESTMENT_ID, InvestmentStatus.ACTIVE)
        invest_repo.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_same_status_is_noop(self, service, invest_repo):
        investment = make_investment(status=InvestmentStatus.CLOSED)
        invest_repo.get_for_update.return_value = investment

        result = await service.update_status(INVESTMENT_ID, InvestmentStatus.CLOSED)

        assert result.status == InvestmentStatus.CLOSED
        assert result.updated_at == investment.created_at

    @pytest.mark.asyncio
    async def test_not_found(self, service, invest_repo):
        invest_repo.get_for_update.return_value = None
        with pytest.raises(NotFoundException):
            await service.update_status(INVESTMENT_ID, InvestmentStatus.CLOSED)


# ────────────────────────────────────────────────────────────────────────────
# record_transaction
# ────────────────────────────────────────────────────────────────────────────


class TestRecordTransaction:
    @pytest.mark.asyncio
    async def test_return_type_is_rejected(self, service, invest_repo):
        data = TransactionCreate.model_construct(
            type=TransactionType.RETURN, amount=Decimal("10.00"), transaction_date=None, description=None
        )
        with pytest.raises(ValidationFailed, match="RETURN"):
            await service.record_transaction(INVESTMENT_ID, data)
        invest_repo.get_for_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_investment_not_eligible(self, service, invest_repo):
        invest_repo.get_for_update.return_value = make_investment(status=InvestmentStatus.PENDING)
        with pytest.raises(InvestmentNotEligible, match="record a deposit"):
            await service.record_transaction(
                INVESTMENT_ID, TransactionCreate(type=TransactionType.DEPOSIT, amount=Decimal("1"))
            )

    @pytest.mark.asyncio
    async def test_deposit_then_withdrawal(self, db_session):
        await InvestmentRepository(Investment, db_session).create(make_variable_investment())
        service = _sqlite_service(db_session)

        deposit = await service.record_transaction(
            INVESTMENT_ID,
            TransactionCreate(
                type=TransactionType.DEPOSIT,
                amount=Decimal("2500.00"),
                transaction_date=date(2025, 6, 10),
            ),
        )
        withdrawal = await service.record_transaction(
            INVESTMENT_ID,
            TransactionCreate(type=TransactionType.WITHDRAWAL, amount=Decimal("1000.00")),
        )

        assert deposit.balance == Decimal("7500.00")
        assert withdrawal.sequence == 2
        assert withdrawal.balance == Decimal("6500.00")
        assert withdrawal.transaction_date == NOW.date()
        investment = await service.get_investment(INVESTMENT_ID)
        assert investment.current_balance == Decimal("6500.00")

        items, total = await service.list_transactions(INVESTMENT_ID, page=1, limit=1)
        assert total == 2
        assert [tx.id for tx in items] == [deposit.id]

    @pytest.mark.asyncio
    async def test_overdraw_rejected_and_nothing_written(self, db_session):
        await InvestmentRepository(Investment, db_session).create(make_variable_investment())
        service = _sqlite_service(db_session)

        with pytest.raises(NegativeBalanceRejected):
            await service.record_transaction(
                INVESTMENT_ID,
                TransactionCreate(type=TransactionType.TRANSFER, amount=Decimal("5000.01")),
            )

        _, total = await service.list_transactions(INVESTMENT_ID)
        assert total == 0

    @pytest.mark.asyncio
    async def test_date_before_start_rejected(self, db_session):
        await InvestmentRepository(Investment, db_session).create(make_variable_investment())
        with pytest.raises(ValidationFailed, match="start date"):
            await _sqlite_service(db_session).record_transaction(
                INVESTMENT_ID,
                TransactionCreate(
                    type=TransactionType.DIVIDEND,
                    amount=Decimal("5.00"),
                    transaction_date=date(2025, 5, 31),
                ),
            )

    @pytest.mark.asyncio
    async def test_list_transactions_unknown_investment(self, db_session):
        with pytest.raises(NotFoundException):
            await _sqlite_service(db_session).list_transactions(uuid4())
