"""
Tests for VariableReturnService.

Tests cover:
- update_by_percentage / update_by_balance amounts, balances and implied rate
- Percentage and balance updates are inverse views of the same RETURN
- Error precedence: NotFound → InvalidReturnType → not ACTIVE → negative
- Idempotency-key replay returns the original entry; a reused key with a
  different request is a conflict
- Chronology rules on the effective date
"""

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from returns_api.core.exceptions import (
    IdempotencyKeyReused,
    InvalidReturnType,
    InvestmentNotEligible,
    NegativeBalanceRejected,
    NotFoundException,
    ValidationFailed,
)
from returns_api.core.locks import InvestmentLockRegistry
from returns_api.models.investment import Investment, InvestmentStatus
from returns_api.models.transaction import Transaction, TransactionType
from returns_api.repositories.investment_repo import InvestmentRepository
from returns_api.repositories.transaction_repo import TransactionRepository
from returns_api.services.variable_return_service import (
    VariableReturnService,
    implied_percentage,
    request_fingerprint,
)

from .conftest import (
    INVESTMENT_ID,
    NOW,
    TODAY,
    fixed_clock,
    make_investment,
    make_transaction,
    make_variable_investment,
)


def _service(session) -> VariableReturnService:
    return VariableReturnService(
        investment_repo=InvestmentRepository(Investment, session),
        transaction_repo=TransactionRepository(Transaction, session),
        clock=fixed_clock(NOW),
    )


async def _persist(session, investment: Investment) -> Investment:
    return await InvestmentRepository(Investment, session).create(investment)


def _mocked_service(investment=None):
    """Service over mocked repositories; ``investment`` is what get_for_update returns."""
    investment_repo = AsyncMock()
    investment_repo.get_for_update.return_value = investment
    transaction_repo = AsyncMock()
    transaction_repo.add = MagicMock()
    transaction_repo.last_for_investment.return_value = None
    transaction_repo.get_by_idempotency_key.return_value = None
    service = VariableReturnService(
        investment_repo=investment_repo,
        transaction_repo=transaction_repo,
        clock=fixed_clock(NOW),
        locks=InvestmentLockRegistry(),
    )
    return service, investment_repo, transaction_repo


# ────────────────────────────────────────────────────────────────────────────
# implied_percentage
# ────────────────────────────────────────────────────────────────────────────


class TestImpliedPercentage:
    def test_four_decimal_places(self):
        assert implied_percentage(Decimal("5500.00"), Decimal("500.00")) == Decimal("9.0909")

    def test_negative_return(self):
        assert implied_percentage(Decimal("5000.00"), Decimal("-5000.00")) == Decimal("-100.0000")

    def test_zero_base_is_undefined(self):
        assert implied_percentage(Decimal("0.00"), Decimal("100.00")) is None


# ────────────────────────────────────────────────────────────────────────────
# Unit tests with mocked repositories
# ────────────────────────────────────────────────────────────────────────────


class TestRequestFingerprint:
    def test_equal_amounts_share_a_fingerprint(self):
        assert request_fingerprint("percentage", Decimal("10"), None, None) == request_fingerprint(
            "percentage", Decimal("10.00"), None, None
        )

    @pytest.mark.parametrize(
        "other",
        [
            ("balance", Decimal("10"), None, None),
            ("percentage", Decimal("10.5"), None, None),
            ("percentage", Decimal("10"), date(2025, 6, 30), None),
            ("percentage", Decimal("10"), None, "June mark"),
        ],
    )
    def test_any_field_changes_the_fingerprint(self, other):
        assert request_fingerprint("percentage", Decimal("10"), None, None) != request_fingerprint(
            *other
        )


class TestWithMockedRepositories:
    @pytest.mark.asyncio
    async def test_percentage_stages_return_and_commits(self):
        service, investment_repo, transaction_repo = _mocked_service(make_variable_investment())

        result = await service.update_by_percentage(INVESTMENT_ID, Decimal("10"))

        assert result.calculated_amount == Decimal("500.00")
        staged = transaction_repo.add.call_args[0][0]
        assert staged.type == TransactionType.RETURN
        assert staged.sequence == 1
        assert staged.description == "Return of 10%"
        assert staged.transaction_date == TODAY
        investment_repo.commit.assert_awaited_once()
        investment_repo.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sequence_follows_last_entry(self):
        service, _, transaction_repo = _mocked_service(make_variable_investment())
        transaction_repo.last_for_investment.return_value = make_transaction(
            sequence=4, transaction_date=date(2025, 6, 20)
        )

        result = await service.update_by_percentage(INVESTMENT_ID, Decimal("1"))

        assert result.transaction.sequence == 5

    @pytest.mark.asyncio
    async def test_not_found_rolls_back(self):
        service, investment_repo, transaction_repo = _mocked_service(None)

        with pytest.raises(NotFoundException):
            await service.update_by_percentage(INVESTMENT_ID, Decimal("10"))

        investment_repo.rollback.assert_awaited_once()
        investment_repo.commit.assert_not_awaited()
        transaction_repo.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_found_wins_over_negative_balance(self):
        service, _, _ = _mocked_service(None)
        with pytest.raises(NotFoundException):
            await service.update_by_balance(INVESTMENT_ID, Decimal("-1.00"))

    @pytest.mark.asyncio
    async def test_fixed_investment_is_invalid_return_type(self):
        service, _, transaction_repo = _mocked_service(make_investment())

        with pytest.raises(InvalidReturnType, match="VARIABLE"):
            await service.update_by_balance(INVESTMENT_ID, Decimal("-1.00"))

        transaction_repo.add.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [InvestmentStatus.PENDING, InvestmentStatus.CLOSED])
    async def test_inactive_investment_not_eligible(self, status):
        service, _, _ = _mocked_service(make_variable_investment(status=status))
        with pytest.raises(InvestmentNotEligible, match=status.value):
            await service.update_by_percentage(INVESTMENT_ID, Decimal("5"))

    @pytest.mark.asyncio
    async def test_negative_balance_target_rejected(self):
        service, investment_repo, transaction_repo = _mocked_service(make_variable_investment())

        with pytest.raises(NegativeBalanceRejected):
            await service.update_by_balance(INVESTMENT_ID, Decimal("-0.01"))

        transaction_repo.add.assert_not_called()
        investment_repo.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_replay_does_not_stage_a_second_entry(self):
        service, _, transaction_repo = _mocked_service(make_variable_investment())
        original = make_transaction(
            type=TransactionType.RETURN,
            amount=Decimal("500.00"),
            balance=Decimal("5500.00"),
            idempotency_key="abc",
        )
        original.request_fingerprint = request_fingerprint("percentage", Decimal("10"), None, None)
        transaction_repo.get_by_idempotency_key.return_value = original

        result = await service.update_by_percentage(
            INVESTMENT_ID, Decimal("10"), idempotency_key="abc"
        )

        assert result.transaction is original
        assert result.calculated_amount == Decimal("500.00")
        transaction_repo.add.assert_not_called()
        transaction_repo.get_by_idempotency_key.assert_awaited_once_with(INVESTMENT_ID, "abc")

    @pytest.mark.asyncio
    async def test_reused_key_with_other_payload_conflicts(self):
        service, investment_repo, transaction_repo = _mocked_service(make_variable_investment())
        original = make_transaction(type=TransactionType.RETURN, idempotency_key="abc")
        original.request_fingerprint = request_fingerprint("percentage", Decimal("10"), None, None)
        transaction_repo.get_by_idempotency_key.return_value = original

        with pytest.raises(IdempotencyKeyReused, match="abc"):
            await service.update_by_percentage(INVESTMENT_ID, Decimal("12"), idempotency_key="abc")

        transaction_repo.add.assert_not_called()
        investment_repo.rollback.assert_awaited_once()



# ────────────────────────────────────────────────────────────────────────────
# Ledger tests against SQLite
# ────────────────────────────────────────────────────────────────────────────


class TestUpdateByPercentage:
    @pytest.mark.asyncio
    async def test_ten_percent_on_five_thousand(self, db_session):
        await _persist(db_session, make_variable_investment())

        result = await _service(db_session).update_by_percentage(INVESTMENT_ID, Decimal("10"))

        assert result.calculated_amount == Decimal("500.00")
        assert result.transaction.amount == Decimal("500.00")
        assert result.transaction.balance == Decimal("5500.00")
        assert result.investment.current_balance == Decimal("5500.00")

    @pytest.mark.asyncio
    async def test_negative_percentage_is_a_loss(self, db_session):
        await _persist(db_session, make_variable_investment())

        result = await _service(db_session).update_by_percentage(INVESTMENT_ID, Decimal("-10"))

        assert result.transaction.amount == Decimal("-500.00")
        assert result.investment.current_balance == Decimal("4500.00")

    @pytest.mark.asyncio
    async def test_loss_beyond_balance_rejected(self, db_session):
        await _persist(db_session, make_variable_investment())

        with pytest.raises(NegativeBalanceRejected):
            await _service(db_session).update_by_percentage(INVESTMENT_ID, Decimal("-150"))

        count = await TransactionRepository(Transaction, db_session).count_for_investment(
            INVESTMENT_ID
        )
        assert count == 0

    @pytest.mark.asyncio
    async def test_rounds_to_cents(self, db_session):
        await _persist(db_session, make_variable_investment(initial_amount=Decimal("1234.56")))

        result = await _service(db_session).update_by_percentage(INVESTMENT_ID, Decimal("3.3333"))

        # 1234.56 × 3.3333 % = 41.1515885
        assert result.calculated_amount == Decimal("41.15")
        assert result.investment.current_balance == Decimal("1275.71")

    @pytest.mark.asyncio
    async def test_backdated_effective_date(self, db_session):
        await _persist(db_session, make_variable_investment())

        result = await _service(db_session).update_by_percentage(
            INVESTMENT_ID, Decimal("2"), effective_date=date(2025, 6, 15), description="June mark"
        )

        assert result.transaction.transaction_date == date(2025, 6, 15)
        assert result.transaction.description == "June mark"

    @pytest.mark.asyncio
    async def test_future_effective_date_rejected(self, db_session):
        await _persist(db_session, make_variable_investment())
        with pytest.raises(ValidationFailed, match="future"):
            await _service(db_session).update_by_percentage(
                INVESTMENT_ID, Decimal("2"), effective_date=TODAY + timedelta(days=1)
            )

    @pytest.mark.asyncio
    async def test_effective_date_before_last_entry_rejected(self, db_session):
        await _persist(db_session, make_variable_investment())
        service = _service(db_session)
        await service.update_by_percentage(INVESTMENT_ID, Decimal("2"))

        with pytest.raises(ValidationFailed, match="predates"):
            await service.update_by_percentage(
                INVESTMENT_ID, Decimal("2"), effective_date=date(2025, 6, 10)
            )

    @pytest.mark.asyncio
    async def test_idempotency_key_replay(self, db_session):
        await _persist(db_session, make_variable_investment())
        service = _service(db_session)

        first = await service.update_by_percentage(
            INVESTMENT_ID, Decimal("10"), idempotency_key="mark-2025-07-01"
        )
        second = await service.update_by_percentage(
            INVESTMENT_ID, Decimal("10"), idempotency_key="mark-2025-07-01"
        )

        assert second.transaction.id == first.transaction.id
        assert second.investment.current_balance == Decimal("5500.00")
        count = await TransactionRepository(Transaction, db_session).count_for_investment(
            INVESTMENT_ID
        )
        assert count == 1

    @pytest.mark.asyncio
    async def test_idempotency_key_reused_for_other_percentage(self, db_session, session_factory):
        await _persist(db_session, make_variable_investment())
        service = _service(db_session)
        await service.update_by_percentage(
            INVESTMENT_ID, Decimal("10"), idempotency_key="mark-2025-07-01"
        )

        with pytest.raises(IdempotencyKeyReused):
            await service.update_by_percentage(
                INVESTMENT_ID, Decimal("20"), idempotency_key="mark-2025-07-01"
            )

        async with session_factory() as session:
            investment = await InvestmentRepository(Investment, session).get(INVESTMENT_ID)
            count = await TransactionRepository(Transaction, session).count_for_investment(
                INVESTMENT_ID
            )
        assert investment.current_balance == Decimal("5500.00")
        assert count == 1


class TestUpdateByBalance:
    @pytest.mark.asyncio
    async def test_percentage_then_balance(self, db_session):
        await _persist(db_session, make_variable_investment())
        service = _service(db_session)
        await service.update_by_percentage(INVESTMENT_ID, Decimal("10"))

        result = await service.update_by_balance(INVESTMENT_ID, Decimal("6000.00"))

        assert result.return_amount == Decimal("500.00")
        assert result.calculated_percentage == Decimal("9.0909")
        assert result.transaction.sequence == 2
        assert result.transaction.description == "Balance updated to 6000.00"
        assert result.investment.current_balance == Decimal("6000.00")

    @pytest.mark.asyncio
    async def test_inverse_of_percentage_update(self, session_factory):
        async with session_factory() as session:
            await _persist(session, make_variable_investment())
            by_pct = await _service(session).update_by_percentage(INVESTMENT_ID, Decimal("7.25"))
            await _service(session).update_by_balance(INVESTMENT_ID, Decimal("5000.00"))

            result = await _service(session).update_by_balance(
                INVESTMENT_ID, Decimal("5000.00") + by_pct.calculated_amount
            )

        assert result.return_amount == by_pct.calculated_amount
        assert result.calculated_percentage == Decimal("7.2500")

    @pytest.mark.asyncio
    async def test_unchanged_balance_records_zero_return(self, db_session):
        await _persist(db_session, make_variable_investment())

        result = await _service(db_session).update_by_balance(INVESTMENT_ID, Decimal("5000.00"))

        assert result.return_amount == Decimal("0.00")
        assert result.calculated_percentage == Decimal("0.0000")

    @pytest.mark.asyncio
    async def test_rate_undefined_from_zero_balance(self, db_session):
        await _persist(db_session, make_variable_investment())
        service = _service(db_session)

        wiped = await service.update_by_balance(INVESTMENT_ID, Decimal("0.00"))
        assert wiped.calculated_percentage == Decimal("-100.0000")

        revived = await service.update_by_balance(INVESTMENT_ID, Decimal("100.00"))
        assert revived.return_amount == Decimal("100.00")
        assert revived.calculated_percentage is None

    @pytest.mark.asyncio
    async def test_idempotency_replay_reports_original_rate(self, db_session):
        await _persist(db_session, make_variable_investment())
        service = _service(db_session)

        first = await service.update_by_balance(
            INVESTMENT_ID, Decimal("5500.00"), idempotency_key="k1"
        )
        replay = await service.update_by_balance(
            INVESTMENT_ID, Decimal("5500.00"), idempotency_key="k1"
        )

        assert replay.transaction.id == first.transaction.id
        assert replay.calculated_percentage == Decimal("10.0000")
        assert replay.investment.current_balance == Decimal("5500.00")

    @pytest.mark.asyncio
    async def test_idempotency_key_reused_across_operations(self, db_session, session_factory):
        await _persist(db_session, make_variable_investment())
        service = _service(db_session)
        await service.update_by_percentage(INVESTMENT_ID, Decimal("10"), idempotency_key="k1")

        with pytest.raises(IdempotencyKeyReused):
            await service.update_by_balance(INVESTMENT_ID, Decimal("5500.00"), idempotency_key="k1")

        async with session_factory() as session:
            count = await TransactionRepository(Transaction, session).count_for_investment(
                INVESTMENT_ID
            )
        assert count == 1
