"""
Interest service: fixed-rate accrual engine.

Operations:
    preview        price the accrual that is due right now (no side effects)
    calculate      commit it: RETURN transaction + calculation + balance
    revert         undo the most recent calculation with a compensating entry
    update_schedule  auto-calculation flag and compounding frequency
    history        paged calculation ledger, newest first

The accrual period always starts where the latest non-reverted calculation
ended (or at the investment's start date), so an interval is never accrued
twice.  ``calculate`` and ``revert`` run under the investment's write lock;
a second concurrent ``calculate`` finds nothing left to accrue and fails
with ``NoInterestDue``.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from returns_api.core.exceptions import (
    ConcurrentModification,
    InvestmentNotEligible,
    NoCalculationToRevert,
    NoInterestDue,
    NotFoundException,
    ValidationFailed,
)
from returns_api.core.locks import InvestmentLockRegistry, investment_locks
from returns_api.models.calculation import CalculationType, InterestCalculation
from returns_api.models.investment import (
    CompoundingFrequency,
    Investment,
    InvestmentStatus,
    ReturnType,
)
from returns_api.models.transaction import Transaction, TransactionType
from returns_api.repositories.calculation_repo import CalculationRepository
from returns_api.repositories.investment_repo import InvestmentRepository
from returns_api.repositories.transaction_repo import TransactionRepository
from returns_api.services.accrual import AccrualQuote, next_due_at, quote_accrual
from returns_api.services.ledger import (
    append_transaction,
    ledger_mutation,
    require_active,
    utcnow,
)
from returns_api.services.performance import balance_as_of, balance_series

logger = logging.getLogger(__name__)


@dataclass
class CalculationResult:
    calculation: InterestCalculation
    transaction: Transaction
    investment: Investment


@dataclass
class RevertResult:
    calculation: InterestCalculation
    transaction: Transaction
    investment: Investment


class InterestService:
    """Accrual engine for FIXED-return investments."""

    def __init__(
        self,
        investment_repo: InvestmentRepository,
        transaction_repo: TransactionRepository,
        calculation_repo: CalculationRepository,
        clock: Callable[[], datetime] = utcnow,
        locks: InvestmentLockRegistry = investment_locks,
    ):
        self._investment_repo = investment_repo
        self._transaction_repo = transaction_repo
        self._calculation_repo = calculation_repo
        self._clock = clock
        self._locks = locks

    # ── Helpers ──

    async def _get_investment(self, investment_id: UUID, for_update: bool = False) -> Investment:
        if for_update:
            investment = await self._investment_repo.get_for_update(investment_id)
        else:
            investment = await self._investment_repo.get(investment_id)
        if not investment:
            raise NotFoundException("Investment", investment_id)
        return investment

    @staticmethod
    def _require_accruable(investment: Investment) -> None:
        if investment.return_type != ReturnType.FIXED:
            raise InvestmentNotEligible(
                f"Investment '{investment.name}' is {investment.return_type.value}; "
                "interest accrual applies to FIXED investments only"
            )
        require_active(investment, "accrue interest")
        if investment.interest_rate is None:
            raise InvestmentNotEligible(f"Investment '{investment.name}' has no interest rate")

    async def _period_start(self, investment: Investment) -> date:
        latest = await self._calculation_repo.latest(investment.id, active_only=True)
        return latest.period_end if latest is not None else investment.start_date

    async def _quote(self, investment: Investment, today: date) -> AccrualQuote:
        period_start = await self._period_start(investment)
        series = balance_series(
            investment.initial_amount,
            investment.start_date,
            await self._transaction_repo.list_for_investment(investment.id),
        )
        principal = balance_as_of(series, period_start)
        return quote_accrual(
            investment_id=investment.id,
            principal=principal if principal is not None else investment.initial_amount,
            annual_rate=investment.interest_rate,
            frequency=investment.compounding_frequency,
            period_start=period_start,
            today=today,
            balance_changes=[point for point in series if point[0] > period_start],
            current_balance=investment.current_balance,
        )

    # ── Queries ──

    async def preview(self, investment_id: UUID) -> AccrualQuote:
        """What ``calculate`` would commit if called now."""
        investment = await self._get_investment(investment_id)
        self._require_accruable(investment)
        return await self._quote(investment, self._clock().date())

    async def history(
        self, investment_id: UUID, page: int = 1, limit: int = 20
    ) -> Tuple[List[InterestCalculation], int]:
        """One page of the calculation ledger (newest first) and the total count."""
        await self._get_investment(investment_id)
        items = await self._calculation_repo.page_for_investment(
            investment_id, skip=(page - 1) * limit, limit=limit
        )
        total = await self._calculation_repo.count_for_investment(investment_id)
        return items, total

    # ── Commands ──

    async def calculate(
        self,
        investment_id: UUID,
        expected_principal: Optional[Decimal] = None,
        calculation_type: CalculationType = CalculationType.MANUAL,
    ) -> CalculationResult:
        """
        Accrue the interest that is due and credit it to the balance.

        Interest is accrued day by day on the closing balance, so a deposit or
        withdrawal inside the period counts only from its transaction date.
        ``expected_principal`` is the principal the caller previewed; a
        mismatch means the ledger moved in between and the call fails with
        ``ConcurrentModification`` instead of accruing on a surprise amount.
        """
        async with ledger_mutation(self._investment_repo, investment_id, self._locks):
            investment = await self._get_investment(investment_id, for_update=True)
            self._require_accruable(investment)

            now = self._clock()
            quote = await self._quote(investment, now.date())
            if expected_principal is not None and expected_principal != quote.principal:
                raise ConcurrentModification(
                    f"Expected principal {expected_principal} but the ledger now gives "
                    f"{quote.principal}"
                )
            if quote.days == 0:
                raise NoInterestDue(
                    f"No full {investment.compounding_frequency.value.lower()} period has "
                    f"elapsed since {quote.period_start}"
                )

            transaction = await append_transaction(
                self._transaction_repo,
                investment,
                tx_type=TransactionType.RETURN,
                amount=quote.interest,
                transaction_date=now.date(),
                today=now.date(),
                now=now,
                description=(
                    f"Interest {quote.interest_rate}% p.a. "
                    f"{quote.period_start.isoformat()} to {quote.period_end.isoformat()}"
                ),
            )
            previous = await self._calculation_repo.latest(investment.id)
            calculation = InterestCalculation(
                investment_id=investment.id,
                sequence=previous.sequence + 1 if previous is not None else 1,
                calculation_type=calculation_type,
                calculated_at=now,
                period_start=quote.period_start,
                period_end=quote.period_end,
                days=quote.days,
                compounding_frequency=quote.compounding_frequency,
                principal_amount=quote.principal,
                interest_rate=quote.interest_rate,
                interest_earned=quote.interest,
                new_balance=transaction.balance,
                transaction_id=transaction.id,
            )
            self._calculation_repo.add(calculation)
            investment.last_interest_calculated = now
            investment.next_interest_due = next_due_at(
                quote.period_end, investment.compounding_frequency
            )

        logger.info(
            "Accrued %s on investment %s (%s, %d days, principal %s)",
            calculation.interest_earned,
            investment_id,
            calculation_type.value,
            calculation.days,
            calculation.principal_amount,
            extra={
                "investment_id": str(investment_id),
                "calculation_id": str(calculation.id),
                "transaction_id": str(transaction.id),
            },
        )
        return CalculationResult(calculation, transaction, investment)

    async def revert(self, investment_id: UUID, confirm: bool) -> RevertResult:
        """
        Undo the most recent calculation.

        The original RETURN entry stays in the ledger; a compensating RETURN
        of ``-interest_earned`` is appended and the accrual schedule is
        rewound to the previous active calculation.  Only the latest
        calculation can be reverted, and only once.
        """
        if not confirm:
            raise ValidationFailed("confirm_revert must be true to revert a calculation")

        async with ledger_mutation(self._investment_repo, investment_id, self._locks):
            investment = await self._get_investment(investment_id, for_update=True)
            require_active(investment, "revert a calculation")

            calculation = await self._calculation_repo.latest(investment.id)
            if calculation is None or calculation.is_reverted:
                raise NoCalculationToRevert(
                    f"Investment '{investment.name}' has no calculation to revert"
                )

            now = self._clock()
            transaction = await append_transaction(
                self._transaction_repo,
                investment,
                tx_type=TransactionType.RETURN,
                amount=-calculation.interest_earned,
                transaction_date=now.date(),
                today=now.date(),
                now=now,
                description=f"Reversal of interest calculation #{calculation.sequence}",
                reverses_transaction_id=calculation.transaction_id,
            )
            calculation.is_reverted = True
            calculation.reverted_at = now
            calculation.reversal_transaction_id = transaction.id
            await self._calculation_repo.flush()

            previous = await self._calculation_repo.latest(investment.id, active_only=True)
            if previous is not None:
                investment.last_interest_calculated = previous.calculated_at
                period_start = previous.period_end
            else:
                investment.last_interest_calculated = None
                period_start = investment.start_date
            investment.next_interest_due = next_due_at(period_start, investment.compounding_frequency)

        logger.info(
            "Reverted calculation #%d on investment %s (-%s)",
            calculation.sequence,
            investment_id,
            calculation.interest_earned,
            extra={
                "investment_id": str(investment_id),
                "calculation_id": str(calculation.id),
                "transaction_id": str(transaction.id),
            },
        )
        return RevertResult(calculation, transaction, investment)

    async def update_schedule(
        self,
        investment_id: UUID,
        auto_calculate: bool,
        compounding_frequency: Optional[CompoundingFrequency] = None,
    ) -> Investment:
        """Set the auto-calculation flag and, optionally, the compounding frequency."""
        async with ledger_mutation(self._investment_repo, investment_id, self._locks):
            investment = await self._get_investment(investment_id, for_update=True)
            if investment.return_type != ReturnType.FIXED:
                raise InvestmentNotEligible(
                    "Accrual schedules apply to FIXED investments only"
                )
            if investment.status == InvestmentStatus.CLOSED:
                raise InvestmentNotEligible(f"Investment '{investment.name}' is CLOSED")

            investment.auto_calculate = auto_calculate
            if compounding_frequency is not None:
                investment.compounding_frequency = compounding_frequency
            investment.next_interest_due = next_due_at(
                await self._period_start(investment), investment.compounding_frequency
            )
            investment.updated_at = self._clock()

        logger.info(
            "Schedule for investment %s: auto_calculate=%s frequency=%s",
            investment_id,
            investment.auto_calculate,
            investment.compounding_frequency.value,
            extra={"investment_id": str(investment_id)},
        )
        return investment
