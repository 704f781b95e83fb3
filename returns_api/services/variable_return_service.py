"""
Variable return service: posts market returns on VARIABLE investments.

Two inverse ways to record the same event:

- ``update_by_percentage``: the caller knows the return rate; the amount is
  ``round2(balance × percentage / 100)``.
- ``update_by_balance``: the caller knows the resulting balance; the amount
  is the difference and the rate is backed out from it (``None`` when the
  previous balance was zero).

Either way a single RETURN entry carries the signed amount.  A caller that
supplies an idempotency key gets the original result back on a retry of the
same request; reusing the key for a different request is a conflict.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional
from uuid import UUID

from returns_api.core.exceptions import (
    IdempotencyKeyReused,
    InvalidReturnType,
    NegativeBalanceRejected,
    NotFoundException,
)
from returns_api.core.locks import InvestmentLockRegistry, investment_locks
from returns_api.models.investment import Investment, ReturnType
from returns_api.models.transaction import Transaction, TransactionType
from returns_api.repositories.investment_repo import InvestmentRepository
from returns_api.repositories.transaction_repo import TransactionRepository
from returns_api.services.accrual import HUNDRED, quantize_money
from returns_api.services.ledger import (
    append_transaction,
    ledger_mutation,
    require_active,
    utcnow,
)

logger = logging.getLogger(__name__)

PERCENT_PLACES = Decimal("0.0001")


def request_fingerprint(
    operation: str,
    value: Decimal,
    effective_date: Optional[date],
    description: Optional[str],
) -> str:
    """Stable digest of a return-posting request, compared on idempotent replays."""
    parts = (
        operation,
        format(value.normalize(), "f"),
        effective_date.isoformat() if effective_date else "",
        description or "",
    )
    return hashlib.sha256("\x1f".join(parts).encode()).hexdigest()


def implied_percentage(previous_balance: Decimal, return_amount: Decimal) -> Optional[Decimal]:
    """Return rate of ``return_amount`` on ``previous_balance``; ``None`` for a zero base."""
    if previous_balance == 0:
        return None
    return (return_amount / previous_balance * HUNDRED).quantize(
        PERCENT_PLACES, rounding=ROUND_HALF_UP
    )


@dataclass
class PercentageUpdateResult:
    transaction: Transaction
    investment: Investment
    calculated_amount: Decimal


@dataclass
class BalanceUpdateResult:
    transaction: Transaction
    investment: Investment
    calculated_percentage: Optional[Decimal]
    return_amount: Decimal


class VariableReturnService:
    """Records market returns on VARIABLE investments."""

    def __init__(
        self,
        investment_repo: InvestmentRepository,
        transaction_repo: TransactionRepository,
        clock: Callable[[], datetime] = utcnow,
        locks: InvestmentLockRegistry = investment_locks,
    ):
        self._investment_repo = investment_repo
        self._transaction_repo = transaction_repo
        self._clock = clock
        self._locks = locks

    async def _load_for_update(self, investment_id: UUID) -> Investment:
        investment = await self._investment_repo.get_for_update(investment_id)
        if not investment:
            raise NotFoundException("Investment", investment_id)
        if investment.return_type != ReturnType.VARIABLE:
            raise InvalidReturnType(
                f"Investment '{investment.name}' is {investment.return_type.value}; "
                "returns can only be posted to VARIABLE investments"
            )
        require_active(investment, "post a return")
        return investment

    async def _replayed(
        self, investment: Investment, idempotency_key: Optional[str], fingerprint: str
    ) -> Optional[Transaction]:
        if idempotency_key is None:
            return None
        existing = await self._transaction_repo.get_by_idempotency_key(
            investment.id, idempotency_key
        )
        if existing is not None:
            if existing.request_fingerprint != fingerprint:
                raise IdempotencyKeyReused(
                    f"Idempotency key {idempotency_key!r} was already used for a "
                    f"different request on investment {investment.id}"
                )
            logger.info(
                "Replaying return for idempotency key %r on investment %s",
                idempotency_key,
                investment.id,
                extra={"investment_id": str(investment.id), "transaction_id": str(existing.id)},
            )
        return existing

    async def _post_return(
        self,
        investment: Investment,
        amount: Decimal,
        effective_date: Optional[date],
        description: Optional[str],
        idempotency_key: Optional[str],
        fingerprint: str,
    ) -> Transaction:
        now = self._clock()
        return await append_transaction(
            self._transaction_repo,
            investment,
            tx_type=TransactionType.RETURN,
            amount=amount,
            transaction_date=effective_date or now.date(),
            today=now.date(),
            now=now,
            description=description,
            idempotency_key=idempotency_key,
            request_fingerprint=fingerprint if idempotency_key is not None else None,
        )

    async def update_by_percentage(
        self,
        investment_id: UUID,
        percentage: Decimal,
        effective_date: Optional[date] = None,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> PercentageUpdateResult:
        """Apply a return of ``percentage`` percent to the current balance."""
        async with ledger_mutation(self._investment_repo, investment_id, self._locks):
            investment = await self._load_for_update(investment_id)
            fingerprint = request_fingerprint("percentage", percentage, effective_date, description)
            existing = await self._replayed(investment, idempotency_key, fingerprint)
            if existing is not None:
                transaction = existing
            else:
                amount = quantize_money(investment.current_balance * percentage / HUNDRED)
                transaction = await self._post_return(
                    investment,
                    amount,
                    effective_date,
                    description or f"Return of {percentage}%",
                    idempotency_key,
                    fingerprint,
                )

        if existing is None:
            logger.info(
                "Posted %s%% return (%s) on investment %s",
                percentage,
                transaction.amount,
                investment_id,
                extra={"investment_id": str(investment_id), "transaction_id": str(transaction.id)},
            )
        return PercentageUpdateResult(transaction, investment, transaction.amount)

    async def update_by_balance(
        self,
        investment_id: UUID,
        new_balance: Decimal,
        effective_date: Optional[date] = None,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> BalanceUpdateResult:
        """Set the balance to ``new_balance`` and record the difference as a return."""
        async with ledger_mutation(self._investment_repo, investment_id, self._locks):
            investment = await self._load_for_update(investment_id)
            if new_balance < 0:
                raise NegativeBalanceRejected(f"new_balance {new_balance} is negative")
            fingerprint = request_fingerprint("balance", new_balance, effective_date, description)
            existing = await self._replayed(investment, idempotency_key, fingerprint)
            if existing is not None:
                transaction = existing
            else:
                transaction = await self._post_return(
                    investment,
                    new_balance - investment.current_balance,
                    effective_date,
                    description or f"Balance updated to {new_balance}",
                    idempotency_key,
                    fingerprint,
                )

        previous_balance = transaction.balance - transaction.amount
        percentage = implied_percentage(previous_balance, transaction.amount)
        if existing is None:
            logger.info(
                "Balance of investment %s set to %s (return %s, %s%%)",
                investment_id,
                transaction.balance,
                transaction.amount,
                percentage,
                extra={"investment_id": str(investment_id), "transaction_id": str(transaction.id)},
            )
        return BalanceUpdateResult(transaction, investment, percentage, transaction.amount)
