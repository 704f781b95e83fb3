"""
Ledger write helpers shared by the mutating services.

Every mutation follows the same shape: take the investment's write lock,
load the investment ``FOR UPDATE``, validate, stage the new ledger rows and
the balance change, then commit once.  ``ledger_mutation`` owns the lock,
the commit/rollback and cache invalidation; ``append_transaction`` owns the
ledger rules (sequence, chronology, running balance, no negative balance).
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Hashable, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from returns_api.core.cache import cache
from returns_api.core.exceptions import (
    ConcurrentModification,
    InvestmentNotEligible,
    NegativeBalanceRejected,
    ValidationFailed,
)
from returns_api.core.locks import InvestmentLockRegistry, investment_locks
from returns_api.models.investment import Investment, InvestmentStatus
from returns_api.models.transaction import Transaction, TransactionType, signed_effect
from returns_api.repositories.base import BaseRepository
from returns_api.repositories.transaction_repo import TransactionRepository

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require_active(investment: Investment, action: str) -> None:
    """Reject mutations of PENDING or CLOSED investments."""
    if investment.status != InvestmentStatus.ACTIVE:
        raise InvestmentNotEligible(
            f"Cannot {action}: investment '{investment.name}' is {investment.status.value}"
        )


@asynccontextmanager
async def ledger_mutation(
    repo: BaseRepository,
    investment_id: Hashable,
    locks: InvestmentLockRegistry = investment_locks,
) -> AsyncIterator[None]:
    """
    Run the body as one serialized unit of work on ``investment_id``.

    Commits when the body completes and rolls back on any exception, which
    also releases the row lock.  A unique-constraint race with another
    worker (duplicate ledger sequence or idempotency key) surfaces as
    ``ConcurrentModification``.
    """
    async with locks.hold(investment_id):
        try:
            yield
            await repo.commit()
        except IntegrityError as exc:
            await repo.rollback()
            logger.warning(
                "IntegrityError committing ledger mutation for investment %s: %s",
                investment_id,
                exc,
                extra={"investment_id": str(investment_id)},
            )
            raise ConcurrentModification(
                "The investment was modified concurrently; reload it and retry"
            ) from exc
        except Exception:
            await repo.rollback()
            raise
    cache.invalidate_ledger()


async def append_transaction(
    tx_repo: TransactionRepository,
    investment: Investment,
    *,
    tx_type: TransactionType,
    amount: Decimal,
    transaction_date: date,
    today: date,
    now: datetime,
    description: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    request_fingerprint: Optional[str] = None,
    reverses_transaction_id: Optional[UUID] = None,
) -> Transaction:
    """
    Stage the next ledger entry and apply it to ``investment``.

    The entry must not predate the investment's start or the previous
    entry, and must not lie in the future.  The resulting balance must not
    be negative.
    """
    if transaction_date > today:
        raise ValidationFailed(f"transaction_date {transaction_date} is in the future")
    if transaction_date < investment.start_date:
        raise ValidationFailed(
            f"transaction_date {transaction_date} is before the investment start "
            f"date {investment.start_date}"
        )

    last = await tx_repo.last_for_investment(investment.id)
    if last is not None and transaction_date < last.transaction_date:
        raise ValidationFailed(
            f"transaction_date {transaction_date} predates the latest ledger entry "
            f"({last.transaction_date})"
        )

    new_balance = investment.current_balance + signed_effect(tx_type, amount)
    if new_balance < 0:
        raise NegativeBalanceRejected(
            f"{tx_type.value} of {amount} would leave a negative balance ({new_balance})"
        )

    transaction = Transaction(
        investment_id=investment.id,
        sequence=last.sequence + 1 if last is not None else 1,
        type=tx_type,
        amount=amount,
        balance=new_balance,
        description=description,
        transaction_date=transaction_date,
        reverses_transaction_id=reverses_transaction_id,
        idempotency_key=idempotency_key,
        request_fingerprint=request_fingerprint,
        created_at=now,
    )
    tx_repo.add(transaction)
    investment.current_balance = new_balance
    investment.updated_at = now
    # Rows that reference this entry are inserted after it.
    await tx_repo.flush()
    return transaction
