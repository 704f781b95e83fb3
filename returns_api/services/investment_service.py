"""
Investment service: business logic for investments and their ledger.

Covers what the accrual engine and the performance calculator need around
them: creating investments, status changes and posting non-return
transactions (DEPOSIT, WITHDRAWAL, TRANSFER, DIVIDEND).  RETURN entries are
reserved for the interest and variable-return services.

Caching:
    ``list_investments`` is served from the in-memory TTL cache.  Every
    write invalidates the ``investments:`` and ``performance:`` prefixes.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from returns_api.core.cache import INVESTMENTS_PREFIX, cache, cache_key
from returns_api.core.config import settings
from returns_api.core.exceptions import (
    BusinessRuleViolation,
    NotFoundException,
    ValidationFailed,
)
from returns_api.core.locks import InvestmentLockRegistry, investment_locks
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
from returns_api.services.accrual import next_due_at
from returns_api.services.ledger import (
    append_transaction,
    ledger_mutation,
    require_active,
    utcnow,
)

logger = logging.getLogger(__name__)

# Allowed status changes.  CLOSED is terminal.
_STATUS_TRANSITIONS = {
    InvestmentStatus.PENDING: {InvestmentStatus.ACTIVE, InvestmentStatus.CLOSED},
    InvestmentStatus.ACTIVE: {InvestmentStatus.PENDING, InvestmentStatus.CLOSED},
    InvestmentStatus.CLOSED: set(),
}


class InvestmentService:
    """Encapsulates CRUD, status rules and manual ledger entries for investments."""

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

    # ── Queries ──

    async def get_investment(self, investment_id: UUID) -> Investment:
        investment = await self._investment_repo.get(investment_id)
        if not investment:
            raise NotFoundException("Investment", investment_id)
        return investment

    async def list_investments(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[InvestmentStatus] = None,
    ) -> Tuple[List[Investment], int]:
        """Return one page of investments and the total count (cache-backed)."""
        key = cache_key(INVESTMENTS_PREFIX, status.value if status else "all", page, limit)
        cached = cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached

        items = await self._investment_repo.list(
            skip=(page - 1) * limit, limit=limit, status=status
        )
        total = await self._investment_repo.count_by_status(status)
        cache.set(key, (items, total))
        return items, total

    async def list_transactions(
        self, investment_id: UUID, page: int = 1, limit: int = 50
    ) -> Tuple[List[Transaction], int]:
        """One page of the ledger in ledger order, plus the total entry count."""
        await self.get_investment(investment_id)
        items = await self._transaction_repo.list_for_investment(
            investment_id, skip=(page - 1) * limit, limit=limit
        )
        total = await self._transaction_repo.count_for_investment(investment_id)
        return items, total

    # ── Commands ──

    async def create_investment(self, data: InvestmentCreate) -> Investment:
        """
        Persist a new investment.

        The balance starts at ``initial_amount``.  FIXED investments get an
        accrual schedule starting at ``start_date``.
        """
        now = self._clock()
        frequency = data.compounding_frequency or CompoundingFrequency(
            settings.DEFAULT_COMPOUNDING_FREQUENCY
        )
        investment = Investment(
            name=data.name,
            currency=data.currency,
            category=data.category,
            initial_amount=data.initial_amount,
            current_balance=data.initial_amount,
            start_date=data.start_date,
            return_type=data.return_type,
            interest_rate=data.interest_rate,
            status=data.status,
            auto_calculate=data.auto_calculate,
            compounding_frequency=frequency,
            created_at=now,
            updated_at=now,
        )
        if data.return_type == ReturnType.FIXED:
            investment.next_interest_due = next_due_at(data.start_date, frequency)

        try:
            created = await self._investment_repo.create(investment)
        except IntegrityError as exc:
            await self._investment_repo.rollback()
            logger.warning("IntegrityError creating investment '%s': %s", data.name, exc)
            raise BusinessRuleViolation(
                "Investment could not be created: a database constraint was violated"
            ) from exc

        cache.invalidate_ledger()
        logger.info(
            "Created %s investment %s '%s' (%s %s)",
            created.return_type.value,
            created.id,
            created.name,
            created.initial_amount,
            created.currency,
            extra={"investment_id": str(created.id)},
        )
        return created

    async def update_status(self, investment_id: UUID, status: InvestmentStatus) -> Investment:
        """
        Move an investment between ACTIVE and PENDING, or close it.

        Setting the current status again is a no-op.  A CLOSED investment
        cannot be reopened.
        """
        async with ledger_mutation(self._investment_repo, investment_id, self._locks):
            investment = await self._investment_repo.get_for_update(investment_id)
            if not investment:
                raise NotFoundException("Investment", investment_id)
            previous = investment.status
            if status != previous:
                if status not in _STATUS_TRANSITIONS[previous]:
                    raise ValidationFailed(
                        f"Cannot change status from {previous.value} to {status.value}"
                    )
                investment.status = status
                investment.updated_at = self._clock()

        if status != previous:
            logger.info(
                "Investment %s status %s -> %s",
                investment_id,
                previous.value,
                status.value,
                extra={"investment_id": str(investment_id)},
            )
        return investment

    async def record_transaction(
        self, investment_id: UUID, data: TransactionCreate
    ) -> Transaction:
        """Post a DEPOSIT, WITHDRAWAL, TRANSFER or DIVIDEND to an ACTIVE investment."""
        if data.type == TransactionType.RETURN:
            raise ValidationFailed("RETURN transactions are posted through the interest endpoints")

        async with ledger_mutation(self._investment_repo, investment_id, self._locks):
            investment = await self._investment_repo.get_for_update(investment_id)
            if not investment:
                raise NotFoundException("Investment", investment_id)
            require_active(investment, f"record a {data.type.value.lower()}")

            now = self._clock()
            transaction = await append_transaction(
                self._transaction_repo,
                investment,
                tx_type=data.type,
                amount=data.amount,
                transaction_date=data.transaction_date or now.date(),
                today=now.date(),
                now=now,
                description=data.description,
            )

        logger.info(
            "Recorded %s of %s on investment %s (balance %s)",
            transaction.type.value,
            transaction.amount,
            investment_id,
            transaction.balance,
            extra={"investment_id": str(investment_id), "transaction_id": str(transaction.id)},
        )
        return transaction
