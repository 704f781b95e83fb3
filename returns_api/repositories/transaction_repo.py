"""
Transaction repository: data-access layer for the ``transactions`` ledger.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy.future import select

from returns_api.models.transaction import Transaction
from returns_api.repositories.base import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    def _ledger(self, investment_id: UUID):
        return select(Transaction).where(Transaction.investment_id == investment_id)

    async def list_for_investment(
        self,
        investment_id: UUID,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Transaction]:
        """Ledger entries of one investment in sequence order."""
        stmt = self._ledger(investment_id).order_by(Transaction.sequence).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._fetch_all(stmt)

    async def last_for_investment(self, investment_id: UUID) -> Optional[Transaction]:
        """The most recently appended entry, or ``None`` for an empty ledger."""
        return await self._fetch_first(
            self._ledger(investment_id).order_by(Transaction.sequence.desc()).limit(1)
        )

    async def count_for_investment(self, investment_id: UUID) -> int:
        return await self._count_where(Transaction.investment_id == investment_id)

    async def get_by_idempotency_key(self, investment_id: UUID, key: str) -> Optional[Transaction]:
        return await self._fetch_first(
            self._ledger(investment_id).where(Transaction.idempotency_key == key)
        )
