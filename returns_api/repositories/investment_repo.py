"""
Investment repository: data-access layer for the ``investments`` table.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.future import select

from returns_api.models.investment import Investment, InvestmentStatus, ReturnType
from returns_api.repositories.base import BaseRepository


class InvestmentRepository(BaseRepository[Investment]):
    async def get_for_update(self, investment_id: UUID) -> Optional[Investment]:
        """
        Load an investment for mutation.

        Takes a row lock (``FOR UPDATE``; SQLite ignores it) held until the
        unit of work commits or rolls back, and overwrites any stale copy in
        the session's identity map with the row as currently stored.
        """
        stmt = (
            select(Investment)
            .where(Investment.id == investment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self._fetch_first(stmt)

    async def list(
        self,
        skip: int = 0,
        limit: int = 100,
        status: Optional[InvestmentStatus] = None,
    ) -> List[Investment]:
        """Page of investments, newest first, optionally filtered by status."""
        stmt = select(Investment)
        if status is not None:
            stmt = stmt.where(Investment.status == status)
        stmt = stmt.order_by(Investment.created_at.desc(), Investment.id).offset(skip).limit(limit)
        return await self._fetch_all(stmt)

    async def count_by_status(self, status: Optional[InvestmentStatus] = None) -> int:
        if status is None:
            return await self._count_where()
        return await self._count_where(Investment.status == status)

    async def list_due_for_accrual(self, now: datetime, limit: int) -> List[UUID]:
        """
        Ids of ACTIVE FIXED investments with auto-calculation on whose next
        accrual is due at ``now`` (or that were never scheduled).
        """
        stmt = (
            select(Investment.id)
            .where(
                Investment.status == InvestmentStatus.ACTIVE,
                Investment.return_type == ReturnType.FIXED,
                Investment.auto_calculate.is_(True),
                or_(Investment.next_interest_due.is_(None), Investment.next_interest_due <= now),
            )
            .order_by(Investment.next_interest_due, Investment.id)
            .limit(limit)
        )
        return await self._fetch_all(stmt)
