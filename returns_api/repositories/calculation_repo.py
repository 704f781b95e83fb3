"""
Interest calculation repository: data-access layer for ``interest_calculations``.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy.future import select

from returns_api.models.calculation import InterestCalculation
from returns_api.repositories.base import BaseRepository


class CalculationRepository(BaseRepository[InterestCalculation]):
    def _newest_first(self, investment_id: UUID):
        return (
            select(InterestCalculation)
            .where(InterestCalculation.investment_id == investment_id)
            .order_by(InterestCalculation.sequence.desc())
        )

    async def latest(
        self, investment_id: UUID, active_only: bool = False
    ) -> Optional[InterestCalculation]:
        """
        Highest-sequence calculation of an investment.

        With ``active_only`` reverted calculations are skipped.
        """
        stmt = self._newest_first(investment_id)
        if active_only:
            stmt = stmt.where(InterestCalculation.is_reverted.is_(False))
        return await self._fetch_first(stmt.limit(1))

    async def page_for_investment(
        self, investment_id: UUID, skip: int = 0, limit: int = 20
    ) -> List[InterestCalculation]:
        return await self._fetch_all(self._newest_first(investment_id).offset(skip).limit(limit))

    async def count_for_investment(self, investment_id: UUID) -> int:
        return await self._count_where(InterestCalculation.investment_id == investment_id)
