"""
Performance service: read-only return analytics over stored ledgers.

Loads investments and their transactions and hands them to the pure
calculator in :mod:`returns_api.services.performance`.  Results are cached
under ``performance:`` keys that include the as-of date; every ledger
mutation drops them.
"""

import logging
from datetime import date, datetime
from typing import Callable, List, Optional, Sequence, Tuple
from uuid import UUID

from returns_api.core.cache import PERFORMANCE_PREFIX, cache, cache_key
from returns_api.core.config import settings
from returns_api.core.exceptions import NotFoundException
from returns_api.models.investment import Investment, ReturnType
from returns_api.repositories.investment_repo import InvestmentRepository
from returns_api.repositories.transaction_repo import TransactionRepository
from returns_api.services.ledger import utcnow
from returns_api.services.performance import (
    InvestmentPerformance,
    PerformanceComparison,
    PeriodReturn,
    PortfolioAnalytics,
    ReturnPeriod,
    ReturnProjection,
    ReturnsSummary,
    compute_performance,
    compute_period_return,
    project_returns,
    summarise_portfolio,
    summarise_returns,
)

logger = logging.getLogger(__name__)

# Upper bound on investments loaded for portfolio-wide views.
PORTFOLIO_SCAN_LIMIT = 10_000


class PerformanceService:
    def __init__(
        self,
        investment_repo: InvestmentRepository,
        transaction_repo: TransactionRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._investment_repo = investment_repo
        self._transaction_repo = transaction_repo
        self._clock = clock

    def _today(self) -> date:
        return self._clock().date()

    async def _get_investment(self, investment_id: UUID) -> Investment:
        investment = await self._investment_repo.get(investment_id)
        if not investment:
            raise NotFoundException("Investment", investment_id)
        return investment

    async def _performance_of(self, investment: Investment, today: date) -> InvestmentPerformance:
        key = cache_key(PERFORMANCE_PREFIX, investment.id, today.isoformat())
        cached = cache.get(key)
        if cached is not None:
            return cached

        transactions = await self._transaction_repo.list_for_investment(investment.id)
        performance = compute_performance(
            investment, transactions, today, risk_free_rate=settings.RISK_FREE_RATE
        )
        cache.set(key, performance)
        return performance

    async def _returns_of(self, investment: Investment, today: date) -> List[PeriodReturn]:
        """One return record per period, in ``ReturnPeriod`` order."""
        key = cache_key(PERFORMANCE_PREFIX, "returns", investment.id, today.isoformat())
        cached = cache.get(key)
        if cached is not None:
            return cached

        transactions = await self._transaction_repo.list_for_investment(investment.id)
        records = [
            compute_period_return(investment, transactions, period, today)
            for period in ReturnPeriod
        ]
        cache.set(key, records)
        return records

    async def get_performance(self, investment_id: UUID) -> InvestmentPerformance:
        investment = await self._get_investment(investment_id)
        return await self._performance_of(investment, self._today())

    async def get_all_performances(self) -> List[InvestmentPerformance]:
        """Performance of every investment, newest investment first."""
        today = self._today()
        investments = await self._investment_repo.list(limit=PORTFOLIO_SCAN_LIMIT)
        return [await self._performance_of(inv, today) for inv in investments]

    async def get_analytics(self) -> PortfolioAnalytics:
        today = self._today()
        key = cache_key(PERFORMANCE_PREFIX, "analytics", today.isoformat())
        cached = cache.get(key)
        if cached is not None:
            return cached

        analytics = summarise_portfolio(await self.get_all_performances())
        logger.debug(
            "Portfolio analytics over %d investments (avg return %.4f%%)",
            analytics.total_investments,
            analytics.average_return_rate,
        )
        cache.set(key, analytics)
        return analytics

    async def get_projections(self, investment_id: UUID) -> ReturnProjection:
        """
        Project the current value 1, 3, 5 and 10 years ahead.

        FIXED investments project at their interest rate; VARIABLE ones at
        their annualized return to date.
        """
        investment = await self._get_investment(investment_id)
        performance = await self._performance_of(investment, self._today())

        if investment.return_type == ReturnType.FIXED and investment.interest_rate is not None:
            moderate = float(investment.interest_rate)
        else:
            moderate = performance.metrics.annualized_return
        return project_returns(performance, moderate)

    async def calculate_returns(self, investment_id: UUID, period: ReturnPeriod) -> PeriodReturn:
        """The return of one investment over ``period`` ending today."""
        investment = await self._get_investment(investment_id)
        records = await self._returns_of(investment, self._today())
        return next(r for r in records if r.period is period)

    async def list_returns(
        self,
        investment_id: Optional[UUID] = None,
        period: Optional[ReturnPeriod] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[PeriodReturn], int, ReturnsSummary]:
        """
        Return records filtered by investment and period, one page of them,
        the total count and a summary over every matching record.
        """
        today = self._today()
        if investment_id is not None:
            investments: Sequence[Investment] = [await self._get_investment(investment_id)]
        else:
            investments = await self._investment_repo.list(limit=PORTFOLIO_SCAN_LIMIT)

        records = [
            record
            for investment in investments
            for record in await self._returns_of(investment, today)
            if period is None or record.period is period
        ]
        skip = (page - 1) * limit
        return records[skip : skip + limit], len(records), summarise_returns(records)

    async def compare(
        self, investment_ids: Sequence[UUID], period: ReturnPeriod
    ) -> PerformanceComparison:
        """Side-by-side performance of several investments, ranked by ``period`` return."""
        today = self._today()
        investments = [await self._get_investment(i) for i in dict.fromkeys(investment_ids)]

        returns = [
            next(r for r in await self._returns_of(inv, today) if r.period is period)
            for inv in investments
        ]
        ranked = sorted(returns, key=lambda r: r.return_rate, reverse=True)
        order = {r.investment_id: rank for rank, r in enumerate(ranked)}
        performances = sorted(
            [await self._performance_of(inv, today) for inv in investments],
            key=lambda p: order[p.investment_id],
        )
        logger.debug("Compared %d investments over %s", len(investments), period.value)
        return PerformanceComparison(period=period, investments=performances, returns=ranked)
