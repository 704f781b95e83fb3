"""
Unit tests for PerformanceService (mocked repositories).

Tests cover:
- get_performance: not found, computed from the stored ledger, cached
- Cache invalidation after a ledger mutation
- get_analytics over all investments
- get_projections: FIXED uses the interest rate, VARIABLE the annualized return
- Return records: single period, filtered lists with summary, cache
- compare: duplicates dropped, ranked by period return
"""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from returns_api.core.cache import cache
from returns_api.core.exceptions import NotFoundException
from returns_api.models.transaction import TransactionType
from returns_api.services.performance import ReturnPeriod
from returns_api.services.performance_service import PORTFOLIO_SCAN_LIMIT, PerformanceService

from .conftest import (
    INVESTMENT_ID,
    INVESTMENT_ID_2,
    NOW,
    fixed_clock,
    make_investment,
    make_transaction,
    make_variable_investment,
)


def _variable_with_gain():
    return make_variable_investment(current_balance=Decimal("5500.00"))


def _gain_ledger():
    return [
        make_transaction(
            type=TransactionType.RETURN,
            amount=Decimal("500.00"),
            balance=Decimal("5500.00"),
            transaction_date=date(2025, 6, 10),
        )
    ]


@pytest.fixture()
def invest_repo():
    return AsyncMock()


@pytest.fixture()
def tx_repo():
    repo = AsyncMock()
    repo.list_for_investment.return_value = []
    return repo


@pytest.fixture()
def service(invest_repo, tx_repo):
    return PerformanceService(invest_repo, tx_repo, clock=fixed_clock(NOW))


class TestGetPerformance:
    @pytest.mark.asyncio
    async def test_not_found(self, service, invest_repo):
        invest_repo.get.return_value = None
        with pytest.raises(NotFoundException):
            await service.get_performance(INVESTMENT_ID)

    @pytest.mark.asyncio
    async def test_computed_from_ledger(self, service, invest_repo, tx_repo):
        invest_repo.get.return_value = _variable_with_gain()
        tx_repo.list_for_investment.return_value = _gain_ledger()

        perf = await service.get_performance(INVESTMENT_ID)

        assert perf.investment_id == INVESTMENT_ID
        assert perf.total_return == 500.0
        assert perf.total_return_rate == 10.0
        assert perf.metrics.best_day.date == date(2025, 6, 10)
        assert perf.as_of == NOW.date()
        tx_repo.list_for_investment.assert_awaited_once_with(INVESTMENT_ID)

    @pytest.mark.asyncio
    async def test_cached_until_ledger_changes(self, service, invest_repo, tx_repo):
        invest_repo.get.return_value = _variable_with_gain()
        tx_repo.list_for_investment.return_value = _gain_ledger()

        first = await service.get_performance(INVESTMENT_ID)
        second = await service.get_performance(INVESTMENT_ID)
        assert second is first
        assert tx_repo.list_for_investment.await_count == 1

        cache.invalidate_ledger()
        await service.get_performance(INVESTMENT_ID)
        assert tx_repo.list_for_investment.await_count == 2


class TestAnalytics:
    @pytest.mark.asyncio
    async def test_aggregates_all_investments(self, service, invest_repo, tx_repo):
        flat = make_investment(id=INVESTMENT_ID_2)
        invest_repo.list.return_value = [_variable_with_gain(), flat]
        tx_repo.list_for_investment.side_effect = lambda investment_id: (
            _gain_ledger() if investment_id == INVESTMENT_ID else []
        )

        analytics = await service.get_analytics()

        assert analytics.total_investments == 2
        assert analytics.total_value == 15500.0
        assert analytics.total_returns == 500.0
        assert analytics.average_return_rate == 5.0
        assert analytics.best_performer.investment_id == INVESTMENT_ID
        assert analytics.worst_performer.investment_id == INVESTMENT_ID_2
        invest_repo.list.assert_awaited_once_with(limit=PORTFOLIO_SCAN_LIMIT)

    @pytest.mark.asyncio
    async def test_analytics_cached(self, service, invest_repo):
        invest_repo.list.return_value = []

        await service.get_analytics()
        await service.get_analytics()

        invest_repo.list.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_all_performances(self, service, invest_repo):
        invest_repo.list.return_value = [make_investment(), make_investment(id=INVESTMENT_ID_2)]

        performances = await service.get_all_performances()

        assert [p.investment_id for p in performances] == [INVESTMENT_ID, INVESTMENT_ID_2]


class TestProjections:
    @pytest.mark.asyncio
    async def test_fixed_projects_at_interest_rate(self, service, invest_repo):
        invest_repo.get.return_value = make_investment()

        projection = await service.get_projections(INVESTMENT_ID)

        assert projection.moderate_rate == 12.0
        assert projection.current_value == 10000.0
        assert projection.projected_returns[0].moderate_value == 11200.0

    @pytest.mark.asyncio
    async def test_variable_projects_at_annualized_return(self, service, invest_repo, tx_repo):
        invest_repo.get.return_value = _variable_with_gain()
        tx_repo.list_for_investment.return_value = _gain_ledger()

        projection = await service.get_projections(INVESTMENT_ID)
        perf = await service.get_performance(INVESTMENT_ID)

        assert projection.moderate_rate == pytest.approx(perf.metrics.annualized_return)
        assert projection.moderate_rate > 10.0

    @pytest.mark.asyncio
    async def test_not_found(self, service, invest_repo):
        invest_repo.get.return_value = None
        with pytest.raises(NotFoundException):
            await service.get_projections(INVESTMENT_ID)


class TestReturnRecords:
    @pytest.mark.asyncio
    async def test_calculate_returns_for_period(self, service, invest_repo, tx_repo):
        invest_repo.get.return_value = _variable_with_gain()
        tx_repo.list_for_investment.return_value = _gain_ledger()

        record = await service.calculate_returns(INVESTMENT_ID, ReturnPeriod.MONTHLY)

        assert record.period is ReturnPeriod.MONTHLY
        assert record.start_date == date(2025, 6, 1)
        assert record.end_date == NOW.date()
        assert record.return_amount == 500.0
        assert record.return_rate == 10.0

    @pytest.mark.asyncio
    async def test_calculate_returns_not_found(self, service, invest_repo):
        invest_repo.get.return_value = None
        with pytest.raises(NotFoundException):
            await service.calculate_returns(INVESTMENT_ID, ReturnPeriod.TOTAL)

    @pytest.mark.asyncio
    async def test_list_for_one_investment_has_every_period(self, service, invest_repo, tx_repo):
        invest_repo.get.return_value = _variable_with_gain()
        tx_repo.list_for_investment.return_value = _gain_ledger()

        items, total, summary = await service.list_returns(investment_id=INVESTMENT_ID)

        assert total == len(ReturnPeriod)
        assert [r.period for r in items] == list(ReturnPeriod)
        assert summary.best_return == 10.0
        invest_repo.list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_filters_by_period_and_pages(self, service, invest_repo, tx_repo):
        invest_repo.list.return_value = [_variable_with_gain(), make_investment(id=INVESTMENT_ID_2)]
        tx_repo.list_for_investment.side_effect = lambda investment_id: (
            _gain_ledger() if investment_id == INVESTMENT_ID else []
        )

        items, total, summary = await service.list_returns(
            period=ReturnPeriod.TOTAL, page=2, limit=1
        )

        assert total == 2
        assert [r.investment_id for r in items] == [INVESTMENT_ID_2]
        assert summary.total_returns == 2
        assert summary.total_return_amount == 500.0

    @pytest.mark.asyncio
    async def test_records_cached_until_ledger_changes(self, service, invest_repo, tx_repo):
        invest_repo.get.return_value = _variable_with_gain()

        await service.calculate_returns(INVESTMENT_ID, ReturnPeriod.TOTAL)
        await service.calculate_returns(INVESTMENT_ID, ReturnPeriod.DAILY)
        assert tx_repo.list_for_investment.await_count == 1

        cache.invalidate_ledger()
        await service.calculate_returns(INVESTMENT_ID, ReturnPeriod.TOTAL)
        assert tx_repo.list_for_investment.await_count == 2


class TestCompare:
    @pytest.mark.asyncio
    async def test_ranked_best_first(self, service, invest_repo, tx_repo):
        flat = make_investment(id=INVESTMENT_ID_2)
        gain = _variable_with_gain()
        invest_repo.get.side_effect = lambda investment_id: (
            gain if investment_id == INVESTMENT_ID else flat
        )
        tx_repo.list_for_investment.side_effect = lambda investment_id: (
            _gain_ledger() if investment_id == INVESTMENT_ID else []
        )

        comparison = await service.compare(
            [INVESTMENT_ID_2, INVESTMENT_ID, INVESTMENT_ID_2], ReturnPeriod.TOTAL
        )

        assert comparison.period is ReturnPeriod.TOTAL
        assert [r.investment_id for r in comparison.returns] == [INVESTMENT_ID, INVESTMENT_ID_2]
        assert [p.investment_id for p in comparison.investments] == [
            INVESTMENT_ID,
            INVESTMENT_ID_2,
        ]
        assert comparison.returns[0].return_rate == 10.0

    @pytest.mark.asyncio
    async def test_unknown_investment(self, service, invest_repo):
        invest_repo.get.return_value = None
        with pytest.raises(NotFoundException):
            await service.compare([INVESTMENT_ID], ReturnPeriod.YEARLY)
