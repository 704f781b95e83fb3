"""
Return / performance API endpoints (read-only, cache-backed).

- GET /returns/investment/{investment_id}   — Performance of one investment
- GET /returns/performances                 — Performance of every investment
- GET /returns/analytics                    — Portfolio overview
- GET /returns/projections/{investment_id}  — 1/3/5/10-year projections
- GET /returns                              — Return records by investment and period
- POST /returns/calculate                   — Return of one investment over a period
- POST /returns/compare                     — Rank several investments over a period
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from returns_api.db.session import get_db
from returns_api.models.investment import Investment
from returns_api.models.transaction import Transaction
from returns_api.repositories.investment_repo import InvestmentRepository
from returns_api.repositories.transaction_repo import TransactionRepository
from returns_api.schemas.common import ErrorResponse, PaginationMeta
from returns_api.schemas.performance import (
    CalculateReturnsRequest,
    CompareRequest,
    ComparisonResponse,
    InvestmentPerformanceResponse,
    PeriodReturnResponse,
    PortfolioAnalyticsResponse,
    ReturnListResponse,
    ReturnProjectionResponse,
    ReturnsSummaryResponse,
)
from returns_api.services.performance import ReturnPeriod
from returns_api.services.performance_service import PerformanceService

router = APIRouter()


def _get_performance_service(db: AsyncSession = Depends(get_db)) -> PerformanceService:
    return PerformanceService(
        investment_repo=InvestmentRepository(Investment, db),
        transaction_repo=TransactionRepository(Transaction, db),
    )


@router.get(
    "/investment/{investment_id}",
    response_model=InvestmentPerformanceResponse,
    summary="Performance of one investment",
    description=(
        "Period returns, total and annualized return, volatility, Sharpe "
        "ratio, max drawdown and best/worst day, derived from the ledger."
    ),
    responses={404: {"model": ErrorResponse, "description": "Investment not found"}},
)
async def get_investment_performance(
    investment_id: UUID,
    service: PerformanceService = Depends(_get_performance_service),
) -> InvestmentPerformanceResponse:
    return InvestmentPerformanceResponse.model_validate(
        await service.get_performance(investment_id)
    )


@router.get(
    "/performances",
    response_model=List[InvestmentPerformanceResponse],
    summary="Performance of every investment",
)
async def list_performances(
    service: PerformanceService = Depends(_get_performance_service),
) -> List[InvestmentPerformanceResponse]:
    performances = await service.get_all_performances()
    return [InvestmentPerformanceResponse.model_validate(p) for p in performances]


@router.get(
    "/analytics",
    response_model=PortfolioAnalyticsResponse,
    summary="Portfolio analytics",
    description="Totals, average return rate, best/worst performer and top performers.",
)
async def get_analytics(
    service: PerformanceService = Depends(_get_performance_service),
) -> PortfolioAnalyticsResponse:
    return PortfolioAnalyticsResponse.model_validate(await service.get_analytics())


@router.get(
    "/projections/{investment_id}",
    response_model=ReturnProjectionResponse,
    summary="Return projections",
    description=(
        "Conservative, moderate and aggressive compound projections of the "
        "current value over 1, 3, 5 and 10 years."
    ),
    responses={404: {"model": ErrorResponse, "description": "Investment not found"}},
)
async def get_projections(
    investment_id: UUID,
    service: PerformanceService = Depends(_get_performance_service),
) -> ReturnProjectionResponse:
    return ReturnProjectionResponse.model_validate(await service.get_projections(investment_id))


@router.get(
    "",
    response_model=ReturnListResponse,
    summary="List return records",
    description=(
        "One record per investment and period (DAILY to YEARLY trailing "
        "windows, plus TOTAL since inception), derived from the ledger.  "
        "``summary`` covers every matching record, not only the page."
    ),
    responses={404: {"model": ErrorResponse, "description": "Investment not found"}},
)
async def list_returns(
    investment_id: Optional[UUID] = Query(None, description="Only this investment"),
    period: Optional[ReturnPeriod] = Query(None, description="Only this period"),
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    service: PerformanceService = Depends(_get_performance_service),
) -> ReturnListResponse:
    items, total, summary = await service.list_returns(
        investment_id=investment_id, period=period, page=page, limit=limit
    )
    return ReturnListResponse(
        items=[PeriodReturnResponse.model_validate(r) for r in items],
        pagination=PaginationMeta.build(page, limit, total),
        summary=ReturnsSummaryResponse.model_validate(summary),
    )


@router.post(
    "/calculate",
    response_model=PeriodReturnResponse,
    summary="Return of one investment over a period",
    responses={404: {"model": ErrorResponse, "description": "Investment not found"}},
)
async def calculate_returns(
    body: CalculateReturnsRequest,
    service: PerformanceService = Depends(_get_performance_service),
) -> PeriodReturnResponse:
    return PeriodReturnResponse.model_validate(
        await service.calculate_returns(body.investment_id, body.period)
    )


@router.post(
    "/compare",
    response_model=ComparisonResponse,
    summary="Compare investments over a period",
    description=(
        "Performance records and period returns of the requested investments, "
        "best return first.  Market benchmarks are not available."
    ),
    responses={404: {"model": ErrorResponse, "description": "Investment not found"}},
)
async def compare_investments(
    body: CompareRequest,
    service: PerformanceService = Depends(_get_performance_service),
) -> ComparisonResponse:
    return ComparisonResponse.model_validate(
        await service.compare(body.investment_ids, body.period)
    )
