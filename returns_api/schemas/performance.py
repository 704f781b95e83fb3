"""
Pydantic schemas for the derived performance endpoints.

Built from the calculator's dataclasses via ``from_attributes``.
"""

import datetime as dt
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from returns_api.models.investment import InvestmentCategory, ReturnType
from returns_api.schemas.common import PaginationMeta
from returns_api.services.performance import ReturnPeriod


class DayReturnResponse(BaseModel):
    date: dt.date
    return_rate: float

    model_config = ConfigDict(from_attributes=True)


class PerformanceMetricsResponse(BaseModel):
    total_return: float
    total_return_rate: float
    annualized_return: float
    volatility: float
    sharpe_ratio: float
    max_drawdown: float
    best_day: Optional[DayReturnResponse] = None
    worst_day: Optional[DayReturnResponse] = None

    model_config = ConfigDict(from_attributes=True)


class InvestmentPerformanceResponse(BaseModel):
    investment_id: UUID
    investment_name: str
    category: InvestmentCategory
    return_type: ReturnType
    currency: str
    initial_amount: float
    current_value: float
    total_return: float
    total_return_rate: float
    daily_return: float
    weekly_return: float
    monthly_return: float
    quarterly_return: float
    yearly_return: float
    metrics: PerformanceMetricsResponse
    as_of: dt.date

    model_config = ConfigDict(from_attributes=True)


class PerformerSummaryResponse(BaseModel):
    investment_id: UUID
    name: str
    return_rate: float

    model_config = ConfigDict(from_attributes=True)


class PeriodAveragesResponse(BaseModel):
    daily: float
    weekly: float
    monthly: float
    quarterly: float
    yearly: float

    model_config = ConfigDict(from_attributes=True)


class PortfolioAnalyticsResponse(BaseModel):
    total_investments: int
    total_value: float
    total_returns: float
    average_return_rate: float
    best_performer: Optional[PerformerSummaryResponse] = None
    worst_performer: Optional[PerformerSummaryResponse] = None
    performance_by_period: PeriodAveragesResponse
    top_performers: List[InvestmentPerformanceResponse]

    model_config = ConfigDict(from_attributes=True)


class ProjectionPointResponse(BaseModel):
    years: int
    conservative_value: float
    moderate_value: float
    aggressive_value: float

    model_config = ConfigDict(from_attributes=True)


class ReturnProjectionResponse(BaseModel):
    investment_id: UUID
    current_value: float
    conservative_rate: float
    moderate_rate: float
    aggressive_rate: float
    projected_returns: List[ProjectionPointResponse]

    model_config = ConfigDict(from_attributes=True)


class PeriodReturnResponse(BaseModel):
    investment_id: UUID
    investment_name: str
    period: ReturnPeriod
    start_date: dt.date
    end_date: dt.date
    start_value: float
    end_value: float
    return_amount: float
    return_rate: float

    model_config = ConfigDict(from_attributes=True)


class ReturnsSummaryResponse(BaseModel):
    total_returns: int
    average_return: float
    best_return: float
    worst_return: float
    total_return_amount: float

    model_config = ConfigDict(from_attributes=True)


class ReturnListResponse(BaseModel):
    items: List[PeriodReturnResponse]
    pagination: PaginationMeta
    summary: ReturnsSummaryResponse


class CalculateReturnsRequest(BaseModel):
    """Schema for ``POST /returns/calculate``."""

    investment_id: UUID
    period: ReturnPeriod = Field(..., examples=["MONTHLY"])


class CompareRequest(BaseModel):
    """Schema for ``POST /returns/compare``."""

    investment_ids: List[UUID] = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Investments to compare (duplicates are ignored)",
    )
    period: ReturnPeriod = Field(default=ReturnPeriod.TOTAL, examples=["YEARLY"])


class ComparisonResponse(BaseModel):
    period: ReturnPeriod
    investments: List[InvestmentPerformanceResponse]
    returns: List[PeriodReturnResponse]

    model_config = ConfigDict(from_attributes=True)
