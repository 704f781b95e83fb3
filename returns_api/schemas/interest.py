"""
Pydantic schemas for the interest accrual and variable-return endpoints.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from returns_api.models.calculation import CalculationType
from returns_api.models.investment import CompoundingFrequency
from returns_api.schemas.common import PaginationMeta
from returns_api.schemas.investment import InvestmentBalanceSnapshot
from returns_api.schemas.transaction import TransactionResponse

# ────────────────────────────────────────────────────────────────────────────
# Fixed-rate accrual
# ────────────────────────────────────────────────────────────────────────────


class InterestPreviewResponse(BaseModel):
    """What ``calculate`` would commit if called now.  Side-effect free."""

    preview: bool = True
    investment_id: UUID
    days: int
    interest: Decimal
    principal: Decimal
    new_balance: Decimal
    interest_rate: Decimal
    compounding_frequency: CompoundingFrequency
    period_start: date = Field(..., description="First accrued day (inclusive)")
    period_end: date = Field(..., description="End of the accrued period (exclusive)")

    @field_serializer("interest", "principal", "new_balance", "interest_rate")
    def serialize_decimal(self, v: Decimal) -> float:
        return float(v)

    model_config = ConfigDict(from_attributes=True)


class CalculateInterestRequest(BaseModel):
    """
    Optional body for ``POST /interest/calculate/{id}``.

    Sending the ``principal`` from a preview makes the commit fail with
    ``ConcurrentModification`` if the balance moved in the meantime.
    """

    expected_principal: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Principal the caller previewed",
        examples=[10000.00],
    )


class InterestCalculationResponse(BaseModel):
    id: UUID
    investment_id: UUID
    sequence: int
    calculation_type: CalculationType
    calculated_at: datetime
    period_start: date
    period_end: date
    days: int
    compounding_frequency: CompoundingFrequency
    principal_amount: Decimal
    interest_rate: Decimal
    interest_earned: Decimal
    new_balance: Decimal
    transaction_id: UUID
    is_reverted: bool
    reverted_at: Optional[datetime] = None
    reversal_transaction_id: Optional[UUID] = None

    @field_serializer("principal_amount", "interest_rate", "interest_earned", "new_balance")
    def serialize_decimal(self, v: Decimal) -> float:
        return float(v)

    model_config = ConfigDict(from_attributes=True)


class CalculateInterestResponse(BaseModel):
    calculation: InterestCalculationResponse
    transaction: TransactionResponse
    investment: InvestmentBalanceSnapshot

    model_config = ConfigDict(from_attributes=True)


class RevertCalculationRequest(BaseModel):
    confirm_revert: bool = Field(..., description="Must be true to revert")


class RevertCalculationResponse(BaseModel):
    calculation: InterestCalculationResponse
    transaction: TransactionResponse = Field(..., description="The compensating entry")
    investment: InvestmentBalanceSnapshot

    model_config = ConfigDict(from_attributes=True)


class ScheduleUpdate(BaseModel):
    """Body for ``PATCH /interest/schedule/{id}``."""

    auto_calculate: bool
    compounding_frequency: Optional[CompoundingFrequency] = None


class ScheduleResponse(BaseModel):
    id: UUID
    auto_calculate: bool
    compounding_frequency: CompoundingFrequency
    last_interest_calculated: Optional[datetime] = None
    next_interest_due: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CalculationHistoryResponse(BaseModel):
    items: List[InterestCalculationResponse]
    pagination: PaginationMeta


# ────────────────────────────────────────────────────────────────────────────
# Variable returns
# ────────────────────────────────────────────────────────────────────────────


class UpdateByPercentageRequest(BaseModel):
    percentage: Decimal = Field(
        ...,
        max_digits=12,
        decimal_places=6,
        description="Return in percent; negative for a loss",
        examples=[2.5],
    )
    effective_date: Optional[date] = Field(default=None, description="Defaults to today")
    description: Optional[str] = Field(default=None, max_length=500)


class UpdateByBalanceRequest(BaseModel):
    new_balance: Decimal = Field(
        ...,
        max_digits=20,
        decimal_places=2,
        description="Balance after the return",
        examples=[5500.00],
    )
    effective_date: Optional[date] = Field(default=None, description="Defaults to today")
    description: Optional[str] = Field(default=None, max_length=500)


class VariablePercentageResponse(BaseModel):
    transaction: TransactionResponse
    investment: InvestmentBalanceSnapshot
    calculated_amount: Decimal

    @field_serializer("calculated_amount")
    def serialize_decimal(self, v: Decimal) -> float:
        return float(v)

    model_config = ConfigDict(from_attributes=True)


class VariableBalanceResponse(BaseModel):
    transaction: TransactionResponse
    investment: InvestmentBalanceSnapshot
    calculated_percentage: Optional[Decimal] = Field(
        ..., description="Null when the previous balance was zero"
    )
    return_amount: Decimal

    @field_serializer("calculated_percentage", "return_amount")
    def serialize_decimal(self, v: Optional[Decimal]) -> Optional[float]:
        return None if v is None else float(v)

    model_config = ConfigDict(from_attributes=True)
