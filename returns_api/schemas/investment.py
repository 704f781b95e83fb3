"""
Pydantic schemas for Investment API request / response serialisation.

Separating schemas from SQLModel table models keeps the API contract
decoupled from the persistence layer.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from returns_api.models.investment import (
    CompoundingFrequency,
    InvestmentCategory,
    InvestmentStatus,
    ReturnType,
)
from returns_api.schemas.common import PaginationMeta


class InvestmentBase(BaseModel):
    """Fields common to investment creation payloads and responses."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Human-readable name of the investment",
        examples=["Term deposit 2025"],
    )
    currency: str = Field(
        default="USD",
        description="ISO 4217 currency code",
        examples=["USD"],
    )
    category: InvestmentCategory = Field(default=InvestmentCategory.OTHER)
    start_date: date = Field(..., description="Date the investment started", examples=["2025-01-01"])
    return_type: ReturnType = Field(..., description="FIXED (interest accrual) or VARIABLE")
    interest_rate: Optional[Decimal] = Field(
        default=None,
        ge=0,
        le=1000,
        description="Annual interest rate in percent; required for FIXED investments",
        examples=[12.0],
    )

    @field_validator("name")
    @classmethod
    def validate_name_not_blank(cls, v: str) -> str:
        """Reject whitespace-only names."""
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()

    @field_validator("currency")
    @classmethod
    def validate_currency_code(cls, v: str) -> str:
        """Normalise to upper case and require three letters."""
        code = v.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError("currency must be a 3-letter ISO 4217 code")
        return code


class InvestmentCreate(InvestmentBase):
    """
    Schema for ``POST /investments``.

    ``current_balance`` is not accepted: a new investment's balance is its
    ``initial_amount``.
    """

    initial_amount: Decimal = Field(
        ...,
        ge=0,
        max_digits=20,
        decimal_places=2,
        description="Amount invested at start (non-negative)",
        examples=[10000.00],
    )
    status: InvestmentStatus = Field(
        default=InvestmentStatus.ACTIVE,
        description="Initial status; only ACTIVE or PENDING",
    )
    compounding_frequency: Optional[CompoundingFrequency] = Field(
        default=None,
        description="Accrual granularity for FIXED investments (defaults from settings)",
    )
    auto_calculate: bool = Field(default=False)

    @field_validator("start_date")
    @classmethod
    def validate_start_date_not_far_future(cls, v: date) -> date:
        """Allow forward-dated starts up to one year ahead."""
        max_date = date.today() + timedelta(days=365)
        if v > max_date:
            raise ValueError(f"start_date cannot be more than one year in the future (max: {max_date})")
        return v

    @model_validator(mode="after")
    def _check_fixed_has_rate(self) -> "InvestmentCreate":
        if self.return_type == ReturnType.FIXED and self.interest_rate is None:
            raise ValueError("interest_rate is required for FIXED investments")
        if self.status == InvestmentStatus.CLOSED:
            raise ValueError("an investment cannot be created CLOSED")
        return self


class InvestmentStatusUpdate(BaseModel):
    """Schema for ``PATCH /investments/{id}/status``."""

    status: InvestmentStatus


class InvestmentResponse(InvestmentBase):
    """Schema returned by investment endpoints."""

    id: UUID
    initial_amount: Decimal
    current_balance: Decimal
    status: InvestmentStatus
    auto_calculate: bool
    compounding_frequency: CompoundingFrequency
    last_interest_calculated: Optional[datetime] = None
    next_interest_due: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @field_serializer("initial_amount", "current_balance")
    def serialize_money(self, v: Decimal) -> float:
        """Serialize Decimal as a JSON number rather than Pydantic's default string."""
        return float(v)

    @field_serializer("interest_rate")
    def serialize_rate(self, v: Optional[Decimal]) -> Optional[float]:
        return None if v is None else float(v)

    model_config = ConfigDict(from_attributes=True)


class InvestmentBalanceSnapshot(BaseModel):
    """The part of an investment that accrual and return updates change."""

    id: UUID
    current_balance: Decimal
    last_interest_calculated: Optional[datetime] = None
    next_interest_due: Optional[datetime] = None

    @field_serializer("current_balance")
    def serialize_money(self, v: Decimal) -> float:
        return float(v)

    model_config = ConfigDict(from_attributes=True)


class InvestmentListResponse(BaseModel):
    items: List[InvestmentResponse]
    pagination: PaginationMeta
