"""
Pydantic schemas for ledger transactions.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from returns_api.models.transaction import TransactionType
from returns_api.schemas.common import PaginationMeta


class TransactionCreate(BaseModel):
    """
    Schema for ``POST /investments/{id}/transactions``.

    RETURN entries are produced only by the accrual engine and the
    variable-return updater, so they are rejected here.
    """

    type: TransactionType
    amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=20,
        decimal_places=2,
        description="Positive amount; the type decides whether it adds or subtracts",
        examples=[2500.00],
    )
    transaction_date: Optional[date] = Field(
        default=None,
        description="Booking date (defaults to today; may not be in the future)",
    )
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("type")
    @classmethod
    def validate_not_return(cls, v: TransactionType) -> TransactionType:
        if v == TransactionType.RETURN:
            raise ValueError("RETURN transactions are posted through the interest endpoints")
        return v


class TransactionResponse(BaseModel):
    """Ledger entry as returned by the API."""

    id: UUID
    investment_id: UUID
    sequence: int
    type: TransactionType
    amount: Decimal
    balance: Decimal
    description: Optional[str] = None
    transaction_date: date
    reverses_transaction_id: Optional[UUID] = None
    created_at: datetime

    @field_serializer("amount", "balance")
    def serialize_money(self, v: Decimal) -> float:
        return float(v)

    model_config = ConfigDict(from_attributes=True)


class TransactionListResponse(BaseModel):
    items: List[TransactionResponse]
    pagination: PaginationMeta
