"""
Interest calculation ledger.

One row per committed accrual.  Rows are never deleted; a revert flips
``is_reverted`` and points at the compensating transaction.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from returns_api.models.investment import CompoundingFrequency


class CalculationType(str, Enum):
    """Who triggered the accrual."""

    AUTOMATIC = "AUTOMATIC"
    MANUAL = "MANUAL"


class InterestCalculation(SQLModel, table=True):
    """
    SQLModel table definition for interest calculations.

    The accrual period is the half-open date interval
    ``[period_start, period_end)``; ``days == period_end - period_start``.
    """

    __tablename__ = "interest_calculations"  # type: ignore[assignment]

    __table_args__ = (
        UniqueConstraint(
            "investment_id", "sequence", name="uq_interest_calculations_investment_sequence"
        ),
        CheckConstraint("period_end > period_start", name="ck_interest_calculations_period"),
        CheckConstraint("days > 0", name="ck_interest_calculations_days_positive"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    investment_id: uuid.UUID = Field(
        foreign_key="investments.id",
        index=True,
        ondelete="RESTRICT",
    )
    sequence: int
    calculation_type: CalculationType = Field(default=CalculationType.MANUAL)
    calculated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )
    period_start: date
    period_end: date
    days: int
    compounding_frequency: CompoundingFrequency
    principal_amount: Decimal = Field(max_digits=20, decimal_places=2)
    interest_rate: Decimal = Field(max_digits=9, decimal_places=4)
    interest_earned: Decimal = Field(max_digits=20, decimal_places=2)
    new_balance: Decimal = Field(max_digits=20, decimal_places=2)
    transaction_id: uuid.UUID = Field(foreign_key="transactions.id")

    is_reverted: bool = Field(default=False)
    reverted_at: Optional[datetime] = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )
    reversal_transaction_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="transactions.id"
    )

    def __repr__(self) -> str:
        state = "reverted" if self.is_reverted else "active"
        return (
            f"<InterestCalculation #{self.sequence} investment={self.investment_id} "
            f"{self.period_start}..{self.period_end} +{self.interest_earned} ({state})>"
        )
