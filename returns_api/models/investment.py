"""
Investment domain model.

An investment is a position whose balance evolves only through its ledger:
its ``current_balance`` always equals ``initial_amount`` plus the signed sum
of its transactions.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime
from sqlmodel import Field, SQLModel


class InvestmentCategory(str, Enum):
    """Asset class of an investment."""

    STOCKS = "STOCKS"
    BONDS = "BONDS"
    REAL_ESTATE = "REAL_ESTATE"
    CRYPTO = "CRYPTO"
    MUTUAL_FUNDS = "MUTUAL_FUNDS"
    OTHER = "OTHER"


class InvestmentStatus(str, Enum):
    """Lifecycle states.  CLOSED is terminal and freezes the balance."""

    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    PENDING = "PENDING"


class ReturnType(str, Enum):
    """FIXED accrues scheduled interest; VARIABLE receives posted market returns."""

    FIXED = "FIXED"
    VARIABLE = "VARIABLE"


class CompoundingFrequency(str, Enum):
    """Accrual granularity for FIXED investments."""

    DAILY = "DAILY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUALLY = "ANNUALLY"

    @property
    def period_days(self) -> int:
        """Length of one compounding period in days."""
        return _PERIOD_DAYS[self]


_PERIOD_DAYS = {
    CompoundingFrequency.DAILY: 1,
    CompoundingFrequency.MONTHLY: 30,
    CompoundingFrequency.QUARTERLY: 91,
    CompoundingFrequency.ANNUALLY: 365,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Investment(SQLModel, table=True):
    """
    SQLModel / SQLAlchemy table definition for investments.

    - Money columns use DECIMAL(20,2); ``interest_rate`` is a percentage
      with four decimal places.
    - ``initial_amount`` is never updated after insert.
    - ``last_interest_calculated`` / ``next_interest_due`` are only set for
      FIXED investments.
    """

    __tablename__ = "investments"  # type: ignore[assignment]

    __table_args__ = (
        CheckConstraint("initial_amount >= 0", name="ck_investments_initial_non_negative"),
        CheckConstraint("current_balance >= 0", name="ck_investments_balance_non_negative"),
        CheckConstraint("length(currency) = 3", name="ck_investments_currency_iso"),
        CheckConstraint("length(name) > 0", name="ck_investments_name_not_empty"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True, max_length=255)
    currency: str = Field(default="USD", max_length=3)
    category: InvestmentCategory = Field(default=InvestmentCategory.OTHER)
    initial_amount: Decimal = Field(max_digits=20, decimal_places=2)
    current_balance: Decimal = Field(max_digits=20, decimal_places=2)
    start_date: date = Field(index=True)
    return_type: ReturnType
    interest_rate: Optional[Decimal] = Field(default=None, max_digits=9, decimal_places=4)
    status: InvestmentStatus = Field(default=InvestmentStatus.ACTIVE, index=True)

    # ── Accrual schedule (FIXED only) ──
    auto_calculate: bool = Field(default=False)
    compounding_frequency: CompoundingFrequency = Field(default=CompoundingFrequency.DAILY)
    last_interest_calculated: Optional[datetime] = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )
    next_interest_due: Optional[datetime] = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
        index=True,  # the accrual sweep scans by due date
    )

    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )

    def __repr__(self) -> str:
        return (
            f"<Investment id={self.id} name='{self.name}' type={self.return_type.value} "
            f"balance={self.current_balance} {self.currency}>"
        )
