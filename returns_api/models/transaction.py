"""
Ledger transaction model.

Transactions form an append-only, strictly ordered ledger per investment
(``sequence`` 1, 2, 3, ...).  Each row stores the balance immediately after
it was applied, so the ledger doubles as the balance history used by the
performance calculator.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, UniqueConstraint
from sqlmodel import Field, SQLModel


class TransactionType(str, Enum):
    """Kinds of ledger entries."""

    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRANSFER = "TRANSFER"
    RETURN = "RETURN"
    DIVIDEND = "DIVIDEND"

    @property
    def is_external_flow(self) -> bool:
        """Money moved in or out by the owner, as opposed to performance."""
        return self in (
            TransactionType.DEPOSIT,
            TransactionType.WITHDRAWAL,
            TransactionType.TRANSFER,
        )


# Outbound types reduce the balance by ``amount``.
_OUTBOUND = (TransactionType.WITHDRAWAL, TransactionType.TRANSFER)


def signed_effect(tx_type: TransactionType, amount: Decimal) -> Decimal:
    """
    Balance effect of a transaction of ``tx_type`` carrying ``amount``.

    WITHDRAWAL and TRANSFER subtract.  DEPOSIT and DIVIDEND add.  RETURN adds
    its amount with the stored sign, so losses and revert compensations are
    negative RETURN amounts.
    """
    if tx_type in _OUTBOUND:
        return -amount
    return amount


class Transaction(SQLModel, table=True):
    """SQLModel table definition for ledger transactions."""

    __tablename__ = "transactions"  # type: ignore[assignment]

    __table_args__ = (
        UniqueConstraint("investment_id", "sequence", name="uq_transactions_investment_sequence"),
        UniqueConstraint(
            "investment_id", "idempotency_key", name="uq_transactions_investment_idempotency"
        ),
        Index("ix_transactions_investment_date", "investment_id", "transaction_date"),
        CheckConstraint("type = 'RETURN' OR amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint("balance >= 0", name="ck_transactions_balance_non_negative"),
        CheckConstraint("sequence > 0", name="ck_transactions_sequence_positive"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    investment_id: uuid.UUID = Field(
        foreign_key="investments.id",
        index=True,
        ondelete="RESTRICT",
    )
    sequence: int
    type: TransactionType
    amount: Decimal = Field(max_digits=20, decimal_places=2)
    balance: Decimal = Field(max_digits=20, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    transaction_date: date
    reverses_transaction_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="transactions.id"
    )
    idempotency_key: Optional[str] = Field(default=None, max_length=255)
    # SHA-256 of the request an idempotency key was first used with.
    request_fingerprint: Optional[str] = Field(default=None, max_length=64)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )

    @property
    def signed_amount(self) -> Decimal:
        return signed_effect(self.type, self.amount)

    def __repr__(self) -> str:
        return (
            f"<Transaction #{self.sequence} investment={self.investment_id} "
            f"{self.type.value} {self.amount} -> {self.balance}>"
        )
