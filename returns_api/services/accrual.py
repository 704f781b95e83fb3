"""
Fixed-rate interest accrual arithmetic (no I/O).

Day-count convention, used by preview, calculate and the automatic sweep
alike: simple proration of the annual percentage rate on an Actual/365
basis::

    interest = principal × rate / 100 × days / 365

The compounding frequency sets the accrual granularity: only whole periods
(DAILY 1 day, MONTHLY 30, QUARTERLY 91, ANNUALLY 365) accrue, and the
remainder rolls into the next calculation.

The principal is the closing balance on the first day of the period.  When
the ledger moves inside the period (a deposit, a withdrawal), each day
accrues on that day's closing balance, so money earns interest only from
the day it arrives.  Credited interest is part of the balance the next
period starts from, so interest compounds from one calculation to the next.

Money is rounded half-up to cents, once per calculation.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence, Tuple
from uuid import UUID

from returns_api.models.investment import CompoundingFrequency

CENT = Decimal("0.01")
HUNDRED = Decimal(100)
DAY_COUNT_BASIS = 365


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount half-up to two decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def accruable_days(elapsed_days: int, frequency: CompoundingFrequency) -> int:
    """Whole compounding periods contained in ``elapsed_days``, expressed in days."""
    if elapsed_days <= 0:
        return 0
    period = frequency.period_days
    return (elapsed_days // period) * period


def compute_interest(principal: Decimal, annual_rate: Decimal, days: int) -> Decimal:
    """Interest earned on ``principal`` at ``annual_rate`` percent over ``days``."""
    if days <= 0:
        return Decimal("0.00")
    raw = principal * annual_rate / HUNDRED * Decimal(days) / Decimal(DAY_COUNT_BASIS)
    return quantize_money(raw)


def accrue_over_balances(
    principal: Decimal,
    balance_changes: Sequence[Tuple[date, Decimal]],
    annual_rate: Decimal,
    period_start: date,
    period_end: date,
) -> Decimal:
    """
    Interest over ``[period_start, period_end)`` on a stepped balance.

    ``principal`` is the balance on ``period_start``; ``balance_changes``
    holds ``(date, closing balance)`` points in date order.  Points on or
    before ``period_start`` and on or after ``period_end`` are ignored.
    """
    if period_end <= period_start:
        return Decimal("0.00")
    balance_days = Decimal(0)
    balance, since = principal, period_start
    for day, closing in balance_changes:
        if day <= period_start:
            continue
        if day >= period_end:
            break
        balance_days += balance * (day - since).days
        balance, since = closing, day
    balance_days += balance * (period_end - since).days
    return quantize_money(balance_days * annual_rate / HUNDRED / Decimal(DAY_COUNT_BASIS))


def next_due_at(period_end: date, frequency: CompoundingFrequency) -> datetime:
    """Midnight UTC on the day the next full compounding period completes."""
    due = period_end + timedelta(days=frequency.period_days)
    return datetime.combine(due, time.min, tzinfo=timezone.utc)


@dataclass(frozen=True)
class AccrualQuote:
    """Snapshot of what a calculation would commit right now."""

    investment_id: UUID
    period_start: date
    period_end: date
    days: int
    principal: Decimal
    interest_rate: Decimal
    compounding_frequency: CompoundingFrequency
    interest: Decimal
    new_balance: Decimal

    @property
    def preview(self) -> bool:
        return True


def quote_accrual(
    *,
    investment_id: UUID,
    principal: Decimal,
    annual_rate: Decimal,
    frequency: CompoundingFrequency,
    period_start: date,
    today: date,
    balance_changes: Sequence[Tuple[date, Decimal]] = (),
    current_balance: Optional[Decimal] = None,
) -> AccrualQuote:
    """
    Price the accrual for ``[period_start, period_start + days)``.

    ``days`` is the number of whole compounding periods between
    ``period_start`` and ``today``; it is 0 when nothing is due yet.
    The interest is credited on top of ``current_balance`` (``principal``
    when the ledger has not moved since ``period_start``).
    """
    days = accruable_days((today - period_start).days, frequency)
    period_end = period_start + timedelta(days=days)
    interest = accrue_over_balances(principal, balance_changes, annual_rate, period_start, period_end)
    balance = principal if current_balance is None else current_balance
    return AccrualQuote(
        investment_id=investment_id,
        period_start=period_start,
        period_end=period_end,
        days=days,
        principal=principal,
        interest_rate=annual_rate,
        compounding_frequency=frequency,
        interest=interest,
        new_balance=balance + interest,
    )
