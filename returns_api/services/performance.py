"""
Return and performance metrics derived from an investment's ledger.

Pure functions over the stored balance history: the investment's initial
amount and start date plus its transactions in ledger order (each carrying
the balance snapshot after it was applied).  Nothing here performs I/O or
reads the clock; ``today`` is always passed in, so repeated calls on
unchanged data return identical results.

Conventions:

- Period returns compare the current value with the balance as of the start
  of a trailing window (1, 7, 30, 91 and 365 days).  A window that reaches
  back before the investment started reports 0.
- Daily returns are time-weighted (daily linking): deposits, withdrawals
  and transfers on a day are external flows and are removed before comparing
  with the previous close; returns and dividends count as performance.
- Volatility uses the calendar-filled daily series from ``start_date`` to
  ``today`` (sample standard deviation, annualised with √365).
- Exponentiation and square roots are done in float; the ledger itself stays
  in Decimal.  Outputs are rounded to 4 decimal places (money to 2).
"""

import math
import statistics
import sys
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple
from uuid import UUID

from returns_api.models.investment import InvestmentCategory, ReturnType
from returns_api.models.transaction import TransactionType, signed_effect

ZERO = Decimal(0)
CALENDAR_DAYS_PER_YEAR = 365

PERIOD_WINDOWS: Dict[str, int] = {
    "daily": 1,
    "weekly": 7,
    "monthly": 30,
    "quarterly": 91,
    "yearly": 365,
}

PROJECTION_YEARS = (1, 3, 5, 10)
TOP_PERFORMERS = 5


class LedgerRow(Protocol):
    transaction_date: date
    type: TransactionType
    amount: Decimal
    balance: Decimal


# ────────────────────────────────────────────────────────────────────────────
# Result types
# ────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DayReturn:
    date: date
    return_rate: float


@dataclass(frozen=True)
class PerformanceMetrics:
    total_return: float
    total_return_rate: float
    annualized_return: float
    volatility: float
    sharpe_ratio: float
    max_drawdown: float
    best_day: Optional[DayReturn]
    worst_day: Optional[DayReturn]


@dataclass(frozen=True)
class InvestmentPerformance:
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
    metrics: PerformanceMetrics
    as_of: date


@dataclass(frozen=True)
class PerformerSummary:
    investment_id: UUID
    name: str
    return_rate: float


@dataclass(frozen=True)
class PeriodAverages:
    daily: float
    weekly: float
    monthly: float
    quarterly: float
    yearly: float


@dataclass(frozen=True)
class PortfolioAnalytics:
    total_investments: int
    total_value: float
    total_returns: float
    average_return_rate: float
    best_performer: Optional[PerformerSummary]
    worst_performer: Optional[PerformerSummary]
    performance_by_period: PeriodAverages
    top_performers: List[InvestmentPerformance] = field(default_factory=list)


@dataclass(frozen=True)
class ProjectionPoint:
    years: int
    conservative_value: float
    moderate_value: float
    aggressive_value: float


@dataclass(frozen=True)
class ReturnProjection:
    investment_id: UUID
    current_value: float
    conservative_rate: float
    moderate_rate: float
    aggressive_rate: float
    projected_returns: List[ProjectionPoint]


class ReturnPeriod(str, Enum):
    """Periods a return record can cover; TOTAL runs from inception."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"
    TOTAL = "TOTAL"

    @property
    def window_days(self) -> Optional[int]:
        return PERIOD_WINDOWS.get(self.value.lower())


@dataclass(frozen=True)
class PeriodReturn:
    investment_id: UUID
    investment_name: str
    period: ReturnPeriod
    start_date: date
    end_date: date
    start_value: float
    end_value: float
    return_amount: float
    return_rate: float


@dataclass(frozen=True)
class ReturnsSummary:
    total_returns: int
    average_return: float
    best_return: float
    worst_return: float
    total_return_amount: float


@dataclass(frozen=True)
class PerformanceComparison:
    period: ReturnPeriod
    investments: List[InvestmentPerformance]
    returns: List[PeriodReturn]


# ────────────────────────────────────────────────────────────────────────────
# Building blocks
# ────────────────────────────────────────────────────────────────────────────


def _round(value: float, places: int = 4) -> float:
    return round(value, places) + 0.0  # normalises -0.0


def _pct_change(base: Decimal, value: Decimal) -> float:
    if base <= ZERO:
        return 0.0
    return float((value - base) / base * 100)


def end_of_day_ledger(transactions: Iterable[LedgerRow]) -> Dict[date, Tuple[Decimal, Decimal]]:
    """
    Collapse the ledger to ``{date: (closing balance, net external flow)}``.

    The ledger is chronological, so the last transaction of a date carries
    that day's closing balance.
    """
    days: Dict[date, Tuple[Decimal, Decimal]] = {}
    for tx in transactions:
        _, flow = days.get(tx.transaction_date, (ZERO, ZERO))
        if tx.type.is_external_flow:
            flow += signed_effect(tx.type, tx.amount)
        days[tx.transaction_date] = (tx.balance, flow)
    return days


def balance_series(
    initial_amount: Decimal,
    start_date: date,
    transactions: Sequence[LedgerRow],
) -> List[Tuple[date, Decimal]]:
    """Opening point plus one closing balance per ledger date, in date order."""
    series = [(start_date, initial_amount)]
    for day, (closing, _) in end_of_day_ledger(transactions).items():
        if day == start_date:
            series[0] = (day, closing)
        else:
            series.append((day, closing))
    return series


def balance_as_of(series: Sequence[Tuple[date, Decimal]], day: date) -> Optional[Decimal]:
    """Closing balance on ``day`` (last point on or before it), ``None`` before inception."""
    result: Optional[Decimal] = None
    for point_date, balance in series:
        if point_date > day:
            break
        result = balance
    return result


def daily_returns(
    initial_amount: Decimal,
    start_date: date,
    transactions: Sequence[LedgerRow],
    today: date,
) -> List[Tuple[date, float]]:
    """
    Time-weighted daily returns (as fractions) for every calendar day from
    ``start_date`` to ``today``.

    ``r = (close - external_flows) / previous_close - 1``; days whose
    previous close is zero have no defined return and are skipped.
    """
    ledger = end_of_day_ledger(transactions)
    previous = initial_amount
    out: List[Tuple[date, float]] = []
    day = start_date
    while day <= today:
        closing, flow = ledger.get(day, (previous, ZERO))
        if previous > ZERO:
            out.append((day, float((closing - flow) / previous) - 1.0))
        previous = closing
        day += timedelta(days=1)
    return out


def period_return(
    series: Sequence[Tuple[date, Decimal]],
    start_date: date,
    current_value: Decimal,
    today: date,
    window_days: int,
) -> float:
    """Percentage change over the trailing ``window_days``; 0 without enough history."""
    window_start = today - timedelta(days=window_days)
    if start_date > window_start:
        return 0.0
    base = balance_as_of(series, window_start)
    if base is None:
        return 0.0
    return _pct_change(base, current_value)


def annualized_return(total_return_rate: float, elapsed_days: int) -> float:
    """``((1 + rate/100) ** (365 / days) - 1) * 100`` with ``days`` floored at 1."""
    days = max(1, elapsed_days)
    growth = 1.0 + total_return_rate / 100.0
    if growth <= 0.0:
        return -100.0
    try:
        return (growth ** (CALENDAR_DAYS_PER_YEAR / days) - 1.0) * 100.0
    except OverflowError:
        return sys.float_info.max


def annualized_volatility(returns: Sequence[float]) -> float:
    """Sample standard deviation of daily returns × √365, in percent."""
    if len(returns) < 2:
        return 0.0
    return statistics.stdev(returns) * math.sqrt(CALENDAR_DAYS_PER_YEAR) * 100.0


def sharpe_ratio(annualized: float, volatility: float, risk_free_rate: float) -> float:
    if volatility <= 0.0 or annualized >= sys.float_info.max:
        return 0.0
    return (annualized - risk_free_rate) / volatility


def max_drawdown(series: Sequence[Tuple[date, Decimal]]) -> float:
    """Largest peak-to-trough decline of the balance series, as a positive percentage."""
    peak = ZERO
    worst = 0.0
    for _, balance in series:
        if balance > peak:
            peak = balance
        elif peak > ZERO:
            worst = max(worst, float((peak - balance) / peak * 100))
    return worst


def best_and_worst_day(
    returns: Sequence[Tuple[date, float]],
    transaction_dates: Iterable[date],
) -> Tuple[Optional[DayReturn], Optional[DayReturn]]:
    """Extremes of the daily return among dates that carry at least one transaction."""
    dates = set(transaction_dates)
    candidates = [(day, r) for day, r in returns if day in dates]
    if not candidates:
        return None, None
    best = max(candidates, key=lambda item: item[1])
    worst = min(candidates, key=lambda item: item[1])
    return (
        DayReturn(date=best[0], return_rate=_round(best[1] * 100)),
        DayReturn(date=worst[0], return_rate=_round(worst[1] * 100)),
    )


# ────────────────────────────────────────────────────────────────────────────
# Aggregates
# ────────────────────────────────────────────────────────────────────────────


def compute_performance(
    investment,
    transactions: Sequence[LedgerRow],
    today: date,
    risk_free_rate: float = 0.0,
) -> InvestmentPerformance:
    """
    Derive the full performance record for one investment.

    ``investment`` needs ``id``, ``name``, ``category``, ``return_type``,
    ``currency``, ``initial_amount``, ``current_balance`` and ``start_date``.
    """
    initial = investment.initial_amount
    current = investment.current_balance
    total_return = current - initial
    total_return_rate = _pct_change(initial, current)

    series = balance_series(initial, investment.start_date, transactions)
    periods = {
        name: _round(period_return(series, investment.start_date, current, today, days))
        for name, days in PERIOD_WINDOWS.items()
    }

    returns = daily_returns(initial, investment.start_date, transactions, today)
    annualized = annualized_return(total_return_rate, (today - investment.start_date).days)
    volatility = annualized_volatility([r for _, r in returns])
    best, worst = best_and_worst_day(returns, (tx.transaction_date for tx in transactions))

    metrics = PerformanceMetrics(
        total_return=_round(float(total_return), 2),
        total_return_rate=_round(total_return_rate),
        annualized_return=_round(annualized),
        volatility=_round(volatility),
        sharpe_ratio=_round(sharpe_ratio(annualized, volatility, risk_free_rate)),
        max_drawdown=_round(max_drawdown(series)),
        best_day=best,
        worst_day=worst,
    )
    return InvestmentPerformance(
        investment_id=investment.id,
        investment_name=investment.name,
        category=investment.category,
        return_type=investment.return_type,
        currency=investment.currency,
        initial_amount=float(initial),
        current_value=float(current),
        total_return=metrics.total_return,
        total_return_rate=metrics.total_return_rate,
        daily_return=periods["daily"],
        weekly_return=periods["weekly"],
        monthly_return=periods["monthly"],
        quarterly_return=periods["quarterly"],
        yearly_return=periods["yearly"],
        metrics=metrics,
        as_of=today,
    )


def summarise_portfolio(performances: Sequence[InvestmentPerformance]) -> PortfolioAnalytics:
    """Portfolio overview across several investments (amounts are summed as-is)."""
    count = len(performances)
    if count == 0:
        return PortfolioAnalytics(
            total_investments=0,
            total_value=0.0,
            total_returns=0.0,
            average_return_rate=0.0,
            best_performer=None,
            worst_performer=None,
            performance_by_period=PeriodAverages(0.0, 0.0, 0.0, 0.0, 0.0),
            top_performers=[],
        )

    def _avg(values: Iterable[float]) -> float:
        return _round(statistics.fmean(values))

    ranked = sorted(performances, key=lambda p: p.total_return_rate, reverse=True)
    best, worst = ranked[0], ranked[-1]
    return PortfolioAnalytics(
        total_investments=count,
        total_value=_round(sum(p.current_value for p in performances), 2),
        total_returns=_round(sum(p.total_return for p in performances), 2),
        average_return_rate=_avg(p.total_return_rate for p in performances),
        best_performer=PerformerSummary(best.investment_id, best.investment_name, best.total_return_rate),
        worst_performer=PerformerSummary(
            worst.investment_id, worst.investment_name, worst.total_return_rate
        ),
        performance_by_period=PeriodAverages(
            daily=_avg(p.daily_return for p in performances),
            weekly=_avg(p.weekly_return for p in performances),
            monthly=_avg(p.monthly_return for p in performances),
            quarterly=_avg(p.quarterly_return for p in performances),
            yearly=_avg(p.yearly_return for p in performances),
        ),
        top_performers=ranked[:TOP_PERFORMERS],
    )


def project_returns(
    performance: InvestmentPerformance,
    moderate_rate: float,
) -> ReturnProjection:
    """
    Compound the current value forward at three annual rates.

    The conservative and aggressive rates sit half a volatility below and
    above ``moderate_rate``; no rate goes below -100 %.
    """
    spread = performance.metrics.volatility / 2.0
    rates = (
        max(moderate_rate - spread, -100.0),
        max(moderate_rate, -100.0),
        moderate_rate + spread,
    )
    value = performance.current_value

    def _compound(rate: float, years: int) -> float:
        try:
            return _round(value * (1.0 + rate / 100.0) ** years, 2)
        except OverflowError:
            return sys.float_info.max

    points = [
        ProjectionPoint(
            years=years,
            conservative_value=_compound(rates[0], years),
            moderate_value=_compound(rates[1], years),
            aggressive_value=_compound(rates[2], years),
        )
        for years in PROJECTION_YEARS
    ]
    return ReturnProjection(
        investment_id=performance.investment_id,
        current_value=value,
        conservative_rate=_round(rates[0]),
        moderate_rate=_round(rates[1]),
        aggressive_rate=_round(rates[2]),
        projected_returns=points,
    )


def compute_period_return(
    investment,
    transactions: Sequence[LedgerRow],
    period: ReturnPeriod,
    today: date,
) -> PeriodReturn:
    """
    Return over ``period`` ending ``today``.

    TOTAL compares the current value with ``initial_amount``.  A trailing
    window that reaches back before ``start_date`` reports a zero return,
    matching the period fields of :func:`compute_performance`.
    """
    current = investment.current_balance
    if period is ReturnPeriod.TOTAL:
        start, base = investment.start_date, investment.initial_amount
    else:
        start = today - timedelta(days=period.window_days)
        base = None
        if investment.start_date <= start:
            series = balance_series(investment.initial_amount, investment.start_date, transactions)
            base = balance_as_of(series, start)
        if base is None:
            base = current
    return PeriodReturn(
        investment_id=investment.id,
        investment_name=investment.name,
        period=period,
        start_date=start,
        end_date=today,
        start_value=float(base),
        end_value=float(current),
        return_amount=_round(float(current - base), 2),
        return_rate=_round(_pct_change(base, current)),
    )


def summarise_returns(records: Sequence[PeriodReturn]) -> ReturnsSummary:
    if not records:
        return ReturnsSummary(0, 0.0, 0.0, 0.0, 0.0)
    rates = [r.return_rate for r in records]
    return ReturnsSummary(
        total_returns=len(records),
        average_return=_round(statistics.fmean(rates)),
        best_return=max(rates),
        worst_return=min(rates),
        total_return_amount=_round(sum(r.return_amount for r in records), 2),
    )
