"""
Automatic accrual sweep.

Usage (e.g. from cron, once a day or more often):
    python -m returns_api.scheduler

Finds ACTIVE FIXED investments with ``auto_calculate`` on whose
``next_interest_due`` has passed and runs the same ``calculate`` a manual
caller would, tagged AUTOMATIC.  Each investment gets its own session, and
an error on one investment is logged and counted as failed while the sweep
moves on to the next.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from returns_api.core.config import settings
from returns_api.core.exceptions import AppException, NoInterestDue
from returns_api.core.logging import setup_logging
from returns_api.core.resilience import retry_with_backoff
from returns_api.models.calculation import CalculationType, InterestCalculation
from returns_api.models.investment import Investment
from returns_api.models.transaction import Transaction
from returns_api.repositories.calculation_repo import CalculationRepository
from returns_api.repositories.investment_repo import InvestmentRepository
from returns_api.repositories.transaction_repo import TransactionRepository
from returns_api.services.interest_service import InterestService
from returns_api.services.ledger import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    accrued: List[UUID] = field(default_factory=list)
    skipped: List[UUID] = field(default_factory=list)
    failed: List[UUID] = field(default_factory=list)


@retry_with_backoff(max_retries=3, base_delay=1.0)
async def _load_due(session_factory: async_sessionmaker, now: datetime, limit: int) -> List[UUID]:
    async with session_factory() as session:
        return await InvestmentRepository(Investment, session).list_due_for_accrual(now, limit)


def _interest_service(session: AsyncSession, clock: Callable[[], datetime]) -> InterestService:
    return InterestService(
        investment_repo=InvestmentRepository(Investment, session),
        transaction_repo=TransactionRepository(Transaction, session),
        calculation_repo=CalculationRepository(InterestCalculation, session),
        clock=clock,
    )


async def run_sweep(
    session_factory: async_sessionmaker,
    clock: Callable[[], datetime] = utcnow,
    batch_size: int = settings.SCHEDULER_BATCH_SIZE,
) -> SweepReport:
    """Accrue interest on every investment that is due at ``clock()``."""
    report = SweepReport()
    due = await _load_due(session_factory, clock(), batch_size)
    logger.info("Accrual sweep: %d investment(s) due", len(due))

    for investment_id in due:
        async with session_factory() as session:
            service = _interest_service(session, clock)
            try:
                await service.calculate(investment_id, calculation_type=CalculationType.AUTOMATIC)
            except NoInterestDue:
                report.skipped.append(investment_id)
            except AppException as exc:
                logger.warning(
                    "Automatic accrual failed for investment %s: %s",
                    investment_id,
                    exc.message,
                    extra={"investment_id": str(investment_id)},
                )
                report.failed.append(investment_id)
            except Exception:
                logger.exception(
                    "Automatic accrual crashed for investment %s",
                    investment_id,
                    extra={"investment_id": str(investment_id)},
                )
                report.failed.append(investment_id)
            else:
                report.accrued.append(investment_id)

    logger.info(
        "Accrual sweep finished: %d accrued, %d skipped, %d failed",
        len(report.accrued),
        len(report.skipped),
        len(report.failed),
    )
    return report


async def main() -> None:
    import returns_api.db.base  # noqa: F401
    from returns_api.db.session import AsyncSessionLocal, engine

    try:
        await run_sweep(AsyncSessionLocal)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
