"""
Seed script: populates the database with demo investments and ledgers.

Usage:
    python -m returns_api.seed

Everything is posted through the services, so the demo ledgers obey the
same rules as API traffic.  Dates are relative to today so the FIXED
investments always have interest due.  The script is idempotent: it does
nothing if investments already exist.
"""

import asyncio
import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlmodel import SQLModel

import returns_api.db.base  # noqa: F401
from returns_api.db.session import AsyncSessionLocal, engine
from returns_api.models.calculation import InterestCalculation
from returns_api.models.investment import (
    CompoundingFrequency,
    Investment,
    InvestmentCategory,
    ReturnType,
)
from returns_api.models.transaction import Transaction, TransactionType
from returns_api.repositories.calculation_repo import CalculationRepository
from returns_api.repositories.investment_repo import InvestmentRepository
from returns_api.repositories.transaction_repo import TransactionRepository
from returns_api.schemas.investment import InvestmentCreate
from returns_api.schemas.transaction import TransactionCreate
from returns_api.services.interest_service import InterestService
from returns_api.services.investment_service import InvestmentService
from returns_api.services.variable_return_service import VariableReturnService

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger(__name__)


def _days_ago(days: int) -> date:
    return date.today() - timedelta(days=days)


FIXED_INVESTMENTS = [
    InvestmentCreate(
        name="Treasury Note Ladder",
        category=InvestmentCategory.BONDS,
        initial_amount=Decimal("10000.00"),
        start_date=_days_ago(120),
        return_type=ReturnType.FIXED,
        interest_rate=Decimal("12.0"),
        compounding_frequency=CompoundingFrequency.DAILY,
        auto_calculate=True,
    ),
    InvestmentCreate(
        name="Corporate Bond 2030",
        category=InvestmentCategory.BONDS,
        initial_amount=Decimal("25000.00"),
        start_date=_days_ago(200),
        return_type=ReturnType.FIXED,
        interest_rate=Decimal("5.25"),
        compounding_frequency=CompoundingFrequency.MONTHLY,
    ),
]

VARIABLE_INVESTMENTS = [
    InvestmentCreate(
        name="Global Equity Index",
        category=InvestmentCategory.STOCKS,
        initial_amount=Decimal("5000.00"),
        start_date=_days_ago(90),
        return_type=ReturnType.VARIABLE,
    ),
    InvestmentCreate(
        name="Residential REIT",
        category=InvestmentCategory.REAL_ESTATE,
        currency="EUR",
        initial_amount=Decimal("15000.00"),
        start_date=_days_ago(60),
        return_type=ReturnType.VARIABLE,
    ),
]

# (days ago, percentage) posted in order on every variable investment
MONTHLY_RETURNS = [(55, Decimal("3.2")), (40, Decimal("-1.8")), (25, Decimal("4.1")), (10, Decimal("0.7"))]


async def seed() -> None:
    """Create tables and post the demo ledgers if the database is empty."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async with AsyncSessionLocal() as session:
        investment_repo = InvestmentRepository(Investment, session)
        if await investment_repo.count() > 0:
            logger.info("Database already contains investments, skipping seed.")
            return

        transaction_repo = TransactionRepository(Transaction, session)
        investments = InvestmentService(investment_repo, transaction_repo)
        interest = InterestService(
            investment_repo, transaction_repo, CalculationRepository(InterestCalculation, session)
        )
        variable = VariableReturnService(investment_repo, transaction_repo)

        for data in FIXED_INVESTMENTS:
            created = await investments.create_investment(data)
            await investments.record_transaction(
                created.id,
                TransactionCreate(
                    type=TransactionType.DEPOSIT,
                    amount=Decimal("1000.00"),
                    transaction_date=_days_ago(30),
                    description="Top-up",
                ),
            )
            await interest.calculate(created.id)

        for data in VARIABLE_INVESTMENTS:
            created = await investments.create_investment(data)
            for days_ago, percentage in MONTHLY_RETURNS:
                await variable.update_by_percentage(
                    created.id, percentage, effective_date=_days_ago(days_ago)
                )

        logger.info(
            "Seeded %d fixed and %d variable investments",
            len(FIXED_INVESTMENTS),
            len(VARIABLE_INVESTMENTS),
        )


if __name__ == "__main__":
    asyncio.run(seed())
