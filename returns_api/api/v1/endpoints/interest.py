"""
Interest API endpoints.

Fixed-rate accrual:
- GET   /interest/preview/{investment_id}    — Price the accrual that is due now
- POST  /interest/calculate/{investment_id}  — Commit it
- POST  /interest/revert/{investment_id}     — Undo the latest calculation
- PATCH /interest/schedule/{investment_id}   — Auto-calculation settings
- GET   /interest/history/{investment_id}    — Calculation ledger, newest first

Variable returns:
- POST  /interest/variable/update-percentage/{investment_id}
- POST  /interest/variable/update-balance/{investment_id}
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from returns_api.db.session import get_db
from returns_api.models.calculation import InterestCalculation
from returns_api.models.investment import Investment
from returns_api.models.transaction import Transaction
from returns_api.repositories.calculation_repo import CalculationRepository
from returns_api.repositories.investment_repo import InvestmentRepository
from returns_api.repositories.transaction_repo import TransactionRepository
from returns_api.schemas.common import ErrorResponse, PaginationMeta, UnprocessableErrorResponse
from returns_api.schemas.interest import (
    CalculateInterestRequest,
    CalculateInterestResponse,
    CalculationHistoryResponse,
    InterestCalculationResponse,
    InterestPreviewResponse,
    RevertCalculationRequest,
    RevertCalculationResponse,
    ScheduleResponse,
    ScheduleUpdate,
    UpdateByBalanceRequest,
    UpdateByPercentageRequest,
    VariableBalanceResponse,
    VariablePercentageResponse,
)
from returns_api.services.interest_service import InterestService
from returns_api.services.variable_return_service import VariableReturnService

router = APIRouter()

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Investment not found"}}
_UNPROCESSABLE = {
    422: {"model": UnprocessableErrorResponse, "description": "Business-rule or request-validation error"}
}
_CONFLICT = {
    409: {"model": ErrorResponse, "description": "Conflicting concurrent change or reused idempotency key"}
}


# ── Dependency injection ──


def _get_interest_service(db: AsyncSession = Depends(get_db)) -> InterestService:
    """Build an InterestService wired to the current request's DB session."""
    return InterestService(
        investment_repo=InvestmentRepository(Investment, db),
        transaction_repo=TransactionRepository(Transaction, db),
        calculation_repo=CalculationRepository(InterestCalculation, db),
    )


def _get_variable_return_service(db: AsyncSession = Depends(get_db)) -> VariableReturnService:
    return VariableReturnService(
        investment_repo=InvestmentRepository(Investment, db),
        transaction_repo=TransactionRepository(Transaction, db),
    )


# ── Fixed-rate accrual ──


@router.get(
    "/preview/{investment_id}",
    response_model=InterestPreviewResponse,
    summary="Preview the interest that is due",
    description=(
        "Computes what ``calculate`` would commit right now without changing "
        "anything.  Two previews with no mutation in between are identical."
    ),
    responses={**_NOT_FOUND, **_UNPROCESSABLE},
)
async def preview_interest(
    investment_id: UUID,
    service: InterestService = Depends(_get_interest_service),
) -> InterestPreviewResponse:
    quote = await service.preview(investment_id)
    return InterestPreviewResponse.model_validate(quote)


@router.post(
    "/calculate/{investment_id}",
    response_model=CalculateInterestResponse,
    status_code=201,
    summary="Accrue and credit the interest that is due",
    description=(
        "Appends a RETURN transaction and a calculation record and updates the "
        "balance in one transaction.  Pass ``expected_principal`` from a "
        "preview to fail with 409 if the ledger moved since.  Each day of the "
        "period accrues on that day's closing balance."
    ),
    responses={**_NOT_FOUND, **_CONFLICT, **_UNPROCESSABLE},
)
async def calculate_interest(
    investment_id: UUID,
    body: Optional[CalculateInterestRequest] = Body(default=None),
    service: InterestService = Depends(_get_interest_service),
) -> CalculateInterestResponse:
    result = await service.calculate(
        investment_id,
        expected_principal=body.expected_principal if body else None,
    )
    return CalculateInterestResponse.model_validate(result)


@router.post(
    "/revert/{investment_id}",
    response_model=RevertCalculationResponse,
    summary="Revert the most recent calculation",
    description=(
        "Appends a compensating RETURN entry and marks the latest calculation "
        "as reverted.  Requires ``confirm_revert: true``."
    ),
    responses={**_NOT_FOUND, **_CONFLICT, **_UNPROCESSABLE},
)
async def revert_calculation(
    investment_id: UUID,
    body: RevertCalculationRequest,
    service: InterestService = Depends(_get_interest_service),
) -> RevertCalculationResponse:
    result = await service.revert(investment_id, confirm=body.confirm_revert)
    return RevertCalculationResponse.model_validate(result)


@router.patch(
    "/schedule/{investment_id}",
    response_model=ScheduleResponse,
    summary="Configure automatic accrual",
    responses={**_NOT_FOUND, **_UNPROCESSABLE},
)
async def update_schedule(
    investment_id: UUID,
    body: ScheduleUpdate,
    service: InterestService = Depends(_get_interest_service),
) -> ScheduleResponse:
    investment = await service.update_schedule(
        investment_id,
        auto_calculate=body.auto_calculate,
        compounding_frequency=body.compounding_frequency,
    )
    return ScheduleResponse.model_validate(investment)


@router.get(
    "/history/{investment_id}",
    response_model=CalculationHistoryResponse,
    summary="Calculation history",
    description="Paginated calculation ledger, newest first, including reverted entries.",
    responses=_NOT_FOUND,
)
async def calculation_history(
    investment_id: UUID,
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    service: InterestService = Depends(_get_interest_service),
) -> CalculationHistoryResponse:
    items, total = await service.history(investment_id, page=page, limit=limit)
    return CalculationHistoryResponse(
        items=[InterestCalculationResponse.model_validate(c) for c in items],
        pagination=PaginationMeta.build(page, limit, total),
    )


# ── Variable returns ──


@router.post(
    "/variable/update-percentage/{investment_id}",
    response_model=VariablePercentageResponse,
    status_code=201,
    summary="Post a return given as a percentage",
    description=(
        "Amount is the current balance times ``percentage / 100``, rounded to "
        "cents.  Send an ``Idempotency-Key`` header to make retries safe; reusing "
        "a key with a different body answers 409."
    ),
    responses={**_NOT_FOUND, **_CONFLICT, **_UNPROCESSABLE},
)
async def update_by_percentage(
    investment_id: UUID,
    body: UpdateByPercentageRequest,
    idempotency_key: Optional[str] = Header(default=None, max_length=255),
    service: VariableReturnService = Depends(_get_variable_return_service),
) -> VariablePercentageResponse:
    result = await service.update_by_percentage(
        investment_id,
        body.percentage,
        effective_date=body.effective_date,
        description=body.description,
        idempotency_key=idempotency_key,
    )
    return VariablePercentageResponse.model_validate(result)


@router.post(
    "/variable/update-balance/{investment_id}",
    response_model=VariableBalanceResponse,
    status_code=201,
    summary="Post a return given as the resulting balance",
    description=(
        "The return amount is ``new_balance`` minus the current balance; the "
        "implied percentage is null when the current balance is zero.  "
        "``Idempotency-Key`` works as for update-percentage."
    ),
    responses={**_NOT_FOUND, **_CONFLICT, **_UNPROCESSABLE},
)
async def update_by_balance(
    investment_id: UUID,
    body: UpdateByBalanceRequest,
    idempotency_key: Optional[str] = Header(default=None, max_length=255),
    service: VariableReturnService = Depends(_get_variable_return_service),
) -> VariableBalanceResponse:
    result = await service.update_by_balance(
        investment_id,
        body.new_balance,
        effective_date=body.effective_date,
        description=body.description,
        idempotency_key=idempotency_key,
    )
    return VariableBalanceResponse.model_validate(result)
