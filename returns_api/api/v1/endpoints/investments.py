"""
Investment API endpoints.

- POST  /investments                             — Create an investment
- GET   /investments                             — List investments (paginated)
- GET   /investments/{investment_id}             — Retrieve one investment
- PATCH /investments/{investment_id}/status      — Change status
- POST  /investments/{investment_id}/transactions — Post a ledger entry
- GET   /investments/{investment_id}/transactions — List the ledger
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from returns_api.db.session import get_db
from returns_api.models.investment import Investment, InvestmentStatus
from returns_api.models.transaction import Transaction
from returns_api.repositories.investment_repo import InvestmentRepository
from returns_api.repositories.transaction_repo import TransactionRepository
from returns_api.schemas.common import ErrorResponse, PaginationMeta, UnprocessableErrorResponse
from returns_api.schemas.investment import (
    InvestmentCreate,
    InvestmentListResponse,
    InvestmentResponse,
    InvestmentStatusUpdate,
)
from returns_api.schemas.transaction import (
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
)
from returns_api.services.investment_service import InvestmentService

router = APIRouter()


# ── Dependency injection ──


def _get_investment_service(db: AsyncSession = Depends(get_db)) -> InvestmentService:
    """Build an InvestmentService wired to the current request's DB session."""
    return InvestmentService(
        investment_repo=InvestmentRepository(Investment, db),
        transaction_repo=TransactionRepository(Transaction, db),
    )


# ── Endpoints ──


@router.post(
    "",
    response_model=InvestmentResponse,
    status_code=201,
    summary="Create an investment",
    description="The balance starts at ``initial_amount``.  FIXED investments require ``interest_rate``.",
    responses={422: {"model": UnprocessableErrorResponse, "description": "Validation or business-rule error"}},
)
async def create_investment(
    investment: InvestmentCreate,
    service: InvestmentService = Depends(_get_investment_service),
) -> InvestmentResponse:
    return await service.create_investment(investment)


@router.get(
    "",
    response_model=InvestmentListResponse,
    summary="List investments",
    description="Newest first.  Filter by ``status`` and page with ``page`` / ``limit``.",
)
async def list_investments(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    status: Optional[InvestmentStatus] = Query(None, description="Only this status"),
    service: InvestmentService = Depends(_get_investment_service),
) -> InvestmentListResponse:
    items, total = await service.list_investments(page=page, limit=limit, status=status)
    return InvestmentListResponse(
        items=[InvestmentResponse.model_validate(i) for i in items],
        pagination=PaginationMeta.build(page, limit, total),
    )


@router.get(
    "/{investment_id}",
    response_model=InvestmentResponse,
    summary="Get an investment",
    responses={404: {"model": ErrorResponse, "description": "Investment not found"}},
)
async def get_investment(
    investment_id: UUID,
    service: InvestmentService = Depends(_get_investment_service),
) -> InvestmentResponse:
    return await service.get_investment(investment_id)


@router.patch(
    "/{investment_id}/status",
    response_model=InvestmentResponse,
    summary="Change an investment's status",
    description="ACTIVE and PENDING may be swapped; CLOSED is terminal.",
    responses={
        404: {"model": ErrorResponse, "description": "Investment not found"},
        422: {"model": UnprocessableErrorResponse, "description": "Illegal status transition"},
    },
)
async def update_investment_status(
    investment_id: UUID,
    body: InvestmentStatusUpdate,
    service: InvestmentService = Depends(_get_investment_service),
) -> InvestmentResponse:
    return await service.update_status(investment_id, body.status)


@router.post(
    "/{investment_id}/transactions",
    response_model=TransactionResponse,
    status_code=201,
    summary="Post a ledger entry",
    description=(
        "DEPOSIT and DIVIDEND add to the balance; WITHDRAWAL and TRANSFER "
        "subtract.  Entries must be dated in ledger order and not in the future."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Investment not found"},
        422: {"model": UnprocessableErrorResponse, "description": "Validation or business-rule error"},
    },
)
async def record_transaction(
    investment_id: UUID,
    body: TransactionCreate,
    service: InvestmentService = Depends(_get_investment_service),
) -> TransactionResponse:
    return await service.record_transaction(investment_id, body)


@router.get(
    "/{investment_id}/transactions",
    response_model=TransactionListResponse,
    summary="List the ledger",
    responses={404: {"model": ErrorResponse, "description": "Investment not found"}},
)
async def list_transactions(
    investment_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    service: InvestmentService = Depends(_get_investment_service),
) -> TransactionListResponse:
    items, total = await service.list_transactions(investment_id, page=page, limit=limit)
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in items],
        pagination=PaginationMeta.build(page, limit, total),
    )
