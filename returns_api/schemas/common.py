"""
Shared Pydantic schemas used across multiple endpoints.

Standard error envelopes (so OpenAPI documents the error contract, not only
the happy path) and the pagination block used by paged list responses.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error envelope returned by all non-validation error handlers."""

    error: bool = Field(default=True, description="Always ``true`` for errors")
    code: str = Field(
        ...,
        description="Machine-readable error type",
        examples=["NoCalculationToRevert"],
    )
    message: str = Field(
        ...,
        description="Human-readable error description",
        examples=["Investment has no calculation to revert"],
    )


class ValidationErrorDetail(BaseModel):
    """Single field-level validation failure."""

    field: str = Field(
        ...,
        description="Path to the invalid field",
        examples=["body -> percentage"],
    )
    message: str = Field(
        ...,
        description="Explanation of the validation failure",
        examples=["Input should be a valid decimal"],
    )


class UnprocessableErrorResponse(ErrorResponse):
    """
    Body of every 422.

    Business-rule failures (``NoInterestDue``, ``InvalidReturnType``, ...)
    carry ``code`` and ``message`` only.  Request-validation failures
    (``code: RequestValidationError``) add ``details``.
    """

    code: str = Field(
        ...,
        description="Machine-readable error type",
        examples=["NoInterestDue", "RequestValidationError"],
    )
    details: Optional[List[ValidationErrorDetail]] = Field(
        default=None,
        description="Per-field validation failures; present for request validation only",
    )


class PaginationMeta(BaseModel):
    """Page-number pagination block."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        return cls(page=page, limit=limit, total=total, total_pages=-(-total // limit))
