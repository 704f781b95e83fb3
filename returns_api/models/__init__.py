"""SQLModel table models; import here so metadata is populated."""

from returns_api.models.calculation import InterestCalculation  # noqa: F401
from returns_api.models.investment import Investment  # noqa: F401
from returns_api.models.transaction import Transaction  # noqa: F401
