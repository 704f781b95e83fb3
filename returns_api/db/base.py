"""
Database model registry.

Importing this module registers every table with SQLModel's metadata, which
is required before calling ``create_all()``.
"""

from returns_api.models.calculation import InterestCalculation  # noqa: F401
from returns_api.models.investment import Investment  # noqa: F401
from returns_api.models.transaction import Transaction  # noqa: F401
