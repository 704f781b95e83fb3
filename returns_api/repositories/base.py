"""
Async repositories over a request-scoped ``AsyncSession``.

One session per request is shared by every repository the request builds,
so ``add()`` only stages a row; the service owns the unit of work and
decides when to commit (a ledger mutation commits a transaction, a
calculation and the balance update together).

Every database round-trip is routed through ``db_circuit_breaker``.
``IntegrityError`` propagates untouched for the service to translate;
``OperationalError`` on commit rolls the session back first.
"""

import logging
from typing import Any, Awaitable, Callable, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import Select
from sqlmodel import SQLModel

from returns_api.core.resilience import db_circuit_breaker

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ── Guarded execution ──

    async def _guarded(self, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        return await db_circuit_breaker.call(func, *args)

    async def _fetch_all(self, stmt: Select) -> List[Any]:
        async def _run() -> List[Any]:
            return list((await self.db.execute(stmt)).scalars().all())

        return await self._guarded(_run)

    async def _fetch_first(self, stmt: Select) -> Optional[Any]:
        async def _run() -> Optional[Any]:
            return (await self.db.execute(stmt)).scalars().first()

        return await self._guarded(_run)

    async def _count_where(self, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(self.model).where(*criteria)

        async def _run() -> int:
            return (await self.db.execute(stmt)).scalar_one()

        return await self._guarded(_run)

    # ── Reads ──

    async def get(self, id: Any) -> Optional[ModelType]:
        """Row by primary key, or ``None``."""
        return await self._guarded(self.db.get, self.model, id)

    async def count(self) -> int:
        return await self._count_where()

    # ── Unit of work ──

    def add(self, entity: ModelType) -> ModelType:
        self.db.add(entity)
        return entity

    async def flush(self) -> None:
        await self._guarded(self.db.flush)

    async def commit(self) -> None:
        async def _commit() -> None:
            try:
                await self.db.commit()
            except OperationalError:
                logger.error("Commit failed for %s, rolling back", self.model.__name__)
                await self.db.rollback()
                raise

        await self._guarded(_commit)

    async def rollback(self) -> None:
        await self.db.rollback()

    async def create(self, obj_in: ModelType) -> ModelType:
        """Insert one row on its own, commit, and return it refreshed."""
        self.add(obj_in)
        await self.commit()
        await self.db.refresh(obj_in)
        return obj_in
