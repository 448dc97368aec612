"""Owner-scoped record store over async SQLAlchemy sessions.

Every read and write is filtered by owner_id; a record owned by someone
else is indistinguishable from a missing one.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from millesbtp.db.models import (
    AmendmentModel,
    Base,
    ClientModel,
    WorksiteCostModel,
    WorksiteEventModel,
    WorksiteModel,
)
from millesbtp.errors import NotFound

ModelT = TypeVar("ModelT", bound=Base)


class OwnedRepository(Generic[ModelT]):
    """find / list / insert / update / delete for one entity type."""

    entity_name = "Record"

    def __init__(self, session: AsyncSession, model: type[ModelT], entity_name: str | None = None):
        self.session = session
        self.model = model
        if entity_name:
            self.entity_name = entity_name

    async def find(self, record_id: Any, owner_id: str) -> ModelT:
        """Return the record or raise NotFound."""
        stmt = select(self.model).where(
            self.model.id == record_id,
            self.model.owner_id == owner_id,
        )
        record = (await self.session.execute(stmt)).scalar_one_or_none()
        if record is None:
            raise NotFound(self.entity_name, record_id)
        return record

    async def list(
        self,
        owner_id: str,
        *criteria: Any,
        order_by: Sequence[Any] = (),
    ) -> list[ModelT]:
        stmt = select(self.model).where(self.model.owner_id == owner_id, *criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def insert(self, record: ModelT) -> ModelT:
        self.session.add(record)
        await self.session.flush()
        return record

    async def update(self, record_id: Any, owner_id: str, **values: Any) -> ModelT:
        record = await self.find(record_id, owner_id)
        for key, value in values.items():
            if not hasattr(self.model, key):
                raise AttributeError(f"{self.model.__name__} has no column '{key}'")
            setattr(record, key, value)
        await self.session.flush()
        return record

    async def delete(self, record_id: Any, owner_id: str) -> None:
        record = await self.find(record_id, owner_id)
        await self.session.delete(record)
        await self.session.flush()


def clients(session: AsyncSession) -> OwnedRepository[ClientModel]:
    return OwnedRepository(session, ClientModel, "Client")


def worksites(session: AsyncSession) -> OwnedRepository[WorksiteModel]:
    return OwnedRepository(session, WorksiteModel, "Worksite")


def costs(session: AsyncSession) -> OwnedRepository[WorksiteCostModel]:
    return OwnedRepository(session, WorksiteCostModel, "Cost entry")


def amendments(session: AsyncSession) -> OwnedRepository[AmendmentModel]:
    return OwnedRepository(session, AmendmentModel, "Amendment")


def events(session: AsyncSession) -> OwnedRepository[WorksiteEventModel]:
    return OwnedRepository(session, WorksiteEventModel, "Event")
