"""Cost ledger: itemized cost entries per worksite and their aggregates.

The ledger never recalculates the worksite itself. Callers run
recalculation as the second step of the same unit of work.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from millesbtp.db import repository
from millesbtp.db.models import WorksiteCostModel
from millesbtp.errors import NotFound, ValidationError
from millesbtp.finance.engine import MAX_AMOUNT, ZERO, to_amount
from millesbtp.models import (
    CategoryBreakdown,
    CostCategory,
    CostEntryCreate,
    CostEntryUpdate,
    CostType,
)
from millesbtp.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


class CostLedger:
    """Ledger operations for one actor."""

    def __init__(self, session: AsyncSession, owner_id: str):
        self.session = session
        self.owner_id = owner_id
        self.entries = repository.costs(session)

    async def add_entry(self, worksite_id: UUID, data: CostEntryCreate) -> WorksiteCostModel:
        """Insert a cost line.

        Raises:
            ValidationError: If amount <= 0 or category/type is unknown
        """
        entry = WorksiteCostModel(
            worksite_id=worksite_id,
            owner_id=self.owner_id,
            category=_category(data.category).value,
            amount=positive_amount(data.amount),
            type=_cost_type(data.type).value,
            cost_date=to_naive_utc(data.cost_date) or utcnow(),
            description=_clean(data.description),
            reference=_clean(data.reference),
        )
        await self.entries.insert(entry)

        logger.info(
            "Added %s cost %s (%s, %s) to worksite %s",
            entry.type,
            entry.id,
            entry.category,
            entry.amount,
            worksite_id,
        )
        return entry

    async def update_entry(
        self, worksite_id: UUID, cost_id: UUID, data: CostEntryUpdate
    ) -> tuple[WorksiteCostModel, dict[str, Any]]:
        """Apply a partial update.

        Returns:
            The entry and a {field: (old, new)} map of what actually changed
        """
        entry = await self.get_entry(worksite_id, cost_id)
        values: dict[str, Any] = {}

        fields = data.model_dump(exclude_unset=True)
        if "category" in fields:
            values["category"] = _category(fields["category"]).value
        if "amount" in fields:
            values["amount"] = positive_amount(fields["amount"])
        if "type" in fields:
            values["type"] = _cost_type(fields["type"]).value
        if fields.get("cost_date") is not None:
            values["cost_date"] = to_naive_utc(fields["cost_date"])
        if "description" in fields:
            values["description"] = _clean(fields["description"])
        if "reference" in fields:
            values["reference"] = _clean(fields["reference"])

        changes = {
            key: (getattr(entry, key), value)
            for key, value in values.items()
            if getattr(entry, key) != value
        }
        if changes:
            values["updated_at"] = utcnow()
            await self.entries.update(entry.id, self.owner_id, **values)
            logger.info(
                "Updated cost %s on worksite %s: %s",
                cost_id,
                worksite_id,
                ", ".join(sorted(changes)),
            )
        return entry, changes

    async def delete_entry(self, worksite_id: UUID, cost_id: UUID) -> WorksiteCostModel:
        entry = await self.get_entry(worksite_id, cost_id)
        await self.entries.delete(entry.id, self.owner_id)
        logger.info("Deleted cost %s from worksite %s", cost_id, worksite_id)
        return entry

    async def get_entry(self, worksite_id: UUID, cost_id: UUID) -> WorksiteCostModel:
        entry = await self.entries.find(cost_id, self.owner_id)
        if entry.worksite_id != worksite_id:
            # Same answer as an unknown id: never leak other worksites' rows
            raise NotFound("Cost entry", cost_id)
        return entry

    async def list_entries(self, worksite_id: UUID) -> list[WorksiteCostModel]:
        """All entries for the worksite, most recent cost date first."""
        return await self.entries.list(
            self.owner_id,
            WorksiteCostModel.worksite_id == worksite_id,
            order_by=(WorksiteCostModel.cost_date.desc(), WorksiteCostModel.created_at.desc()),
        )

    async def sum_by_type(self, worksite_id: UUID, cost_type: CostType | str) -> Decimal:
        stmt = select(func.coalesce(func.sum(WorksiteCostModel.amount), 0)).where(
            WorksiteCostModel.owner_id == self.owner_id,
            WorksiteCostModel.worksite_id == worksite_id,
            WorksiteCostModel.type == _cost_type(cost_type).value,
        )
        total = (await self.session.execute(stmt)).scalar_one()
        return to_amount(total)

    async def sum_by_category(self, worksite_id: UUID) -> dict[CostCategory, CategoryBreakdown]:
        """Committed and estimated totals for every category (zero-filled)."""
        stmt = (
            select(
                WorksiteCostModel.category,
                WorksiteCostModel.type,
                func.sum(WorksiteCostModel.amount).label("total"),
            )
            .where(
                WorksiteCostModel.owner_id == self.owner_id,
                WorksiteCostModel.worksite_id == worksite_id,
            )
            .group_by(WorksiteCostModel.category, WorksiteCostModel.type)
        )
        rows = (await self.session.execute(stmt)).all()

        breakdown = {category: CategoryBreakdown(category=category) for category in CostCategory}
        for row in rows:
            item = breakdown[CostCategory(row.category)]
            if row.type == CostType.COMMITTED.value:
                item.committed = to_amount(row.total)
            else:
                item.estimated = to_amount(row.total)
        return breakdown


def positive_amount(value: Any) -> Decimal:
    try:
        amount = to_amount(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}", field="amount") from exc
    if amount <= ZERO:
        raise ValidationError("Amount must be greater than 0", field="amount")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"Amount cannot exceed {MAX_AMOUNT}", field="amount")
    return amount


def _category(value: Any) -> CostCategory:
    try:
        return CostCategory(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown cost category: {value!r}", field="category") from exc


def _cost_type(value: Any) -> CostType:
    try:
        return CostType(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown cost type: {value!r}", field="type") from exc


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    return text or None
