"""Amendment (change order) state machine.

pending -> approved | rejected. Both outcomes are terminal. Approving moves
the worksite budget baseline by the amendment's cost impact; the caller
recalculates afterwards in the same transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import InvalidOperation
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from millesbtp.db import repository
from millesbtp.db.models import AmendmentModel, WorksiteModel
from millesbtp.errors import IllegalStateTransition, NotFound, ValidationError
from millesbtp.finance.engine import MAX_AMOUNT, ZERO, to_amount
from millesbtp.models import AmendmentCreate, AmendmentStatus
from millesbtp.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[AmendmentStatus, frozenset[AmendmentStatus]] = {
    AmendmentStatus.PENDING: frozenset({AmendmentStatus.APPROVED, AmendmentStatus.REJECTED}),
    AmendmentStatus.APPROVED: frozenset(),
    AmendmentStatus.REJECTED: frozenset(),
}


def can_transition(current: AmendmentStatus | str, target: AmendmentStatus | str) -> bool:
    return AmendmentStatus(target) in _TRANSITIONS[AmendmentStatus(current)]


class AmendmentWorkflow:
    def __init__(self, session: AsyncSession, owner_id: str):
        self.session = session
        self.owner_id = owner_id
        self.amendments = repository.amendments(session)

    async def create(
        self, worksite_id: UUID, data: AmendmentCreate, now: datetime | None = None
    ) -> AmendmentModel:
        """Open a pending amendment.

        Raises:
            ValidationError: Missing title/description or negative time impact
        """
        title = (data.title or "").strip()
        description = (data.description or "").strip()
        if not title:
            raise ValidationError("Amendment title is required", field="title")
        if not description:
            raise ValidationError("Amendment description is required", field="description")
        if data.time_impact_hours is not None and data.time_impact_hours < 0:
            raise ValidationError("Time impact cannot be negative", field="time_impact_hours")
        try:
            cost_impact = to_amount(data.cost_impact)
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise ValidationError(
                f"Invalid cost impact: {data.cost_impact!r}", field="cost_impact"
            ) from exc
        if abs(cost_impact) > MAX_AMOUNT:
            raise ValidationError(f"Cost impact cannot exceed {MAX_AMOUNT}", field="cost_impact")

        requested_at = to_naive_utc(now) or utcnow()
        amendment = AmendmentModel(
            worksite_id=worksite_id,
            owner_id=self.owner_id,
            title=title,
            description=description,
            cost_impact=cost_impact,
            time_impact_hours=data.time_impact_hours,
            status=AmendmentStatus.PENDING.value,
            requested_at=requested_at,
            created_at=requested_at,
            updated_at=requested_at,
        )
        await self.amendments.insert(amendment)

        logger.info(
            "Amendment %s created on worksite %s (impact %s)",
            amendment.id,
            worksite_id,
            cost_impact,
        )
        return amendment

    async def approve(
        self,
        worksite: WorksiteModel,
        amendment_id: UUID,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> AmendmentModel:
        """Approve and add the cost impact to the worksite budget.

        Raises:
            IllegalStateTransition: Amendment already decided
            ValidationError: Budget would become negative
        """
        amendment = await self._get_for_worksite(worksite.id, amendment_id)
        self._check_transition(amendment, AmendmentStatus.APPROVED)

        new_budget = to_amount(worksite.budget_initial) + to_amount(amendment.cost_impact)
        if new_budget < ZERO:
            raise ValidationError(
                f"Approving this amendment would make the budget negative ({new_budget})",
                field="cost_impact",
            )
        if new_budget > MAX_AMOUNT:
            raise ValidationError(
                f"Approving this amendment would take the budget above {MAX_AMOUNT}",
                field="cost_impact",
            )

        self._decide(amendment, AmendmentStatus.APPROVED, notes, now)
        worksite.budget_initial = new_budget
        await self.session.flush()

        logger.info(
            "Amendment %s approved, worksite %s budget now %s",
            amendment_id,
            worksite.id,
            new_budget,
        )
        return amendment

    async def reject(
        self,
        worksite_id: UUID,
        amendment_id: UUID,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> AmendmentModel:
        """Reject; the budget is untouched."""
        amendment = await self._get_for_worksite(worksite_id, amendment_id)
        self._check_transition(amendment, AmendmentStatus.REJECTED)
        self._decide(amendment, AmendmentStatus.REJECTED, notes, now)
        await self.session.flush()

        logger.info("Amendment %s rejected on worksite %s", amendment_id, worksite_id)
        return amendment

    async def list_for_worksite(
        self, worksite_id: UUID, status: AmendmentStatus | str | None = None
    ) -> list[AmendmentModel]:
        criteria = [AmendmentModel.worksite_id == worksite_id]
        if status is not None:
            criteria.append(AmendmentModel.status == AmendmentStatus(status).value)
        return await self.amendments.list(
            self.owner_id,
            *criteria,
            order_by=(AmendmentModel.requested_at.desc(),),
        )

    async def _get_for_worksite(self, worksite_id: UUID, amendment_id: UUID) -> AmendmentModel:
        amendment = await self.amendments.find(amendment_id, self.owner_id)
        if amendment.worksite_id != worksite_id:
            raise NotFound("Amendment", amendment_id)
        return amendment

    @staticmethod
    def _check_transition(amendment: AmendmentModel, target: AmendmentStatus) -> None:
        if not can_transition(amendment.status, target):
            raise IllegalStateTransition("Amendment", amendment.status, target.value)

    @staticmethod
    def _decide(
        amendment: AmendmentModel,
        target: AmendmentStatus,
        notes: str | None,
        now: datetime | None,
    ) -> None:
        decided_at = to_naive_utc(now) or utcnow()
        amendment.status = target.value
        amendment.decided_at = decided_at
        amendment.decision_notes = notes.strip() if notes and notes.strip() else None
        amendment.updated_at = decided_at
