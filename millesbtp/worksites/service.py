"""Worksite orchestration: one transaction per user action.

Every mutation runs as a unit of work:

    lock(worksite) -> retry { session -> mutate -> recalculate -> event -> commit }

A failure anywhere rolls back the whole unit, so cached financials, ledger
and timeline never disagree. Transient storage errors and version
conflicts re-run the unit from a fresh session.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from contextlib import nullcontext
from datetime import datetime
from decimal import InvalidOperation
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from millesbtp.amendments import AmendmentWorkflow
from millesbtp.config import StorageRetryConfig, get_config
from millesbtp.db import repository
from millesbtp.db.models import ClientModel, WorksiteModel
from millesbtp.db.retry import run_unit_of_work
from millesbtp.errors import ValidationError
from millesbtp.finance.engine import (
    MAX_AMOUNT,
    ZERO,
    derive_financials,
    preview_cost_impact,
    to_amount,
)
from millesbtp.ledger import CostLedger, positive_amount
from millesbtp.models import (
    COST_CATEGORY_LABELS,
    AmendmentCreate,
    ClientCreate,
    CostCategory,
    CostEntryCreate,
    CostEntryUpdate,
    CostImpactPreview,
    CostType,
    WorksiteCreate,
    WorksiteStatus,
    WorksiteUpdate,
)
from millesbtp.timeline import (
    AmendmentCreatedPayload,
    AmendmentDecisionPayload,
    BudgetUpdatedPayload,
    CostAddedPayload,
    CostDeletedPayload,
    CostUpdatedPayload,
    CreationPayload,
    EventTimeline,
    StatusChangedPayload,
)
from millesbtp.utils.clock import to_naive_utc, utcnow
from millesbtp.worksites.locks import WorksiteLocks, default_locks
from millesbtp.worksites.models import MutationResult, WorksiteOverview
from millesbtp.worksites.recalculation import RecalculationResult, recalculate_worksite

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorksiteService:
    """Worksite operations on behalf of one authenticated actor.

    Args:
        session_factory: async_sessionmaker with expire_on_commit=False
        owner_id: Identity of the actor; every read and write is scoped to it
        locks: Per-worksite lock registry (process-wide by default)
        clock: Returns naive-UTC "now"; injectable for tests
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        owner_id: str,
        locks: WorksiteLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
        retry_config: StorageRetryConfig | None = None,
    ):
        if not owner_id:
            raise ValidationError("An authenticated actor is required", field="owner_id")
        self.session_factory = session_factory
        self.owner_id = owner_id
        self.locks = locks if locks is not None else default_locks
        self.clock = clock
        self.retry_config = retry_config

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    async def _unit_of_work(
        self,
        operation: Callable[[AsyncSession], Awaitable[T]],
        worksite_id: UUID | None = None,
    ) -> T:
        lock = self.locks.get(worksite_id) if worksite_id is not None else nullcontext()
        async with lock:
            return await run_unit_of_work(
                self.session_factory, operation, worksite_id, self.retry_config
            )

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    async def create_client(self, data: ClientCreate) -> ClientModel:
        name = _required(data.name, "name")

        async def operation(session: AsyncSession) -> ClientModel:
            now = self.clock()
            client = ClientModel(
                owner_id=self.owner_id,
                name=name,
                email=_clean(data.email),
                phone=_clean(data.phone),
                address=_clean(data.address),
                notes=_clean(data.notes),
                created_at=now,
                updated_at=now,
            )
            return await repository.clients(session).insert(client)

        client = await self._unit_of_work(operation)
        logger.info("Client %s created for %s", client.id, self.owner_id)
        return client

    async def list_clients(self) -> list[ClientModel]:
        async def operation(session: AsyncSession) -> list[ClientModel]:
            return await repository.clients(session).list(
                self.owner_id, order_by=(ClientModel.name,)
            )

        return await self._unit_of_work(operation)

    # ------------------------------------------------------------------
    # Worksites
    # ------------------------------------------------------------------

    async def create_worksite(self, data: WorksiteCreate) -> WorksiteModel:
        """Create an active worksite with zero costs and a creation event.

        Raises:
            ValidationError: Missing name/address, negative budget, end before start
            NotFound: client_id does not belong to the actor
        """
        name = _required(data.name, "name")
        address = _required(data.address, "address")
        budget = _budget(data.budget_initial)
        start_date = to_naive_utc(data.start_date)
        planned_end_date = to_naive_utc(data.planned_end_date)
        _check_dates(start_date, planned_end_date, "planned_end_date")
        worksite_id = uuid4()

        async def operation(session: AsyncSession) -> WorksiteModel:
            now = self.clock()
            if data.client_id is not None:
                await repository.clients(session).find(data.client_id, self.owner_id)

            snapshot = derive_financials(budget, ZERO, ZERO)
            worksite = WorksiteModel(
                id=worksite_id,
                owner_id=self.owner_id,
                client_id=data.client_id,
                name=name,
                code=_clean(data.code),
                address=address,
                type=_clean(data.type),
                description=_clean(data.description),
                manager_name=_clean(data.manager_name),
                start_date=start_date,
                planned_end_date=planned_end_date,
                budget_initial=snapshot.budget_initial,
                costs_committed=snapshot.costs_committed,
                costs_estimated=snapshot.costs_estimated,
                margin_estimated=snapshot.margin_estimated,
                margin_percentage=snapshot.margin_percentage,
                profitability_status=snapshot.profitability_status.value,
                has_budget_alert=snapshot.has_budget_alert,
                status=WorksiteStatus.ACTIVE.value,
                created_at=now,
                updated_at=now,
            )
            await repository.worksites(session).insert(worksite)

            # Schedule-based alerts can already apply (e.g. a past planned end)
            result = await recalculate_worksite(session, self.owner_id, worksite_id, now)
            await self._timeline(session).record(
                worksite_id,
                CreationPayload(budget_initial=snapshot.budget_initial),
                title="Worksite created",
                description=name,
                event_date=now,
            )
            return result.worksite

        worksite = await self._unit_of_work(operation, worksite_id)
        logger.info("Worksite %s created for %s (budget %s)", worksite.id, self.owner_id, budget)
        return worksite

    async def update_worksite(self, worksite_id: UUID, data: WorksiteUpdate) -> WorksiteModel:
        """Direct edit of descriptive fields and budget.

        Derived financial fields cannot be set here; they only change
        through recalculation. A budget change writes a budget_updated event.
        """
        fields = data.model_dump(exclude_unset=True)
        values: dict[str, Any] = {}
        for key in ("name", "address"):
            if key in fields:
                values[key] = _required(fields[key], key)
        for key in ("code", "type", "description", "manager_name"):
            if key in fields:
                values[key] = _clean(fields[key])
        for key in ("start_date", "planned_end_date", "actual_end_date"):
            if key in fields:
                values[key] = to_naive_utc(fields[key])
        if "client_id" in fields:
            values["client_id"] = fields["client_id"]
        if fields.get("budget_initial") is not None:
            values["budget_initial"] = _budget(fields["budget_initial"])

        async def operation(session: AsyncSession) -> WorksiteModel:
            now = self.clock()
            worksites = repository.worksites(session)
            worksite = await worksites.find(worksite_id, self.owner_id)

            if values.get("client_id") is not None:
                await repository.clients(session).find(values["client_id"], self.owner_id)

            start = values.get("start_date", worksite.start_date)
            for key in ("planned_end_date", "actual_end_date"):
                _check_dates(start, values.get(key, getattr(worksite, key)), key)

            changes = {
                key: (getattr(worksite, key), value)
                for key, value in values.items()
                if getattr(worksite, key) != value
            }
            if not changes:
                return worksite

            for key, (_, value) in changes.items():
                setattr(worksite, key, value)
            worksite.updated_at = now
            await session.flush()

            await recalculate_worksite(session, self.owner_id, worksite_id, now)

            if "budget_initial" in changes:
                previous, new = changes["budget_initial"]
                await self._timeline(session).record(
                    worksite_id,
                    BudgetUpdatedPayload(previous_budget=previous, new_budget=new),
                    title="Budget updated",
                    description=f"From {_money(previous)} to {_money(new)}",
                    event_date=now,
                )
            logger.info("Worksite %s updated: %s", worksite_id, ", ".join(sorted(changes)))
            return worksite

        return await self._unit_of_work(operation, worksite_id)

    async def change_status(self, worksite_id: UUID, status: WorksiteStatus | str) -> WorksiteModel:
        """Move the lifecycle status; admin alerts only apply to active worksites."""
        try:
            target = WorksiteStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown worksite status: {status!r}", field="status") from exc

        async def operation(session: AsyncSession) -> WorksiteModel:
            now = self.clock()
            worksite = await repository.worksites(session).find(worksite_id, self.owner_id)
            previous = worksite.status
            if previous == target.value:
                return worksite

            worksite.status = target.value
            if target == WorksiteStatus.COMPLETED and worksite.actual_end_date is None:
                worksite.actual_end_date = now
            worksite.updated_at = now
            await session.flush()

            await recalculate_worksite(session, self.owner_id, worksite_id, now)
            await self._timeline(session).record(
                worksite_id,
                StatusChangedPayload(previous_status=previous, new_status=target.value),
                title=f"Status changed: {target.value}",
                description=f"From {previous} to {target.value}",
                event_date=now,
            )
            logger.info("Worksite %s moved from %s to %s", worksite_id, previous, target.value)
            return worksite

        return await self._unit_of_work(operation, worksite_id)

    async def recalculate(self, worksite_id: UUID) -> RecalculationResult:
        """Reconcile one worksite's cache with its ledger. Safe to repeat."""

        async def operation(session: AsyncSession) -> RecalculationResult:
            return await recalculate_worksite(session, self.owner_id, worksite_id, self.clock())

        return await self._unit_of_work(operation, worksite_id)

    async def recalculate_all(self) -> list[RecalculationResult]:
        """Reconciliation pass over every worksite of the actor, one unit each."""
        worksites = await self.list_worksites()
        results = []
        for worksite in worksites:
            results.append(await self.recalculate(worksite.id))
        logger.info(
            "Reconciled %d worksite(s) for %s, %d updated",
            len(results),
            self.owner_id,
            sum(1 for result in results if result.wrote),
        )
        return results

    async def list_worksites(
        self, status: WorksiteStatus | str | None = None
    ) -> list[WorksiteModel]:
        criteria = []
        if status is not None:
            criteria.append(WorksiteModel.status == WorksiteStatus(status).value)

        async def operation(session: AsyncSession) -> list[WorksiteModel]:
            return await repository.worksites(session).list(
                self.owner_id,
                *criteria,
                order_by=(WorksiteModel.created_at.desc(),),
            )

        return await self._unit_of_work(operation)

    async def get_worksite(self, worksite_id: UUID) -> WorksiteModel:
        async def operation(session: AsyncSession) -> WorksiteModel:
            return await repository.worksites(session).find(worksite_id, self.owner_id)

        return await self._unit_of_work(operation)

    async def get_overview(self, worksite_id: UUID) -> WorksiteOverview:
        """Aggregate, ledger, category breakdown, amendments and timeline in one read."""

        async def operation(session: AsyncSession) -> WorksiteOverview:
            worksite = await repository.worksites(session).find(worksite_id, self.owner_id)
            client = None
            if worksite.client_id is not None:
                client = await session.get(ClientModel, worksite.client_id)
            ledger = CostLedger(session, self.owner_id)
            return WorksiteOverview(
                worksite=worksite,
                client=client,
                costs=await ledger.list_entries(worksite_id),
                breakdown=await ledger.sum_by_category(worksite_id),
                amendments=await AmendmentWorkflow(session, self.owner_id).list_for_worksite(
                    worksite_id
                ),
                timeline=await self._timeline(session).list(worksite_id),
            )

        return await self._unit_of_work(operation)

    # ------------------------------------------------------------------
    # Costs
    # ------------------------------------------------------------------

    async def add_cost(self, worksite_id: UUID, data: CostEntryCreate) -> MutationResult:
        async def operation(session: AsyncSession) -> MutationResult:
            now = self.clock()
            await repository.worksites(session).find(worksite_id, self.owner_id)

            entry = await CostLedger(session, self.owner_id).add_entry(worksite_id, data)
            result = await recalculate_worksite(session, self.owner_id, worksite_id, now)

            category = CostCategory(entry.category)
            event = await self._timeline(session).record(
                worksite_id,
                CostAddedPayload(
                    cost_id=entry.id,
                    amount=entry.amount,
                    category=entry.category,
                    type=entry.type,
                ),
                title=f"Cost added: {COST_CATEGORY_LABELS[category]}",
                description=entry.description or f"Amount: {_money(entry.amount)}",
                event_date=now,
            )
            return MutationResult(worksite=result.worksite, record=entry, event=event)

        return await self._unit_of_work(operation, worksite_id)

    async def update_cost(
        self, worksite_id: UUID, cost_id: UUID, data: CostEntryUpdate
    ) -> MutationResult:
        """Edit a cost line. An edit that changes nothing writes nothing."""

        async def operation(session: AsyncSession) -> MutationResult:
            now = self.clock()
            worksite = await repository.worksites(session).find(worksite_id, self.owner_id)

            entry, changes = await CostLedger(session, self.owner_id).update_entry(
                worksite_id, cost_id, data
            )
            if not changes:
                return MutationResult(worksite=worksite, record=entry)

            result = await recalculate_worksite(session, self.owner_id, worksite_id, now)
            event = await self._timeline(session).record(
                worksite_id,
                CostUpdatedPayload(cost_id=cost_id, changed_fields=sorted(changes)),
                title="Cost updated",
                event_date=now,
            )
            return MutationResult(worksite=result.worksite, record=entry, event=event)

        return await self._unit_of_work(operation, worksite_id)

    async def delete_cost(self, worksite_id: UUID, cost_id: UUID) -> MutationResult:
        async def operation(session: AsyncSession) -> MutationResult:
            now = self.clock()
            await repository.worksites(session).find(worksite_id, self.owner_id)

            entry = await CostLedger(session, self.owner_id).delete_entry(worksite_id, cost_id)
            result = await recalculate_worksite(session, self.owner_id, worksite_id, now)
            event = await self._timeline(session).record(
                worksite_id,
                CostDeletedPayload(
                    cost_id=cost_id,
                    amount=entry.amount,
                    category=entry.category,
                    type=entry.type,
                ),
                title="Cost deleted",
                event_date=now,
            )
            return MutationResult(worksite=result.worksite, record=entry, event=event)

        return await self._unit_of_work(operation, worksite_id)

    async def preview_cost(self, worksite_id: UUID, data: CostEntryCreate) -> CostImpactPreview:
        """What the worksite would look like with this cost added. Writes nothing."""
        amount = positive_amount(data.amount)
        worksite = await self.get_worksite(worksite_id)
        return preview_cost_impact(
            worksite.budget_initial,
            worksite.costs_committed,
            amount,
            CostType(data.type),
            worksite.costs_estimated,
        )

    # ------------------------------------------------------------------
    # Amendments
    # ------------------------------------------------------------------

    async def create_amendment(self, worksite_id: UUID, data: AmendmentCreate) -> MutationResult:
        async def operation(session: AsyncSession) -> MutationResult:
            now = self.clock()
            await repository.worksites(session).find(worksite_id, self.owner_id)

            amendment = await AmendmentWorkflow(session, self.owner_id).create(
                worksite_id, data, now
            )
            result = await recalculate_worksite(session, self.owner_id, worksite_id, now)
            event = await self._timeline(session).record(
                worksite_id,
                AmendmentCreatedPayload(
                    amendment_id=amendment.id,
                    cost_impact=amendment.cost_impact,
                    time_impact_hours=amendment.time_impact_hours,
                ),
                title=f"Amendment created: {amendment.title}",
                description=amendment.description,
                event_date=now,
            )
            return MutationResult(worksite=result.worksite, record=amendment, event=event)

        return await self._unit_of_work(operation, worksite_id)

    async def approve_amendment(
        self, worksite_id: UUID, amendment_id: UUID, notes: str | None = None
    ) -> MutationResult:
        """Approve, move the budget, recalculate and record, atomically.

        Raises:
            IllegalStateTransition: Amendment already decided
            ValidationError: Budget would become negative
        """

        async def operation(session: AsyncSession) -> MutationResult:
            now = self.clock()
            worksite = await repository.worksites(session).find(worksite_id, self.owner_id)

            amendment = await AmendmentWorkflow(session, self.owner_id).approve(
                worksite, amendment_id, notes, now
            )
            result = await recalculate_worksite(session, self.owner_id, worksite_id, now)
            event = await self._timeline(session).record(
                worksite_id,
                AmendmentDecisionPayload(
                    event_type="amendment_approved",
                    amendment_id=amendment.id,
                    cost_impact=amendment.cost_impact,
                ),
                title=f"Amendment approved: {amendment.title}",
                description=amendment.decision_notes,
                event_date=now,
            )
            return MutationResult(worksite=result.worksite, record=amendment, event=event)

        return await self._unit_of_work(operation, worksite_id)

    async def reject_amendment(
        self, worksite_id: UUID, amendment_id: UUID, notes: str | None = None
    ) -> MutationResult:
        async def operation(session: AsyncSession) -> MutationResult:
            now = self.clock()
            await repository.worksites(session).find(worksite_id, self.owner_id)

            amendment = await AmendmentWorkflow(session, self.owner_id).reject(
                worksite_id, amendment_id, notes, now
            )
            # The pending set shrank, so the amendment alert may clear
            result = await recalculate_worksite(session, self.owner_id, worksite_id, now)
            event = await self._timeline(session).record(
                worksite_id,
                AmendmentDecisionPayload(
                    event_type="amendment_rejected",
                    amendment_id=amendment.id,
                    cost_impact=amendment.cost_impact,
                ),
                title=f"Amendment rejected: {amendment.title}",
                description=amendment.decision_notes,
                event_date=now,
            )
            return MutationResult(worksite=result.worksite, record=amendment, event=event)

        return await self._unit_of_work(operation, worksite_id)

    async def list_amendments(self, worksite_id: UUID):
        async def operation(session: AsyncSession):
            await repository.worksites(session).find(worksite_id, self.owner_id)
            return await AmendmentWorkflow(session, self.owner_id).list_for_worksite(worksite_id)

        return await self._unit_of_work(operation)

    async def list_costs(self, worksite_id: UUID):
        async def operation(session: AsyncSession):
            await repository.worksites(session).find(worksite_id, self.owner_id)
            return await CostLedger(session, self.owner_id).list_entries(worksite_id)

        return await self._unit_of_work(operation)

    async def timeline(self, worksite_id: UUID):
        async def operation(session: AsyncSession):
            await repository.worksites(session).find(worksite_id, self.owner_id)
            return await self._timeline(session).list(worksite_id)

        return await self._unit_of_work(operation)

    def _timeline(self, session: AsyncSession) -> EventTimeline:
        return EventTimeline(session, self.owner_id)


def _required(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field.replace('_', ' ').capitalize()} is required", field=field)
    return text


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    return text or None


def _budget(value: Any):
    try:
        budget = to_amount(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid budget: {value!r}", field="budget_initial") from exc
    if budget < ZERO:
        raise ValidationError("Budget cannot be negative", field="budget_initial")
    if budget > MAX_AMOUNT:
        raise ValidationError(f"Budget cannot exceed {MAX_AMOUNT}", field="budget_initial")
    return budget


def _check_dates(start: datetime | None, end: datetime | None, field: str) -> None:
    if start is not None and end is not None and end < start:
        raise ValidationError("End date cannot be before the start date", field=field)


def _money(value: Any) -> str:
    return f"{to_amount(value):,.2f} {get_config().currency}"
