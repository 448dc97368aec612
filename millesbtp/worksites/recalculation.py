"""Worksite recalculation: the single operation that writes derived fields.

Sums the ledger, runs the derivation engine, re-evaluates the three alert
flags and writes whatever differs. The ORM version column makes the write
conditional on the version that was read, so a concurrent writer surfaces
as StaleDataError at flush time instead of a lost update.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from millesbtp.amendments import AmendmentWorkflow
from millesbtp.db import repository
from millesbtp.db.models import WorksiteModel
from millesbtp.finance.engine import derive_financials, evaluate_alerts
from millesbtp.ledger import CostLedger
from millesbtp.models import AmendmentStatus, CostType
from millesbtp.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class RecalculationResult:
    worksite: WorksiteModel
    changed: dict[str, tuple[Any, Any]] = field(default_factory=dict)

    @property
    def wrote(self) -> bool:
        return bool(self.changed)


async def derived_fields(
    session: AsyncSession,
    owner_id: str,
    worksite: WorksiteModel,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Compute every derived column for the worksite without writing anything."""
    ledger = CostLedger(session, owner_id)
    committed = await ledger.sum_by_type(worksite.id, CostType.COMMITTED)
    estimated = await ledger.sum_by_type(worksite.id, CostType.ESTIMATED)

    pending = await AmendmentWorkflow(session, owner_id).list_for_worksite(
        worksite.id, AmendmentStatus.PENDING
    )

    snapshot = derive_financials(worksite.budget_initial, committed, estimated)
    alerts = evaluate_alerts(
        budget=snapshot.budget_initial,
        committed=snapshot.costs_committed,
        status=worksite.status,
        start_date=worksite.start_date,
        planned_end_date=worksite.planned_end_date,
        pending_requested_at=[amendment.requested_at for amendment in pending],
        now=now,
    )

    return {
        "costs_committed": snapshot.costs_committed,
        "costs_estimated": snapshot.costs_estimated,
        "margin_estimated": snapshot.margin_estimated,
        "margin_percentage": snapshot.margin_percentage,
        "profitability_status": snapshot.profitability_status.value,
        "has_budget_alert": alerts.has_budget_alert,
        "has_amendment_alert": alerts.has_amendment_alert,
        "has_admin_alert": alerts.has_admin_alert,
    }


async def recalculate_worksite(
    session: AsyncSession,
    owner_id: str,
    worksite_id: UUID,
    now: datetime | None = None,
) -> RecalculationResult:
    """Bring the worksite's cached financials in line with its ledger.

    Idempotent: when nothing differs no UPDATE is issued and the version
    is left alone.

    Raises:
        NotFound: If the worksite does not exist for this owner
    """
    now = to_naive_utc(now) or utcnow()
    worksite = await repository.worksites(session).find(worksite_id, owner_id)
    derived = await derived_fields(session, owner_id, worksite, now)

    changed = {
        key: (getattr(worksite, key), value)
        for key, value in derived.items()
        if getattr(worksite, key) != value
    }
    if not changed:
        logger.debug("Worksite %s already consistent", worksite_id)
        return RecalculationResult(worksite=worksite)

    for key, (_, value) in changed.items():
        setattr(worksite, key, value)
    worksite.updated_at = now
    await session.flush()

    logger.info(
        "Recalculated worksite %s (%s): %s",
        worksite_id,
        worksite.profitability_status,
        ", ".join(sorted(changed)),
    )
    return RecalculationResult(worksite=worksite, changed=changed)
