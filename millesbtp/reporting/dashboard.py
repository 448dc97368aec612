"""Owner dashboard: profitability counts, totals and the "actions required" list.

Alert flags are re-evaluated before the dashboard is built, because the
amendment and admin alerts depend on wall-clock time and are otherwise only
refreshed when a worksite is written to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from millesbtp.config import get_config
from millesbtp.db.models import AmendmentModel, ClientModel, WorksiteModel
from millesbtp.db.retry import run_unit_of_work
from millesbtp.errors import ValidationError
from millesbtp.finance.engine import ZERO, describe_alerts, evaluate_alerts, to_amount
from millesbtp.models import AmendmentStatus, ProfitabilityStatus, WorksiteAlert, WorksiteStatus
from millesbtp.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

DASHBOARD_STATUSES = (WorksiteStatus.ACTIVE.value, WorksiteStatus.COMPLETED.value)


@dataclass
class DashboardRow:
    worksite: WorksiteModel
    client_name: str | None = None

    def matches(self, search: str) -> bool:
        needle = search.lower()
        haystack = (
            self.worksite.name,
            self.worksite.code,
            self.worksite.address,
            self.client_name,
        )
        return any(value and needle in value.lower() for value in haystack)


@dataclass
class DashboardSummary:
    """Dashboard view for one owner."""

    total: int
    profitable: int
    watch: int
    at_risk: int

    total_budget: Decimal
    total_committed: Decimal
    total_margin: Decimal
    currency: str

    alerts: list[WorksiteAlert] = field(default_factory=list)
    worksites: list[DashboardRow] = field(default_factory=list)
    computed_at: datetime = field(default_factory=utcnow)


async def refresh_alerts(
    session: AsyncSession,
    owner_id: str,
    now: datetime | None = None,
) -> int:
    """Re-evaluate the three alert flags of active and completed worksites.

    Only rows whose flags changed are written.

    Returns:
        Number of worksites updated
    """
    now = to_naive_utc(now) or utcnow()

    worksites = (
        await session.execute(
            select(WorksiteModel).where(
                WorksiteModel.owner_id == owner_id,
                WorksiteModel.status.in_(DASHBOARD_STATUSES),
            )
        )
    ).scalars().all()

    pending: dict = {}
    rows = await session.execute(
        select(AmendmentModel.worksite_id, AmendmentModel.requested_at).where(
            AmendmentModel.owner_id == owner_id,
            AmendmentModel.status == AmendmentStatus.PENDING.value,
        )
    )
    for worksite_id, requested_at in rows:
        pending.setdefault(worksite_id, []).append(requested_at)

    updated = 0
    for worksite in worksites:
        flags = evaluate_alerts(
            budget=worksite.budget_initial,
            committed=worksite.costs_committed,
            status=worksite.status,
            start_date=worksite.start_date,
            planned_end_date=worksite.planned_end_date,
            pending_requested_at=pending.get(worksite.id, []),
            now=now,
        )
        if (
            worksite.has_budget_alert != flags.has_budget_alert
            or worksite.has_amendment_alert != flags.has_amendment_alert
            or worksite.has_admin_alert != flags.has_admin_alert
        ):
            worksite.has_budget_alert = flags.has_budget_alert
            worksite.has_amendment_alert = flags.has_amendment_alert
            worksite.has_admin_alert = flags.has_admin_alert
            worksite.updated_at = now
            updated += 1

    if updated:
        await session.flush()
    logger.info(
        "Refreshed alerts for %s: %d worksite(s), %d updated", owner_id, len(worksites), updated
    )
    return updated


async def build_dashboard(
    session: AsyncSession,
    owner_id: str,
    now: datetime | None = None,
    status_filter: ProfitabilityStatus | str | None = None,
    search: str | None = None,
    currency: str = "EUR",
) -> DashboardSummary:
    """Assemble the dashboard from the cached worksite fields.

    Counts, totals and alerts always cover every active and completed
    worksite; the filter and search only narrow the worksite list.
    """
    now = to_naive_utc(now) or utcnow()

    result = await session.execute(
        select(WorksiteModel, ClientModel.name)
        .outerjoin(ClientModel, WorksiteModel.client_id == ClientModel.id)
        .where(
            WorksiteModel.owner_id == owner_id,
            WorksiteModel.status.in_(DASHBOARD_STATUSES),
        )
        .order_by(WorksiteModel.created_at.desc())
    )
    rows = [DashboardRow(worksite=worksite, client_name=name) for worksite, name in result]

    counts = {status.value: 0 for status in ProfitabilityStatus}
    total_budget = total_committed = ZERO
    alerts: list[WorksiteAlert] = []

    for row in rows:
        worksite = row.worksite
        counts[worksite.profitability_status] = counts.get(worksite.profitability_status, 0) + 1
        total_budget += to_amount(worksite.budget_initial)
        total_committed += to_amount(worksite.costs_committed)
        alerts.extend(describe_alerts(_alert_view(row), now=now, currency=currency))

    listed = rows
    if status_filter:
        try:
            wanted = ProfitabilityStatus(status_filter).value
        except ValueError as exc:
            raise ValidationError(
                f"Unknown profitability status: {status_filter!r}", field="status"
            ) from exc
        listed = [row for row in listed if row.worksite.profitability_status == wanted]
    if search and search.strip():
        listed = [row for row in listed if row.matches(search.strip())]

    return DashboardSummary(
        total=len(rows),
        profitable=counts[ProfitabilityStatus.PROFITABLE.value],
        watch=counts[ProfitabilityStatus.WATCH.value],
        at_risk=counts[ProfitabilityStatus.AT_RISK.value],
        total_budget=to_amount(total_budget),
        total_committed=to_amount(total_committed),
        total_margin=to_amount(total_budget - total_committed),
        currency=currency,
        alerts=alerts,
        worksites=listed,
        computed_at=now,
    )


def _alert_view(row: DashboardRow) -> dict:
    worksite = row.worksite
    return {
        "id": worksite.id,
        "name": worksite.name,
        "client_name": row.client_name,
        "budget_initial": worksite.budget_initial,
        "costs_committed": worksite.costs_committed,
        "planned_end_date": worksite.planned_end_date,
        "has_budget_alert": worksite.has_budget_alert,
        "has_amendment_alert": worksite.has_amendment_alert,
        "has_admin_alert": worksite.has_admin_alert,
    }


async def load_dashboard(
    session_factory: async_sessionmaker[AsyncSession],
    owner_id: str,
    now: datetime | None = None,
    status_filter: ProfitabilityStatus | str | None = None,
    search: str | None = None,
) -> DashboardSummary:
    """Refresh alert flags, then build the dashboard, in one transaction."""
    currency = get_config().currency

    async def operation(session: AsyncSession) -> DashboardSummary:
        await refresh_alerts(session, owner_id, now)
        return await build_dashboard(session, owner_id, now, status_filter, search, currency)

    return await run_unit_of_work(session_factory, operation)
