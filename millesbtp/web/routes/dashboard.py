"""Dashboard route: counts, totals, alerts and the filtered worksite list."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from millesbtp.models import ProfitabilityStatus
from millesbtp.reporting import load_dashboard
from millesbtp.web.dependencies import get_actor, get_sessions
from millesbtp.web.models import DashboardResponse, DashboardWorksite, WorksiteOut

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardResponse)
async def dashboard(
    status_filter: ProfitabilityStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, alias="q"),
    actor: str = Depends(get_actor),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
):
    """Alert flags are refreshed before the summary is computed."""
    summary = await load_dashboard(sessions, actor, status_filter=status_filter, search=search)
    return DashboardResponse(
        total=summary.total,
        profitable=summary.profitable,
        watch=summary.watch,
        at_risk=summary.at_risk,
        total_budget=summary.total_budget,
        total_committed=summary.total_committed,
        total_margin=summary.total_margin,
        currency=summary.currency,
        alerts=summary.alerts,
        worksites=[
            DashboardWorksite(
                worksite=WorksiteOut.model_validate(row.worksite),
                client_name=row.client_name,
            )
            for row in summary.worksites
        ],
        computed_at=summary.computed_at,
    )
