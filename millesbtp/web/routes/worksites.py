"""Worksite routes: CRUD, lifecycle status, recalculation, overview and timeline."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from millesbtp.models import WorksiteCreate, WorksiteStatus, WorksiteUpdate
from millesbtp.timeline import TimelineEntry
from millesbtp.web.dependencies import get_worksite_service
from millesbtp.web.models import (
    AmendmentOut,
    ClientOut,
    CostOut,
    RecalculationResponse,
    StatusChangeRequest,
    WorksiteOut,
    WorksiteOverviewResponse,
)
from millesbtp.worksites import WorksiteService

router = APIRouter(prefix="/api/worksites", tags=["worksites"])


@router.get("", response_model=list[WorksiteOut])
async def list_worksites(
    status_filter: WorksiteStatus | None = Query(default=None, alias="status"),
    service: WorksiteService = Depends(get_worksite_service),
):
    """Worksites of the actor, newest first."""
    return await service.list_worksites(status_filter)


@router.post("", response_model=WorksiteOut, status_code=status.HTTP_201_CREATED)
async def create_worksite(
    data: WorksiteCreate,
    service: WorksiteService = Depends(get_worksite_service),
):
    return await service.create_worksite(data)


@router.get("/{worksite_id}", response_model=WorksiteOverviewResponse)
async def get_worksite(
    worksite_id: UUID,
    service: WorksiteService = Depends(get_worksite_service),
):
    """Worksite with its ledger, category breakdown, amendments and timeline."""
    overview = await service.get_overview(worksite_id)
    return WorksiteOverviewResponse(
        worksite=WorksiteOut.model_validate(overview.worksite),
        client=ClientOut.model_validate(overview.client) if overview.client else None,
        costs=[CostOut.model_validate(cost) for cost in overview.costs],
        breakdown=list(overview.breakdown.values()),
        amendments=[AmendmentOut.model_validate(a) for a in overview.amendments],
        timeline=overview.timeline,
    )


@router.patch("/{worksite_id}", response_model=WorksiteOut)
async def update_worksite(
    worksite_id: UUID,
    data: WorksiteUpdate,
    service: WorksiteService = Depends(get_worksite_service),
):
    return await service.update_worksite(worksite_id, data)


@router.post("/{worksite_id}/status", response_model=WorksiteOut)
async def change_status(
    worksite_id: UUID,
    body: StatusChangeRequest,
    service: WorksiteService = Depends(get_worksite_service),
):
    return await service.change_status(worksite_id, body.status)


@router.post("/{worksite_id}/recalculate", response_model=RecalculationResponse)
async def recalculate(
    worksite_id: UUID,
    service: WorksiteService = Depends(get_worksite_service),
):
    """Reconcile cached financials with the ledger; a no-op when already in sync."""
    result = await service.recalculate(worksite_id)
    return RecalculationResponse(
        worksite=WorksiteOut.model_validate(result.worksite),
        changed_fields=sorted(result.changed),
    )


@router.get("/{worksite_id}/events", response_model=list[TimelineEntry])
async def list_events(
    worksite_id: UUID,
    service: WorksiteService = Depends(get_worksite_service),
):
    return await service.timeline(worksite_id)
