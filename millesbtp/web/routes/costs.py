"""Cost ledger routes for a worksite."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from millesbtp.models import CostEntryCreate, CostEntryUpdate, CostImpactPreview
from millesbtp.web.dependencies import get_worksite_service
from millesbtp.web.models import CostMutationResponse, CostOut, EventOut, WorksiteOut
from millesbtp.worksites import MutationResult, WorksiteService

router = APIRouter(prefix="/api/worksites/{worksite_id}/costs", tags=["costs"])


def _response(result: MutationResult) -> CostMutationResponse:
    return CostMutationResponse(
        worksite=WorksiteOut.model_validate(result.worksite),
        cost=CostOut.model_validate(result.record) if result.record is not None else None,
        event=EventOut.model_validate(result.event) if result.event is not None else None,
    )


@router.get("", response_model=list[CostOut])
async def list_costs(
    worksite_id: UUID,
    service: WorksiteService = Depends(get_worksite_service),
):
    return await service.list_costs(worksite_id)


@router.post("", response_model=CostMutationResponse, status_code=status.HTTP_201_CREATED)
async def add_cost(
    worksite_id: UUID,
    data: CostEntryCreate,
    service: WorksiteService = Depends(get_worksite_service),
):
    return _response(await service.add_cost(worksite_id, data))


@router.post("/preview", response_model=CostImpactPreview)
async def preview_cost(
    worksite_id: UUID,
    data: CostEntryCreate,
    service: WorksiteService = Depends(get_worksite_service),
):
    """Projected financials if this cost were added. Nothing is written."""
    return await service.preview_cost(worksite_id, data)


@router.patch("/{cost_id}", response_model=CostMutationResponse)
async def update_cost(
    worksite_id: UUID,
    cost_id: UUID,
    data: CostEntryUpdate,
    service: WorksiteService = Depends(get_worksite_service),
):
    return _response(await service.update_cost(worksite_id, cost_id, data))


@router.delete("/{cost_id}", response_model=CostMutationResponse)
async def delete_cost(
    worksite_id: UUID,
    cost_id: UUID,
    service: WorksiteService = Depends(get_worksite_service),
):
    return _response(await service.delete_cost(worksite_id, cost_id))
