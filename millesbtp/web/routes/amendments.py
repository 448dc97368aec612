"""Amendment (change order) routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from millesbtp.models import AmendmentCreate
from millesbtp.web.dependencies import get_worksite_service
from millesbtp.web.models import (
    AmendmentMutationResponse,
    AmendmentOut,
    DecisionRequest,
    EventOut,
    WorksiteOut,
)
from millesbtp.worksites import MutationResult, WorksiteService

router = APIRouter(prefix="/api/worksites/{worksite_id}/amendments", tags=["amendments"])


def _response(result: MutationResult) -> AmendmentMutationResponse:
    return AmendmentMutationResponse(
        worksite=WorksiteOut.model_validate(result.worksite),
        amendment=AmendmentOut.model_validate(result.record),
        event=EventOut.model_validate(result.event) if result.event is not None else None,
    )


@router.get("", response_model=list[AmendmentOut])
async def list_amendments(
    worksite_id: UUID,
    service: WorksiteService = Depends(get_worksite_service),
):
    return await service.list_amendments(worksite_id)


@router.post("", response_model=AmendmentMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_amendment(
    worksite_id: UUID,
    data: AmendmentCreate,
    service: WorksiteService = Depends(get_worksite_service),
):
    return _response(await service.create_amendment(worksite_id, data))


@router.post("/{amendment_id}/approve", response_model=AmendmentMutationResponse)
async def approve_amendment(
    worksite_id: UUID,
    amendment_id: UUID,
    body: DecisionRequest | None = None,
    service: WorksiteService = Depends(get_worksite_service),
):
    """Approve: the cost impact is added to the worksite budget."""
    notes = body.notes if body else None
    return _response(await service.approve_amendment(worksite_id, amendment_id, notes))


@router.post("/{amendment_id}/reject", response_model=AmendmentMutationResponse)
async def reject_amendment(
    worksite_id: UUID,
    amendment_id: UUID,
    body: DecisionRequest | None = None,
    service: WorksiteService = Depends(get_worksite_service),
):
    notes = body.notes if body else None
    return _response(await service.reject_amendment(worksite_id, amendment_id, notes))
