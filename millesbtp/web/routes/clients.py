"""Client routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from millesbtp.models import ClientCreate
from millesbtp.web.dependencies import get_worksite_service
from millesbtp.web.models import ClientOut
from millesbtp.worksites import WorksiteService

router = APIRouter(prefix="/api/clients", tags=["clients"])


@router.get("", response_model=list[ClientOut])
async def list_clients(service: WorksiteService = Depends(get_worksite_service)):
    return await service.list_clients()


@router.post("", response_model=ClientOut, status_code=status.HTTP_201_CREATED)
async def create_client(
    data: ClientCreate,
    service: WorksiteService = Depends(get_worksite_service),
):
    return await service.create_client(data)
