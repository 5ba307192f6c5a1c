"""
GroupLedger - Organizations Router

Organization tree management: list, create and re-parent organizations,
and adjust ownership or type of organizations created by the entity resolver.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.config import Settings
from app.dependencies import get_settings_dep, get_storage
from app.schemas.organization import (
    OrganizationCreateRequest,
    OrganizationResponse,
    OrganizationUpdateRequest,
)
from app.services.organization_service import OrganizationService
from app.services.storage_service import StorageClient


router = APIRouter(prefix="/api/v1/organizations", tags=["Organizations"])


def get_service(
    storage: StorageClient = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
) -> OrganizationService:
    return OrganizationService(storage, settings)


@router.get("", response_model=List[OrganizationResponse])
async def list_organizations(
    include_inactive: bool = Query(False),
    service: OrganizationService = Depends(get_service),
):
    """List organizations by name."""
    return await service.list_organizations(include_inactive)


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    data: OrganizationCreateRequest,
    service: OrganizationService = Depends(get_service),
):
    return await service.create_organization(
        name=data.name,
        organization_type=data.organization_type,
        parent_id=data.parent_id,
        ownership_percentage=data.ownership_percentage,
        description=data.description,
    )


@router.get("/{organization_id}", response_model=OrganizationResponse)
async def get_organization(
    organization_id: UUID,
    service: OrganizationService = Depends(get_service),
):
    return await service.get_organization(organization_id)


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: UUID,
    data: OrganizationUpdateRequest,
    service: OrganizationService = Depends(get_service),
):
    """
    Update an organization.

    Setting ``parent_id`` re-parents the organization; a parent that would
    create a cycle is rejected.
    """
    return await service.update_organization(organization_id, **data.model_dump(exclude_unset=True))


@router.get("/{organization_id}/group", response_model=List[OrganizationResponse])
async def get_group(
    organization_id: UUID,
    service: OrganizationService = Depends(get_service),
):
    """The organization and everything below it, parents first."""
    return await service.get_group(organization_id)
