"""
GroupLedger - KPI Router
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.config import Settings
from app.dependencies import get_settings_dep, get_storage
from app.schemas.kpi import KPICalculationResponse, KpiRecordResponse
from app.services.kpi_service import KPIService
from app.services.storage_service import StorageClient


router = APIRouter(prefix="/api/v1/kpis", tags=["KPIs"])


def get_service(
    storage: StorageClient = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
) -> KPIService:
    return KPIService(storage, settings)


@router.post("/{organization_id}/calculate", response_model=KPICalculationResponse)
async def calculate_kpis(
    organization_id: UUID,
    period: str = Query(...),
    service: KPIService = Depends(get_service),
):
    """Calculate and store KPIs; refused while uploads for the period are still running."""
    results = await service.calculate_for_organization(organization_id, period)
    return KPICalculationResponse(
        organization_id=organization_id,
        period=period,
        kpis=[result.to_dict() for result in results],
    )


@router.get("/{organization_id}", response_model=List[KpiRecordResponse])
async def list_kpis(
    organization_id: UUID,
    period: Optional[str] = Query(None),
    service: KPIService = Depends(get_service),
):
    return await service.list_kpis(organization_id, period)
