"""
GroupLedger - Cashflow Router
"""

from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.config import Settings
from app.dependencies import get_settings_dep, get_storage
from app.services.cashflow_service import CashflowService
from app.services.storage_service import StorageClient


router = APIRouter(prefix="/api/v1/cashflow", tags=["Cashflow"])


def get_service(
    storage: StorageClient = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
) -> CashflowService:
    return CashflowService(storage, settings)


@router.get("/forecast")
async def get_forecast(
    organization_id: Optional[UUID] = Query(None, description="Limit to an organization and its subsidiaries"),
    as_of: Optional[date] = Query(None),
    service: CashflowService = Depends(get_service),
) -> List[Dict[str, Any]]:
    """12-month forecast starting the month after ``as_of`` (default today)."""
    forecast = await service.forecast(organization_id, as_of)
    return [month.to_dict() for month in forecast]


@router.get("/summary")
async def get_summary(
    organization_id: Optional[UUID] = Query(None),
    as_of: Optional[date] = Query(None),
    service: CashflowService = Depends(get_service),
) -> Dict[str, Any]:
    return await service.get_cashflow_summary(organization_id, as_of)
