"""
GroupLedger - Sales Pipeline Router
"""

from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.config import Settings
from app.dependencies import get_settings_dep, get_storage
from app.services.sales_pipeline_service import SalesPipelineService
from app.services.storage_service import StorageClient


router = APIRouter(prefix="/api/v1/sales", tags=["Sales"])


@router.get("/{organization_id}/pipeline")
async def get_pipeline(
    organization_id: UUID,
    as_of: Optional[date] = Query(None),
    storage: StorageClient = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
) -> Dict[str, Any]:
    """Stage funnel, owner performance and pipeline health of uploaded deals."""
    return await SalesPipelineService(storage, settings).get_pipeline_analysis(organization_id, as_of)
