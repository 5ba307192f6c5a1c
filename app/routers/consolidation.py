"""
GroupLedger - Consolidation Router

Consolidated figures for an organization and its subsidiaries. The GET
endpoints are read-only; ``POST /run`` also stores the derived
intercompany transactions.
"""

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from app.config import Settings
from app.dependencies import get_settings_dep, get_storage
from app.services.consolidation_service import (
    ConsolidationRun,
    ConsolidationService,
    export_consolidation_to_csv,
    generate_consolidation_report,
)
from app.services.storage_service import StorageClient


router = APIRouter(prefix="/api/v1/consolidation", tags=["Consolidation"])


def get_service(
    storage: StorageClient = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
) -> ConsolidationService:
    return ConsolidationService(storage, settings)


def run_to_dict(organization_id: UUID, run: ConsolidationRun) -> Dict[str, Any]:
    return {
        "organization_id": str(organization_id),
        **run.financials.to_dict(),
        "unconsolidated": [
            {
                "from_entity": txn.from_entity,
                "to_entity": txn.to_entity,
                "amount": txn.amount,
                "match_id": txn.match_id,
            }
            for txn in run.unconsolidated
        ],
    }


@router.get("/{organization_id}")
async def consolidate(
    organization_id: UUID,
    period: str = Query(..., description="YYYY-MM or YYYY-Qn"),
    service: ConsolidationService = Depends(get_service),
) -> Dict[str, Any]:
    """
    Consolidate an organization with everything it owns.

    Intercompany transactions between entities without a common parent
    are listed under ``unconsolidated`` and left in revenue.
    """
    run = await service.consolidate_group(organization_id, period, persist_intercompany=False)
    return run_to_dict(organization_id, run)


@router.post("/{organization_id}/run")
async def run_consolidation(
    organization_id: UUID,
    period: str = Query(..., description="YYYY-MM or YYYY-Qn"),
    service: ConsolidationService = Depends(get_service),
) -> Dict[str, Any]:
    """Consolidate and replace the stored intercompany transactions of the group."""
    run = await service.consolidate_group(organization_id, period)
    return run_to_dict(organization_id, run)


@router.get("/{organization_id}/report")
async def consolidation_report(
    organization_id: UUID,
    period: str = Query(...),
    service: ConsolidationService = Depends(get_service),
) -> Dict[str, Any]:
    run = await service.consolidate_group(organization_id, period, persist_intercompany=False)
    return generate_consolidation_report(run.financials, run.organizations)


@router.get("/{organization_id}/export")
async def export_consolidation(
    organization_id: UUID,
    period: str = Query(...),
    service: ConsolidationService = Depends(get_service),
):
    """Consolidation as a CSV download."""
    run = await service.consolidate_group(organization_id, period, persist_intercompany=False)
    filename = f"consolidation_{period}.csv"
    return Response(
        content=export_consolidation_to_csv(run.financials),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
