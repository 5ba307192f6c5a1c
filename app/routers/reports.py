"""
GroupLedger - Reports Router

Report types, generation, download and lifecycle.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse

from app.config import Settings
from app.dependencies import get_settings_dep, get_storage
from app.models import OrganizationType, Report
from app.schemas.report import ReportGenerateRequest, ReportResponse
from app.services.report_export_service import ReportFormat, ReportService, get_report_types
from app.services.storage_service import StorageClient
from app.utils.error_handling import NotFoundException


router = APIRouter(prefix="/api/v1/reports", tags=["Reports"])

MEDIA_TYPES = {
    ReportFormat.CSV.value: "text/csv",
    ReportFormat.EXCEL.value: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def get_service(
    storage: StorageClient = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
) -> ReportService:
    return ReportService(storage, settings)


@router.get("/types")
async def list_report_types(
    organization_type: Optional[OrganizationType] = Query(None),
) -> List[Dict[str, Any]]:
    return [config.to_dict() for config in get_report_types(organization_type)]


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def generate_report(
    data: ReportGenerateRequest,
    service: ReportService = Depends(get_service),
):
    report, _ = await service.generate_report(
        organization_id=data.organization_id,
        report_type=data.report_type,
        period=data.period,
        generated_by=data.generated_by,
        file_format=data.file_format,
    )
    return report


@router.get("", response_model=List[ReportResponse])
async def list_reports(
    organization_id: Optional[UUID] = Query(None),
    period: Optional[str] = Query(None),
    service: ReportService = Depends(get_service),
):
    return await service.list_reports(organization_id, period)


@router.get("/{report_id}/download")
async def download_report(
    report_id: UUID,
    storage: StorageClient = Depends(get_storage),
):
    report = await storage.get(Report, report_id)
    if report is None or not report.file_path or not Path(report.file_path).exists():
        raise NotFoundException("Report", report_id)
    return FileResponse(
        report.file_path,
        media_type=MEDIA_TYPES.get(report.file_format, "application/octet-stream"),
        filename=Path(report.file_path).name,
    )


@router.post("/{report_id}/send", response_model=ReportResponse)
async def mark_report_sent(
    report_id: UUID,
    service: ReportService = Depends(get_service),
):
    """Mark a generated report as sent. Sent reports cannot be sent again."""
    return await service.mark_sent(report_id)
