"""
GroupLedger - Report Schemas
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models import ReportStatus
from app.services.report_export_service import ReportFormat


class ReportGenerateRequest(BaseModel):
    """Schema for generating a report."""
    organization_id: UUID
    report_type: str = Field(..., min_length=1, max_length=50)
    period: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2]|Q[1-4])$")
    generated_by: Optional[str] = Field(None, max_length=255)
    file_format: ReportFormat = ReportFormat.CSV


class ReportResponse(BaseModel):
    """Schema for report response."""
    id: UUID
    organization_id: UUID
    report_type: str
    period: str
    generated_by: Optional[str] = None
    file_path: Optional[str] = None
    file_format: str
    status: ReportStatus
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
