"""
GroupLedger - Upload Schemas
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models import UploadStatus


class UploadFieldResponse(BaseModel):
    field: str
    kind: str
    aliases: List[str]


class UploadTypeResponse(BaseModel):
    code: str
    description: str
    required_fields: List[str]
    fields: List[UploadFieldResponse]


class UploadBatchResponse(BaseModel):
    """Schema for upload batch response."""
    id: UUID
    file_name: str
    upload_type: str
    organization_id: Optional[UUID] = None
    period: Optional[str] = None
    status: UploadStatus
    record_count: int
    skipped_count: int
    error_message: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SkippedRowResponse(BaseModel):
    row_index: int
    missing_fields: List[str]

    model_config = ConfigDict(from_attributes=True)


class IngestionResponse(BaseModel):
    """Outcome of one upload."""
    batch_id: UUID
    upload_type: str
    status: UploadStatus
    period: Optional[str] = None
    record_count: int
    skipped_count: int
    skipped_rows: List[SkippedRowResponse] = Field(default_factory=list)
    created_organizations: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
