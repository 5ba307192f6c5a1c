"""
GroupLedger - Upload Batch Model

One uploaded CSV export. A batch owns every ledger record created from it.

Lifecycle: pending -> processing -> completed | failed
"""

import uuid
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, ForeignKey, Integer, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class UploadStatus(str, Enum):
    """Upload batch lifecycle status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_final(self) -> bool:
        return self in (UploadStatus.COMPLETED, UploadStatus.FAILED)


# Allowed forward moves; final states are never revisited
UPLOAD_STATUS_TRANSITIONS = {
    UploadStatus.PENDING: {UploadStatus.PROCESSING, UploadStatus.FAILED},
    UploadStatus.PROCESSING: {UploadStatus.COMPLETED, UploadStatus.FAILED},
    UploadStatus.COMPLETED: set(),
    UploadStatus.FAILED: set(),
}


class UploadBatch(BaseModel):
    """Upload batch model."""

    __tablename__ = "upload_batches"

    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    upload_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="Upload type code from the upload registry",
    )
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Target entity; a batch may span several entities",
    )
    period: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
        index=True,
        comment="YYYY-MM or YYYY-Qn derived from the row dates",
    )
    status: Mapped[UploadStatus] = mapped_column(
        SQLEnum(UploadStatus),
        default=UploadStatus.PENDING,
        nullable=False,
    )
    record_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)

    def __repr__(self) -> str:
        return f"<UploadBatch(file={self.file_name}, type={self.upload_type}, status={self.status})>"
