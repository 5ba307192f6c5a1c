"""
GroupLedger - Report Model

Lifecycle: draft -> generated -> sent (forward only)
"""

import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, String, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class ReportStatus(str, Enum):
    """Report lifecycle status."""
    DRAFT = "draft"
    GENERATED = "generated"
    SENT = "sent"


REPORT_STATUS_ORDER = [ReportStatus.DRAFT, ReportStatus.GENERATED, ReportStatus.SENT]


class Report(BaseModel):
    """Generated report file."""

    __tablename__ = "reports"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    report_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    period: Mapped[str] = mapped_column(String(10), nullable=False)
    generated_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    file_format: Mapped[str] = mapped_column(String(10), default="csv", nullable=False)
    status: Mapped[ReportStatus] = mapped_column(
        SQLEnum(ReportStatus),
        default=ReportStatus.DRAFT,
        nullable=False,
    )
