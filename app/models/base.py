"""
GroupLedger - Base Model

Base model class and mixins for all SQLAlchemy models.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from app.database import Base


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class BaseModel(Base, TimestampMixin):
    """
    Abstract base model with UUID primary key and timestamps.
    All models should inherit from this class.
    """

    __abstract__ = True

    # Fetch server-generated timestamps on flush; async sessions cannot lazy-load them
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"


class LedgerRecordMixin:
    """
    Columns shared by every canonical ledger record.

    ``entity_name`` keeps the raw company text from the export; the resolved
    organization is stored separately so unresolved rows stay traceable.
    Columns that were present in the export but not promoted to a typed
    column are kept in ``extra`` (stored as ``metadata``).
    """

    @declared_attr
    def upload_batch_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            Uuid(as_uuid=True),
            ForeignKey("upload_batches.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )

    @declared_attr
    def organization_id(cls) -> Mapped[Optional[uuid.UUID]]:
        return mapped_column(
            Uuid(as_uuid=True),
            ForeignKey("organizations.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        )

    entity_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    period: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        comment="YYYY-MM of the record date",
    )
    extra: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
