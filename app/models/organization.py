"""
GroupLedger - Organization Model

Legal entities of the group and their ownership tree.

Organization Types:
- Holding: owns other entities, consolidates them
- Services: professional services company (hours, margins)
- SaaS: subscription software company (recurring revenue)
"""

import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Numeric, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class OrganizationType(str, Enum):
    """Organization types, selecting the KPI family used for the entity."""
    HOLDING = "holding"
    SERVICES = "services"
    SAAS = "saas"


class ReportingType(str, Enum):
    """Whether the entity reports on its own or as a consolidated group."""
    STANDALONE = "standalone"
    CONSOLIDATED = "consolidated"


class Organization(BaseModel):
    """
    Organization model - one legal entity in the group.

    ``ownership_percentage`` is the share held by the immediate parent only.
    """

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        comment="Canonical display name produced by the entity resolver",
    )
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    organization_type: Mapped[OrganizationType] = mapped_column(
        SQLEnum(OrganizationType),
        default=OrganizationType.SERVICES,
        nullable=False,
    )
    reporting_type: Mapped[ReportingType] = mapped_column(
        SQLEnum(ReportingType),
        default=ReportingType.STANDALONE,
        nullable=False,
    )
    ownership_percentage: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2),
        default=Decimal("100"),
        nullable=False,
        comment="Percentage held by the immediate parent (0-100)",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Organization(name={self.name}, type={self.organization_type})>"
