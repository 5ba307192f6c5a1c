"""
GroupLedger - Organization Schemas

Pydantic schemas for organization management.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models import OrganizationType, ReportingType


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class OrganizationCreateRequest(BaseModel):
    """Schema for creating an organization."""
    name: str = Field(..., min_length=1, max_length=255)
    organization_type: OrganizationType = OrganizationType.SERVICES
    parent_id: Optional[UUID] = None
    ownership_percentage: Decimal = Field(Decimal("100"), ge=0, le=100)
    description: Optional[str] = None


class OrganizationUpdateRequest(BaseModel):
    """Schema for updating an organization. Only fields that are sent are changed."""
    organization_type: Optional[OrganizationType] = None
    reporting_type: Optional[ReportingType] = None
    parent_id: Optional[UUID] = None
    ownership_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None
    description: Optional[str] = None


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class OrganizationResponse(BaseModel):
    """Schema for organization response."""
    id: UUID
    name: str
    parent_id: Optional[UUID] = None
    organization_type: OrganizationType
    reporting_type: ReportingType
    ownership_percentage: Decimal
    is_active: bool
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
