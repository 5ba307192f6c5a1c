"""
GroupLedger - KPI Schemas
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models import KPIType, KPIUnit


class KPIResultResponse(BaseModel):
    """One calculated KPI."""
    kpi_type: KPIType
    value: Decimal
    unit: KPIUnit
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class KPICalculationResponse(BaseModel):
    organization_id: UUID
    period: str
    kpis: List[KPIResultResponse]


class KpiRecordResponse(BaseModel):
    """Stored KPI value."""
    id: UUID
    organization_id: UUID
    period: str
    kpi_type: KPIType
    value: Decimal
    unit: KPIUnit
    calculated_at: Optional[datetime] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)
