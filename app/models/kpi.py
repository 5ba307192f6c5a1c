"""
GroupLedger - KPI Record Model
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, String, UniqueConstraint, Uuid, func, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class KPIUnit(str, Enum):
    """Unit a KPI value is expressed in."""
    EUR = "EUR"
    PERCENT = "%"
    RATIO = "ratio"
    DAYS = "days"
    COUNT = "count"
    MONTHS = "months"
    SCORE = "score"


class KPIType(str, Enum):
    """KPI types produced by the services and SaaS calculators."""
    # Services
    GROSS_MARGIN = "gross_margin"
    GROSS_MARGIN_PERCENTAGE = "gross_margin_percentage"
    EBITDA = "ebitda"
    EBITDA_PERCENTAGE = "ebitda_percentage"
    BILLABLE_UTILIZATION = "billable_utilization"
    AVERAGE_HOURLY_RATE = "average_hourly_rate"
    REVENUE_PER_FTE = "revenue_per_fte"
    DAYS_SALES_OUTSTANDING = "days_sales_outstanding"
    OPERATING_CASH_FLOW = "operating_cash_flow"
    # SaaS
    MRR = "mrr"
    ARR = "arr"
    ARPU = "arpu"
    CUSTOMER_CHURN_RATE = "customer_churn_rate"
    GROSS_REVENUE_RETENTION = "gross_revenue_retention"
    NET_REVENUE_RETENTION = "net_revenue_retention"
    CAC = "cac"
    LTV = "ltv"
    LTV_CAC_RATIO = "ltv_cac_ratio"
    MONTHS_TO_RECOVER_CAC = "months_to_recover_cac"
    RULE_OF_40 = "rule_of_40"


class KpiRecord(BaseModel):
    """Calculated KPI for one (organization, period, kpi type)."""

    __tablename__ = "kpi_records"
    __table_args__ = (
        UniqueConstraint("organization_id", "period", "kpi_type"),
    )

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    kpi_type: Mapped[KPIType] = mapped_column(SQLEnum(KPIType), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=4), nullable=False)
    unit: Mapped[KPIUnit] = mapped_column(SQLEnum(KPIUnit), nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    extra: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
