"""
GroupLedger - Routers Package

FastAPI route handlers.

Routers:
- organizations: Organization tree management
- uploads: CSV ingestion of Workday exports
- consolidation: Consolidated group figures
- kpis: Services and SaaS KPIs
- cashflow: Cash position and 12-month forecast
- reports: Report generation and download
- assistant: AI financial assistant
- sales: Sales pipeline analysis
"""

from app.routers import (
    organizations,
    uploads,
    consolidation,
    kpis,
    cashflow,
    reports,
    assistant,
    sales,
)

__all__ = [
    "organizations",
    "uploads",
    "consolidation",
    "kpis",
    "cashflow",
    "reports",
    "assistant",
    "sales",
]
