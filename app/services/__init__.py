"""
GroupLedger - Services Package

Business logic services.
"""

from app.services.storage_service import SQLAlchemyStorage, StorageClient, ChunkedWriter
from app.services.entity_resolver import EntityResolver
from app.services.ingestion_service import UploadIngestionService, IngestionResult
from app.services.organization_service import OrganizationService
from app.services.consolidation_service import ConsolidationService
from app.services.kpi_service import KPIService
from app.services.cashflow_service import CashflowService
from app.services.report_export_service import ReportService
from app.services.assistant_service import AssistantService
from app.services.sales_pipeline_service import SalesPipelineService

__all__ = [
    # Storage
    "SQLAlchemyStorage",
    "StorageClient",
    "ChunkedWriter",
    # Ingestion
    "EntityResolver",
    "UploadIngestionService",
    "IngestionResult",
    # Group
    "OrganizationService",
    "ConsolidationService",
    # Analysis
    "KPIService",
    "CashflowService",
    "SalesPipelineService",
    # Output
    "ReportService",
    "AssistantService",
]
