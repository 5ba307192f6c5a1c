"""
GroupLedger - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, LedgerRecordMixin
from app.models.organization import Organization, OrganizationType, ReportingType
from app.models.upload import UploadBatch, UploadStatus, UPLOAD_STATUS_TRANSITIONS
from app.models.ledger import (
    AccountCategory,
    ACCOUNT_CATEGORY_BY_PREFIX,
    classify_account,
    BankDirection,
    JournalLine,
    CustomerInvoice,
    SupplierInvoice,
    CustomerContract,
    TimeEntry,
    CustomerPayment,
    SupplierPayment,
    BankStatementLine,
    BillingInstallment,
    SalesDeal,
)
from app.models.intercompany import IntercompanyTransaction
from app.models.kpi import KpiRecord, KPIType, KPIUnit
from app.models.report import Report, ReportStatus, REPORT_STATUS_ORDER

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "LedgerRecordMixin",
    # Organization
    "Organization",
    "OrganizationType",
    "ReportingType",
    # Uploads
    "UploadBatch",
    "UploadStatus",
    "UPLOAD_STATUS_TRANSITIONS",
    # Ledger records
    "AccountCategory",
    "ACCOUNT_CATEGORY_BY_PREFIX",
    "classify_account",
    "BankDirection",
    "JournalLine",
    "CustomerInvoice",
    "SupplierInvoice",
    "CustomerContract",
    "TimeEntry",
    "CustomerPayment",
    "SupplierPayment",
    "BankStatementLine",
    "BillingInstallment",
    "SalesDeal",
    # Derived
    "IntercompanyTransaction",
    "KpiRecord",
    "KPIType",
    "KPIUnit",
    "Report",
    "ReportStatus",
    "REPORT_STATUS_ORDER",
]
