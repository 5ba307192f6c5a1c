"""
GroupLedger - Report Export Service

Exports financial statements and KPI reports as CSV or Excel:
- Balance Sheet
- Income Statement (consolidated for holdings)
- Cashflow (current position and 12-month forecast)
- KPI reports (gross margin, EBITDA, MRR, ARR, churn, CAC, LTV, LTV/CAC)

Column sets are fixed per report kind. CSV output uses RFC 4180 quoting.
"""

import csv
import io
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from app.config import Settings
from app.models import (
    AccountCategory,
    BankStatementLine,
    JournalLine,
    KPIType,
    KpiRecord,
    Organization,
    OrganizationType,
    Report,
    ReportStatus,
    REPORT_STATUS_ORDER,
)
from app.services.cashflow_service import CashflowService
from app.services.consolidation_service import (
    ConsolidatedFinancials,
    ConsolidationService,
    category_of,
    credit_of,
    debit_of,
)
from app.services.kpi_service import KPIService
from app.services.organization_service import OrganizationService
from app.services.storage_service import StorageClient
from app.utils.calculations import ZERO, round_to, total
from app.utils.error_handling import (
    BusinessRuleException,
    InvalidStatusTransitionException,
    NoFinancialDataException,
    NotFoundException,
)
from app.utils.normalizers import parse_period, period_months

logger = logging.getLogger(__name__)


class ReportFormat(str, PyEnum):
    """Export formats"""
    CSV = "csv"
    EXCEL = "xlsx"


class ReportCategory(str, PyEnum):
    FINANCIAL = "financial"
    KPI = "kpi"


class ReportType(str, PyEnum):
    """Types of reports"""
    BALANCE_SHEET = "balance_sheet"
    INCOME_STATEMENT = "income_statement"
    CASHFLOW = "cashflow"
    GROSS_MARGIN = "gross_margin"
    EBITDA = "ebitda"
    MRR = "mrr"
    ARR = "arr"
    CHURN = "churn"
    CAC = "cac"
    LTV = "ltv"
    LTV_CAC = "ltv_cac"


STATEMENT_COLUMNS = ["Category", "Subcategory", "Amount", "Period"]
KPI_COLUMNS = ["KPI", "Value", "Unit", "Period"]


@dataclass(frozen=True)
class ReportTypeConfig:
    """Registry entry for one report type."""
    report_type: ReportType
    name: str
    description: str
    category: ReportCategory
    applicable_for: Tuple[OrganizationType, ...]
    kpi_types: Tuple[KPIType, ...] = ()

    @property
    def columns(self) -> List[str]:
        return KPI_COLUMNS if self.category == ReportCategory.KPI else STATEMENT_COLUMNS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.report_type.value,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "applicable_for": [t.value for t in self.applicable_for],
            "columns": self.columns,
        }


ALL_TYPES = (OrganizationType.HOLDING, OrganizationType.SERVICES, OrganizationType.SAAS)
SERVICES_TYPES = (OrganizationType.HOLDING, OrganizationType.SERVICES)
SAAS_TYPES = (OrganizationType.SAAS,)

REPORT_TYPES: Dict[ReportType, ReportTypeConfig] = {
    config.report_type: config
    for config in [
        ReportTypeConfig(
            ReportType.BALANCE_SHEET, "Balance Sheet",
            "Assets, liabilities and equity",
            ReportCategory.FINANCIAL, ALL_TYPES,
        ),
        ReportTypeConfig(
            ReportType.INCOME_STATEMENT, "Income Statement",
            "Revenue and costs, consolidated for holdings",
            ReportCategory.FINANCIAL, ALL_TYPES,
        ),
        ReportTypeConfig(
            ReportType.CASHFLOW, "Cashflow",
            "Cash position and 12-month forecast",
            ReportCategory.FINANCIAL, ALL_TYPES,
        ),
        ReportTypeConfig(
            ReportType.GROSS_MARGIN, "Gross Margin",
            "Gross margin amount and percentage",
            ReportCategory.KPI, SERVICES_TYPES,
            (KPIType.GROSS_MARGIN, KPIType.GROSS_MARGIN_PERCENTAGE),
        ),
        ReportTypeConfig(
            ReportType.EBITDA, "EBITDA Performance",
            "Earnings before interest, taxes, depreciation and amortization",
            ReportCategory.KPI, SERVICES_TYPES,
            (KPIType.EBITDA, KPIType.EBITDA_PERCENTAGE),
        ),
        ReportTypeConfig(
            ReportType.MRR, "MRR (Monthly Recurring Revenue)",
            "Monthly recurring revenue",
            ReportCategory.KPI, SAAS_TYPES,
            (KPIType.MRR, KPIType.ARPU),
        ),
        ReportTypeConfig(
            ReportType.ARR, "ARR (Annual Recurring Revenue)",
            "Annual recurring revenue",
            ReportCategory.KPI, SAAS_TYPES,
            (KPIType.ARR,),
        ),
        ReportTypeConfig(
            ReportType.CHURN, "Churn Rate",
            "Share of customers that leave",
            ReportCategory.KPI, SAAS_TYPES,
            (KPIType.CUSTOMER_CHURN_RATE, KPIType.GROSS_REVENUE_RETENTION, KPIType.NET_REVENUE_RETENTION),
        ),
        ReportTypeConfig(
            ReportType.CAC, "CAC (Customer Acquisition Cost)",
            "Cost per new customer",
            ReportCategory.KPI, SAAS_TYPES,
            (KPIType.CAC, KPIType.MONTHS_TO_RECOVER_CAC),
        ),
        ReportTypeConfig(
            ReportType.LTV, "LTV (Lifetime Value)",
            "Total value of a customer over time",
            ReportCategory.KPI, SAAS_TYPES,
            (KPIType.LTV,),
        ),
        ReportTypeConfig(
            ReportType.LTV_CAC, "LTV/CAC Ratio",
            "Lifetime value against acquisition cost",
            ReportCategory.KPI, SAAS_TYPES,
            (KPIType.LTV_CAC_RATIO, KPIType.LTV, KPIType.CAC),
        ),
    ]
}


def get_report_types(organization_type: Optional[OrganizationType] = None) -> List[ReportTypeConfig]:
    """Report types, optionally limited to those applicable to an organization type."""
    return [
        config for config in REPORT_TYPES.values()
        if organization_type is None or organization_type in config.applicable_for
    ]


def get_report_config(report_type: str) -> ReportTypeConfig:
    try:
        return REPORT_TYPES[ReportType(report_type)]
    except ValueError:
        raise BusinessRuleException(f"Unknown report type '{report_type}'", rule="REPORT_TYPE")


# ===========================================
# ROW BUILDERS
# ===========================================

def statement_row(category: str, subcategory: Optional[str], amount: Decimal, period: str) -> List[Any]:
    return [category, subcategory or "-", round_to(amount), period]


def balance_sheet_rows(lines: Sequence[JournalLine], period: str) -> List[List[Any]]:
    """Balances per account: debit-positive for assets, credit-positive for liabilities and equity."""
    sections = [
        ("Assets", AccountCategory.ASSET, 1),
        ("Liabilities", AccountCategory.LIABILITY, -1),
        ("Equity", AccountCategory.EQUITY, -1),
    ]
    rows = []
    for label, category, sign in sections:
        balances: Dict[str, Decimal] = {}
        for line in lines:
            if category_of(line) != category:
                continue
            amount = (debit_of(line) - credit_of(line)) * sign
            balances[line.ledger_account] = balances.get(line.ledger_account, ZERO) + amount
        for account in sorted(balances):
            rows.append(statement_row(label, account, balances[account], period))
        rows.append(statement_row(label, "Total", total(balances.values()), period))
    return rows


def income_statement_rows(financials: ConsolidatedFinancials) -> List[List[Any]]:
    period = financials.period
    rows = [
        statement_row("Revenue", entity.name, entity.revenue, period)
        for entity in financials.by_entity.values()
    ]
    rows += [
        statement_row("Revenue", "Before eliminations", financials.revenue_before_elimination, period),
        statement_row("Revenue", "Intercompany eliminations", -financials.intercompany_eliminations, period),
        statement_row("Revenue", "Total", financials.revenue, period),
        statement_row("Direct costs", "Total", financials.direct_costs, period),
        statement_row("Gross margin", None, financials.gross_margin, period),
        statement_row("Operating expenses", "Total", financials.operating_expenses, period),
        statement_row("EBITDA", None, financials.ebitda, period),
        statement_row("Minority interest", None, financials.minority_interest, period),
        statement_row("Net income", None, financials.net_income, period),
    ]
    return rows


def cashflow_rows(summary: Dict[str, Any], period: str) -> List[List[Any]]:
    current = summary["current"]
    rows = [
        statement_row("Current position", "Cash", current["cash_position"], period),
        statement_row("Current position", "Receivables", current["receivables"], period),
        statement_row("Current position", "Payables", current["payables"], period),
        statement_row("Current position", "Net position", current["net_position"], period),
    ]
    for month in summary["full_forecast"]:
        label = f"{month['month']} ({month['confidence']})"
        rows.append(statement_row("Forecast inflow", label, month["inflow"], period))
        rows.append(statement_row("Forecast outflow", label, month["outflow"], period))
        rows.append(statement_row("Forecast closing balance", label, month["closing_balance"], period))
    return rows


def kpi_rows(config: ReportTypeConfig, kpis: Dict[KPIType, Tuple[Decimal, str]], period: str) -> List[List[Any]]:
    rows = []
    for kpi_type in config.kpi_types:
        value, unit = kpis.get(kpi_type, (ZERO, "-"))
        rows.append([kpi_type.value, value, unit or "-", period])
    return rows


# ===========================================
# RENDERING
# ===========================================

def render_csv(columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    """Delimited text, quoting only fields that contain commas, quotes or newlines."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(columns)
    writer.writerows(rows)
    return buffer.getvalue()


def render_excel(title: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> bytes:
    """Single-sheet workbook with a styled header row."""
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_fill = PatternFill(start_color="2D3748", end_color="2D3748", fill_type="solid")
    header_font = Font(bold=True, size=10, color="FFFFFF")
    currency_format = '#,##0.00'

    for col, name in enumerate(columns, start=1):
        cell = ws.cell(row=1, column=col, value=name)
        cell.fill = header_fill
        cell.font = header_font

    for row_index, row in enumerate(rows, start=2):
        for col, value in enumerate(row, start=1):
            cell = ws.cell(row=row_index, column=col, value=float(value) if isinstance(value, Decimal) else value)
            if isinstance(value, Decimal):
                cell.number_format = currency_format

    for col in range(1, len(columns) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 24

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def report_file_name(organization: Organization, report_type: ReportType, period: str, file_format: ReportFormat) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", organization.name.lower()).strip("_") or "organization"
    return f"{report_type.value}_{slug}_{period}.{file_format.value}"


# ===========================================
# SERVICE
# ===========================================

class ReportService:
    """Generates report files and tracks their lifecycle."""

    def __init__(self, storage: StorageClient, settings: Settings):
        self.storage = storage
        self.settings = settings
        self.organizations = OrganizationService(storage, settings)
        self.consolidation = ConsolidationService(storage, settings)
        self.kpis = KPIService(storage, settings)
        self.cashflow = CashflowService(storage, settings)

    async def _group_ids(self, organization: Organization) -> List[uuid.UUID]:
        group = await self.organizations.get_group(organization.id)
        return [org.id for org in group]

    async def _kpi_values(
        self,
        organization: Organization,
        period: str,
    ) -> Dict[KPIType, Tuple[Decimal, str]]:
        """Stored KPI values, calculated on the fly when none are stored."""
        stored = await self.storage.query(KpiRecord, organization_id=organization.id, period=period)
        if stored:
            return {r.kpi_type: (Decimal(r.value), r.unit.value) for r in stored}
        results = await self.kpis.calculate_kpis(organization, period)
        return {r.kpi_type: (r.value, r.unit.value) for r in results}

    async def _has_data(self, organization: Organization, config: ReportTypeConfig, period: str) -> bool:
        ids = await self._group_ids(organization)
        months = period_months(period)
        if await self.storage.query(JournalLine, organization_id=ids, period=months):
            return True
        if config.category == ReportCategory.KPI:
            return bool(await self.storage.query(KpiRecord, organization_id=organization.id, period=period))
        if config.report_type == ReportType.CASHFLOW:
            return bool(await self.storage.query(BankStatementLine, organization_id=ids))
        return False

    async def build_rows(self, organization: Organization, config: ReportTypeConfig, period: str) -> List[List[Any]]:
        if config.report_type == ReportType.BALANCE_SHEET:
            ids = await self._group_ids(organization)
            lines = await self.storage.query(JournalLine, organization_id=ids, period=period_months(period))
            return balance_sheet_rows(lines, period)

        if config.report_type == ReportType.INCOME_STATEMENT:
            run = await self.consolidation.consolidate_group(organization.id, period, persist_intercompany=False)
            return income_statement_rows(run.financials)

        if config.report_type == ReportType.CASHFLOW:
            as_of: date = parse_period(period)[1]
            summary = await self.cashflow.get_cashflow_summary(organization.id, as_of)
            return cashflow_rows(summary, period)

        return kpi_rows(config, await self._kpi_values(organization, period), period)

    async def generate_report(
        self,
        organization_id: uuid.UUID,
        report_type: str,
        period: str,
        generated_by: Optional[str] = None,
        file_format: ReportFormat = ReportFormat.CSV,
    ) -> Tuple[Report, bytes]:
        """
        Render a report, write it to the output directory and record it.

        Raises NoFinancialDataException when the organization has nothing
        to report for the period.
        """
        config = get_report_config(report_type)
        organization = await self.organizations.get_organization(organization_id)
        if organization.organization_type not in config.applicable_for:
            raise BusinessRuleException(
                f"Report '{config.report_type.value}' is not available for "
                f"{organization.organization_type.value} organizations",
                rule="REPORT_APPLICABILITY",
            )
        if not await self._has_data(organization, config, period):
            raise NoFinancialDataException(organization_id, period)

        rows = await self.build_rows(organization, config, period)
        if file_format == ReportFormat.EXCEL:
            content = render_excel(config.name, config.columns, rows)
        else:
            content = render_csv(config.columns, rows).encode("utf-8")

        output_dir = Path(self.settings.report_output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / report_file_name(organization, config.report_type, period, file_format)
        path.write_bytes(content)

        report = Report(
            id=uuid.uuid4(),
            organization_id=organization_id,
            report_type=config.report_type.value,
            period=period,
            generated_by=generated_by,
            file_path=str(path),
            file_format=file_format.value,
            status=ReportStatus.GENERATED,
        )
        await self.storage.insert(Report, [report])
        logger.info(f"Generated {config.report_type.value} report for {organization.name} ({period}): {path}")
        return report, content

    async def list_reports(
        self,
        organization_id: Optional[uuid.UUID] = None,
        period: Optional[str] = None,
    ) -> List[Report]:
        filters: Dict[str, Any] = {}
        if organization_id is not None:
            filters["organization_id"] = organization_id
        if period:
            filters["period"] = period
        return await self.storage.query(Report, order_by="-created_at", **filters)

    async def update_status(self, report_id: uuid.UUID, status: ReportStatus) -> Report:
        """Move a report forward in its lifecycle; backward or repeated moves are rejected."""
        report = await self.storage.get(Report, report_id)
        if report is None:
            raise NotFoundException("Report", report_id)
        if REPORT_STATUS_ORDER.index(status) <= REPORT_STATUS_ORDER.index(report.status):
            raise InvalidStatusTransitionException("Report", report.status.value, status.value)
        return await self.storage.update(Report, report_id, status=status)

    async def mark_sent(self, report_id: uuid.UUID) -> Report:
        return await self.update_status(report_id, ReportStatus.SENT)
