"""
GroupLedger - KPI Service

Two calculator families keyed by organization type:
- Professional services (margins, utilization, rates, DSO, cash flow)
- SaaS (recurring revenue, churn, retention, unit economics)

Both calculators are pure functions of their inputs and return an ordered
list of KPI results. Empty inputs give zero-valued KPIs.

Fixed assumptions are collected in KPIAssumptions:
- DSO treats the period as a quarter (90 days)
- MRR treats every active contract as an annual contract
- Net revenue retention equals gross retention (no expansion revenue)
- LTV assumes a 24-month customer lifetime
- Rule of 40 uses a placeholder growth rate until revenue history exists
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from app.config import Settings
from app.models import (
    AccountCategory,
    CustomerContract,
    CustomerInvoice,
    JournalLine,
    KPIType,
    KPIUnit,
    KpiRecord,
    Organization,
    OrganizationType,
    SupplierInvoice,
    TimeEntry,
    UploadBatch,
    UploadStatus,
)
from app.services.consolidation_service import debit_of, summarize_lines
from app.services.organization_service import OrganizationService
from app.services.storage_service import StorageClient
from app.utils.calculations import HUNDRED, ZERO, percentage, round_to, safe_divide, total
from app.utils.error_handling import InvalidPeriodException, PeriodNotReadyException
from app.utils.normalizers import parse_period, period_months

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KPIAssumptions:
    """Heuristic constants used by the KPI calculators."""
    dso_period_days: int = 90
    months_per_contract_year: int = 12
    average_contract_months: int = 24
    growth_rate_placeholder: Decimal = Decimal("30")
    active_contract_statuses: FrozenSet[str] = frozenset({"Approved", "Active"})
    churned_contract_status: str = "Terminated"
    paid_invoice_status: str = "Paid"
    sales_marketing_markers: tuple = ("Sales", "Marketing")
    subscription_invoice_types: FrozenSet[str] = frozenset({"Subscription", "Standard"})


DEFAULT_ASSUMPTIONS = KPIAssumptions()


@dataclass
class KPIResult:
    """One calculated KPI."""
    kpi_type: KPIType
    value: Decimal
    unit: KPIUnit
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kpi_type": self.kpi_type.value,
            "value": self.value,
            "unit": self.unit.value,
            "metadata": self.metadata,
        }


def _value(value: Optional[Decimal]) -> Decimal:
    return value if value is not None else ZERO


def metadata_json(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """KPI metadata with decimals as strings, ready for a JSON column."""
    return {key: str(value) if isinstance(value, Decimal) else value for key, value in metadata.items()}


# ===========================================
# SERVICES KPIs
# ===========================================

def calculate_services_kpis(
    journal_lines: Iterable[JournalLine],
    time_entries: Iterable[TimeEntry],
    customer_invoices: Iterable[CustomerInvoice],
    supplier_invoices: Iterable[SupplierInvoice],
    period: str,
    assumptions: KPIAssumptions = DEFAULT_ASSUMPTIONS,
) -> List[KPIResult]:
    """Professional services KPIs for one period."""
    time_entries = list(time_entries)
    sums = summarize_lines(journal_lines)

    revenue = sums[AccountCategory.REVENUE]
    direct_costs = sums[AccountCategory.DIRECT_COST]
    operating_expenses = sums[AccountCategory.OPERATING_EXPENSE]
    gross_margin = revenue - direct_costs
    ebitda = gross_margin - operating_expenses

    total_hours = total(_value(e.total_hours) for e in time_entries)
    billable_hours = total(_value(e.billable_hours) for e in time_entries)
    billable_amount = total(
        _value(e.amount_to_bill) for e in time_entries if _value(e.billable_hours) > 0
    )
    workers = {e.worker for e in time_entries if e.worker}

    receivables = total(
        _value(inv.amount_due)
        for inv in customer_invoices
        if inv.payment_status != assumptions.paid_invoice_status
    )
    payables = total(
        _value(inv.balance_due) for inv in supplier_invoices if _value(inv.balance_due) > 0
    )

    daily_revenue = safe_divide(revenue, assumptions.dso_period_days)
    dso = safe_divide(receivables, daily_revenue)

    return [
        KPIResult(
            KPIType.GROSS_MARGIN,
            round_to(gross_margin),
            KPIUnit.EUR,
            {"revenue": round_to(revenue), "direct_costs": round_to(direct_costs)},
        ),
        KPIResult(KPIType.GROSS_MARGIN_PERCENTAGE, percentage(gross_margin, revenue), KPIUnit.PERCENT),
        KPIResult(
            KPIType.EBITDA,
            round_to(ebitda),
            KPIUnit.EUR,
            {"operating_expenses": round_to(operating_expenses)},
        ),
        KPIResult(KPIType.EBITDA_PERCENTAGE, percentage(ebitda, revenue), KPIUnit.PERCENT),
        KPIResult(
            KPIType.BILLABLE_UTILIZATION,
            percentage(billable_hours, total_hours),
            KPIUnit.PERCENT,
            {"total_hours": round_to(total_hours), "billable_hours": round_to(billable_hours)},
        ),
        KPIResult(
            KPIType.AVERAGE_HOURLY_RATE,
            round_to(safe_divide(billable_amount, billable_hours)),
            KPIUnit.EUR,
        ),
        KPIResult(
            KPIType.REVENUE_PER_FTE,
            round_to(safe_divide(revenue, len(workers))),
            KPIUnit.EUR,
            {"fte_count": len(workers)},
        ),
        KPIResult(
            KPIType.DAYS_SALES_OUTSTANDING,
            round_to(dso, 0),
            KPIUnit.DAYS,
            {"total_receivables": round_to(receivables), "period_days": assumptions.dso_period_days},
        ),
        KPIResult(
            KPIType.OPERATING_CASH_FLOW,
            round_to(ebitda + payables - receivables),
            KPIUnit.EUR,
            {"total_payables": round_to(payables), "total_receivables": round_to(receivables)},
        ),
    ]


# ===========================================
# SAAS KPIs
# ===========================================

def _is_new_in_period(contract: CustomerContract, period_start: Optional[date]) -> bool:
    if period_start is None or contract.contract_start_date is None:
        return False
    return contract.contract_start_date >= period_start


def calculate_saas_kpis(
    journal_lines: Iterable[JournalLine],
    customer_contracts: Iterable[CustomerContract],
    customer_invoices: Iterable[CustomerInvoice],
    period: str,
    assumptions: KPIAssumptions = DEFAULT_ASSUMPTIONS,
) -> List[KPIResult]:
    """SaaS KPIs for one period."""
    journal_lines = list(journal_lines)
    contracts = list(customer_contracts)
    active = [c for c in contracts if c.contract_status in assumptions.active_contract_statuses]

    contract_value = total(
        c.remaining_amount if c.remaining_amount is not None else _value(c.contract_amount)
        for c in active
    )
    mrr = contract_value / assumptions.months_per_contract_year
    arr = mrr * assumptions.months_per_contract_year

    revenue = total(
        _value(inv.invoice_amount)
        for inv in customer_invoices
        if inv.invoice_type in assumptions.subscription_invoice_types
    )

    customers = {c.customer_id for c in active}
    arpu = safe_divide(mrr, len(customers))

    terminated = sum(1 for c in contracts if c.contract_status == assumptions.churned_contract_status)
    churn_rate = percentage(terminated, len(contracts))
    retention = HUNDRED - churn_rate

    sales_marketing = total(
        debit_of(line)
        for line in journal_lines
        if any(marker in (line.cost_center or "") for marker in assumptions.sales_marketing_markers)
        and debit_of(line) > 0
    )
    try:
        period_start: Optional[date] = parse_period(period)[0]
    except InvalidPeriodException:
        period_start = None
    new_customers = sum(1 for c in active if _is_new_in_period(c, period_start))
    cac = safe_divide(sales_marketing, new_customers)

    ltv = arpu * assumptions.average_contract_months
    profit_margin = safe_divide(revenue - sales_marketing, revenue) * HUNDRED
    rule_of_40 = assumptions.growth_rate_placeholder + profit_margin

    return [
        KPIResult(KPIType.MRR, round_to(mrr), KPIUnit.EUR, {"active_contracts": len(active)}),
        KPIResult(KPIType.ARR, round_to(arr), KPIUnit.EUR),
        KPIResult(KPIType.ARPU, round_to(arpu), KPIUnit.EUR, {"customer_count": len(customers)}),
        KPIResult(
            KPIType.CUSTOMER_CHURN_RATE,
            churn_rate,
            KPIUnit.PERCENT,
            {"terminated": terminated, "total": len(contracts)},
        ),
        KPIResult(KPIType.GROSS_REVENUE_RETENTION, round_to(retention), KPIUnit.PERCENT),
        KPIResult(KPIType.NET_REVENUE_RETENTION, round_to(retention), KPIUnit.PERCENT),
        KPIResult(
            KPIType.CAC,
            round_to(cac),
            KPIUnit.EUR,
            {"sales_marketing_expenses": round_to(sales_marketing), "new_customers": new_customers},
        ),
        KPIResult(KPIType.LTV, round_to(ltv), KPIUnit.EUR),
        KPIResult(KPIType.LTV_CAC_RATIO, round_to(safe_divide(ltv, cac)), KPIUnit.RATIO),
        KPIResult(KPIType.MONTHS_TO_RECOVER_CAC, round_to(safe_divide(cac, arpu), 1), KPIUnit.MONTHS),
        KPIResult(
            KPIType.RULE_OF_40,
            round_to(rule_of_40),
            KPIUnit.SCORE,
            {
                "growth_rate": assumptions.growth_rate_placeholder,
                "profit_margin": round_to(profit_margin),
            },
        ),
    ]


# ===========================================
# SERVICE
# ===========================================

def overlaps(batch_period: Optional[str], months: Iterable[str]) -> bool:
    """Whether a batch may hold data for any of the months; unknown periods always may."""
    if not batch_period:
        return True
    try:
        return bool(set(period_months(batch_period)) & set(months))
    except InvalidPeriodException:
        return True


class KPIService:
    """Calculates, stores and lists KPIs per organization and period."""

    def __init__(
        self,
        storage: StorageClient,
        settings: Settings,
        assumptions: KPIAssumptions = DEFAULT_ASSUMPTIONS,
    ):
        self.storage = storage
        self.settings = settings
        self.assumptions = assumptions
        self.organizations = OrganizationService(storage, settings)

    async def ensure_period_ready(self, period: str) -> None:
        """Raise PeriodNotReadyException while uploads for the period are still open."""
        months = period_months(period)
        open_batches = await self.storage.query(
            UploadBatch,
            status=[UploadStatus.PENDING, UploadStatus.PROCESSING],
        )
        blocking = [batch for batch in open_batches if overlaps(batch.period, months)]
        if blocking:
            raise PeriodNotReadyException(period, [str(batch.id) for batch in blocking])

    async def _scope(self, organization: Organization) -> List[Organization]:
        if organization.organization_type == OrganizationType.HOLDING:
            return await self.organizations.get_group(organization.id)
        return [organization]

    async def _load(self, model, organization_ids: List[uuid.UUID], months: List[str]) -> List[Any]:
        return await self.storage.query(model, organization_id=organization_ids, period=months)

    async def calculate_kpis(self, organization: Organization, period: str) -> List[KPIResult]:
        """Run the calculator family matching the organization type."""
        scope = await self._scope(organization)
        ids = [org.id for org in scope]
        months = period_months(period)
        journal_lines = await self._load(JournalLine, ids, months)
        customer_invoices = await self._load(CustomerInvoice, ids, months)

        if organization.organization_type == OrganizationType.SAAS:
            # Contracts describe current state, so they are not limited to the period
            contracts = await self.storage.query(CustomerContract, organization_id=ids)
            return calculate_saas_kpis(journal_lines, contracts, customer_invoices, period, self.assumptions)

        time_entries = await self._load(TimeEntry, ids, months)
        supplier_invoices = await self._load(SupplierInvoice, ids, months)
        return calculate_services_kpis(
            journal_lines, time_entries, customer_invoices, supplier_invoices, period, self.assumptions
        )

    async def calculate_for_organization(self, organization_id: uuid.UUID, period: str) -> List[KPIResult]:
        """Calculate and store the KPIs of an organization, replacing earlier values."""
        organization = await self.organizations.get_organization(organization_id)
        await self.ensure_period_ready(period)

        results = await self.calculate_kpis(organization, period)

        await self.storage.delete(KpiRecord, organization_id=organization_id, period=period)
        calculated_at = datetime.now(timezone.utc)
        await self.storage.insert(KpiRecord, [
            KpiRecord(
                id=uuid.uuid4(),
                organization_id=organization_id,
                period=period,
                kpi_type=result.kpi_type,
                value=result.value,
                unit=result.unit,
                calculated_at=calculated_at,
                extra=metadata_json(result.metadata),
            )
            for result in results
        ])
        logger.info(f"Calculated {len(results)} KPIs for {organization.name} ({period})")
        return results

    async def list_kpis(self, organization_id: uuid.UUID, period: Optional[str] = None) -> List[KpiRecord]:
        await self.organizations.get_organization(organization_id)
        filters: Dict[str, Any] = {"organization_id": organization_id}
        if period:
            filters["period"] = period
        return await self.storage.query(KpiRecord, order_by="kpi_type", **filters)
