"""
GroupLedger - KPI Tests

Professional services and SaaS KPI calculators, and the KPI service.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.models import (
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
from app.services.kpi_service import (
    KPIAssumptions,
    KPIService,
    calculate_saas_kpis,
    calculate_services_kpis,
    metadata_json,
    overlaps,
)
from app.services.record_mapper import map_row
from app.utils.error_handling import PeriodNotReadyException
from tests.factories import make_batch, make_line, make_organization


def _common(organization, period="2024-01"):
    return {
        "id": uuid.uuid4(),
        "upload_batch_id": uuid.uuid4(),
        "organization_id": organization.id if organization else None,
        "entity_name": organization.name if organization else "",
        "period": period,
        "extra": {},
    }


def time_entry(org, worker, hours, billable, amount):
    return TimeEntry(
        **_common(org),
        worker=worker,
        entry_date=date(2024, 1, 10),
        total_hours=Decimal(hours),
        billable_hours=Decimal(billable),
        amount_to_bill=Decimal(amount),
    )


def customer_invoice(org, amount_due, payment_status="Unpaid", invoice_type="Standard", invoice_amount="0"):
    return CustomerInvoice(
        **_common(org),
        invoice=f"INV-{uuid.uuid4().hex[:6]}",
        customer="Acme",
        invoice_date=date(2024, 1, 5),
        invoice_amount=Decimal(invoice_amount),
        amount_due=Decimal(amount_due),
        payment_status=payment_status,
        invoice_type=invoice_type,
    )


def supplier_invoice(org, balance_due):
    return SupplierInvoice(
        **_common(org),
        supplier_invoice=f"SI-{uuid.uuid4().hex[:6]}",
        supplier="Hosting Co",
        invoice_date=date(2024, 1, 8),
        balance_due=Decimal(balance_due),
    )


def contract(org, customer_id, status, amount, remaining=None, start=date(2023, 6, 1)):
    return CustomerContract(
        **_common(org),
        contract=f"CON-{customer_id}",
        customer_id=customer_id,
        contract_status=status,
        contract_amount=Decimal(amount),
        remaining_amount=Decimal(remaining) if remaining is not None else None,
        contract_start_date=start,
    )


def by_type(results):
    return {r.kpi_type: r for r in results}


@pytest.fixture
def acme():
    return make_organization("Acme Services")


@pytest.fixture
def services_inputs(acme):
    lines = [
        make_line(acme, "4000", credit="10000"),
        make_line(acme, "6000", debit="4000"),
        make_line(acme, "7000", debit="1000"),
    ]
    entries = [
        time_entry(acme, "Jane", "8", "6", "600"),
        time_entry(acme, "John", "8", "2", "200"),
        time_entry(acme, "Jane", "4", "0", "0"),
    ]
    invoices = [customer_invoice(acme, "2000"), customer_invoice(acme, "500", payment_status="Paid")]
    supplier_invoices = [supplier_invoice(acme, "300")]
    return lines, entries, invoices, supplier_invoices


# =============================================================================
# SERVICES KPIs
# =============================================================================

class TestServicesKPIs:
    """Tests for professional services KPIs."""

    def test_kpi_order(self, services_inputs):
        results = calculate_services_kpis(*services_inputs, "2024-01")
        assert [r.kpi_type for r in results] == [
            KPIType.GROSS_MARGIN,
            KPIType.GROSS_MARGIN_PERCENTAGE,
            KPIType.EBITDA,
            KPIType.EBITDA_PERCENTAGE,
            KPIType.BILLABLE_UTILIZATION,
            KPIType.AVERAGE_HOURLY_RATE,
            KPIType.REVENUE_PER_FTE,
            KPIType.DAYS_SALES_OUTSTANDING,
            KPIType.OPERATING_CASH_FLOW,
        ]

    def test_margins(self, services_inputs):
        kpis = by_type(calculate_services_kpis(*services_inputs, "2024-01"))

        assert kpis[KPIType.GROSS_MARGIN].value == Decimal("6000.00")
        assert kpis[KPIType.GROSS_MARGIN].unit == KPIUnit.EUR
        assert kpis[KPIType.GROSS_MARGIN_PERCENTAGE].value == Decimal("60.00")
        assert kpis[KPIType.GROSS_MARGIN_PERCENTAGE].unit == KPIUnit.PERCENT
        assert kpis[KPIType.EBITDA].value == Decimal("5000.00")
        assert kpis[KPIType.EBITDA_PERCENTAGE].value == Decimal("50.00")

    def test_time_based_kpis(self, services_inputs):
        kpis = by_type(calculate_services_kpis(*services_inputs, "2024-01"))

        assert kpis[KPIType.BILLABLE_UTILIZATION].value == Decimal("40.00")
        assert kpis[KPIType.AVERAGE_HOURLY_RATE].value == Decimal("100.00")
        assert kpis[KPIType.REVENUE_PER_FTE].value == Decimal("5000.00")
        assert kpis[KPIType.REVENUE_PER_FTE].metadata["fte_count"] == 2

    def test_dso_and_operating_cash_flow(self, services_inputs):
        kpis = by_type(calculate_services_kpis(*services_inputs, "2024-01"))

        assert kpis[KPIType.DAYS_SALES_OUTSTANDING].value == Decimal("18")
        assert kpis[KPIType.DAYS_SALES_OUTSTANDING].unit == KPIUnit.DAYS
        assert kpis[KPIType.OPERATING_CASH_FLOW].value == Decimal("3300.00")

    def test_from_raw_journal_rows(self):
        rows = [
            {"Company": "Acme B.V.", "Ledger Account": "4100", "Ledger Credit Amount": "10,000.00"},
            {"Company": "Acme B.V.", "Ledger Account": "6200", "Ledger Debit Amount": "4,000.00"},
        ]
        lines = [map_row(row, "journal_lines") for row in rows]

        kpis = by_type(calculate_services_kpis(lines, [], [], [], "2024-01"))

        assert kpis[KPIType.GROSS_MARGIN].value == Decimal("6000.00")
        assert kpis[KPIType.GROSS_MARGIN_PERCENTAGE].value == Decimal("60.00")

    def test_empty_inputs_give_zeros(self):
        results = calculate_services_kpis([], [], [], [], "2024-01")

        assert len(results) == 9
        assert all(r.value == 0 for r in results)

    def test_custom_dso_period(self, services_inputs):
        kpis = by_type(calculate_services_kpis(*services_inputs, "2024-01", KPIAssumptions(dso_period_days=30)))
        assert kpis[KPIType.DAYS_SALES_OUTSTANDING].value == Decimal("6")


# =============================================================================
# SAAS KPIs
# =============================================================================

@pytest.fixture
def symson():
    return make_organization("Symson", OrganizationType.SAAS)


@pytest.fixture
def saas_inputs(symson):
    org = symson
    lines = [
        make_line(org, "7000", debit="3000", cost_center="Sales NL"),
        make_line(org, "7000", debit="900", cost_center="Engineering"),
    ]
    contracts = [
        contract(org, "CUST-1", "Active", "12000"),
        contract(org, "CUST-2", "Approved", "24000", remaining="6000", start=date(2024, 1, 10)),
        contract(org, "CUST-3", "Terminated", "5000"),
    ]
    invoices = [
        customer_invoice(org, "0", invoice_type="Subscription", invoice_amount="10000"),
        customer_invoice(org, "0", invoice_type="Services", invoice_amount="5000"),
    ]
    return lines, contracts, invoices


class TestSaaSKPIs:
    """Tests for SaaS KPIs."""

    def test_recurring_revenue(self, saas_inputs):
        kpis = by_type(calculate_saas_kpis(*saas_inputs, "2024-01"))

        assert kpis[KPIType.MRR].value == Decimal("1500.00")
        assert kpis[KPIType.ARR].value == Decimal("18000.00")
        assert kpis[KPIType.ARPU].value == Decimal("750.00")

    def test_fully_billed_contract_adds_no_recurring_revenue(self, symson):
        contracts = [
            contract(symson, "CUST-1", "Active", "12000", remaining="0.00"),
            contract(symson, "CUST-2", "Active", "24000"),
        ]

        kpis = by_type(calculate_saas_kpis([], contracts, [], "2024-01"))

        assert kpis[KPIType.MRR].value == Decimal("2000.00")
        assert kpis[KPIType.ARR].value == Decimal("24000.00")
        assert kpis[KPIType.ARPU].value == Decimal("1000.00")

    def test_churn_and_retention(self, saas_inputs):
        kpis = by_type(calculate_saas_kpis(*saas_inputs, "2024-01"))

        assert kpis[KPIType.CUSTOMER_CHURN_RATE].value == Decimal("33.33")
        assert kpis[KPIType.GROSS_REVENUE_RETENTION].value == Decimal("66.67")
        assert kpis[KPIType.NET_REVENUE_RETENTION].value == kpis[KPIType.GROSS_REVENUE_RETENTION].value

    def test_unit_economics(self, saas_inputs):
        kpis = by_type(calculate_saas_kpis(*saas_inputs, "2024-01"))

        assert kpis[KPIType.CAC].value == Decimal("3000.00")
        assert kpis[KPIType.CAC].metadata["new_customers"] == 1
        assert kpis[KPIType.LTV].value == Decimal("18000.00")
        assert kpis[KPIType.LTV_CAC_RATIO].value == Decimal("6.00")
        assert kpis[KPIType.LTV_CAC_RATIO].unit == KPIUnit.RATIO
        assert kpis[KPIType.MONTHS_TO_RECOVER_CAC].value == Decimal("4.0")
        assert kpis[KPIType.MONTHS_TO_RECOVER_CAC].unit == KPIUnit.MONTHS

    def test_rule_of_40(self, saas_inputs):
        kpi = by_type(calculate_saas_kpis(*saas_inputs, "2024-01"))[KPIType.RULE_OF_40]

        assert kpi.value == Decimal("100.00")
        assert kpi.unit == KPIUnit.SCORE
        assert kpi.metadata["profit_margin"] == Decimal("70.00")

    def test_no_new_customers_means_zero_cac(self, saas_inputs):
        kpis = by_type(calculate_saas_kpis(*saas_inputs, "2024-02"))
        assert kpis[KPIType.CAC].value == Decimal("0.00")
        assert kpis[KPIType.LTV_CAC_RATIO].value == Decimal("0.00")

    def test_empty_inputs_give_zeros(self):
        results = calculate_saas_kpis([], [], [], "2024-01")

        kpis = by_type(results)

        assert len(results) == 11
        assert kpis[KPIType.MRR].value == 0
        assert kpis[KPIType.CAC].value == 0
        assert kpis[KPIType.GROSS_REVENUE_RETENTION].value == Decimal("100.00")
        assert kpis[KPIType.RULE_OF_40].value == Decimal("30.00")


class TestHelpers:
    """Tests for KPI helpers."""

    def test_metadata_json_converts_decimals(self):
        assert metadata_json({"revenue": Decimal("10.50"), "count": 2}) == {"revenue": "10.50", "count": 2}

    @pytest.mark.parametrize("batch_period,expected", [
        ("2024-01", True),
        ("2024-Q1", True),
        ("2024-04", False),
        (None, True),
        ("garbage", True),
    ])
    def test_overlaps(self, batch_period, expected):
        assert overlaps(batch_period, ["2024-01", "2024-02", "2024-03"]) is expected


# =============================================================================
# SERVICE
# =============================================================================

class TestKPIService:
    """Tests for calculating and storing KPIs."""

    @pytest.mark.asyncio
    async def test_calculate_and_store(self, storage, settings, acme, services_inputs):
        lines, entries, invoices, supplier_invoices = services_inputs
        await storage.insert(Organization, [acme])
        await storage.insert(JournalLine, lines)
        await storage.insert(TimeEntry, entries)
        await storage.insert(CustomerInvoice, invoices)
        await storage.insert(SupplierInvoice, supplier_invoices)
        service = KPIService(storage, settings)

        results = await service.calculate_for_organization(acme.id, "2024-01")
        await service.calculate_for_organization(acme.id, "2024-01")

        assert by_type(results)[KPIType.GROSS_MARGIN].value == Decimal("6000.00")
        stored = await service.list_kpis(acme.id, "2024-01")
        assert len(stored) == 9
        margin = next(r for r in stored if r.kpi_type == KPIType.GROSS_MARGIN)
        assert margin.value == Decimal("6000.00")
        assert margin.extra["revenue"] == "10000.00"

    @pytest.mark.asyncio
    async def test_holding_covers_its_group(self, storage, settings):
        holding = make_organization("Youwe Holding", OrganizationType.HOLDING)
        digital = make_organization("Youwe Digital", parent=holding)
        await storage.insert(Organization, [holding, digital])
        await storage.insert(JournalLine, [
            make_line(holding, "7000", debit="500"),
            make_line(digital, "4000", credit="8000"),
        ])

        results = by_type(await KPIService(storage, settings).calculate_for_organization(holding.id, "2024-01"))

        assert results[KPIType.GROSS_MARGIN].value == Decimal("8000.00")
        assert results[KPIType.EBITDA].value == Decimal("7500.00")

    @pytest.mark.asyncio
    async def test_saas_organization(self, storage, settings, symson, saas_inputs):
        lines, contracts, invoices = saas_inputs
        await storage.insert(Organization, [symson])
        await storage.insert(JournalLine, lines)
        await storage.insert(CustomerContract, contracts)
        await storage.insert(CustomerInvoice, invoices)

        results = await KPIService(storage, settings).calculate_for_organization(symson.id, "2024-01")

        assert len(results) == 11
        stored = await storage.query(KpiRecord, organization_id=symson.id)
        assert {r.kpi_type for r in stored} >= {KPIType.MRR, KPIType.RULE_OF_40}
        assert by_type(results)[KPIType.MRR].value == Decimal("1500.00")

    @pytest.mark.asyncio
    async def test_refused_while_uploads_open(self, storage, settings, acme):
        await storage.insert(Organization, [acme])
        await storage.insert(UploadBatch, [make_batch(status=UploadStatus.PROCESSING, period="2024-02")])

        service = KPIService(storage, settings)
        with pytest.raises(PeriodNotReadyException):
            await service.calculate_for_organization(acme.id, "2024-Q1")

        # a batch for another quarter does not block
        results = await service.calculate_for_organization(acme.id, "2024-04")
        assert len(results) == 9

    @pytest.mark.asyncio
    async def test_completed_batches_do_not_block(self, storage, settings, acme):
        await storage.insert(Organization, [acme])
        await storage.insert(UploadBatch, [make_batch(status=UploadStatus.COMPLETED, period="2024-01")])

        results = await KPIService(storage, settings).calculate_for_organization(acme.id, "2024-01")
        assert all(r.value == 0 for r in results)
