"""
GroupLedger - Cashflow Forecast Service

12-month cashflow projection built from:
- Bank statement lines (current cash position)
- Unpaid customer and supplier invoices (receivables / payables)
- Completed customer payments and paid supplier payments (history)
- Scheduled billing installments (future revenue)

Forecast months are tiered by confidence. The multipliers in
ForecastPolicy are heuristics with no statistical basis; change them
there, never inline.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from app.config import Settings
from app.models import (
    BankDirection,
    BankStatementLine,
    BillingInstallment,
    CustomerInvoice,
    CustomerPayment,
    SupplierInvoice,
    SupplierPayment,
)
from app.services.organization_service import OrganizationService
from app.services.storage_service import StorageClient
from app.utils.calculations import ZERO, round_to, safe_divide, total
from app.utils.normalizers import period_for_date

logger = logging.getLogger(__name__)


# ===========================================
# POLICY
# ===========================================

@dataclass(frozen=True)
class ForecastTier:
    """Multipliers applied to the months of one confidence tier."""
    confidence: str
    first_month: int
    last_month: int
    historical_inflow_factor: Decimal
    scheduled_billing_factor: Decimal
    receivables_share: Decimal = ZERO
    historical_outflow_factor: Decimal = Decimal("1")
    payables_share: Decimal = ZERO

    def covers(self, month_index: int) -> bool:
        return self.first_month <= month_index <= self.last_month


@dataclass(frozen=True)
class ForecastPolicy:
    """
    Forecast heuristics.

    ``receivables_share`` and ``payables_share`` are per month: the high
    tier collects 15% of outstanding receivables and pays 20% of
    outstanding payables in each of its two months.
    """
    tiers: Tuple[ForecastTier, ...] = (
        ForecastTier(
            confidence="high",
            first_month=1,
            last_month=2,
            historical_inflow_factor=Decimal("1.10"),
            scheduled_billing_factor=Decimal("1"),
            receivables_share=Decimal("0.15"),
            payables_share=Decimal("0.20"),
        ),
        ForecastTier(
            confidence="medium",
            first_month=3,
            last_month=6,
            historical_inflow_factor=Decimal("1.05"),
            scheduled_billing_factor=Decimal("0.80"),
        ),
        ForecastTier(
            confidence="low",
            first_month=7,
            last_month=12,
            historical_inflow_factor=Decimal("1"),
            scheduled_billing_factor=ZERO,
        ),
    )
    horizon_months: int = 12
    history_months: int = 6
    completed_payment_status: str = "Completed"
    paid_status: str = "Paid"
    scheduled_installment_statuses: frozenset = frozenset({"Scheduled", "Pending", ""})
    neutral_payment_days: int = 30
    reliability_window_days: int = 60

    def tier_for(self, month_index: int) -> ForecastTier:
        for tier in self.tiers:
            if tier.covers(month_index):
                return tier
        return self.tiers[-1]


DEFAULT_POLICY = ForecastPolicy()


# ===========================================
# DATA TYPES
# ===========================================

@dataclass
class CounterpartyBalance:
    """Outstanding amount of one customer or supplier."""
    name: str
    amount: Decimal
    invoice_count: int
    average_age_days: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "amount": round_to(self.amount),
            "invoice_count": self.invoice_count,
            "average_age_days": self.average_age_days,
        }


@dataclass
class ForecastInputs:
    """Everything the forecast needs, already aggregated."""
    cash_position: Decimal = ZERO
    receivables: List[CounterpartyBalance] = field(default_factory=list)
    payables: List[CounterpartyBalance] = field(default_factory=list)
    average_monthly_inflow: Decimal = ZERO
    average_monthly_outflow: Decimal = ZERO
    scheduled_billing: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def total_receivables(self) -> Decimal:
        return total(r.amount for r in self.receivables)

    @property
    def total_payables(self) -> Decimal:
        return total(p.amount for p in self.payables)


@dataclass
class CashflowProjection:
    """Projected cash movement of one future month."""
    month: str
    opening_balance: Decimal
    inflow: Decimal
    outflow: Decimal
    net_cashflow: Decimal
    closing_balance: Decimal
    confidence: str
    scheduled_billing: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "opening_balance": round_to(self.opening_balance),
            "inflow": round_to(self.inflow),
            "outflow": round_to(self.outflow),
            "net_cashflow": round_to(self.net_cashflow),
            "closing_balance": round_to(self.closing_balance),
            "confidence": self.confidence,
            "scheduled_billing": round_to(self.scheduled_billing),
        }


@dataclass
class PaymentBehavior:
    """How quickly a customer pays."""
    customer: str
    average_payment_days: int
    payment_reliability: Decimal
    total_paid: Decimal
    payment_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer": self.customer,
            "average_payment_days": self.average_payment_days,
            "payment_reliability": self.payment_reliability,
            "total_paid": round_to(self.total_paid),
            "payment_count": self.payment_count,
        }


# ===========================================
# AGGREGATION
# ===========================================

def current_cash_position(lines: Iterable[BankStatementLine], currency: str = "EUR") -> Decimal:
    """Credits minus debits over the statement lines in one currency."""
    position = ZERO
    for line in lines:
        if line.currency != currency:
            continue
        amount = line.amount or ZERO
        if line.direction == BankDirection.DEBIT.value:
            position -= amount
        else:
            position += amount
    return position


def outstanding_by_counterparty(
    items: Iterable[Tuple[str, Decimal, Optional[date]]],
    as_of: date,
) -> List[CounterpartyBalance]:
    """Group (name, amount, invoice date) rows per counterparty, largest first."""
    amounts: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    ages: Dict[str, List[int]] = defaultdict(list)
    counts: Dict[str, int] = defaultdict(int)
    for name, amount, invoice_date in items:
        amounts[name] += amount
        counts[name] += 1
        if invoice_date is not None:
            ages[name].append((as_of - invoice_date).days)

    balances = [
        CounterpartyBalance(
            name=name,
            amount=amount,
            invoice_count=counts[name],
            average_age_days=round(sum(ages[name]) / len(ages[name])) if ages[name] else 0,
        )
        for name, amount in amounts.items()
    ]
    return sorted(balances, key=lambda b: b.amount, reverse=True)


def outstanding_receivables(
    invoices: Iterable[CustomerInvoice],
    as_of: date,
    policy: ForecastPolicy = DEFAULT_POLICY,
) -> List[CounterpartyBalance]:
    return outstanding_by_counterparty(
        (
            (inv.customer, inv.amount_due, inv.invoice_date)
            for inv in invoices
            if inv.payment_status != policy.paid_status and (inv.amount_due or ZERO) > 0
        ),
        as_of,
    )


def outstanding_payables(
    invoices: Iterable[SupplierInvoice],
    as_of: date,
    policy: ForecastPolicy = DEFAULT_POLICY,
) -> List[CounterpartyBalance]:
    return outstanding_by_counterparty(
        (
            (inv.supplier, inv.balance_due, inv.invoice_date)
            for inv in invoices
            if inv.status != policy.paid_status and (inv.balance_due or ZERO) > 0
        ),
        as_of,
    )


def average_monthly_amount(items: Iterable[Tuple[Optional[date], Decimal]], as_of: date, months: int) -> Decimal:
    """Average per calendar month over the months with activity in the trailing window."""
    window_start = as_of - relativedelta(months=months)
    by_month: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for day, amount in items:
        if day is None or not window_start <= day <= as_of:
            continue
        by_month[period_for_date(day)] += amount or ZERO
    return safe_divide(total(by_month.values()), len(by_month))


def scheduled_billing_by_month(
    installments: Iterable[BillingInstallment],
    as_of: date,
    policy: ForecastPolicy = DEFAULT_POLICY,
) -> Dict[str, Decimal]:
    """Scheduled installments from ``as_of`` onward, summed per month."""
    buckets: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for installment in installments:
        status = (installment.installment_status or "").strip()
        if status not in policy.scheduled_installment_statuses:
            continue
        if installment.installment_date is None or installment.installment_date < as_of:
            continue
        buckets[period_for_date(installment.installment_date)] += installment.amount or ZERO
    return dict(buckets)


def analyze_customer_payment_behavior(
    invoices: Iterable[CustomerInvoice],
    payments: Iterable[CustomerPayment],
    policy: ForecastPolicy = DEFAULT_POLICY,
) -> List[PaymentBehavior]:
    """
    Average days between a customer's invoice and its payment.

    Each completed payment is matched to the most recent invoice of the
    same customer dated on or before it. Reliability is 1 at 30 days or
    faster, dropping linearly to 0 at 90 days.
    """
    invoice_dates: Dict[str, List[date]] = defaultdict(list)
    for inv in invoices:
        if inv.invoice_date is not None:
            invoice_dates[inv.customer].append(inv.invoice_date)
    for dates in invoice_dates.values():
        dates.sort()

    delays: Dict[str, List[int]] = defaultdict(list)
    paid: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for payment in payments:
        if payment.payment_status != policy.completed_payment_status or payment.payment_date is None:
            continue
        prior = [d for d in invoice_dates.get(payment.customer, []) if d <= payment.payment_date]
        if not prior:
            continue
        delays[payment.customer].append((payment.payment_date - prior[-1]).days)
        paid[payment.customer] += payment.payment_amount or ZERO

    results = []
    for customer, days in delays.items():
        average = Decimal(sum(days)) / len(days)
        reliability = Decimal(1) - (average - policy.neutral_payment_days) / policy.reliability_window_days
        reliability = min(Decimal(1), max(ZERO, reliability))
        results.append(PaymentBehavior(
            customer=customer,
            average_payment_days=int(round_to(average, 0)),
            payment_reliability=round_to(reliability),
            total_paid=paid[customer],
            payment_count=len(days),
        ))
    return sorted(results, key=lambda b: b.total_paid, reverse=True)


# ===========================================
# FORECAST
# ===========================================

def generate_12_month_forecast(
    inputs: ForecastInputs,
    as_of: date,
    policy: ForecastPolicy = DEFAULT_POLICY,
) -> List[CashflowProjection]:
    """
    Project cash month by month, starting the month after ``as_of``.

    Each month's closing balance is its opening balance plus net cashflow
    and becomes the next month's opening balance.
    """
    receivables = inputs.total_receivables
    payables = inputs.total_payables
    first_month = date(as_of.year, as_of.month, 1)

    forecast = []
    balance = inputs.cash_position
    for index in range(1, policy.horizon_months + 1):
        month = period_for_date(first_month + relativedelta(months=index))
        tier = policy.tier_for(index)
        scheduled = inputs.scheduled_billing.get(month, ZERO)

        inflow = (
            scheduled * tier.scheduled_billing_factor
            + inputs.average_monthly_inflow * tier.historical_inflow_factor
            + receivables * tier.receivables_share
        )
        outflow = (
            inputs.average_monthly_outflow * tier.historical_outflow_factor
            + payables * tier.payables_share
        )
        net = inflow - outflow
        closing = balance + net

        forecast.append(CashflowProjection(
            month=month,
            opening_balance=balance,
            inflow=inflow,
            outflow=outflow,
            net_cashflow=net,
            closing_balance=closing,
            confidence=tier.confidence,
            scheduled_billing=scheduled,
        ))
        balance = closing
    return forecast


# ===========================================
# SERVICE
# ===========================================

class CashflowService:
    """Gathers forecast inputs from storage for one organization or the whole group."""

    def __init__(
        self,
        storage: StorageClient,
        settings: Settings,
        policy: ForecastPolicy = DEFAULT_POLICY,
    ):
        self.storage = storage
        self.settings = settings
        self.policy = policy
        self.organizations = OrganizationService(storage, settings)

    async def _load(self, model, organization_ids: Optional[List[uuid.UUID]]) -> List[Any]:
        if organization_ids is None:
            return await self.storage.query(model)
        return await self.storage.query(model, organization_id=organization_ids)

    async def _scope(self, organization_id: Optional[uuid.UUID]) -> Optional[List[uuid.UUID]]:
        if organization_id is None:
            return None
        group = await self.organizations.get_group(organization_id)
        return [org.id for org in group]

    async def gather_inputs(
        self,
        organization_id: Optional[uuid.UUID] = None,
        as_of: Optional[date] = None,
    ) -> Tuple[ForecastInputs, Dict[str, List[Any]]]:
        """Forecast inputs plus the raw invoice and payment rows they came from."""
        as_of = as_of or date.today()
        ids = await self._scope(organization_id)

        bank_lines = await self._load(BankStatementLine, ids)
        customer_invoices = await self._load(CustomerInvoice, ids)
        supplier_invoices = await self._load(SupplierInvoice, ids)
        customer_payments = await self._load(CustomerPayment, ids)
        supplier_payments = await self._load(SupplierPayment, ids)
        installments = await self._load(BillingInstallment, ids)

        policy = self.policy
        inputs = ForecastInputs(
            cash_position=current_cash_position(bank_lines, self.settings.base_currency),
            receivables=outstanding_receivables(customer_invoices, as_of, policy),
            payables=outstanding_payables(supplier_invoices, as_of, policy),
            average_monthly_inflow=average_monthly_amount(
                (
                    (p.payment_date, p.payment_amount)
                    for p in customer_payments
                    if p.payment_status == policy.completed_payment_status
                ),
                as_of,
                policy.history_months,
            ),
            average_monthly_outflow=average_monthly_amount(
                (
                    (p.payment_date, p.amount)
                    for p in supplier_payments
                    if p.payment_status == policy.paid_status
                ),
                as_of,
                policy.history_months,
            ),
            scheduled_billing=scheduled_billing_by_month(installments, as_of, policy),
        )
        raw = {"customer_invoices": customer_invoices, "customer_payments": customer_payments}
        return inputs, raw

    async def forecast(
        self,
        organization_id: Optional[uuid.UUID] = None,
        as_of: Optional[date] = None,
    ) -> List[CashflowProjection]:
        as_of = as_of or date.today()
        inputs, _ = await self.gather_inputs(organization_id, as_of)
        return generate_12_month_forecast(inputs, as_of, self.policy)

    async def get_cashflow_summary(
        self,
        organization_id: Optional[uuid.UUID] = None,
        as_of: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Current position, near-term and full forecast, aging and payment behavior."""
        as_of = as_of or date.today()
        inputs, raw = await self.gather_inputs(organization_id, as_of)
        forecast = generate_12_month_forecast(inputs, as_of, self.policy)
        behavior = analyze_customer_payment_behavior(
            raw["customer_invoices"], raw["customer_payments"], self.policy
        )

        logger.info(
            f"Cashflow summary as of {as_of}: cash {round_to(inputs.cash_position)}, "
            f"{len(inputs.receivables)} customers with open receivables"
        )
        return {
            "as_of": as_of.isoformat(),
            "current": {
                "cash_position": round_to(inputs.cash_position),
                "receivables": round_to(inputs.total_receivables),
                "payables": round_to(inputs.total_payables),
                "net_position": round_to(
                    inputs.cash_position + inputs.total_receivables - inputs.total_payables
                ),
            },
            "forecast": [p.to_dict() for p in forecast[:3]],
            "full_forecast": [p.to_dict() for p in forecast],
            "aging": {
                "receivables": [r.to_dict() for r in inputs.receivables[:10]],
                "payables": [p.to_dict() for p in inputs.payables[:10]],
            },
            "payment_behavior": [b.to_dict() for b in behavior],
        }
