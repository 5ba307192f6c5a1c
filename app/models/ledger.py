"""
GroupLedger - Canonical Ledger Record Models

One model per upload type. Amounts are stored as non-negative decimals;
the sign lives in the choice of column (debit/credit, CR/DR direction).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Date, Numeric, String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, LedgerRecordMixin


MONEY = Numeric(precision=18, scale=2)
HOURS = Numeric(precision=12, scale=2)


class AccountCategory(str, Enum):
    """Classification of a ledger account, fixed once at ingestion."""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    DIRECT_COST = "direct_cost"
    OPERATING_EXPENSE = "operating_expense"
    OTHER = "other"


# Leading digit of the account code -> category. Tied to one chart of
# accounts: 4xxx revenue, 6xxx cost of sales, 7xxx operating expenses.
ACCOUNT_CATEGORY_BY_PREFIX = {
    "1": AccountCategory.ASSET,
    "2": AccountCategory.LIABILITY,
    "3": AccountCategory.EQUITY,
    "4": AccountCategory.REVENUE,
    "6": AccountCategory.DIRECT_COST,
    "7": AccountCategory.OPERATING_EXPENSE,
}


def classify_account(ledger_account: Optional[str]) -> AccountCategory:
    """Map a ledger account code to its category."""
    code = (ledger_account or "").strip()
    if not code:
        return AccountCategory.OTHER
    return ACCOUNT_CATEGORY_BY_PREFIX.get(code[0], AccountCategory.OTHER)


class JournalLine(BaseModel, LedgerRecordMixin):
    """General ledger journal line."""

    __tablename__ = "journal_lines"

    journal: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    journal_number: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    intercompany_initiating_company: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    accounting_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    source: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    ledger: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    ledger_account: Mapped[str] = mapped_column(String(255), default="", nullable=False, index=True)
    account_category: Mapped[AccountCategory] = mapped_column(
        SQLEnum(AccountCategory),
        default=AccountCategory.OTHER,
        nullable=False,
        index=True,
    )
    debit_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    credit_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    line_memo: Mapped[str] = mapped_column(Text, default="", nullable=False)
    revenue_category: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    spend_category: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    cost_center: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    customer: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    project: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    worker: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    supplier: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    intercompany_match_id: Mapped[str] = mapped_column(String(100), default="", nullable=False, index=True)


class CustomerInvoice(BaseModel, LedgerRecordMixin):
    """Customer (sales) invoice."""

    __tablename__ = "customer_invoices"

    invoice: Mapped[str] = mapped_column(String(255), nullable=False)
    customer: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    customer_id: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    invoice_status: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    invoice_type: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    invoice_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    invoice_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_status: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    payment_type: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    memo: Mapped[str] = mapped_column(Text, default="", nullable=False)


class SupplierInvoice(BaseModel, LedgerRecordMixin):
    """Supplier (purchase) invoice."""

    __tablename__ = "supplier_invoices"

    supplier_invoice: Mapped[str] = mapped_column(String(255), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    intercompany: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    supplier: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    supplier_invoice_number: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    invoice_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    accounting_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    invoice_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    balance_due: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    memo: Mapped[str] = mapped_column(Text, default="", nullable=False)
    payment_type: Mapped[str] = mapped_column(String(50), default="", nullable=False)


class CustomerContract(BaseModel, LedgerRecordMixin):
    """Customer contract (subscription or project)."""

    __tablename__ = "customer_contracts"

    contract: Mapped[str] = mapped_column(String(255), nullable=False)
    customer: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    customer_id: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    contract_type: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    contract_status: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    contract_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    contract_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    contract_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    # None when the export carried no remaining amount column
    remaining_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    billing_frequency: Mapped[str] = mapped_column(String(50), default="", nullable=False)


class TimeEntry(BaseModel, LedgerRecordMixin):
    """Reported hours of one worker on one day."""

    __tablename__ = "time_entries"

    worker: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    entry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    total_hours: Mapped[Decimal] = mapped_column(HOURS, default=Decimal("0"), nullable=False)
    billable_hours: Mapped[Decimal] = mapped_column(HOURS, default=Decimal("0"), nullable=False)
    amount_to_bill: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    rate_to_bill: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    billing_status: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    customer: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    project: Mapped[str] = mapped_column(String(255), default="", nullable=False)


class CustomerPayment(BaseModel, LedgerRecordMixin):
    """Payment received from a customer."""

    __tablename__ = "customer_payments"

    payment: Mapped[str] = mapped_column(String(255), nullable=False)
    customer: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    customer_id: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    payment_status: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    payment_type: Mapped[str] = mapped_column(String(50), default="", nullable=False)


class SupplierPayment(BaseModel, LedgerRecordMixin):
    """Payment made to a supplier."""

    __tablename__ = "supplier_payments"

    transaction_number: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_status: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    supplier: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    payment_type: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)


class BankDirection(str, Enum):
    """Bank statement line direction."""
    CREDIT = "CR"
    DEBIT = "DR"


class BankStatementLine(BaseModel, LedgerRecordMixin):
    """Bank statement line; credits add to cash, debits reduce it."""

    __tablename__ = "bank_statement_lines"

    transaction_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    direction: Mapped[str] = mapped_column(String(2), default=BankDirection.CREDIT.value, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    bank_account: Mapped[str] = mapped_column(String(100), default="", nullable=False)


class BillingInstallment(BaseModel, LedgerRecordMixin):
    """Scheduled contract billing installment."""

    __tablename__ = "billing_installments"

    customer: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    contract: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    installment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    installment_status: Mapped[str] = mapped_column(String(50), default="", nullable=False)


class SalesDeal(BaseModel, LedgerRecordMixin):
    """
    CRM pipeline deal.

    ``entity_name`` holds the associated (customer) company, not a group entity.
    """

    __tablename__ = "sales_deals"

    record_id: Mapped[str] = mapped_column(String(100), nullable=False)
    deal_name: Mapped[str] = mapped_column(String(500), nullable=False)
    deal_stage: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    create_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    close_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    deal_owner: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    deal_type: Mapped[str] = mapped_column(String(100), default="", nullable=False)
