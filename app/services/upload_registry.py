"""
GroupLedger - Upload Type Registry

Static table of supported CSV exports. Each entry lists the canonical
fields of one upload type, the header aliases accepted for each field,
how the raw text is converted, and which fields a row cannot do without.

Adding an export format means adding one entry here.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from app.models import (
    BankStatementLine,
    BillingInstallment,
    CustomerContract,
    CustomerInvoice,
    CustomerPayment,
    JournalLine,
    SalesDeal,
    SupplierInvoice,
    SupplierPayment,
    TimeEntry,
)
from app.utils.error_handling import UnknownUploadTypeException


class FieldKind(str, Enum):
    """How a raw cell is converted."""
    TEXT = "text"
    AMOUNT = "amount"
    DATE = "date"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class FieldMapping:
    """One canonical field and the CSV headers it may come from."""
    field: str
    aliases: Tuple[str, ...]
    kind: FieldKind = FieldKind.TEXT
    default: Any = None
    # None instead of the empty value when no header matches
    nullable: bool = False


@dataclass(frozen=True)
class UploadTypeConfig:
    """Mapping table for one upload type."""
    code: str
    description: str
    model: Type
    fields: Tuple[FieldMapping, ...]
    required_fields: Tuple[str, ...]
    date_field: Optional[str] = None
    # False when the company column names a customer, not a group entity
    resolve_entity: bool = True
    # (debit field, credit field) pair swapped when a value is negative
    debit_credit_fields: Optional[Tuple[str, str]] = None
    # (amount field, direction field) for CR/DR encoded amounts
    direction_fields: Optional[Tuple[str, str]] = None
    # account code field classified into AccountCategory at mapping time
    account_field: Optional[str] = None


def _text(name: str, *aliases: str, default: Any = None) -> FieldMapping:
    return FieldMapping(name, aliases, FieldKind.TEXT, default)


def _amount(name: str, *aliases: str, nullable: bool = False) -> FieldMapping:
    return FieldMapping(name, aliases, FieldKind.AMOUNT, nullable=nullable)


def _date(name: str, *aliases: str) -> FieldMapping:
    return FieldMapping(name, aliases, FieldKind.DATE)


def _flag(name: str, *aliases: str) -> FieldMapping:
    return FieldMapping(name, aliases, FieldKind.BOOLEAN)


# Marker resolved to the configured base currency when the cell is blank
BASE_CURRENCY = "__base_currency__"

_CURRENCY = _text("currency", "Currency", "Currency Code", default=BASE_CURRENCY)


# ===========================================
# REGISTRY
# ===========================================

UPLOAD_REGISTRY: Dict[str, UploadTypeConfig] = {
    "journal_lines": UploadTypeConfig(
        code="journal_lines",
        description="General ledger journal lines",
        model=JournalLine,
        date_field="accounting_date",
        required_fields=("entity_name", "ledger_account"),
        debit_credit_fields=("debit_amount", "credit_amount"),
        account_field="ledger_account",
        fields=(
            _text("journal", "Journal", "Journal Entry", "Journal ID"),
            _text("journal_number", "Journal Number", "Document Number"),
            _text("entity_name", "Company", "Entity", "Legal Entity"),
            _text("intercompany_initiating_company", "Intercompany Initiating Company", "IC Company"),
            _text("status", "Status", "Journal Status"),
            _date("accounting_date", "Accounting Date", "Date", "Transaction Date"),
            _text("source", "Source", "Journal Source"),
            _text("ledger", "Ledger", "Ledger Type"),
            _CURRENCY,
            _text("ledger_account", "Ledger Account", "Account", "GL Account"),
            _amount("debit_amount", "Ledger Debit Amount", "Debit Amount", "Debit"),
            _amount("credit_amount", "Ledger Credit Amount", "Credit Amount", "Credit"),
            _text("line_memo", "Line Memo", "Memo", "Description"),
            _text("revenue_category", "Revenue Category"),
            _text("spend_category", "Spend Category as Worktag", "Spend Category"),
            _text("cost_center", "Cost Center"),
            _text("customer", "Customer"),
            _text("project", "Project"),
            _text("worker", "Worker", "Employee"),
            _text("supplier", "Supplier as Worktag", "Supplier"),
            _text("intercompany_match_id", "Intercompany Match ID", "IC Match ID"),
        ),
    ),
    "customer_invoices": UploadTypeConfig(
        code="customer_invoices",
        description="Customer invoices",
        model=CustomerInvoice,
        date_field="invoice_date",
        required_fields=("invoice", "entity_name"),
        fields=(
            _text("invoice", "Invoice", "Invoice Number", "Invoice ID"),
            _text("entity_name", "Company", "Entity"),
            _text("customer", "Customer", "Customer Name", "Sold-To Customer"),
            _text("customer_id", "Customer ID", "Customer Code"),
            _text("invoice_status", "Invoice Status", "Status"),
            _text("invoice_type", "Invoice Type", "Type"),
            _date("invoice_date", "Invoice Date", "Date"),
            _amount("invoice_amount", "Invoice Amount", "Amount", "Total Amount"),
            _amount("amount_due", "Amount Due", "Outstanding Amount"),
            _amount("tax_amount", "Tax Amount", "VAT Amount"),
            _CURRENCY,
            _date("due_date", "Due Date", "Payment Due Date"),
            _text("payment_status", "Payment Status"),
            _text("payment_type", "Payment Type"),
            _text("memo", "Memo", "Description"),
        ),
    ),
    "supplier_invoices": UploadTypeConfig(
        code="supplier_invoices",
        description="Supplier invoices",
        model=SupplierInvoice,
        date_field="invoice_date",
        required_fields=("supplier_invoice", "entity_name"),
        fields=(
            _text("supplier_invoice", "Supplier Invoice", "Invoice", "Invoice Number"),
            _text("invoice_number", "Invoice Number", "Supplier Invoice Number"),
            _text("entity_name", "Company", "Entity"),
            _flag("intercompany", "Intercompany", "Direct Intercompany"),
            _text("status", "Status", "Invoice Status"),
            _text("supplier", "Supplier", "Vendor", "Supplier Name"),
            _text("supplier_invoice_number", "Supplier's Invoice Number", "Supplier Invoice Number"),
            _date("invoice_date", "Invoice Date", "Date"),
            _date("accounting_date", "Accounting Date"),
            _date("due_date", "Due Date", "Payment Due Date"),
            _amount("invoice_amount", "Invoice Amount", "Amount", "Total Amount"),
            _amount("balance_due", "Balance Due", "Amount Due"),
            _amount("tax_amount", "Tax Amount", "VAT Amount"),
            _CURRENCY,
            _text("memo", "Memo", "Description"),
            _text("payment_type", "Payment Type"),
        ),
    ),
    "customer_contracts": UploadTypeConfig(
        code="customer_contracts",
        description="Customer contracts",
        model=CustomerContract,
        date_field="contract_start_date",
        required_fields=("contract", "entity_name"),
        fields=(
            _text("contract", "Contract", "Contract Number", "Contract ID"),
            _text("entity_name", "Company", "Entity"),
            _text("customer", "Customer", "Customer Name", "Sold-To Customer"),
            _text("customer_id", "Customer ID", "Customer Code"),
            _text("contract_type", "Contract Type"),
            _text("contract_status", "Contract Status", "Status"),
            _date("contract_start_date", "Contract Start Date", "Effective Date", "Start Date"),
            _date("contract_end_date", "Contract End Date", "End Date"),
            _amount("contract_amount", "Contract Amount", "Amount", "Total Contract Value"),
            _amount("remaining_amount", "Remaining Amount", nullable=True),
            _CURRENCY,
            _text("billing_frequency", "Billing Frequency", "Frequency"),
        ),
    ),
    "time_entries": UploadTypeConfig(
        code="time_entries",
        description="Worker time entries",
        model=TimeEntry,
        date_field="entry_date",
        required_fields=("worker", "entry_date"),
        fields=(
            _text("worker", "Worker", "Employee", "Employee Name"),
            _text("entity_name", "Contract Company", "Company", "Entity"),
            _date("entry_date", "Date", "Entry Date", "Work Date"),
            _amount("total_hours", "Total Reported Hours", "Hours", "Time", "Duration"),
            _amount("billable_hours", "Billable Hours", "Billable Time"),
            _amount("amount_to_bill", "Amount To Bill", "YW RPT CC Amount to Bill"),
            _amount("rate_to_bill", "Rate To Bill", "Rate", "Hourly Rate", "Billing Rate"),
            _text("billing_status", "Customer Billing Status", "Billing Status"),
            _text("customer", "Project Customer", "Customer", "Client"),
            _text("project", "Reported Project", "Project", "Project Name"),
        ),
    ),
    "customer_payments": UploadTypeConfig(
        code="customer_payments",
        description="Payments received from customers",
        model=CustomerPayment,
        date_field="payment_date",
        required_fields=("payment", "entity_name"),
        fields=(
            _text("payment", "Payment", "Payment ID", "Transaction ID"),
            _text("entity_name", "Company", "Entity"),
            _text("customer", "Customer", "Customer Name"),
            _text("customer_id", "Customer ID", "Customer Code"),
            _date("payment_date", "Payment Date", "Date"),
            _amount("payment_amount", "Payment Amount", "Amount"),
            _CURRENCY,
            _text("payment_status", "Payment Status", "Status"),
            _text("payment_type", "Payment Type"),
        ),
    ),
    "supplier_payments": UploadTypeConfig(
        code="supplier_payments",
        description="Payments made to suppliers",
        model=SupplierPayment,
        date_field="payment_date",
        required_fields=("entity_name", "payment_date"),
        fields=(
            _text("transaction_number", "Transaction Number", "Payment ID"),
            _text("entity_name", "Company", "Entity"),
            _date("payment_date", "Payment Date", "Date"),
            _text("payment_status", "Payment Status", "Status"),
            _text("supplier", "Supplier", "Vendor", "Supplier Name"),
            _text("payment_type", "Payment Type"),
            _amount("amount", "Amount in Payment Currency", "Amount", "Payment Amount"),
            _CURRENCY,
        ),
    ),
    "bank_statements": UploadTypeConfig(
        code="bank_statements",
        description="Bank statement lines",
        model=BankStatementLine,
        date_field="transaction_date",
        required_fields=("entity_name", "transaction_date"),
        direction_fields=("amount", "direction"),
        fields=(
            _text("entity_name", "Company", "Entity"),
            _date("transaction_date", "Transaction Date", "Statement Line Date", "Date", "Value Date"),
            _amount("amount", "Statement Line Amount", "Amount", "Transaction Amount"),
            _text("direction", "Debit/Credit", "Debit Credit", "DR/CR", "CR/DR"),
            _CURRENCY,
            _text("description", "Description", "Memo", "Transaction Description"),
            _text("bank_account", "Bank Account", "Account"),
        ),
    ),
    "billing_installments": UploadTypeConfig(
        code="billing_installments",
        description="Scheduled billing installments",
        model=BillingInstallment,
        date_field="installment_date",
        required_fields=("entity_name", "installment_date"),
        fields=(
            _text("entity_name", "Company", "Entity"),
            _text("customer", "Customer", "Customer Name"),
            _text("contract", "Contract", "Contract Number"),
            _date("installment_date", "Installment Date", "Date", "Recognition Date"),
            _amount("amount", "Amount", "Installment Amount"),
            _CURRENCY,
            _text("installment_status", "Installment Status", "Status"),
        ),
    ),
    "sales_deals": UploadTypeConfig(
        code="sales_deals",
        description="CRM sales pipeline deals",
        model=SalesDeal,
        date_field="create_date",
        required_fields=("record_id", "deal_name"),
        resolve_entity=False,
        fields=(
            _text("record_id", "Record ID", "Deal ID"),
            _text("entity_name", "Associated Company", "Company"),
            _text("deal_name", "Deal Name", "Name"),
            _text("deal_stage", "Deal Stage", "Stage"),
            _date("create_date", "Create Date", "Created Date"),
            _date("close_date", "Close Date", "Closed Date"),
            _amount("amount", "Amount EUR", "Amount", "Deal Amount"),
            _text("deal_owner", "Deal owner", "Owner"),
            _text("deal_type", "Initial Deal Type", "Deal Type", "Type"),
        ),
    ),
}


def get_upload_config(upload_type: str) -> UploadTypeConfig:
    """Mapping table for an upload type code."""
    config = UPLOAD_REGISTRY.get(upload_type)
    if config is None:
        raise UnknownUploadTypeException(upload_type)
    return config


def get_upload_types() -> List[Dict[str, Any]]:
    """Registry summary for clients building an upload form."""
    return [
        {
            "code": config.code,
            "description": config.description,
            "required_fields": list(config.required_fields),
            "fields": [
                {"field": m.field, "kind": m.kind.value, "aliases": list(m.aliases)}
                for m in config.fields
            ],
        }
        for config in UPLOAD_REGISTRY.values()
    ]
