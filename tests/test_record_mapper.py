"""
GroupLedger - Record Mapper Unit Tests

Mapping raw CSV rows to canonical records through the upload registry.
"""

from datetime import date
from decimal import Decimal

import pytest

from app.models import (
    AccountCategory,
    BankStatementLine,
    CustomerContract,
    CustomerInvoice,
    JournalLine,
    SupplierInvoice,
    TimeEntry,
)
from app.services.record_mapper import map_row, validate_required_fields
from app.services.upload_registry import UPLOAD_REGISTRY, get_upload_config, get_upload_types
from app.utils.error_handling import UnknownUploadTypeException


class TestUploadRegistry:
    """Tests for the registry of supported exports."""

    def test_all_upload_types_registered(self):
        assert set(UPLOAD_REGISTRY) == {
            "journal_lines",
            "customer_invoices",
            "supplier_invoices",
            "customer_contracts",
            "time_entries",
            "customer_payments",
            "supplier_payments",
            "bank_statements",
            "billing_installments",
            "sales_deals",
        }

    def test_unknown_type(self):
        with pytest.raises(UnknownUploadTypeException):
            get_upload_config("payroll")

    def test_required_fields_are_mapped_fields(self):
        for config in UPLOAD_REGISTRY.values():
            fields = {m.field for m in config.fields}
            assert set(config.required_fields) <= fields, config.code

    def test_upload_types_summary(self):
        summary = {entry["code"]: entry for entry in get_upload_types()}
        journal = summary["journal_lines"]
        assert journal["required_fields"] == ["entity_name", "ledger_account"]
        assert any(f["field"] == "debit_amount" and f["kind"] == "amount" for f in journal["fields"])


class TestMapJournalLine:
    """Tests for journal line rows."""

    def _row(self, **overrides):
        row = {
            "Journal": "JE-001",
            "Company": "Youwe Digital B.V.",
            "Accounting Date": "2024-01-15",
            "Ledger Account": "4000 Revenue",
            "Ledger Debit Amount": "",
            "Ledger Credit Amount": "10,000.00",
            "Currency": "",
            "Cost Center": "Delivery",
            "Region": "North",
        }
        row.update(overrides)
        return row

    def test_maps_fields(self):
        line = map_row(self._row(), "journal_lines")

        assert isinstance(line, JournalLine)
        assert line.entity_name == "Youwe Digital B.V."
        assert line.accounting_date == date(2024, 1, 15)
        assert line.credit_amount == Decimal("10000.00")
        assert line.debit_amount == Decimal("0")
        assert line.account_category == AccountCategory.REVENUE
        assert line.cost_center == "Delivery"

    def test_blank_currency_uses_base_currency(self):
        assert map_row(self._row(), "journal_lines").currency == "EUR"
        assert map_row(self._row(), "journal_lines", base_currency="SEK").currency == "SEK"
        assert map_row(self._row(Currency="USD"), "journal_lines").currency == "USD"

    def test_unmapped_columns_kept_in_extra(self):
        line = map_row(self._row(), "journal_lines")
        assert line.extra == {"Region": "North"}

    def test_negative_debit_moves_to_credit(self):
        line = map_row(
            self._row(**{"Ledger Debit Amount": "-500.00", "Ledger Credit Amount": ""}),
            "journal_lines",
        )
        assert line.debit_amount == Decimal("0")
        assert line.credit_amount == Decimal("500.00")

    def test_negative_credit_moves_to_debit(self):
        line = map_row(self._row(**{"Ledger Credit Amount": "(250.00)"}), "journal_lines")
        assert line.credit_amount == Decimal("0")
        assert line.debit_amount == Decimal("250.00")

    def test_header_aliases(self):
        row = {"Entity": "Symson B.V.", "GL Account": "6100", "Debit": "1.250,50", "Date": "1/31/24"}
        line = map_row(row, "journal_lines")

        assert line.entity_name == "Symson B.V."
        assert line.account_category == AccountCategory.DIRECT_COST
        assert line.debit_amount == Decimal("1250.50")
        assert line.accounting_date == date(2024, 1, 31)

    def test_missing_columns_get_defaults(self):
        line = map_row({"Company": "Symson", "Ledger Account": "7000"}, "journal_lines")
        assert line.journal == ""
        assert line.accounting_date is None
        assert line.credit_amount == Decimal("0")


class TestMapOtherTypes:
    """Tests for the remaining upload types."""

    def test_customer_invoice(self):
        row = {
            "Invoice": "INV-1",
            "Company": "Symson",
            "Customer": "Acme",
            "Invoice Date": "2024-02-01",
            "Invoice Amount": "1,210.00",
            "Amount Due": "1,210.00",
            "Payment Status": "Unpaid",
        }
        invoice = map_row(row, "customer_invoices")
        assert isinstance(invoice, CustomerInvoice)
        assert invoice.amount_due == Decimal("1210.00")
        assert invoice.payment_status == "Unpaid"

    def test_supplier_invoice_intercompany_flag(self):
        row = {"Supplier Invoice": "SI-9", "Company": "Symson", "Intercompany": "Yes"}
        invoice = map_row(row, "supplier_invoices")
        assert isinstance(invoice, SupplierInvoice)
        assert invoice.intercompany is True

    def test_time_entry_hours(self):
        row = {"Worker": "Jane", "Date": "2024-01-10", "Hours": "8", "Billable Hours": "6"}
        entry = map_row(row, "time_entries")
        assert isinstance(entry, TimeEntry)
        assert entry.total_hours == Decimal("8")
        assert entry.billable_hours == Decimal("6")

    def test_contract_remaining_amount_kept_when_present(self):
        row = {"Contract": "CON-1", "Company": "Symson", "Contract Amount": "12,000.00", "Remaining Amount": "0.00"}
        contract = map_row(row, "customer_contracts")
        assert isinstance(contract, CustomerContract)
        assert contract.remaining_amount == Decimal("0.00")

    def test_contract_without_remaining_column(self):
        row = {"Contract": "CON-1", "Company": "Symson", "Contract Amount": "12,000.00"}
        contract = map_row(row, "customer_contracts")
        assert contract.remaining_amount is None
        assert contract.contract_amount == Decimal("12000.00")

    def test_bank_line_negative_amount_flips_direction(self):
        row = {"Company": "Symson", "Transaction Date": "2024-01-05", "Amount": "-100.00", "Debit/Credit": "CR"}
        line = map_row(row, "bank_statements")
        assert isinstance(line, BankStatementLine)
        assert line.amount == Decimal("100.00")
        assert line.direction == "DR"

    def test_bank_line_direction_aliases(self):
        row = {"Company": "Symson", "Date": "2024-01-05", "Amount": "40", "Debit/Credit": "debit"}
        assert map_row(row, "bank_statements").direction == "DR"
        row["Debit/Credit"] = ""
        assert map_row(row, "bank_statements").direction == "CR"


class TestValidateRequiredFields:
    """Tests for the required-field check."""

    def test_valid_record(self):
        line = map_row({"Company": "Symson", "Ledger Account": "4000"}, "journal_lines")
        result = validate_required_fields(line, "journal_lines")
        assert result.valid
        assert result.missing_fields == []

    def test_missing_fields_listed(self):
        line = map_row({"Company": "  ", "Journal": "JE-1"}, "journal_lines")
        result = validate_required_fields(line, "journal_lines")
        assert not result.valid
        assert result.missing_fields == ["entity_name", "ledger_account"]

    def test_missing_date_field(self):
        entry = map_row({"Worker": "Jane"}, "time_entries")
        assert validate_required_fields(entry, "time_entries").missing_fields == ["entry_date"]
