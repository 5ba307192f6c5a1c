"""
GroupLedger - Record Mapper

Turns one raw CSV row into a canonical ledger record using the upload
registry. Mapping is pure: organization resolution, period assignment
and persistence happen in the ingestion service.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from app.models import BankDirection, classify_account
from app.services.upload_registry import (
    BASE_CURRENCY,
    FieldKind,
    FieldMapping,
    UploadTypeConfig,
    get_upload_config,
)
from app.utils.column_resolver import find_column
from app.utils.calculations import ZERO
from app.utils.normalizers import parse_amount, parse_date


TRUE_VALUES = {"yes", "y", "true", "1", "x"}

DIRECTION_ALIASES = {
    "CR": BankDirection.CREDIT.value,
    "C": BankDirection.CREDIT.value,
    "CREDIT": BankDirection.CREDIT.value,
    "DR": BankDirection.DEBIT.value,
    "D": BankDirection.DEBIT.value,
    "DEBIT": BankDirection.DEBIT.value,
}


@dataclass
class FieldValidation:
    """Outcome of the required-field check for one record."""
    valid: bool
    missing_fields: List[str] = field(default_factory=list)


def convert_value(raw: Optional[str], mapping: FieldMapping, base_currency: str = "EUR") -> Any:
    """Apply the field's transform to a raw cell."""
    if mapping.kind == FieldKind.AMOUNT:
        return parse_amount(raw)
    if mapping.kind == FieldKind.DATE:
        return parse_date(raw)

    text = (raw or "").strip()
    if mapping.kind == FieldKind.BOOLEAN:
        return text.lower() in TRUE_VALUES

    if not text and mapping.default is not None:
        return base_currency if mapping.default == BASE_CURRENCY else mapping.default
    return text


def _apply_sign_rules(values: Dict[str, Any], config: UploadTypeConfig) -> None:
    """Move negative amounts to the opposite side so stored amounts stay non-negative."""
    if config.debit_credit_fields:
        debit_field, credit_field = config.debit_credit_fields
        debit, credit = values[debit_field], values[credit_field]
        if debit < 0:
            credit, debit = credit - debit, ZERO
        if credit < 0:
            debit, credit = debit - credit, ZERO
        values[debit_field], values[credit_field] = debit, credit

    if config.direction_fields:
        amount_field, direction_field = config.direction_fields
        direction = DIRECTION_ALIASES.get(
            str(values[direction_field]).strip().upper(),
            BankDirection.CREDIT.value,
        )
        amount: Decimal = values[amount_field]
        if amount < 0:
            amount = -amount
            direction = (
                BankDirection.DEBIT.value
                if direction == BankDirection.CREDIT.value
                else BankDirection.CREDIT.value
            )
        values[amount_field], values[direction_field] = amount, direction


def map_row(row: Mapping[Optional[str], Any], upload_type: str, base_currency: str = "EUR") -> Any:
    """
    Map a raw CSV row to a canonical record of the upload type's model.

    Every registered field is looked up through its aliases. Missing text
    fields become empty strings, missing amounts zero (None for nullable
    amounts) and missing dates None. Columns that match no field are kept
    in the record's ``extra`` bag. Raises UnknownUploadTypeException for
    unregistered types.
    """
    config = get_upload_config(upload_type)
    headers = [header for header in row.keys() if header is not None]

    values: Dict[str, Any] = {}
    used_headers = set()
    for mapping in config.fields:
        header = find_column(headers, mapping.aliases)
        if header is None and mapping.nullable:
            values[mapping.field] = None
            continue
        raw = None
        if header is not None:
            used_headers.add(header)
            raw = row.get(header)
        values[mapping.field] = convert_value(raw, mapping, base_currency)

    _apply_sign_rules(values, config)

    if config.account_field:
        values["account_category"] = classify_account(values[config.account_field])

    extra = {
        header.strip(): str(value).strip()
        for header, value in row.items()
        if header is not None and header not in used_headers and isinstance(value, str) and value.strip()
    }

    return config.model(**values, extra=extra)


def validate_required_fields(record: Any, upload_type: str) -> FieldValidation:
    """Report which required fields of the upload type are empty on a record."""
    config = get_upload_config(upload_type)
    missing = []
    for name in config.required_fields:
        value = getattr(record, name, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return FieldValidation(valid=not missing, missing_fields=missing)
