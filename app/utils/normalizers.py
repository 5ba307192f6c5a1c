"""
Amount, date and period normalization for CSV exports.

Exports mix US and European number formats and several date styles.
None of these functions raise on bad input: an unreadable amount becomes
zero and an unreadable date becomes None, so a single bad cell never
aborts an upload.

Known limitation: an amount such as ``1,234`` is ambiguous. Only the
pattern ``1.234,56`` is read as European; everything else treats commas
as thousands separators, so ``1,234`` is read as 1234.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Tuple, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from app.utils.calculations import ZERO
from app.utils.error_handling import InvalidPeriodException


# dot thousands separator with comma decimals, e.g. 24.200,00
EUROPEAN_AMOUNT_PATTERN = re.compile(r"^\d+\.\d{3},\d+$")
CURRENCY_SYMBOL_PATTERN = re.compile(r"[€$£¥\s\"']")
CURRENCY_CODE_PATTERN = re.compile(r"^[A-Z]{3}(?=[\d(\-.])|(?<=[\d)])[A-Z]{3}$")

ISO_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
US_DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})(?!\d)")

# two-digit years below the pivot are 20xx, the rest 19xx
TWO_DIGIT_YEAR_PIVOT = 50

MONTH_PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
QUARTER_PERIOD_PATTERN = re.compile(r"^(\d{4})-Q([1-4])$")


# ===========================================
# AMOUNTS
# ===========================================

def parse_amount(raw: Union[str, int, float, Decimal, None]) -> Decimal:
    """
    Convert an exported amount string to Decimal.

    Handles ``24,200.00``, ``24.200,00``, currency symbols, surrounding
    quotes and ``(500.00)`` style negatives. Empty or unreadable values
    give ``Decimal("0")``.
    """
    if raw is None:
        return ZERO
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else ZERO
    if isinstance(raw, (int, float)):
        return parse_amount(str(raw))

    text = CURRENCY_SYMBOL_PATTERN.sub("", str(raw))
    text = CURRENCY_CODE_PATTERN.sub("", text)
    if not text:
        return ZERO

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    if EUROPEAN_AMOUNT_PATTERN.match(text):
        text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", "")

    try:
        value = Decimal(text)
    except InvalidOperation:
        return ZERO
    if not value.is_finite():
        return ZERO

    return -value if negative else value


# ===========================================
# DATES
# ===========================================

def _expand_year(year_text: str) -> int:
    year = int(year_text)
    if len(year_text) == 2:
        return 2000 + year if year < TWO_DIGIT_YEAR_PIVOT else 1900 + year
    return year


def parse_date(raw: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Convert an exported date string to a date.

    Accepts ISO ``YYYY-MM-DD`` (time suffix ignored), US ``M/D/YY`` and
    ``M/D/YYYY``, and anything python-dateutil understands. Returns None
    when the value cannot be read.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    text = str(raw).strip().strip('"')
    if not text:
        return None

    iso = ISO_DATE_PATTERN.match(text)
    if iso:
        try:
            return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        except ValueError:
            return None

    us = US_DATE_PATTERN.match(text)
    if us:
        try:
            return date(_expand_year(us.group(3)), int(us.group(1)), int(us.group(2)))
        except ValueError:
            return None

    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError):
        return None


# ===========================================
# PERIODS
# ===========================================

def period_for_date(value: date) -> str:
    """Monthly period token (YYYY-MM) for a date."""
    return f"{value.year:04d}-{value.month:02d}"


def quarter_for_date(value: date) -> str:
    """Quarterly period token (YYYY-Qn) for a date."""
    return f"{value.year:04d}-Q{(value.month - 1) // 3 + 1}"


def parse_period(period: str) -> Tuple[date, date]:
    """Return the first and last day of a YYYY-MM or YYYY-Qn period."""
    month_match = MONTH_PERIOD_PATTERN.match(period or "")
    if month_match:
        start = date(int(month_match.group(1)), int(month_match.group(2)), 1)
        return start, start + relativedelta(months=1, days=-1)

    quarter_match = QUARTER_PERIOD_PATTERN.match(period or "")
    if quarter_match:
        first_month = (int(quarter_match.group(2)) - 1) * 3 + 1
        start = date(int(quarter_match.group(1)), first_month, 1)
        return start, start + relativedelta(months=3, days=-1)

    raise InvalidPeriodException(period)


def period_months(period: str) -> List[str]:
    """Monthly tokens covered by a period (one for months, three for quarters)."""
    start, end = parse_period(period)
    months = []
    current = start
    while current <= end:
        months.append(period_for_date(current))
        current += relativedelta(months=1)
    return months


def derive_batch_period(dates: Iterable[Optional[date]], today: Optional[date] = None) -> str:
    """
    Reporting period of an upload from its row dates.

    One month gives ``YYYY-MM``, one quarter gives ``YYYY-Qn``, a wider
    spread falls back to the month of the earliest date. Without any
    dates the current month is used.
    """
    known = sorted(d for d in dates if d is not None)
    if not known:
        return period_for_date(today or date.today())

    months = {period_for_date(d) for d in known}
    if len(months) == 1:
        return months.pop()

    quarters = {quarter_for_date(d) for d in known}
    if len(quarters) == 1:
        return quarters.pop()

    return period_for_date(known[0])
