"""
Raw job row parsing.

Rows come from a spreadsheet export: column labels are unstable and
values may be numbers, strings like "$1,234.56", blanks or garbage.
Nothing in this module raises on bad input; unusable values become
zero, empty strings or placeholders.
"""

import logging
import math
import re
from datetime import date, datetime
from uuid import uuid4

from .models import CustomerType, JobStatus, LeadSource, NormalizedJob

logger = logging.getLogger(__name__)

# Column labels of the all_jobs table
FIELD_COUNT = "Count"
FIELD_CLIENT_NAME = "Client Name"
FIELD_EMAIL = "Email"
FIELD_PHONE = "Phone"
FIELD_ADDRESS = "Address"
FIELD_STATE = "State"
FIELD_NOTES = "Notes"
FIELD_STATUS = "Status"
FIELD_DATE = "Date"
FIELD_TECHNICIAN = "Technician"
FIELD_PARTS_SOLD = "Parts Sold"
FIELD_LEAD_PLATFORM = "LP"
FIELD_CUSTOMER_TYPE = "Customer Type"
FIELD_SALES = "Sales"
FIELD_TOTAL_COSTS = "Total Costs"
FIELD_GROSS_PROFIT = "Gross Profit"
FIELD_TECHNICIAN_PAYOUT = "Technician Payout"
FIELD_COMPANY_PROFIT = "Company Profit"
FIELD_TIPS = "Tips to Technician"

# Payment-method columns summed for revenue reconciliation
PAYMENT_FIELDS = ["Cash", "Check/Zelle", "CC", "CC after fee", "Thumbtack", "CC fee"]

UNKNOWN_CUSTOMER = "Unknown Customer"
UNKNOWN_LOCATION = "Unknown Location"
UNKNOWN_ADDRESS = "Unknown Address"

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_DATE_HINTS = ("date", "time", "created", "updated")

DATE_FORMATS = [
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
]


def coerce_amount(value) -> float:
    """
    Turn any cell value into a float.

    Every character other than digits, "." and "-" is dropped before
    parsing, so "$1,234.56" -> 1234.56 and "-42" -> -42.0. Anything that
    still does not parse ("1.2.3", "4-5", "") is 0.0. Finite numbers
    pass through unchanged.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    cleaned = _NON_NUMERIC.sub("", str(value))
    if not cleaned:
        return 0.0
    try:
        amount = float(cleaned)
    except ValueError:
        return 0.0
    # Very long digit strings overflow to inf
    return amount if math.isfinite(amount) else 0.0


def parse_technician_names(value) -> tuple[str, ...]:
    """Split a comma-delimited technician cell into trimmed, non-empty names."""
    if value is None:
        return ()
    names = (name.strip() for name in str(value).split(","))
    return tuple(name for name in names if name)


def parse_job_date(value) -> date | None:
    """
    Best-effort parse of a job date cell.

    Accepts date/datetime objects, ISO strings (with or without time and
    timezone) and the common US spreadsheet formats. Returns None when
    nothing matches.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    logger.debug("Unparseable job date %r", text)
    return None


def _text(row: dict, key: str) -> str:
    value = row.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _job_date(row: dict) -> str:
    """The Date column, else the first column whose label looks like a date."""
    if _text(row, FIELD_DATE):
        return _text(row, FIELD_DATE)
    for key in row:
        if any(hint in str(key).lower() for hint in _DATE_HINTS) and _text(row, key):
            return _text(row, key)
    return ""


def _job_id(row: dict) -> str:
    for key in (FIELD_COUNT, "id"):
        text = _text(row, key)
        if text:
            return text
    return uuid4().hex


def normalize_row(row: dict) -> NormalizedJob:
    """Build a NormalizedJob from one raw all_jobs row."""
    customer_type = (
        CustomerType.COMMERCIAL
        if _text(row, FIELD_CUSTOMER_TYPE).lower() == CustomerType.COMMERCIAL.value
        else CustomerType.RESIDENTIAL
    )

    return NormalizedJob(
        id=_job_id(row),
        customer_key=_text(row, FIELD_CLIENT_NAME) or UNKNOWN_CUSTOMER,
        address=_text(row, FIELD_ADDRESS),
        status=JobStatus.from_label(row.get(FIELD_STATUS)),
        state=_text(row, FIELD_STATE),
        email=_text(row, FIELD_EMAIL),
        phone=_text(row, FIELD_PHONE),
        customer_type=customer_type,
        title=_text(row, FIELD_PARTS_SOLD) or "Untitled Job",
        notes=_text(row, FIELD_NOTES),
        date=_job_date(row),
        lead_source=LeadSource.from_code(row.get(FIELD_LEAD_PLATFORM)),
        technician_names=parse_technician_names(row.get(FIELD_TECHNICIAN)),
        sales_amount=coerce_amount(row.get(FIELD_SALES)),
        total_costs=coerce_amount(row.get(FIELD_TOTAL_COSTS)),
        gross_profit=coerce_amount(row.get(FIELD_GROSS_PROFIT)),
        technician_payout=coerce_amount(row.get(FIELD_TECHNICIAN_PAYOUT)),
        company_profit=coerce_amount(row.get(FIELD_COMPANY_PROFIT)),
        tips=coerce_amount(row.get(FIELD_TIPS)),
        payment_breakdown={
            name: coerce_amount(row.get(name)) for name in PAYMENT_FIELDS
        },
        raw=dict(row),
    )


def normalize_rows(rows) -> list[NormalizedJob]:
    """Normalize every row, preserving input order."""
    return [normalize_row(row) for row in rows]
