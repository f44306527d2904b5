"""Reporting month helpers."""
import re
from datetime import date, timedelta
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta

from ...exceptions import ValidationError

MONTH_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def parse_month(month: str) -> Tuple[date, date]:
    """Return the first and last day of a YYYY-MM month."""
    match = MONTH_PATTERN.match(month or "")
    if not match:
        raise ValidationError(f"Invalid month {month!r}; expected YYYY-MM")
    first = date(int(match.group(1)), int(match.group(2)), 1)
    last = first + relativedelta(months=1) - timedelta(days=1)
    return first, last


def previous_month(today: Optional[date] = None) -> str:
    """The month before today's, as YYYY-MM (the monthly job reports last month)."""
    today = today or date.today()
    return (today.replace(day=1) - relativedelta(months=1)).strftime("%Y-%m")


def in_month(value: date, month: str) -> bool:
    first, last = parse_month(month)
    return first <= value <= last
