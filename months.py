import re
from datetime import date

from errors import InvalidArgument

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def parse_month(value: str) -> date:
    match = _MONTH_RE.match((value or "").strip()) if isinstance(value, str) else None
    if not match:
        raise InvalidArgument(f"Invalid month {value!r}, expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if year < 1 or not 1 <= month <= 12:
        raise InvalidArgument(f"Invalid month {value!r}, expected YYYY-MM")
    return date(year, month, 1)


def format_month(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"
