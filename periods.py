import re
from datetime import date
from typing import Optional

MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")

RANGE_MONTHS = {"1m": 1, "3m": 3, "6m": 6, "1y": 12, "5y": 60}


def parse_month(month: str) -> tuple[int, int]:
    match = MONTH_RE.match(month or "")
    if not match:
        raise ValueError(f"Invalid month: {month!r} (expected yyyy-mm)")
    year, month_num = int(match.group(1)), int(match.group(2))
    if not 1 <= month_num <= 12:
        raise ValueError(f"Invalid month: {month!r} (expected yyyy-mm)")
    return year, month_num


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_start(month: str) -> date:
    year, month_num = parse_month(month)
    return date(year, month_num, 1)


def month_end(month: str) -> date:
    """Last calendar day of ``month``, the as-of date for its snapshot."""
    year, month_num = parse_month(month)
    if month_num == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month_num + 1, 1) - date.resolution


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def resolve_range_start(
    range_slug: Optional[str], *, today: Optional[date] = None
) -> Optional[date]:
    """Start date for a history range, ``None`` meaning all time."""
    today = today or date.today()
    if not range_slug or range_slug == "all":
        return None
    if range_slug == "ytd":
        return date(today.year, 1, 1)
    if range_slug in RANGE_MONTHS:
        return add_months(today, -RANGE_MONTHS[range_slug])
    raise ValueError(f"Unknown range: {range_slug}")
