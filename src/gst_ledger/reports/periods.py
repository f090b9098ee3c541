"""
Report period resolution: custom ranges, preset periods and display labels.
"""

from __future__ import annotations

import calendar
import re
from datetime import date
from typing import Optional, Tuple

from gst_ledger import config
from gst_ledger.exceptions import ReportValidationError

PRESET_PERIODS = ("monthly", "quarterly", "yearly", "last-month", "last-quarter")

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _month_range(year: int, month: int) -> Tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def _quarter_range(year: int, quarter: int) -> Tuple[date, date]:
    """Calendar quarter 0-3 (Jan-Mar, Apr-Jun, Jul-Sep, Oct-Dec)."""
    start_month = quarter * 3 + 1
    return date(year, start_month, 1), _month_range(year, start_month + 2)[1]


def preset_range(period: str, today: date) -> Tuple[date, date]:
    """
    Date range for a preset period relative to today.

    yearly is the Indian financial year (April to March).
    """
    if period == "monthly":
        return _month_range(today.year, today.month)

    if period == "quarterly":
        return _quarter_range(today.year, (today.month - 1) // 3)

    if period == "yearly":
        fy_start = today.year if today.month >= 4 else today.year - 1
        return date(fy_start, 4, 1), date(fy_start + 1, 3, 31)

    if period == "last-month":
        if today.month == 1:
            return _month_range(today.year - 1, 12)
        return _month_range(today.year, today.month - 1)

    if period == "last-quarter":
        quarter = (today.month - 1) // 3
        if quarter == 0:
            return _quarter_range(today.year - 1, 3)
        return _quarter_range(today.year, quarter - 1)

    raise ReportValidationError("Invalid period parameter")


def _parse_date(value: str) -> date:
    if not _DATE_PATTERN.match(value):
        raise ReportValidationError("Invalid date format. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ReportValidationError("Invalid date format. Use YYYY-MM-DD") from e


def resolve_date_range(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    period: Optional[str] = None,
    today: Optional[date] = None,
) -> Tuple[str, str]:
    """
    Work out the (start, end) ISO dates of a report request.

    A custom start+end pair wins over a preset period; with neither the
    current month is used.

    Raises:
        ReportValidationError: malformed dates, start after end, span over the
            configured maximum, or an unknown preset
    """
    today = today or date.today()

    if start_date and end_date:
        start, end = _parse_date(start_date), _parse_date(end_date)
    elif period:
        start, end = preset_range(period, today)
    else:
        start, end = _month_range(today.year, today.month)

    if start > end:
        raise ReportValidationError("Start date must be before end date")

    if (end - start).days > config.REPORT_MAX_RANGE_DAYS:
        raise ReportValidationError(
            f"Date range cannot exceed {config.REPORT_MAX_RANGE_DAYS} days. Please select a shorter period."
        )

    return start.isoformat(), end.isoformat()


def format_period_label(start_date: str, end_date: str) -> str:
    """'February 2026', 'January - March 2026' or 'April 2025 - March 2026'."""
    start, end = date.fromisoformat(start_date), date.fromisoformat(end_date)
    start_month, end_month = calendar.month_name[start.month], calendar.month_name[end.month]

    if (start.year, start.month) == (end.year, end.month):
        return f"{start_month} {start.year}"
    if start.year == end.year:
        return f"{start_month} - {end_month} {start.year}"
    return f"{start_month} {start.year} - {end_month} {end.year}"
