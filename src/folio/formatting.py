"""
Display formatting for dates and date ranges.

Dates render as abbreviated month and year ("Jan 2020"). A missing end date
means the entry is ongoing and renders as "Present" (or its translation);
any other missing date renders as "N/A".
"""

from datetime import date, datetime
from typing import Any, Optional

MONTHS = {
    "en": ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
    "id": ("Jan", "Feb", "Mar", "Apr", "Mei", "Jun", "Jul", "Agu", "Sep", "Okt", "Nov", "Des"),
}

LABELS = {
    "en": {"present": "Present", "missing": "N/A"},
    "id": {"present": "Sekarang", "missing": "N/A"},
}

DEFAULT_LOCALE = "en"


def _locale(locale: Optional[str]) -> str:
    return locale if locale in MONTHS else DEFAULT_LOCALE


def label(key: str, locale: Optional[str] = None) -> str:
    return LABELS[_locale(locale)][key]


def to_date(value: Any) -> Optional[date]:
    """Accept a date, a datetime or an ISO string; anything else is None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def format_month_year(value: Any, locale: Optional[str] = None) -> Optional[str]:
    """Abbreviated month and year of a date-like value; None when it cannot be read."""
    parsed = to_date(value)
    if parsed is None:
        return None
    return f"{MONTHS[_locale(locale)][parsed.month - 1]} {parsed.year}"


def format_date(value: Any, locale: Optional[str] = None) -> str:
    """Single date column: "MMM yyyy" or "N/A"."""
    return format_month_year(value, locale) or label("missing", locale)


def format_end_date(value: Any, locale: Optional[str] = None) -> str:
    """End date column: "MMM yyyy" or "Present"."""
    return format_month_year(value, locale) or label("present", locale)


def format_date_range(start: Any, end: Any, locale: Optional[str] = None) -> str:
    """
    "Jan 2020 - Present", "Jan 2020 - Mar 2021", or "N/A - Present".

    Args:
        start: Start date (date, ISO string or None).
        end: End date; None means ongoing.
        locale: "en" or "id".
    """
    return f"{format_date(start, locale)} - {format_end_date(end, locale)}"


def register_filters(env, locale_getter) -> None:
    """
    Register the formatters as Jinja filters.

    Args:
        env: A ``jinja2.Environment``.
        locale_getter: Zero-argument callable returning the active locale.
    """
    env.filters["month_year"] = lambda v: format_date(v, locale_getter())
    env.filters["end_date"] = lambda v: format_end_date(v, locale_getter())
    env.filters["date_range"] = lambda record, start="start_date", end="end_date": format_date_range(
        record.get(start), record.get(end), locale_getter()
    )
