# shared/utils/dates.py
"""
Calendar-date helpers for billing cycles.
All billing comparisons are on dates, never on datetimes.
"""
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from django.utils import timezone


def today() -> date:
    """Current date in the configured timezone."""
    return timezone.localdate()


def add_months(value: date, months: int) -> date:
    """
    Add calendar months, clamping the day to the end of the target month
    (Jan 31 + 1 month -> Feb 28/29).
    """
    return value + relativedelta(months=months)


def first_of_month(value: date) -> date:
    return value.replace(day=1)


def next_invoice_month(current: date, months: int) -> date:
    """First day of the billing month `months` after `current`."""
    return add_months(first_of_month(current), months)


def days_after(value: date, days: int) -> date:
    return value + timedelta(days=days)


def parse_billing_month(value) -> Optional[date]:
    """Accept 'YYYY-MM', 'YYYY-MM-DD' or a date and return the 1st of that month."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date().replace(day=1)
    if isinstance(value, date):
        return value.replace(day=1)
    parts = str(value).strip()[:10].split('-')
    if len(parts) < 2:
        raise ValueError(f"Invalid billing month: {value!r}")
    return date(int(parts[0]), int(parts[1]), 1)
