# po_lifecycle/utils/date_utils.py
from datetime import date, datetime, timedelta
from typing import List, Optional, Union
import calendar

MONTH_NAMES = [calendar.month_abbr[m] for m in range(1, 13)]

def to_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """Coerce a date, datetime or ISO string to a calendar date.

    Args:
        value: Value to convert

    Returns:
        date or None when value is empty
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()

def days_before(reference: date, days: int) -> date:
    """Date that lies the given number of days before reference."""
    return reference - timedelta(days=days)

def first_of_month(year: int, month: int) -> date:
    """First calendar day of a year/month."""
    return date(year, month, 1)

def month_name(month: int) -> str:
    """Short English month name for a 1-based month number."""
    return MONTH_NAMES[month - 1]

def comparison_years(
    start_date: Optional[date],
    end_date: Optional[date],
    min_year: int,
    today: Optional[date] = None
) -> List[int]:
    """Years to include in a year-over-year chart.

    The year before the start year is always added for comparison, and no
    year below min_year is ever returned.

    Args:
        start_date: Optional range start
        end_date: Optional range end
        min_year: Oldest year with complete data
        today: Reference date (defaults to date.today())

    Returns:
        Sorted list of years, never empty
    """
    today = today or date.today()
    current_year = today.year

    if start_date or end_date:
        start_year = start_date.year if start_date else min_year
        end_year = end_date.year if end_date else current_year
        years = set()
        if start_year - 1 >= min_year:
            years.add(start_year - 1)
        years.update(range(max(start_year, min_year), end_year + 1))
    else:
        years = {year for year in (current_year - 1, current_year) if year >= min_year}

    if not years:
        years = {current_year}

    return sorted(years)
