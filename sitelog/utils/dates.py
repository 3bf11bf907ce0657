from datetime import date, datetime
from typing import Optional, Union


def parse_log_date(value: Union[str, date]) -> date:
    """Accept a ``YYYY-MM-DD`` string or a date; datetimes are cut to the day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value, "%Y-%m-%d").date()


def elapsed_days(start_date: Optional[date], log_date: date) -> Optional[int]:
    """Day count since project start, inclusive of both ends.

    ``None`` when the project has no start date, ``0`` before the start.
    """
    if start_date is None:
        return None
    if log_date < start_date:
        return 0
    return (log_date - start_date).days + 1
