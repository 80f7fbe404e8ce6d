import calendar
from datetime import date, datetime, time
from typing import Optional, Tuple


def month_bounds(month: int, year: int) -> Tuple[date, date]:
    """First and last day of a calendar month. Raises ValueError for bad input."""
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def worked_minutes(check_in: Optional[time], check_out: Optional[time]) -> Optional[int]:
    if check_in is None or check_out is None:
        return None
    start = datetime.combine(date.min, check_in)
    end = datetime.combine(date.min, check_out)
    return max(int((end - start).total_seconds() // 60), 0)


def worked_hours(check_in: Optional[time], check_out: Optional[time]) -> Optional[float]:
    minutes = worked_minutes(check_in, check_out)
    return round(minutes / 60, 1) if minutes is not None else None


def format_duration(minutes: Optional[int]) -> str:
    """``135`` -> ``"2h 15m"``."""
    minutes = minutes or 0
    return f"{minutes // 60}h {minutes % 60}m"


def attendance_percentage(present_days: int, total_days: int) -> float:
    if total_days <= 0:
        return 0.0
    return round(present_days / total_days * 100, 2)
