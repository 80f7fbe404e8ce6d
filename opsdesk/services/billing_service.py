import calendar
from datetime import date
from typing import Optional

CYCLE_MONTHS = {
    "Monthly": 1,
    "Quarterly": 3,
    "Yearly": 12,
}


def add_months(start: date, months: int) -> date:
    """Shift by calendar months, clamping to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_billing_date(billing_cycle: Optional[str], today: Optional[date] = None) -> date:
    """Unknown cycles bill monthly."""
    today = today or date.today()
    return add_months(today, CYCLE_MONTHS.get(billing_cycle, 1))
