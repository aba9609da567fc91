import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
SECONDS_PER_DAY = 86400


def overdue_days(due_date: datetime, as_of: datetime) -> int:
    """Whole days late, rounded up; any part of a day counts as a day."""
    if not due_date or as_of <= due_date:
        return 0
    return math.ceil((as_of - due_date).total_seconds() / SECONDS_PER_DAY)


def compute_overdue_fine(due_date: datetime, as_of: datetime, daily_rate) -> tuple[int, Decimal]:
    days = overdue_days(due_date, as_of)
    amount = (Decimal(str(daily_rate)) * days).quantize(CENT, rounding=ROUND_HALF_UP)
    return days, amount
