from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=0)


def due_after(now: datetime, days: int) -> datetime:
    """Due time ``days`` from ``now``, at the end of that day."""
    return end_of_day(now + timedelta(days=days))
