from datetime import datetime, timezone


def as_utc(value: datetime) -> datetime:
    # SQLite devuelve datetimes naive; se asumen en UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_overdue(due_date: datetime, now: datetime | None = None) -> bool:
    if now is None:
        now = datetime.now(timezone.utc)
    return as_utc(due_date) < as_utc(now)
