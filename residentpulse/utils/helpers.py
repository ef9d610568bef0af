import time
from datetime import date, datetime, timezone
from typing import Any, Iterable, Iterator, Optional

def utcnow() -> datetime:
    """Naive UTC; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def safe_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default

def iso(value) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()

def to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value

def paced(items: Iterable, delay_seconds: float) -> Iterator:
    """Yield items one at a time, sleeping between them (not after the last)."""
    for i, item in enumerate(items):
        if i and delay_seconds > 0:
            time.sleep(delay_seconds)
        yield item
