from datetime import datetime, timezone


def utcnow():
    """Naive UTC now, truncated to the millisecond precision MongoDB stores."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


def parse_timestamp(value):
    """Parse a wire timestamp into a naive UTC datetime.

    Accepts datetimes and ISO-8601 strings (with or without an offset).
    Returns None for None; raises ValueError for anything else unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed.replace(microsecond=parsed.microsecond - parsed.microsecond % 1000)


def format_timestamp(value):
    if value is None:
        return None
    return value.isoformat()
