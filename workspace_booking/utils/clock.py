from datetime import datetime, timezone


def utcnow():
    """Naive UTC timestamp, the form every datetime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_clock():
    """FastAPI dependency returning the clock used by the booking services."""
    return utcnow
