import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """Generate a unique prefixed identifier, e.g. ai-3f2a..."""
    return f"{prefix}-{uuid.uuid4().hex}"


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


def to_iso(dt: datetime) -> str:
    return dt.isoformat() if dt else None


def parse_datetime(value) -> datetime:
    """Accept datetime, ISO string (with Z), or epoch seconds/milliseconds"""
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        # Meta sends epoch milliseconds
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
