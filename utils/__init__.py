from .validators import to_e164, whatsapp_address, split_platform_address, sanitize_name
from .helpers import generate_id, generate_correlation_id, utcnow, parse_datetime

__all__ = [
    "to_e164",
    "whatsapp_address",
    "split_platform_address",
    "sanitize_name",
    "generate_id",
    "generate_correlation_id",
    "utcnow",
    "parse_datetime",
]
