import re
from typing import Optional, Tuple

WHATSAPP_PREFIX = "whatsapp:"


def to_e164(phone: str) -> str:
    """Normalize a phone number to E.164 (+ followed by digits)"""
    if phone is None:
        raise ValueError("Invalid phone number: None")

    # Remove all non-digits
    digits = re.sub(r'\D', '', phone)
    if not digits or len(digits) > 15:
        raise ValueError(f"Invalid phone number: {phone}")

    return f"+{digits}"


def whatsapp_address(address: str) -> str:
    """Channel-prefixed WhatsApp address, e.g. whatsapp:+15551234567"""
    if address.startswith(WHATSAPP_PREFIX):
        return WHATSAPP_PREFIX + to_e164(address[len(WHATSAPP_PREFIX):])
    return WHATSAPP_PREFIX + to_e164(address)


def strip_whatsapp_prefix(address: Optional[str]) -> Optional[str]:
    if address and address.startswith(WHATSAPP_PREFIX):
        return address[len(WHATSAPP_PREFIX):]
    return address


def split_platform_address(address: str, default_platform: Optional[str] = None) -> Tuple[str, str]:
    """Split 'facebook:123' into ('facebook', '123')"""
    if ':' in address:
        platform, _, user_id = address.partition(':')
        if platform and user_id:
            return platform.lower(), user_id
    if default_platform:
        return default_platform, address
    raise ValueError(f"Address has no platform prefix: {address}")


def sanitize_name(name: Optional[str]) -> Optional[str]:
    """Reduce a sender id to the charset chat APIs accept for the name field"""
    if not name:
        return None
    cleaned = re.sub(r'[^a-zA-Z0-9_-]', '', name)[:64]
    return cleaned or None

