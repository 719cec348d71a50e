# tests/test_validators.py
from datetime import datetime, timezone

import pytest

from utils.helpers import generate_correlation_id, generate_id, parse_datetime
from utils.validators import (
    sanitize_name,
    split_platform_address,
    strip_whatsapp_prefix,
    to_e164,
    whatsapp_address,
)


@pytest.mark.parametrize("raw, expected", [
    ("+15551234567", "+15551234567"),
    ("1 (555) 123-4567", "+15551234567"),
    ("447911123456", "+447911123456"),
])
def test_to_e164(raw, expected):
    assert to_e164(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "+1234567890123456"])
def test_to_e164_rejects_invalid(raw):
    with pytest.raises(ValueError):
        to_e164(raw)


def test_whatsapp_address():
    assert whatsapp_address("+1 555 123 4567") == "whatsapp:+15551234567"
    assert whatsapp_address("whatsapp:15551234567") == "whatsapp:+15551234567"
    assert strip_whatsapp_prefix("whatsapp:+1555") == "+1555"
    assert strip_whatsapp_prefix("+1555") == "+1555"


def test_split_platform_address():
    assert split_platform_address("Facebook:123") == ("facebook", "123")
    assert split_platform_address("123", default_platform="instagram") == ("instagram", "123")
    with pytest.raises(ValueError):
        split_platform_address("123")


def test_sanitize_name():
    assert sanitize_name("+1 (555) 123") == "1555123"
    assert sanitize_name("jibby-ai") == "jibby-ai"
    assert sanitize_name("+++") is None
    assert sanitize_name(None) is None
    assert len(sanitize_name("a" * 100)) == 64


def test_generated_ids():
    assert generate_id("ai").startswith("ai-")
    assert generate_id("ai") != generate_id("ai")
    assert len(generate_correlation_id()) == 12


def test_parse_datetime():
    assert parse_datetime("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    assert parse_datetime(1700000000000) == parse_datetime(1700000000)
    assert parse_datetime(None).tzinfo is not None
