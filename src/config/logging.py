"""
Structured logging configuration with PII redaction and context binding.

This module provides:
- Structlog processors for request context (request_id, actor, path)
- Redaction of card secrets, credentials and contact details
"""

import re
from typing import Any

import structlog
from django.conf import settings

# Field names (or "_"-separated parts of field names) that are always redacted
PII_FIELDS = {
    "email",
    "password",
    "secret",
    "token",
    "ticket",
    "authorization",
    "cvv",
    "pin",
    "atm_pin",
    "atmpin",
    "card_number",
    "cardnumber",
    "phone",
    "address",
    "ip_address",
}

# Regex patterns for PII detection inside free-text values
PII_PATTERNS = [
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"), "[EMAIL_REDACTED]"),
    (re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"), "[CARD_REDACTED]"),
]


def is_pii_field(field_name: str) -> bool:
    """
    True if the field name, or one of its "_"-separated parts, names PII.

    Matching on whole parts keeps counters such as ``skipped_count`` readable
    while still catching ``encrypted_cvv`` or ``new_password``.
    """
    field_lower = field_name.lower()
    if field_lower in PII_FIELDS:
        return True
    return any(part in PII_FIELDS for part in field_lower.split("_"))


def redact_value(value: Any, field_name: str = "") -> Any:
    """
    Redact PII from a value based on field name or content patterns.

    Args:
        value: The value to potentially redact
        field_name: The name of the field (used for field-based redaction)

    Returns:
        The redacted value or original if no redaction needed
    """
    if field_name and is_pii_field(field_name):
        if isinstance(value, dict):
            return {k: "[REDACTED]" for k in value}
        return "[REDACTED]"

    if isinstance(value, str):
        result = value
        for pattern, replacement in PII_PATTERNS:
            result = pattern.sub(replacement, result)
        return result

    if isinstance(value, dict):
        return redact_dict(value)

    return value


def redact_dict(data: dict, depth: int = 0, max_depth: int = 5) -> dict:
    """Recursively redact PII from a dictionary."""
    if depth > max_depth:
        return data

    result = {}
    for key, value in data.items():
        if isinstance(value, dict) and not is_pii_field(str(key)):
            result[key] = redact_dict(value, depth + 1, max_depth)
        elif isinstance(value, list):
            result[key] = [
                redact_dict(v, depth + 1, max_depth)
                if isinstance(v, dict)
                else redact_value(v, str(key))
                for v in value
            ]
        else:
            result[key] = redact_value(value, str(key))
    return result


def pii_redactor(logger, method_name: str, event_dict: dict) -> dict:
    """
    Structlog processor that redacts PII from log events.

    Respects LOG_PII_POLICY setting:
    - 'mask': Replace PII with [REDACTED] (default)
    - 'drop': Remove PII fields entirely
    """
    pii_policy = getattr(settings, "LOG_PII_POLICY", "mask")

    for key in list(event_dict.keys()):
        if key in ("event", "message", "timestamp", "level"):
            continue
        if pii_policy == "drop" and is_pii_field(key):
            del event_dict[key]
            continue
        event_dict[key] = redact_value(event_dict[key], key)

    return event_dict


def add_request_context(logger, method_name: str, event_dict: dict) -> dict:
    """
    Structlog processor that adds request context from the current contextvar.

    Adds: request_id, actor, path, method
    """
    from config.observability import get_request_context

    context = get_request_context()
    if context:
        for key, value in context.items():
            event_dict.setdefault(key, value)
    return event_dict


def add_service_info(logger, method_name: str, event_dict: dict) -> dict:
    """
    Structlog processor that adds service identification info.
    """
    event_dict["service"] = "lending-api"
    event_dict["environment"] = getattr(settings, "ENVIRONMENT", "development")
    return event_dict

