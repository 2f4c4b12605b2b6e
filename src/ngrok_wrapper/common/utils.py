"""Utility functions for ngrok wrapper."""

from typing import Any

SENSITIVE_FIELDS = frozenset(
    {
        "authtoken",
        "auth_token",
        "token",
        "password",
        "secret",
        "api_key",
        "basic_auth",
        "auth",
    }
)


def validate_non_empty_string(value: str, field_name: str) -> str:
    """Validate that a string is not empty or only whitespace.

    Args:
        value: String value to validate
        field_name: Name of the field for error messages

    Returns:
        Stripped string value

    Raises:
        ValueError: If string is empty or only whitespace
    """
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value.strip()


def mask_sensitive_data(
    value: str | None, mask_char: str = "*", show_chars: int = 4
) -> str:
    """Mask sensitive data for logging while preserving some characters for debugging.

    Args:
        value: Sensitive string to mask (e.g., auth token, password)
        mask_char: Character to use for masking
        show_chars: Number of characters to show at the end

    Returns:
        Masked string safe for logging
    """
    if not value:
        return "<None>"

    if len(value) <= show_chars:
        return mask_char * len(value)

    masked_length = len(value) - show_chars
    return mask_char * masked_length + value[-show_chars:]


def sanitize_log_data(data: dict[str, Any]) -> dict[str, Any]:
    """Mask values whose key names a secret, such as ``authtoken``."""
    sanitized = {}
    for key, value in data.items():
        if key.lower() in SENSITIVE_FIELDS:
            sanitized[key] = mask_sensitive_data(str(value) if value else None)
        else:
            sanitized[key] = value

    return sanitized


def sanitize_args(args: list[str]) -> list[str]:
    """Mask the value following (or attached to) an auth token flag in argv."""
    sanitized: list[str] = []
    mask_next = False
    for arg in args:
        if mask_next:
            sanitized.append(mask_sensitive_data(arg))
            mask_next = False
            continue

        flag, sep, value = arg.partition("=")
        if flag.lstrip("-") in SENSITIVE_FIELDS or flag == "add-authtoken":
            if sep:
                sanitized.append(f"{flag}={mask_sensitive_data(value)}")
            else:
                sanitized.append(arg)
                mask_next = True
        else:
            sanitized.append(arg)

    return sanitized
