"""ngrok binary installation."""

from .installer import (
    ALLOWED_CONFIG_KEYS,
    Installer,
    get_default_config,
    validate_config,
)
from .platform import (
    DEFAULT_VERSION,
    NgrokVersion,
    PlatformDescriptor,
    get_binary_name,
    resolve,
    resolve_current,
)

__all__ = [
    "Installer",
    "ALLOWED_CONFIG_KEYS",
    "get_default_config",
    "validate_config",
    "DEFAULT_VERSION",
    "NgrokVersion",
    "PlatformDescriptor",
    "get_binary_name",
    "resolve",
    "resolve_current",
]
