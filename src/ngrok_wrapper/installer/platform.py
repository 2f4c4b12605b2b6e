"""Platform resolution for ngrok binary distributions.

The ngrok CDN publishes one zip archive per (major version, OS, CPU) triple. This
module maps the strings the running system reports onto that table. Rules are
data, evaluated in order, and the first match wins, so more specific entries are
listed before the entries they overlap with (``"arm x86_64"`` must hit the 64-bit
ARM rule before the plain ``x86_64`` one).
"""

import platform
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ..common.exceptions import UnsupportedPlatformError

NgrokVersion = Literal["v2", "v3"]

DEFAULT_VERSION: NgrokVersion = "v3"
CONFIG_NAME = "ngrok.yml"

CDN_URLS: dict[str, str] = {
    "v2": "https://bin.equinox.io/c/4VmDzA7iaHb/ngrok-stable-{os}-{arch}.zip",
    "v3": "https://bin.equinox.io/c/bNyj1mQVY4c/ngrok-v3-stable-{os}-{arch}.zip",
}


class PlatformDescriptor(BaseModel):
    """Resolved ngrok distribution for one platform and version."""

    model_config = ConfigDict(frozen=True)

    system: str = Field(description="OS family: darwin, windows, freebsd or linux")
    arch: str = Field(description="Arch class: x86_64_arm, i386_arm, x86_64 or i386")
    version: NgrokVersion = Field(description="ngrok major version family")
    url: str = Field(description="Archive download URL")
    binary_name: str = Field(description="Executable file name")
    config_name: str = Field(default=CONFIG_NAME, description="Config file name")


Predicate = Callable[[str], bool]


def _contains_any(*tokens: str) -> Predicate:
    return lambda value: any(token in value for token in tokens)


def _is_arm64(value: str) -> bool:
    if "aarch64" in value or "arm64" in value:
        return True
    return "arm" in value and ("x86_64" in value or "amd64" in value)


@dataclass(frozen=True)
class _Rule:
    predicate: Predicate
    name: str


OS_RULES: tuple[_Rule, ...] = (
    _Rule(_contains_any("darwin", "mac"), "darwin"),
    _Rule(_contains_any("windows", "cygwin"), "windows"),
    _Rule(_contains_any("freebsd"), "freebsd"),
    _Rule(_contains_any("linux"), "linux"),
)

ARCH_RULES: tuple[_Rule, ...] = (
    _Rule(_is_arm64, "x86_64_arm"),
    _Rule(_contains_any("arm"), "i386_arm"),
    _Rule(_contains_any("x86_64", "amd64"), "x86_64"),
    _Rule(_contains_any("i386", "i686", "x86", "386"), "i386"),
)

# (version, os, arch) -> CDN artifact suffix
PLATFORM_TABLE: tuple[tuple[NgrokVersion, str, str, str], ...] = (
    ("v2", "darwin", "x86_64_arm", "darwin-arm64"),
    ("v2", "darwin", "x86_64", "darwin-amd64"),
    ("v2", "darwin", "i386", "darwin-386"),
    ("v2", "windows", "x86_64", "windows-amd64"),
    ("v2", "windows", "i386", "windows-386"),
    ("v2", "linux", "x86_64_arm", "linux-arm64"),
    ("v2", "linux", "i386_arm", "linux-arm"),
    ("v2", "linux", "x86_64", "linux-amd64"),
    ("v2", "linux", "i386", "linux-386"),
    ("v2", "freebsd", "x86_64", "freebsd-amd64"),
    ("v2", "freebsd", "i386", "freebsd-386"),
    ("v3", "darwin", "x86_64_arm", "darwin-arm64"),
    ("v3", "darwin", "x86_64", "darwin-amd64"),
    ("v3", "windows", "x86_64_arm", "windows-arm64"),
    ("v3", "windows", "x86_64", "windows-amd64"),
    ("v3", "windows", "i386", "windows-386"),
    ("v3", "linux", "x86_64_arm", "linux-arm64"),
    ("v3", "linux", "i386_arm", "linux-arm"),
    ("v3", "linux", "x86_64", "linux-amd64"),
    ("v3", "linux", "i386", "linux-386"),
    ("v3", "freebsd", "x86_64", "freebsd-amd64"),
    ("v3", "freebsd", "i386", "freebsd-386"),
)


def _match(rules: tuple[_Rule, ...], value: str) -> str | None:
    for rule in rules:
        if rule.predicate(value):
            return rule.name
    return None


def get_system(os_name: str) -> str | None:
    """Map a raw OS name (``platform.system()``, ``"Mac OS X"``...) to a family."""
    return _match(OS_RULES, os_name.lower())


def get_arch(arch: str) -> str | None:
    """Map a raw machine string (``"x86_64"``, ``"aarch64"``...) to an arch class."""
    return _match(ARCH_RULES, arch.lower())


def get_binary_name(os_name: str) -> str:
    """Return the ngrok executable name for a raw OS name.

    Raises:
        UnsupportedPlatformError: If the OS family is unknown
    """
    system = get_system(os_name)
    if system is None:
        raise UnsupportedPlatformError(os_name, "", DEFAULT_VERSION)
    return "ngrok.exe" if system == "windows" else "ngrok"


def resolve(
    os_name: str, arch: str, version: NgrokVersion = DEFAULT_VERSION
) -> PlatformDescriptor:
    """Resolve the ngrok distribution for an OS, CPU architecture and version.

    Args:
        os_name: Raw OS name as reported by the system
        arch: Raw machine/architecture string
        version: ngrok major version family ("v2" or "v3")

    Returns:
        Descriptor with the download URL and file names

    Raises:
        UnsupportedPlatformError: If no rule matches
    """
    system = get_system(os_name)
    arch_class = get_arch(arch)

    if system is not None and arch_class is not None:
        for rule_version, rule_system, rule_arch, suffix in PLATFORM_TABLE:
            if (rule_version, rule_system, rule_arch) == (version, system, arch_class):
                os_part, arch_part = suffix.split("-")
                return PlatformDescriptor(
                    system=system,
                    arch=arch_class,
                    version=version,
                    url=CDN_URLS[version].format(os=os_part, arch=arch_part),
                    binary_name=get_binary_name(os_name),
                )

    raise UnsupportedPlatformError(os_name, arch, version)


def resolve_current(version: NgrokVersion = DEFAULT_VERSION) -> PlatformDescriptor:
    """Resolve the distribution for the platform this interpreter runs on."""
    return resolve(platform.system(), platform.machine(), version)
