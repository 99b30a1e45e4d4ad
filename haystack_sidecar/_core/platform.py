"""
Platform detection for Haystack builds.

Maps the running OS/CPU to a ``{os}-{arch}`` key and checks it against
the set of targets Haystack is released for.
"""

from __future__ import annotations

import platform
from typing import Optional, Tuple

from haystack_sidecar._core.version import format_version
from haystack_sidecar.errors import PlatformUnsupportedError

BINARY_NAME = "haystack"

SUPPORTED_PLATFORMS = frozenset({
    "linux-amd64",
    "linux-arm64",
    "darwin-amd64",
    "darwin-arm64",
    "windows-amd64",
    "windows-arm64",
})


def get_platform_info() -> Tuple[str, str]:
    """
    Determine the OS and architecture.

    Unknown values pass through lower-cased so that they produce an
    unsupported key instead of an exception.

    Returns:
        Tuple of (os_name, arch_name)
    """
    system = platform.system().lower()
    machine = platform.machine().lower()

    # Normalize Architecture
    if machine in ("x86_64", "amd64"):
        arch_name = "amd64"
    elif machine in ("arm64", "aarch64"):
        arch_name = "arm64"
    else:
        arch_name = machine

    return system, arch_name


def get_current_platform() -> str:
    """Return the ``{os}-{arch}`` key of the running platform."""
    os_name, arch_name = get_platform_info()
    return f"{os_name}-{arch_name}"


def is_platform_supported(platform_key: Optional[str] = None) -> bool:
    """Check whether a Haystack build exists for the platform key."""
    return (platform_key or get_current_platform()) in SUPPORTED_PLATFORMS


def ensure_platform_supported(platform_key: Optional[str] = None) -> str:
    """
    Return the platform key, or raise if there is no build for it.

    Raises:
        PlatformUnsupportedError: If the key is not in SUPPORTED_PLATFORMS
    """
    platform_key = platform_key or get_current_platform()
    if platform_key not in SUPPORTED_PLATFORMS:
        raise PlatformUnsupportedError(platform_key)
    return platform_key


def get_executable_name(os_name: Optional[str] = None) -> str:
    """Executable filename for the OS (``haystack.exe`` on Windows)."""
    os_name = os_name or get_platform_info()[0]
    return f"{BINARY_NAME}.exe" if os_name == "windows" else BINARY_NAME


def get_archive_name(version: str, platform_key: Optional[str] = None) -> str:
    """
    Release archive filename for a version and platform.

    Example:
        >>> get_archive_name("0.8.0", "linux-amd64")
        'haystack-linux-amd64-v0.8.0.zip'
    """
    platform_key = platform_key or get_current_platform()
    return f"{BINARY_NAME}-{platform_key}-{format_version(version)}.zip"
