"""
Core sidecar management for haystack-sidecar.

This module handles:
- Platform detection and archive naming
- Binary acquisition, extraction and version bookkeeping
- Process start, health checks and graceful stop
"""

from haystack_sidecar._core.version import (
    parse_version,
    format_version,
    is_version_compatible,
    VersionGate,
)
from haystack_sidecar._core.platform import (
    get_platform_info,
    get_current_platform,
    is_platform_supported,
    get_executable_name,
    get_archive_name,
)
from haystack_sidecar._core.health import (
    check_health,
    check_server_status,
    request_stop,
    wait_for_shutdown,
)
from haystack_sidecar._core.install import (
    InstallManager,
    download_file,
    extract_archive,
)
from haystack_sidecar._core.lifecycle import (
    ProcessSupervisor,
    spawn_server_process,
)

__all__ = [
    # Version
    "parse_version",
    "format_version",
    "is_version_compatible",
    "VersionGate",
    # Platform
    "get_platform_info",
    "get_current_platform",
    "is_platform_supported",
    "get_executable_name",
    "get_archive_name",
    # Health
    "check_health",
    "check_server_status",
    "request_stop",
    "wait_for_shutdown",
    # Install
    "InstallManager",
    "download_file",
    "extract_archive",
    # Lifecycle
    "ProcessSupervisor",
    "spawn_server_process",
]
