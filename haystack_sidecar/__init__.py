"""
haystack-sidecar: Lifecycle manager for a local Haystack search server.

This package provides:
- Platform detection against the set of released Haystack builds
- Version gating with automatic reinstall of outdated builds
- Acquisition from a cached archive, a bundled archive, or two download URLs
- Health-driven process start with bounded retry
- Observable lifecycle/install status and download progress

Installation:
    pip install haystack-sidecar

Quickstart:
    import asyncio
    from haystack_sidecar import Haystack, HaystackConfig, LifecycleStatus

    async def main():
        haystack = Haystack(HaystackConfig(required_version="0.8.0"))
        haystack.on("download-progress", lambda p: print(f"{p.percent}%"))
        await haystack.initialize()

        if haystack.get_status() == LifecycleStatus.RUNNING:
            response = await haystack.post(
                "/api/v1/search/content", {"query": "needle"}
            )
            print(response.json())

    asyncio.run(main())
"""

from haystack_sidecar.types import (
    LifecycleStatus,
    InstallStatus,
    HaystackEvent,
    DownloadProgress,
    StatusChange,
    ErrorEvent,
)
from haystack_sidecar.errors import (
    HaystackError,
    ConfigError,
    PlatformUnsupportedError,
    AcquisitionError,
    ArchiveError,
    DownloadError,
    IncompatibleVersionError,
    ProcessStartError,
    NotRunningError,
)
from haystack_sidecar.config import (
    HaystackConfig,
    LOCAL_PORT,
    GLOBAL_PORT,
)
from haystack_sidecar.status import StatusModel
from haystack_sidecar.manager import Haystack

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Types
    "LifecycleStatus",
    "InstallStatus",
    "HaystackEvent",
    "DownloadProgress",
    "StatusChange",
    "ErrorEvent",
    # Errors
    "HaystackError",
    "ConfigError",
    "PlatformUnsupportedError",
    "AcquisitionError",
    "ArchiveError",
    "DownloadError",
    "IncompatibleVersionError",
    "ProcessStartError",
    "NotRunningError",
    # Config
    "HaystackConfig",
    "LOCAL_PORT",
    "GLOBAL_PORT",
    # Status
    "StatusModel",
    # Manager
    "Haystack",
]
