"""
Type definitions for haystack-sidecar.

Defines the enums and dataclasses that make up the observable state of
the sidecar:
- Lifecycle status and install status (the two state axes)
- Download progress records
- Event names and event payloads
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# =============================================================================
# Status Axes
# =============================================================================


class LifecycleStatus(str, Enum):
    """
    Overall readiness of the sidecar as observed by callers.

    - INITIALIZING: Initial state, also re-entered after a stop for upgrade
    - STARTING: Install verified, the process is being started
    - RUNNING: Health check passed (or the server is managed elsewhere)
    - UNSUPPORTED: No Haystack build exists for this platform (terminal)
    - ERROR: Unrecoverable fault; only an explicit retry leaves this state
    """
    INITIALIZING = "initializing"
    STARTING = "starting"
    RUNNING = "running"
    UNSUPPORTED = "unsupported"
    ERROR = "error"


class InstallStatus(str, Enum):
    """
    State of the on-disk binary relative to the required version.
    """
    INITIALIZING = "initializing"
    DOWNLOADING = "downloading"
    NOT_INSTALLED = "not-installed"
    INSTALLED = "installed"
    UNSUPPORTED = "unsupported"
    ERROR = "error"


class HaystackEvent(str, Enum):
    """Events published to observers."""
    STATUS_CHANGE = "status-change"
    INSTALL_STATUS_CHANGE = "install-status-change"
    DOWNLOAD_PROGRESS = "download-progress"
    ERROR = "error"


# =============================================================================
# Event Payloads
# =============================================================================


@dataclass(frozen=True)
class DownloadProgress:
    """
    Snapshot of a single download attempt.

    Replaced wholesale on every update, never mutated.

    Attributes:
        url: Source URL of the current attempt
        total_size: Content length in bytes (0 when unknown)
        downloaded_size: Bytes received so far
        percent: 0-100; stays 0 mid-stream when total_size is unknown
    """
    url: str = ""
    total_size: int = 0
    downloaded_size: int = 0
    percent: int = 0

    @property
    def size_known(self) -> bool:
        """Whether the server announced a content length."""
        return self.total_size > 0


@dataclass(frozen=True)
class StatusChange:
    """Payload of status-change and install-status-change events."""
    old: Enum
    new: Enum


@dataclass(frozen=True)
class ErrorEvent:
    """Payload of error events."""
    message: str
    error: Optional[BaseException] = None
