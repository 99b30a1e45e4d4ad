"""
Exception types for haystack-sidecar.

Provides typed exceptions for:
- Platform support
- Binary acquisition (archives and downloads)
- Version compatibility
- Process startup
- Requests issued while the sidecar is not running

Only NotRunningError (and the requests errors of a failed post) ever
reach callers of the public API. Everything else is raised and caught inside the lifecycle and translated into a
status value.
"""

from __future__ import annotations

from typing import Optional


class HaystackError(Exception):
    """Base exception for all haystack-sidecar errors."""
    pass


class ConfigError(HaystackError):
    """Raised when HaystackConfig holds invalid values."""
    pass


class PlatformUnsupportedError(HaystackError):
    """
    Raised when the running OS/architecture has no Haystack build.

    This is terminal: the lifecycle moves to ``unsupported`` and never
    retries.
    """

    def __init__(self, platform_key: str):
        self.platform_key = platform_key
        super().__init__(f"Haystack is not supported on {platform_key}")


# =============================================================================
# Acquisition Errors
# =============================================================================


class AcquisitionError(HaystackError):
    """
    Raised when a single acquisition source fails.

    The install pipeline catches this and falls through to the next
    source. Only when every source has failed does the install status
    become ``error``.
    """
    pass


class ArchiveError(AcquisitionError):
    """
    Raised when an archive is missing, too small, or cannot be extracted.

    Attributes:
        path: Archive path that was rejected
    """

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class DownloadError(AcquisitionError):
    """
    Raised when downloading from one URL fails.

    Attributes:
        url: URL of the failed request
        status_code: HTTP status of the terminal response, if any
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


# =============================================================================
# Version / Process Errors
# =============================================================================


class IncompatibleVersionError(HaystackError):
    """
    Raised when the installed Haystack is older than the required version.

    Self-healing: the version gate catches it, removes the installed
    binary and re-enters acquisition.
    """

    def __init__(self, installed: str, required: str):
        self.installed = installed
        self.required = required
        super().__init__(
            f"Installed Haystack {installed!r} is not compatible "
            f"with required version {required!r}"
        )


class ProcessStartError(HaystackError):
    """Raised when the Haystack executable cannot be spawned."""
    pass


class NotRunningError(HaystackError):
    """Raised by Haystack.post() when the server is not running."""

    def __init__(self, message: str = "Haystack is not running"):
        super().__init__(message)
