"""
Version parsing and the compatibility gate for installed Haystack builds.

The installed version is recorded in ``version.txt`` beside the
executable. On every initialization the gate compares it against the
required version; an older install is stopped, removed and reinstalled.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Tuple

from haystack_sidecar.errors import IncompatibleVersionError
from haystack_sidecar.types import InstallStatus

if TYPE_CHECKING:
    from haystack_sidecar.status import StatusModel

logger = logging.getLogger(__name__)

VERSION_FILE_NAME = "version.txt"

_VERSION_RE = re.compile(r"^\D*(\d+)\.(\d+)\.(\d+)")


def parse_version(version: str) -> Tuple[int, int, int]:
    """
    Parse a dotted version string into (major, minor, patch) tuple.

    Any leading non-numeric prefix (such as "v") is stripped.

    Args:
        version: Version string like "0.8.0" or "v0.8.0"

    Returns:
        Tuple of (major, minor, patch)

    Raises:
        ValueError: If version string is invalid
    """
    match = _VERSION_RE.match(version.strip())
    if not match:
        raise ValueError(f"Invalid version string: {version!r}")

    return (int(match.group(1)), int(match.group(2)), int(match.group(3)))


def format_version(version: str) -> str:
    """Normalize a version string to the ``v{major}.{minor}.{patch}`` form."""
    major, minor, patch = parse_version(version)
    return f"v{major}.{minor}.{patch}"


def is_version_compatible(installed: str, required: str) -> bool:
    """
    Check if an installed version satisfies the required version.

    Components are compared in order (major, minor, patch); the first
    unequal component decides. Equal versions are compatible.

    Args:
        installed: Installed version string
        required: Required version string

    Returns:
        True if installed >= required, False otherwise (including
        unparsable installed versions)
    """
    try:
        return parse_version(installed) >= parse_version(required)
    except ValueError:
        return False


def read_version_marker(install_dir: Path) -> Optional[str]:
    """Read ``version.txt``; returns None if it is absent or unreadable."""
    try:
        return (install_dir / VERSION_FILE_NAME).read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"No readable version marker in {install_dir}: {e}")
        return None


def write_version_marker(install_dir: Path, version: str) -> Path:
    """Write ``version.txt`` holding the normalized version."""
    path = install_dir / VERSION_FILE_NAME
    path.write_text(format_version(version), encoding="utf-8")
    return path


def _remove_file(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        # Extraction overwrites it later
        logger.warning(f"Failed to remove {path}: {e}")


class VersionGate:
    """
    Compatibility gate between the installed build and the required one.

    If the marker is missing or the installed build is too old, the gate
    stops any running instance, deletes the marker and executable, and
    flips the install status to ``not-installed`` so that acquisition
    runs again.
    """

    def __init__(
        self,
        install_dir: Path,
        executable_path: Path,
        required_version: str,
        status: "StatusModel",
        stop_server: Callable[[], Awaitable[bool]],
    ):
        self.install_dir = install_dir
        self.executable_path = executable_path
        self.required_version = required_version
        self._status = status
        self._stop_server = stop_server

    def verify(self, installed: str) -> None:
        """
        Raise if the installed version cannot serve the required one.

        Raises:
            IncompatibleVersionError: If installed < required
        """
        if not is_version_compatible(installed, self.required_version):
            raise IncompatibleVersionError(installed, self.required_version)

    async def check(self) -> bool:
        """
        Gate the current install.

        Returns:
            True if the installed build may be used as is
        """
        loop = asyncio.get_event_loop()
        installed = await loop.run_in_executor(
            None, read_version_marker, self.install_dir
        )

        if installed is not None:
            try:
                self.verify(installed)
                logger.debug(
                    f"Installed Haystack {installed} satisfies {self.required_version}"
                )
                return True
            except IncompatibleVersionError as e:
                logger.info(f"{e}; reinstalling")

        await self._stop_server()
        await loop.run_in_executor(None, self._remove_install)
        self._status.install_status = InstallStatus.NOT_INSTALLED
        return False

    def _remove_install(self) -> None:
        _remove_file(self.install_dir / VERSION_FILE_NAME)
        _remove_file(self.executable_path)
        logger.debug(f"Removed {self.executable_path} and its version marker")
