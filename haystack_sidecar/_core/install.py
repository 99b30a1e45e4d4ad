"""
Acquisition and installation of the Haystack binary.

The install pipeline tries four sources strictly in order and stops at
the first one that works:

1. An archive left in ``{install_dir}/download`` by an earlier download
2. An archive bundled with the host application (read-only)
3. The primary release URL
4. The fallback mirror

Whichever source wins, the archive is extracted into the install
directory, the executable is made runnable, and ``version.txt`` plus
``config.yaml`` are written beside it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import zipfile
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional
from urllib.parse import urljoin

import requests
import yaml

from haystack_sidecar._core.platform import (
    get_archive_name,
    get_current_platform,
    get_executable_name,
)
from haystack_sidecar._core.version import format_version, write_version_marker
from haystack_sidecar.errors import AcquisitionError, ArchiveError, DownloadError
from haystack_sidecar.types import DownloadProgress, InstallStatus

if TYPE_CHECKING:
    from haystack_sidecar.config import HaystackConfig
    from haystack_sidecar.status import StatusModel

logger = logging.getLogger(__name__)

# Anything smaller is a truncated download or an HTML error page
MIN_ARCHIVE_SIZE = 1024 * 1024

PROGRESS_PERCENT_STEP = 5
PROGRESS_BYTES_STEP = 1024 * 1024
CHUNK_SIZE = 64 * 1024

CONFIG_FILE_NAME = "config.yaml"
DOWNLOAD_DIR_NAME = "download"

ProgressCallback = Callable[[DownloadProgress], None]


def _remove_partial(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def _content_length(response: requests.Response) -> int:
    try:
        return max(0, int(response.headers.get("Content-Length") or 0))
    except ValueError:
        return 0


def check_existing_archive(archive_path: Path, delete_if_small: bool = False) -> Path:
    """
    Verify that an archive exists and is at least MIN_ARCHIVE_SIZE bytes.

    Args:
        archive_path: Archive to check
        delete_if_small: Delete an undersized archive (only for the
            download cache, never for bundled archives)

    Returns:
        The archive path

    Raises:
        ArchiveError: If the archive is missing or too small
    """
    try:
        size = archive_path.stat().st_size
    except OSError as e:
        raise ArchiveError(
            f"Archive does not exist or cannot be accessed: {archive_path}",
            path=str(archive_path),
        ) from e

    if size < MIN_ARCHIVE_SIZE:
        message = (
            f"Archive exists but is too small ({size} bytes, "
            f"minimum: {MIN_ARCHIVE_SIZE} bytes)"
        )
        if delete_if_small:
            try:
                archive_path.unlink()
            except OSError as e:
                logger.warning(f"Failed to delete undersized archive {archive_path}: {e}")
                raise ArchiveError(message, path=str(archive_path)) from e
            logger.warning(f"Deleted undersized archive: {archive_path}")
        raise ArchiveError(message, path=str(archive_path))

    logger.debug(f"Verified archive: {archive_path}")
    return archive_path


def download_file(
    url: str,
    destination: Path,
    on_progress: Optional[ProgressCallback] = None,
    timeout: float = 60.0,
    max_redirects: int = 10,
) -> DownloadProgress:
    """
    Download url to destination, following redirects by hand.

    Progress is reported through on_progress: once at 0% before the first
    request, then every PROGRESS_PERCENT_STEP points (or every
    PROGRESS_BYTES_STEP bytes when the size is unknown), and exactly once
    at 100% when the file is complete.

    Args:
        url: URL to fetch
        destination: Output file; removed on any failure
        on_progress: Callback receiving DownloadProgress snapshots
        timeout: Connect/read timeout per request
        max_redirects: Redirect hops allowed before giving up

    Returns:
        The final (100%) progress record

    Raises:
        DownloadError: On a non-200 terminal response, too many redirects,
            or any transport/filesystem fault
    """
    report = on_progress or (lambda progress: None)
    report(DownloadProgress(url=url))

    current_url = url
    hops = 0
    try:
        while True:
            response = requests.get(
                current_url,
                stream=True,
                allow_redirects=False,
                timeout=timeout,
            )
            location = response.headers.get("Location")
            if not (300 <= response.status_code < 400 and location):
                break

            response.close()
            _remove_partial(destination)
            hops += 1
            if hops > max_redirects:
                raise DownloadError(
                    f"Too many redirects (>{max_redirects}) downloading {url}",
                    url=current_url,
                    status_code=response.status_code,
                )
            current_url = urljoin(current_url, location)
            logger.debug(f"Redirected to {current_url}")

        with response:
            if response.status_code != 200:
                raise DownloadError(
                    f"Failed to download, status code: {response.status_code}",
                    url=current_url,
                    status_code=response.status_code,
                )

            total_size = _content_length(response)
            logger.debug(f"Total size: {total_size} bytes")
            downloaded_size = 0
            last_percent = 0
            last_reported_size = 0

            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    f.write(chunk)
                    downloaded_size += len(chunk)

                    if total_size > 0:
                        percent = min(100, downloaded_size * 100 // total_size)
                        if last_percent + PROGRESS_PERCENT_STEP <= percent < 100:
                            last_percent = percent
                            report(DownloadProgress(
                                current_url, total_size, downloaded_size, percent
                            ))
                    elif downloaded_size - last_reported_size >= PROGRESS_BYTES_STEP:
                        last_reported_size = downloaded_size
                        report(DownloadProgress(current_url, 0, downloaded_size, 0))

    except DownloadError:
        _remove_partial(destination)
        raise
    except (requests.exceptions.RequestException, OSError) as e:
        _remove_partial(destination)
        raise DownloadError(f"{e}", url=current_url) from e

    final = DownloadProgress(current_url, total_size, downloaded_size, 100)
    report(final)
    return final


def extract_archive(
    archive_path: Path,
    install_dir: Path,
    executable_name: str,
    os_name: str,
) -> Path:
    """
    Unpack a release archive into install_dir, overwriting existing files.

    Zip files do not reliably carry the executable bit, so on non-Windows
    targets the executable is chmod'ed to rwxr-xr-x afterwards.

    Returns:
        Path to the extracted executable

    Raises:
        ArchiveError: If the archive is corrupt or lacks the executable
    """
    logger.debug(f"Extracting archive: {archive_path}")
    try:
        with zipfile.ZipFile(archive_path) as zf:
            zf.extractall(install_dir)
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveError(
            f"Extraction of {archive_path} failed: {e}",
            path=str(archive_path),
        ) from e

    executable = install_dir / executable_name
    if not executable.is_file():
        raise ArchiveError(
            f"{executable_name} not found in {archive_path}",
            path=str(archive_path),
        )

    if os_name != "windows":
        os.chmod(executable, 0o755)

    return executable


def render_config(
    data_dir: Path,
    port: int,
    max_results: int = 500,
    max_results_per_file: int = 50,
) -> str:
    """Render the config.yaml the Haystack server reads at startup."""
    return yaml.safe_dump(
        {
            "global": {
                "data_path": str(data_dir),
                "port": port,
            },
            "client": {
                "default_limit": {
                    "max_results": max_results,
                    "max_results_per_file": max_results_per_file,
                },
            },
        },
        default_flow_style=False,
        sort_keys=False,
    )


def write_version_and_config(install_dir: Path, version: str, config_text: str) -> None:
    """Write version.txt and config.yaml into the install directory."""
    write_version_marker(install_dir, version)
    (install_dir / CONFIG_FILE_NAME).write_text(config_text, encoding="utf-8")


class InstallManager:
    """
    Runs the four-source acquisition pipeline for one install directory.

    Only one install() runs at a time; a second caller waits for the
    first to finish.
    """

    def __init__(
        self,
        config: "HaystackConfig",
        status: "StatusModel",
        port: int,
        platform_key: Optional[str] = None,
    ):
        self.config = config
        self.status = status
        self.port = port
        self.platform_key = platform_key or get_current_platform()
        self.os_name = self.platform_key.split("-", 1)[0]
        self.version = format_version(config.required_version)
        self.archive_name = get_archive_name(self.version, self.platform_key)

        self.install_dir = config.install_dir
        self.download_dir = self.install_dir / DOWNLOAD_DIR_NAME
        self.executable_path = self.install_dir / get_executable_name(self.os_name)
        self.cached_archive_path = self.download_dir / self.archive_name
        self.bundled_archive_path: Optional[Path] = (
            config.bundle_dir / self.archive_name if config.bundle_dir else None
        )

        self._lock: Optional[asyncio.Lock] = None

    @property
    def primary_url(self) -> str:
        return f"{self.config.primary_url}/{self.version}/{self.archive_name}"

    @property
    def fallback_url(self) -> str:
        return f"{self.config.fallback_url}/{self.version}/{self.archive_name}"

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so it binds to the loop that uses it
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def install(self) -> bool:
        """
        Acquire, extract and register the required Haystack build.

        Never raises; failure is reported through the install status.

        Returns:
            True if install status ended as ``installed``
        """
        async with self._get_lock():
            try:
                return await self._install()
            except Exception as e:
                logger.error(f"Installation failed: {e}")
                self.status.install_status = InstallStatus.ERROR
                return False

    async def _install(self) -> bool:
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(
            None, partial(self.download_dir.mkdir, parents=True, exist_ok=True)
        )

        # Step 1: Archive left over from an earlier download
        try:
            await loop.run_in_executor(
                None, check_existing_archive, self.cached_archive_path, True
            )
            await self._install_from(self.cached_archive_path)
            logger.info(f"Installed from downloaded archive: {self.cached_archive_path}")
            return True
        except AcquisitionError as e:
            logger.debug(f"No usable downloaded archive: {e}")

        # Step 2: Archive bundled with the host application
        if self.bundled_archive_path is not None:
            try:
                await loop.run_in_executor(
                    None, check_existing_archive, self.bundled_archive_path, False
                )
                await self._install_from(self.bundled_archive_path)
                logger.info(f"Installed from bundled archive: {self.bundled_archive_path}")
                return True
            except AcquisitionError as e:
                logger.debug(f"No usable bundled archive: {e}")

        # Steps 3 and 4: Primary URL, then the mirror
        self.status.install_status = InstallStatus.DOWNLOADING
        for url in (self.primary_url, self.fallback_url):
            try:
                logger.info(f"Downloading Haystack from {url}")
                await self._download(url)
                await self._install_from(self.cached_archive_path)
                logger.info(f"Installed Haystack {self.version} from {url}")
                return True
            except AcquisitionError as e:
                logger.warning(f"Failed to install from {url}: {e}")

        logger.error(f"Could not acquire Haystack {self.version} from any source")
        self.status.install_status = InstallStatus.ERROR
        return False

    async def _download(self, url: str) -> None:
        loop = asyncio.get_event_loop()

        def on_progress(progress: DownloadProgress) -> None:
            # Runs in the executor thread; hop back to the loop to notify
            loop.call_soon_threadsafe(self.status.set_download_progress, progress)

        try:
            await loop.run_in_executor(
                None,
                partial(
                    download_file,
                    url,
                    self.cached_archive_path,
                    on_progress,
                    timeout=self.config.download_timeout,
                    max_redirects=self.config.max_redirects,
                ),
            )
        except DownloadError as e:
            if e.status_code is None:
                self.status.report_error(f"Download failed: {e}", e)
            raise

    async def _install_from(self, archive_path: Path) -> None:
        loop = asyncio.get_event_loop()
        config_text = render_config(
            self.config.data_dir,
            self.port,
            self.config.max_results,
            self.config.max_results_per_file,
        )
        await loop.run_in_executor(
            None,
            extract_archive,
            archive_path,
            self.install_dir,
            self.executable_path.name,
            self.os_name,
        )
        try:
            await loop.run_in_executor(
                None,
                write_version_and_config,
                self.install_dir,
                self.version,
                config_text,
            )
        except OSError as e:
            raise AcquisitionError(
                f"Failed to write version/config into {self.install_dir}: {e}"
            ) from e
        self.status.install_status = InstallStatus.INSTALLED
