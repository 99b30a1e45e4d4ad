"""
Process lifecycle for the local Haystack server.

Handles:
- Spawning ``haystack server start`` as a detached process
- Health-driven readiness with bounded retry
- Graceful stop before an upgrade
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from pathlib import Path
from typing import Optional

from haystack_sidecar._core.health import (
    check_health,
    request_stop,
    wait_for_shutdown,
)
from haystack_sidecar.errors import ProcessStartError
from haystack_sidecar.status import StatusModel
from haystack_sidecar.types import LifecycleStatus

logger = logging.getLogger(__name__)


async def spawn_server_process(executable_path: Path) -> asyncio.subprocess.Process:
    """
    Start the Haystack server as a detached process.

    The server outlives this process; nothing waits on it.

    Args:
        executable_path: Path to the Haystack executable

    Returns:
        The subprocess.Process object

    Raises:
        ProcessStartError: If the process cannot be spawned
    """
    cmd = [str(executable_path), "server", "start"]

    if sys.platform == "win32":
        detach = {
            "creationflags": subprocess.DETACHED_PROCESS
            | subprocess.CREATE_NEW_PROCESS_GROUP,
        }
    else:
        detach = {"start_new_session": True}

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            **detach,
        )
    except OSError as e:
        raise ProcessStartError(f"Failed to start Haystack: {e}") from e

    logger.debug(f"Spawned Haystack server (PID: {process.pid})")
    return process


class ProcessSupervisor:
    """
    Starts the local Haystack server and waits until it is healthy.

    A start attempt probes /health first: a server that is already up
    (started by an earlier session, or by hand) is simply adopted. If not,
    the executable is spawned, given settle_delay seconds, and probed
    again. Failed attempts are retried every retry_delay seconds until
    max_retries attempts have failed, at which point the status becomes
    ``error``.

    Concurrent start() calls share a single attempt loop, so redundant
    triggers never spawn a second process.
    """

    def __init__(
        self,
        executable_path: Path,
        base_url: str,
        status: StatusModel,
        max_retries: int = 10,
        settle_delay: float = 1.0,
        retry_delay: float = 3.0,
        request_timeout: float = 5.0,
        shutdown_timeout: float = 20.0,
        shutdown_poll_interval: float = 0.2,
    ):
        self.executable_path = executable_path
        self.base_url = base_url
        self.status = status
        self.max_retries = max_retries
        self.settle_delay = settle_delay
        self.retry_delay = retry_delay
        self.request_timeout = request_timeout
        self.shutdown_timeout = shutdown_timeout
        self.shutdown_poll_interval = shutdown_poll_interval

        self._retry_count = 0
        self._process: Optional[asyncio.subprocess.Process] = None
        self._start_task: Optional[asyncio.Task] = None

    @property
    def retry_count(self) -> int:
        """Consecutive failed start attempts so far."""
        return self._retry_count

    def reset_retries(self) -> None:
        self._retry_count = 0

    @property
    def is_starting(self) -> bool:
        """Whether a start loop is in flight."""
        return self._start_task is not None and not self._start_task.done()

    async def is_running(self) -> bool:
        """Probe the health endpoint."""
        return await check_health(self.base_url, self.request_timeout)

    async def start(self) -> bool:
        """
        Start the server, or join a start that is already in flight.

        Cancelling the caller does not cancel the attempt loop.

        Returns:
            True if the server became healthy, False once retries ran out
        """
        if not self.is_starting:
            self._start_task = asyncio.ensure_future(self._start_loop())
        return await asyncio.shield(self._start_task)

    async def _start_loop(self) -> bool:
        while True:
            if await self.is_running():
                logger.info("Haystack is already running.")
                return self._mark_running()

            self._retry_count += 1
            if self._retry_count > self.max_retries:
                self._retry_count = 0
                logger.error(
                    f"Haystack server failed to start after {self.max_retries} attempts."
                )
                self.status.status = LifecycleStatus.ERROR
                return False

            try:
                self._process = await spawn_server_process(self.executable_path)
            except ProcessStartError as e:
                logger.warning(f"{e} (attempt {self._retry_count})")

            await asyncio.sleep(self.settle_delay)
            if await self.is_running():
                logger.info("Haystack server started.")
                return self._mark_running()

            logger.debug(
                f"Haystack not healthy after attempt {self._retry_count}; "
                f"retrying in {self.retry_delay}s"
            )
            await asyncio.sleep(self.retry_delay)

    def _mark_running(self) -> bool:
        self._retry_count = 0
        self.status.status = LifecycleStatus.RUNNING
        return True

    async def stop_for_upgrade(self) -> bool:
        """
        Ask a running server to stop and wait for it to go away.

        Waits at most shutdown_timeout seconds. On success the lifecycle
        status returns to ``initializing``.

        Returns:
            True if a server accepted the stop request
        """
        logger.debug("Shutting down Haystack server...")
        if not await request_stop(self.base_url, self.request_timeout):
            logger.debug("No Haystack server accepted the stop request")
            return False

        await wait_for_shutdown(
            self.base_url,
            timeout=self.shutdown_timeout,
            interval=self.shutdown_poll_interval,
            request_timeout=self.request_timeout,
        )
        self.status.status = LifecycleStatus.INITIALIZING
        logger.info("Haystack server stopped for upgrade.")
        return True
