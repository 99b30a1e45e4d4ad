"""
Lifecycle manager for the Haystack sidecar.

Supports two modes:
- Local: Installs the required Haystack build if needed, starts it on
  LOCAL_PORT and supervises it until healthy
- Global: The server on GLOBAL_PORT is managed elsewhere; requests go
  straight to it

Usage:
    haystack = Haystack(HaystackConfig(required_version="0.8.0"))
    haystack.on("status-change", on_status_change)
    await haystack.initialize()

    if haystack.get_status() == LifecycleStatus.RUNNING:
        response = await haystack.post("/api/v1/search/content", {"query": "foo"})

When constructed inside a running event loop, initialization is
scheduled automatically; awaiting initialize() afterwards joins it.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any, Optional

import requests

from haystack_sidecar._core.install import InstallManager
from haystack_sidecar._core.lifecycle import ProcessSupervisor
from haystack_sidecar._core.platform import (
    ensure_platform_supported,
    get_current_platform,
    is_platform_supported,
)
from haystack_sidecar._core.version import VersionGate
from haystack_sidecar.config import HaystackConfig
from haystack_sidecar.errors import NotRunningError, PlatformUnsupportedError
from haystack_sidecar.status import EventName, Listener, StatusModel
from haystack_sidecar.types import (
    DownloadProgress,
    InstallStatus,
    LifecycleStatus,
)

logger = logging.getLogger(__name__)


class Haystack:
    """
    Installs, version-gates, starts and supervises a Haystack server.

    All state is published through the StatusModel; initialize() and
    start() never raise. Only post() raises: NotRunningError, or a
    requests error when the request itself fails.
    """

    def __init__(
        self,
        config: Optional[HaystackConfig] = None,
        local_server: bool = True,
        auto_start: bool = True,
        platform_key: Optional[str] = None,
    ):
        self.config = config or HaystackConfig.from_env()
        self.local_server = local_server
        self._platform = platform_key or get_current_platform()
        self._supported = is_platform_supported(self._platform)
        self._port = self.config.local_port if local_server else self.config.global_port

        self._status = StatusModel()
        self._installer = InstallManager(
            self.config, self._status, self._port, platform_key=self._platform
        )
        self._supervisor = ProcessSupervisor(
            self._installer.executable_path,
            self.get_url(),
            self._status,
            max_retries=self.config.max_start_retries,
            settle_delay=self.config.settle_delay,
            retry_delay=self.config.retry_delay,
            request_timeout=self.config.request_timeout,
            shutdown_timeout=self.config.shutdown_timeout,
            shutdown_poll_interval=self.config.shutdown_poll_interval,
        )
        self._gate = VersionGate(
            self.config.install_dir,
            self._installer.executable_path,
            self.config.required_version,
            self._status,
            self._supervisor.stop_for_upgrade,
        )
        self._init_task: Optional[asyncio.Task] = None

        if auto_start:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop; call initialize() to start")
            else:
                self._init_task = asyncio.ensure_future(self._initialize())

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Bring the sidecar up, or join an initialization already in flight.

        Sequence: platform check, directory setup, presence check,
        version gate, acquisition if needed, process start.
        """
        if self._init_task is None or self._init_task.done():
            self._init_task = asyncio.ensure_future(self._initialize())
        await asyncio.shield(self._init_task)

    async def _initialize(self) -> None:
        try:
            await self._run_initialize()
        except Exception as e:
            logger.exception(f"Haystack initialization failed: {e}")
            self._status.status = LifecycleStatus.ERROR

    async def _run_initialize(self) -> None:
        status = self._status

        try:
            ensure_platform_supported(self._platform)
        except PlatformUnsupportedError as e:
            logger.info(f"{e}")
            status.status = LifecycleStatus.UNSUPPORTED
            status.install_status = InstallStatus.UNSUPPORTED
            return

        if not self.local_server:
            # Managed elsewhere
            status.status = LifecycleStatus.RUNNING
            return

        loop = asyncio.get_event_loop()
        executable = self._installer.executable_path
        await loop.run_in_executor(
            None, partial(self.config.install_dir.mkdir, parents=True, exist_ok=True)
        )
        if await loop.run_in_executor(None, executable.is_file):
            logger.info(f"Haystack found at: {executable}")
            status.install_status = InstallStatus.INSTALLED
        else:
            logger.info(f"Haystack not found at: {executable}")
            status.install_status = InstallStatus.NOT_INSTALLED

        if status.install_status == InstallStatus.INSTALLED:
            await self._gate.check()

        if status.install_status == InstallStatus.NOT_INSTALLED:
            await self._installer.install()

        logger.debug(
            f"Install status: {status.install_status.value}, "
            f"status: {status.status.value}"
        )

        if status.install_status != InstallStatus.INSTALLED:
            status.status = LifecycleStatus.ERROR
            return

        if status.status != LifecycleStatus.RUNNING:
            await self._start_server()

    async def _start_server(self) -> bool:
        self._status.status = LifecycleStatus.STARTING
        if not self._supervisor.is_starting:
            self._supervisor.reset_retries()
        return await self._supervisor.start()

    async def start(self) -> bool:
        """
        Manually start or retry, e.g. from an operator command.

        Re-runs acquisition if the last install failed, otherwise
        restarts the supervisor's attempt loop.

        Returns:
            True if the server is running afterwards
        """
        if not self._supported:
            return False

        initializing = self._init_task is not None and not self._init_task.done()
        if initializing or not self.local_server:
            await self.initialize()
        elif self._status.install_status != InstallStatus.INSTALLED:
            if self._status.install_status == InstallStatus.ERROR:
                self._status.install_status = InstallStatus.NOT_INSTALLED
            await self.initialize()
        elif (
            self._status.status == LifecycleStatus.RUNNING
            and await self._supervisor.is_running()
        ):
            return True
        else:
            try:
                await self._start_server()
            except Exception as e:
                logger.exception(f"Haystack start failed: {e}")
                self._status.status = LifecycleStatus.ERROR

        return self._status.status == LifecycleStatus.RUNNING

    async def stop_for_upgrade(self) -> bool:
        """Stop a running local server gracefully (status -> initializing)."""
        return await self._supervisor.stop_for_upgrade()

    async def post(self, path: str, payload: Any = None) -> requests.Response:
        """
        POST a JSON payload to the running server.

        Args:
            path: Endpoint path, e.g. "/api/v1/search/content"
            payload: JSON-serializable request body

        Raises:
            NotRunningError: If the lifecycle status is not ``running``
            requests.HTTPError: If the server answers with a non-2xx status
            requests.RequestException: On transport failures
        """
        if self._status.status != LifecycleStatus.RUNNING:
            raise NotRunningError()

        url = f"{self.get_url()}{path}"
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, partial(self._post_json, url, payload)
        )

    def _post_json(self, url: str, payload: Any) -> requests.Response:
        response = requests.post(url, json=payload, timeout=self.config.request_timeout)
        response.raise_for_status()
        return response

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def get_status(self) -> LifecycleStatus:
        return self._status.status

    def get_install_status(self) -> InstallStatus:
        return self._status.install_status

    def get_download_progress(self) -> DownloadProgress:
        return self._status.download_progress

    def get_url(self) -> str:
        return f"http://{self.config.host}:{self._port}"

    def is_running_locally(self) -> bool:
        return self.local_server

    def get_is_supported(self) -> bool:
        return self._supported

    def get_current_platform(self) -> str:
        return self._platform

    @property
    def executable_path(self) -> Path:
        return self._installer.executable_path

    @property
    def status_model(self) -> StatusModel:
        return self._status

    @property
    def install_manager(self) -> InstallManager:
        return self._installer

    @property
    def supervisor(self) -> ProcessSupervisor:
        return self._supervisor

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def on(self, event: EventName, listener: Listener) -> "Haystack":
        """Subscribe to a Haystack event. Returns self for chaining."""
        self._status.on(event, listener)
        return self

    def once(self, event: EventName, listener: Listener) -> "Haystack":
        """Subscribe to the next occurrence of a Haystack event."""
        self._status.once(event, listener)
        return self

    def off(self, event: EventName, listener: Listener) -> "Haystack":
        """Unsubscribe from a Haystack event."""
        self._status.off(event, listener)
        return self

    def remove_all_listeners(self, event: Optional[EventName] = None) -> "Haystack":
        """Remove all listeners for an event, or for every event."""
        self._status.remove_all_listeners(event)
        return self
