"""
Configuration for haystack-sidecar.

Usage:
    from haystack_sidecar import HaystackConfig

    config = HaystackConfig(required_version="0.8.0")

    # Or pick up HAYSTACK_* environment overrides
    config = HaystackConfig.from_env()

Environment Variables:
    HAYSTACK_VERSION: Required Haystack version
    HAYSTACK_INSTALL_DIR: Directory holding the executable and markers
    HAYSTACK_BUNDLE_DIR: Directory with a bundled (read-only) archive
    HAYSTACK_DATA_DIR: Persistent index directory used by the server
    HAYSTACK_HOST: Loopback host the server listens on
    HAYSTACK_DOWNLOAD_URL: Primary download base URL
    HAYSTACK_DOWNLOAD_URL_FALLBACK: Fallback mirror base URL
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from platformdirs import user_data_dir

from haystack_sidecar._core.version import parse_version
from haystack_sidecar.errors import ConfigError

DEFAULT_VERSION = "0.1.0"

# Local server is managed by this package, global server by something else
LOCAL_PORT = 13135
GLOBAL_PORT = 13134

HAYSTACK_DOWNLOAD_URL = "https://github.com/CodeTrek/haystack/releases/download"
HAYSTACK_DOWNLOAD_URL_FALLBACK = "https://haystack.codetrek.cn/download"


def default_install_dir() -> Path:
    """Per-user directory where Haystack is installed."""
    return Path(user_data_dir("haystack", "codetrek"))


@dataclass
class HaystackConfig:
    """
    Configuration for the Haystack sidecar.

    Attributes:
        required_version: Minimum compatible Haystack version ("0.8.0" or "v0.8.0")
        install_dir: Directory for the executable, version.txt and config.yaml
        bundle_dir: Directory that may ship a prebuilt archive (never written)
        data_dir: Index directory written into config.yaml (default: install_dir/data)
        host: Loopback host for health/stop/status probes
        local_port: Port of a locally managed server
        global_port: Port of a server managed elsewhere
        primary_url: Base URL for release archives
        fallback_url: Base URL of the mirror
        max_results: Default search result limit written into config.yaml
        max_results_per_file: Default per-file result limit
        max_start_retries: Failed start attempts before giving up
        settle_delay: Seconds between spawning and re-probing health
        retry_delay: Seconds between failed start attempts
        shutdown_timeout: Upper bound on waiting for a stop to complete
        shutdown_poll_interval: Seconds between status polls while stopping
        request_timeout: Timeout for local probes and posts
        download_timeout: Timeout for download connect/read
        max_redirects: Redirect hops allowed per download
    """
    required_version: str = DEFAULT_VERSION
    install_dir: Path = field(default_factory=default_install_dir)
    bundle_dir: Optional[Path] = None
    data_dir: Optional[Path] = None
    host: str = "127.0.0.1"
    local_port: int = LOCAL_PORT
    global_port: int = GLOBAL_PORT
    primary_url: str = HAYSTACK_DOWNLOAD_URL
    fallback_url: str = HAYSTACK_DOWNLOAD_URL_FALLBACK
    max_results: int = 500
    max_results_per_file: int = 50
    max_start_retries: int = 10
    settle_delay: float = 1.0
    retry_delay: float = 3.0
    shutdown_timeout: float = 20.0
    shutdown_poll_interval: float = 0.2
    request_timeout: float = 5.0
    download_timeout: float = 60.0
    max_redirects: int = 10

    def __post_init__(self) -> None:
        """Normalize paths and validate on creation."""
        self.install_dir = Path(self.install_dir)
        if self.bundle_dir is not None:
            self.bundle_dir = Path(self.bundle_dir)
        if self.data_dir is None:
            self.data_dir = self.install_dir / "data"
        else:
            self.data_dir = Path(self.data_dir)
        self.primary_url = self.primary_url.rstrip("/")
        self.fallback_url = self.fallback_url.rstrip("/")
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        try:
            parse_version(self.required_version)
        except ValueError as e:
            raise ConfigError(f"required_version is invalid: {e}") from e

        for name in ("local_port", "global_port"):
            port = getattr(self, name)
            if not 0 < port < 65536:
                raise ConfigError(f"{name} must be 1-65535, got {port}")

        if self.max_start_retries < 1:
            raise ConfigError(
                f"max_start_retries must be >= 1, got {self.max_start_retries}"
            )
        if self.max_redirects < 0:
            raise ConfigError(f"max_redirects must be >= 0, got {self.max_redirects}")

        for name in (
            "settle_delay",
            "retry_delay",
            "shutdown_timeout",
            "shutdown_poll_interval",
        ):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")

    @classmethod
    def from_env(cls, **overrides) -> "HaystackConfig":
        """
        Build a config from HAYSTACK_* environment variables.

        Explicit keyword overrides win over the environment.
        """
        env_map = {
            "HAYSTACK_VERSION": "required_version",
            "HAYSTACK_INSTALL_DIR": "install_dir",
            "HAYSTACK_BUNDLE_DIR": "bundle_dir",
            "HAYSTACK_DATA_DIR": "data_dir",
            "HAYSTACK_HOST": "host",
            "HAYSTACK_DOWNLOAD_URL": "primary_url",
            "HAYSTACK_DOWNLOAD_URL_FALLBACK": "fallback_url",
        }
        values = {}
        for env_name, attr in env_map.items():
            value = os.environ.get(env_name)
            if value:
                values[attr] = value
        values.update(overrides)
        return cls(**values)
