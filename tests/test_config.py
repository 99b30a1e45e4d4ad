"""
Tests for haystack_sidecar.config module.
"""

from pathlib import Path

import pytest
from haystack_sidecar.config import (
    GLOBAL_PORT,
    HAYSTACK_DOWNLOAD_URL,
    HAYSTACK_DOWNLOAD_URL_FALLBACK,
    LOCAL_PORT,
    HaystackConfig,
    default_install_dir,
)
from haystack_sidecar.errors import ConfigError


class TestDefaults:
    """Tests for default configuration values."""

    def test_ports(self):
        assert LOCAL_PORT == 13135
        assert GLOBAL_PORT == 13134

    def test_defaults(self):
        config = HaystackConfig()
        assert config.install_dir == default_install_dir()
        assert config.data_dir == config.install_dir / "data"
        assert config.bundle_dir is None
        assert config.host == "127.0.0.1"
        assert config.primary_url == HAYSTACK_DOWNLOAD_URL
        assert config.fallback_url == HAYSTACK_DOWNLOAD_URL_FALLBACK
        assert config.max_start_retries == 10
        assert config.settle_delay == 1.0
        assert config.retry_delay == 3.0
        assert config.shutdown_timeout == 20.0
        assert config.max_redirects == 10

    def test_default_install_dir_is_user_data_dir(self):
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(
                "haystack_sidecar.config.user_data_dir",
                lambda appname, appauthor: f"/data/{appauthor}/{appname}",
            )
            assert default_install_dir() == Path("/data/codetrek/haystack")


class TestNormalization:
    """Tests for __post_init__ normalization."""

    def test_paths_coerced(self, tmp_path):
        config = HaystackConfig(
            install_dir=str(tmp_path / "install"),
            bundle_dir=str(tmp_path / "bundle"),
            data_dir=str(tmp_path / "index"),
        )
        assert config.install_dir == tmp_path / "install"
        assert config.bundle_dir == tmp_path / "bundle"
        assert config.data_dir == tmp_path / "index"

    def test_trailing_slash_stripped(self):
        config = HaystackConfig(
            primary_url="https://example.com/releases/",
            fallback_url="https://mirror.example.com/",
        )
        assert config.primary_url == "https://example.com/releases"
        assert config.fallback_url == "https://mirror.example.com"


class TestValidation:
    """Tests for HaystackConfig.validate."""

    def test_invalid_version(self):
        with pytest.raises(ConfigError, match="required_version"):
            HaystackConfig(required_version="latest")

    def test_prefixed_version_accepted(self):
        assert HaystackConfig(required_version="v0.8.0").required_version == "v0.8.0"

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_invalid_port(self, port):
        with pytest.raises(ConfigError, match="local_port"):
            HaystackConfig(local_port=port)

    def test_invalid_retries(self):
        with pytest.raises(ConfigError, match="max_start_retries"):
            HaystackConfig(max_start_retries=0)

    def test_negative_delay(self):
        with pytest.raises(ConfigError, match="retry_delay"):
            HaystackConfig(retry_delay=-1)

    def test_negative_redirects(self):
        with pytest.raises(ConfigError, match="max_redirects"):
            HaystackConfig(max_redirects=-1)


class TestFromEnv:
    """Tests for HaystackConfig.from_env."""

    def test_reads_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HAYSTACK_VERSION", "v1.2.3")
        monkeypatch.setenv("HAYSTACK_INSTALL_DIR", str(tmp_path))
        monkeypatch.setenv("HAYSTACK_HOST", "localhost")
        monkeypatch.setenv("HAYSTACK_DOWNLOAD_URL", "https://example.com/dl/")

        config = HaystackConfig.from_env()

        assert config.required_version == "v1.2.3"
        assert config.install_dir == tmp_path
        assert config.data_dir == tmp_path / "data"
        assert config.host == "localhost"
        assert config.primary_url == "https://example.com/dl"

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("HAYSTACK_VERSION", "v1.2.3")

        config = HaystackConfig.from_env(required_version="2.0.0")

        assert config.required_version == "2.0.0"

    def test_empty_values_ignored(self, monkeypatch):
        monkeypatch.setenv("HAYSTACK_HOST", "")

        assert HaystackConfig.from_env().host == "127.0.0.1"

    def test_invalid_environment(self, monkeypatch):
        monkeypatch.setenv("HAYSTACK_VERSION", "nightly")

        with pytest.raises(ConfigError):
            HaystackConfig.from_env()
