"""Tests for haystack_sidecar._core.platform module."""

from unittest.mock import patch

import pytest

from haystack_sidecar._core.platform import (
    SUPPORTED_PLATFORMS,
    ensure_platform_supported,
    get_archive_name,
    get_current_platform,
    get_executable_name,
    get_platform_info,
    is_platform_supported,
)
from haystack_sidecar.errors import PlatformUnsupportedError


class TestGetPlatformInfo:
    """Tests for get_platform_info function."""

    def test_returns_tuple(self):
        """Should return (os, arch) tuple."""
        result = get_platform_info()
        assert isinstance(result, tuple)
        assert len(result) == 2

    @patch("platform.system")
    @patch("platform.machine")
    def test_linux_x86_64(self, mock_machine, mock_system):
        """Linux x86_64 should map to amd64."""
        mock_system.return_value = "Linux"
        mock_machine.return_value = "x86_64"

        assert get_platform_info() == ("linux", "amd64")

    @patch("platform.system")
    @patch("platform.machine")
    def test_darwin_arm64(self, mock_machine, mock_system):
        """macOS ARM64 should map correctly."""
        mock_system.return_value = "Darwin"
        mock_machine.return_value = "arm64"

        assert get_platform_info() == ("darwin", "arm64")

    @patch("platform.system")
    @patch("platform.machine")
    def test_windows_amd64(self, mock_machine, mock_system):
        """Windows AMD64 should map correctly."""
        mock_system.return_value = "Windows"
        mock_machine.return_value = "AMD64"

        assert get_platform_info() == ("windows", "amd64")

    @patch("platform.system")
    @patch("platform.machine")
    def test_linux_aarch64(self, mock_machine, mock_system):
        """Linux aarch64 should map to arm64."""
        mock_system.return_value = "Linux"
        mock_machine.return_value = "aarch64"

        assert get_platform_info() == ("linux", "arm64")

    @patch("platform.system")
    @patch("platform.machine")
    def test_unknown_passes_through(self, mock_machine, mock_system):
        """Unknown OS/arch pass through lower-cased instead of raising."""
        mock_system.return_value = "FreeBSD"
        mock_machine.return_value = "RISCV64"

        assert get_platform_info() == ("freebsd", "riscv64")


class TestPlatformSupport:
    """Tests for the supported-platform allow-list."""

    @pytest.mark.parametrize("key", sorted(SUPPORTED_PLATFORMS))
    def test_supported_keys(self, key):
        """Every allow-listed key is supported."""
        assert is_platform_supported(key) is True
        assert ensure_platform_supported(key) == key

    def test_unsupported_key(self):
        """Keys outside the allow-list are unsupported."""
        assert is_platform_supported("freebsd-riscv64") is False

    def test_ensure_raises_for_unsupported(self):
        """ensure_platform_supported raises PlatformUnsupportedError."""
        with pytest.raises(PlatformUnsupportedError) as exc_info:
            ensure_platform_supported("linux-386")
        assert exc_info.value.platform_key == "linux-386"

    @patch("platform.system", return_value="Linux")
    @patch("platform.machine", return_value="x86_64")
    def test_current_platform(self, mock_machine, mock_system):
        """Current platform key is {os}-{arch}."""
        assert get_current_platform() == "linux-amd64"
        assert is_platform_supported() is True


class TestNames:
    """Tests for executable and archive naming."""

    def test_executable_name_windows(self):
        """Windows executables carry .exe."""
        assert get_executable_name("windows") == "haystack.exe"

    def test_executable_name_unix(self):
        """Other platforms use the bare name."""
        assert get_executable_name("linux") == "haystack"
        assert get_executable_name("darwin") == "haystack"

    def test_archive_name(self):
        """Archive name embeds platform key and prefixed version."""
        assert (
            get_archive_name("0.8.0", "darwin-arm64")
            == "haystack-darwin-arm64-v0.8.0.zip"
        )

    def test_archive_name_prefixed_version(self):
        """A version already carrying 'v' is not double-prefixed."""
        assert (
            get_archive_name("v1.2.3", "windows-amd64")
            == "haystack-windows-amd64-v1.2.3.zip"
        )
