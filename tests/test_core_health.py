"""Tests for haystack_sidecar._core.health module."""

import asyncio
import inspect
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import requests

from haystack_sidecar._core.health import (
    check_health,
    check_server_status,
    request_stop,
    wait_for_shutdown,
)

BASE_URL = "http://127.0.0.1:13135"


def response(status_code):
    mock_response = MagicMock()
    mock_response.status_code = status_code
    return mock_response


class TestCheckHealth:
    """Tests for check_health function."""

    @pytest.mark.asyncio
    async def test_healthy(self):
        """200 from /health means healthy."""
        with patch("requests.get", return_value=response(200)) as mock_get:
            assert await check_health(BASE_URL) is True

        assert mock_get.call_args[0][0] == f"{BASE_URL}/health"

    @pytest.mark.asyncio
    async def test_unhealthy_status(self):
        """Non-200 means not healthy."""
        with patch("requests.get", return_value=response(503)):
            assert await check_health(BASE_URL) is False

    @pytest.mark.asyncio
    async def test_connection_refused_degrades_to_false(self):
        """Transport errors are swallowed."""
        with patch(
            "requests.get",
            side_effect=requests.exceptions.ConnectionError("refused"),
        ):
            assert await check_health(BASE_URL) is False

    @pytest.mark.asyncio
    async def test_passes_timeout(self):
        """The probe timeout is forwarded to requests."""
        with patch("requests.get", return_value=response(200)) as mock_get:
            await check_health(BASE_URL, timeout=1.5)

        assert mock_get.call_args[1]["timeout"] == 1.5


class TestServerStatusAndStop:
    """Tests for check_server_status and request_stop."""

    @pytest.mark.asyncio
    async def test_status_endpoint(self):
        """Status probe targets /api/v1/server/status."""
        with patch("requests.get", return_value=response(200)) as mock_get:
            assert await check_server_status(BASE_URL) is True

        assert mock_get.call_args[0][0] == f"{BASE_URL}/api/v1/server/status"

    @pytest.mark.asyncio
    async def test_stop_posts(self):
        """Stop request POSTs to /api/v1/server/stop."""
        with patch("requests.post", return_value=response(200)) as mock_post:
            assert await request_stop(BASE_URL) is True

        assert mock_post.call_args[0][0] == f"{BASE_URL}/api/v1/server/stop"

    @pytest.mark.asyncio
    async def test_stop_without_server(self):
        """No server listening means the stop was not accepted."""
        with patch(
            "requests.post",
            side_effect=requests.exceptions.ConnectionError("refused"),
        ):
            assert await request_stop(BASE_URL) is False


class TestWaitForShutdown:
    """Tests for wait_for_shutdown function."""

    def test_default_timeout_is_twenty_seconds(self):
        """Default wait is bounded at 20s, polled every 200ms."""
        params = inspect.signature(wait_for_shutdown).parameters
        assert params["timeout"].default == 20.0
        assert params["interval"].default == 0.2

    @pytest.mark.asyncio
    async def test_returns_when_status_fails(self):
        """Returns True once the status probe stops succeeding."""
        with patch(
            "haystack_sidecar._core.health.check_server_status",
            new=AsyncMock(side_effect=[True, True, False]),
        ) as mock_status:
            result = await wait_for_shutdown(BASE_URL, timeout=5.0, interval=0.01)

        assert result is True
        assert mock_status.call_count == 3

    @pytest.mark.asyncio
    async def test_times_out_if_server_never_stops(self):
        """Returns False within the timeout if the server keeps answering."""
        loop = asyncio.get_event_loop()
        with patch(
            "haystack_sidecar._core.health.check_server_status",
            new=AsyncMock(return_value=True),
        ):
            start = loop.time()
            result = await wait_for_shutdown(BASE_URL, timeout=0.2, interval=0.02)
            elapsed = loop.time() - start

        assert result is False
        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_transport_error_ends_wait(self):
        """A refused status probe counts as stopped."""
        with patch(
            "requests.get",
            side_effect=requests.exceptions.ConnectionError("refused"),
        ):
            assert await wait_for_shutdown(BASE_URL, timeout=5.0, interval=0.01) is True
