"""
Health, stop and status probes against the local Haystack server.

Every probe degrades to False on transport errors; none of them raise.
"""

from __future__ import annotations

import asyncio
import logging

import requests

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"
STOP_PATH = "/api/v1/server/stop"
STATUS_PATH = "/api/v1/server/status"


def _get_ok(url: str, timeout: float) -> bool:
    try:
        response = requests.get(url, timeout=timeout)
        return response.status_code == 200
    except requests.exceptions.RequestException as e:
        logger.debug(f"GET {url} failed: {e}")
        return False


def _post_ok(url: str, timeout: float) -> bool:
    try:
        response = requests.post(url, timeout=timeout)
        return response.status_code == 200
    except requests.exceptions.RequestException as e:
        logger.debug(f"POST {url} failed: {e}")
        return False


async def check_health(base_url: str, timeout: float = 5.0) -> bool:
    """
    Probe ``GET /health``.

    Returns:
        True if the server answered 200
    """
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, _get_ok, f"{base_url}{HEALTH_PATH}", timeout)


async def check_server_status(base_url: str, timeout: float = 5.0) -> bool:
    """Probe ``GET /api/v1/server/status``; True while the server still answers."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, _get_ok, f"{base_url}{STATUS_PATH}", timeout)


async def request_stop(base_url: str, timeout: float = 5.0) -> bool:
    """
    Ask the server to shut down via ``POST /api/v1/server/stop``.

    Returns:
        True if the server accepted the request
    """
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, _post_ok, f"{base_url}{STOP_PATH}", timeout)


async def wait_for_shutdown(
    base_url: str,
    timeout: float = 20.0,
    interval: float = 0.2,
    request_timeout: float = 5.0,
) -> bool:
    """
    Wait for the server to stop answering its status endpoint.

    Polls the status endpoint every ``interval`` seconds. Returns as soon
    as a probe fails or once ``timeout`` has elapsed, whichever comes
    first. There is no way to cancel the wait early.

    Args:
        base_url: Server base URL
        timeout: Maximum time to wait in seconds
        interval: Time between status probes in seconds
        request_timeout: Per-probe timeout, capped by what is left of timeout

    Returns:
        True if the server stopped, False on timeout
    """
    loop = asyncio.get_event_loop()
    start_time = loop.time()

    while True:
        remaining = timeout - (loop.time() - start_time)
        if remaining <= 0:
            logger.info("Haystack server shutdown timeout.")
            return False

        if not await check_server_status(base_url, min(request_timeout, remaining)):
            return True

        remaining = timeout - (loop.time() - start_time)
        await asyncio.sleep(max(0.0, min(interval, remaining)))
