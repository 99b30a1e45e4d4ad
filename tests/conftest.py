"""
Pytest configuration for haystack-sidecar tests.
"""

import zipfile
from pathlib import Path

import pytest

from haystack_sidecar._core.install import MIN_ARCHIVE_SIZE
from haystack_sidecar.config import HaystackConfig
from haystack_sidecar.status import StatusModel
from haystack_sidecar.types import HaystackEvent

# Note: With pytest-asyncio in auto mode, no event_loop fixture needed


class EventRecorder:
    """Collects every event emitted by a StatusModel."""

    def __init__(self, model: StatusModel):
        self.events = []
        for event in HaystackEvent:
            model.on(event, lambda payload, event=event: self.events.append((event, payload)))

    def of(self, event):
        return [payload for name, payload in self.events if name == HaystackEvent(event)]


def make_archive(path: Path, executable_name: str = "haystack", padded: bool = True) -> Path:
    """Write a release-like zip; padded archives pass the minimum size check."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_STORED) as zf:
        zf.writestr(executable_name, b"#!/bin/sh\necho haystack\n")
        if padded:
            zf.writestr("LICENSE", b"\0" * MIN_ARCHIVE_SIZE)
    return path


@pytest.fixture
def haystack_config(tmp_path):
    """Config rooted in a temporary directory with no delays."""
    return HaystackConfig(
        required_version="0.8.0",
        install_dir=tmp_path / "install",
        bundle_dir=tmp_path / "bundle",
        primary_url="https://primary.example.com/download",
        fallback_url="https://fallback.example.com/download",
        settle_delay=0,
        retry_delay=0,
        shutdown_timeout=0.5,
        shutdown_poll_interval=0.01,
    )


@pytest.fixture
def status_model():
    """Fresh StatusModel."""
    return StatusModel()


@pytest.fixture
def recorder(status_model):
    """EventRecorder attached to status_model."""
    return EventRecorder(status_model)


@pytest.fixture(name="make_archive")
def make_archive_fixture():
    """Factory for release-like zip archives."""
    return make_archive
