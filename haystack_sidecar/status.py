"""
Observable state of the Haystack sidecar.

StatusModel is the single source of truth for the lifecycle status, the
install status and the current download progress. Lifecycle code mutates
it; observers subscribe to its events:

    model.on("status-change", lambda change: print(change.old, "->", change.new))
    model.on(HaystackEvent.DOWNLOAD_PROGRESS, lambda p: print(p.percent))

Setters are compare-then-emit: assigning the current value again is a
no-op and fires nothing. Listeners are called synchronously on the
thread doing the mutation, which is always the event-loop thread.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from haystack_sidecar.types import (
    DownloadProgress,
    ErrorEvent,
    HaystackEvent,
    InstallStatus,
    LifecycleStatus,
    StatusChange,
)

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]
EventName = Union[HaystackEvent, str]


class StatusModel:
    """
    Dual-axis state (lifecycle + install) plus the download progress record.

    Attributes:
        status: Current LifecycleStatus
        install_status: Current InstallStatus
        download_progress: Latest DownloadProgress snapshot
    """

    def __init__(self) -> None:
        self._status = LifecycleStatus.INITIALIZING
        self._install_status = InstallStatus.INITIALIZING
        self._download_progress = DownloadProgress()
        self._listeners: Dict[HaystackEvent, List[Listener]] = {
            event: [] for event in HaystackEvent
        }
        self._once: set = set()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def status(self) -> LifecycleStatus:
        return self._status

    @status.setter
    def status(self, new_status: LifecycleStatus) -> None:
        new_status = LifecycleStatus(new_status)
        if new_status == self._status:
            return
        old_status = self._status
        self._status = new_status
        logger.debug(f"Status {old_status.value} -> {new_status.value}")
        self.emit(HaystackEvent.STATUS_CHANGE, StatusChange(old_status, new_status))
        if new_status == LifecycleStatus.ERROR:
            self.emit(
                HaystackEvent.ERROR,
                ErrorEvent("Haystack status changed to error state"),
            )

    @property
    def install_status(self) -> InstallStatus:
        return self._install_status

    @install_status.setter
    def install_status(self, new_status: InstallStatus) -> None:
        new_status = InstallStatus(new_status)
        if new_status == self._install_status:
            return
        old_status = self._install_status
        self._install_status = new_status
        logger.debug(f"Install status {old_status.value} -> {new_status.value}")
        self.emit(
            HaystackEvent.INSTALL_STATUS_CHANGE,
            StatusChange(old_status, new_status),
        )
        if new_status == InstallStatus.ERROR:
            self.emit(HaystackEvent.ERROR, ErrorEvent("Haystack installation error"))

    @property
    def download_progress(self) -> DownloadProgress:
        return self._download_progress

    def set_download_progress(
        self,
        progress: DownloadProgress,
        notify: bool = True,
    ) -> None:
        """Replace the progress record, emitting download-progress if notify."""
        self._download_progress = progress
        if notify:
            self.emit(HaystackEvent.DOWNLOAD_PROGRESS, progress)

    def report_error(
        self,
        message: str,
        error: Optional[BaseException] = None,
    ) -> None:
        """Emit an error event without changing either status axis."""
        self.emit(HaystackEvent.ERROR, ErrorEvent(message, error))

    # -------------------------------------------------------------------------
    # Subscription
    # -------------------------------------------------------------------------

    def on(self, event: EventName, listener: Listener) -> "StatusModel":
        """Subscribe to an event. Returns self for chaining."""
        self._listeners[HaystackEvent(event)].append(listener)
        return self

    def once(self, event: EventName, listener: Listener) -> "StatusModel":
        """Subscribe to the next occurrence of an event only."""
        self._listeners[HaystackEvent(event)].append(listener)
        self._once.add((HaystackEvent(event), id(listener)))
        return self

    def off(self, event: EventName, listener: Listener) -> "StatusModel":
        """Unsubscribe a listener. Unknown listeners are ignored."""
        event = HaystackEvent(event)
        try:
            self._listeners[event].remove(listener)
        except ValueError:
            pass
        self._once.discard((event, id(listener)))
        return self

    def remove_all_listeners(self, event: Optional[EventName] = None) -> "StatusModel":
        """Remove the listeners of one event, or of every event."""
        events = [HaystackEvent(event)] if event is not None else list(HaystackEvent)
        for name in events:
            for listener in self._listeners[name]:
                self._once.discard((name, id(listener)))
            self._listeners[name] = []
        return self

    def listener_count(self, event: EventName) -> int:
        return len(self._listeners[HaystackEvent(event)])

    def emit(self, event: EventName, payload: Any) -> None:
        """
        Deliver payload to every listener of event, in registration order.

        A listener that raises is logged and skipped; it never breaks
        the lifecycle that triggered the event.
        """
        event = HaystackEvent(event)
        for listener in list(self._listeners[event]):
            key = (event, id(listener))
            if key in self._once:
                self.off(event, listener)
            try:
                listener(payload)
            except Exception:
                logger.exception(f"Listener for {event.value} raised")
