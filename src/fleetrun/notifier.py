"""Asynchronous delivery of progress events to a caller's callback."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .node import Node
from .result import Result

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Kind of progress event."""

    START = "node_start"
    FINISHED = "node_result"


@dataclass(frozen=True)
class NotificationEvent:
    """A progress event for one node. ``result`` is set only when finished."""

    kind: EventKind
    node: Node
    result: Result | None = None


Callback = Callable[[NotificationEvent], None]


class Notifier:
    """Queue events from worker threads and deliver them on a single thread.

    A single consumer delivers in submission order, so a node's START event
    always reaches the callback before its FINISHED event.
    """

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fleetrun-notifier")

    def notify(
        self,
        callback: Callback,
        node: Node,
        kind: EventKind,
        result: Result | None = None,
    ) -> None:
        """Enqueue an event without waiting for it to be delivered."""
        event = NotificationEvent(kind, node, result if kind is EventKind.FINISHED else None)
        self._executor.submit(self._deliver, callback, event)

    def shutdown(self) -> None:
        """Deliver everything still queued, then stop."""
        self._executor.shutdown(wait=True)

    @staticmethod
    def _deliver(callback: Callback, event: NotificationEvent) -> None:
        try:
            callback(event)
        except Exception:
            logger.exception("Progress callback failed for %s", event.node.uri)
