"""In-process change feed for committed document store writes."""

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum


logger = logging.getLogger(__name__)


class ChangeKind(StrEnum):
    """Kind of committed change."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """A single committed change to one record."""

    collection: str
    record_id: str
    kind: ChangeKind


class ChangeFeed:
    """Fan-out of committed changes to per-collection listeners.

    Listeners are plain asyncio queues; publishing never blocks the writer.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, set[asyncio.Queue[ChangeEvent]]] = {}

    def listen(self, collection: str) -> asyncio.Queue[ChangeEvent]:
        """Register a new listener queue for a collection."""
        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._listeners.setdefault(collection, set()).add(queue)
        return queue

    def unlisten(self, collection: str, queue: asyncio.Queue[ChangeEvent]) -> None:
        """Remove a listener queue. Unknown queues are ignored."""
        listeners = self._listeners.get(collection)
        if not listeners:
            return
        listeners.discard(queue)
        if not listeners:
            del self._listeners[collection]

    def publish(self, events: list[ChangeEvent]) -> None:
        """Deliver committed events to every listener of their collection."""
        for event in events:
            for queue in list(self._listeners.get(event.collection, ())):
                queue.put_nowait(event)
        if events:
            logger.debug("Published %d change events", len(events))

    def listener_count(self, collection: str) -> int:
        """Number of active listeners on a collection."""
        return len(self._listeners.get(collection, ()))


change_feed = ChangeFeed()
