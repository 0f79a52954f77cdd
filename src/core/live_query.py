"""Live query subscriptions over the document store."""

import asyncio
import logging
from typing import Any

from src.core import db_client
from src.core.change_feed import ChangeEvent, change_feed
from src.core.config import constants


logger = logging.getLogger(__name__)


class Subscription:
    """Async iterator yielding the matching result set on every committed change.

    The first iteration yields the current snapshot. Afterwards each batch of
    pending change events on the collection is coalesced into one re-query.
    """

    def __init__(self, *, collection: str, filter_query: str = "", sort: str = "") -> None:
        self.collection = collection
        self.filter_query = filter_query
        self.sort = sort
        self._queue: asyncio.Queue[ChangeEvent | None] = change_feed.listen(collection)  # type: ignore[assignment]
        self._closed = False
        self._snapshot_sent = False

    @property
    def active(self) -> bool:
        """True until unsubscribe() is called."""
        return not self._closed

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> list[dict[str, Any]]:
        if self._closed:
            raise StopAsyncIteration

        if self._snapshot_sent:
            event = await self._queue.get()
            # Coalesce a burst (e.g. one atomic batch) into a single snapshot
            while event is not None and not self._queue.empty():
                event = self._queue.get_nowait()
            if event is None:
                raise StopAsyncIteration
        self._snapshot_sent = True

        return await db_client.list_records(
            collection=self.collection,
            filter_query=self.filter_query,
            sort=self.sort,
            per_page=constants.FULL_LIST_PER_PAGE,
        )

    def unsubscribe(self) -> None:
        """Stop receiving changes and end any pending iteration."""
        if self._closed:
            return
        self._closed = True
        change_feed.unlisten(self.collection, self._queue)  # type: ignore[arg-type]
        self._queue.put_nowait(None)
        logger.debug("Unsubscribed live query", extra={"collection": self.collection})

    async def aclose(self) -> None:
        """Async alias of unsubscribe() for `contextlib.aclosing`."""
        self.unsubscribe()


def subscribe(*, collection: str, filter_query: str = "", sort: str = "") -> Subscription:
    """Subscribe to a live view of the records matching a filter."""
    db_client._validate_collection_name(collection)
    if filter_query:
        # Fail fast on malformed filters instead of on first iteration
        db_client.parse_filter(filter_query)
    logger.debug("Subscribed live query", extra={"collection": collection, "filter_query": filter_query})
    return Subscription(collection=collection, filter_query=filter_query, sort=sort)
