"""Snapshot streams: Firestore live queries exposed as async iterators.

Each item of a stream is the complete current result set of the query,
never a delta, and a consumer that falls behind only sees the newest
one. Firestore invokes listeners on its own watch thread, so
deliveries are handed over to the event loop that owns the stream.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from carelink.core.exceptions import ProviderError
from carelink.services.document_store import DocumentSpec, DocumentStore, QuerySpec, Row

logger = logging.getLogger(__name__)

_CLOSED = object()


def default_view(rows: List[Row]) -> List[Dict[str, Any]]:
    return [{"id": doc_id, **data} for doc_id, data in rows]


class SnapshotStream:
    def __init__(
        self,
        store: DocumentStore,
        spec: Union[QuerySpec, DocumentSpec],
        view: Callable[[List[Row]], List[Dict[str, Any]]] = default_view,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.store = store
        self.spec = spec
        self.view = view
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._watch = None
        self._closed = False

    def open(self) -> "SnapshotStream":
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._watch = self.store.subscribe(self.spec, self._deliver, self._fail)
        logger.info("Live query attached: %s", self.spec)
        return self

    @property
    def closed(self) -> bool:
        return self._closed

    def _hand_over(self, item) -> None:
        try:
            self._loop.call_soon_threadsafe(self._put_latest, item)
        except RuntimeError:
            # Loop already shut down; nothing is listening anymore.
            logger.debug("Dropped delivery for closed loop on %s", self.spec.path)

    def _put_latest(self, item) -> None:
        # Only the newest result set is kept; errors and close are never displaced.
        if self._queue.full():
            pending = self._queue.get_nowait()
            if pending is _CLOSED or (isinstance(pending, Exception) and item is not _CLOSED):
                item = pending
        self._queue.put_nowait(item)

    def _deliver(self, rows: List[Row]) -> None:
        self._hand_over(self.view(rows))

    def _fail(self, exc: Exception) -> None:
        self._hand_over(exc)

    def __aiter__(self):
        return self

    async def __anext__(self) -> List[Dict[str, Any]]:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        # Deliveries queued before close() belong to a screen that is gone.
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            self.close()
            raise ProviderError(str(item)) from item
        return item

    def close(self) -> None:
        """Detach the listener. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._watch is not None:
            try:
                self._watch.unsubscribe()
            finally:
                self._watch = None
        self._put_latest(_CLOSED)
        logger.info("Live query detached: %s", self.spec)

    async def __aenter__(self) -> "SnapshotStream":
        return self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
