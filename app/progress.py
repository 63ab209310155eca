"""Bounded progress channel between a shuffle run and its observer.

``publish`` never blocks the run: when the buffer is full the oldest pending
event is dropped (every event supersedes the previous one).  ``close`` ends
iteration for every consumer and is safe to call more than once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ProgressEvent(BaseModel):
    """Progress shape exposed to the UI: ``{isQueueing, progress, total, message}``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_queueing: bool = Field(False, serialization_alias="isQueueing")
    progress: int = 0
    total: int = 0
    message: Optional[str] = None


IDLE_EVENT = ProgressEvent()

_CLOSED = object()


class ProgressStream:
    def __init__(
        self,
        maxsize: int = 64,
        listener: Callable[[ProgressEvent], None] | None = None,
    ):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, maxsize))
        self._listener = listener
        self._closed = False
        self.latest: ProgressEvent = IDLE_EVENT

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: ProgressEvent) -> None:
        if self._closed:
            logger.debug("Progress event after close dropped: %s", event)
            return
        self.latest = event
        if self._listener is not None:
            try:
                self._listener(event)
            except Exception:
                logger.exception("Progress listener failed")
        self._put(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._put(_CLOSED)

    def _put(self, item: object) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                # Re-post so other consumers stop too.
                self._queue.put_nowait(_CLOSED)
                return
            yield item
