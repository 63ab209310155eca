"""Paginated, bounded-concurrency collection fetch.

Page 0 is fetched alone to learn ``total``; the remaining pages go out in
fixed windows of ``concurrency`` requests.  A window is awaited as a whole
before the next one starts, with a short pause in between.  A page that
fails yields an empty slice instead of failing the whole collection, except
for authentication failures, which end the fetch.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from core.errors import AUTH_ERRORS, SpotifyAPIError
from core.retry import RetryPolicy, Sleep

logger = logging.getLogger(__name__)

T = TypeVar("T")

FetchPage = Callable[[int, int], Awaitable[Optional[dict]]]  # (limit, offset) -> page
Extract = Callable[[List[Any]], List[T]]


@dataclass
class FetchJob:
    """Transient bookkeeping for one bulk fetch; discarded when it ends."""

    label: str
    total_expected: int = 0
    items_accumulated: int = 0
    outstanding_page_requests: int = 0
    failed_pages: int = 0


async def fetch_collection(
    fetch_page: FetchPage,
    extract: Extract[T],
    *,
    page_size: int = 50,
    concurrency: int = 5,
    window_delay: float = 0.1,
    retry: RetryPolicy | None = None,
    sleep: Sleep = asyncio.sleep,
    label: str = "collection",
) -> List[T]:
    """Fetch every page of a collection and return items in provider order.

    Errors on page 0 propagate (there is nothing to degrade to yet).
    """
    retry = retry or RetryPolicy.none()
    job = FetchJob(label=label)

    first = await fetch_page(page_size, 0)
    if not first or first.get("items") is None:
        return []

    raw_items = first["items"]
    items: List[T] = extract(raw_items)
    job.total_expected = int(first.get("total") or 0)
    job.items_accumulated = len(items)

    if len(raw_items) < page_size or job.total_expected <= page_size:
        return items

    remaining_pages = math.ceil((job.total_expected - page_size) / page_size)
    if job.total_expected > 200:
        logger.info(
            "Fetching %d %s items in %d pages (%d concurrent)",
            job.total_expected, label, remaining_pages + 1, concurrency,
        )

    async def _page(page_index: int) -> List[T]:
        offset = page_index * page_size
        try:
            data = await retry.run(
                lambda: fetch_page(page_size, offset),
                sleep=sleep,
                label=f"{label} page {page_index}",
            )
        except AUTH_ERRORS:
            raise
        except SpotifyAPIError as exc:
            job.failed_pages += 1
            logger.error("Error fetching %s page %d: %s", label, page_index, exc)
            return []
        finally:
            job.outstanding_page_requests -= 1
        if not data or data.get("items") is None:
            return []
        return extract(data["items"])

    for start in range(0, remaining_pages, concurrency):
        window = [
            start + j + 1  # +1 because page 0 is already in
            for j in range(min(concurrency, remaining_pages - start))
        ]
        job.outstanding_page_requests += len(window)
        tasks = [asyncio.ensure_future(_page(i)) for i in window]
        try:
            # gather() returns results in argument order, i.e. page order.
            results = await asyncio.gather(*tasks)
        except BaseException:
            # Auth failure or cancellation ends the fetch; drop the rest of the window.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        for page_items in results:
            items.extend(page_items)
        job.items_accumulated = len(items)

        if start + concurrency < remaining_pages:
            await sleep(window_delay)

    if job.failed_pages:
        logger.warning(
            "Fetched %d of %d %s items (%d pages failed)",
            job.items_accumulated, job.total_expected, label, job.failed_pages,
        )
    else:
        logger.debug("Fetched %d %s items", job.items_accumulated, label)
    return items


# ---------------------------------------------------------------------------
# Item extractors
# ---------------------------------------------------------------------------

def nested_tracks(raw_items: List[Any]) -> List[dict]:
    """``items[].track`` with provider-removed (null) tracks dropped."""
    return [item["track"] for item in raw_items if item and item.get("track") is not None]
