"""Sequential queue submission with rate-limit backoff.

One ``POST /me/player/queue`` in flight at a time, in list order.  A 429 is
retried with exponential backoff; after the last retry, or on any other
request error, the track is skipped and the run moves on.  Authentication
failures end the drain because every later call would fail the same way.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from app.spotify_client import SpotifyClient
from core.errors import AUTH_ERRORS, RateLimited, SpotifyAPIError
from core.models import Track
from core.retry import RetryPolicy, Sleep

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_RETRY = RetryPolicy(max_retries=3, base_delay=1.0, multiplier=2.0, retry_on=(RateLimited,))


@dataclass(frozen=True)
class QueueProgress:
    progress: int  # attempted items, successful or not
    total: int
    succeeded: int
    failed: int


@dataclass
class QueueResult:
    total: int
    succeeded: int = 0
    failed: int = 0
    failed_uris: List[str] = field(default_factory=list)


async def submit_tracks(
    client: SpotifyClient,
    tracks: Sequence[Track],
    device_id: Optional[str],
    on_progress: Callable[[QueueProgress], None] | None = None,
    *,
    retry: RetryPolicy = DEFAULT_QUEUE_RETRY,
    request_delay: float = 0.15,
    sleep: Sleep = asyncio.sleep,
) -> QueueResult:
    """Add *tracks* to the playback queue of *device_id*, one at a time."""
    result = QueueResult(total=len(tracks))

    for i, track in enumerate(tracks):
        uri = track.uri
        try:
            if not uri:
                raise ValueError("track has no URI")
            await retry.run(
                lambda: client.add_to_queue(uri, device_id),
                sleep=sleep,
                label=f"queue {uri}",
            )
            result.succeeded += 1
        except AUTH_ERRORS:
            raise
        except RateLimited:
            logger.error("Failed to queue %s after %d retries", uri, retry.max_retries)
            result.failed += 1
            result.failed_uris.append(uri or "")
        except (SpotifyAPIError, ValueError) as exc:
            logger.error("Error queueing %s: %s", uri, exc)
            result.failed += 1
            result.failed_uris.append(uri or "")

        if on_progress is not None:
            on_progress(
                QueueProgress(
                    progress=i + 1,
                    total=result.total,
                    succeeded=result.succeeded,
                    failed=result.failed,
                )
            )

        # Baseline throttle between requests, not after the last one.
        if i < len(tracks) - 1:
            await sleep(request_delay)

    logger.info(
        "Queued %d of %d tracks (%d failed)", result.succeeded, result.total, result.failed
    )
    return result
