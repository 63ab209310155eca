"""Shuffle-and-queue orchestration.

One run: resolve the track list → shuffle → cap → find a device → play the
first track → drain the rest through the queue pipeline.  Only one run may
drain at a time; a second request while one is active is rejected with
``ShuffleAlreadyRunning``.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from app.config import Settings, get_settings
from app.library import SpotifyLibrary
from app.playback import PlaybackController
from app.progress import ProgressEvent, ProgressStream
from app.queue_pipeline import QueueProgress, submit_tracks
from app.spotify_client import SpotifyClient
from core.errors import (
    AUTH_ERRORS,
    EmptySourceCollection,
    NoActiveDevice,
    ShuffleAlreadyRunning,
    ShuffleCancelled,
)
from core.models import Playlist, Track
from core.retry import RetryPolicy, Sleep
from core.shuffle import has_playable_uri, select_for_queue, true_random_shuffle

logger = logging.getLogger(__name__)

Shuffle = Callable[[Sequence[Track]], List[Track]]

RECONNECT_MESSAGE = "Please reconnect your Spotify account."
ERROR_MESSAGE = "An error occurred."
NO_DEVICE_MESSAGE = "No Spotify device found. Open Spotify on one of your devices and try again."


# ---------------------------------------------------------------------------
# Run states
# ---------------------------------------------------------------------------

class RunState(str, Enum):
    IDLE = "idle"
    RESOLVING_TRACKS = "resolving_tracks"
    DEVICE_CHECK = "device_check"
    STARTING_PLAYBACK = "starting_playback"
    DRAINING_QUEUE = "draining_queue"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({RunState.DONE, RunState.FAILED, RunState.CANCELLED})

# FAILED with one of these kinds is a state the user can act on, not an error.
USER_ACTIONABLE_KINDS = frozenset({EmptySourceCollection.kind, NoActiveDevice.kind})

_run_ids = itertools.count(1)


class ShuffleRun:
    """In-memory state of one shuffle-and-queue run.  Never persisted."""

    __slots__ = (
        "run_id",
        "playlist",
        "source_tracks",
        "current_index",
        "total",
        "succeeded_count",
        "failed_count",
        "cancel_requested",
        "device_id",
        "state",
        "error_kind",
        "capped",
        "progress",
    )

    def __init__(
        self,
        playlist: Playlist,
        tracks: Optional[List[Track]] = None,
        *,
        progress: ProgressStream,
    ):
        self.run_id = next(_run_ids)
        self.playlist = playlist
        self.source_tracks = tracks
        self.current_index = 0
        self.total = 0
        self.succeeded_count = 0
        self.failed_count = 0
        self.cancel_requested = asyncio.Event()
        self.device_id: str | None = None
        self.state = RunState.IDLE
        self.error_kind: str | None = None
        self.capped = False
        self.progress = progress

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_error(self) -> bool:
        return self.state is RunState.FAILED and self.error_kind not in USER_ACTIONABLE_KINDS

    def cancel(self) -> bool:
        """Request cancellation.  Only honoured while tracks are being resolved."""
        if self.state in (RunState.IDLE, RunState.RESOLVING_TRACKS):
            self.cancel_requested.set()
            return True
        logger.info("Cancel ignored for run %d in state %s", self.run_id, self.state.value)
        return False

    def to_status_dict(self) -> dict[str, Any]:
        """Serialize for the status API."""
        return {
            "run_id": self.run_id,
            "playlist_id": self.playlist.id,
            "state": self.state.value,
            "current_index": self.current_index,
            "total": self.total,
            "succeeded": self.succeeded_count,
            "failed": self.failed_count,
            "error_kind": self.error_kind,
            "is_error": self.is_error,
            "device_id": self.device_id,
            "progress": self.progress.latest.model_dump(by_alias=True),
        }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class ShuffleOrchestrator:
    def __init__(
        self,
        library: SpotifyLibrary,
        client: SpotifyClient,
        playback: PlaybackController,
        settings: Settings | None = None,
        *,
        shuffle: Shuffle = true_random_shuffle,
        sleep: Sleep = asyncio.sleep,
    ):
        self._library = library
        self._client = client
        self._playback = playback
        self._settings = settings or get_settings()
        self._shuffle = shuffle
        self._sleep = sleep
        self._active: ShuffleRun | None = None
        self._background: set[asyncio.Task] = set()
        self.last_run: ShuffleRun | None = None

    @property
    def active_run(self) -> ShuffleRun | None:
        return self._active

    # -- entry points ------------------------------------------------------

    def start(
        self,
        playlist: Playlist,
        tracks: Optional[List[Track]] = None,
        *,
        listener: Callable[[ProgressEvent], None] | None = None,
    ) -> ShuffleRun:
        """Claim the single drain slot and create a run (not yet executed)."""
        if self._active is not None:
            raise ShuffleAlreadyRunning(
                f"Run {self._active.run_id} is still {self._active.state.value}"
            )
        run = ShuffleRun(
            playlist,
            tracks,
            progress=ProgressStream(self._settings.progress_buffer_size, listener),
        )
        self._active = run
        self.last_run = run
        return run

    async def shuffle_and_queue(
        self,
        playlist: Playlist,
        tracks: Optional[List[Track]] = None,
        *,
        listener: Callable[[ProgressEvent], None] | None = None,
    ) -> bool:
        return await self.execute(self.start(playlist, tracks, listener=listener))

    def cancel(self) -> bool:
        return self._active.cancel() if self._active else False

    async def execute(self, run: ShuffleRun) -> bool:
        """Drive *run* to a terminal state.  Never raises past this point
        except for cancellation of the calling task itself."""
        keep_stream_open = False
        try:
            keep_stream_open = await self._execute(run)
            run.state = RunState.DONE
            return True
        except ShuffleCancelled:
            logger.info("Shuffle run %d cancelled", run.run_id)
            run.state = RunState.CANCELLED
            run.error_kind = ShuffleCancelled.kind
            run.progress.publish(ProgressEvent())
        except EmptySourceCollection as exc:
            logger.info("Nothing to shuffle for %s", run.playlist.id)
            self._fail(run, exc.kind, None)
        except NoActiveDevice as exc:
            self._fail(run, exc.kind, NO_DEVICE_MESSAGE)
        except AUTH_ERRORS as exc:
            logger.warning("Shuffle run %d needs re-authentication: %s", run.run_id, exc)
            self._fail(run, exc.kind, RECONNECT_MESSAGE)
        except asyncio.CancelledError:
            run.state = RunState.CANCELLED
            run.error_kind = ShuffleCancelled.kind
            run.progress.publish(ProgressEvent())
            raise
        except Exception as exc:
            logger.exception("Queue shuffle failed for run %d", run.run_id)
            self._fail(run, getattr(exc, "kind", "error"), ERROR_MESSAGE)
        finally:
            if self._active is run:
                self._active = None
            if not keep_stream_open:
                run.progress.close()
        return False

    # -- steps -------------------------------------------------------------

    def _fail(self, run: ShuffleRun, kind: str, message: str | None) -> None:
        run.state = RunState.FAILED
        run.error_kind = kind
        run.progress.publish(ProgressEvent(message=message))

    async def _execute(self, run: ShuffleRun) -> bool:
        settings = self._settings
        max_size = settings.queue_max_size

        run.state = RunState.RESOLVING_TRACKS
        tracks = await self._resolve_tracks(run)
        if not tracks:
            raise EmptySourceCollection(run.playlist.id)
        if run.cancel_requested.is_set():
            raise ShuffleCancelled()

        shuffled = self._shuffle(tracks)
        first, to_queue = select_for_queue(shuffled, max_size)
        run.capped = len(tracks) > max_size
        run.total = len(to_queue)
        logger.info(
            "Playlist %s has %d tracks, queueing %d (first track + %d queued)",
            run.playlist.id, len(tracks), len(to_queue) + 1, len(to_queue),
        )

        run.state = RunState.DEVICE_CHECK
        device_id = await self._playback.ensure_active_device(
            first.uri, run.playlist.context_uri
        )
        if not device_id:
            raise NoActiveDevice()
        run.device_id = device_id

        run.state = RunState.STARTING_PLAYBACK
        await self._client.transfer_playback(device_id, play=True)
        await self._client.play([first.uri], device_id)

        run.state = RunState.DRAINING_QUEUE
        run.progress.publish(
            ProgressEvent(
                is_queueing=True,
                progress=0,
                total=run.total,
                message=(
                    f"Queueing {max_size} randomly selected songs..."
                    if run.capped
                    else "Preparing your truly random queue..."
                ),
            )
        )

        def on_progress(p: QueueProgress) -> None:
            run.current_index = p.progress
            run.succeeded_count = p.succeeded
            run.failed_count = p.failed
            if run.capped:
                message = f"Queued {p.progress} of {p.total} songs ({p.progress + 1}/{max_size} total)..."
            else:
                message = f"Queued {p.progress} of {p.total} tracks..."
            run.progress.publish(
                ProgressEvent(is_queueing=True, progress=p.progress, total=p.total, message=message)
            )

        await submit_tracks(
            self._client,
            to_queue,
            device_id,
            on_progress,
            retry=RetryPolicy(
                max_retries=settings.queue_max_retries,
                base_delay=settings.queue_backoff_base,
            ),
            request_delay=settings.queue_request_delay,
            sleep=self._sleep,
        )

        final_message = (
            f"Queued {max_size} random songs! More will be added as you listen."
            if run.capped
            else None
        )
        run.progress.publish(
            ProgressEvent(progress=run.total, total=run.total, message=final_message)
        )
        if final_message:
            self._clear_banner_later(run)
            return True
        return False

    async def _resolve_tracks(self, run: ShuffleRun) -> List[Track]:
        """Use the caller's tracks when usable, otherwise fetch them.

        The fetch runs as its own task so that a cancel request, or the fetch
        task being cancelled from outside, ends the run as cancelled.
        """
        if has_playable_uri(run.source_tracks):
            return list(run.source_tracks or [])

        fetch = asyncio.ensure_future(self._library.get_tracks_for(run.playlist))
        cancelled = asyncio.ensure_future(run.cancel_requested.wait())
        try:
            await asyncio.wait({fetch, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not fetch.done():
                fetch.cancel()

        if fetch.cancelled() or not fetch.done():
            raise ShuffleCancelled()
        tracks = fetch.result()
        run.source_tracks = tracks
        return [t for t in tracks if t.uri]

    def _clear_banner_later(self, run: ShuffleRun) -> None:
        async def _clear() -> None:
            await self._sleep(self._settings.completion_banner_seconds)
            run.progress.publish(
                ProgressEvent(progress=run.total, total=run.total, message=None)
            )

        task = asyncio.ensure_future(_clear())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        # Closes even if the task is cancelled before it ever runs.
        task.add_done_callback(lambda _: run.progress.close())

    async def aclose(self) -> None:
        """Cancel pending banner timers (shutdown)."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
