"""Device discovery and Spotify app hand-off."""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import Awaitable, Callable, Optional

from app.config import Settings, get_settings
from app.spotify_client import SpotifyClient
from core.errors import AUTH_ERRORS, SpotifyAPIError
from core.models import LIKED_SONGS_URI, Device, Playlist
from core.retry import Sleep

logger = logging.getLogger(__name__)

_OPEN_SPOTIFY = "https://open.spotify.com"

OpenUrl = Callable[[str], Awaitable[None]]


async def open_in_browser(url: str) -> None:
    """Default hand-off: ask the platform to open *url*."""
    await asyncio.to_thread(webbrowser.open, url)


def _track_id(uri: str) -> str:
    return uri.rsplit(":", 1)[-1]


def deeplink_for(track_uri: str | None = None, context_uri: str | None = None) -> str:
    """Web link that hands playback off to the Spotify app."""
    if context_uri == LIKED_SONGS_URI:
        return f"{_OPEN_SPOTIFY}/collection/tracks"
    if track_uri and context_uri:
        return f"{_OPEN_SPOTIFY}/track/{_track_id(track_uri)}?context={context_uri}"
    if track_uri:
        return f"{_OPEN_SPOTIFY}/track/{_track_id(track_uri)}"
    return _OPEN_SPOTIFY


def pick_device(devices: list[Device]) -> Optional[Device]:
    """Active device first, otherwise the first one listed."""
    for d in devices:
        if d.is_active:
            return d
    return devices[0] if devices else None


class PlaybackController:
    def __init__(
        self,
        client: SpotifyClient,
        settings: Settings | None = None,
        *,
        open_url: OpenUrl = open_in_browser,
        sleep: Sleep = asyncio.sleep,
    ):
        self._client = client
        self._settings = settings or get_settings()
        self._open_url = open_url
        self._sleep = sleep

    async def _devices(self) -> list[Device]:
        try:
            return await self._client.get_devices()
        except AUTH_ERRORS:
            raise
        except SpotifyAPIError as exc:
            logger.error("Device lookup failed: %s", exc)
            return []

    async def _hand_off(self, url: str) -> None:
        try:
            await self._open_url(url)
        except Exception as exc:
            logger.warning("Failed to open Spotify app (%s): %s", url, exc)

    async def ensure_active_device(
        self,
        track_uri: str | None = None,
        context_uri: str | None = None,
    ) -> Optional[str]:
        """Return a device id to play on, or ``None``.

        With no device listed, the Spotify app is opened once and the device
        list polled again after a fixed settle delay.  There is no further
        retry.
        """
        device = pick_device(await self._devices())
        if device:
            return device.id

        link = deeplink_for(track_uri, context_uri)
        logger.info("No Spotify device found — opening %s", link)
        await self._hand_off(link)

        # Give Spotify a moment to register as a Connect device.
        await self._sleep(self._settings.device_settle_delay)

        device = pick_device(await self._devices())
        if device:
            return device.id
        logger.info("Still no Spotify device after hand-off")
        return None

    async def has_active_device(self) -> bool:
        return pick_device(await self._devices()) is not None

    async def queued_song_count(self) -> int:
        """Songs already in the user's queue (0 while the probe is disabled)."""
        if not self._settings.check_existing_queue:
            return 0
        try:
            data = await self._client.get_queue()
        except AUTH_ERRORS:
            raise
        except SpotifyAPIError as exc:
            logger.error("Error checking queue: %s", exc)
            return 0
        count = len((data or {}).get("queue") or [])
        if count:
            logger.info("Found %d songs in queue", count)
        return count

    async def open_spotify_app(self, playlist: Playlist) -> None:
        if playlist.is_liked_songs:
            link = deeplink_for(context_uri=LIKED_SONGS_URI)
        else:
            link = f"{_OPEN_SPOTIFY}/playlist/{playlist.id}"
        await self._hand_off(link)
