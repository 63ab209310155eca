"""Spotify library access: profile, playlists, playlist tracks, liked songs.

All collections go through the bulk fetcher.  Saved tracks need the
``user-library-read`` scope, which older logins lack; a missing scope
degrades to an empty list and raises the sticky ``needs_reauth`` flag
instead of failing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from app.config import Settings, get_settings
from app.fetcher import fetch_collection, nested_tracks
from app.spotify_client import SpotifyClient
from core.errors import InsufficientScope
from core.models import (
    Playlist,
    Track,
    User,
    liked_songs_playlist,
    with_liked_songs,
)
from core.retry import RetryPolicy, Sleep

logger = logging.getLogger(__name__)


def _tracks(raw_items: List[Any]) -> List[Track]:
    return [Track.from_api(t) for t in nested_tracks(raw_items)]


def _playlists(raw_items: List[Any]) -> List[Playlist]:
    return [Playlist.from_api(p) for p in raw_items if p and p.get("id")]


class SpotifyLibrary:
    """Read side of the engine."""

    def __init__(
        self,
        client: SpotifyClient,
        settings: Settings | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ):
        self._client = client
        self._settings = settings or get_settings()
        self._sleep = sleep
        self.needs_reauth = False

    async def _fetch(self, fetch_page, extract, label: str) -> list:
        s = self._settings
        return await fetch_collection(
            fetch_page,
            extract,
            page_size=s.page_size,
            concurrency=s.fetch_concurrency,
            window_delay=s.fetch_window_delay,
            retry=RetryPolicy(max_retries=s.fetch_max_retries),
            sleep=self._sleep,
            label=label,
        )

    # ------------------------------------------------------------------

    async def get_current_user(self) -> Optional[User]:
        data = await self._client.get_current_user()
        return User.from_api(data) if data else None

    async def get_playlists(self) -> List[Playlist]:
        return await self._fetch(
            lambda limit, offset: self._client.get_playlists_page(limit, offset),
            _playlists,
            "playlist",
        )

    async def get_playlist_tracks(self, playlist_id: str) -> List[Track]:
        return await self._fetch(
            lambda limit, offset: self._client.get_playlist_tracks_page(playlist_id, limit, offset),
            _tracks,
            "playlist track",
        )

    async def get_saved_tracks(self) -> List[Track]:
        try:
            tracks = await self._fetch(
                lambda limit, offset: self._client.get_saved_tracks_page(limit, offset),
                _tracks,
                "saved track",
            )
        except InsufficientScope:
            logger.warning("Insufficient scope for saved tracks — user needs to re-authenticate")
            self.needs_reauth = True
            return []
        if tracks:
            self.needs_reauth = False
        return tracks

    async def get_saved_track_count(self) -> int:
        """Size of the saved-tracks collection from a one-item page."""
        try:
            data = await self._client.get_saved_tracks_page(limit=1, offset=0)
        except InsufficientScope:
            logger.warning("Insufficient scope for saved tracks — user needs to re-authenticate")
            self.needs_reauth = True
            return 0
        count = int((data or {}).get("total") or 0)
        if count:
            self.needs_reauth = False
        return count

    async def has_required_scopes(self) -> bool:
        """Probe the saved-tracks endpoint with a single item."""
        try:
            await self._client.get_saved_tracks_page(limit=1, offset=0)
        except InsufficientScope:
            return False
        return True

    # ------------------------------------------------------------------

    async def get_all_playlists_with_liked(self) -> List[Playlist]:
        """User playlists with the synthetic liked-songs playlist on top."""
        user = await self.get_current_user()
        playlists = await self.get_playlists()
        if user is None:
            return playlists
        count = await self.get_saved_track_count()
        return with_liked_songs(playlists, liked_songs_playlist(user, count))

    async def get_tracks_for(self, playlist: Playlist) -> List[Track]:
        """Content source: saved tracks for liked songs, else the playlist."""
        if playlist.is_liked_songs:
            return await self.get_saved_tracks()
        return await self.get_playlist_tracks(playlist.id)
