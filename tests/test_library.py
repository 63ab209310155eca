"""Tests for library reads, liked songs and scope degradation (app/library.py)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from app.library import SpotifyLibrary
from app.spotify_client import SpotifyClient
from core.errors import InsufficientScope, RequestFailed
from core.models import LIKED_SONGS_ID, LIKED_SONGS_URI, Playlist


def _track_item(n: int) -> dict:
    return {
        "added_at": "2024-01-01T00:00:00Z",
        "track": {
            "id": f"t{n}",
            "name": f"Song {n}",
            "uri": f"spotify:track:t{n}",
            "duration_ms": 180_000,
            "artists": [{"name": "Artist"}],
            "album": {"name": "Album", "images": [{"url": "https://i.scdn.co/a.jpg"}]},
            "external_urls": {"spotify": f"https://open.spotify.com/track/t{n}"},
        },
    }


def _page(items: list, total: int | None = None) -> dict:
    return {"items": items, "total": len(items) if total is None else total}


@pytest.fixture
def client():
    client = AsyncMock(spec=SpotifyClient)
    client.get_current_user.return_value = {"id": "u1", "display_name": None, "images": []}
    client.get_playlists_page.return_value = _page(
        [
            {
                "id": "p1",
                "name": "Road trip",
                "uri": "spotify:playlist:p1",
                "owner": {"display_name": "Someone"},
                "tracks": {"total": 42},
                "images": [],
            }
        ]
    )
    client.get_playlist_tracks_page.return_value = _page([_track_item(1), _track_item(2)])
    client.get_saved_tracks_page.return_value = _page(
        [_track_item(10), {"track": None}, _track_item(11)], total=3
    )
    return client


@pytest.fixture
def library(client, settings, sleep):
    return SpotifyLibrary(client, settings, sleep=sleep)


@pytest.mark.asyncio
async def test_saved_tracks_drop_removed_items(library):
    tracks = await library.get_saved_tracks()
    assert [t.uri for t in tracks] == ["spotify:track:t10", "spotify:track:t11"]
    assert tracks[0].artists == ["Artist"]
    assert tracks[0].album_image == "https://i.scdn.co/a.jpg"


@pytest.mark.asyncio
async def test_insufficient_scope_degrades_to_empty(library, client):
    client.get_saved_tracks_page.side_effect = InsufficientScope()

    assert await library.get_saved_tracks() == []
    assert library.needs_reauth is True


@pytest.mark.asyncio
async def test_reauth_flag_cleared_by_successful_fetch(library, client):
    client.get_saved_tracks_page.side_effect = InsufficientScope()
    await library.get_saved_tracks()
    assert library.needs_reauth

    client.get_saved_tracks_page.side_effect = None
    await library.get_saved_tracks()
    assert library.needs_reauth is False


@pytest.mark.asyncio
async def test_other_errors_propagate(library, client):
    client.get_saved_tracks_page.side_effect = RequestFailed(500, "boom")
    with pytest.raises(RequestFailed):
        await library.get_saved_tracks()
    assert library.needs_reauth is False


@pytest.mark.asyncio
async def test_liked_songs_sorted_first(library, client):
    client.get_saved_tracks_page.return_value = _page([_track_item(10)], total=1234)
    playlists = await library.get_all_playlists_with_liked()

    assert [p.id for p in playlists] == [LIKED_SONGS_ID, "p1"]
    liked = playlists[0]
    assert liked.context_uri == LIKED_SONGS_URI
    # Count comes from the first page's total; the collection is not walked.
    assert liked.track_count == 1234
    client.get_saved_tracks_page.assert_awaited_once_with(limit=1, offset=0)
    assert playlists[1].context_uri == "spotify:playlist:p1"
    assert playlists[1].track_count == 42


@pytest.mark.asyncio
async def test_playlists_without_user(library, client):
    client.get_current_user.return_value = None
    playlists = await library.get_all_playlists_with_liked()
    assert [p.id for p in playlists] == ["p1"]


@pytest.mark.asyncio
async def test_liked_songs_source_is_saved_tracks(library, client):
    liked = Playlist(id=LIKED_SONGS_ID, name="Liked Songs", uri=LIKED_SONGS_URI)
    tracks = await library.get_tracks_for(liked)

    assert len(tracks) == 2
    client.get_saved_tracks_page.assert_awaited()
    client.get_playlist_tracks_page.assert_not_awaited()


@pytest.mark.asyncio
async def test_playlist_source_is_playlist_tracks(library, client):
    playlist = Playlist(id="p1", uri="spotify:playlist:p1")
    tracks = await library.get_tracks_for(playlist)

    assert [t.uri for t in tracks] == ["spotify:track:t1", "spotify:track:t2"]
    client.get_playlist_tracks_page.assert_awaited_once_with("p1", 50, 0)
    client.get_saved_tracks_page.assert_not_awaited()


@pytest.mark.asyncio
async def test_has_required_scopes(library, client):
    assert await library.has_required_scopes() is True
    client.get_saved_tracks_page.side_effect = InsufficientScope()
    assert await library.has_required_scopes() is False


@pytest.mark.asyncio
async def test_current_user_tolerates_null_display_name(library):
    user = await library.get_current_user()
    assert user.id == "u1"
    assert user.display_name == ""


@pytest.mark.asyncio
async def test_saved_track_count_without_scope(library, client):
    client.get_saved_tracks_page.side_effect = InsufficientScope()

    playlists = await library.get_all_playlists_with_liked()

    assert playlists[0].id == LIKED_SONGS_ID
    assert playlists[0].track_count == 0
    assert library.needs_reauth is True
