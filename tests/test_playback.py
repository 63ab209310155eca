"""Tests for device discovery and app hand-off (app/playback.py)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from app.config import Settings
from app.playback import PlaybackController, deeplink_for, pick_device
from app.spotify_client import SpotifyClient
from core.errors import AuthRefreshFailed, RequestFailed
from core.models import LIKED_SONGS_ID, LIKED_SONGS_URI, Device, Playlist

PHONE = Device(id="phone", is_active=False, name="Phone", type="Smartphone")
LAPTOP = Device(id="laptop", is_active=True, name="Laptop", type="Computer")


@pytest.fixture
def client():
    return AsyncMock(spec=SpotifyClient)


@pytest.fixture
def open_url():
    return AsyncMock()


def _controller(client, open_url, sleep, settings=None):
    return PlaybackController(client, settings or Settings(), open_url=open_url, sleep=sleep)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

class TestDeeplink:
    def test_liked_songs(self):
        assert deeplink_for("spotify:track:abc", LIKED_SONGS_URI) == (
            "https://open.spotify.com/collection/tracks"
        )

    def test_track_in_context(self):
        assert deeplink_for("spotify:track:abc", "spotify:playlist:p1") == (
            "https://open.spotify.com/track/abc?context=spotify:playlist:p1"
        )

    def test_track_only(self):
        assert deeplink_for("spotify:track:abc") == "https://open.spotify.com/track/abc"

    def test_nothing(self):
        assert deeplink_for() == "https://open.spotify.com"


class TestPickDevice:
    def test_prefers_active(self):
        assert pick_device([PHONE, LAPTOP]) is LAPTOP

    def test_falls_back_to_first(self):
        assert pick_device([PHONE]) is PHONE

    def test_none(self):
        assert pick_device([]) is None


# ---------------------------------------------------------------------------
# ensure_active_device
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_device_found_immediately(client, open_url, sleep):
    client.get_devices.return_value = [PHONE, LAPTOP]
    ctl = _controller(client, open_url, sleep)

    assert await ctl.ensure_active_device("spotify:track:abc") == "laptop"
    open_url.assert_not_awaited()
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_hand_off_then_single_repoll(client, open_url, sleep):
    client.get_devices.side_effect = [[], [PHONE]]
    ctl = _controller(client, open_url, sleep)

    device_id = await ctl.ensure_active_device("spotify:track:abc", "spotify:playlist:p1")

    assert device_id == "phone"
    open_url.assert_awaited_once_with(
        "https://open.spotify.com/track/abc?context=spotify:playlist:p1"
    )
    assert sleep.calls == [1.5]
    assert client.get_devices.await_count == 2


@pytest.mark.asyncio
async def test_no_device_after_hand_off(client, open_url, sleep):
    client.get_devices.return_value = []
    ctl = _controller(client, open_url, sleep)

    assert await ctl.ensure_active_device() is None
    assert client.get_devices.await_count == 2
    assert sleep.calls == [1.5]


@pytest.mark.asyncio
async def test_hand_off_failure_is_not_fatal(client, open_url, sleep):
    client.get_devices.side_effect = [[], [PHONE]]
    open_url.side_effect = OSError("no browser")
    ctl = _controller(client, open_url, sleep)

    assert await ctl.ensure_active_device() == "phone"


@pytest.mark.asyncio
async def test_device_lookup_error_counts_as_none(client, open_url, sleep):
    client.get_devices.side_effect = RequestFailed(503, "unavailable")
    ctl = _controller(client, open_url, sleep)
    assert await ctl.has_active_device() is False


@pytest.mark.asyncio
async def test_device_lookup_auth_error_propagates(client, open_url, sleep):
    client.get_devices.side_effect = AuthRefreshFailed()
    ctl = _controller(client, open_url, sleep)
    with pytest.raises(AuthRefreshFailed):
        await ctl.ensure_active_device()


# ---------------------------------------------------------------------------
# Queue probe & app hand-off
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_queue_probe_disabled_by_default(client, open_url, sleep):
    ctl = _controller(client, open_url, sleep)
    assert await ctl.queued_song_count() == 0
    client.get_queue.assert_not_awaited()


@pytest.mark.asyncio
async def test_queue_probe_when_enabled(client, open_url, sleep):
    client.get_queue.return_value = {"currently_playing": {}, "queue": [{}, {}, {}]}
    ctl = _controller(client, open_url, sleep, Settings(check_existing_queue=True))
    assert await ctl.queued_song_count() == 3


@pytest.mark.asyncio
async def test_queue_probe_error_reads_as_empty(client, open_url, sleep):
    client.get_queue.side_effect = RequestFailed(500, "boom")
    ctl = _controller(client, open_url, sleep, Settings(check_existing_queue=True))
    assert await ctl.queued_song_count() == 0


@pytest.mark.asyncio
async def test_open_spotify_app(client, open_url, sleep):
    ctl = _controller(client, open_url, sleep)
    await ctl.open_spotify_app(Playlist(id=LIKED_SONGS_ID, uri=LIKED_SONGS_URI))
    await ctl.open_spotify_app(Playlist(id="p1", uri="spotify:playlist:p1"))
    assert [c.args[0] for c in open_url.await_args_list] == [
        "https://open.spotify.com/collection/tracks",
        "https://open.spotify.com/playlist/p1",
    ]
