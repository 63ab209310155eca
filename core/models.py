"""Pydantic models shared across the application."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# The synthetic "Liked Songs" playlist has no remote id; it is backed by the
# saved-tracks collection and played through the collection context URI.
LIKED_SONGS_ID = "liked-songs"
LIKED_SONGS_URI = "spotify:collection:tracks"
LIKED_SONGS_IMAGE = "https://misc.scdn.co/liked-songs/liked-songs-300.png"


class Image(BaseModel):
    url: str
    height: Optional[int] = None
    width: Optional[int] = None


class User(BaseModel):
    """Current user profile from ``GET /me``."""

    id: str
    display_name: str = ""
    email: str = ""
    images: List[Image] = Field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            display_name=data.get("display_name") or "",
            email=data.get("email") or "",
            images=[Image(**img) for img in data.get("images") or [] if img.get("url")],
        )


class Track(BaseModel):
    """A Spotify track.  Identity is ``uri`` — the only field playback needs."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str = ""
    uri: Optional[str] = None  # e.g. "spotify:track:6rqhFgbbKwnb9MLmUQDhG6"
    artists: List[str] = Field(default_factory=list)
    album: str = ""
    album_image: Optional[str] = None
    duration_ms: int = 0
    external_url: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Track":
        album = data.get("album") or {}
        images = album.get("images") or []
        return cls(
            id=data.get("id"),
            name=data.get("name") or "",
            uri=data.get("uri"),
            artists=[a.get("name", "") for a in data.get("artists") or []],
            album=album.get("name") or "",
            album_image=images[0].get("url") if images else None,
            duration_ms=data.get("duration_ms") or 0,
            external_url=(data.get("external_urls") or {}).get("spotify", ""),
        )


class Playlist(BaseModel):
    id: str
    name: str = ""
    uri: str = ""
    owner: str = ""
    track_count: int = 0
    images: List[Image] = Field(default_factory=list)
    description: str = ""

    @property
    def is_liked_songs(self) -> bool:
        return self.id == LIKED_SONGS_ID

    @property
    def context_uri(self) -> str:
        """Playback context: the collection URI for liked songs."""
        return LIKED_SONGS_URI if self.is_liked_songs else self.uri

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Playlist":
        return cls(
            id=data["id"],
            name=data.get("name") or "(untitled)",
            uri=data.get("uri") or "",
            owner=(data.get("owner") or {}).get("display_name") or "",
            track_count=(data.get("tracks") or {}).get("total", 0),
            images=[Image(**img) for img in data.get("images") or [] if img.get("url")],
            description=data.get("description") or "",
        )


class Device(BaseModel):
    """A Spotify Connect device.  Never persisted past one run."""

    id: str
    is_active: bool = False
    name: str = ""
    type: str = ""


class Credential(BaseModel):
    """Snapshot of the persisted credential fields."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expiry_ts: Optional[float] = None
    code_verifier: Optional[str] = None


# ---------------------------------------------------------------------------
# Liked Songs
# ---------------------------------------------------------------------------

def liked_songs_playlist(user: User, track_count: int = 0, *, loading: bool = False) -> Playlist:
    """Build the synthetic "Liked Songs" playlist for *user*."""
    return Playlist(
        id=LIKED_SONGS_ID,
        name="Liked Songs",
        uri=LIKED_SONGS_URI,
        owner=user.display_name,
        track_count=0 if loading else track_count,
        images=[Image(url=LIKED_SONGS_IMAGE, height=300, width=300)],
        description="Loading your liked songs..." if loading else "Your Liked Songs",
    )


def with_liked_songs(playlists: List[Playlist], liked: Optional[Playlist]) -> List[Playlist]:
    """Liked songs always sorts first in the combined list."""
    rest = [p for p in playlists if not p.is_liked_songs]
    if liked is None:
        return rest
    return [liked, *rest]
