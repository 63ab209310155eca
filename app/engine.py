"""Wires the engine components together around one HTTP client."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx

from app.auth import TokenManager
from app.config import Settings, get_settings
from app.credentials import CredentialStore
from app.library import SpotifyLibrary
from app.orchestrator import ShuffleOrchestrator
from app.playback import OpenUrl, PlaybackController, open_in_browser
from app.spotify_client import SpotifyClient
from core.retry import Sleep

_CONNECT_TIMEOUT = 10.0  # seconds
_READ_TIMEOUT = 30.0


def default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(_READ_TIMEOUT, connect=_CONNECT_TIMEOUT))


@dataclass
class Engine:
    http: httpx.AsyncClient
    tokens: TokenManager
    client: SpotifyClient
    library: SpotifyLibrary
    playback: PlaybackController
    orchestrator: ShuffleOrchestrator

    async def aclose(self) -> None:
        await self.orchestrator.aclose()
        await self.http.aclose()


def build_engine(
    store: CredentialStore,
    *,
    http: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
    open_url: OpenUrl = open_in_browser,
    sleep: Sleep = asyncio.sleep,
) -> Engine:
    settings = settings or get_settings()
    http = http or default_http_client()
    tokens = TokenManager(store, http, settings)
    client = SpotifyClient(tokens, http, base_url=settings.spotify_api_base)
    library = SpotifyLibrary(client, settings, sleep=sleep)
    playback = PlaybackController(client, settings, open_url=open_url, sleep=sleep)
    orchestrator = ShuffleOrchestrator(library, client, playback, settings, sleep=sleep)
    return Engine(
        http=http,
        tokens=tokens,
        client=client,
        library=library,
        playback=playback,
        orchestrator=orchestrator,
    )
