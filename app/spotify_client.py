"""Authenticated Spotify Web API executor.

Every remote call goes through ``SpotifyClient.call``:
  - Bearer token attached; proactive refresh once the token has expired
  - 401 → exactly one refresh + retry of the same request
  - Response classified into a typed error (see ``core.errors``)
  - 204 / non-JSON success → ``None``

Retry policy for 429s belongs to the caller; the executor never sleeps.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import httpx

from app.auth import TokenManager
from app.config import get_settings
from core.errors import (
    AuthRefreshFailed,
    Forbidden,
    InsufficientScope,
    RateLimited,
    RequestFailed,
    Unauthenticated,
)
from core.models import Device

logger = logging.getLogger(__name__)

_INSUFFICIENT_SCOPE = "insufficient client scope"


def _params(**kwargs: Any) -> dict[str, Any]:
    """Drop ``None`` values so optional query params are omitted."""
    return {k: v for k, v in kwargs.items() if v is not None}


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _error_message(resp: httpx.Response) -> str:
    """Best-effort ``error.message`` from a Spotify error body."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text or ""
    if not isinstance(data, dict):
        return ""
    error = data.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or "")
    return str(data.get("error_description") or error or "")


class SpotifyClient:
    """Single chokepoint for all Spotify Web API requests."""

    def __init__(
        self,
        tokens: TokenManager,
        http: httpx.AsyncClient,
        *,
        base_url: str | None = None,
    ):
        self._tokens = tokens
        self._http = http
        self._base_url = base_url or get_settings().spotify_api_base

    # ------------------------------------------------------------------
    # Core request
    # ------------------------------------------------------------------

    async def call(
        self,
        path: str,
        method: str = "GET",
        *,
        params: Optional[dict[str, Any]] = None,
        body: Any = None,
    ) -> Any:
        """Make an authenticated request and return the decoded payload.

        Parameters
        ----------
        path : str
            API path such as ``/me/player/devices`` or an absolute URL.
        method : str
            HTTP method.
        params, body
            Query string and JSON body.

        Raises
        ------
        Unauthenticated
            No access token on record.
        AuthRefreshFailed
            Refresh failed, or the request is still 401 after one retry.
        InsufficientScope, Forbidden, RateLimited, RequestFailed
            See the response classification in ``_classify``.
        """
        url = path if path.startswith("http") else f"{self._base_url}{path}"

        token = await self._tokens.access_token()
        if not token:
            raise Unauthenticated()

        if await self._tokens.is_expired():
            if not await self._tokens.refresh(failed_token=token):
                raise AuthRefreshFailed()
            token = await self._tokens.access_token() or token

        resp = await self._send(method, url, token, params, body)

        # ── 401 → refresh once, retry once ──────────────────────
        if resp.status_code == 401:
            logger.info("401 on %s %s — refreshing token", method, url)
            if not await self._tokens.refresh(failed_token=token):
                raise AuthRefreshFailed()
            token = await self._tokens.access_token() or token
            resp = await self._send(method, url, token, params, body)
            if resp.status_code == 401:
                logger.warning("Still 401 after refresh on %s %s", method, url)
                raise AuthRefreshFailed("Unauthorized after token refresh — please /login")

        return self._classify(resp, method, url, params, body)

    async def _send(
        self,
        method: str,
        url: str,
        token: str,
        params: Optional[dict[str, Any]],
        body: Any,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"}
        kwargs: dict[str, Any] = {"headers": headers}
        if params:
            kwargs["params"] = params
        if body is not None:
            kwargs["json"] = body
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(
                "%s %s failed: %s (params=%s, body=%s)", method, url, exc, params, body
            )
            raise RequestFailed(0, f"{type(exc).__name__}: {exc}") from exc

    def _classify(
        self,
        resp: httpx.Response,
        method: str,
        url: str,
        params: Optional[dict[str, Any]],
        body: Any,
    ) -> Any:
        status = resp.status_code

        # ── Success ─────────────────────────────────────────────
        if status == 204:
            return None
        if 200 <= status < 300:
            if "application/json" not in resp.headers.get("content-type", ""):
                return None
            try:
                return resp.json()
            except ValueError:
                return None

        # ── 429 → caller decides on retry ───────────────────────
        if status == 429:
            retry_after = _parse_retry_after(resp.headers.get("Retry-After"))
            logger.warning(
                "429 on %s %s (retry after %s, params=%s)", method, url, retry_after, params
            )
            raise RateLimited(retry_after)

        message = _error_message(resp)

        # ── 403 → scope vs. plain forbidden ─────────────────────
        if status == 403:
            if _INSUFFICIENT_SCOPE in message.lower():
                logger.warning("Insufficient scope on %s %s", method, url)
                raise InsufficientScope(message)
            logger.warning("403 on %s %s: %s", method, url, message)
            raise Forbidden(message or "Access denied")

        logger.error(
            "%s %s failed (%d): %s (params=%s, body=%s)",
            method, url, status, message, params, body,
        )
        raise RequestFailed(status, message or f"HTTP {status}")

    # ------------------------------------------------------------------
    # Profile & library
    # ------------------------------------------------------------------

    async def get_current_user(self) -> Optional[dict]:
        return await self.call("/me")

    async def get_playlists_page(self, limit: int = 50, offset: int = 0) -> Optional[dict]:
        return await self.call("/me/playlists", params={"limit": limit, "offset": offset})

    async def get_playlist_tracks_page(
        self, playlist_id: str, limit: int = 50, offset: int = 0
    ) -> Optional[dict]:
        return await self.call(
            f"/playlists/{playlist_id}/tracks", params={"limit": limit, "offset": offset}
        )

    async def get_saved_tracks_page(self, limit: int = 50, offset: int = 0) -> Optional[dict]:
        return await self.call("/me/tracks", params={"limit": limit, "offset": offset})

    # ------------------------------------------------------------------
    # Player
    # ------------------------------------------------------------------

    async def get_devices(self) -> List[Device]:
        data = await self.call("/me/player/devices")
        return [Device(**d) for d in (data or {}).get("devices", []) if d.get("id")]

    async def get_playback_state(self) -> Optional[dict]:
        return await self.call("/me/player")

    async def get_queue(self) -> Optional[dict]:
        return await self.call("/me/player/queue")

    async def transfer_playback(self, device_id: str, play: bool = True) -> None:
        await self.call("/me/player", "PUT", body={"device_ids": [device_id], "play": play})

    async def play(
        self,
        uris: List[str],
        device_id: str | None = None,
        position_ms: int | None = None,
    ) -> None:
        body: dict[str, Any] = {"uris": uris}
        if position_ms is not None:
            body["position_ms"] = position_ms
        await self.call(
            "/me/player/play", "PUT", params=_params(device_id=device_id), body=body
        )

    async def resume(self, device_id: str | None = None) -> None:
        await self.call("/me/player/play", "PUT", params=_params(device_id=device_id))

    async def pause(self, device_id: str | None = None) -> None:
        await self.call("/me/player/pause", "PUT", params=_params(device_id=device_id))

    async def next_track(self, device_id: str | None = None) -> None:
        await self.call("/me/player/next", "POST", params=_params(device_id=device_id))

    async def previous_track(self, device_id: str | None = None) -> None:
        await self.call("/me/player/previous", "POST", params=_params(device_id=device_id))

    async def set_shuffle(self, state: bool, device_id: str | None = None) -> None:
        await self.call(
            "/me/player/shuffle",
            "PUT",
            params=_params(state="true" if state else "false", device_id=device_id),
        )

    async def add_to_queue(self, uri: str, device_id: str | None = None) -> None:
        await self.call(
            "/me/player/queue", "POST", params=_params(uri=uri, device_id=device_id)
        )
