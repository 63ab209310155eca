"""Spotify OAuth 2.0 with PKCE — no client secret needed.

Flow:
  1. GET /login        → redirect to Spotify /authorize with code_challenge
  2. GET /callback     → exchange code for tokens via /api/token
  3. Tokens stored in the credential store (access, refresh, expiry)
  4. Requests refresh proactively on expiry and reactively on 401
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import secrets
import string
import time
from base64 import urlsafe_b64encode
from typing import Awaitable, Callable, Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import RedirectResponse

from app.config import Settings, get_settings
from app.credentials import (
    ACCESS_TOKEN_KEY,
    ALL_KEYS,
    CODE_VERIFIER_KEY,
    EXPIRY_KEY,
    REFRESH_TOKEN_KEY,
    CredentialStore,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

SCOPES = " ".join(
    [
        "user-read-private",
        "user-read-email",
        "playlist-read-private",
        "playlist-read-collaborative",
        "user-read-playback-state",
        "user-modify-playback-state",
        "user-read-currently-playing",
        "user-library-read",
    ]
)

_VERIFIER_ALPHABET = string.ascii_letters + string.digits

# Browser hand-off: receives the authorize URL, returns the code (or None).
Consent = Callable[[str], Awaitable[Optional[str]]]


# ---------------------------------------------------------------------------
# PKCE helpers
# ---------------------------------------------------------------------------

def generate_code_verifier(length: int = 64) -> str:
    """Random alphanumeric verifier (43-128 chars per RFC 7636)."""
    return "".join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(length))


def generate_code_challenge(verifier: str) -> str:
    """S256 code challenge = BASE64URL(SHA256(verifier)), unpadded."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


# ---------------------------------------------------------------------------
# Token lifecycle
# ---------------------------------------------------------------------------

class TokenManager:
    """Owns the authorization-code exchange, expiry tracking and refresh."""

    def __init__(
        self,
        store: CredentialStore,
        http: httpx.AsyncClient,
        settings: Settings | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._http = http
        self._settings = settings or get_settings()
        self._clock = clock
        self._refresh_lock = asyncio.Lock()

    @property
    def authorize_url(self) -> str:
        return f"{self._settings.spotify_accounts_base}/authorize"

    @property
    def token_url(self) -> str:
        return f"{self._settings.spotify_accounts_base}/api/token"

    # -- reads -------------------------------------------------------------

    async def access_token(self) -> str | None:
        return await self._store.get(ACCESS_TOKEN_KEY)

    async def is_authenticated(self) -> bool:
        return bool(await self.access_token())

    async def is_expired(self) -> bool:
        """True once ``now`` passes the stored expiry (no expiry → never)."""
        expiry = await self._store.get(EXPIRY_KEY)
        return bool(expiry) and self._clock() > float(expiry)

    # -- authorization code flow -------------------------------------------

    async def begin_authorization(self) -> str:
        """Persist a fresh verifier and return the Spotify authorize URL."""
        verifier = generate_code_verifier()
        challenge = generate_code_challenge(verifier)
        await self._store.set(CODE_VERIFIER_KEY, verifier)

        params = {
            "response_type": "code",
            "client_id": self._settings.spotify_client_id,
            "scope": SCOPES,
            "redirect_uri": self._settings.redirect_uri,
            "code_challenge_method": "S256",
            "code_challenge": challenge,
            "show_dialog": "true",
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> bool:
        """Trade an authorization code for tokens.

        The verifier is single-use: it is deleted after this attempt whether
        the exchange succeeds or not.
        """
        verifier = await self._store.get(CODE_VERIFIER_KEY)
        if not verifier:
            logger.error("Code verifier not found — restart login")
            return False

        try:
            resp = await self._http.post(
                self.token_url,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self._settings.redirect_uri,
                    "client_id": self._settings.spotify_client_id,
                    "code_verifier": verifier,
                },
            )
            data = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.exception("Token exchange failed")
            return False
        finally:
            await self._store.remove(CODE_VERIFIER_KEY)

        if not isinstance(data, dict) or not data.get("access_token"):
            logger.warning("Token exchange returned no access token (%s)", resp.status_code)
            return False

        await self._save_tokens(data)
        logger.info("Authorization code exchanged for tokens")
        return True

    async def authenticate(self, consent: Consent) -> bool:
        """Run the whole PKCE flow through an external consent hand-off."""
        url = await self.begin_authorization()
        try:
            code = await consent(url)
        except Exception:
            logger.exception("Authorization hand-off failed")
            await self._store.remove(CODE_VERIFIER_KEY)
            return False
        if not code:
            await self._store.remove(CODE_VERIFIER_KEY)
            return False
        return await self.exchange_code(code)

    # -- refresh -----------------------------------------------------------

    async def refresh(self, failed_token: str | None = None) -> bool:
        """Use the refresh token to get a new access token.

        A ``False`` result means re-authentication is required.  When
        *failed_token* is given and another caller already replaced it while
        we waited for the lock, the refresh is skipped.
        """
        async with self._refresh_lock:
            if failed_token is not None:
                current = await self._store.get(ACCESS_TOKEN_KEY)
                if current and current != failed_token:
                    return True
            return await self._refresh_locked()

    async def _refresh_locked(self) -> bool:
        refresh_token = await self._store.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            return False

        try:
            resp = await self._http.post(
                self.token_url,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": self._settings.spotify_client_id,
                },
            )
            data = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.exception("Failed to refresh access token")
            return False

        if not isinstance(data, dict) or not data.get("access_token"):
            logger.warning("Token refresh failed (%s)", resp.status_code)
            return False

        # Spotify may or may not send a new refresh token.
        await self._save_tokens(data)
        logger.info("Refreshed access token")
        return True

    async def _save_tokens(self, data: dict) -> None:
        await self._store.set(ACCESS_TOKEN_KEY, data["access_token"])
        if data.get("refresh_token"):
            await self._store.set(REFRESH_TOKEN_KEY, data["refresh_token"])
        expires_in = data.get("expires_in")
        if expires_in:
            expiry = self._clock() + int(expires_in) - self._settings.token_expiry_margin
            await self._store.set(EXPIRY_KEY, str(expiry))
        else:
            await self._store.remove(EXPIRY_KEY)

    async def logout(self) -> None:
        await self._store.remove(*ALL_KEYS)
        logger.info("Credentials cleared")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def _tokens(request: Request) -> TokenManager:
    return request.app.state.engine.tokens


@router.get("/login")
async def login(request: Request):
    """Start the Spotify PKCE login flow."""
    settings = get_settings()
    if not settings.spotify_client_id:
        raise HTTPException(status_code=500, detail="SPOTIFY_CLIENT_ID not set")

    url = await _tokens(request).begin_authorization()
    return RedirectResponse(url)


@router.get("/callback")
async def callback(request: Request, code: str | None = None, error: str | None = None):
    """Handle Spotify's redirect after user authorizes."""
    if error:
        raise HTTPException(status_code=400, detail=f"Spotify auth error: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    if not await _tokens(request).exchange_code(code):
        raise HTTPException(status_code=502, detail="Spotify token exchange failed — restart login")

    request.app.state.engine.library.needs_reauth = False
    return RedirectResponse("/playlists", status_code=303)


@router.get("/logout")
async def logout(request: Request):
    """Clear credentials and redirect to home."""
    await _tokens(request).logout()
    return RedirectResponse("/")
