"""Error taxonomy shared by the request executor and the orchestrator.

Every remote failure is classified once, at the request executor, into one
of the ``SpotifyAPIError`` subclasses below.  Code above that layer branches
on the exception type (or its ``kind`` tag), never on message text.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Remote / HTTP failures
# ---------------------------------------------------------------------------

class SpotifyAPIError(Exception):
    """Base class for failures talking to the Spotify Web API."""

    kind = "request_failed"

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Spotify API error {status_code}: {detail}")


class Unauthenticated(SpotifyAPIError):
    """No access token on record — the user has to connect first."""

    kind = "unauthenticated"

    def __init__(self, detail: str = "No access token available — please /login"):
        super().__init__(401, detail)


class AuthRefreshFailed(SpotifyAPIError):
    """The token could not be refreshed; re-authentication is required."""

    kind = "auth_refresh_failed"

    def __init__(self, detail: str = "Token refresh failed — please /login"):
        super().__init__(401, detail)


class InsufficientScope(SpotifyAPIError):
    kind = "insufficient_scope"

    def __init__(self, detail: str = "Insufficient client scope"):
        super().__init__(403, detail)


class Forbidden(SpotifyAPIError):
    kind = "forbidden"

    def __init__(self, detail: str = "Access denied"):
        super().__init__(403, detail)


class RateLimited(SpotifyAPIError):
    """HTTP 429.  ``retry_after`` is the provider hint in seconds, if sent."""

    kind = "rate_limited"

    def __init__(self, retry_after: float | None = None, detail: str = "Rate limit exceeded"):
        self.retry_after = retry_after
        super().__init__(429, detail)


class RequestFailed(SpotifyAPIError):
    """Any other non-2xx response or a transport error (status 0)."""

    kind = "request_failed"


AUTH_ERRORS = (Unauthenticated, AuthRefreshFailed)


# ---------------------------------------------------------------------------
# Orchestration outcomes
# ---------------------------------------------------------------------------

class ShuffleError(Exception):
    kind = "shuffle_error"


class NoActiveDevice(ShuffleError):
    kind = "no_active_device"


class EmptySourceCollection(ShuffleError):
    kind = "empty_source_collection"


class ShuffleCancelled(ShuffleError):
    kind = "cancelled"


class ShuffleAlreadyRunning(ShuffleError):
    """A second shuffle was requested while another one is still draining."""

    kind = "already_running"
