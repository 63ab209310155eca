"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.credentials import SqliteCredentialStore
from app.db import close_db, init_db
from app.engine import build_engine
from app.logging_config import configure_logging
from core.errors import AUTH_ERRORS, RateLimited, SpotifyAPIError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    settings = get_settings()
    configure_logging(settings.log_level)
    db = await init_db()
    app.state.engine = build_engine(SqliteCredentialStore(db), settings=settings)
    logger.info("[startup] DB ready at %s", settings.db_abs_path)
    yield
    await app.state.engine.aclose()
    await close_db()
    logger.info("[shutdown] DB closed")


app = FastAPI(
    title="true-shuffle",
    version="0.2.0",
    lifespan=lifespan,
)


@app.exception_handler(SpotifyAPIError)
async def spotify_error_handler(request: Request, exc: SpotifyAPIError):
    """Auth failures → 401 ("please reconnect"), throttling → 429, rest → 502."""
    if isinstance(exc, AUTH_ERRORS):
        status = 401
    elif isinstance(exc, RateLimited):
        status = 429
    else:
        status = 502
    return JSONResponse({"detail": exc.detail, "kind": exc.kind}, status_code=status)


# Routers
from app.auth import router as auth_router  # noqa: E402
from app.routes_shuffle import router as shuffle_router  # noqa: E402

app.include_router(auth_router)
app.include_router(shuffle_router)


@app.get("/health")
async def health():
    """Simple health-check endpoint."""
    return JSONResponse({"status": "ok", "version": app.version})
