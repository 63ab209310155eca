"""Library and shuffle-queue JSON routes.

The UI polls ``/shuffle/status`` while a run drains; the run itself executes
as a background task after ``POST /shuffle`` returns 202.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.engine import Engine
from app.progress import IDLE_EVENT
from core.errors import ShuffleAlreadyRunning
from core.models import LIKED_SONGS_ID, Playlist, User, liked_songs_playlist

router = APIRouter(tags=["shuffle"])


def _engine(request: Request) -> Engine:
    return request.app.state.engine


class ShuffleRequest(BaseModel):
    playlist_id: str
    playlist_name: str = ""


def _target_playlist(body: ShuffleRequest, user: User | None) -> Playlist:
    if body.playlist_id == LIKED_SONGS_ID:
        return liked_songs_playlist(user or User(id=""))
    return Playlist(
        id=body.playlist_id,
        name=body.playlist_name,
        uri=f"spotify:playlist:{body.playlist_id}",
    )


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------

@router.get("/me")
async def me(request: Request):
    user = await _engine(request).library.get_current_user()
    if user is None:
        raise HTTPException(status_code=401, detail="Not connected — please /login")
    return JSONResponse(user.model_dump())


@router.get("/playlists")
async def playlists(request: Request):
    """All playlists, liked songs first."""
    library = _engine(request).library
    items = await library.get_all_playlists_with_liked()
    return JSONResponse(
        {
            "playlists": [p.model_dump() for p in items],
            "needs_reauth": library.needs_reauth,
        }
    )


@router.get("/devices")
async def devices(request: Request):
    """List available Spotify devices."""
    device_list = await _engine(request).client.get_devices()
    return JSONResponse({"devices": [d.model_dump() for d in device_list]})


# ---------------------------------------------------------------------------
# Shuffle
# ---------------------------------------------------------------------------

@router.get("/shuffle/preflight")
async def preflight(request: Request):
    """Checks the UI runs before offering to shuffle."""
    playback = _engine(request).playback
    return JSONResponse(
        {
            "has_device": await playback.has_active_device(),
            "queue_count": await playback.queued_song_count(),
        }
    )


@router.post("/shuffle", status_code=202)
async def shuffle(request: Request, body: ShuffleRequest, background_tasks: BackgroundTasks):
    """Start a shuffle-and-queue run for a playlist."""
    engine = _engine(request)
    user = None
    if body.playlist_id == LIKED_SONGS_ID:
        user = await engine.library.get_current_user()
    try:
        run = engine.orchestrator.start(_target_playlist(body, user))
    except ShuffleAlreadyRunning as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    background_tasks.add_task(engine.orchestrator.execute, run)
    return run.to_status_dict()


@router.get("/shuffle/status")
async def status(request: Request):
    """Return the current (or most recent) run and its latest progress event."""
    orchestrator = _engine(request).orchestrator
    run = orchestrator.active_run or orchestrator.last_run
    if run is None:
        return JSONResponse({"state": "idle", "progress": IDLE_EVENT.model_dump(by_alias=True)})
    return JSONResponse(run.to_status_dict())


@router.post("/shuffle/cancel")
async def cancel(request: Request):
    return JSONResponse({"cancelled": _engine(request).orchestrator.cancel()})
