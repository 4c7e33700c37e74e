from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from comicsync.core.auth import get_comic_or_404, get_current_user
from comicsync.core.clock import Clock, get_clock
from comicsync.database import get_db
from comicsync.models import Comic, User
from comicsync.schemas.progress import (
    ProgressDetailResponse,
    ProgressResponse,
    ReadingSessionResponse,
    SessionListResponse,
)
from comicsync.schemas.reading import (
    ReadingSessionEndRequest,
    ReadingSessionPauseRequest,
    ReadingSessionStartRequest,
)
from comicsync.services.sessions import ReadingSessionManager

router = APIRouter(prefix="/reading", tags=["reading"])


def _snapshot(manager: ReadingSessionManager, progress, user_id: int, comic_id: int) -> ProgressDetailResponse:
    if progress is None:
        # pause/end before anything was ever read
        return ProgressDetailResponse(progress=None)
    current = manager.get_current_session(user_id, comic_id)
    return ProgressDetailResponse(
        progress=ProgressResponse.model_validate(progress),
        current_session=ReadingSessionResponse.model_validate(current) if current else None,
        has_active_session=current is not None,
    )


# -------------------------------
# session start (idempotent)
# -------------------------------
@router.post(
    "/{comic_id}/start",
    response_model=ProgressDetailResponse,
    summary="Start a reading session",
    description="Returns the already-open session unchanged if one exists.",
)
def start_session(
    payload: ReadingSessionStartRequest,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    manager = ReadingSessionManager(db, clock)
    progress = manager.start(current_user.id, comic.id, payload.metadata)
    return _snapshot(manager, progress, current_user.id, comic.id)


# -------------------------------
# pause (no-op without an open session)
# -------------------------------
@router.post("/{comic_id}/pause", response_model=ProgressDetailResponse, summary="Add pause time")
def pause_session(
    payload: ReadingSessionPauseRequest,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    manager = ReadingSessionManager(db, clock)
    progress = manager.pause(current_user.id, comic.id, payload.minutes)
    return _snapshot(manager, progress, current_user.id, comic.id)


# -------------------------------
# end (no-op without an open session)
# -------------------------------
@router.post("/{comic_id}/end", response_model=ProgressDetailResponse, summary="End the reading session")
def end_session(
    payload: ReadingSessionEndRequest,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    manager = ReadingSessionManager(db, clock)
    progress = manager.end(current_user.id, comic.id, payload.end_page, payload.metadata)
    return _snapshot(manager, progress, current_user.id, comic.id)


@router.get("/{comic_id}/sessions", response_model=SessionListResponse, summary="Session history")
def list_sessions(
    limit: int = Query(50, ge=1, description="capped by SESSION_HISTORY_MAX_PAGE"),
    offset: int = Query(0, ge=0),
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    manager = ReadingSessionManager(db, clock)
    items = manager.list_sessions(current_user.id, comic.id, limit=limit, offset=offset)
    return SessionListResponse(
        total=manager.count_sessions(current_user.id, comic.id),
        items=[ReadingSessionResponse.model_validate(s) for s in items],
    )
