from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from comicsync.core.auth import get_comic_or_404, get_current_user
from comicsync.core.clock import Clock, get_clock
from comicsync.database import get_db
from comicsync.models import Comic, User
from comicsync.schemas.progress import (
    ProgressDetailResponse,
    ProgressResponse,
    ProgressUpdateRequest,
    ReadingPreferencesUpdate,
    ReadingSessionResponse,
)
from comicsync.services.progress import ProgressTracker
from comicsync.services.sessions import ReadingSessionManager

router = APIRouter(prefix="/progress", tags=["progress"])


@router.post("/{comic_id}", response_model=ProgressResponse, summary="Update reading position")
def update_progress(
    payload: ProgressUpdateRequest,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    tracker = ProgressTracker(db, clock)
    return tracker.update_progress(
        current_user.id,
        comic.id,
        payload.current_page,
        total_pages=payload.total_pages,
        metadata=payload.metadata,
    )


@router.get("/{comic_id}", response_model=ProgressDetailResponse, summary="Progress and open session")
def get_progress(
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    progress = ProgressTracker(db, clock).get(current_user.id, comic.id)
    if progress is None:
        return ProgressDetailResponse(progress=None)
    current = ReadingSessionManager(db, clock).get_current_session(current_user.id, comic.id)
    return ProgressDetailResponse(
        progress=ProgressResponse.model_validate(progress),
        current_session=ReadingSessionResponse.model_validate(current) if current else None,
        has_active_session=current is not None,
    )


@router.patch("/{comic_id}/preferences", response_model=ProgressResponse, summary="Merge reading preferences")
def update_reading_preferences(
    payload: ReadingPreferencesUpdate,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    return ProgressTracker(db, clock).update_reading_preferences(current_user.id, comic.id, payload.preferences)
