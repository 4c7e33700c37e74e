from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from comicsync.core.auth import get_comic_or_404, get_current_user
from comicsync.core.clock import Clock, get_clock
from comicsync.database import get_db
from comicsync.models import Comic, LibraryEntry, User
from comicsync.schemas.library import (
    CompletionRequest,
    LibraryAddRequest,
    LibraryEntryResponse,
    LibraryResponse,
    RatingRequest,
    ReadingTimeRequest,
)
from comicsync.services.library import LibraryService, has_access

router = APIRouter(prefix="/library", tags=["library"])


def _entry_out(entry: LibraryEntry, clock: Clock) -> LibraryEntryResponse:
    out = LibraryEntryResponse.model_validate(entry)
    out.has_access = has_access(entry, clock.now())
    return out


# -------------------------------
# listing
# -------------------------------
@router.get("", response_model=LibraryResponse)
def list_library(
    favorites: bool = Query(False, description="only favorites"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    entries = LibraryService(db, clock).list_entries(current_user.id, favorites_only=favorites)
    return LibraryResponse(total=len(entries), items=[_entry_out(e, clock) for e in entries])


@router.post("/{comic_id}", response_model=LibraryEntryResponse, summary="Add to library")
def add_to_library(
    payload: LibraryAddRequest,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    entry = LibraryService(db, clock).add(current_user.id, comic.id, payload.access_type)
    return _entry_out(entry, clock)


# -------------------------------
# per-entry mutations
# -------------------------------
@router.put("/{comic_id}/rating", response_model=LibraryEntryResponse)
def rate_comic(
    payload: RatingRequest,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    entry = LibraryService(db, clock).set_rating(current_user.id, comic.id, payload.rating, payload.review)
    return _entry_out(entry, clock)


@router.post("/{comic_id}/favorite", response_model=LibraryEntryResponse)
def toggle_favorite(
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    entry = LibraryService(db, clock).toggle_favorite(current_user.id, comic.id)
    return _entry_out(entry, clock)


@router.post("/{comic_id}/reading-time", response_model=LibraryEntryResponse)
def add_reading_time(
    payload: ReadingTimeRequest,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    entry = LibraryService(db, clock).add_reading_time(current_user.id, comic.id, payload.reading_time_seconds)
    return _entry_out(entry, clock)


@router.put("/{comic_id}/completion", response_model=LibraryEntryResponse)
def update_completion(
    payload: CompletionRequest,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    entry = LibraryService(db, clock).update_completion_percentage(
        current_user.id, comic.id, payload.completion_percentage
    )
    return _entry_out(entry, clock)


@router.post("/{comic_id}/sync-token", response_model=LibraryEntryResponse)
def regenerate_sync_token(
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    entry = LibraryService(db, clock).regenerate_sync_token(current_user.id, comic.id)
    return _entry_out(entry, clock)
