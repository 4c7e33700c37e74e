from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from comicsync.core.auth import get_comic_or_404, get_current_user
from comicsync.core.clock import Clock, get_clock
from comicsync.database import get_db
from comicsync.models import Comic, User
from comicsync.schemas.bookmark import BookmarkRemoveResponse, BookmarkResponse, BookmarkUpsertRequest
from comicsync.schemas.progress import ProgressResponse
from comicsync.services.bookmarks import BookmarkStore

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


@router.put("/{comic_id}/{page}", response_model=BookmarkResponse)
def upsert_bookmark(
    page: int,
    payload: BookmarkUpsertRequest,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    # same page twice -> note replaced, no duplicate row
    return BookmarkStore(db, clock).add(current_user.id, comic.id, page, payload.note)


@router.delete("/{comic_id}/{page}", response_model=BookmarkRemoveResponse)
def delete_bookmark(
    page: int,
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    removed = BookmarkStore(db, clock).remove(current_user.id, comic.id, page)
    return BookmarkRemoveResponse(removed=removed)


@router.get("/{comic_id}", response_model=list[BookmarkResponse])
def list_bookmarks_for_comic(
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    return BookmarkStore(db, clock).list_for_comic(current_user.id, comic.id)


@router.post("/{comic_id}/sync", response_model=ProgressResponse, summary="Recompute bookmark aggregates")
def sync_bookmarks_with_progress(
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    return BookmarkStore(db, clock).sync_with_progress(current_user.id, comic.id)
