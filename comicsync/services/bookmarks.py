import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..database import claim_version, run_with_retry
from ..models import Bookmark, ReadingProgress
from .progress import get_or_create_progress

logger = logging.getLogger(__name__)


def upsert_bookmark(
    db: Session,
    user_id: int,
    comic_id: int,
    page: int,
    note: Optional[str],
    now: datetime,
) -> Bookmark:
    """Insert the bookmark for a page, or replace the note of the one already there."""
    bookmark = (
        db.query(Bookmark)
        .filter(
            Bookmark.user_id == user_id,
            Bookmark.comic_id == comic_id,
            Bookmark.page_number == page,
        )
        .first()
    )
    if bookmark:
        bookmark.note = note
        bookmark.updated_at = now
        return bookmark
    bookmark = Bookmark(
        user_id=user_id,
        comic_id=comic_id,
        page_number=page,
        note=note,
        created_at=now,
        updated_at=now,
    )
    db.add(bookmark)
    return bookmark


def refresh_bookmark_aggregates(db: Session, user_id: int, comic_id: int, now: datetime) -> ReadingProgress:
    """Recompute the bookmark fields on the progress record from the bookmarks table."""
    db.flush()
    count, latest = (
        db.query(func.count(Bookmark.id), func.max(Bookmark.updated_at))
        .filter(Bookmark.user_id == user_id, Bookmark.comic_id == comic_id)
        .one()
    )
    progress = get_or_create_progress(db, user_id, comic_id, now)
    before = (progress.bookmark_count, progress.is_bookmarked, progress.last_bookmark_at)
    progress.bookmark_count = count or 0
    progress.is_bookmarked = progress.bookmark_count > 0
    progress.last_bookmark_at = latest if progress.bookmark_count else None
    if (progress.bookmark_count, progress.is_bookmarked, progress.last_bookmark_at) != before:
        # other devices find the change through updated_at
        progress.updated_at = max(progress.updated_at, now)
    claim_version(db, progress)
    return progress


class BookmarkStore:
    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock

    def add(self, user_id: int, comic_id: int, page: int, note: Optional[str] = None) -> Bookmark:
        def _add() -> Bookmark:
            now = self.clock.now()
            bookmark = upsert_bookmark(self.db, user_id, comic_id, max(0, page), note, now)
            refresh_bookmark_aggregates(self.db, user_id, comic_id, now)
            return bookmark

        return run_with_retry(self.db, _add, name="bookmark_add")

    def remove(self, user_id: int, comic_id: int, page: int) -> bool:
        def _remove() -> bool:
            deleted = (
                self.db.query(Bookmark)
                .filter(
                    Bookmark.user_id == user_id,
                    Bookmark.comic_id == comic_id,
                    Bookmark.page_number == page,
                )
                .delete(synchronize_session="fetch")
            )
            refresh_bookmark_aggregates(self.db, user_id, comic_id, self.clock.now())
            return deleted > 0

        removed = run_with_retry(self.db, _remove, name="bookmark_remove")
        if removed:
            logger.info("bookmark removed user=%s comic=%s page=%s", user_id, comic_id, page)
        return removed

    def sync_with_progress(self, user_id: int, comic_id: int) -> ReadingProgress:
        return run_with_retry(
            self.db,
            lambda: refresh_bookmark_aggregates(self.db, user_id, comic_id, self.clock.now()),
            name="bookmark_sync_with_progress",
        )

    # -------------------------------
    # queries
    # -------------------------------
    def exists_for_page(self, user_id: int, comic_id: int, page: int) -> bool:
        return (
            self.db.query(Bookmark.id)
            .filter(
                Bookmark.user_id == user_id,
                Bookmark.comic_id == comic_id,
                Bookmark.page_number == page,
            )
            .first()
            is not None
        )

    def count_for_comic(self, user_id: int, comic_id: int) -> int:
        return (
            self.db.query(Bookmark)
            .filter(Bookmark.user_id == user_id, Bookmark.comic_id == comic_id)
            .count()
        )

    def count_for_user(self, user_id: int) -> int:
        return self.db.query(Bookmark).filter(Bookmark.user_id == user_id).count()

    def list_for_comic(self, user_id: int, comic_id: int) -> List[Bookmark]:
        return (
            self.db.query(Bookmark)
            .filter(Bookmark.user_id == user_id, Bookmark.comic_id == comic_id)
            .order_by(Bookmark.page_number.asc())
            .all()
        )
