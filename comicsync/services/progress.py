"""Progress update path for ReadingProgress rows.

Page position, percentage and completion are always changed through
:func:`apply_page_position` so that direct updates, session ends and sync merges agree on
when a comic counts as completed.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.utils import clamp, merge_maps
from ..database import claim_version, run_with_retry
from ..models import Comic, ReadingProgress

logger = logging.getLogger(__name__)


def apply_page_position(
    progress: ReadingProgress,
    current_page: int,
    total_pages: Optional[int],
    now: datetime,
) -> None:
    progress.current_page = max(0, current_page)
    if total_pages is not None:
        progress.total_pages = max(0, total_pages)

    if progress.total_pages > 0:
        progress.progress_percentage = clamp(
            progress.current_page / progress.total_pages * 100, 0.0, 100.0
        )
        was_completed = bool(progress.is_completed)
        progress.is_completed = progress.current_page >= progress.total_pages
        if progress.is_completed and not was_completed and progress.completed_at is None:
            progress.completed_at = now


def find_progress(db: Session, user_id: int, comic_id: int) -> Optional[ReadingProgress]:
    return (
        db.query(ReadingProgress)
        .filter(ReadingProgress.user_id == user_id, ReadingProgress.comic_id == comic_id)
        .first()
    )


def get_or_create_progress(db: Session, user_id: int, comic_id: int, now: datetime) -> ReadingProgress:
    progress = find_progress(db, user_id, comic_id)
    if progress:
        return progress
    page_count = db.query(Comic.page_count).filter(Comic.id == comic_id).scalar()
    progress = ReadingProgress(
        user_id=user_id,
        comic_id=comic_id,
        current_page=0,
        total_pages=page_count or 0,
        progress_percentage=0.0,
        is_completed=False,
        reading_preferences={},
        reading_metadata={},
        created_at=now,
        updated_at=now,
    )
    db.add(progress)
    db.flush()
    logger.debug("created progress record user=%s comic=%s", user_id, comic_id)
    return progress


class ProgressTracker:
    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock

    def get(self, user_id: int, comic_id: int) -> Optional[ReadingProgress]:
        return find_progress(self.db, user_id, comic_id)

    def update_progress(
        self,
        user_id: int,
        comic_id: int,
        current_page: int,
        total_pages: Optional[int] = None,
        metadata: Optional[dict] = None,
    ) -> ReadingProgress:
        def _update() -> ReadingProgress:
            now = self.clock.now()
            progress = get_or_create_progress(self.db, user_id, comic_id, now)
            apply_page_position(progress, current_page, total_pages, now)
            if metadata:
                progress.reading_metadata = merge_maps(progress.reading_metadata, metadata)
            progress.last_read_at = now
            progress.updated_at = now
            claim_version(self.db, progress)
            return progress

        return run_with_retry(self.db, _update, name="update_progress")

    def update_reading_preferences(self, user_id: int, comic_id: int, preferences: dict) -> ReadingProgress:
        def _update() -> ReadingProgress:
            now = self.clock.now()
            progress = get_or_create_progress(self.db, user_id, comic_id, now)
            progress.reading_preferences = merge_maps(progress.reading_preferences, preferences)
            progress.updated_at = now
            claim_version(self.db, progress)
            return progress

        return run_with_retry(self.db, _update, name="update_reading_preferences")
