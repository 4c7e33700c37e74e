import hashlib
import logging
import secrets
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.errors import InvalidRatingError
from ..core.utils import clamp
from ..database import claim_version, run_with_retry
from ..models import AccessType, LibraryEntry

logger = logging.getLogger(__name__)


def find_entry(db: Session, user_id: int, comic_id: int) -> Optional[LibraryEntry]:
    return (
        db.query(LibraryEntry)
        .filter(LibraryEntry.user_id == user_id, LibraryEntry.comic_id == comic_id)
        .first()
    )


def get_or_create_entry(
    db: Session,
    user_id: int,
    comic_id: int,
    now: datetime,
    access_type: AccessType = AccessType.FREE,
) -> LibraryEntry:
    entry = find_entry(db, user_id, comic_id)
    if entry:
        return entry
    entry = LibraryEntry(
        user_id=user_id,
        comic_id=comic_id,
        access_type=access_type,
        is_favorite=False,
        total_reading_time=0,
        completion_percentage=0.0,
        created_at=now,
        updated_at=now,
    )
    db.add(entry)
    db.flush()
    return entry


def has_access(entry: LibraryEntry, now: datetime) -> bool:
    if entry.access_type == AccessType.FREE:
        return True
    if entry.access_type == AccessType.PURCHASED:
        return entry.purchased_at is not None
    if entry.access_type == AccessType.SUBSCRIPTION:
        return entry.access_expires_at is None or entry.access_expires_at > now
    return False


def make_sync_token(*parts: object) -> str:
    """64 hex chars; unique per call thanks to the random salt."""
    seed = ":".join(str(p) for p in parts) + ":" + secrets.token_hex(16)
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


class LibraryService:
    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock

    def list_entries(self, user_id: int, favorites_only: bool = False) -> List[LibraryEntry]:
        query = self.db.query(LibraryEntry).filter(LibraryEntry.user_id == user_id)
        if favorites_only:
            query = query.filter(LibraryEntry.is_favorite.is_(True))
        return query.order_by(LibraryEntry.last_accessed_at.desc(), LibraryEntry.id.desc()).all()

    def add(self, user_id: int, comic_id: int, access_type: AccessType = AccessType.FREE) -> LibraryEntry:
        return run_with_retry(
            self.db,
            lambda: get_or_create_entry(self.db, user_id, comic_id, self.clock.now(), access_type),
            name="library_add",
        )

    def _mutate(self, user_id: int, comic_id: int, name: str, change) -> LibraryEntry:
        def _run() -> LibraryEntry:
            now = self.clock.now()
            entry = get_or_create_entry(self.db, user_id, comic_id, now)
            change(entry, now)
            entry.updated_at = now
            claim_version(self.db, entry)
            return entry

        return run_with_retry(self.db, _run, name=name)

    def set_rating(self, user_id: int, comic_id: int, rating: int, review: Optional[str] = None) -> LibraryEntry:
        if not 1 <= rating <= 5:
            raise InvalidRatingError(rating)

        def change(entry: LibraryEntry, now: datetime) -> None:
            entry.rating = rating
            entry.review = review

        return self._mutate(user_id, comic_id, "library_set_rating", change)

    def toggle_favorite(self, user_id: int, comic_id: int) -> LibraryEntry:
        def change(entry: LibraryEntry, now: datetime) -> None:
            entry.is_favorite = not entry.is_favorite

        return self._mutate(user_id, comic_id, "library_toggle_favorite", change)

    def add_reading_time(self, user_id: int, comic_id: int, seconds: int) -> LibraryEntry:
        def change(entry: LibraryEntry, now: datetime) -> None:
            entry.total_reading_time = (entry.total_reading_time or 0) + max(0, seconds)
            entry.last_accessed_at = now

        return self._mutate(user_id, comic_id, "library_add_reading_time", change)

    def update_completion_percentage(self, user_id: int, comic_id: int, percentage: float) -> LibraryEntry:
        def change(entry: LibraryEntry, now: datetime) -> None:
            entry.completion_percentage = clamp(percentage, 0.0, 100.0)
            entry.last_accessed_at = now

        return self._mutate(user_id, comic_id, "library_update_completion", change)

    def regenerate_sync_token(self, user_id: int, comic_id: int) -> LibraryEntry:
        def change(entry: LibraryEntry, now: datetime) -> None:
            entry.device_sync_token = make_sync_token(user_id, comic_id, now.isoformat())

        return self._mutate(user_id, comic_id, "library_regenerate_token", change)
