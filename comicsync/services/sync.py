"""Multi-device library synchronisation.

A device uploads everything it changed locally since its last successful sync. Each
entity kind is merged against server state with its own rule:

* library entries and preferences: strict last-write-wins on ``updated_at``
* progress: last-write-wins for every field except ``current_page``, which only ever
  moves forward (a lagging device must not roll a reader back)
* bookmarks: upsert per (comic, page), an existing row is rewritten only by a newer delta

Client ``updated_at`` values are used purely as an ordering hint. A delta that loses a
comparison is dropped silently; the only trace is that it is not counted. Applied deltas
store the client's ``updated_at`` so replaying the same batch changes nothing.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.utils import clamp, merge_maps, to_utc_naive
from ..database import claim_version, run_with_retry
from ..models import Bookmark, Comic, LibraryEntry, ReadingProgress, UserPreferences
from ..schemas.sync import BookmarkDelta, LibraryDelta, PreferenceDelta, ProgressDelta, SyncRequest
from .bookmarks import refresh_bookmark_aggregates, upsert_bookmark
from .library import find_entry, get_or_create_entry, make_sync_token
from .progress import apply_page_position, find_progress, get_or_create_progress

logger = logging.getLogger(__name__)

LIBRARY_SYNC_FIELDS = (
    "access_type",
    "is_favorite",
    "rating",
    "review",
    "total_reading_time",
    "completion_percentage",
    "last_accessed_at",
)


@dataclass
class ServerChanges:
    library: List[LibraryEntry] = field(default_factory=list)
    progress: List[ReadingProgress] = field(default_factory=list)
    bookmarks: List[Bookmark] = field(default_factory=list)
    preferences: Optional[UserPreferences] = None


@dataclass
class SyncResult:
    library_updates: int = 0
    progress_updates: int = 0
    bookmark_updates: int = 0
    preference_updates: int = 0
    sync_token: str = ""
    synced_at: Optional[datetime] = None
    server_changes: Optional[ServerChanges] = None


class SyncReconciler:
    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock

    # -------------------------------
    # entry points
    # -------------------------------
    def reconcile(self, user_id: int, request: SyncRequest) -> SyncResult:
        """Apply one device batch atomically and return what changed."""

        def _apply() -> SyncResult:
            now = self.clock.now()
            known = self._known_comics(
                [d.comic_id for d in request.library]
                + [d.comic_id for d in request.progress]
                + [d.comic_id for d in request.bookmarks]
            )
            return SyncResult(
                library_updates=self._sync_library(user_id, request.library, known, now),
                progress_updates=self._sync_progress(user_id, request.progress, known, now),
                bookmark_updates=self._sync_bookmarks(user_id, request.bookmarks, known, now),
                preference_updates=self._sync_preferences(user_id, request.preferences),
                synced_at=now,
            )

        try:
            result = run_with_retry(self.db, _apply, name="library_sync")
        except Exception:
            logger.exception("library sync failed", extra={"user_id": user_id, "device_id": request.device_id})
            raise

        result.sync_token = self.generate_sync_token(user_id, request.device_id)
        if request.last_sync_at is not None:
            result.server_changes = self.changes_since(user_id, request.last_sync_at)

        logger.info(
            "library sync completed",
            extra={
                "user_id": user_id,
                "device_id": request.device_id,
                "library_updates": result.library_updates,
                "progress_updates": result.progress_updates,
                "bookmark_updates": result.bookmark_updates,
                "preference_updates": result.preference_updates,
            },
        )
        return result

    def needs_sync(self, user_id: int, since: Optional[datetime]) -> bool:
        if since is None:
            return True
        since = to_utc_naive(since)
        for model in (LibraryEntry, ReadingProgress, Bookmark, UserPreferences):
            hit = (
                self.db.query(model.id)
                .filter(model.user_id == user_id, model.updated_at > since)
                .first()
            )
            if hit is not None:
                return True
        return False

    def changes_since(self, user_id: int, since: Optional[datetime]) -> ServerChanges:
        since = to_utc_naive(since)

        def _rows(model):
            query = self.db.query(model).filter(model.user_id == user_id)
            if since is not None:
                query = query.filter(model.updated_at > since)
            return query.order_by(model.updated_at.asc(), model.id.asc()).all()

        preferences = _rows(UserPreferences)
        return ServerChanges(
            library=_rows(LibraryEntry),
            progress=_rows(ReadingProgress),
            bookmarks=_rows(Bookmark),
            preferences=preferences[0] if preferences else None,
        )

    def generate_sync_token(self, user_id: int, device_id: str) -> str:
        return make_sync_token(user_id, device_id, self.clock.now().isoformat())

    # -------------------------------
    # per-kind merges
    # -------------------------------
    def _known_comics(self, comic_ids: Iterable[int]) -> Set[int]:
        ids = set(comic_ids)
        if not ids:
            return set()
        return {row[0] for row in self.db.query(Comic.id).filter(Comic.id.in_(ids)).all()}

    def _sync_library(self, user_id: int, deltas: List[LibraryDelta], known: Set[int], now: datetime) -> int:
        applied = 0
        for delta in deltas:
            if delta.comic_id not in known:
                logger.warning("sync skipped library delta for unknown comic %s", delta.comic_id)
                continue
            incoming_at = to_utc_naive(delta.updated_at)
            entry = find_entry(self.db, user_id, delta.comic_id)
            if entry is None:
                entry = get_or_create_entry(self.db, user_id, delta.comic_id, now)
            elif incoming_at <= entry.updated_at:
                continue

            fields = delta.model_dump(exclude_unset=True)
            for name in LIBRARY_SYNC_FIELDS:
                if name not in fields:
                    continue
                value = fields[name]
                if value is None and not LibraryEntry.__table__.c[name].nullable:
                    # non-nullable columns keep their value on an explicit null
                    continue
                if name == "completion_percentage":
                    value = clamp(value, 0.0, 100.0)
                elif name == "last_accessed_at":
                    value = to_utc_naive(value)
                setattr(entry, name, value)
            entry.updated_at = incoming_at
            claim_version(self.db, entry)
            applied += 1
        return applied

    def _sync_progress(self, user_id: int, deltas: List[ProgressDelta], known: Set[int], now: datetime) -> int:
        applied = 0
        for delta in deltas:
            if delta.comic_id not in known:
                logger.warning("sync skipped progress delta for unknown comic %s", delta.comic_id)
                continue
            incoming_at = to_utc_naive(delta.updated_at)
            progress = find_progress(self.db, user_id, delta.comic_id)
            created = progress is None
            if created:
                progress = get_or_create_progress(self.db, user_id, delta.comic_id, now)

            newer = created or incoming_at > progress.updated_at
            page = max(progress.current_page, max(0, delta.current_page))
            advanced = page > progress.current_page
            if not newer and not advanced:
                continue

            apply_page_position(progress, page, delta.total_pages if newer else None, now)
            if newer:
                if delta.last_read_at is not None:
                    progress.last_read_at = to_utc_naive(delta.last_read_at)
                if delta.reading_preferences:
                    progress.reading_preferences = merge_maps(
                        progress.reading_preferences, delta.reading_preferences
                    )
                progress.updated_at = incoming_at
            else:
                # stale delta that only moved the page forward
                progress.updated_at = max(progress.updated_at, now)
            claim_version(self.db, progress)
            applied += 1
        return applied

    def _sync_bookmarks(self, user_id: int, deltas: List[BookmarkDelta], known: Set[int], now: datetime) -> int:
        applied = 0
        affected: Set[int] = set()
        for delta in deltas:
            if delta.comic_id not in known:
                logger.warning("sync skipped bookmark delta for unknown comic %s", delta.comic_id)
                continue
            affected.add(delta.comic_id)
            incoming_at = to_utc_naive(delta.updated_at)
            existing = (
                self.db.query(Bookmark)
                .filter(
                    Bookmark.user_id == user_id,
                    Bookmark.comic_id == delta.comic_id,
                    Bookmark.page_number == delta.page_number,
                )
                .first()
            )
            if existing is not None and incoming_at <= existing.updated_at:
                continue
            upsert_bookmark(self.db, user_id, delta.comic_id, delta.page_number, delta.note, incoming_at)
            self.db.flush()
            applied += 1

        for comic_id in sorted(affected):
            refresh_bookmark_aggregates(self.db, user_id, comic_id, now)
        return applied

    def _sync_preferences(self, user_id: int, delta: Optional[PreferenceDelta]) -> int:
        if delta is None:
            return 0
        incoming_at = to_utc_naive(delta.updated_at)
        prefs = self.db.query(UserPreferences).filter(UserPreferences.user_id == user_id).first()
        if prefs is None:
            self.db.add(
                UserPreferences(
                    user_id=user_id,
                    preferences=dict(delta.values),
                    updated_at=incoming_at,
                )
            )
            self.db.flush()
            return 1
        if incoming_at <= prefs.updated_at:
            return 0
        prefs.preferences = merge_maps(prefs.preferences, delta.values)
        prefs.updated_at = incoming_at
        claim_version(self.db, prefs)
        return 1
