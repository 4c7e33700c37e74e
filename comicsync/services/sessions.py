"""Reading session state machine.

Idle --start--> Active --pause--> Active --end--> Idle

Calls that do not fit the current state (pause/end while idle, start while active)
leave everything untouched and return the current snapshot, so flaky clients can
retry freely.
"""
import logging
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import get_settings
from ..core.utils import merge_maps
from ..database import claim_version, run_with_retry
from ..models import ReadingProgress, ReadingSession
from .analytics import AnalyticsAggregator
from .progress import apply_page_position, find_progress, get_or_create_progress

logger = logging.getLogger(__name__)


def _active_session(db: Session, progress: ReadingProgress) -> Optional[ReadingSession]:
    if progress.id is None:
        return None
    return (
        db.query(ReadingSession)
        .filter(ReadingSession.progress_id == progress.id, ReadingSession.is_active.is_(True))
        .order_by(ReadingSession.id.desc())
        .first()
    )


class ReadingSessionManager:
    def __init__(self, db: Session, clock: Clock, aggregator: Optional[AnalyticsAggregator] = None):
        self.db = db
        self.clock = clock
        self.aggregator = aggregator or AnalyticsAggregator()

    # -------------------------------
    # transitions
    # -------------------------------
    def start(self, user_id: int, comic_id: int, metadata: Optional[dict] = None) -> ReadingProgress:
        def _start() -> ReadingProgress:
            now = self.clock.now()
            progress = get_or_create_progress(self.db, user_id, comic_id, now)
            if _active_session(self.db, progress) is not None:
                return progress

            self.db.add(
                ReadingSession(
                    progress=progress,
                    session_key=uuid.uuid4().hex,
                    started_at=now,
                    start_page=progress.current_page,
                    paused_duration_minutes=0,
                    metadata_=dict(metadata or {}),
                    is_active=True,
                )
            )
            if progress.first_read_at is None:
                progress.first_read_at = now
            progress.updated_at = now
            claim_version(self.db, progress)
            logger.info("reading session started user=%s comic=%s", user_id, comic_id)
            return progress

        return run_with_retry(self.db, _start, name="session_start")

    def pause(self, user_id: int, comic_id: int, minutes: int) -> Optional[ReadingProgress]:
        def _pause() -> Optional[ReadingProgress]:
            progress = find_progress(self.db, user_id, comic_id)
            session = _active_session(self.db, progress) if progress is not None else None
            if session is None:
                return progress
            session.paused_duration_minutes = (session.paused_duration_minutes or 0) + max(0, minutes)
            progress.updated_at = self.clock.now()
            claim_version(self.db, progress)
            return progress

        return run_with_retry(self.db, _pause, name="session_pause")

    def end(
        self,
        user_id: int,
        comic_id: int,
        end_page: int,
        metadata: Optional[dict] = None,
    ) -> Optional[ReadingProgress]:
        def _end() -> Optional[ReadingProgress]:
            progress = find_progress(self.db, user_id, comic_id)
            session = _active_session(self.db, progress) if progress is not None else None
            if session is None:
                return progress

            now = self.clock.now()
            page = max(0, end_page)
            wall_minutes = int((now - session.started_at).total_seconds() // 60)

            session.ended_at = now
            session.end_page = page
            session.pages_read = max(0, page - (session.start_page or 0))
            session.duration_minutes = max(0, wall_minutes - (session.paused_duration_minutes or 0))
            if metadata:
                session.metadata_ = merge_maps(session.metadata_, metadata)
            session.is_active = False

            progress.total_reading_sessions = (progress.total_reading_sessions or 0) + 1
            apply_page_position(progress, page, None, now)
            progress.last_read_at = now
            progress.updated_at = now
            self.db.flush()
            self.aggregator.recompute(progress)
            claim_version(self.db, progress)
            logger.info(
                "reading session ended user=%s comic=%s pages=%s minutes=%s",
                user_id,
                comic_id,
                session.pages_read,
                session.duration_minutes,
            )
            return progress

        return run_with_retry(self.db, _end, name="session_end")

    # -------------------------------
    # read-only accessors
    # -------------------------------
    def get_current_session(self, user_id: int, comic_id: int) -> Optional[ReadingSession]:
        progress = find_progress(self.db, user_id, comic_id)
        if progress is None:
            return None
        return _active_session(self.db, progress)

    def has_active_session(self, user_id: int, comic_id: int) -> bool:
        return self.get_current_session(user_id, comic_id) is not None

    def list_sessions(self, user_id: int, comic_id: int, limit: int = 50, offset: int = 0) -> List[ReadingSession]:
        progress = find_progress(self.db, user_id, comic_id)
        if progress is None:
            return []
        limit = max(1, min(limit, get_settings().session_history_max_page))
        return (
            self.db.query(ReadingSession)
            .filter(ReadingSession.progress_id == progress.id)
            .order_by(ReadingSession.id.desc())
            .offset(max(0, offset))
            .limit(limit)
            .all()
        )

    def count_sessions(self, user_id: int, comic_id: int) -> int:
        progress = find_progress(self.db, user_id, comic_id)
        if progress is None:
            return 0
        return self.db.query(ReadingSession).filter(ReadingSession.progress_id == progress.id).count()
