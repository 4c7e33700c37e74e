"""Read-only aggregations consumed by dashboard and achievement collaborators.

The key sets returned here are a stable contract; add keys, never rename them.
"""
from typing import Any, Dict

from sqlalchemy.orm import Session

from ..models import Bookmark, ReadingProgress, ReadingSession


def _empty_comic_statistics() -> Dict[str, Any]:
    return {
        "total_sessions": 0,
        "total_reading_time_minutes": 0,
        "average_session_duration": 0.0,
        "pages_per_session_avg": 0.0,
        "reading_speed_pages_per_minute": 0.0,
        "total_time_paused_minutes": 0,
        "bookmark_count": 0,
        "progress_percentage": 0.0,
        "is_completed": False,
        "first_read_at": None,
        "last_read_at": None,
        "last_bookmark_at": None,
        "completed_sessions": 0,
        "active_sessions": 0,
    }


def get_reading_statistics(db: Session, user_id: int, comic_id: int) -> Dict[str, Any]:
    progress = (
        db.query(ReadingProgress)
        .filter(ReadingProgress.user_id == user_id, ReadingProgress.comic_id == comic_id)
        .first()
    )
    if progress is None:
        return _empty_comic_statistics()

    active = (
        db.query(ReadingSession)
        .filter(ReadingSession.progress_id == progress.id, ReadingSession.is_active.is_(True))
        .count()
    )
    completed = (
        db.query(ReadingSession)
        .filter(ReadingSession.progress_id == progress.id, ReadingSession.ended_at.isnot(None))
        .count()
    )
    return {
        "total_sessions": progress.total_reading_sessions,
        "total_reading_time_minutes": progress.reading_time_minutes,
        "average_session_duration": round(progress.average_session_duration, 2),
        "pages_per_session_avg": round(progress.pages_per_session_avg, 2),
        "reading_speed_pages_per_minute": round(progress.reading_speed_pages_per_minute, 2),
        "total_time_paused_minutes": progress.total_time_paused_minutes,
        "bookmark_count": progress.bookmark_count,
        "progress_percentage": round(progress.progress_percentage, 2),
        "is_completed": progress.is_completed,
        "first_read_at": progress.first_read_at,
        "last_read_at": progress.last_read_at,
        "last_bookmark_at": progress.last_bookmark_at,
        "completed_sessions": completed,
        "active_sessions": active,
    }


def get_user_reading_statistics(db: Session, user_id: int) -> Dict[str, Any]:
    records = db.query(ReadingProgress).filter(ReadingProgress.user_id == user_id).all()

    started = len(records)
    completed = sum(1 for r in records if r.is_completed)
    total_sessions = sum(r.total_reading_sessions or 0 for r in records)
    with_speed = [r.reading_speed_pages_per_minute for r in records if (r.reading_speed_pages_per_minute or 0) > 0]

    average_session_duration = (
        sum(r.average_session_duration or 0 for r in records) / started
        if started and total_sessions
        else 0.0
    )
    total_bookmarks = db.query(Bookmark).filter(Bookmark.user_id == user_id).count()

    return {
        "total_comics_started": started,
        "total_comics_completed": completed,
        "completion_rate": (completed / started * 100) if started else 0.0,
        "total_reading_time_minutes": sum(r.reading_time_minutes or 0 for r in records),
        "total_reading_sessions": total_sessions,
        "average_session_duration": round(average_session_duration, 2),
        "average_reading_speed_pages_per_minute": round(sum(with_speed) / len(with_speed), 2) if with_speed else 0.0,
        "total_bookmarks": total_bookmarks,
        "total_pages_read": sum(r.current_page or 0 for r in records),
        "average_progress_percentage": round(
            sum(r.progress_percentage or 0 for r in records) / started, 2
        ) if started else 0.0,
    }
