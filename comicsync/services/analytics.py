from dataclasses import dataclass
from typing import Iterable

from ..models import ReadingProgress, ReadingSession


@dataclass(frozen=True)
class SessionAnalytics:
    completed_sessions: int = 0
    reading_time_minutes: int = 0
    average_session_duration: float = 0.0
    pages_per_session_avg: float = 0.0
    reading_speed_pages_per_minute: float = 0.0
    total_time_paused_minutes: int = 0


def summarize_sessions(sessions: Iterable[ReadingSession]) -> SessionAnalytics:
    """Aggregate over ended sessions only; open sessions do not count yet."""
    ended = [s for s in sessions if s.ended_at is not None]
    if not ended:
        return SessionAnalytics()

    total_duration = sum(s.duration_minutes or 0 for s in ended)
    total_pages = sum(s.pages_read or 0 for s in ended)
    total_paused = sum(s.paused_duration_minutes or 0 for s in ended)

    return SessionAnalytics(
        completed_sessions=len(ended),
        reading_time_minutes=total_duration,
        average_session_duration=total_duration / len(ended),
        pages_per_session_avg=total_pages / len(ended),
        reading_speed_pages_per_minute=(total_pages / total_duration) if total_duration > 0 else 0.0,
        total_time_paused_minutes=total_paused,
    )


class AnalyticsAggregator:
    """Writes session-log analytics onto a progress record.

    Safe to run at any time: the numbers are a pure function of the session log.
    """

    def recompute(self, progress: ReadingProgress) -> SessionAnalytics:
        stats = summarize_sessions(progress.sessions)
        progress.total_reading_sessions = stats.completed_sessions
        progress.reading_time_minutes = stats.reading_time_minutes
        progress.average_session_duration = stats.average_session_duration
        progress.pages_per_session_avg = stats.pages_per_session_avg
        progress.reading_speed_pages_per_minute = stats.reading_speed_pages_per_minute
        progress.total_time_paused_minutes = stats.total_time_paused_minutes
        return stats
