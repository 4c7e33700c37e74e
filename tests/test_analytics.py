from datetime import datetime

import pytest

from comicsync.models import ReadingProgress, ReadingSession
from comicsync.services.analytics import AnalyticsAggregator, summarize_sessions
from comicsync.services.progress import ProgressTracker
from comicsync.services.sessions import ReadingSessionManager
from comicsync.services.statistics import get_reading_statistics, get_user_reading_statistics


def _ended(pages, minutes, paused=0):
    return ReadingSession(
        started_at=datetime(2024, 1, 1),
        ended_at=datetime(2024, 1, 1, 1),
        pages_read=pages,
        duration_minutes=minutes,
        paused_duration_minutes=paused,
        is_active=False,
    )


def test_summary_over_ended_sessions_only():
    open_session = ReadingSession(started_at=datetime(2024, 1, 2), pages_read=0, duration_minutes=0, is_active=True)
    stats = summarize_sessions([_ended(20, 10, 2), _ended(10, 20, 3), open_session])

    assert stats.completed_sessions == 2
    assert stats.reading_time_minutes == 30
    assert stats.average_session_duration == 15.0
    assert stats.pages_per_session_avg == 15.0
    assert stats.reading_speed_pages_per_minute == 1.0
    assert stats.total_time_paused_minutes == 5


def test_summary_of_empty_log_is_zero():
    stats = summarize_sessions([])
    assert stats.completed_sessions == 0
    assert stats.reading_speed_pages_per_minute == 0.0


def test_zero_duration_gives_zero_speed():
    assert summarize_sessions([_ended(12, 0)]).reading_speed_pages_per_minute == 0.0


def test_recompute_is_pure_function_of_log():
    progress = ReadingProgress(sessions=[_ended(20, 10), _ended(10, 20)])
    aggregator = AnalyticsAggregator()
    aggregator.recompute(progress)
    first = (progress.reading_time_minutes, progress.average_session_duration)
    aggregator.recompute(progress)
    assert (progress.reading_time_minutes, progress.average_session_duration) == first
    assert progress.total_reading_sessions == 2


def test_comic_statistics_empty(db, user, comic):
    stats = get_reading_statistics(db, user.id, comic.id)
    assert stats["total_sessions"] == 0
    assert stats["first_read_at"] is None
    assert stats["active_sessions"] == 0


def test_comic_and_user_statistics(db, clock, user, comic, other_comic):
    manager = ReadingSessionManager(db, clock)
    manager.start(user.id, comic.id)
    clock.advance(minutes=20)
    manager.end(user.id, comic.id, 100)
    manager.start(user.id, comic.id)

    ProgressTracker(db, clock).update_progress(user.id, other_comic.id, 10)

    stats = get_reading_statistics(db, user.id, comic.id)
    assert stats["total_sessions"] == 1
    assert stats["completed_sessions"] == 1
    assert stats["active_sessions"] == 1
    assert stats["total_reading_time_minutes"] == 20
    assert stats["reading_speed_pages_per_minute"] == 5.0
    assert stats["is_completed"] is True

    totals = get_user_reading_statistics(db, user.id)
    assert totals["total_comics_started"] == 2
    assert totals["total_comics_completed"] == 1
    assert totals["completion_rate"] == 50.0
    assert totals["total_pages_read"] == 110
    assert totals["average_progress_percentage"] == pytest.approx(62.5)


def test_statistics_endpoints(client, auth_headers, comic):
    r = client.get(f"/statistics/comics/{comic.id}", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["total_sessions"] == 0

    r = client.get("/statistics/user", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["total_comics_started"] == 0
