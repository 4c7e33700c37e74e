import pytest
from sqlalchemy.exc import IntegrityError

from comicsync.models import ReadingSession
from comicsync.services.progress import ProgressTracker, get_or_create_progress
from comicsync.services.sessions import ReadingSessionManager


def test_start_is_idempotent(db, clock, user, comic):
    manager = ReadingSessionManager(db, clock)
    manager.start(user.id, comic.id, {"device": "phone"})
    first = manager.get_current_session(user.id, comic.id)
    started_at, key = first.started_at, first.session_key

    clock.advance(minutes=3)
    manager.start(user.id, comic.id, {"device": "tablet"})
    again = manager.get_current_session(user.id, comic.id)

    assert again.session_key == key
    assert again.started_at == started_at
    assert again.metadata_ == {"device": "phone"}
    assert db.query(ReadingSession).count() == 1


def test_start_sets_first_read_at_once(db, clock, user, comic):
    manager = ReadingSessionManager(db, clock)
    t0 = clock.now()
    manager.start(user.id, comic.id)
    clock.advance(minutes=10)
    manager.end(user.id, comic.id, 5)
    clock.advance(days=1)
    progress = manager.start(user.id, comic.id)
    assert progress.first_read_at == t0


def test_pause_and_end_without_session_are_noops(db, clock, user, comic):
    manager = ReadingSessionManager(db, clock)
    assert manager.pause(user.id, comic.id, 5) is None
    assert manager.end(user.id, comic.id, 10) is None
    assert ProgressTracker(db, clock).get(user.id, comic.id) is None

    before = ProgressTracker(db, clock).update_progress(user.id, comic.id, 7)
    version = before.version
    progress = manager.end(user.id, comic.id, 50)
    assert progress.current_page == 7
    assert progress.total_reading_sessions == 0
    assert progress.version == version


def test_negative_pause_is_clamped(db, clock, user, comic):
    manager = ReadingSessionManager(db, clock)
    manager.start(user.id, comic.id)
    manager.pause(user.id, comic.id, -4)
    assert manager.get_current_session(user.id, comic.id).paused_duration_minutes == 0


def test_full_session_scenario(db, clock, user, comic):
    ProgressTracker(db, clock).update_progress(user.id, comic.id, 1)
    manager = ReadingSessionManager(db, clock)

    manager.start(user.id, comic.id)
    clock.advance(minutes=12)
    manager.pause(user.id, comic.id, 5)
    clock.advance(minutes=23)
    progress = manager.end(user.id, comic.id, 30)

    session = manager.list_sessions(user.id, comic.id)[0]
    assert session.pages_read == 29
    assert session.duration_minutes == 30
    assert session.paused_duration_minutes == 5
    assert session.is_active is False

    assert progress.current_page == 30
    assert progress.progress_percentage == 30.0
    assert progress.is_completed is False
    assert progress.total_reading_sessions == 1
    assert progress.reading_time_minutes == 30
    assert progress.total_time_paused_minutes == 5
    assert progress.reading_speed_pages_per_minute == pytest.approx(29 / 30)
    assert manager.has_active_session(user.id, comic.id) is False


def test_pages_read_never_negative(db, clock, user, comic):
    ProgressTracker(db, clock).update_progress(user.id, comic.id, 40)
    manager = ReadingSessionManager(db, clock)
    manager.start(user.id, comic.id)
    clock.advance(minutes=5)
    progress = manager.end(user.id, comic.id, 20)
    session = manager.list_sessions(user.id, comic.id)[0]
    assert session.pages_read == 0
    assert progress.current_page == 20


def test_pause_longer_than_wall_time_gives_zero_duration(db, clock, user, comic):
    manager = ReadingSessionManager(db, clock)
    manager.start(user.id, comic.id)
    manager.pause(user.id, comic.id, 60)
    clock.advance(minutes=10)
    manager.end(user.id, comic.id, 3)
    assert manager.list_sessions(user.id, comic.id)[0].duration_minutes == 0


def test_ending_on_last_page_completes(db, clock, user, comic):
    manager = ReadingSessionManager(db, clock)
    manager.start(user.id, comic.id)
    clock.advance(minutes=40)
    progress = manager.end(user.id, comic.id, 100)
    assert progress.is_completed is True
    assert progress.completed_at == clock.now()


def test_list_sessions_newest_first_and_paginated(db, clock, user, comic):
    manager = ReadingSessionManager(db, clock)
    for page in (10, 20, 30):
        manager.start(user.id, comic.id)
        clock.advance(minutes=5)
        manager.end(user.id, comic.id, page)

    sessions = manager.list_sessions(user.id, comic.id)
    assert [s.end_page for s in sessions] == [30, 20, 10]
    assert [s.end_page for s in manager.list_sessions(user.id, comic.id, limit=1, offset=1)] == [20]


def test_one_active_session_per_record_enforced_by_schema(db, clock, user, comic):
    progress = get_or_create_progress(db, user.id, comic.id, clock.now())
    db.add(ReadingSession(progress_id=progress.id, session_key="a" * 32, started_at=clock.now(), is_active=True))
    db.add(ReadingSession(progress_id=progress.id, session_key="b" * 32, started_at=clock.now(), is_active=True))
    with pytest.raises(IntegrityError):
        db.flush()
    db.rollback()


def test_reading_endpoints(client, auth_headers, comic, clock):
    r = client.post(f"/reading/{comic.id}/start", json={"metadata": {"device": "web"}}, headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["has_active_session"] is True
    assert body["current_session"]["metadata"] == {"device": "web"}

    clock.advance(minutes=8)
    r = client.post(f"/reading/{comic.id}/pause", json={"minutes": 2}, headers=auth_headers)
    assert r.json()["current_session"]["paused_duration_minutes"] == 2

    clock.advance(minutes=2)
    r = client.post(f"/reading/{comic.id}/end", json={"end_page": 12}, headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["has_active_session"] is False
    assert body["progress"]["current_page"] == 12
    assert body["progress"]["reading_time_minutes"] == 8

    r = client.get(f"/reading/{comic.id}/sessions", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["total"] == 1
    assert r.json()["items"][0]["duration_minutes"] == 8


def test_reading_end_while_idle_returns_empty_snapshot(client, auth_headers, comic):
    r = client.post(f"/reading/{comic.id}/end", json={"end_page": 12}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["progress"] is None


def test_pause_rejects_negative_minutes_at_the_edge(client, auth_headers, comic):
    r = client.post(f"/reading/{comic.id}/pause", json={"minutes": -1}, headers=auth_headers)
    assert r.status_code == 422
    assert r.json()["detail"] == "Validation Error"


def test_session_history_total_counts_whole_log(client, auth_headers, comic, clock):
    for page in (5, 9):
        client.post(f"/reading/{comic.id}/start", json={}, headers=auth_headers)
        clock.advance(minutes=3)
        client.post(f"/reading/{comic.id}/end", json={"end_page": page}, headers=auth_headers)

    r = client.get(f"/reading/{comic.id}/sessions", params={"limit": 1}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["total"] == 2
    assert [s["end_page"] for s in r.json()["items"]] == [9]
