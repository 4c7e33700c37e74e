import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from comicsync.core.errors import ConcurrencyConflictError, StaleWriteError
from comicsync.database import claim_version, run_with_retry
from comicsync.models import (
    Base,
    Bookmark,
    Comic,
    LibraryEntry,
    ReadingProgress,
    ReadingSession,
    User,
    UserPreferences,
)
from comicsync.services.bookmarks import BookmarkStore
from comicsync.services.library import LibraryService
from comicsync.services.progress import get_or_create_progress
from comicsync.services.sessions import ReadingSessionManager


def test_claim_version_detects_concurrent_write(db, clock, user, comic):
    progress = get_or_create_progress(db, user.id, comic.id, clock.now())
    db.commit()
    assert progress.version == 1

    # another writer bumps the row behind this session's back
    db.execute(text("UPDATE reading_progress SET version = version + 1 WHERE id = :id"), {"id": progress.id})
    progress.current_page = 9
    with pytest.raises(StaleWriteError):
        claim_version(db, progress)
    db.rollback()


def test_claim_version_increments(db, clock, user, comic):
    progress = get_or_create_progress(db, user.id, comic.id, clock.now())
    claim_version(db, progress)
    claim_version(db, progress)
    db.commit()
    assert progress.version == 3


def test_retry_recovers_after_one_conflict(db, clock, user, comic):
    progress_id = get_or_create_progress(db, user.id, comic.id, clock.now()).id
    db.commit()
    calls = []

    def operation():
        calls.append(1)
        row = db.get(ReadingProgress, progress_id)
        if len(calls) == 1:
            db.execute(text("UPDATE reading_progress SET version = version + 1 WHERE id = :id"), {"id": progress_id})
        row.current_page = 42
        claim_version(db, row)
        return row

    row = run_with_retry(db, operation, name="test", backoff_seconds=0)
    assert len(calls) == 2
    assert row.current_page == 42


def test_retry_gives_up_with_conflict_error(db):
    def operation():
        raise StaleWriteError("reading_progress", 1, 1)

    with pytest.raises(ConcurrencyConflictError) as exc:
        run_with_retry(db, operation, name="always_stale", attempts=2, backoff_seconds=0)
    assert exc.value.attempts == 2
    assert exc.value.operation == "always_stale"


def test_other_errors_propagate_without_retry(db):
    calls = []

    def operation():
        calls.append(1)
        raise KeyError("boom")

    with pytest.raises(KeyError):
        run_with_retry(db, operation, name="broken", backoff_seconds=0)
    assert len(calls) == 1


def test_account_deletion_cascades(db, clock, user, comic):
    ReadingSessionManager(db, clock).start(user.id, comic.id)
    BookmarkStore(db, clock).add(user.id, comic.id, 3)
    LibraryService(db, clock).toggle_favorite(user.id, comic.id)
    db.add(UserPreferences(user_id=user.id, preferences={"theme": "dark"}))
    db.commit()

    db.delete(db.get(User, user.id))
    db.commit()

    for model in (ReadingProgress, ReadingSession, Bookmark, LibraryEntry, UserPreferences):
        assert db.query(model).count() == 0


def test_not_null_violation_is_not_retried(db, user, comic):
    calls = []

    def operation():
        calls.append(1)
        db.add(Bookmark(user_id=user.id, comic_id=comic.id, page_number=None))
        db.flush()

    with pytest.raises(IntegrityError):
        run_with_retry(db, operation, name="bad_insert", backoff_seconds=0)
    assert len(calls) == 1


def test_duplicate_insert_race_is_retried(db, clock, user, comic):
    calls = []

    def operation():
        calls.append(1)
        if len(calls) == 1:
            db.add(Bookmark(user_id=user.id, comic_id=comic.id, page_number=1, created_at=clock.now(), updated_at=clock.now()))
            db.add(Bookmark(user_id=user.id, comic_id=comic.id, page_number=1, created_at=clock.now(), updated_at=clock.now()))
            db.flush()
        return len(calls)

    assert run_with_retry(db, operation, name="dup", backoff_seconds=0) == 2


def test_interleaved_pause_and_end_from_two_connections(tmp_path, clock):
    race_engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=race_engine)
    factory = sessionmaker(bind=race_engine, autoflush=False, autocommit=False, future=True)
    first, second = factory(), factory()
    try:
        reader = User(email="race@example.com")
        book = Comic(title="Race", page_count=100)
        first.add_all([reader, book])
        first.commit()
        user_id, comic_id = reader.id, book.id

        ReadingSessionManager(first, clock).start(user_id, comic_id)
        # first connection now holds the record and open session as of version N
        assert ReadingSessionManager(first, clock).get_current_session(user_id, comic_id).paused_duration_minutes == 0

        clock.advance(minutes=10)
        ReadingSessionManager(second, clock).pause(user_id, comic_id, 5)

        clock.advance(minutes=10)
        progress = ReadingSessionManager(first, clock).end(user_id, comic_id, 30)
        # a late end from the other device finds no open session
        ReadingSessionManager(second, clock).end(user_id, comic_id, 10)

        check = factory()
        closed = check.query(ReadingSession).filter(ReadingSession.ended_at.isnot(None)).all()
        assert len(closed) == 1
        assert check.query(ReadingSession).filter(ReadingSession.is_active.is_(True)).count() == 0
        assert closed[0].paused_duration_minutes == 5
        assert closed[0].duration_minutes == 15
        assert check.query(ReadingProgress).one().current_page == 30
        assert progress.total_reading_sessions == 1
        check.close()
    finally:
        first.close()
        second.close()
        race_engine.dispose()
