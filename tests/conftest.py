import os
import uuid
from datetime import datetime, timedelta

# keep the app engine off the working directory before anything imports settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from comicsync.core.clock import get_clock
from comicsync.core.security import create_access_token
from comicsync.database import get_db
from comicsync.main import app
from comicsync.models import Base, Comic, User

T0 = datetime(2024, 3, 1, 12, 0, 0)


class ManualClock:
    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def engine():
    # shared in-memory SQLite per test
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def user(db):
    u = User(email=f"reader_{uuid.uuid4().hex[:8]}@example.com", display_name="Reader")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def comic(db):
    c = Comic(title="Night Patrol #1", page_count=100)
    db.add(c)
    db.commit()
    return c


@pytest.fixture
def other_comic(db):
    c = Comic(title="Night Patrol #2", page_count=40)
    db.add(c)
    db.commit()
    return c


@pytest.fixture
def client(session_factory, clock):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
