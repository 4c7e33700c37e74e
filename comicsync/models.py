import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .core.clock import SystemClock

Base = declarative_base()

_clock = SystemClock()


def _now():
    return _clock.now()


# =========================
# Enums
# =========================


class AccessType(str, enum.Enum):
    FREE = "free"
    PURCHASED = "purchased"
    SUBSCRIPTION = "subscription"


# =========================
# User / Comic (opaque collaborators)
# =========================


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=_now)

    # account deletion removes all reading state
    progress_records = relationship(
        "ReadingProgress",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    library_entries = relationship(
        "LibraryEntry",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    bookmarks = relationship(
        "Bookmark",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    preferences = relationship(
        "UserPreferences",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )


class Comic(Base):
    __tablename__ = "comics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    # used to default ReadingProgress.total_pages
    page_count = Column(Integer, nullable=True)


# =========================
# ReadingProgress (per user+comic state)
# =========================


class ReadingProgress(Base):
    __tablename__ = "reading_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    comic_id = Column(Integer, ForeignKey("comics.id", ondelete="CASCADE"), nullable=False)

    current_page = Column(Integer, nullable=False, default=0)
    total_pages = Column(Integer, nullable=False, default=0)
    progress_percentage = Column(Float, nullable=False, default=0.0)
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)  # set once, never overwritten

    first_read_at = Column(DateTime, nullable=True)
    last_read_at = Column(DateTime, nullable=True)

    # session analytics, recomputed from reading_sessions
    total_reading_sessions = Column(Integer, nullable=False, default=0)
    reading_time_minutes = Column(Integer, nullable=False, default=0)
    average_session_duration = Column(Float, nullable=False, default=0.0)
    pages_per_session_avg = Column(Float, nullable=False, default=0.0)
    reading_speed_pages_per_minute = Column(Float, nullable=False, default=0.0)
    total_time_paused_minutes = Column(Integer, nullable=False, default=0)

    # derived from the bookmarks table, see BookmarkStore.sync_with_progress
    bookmark_count = Column(Integer, nullable=False, default=0)
    is_bookmarked = Column(Boolean, nullable=False, default=False)
    last_bookmark_at = Column(DateTime, nullable=True)

    # zoom / mode / colour etc., merged on update
    reading_preferences = Column(JSON, nullable=True)
    reading_metadata = Column(JSON, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now)

    user = relationship("User", back_populates="progress_records")
    comic = relationship("Comic")
    sessions = relationship(
        "ReadingSession",
        back_populates="progress",
        cascade="all, delete-orphan",
        order_by="ReadingSession.id",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "comic_id", name="uq_progress_user_comic"),
    )


class ReadingSession(Base):
    __tablename__ = "reading_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    progress_id = Column(
        Integer,
        ForeignKey("reading_progress.id", ondelete="CASCADE"),
        nullable=False,
    )
    session_key = Column(String(32), nullable=False)

    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    start_page = Column(Integer, nullable=False, default=0)
    end_page = Column(Integer, nullable=True)
    pages_read = Column(Integer, nullable=False, default=0)
    duration_minutes = Column(Integer, nullable=False, default=0)
    paused_duration_minutes = Column(Integer, nullable=False, default=0)
    metadata_ = Column("metadata", JSON, nullable=True)  # device, app version ...
    is_active = Column(Boolean, nullable=False, default=True)

    progress = relationship("ReadingProgress", back_populates="sessions")

    __table_args__ = (
        UniqueConstraint("progress_id", "session_key", name="uq_session_progress_key"),
        # at most one open session per progress record
        Index(
            "uq_session_one_active",
            "progress_id",
            unique=True,
            sqlite_where=is_active.is_(True),
            postgresql_where=is_active.is_(True),
        ),
    )


# =========================
# Bookmark
# =========================


class Bookmark(Base):
    __tablename__ = "bookmarks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    comic_id = Column(Integer, ForeignKey("comics.id", ondelete="CASCADE"), nullable=False)
    page_number = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now)

    user = relationship("User", back_populates="bookmarks")

    __table_args__ = (
        UniqueConstraint("user_id", "comic_id", "page_number", name="uq_bookmark_user_comic_page"),
    )


# =========================
# LibraryEntry
# =========================


class LibraryEntry(Base):
    __tablename__ = "library_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    comic_id = Column(Integer, ForeignKey("comics.id", ondelete="CASCADE"), nullable=False)

    access_type = Column(Enum(AccessType), nullable=False, default=AccessType.FREE)
    purchase_price = Column(Numeric(10, 2), nullable=True)
    purchased_at = Column(DateTime, nullable=True)
    access_expires_at = Column(DateTime, nullable=True)

    is_favorite = Column(Boolean, nullable=False, default=False)
    rating = Column(Integer, nullable=True)  # 1..5
    review = Column(Text, nullable=True)

    # seconds; coarser than ReadingProgress.reading_time_minutes
    total_reading_time = Column(Integer, nullable=False, default=0)
    completion_percentage = Column(Float, nullable=False, default=0.0)
    last_accessed_at = Column(DateTime, nullable=True)
    device_sync_token = Column(String(64), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now)

    user = relationship("User", back_populates="library_entries")
    comic = relationship("Comic")

    __table_args__ = (
        UniqueConstraint("user_id", "comic_id", name="uq_library_user_comic"),
    )


# =========================
# UserPreferences (synced map)
# =========================


class UserPreferences(Base):
    __tablename__ = "user_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    preferences = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=_now)

    user = relationship("User", back_populates="preferences")
