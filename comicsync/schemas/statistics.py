from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ComicReadingStatistics(BaseModel):
    total_sessions: int
    total_reading_time_minutes: int
    average_session_duration: float
    pages_per_session_avg: float
    reading_speed_pages_per_minute: float
    total_time_paused_minutes: int
    bookmark_count: int
    progress_percentage: float
    is_completed: bool
    first_read_at: Optional[datetime] = None
    last_read_at: Optional[datetime] = None
    last_bookmark_at: Optional[datetime] = None
    completed_sessions: int
    active_sessions: int


class UserReadingStatistics(BaseModel):
    total_comics_started: int
    total_comics_completed: int
    completion_rate: float
    total_reading_time_minutes: int
    total_reading_sessions: int
    average_session_duration: float
    average_reading_speed_pages_per_minute: float
    total_bookmarks: int
    total_pages_read: int
    average_progress_percentage: float
