from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ProgressUpdateRequest(BaseModel):
    current_page: int = Field(..., description="current page, negatives are clamped to 0")
    total_pages: Optional[int] = Field(None, ge=0, description="overwrites the stored page count when given")
    metadata: Optional[Dict[str, Any]] = Field(None, description="client metadata, merged into the record")


class ReadingPreferencesUpdate(BaseModel):
    preferences: Dict[str, Any] = Field(..., description="zoom, mode, colour...; merged key by key")


class ReadingSessionResponse(BaseModel):
    id: int
    session_key: str
    started_at: datetime
    ended_at: Optional[datetime]
    start_page: int
    end_page: Optional[int]
    pages_read: int
    duration_minutes: int
    paused_duration_minutes: int
    metadata: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("metadata_", "metadata")
    )
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class ProgressResponse(BaseModel):
    comic_id: int
    current_page: int
    total_pages: int
    progress_percentage: float
    is_completed: bool
    completed_at: Optional[datetime]
    first_read_at: Optional[datetime]
    last_read_at: Optional[datetime]
    total_reading_sessions: int
    reading_time_minutes: int
    average_session_duration: float
    pages_per_session_avg: float
    reading_speed_pages_per_minute: float
    total_time_paused_minutes: int
    bookmark_count: int
    is_bookmarked: bool
    last_bookmark_at: Optional[datetime]
    reading_preferences: Optional[Dict[str, Any]] = None
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ProgressDetailResponse(BaseModel):
    progress: Optional[ProgressResponse]
    current_session: Optional[ReadingSessionResponse] = None
    has_active_session: bool = False


class SessionListResponse(BaseModel):
    total: int
    items: List[ReadingSessionResponse]
