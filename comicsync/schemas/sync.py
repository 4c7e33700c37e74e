from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..models import AccessType
from .bookmark import BookmarkResponse
from .library import LibraryEntryResponse


# ---------------------------------
# device -> server
# ---------------------------------
class LibraryDelta(BaseModel):
    comic_id: int
    access_type: Optional[AccessType] = None
    is_favorite: Optional[bool] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    review: Optional[str] = None
    total_reading_time: Optional[int] = Field(None, ge=0)
    completion_percentage: Optional[float] = None
    last_accessed_at: Optional[datetime] = None
    updated_at: datetime


class ProgressDelta(BaseModel):
    comic_id: int
    current_page: int
    total_pages: Optional[int] = Field(None, ge=0)
    last_read_at: Optional[datetime] = None
    reading_preferences: Optional[Dict[str, Any]] = None
    updated_at: datetime


class BookmarkDelta(BaseModel):
    comic_id: int
    page_number: int = Field(..., ge=0)
    note: Optional[str] = None
    updated_at: datetime


class PreferenceDelta(BaseModel):
    values: Dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime


class SyncRequest(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=255)
    last_sync_at: Optional[datetime] = Field(
        None, description="cursor for returning server changes; never gates which deltas are applied"
    )
    library: List[LibraryDelta] = Field(default_factory=list)
    progress: List[ProgressDelta] = Field(default_factory=list)
    bookmarks: List[BookmarkDelta] = Field(default_factory=list)
    preferences: Optional[PreferenceDelta] = None


# ---------------------------------
# server -> device
# ---------------------------------
class ProgressSyncItem(BaseModel):
    comic_id: int
    current_page: int
    total_pages: int
    progress_percentage: float
    is_completed: bool
    reading_time_minutes: int
    last_read_at: Optional[datetime] = None
    reading_preferences: Optional[Dict[str, Any]] = None
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PreferencesSyncItem(BaseModel):
    values: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("preferences", "values")
    )
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SyncChanges(BaseModel):
    library: List[LibraryEntryResponse] = Field(default_factory=list)
    progress: List[ProgressSyncItem] = Field(default_factory=list)
    bookmarks: List[BookmarkResponse] = Field(default_factory=list)
    preferences: Optional[PreferencesSyncItem] = None
    model_config = ConfigDict(from_attributes=True)


class SyncResponse(BaseModel):
    library_updates: int
    progress_updates: int
    bookmark_updates: int
    preference_updates: int
    sync_token: str
    synced_at: datetime
    server_changes: Optional[SyncChanges] = None
    model_config = ConfigDict(from_attributes=True)


class NeedsSyncResponse(BaseModel):
    needs_sync: bool
