from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BookmarkUpsertRequest(BaseModel):
    note: Optional[str] = Field(default=None, description="optional note; replaces the note of an existing bookmark on the page")


class BookmarkResponse(BaseModel):
    id: int
    comic_id: int
    page_number: int
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BookmarkRemoveResponse(BaseModel):
    removed: bool
