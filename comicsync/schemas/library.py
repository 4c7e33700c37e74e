from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import AccessType


class LibraryAddRequest(BaseModel):
    access_type: AccessType = Field(AccessType.FREE, description="free / purchased / subscription")


class RatingRequest(BaseModel):
    # range is checked by LibraryService so the error comes back as InvalidRatingError
    rating: int
    review: Optional[str] = None


class ReadingTimeRequest(BaseModel):
    reading_time_seconds: int = Field(..., ge=1)


class CompletionRequest(BaseModel):
    completion_percentage: float = Field(..., description="clamped to 0..100")


class LibraryEntryResponse(BaseModel):
    comic_id: int
    access_type: AccessType
    purchase_price: Optional[Decimal] = None
    purchased_at: Optional[datetime] = None
    access_expires_at: Optional[datetime] = None
    is_favorite: bool
    rating: Optional[int] = None
    review: Optional[str] = None
    total_reading_time: int
    completion_percentage: float
    last_accessed_at: Optional[datetime] = None
    device_sync_token: Optional[str] = None
    updated_at: datetime
    has_access: Optional[bool] = None
    model_config = ConfigDict(from_attributes=True)


class LibraryResponse(BaseModel):
    total: int
    items: List[LibraryEntryResponse]
