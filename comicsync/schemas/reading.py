from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ReadingSessionStartRequest(BaseModel):
    metadata: Dict[str, Any] = Field(default_factory=dict, description="device, app version, ...")


class ReadingSessionPauseRequest(BaseModel):
    minutes: int = Field(..., ge=0, description="paused minutes to add to the active session")


class ReadingSessionEndRequest(BaseModel):
    end_page: int = Field(..., description="page the session ended on, negatives are clamped to 0")
    metadata: Optional[Dict[str, Any]] = Field(None, description="merged into the session metadata")
