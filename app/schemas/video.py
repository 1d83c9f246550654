"""
Video Schemas
Pydantic models for the video library API.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class VideoResponse(BaseModel):
    """Schema for a finished video."""
    id: str
    final_video_url: str
    script_text: str
    ai_video_url: Optional[str] = None
    user_id: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class VideoListResponse(BaseModel):
    videos: List[VideoResponse]
    demo: bool = False  # True when the backend failed and the demo set is returned
