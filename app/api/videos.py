"""
Video API Routes
Lists the caller's finished videos.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, get_db
from app.schemas.video import VideoListResponse, VideoResponse
from app.services.videos import VideoLibrary, demo_videos

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=VideoListResponse)
async def list_videos(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """The caller's videos, newest first. Falls back to a demo set if the database fails."""
    try:
        videos = VideoLibrary(db).list_videos(user_id, limit=limit, offset=offset)
    except SQLAlchemyError as e:
        logger.error(f"[Videos] Could not load videos for {user_id}, returning demo set: {e}")
        return VideoListResponse(
            videos=[VideoResponse(**video) for video in demo_videos()],
            demo=True,
        )

    return VideoListResponse(videos=[VideoResponse.model_validate(video) for video in videos])
