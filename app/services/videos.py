"""
Video Library Service
Persists finished videos and lists them for their owners.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.video import Video

logger = logging.getLogger(__name__)


def demo_videos() -> List[dict]:
    """Sample library shown when the real one cannot be loaded."""
    now = datetime.utcnow()
    return [
        {
            "id": "demo-1",
            "final_video_url": "https://storage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4",
            "script_text": (
                "This is a sample video about the importance of mindfulness. Taking a few minutes "
                "each day to focus on your breathing can significantly reduce stress and improve "
                "mental clarity."
            ),
            "timestamp": now - timedelta(days=1),
        },
        {
            "id": "demo-2",
            "final_video_url": "https://storage.googleapis.com/gtv-videos-bucket/sample/ElephantsDream.mp4",
            "script_text": (
                "Drinking enough water is essential for maintaining good health. Experts recommend "
                "consuming at least eight glasses of water daily to stay properly hydrated."
            ),
            "timestamp": now - timedelta(days=2),
        },
    ]


class VideoLibrary:
    """Video queries and inserts for one database session."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_process(self, process_id: str) -> Optional[Video]:
        return self.db.query(Video).filter(Video.process_id == process_id).first()

    def save_video(
        self,
        process_id: str,
        user_id: str,
        final_video_url: str,
        script_text: str,
        ai_video_url: Optional[str] = None,
    ) -> Video:
        """Insert the video for a finished process; returns the existing row on repeat calls."""
        existing = self.get_by_process(process_id)
        if existing:
            return existing

        video = Video(
            id=str(uuid.uuid4()),
            final_video_url=final_video_url,
            script_text=script_text,
            ai_video_url=ai_video_url,
            user_id=user_id,
            process_id=process_id,
            timestamp=datetime.utcnow(),
        )
        self.db.add(video)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self.get_by_process(process_id)

        logger.info(f"[Videos] Saved video {video.id} for user {user_id}")
        return video

    def list_videos(self, user_id: str, limit: int = 50, offset: int = 0) -> List[Video]:
        """The user's videos, most recent first."""
        return (
            self.db.query(Video)
            .filter(Video.user_id == user_id)
            .order_by(Video.timestamp.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
