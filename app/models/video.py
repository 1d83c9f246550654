"""
Video Model
Finished videos, one row per successful generation.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime

from app.core.database import Base


class Video(Base):
    """Final composited video owned by the submitting user."""

    __tablename__ = "videos"

    id = Column(String, primary_key=True)  # uuid4 string
    final_video_url = Column(String, nullable=False)
    script_text = Column(Text, nullable=False)
    ai_video_url = Column(String, nullable=True)

    user_id = Column(String, nullable=False, index=True)

    # One video per generation process
    process_id = Column(String, nullable=True, unique=True)

    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
