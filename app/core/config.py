"""
Application Configuration
Loads settings from environment variables.
"""

from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "ShortsForge API"
    DEBUG: bool = False
    API_BASE_URL: str = "http://localhost:8000"  # Base URL for file serving

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./shortsforge.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379"

    # Script generation (Groq)
    GROQ_API_KEY: str = ""
    GROQ_MODEL: str = "llama-3.3-70b-versatile"
    GROQ_TEMPERATURE: float = 0.7
    SCRIPT_MAX_TOKENS: int = 300
    SCRIPT_TIMEOUT: float = 30.0

    # Talking-avatar synthesis
    AVATAR_API_URL: str = "https://infinity.ai/api/v2"
    AVATAR_API_KEY: str = ""
    AVATAR_RESOLUTION_STANDARD: str = "320"
    AVATAR_RESOLUTION_HIGH: str = "512"
    AVATAR_EXPRESSIVENESS: float = 0.7

    # Final video composition
    COMPOSITOR_API_URL: str = "https://api.creatomate.com/v1"
    COMPOSITOR_API_KEY: str = ""
    COMPOSITOR_TEMPLATE_ID: str = "236352ae-d17e-43ad-9aed-4f13004fe57d"

    VENDOR_TIMEOUT: float = 30.0

    # Default assets used when a media reference is missing or not fetchable
    DEFAULT_PORTRAIT_URL: str = (
        "https://6ammc3n5zzf5ljnz.public.blob.vercel-storage.com/"
        "inf2-image-uploads/image_8132d-DYy5ZM9i939tkiyw6ADf3oVyn6LivZ.png"
    )
    DEFAULT_SUPPORTING_MEDIA_URL: str = (
        "https://storage.googleapis.com/gtv-videos-bucket/sample/ForBiggerBlazes.mp4"
    )

    # Storage - S3 settings (optional)
    S3_BUCKET: str = ""
    S3_ENDPOINT: str = ""
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_REGION: str = "us-east-1"
    S3_PUBLIC_URL: str = ""  # Public base URL for objects in S3_BUCKET

    # Local storage fallback
    LOCAL_STORAGE_PATH: str = "./uploads"
    USE_LOCAL_STORAGE: bool = True

    # Google Cloud Storage (for Cloud Run deployment)
    USE_GCS: bool = False
    GCS_BUCKET_UPLOADS: str = "shortsforge-uploads"
    GCP_PROJECT_ID: str = ""

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Worker settings
    USE_TASK_QUEUE: bool = True  # False runs pipelines as in-process background tasks
    JOB_TIMEOUT_PIPELINE: int = 1800
    WORKER_COUNT: int = 1
    WORKER_MONITORING_INTERVAL: int = 5  # Seconds between RQ heartbeats while a job runs

    # Shared secret for operator endpoints (monthly credit grant); empty disables them
    ADMIN_TOKEN: str = ""

    # Pipeline budgets
    START_MAX_ATTEMPTS: int = 3
    START_RETRY_DELAY: float = 1.0  # Seconds, multiplied by the attempt number
    POLL_INTERVAL_SECONDS: float = 5.0
    POLL_MAX_ATTEMPTS: int = 60

    # Credits
    DEFAULT_VIDEO_CREDITS: int = 100
    CREDITS_PER_MINUTE: int = 100
    INITIAL_FREE_CREDITS: int = 100
    MONTHLY_FREE_CREDITS: int = 100

    @field_validator(
        'GROQ_API_KEY', 'AVATAR_API_KEY', 'COMPOSITOR_API_KEY', 'S3_SECRET_KEY', 'ADMIN_TOKEN',
        mode='before'
    )
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
