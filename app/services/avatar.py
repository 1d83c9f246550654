"""
Avatar Synthesis Service
Starts and polls talking-head renders: a portrait image speaking a script in
the chosen voice.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import NonRetryableError
from app.services.vendor import VendorService

logger = logging.getLogger(__name__)


@dataclass
class AvatarStatus:
    completed: bool
    status: str
    video_url: Optional[str] = None


class AvatarService(VendorService):
    """Client for the avatar-video vendor."""

    NAME = "avatar"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(
            base_url=settings.AVATAR_API_URL,
            api_key=settings.AVATAR_API_KEY,
            timeout=settings.VENDOR_TIMEOUT,
            transport=transport,
        )

    async def start(
        self,
        script: str,
        voice_id: str,
        portrait_image_url: str,
        resolution: str,
    ) -> str:
        """
        Start a render and return the vendor job id.

        Raises:
            NonRetryableError: a required field is missing or no job id came back
            RetryableError: transport failure or vendor 4xx/5xx
        """
        missing = [
            name for name, value in (
                ("script", script),
                ("voice_id", voice_id),
                ("portrait_image_url", portrait_image_url),
            )
            if not value
        ]
        if missing:
            raise NonRetryableError(f"Missing required fields: {', '.join(missing)}")

        payload = {
            "img_url": portrait_image_url,
            "text": script,
            "voice_id": voice_id,
            "resolution": resolution,
            "crop_head": False,
            "expressiveness": settings.AVATAR_EXPRESSIVENESS,
        }
        logger.info(f"[Avatar] Starting render with voice {voice_id} at {resolution}")

        data = await self._request("POST", "/generate", json=payload)
        job_id = data.get("job_id") if isinstance(data, dict) else None
        if not job_id:
            raise NonRetryableError("No job ID returned from avatar service")

        return str(job_id)

    async def poll(self, job_id: str) -> AvatarStatus:
        """
        Check a render.

        Raises:
            RetryableError: transient failure, the render is still pending
            NonRetryableError: the vendor reports the render failed
        """
        data = await self._request("GET", f"/generations/{job_id}")
        if not isinstance(data, dict):
            data = {}

        status = str(data.get("status") or "unknown")
        if status == "failed":
            raise NonRetryableError(f"Avatar render {job_id} failed", details=data)

        video_url = data.get("video_url")
        return AvatarStatus(
            completed=status == "completed" and bool(video_url),
            status=status,
            video_url=video_url,
        )
