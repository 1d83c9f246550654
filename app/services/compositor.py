"""
Composition Service
Merges the avatar narration with supporting media into the final vertical
video using a render template.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import NonRetryableError
from app.services.vendor import VendorService

logger = logging.getLogger(__name__)


@dataclass
class CompositionStatus:
    completed: bool
    status: str
    url: Optional[str] = None
    duration_seconds: Optional[float] = None


class CompositionService(VendorService):
    """Client for the video compositing vendor."""

    NAME = "compositor"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(
            base_url=settings.COMPOSITOR_API_URL,
            api_key=settings.COMPOSITOR_API_KEY,
            timeout=settings.VENDOR_TIMEOUT,
            transport=transport,
        )
        self.template_id = settings.COMPOSITOR_TEMPLATE_ID

    async def start(self, avatar_video_url: str, supporting_media_url: str) -> str:
        """
        Start a render and return its id.

        Raises:
            NonRetryableError: a required URL is missing or no render id came back
            RetryableError: transport failure or vendor 4xx/5xx
        """
        missing = [
            name for name, value in (
                ("avatar_video_url", avatar_video_url),
                ("supporting_media_url", supporting_media_url),
            )
            if not value
        ]
        if missing:
            raise NonRetryableError(f"Missing required fields: {', '.join(missing)}")

        payload = {
            "template_id": self.template_id,
            "modifications": {
                "anchor": avatar_video_url,
                "supporting_video": supporting_media_url,
            },
        }
        logger.info(f"[Compositor] Starting render from template {self.template_id}")

        data = await self._request("POST", "/renders", json=payload, expected=(200, 201, 202))

        # The vendor answers with one render per output
        render = data[0] if isinstance(data, list) and data else data
        render_id = render.get("id") if isinstance(render, dict) else None
        if not render_id:
            raise NonRetryableError("No render ID returned from compositor")

        return str(render_id)

    async def poll(self, render_id: str) -> CompositionStatus:
        """
        Check a render. On completion the result also carries its duration
        for billing.
        """
        data = await self._request("GET", f"/renders/{render_id}")
        if not isinstance(data, dict):
            data = {}

        status = str(data.get("status") or "unknown")
        if status == "failed":
            reason = data.get("error_message") or "unknown reason"
            raise NonRetryableError(f"Render {render_id} failed: {reason}", details=data)

        url = data.get("url")
        return CompositionStatus(
            completed=status == "succeeded" and bool(url),
            status=status,
            url=url,
            duration_seconds=self._parse_duration(data.get("duration")),
        )

    @staticmethod
    def _parse_duration(value) -> Optional[float]:
        try:
            duration = float(value)
        except (TypeError, ValueError):
            return None
        return duration if math.isfinite(duration) else None
