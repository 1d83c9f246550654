"""
External Service Gateway
Single entry point the pipeline uses for every external capability.

Media references crossing into a vendor call are resolved here: only absolute
http(s) URLs are forwarded, anything else is replaced by the configured
default asset.
"""

import logging
from typing import Dict, Iterable, Optional
from urllib.parse import urlparse

from app.core.config import settings
from app.services.avatar import AvatarService, AvatarStatus
from app.services.compositor import CompositionService, CompositionStatus
from app.services.script_llm import ScriptService
from app.services.storage import StorageService, StoredMedia

logger = logging.getLogger(__name__)


def is_fetchable_url(url: Optional[str]) -> bool:
    """True for absolute http(s) URLs that another process can download."""
    if not url:
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class ServiceGateway:
    """Typed wrappers around script generation, uploads, avatar synthesis and composition."""

    def __init__(
        self,
        script_service: Optional[ScriptService] = None,
        storage_service: Optional[StorageService] = None,
        avatar_service: Optional[AvatarService] = None,
        composition_service: Optional[CompositionService] = None,
    ):
        self._script = script_service
        self._storage = storage_service
        self._avatar = avatar_service
        self._compositor = composition_service

    @property
    def script(self) -> ScriptService:
        if self._script is None:
            self._script = ScriptService()
        return self._script

    @property
    def storage(self) -> StorageService:
        if self._storage is None:
            self._storage = StorageService()
        return self._storage

    @property
    def avatar(self) -> AvatarService:
        if self._avatar is None:
            self._avatar = AvatarService()
        return self._avatar

    @property
    def compositor(self) -> CompositionService:
        if self._compositor is None:
            self._compositor = CompositionService()
        return self._compositor

    # Media resolution

    @staticmethod
    def resolve_media_url(url: Optional[str], default: str, label: str = "media") -> str:
        """Return url when a vendor can fetch it, otherwise the default asset."""
        if is_fetchable_url(url):
            return url.strip()
        if url:
            logger.warning(f"[Gateway] Unfetchable {label} reference '{url[:80]}', using default asset")
        return default

    # Capabilities

    async def generate_script(self, topic: str) -> str:
        return await self.script.generate_script(topic)

    async def upload_file(
        self,
        data: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
        owner: Optional[str] = None,
    ) -> StoredMedia:
        return await self.storage.upload_media(data, filename, content_type, owner=owner)

    def release_upload(self, stored: StoredMedia):
        """Drop a non-durable upload the caller will not use."""
        self.storage.release(stored)

    async def start_avatar_synthesis(
        self,
        script: str,
        voice_id: str,
        portrait_image_url: Optional[str],
        resolution: str,
    ) -> str:
        portrait = self.resolve_media_url(portrait_image_url, settings.DEFAULT_PORTRAIT_URL, "portrait")
        return await self.avatar.start(script, voice_id, portrait, resolution)

    async def poll_avatar_synthesis(self, job_id: str) -> AvatarStatus:
        return await self.avatar.poll(job_id)

    async def start_composition(self, avatar_video_url: str, supporting_media_url: Optional[str]) -> str:
        supporting = self.resolve_media_url(
            supporting_media_url, settings.DEFAULT_SUPPORTING_MEDIA_URL, "supporting media"
        )
        return await self.compositor.start(avatar_video_url, supporting)

    async def poll_composition(self, render_id: str) -> CompositionStatus:
        return await self.compositor.poll(render_id)

    async def delete_uploads(self, paths: Iterable[str]) -> Dict[str, Optional[str]]:
        """
        Delete stored uploads.

        Returns a map of path -> error message (None on success); failures
        are logged, never raised.
        """
        results: Dict[str, Optional[str]] = {}
        for path in paths:
            try:
                await self.storage.delete_file(path)
                results[path] = None
            except Exception as e:
                logger.warning(f"[Gateway] Could not delete {path}: {e}")
                results[path] = str(e)
        return results
