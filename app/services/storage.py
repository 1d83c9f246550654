"""
Storage Service
Durable storage for user uploads - supports Google Cloud Storage, S3, and the
local filesystem served through the API's /files route.

Every successful upload yields an absolute URL that vendors can fetch
out-of-process. When the configured backend fails, the bytes are written to a
process-local scratch file instead and the result is flagged as non-durable.
"""

import logging
import os
import secrets
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "uploads"
SCRATCH_MAX_AGE_SECONDS = 3600


@dataclass
class StoredMedia:
    """Result of an upload."""
    url: str
    path: Optional[str]  # Object path within the backend, None for scratch files
    durable: bool
    local_path: Optional[str] = None  # Scratch file on this host, only when not durable


class StorageService:
    """Service for file storage operations."""

    def __init__(self):
        # Priority: GCS > Local > S3
        self.use_gcs = settings.USE_GCS
        self.use_local = settings.USE_LOCAL_STORAGE and not self.use_gcs
        self.api_base_url = settings.API_BASE_URL.rstrip("/")
        self.scratch_dir = Path(tempfile.gettempdir()) / "shortsforge-scratch"

        if self.use_gcs:
            from google.cloud import storage
            self.gcs_client = storage.Client(project=settings.GCP_PROJECT_ID)
            self.bucket_uploads = self.gcs_client.bucket(settings.GCS_BUCKET_UPLOADS)
            logger.info(f"[Storage] Using Google Cloud Storage: {settings.GCS_BUCKET_UPLOADS}")

        elif self.use_local:
            self.base_path = Path(settings.LOCAL_STORAGE_PATH)
            self.base_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"[Storage] Using local storage: {self.base_path}")

        else:
            import boto3
            from botocore.config import Config
            self.s3 = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT or None,
                aws_access_key_id=settings.S3_ACCESS_KEY,
                aws_secret_access_key=settings.S3_SECRET_KEY,
                region_name=settings.S3_REGION,
                config=Config(signature_version="s3v4")
            )
            self.bucket = settings.S3_BUCKET
            logger.info(f"[Storage] Using S3: {self.bucket}")

    @property
    def backend(self) -> str:
        if self.use_gcs:
            return "gcs"
        if self.use_local:
            return "local"
        return "s3"

    @staticmethod
    def build_path(filename: str, owner: Optional[str] = None) -> str:
        """Unique object path for an upload, e.g. uploads/<owner>/1700000000000-ab12cd34.png"""
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
        unique = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"
        folder = f"{UPLOAD_PREFIX}/{owner}" if owner else UPLOAD_PREFIX
        return f"{folder}/{unique}.{ext}"

    async def upload_media(
        self,
        data: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
        owner: Optional[str] = None,
    ) -> StoredMedia:
        """
        Store an upload and return where it can be fetched from.

        Never raises for backend failures: the caller gets a non-durable
        file:// URL that is only meaningful inside this process.
        """
        path = self.build_path(filename, owner)
        try:
            url = await self.upload_bytes(data, path, content_type)
            logger.info(f"[Storage] Uploaded {filename} -> {url}")
            return StoredMedia(url=url, path=path, durable=True)
        except Exception as e:
            logger.error(f"[Storage] Upload of {filename} to {self.backend} failed: {e}")
            return self._write_scratch(data, path)

    async def upload_bytes(self, data: bytes, path: str, content_type: str = "application/octet-stream") -> str:
        """Upload bytes and return an absolute URL."""
        if self.use_gcs:
            return await self._upload_gcs(data, path, content_type)
        elif self.use_local:
            return await self._upload_local(data, path)
        else:
            return await self._upload_s3(data, path, content_type)

    async def _upload_gcs(self, data: bytes, path: str, content_type: str) -> str:
        blob = self.bucket_uploads.blob(path)
        blob.upload_from_string(data, content_type=content_type)
        # Proxied through the API so vendors need no GCS permissions
        return self.get_public_url(path)

    async def _upload_local(self, data: bytes, path: str) -> str:
        file_path = self.base_path / path
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "wb") as f:
            f.write(data)

        return self.get_public_url(path)

    async def _upload_s3(self, data: bytes, path: str, content_type: str) -> str:
        self.s3.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type
        )
        if settings.S3_PUBLIC_URL:
            return f"{settings.S3_PUBLIC_URL.rstrip('/')}/{path}"
        return f"https://{self.bucket}.s3.{settings.S3_REGION}.amazonaws.com/{path}"

    def _write_scratch(self, data: bytes, path: str) -> StoredMedia:
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        self._sweep_scratch()
        file_path = self.scratch_dir / os.path.basename(path)
        with open(file_path, "wb") as f:
            f.write(data)
        logger.warning(f"[Storage] Using non-durable scratch copy {file_path}")
        return StoredMedia(
            url=file_path.absolute().as_uri(),
            path=None,
            durable=False,
            local_path=str(file_path),
        )

    def _sweep_scratch(self):
        """Remove scratch copies nobody released within SCRATCH_MAX_AGE_SECONDS."""
        cutoff = time.time() - SCRATCH_MAX_AGE_SECONDS
        for file_path in self.scratch_dir.iterdir():
            try:
                if file_path.is_file() and file_path.stat().st_mtime < cutoff:
                    file_path.unlink()
            except OSError as e:
                logger.debug(f"[Storage] Could not sweep {file_path}: {e}")

    def release(self, stored: StoredMedia):
        """Drop the scratch copy behind a non-durable upload. Durable uploads are left alone."""
        if stored.durable or not stored.local_path:
            return
        try:
            Path(stored.local_path).unlink(missing_ok=True)
            logger.debug(f"[Storage] Released scratch copy {stored.local_path}")
        except OSError as e:
            logger.warning(f"[Storage] Could not remove scratch copy {stored.local_path}: {e}")

    def get_public_url(self, path: str) -> str:
        """Absolute URL served by the API's /files route."""
        return f"{self.api_base_url}/files/{path}"

    async def delete_file(self, path: str):
        """Delete a single object. Raises on backend errors."""
        if self.use_gcs:
            self.bucket_uploads.blob(path).delete()
        elif self.use_local:
            file_path = self.base_path / path
            if file_path.exists() and file_path.is_file():
                file_path.unlink()
        else:
            self.s3.delete_object(Bucket=self.bucket, Key=path)
        logger.info(f"[Storage] Deleted file: {path}")

    async def get_file(self, path: str) -> bytes:
        """Get file contents."""
        if self.use_gcs:
            return self.bucket_uploads.blob(path).download_as_bytes()
        elif self.use_local:
            file_path = (self.base_path / path).resolve()
            if self.base_path.resolve() not in file_path.parents:
                raise FileNotFoundError(path)
            with open(file_path, "rb") as f:
                return f.read()
        else:
            response = self.s3.get_object(Bucket=self.bucket, Key=path)
            return response["Body"].read()

    def health_check(self) -> str:
        if self.use_gcs:
            self.bucket_uploads.exists()
        elif self.use_local:
            if not self.base_path.exists():
                raise FileNotFoundError(str(self.base_path))
        else:
            self.s3.head_bucket(Bucket=self.bucket)
        return "ok"
