"""
Shared fixtures: in-memory Redis and SQLite, and a scripted service gateway.
"""

import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("USE_LOCAL_STORAGE", "true")
os.environ.setdefault("USE_GCS", "false")
os.environ.setdefault("LOCAL_STORAGE_PATH", os.path.join(tempfile.gettempdir(), "shortsforge-test-uploads"))
os.environ.setdefault("API_BASE_URL", "http://testserver")

from typing import Dict, List, Optional

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.services.avatar import AvatarStatus
from app.services.compositor import CompositionStatus
from app.services.gateway import ServiceGateway
from app.services.progress import ProgressStore
from app.services.storage import StoredMedia
import app.models  # noqa: F401  (registers tables on Base)


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server):
    return fakeredis.FakeRedis(server=redis_server)


@pytest.fixture
def progress_store(fake_redis):
    return ProgressStore(fake_redis)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class RecordingSleep:
    """Stand-in for asyncio.sleep that returns at once and remembers delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


@pytest.fixture
def no_sleep():
    return RecordingSleep()


class FakeGateway(ServiceGateway):
    """
    Gateway whose vendors answer from scripted queues.

    Each *_results list is consumed in order; an Exception entry is raised,
    anything else is returned. The last entry repeats once the list runs out.
    """

    def __init__(self):
        super().__init__()
        self.script_results: List = ["A short script about the topic."]
        self.avatar_start_results: List = ["avatar-job-1"]
        self.avatar_poll_results: List = [
            AvatarStatus(completed=True, status="completed", video_url="https://cdn.example.com/avatar.mp4"),
        ]
        self.composition_start_results: List = ["render-1"]
        self.composition_poll_results: List = [
            CompositionStatus(
                completed=True, status="succeeded",
                url="https://cdn.example.com/final.mp4", duration_seconds=90.0,
            ),
        ]
        self.upload_results: List = []
        self.calls: Dict[str, List[tuple]] = {}
        self.deleted: List[str] = []
        self.released: List[StoredMedia] = []

    def _next(self, name: str, results: List, *args):
        self.calls.setdefault(name, []).append(args)
        result = results.pop(0) if len(results) > 1 else results[0]
        if isinstance(result, Exception):
            raise result
        return result

    def call_count(self, name: str) -> int:
        return len(self.calls.get(name, []))

    async def generate_script(self, topic: str) -> str:
        return self._next("generate_script", self.script_results, topic)

    async def upload_file(self, data, filename, content_type="application/octet-stream", owner=None) -> StoredMedia:
        if not self.upload_results:
            path = f"uploads/{owner}/{filename}"
            self.calls.setdefault("upload_file", []).append((filename,))
            return StoredMedia(url=f"http://testserver/files/{path}", path=path, durable=True)
        return self._next("upload_file", self.upload_results, filename)

    def release_upload(self, stored: StoredMedia):
        self.released.append(stored)

    async def start_avatar_synthesis(self, script, voice_id, portrait_image_url, resolution) -> str:
        return self._next("start_avatar_synthesis", self.avatar_start_results, script, voice_id, portrait_image_url, resolution)

    async def poll_avatar_synthesis(self, job_id: str) -> AvatarStatus:
        return self._next("poll_avatar_synthesis", self.avatar_poll_results, job_id)

    async def start_composition(self, avatar_video_url, supporting_media_url) -> str:
        return self._next("start_composition", self.composition_start_results, avatar_video_url, supporting_media_url)

    async def poll_composition(self, render_id: str) -> CompositionStatus:
        return self._next("poll_composition", self.composition_poll_results, render_id)

    async def delete_uploads(self, paths) -> Dict[str, Optional[str]]:
        paths = list(paths)
        self.deleted.extend(paths)
        return {path: None for path in paths}


@pytest.fixture
def gateway():
    return FakeGateway()

