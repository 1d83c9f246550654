"""
Progress Store
Keyed, Redis-backed record of in-flight generation state.

One JSON document per process id. The pipeline that owns a process is its
only writer; the API and pollers only read. Writes are shallow merges done
inside a WATCH/MULTI transaction so no field written by an earlier merge is
ever lost.
"""

import logging
import secrets
import string
import time
from datetime import datetime
from typing import Any, Dict, Optional

from redis import Redis
from redis.exceptions import RedisError, WatchError

from app.core.exceptions import ProcessNotFoundError
from app.core.redis import get_redis, Keys
from app.schemas.generation import GenerationProcess

logger = logging.getLogger(__name__)

PROCESS_ID_ALPHABET = string.ascii_lowercase + string.digits

# Fields that may be set once per process and never changed afterwards
APPEND_ONLY_FIELDS = ("script_text", "ai_video_url", "final_video_url")


def new_process_id() -> str:
    """Id for a new process: process_<unix ms>_<8 random lowercase alphanumerics>."""
    suffix = "".join(secrets.choice(PROCESS_ID_ALPHABET) for _ in range(8))
    return f"process_{int(time.time() * 1000)}_{suffix}"


class ProgressStore:
    """
    Progress records for generation processes.

    Backend errors on write are logged and swallowed: merge() still returns
    the merged record, and that record is remembered locally so the next
    merge from the same writer starts from it.
    """

    MAX_WATCH_RETRIES = 5

    def __init__(self, redis: Optional[Redis] = None):
        self._redis = redis
        self._last_known: Dict[str, GenerationProcess] = {}

    @property
    def redis(self) -> Redis:
        """Lazy Redis connection."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def read(self, process_id: str) -> GenerationProcess:
        """
        Get the current record.

        Raises:
            ProcessNotFoundError: if nothing was ever written for process_id
        """
        raw = self.redis.get(Keys.progress(process_id))
        if raw is None:
            raise ProcessNotFoundError(process_id)
        return GenerationProcess.model_validate_json(raw)

    def exists(self, process_id: str) -> bool:
        return bool(self.redis.exists(Keys.progress(process_id)))

    def create(self, process: GenerationProcess) -> GenerationProcess:
        """Persist the initial record for a new process."""
        self._last_known[process.process_id] = process
        self.redis.set(Keys.progress(process.process_id), process.model_dump_json(), nx=True)
        logger.info(f"[Progress] Created {process.process_id} for user {process.user_id}")
        return process

    def merge(self, process_id: str, **fields: Any) -> GenerationProcess:
        """
        Shallow-merge fields into the record and persist it.

        Creates a default record if none exists. Progress never moves
        backwards, append-only fields keep their first value and a record
        that reached 100 is never changed again.
        """
        key = Keys.progress(process_id)

        try:
            with self.redis.pipeline() as pipe:
                for _ in range(self.MAX_WATCH_RETRIES):
                    try:
                        pipe.watch(key)
                        raw = pipe.get(key)
                        current = (
                            GenerationProcess.model_validate_json(raw)
                            if raw is not None
                            else self._default(process_id)
                        )
                        merged = self._apply(current, fields)

                        pipe.multi()
                        pipe.set(key, merged.model_dump_json())
                        pipe.execute()

                        self._last_known[process_id] = merged
                        return merged
                    except WatchError:
                        logger.debug(f"[Progress] Concurrent write on {process_id}, retrying merge")
                        continue

            logger.warning(f"[Progress] Gave up merging {process_id} after {self.MAX_WATCH_RETRIES} conflicts")
        except RedisError as e:
            logger.warning(f"[Progress] Could not persist {process_id}: {e}")

        merged = self._apply(self._last_known.get(process_id) or self._default(process_id), fields)
        self._last_known[process_id] = merged
        return merged

    def forget(self, process_id: str) -> None:
        """Drop the locally remembered record once its writer is done."""
        self._last_known.pop(process_id, None)

    def request_cancel(self, process_id: str) -> None:
        """Flag a process for cooperative cancellation."""
        if not self.exists(process_id):
            raise ProcessNotFoundError(process_id)
        self.redis.set(Keys.cancel(process_id), b"1")
        logger.info(f"[Progress] Cancellation requested for {process_id}")

    def is_cancel_requested(self, process_id: str) -> bool:
        try:
            return bool(self.redis.exists(Keys.cancel(process_id)))
        except RedisError as e:
            logger.warning(f"[Progress] Could not read cancel flag for {process_id}: {e}")
            return False

    @staticmethod
    def _default(process_id: str) -> GenerationProcess:
        return GenerationProcess(process_id=process_id, progress=0, status="Starting...")

    @staticmethod
    def _apply(current: GenerationProcess, fields: Dict[str, Any]) -> GenerationProcess:
        if current.is_terminal:
            if fields:
                logger.debug(f"[Progress] {current.process_id} is finished, ignoring update of {sorted(fields)}")
            return current

        data = current.model_dump()
        updates = dict(fields)

        if "progress" in updates:
            new_progress = max(0, min(int(updates["progress"]), 100))
            updates["progress"] = max(current.progress, new_progress)

        for name in APPEND_ONLY_FIELDS:
            if name not in updates:
                continue
            existing = data.get(name)
            if existing is not None and updates[name] != existing:
                logger.warning(
                    f"[Progress] Ignoring overwrite of {name} on {current.process_id}"
                )
                updates.pop(name)
            elif updates[name] is None:
                updates.pop(name)

        data.update(updates)
        data["updated_at"] = datetime.utcnow()
        return GenerationProcess.model_validate(data)


_progress_store: Optional[ProgressStore] = None


def get_progress_store() -> ProgressStore:
    """Get singleton ProgressStore instance."""
    global _progress_store
    if _progress_store is None:
        _progress_store = ProgressStore()
    return _progress_store


__all__ = [
    "APPEND_ONLY_FIELDS",
    "ProcessNotFoundError",
    "ProgressStore",
    "get_progress_store",
    "new_process_id",
]
