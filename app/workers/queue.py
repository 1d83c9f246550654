"""
Queue Management Utilities
Provides RQ queue wrappers for handing generation processes to workers.
"""

import logging
from typing import Any, Dict, Optional
from datetime import datetime

from redis.exceptions import RedisError
from rq import Queue, Worker
from rq.job import Job, JobStatus as RQJobStatus

from app.core.redis import get_redis, Queues
from app.core.config import settings
from app.schemas.generation import GenerationRequest, MediaFile

logger = logging.getLogger(__name__)


class QueueManager:
    """
    Manages the RQ queues used by the pipeline.

    Jobs use the process id as their RQ job id, so a process can be looked up
    or cancelled in the queue by the same identifier the client polls with.
    """

    def __init__(self, redis=None):
        self._queues: Dict[str, Queue] = {}
        self._redis = redis

    @property
    def redis(self):
        """Lazy Redis connection."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def get_queue(self, queue_name: str = Queues.GENERATION) -> Queue:
        if queue_name not in self._queues:
            self._queues[queue_name] = Queue(
                name=queue_name,
                connection=self.redis,
                default_timeout=settings.JOB_TIMEOUT_PIPELINE
            )
            logger.debug(f"Created queue: {queue_name}")

        return self._queues[queue_name]

    def enqueue_generation(
        self,
        process_id: str,
        user_id: str,
        request: GenerationRequest,
        supporting_media_file: Optional[MediaFile] = None,
        voice_media_file: Optional[MediaFile] = None,
    ) -> Job:
        """
        Hand a generation process to a worker.

        The pipeline retries its own vendor calls, so the RQ job itself is
        never retried.
        """
        from app.workers.tasks import run_video_generation_task

        queue = self.get_queue(Queues.GENERATION)

        job = queue.enqueue(
            run_video_generation_task,
            process_id=process_id,
            user_id=user_id,
            request=request.model_dump(mode="json"),
            supporting_media_file=supporting_media_file.model_dump() if supporting_media_file else None,
            voice_media_file=voice_media_file.model_dump() if voice_media_file else None,
            job_id=process_id,
            job_timeout=settings.JOB_TIMEOUT_PIPELINE,
            meta={
                "type": "video_generation",
                "user_id": user_id,
                "script_option": request.script_option.value,
                "created_at": datetime.utcnow().isoformat(),
            }
        )

        logger.info(f"Enqueued generation process: {process_id} (user: {user_id})")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        try:
            return Job.fetch(job_id, connection=self.redis)
        except Exception as e:
            logger.debug(f"Job not found: {job_id} - {e}")
            return None

    def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a job that no worker has picked up yet.

        Returns:
            True if cancelled, False if not found or already running
        """
        job = self.get_job(job_id)

        if not job:
            return False

        status = job.get_status()
        if status in [RQJobStatus.QUEUED, RQJobStatus.DEFERRED, RQJobStatus.SCHEDULED]:
            job.cancel()
            logger.info(f"Cancelled queued job: {job_id}")
            return True

        logger.info(f"Job {job_id} is {status}, leaving cancellation to the worker")
        return False

    def get_queue_stats(self) -> Dict[str, Any]:
        """Backlog and registry counts of the generation queue, plus live workers."""
        try:
            queue = self.get_queue(Queues.GENERATION)
            return {
                "queue": Queues.GENERATION,
                "queued": len(queue),
                "started": queue.started_job_registry.count,
                "finished": queue.finished_job_registry.count,
                "failed": queue.failed_job_registry.count,
                "workers": Worker.count(queue=queue),
            }
        except RedisError as e:
            return {"queue": Queues.GENERATION, "error": str(e)}


# Singleton instance
_queue_manager: Optional[QueueManager] = None


def get_queue_manager() -> QueueManager:
    """Get singleton QueueManager instance."""
    global _queue_manager
    if _queue_manager is None:
        _queue_manager = QueueManager()
    return _queue_manager


def enqueue_generation(
    process_id: str,
    user_id: str,
    request: GenerationRequest,
    supporting_media_file: Optional[MediaFile] = None,
    voice_media_file: Optional[MediaFile] = None,
) -> Job:
    """Enqueue a generation process (convenience function)."""
    return get_queue_manager().enqueue_generation(
        process_id, user_id, request, supporting_media_file, voice_media_file
    )


__all__ = [
    "QueueManager",
    "get_queue_manager",
    "enqueue_generation",
]
