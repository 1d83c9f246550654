# Workers package - async job processing with RQ

from app.workers.base import (
    WorkerException,
    NonRetryableError,
    RetryableError,
    PipelineFailure,
    PipelineCancelled,
    retry_call,
    BaseWorker
)
from app.workers.queue import (
    QueueManager,
    get_queue_manager,
    enqueue_generation,
)
from app.workers.tasks import (
    run_generation_pipeline,
    run_video_generation_task,
)

__all__ = [
    # Base
    "WorkerException",
    "NonRetryableError",
    "RetryableError",
    "PipelineFailure",
    "PipelineCancelled",
    "retry_call",
    "BaseWorker",
    # Queue
    "QueueManager",
    "get_queue_manager",
    "enqueue_generation",
    # Tasks
    "run_generation_pipeline",
    "run_video_generation_task",
]
