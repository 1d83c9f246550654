"""
Base Worker Classes
Retry helpers, the worker exception hierarchy and a base class that reports
progress to both the progress store and the current RQ job.
"""

import asyncio
import logging
import traceback
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar
from datetime import datetime

from rq import get_current_job
from rq.job import Job

from app.core.exceptions import (
    WorkerException,
    NonRetryableError,
    RetryableError,
    PipelineFailure,
    PipelineCancelled,
)
from app.services.progress import ProgressStore
from app.schemas.generation import GenerationProcess

logger = logging.getLogger(__name__)

T = TypeVar('T')

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, retry_delay: float, exponential_backoff: bool) -> float:
    """Delay before retrying after the given 1-based failed attempt."""
    if exponential_backoff:
        return retry_delay * (2 ** (attempt - 1))
    return retry_delay * attempt


async def retry_call(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    retry_delay: float = 1.0,
    exponential_backoff: bool = False,
    sleep: Sleep = asyncio.sleep,
    label: str = "",
    retryable_exceptions: tuple = (RetryableError, TimeoutError, ConnectionError),
    **kwargs
) -> T:
    """
    Await func(*args, **kwargs) up to max_attempts times.

    Only retryable_exceptions trigger another attempt; NonRetryableError and
    anything unexpected propagate at once. The last retryable error is
    re-raised when attempts run out.
    """
    name = label or getattr(func, "__name__", "call")
    last_exception: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)

        except NonRetryableError as e:
            logger.error(f"[Non-Retryable] {name}: {e}")
            raise

        except retryable_exceptions as e:
            last_exception = e
            if attempt < max_attempts:
                delay = backoff_delay(attempt, retry_delay, exponential_backoff)
                logger.warning(
                    f"[Retry {attempt}/{max_attempts}] {name} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await sleep(delay)
            else:
                logger.error(f"[Failed] {name} exhausted all {max_attempts} attempts: {e}")

    raise last_exception


class BaseWorker(ABC):
    """
    Abstract base class for pipeline workers.

    Features:
    - Progress written to the progress store (and mirrored in RQ job meta)
    - Structured start/complete/error logging with timing
    """

    TASK_NAME = "task"

    def __init__(self, progress_store: ProgressStore):
        self.progress_store = progress_store

    def _get_current_job(self) -> Optional[Job]:
        """Get the current RQ job context, if running under a worker."""
        try:
            return get_current_job()
        except Exception:
            return None

    def _update_progress(self, process_id: str, **fields: Any) -> GenerationProcess:
        """
        Merge fields into the process record.

        Returns the merged record, which is authoritative even when the
        store could not persist it.
        """
        record = self.progress_store.merge(process_id, **fields)

        job = self._get_current_job()
        if job:
            job.meta["progress"] = record.progress
            job.meta["progress_message"] = record.status
            job.meta["updated_at"] = datetime.utcnow().isoformat()
            job.save_meta()

        logger.debug(f"[{process_id}] {record.progress}% - {record.status}")
        return record

    def _log_start(self, task_name: str, **context) -> datetime:
        """Log the start of a run and return its start time for the other _log_ calls."""
        logger.info(f"[START] {task_name} | Context: {context}")
        return datetime.utcnow()

    def _log_complete(self, task_name: str, started: datetime, result_summary: str = ""):
        duration = (datetime.utcnow() - started).total_seconds()
        logger.info(f"[COMPLETE] {task_name} | Duration: {duration:.2f}s | {result_summary}")

    def _log_error(self, task_name: str, started: datetime, error: BaseException):
        duration = (datetime.utcnow() - started).total_seconds()
        logger.error(f"[ERROR] {task_name} | Duration: {duration:.2f}s | Error: {error}")
        if not isinstance(error, (WorkerException, PipelineFailure)):
            logger.debug(traceback.format_exc())

    @abstractmethod
    async def execute(self, *args, **kwargs) -> Any:
        """Execute the worker task. Must be implemented by subclasses."""


__all__ = [
    "WorkerException",
    "NonRetryableError",
    "RetryableError",
    "PipelineFailure",
    "PipelineCancelled",
    "backoff_delay",
    "retry_call",
    "BaseWorker",
]
