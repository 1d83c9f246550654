"""
RQ Task Definitions
Defines the task functions that are executed by workers.
"""

import logging
import asyncio
from typing import Any, Dict, Optional

from app.schemas.generation import GenerationProcess, GenerationRequest, MediaFile

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Helper to run async code in sync context (for RQ)."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


async def run_generation_pipeline(
    process_id: str,
    user_id: str,
    request: GenerationRequest,
    supporting_media_file: Optional[MediaFile] = None,
    voice_media_file: Optional[MediaFile] = None,
) -> GenerationProcess:
    """Run one process with the default store and gateway."""
    from app.services.gateway import ServiceGateway
    from app.services.progress import get_progress_store
    from app.workers.pipeline import VideoGenerationPipeline

    pipeline = VideoGenerationPipeline(get_progress_store(), ServiceGateway())
    return await pipeline.execute(
        process_id,
        user_id,
        request,
        supporting_media_file=supporting_media_file,
        voice_media_file=voice_media_file,
    )


def run_video_generation_task(
    process_id: str,
    user_id: str,
    request: Dict[str, Any],
    supporting_media_file: Optional[Dict[str, Any]] = None,
    voice_media_file: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    RQ task for the video generation pipeline.

    Args:
        process_id: Process to run; already registered in the progress store
        user_id: Owner of the process
        request: Serialized GenerationRequest
        supporting_media_file: Serialized MediaFile to upload first, if any
        voice_media_file: Serialized MediaFile to upload first, if any

    Returns:
        Dict with the terminal process record
    """
    logger.info(f"[Task] Starting video generation: {process_id}")

    record = _run_async(
        run_generation_pipeline(
            process_id,
            user_id,
            GenerationRequest.model_validate(request),
            supporting_media_file=MediaFile.model_validate(supporting_media_file) if supporting_media_file else None,
            voice_media_file=MediaFile.model_validate(voice_media_file) if voice_media_file else None,
        )
    )

    logger.info(f"[Task] Video generation {process_id} finished: {record.status}")
    return record.model_dump(mode="json")


__all__ = [
    "run_generation_pipeline",
    "run_video_generation_task",
]
