"""
Generation API Routes
Submits video generation processes and reports their progress.
"""

import logging
from typing import Optional

from fastapi import (
    APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile, status
)
from pydantic import ValidationError
from redis.exceptions import RedisError

from app.api.deps import get_current_user_id, get_progress_store, get_queue_manager
from app.core.config import settings
from app.core.exceptions import ProcessNotFoundError
from app.schemas.generation import (
    ERROR_PREFIX,
    GenerationProcess,
    GenerationRequest,
    GenerationStage,
    GenerationStatusResponse,
    GenerationSubmitResponse,
    MediaFile,
    ScriptOption,
)
from app.services.progress import ProgressStore, new_process_id
from app.workers.queue import QueueManager
from app.workers.tasks import run_generation_pipeline

logger = logging.getLogger(__name__)

router = APIRouter()


def _store_unavailable(e: Exception) -> HTTPException:
    logger.error(f"[Generations] Progress store unavailable: {e}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Progress store unavailable"
    )


def _read_owned(store: ProgressStore, process_id: str, user_id: str) -> GenerationProcess:
    """Load a process the caller owns; other users' processes look unknown."""
    try:
        record = store.read(process_id)
    except ProcessNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Process not found")
    except RedisError as e:
        raise _store_unavailable(e)

    if record.user_id and record.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Process not found")
    return record


def _submit(
    request: GenerationRequest,
    user_id: str,
    store: ProgressStore,
    queue: QueueManager,
    background_tasks: BackgroundTasks,
    supporting_media_file: Optional[MediaFile] = None,
    voice_media_file: Optional[MediaFile] = None,
) -> GenerationSubmitResponse:
    process_id = new_process_id()

    try:
        store.create(GenerationProcess(
            process_id=process_id,
            user_id=user_id,
            progress=0,
            status="Queued...",
            voice_id=request.voice_id,
            high_resolution=request.high_resolution,
        ))
    except RedisError as e:
        raise _store_unavailable(e)

    if settings.USE_TASK_QUEUE:
        try:
            queue.enqueue_generation(
                process_id, user_id, request, supporting_media_file, voice_media_file
            )
        except RedisError as e:
            raise _store_unavailable(e)
    else:
        background_tasks.add_task(
            run_generation_pipeline,
            process_id,
            user_id,
            request,
            supporting_media_file,
            voice_media_file,
        )

    logger.info(f"[Generations] Process {process_id} submitted by {user_id} ({request.script_option.value})")
    return GenerationSubmitResponse(
        process_id=process_id,
        status="queued",
        message="Video generation started",
    )


async def _read_upload(upload: Optional[UploadFile]) -> Optional[MediaFile]:
    if upload is None or not upload.filename:
        return None
    data = await upload.read()
    if not data:
        return None
    return MediaFile(
        filename=upload.filename,
        content_type=upload.content_type or "application/octet-stream",
        data=data,
    )


@router.post("", response_model=GenerationSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_generation(
    request: GenerationRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    store: ProgressStore = Depends(get_progress_store),
    queue: QueueManager = Depends(get_queue_manager),
):
    """Start a generation from URLs only. Returns immediately with the process id."""
    return _submit(request, user_id, store, queue, background_tasks)


@router.post("/upload", response_model=GenerationSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_generation_with_files(
    background_tasks: BackgroundTasks,
    voice_id: str = Form(...),
    script_option: ScriptOption = Form(ScriptOption.GPT),
    topic: Optional[str] = Form(None),
    custom_script: Optional[str] = Form(None),
    supporting_media: Optional[str] = Form(None),
    voice_media: Optional[str] = Form(None),
    high_resolution: bool = Form(False),
    supporting_media_file: Optional[UploadFile] = File(None),
    voice_media_file: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user_id),
    store: ProgressStore = Depends(get_progress_store),
    queue: QueueManager = Depends(get_queue_manager),
):
    """
    Start a generation with optional media files.

    Files are uploaded by the pipeline; a file that cannot be stored durably
    is replaced by the default asset.
    """
    try:
        request = GenerationRequest(
            script_option=script_option,
            topic=topic,
            custom_script=custom_script,
            supporting_media=supporting_media,
            voice_id=voice_id,
            voice_media=voice_media,
            high_resolution=high_resolution,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[err["msg"] for err in e.errors()]
        )

    return _submit(
        request,
        user_id,
        store,
        queue,
        background_tasks,
        supporting_media_file=await _read_upload(supporting_media_file),
        voice_media_file=await _read_upload(voice_media_file),
    )


@router.get("/{process_id}", response_model=GenerationStatusResponse)
async def get_generation(
    process_id: str,
    user_id: str = Depends(get_current_user_id),
    store: ProgressStore = Depends(get_progress_store),
):
    """Current progress snapshot, including the typed outcome."""
    return GenerationStatusResponse.from_process(_read_owned(store, process_id, user_id))


@router.post("/{process_id}/cancel", response_model=GenerationStatusResponse)
async def cancel_generation(
    process_id: str,
    user_id: str = Depends(get_current_user_id),
    store: ProgressStore = Depends(get_progress_store),
    queue: QueueManager = Depends(get_queue_manager),
):
    """
    Request cancellation. A running pipeline stops at its next checkpoint; a
    process still waiting in the queue is failed right away.
    """
    record = _read_owned(store, process_id, user_id)
    if record.is_terminal:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Process already finished"
        )

    try:
        store.request_cancel(process_id)
        if settings.USE_TASK_QUEUE and queue.cancel_job(process_id):
            # No worker will ever pick this process up
            record = store.merge(
                process_id,
                stage=GenerationStage.FAILED,
                progress=100,
                status=f"{ERROR_PREFIX} Cancelled by user",
                error="Cancelled by user",
            )
            store.forget(process_id)
    except ProcessNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Process not found")
    except RedisError as e:
        raise _store_unavailable(e)

    return GenerationStatusResponse.from_process(record)
