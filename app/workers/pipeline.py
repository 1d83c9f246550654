"""
Video Generation Pipeline
Drives one generation process from submission to a finished, billed video.

Stages (progress):
  STARTED           5
  UPLOADING_MEDIA   10 / 15   (only when files were submitted)
  SCRIPTING         25
  SYNTHESIZING      50 -> 70  (start + poll)
  COMPOSITING       75 -> 95  (start + poll)
  FINALIZING        95
  DONE | FAILED     100

Every stage transition is written to the progress store. Failures end the
process with progress 100 and an "Error: ..." status; final_video_url is only
ever written together with the success status.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.schemas.generation import (
    ERROR_PREFIX,
    GenerationProcess,
    GenerationRequest,
    GenerationStage,
    MediaFile,
    ScriptOption,
)
from app.services.compositor import CompositionStatus
from app.services.credits import CreditLedger, compute_video_cost
from app.services.gateway import ServiceGateway
from app.services.progress import ProgressStore
from app.services.videos import VideoLibrary
from app.workers.base import (
    BaseWorker,
    NonRetryableError,
    PipelineCancelled,
    PipelineFailure,
    RetryableError,
    Sleep,
    WorkerException,
    retry_call,
)

logger = logging.getLogger(__name__)

FALLBACK_SCRIPT = "Here's a cool video about {topic}!"


class VideoGenerationPipeline(BaseWorker):
    """
    Orchestrates script generation, avatar synthesis, composition and billing
    for one process.

    Usage:
        pipeline = VideoGenerationPipeline(progress_store, ServiceGateway())
        record = await pipeline.execute(process_id, user_id, request)
    """

    TASK_NAME = "video_generation"

    def __init__(
        self,
        progress_store: ProgressStore,
        gateway: Optional[ServiceGateway] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        sleep: Sleep = asyncio.sleep,
        start_max_attempts: Optional[int] = None,
        start_retry_delay: Optional[float] = None,
        poll_interval: Optional[float] = None,
        poll_max_attempts: Optional[int] = None,
    ):
        super().__init__(progress_store)
        self.gateway = gateway or ServiceGateway()
        self.session_factory = session_factory
        self.sleep = sleep

        self.start_max_attempts = start_max_attempts or settings.START_MAX_ATTEMPTS
        self.start_retry_delay = settings.START_RETRY_DELAY if start_retry_delay is None else start_retry_delay
        self.poll_interval = settings.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.poll_max_attempts = poll_max_attempts or settings.POLL_MAX_ATTEMPTS

    async def execute(
        self,
        process_id: str,
        user_id: str,
        request: GenerationRequest,
        supporting_media_file: Optional[MediaFile] = None,
        voice_media_file: Optional[MediaFile] = None,
    ) -> GenerationProcess:
        """Run the whole pipeline. Never raises; the returned record is terminal."""
        started = self._log_start(self.TASK_NAME, process_id=process_id, user_id=user_id)
        uploaded_paths: List[str] = []

        try:
            self._checkpoint(process_id)
            self._update_progress(
                process_id,
                user_id=user_id,
                stage=GenerationStage.STARTED,
                progress=5,
                status="Starting...",
                voice_id=request.voice_id,
                high_resolution=request.high_resolution,
            )

            supporting_url, voice_url = await self._prepare_media(
                process_id, user_id, request, supporting_media_file, voice_media_file, uploaded_paths
            )
            script_text = await self._prepare_script(process_id, request)
            ai_video_url = await self._synthesize(process_id, request, script_text, voice_url)
            composition = await self._compose(process_id, ai_video_url, supporting_url)
            record = self._finalize(process_id, user_id, script_text, ai_video_url, composition)

            self._log_complete(self.TASK_NAME, started, f"{process_id} -> {record.final_video_url}")
            await self._cleanup(process_id, uploaded_paths)
            return record

        except PipelineFailure as e:
            self._log_error(self.TASK_NAME, started, e)
            return await self._fail(process_id, str(e), uploaded_paths)

        except Exception as e:
            self._log_error(self.TASK_NAME, started, e)
            logger.exception(f"[{process_id}] Unexpected pipeline error")
            return await self._fail(process_id, str(e) or e.__class__.__name__, uploaded_paths)

        finally:
            self.progress_store.forget(process_id)

    # Stages

    async def _prepare_media(
        self,
        process_id: str,
        user_id: str,
        request: GenerationRequest,
        supporting_media_file: Optional[MediaFile],
        voice_media_file: Optional[MediaFile],
        uploaded_paths: List[str],
    ) -> Tuple[str, str]:
        supporting_url = request.supporting_media
        voice_url = request.voice_media

        if supporting_media_file:
            self._checkpoint(process_id)
            self._update_progress(
                process_id,
                stage=GenerationStage.UPLOADING_MEDIA,
                progress=10,
                status="Uploading supporting media...",
            )
            supporting_url = await self._upload(process_id, user_id, supporting_media_file, uploaded_paths)

        if voice_media_file:
            self._checkpoint(process_id)
            self._update_progress(
                process_id,
                stage=GenerationStage.UPLOADING_MEDIA,
                progress=15,
                status="Uploading voice character image...",
            )
            voice_url = await self._upload(process_id, user_id, voice_media_file, uploaded_paths)

        supporting_url = self.gateway.resolve_media_url(
            supporting_url, settings.DEFAULT_SUPPORTING_MEDIA_URL, "supporting media"
        )
        voice_url = self.gateway.resolve_media_url(voice_url, settings.DEFAULT_PORTRAIT_URL, "portrait")

        self._update_progress(
            process_id,
            supporting_media_url=supporting_url,
            voice_media_url=voice_url,
        )
        return supporting_url, voice_url

    async def _upload(
        self,
        process_id: str,
        user_id: str,
        media: MediaFile,
        uploaded_paths: List[str],
    ) -> Optional[str]:
        """Upload one file; any failure leaves the slot empty."""
        try:
            stored = await self.gateway.upload_file(
                media.data, media.filename, media.content_type, owner=user_id
            )
        except Exception as e:
            logger.warning(f"[{process_id}] Upload of {media.filename} failed, continuing without it: {e}")
            return None

        if not stored.durable:
            logger.warning(f"[{process_id}] {media.filename} only stored locally, using default asset")
            self.gateway.release_upload(stored)
            return None

        if stored.path:
            uploaded_paths.append(stored.path)
        return stored.url

    async def _prepare_script(self, process_id: str, request: GenerationRequest) -> str:
        self._checkpoint(process_id)

        if request.script_option == ScriptOption.GPT and (request.topic or "").strip():
            topic = request.topic.strip()
            self._update_progress(
                process_id,
                stage=GenerationStage.SCRIPTING,
                progress=25,
                status="Generating script...",
            )
            try:
                script_text = await retry_call(
                    self.gateway.generate_script,
                    topic,
                    max_attempts=self.start_max_attempts,
                    retry_delay=self.start_retry_delay,
                    sleep=self.sleep,
                    label="generate_script",
                )
            except Exception as e:
                logger.warning(f"[{process_id}] Script generation failed, using fallback script: {e}")
                script_text = FALLBACK_SCRIPT.format(topic=topic)

        elif request.script_option == ScriptOption.CUSTOM and (request.custom_script or "").strip():
            self._update_progress(
                process_id,
                stage=GenerationStage.SCRIPTING,
                progress=25,
                status="Using custom script...",
            )
            script_text = request.custom_script.strip()

        else:
            raise PipelineFailure("Invalid script option or missing required data")

        self._update_progress(process_id, script_text=script_text)
        return script_text

    async def _synthesize(
        self,
        process_id: str,
        request: GenerationRequest,
        script_text: str,
        voice_url: str,
    ) -> str:
        self._checkpoint(process_id)
        self._update_progress(
            process_id,
            stage=GenerationStage.SYNTHESIZING,
            progress=50,
            status="Generating AI video...",
        )

        resolution = (
            settings.AVATAR_RESOLUTION_HIGH if request.high_resolution else settings.AVATAR_RESOLUTION_STANDARD
        )
        job_id = await self._start(
            process_id,
            "AI video generation",
            self.gateway.start_avatar_synthesis,
            script_text,
            request.voice_id,
            voice_url,
            resolution,
        )
        logger.info(f"[{process_id}] AI video generation started with job ID: {job_id}")

        result = await self._poll(
            process_id,
            "AI video",
            self.gateway.poll_avatar_synthesis,
            job_id,
            progress_from=50,
            progress_to=70,
        )

        self._update_progress(
            process_id,
            ai_video_url=result.video_url,
            stage=GenerationStage.COMPOSITING,
            progress=75,
            status="Creating final video...",
        )
        return result.video_url

    async def _compose(self, process_id: str, ai_video_url: str, supporting_url: str) -> CompositionStatus:
        self._checkpoint(process_id)

        render_id = await self._start(
            process_id,
            "final video rendering",
            self.gateway.start_composition,
            ai_video_url,
            supporting_url,
        )
        logger.info(f"[{process_id}] Final video render started with ID: {render_id}")

        return await self._poll(
            process_id,
            "Final video",
            self.gateway.poll_composition,
            render_id,
            progress_from=75,
            progress_to=95,
        )

    def _finalize(
        self,
        process_id: str,
        user_id: str,
        script_text: str,
        ai_video_url: str,
        composition: CompositionStatus,
    ) -> GenerationProcess:
        self._checkpoint(process_id)
        self._update_progress(
            process_id,
            stage=GenerationStage.FINALIZING,
            progress=95,
            status="Saving your video...",
        )

        credits = compute_video_cost(composition.duration_seconds)
        charged: Optional[int] = None

        db = self.session_factory()
        try:
            try:
                VideoLibrary(db).save_video(
                    process_id, user_id, composition.url, script_text, ai_video_url
                )
            except Exception as e:
                db.rollback()
                logger.error(f"[{process_id}] Could not save video record: {e}")

            try:
                ledger = CreditLedger(db)
                ledger.ensure_account(user_id)
                ledger.debit_for_video(user_id, process_id, credits)
                charged = credits
            except Exception as e:
                db.rollback()
                logger.error(f"[{process_id}] Credit debit of {credits} failed, delivering video anyway: {e}")
        finally:
            db.close()

        return self._update_progress(
            process_id,
            final_video_url=composition.url,
            duration_seconds=composition.duration_seconds,
            credits_charged=charged,
            stage=GenerationStage.DONE,
            progress=100,
            status="Complete!",
        )

    # Helpers

    def _checkpoint(self, process_id: str):
        """Stop between stages when the user cancelled."""
        if self.progress_store.is_cancel_requested(process_id):
            raise PipelineCancelled()

    async def _start(self, process_id: str, label: str, func, *args) -> str:
        """Call a start endpoint with linear backoff between attempts."""
        try:
            return await retry_call(
                func,
                *args,
                max_attempts=self.start_max_attempts,
                retry_delay=self.start_retry_delay,
                exponential_backoff=False,
                sleep=self.sleep,
                label=label,
            )
        except NonRetryableError as e:
            raise PipelineFailure(f"Failed to start {label}: {e}") from e
        except WorkerException as e:
            raise PipelineFailure(
                f"Failed to start {label} after {self.start_max_attempts} attempts: {e}"
            ) from e

    async def _poll(
        self,
        process_id: str,
        label: str,
        func,
        reference: str,
        progress_from: int,
        progress_to: int,
    ):
        """
        Poll until the vendor reports completion.

        Transient errors are logged and do not use up the stage; running out
        of attempts is fatal.
        """
        span = progress_to - progress_from

        for attempt in range(1, self.poll_max_attempts + 1):
            await self.sleep(self.poll_interval)
            self._checkpoint(process_id)

            try:
                result = await func(reference)
            except NonRetryableError as e:
                raise PipelineFailure(f"{label} generation failed: {e}") from e
            except (RetryableError, TimeoutError, ConnectionError) as e:
                logger.warning(f"[{process_id}] Error polling {label} status (attempt {attempt}): {e}")
                continue

            if result.completed:
                logger.info(f"[{process_id}] {label} completed after {attempt} polls")
                return result

            logger.debug(f"[{process_id}] {label} status (attempt {attempt}): {result.status}")
            self._update_progress(
                process_id,
                progress=progress_from + (span * attempt) // self.poll_max_attempts,
                status=f"{label} processing: {result.status or 'in progress'}...",
            )

        raise PipelineFailure(
            f"{label} generation timed out after {self.poll_max_attempts} attempts"
        )

    async def _fail(self, process_id: str, message: str, uploaded_paths: List[str]) -> GenerationProcess:
        record = self._update_progress(
            process_id,
            stage=GenerationStage.FAILED,
            progress=100,
            status=f"{ERROR_PREFIX} {message}",
            error=message,
        )
        await self._cleanup(process_id, uploaded_paths)
        return record

    async def _cleanup(self, process_id: str, uploaded_paths: List[str]):
        if not uploaded_paths:
            return
        results = await self.gateway.delete_uploads(uploaded_paths)
        failed = [path for path, error in results.items() if error]
        if failed:
            logger.warning(f"[{process_id}] Could not clean up {len(failed)} uploaded file(s): {failed}")
        else:
            logger.info(f"[{process_id}] Cleaned up {len(uploaded_paths)} uploaded file(s)")
