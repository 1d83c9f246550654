"""
Progress Poller
Client-side read path: polls a process until it is terminal and translates
its state into user-facing step messages.

Stopping a poller only stops reading. The pipeline keeps running; use the
cancel endpoint to stop it.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from app.core.exceptions import ProcessNotFoundError
from app.schemas.generation import GenerationStage, GenerationStatusResponse

logger = logging.getLogger(__name__)

Fetch = Callable[[str], Awaitable[GenerationStatusResponse]]
OnUpdate = Callable[[GenerationStatusResponse], None]

STEP_MESSAGES = {
    GenerationStage.UPLOADING_MEDIA: "Preparing your media for AI processing...",
    GenerationStage.SCRIPTING: "Creating an engaging script with our AI...",
    GenerationStage.SYNTHESIZING: "Bringing your portrait to life...",
    GenerationStage.COMPOSITING: "Fusing your videos together...",
    GenerationStage.FINALIZING: "Saving your video...",
    GenerationStage.DONE: "Your video is ready!",
}
DEFAULT_STEP_MESSAGE = "Starting up the AI engines..."

# Fallback matching for records that carry no stage
STATUS_PREFIXES = (
    ("Uploading", GenerationStage.UPLOADING_MEDIA),
    ("Generating script", GenerationStage.SCRIPTING),
    ("Using custom script", GenerationStage.SCRIPTING),
    ("Generating AI video", GenerationStage.SYNTHESIZING),
    ("AI video processing", GenerationStage.SYNTHESIZING),
    ("Creating final", GenerationStage.COMPOSITING),
    ("Final video processing", GenerationStage.COMPOSITING),
    ("Complete", GenerationStage.DONE),
)


def describe_step(snapshot: GenerationStatusResponse) -> str:
    """User-facing message for the step a snapshot is in."""
    if snapshot.outcome.kind == "failed":
        return f"Something went wrong: {snapshot.outcome.reason}"

    stage = snapshot.stage
    if stage == GenerationStage.STARTED:
        for prefix, matched in STATUS_PREFIXES:
            if snapshot.status.startswith(prefix):
                stage = matched
                break

    return STEP_MESSAGES.get(stage, DEFAULT_STEP_MESSAGE)


class HttpProgressClient:
    """Fetches progress snapshots from the API."""

    def __init__(
        self,
        base_url: str,
        user_id: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.timeout = timeout
        self.transport = transport

    async def fetch(self, process_id: str) -> GenerationStatusResponse:
        """
        Raises:
            ProcessNotFoundError: the API does not know the process
            httpx.HTTPError: transport failure or any other error status
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(
                f"{self.base_url}/api/v1/generations/{process_id}",
                headers={"X-User-Id": self.user_id},
            )

        if response.status_code == 404:
            raise ProcessNotFoundError(process_id)
        response.raise_for_status()
        return GenerationStatusResponse.model_validate(response.json())

    async def __call__(self, process_id: str) -> GenerationStatusResponse:
        return await self.fetch(process_id)


class ProgressPoller:
    """
    Polls one process until progress reaches 100.

    Usage:
        poller = ProgressPoller(HttpProgressClient(url, user_id))
        final = await poller.wait(process_id, on_update=print)
    """

    def __init__(
        self,
        fetch: Fetch,
        interval: float = 2.0,
        max_consecutive_errors: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetch = fetch
        self.interval = interval
        self.max_consecutive_errors = max_consecutive_errors
        self.sleep = sleep
        self._stopped = False

    def stop(self):
        """Stop polling after the current read. Does not affect the pipeline."""
        self._stopped = True

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def wait(self, process_id: str, on_update: Optional[OnUpdate] = None) -> Optional[GenerationStatusResponse]:
        """
        Poll until the process is terminal.

        Returns the terminal snapshot, or the last snapshot seen when stop()
        was called first.

        Raises:
            ProcessNotFoundError: the process is unknown
            httpx.HTTPError: more than max_consecutive_errors reads in a row failed
        """
        self._stopped = False
        last: Optional[GenerationStatusResponse] = None
        errors = 0

        while not self._stopped:
            try:
                snapshot = await self.fetch(process_id)
            except ProcessNotFoundError:
                raise
            except httpx.HTTPError as e:
                errors += 1
                logger.warning(f"[Poller] Error checking progress of {process_id} ({errors}): {e}")
                if errors > self.max_consecutive_errors:
                    raise
                await self.sleep(self.interval)
                continue

            errors = 0
            last = snapshot
            if on_update:
                on_update(snapshot)

            if snapshot.is_terminal:
                logger.info(f"[Poller] {process_id} finished: {snapshot.outcome.kind}")
                return snapshot

            await self.sleep(self.interval)

        logger.info(f"[Poller] Stopped polling {process_id}")
        return last
