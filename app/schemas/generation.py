"""
Generation Schemas
Pydantic models for the generation process record and the submit/progress API.
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union
from pydantic import BaseModel, Field, model_validator

ERROR_PREFIX = "Error:"


class ScriptOption(str, Enum):
    """Where the narration script comes from."""
    GPT = "gpt"
    CUSTOM = "custom"


class GenerationStage(str, Enum):
    """Pipeline stages in execution order."""
    STARTED = "started"
    UPLOADING_MEDIA = "uploading_media"
    SCRIPTING = "scripting"
    SYNTHESIZING = "synthesizing"
    COMPOSITING = "compositing"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class ProgressOutcome(BaseModel):
    kind: Literal["progress"] = "progress"


class SuccessOutcome(BaseModel):
    kind: Literal["success"] = "success"
    final_video_url: str


class FailedOutcome(BaseModel):
    kind: Literal["failed"] = "failed"
    reason: str


GenerationOutcome = Union[ProgressOutcome, SuccessOutcome, FailedOutcome]


class GenerationProcess(BaseModel):
    """
    State of one generation run as kept in the progress store.

    Written only by the pipeline that owns the process; everyone else reads.
    """
    process_id: str
    user_id: Optional[str] = None

    progress: int = Field(0, ge=0, le=100)
    status: str = "Starting..."
    stage: GenerationStage = GenerationStage.STARTED

    # Submission echo
    voice_id: Optional[str] = None
    voice_media_url: Optional[str] = None
    supporting_media_url: Optional[str] = None
    high_resolution: bool = False

    # Stage results (append-only)
    script_text: Optional[str] = None
    ai_video_url: Optional[str] = None
    final_video_url: Optional[str] = None

    # Billing
    duration_seconds: Optional[float] = None
    credits_charged: Optional[int] = None

    error: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.progress >= 100

    @property
    def is_error(self) -> bool:
        return self.status.startswith(ERROR_PREFIX)

    def to_outcome(self) -> GenerationOutcome:
        """Typed view of the terminal signal carried by progress/status."""
        if not self.is_terminal:
            return ProgressOutcome()
        if self.is_error or not self.final_video_url:
            reason = self.error or self.status[len(ERROR_PREFIX):].strip() or "Unknown error"
            return FailedOutcome(reason=reason)
        return SuccessOutcome(final_video_url=self.final_video_url)


class GenerationRequest(BaseModel):
    """Submission payload."""
    script_option: ScriptOption = ScriptOption.GPT
    topic: Optional[str] = None
    custom_script: Optional[str] = None
    supporting_media: Optional[str] = Field(None, description="URL of the supporting video or image")
    voice_id: str = Field(..., min_length=1)
    voice_media: Optional[str] = Field(None, description="URL of the portrait for the avatar")
    high_resolution: bool = False

    @model_validator(mode="after")
    def check_script_source(self):
        if self.script_option == ScriptOption.GPT and not (self.topic or "").strip():
            raise ValueError("topic is required when script_option is 'gpt'")
        if self.script_option == ScriptOption.CUSTOM and not (self.custom_script or "").strip():
            raise ValueError("custom_script is required when script_option is 'custom'")
        return self


class MediaFile(BaseModel):
    """Raw file handed from the API to the pipeline for upload."""
    filename: str
    content_type: str = "application/octet-stream"
    data: bytes


class GenerationSubmitResponse(BaseModel):
    process_id: str
    status: str
    message: str


class GenerationStatusResponse(GenerationProcess):
    """Progress snapshot returned to pollers."""
    outcome: GenerationOutcome = Field(..., discriminator="kind")

    @classmethod
    def from_process(cls, process: GenerationProcess) -> "GenerationStatusResponse":
        return cls(**process.model_dump(), outcome=process.to_outcome())


class UploadResponse(BaseModel):
    url: str
    durable: bool
