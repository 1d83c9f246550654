# Pydantic schemas package
from app.schemas.generation import (
    ERROR_PREFIX, ScriptOption, GenerationStage, GenerationProcess, GenerationRequest,
    GenerationOutcome, ProgressOutcome, SuccessOutcome, FailedOutcome, MediaFile,
    GenerationSubmitResponse, GenerationStatusResponse, UploadResponse
)
from app.schemas.video import VideoResponse, VideoListResponse
from app.schemas.credits import (
    CreditTransactionResponse, SubscriptionResponse, CreditSummaryResponse, MonthlyResetResponse
)

__all__ = [
    # Generation
    "ERROR_PREFIX", "ScriptOption", "GenerationStage", "GenerationProcess", "GenerationRequest",
    "GenerationOutcome", "ProgressOutcome", "SuccessOutcome", "FailedOutcome", "MediaFile",
    "GenerationSubmitResponse", "GenerationStatusResponse", "UploadResponse",
    # Videos
    "VideoResponse", "VideoListResponse",
    # Credits
    "CreditTransactionResponse", "SubscriptionResponse", "CreditSummaryResponse", "MonthlyResetResponse",
]
