"""
Exception Hierarchy
Errors shared by the service gateway, the pipeline and the API.
"""

from typing import Optional


class WorkerException(Exception):
    """Base exception for worker errors."""

    def __init__(self, message: str, retryable: bool = True, details: Optional[dict] = None):
        super().__init__(message)
        self.retryable = retryable
        self.details = details or {}


class NonRetryableError(WorkerException):
    """Error that should NOT be retried (e.g., invalid input)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, retryable=False, details=details)


class RetryableError(WorkerException):
    """Error that SHOULD be retried (e.g., API timeout)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, retryable=True, details=details)


class PipelineFailure(Exception):
    """Fatal-to-pipeline error. The message is shown to the user after 'Error: '."""


class PipelineCancelled(PipelineFailure):
    """The user asked for the process to stop."""

    def __init__(self, message: str = "Cancelled by user"):
        super().__init__(message)


class ProcessNotFoundError(Exception):
    """Raised when a process id has no progress record."""

    def __init__(self, process_id: str):
        super().__init__(f"Process not found: {process_id}")
        self.process_id = process_id
