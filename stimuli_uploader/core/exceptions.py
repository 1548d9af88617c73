"""
Custom exceptions for stimulus upload operations.

Validation errors are raised before a file enters the queue; transport
errors describe a failed network call and carry a retry classification.
"""
from typing import Optional

from .utils import format_file_size


class UploadException(Exception):
    """Base exception for all upload-related errors."""

    def __init__(self, message: str, error_code: Optional[int] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            error_code: Numeric error code (if available)
        """
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class ValidationError(UploadException):
    """Raised when a file is rejected before it is enqueued."""
    pass


class FileTypeRejectedError(ValidationError):
    """Raised when the file's MIME type is not accepted by the policy."""

    def __init__(self, mime_type: str) -> None:
        self.mime_type = mime_type
        super().__init__(f"File type not allowed: {mime_type or 'unknown'}")


class FileSizeRejectedError(ValidationError):
    """Raised when the file is larger than the policy allows."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"File size exceeds limit of {format_file_size(limit)}")


class CapacityExceededError(ValidationError):
    """Raised when the queue already holds as many files as the grid has cells."""

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        super().__init__(
            f"Cannot upload more stimuli. Your grid has {capacity} cells "
            f"and all are filled."
        )


class TransportError(UploadException):
    """
    Raised (or reported) when an upload request fails.

    Attributes:
        status_code: HTTP status code, None for network-level failures
        retryable: Whether an automatic retry may succeed
    """

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message, status_code)


class TransientTransportError(TransportError):
    """Network failure or server-side (5xx) error; eligible for retry."""

    retryable = True


class TerminalTransportError(TransportError):
    """Server rejected the payload; retrying unchanged will not help."""

    retryable = False


class CancellationError(UploadException):
    """Recorded on a task removed while its upload was in flight."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Upload cancelled: {filename}")


class InvalidTransitionError(UploadException):
    """Raised on an illegal upload status change (e.g. COMPLETE -> UPLOADING)."""

    def __init__(self, task_id: str, current, target) -> None:
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(
            f"Illegal transition for task {task_id}: {current.value} -> {target.value}"
        )


class TaskNotFoundError(UploadException):
    """Raised when a task id is not present in the queue."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Upload task not found: {task_id}")
