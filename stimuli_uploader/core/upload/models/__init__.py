"""Upload models."""
from .upload_models import (
    UploadStatus,
    ALLOWED_TRANSITIONS,
    can_transition,
    FileInfo,
    UploadResult,
    BatchUploadResult,
    UploadTask,
    QueueStatus
)
from .transport_events import (
    ProgressEvent,
    SuccessEvent,
    FailureEvent,
    TransportEvent
)

__all__ = [
    'UploadStatus',
    'ALLOWED_TRANSITIONS',
    'can_transition',
    'FileInfo',
    'UploadResult',
    'BatchUploadResult',
    'UploadTask',
    'QueueStatus',
    'ProgressEvent',
    'SuccessEvent',
    'FailureEvent',
    'TransportEvent'
]
