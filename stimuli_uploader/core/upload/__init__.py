"""
Upload module for stimulus files.

Queue, scheduler and retry policy are plain synchronous components; the
manager on top drives them from the event loop. Transports are pluggable
through TransportProtocol.
"""
from .queue import UploadQueue
from .scheduler import ConcurrencyScheduler
from .retry_controller import RetryController, RetryDecision, RetryAction
from .aggregate import AggregateView, compute_status
from .messages import StatusMessages
from .validation import FileValidator
from .models import (
    UploadStatus,
    FileInfo,
    UploadResult,
    BatchUploadResult,
    UploadTask,
    QueueStatus,
    ProgressEvent,
    SuccessEvent,
    FailureEvent,
    TransportEvent
)
from .protocols import (
    TransportProtocol,
    BatchTransportProtocol,
    FileValidatorProtocol
)
from .transport import HttpTransport

__all__ = [
    # Components
    'UploadQueue',
    'ConcurrencyScheduler',
    'RetryController',
    'RetryDecision',
    'RetryAction',
    'AggregateView',
    'compute_status',
    'StatusMessages',
    'FileValidator',
    'HttpTransport',

    # Models
    'UploadStatus',
    'FileInfo',
    'UploadResult',
    'BatchUploadResult',
    'UploadTask',
    'QueueStatus',
    'ProgressEvent',
    'SuccessEvent',
    'FailureEvent',
    'TransportEvent',

    # Protocols
    'TransportProtocol',
    'BatchTransportProtocol',
    'FileValidatorProtocol',
]
