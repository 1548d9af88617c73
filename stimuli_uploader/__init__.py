"""
Stimuli Uploader - Async upload queue for study stimulus files.

Usage:
    >>> from stimuli_uploader import UploadManager, HttpTransport, FileInfo
    >>>
    >>> async with UploadManager(HttpTransport(), max_concurrent=3) as manager:
    ...     status = await manager.upload_files([FileInfo.from_path("card.png")])
    ...     print(status.completed, status.failed)
"""
from .manager import UploadManager

# Configuration
from .core.config import (
    UploadPolicy,
    RetryConfig,
    TimeoutConfig,
    TransportConfig,
    QueueConfig
)

# Models and transport
from .core.upload import (
    UploadStatus,
    FileInfo,
    UploadResult,
    BatchUploadResult,
    UploadTask,
    QueueStatus,
    HttpTransport,
    TransportProtocol
)

from .core.exceptions import (
    UploadException,
    ValidationError,
    FileTypeRejectedError,
    FileSizeRejectedError,
    CapacityExceededError,
    TransportError,
    TransientTransportError,
    TerminalTransportError,
    CancellationError,
    InvalidTransitionError,
    TaskNotFoundError
)
from .core.logging import setup_logging

__version__ = '1.0.0'

__all__ = [
    'UploadManager',
    'UploadPolicy',
    'RetryConfig',
    'TimeoutConfig',
    'TransportConfig',
    'QueueConfig',
    'UploadStatus',
    'FileInfo',
    'UploadResult',
    'BatchUploadResult',
    'UploadTask',
    'QueueStatus',
    'HttpTransport',
    'TransportProtocol',
    'UploadException',
    'ValidationError',
    'FileTypeRejectedError',
    'FileSizeRejectedError',
    'CapacityExceededError',
    'TransportError',
    'TransientTransportError',
    'TerminalTransportError',
    'CancellationError',
    'InvalidTransitionError',
    'TaskNotFoundError',
    'setup_logging',
]
