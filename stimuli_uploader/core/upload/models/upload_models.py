"""
Data models for the upload queue.

Uses dataclasses for type-safe data structures and a closed Enum for the
task lifecycle.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional, List, Union, FrozenSet
import mimetypes
import time


class UploadStatus(Enum):
    """Lifecycle state of an upload task."""

    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.COMPLETE, UploadStatus.ERROR)


# Every legal status change. UPLOADING -> PENDING is an automatic retry,
# ERROR -> PENDING a manual one.
ALLOWED_TRANSITIONS: Dict[UploadStatus, FrozenSet[UploadStatus]] = {
    UploadStatus.PENDING: frozenset({UploadStatus.UPLOADING}),
    UploadStatus.UPLOADING: frozenset({
        UploadStatus.COMPLETE,
        UploadStatus.ERROR,
        UploadStatus.PENDING,
    }),
    UploadStatus.COMPLETE: frozenset(),
    UploadStatus.ERROR: frozenset({UploadStatus.PENDING}),
}


def can_transition(current: UploadStatus, target: UploadStatus) -> bool:
    """Returns True if ``current -> target`` is a legal status change."""
    return target in ALLOWED_TRANSITIONS[current]


@dataclass
class FileInfo:
    """
    Reference to a file offered for upload.

    The content comes either from ``path`` (streamed from disk) or from
    ``data`` (held in memory). The task keeps this object by reference.

    Example:
        >>> info = FileInfo.from_bytes("card-01.txt", b"Statement one")
        >>> info.size, info.mime_type
        (13, 'text/plain')
    """
    name: str
    size: int
    mime_type: str = 'application/octet-stream'
    path: Optional[Path] = None
    data: Optional[bytes] = None

    def __post_init__(self):
        if isinstance(self.path, str):
            self.path = Path(self.path)
        if self.size < 0:
            raise ValueError("File size cannot be negative")

    @property
    def has_content(self) -> bool:
        return self.data is not None or self.path is not None

    @staticmethod
    def guess_mime_type(name: str) -> str:
        mime_type, _ = mimetypes.guess_type(name)
        return mime_type or 'application/octet-stream'

    @classmethod
    def from_path(
        cls,
        path: Union[str, Path],
        mime_type: Optional[str] = None,
        name: Optional[str] = None
    ) -> 'FileInfo':
        """
        Build a FileInfo from a local file.

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If path is not a regular file
        """
        path = Path(path) if isinstance(path, str) else path
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        if not path.is_file():
            raise ValueError(f"Path is not a file: {path}")

        return cls(
            name=name or path.name,
            size=path.stat().st_size,
            mime_type=mime_type or cls.guess_mime_type(path.name),
            path=path
        )

    @classmethod
    def from_bytes(
        cls,
        name: str,
        data: bytes,
        mime_type: Optional[str] = None
    ) -> 'FileInfo':
        """Build a FileInfo around in-memory content."""
        return cls(
            name=name,
            size=len(data),
            mime_type=mime_type or cls.guess_mime_type(name),
            data=data
        )


@dataclass(frozen=True)
class UploadResult:
    """
    Server response for one stored file.

    Attributes:
        id: Identifier assigned by the backend
        url: Public URL of the stored file
        filename: Name the backend stored the file under
        metadata: Extra fields (dimensions, size, type...)
    """
    id: str
    url: str
    filename: str = ''
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UploadResult':
        """Create from an endpoint ``data`` object."""
        metadata = dict(data.get('metadata') or {})
        if 'type' in data and 'type' not in metadata:
            metadata['type'] = data['type']
        return cls(
            id=str(data.get('id', '')),
            url=data.get('url') or '',
            filename=data.get('filename', ''),
            metadata=metadata
        )


@dataclass(frozen=True)
class BatchUploadResult:
    """
    Result of one batch endpoint call.

    Attributes:
        uploaded: Number of files the server stored
        failed: Number of files the server rejected
        results: One entry per stored file
        errors: Filename -> error message for rejected files
    """
    uploaded: int
    failed: int
    results: List[UploadResult] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BatchUploadResult':
        results = [UploadResult.from_dict(item) for item in data.get('results') or []]
        errors: Dict[str, str] = {}
        for item in data.get('errors') or []:
            if isinstance(item, dict) and item.get('filename'):
                errors[item['filename']] = item.get('error') or item.get('message') or 'Upload failed'
        return cls(
            uploaded=int(data.get('uploaded', len(results))),
            failed=int(data.get('failed', len(errors))),
            results=results,
            errors=errors
        )


@dataclass
class UploadTask:
    """
    One file's upload unit of work.

    Invariants kept by the queue:
    - ``url`` is set if and only if status is COMPLETE
    - ``error`` is set if and only if status is ERROR
    - ``progress`` is 100 whenever status is COMPLETE
    """
    id: str
    file: FileInfo
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    url: Optional[str] = None
    error: Optional[str] = None
    retry_count: int = 0
    result: Optional[UploadResult] = None
    batch_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def filename(self) -> str:
        return self.file.name

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def snapshot(self) -> 'UploadTask':
        """Shallow copy; the file reference is shared."""
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'filename': self.file.name,
            'size': self.file.size,
            'mime_type': self.file.mime_type,
            'status': self.status.value,
            'progress': self.progress,
            'url': self.url,
            'error': self.error,
            'retry_count': self.retry_count,
        }


@dataclass(frozen=True)
class QueueStatus:
    """
    Aggregate counts over the queue at one instant.

    Attributes:
        total: Tasks in the queue
        pending: Tasks waiting for a slot
        uploading: Tasks holding a slot
        completed: Tasks that finished successfully
        failed: Tasks in the error state
        progress: Unweighted mean progress, 0-100
    """
    total: int = 0
    pending: int = 0
    uploading: int = 0
    completed: int = 0
    failed: int = 0
    progress: int = 0

    @property
    def is_all_done(self) -> bool:
        """True when no task is pending or uploading."""
        return self.pending == 0 and self.uploading == 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'total': self.total,
            'pending': self.pending,
            'uploading': self.uploading,
            'completed': self.completed,
            'failed': self.failed,
            'progress': self.progress,
        }
