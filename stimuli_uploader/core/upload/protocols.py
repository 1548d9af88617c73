"""
Protocol definitions for the upload module.

Defines the interfaces the queue manager depends on, so transports and
validators can be swapped without touching scheduling logic.
"""
from typing import Protocol, AsyncIterator, Sequence, runtime_checkable

from ..config import UploadPolicy
from .models import FileInfo, TransportEvent, BatchUploadResult


@runtime_checkable
class TransportProtocol(Protocol):
    """
    Protocol for upload transports.

    ``upload`` yields ProgressEvent items followed by exactly one
    SuccessEvent or FailureEvent. The manager consumes the stream and never
    inspects how the bytes travel.
    """

    def upload(self, file: FileInfo) -> AsyncIterator[TransportEvent]:
        """
        Upload a single file.

        Args:
            file: File to send

        Returns:
            Async iterator of transport events
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...


@runtime_checkable
class BatchTransportProtocol(TransportProtocol, Protocol):
    """Transport that can also send several files in one request."""

    async def upload_batch(self, files: Sequence[FileInfo]) -> BatchUploadResult:
        """
        Upload several files in one call.

        Args:
            files: Files to send

        Returns:
            Per-file outcome reported by the server

        Raises:
            TransportError: If the request as a whole failed
        """
        ...


class FileValidatorProtocol(Protocol):
    """Protocol for pre-enqueue validation."""

    def validate(self, file: FileInfo, policy: UploadPolicy) -> None:
        """
        Validate a file against a policy.

        Raises:
            ValidationError: If the file is rejected
        """
        ...
