"""Discrete events a transport reports for one upload."""
from dataclasses import dataclass
from typing import Union

from ...exceptions import TransportError
from .upload_models import UploadResult


@dataclass(frozen=True)
class ProgressEvent:
    """Bytes were sent; ``progress`` is a percentage (0-100)."""
    progress: float


@dataclass(frozen=True)
class SuccessEvent:
    """The server stored the file."""
    result: UploadResult


@dataclass(frozen=True)
class FailureEvent:
    """The upload failed; ``error.retryable`` tells whether to retry."""
    error: TransportError


TransportEvent = Union[ProgressEvent, SuccessEvent, FailureEvent]
