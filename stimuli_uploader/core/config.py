"""
Upload configuration module.

Provides configuration for validation policy, retry behaviour, the queue
and the HTTP transport. Open for extension through custom configurations.
"""
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, FrozenSet, Iterable

from .retry import RetryStrategy, ImmediateRetryStrategy, ExponentialBackoffStrategy

MB = 1024 * 1024

# Types accepted by the study builder's stimulus dropzone
STIMULI_ACCEPTED_TYPES = frozenset({
    'image/*',
    'video/*',
    'audio/*',
    'application/pdf',
})

STIMULI_MAX_FILE_SIZE = 50 * MB


@dataclass(frozen=True)
class UploadPolicy:
    """
    File type and size policy applied before a file is enqueued.

    Attributes:
        accepted_types: Allowed MIME types; empty means any type. Entries of
            the form ``image/*`` accept every subtype.
        max_file_size: Maximum size in bytes; None disables the check.
    """
    accepted_types: FrozenSet[str] = frozenset()
    max_file_size: Optional[int] = None

    def __post_init__(self):
        normalized = frozenset(t.strip().lower() for t in self.accepted_types if t)
        object.__setattr__(self, 'accepted_types', normalized)

    def accepts_type(self, mime_type: Optional[str]) -> bool:
        """Returns True if the MIME type passes the type policy."""
        if not self.accepted_types:
            return True
        if not mime_type:
            return False
        mime_type = mime_type.lower()
        if mime_type in self.accepted_types:
            return True
        major = mime_type.split('/', 1)[0]
        return f"{major}/*" in self.accepted_types

    @classmethod
    def permissive(cls) -> 'UploadPolicy':
        """Accept any type and size."""
        return cls()

    @classmethod
    def stimuli(cls) -> 'UploadPolicy':
        """Images, video, audio and PDF up to 50 MB."""
        return cls(
            accepted_types=STIMULI_ACCEPTED_TYPES,
            max_file_size=STIMULI_MAX_FILE_SIZE
        )

    @classmethod
    def from_options(
        cls,
        accepted_types: Optional[Iterable[str]] = None,
        max_file_size: Optional[int] = None
    ) -> 'UploadPolicy':
        """Create a policy from loose caller options."""
        return cls(
            accepted_types=frozenset(accepted_types or ()),
            max_file_size=max_file_size
        )


@dataclass
class RetryConfig:
    """
    Retry configuration.

    Controls automatic retry of transient failures. ``max_retries=0`` means
    failed uploads wait for an explicit retry.
    """
    max_retries: int = 0
    base_delay: float = 1.0
    max_delay: float = 16.0
    exponential_base: float = 2.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    def create_strategy(self) -> RetryStrategy:
        """Build the backoff strategy described by this config."""
        if self.base_delay <= 0:
            return ImmediateRetryStrategy()
        return ExponentialBackoffStrategy(
            base_delay=self.base_delay,
            exponential_base=self.exponential_base,
            max_delay=self.max_delay
        )


@dataclass
class TimeoutConfig:
    """
    Timeout configuration.

    Granular control over different timeout types.
    """
    total: float = 300.0  # Total request timeout
    connect: float = 30.0  # Connection timeout
    sock_read: float = 60.0  # Socket read timeout

    def to_aiohttp_timeout(self):
        """Convert to aiohttp ClientTimeout."""
        import aiohttp
        return aiohttp.ClientTimeout(
            total=self.total,
            connect=self.connect,
            sock_read=self.sock_read
        )


@dataclass
class TransportConfig:
    """
    HTTP transport configuration.

    Attributes:
        base_url: Backend origin, e.g. ``https://study.example.org``
        upload_path: Single-file endpoint
        batch_path: Multi-file endpoint
        field_name: Multipart field carrying the file
        chunk_size: Bytes per streamed body piece (one progress tick each)
    """
    base_url: str = 'http://localhost:4000'
    upload_path: str = '/api/upload/stimuli'
    batch_path: str = '/api/upload/batch'
    field_name: str = 'file'
    chunk_size: int = 64 * 1024
    user_agent: str = 'stimuli-uploader/1.0.0'
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    extra_headers: Dict[str, str] = field(default_factory=dict)
    extra_fields: Dict[str, str] = field(default_factory=dict)
    limit_per_host: int = 10

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

    @property
    def upload_url(self) -> str:
        return self.base_url.rstrip('/') + self.upload_path

    @property
    def batch_url(self) -> str:
        return self.base_url.rstrip('/') + self.batch_path

    def get_connector_kwargs(self) -> Dict[str, Any]:
        """Get kwargs for aiohttp TCPConnector."""
        return {
            'limit_per_host': self.limit_per_host,
        }

    def get_session_kwargs(self) -> Dict[str, Any]:
        """Get kwargs for aiohttp ClientSession."""
        headers = {
            'User-Agent': self.user_agent,
            **self.extra_headers
        }

        return {
            'headers': headers,
            'timeout': self.timeout.to_aiohttp_timeout(),
        }


@dataclass
class QueueConfig:
    """
    Upload queue configuration.

    Attributes:
        max_concurrent: Slots available for simultaneous uploads
        capacity: Optional cap on the number of queued files (grid cells)
        policy: Policy used when enqueue is called without one
        retry: Automatic retry settings
    """
    max_concurrent: int = 3
    capacity: Optional[int] = None
    policy: UploadPolicy = field(default_factory=UploadPolicy)
    retry: RetryConfig = field(default_factory=RetryConfig)

    def __post_init__(self):
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if self.capacity is not None and self.capacity < 0:
            raise ValueError("capacity must be >= 0")

    @classmethod
    def default(cls) -> 'QueueConfig':
        """Create default configuration."""
        return cls()

    @classmethod
    def for_study(cls, total_cells: int, **kwargs) -> 'QueueConfig':
        """Stimuli policy with capacity bound to the study grid."""
        kwargs.setdefault('policy', UploadPolicy.stimuli())
        return cls(capacity=total_cells, **kwargs)
