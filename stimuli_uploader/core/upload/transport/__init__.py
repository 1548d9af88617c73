"""Upload transports."""
from .http_transport import HttpTransport, RETRYABLE_STATUS_CODES

__all__ = [
    'HttpTransport',
    'RETRYABLE_STATUS_CODES',
]
