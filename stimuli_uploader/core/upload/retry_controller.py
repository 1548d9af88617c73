"""
Retry controller.

Decides whether a failed upload goes back to the queue or ends in ERROR.
The transient/terminal classification comes from the transport's error type.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..config import RetryConfig
from ..exceptions import TransportError
from ..logging import get_logger
from ..retry import RetryStrategy
from .models import UploadTask


class RetryAction(Enum):
    RETRY = "retry"
    GIVE_UP = "give_up"


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of a failure: the action and the delay before resubmitting."""
    action: RetryAction
    delay: float = 0.0
    reason: str = ''

    @property
    def should_retry(self) -> bool:
        return self.action is RetryAction.RETRY


class RetryController:
    """
    Automatic retry policy for failed uploads.

    With the default config (``max_retries=0``) every failure is final and
    recovery is left to an explicit retry request.

    The budget counts automatic attempts only. Callers pass that count as
    ``attempt``; it falls back to ``task.retry_count``, which also includes
    manual retries.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        strategy: Optional[RetryStrategy] = None
    ):
        self._config = config or RetryConfig()
        self._strategy = strategy or self._config.create_strategy()
        self._logger = get_logger('stimuli_uploader.retry')

    @property
    def max_retries(self) -> int:
        return self._config.max_retries

    @property
    def strategy(self) -> RetryStrategy:
        return self._strategy

    @staticmethod
    def is_transient(error: Exception) -> bool:
        return isinstance(error, TransportError) and error.retryable

    def on_failure(
        self,
        task: UploadTask,
        error: TransportError,
        attempt: Optional[int] = None
    ) -> RetryDecision:
        """
        Decide what happens to a task whose upload just failed.

        Args:
            task: Snapshot of the failed task (still UPLOADING)
            error: Failure reported by the transport
            attempt: Automatic retries already spent on this task

        Returns:
            RETRY with a delay, or GIVE_UP
        """
        if not self.is_transient(error):
            self._logger.debug(f"Task {task.id}: terminal failure, not retrying")
            return RetryDecision(RetryAction.GIVE_UP, reason='terminal')

        if attempt is None:
            attempt = task.retry_count

        if not self._strategy.should_retry(error, attempt, self._config.max_retries):
            self._logger.debug(
                f"Task {task.id}: retries exhausted ({attempt}/{self._config.max_retries})"
            )
            return RetryDecision(RetryAction.GIVE_UP, reason='exhausted')

        delay = self._strategy.get_delay(attempt)
        self._logger.warning(
            f"Upload of {task.filename} failed ({error}); retry "
            f"{attempt + 1}/{self._config.max_retries} in {delay:.2f}s"
        )
        return RetryDecision(RetryAction.RETRY, delay=delay, reason='transient')
