"""
Concurrency scheduler.

Admit-on-vacancy: every time a slot may have opened, fill free slots with
the earliest-enqueued PENDING tasks.
"""
from typing import List

from ..logging import get_logger
from .models import UploadStatus, UploadTask
from .queue import UploadQueue


class ConcurrencyScheduler:
    """
    Keeps ``active_count <= max_concurrent`` while never leaving a slot idle
    when a PENDING task exists.

    The active count is derived from the queue on every call, so removing or
    failing a task frees its slot without extra bookkeeping.
    """

    def __init__(self, queue: UploadQueue, max_concurrent: int = 3):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._queue = queue
        self._max_concurrent = max_concurrent
        self._peak_active = 0
        self._logger = get_logger('stimuli_uploader.scheduler')

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active_count(self) -> int:
        return self._queue.count(UploadStatus.UPLOADING)

    @property
    def free_slots(self) -> int:
        return max(0, self._max_concurrent - self.active_count)

    @property
    def peak_active(self) -> int:
        """Highest number of simultaneous UPLOADING tasks seen."""
        return self._peak_active

    def admit(self) -> List[UploadTask]:
        """
        Fill free slots in FIFO order.

        Returns:
            Snapshots of the tasks moved to UPLOADING, in admission order
        """
        admitted: List[UploadTask] = []
        active = self.active_count

        while active < self._max_concurrent:
            task_id = self._queue.first_pending()
            if task_id is None:
                break
            admitted.append(self._queue.transition(task_id, UploadStatus.UPLOADING))
            active += 1
            self._peak_active = max(self._peak_active, active)

        if admitted:
            self._logger.debug(
                f"Admitted {len(admitted)} task(s); {active}/{self._max_concurrent} slots in use"
            )
        return admitted
