"""Aggregate view: counts and overall progress derived from the queue on read."""
from typing import Iterable, List

from ..utils import round_half_up
from .models import QueueStatus, UploadStatus, UploadTask
from .queue import UploadQueue


def compute_status(tasks: Iterable[UploadTask]) -> QueueStatus:
    """
    Summarise a task snapshot.

    Overall progress is the unweighted mean of every task's progress,
    terminal tasks included, rounded to the nearest integer.
    """
    counts = {status: 0 for status in UploadStatus}
    total = 0
    progress_sum = 0

    for task in tasks:
        counts[task.status] += 1
        total += 1
        progress_sum += task.progress

    return QueueStatus(
        total=total,
        pending=counts[UploadStatus.PENDING],
        uploading=counts[UploadStatus.UPLOADING],
        completed=counts[UploadStatus.COMPLETE],
        failed=counts[UploadStatus.ERROR],
        progress=round_half_up(progress_sum / total) if total else 0
    )


class AggregateView:
    """Read-only summaries over a live queue. Nothing is cached."""

    def __init__(self, queue: UploadQueue):
        self._queue = queue

    def status(self) -> QueueStatus:
        return compute_status(self._queue.all())

    def active_count(self) -> int:
        return self._queue.count(UploadStatus.UPLOADING)

    def completed_count(self) -> int:
        return self._queue.count(UploadStatus.COMPLETE)

    def failed_count(self) -> int:
        return self._queue.count(UploadStatus.ERROR)

    def pending_count(self) -> int:
        return self._queue.count(UploadStatus.PENDING)

    def overall_progress(self) -> int:
        return self.status().progress

    def is_all_done(self) -> bool:
        """True when every task is COMPLETE or ERROR (vacuously for an empty queue)."""
        return self.pending_count() == 0 and self.active_count() == 0

    def tasks_with_status(self, status: UploadStatus) -> List[UploadTask]:
        return [task for task in self._queue.all() if task.status is status]
