"""
Upload queue.

Ordered, insertion-stable collection of upload tasks. All task mutation goes
through this class so the status invariants hold in one place.
"""
from typing import Dict, Iterator, List, Optional
import time

from ..exceptions import InvalidTransitionError, TaskNotFoundError
from ..logging import get_logger
from ..utils import clamp_progress, generate_task_id
from .models import FileInfo, UploadResult, UploadStatus, UploadTask, can_transition


class UploadQueue:
    """
    FIFO collection of UploadTask objects keyed by id.

    Readers get snapshots (copies); the live tasks never leave the queue.

    Example:
        >>> queue = UploadQueue()
        >>> task_id = queue.enqueue(FileInfo.from_bytes("a.txt", b"a"))
        >>> queue.get(task_id).status
        <UploadStatus.PENDING: 'pending'>
    """

    def __init__(self):
        # dict preserves insertion order
        self._tasks: Dict[str, UploadTask] = {}
        self._logger = get_logger('stimuli_uploader.queue')

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __iter__(self) -> Iterator[UploadTask]:
        return iter(self.all())

    def enqueue(
        self,
        file: FileInfo,
        batch_id: Optional[str] = None,
        task_id: Optional[str] = None
    ) -> str:
        """
        Append a new PENDING task for the file.

        Args:
            file: File reference (kept, not copied)
            batch_id: Optional batch tag
            task_id: Explicit id; generated when omitted

        Returns:
            The new task id

        Raises:
            ValueError: If ``task_id`` is already in the queue
        """
        task_id = task_id or generate_task_id()
        if task_id in self._tasks:
            raise ValueError(f"Duplicate task id: {task_id}")

        self._tasks[task_id] = UploadTask(id=task_id, file=file, batch_id=batch_id)
        self._logger.debug(f"Enqueued {file.name} as {task_id} (queue length {len(self._tasks)})")
        return task_id

    def remove(self, task_id: str) -> Optional[UploadTask]:
        """Remove a task. Returns the removed task, or None if absent."""
        task = self._tasks.pop(task_id, None)
        if task is not None:
            self._logger.debug(f"Removed {task_id} ({task.status.value})")
        return task

    def clear(self) -> List[UploadTask]:
        """Remove every task. Returns the removed tasks in queue order."""
        removed = list(self._tasks.values())
        self._tasks.clear()
        return removed

    def get(self, task_id: str) -> Optional[UploadTask]:
        """Returns a snapshot of the task, or None."""
        task = self._tasks.get(task_id)
        return task.snapshot() if task is not None else None

    def all(self) -> List[UploadTask]:
        """Snapshots of every task in queue order."""
        return [task.snapshot() for task in self._tasks.values()]

    def ids(self) -> List[str]:
        return list(self._tasks)

    def count(self, status: UploadStatus) -> int:
        return sum(1 for task in self._tasks.values() if task.status is status)

    def first_pending(self) -> Optional[str]:
        """Id of the earliest-enqueued PENDING task."""
        for task in self._tasks.values():
            if task.status is UploadStatus.PENDING:
                return task.id
        return None

    def update_progress(self, task_id: str, value: float) -> bool:
        """
        Set progress on an UPLOADING task.

        The value is clamped to [0, 100]. Unknown ids and tasks in any other
        state are ignored.

        Returns:
            True if the stored progress changed
        """
        task = self._tasks.get(task_id)
        if task is None or task.status is not UploadStatus.UPLOADING:
            return False

        progress = clamp_progress(value)
        if progress == task.progress:
            return False
        task.progress = progress
        return True

    def transition(
        self,
        task_id: str,
        target: UploadStatus,
        result: Optional[UploadResult] = None,
        error: Optional[str] = None
    ) -> UploadTask:
        """
        Move a task to a new status.

        Args:
            task_id: Task to change
            target: New status
            result: Server result with a URL, required for COMPLETE
            error: Message for ERROR

        Returns:
            Snapshot of the task after the change

        Raises:
            TaskNotFoundError: If the id is unknown
            InvalidTransitionError: If the change is not allowed
            ValueError: If COMPLETE is requested without a result URL
        """
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if not can_transition(task.status, target):
            raise InvalidTransitionError(task_id, task.status, target)

        now = time.time()
        previous = task.status

        if target is UploadStatus.UPLOADING:
            task.progress = 0
            task.started_at = now
        elif target is UploadStatus.COMPLETE:
            if result is None or not result.url:
                raise ValueError("COMPLETE requires an upload result with a URL")
            task.result = result
            task.url = result.url
            task.progress = 100
            task.finished_at = now
        elif target is UploadStatus.ERROR:
            task.error = error or "Upload failed"
            task.url = None
            task.result = None
            task.finished_at = now
        elif target is UploadStatus.PENDING:
            task.retry_count += 1
            task.error = None
            task.progress = 0
            task.started_at = None
            task.finished_at = None

        task.status = target
        self._logger.debug(f"Task {task_id}: {previous.value} -> {target.value}")
        return task.snapshot()
