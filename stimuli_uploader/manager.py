"""
Upload queue manager.

Owns one queue, its scheduler, retry controller and event emitter, and
drives transport calls for admitted tasks. All state changes happen
synchronously on the event loop, so each event (enqueue, progress tick,
success, failure, removal) is processed to completion, including the
admission cascade it triggers, before the next one.
"""
import asyncio
import dataclasses
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import aiohttp

from .core.config import QueueConfig, UploadPolicy
from .core.events import EventEmitter
from .core.exceptions import (
    CancellationError,
    CapacityExceededError,
    TransportError,
    TransientTransportError,
    TerminalTransportError,
    UploadException,
    ValidationError,
)
from .core.logging import get_logger
from .core.retry import RetryStrategy
from .core.upload.aggregate import AggregateView
from .core.upload.messages import StatusMessages
from .core.upload.models import (
    BatchUploadResult,
    FailureEvent,
    FileInfo,
    ProgressEvent,
    QueueStatus,
    SuccessEvent,
    UploadResult,
    UploadStatus,
    UploadTask,
)
from .core.upload.protocols import FileValidatorProtocol, TransportProtocol
from .core.upload.queue import UploadQueue
from .core.upload.retry_controller import RetryController
from .core.upload.scheduler import ConcurrencyScheduler
from .core.upload.validation import FileValidator
from .core.utils import generate_task_id

# Events emitted by UploadManager
EVENT_REJECTED = 'rejected'
EVENT_ENQUEUED = 'enqueued'
EVENT_STARTED = 'started'
EVENT_PROGRESS = 'progress'
EVENT_COMPLETE = 'complete'
EVENT_FAILED = 'failed'
EVENT_RETRY = 'retry'
EVENT_REMOVED = 'removed'
EVENT_QUEUE_UPDATE = 'queue_update'
EVENT_ERROR = 'error'
EVENT_ALL_COMPLETE = 'all_complete'

ALL_STIMULI_UPLOADED = 'All stimuli uploaded successfully!'
MISSING_URL = 'Upload failed: response did not include a file URL'


class UploadManager:
    """
    Bounded-concurrency upload queue.

    Features:
    - Validation before enqueue (type/size policy, optional capacity)
    - FIFO admission with at most ``max_concurrent`` uploads in flight
    - Per-task and aggregate progress
    - Automatic retry of transient failures (opt-in) and manual retry
    - Exactly-once ``all_complete`` per settled batch

    Must be used from inside a running event loop.

    Example:
        >>> async with UploadManager(HttpTransport(), max_concurrent=2) as manager:
        ...     manager.on('all_complete', lambda status: print(status))
        ...     status = await manager.upload_files([FileInfo.from_path("card.png")])
    """

    def __init__(
        self,
        transport: TransportProtocol,
        config: Optional[QueueConfig] = None,
        *,
        max_concurrent: Optional[int] = None,
        policy: Optional[UploadPolicy] = None,
        retry_strategy: Optional[RetryStrategy] = None,
        validator: Optional[FileValidatorProtocol] = None,
        on_error: Optional[Callable[[str], None]] = None,
        on_all_complete: Optional[Callable[[QueueStatus], None]] = None,
        on_progress: Optional[Callable[[UploadTask], None]] = None,
        on_complete: Optional[Callable[[UploadTask], None]] = None
    ):
        """
        Initialize upload manager.

        Args:
            transport: Transport performing the network calls
            config: Queue configuration (uses defaults if not provided)
            max_concurrent: Overrides ``config.max_concurrent``
            policy: Overrides ``config.policy``
            retry_strategy: Custom backoff strategy for automatic retries
            validator: Custom validation gate
            on_error: Called with a message on rejection or task failure
            on_all_complete: Called when every task reached a terminal state
            on_progress: Called with a task snapshot on progress change
            on_complete: Called with a task snapshot on success
        """
        config = config or QueueConfig.default()
        overrides = {}
        if max_concurrent is not None:
            overrides['max_concurrent'] = max_concurrent
        if policy is not None:
            overrides['policy'] = policy
        if overrides:
            config = dataclasses.replace(config, **overrides)

        self._config = config
        self._transport = transport
        self._queue = UploadQueue()
        self._scheduler = ConcurrencyScheduler(self._queue, config.max_concurrent)
        self._retry = RetryController(config.retry, retry_strategy)
        self._validator = validator or FileValidator(config.policy)
        self._aggregate = AggregateView(self._queue)
        self._events = EventEmitter('stimuli_uploader.events')
        self._messages = StatusMessages()

        # task id -> asyncio task running its transfer (batch members share one)
        self._transfers: Dict[str, asyncio.Task] = {}
        # task id -> automatic retries since the last manual retry
        self._auto_retries: Dict[str, int] = {}
        self._all_done = False
        self._settled = asyncio.Event()
        self._settled.set()
        self._closed = False

        self._logger = get_logger('stimuli_uploader.manager')

        if on_error:
            self.on(EVENT_ERROR, on_error)
        if on_all_complete:
            self.on(EVENT_ALL_COMPLETE, on_all_complete)
        if on_progress:
            self.on(EVENT_PROGRESS, on_progress)
        if on_complete:
            self.on(EVENT_COMPLETE, on_complete)

    async def __aenter__(self) -> 'UploadManager':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # Events

    def on(self, event: str, callback: Callable) -> 'UploadManager':
        """Register an event handler."""
        self._events.on(event, callback)
        return self

    def off(self, event: str, callback: Optional[Callable] = None) -> 'UploadManager':
        """Remove an event handler."""
        self._events.off(event, callback)
        return self

    def _emit(self, event: str, *args) -> None:
        self._events.emit(event, *args)

    # Properties

    @property
    def config(self) -> QueueConfig:
        return self._config

    @property
    def messages(self) -> StatusMessages:
        return self._messages

    @property
    def max_concurrent(self) -> int:
        return self._scheduler.max_concurrent

    @property
    def active_count(self) -> int:
        return self._scheduler.active_count

    @property
    def peak_active(self) -> int:
        """Highest number of simultaneous uploads seen so far."""
        return self._scheduler.peak_active

    @property
    def remaining_capacity(self) -> Optional[int]:
        if self._config.capacity is None:
            return None
        return max(0, self._config.capacity - len(self._queue))

    # Enqueue

    def enqueue(self, file: FileInfo, policy: Optional[UploadPolicy] = None) -> str:
        """
        Validate a file and add it to the queue.

        Args:
            file: File to upload
            policy: Policy for this file (defaults to the manager's policy)

        Returns:
            The new task id

        Raises:
            ValidationError: If the file is rejected; the queue is unchanged
        """
        self._ensure_open()
        self._messages.clear()
        task_id = self._add(file, policy)
        self._schedule()
        return task_id

    def enqueue_many(
        self,
        files: Iterable[FileInfo],
        policy: Optional[UploadPolicy] = None
    ) -> List[str]:
        """
        Enqueue several files, skipping rejected ones.

        When a capacity is configured, files beyond the remaining slots are
        rejected and a warning message is shown.

        Returns:
            Ids of the enqueued files, in order
        """
        return self._enqueue_group(list(files), policy, batch_id=None)

    def enqueue_batch(
        self,
        files: Iterable[FileInfo],
        policy: Optional[UploadPolicy] = None
    ) -> List[str]:
        """
        Enqueue files to be sent through the batch endpoint.

        Each file is still tracked as its own task. Batch tasks admitted in
        the same cascade are sent in a single ``upload_batch`` call; a
        transport without ``upload_batch`` uploads them one by one.

        Returns:
            Ids of the enqueued files, in order
        """
        return self._enqueue_group(list(files), policy, batch_id=generate_task_id())

    def _enqueue_group(
        self,
        files: List[FileInfo],
        policy: Optional[UploadPolicy],
        batch_id: Optional[str]
    ) -> List[str]:
        self._ensure_open()
        self._messages.clear()

        remaining = self.remaining_capacity
        if remaining is not None and len(files) > remaining:
            self._messages.show_warning(
                f"Only uploading {remaining} of {len(files)} files to fit grid capacity"
            )
            self._logger.warning(
                f"Capacity {self._config.capacity} reached; dropping {len(files) - remaining} file(s)"
            )

        task_ids = []
        for file in files:
            try:
                task_ids.append(self._add(file, policy, batch_id))
            except ValidationError:
                continue

        self._schedule()
        return task_ids

    def _add(
        self,
        file: FileInfo,
        policy: Optional[UploadPolicy],
        batch_id: Optional[str] = None
    ) -> str:
        """Validate and append without scheduling."""
        try:
            capacity = self._config.capacity
            if capacity is not None and len(self._queue) >= capacity:
                raise CapacityExceededError(capacity)
            self._validator.validate(file, policy)
        except ValidationError as e:
            self._reject(file, e)
            raise

        task_id = self._queue.enqueue(file, batch_id=batch_id)
        self._logger.info(f"Queued {file.name} ({file.size} bytes) as {task_id}")
        self._emit(EVENT_ENQUEUED, self._queue.get(task_id))
        return task_id

    def _reject(self, file: FileInfo, error: ValidationError) -> None:
        self._logger.warning(f"Rejected {file.name}: {error}")
        self._messages.set_error(str(error))
        self._emit(EVENT_REJECTED, file, error)
        self._emit(EVENT_ERROR, str(error))

    # Queue mutation

    def remove_from_queue(self, task_id: str) -> bool:
        """
        Remove a task, cancelling its upload if it is in flight.

        The slot is treated as free immediately. Unknown ids are ignored.

        Returns:
            True if a task was removed
        """
        removed = self._queue.remove(task_id)
        if removed is None:
            return False

        self._discard(removed)
        self._logger.info(f"Removed {removed.filename} ({removed.status.value})")
        self._schedule()
        return True

    def clear_queue(self) -> None:
        """Remove every task, cancelling in-flight uploads."""
        removed = self._queue.clear()
        for task in removed:
            self._discard(task)
        if removed:
            self._logger.info(f"Cleared {len(removed)} task(s)")
        self._publish()

    def _discard(self, task: UploadTask) -> None:
        """Cancel the transfer of a removed task and announce the removal."""
        snapshot = task.snapshot()
        if task.status is UploadStatus.UPLOADING:
            snapshot.error = CancellationError(task.filename).message
        self._auto_retries.pop(task.id, None)
        self._cancel_transfer(task.id)
        self._emit(EVENT_REMOVED, snapshot)

    def update_progress(self, task_id: str, value: float) -> bool:
        """
        Set progress of an uploading task (clamped to 0-100).

        Returns:
            True if the stored progress changed
        """
        if not self._queue.update_progress(task_id, value):
            return False
        task = self._queue.get(task_id)
        self._emit(EVENT_PROGRESS, task)
        self._emit(EVENT_QUEUE_UPDATE, self._aggregate.status())
        return True

    def retry_upload(self, task_id: str) -> bool:
        """
        Resubmit a failed task.

        Not bounded by the automatic retry limit.

        Returns:
            False if the task is unknown or not in the ERROR state
        """
        task = self._queue.get(task_id)
        if task is None or task.status is not UploadStatus.ERROR:
            self._logger.debug(f"Retry ignored for {task_id}: not a failed task")
            return False

        self._messages.clear_error()
        self._messages.clear_success()
        self._auto_retries.pop(task_id, None)
        self._resubmit(task_id)
        self._schedule()
        return True

    def retry_failed(self) -> List[str]:
        """Resubmit every failed task in queue order. Returns their ids."""
        failed = [task.id for task in self._aggregate.tasks_with_status(UploadStatus.ERROR)]
        if not failed:
            return []

        self._messages.clear_error()
        self._messages.clear_success()
        for task_id in failed:
            self._auto_retries.pop(task_id, None)
            self._resubmit(task_id)
        self._schedule()
        return failed

    def _resubmit(self, task_id: str) -> None:
        task = self._queue.transition(task_id, UploadStatus.PENDING)
        self._logger.info(f"Retrying {task.filename} (attempt {task.retry_count + 1})")
        self._emit(EVENT_RETRY, task)

    # Queries

    def get_task(self, task_id: str) -> Optional[UploadTask]:
        return self._queue.get(task_id)

    def all(self) -> List[UploadTask]:
        """Snapshot of every task in queue order."""
        return self._queue.all()

    def get_overall_progress(self) -> int:
        return self._aggregate.overall_progress()

    def get_active_uploads(self) -> List[UploadTask]:
        return self._aggregate.tasks_with_status(UploadStatus.UPLOADING)

    def get_pending_uploads(self) -> List[UploadTask]:
        return self._aggregate.tasks_with_status(UploadStatus.PENDING)

    def get_completed_uploads(self) -> List[UploadTask]:
        return self._aggregate.tasks_with_status(UploadStatus.COMPLETE)

    def get_failed_uploads(self) -> List[UploadTask]:
        return self._aggregate.tasks_with_status(UploadStatus.ERROR)

    def get_queue_status(self) -> QueueStatus:
        return self._aggregate.status()

    def is_all_done(self) -> bool:
        return self._aggregate.is_all_done()

    # Waiting

    async def wait_all(self, timeout: Optional[float] = None) -> QueueStatus:
        """
        Wait until no task is pending or uploading, or the manager is closed.

        Raises:
            asyncio.TimeoutError: If ``timeout`` elapses first
        """
        if timeout is None:
            await self._settled.wait()
        else:
            await asyncio.wait_for(self._settled.wait(), timeout)
        return self._aggregate.status()

    async def upload_files(
        self,
        files: Iterable[FileInfo],
        policy: Optional[UploadPolicy] = None,
        timeout: Optional[float] = None
    ) -> QueueStatus:
        """Enqueue files and wait for every task to settle."""
        self.enqueue_many(files, policy)
        return await self.wait_all(timeout)

    async def close(self) -> None:
        """
        Cancel outstanding transfers and close the transport.

        Releases any ``wait_all`` caller; tasks cut off mid-upload are left
        UPLOADING in the returned status.
        """
        if self._closed:
            return
        self._closed = True

        pending = {task for task in self._transfers.values() if not task.done()}
        self._transfers.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._settled.set()

        await self._transport.close()
        self._logger.debug("Upload manager closed")

    def _ensure_open(self) -> None:
        if self._closed:
            raise UploadException("Upload manager is closed")

    # Scheduling

    def _schedule(self) -> None:
        """Admit pending tasks into free slots and start their transfers."""
        if self._closed:
            return

        admitted = self._scheduler.admit()
        batches: Dict[str, List[UploadTask]] = {}
        batch_capable = callable(getattr(self._transport, 'upload_batch', None))

        for task in admitted:
            self._logger.info(f"Uploading {task.filename} ({self.active_count}/{self.max_concurrent} slots)")
            self._emit(EVENT_STARTED, task)
            if task.batch_id is not None and batch_capable:
                batches.setdefault(task.batch_id, []).append(task)
            else:
                self._start(task.id, self._run_transfer(task.id, task.file), f"upload-{task.id}")

        for batch_id, tasks in batches.items():
            task_ids = [task.id for task in tasks]
            files = [task.file for task in tasks]
            self._start(task_ids, self._run_batch(task_ids, files), f"batch-{batch_id}")

        self._publish()

    def _start(self, task_ids, coro, name: str) -> None:
        if isinstance(task_ids, str):
            task_ids = [task_ids]
        transfer = asyncio.create_task(coro, name=name)
        for task_id in task_ids:
            self._transfers[task_id] = transfer
        transfer.add_done_callback(partial(self._on_transfer_done, tuple(task_ids)))

    def _on_transfer_done(self, task_ids: Sequence[str], transfer: asyncio.Task) -> None:
        for task_id in task_ids:
            if self._transfers.get(task_id) is transfer:
                del self._transfers[task_id]
        if not transfer.cancelled() and transfer.exception() is not None:
            self._logger.error(
                f"Transfer {transfer.get_name()} crashed: {transfer.exception()}",
                exc_info=transfer.exception()
            )

    def _cancel_transfer(self, task_id: str) -> None:
        transfer = self._transfers.pop(task_id, None)
        if transfer is None or transfer.done():
            return
        # batch members share a transfer; cancel once nobody needs it
        if any(other is transfer for other in self._transfers.values()):
            return
        transfer.cancel()
        self._logger.debug(f"Cancelled transfer for {task_id}")

    def _publish(self) -> None:
        """Broadcast the aggregate status and detect batch settlement."""
        status = self._aggregate.status()
        self._emit(EVENT_QUEUE_UPDATE, status)

        if status.is_all_done:
            self._settled.set()
        else:
            self._settled.clear()

        done = status.total > 0 and status.is_all_done
        if done and not self._all_done:
            self._all_done = True
            self._announce(status)
            self._emit(EVENT_ALL_COMPLETE, status)
        elif not done:
            self._all_done = False

    def _announce(self, status: QueueStatus) -> None:
        if status.failed:
            message = f"{status.completed} completed, {status.failed} failed"
            self._messages.set_error(message)
            self._logger.warning(f"Uploads settled: {message}")
            return

        capacity = self._config.capacity
        if capacity and status.completed >= capacity:
            message = ALL_STIMULI_UPLOADED
        else:
            noun = 'file' if status.completed == 1 else 'files'
            message = f"{status.completed} {noun} uploaded successfully"
        self._messages.show_success(message)
        self._logger.info(f"Uploads settled: {message}")

    # Transfers

    async def _run_transfer(self, task_id: str, file: FileInfo) -> None:
        """Consume one transport event stream for a task."""
        error: Optional[TransportError] = None
        stream = None
        try:
            stream = self._transport.upload(file)
            async for event in stream:
                if isinstance(event, ProgressEvent):
                    self.update_progress(task_id, event.progress)
                elif isinstance(event, SuccessEvent):
                    if not event.result.url:
                        error = TerminalTransportError(MISSING_URL)
                        break
                    self._complete(task_id, event.result)
                    return
                elif isinstance(event, FailureEvent):
                    error = event.error
                    break
            else:
                error = TransientTransportError("Upload ended without a response")
        except asyncio.CancelledError:
            self._logger.debug(f"Transfer for {task_id} cancelled")
            raise
        except TransportError as e:
            error = e
        except (asyncio.TimeoutError, aiohttp.ClientError, OSError) as e:
            error = TransientTransportError(f"Connection failed: {e}")
        except Exception as e:
            self._logger.error(f"Unexpected error uploading {file.name}: {e}", exc_info=True)
            error = TerminalTransportError(f"Upload failed: {e}")
        finally:
            aclose = getattr(stream, 'aclose', None)
            if aclose is not None:
                await aclose()

        await self._handle_failure(task_id, error)

    async def _run_batch(self, task_ids: List[str], files: List[FileInfo]) -> None:
        """Send a group of batch tasks in one call and reconcile per file."""
        try:
            result = await self._transport.upload_batch(files)
        except asyncio.CancelledError:
            self._logger.debug(f"Batch transfer for {len(task_ids)} task(s) cancelled")
            raise
        except TransportError as e:
            error = e
        except (asyncio.TimeoutError, aiohttp.ClientError, OSError) as e:
            error = TransientTransportError(f"Connection failed: {e}")
        except Exception as e:
            self._logger.error(f"Unexpected error in batch of {len(files)}: {e}", exc_info=True)
            error = TerminalTransportError(f"Upload failed: {e}")
        else:
            await self._reconcile_batch(task_ids, result)
            return

        await asyncio.gather(*(self._handle_failure(task_id, error) for task_id in task_ids))

    async def _reconcile_batch(self, task_ids: List[str], result: BatchUploadResult) -> None:
        """
        Match batch results to tasks.

        Results are matched by filename first; tasks the server reported as
        failed get a terminal error; remaining results are assigned to the
        remaining tasks in order, and tasks left over get a transient error.
        A result without a URL fails its task.
        """
        unmatched_results = list(result.results)
        unmatched_tasks: List[UploadTask] = []
        failures: List[tuple] = []

        for task_id in task_ids:
            task = self._queue.get(task_id)
            if task is None or task.status is not UploadStatus.UPLOADING:
                continue
            match = next((r for r in unmatched_results if r.filename == task.filename), None)
            if match is not None:
                unmatched_results.remove(match)
                if match.url:
                    self._complete(task_id, match)
                else:
                    failures.append((task_id, TerminalTransportError(MISSING_URL)))
            elif task.filename in result.errors:
                failures.append((task_id, TerminalTransportError(result.errors[task.filename])))
            else:
                unmatched_tasks.append(task)

        for task in unmatched_tasks:
            if unmatched_results:
                leftover = unmatched_results.pop(0)
                if leftover.url:
                    self._complete(task.id, leftover)
                else:
                    failures.append((task.id, TerminalTransportError(MISSING_URL)))
            else:
                failures.append((
                    task.id,
                    TransientTransportError(f"Upload failed: no result returned for {task.filename}")
                ))

        if failures:
            await asyncio.gather(*(self._handle_failure(tid, err) for tid, err in failures))

    def _complete(self, task_id: str, result: UploadResult) -> None:
        task = self._queue.get(task_id)
        if task is None or task.status is not UploadStatus.UPLOADING:
            return

        task = self._queue.transition(task_id, UploadStatus.COMPLETE, result=result)
        self._logger.info(f"Uploaded {task.filename}: {task.url}")
        self._emit(EVENT_COMPLETE, task)
        self._schedule()

    async def _handle_failure(self, task_id: str, error: TransportError) -> None:
        task = self._queue.get(task_id)
        if task is None or task.status is not UploadStatus.UPLOADING:
            return

        attempt = self._auto_retries.get(task_id, 0)
        decision = self._retry.on_failure(task, error, attempt)
        if decision.should_retry:
            if decision.delay > 0:
                await asyncio.sleep(decision.delay)
            task = self._queue.get(task_id)
            if task is None or task.status is not UploadStatus.UPLOADING:
                return
            self._auto_retries[task_id] = attempt + 1
            self._resubmit(task_id)
            self._schedule()
            return

        self._fail(task_id, error)

    def _fail(self, task_id: str, error: TransportError) -> None:
        message = str(error) or "Upload failed"
        task = self._queue.transition(task_id, UploadStatus.ERROR, error=message)
        self._logger.error(f"Upload of {task.filename} failed: {message}")
        self._messages.set_error(message)
        self._emit(EVENT_FAILED, task, error)
        self._emit(EVENT_ERROR, message)
        self._schedule()
