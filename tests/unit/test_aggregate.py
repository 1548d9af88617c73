"""Tests for aggregate status."""
import pytest

from stimuli_uploader.core.upload.aggregate import AggregateView, compute_status
from stimuli_uploader.core.upload.models import UploadResult, UploadStatus, UploadTask
from stimuli_uploader.core.upload.queue import UploadQueue
from stimuli_uploader.core.utils import round_half_up, clamp_progress, format_file_size


class TestComputeStatus:
    """Test suite for compute_status."""

    def test_empty(self):
        """Test empty queue has zero progress and is done."""
        status = compute_status([])

        assert status.total == 0
        assert status.progress == 0
        assert status.is_all_done

    def test_mean_progress(self, make_file):
        """Test two uploads at 60 and 40 give 50."""
        tasks = [
            UploadTask(id="a", file=make_file(), status=UploadStatus.UPLOADING, progress=60),
            UploadTask(id="b", file=make_file(), status=UploadStatus.UPLOADING, progress=40),
        ]

        assert compute_status(tasks).progress == 50

    def test_terminal_tasks_count(self, make_file):
        """Test completed and failed tasks are part of the mean."""
        tasks = [
            UploadTask(id="a", file=make_file(), status=UploadStatus.COMPLETE, progress=100),
            UploadTask(id="b", file=make_file(), status=UploadStatus.ERROR, progress=0),
            UploadTask(id="c", file=make_file(), status=UploadStatus.PENDING, progress=0),
        ]

        status = compute_status(tasks)

        assert status.progress == 33
        assert status.completed == 1
        assert status.failed == 1
        assert status.pending == 1

    def test_rounds_half_up(self, make_file):
        """Test .5 means round up."""
        tasks = [
            UploadTask(id="a", file=make_file(), status=UploadStatus.UPLOADING, progress=1),
            UploadTask(id="b", file=make_file(), status=UploadStatus.UPLOADING, progress=0),
        ]

        assert compute_status(tasks).progress == 1


class TestAggregateView:
    """Test suite for AggregateView."""

    def test_counts_follow_queue(self, make_file):
        """Test the view reads the live queue."""
        queue = UploadQueue()
        view = AggregateView(queue)
        first = queue.enqueue(make_file("a.png"))
        second = queue.enqueue(make_file("b.png"))

        assert view.pending_count() == 2
        assert not view.is_all_done()

        queue.transition(first, UploadStatus.UPLOADING)
        queue.transition(second, UploadStatus.UPLOADING)
        queue.transition(first, UploadStatus.COMPLETE, result=UploadResult(id="1", url="u"))
        queue.transition(second, UploadStatus.ERROR, error="boom")

        assert view.completed_count() == 1
        assert view.failed_count() == 1
        assert view.active_count() == 0
        assert view.is_all_done()
        assert view.overall_progress() == 50
        assert [t.id for t in view.tasks_with_status(UploadStatus.ERROR)] == [second]


class TestUtils:
    """Test suite for numeric helpers."""

    def test_round_half_up(self):
        """Test halves round up."""
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(2.49) == 2

    def test_clamp_progress(self):
        """Test clamping and rounding."""
        assert clamp_progress(-1) == 0
        assert clamp_progress(101) == 100
        assert clamp_progress(49.5) == 50

    def test_format_file_size(self):
        """Test human-readable sizes."""
        assert format_file_size(512) == "512 B"
        assert format_file_size(2048) == "2.0 KB"
        assert format_file_size(50 * 1024 * 1024) == "50.0 MB"
