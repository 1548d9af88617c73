"""Tests for upload models."""
import pytest
from pathlib import Path

from stimuli_uploader.core.upload.models import (
    UploadStatus,
    can_transition,
    FileInfo,
    UploadResult,
    BatchUploadResult,
    UploadTask,
    QueueStatus
)


class TestUploadStatus:
    """Test suite for UploadStatus."""

    def test_terminal_states(self):
        """Test only COMPLETE and ERROR are terminal."""
        assert UploadStatus.COMPLETE.is_terminal
        assert UploadStatus.ERROR.is_terminal
        assert not UploadStatus.PENDING.is_terminal
        assert not UploadStatus.UPLOADING.is_terminal

    def test_allowed_transitions(self):
        """Test the legal lifecycle edges."""
        assert can_transition(UploadStatus.PENDING, UploadStatus.UPLOADING)
        assert can_transition(UploadStatus.UPLOADING, UploadStatus.COMPLETE)
        assert can_transition(UploadStatus.UPLOADING, UploadStatus.ERROR)
        assert can_transition(UploadStatus.UPLOADING, UploadStatus.PENDING)
        assert can_transition(UploadStatus.ERROR, UploadStatus.PENDING)

    def test_forbidden_transitions(self):
        """Test COMPLETE is final and PENDING cannot skip ahead."""
        for target in UploadStatus:
            assert not can_transition(UploadStatus.COMPLETE, target)
        assert not can_transition(UploadStatus.PENDING, UploadStatus.COMPLETE)
        assert not can_transition(UploadStatus.ERROR, UploadStatus.UPLOADING)


class TestFileInfo:
    """Test suite for FileInfo."""

    def test_from_bytes_guesses_type(self):
        """Test MIME type is guessed from the name."""
        info = FileInfo.from_bytes("card-01.png", b"abc")

        assert info.size == 3
        assert info.mime_type == "image/png"
        assert info.has_content

    def test_unknown_extension(self):
        """Test fallback MIME type."""
        assert FileInfo.guess_mime_type("blob.zzz-unknown") == "application/octet-stream"

    def test_negative_size_rejected(self):
        """Test negative size raises error."""
        with pytest.raises(ValueError):
            FileInfo(name="bad", size=-1)

    def test_from_path(self, tmp_path):
        """Test building from a local file."""
        path = tmp_path / "stimulus.pdf"
        path.write_bytes(b"%PDF-1.4")

        info = FileInfo.from_path(str(path))

        assert info.name == "stimulus.pdf"
        assert info.size == 8
        assert info.mime_type == "application/pdf"
        assert info.path == path

    def test_from_path_missing(self):
        """Test missing file raises error."""
        with pytest.raises(FileNotFoundError):
            FileInfo.from_path(Path("/nonexistent/stimulus.png"))

    def test_from_path_directory(self, tmp_path):
        """Test directory raises error."""
        with pytest.raises(ValueError):
            FileInfo.from_path(tmp_path)


class TestUploadResult:
    """Test suite for UploadResult."""

    def test_from_dict(self):
        """Test parsing an endpoint data object."""
        result = UploadResult.from_dict({
            'id': 42,
            'filename': 'card.png',
            'url': 'https://cdn.test/card.png',
            'type': 'image',
            'metadata': {'width': 800}
        })

        assert result.id == '42'
        assert result.url == 'https://cdn.test/card.png'
        assert result.metadata == {'width': 800, 'type': 'image'}


class TestBatchUploadResult:
    """Test suite for BatchUploadResult."""

    def test_from_dict(self):
        """Test parsing results and per-file errors."""
        result = BatchUploadResult.from_dict({
            'uploaded': 2,
            'failed': 1,
            'results': [
                {'id': '1', 'filename': 'a.png', 'url': 'u1'},
                {'id': '2', 'filename': 'b.png', 'url': 'u2'},
            ],
            'errors': [{'filename': 'c.png', 'error': 'Unsupported format'}]
        })

        assert result.uploaded == 2
        assert result.failed == 1
        assert [r.filename for r in result.results] == ['a.png', 'b.png']
        assert result.errors == {'c.png': 'Unsupported format'}

    def test_counts_default_to_lists(self):
        """Test missing counts are derived."""
        result = BatchUploadResult.from_dict({'results': [{'id': '1', 'url': 'u'}]})

        assert result.uploaded == 1
        assert result.failed == 0


class TestUploadTask:
    """Test suite for UploadTask."""

    def test_defaults(self, make_file):
        """Test a new task is pending with no progress."""
        task = UploadTask(id="t1", file=make_file("a.png"))

        assert task.status is UploadStatus.PENDING
        assert task.progress == 0
        assert task.retry_count == 0
        assert task.url is None
        assert task.error is None
        assert task.filename == "a.png"

    def test_snapshot_is_independent(self, make_file):
        """Test mutating a snapshot does not touch the original."""
        task = UploadTask(id="t1", file=make_file())
        copy = task.snapshot()
        copy.progress = 50

        assert task.progress == 0
        assert copy.file is task.file

    def test_to_dict(self, make_file):
        """Test dict form."""
        d = UploadTask(id="t1", file=make_file("a.png", size=5)).to_dict()

        assert d['filename'] == "a.png"
        assert d['size'] == 5
        assert d['status'] == "pending"


class TestQueueStatus:
    """Test suite for QueueStatus."""

    def test_all_done(self):
        """Test done means nothing pending or uploading."""
        assert QueueStatus().is_all_done
        assert QueueStatus(total=2, completed=1, failed=1, progress=50).is_all_done
        assert not QueueStatus(total=1, pending=1).is_all_done
        assert not QueueStatus(total=1, uploading=1).is_all_done

    def test_to_dict(self):
        """Test dict form."""
        status = QueueStatus(total=3, pending=1, uploading=1, completed=1, progress=40)

        assert status.to_dict() == {
            'total': 3, 'pending': 1, 'uploading': 1,
            'completed': 1, 'failed': 0, 'progress': 40
        }
