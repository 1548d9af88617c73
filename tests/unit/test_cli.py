"""Tests for the stimuli CLI."""
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from stimuli_uploader.cli.main import app
from stimuli_uploader.core.exceptions import TerminalTransportError, TransientTransportError
from stimuli_uploader.core.retry import ImmediateRetryStrategy


@pytest.fixture
def runner():
    """Create CLI runner."""
    return CliRunner()


@pytest.fixture
def stimuli_dir(tmp_path):
    """Directory with two small images."""
    (tmp_path / "a.png").write_bytes(b"png-a")
    (tmp_path / "b.png").write_bytes(b"png-b")
    return tmp_path


class TestUploadCommand:
    """Test suite for `stimuli upload`."""

    def test_upload_success(self, runner, stimuli_dir, make_transport):
        """Test all files uploaded exits cleanly."""
        transport = make_transport(auto=True)

        with patch('stimuli_uploader.cli.main.build_transport', return_value=transport) as build:
            result = runner.invoke(app, [
                "upload", str(stimuli_dir / "a.png"), str(stimuli_dir / "b.png"),
                "--endpoint", "http://study.test"
            ])

        assert result.exit_code == 0, result.output
        assert "2 files uploaded successfully" in result.output
        build.assert_called_once_with("http://study.test")
        assert sorted(transport.calls) == ["a.png", "b.png"]
        assert transport.closed

    def test_upload_failure_exits_nonzero(self, runner, stimuli_dir, make_transport):
        """Test a failed upload gives exit code 1."""
        transport = make_transport(
            auto=True, failures={"b.png": [TerminalTransportError("Unsupported format")]}
        )

        with patch('stimuli_uploader.cli.main.build_transport', return_value=transport):
            result = runner.invoke(app, ["upload", str(stimuli_dir / "a.png"), str(stimuli_dir / "b.png")])

        assert result.exit_code == 1
        assert "1 completed, 1 failed" in result.output

    def test_rejected_file_exits_nonzero(self, runner, stimuli_dir, make_transport):
        """Test a file outside the accepted types is reported as rejected."""
        archive = stimuli_dir / "bundle.zip"
        archive.write_bytes(b"PK")
        transport = make_transport(auto=True)

        with patch('stimuli_uploader.cli.main.build_transport', return_value=transport):
            result = runner.invoke(app, ["upload", str(stimuli_dir / "a.png"), str(archive)])

        assert result.exit_code == 1
        assert "rejected" in result.output
        assert transport.calls == ["a.png"]

    def test_accept_option(self, runner, stimuli_dir, make_transport):
        """Test --accept narrows the accepted types."""
        transport = make_transport(auto=True)

        with patch('stimuli_uploader.cli.main.build_transport', return_value=transport):
            result = runner.invoke(app, [
                "upload", str(stimuli_dir / "a.png"), "--accept", "video/*"
            ])

        assert result.exit_code == 1
        assert transport.calls == []

    def test_retries_option(self, runner, stimuli_dir, make_transport):
        """Test --retries enables automatic retry."""
        transport = make_transport(
            auto=True, failures={"a.png": [TransientTransportError("reset")]}
        )

        with patch('stimuli_uploader.cli.main.build_transport', return_value=transport), \
                patch('stimuli_uploader.core.config.RetryConfig.create_strategy') as create:
            create.return_value = ImmediateRetryStrategy()
            result = runner.invoke(app, ["upload", str(stimuli_dir / "a.png"), "--retries", "1"])

        assert result.exit_code == 0, result.output
        assert transport.calls == ["a.png", "a.png"]

    def test_batch_option(self, runner, stimuli_dir, make_batch_transport):
        """Test --batch sends files through the batch endpoint."""
        transport = make_batch_transport()

        with patch('stimuli_uploader.cli.main.build_transport', return_value=transport):
            result = runner.invoke(app, [
                "upload", str(stimuli_dir / "a.png"), str(stimuli_dir / "b.png"), "--batch"
            ])

        assert result.exit_code == 0, result.output
        assert transport.batch_calls == [["a.png", "b.png"]]

    def test_missing_file(self, runner, tmp_path):
        """Test a nonexistent path is a usage error."""
        result = runner.invoke(app, ["upload", str(tmp_path / "missing.png")])

        assert result.exit_code == 2
