"""Pytest fixtures for stimuli_uploader tests."""
import asyncio
from typing import Dict, List, Optional

import pytest

from stimuli_uploader.core.exceptions import TransientTransportError
from stimuli_uploader.core.upload.models import (
    BatchUploadResult,
    FailureEvent,
    FileInfo,
    ProgressEvent,
    SuccessEvent,
    UploadResult,
)


def make_result(name: str) -> UploadResult:
    return UploadResult(id=f"id-{name}", url=f"https://cdn.test/stimuli/{name}", filename=name)


class FakeTransport:
    """
    Scripted in-memory transport.

    In manual mode every upload waits on its own channel until the test
    pushes events with ``progress``, ``succeed`` or ``fail``. In auto mode
    uploads succeed at once unless ``failures`` lists errors for the file
    (each attempt consumes one of them) or ``fail_every`` is set, which
    fails every n-th call.
    """

    def __init__(
        self,
        auto: bool = False,
        failures: Optional[Dict[str, list]] = None,
        fail_every: Optional[int] = None
    ):
        self.auto = auto
        self.fail_every = fail_every
        self.failures = {name: list(errors) for name, errors in (failures or {}).items()}
        self.calls: List[str] = []
        self.channels: Dict[str, asyncio.Queue] = {}
        self.cancelled: List[str] = []
        self.active = 0
        self.peak = 0
        self.closed = False

    async def upload(self, file: FileInfo):
        self.calls.append(file.name)
        channel: asyncio.Queue = asyncio.Queue()
        self.channels[file.name] = channel
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.auto:
                errors = self.failures.get(file.name)
                if errors:
                    yield FailureEvent(errors.pop(0))
                elif self.fail_every and len(self.calls) % self.fail_every == 0:
                    yield FailureEvent(TransientTransportError("Upload failed: HTTP 500"))
                else:
                    yield ProgressEvent(50)
                    yield SuccessEvent(make_result(file.name))
                return
            while True:
                event = await channel.get()
                yield event
                if isinstance(event, (SuccessEvent, FailureEvent)):
                    return
        except asyncio.CancelledError:
            self.cancelled.append(file.name)
            raise
        finally:
            self.active -= 1

    def progress(self, name: str, value: float) -> None:
        self.channels[name].put_nowait(ProgressEvent(value))

    def succeed(self, name: str) -> None:
        self.channels[name].put_nowait(SuccessEvent(make_result(name)))

    def fail(self, name: str, error=None) -> None:
        error = error or TransientTransportError("Connection failed: reset by peer")
        self.channels[name].put_nowait(FailureEvent(error))

    async def close(self) -> None:
        self.closed = True


class FakeBatchTransport(FakeTransport):
    """FakeTransport that also answers ``upload_batch``."""

    def __init__(self, batch_result: Optional[BatchUploadResult] = None, batch_error=None, **kwargs):
        super().__init__(**kwargs)
        self.batch_result = batch_result
        self.batch_error = batch_error
        self.batch_calls: List[List[str]] = []

    async def upload_batch(self, files):
        self.batch_calls.append([f.name for f in files])
        await asyncio.sleep(0)
        if self.batch_error is not None:
            raise self.batch_error
        if self.batch_result is not None:
            return self.batch_result
        return BatchUploadResult(
            uploaded=len(files),
            failed=0,
            results=[make_result(f.name) for f in files]
        )


class CrashingTransport(FakeTransport):
    """
    FakeTransport that raises a non-transport exception for listed files.

    By default ``upload`` itself raises; with ``midstream`` the stream yields
    one progress event and then raises.
    """

    def __init__(self, crash_on: Optional[Dict[str, Exception]] = None, midstream: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.crash_on = dict(crash_on or {})
        self.midstream = midstream

    def upload(self, file: FileInfo):
        error = self.crash_on.get(file.name)
        if error is None:
            return super().upload(file)
        self.calls.append(file.name)
        if self.midstream:
            return self._broken_stream(error)
        raise error

    async def _broken_stream(self, error: Exception):
        yield ProgressEvent(10)
        raise error


@pytest.fixture
def make_file():
    """Factory for in-memory stimulus files."""
    def factory(name: str = "card.png", size: int = 16, mime_type: str = "image/png") -> FileInfo:
        return FileInfo.from_bytes(name, b"x" * size, mime_type)
    return factory


@pytest.fixture
def transport():
    """Manual fake transport."""
    return FakeTransport()


@pytest.fixture
def auto_transport():
    """Fake transport that succeeds immediately."""
    return FakeTransport(auto=True)


@pytest.fixture
def settle():
    """Returns a coroutine function that lets pending callbacks run."""
    async def run(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)
    return run


@pytest.fixture
def make_transport():
    """Factory for fake transports with scripted failures."""
    return FakeTransport


@pytest.fixture
def make_batch_transport():
    """Factory for fake batch-capable transports."""
    return FakeBatchTransport


@pytest.fixture
def make_crashing_transport():
    """Factory for fake transports that raise unexpected exceptions."""
    return CrashingTransport
