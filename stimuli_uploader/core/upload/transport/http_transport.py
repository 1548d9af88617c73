"""
HTTP transport.

Sends files to the stimulus upload endpoints as multipart/form-data and
reports progress while the body streams out.
"""
import asyncio
import json
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional, Sequence

import aiofiles
import aiohttp

from ...config import TransportConfig
from ...exceptions import TransportError, TransientTransportError, TerminalTransportError
from ...logging import get_logger
from ..models import (
    BatchUploadResult,
    FailureEvent,
    FileInfo,
    ProgressEvent,
    SuccessEvent,
    TransportEvent,
    UploadResult,
)

# Statuses worth retrying besides 5xx
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})


class HttpTransport:
    """
    Uploads files over HTTP with aiohttp.

    Reuses one HTTP session for all uploads. Responsibilities:
    - Stream file content (from memory or disk) in fixed-size pieces
    - Report a progress event per piece sent
    - Map HTTP statuses and network failures to transient/terminal errors

    Example:
        >>> async with HttpTransport(TransportConfig(base_url="https://study.example.org")) as transport:
        ...     async for event in transport.upload(FileInfo.from_path("card.png")):
        ...         print(event)
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize transport.

        Args:
            config: Endpoint and timeout settings
            session: Optional shared session (not closed by this transport)
        """
        self._config = config or TransportConfig()
        self._session = session
        self._owns_session = False
        self._logger = get_logger('stimuli_uploader.transport')

    @property
    def config(self) -> TransportConfig:
        return self._config

    async def __aenter__(self) -> 'HttpTransport':
        await self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(**self._config.get_connector_kwargs()),
                **self._config.get_session_kwargs()
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close session if we own it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None
            self._owns_session = False

    async def upload(self, file: FileInfo) -> AsyncIterator[TransportEvent]:
        """
        Upload one file, yielding progress then a terminal event.

        The request runs in its own task and feeds an event channel; closing
        or cancelling the iterator cancels the request.
        """
        events: asyncio.Queue = asyncio.Queue()
        request = asyncio.create_task(self._post_file(file, events))
        try:
            while True:
                event = await events.get()
                yield event
                if isinstance(event, (SuccessEvent, FailureEvent)):
                    break
        finally:
            if not request.done():
                request.cancel()
                try:
                    await request
                except asyncio.CancelledError:
                    pass

    async def _post_file(self, file: FileInfo, events: asyncio.Queue) -> None:
        """Run the request and always finish the channel with a terminal event."""
        def on_progress(percent: float) -> None:
            events.put_nowait(ProgressEvent(percent))

        try:
            result = await self.upload_file(file, on_progress)
        except TransportError as e:
            events.put_nowait(FailureEvent(e))
        except Exception as e:
            self._logger.error(f"Unexpected error uploading {file.name}: {e}", exc_info=True)
            events.put_nowait(FailureEvent(TerminalTransportError(f"Upload failed: {e}")))
        else:
            events.put_nowait(SuccessEvent(result))

    async def upload_file(
        self,
        file: FileInfo,
        progress_callback: Optional[Callable[[float], None]] = None
    ) -> UploadResult:
        """
        Upload a single file and return the stored file's details.

        Args:
            file: File to send
            progress_callback: Called with a percentage after each piece

        Returns:
            UploadResult parsed from the endpoint response

        Raises:
            TransientTransportError: Network failure, timeout or 5xx
            TerminalTransportError: Payload rejected by the server
        """
        if not file.has_content:
            raise TerminalTransportError(f"No content to upload for {file.name}")

        url = self._config.upload_url
        size_kb = file.size / 1024
        self._logger.debug(f"Uploading {file.name} ({size_kb:.1f} KB) to {url}")
        upload_start = time.time()

        form = aiohttp.FormData()
        for name, value in self._config.extra_fields.items():
            form.add_field(name, value)
        form.add_field(
            self._config.field_name,
            self._iter_content(file, progress_callback),
            filename=file.name,
            content_type=file.mime_type
        )

        async with self._translate_errors(file.name):
            session = await self._get_session()
            async with session.post(url, data=form) as response:
                payload = await self._read_payload(response)
                data = self._check_response(response.status, payload)

        if not isinstance(data, dict) or not data.get('url'):
            raise TerminalTransportError(
                "Upload failed: response did not include a file URL", response.status
            )

        upload_time = time.time() - upload_start
        self._logger.debug(f"{file.name} uploaded in {upload_time:.2f}s")
        return UploadResult.from_dict(data)

    async def upload_batch(self, files: Sequence[FileInfo]) -> BatchUploadResult:
        """
        Upload several files in one multipart request.

        Returns:
            Per-file outcome reported by the server

        Raises:
            TransportError: If the request as a whole failed
        """
        if not files:
            return BatchUploadResult(uploaded=0, failed=0)

        missing = [f.name for f in files if not f.has_content]
        if missing:
            raise TerminalTransportError(f"No content to upload for {', '.join(missing)}")

        form = aiohttp.FormData()
        for name, value in self._config.extra_fields.items():
            form.add_field(name, value)
        for file in files:
            form.add_field(
                'files',
                self._iter_content(file),
                filename=file.name,
                content_type=file.mime_type
            )

        self._logger.info(f"Uploading batch of {len(files)} files to {self._config.batch_url}")
        async with self._translate_errors(f"batch of {len(files)}"):
            session = await self._get_session()
            async with session.post(self._config.batch_url, data=form) as response:
                payload = await self._read_payload(response)
                data = self._check_response(response.status, payload)

        result = BatchUploadResult.from_dict(data if isinstance(data, dict) else {})
        self._logger.info(f"Batch finished: {result.uploaded} uploaded, {result.failed} failed")
        return result

    async def _iter_content(
        self,
        file: FileInfo,
        progress_callback: Optional[Callable[[float], None]] = None
    ) -> AsyncIterator[bytes]:
        """Yield the file body in chunk_size pieces."""
        chunk_size = self._config.chunk_size
        total = file.size
        sent = 0

        def report():
            if progress_callback is not None:
                progress_callback(sent * 100 / total if total else 100.0)

        if file.data is not None:
            for start in range(0, len(file.data), chunk_size):
                piece = file.data[start:start + chunk_size]
                yield piece
                sent += len(piece)
                report()
        else:
            async with aiofiles.open(file.path, 'rb') as f:
                while True:
                    piece = await f.read(chunk_size)
                    if not piece:
                        break
                    yield piece
                    sent += len(piece)
                    report()

        if sent == 0:
            report()

    async def _read_payload(self, response: aiohttp.ClientResponse) -> Dict[str, Any]:
        """Decode a JSON body; non-JSON bodies become ``{'error': text}``."""
        try:
            payload = await response.json(content_type=None)
        except (json.JSONDecodeError, ValueError):
            text = (await response.text()).strip()
            return {'error': text} if text else {}
        if payload is None:
            return {}
        return payload if isinstance(payload, dict) else {'data': payload}

    def _check_response(self, status: int, payload: Dict[str, Any]) -> Any:
        """
        Classify a response.

        Returns:
            The ``data`` member (or the whole payload when there is none)

        Raises:
            TransientTransportError: 5xx, 408, 425, 429
            TerminalTransportError: Other 4xx, or ``success: false``
        """
        message = self._error_message(status, payload)

        if status >= 500 or status in RETRYABLE_STATUS_CODES:
            self._logger.warning(f"Server returned {status}: {message}")
            raise TransientTransportError(message, status)
        if status >= 400:
            self._logger.error(f"Server rejected upload with {status}: {message}")
            raise TerminalTransportError(message, status)
        if payload.get('success') is False:
            self._logger.error(f"Server reported failure: {message}")
            raise TerminalTransportError(message, status)

        return payload.get('data', payload)

    @staticmethod
    def _error_message(status: int, payload: Dict[str, Any]) -> str:
        error = payload.get('error') or payload.get('message')
        if isinstance(error, dict):
            error = error.get('message')
        return str(error) if error else f"Upload failed: HTTP {status}"

    @asynccontextmanager
    async def _translate_errors(self, label: str):
        """Map aiohttp and OS failures to transport errors."""
        try:
            yield
        except TransportError:
            raise
        except asyncio.TimeoutError as e:
            self._logger.error(f"Upload of {label} timed out")
            raise TransientTransportError("Upload timed out") from e
        except aiohttp.ClientError as e:
            self._logger.error(f"Upload of {label} failed: {e}")
            raise TransientTransportError(f"Connection failed: {e}") from e
        except OSError as e:
            self._logger.error(f"Could not read {label}: {e}")
            raise TerminalTransportError(f"Could not read file: {e}") from e
