# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.uploader",
#   "purpose": "Stream a local file as a deflate-compressed request body with throttled progress.",
#   "sections": [
#     {
#       "id": "upload-headers",
#       "name": "UPLOAD_HEADERS",
#       "anchor": "constant-upload-headers",
#       "kind": "constant"
#     },
#     {
#       "id": "streaminguploader",
#       "name": "StreamingUploader",
#       "anchor": "class-streaminguploader",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Stream a local file as a deflate-compressed request body with throttled progress.

The file is read in ``chunk_size`` buffers (4096 bytes by default). Every
buffer goes through one ``zlib`` compressor whose output is yielded to the
transport as the request body, so the file is never held in memory. After a
buffer is handed over the running byte count is reported through a
:class:`~HttpRelay.progress.TransferSession`; the last buffer is always
reported so consumers observe ``bytes_processed == bytes_total``.

Failures while streaming restart the upload from byte 0 under the retry
controller's budget. The local file is re-checked at the start of every
attempt; a missing, unreadable or oversized file is terminal.
"""

from __future__ import annotations

import os
import time
import zlib
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional, Union

import httpx

from .dispatcher import EventDispatcher
from .errors import ErrorKind, LocalFileInvalidError
from .logging_utils import StructuredLogger, log_event
from .models import Failure, Outcome, Progress, RequestCorrelator, RequestDescriptor, Success
from .progress import TransferSession
from .reader import read_response
from .retry import RetryController, is_success_status

__all__ = ["UPLOAD_HEADERS", "UPLOAD_RETRYABLE_ERRORS", "StreamingUploader"]

UPLOAD_HEADERS: dict[str, str] = {
    "Content-Type": "application/octet-stream",
    "Content-Encoding": "deflate",
    "Content-Language": "en-GB",
}

UPLOAD_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (httpx.TransportError, OSError)


class StreamingUploader:
    """Upload files through a :class:`RetryController`."""

    def __init__(
        self,
        controller: RetryController,
        dispatcher: EventDispatcher,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._controller = controller
        self._dispatcher = dispatcher
        self._clock = clock

    def upload(
        self,
        descriptor: RequestDescriptor,
        file_path: Union[str, os.PathLike[str]],
        correlator: Optional[RequestCorrelator] = None,
    ) -> Outcome:
        correlator = correlator or RequestCorrelator()
        path = Path(file_path)
        log = self._controller.logger_for(descriptor, correlator).child(file=str(path))
        session = TransferSession(
            lambda done, total: self._dispatcher.dispatch(Progress(done, total), correlator),
            interval_s=self._controller.settings.progress_interval_s,
            clock=self._clock,
        )
        return self._controller.run(
            descriptor,
            lambda current: self._upload_once(current, path, session, log),
            correlator=correlator,
            retry_on=UPLOAD_RETRYABLE_ERRORS,
        )

    def _check_file(self, path: Path) -> int:
        """Return the file length or raise :class:`LocalFileInvalidError`."""

        try:
            stat = path.stat()
        except OSError as exc:
            raise LocalFileInvalidError(path, "File does not exist") from exc
        if not path.is_file():
            raise LocalFileInvalidError(path, "Not a regular file")
        if stat.st_size > self._controller.settings.max_upload_bytes:
            raise LocalFileInvalidError(path, "File is too large to upload")
        if not os.access(path, os.R_OK):
            raise LocalFileInvalidError(path, "File is not readable")
        return stat.st_size

    def _upload_once(
        self,
        descriptor: RequestDescriptor,
        path: Path,
        session: TransferSession,
        log: StructuredLogger,
    ) -> Outcome:
        debug = self._controller.debug_requests
        if debug:
            log.debug(f"POST REQUEST: {descriptor.address}")

        headers = descriptor.effective_headers()
        headers.update(UPLOAD_HEADERS)

        connection = self._controller.transport.open(descriptor.address)
        try:
            file_length = self._check_file(path)
            connection.configure(
                descriptor.method,
                headers=headers,
                connect_timeout=descriptor.connect_timeout,
                read_timeout=descriptor.read_timeout,
            )
            with path.open("rb") as source:
                status = connection.send(self._compressed_chunks(source, file_length, session))
            log.debug(f"Upload complete, bytes: {file_length}")
            if not is_success_status(status):
                log_event(
                    log,
                    "warning",
                    f"Error executing upload, response code was: {status}",
                    status_code=status,
                )
            response_text = read_response(connection)
        finally:
            connection.disconnect()

        if response_text is None:
            log_event(log, "warning", "Empty response", error_code="EMPTY_RESPONSE")
            return Failure(ErrorKind.EMPTY_RESPONSE)
        if debug:
            log.debug(f"POST RESPONSE: {response_text}")
        return Success(response_text)

    def _compressed_chunks(
        self, source: BinaryIO, file_length: int, session: TransferSession
    ) -> Iterator[bytes]:
        chunk_size = self._controller.settings.chunk_size
        compressor = zlib.compressobj()
        uploaded = 0
        if file_length == 0:
            session.update(0, 0, final=True)
        while uploaded < file_length:
            buffer = source.read(min(chunk_size, file_length - uploaded))
            if not buffer:
                raise OSError(f"File shrank during upload after {uploaded} bytes")
            compressed = compressor.compress(buffer)
            if compressed:
                yield compressed
            uploaded += len(buffer)
            session.update(uploaded, file_length, final=uploaded >= file_length)
        tail = compressor.flush()
        if tail:
            yield tail
