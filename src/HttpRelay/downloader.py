# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.downloader",
#   "purpose": "Stream response bodies into local files and resolve their names.",
#   "sections": [
#     {
#       "id": "filename-from-disposition",
#       "name": "filename_from_disposition",
#       "anchor": "function-filename-from-disposition",
#       "kind": "function"
#     },
#     {
#       "id": "filename-from-url",
#       "name": "filename_from_url",
#       "anchor": "function-filename-from-url",
#       "kind": "function"
#     },
#     {
#       "id": "resolve-download-filename",
#       "name": "resolve_download_filename",
#       "anchor": "function-resolve-download-filename",
#       "kind": "function"
#     },
#     {
#       "id": "downloadexecutor",
#       "name": "DownloadExecutor",
#       "anchor": "class-downloadexecutor",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Stream response bodies into local files and resolve their names.

A download succeeds only on a 2xx status; anything else reports
``URL_INVALID`` without touching the body. The body is written in
``chunk_size`` pieces to a temporary ``.part-*.tmp`` file inside the
destination directory and promoted with :func:`os.replace`, so an interrupted
attempt never leaves a truncated file under the final name. I/O failures
restart the whole download under the retry controller's budget.

File names are chosen in this order: the caller's desired name, the
``filename=`` token of ``Content-Disposition``, the last segment of the URL
path. Every candidate is reduced to a bare file name.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
import time
from pathlib import Path, PurePosixPath
from typing import Callable, Mapping, Optional, Union
from urllib.parse import unquote

import httpx

from .dispatcher import EventDispatcher
from .errors import ErrorKind
from .logging_utils import StructuredLogger, log_event
from .models import DownloadedFile, Failure, Outcome, Progress, RequestCorrelator, RequestDescriptor
from .progress import TransferSession
from .retry import RetryController, is_success_status
from .transport import Connection

__all__ = [
    "DEFAULT_DOWNLOAD_NAME",
    "DOWNLOAD_RETRYABLE_ERRORS",
    "DownloadExecutor",
    "filename_from_disposition",
    "filename_from_url",
    "resolve_download_filename",
]

DEFAULT_DOWNLOAD_NAME = "download"

DOWNLOAD_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (httpx.TransportError, OSError)

_FILENAME_TOKEN = "filename="


def _bare_name(candidate: Optional[str]) -> Optional[str]:
    if not candidate:
        return None
    name = PurePosixPath(candidate.strip().replace("\\", "/")).name
    if name in {"", ".", ".."}:
        return None
    return name


def filename_from_disposition(disposition: Optional[str]) -> Optional[str]:
    """Return the ``filename=`` value of a ``Content-Disposition`` header.

    The value runs to the end of the header; a surrounding quote character is
    trimmed.

    Examples:
        >>> filename_from_disposition('attachment; filename="report.pdf"')
        'report.pdf'
        >>> filename_from_disposition("inline") is None
        True
    """

    if not disposition:
        return None
    index = disposition.find(_FILENAME_TOKEN)
    if index < 0:
        return None
    value = disposition[index + len(_FILENAME_TOKEN):].strip()
    if value[:1] in {'"', "'"}:
        quote = value[0]
        closing = value.find(quote, 1)
        value = value[1:closing] if closing > 0 else value[1:]
    return value or None


def filename_from_url(address: str) -> Optional[str]:
    """Return the final path segment of ``address`` (query string excluded)."""

    try:
        path = httpx.URL(address).path
    except (httpx.InvalidURL, TypeError, ValueError):
        path = address.split("?", 1)[0]
    segment = path.rsplit("/", 1)[-1]
    return unquote(segment) or None


def resolve_download_filename(
    address: str,
    disposition: Optional[str] = None,
    desired_file_name: Optional[str] = None,
) -> str:
    """Pick the local file name for a download.

    Examples:
        >>> resolve_download_filename("https://example.org/files/data.csv")
        'data.csv'
        >>> resolve_download_filename(
        ...     "https://example.org/get?id=1", 'attachment; filename="report.pdf"'
        ... )
        'report.pdf'
    """

    for candidate in (
        desired_file_name,
        filename_from_disposition(disposition),
        filename_from_url(address),
    ):
        name = _bare_name(candidate)
        if name:
            return name
    return DEFAULT_DOWNLOAD_NAME


def _expected_length(headers: Mapping[str, str]) -> int:
    """Content-Length of the decoded body, or ``-1`` when it is unknown."""

    if headers.get("Content-Encoding", "identity").lower() not in {"", "identity"}:
        return -1
    raw = headers.get("Content-Length")
    try:
        return int(raw) if raw is not None else -1
    except ValueError:
        return -1


class DownloadExecutor:
    """Download files through a :class:`RetryController`."""

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

    def download(
        self,
        descriptor: RequestDescriptor,
        destination_dir: Union[str, os.PathLike[str]],
        desired_file_name: Optional[str] = None,
        correlator: Optional[RequestCorrelator] = None,
    ) -> Outcome:
        correlator = correlator or RequestCorrelator()
        destination = Path(destination_dir)
        log = self._controller.logger_for(descriptor, correlator).child(destination=str(destination))
        log.debug(f"Downloading from: {descriptor.address} to: {destination}")
        session = TransferSession(
            lambda done, total: self._dispatcher.dispatch(Progress(done, total), correlator),
            interval_s=self._controller.settings.progress_interval_s,
            clock=self._clock,
        )
        return self._controller.run(
            descriptor,
            lambda current: self._download_once(current, destination, desired_file_name, session, log),
            correlator=correlator,
            retry_on=DOWNLOAD_RETRYABLE_ERRORS,
        )

    def _download_once(
        self,
        descriptor: RequestDescriptor,
        destination: Path,
        desired_file_name: Optional[str],
        session: TransferSession,
        log: StructuredLogger,
    ) -> Outcome:
        connection = self._controller.transport.open(descriptor.address)
        try:
            connection.configure(
                descriptor.method,
                headers=descriptor.effective_headers(),
                connect_timeout=descriptor.connect_timeout,
                read_timeout=descriptor.read_timeout,
            )
            status = connection.send(None)
            log.debug(f"Response code: {status}")
            if not is_success_status(status):
                log_event(
                    log,
                    "error",
                    f"Download refused, response code was: {status}",
                    status_code=status,
                    error_code="URL_INVALID",
                )
                return Failure(ErrorKind.URL_INVALID)

            headers = connection.response_headers
            file_name = resolve_download_filename(
                descriptor.address, headers.get("Content-Disposition"), desired_file_name
            )
            target = destination / file_name
            written = self._stream_to_file(connection, target, _expected_length(headers), session)
        finally:
            connection.disconnect()

        log.debug(f"Bytes read: {written}")
        if not target.exists():
            log_event(log, "error", f"Downloaded file missing: {target}", error_code="LOCAL_FILE_INVALID")
            return Failure(ErrorKind.LOCAL_FILE_INVALID)
        return DownloadedFile(target)

    def _stream_to_file(
        self,
        connection: Connection,
        target: Path,
        expected_length: int,
        session: TransferSession,
    ) -> int:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".part-", suffix=".tmp")
        tmp_path = Path(tmp_name)
        written = 0
        try:
            with os.fdopen(fd, "wb") as handle:
                for chunk in connection.iter_bytes(self._controller.settings.chunk_size):
                    if not chunk:
                        continue
                    handle.write(chunk)
                    written += len(chunk)
                    if written != expected_length:
                        session.update(written, expected_length)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, target)
        except Exception:
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()
            raise
        total = expected_length if expected_length >= 0 else written
        session.update(written, total, final=True)
        return written
