# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.client",
#   "purpose": "Public facade issuing requests on background workers.",
#   "sections": [
#     {
#       "id": "httprelayclient",
#       "name": "HttpRelayClient",
#       "anchor": "class-httprelayclient",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Public facade issuing requests on background workers.

Every operation builds a :class:`~HttpRelay.models.RequestDescriptor`, starts
one daemon thread and returns it immediately. The worker runs the retry
controller (or the uploader/download executor on top of it) and hands the
single terminal outcome to the :class:`~HttpRelay.dispatcher.EventDispatcher`,
which posts it to the consumer's delivery context. Nothing raised inside a
worker escapes it: unexpected exceptions are logged and reported as
``SERVER_ERROR``.

Example:
    >>> from HttpRelay import HttpRelayClient, QueueDeliveryContext
    >>> delivery = QueueDeliveryContext()
    >>> client = HttpRelayClient(my_listener, delivery=delivery)  # doctest: +SKIP
    >>> client.execute_get(1, "https://example.org/")  # doctest: +SKIP
    >>> delivery.process_pending(block=True, timeout=15)  # doctest: +SKIP
"""

from __future__ import annotations

import itertools
import os
import threading
import time
from typing import Any, Callable, Mapping, Optional, Union

from .connectivity import ConnectivityProbe, StaticConnectivityProbe
from .dispatcher import DeliveryContext, EventDispatcher, HttpEventListener
from .downloader import DownloadExecutor
from .errors import ErrorKind
from .logging_utils import get_logger
from .methods import RequestMethod
from .models import Failure, Outcome, RequestCorrelator, RequestDescriptor
from .retry import RetryController
from .settings import RelaySettings, get_settings
from .transport import HttpxTransport, Transport
from .uploader import StreamingUploader

__all__ = ["HttpRelayClient", "JSON_CONTENT_TYPE"]

JSON_CONTENT_TYPE = "application/json"

Body = Union[str, bytes, None]
Headers = Optional[Mapping[str, str]]
Extras = Optional[Mapping[str, Any]]
PathLike = Union[str, "os.PathLike[str]"]

logger = get_logger(__name__)


def _encode_body(body: Body) -> Optional[bytes]:
    if body is None or isinstance(body, bytes):
        return body
    return str(body).encode("utf-8")


class HttpRelayClient:
    """Issue HTTP requests off the caller's thread and report back to one listener."""

    def __init__(
        self,
        listener: Optional[HttpEventListener] = None,
        *,
        delivery: Optional[DeliveryContext] = None,
        transport: Optional[Transport] = None,
        connectivity: Optional[ConnectivityProbe] = None,
        settings: Optional[RelaySettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._owns_transport = transport is None
        self._transport: Transport = transport or HttpxTransport()
        self._connectivity: ConnectivityProbe = connectivity or StaticConnectivityProbe(True)
        self._dispatcher = EventDispatcher(listener, delivery)
        self._controller = RetryController(
            self._transport, self._connectivity, settings=self._settings
        )
        self._uploader = StreamingUploader(self._controller, self._dispatcher, clock=clock)
        self._downloader = DownloadExecutor(self._controller, self._dispatcher, clock=clock)
        self._sequence = itertools.count(1)
        self._workers: list[threading.Thread] = []
        self._workers_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    @property
    def settings(self) -> RelaySettings:
        return self._settings

    @property
    def delivery(self) -> DeliveryContext:
        return self._dispatcher.context

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    def set_listener(self, listener: Optional[HttpEventListener]) -> None:
        self._dispatcher.set_listener(listener)

    def is_connected(self) -> bool:
        """Return whether the connectivity probe currently reports a network."""
        return self._connectivity.is_connected()

    def set_debugging_enabled(self, enabled: bool) -> None:
        """Toggle DEBUG tracing of request addresses, bodies and responses."""
        self._controller.debug_requests = bool(enabled)

    def _retries(self, max_retries: Optional[int]) -> int:
        return self._settings.default_retries if max_retries is None else int(max_retries)

    def _timeout(self, timeout_seconds: Optional[float]) -> float:
        return self._settings.default_timeout_s if timeout_seconds is None else float(timeout_seconds)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def execute_get(
        self,
        request_code: Optional[int],
        address: str,
        max_retries: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        allow_caching: bool = True,
        extras: Extras = None,
    ) -> threading.Thread:
        """GET ``address``; the body arrives through ``on_request_complete``."""

        timeout = self._timeout(timeout_seconds)
        descriptor = RequestDescriptor(
            method=RequestMethod.GET,
            address=address,
            allow_caching=allow_caching,
            connect_timeout=timeout,
            read_timeout=timeout,
            max_retries=self._retries(max_retries),
        )
        correlator = RequestCorrelator(request_code, extras)
        return self._spawn("get", correlator, lambda: self._controller.attempt(descriptor, correlator))

    def execute_post(
        self,
        request_code: Optional[int],
        address: str,
        body: Body,
        headers: Headers = None,
        max_retries: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        allow_caching: bool = True,
        extras: Extras = None,
    ) -> threading.Thread:
        """POST a text/JSON ``body`` with ``Content-Type: application/json``."""

        timeout = self._timeout(timeout_seconds)
        descriptor = RequestDescriptor(
            method=RequestMethod.POST,
            address=address,
            headers=headers or {},
            body=_encode_body(body) or b"",
            content_type=JSON_CONTENT_TYPE,
            allow_caching=allow_caching,
            connect_timeout=timeout,
            read_timeout=timeout,
            max_retries=self._retries(max_retries),
        )
        correlator = RequestCorrelator(request_code, extras)
        return self._spawn("post", correlator, lambda: self._controller.attempt(descriptor, correlator))

    def execute_post_file(
        self,
        request_code: Optional[int],
        address: str,
        file_path: PathLike,
        max_retries: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        allow_caching: bool = True,
        extras: Extras = None,
    ) -> threading.Thread:
        """POST a local file as a deflate-compressed stream with progress events."""

        descriptor = RequestDescriptor(
            method=RequestMethod.POST,
            address=address,
            allow_caching=allow_caching,
            connect_timeout=self._timeout(timeout_seconds),
            read_timeout=self._settings.upload_read_timeout_s,
            max_retries=self._retries(max_retries),
        )
        correlator = RequestCorrelator(request_code, extras)
        return self._spawn(
            "upload", correlator, lambda: self._uploader.upload(descriptor, file_path, correlator)
        )

    def execute_request(
        self,
        method: Union[RequestMethod, str],
        request_code: Optional[int],
        address: str,
        headers: Headers = None,
        content_type: Optional[str] = None,
        body: Body = None,
        max_retries: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        allow_caching: bool = True,
        extras: Extras = None,
    ) -> threading.Thread:
        """Issue any supported method with optional headers, content type and body.

        Without ``timeout_seconds`` the connect/read timeouts fall back to
        ``request_connect_timeout_s``/``request_read_timeout_s``.
        """

        if timeout_seconds is None:
            connect_timeout = self._settings.request_connect_timeout_s
            read_timeout = self._settings.request_read_timeout_s
        else:
            connect_timeout = read_timeout = float(timeout_seconds)
        descriptor = RequestDescriptor(
            method=RequestMethod.coerce(method),
            address=address,
            headers=headers or {},
            body=_encode_body(body),
            content_type=content_type,
            allow_caching=allow_caching,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            max_retries=self._retries(max_retries),
        )
        correlator = RequestCorrelator(request_code, extras)
        return self._spawn(
            descriptor.method.value.lower(),
            correlator,
            lambda: self._controller.attempt(descriptor, correlator),
        )

    def download_file(
        self,
        request_code: Optional[int],
        address: str,
        destination_dir: PathLike,
        headers: Headers = None,
        desired_file_name: Optional[str] = None,
        max_retries: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        allow_caching: bool = True,
        extras: Extras = None,
    ) -> threading.Thread:
        """Download ``address`` into ``destination_dir``; reports ``on_file_downloaded``."""

        timeout = self._timeout(timeout_seconds)
        descriptor = RequestDescriptor(
            method=RequestMethod.GET,
            address=address,
            headers=headers or {},
            allow_caching=allow_caching,
            connect_timeout=timeout,
            read_timeout=timeout,
            max_retries=self._retries(max_retries),
        )
        correlator = RequestCorrelator(request_code, extras)
        return self._spawn(
            "download",
            correlator,
            lambda: self._downloader.download(
                descriptor, destination_dir, desired_file_name, correlator
            ),
        )

    # ------------------------------------------------------------------
    # Worker management
    # ------------------------------------------------------------------
    def _spawn(
        self, kind: str, correlator: RequestCorrelator, work: Callable[[], Outcome]
    ) -> threading.Thread:
        def _run() -> None:
            try:
                outcome = work()
            except Exception:
                logger.exception(
                    "Unexpected failure in request worker",
                    extra={"extra_fields": {"request_code": correlator.request_code, "kind": kind}},
                )
                outcome = Failure(ErrorKind.SERVER_ERROR)
            try:
                self._dispatcher.dispatch(outcome, correlator)
            except Exception:
                logger.exception(
                    "Failed to deliver request outcome",
                    extra={"extra_fields": {"request_code": correlator.request_code, "kind": kind}},
                )

        worker = threading.Thread(
            target=_run, name=f"httprelay-{kind}-{next(self._sequence)}", daemon=True
        )
        with self._workers_lock:
            self._workers = [t for t in self._workers if t.is_alive()]
            self._workers.append(worker)
        worker.start()
        return worker

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for every started worker; returns ``False`` if any is still running."""

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._workers_lock:
            workers = list(self._workers)
        for worker in workers:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            worker.join(remaining)
        return not any(worker.is_alive() for worker in workers)

    def close(self) -> None:
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            self._transport.close()

    def __enter__(self) -> "HttpRelayClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
