# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures for the HttpRelay suite",
#   "sections": [
#     {
#       "id": "recordinglistener",
#       "name": "RecordingListener",
#       "anchor": "class-recordinglistener",
#       "kind": "class"
#     },
#     {
#       "id": "trackingtransport",
#       "name": "TrackingTransport",
#       "anchor": "class-trackingtransport",
#       "kind": "class"
#     },
#     {
#       "id": "fixtures",
#       "name": "fixtures",
#       "anchor": "fixtures",
#       "kind": "section"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Shared fixtures for hermetic HttpRelay tests. Every transport is an
``httpx.Client`` backed by ``httpx.MockTransport`` so no test touches the
network; listeners record the events they receive together with the thread
that delivered them.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Callable, Iterator

import httpx
import pytest

from HttpRelay.connectivity import StaticConnectivityProbe
from HttpRelay.dispatcher import EventDispatcher, QueueDeliveryContext
from HttpRelay.logging_utils import ROOT_LOGGER_NAME
from HttpRelay.retry import RetryController
from HttpRelay.settings import RelaySettings, reset_settings_cache
from HttpRelay.transport import HttpConnection, HttpxTransport, parse_address

Handler = Callable[[httpx.Request], httpx.Response]


class RecordingListener:
    """Listener capturing every callback as a tuple."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []
        self.threads: list[str] = []

    def _record(self, *event: Any) -> None:
        self.events.append(event)
        self.threads.append(threading.current_thread().name)

    def on_progress(self, request_code, bytes_total, bytes_processed, extras) -> None:
        self._record("progress", request_code, bytes_total, bytes_processed, extras)

    def on_request_complete(self, request_code, response_text, extras) -> None:
        self._record("complete", request_code, response_text, extras)

    def on_error(self, request_code, error_kind, extras) -> None:
        self._record("error", request_code, error_kind, extras)

    def on_file_downloaded(self, request_code, file_path, extras) -> None:
        self._record("downloaded", request_code, file_path, extras)

    def of_type(self, kind: str) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] == kind]

    @property
    def terminal(self) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] != "progress"]

    @property
    def progress(self) -> list[tuple[int, int]]:
        """``(bytes_processed, bytes_total)`` pairs in delivery order."""
        return [(event[3], event[2]) for event in self.of_type("progress")]


class CountingConnection(HttpConnection):
    def __init__(self, client: httpx.Client, url: httpx.URL) -> None:
        super().__init__(client, url)
        self.disconnect_calls = 0

    def disconnect(self) -> None:
        self.disconnect_calls += 1
        super().disconnect()


class TrackingTransport(HttpxTransport):
    """Mock-backed transport remembering every connection it opened."""

    def __init__(self, handler: Handler) -> None:
        super().__init__(httpx.Client(transport=httpx.MockTransport(handler)))
        self.opened: list[CountingConnection] = []

    def open(self, address: str) -> CountingConnection:
        connection = CountingConnection(self.client, parse_address(address))
        self.opened.append(connection)
        return connection


class RaisingStream(httpx.SyncByteStream):
    """Response stream yielding ``chunks`` then raising ``error``."""

    def __init__(self, chunks: list[bytes], error: Exception) -> None:
        self._chunks = chunks
        self._error = error
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        yield from self._chunks
        raise self._error

    def close(self) -> None:
        self.closed = True


def stepping_clock(step: float = 1.0) -> Callable[[], float]:
    """Clock advancing ``step`` seconds per call, so no progress is throttled."""

    ticks = itertools.count(0.0, step)
    return lambda: next(ticks)


# --- Fixtures ---


@pytest.fixture(autouse=True)
def _isolate_settings_and_logging() -> Iterator[None]:
    reset_settings_cache()
    yield
    reset_settings_cache()
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_httprelay_managed", False):
            logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def settings() -> RelaySettings:
    return RelaySettings(default_retries=2, retry_backoff_s=0.0, chunk_size=4096)


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def delivery() -> QueueDeliveryContext:
    return QueueDeliveryContext()


@pytest.fixture
def dispatcher(listener: RecordingListener, delivery: QueueDeliveryContext) -> EventDispatcher:
    return EventDispatcher(listener, delivery)


@pytest.fixture
def probe() -> StaticConnectivityProbe:
    return StaticConnectivityProbe(True)


@pytest.fixture
def make_transport() -> Iterator[Callable[[Handler], TrackingTransport]]:
    created: list[TrackingTransport] = []

    def _factory(handler: Handler) -> TrackingTransport:
        transport = TrackingTransport(handler)
        created.append(transport)
        return transport

    yield _factory
    for transport in created:
        transport.client.close()


@pytest.fixture
def make_controller(
    probe: StaticConnectivityProbe, settings: RelaySettings
) -> Callable[[TrackingTransport], RetryController]:
    def _factory(transport: TrackingTransport) -> RetryController:
        return RetryController(transport, probe, settings=settings)

    return _factory
