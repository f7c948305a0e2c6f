# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.dispatcher",
#   "purpose": "Deliver request outcomes to the registered listener on its consumer context.",
#   "sections": [
#     {
#       "id": "httpeventlistener",
#       "name": "HttpEventListener",
#       "anchor": "class-httpeventlistener",
#       "kind": "class"
#     },
#     {
#       "id": "deliverycontext",
#       "name": "DeliveryContext",
#       "anchor": "class-deliverycontext",
#       "kind": "class"
#     },
#     {
#       "id": "queuedeliverycontext",
#       "name": "QueueDeliveryContext",
#       "anchor": "class-queuedeliverycontext",
#       "kind": "class"
#     },
#     {
#       "id": "loopdeliverycontext",
#       "name": "LoopDeliveryContext",
#       "anchor": "class-loopdeliverycontext",
#       "kind": "class"
#     },
#     {
#       "id": "eventdispatcher",
#       "name": "EventDispatcher",
#       "anchor": "class-eventdispatcher",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Deliver request outcomes to the registered listener on its consumer context.

Worker threads never call listener methods directly. Each outcome is bound
into a zero-argument callback and posted to a :class:`DeliveryContext`, a
FIFO channel owned by the consumer (a UI thread draining a
:class:`QueueDeliveryContext`, or an ``asyncio`` loop behind a
:class:`LoopDeliveryContext`). FIFO delivery keeps the events of one logical
request in issue order; events of different requests may interleave.

Suppression rules:

- no listener registered: nothing is delivered;
- terminal outcomes (success, error, downloaded file) without a request code
  are dropped, which makes ``request_code=None`` a fire-and-forget call;
- progress is delivered whenever a listener is registered.
"""

from __future__ import annotations

import asyncio
import queue
import threading
import time
from functools import partial
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable

from .errors import ErrorKind
from .models import DownloadedFile, Failure, Outcome, Progress, RequestCorrelator, Success

__all__ = [
    "BaseHttpEventListener",
    "DeliveryContext",
    "EventDispatcher",
    "HttpEventListener",
    "LoopDeliveryContext",
    "QueueDeliveryContext",
]

Extras = Optional[Mapping[str, Any]]


@runtime_checkable
class HttpEventListener(Protocol):
    """Callbacks invoked on the consumer context."""

    def on_progress(
        self, request_code: Optional[int], bytes_total: int, bytes_processed: int, extras: Extras
    ) -> None:  # pragma: no cover - protocol
        ...

    def on_request_complete(
        self, request_code: int, response_text: str, extras: Extras
    ) -> None:  # pragma: no cover - protocol
        ...

    def on_error(
        self, request_code: int, error_kind: ErrorKind, extras: Extras
    ) -> None:  # pragma: no cover - protocol
        ...

    def on_file_downloaded(
        self, request_code: int, file_path: Any, extras: Extras
    ) -> None:  # pragma: no cover - protocol
        ...


class BaseHttpEventListener:
    """Listener with no-op callbacks; subclass and override what you need."""

    def on_progress(self, request_code, bytes_total, bytes_processed, extras) -> None:
        pass

    def on_request_complete(self, request_code, response_text, extras) -> None:
        pass

    def on_error(self, request_code, error_kind, extras) -> None:
        pass

    def on_file_downloaded(self, request_code, file_path, extras) -> None:
        pass


class DeliveryContext(Protocol):
    def post(self, callback: Callable[[], None]) -> None:  # pragma: no cover - protocol
        ...


class QueueDeliveryContext:
    """Thread-safe FIFO of callbacks drained by the owning consumer thread.

    Examples:
        >>> context = QueueDeliveryContext()
        >>> context.post(lambda: print("delivered"))
        >>> context.process_pending()
        delivered
        1
    """

    def __init__(self) -> None:
        self._queue: "queue.SimpleQueue[Callable[[], None]]" = queue.SimpleQueue()

    def post(self, callback: Callable[[], None]) -> None:
        self._queue.put(callback)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def process_pending(self, *, block: bool = False, timeout: Optional[float] = None) -> int:
        """Run queued callbacks on the calling thread and return how many ran.

        With ``block=True`` waits up to ``timeout`` seconds for the first
        callback before draining whatever else is queued.
        """

        processed = 0
        if block:
            try:
                callback = self._queue.get(timeout=timeout)
            except queue.Empty:
                return 0
            callback()
            processed += 1
        while True:
            try:
                callback = self._queue.get_nowait()
            except queue.Empty:
                return processed
            callback()
            processed += 1

    def process_until(
        self,
        predicate: Callable[[], bool],
        *,
        timeout: Optional[float] = None,
        poll_interval: float = 0.05,
    ) -> bool:
        """Deliver callbacks until ``predicate()`` holds; ``False`` on timeout."""

        deadline = None if timeout is None else time.monotonic() + timeout
        while not predicate():
            wait = poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                wait = min(wait, remaining)
            self.process_pending(block=True, timeout=wait)
        return True


class LoopDeliveryContext:
    """Deliver callbacks on an ``asyncio`` event loop via ``call_soon_threadsafe``."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def post(self, callback: Callable[[], None]) -> None:
        self._loop.call_soon_threadsafe(callback)


class EventDispatcher:
    """Route outcomes to one listener through one delivery context."""

    def __init__(
        self,
        listener: Optional[HttpEventListener] = None,
        context: Optional[DeliveryContext] = None,
    ) -> None:
        self._listener = listener
        self._context: DeliveryContext = context or QueueDeliveryContext()
        self._lock = threading.Lock()

    @property
    def context(self) -> DeliveryContext:
        return self._context

    @property
    def listener(self) -> Optional[HttpEventListener]:
        return self._listener

    def set_listener(self, listener: Optional[HttpEventListener]) -> None:
        with self._lock:
            self._listener = listener

    def dispatch(self, outcome: Outcome, correlator: RequestCorrelator) -> bool:
        """Post ``outcome`` for delivery; returns ``False`` when it was suppressed."""

        with self._lock:
            listener = self._listener
        if listener is None:
            return False
        if outcome.is_terminal and not correlator.wants_result:
            return False
        self._context.post(self._bind(listener, outcome, correlator))
        return True

    @staticmethod
    def _bind(
        listener: HttpEventListener, outcome: Outcome, correlator: RequestCorrelator
    ) -> Callable[[], None]:
        code = correlator.request_code
        extras = correlator.extras
        if isinstance(outcome, Progress):
            return partial(
                listener.on_progress, code, outcome.bytes_total, outcome.bytes_processed, extras
            )
        if isinstance(outcome, Success):
            return partial(listener.on_request_complete, code, outcome.response_text, extras)
        if isinstance(outcome, Failure):
            return partial(listener.on_error, code, outcome.kind, extras)
        if isinstance(outcome, DownloadedFile):
            return partial(listener.on_file_downloaded, code, outcome.path, extras)
        raise TypeError(f"Unsupported outcome type: {type(outcome)!r}")
