# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.retry",
#   "purpose": "Bounded retry loop and failure classification for relay requests.",
#   "sections": [
#     {
#       "id": "is-success-status",
#       "name": "is_success_status",
#       "anchor": "function-is-success-status",
#       "kind": "function"
#     },
#     {
#       "id": "retrycontroller",
#       "name": "RetryController",
#       "anchor": "class-retrycontroller",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Bounded retry loop and failure classification for relay requests.

:class:`RetryController` owns the policy shared by every request family:

1. The connectivity probe is consulted once per logical request. When it
   reports offline the request fails with ``NO_CONNECTION`` before any
   transport call and without touching the retry budget.
2. Attempts run inside a Tenacity :class:`~tenacity.Retrying` loop capped at
   ``max_retries + 1`` attempts. Each attempt receives the descriptor with the
   remaining budget, so the budget seen by attempts only ever shrinks.
3. Failures are classified:

   - malformed addresses (``UrlInvalidError``, ``httpx.UnsupportedProtocol``,
     ``httpx.InvalidURL``) end the request with ``URL_INVALID``;
   - local file problems (``LocalFileInvalidError``) end it with
     ``LOCAL_FILE_INVALID``;
   - transport failures (timeouts, connection resets, protocol errors) are
     retried, and exhaustion reports ``SERVER_ERROR``;
   - any other ``httpx.HTTPError`` reports ``SERVER_ERROR`` immediately.

A non-2xx status is logged but is not a failure by itself; the body is read
and only an empty or unreadable body turns into ``EMPTY_RESPONSE``.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_none, wait_random_exponential

from .connectivity import ConnectivityProbe
from .errors import ErrorKind, HttpRelayError
from .logging_utils import StructuredLogger, get_logger, log_event
from .models import Failure, Outcome, RequestCorrelator, RequestDescriptor, Success
from .reader import read_response
from .settings import RelaySettings, get_settings
from .transport import Transport

__all__ = [
    "RETRYABLE_TRANSPORT_ERRORS",
    "RetryController",
    "is_success_status",
]

RETRYABLE_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (httpx.TransportError,)

# Terminal even when they subclass a retryable type.
_NEVER_RETRIED: tuple[type[BaseException], ...] = (HttpRelayError, httpx.UnsupportedProtocol)
_URL_ERRORS: tuple[type[BaseException], ...] = (httpx.InvalidURL, httpx.UnsupportedProtocol)

Action = Callable[[RequestDescriptor], Outcome]


def is_success_status(status_code: int) -> bool:
    return 200 <= status_code < 300


class RetryController:
    """Run logical requests against a transport with a bounded retry budget."""

    def __init__(
        self,
        transport: Transport,
        connectivity: ConnectivityProbe,
        *,
        settings: Optional[RelaySettings] = None,
    ) -> None:
        self._transport = transport
        self._connectivity = connectivity
        self._settings = settings or get_settings()
        self.debug_requests = self._settings.debug_requests
        self._logger = get_logger(__name__)

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def settings(self) -> RelaySettings:
        return self._settings

    def logger_for(
        self, descriptor: RequestDescriptor, correlator: RequestCorrelator
    ) -> StructuredLogger:
        return self._logger.child(
            method=descriptor.method.value,
            address=descriptor.address,
            request_code=correlator.request_code,
        )

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------
    def attempt(
        self, descriptor: RequestDescriptor, correlator: Optional[RequestCorrelator] = None
    ) -> Outcome:
        """Execute a plain request (GET/POST/PUT/PATCH/DELETE) with retries."""

        correlator = correlator or RequestCorrelator()
        log = self.logger_for(descriptor, correlator)
        return self.run(
            descriptor,
            lambda current: self._execute_once(current, log),
            correlator=correlator,
        )

    def run(
        self,
        descriptor: RequestDescriptor,
        action: Action,
        *,
        correlator: Optional[RequestCorrelator] = None,
        retry_on: tuple[type[BaseException], ...] = RETRYABLE_TRANSPORT_ERRORS,
    ) -> Outcome:
        """Run ``action`` until it returns, fails terminally, or the budget runs out.

        ``action`` performs one attempt and returns its outcome; raising one of
        ``retry_on`` schedules another attempt while retries remain.
        """

        correlator = correlator or RequestCorrelator()
        log = self.logger_for(descriptor, correlator)

        if not self._connectivity.is_connected():
            log_event(log, "warning", "No network connection", error_code="NO_CONNECTION")
            return Failure(ErrorKind.NO_CONNECTION)

        try:
            for attempt in self._build_retrying(descriptor, retry_on, log):
                with attempt:
                    used = attempt.retry_state.attempt_number - 1
                    current = descriptor.with_retries_remaining(descriptor.max_retries - used)
                    return action(current)
        except HttpRelayError as exc:
            log_event(log, "error", str(exc), error_code=exc.kind.name)
            return Failure(exc.kind)
        except _URL_ERRORS as exc:
            log_event(log, "error", f"Invalid address: {exc}", error_code="URL_INVALID")
            return Failure(ErrorKind.URL_INVALID)
        except retry_on as exc:
            log_event(
                log,
                "error",
                "Retries exhausted",
                error_code="SERVER_ERROR",
                attempts=descriptor.max_retries + 1,
                exception=repr(exc),
            )
            return Failure(ErrorKind.SERVER_ERROR)
        except httpx.HTTPError as exc:
            log_event(log, "error", f"Unrecoverable HTTP failure: {exc!r}", error_code="SERVER_ERROR")
            return Failure(ErrorKind.SERVER_ERROR)
        raise AssertionError("retry loop exited without an outcome")  # pragma: no cover

    # ------------------------------------------------------------------
    # Attempt helpers
    # ------------------------------------------------------------------
    def _build_retrying(
        self,
        descriptor: RequestDescriptor,
        retry_on: tuple[type[BaseException], ...],
        log: StructuredLogger,
    ) -> Retrying:
        def _is_retryable(exc: BaseException) -> bool:
            return isinstance(exc, retry_on) and not isinstance(exc, _NEVER_RETRIED)

        backoff = self._settings.retry_backoff_s
        wait_strategy = wait_random_exponential(multiplier=backoff) if backoff > 0 else wait_none()

        def _before_sleep(retry_state) -> None:
            outcome = retry_state.outcome
            exc = outcome.exception() if outcome is not None and outcome.failed else None
            log_event(
                log,
                "warning",
                "Exception while executing request, retrying",
                attempt=retry_state.attempt_number,
                retries_remaining=descriptor.max_retries - retry_state.attempt_number,
                exception=repr(exc) if exc is not None else None,
            )

        return Retrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(descriptor.max_retries + 1),
            wait=wait_strategy,
            sleep=time.sleep,
            reraise=True,
            before_sleep=_before_sleep,
        )

    def _execute_once(self, descriptor: RequestDescriptor, log: StructuredLogger) -> Outcome:
        if self.debug_requests:
            log.debug(f"{descriptor.method.value} REQUEST: {descriptor.address}")
            if descriptor.body is not None:
                log.debug(
                    f"{descriptor.method.value} BODY: {descriptor.body.decode('utf-8', 'replace')}"
                )

        connection = self._transport.open(descriptor.address)
        try:
            connection.configure(
                descriptor.method,
                headers=descriptor.effective_headers(),
                connect_timeout=descriptor.connect_timeout,
                read_timeout=descriptor.read_timeout,
            )
            status = connection.send(descriptor.body)
            if self.debug_requests:
                log.debug(f"Response code: {status}")
            if not is_success_status(status):
                log_event(
                    log,
                    "warning",
                    f"Error executing {descriptor.method.value} request, response code was: {status}",
                    status_code=status,
                )
            response_text = read_response(connection)
        finally:
            connection.disconnect()

        if response_text is None:
            log_event(log, "warning", "Empty response", error_code="EMPTY_RESPONSE")
            return Failure(ErrorKind.EMPTY_RESPONSE)
        if self.debug_requests:
            log.debug(f"{descriptor.method.value} RESPONSE: {response_text}")
        return Success(response_text)
