# === NAVMAP v1 ===
# {
#   "module": "tests.test_retry_controller",
#   "purpose": "Pytest coverage for the bounded retry loop",
#   "sections": [
#     {
#       "id": "helpers",
#       "name": "helpers",
#       "anchor": "helpers",
#       "kind": "section"
#     },
#     {
#       "id": "tests",
#       "name": "tests",
#       "anchor": "tests",
#       "kind": "section"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Retry Controller Tests

This module drives :class:`HttpRelay.retry.RetryController` against mocked
transports to verify attempt counting, failure classification and the
connection lifecycle.

Key Scenarios:
- ``max_retries = N`` yields exactly ``N + 1`` attempts before ``SERVER_ERROR``
- Offline probes and malformed addresses fail before any transport call
- Non-2xx statuses are logged but their body is still delivered
- Each attempt disconnects its connection exactly once

Usage:
    pytest tests/test_retry_controller.py
"""

from __future__ import annotations

import logging

import httpx
import pytest

from HttpRelay.errors import ErrorKind, LocalFileInvalidError
from HttpRelay.methods import RequestMethod
from HttpRelay.models import Failure, RequestCorrelator, RequestDescriptor, Success
from HttpRelay.retry import RetryController, is_success_status


def _descriptor(address: str = "https://example.org/api", **overrides) -> RequestDescriptor:
    params = {"method": RequestMethod.GET, "address": address, "max_retries": 2}
    params.update(overrides)
    return RequestDescriptor(**params)


class _Counter:
    def __init__(self, responder):
        self.calls: list[httpx.Request] = []
        self._responder = responder

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return self._responder(request, len(self.calls))


# --- Tests ---


@pytest.mark.parametrize("max_retries", [0, 1, 3])
def test_timeouts_exhaust_budget_then_report_server_error(make_transport, make_controller, max_retries):
    def _timeout(request, attempt):
        raise httpx.ConnectTimeout("timed out", request=request)

    handler = _Counter(_timeout)
    controller = make_controller(make_transport(handler))

    outcome = controller.attempt(_descriptor(max_retries=max_retries))

    assert outcome == Failure(ErrorKind.SERVER_ERROR)
    assert len(handler.calls) == max_retries + 1


def test_recovers_after_transient_failures(make_transport, make_controller):
    def _flaky(request, attempt):
        if attempt < 3:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, content=b"ok")

    handler = _Counter(_flaky)
    controller = make_controller(make_transport(handler))

    assert controller.attempt(_descriptor(max_retries=5)) == Success("ok\n")
    assert len(handler.calls) == 3


def test_offline_probe_short_circuits(make_transport, make_controller, probe):
    handler = _Counter(lambda request, attempt: httpx.Response(200, content=b"ok"))
    transport = make_transport(handler)
    controller = make_controller(transport)
    probe.set_connected(False)

    assert controller.attempt(_descriptor()) == Failure(ErrorKind.NO_CONNECTION)
    assert handler.calls == []
    assert transport.opened == []


@pytest.mark.parametrize("address", ["not a url", "", "ftp://example.org/file", "https://"])
def test_malformed_address_is_terminal(make_transport, make_controller, address):
    handler = _Counter(lambda request, attempt: httpx.Response(200, content=b"ok"))
    transport = make_transport(handler)
    controller = make_controller(transport)

    assert controller.attempt(_descriptor(address, max_retries=4)) == Failure(ErrorKind.URL_INVALID)
    assert handler.calls == []
    assert transport.opened == []


def test_non_success_status_is_advisory(make_transport, make_controller, caplog):
    handler = _Counter(lambda request, attempt: httpx.Response(500, content=b"oops"))
    controller = make_controller(make_transport(handler))

    with caplog.at_level(logging.WARNING, logger="HttpRelay"):
        outcome = controller.attempt(_descriptor())

    assert outcome == Success("oops\n")
    assert len(handler.calls) == 1
    assert any("response code was: 500" in record.getMessage() for record in caplog.records)


def test_empty_body_is_reported_without_retry(make_transport, make_controller):
    handler = _Counter(lambda request, attempt: httpx.Response(404, content=b""))
    controller = make_controller(make_transport(handler))

    assert controller.attempt(_descriptor(max_retries=3)) == Failure(ErrorKind.EMPTY_RESPONSE)
    assert len(handler.calls) == 1


def test_read_timeout_while_reading_body_is_retried(make_transport, make_controller):
    from conftest import RaisingStream

    def _slow_then_ok(request, attempt):
        if attempt == 1:
            return httpx.Response(200, stream=RaisingStream([b"par"], httpx.ReadTimeout("slow")))
        return httpx.Response(200, content=b"complete")

    handler = _Counter(_slow_then_ok)
    transport = make_transport(handler)
    controller = make_controller(transport)

    assert controller.attempt(_descriptor()) == Success("complete\n")
    assert len(handler.calls) == 2
    assert [connection.disconnect_calls for connection in transport.opened] == [1, 1]


def test_each_attempt_disconnects_once(make_transport, make_controller):
    def _always_fail(request, attempt):
        raise httpx.ReadTimeout("timed out", request=request)

    transport = make_transport(_Counter(_always_fail))
    controller = make_controller(transport)

    controller.attempt(_descriptor(max_retries=2))

    assert len(transport.opened) == 3
    assert all(connection.disconnect_calls == 1 for connection in transport.opened)


def test_request_headers_body_and_timeouts(make_transport, make_controller):
    handler = _Counter(lambda request, attempt: httpx.Response(201, content=b"created"))
    controller = make_controller(make_transport(handler))
    descriptor = _descriptor(
        method=RequestMethod.PUT,
        headers={"X-Trace": "abc"},
        body='{"name": "relay"}',
        content_type="application/json",
        allow_caching=False,
        connect_timeout=3.0,
        read_timeout=5.0,
    )

    assert controller.attempt(descriptor) == Success("created\n")

    request = handler.calls[0]
    assert request.method == "PUT"
    assert request.headers["X-Trace"] == "abc"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Cache-Control"] == "no-cache"
    assert request.content == b'{"name": "relay"}'
    timeout = request.extensions["timeout"]
    assert timeout["connect"] == 3.0
    assert timeout["read"] == 5.0


def test_caching_allowed_sends_no_cache_control(make_transport, make_controller):
    handler = _Counter(lambda request, attempt: httpx.Response(200, content=b"ok"))
    controller = make_controller(make_transport(handler))

    controller.attempt(_descriptor())

    assert "Cache-Control" not in handler.calls[0].headers


def test_attempts_observe_shrinking_budget(make_transport, make_controller):
    controller = make_controller(make_transport(lambda request: httpx.Response(200)))
    seen: list[int] = []

    def _action(current: RequestDescriptor):
        seen.append(current.retries_remaining)
        raise httpx.ConnectError("refused")

    outcome = controller.run(_descriptor(max_retries=3), _action)

    assert outcome == Failure(ErrorKind.SERVER_ERROR)
    assert seen == [3, 2, 1, 0]


def test_terminal_relay_errors_are_not_retried(make_transport, make_controller):
    controller = make_controller(make_transport(lambda request: httpx.Response(200)))
    calls = []

    def _action(current: RequestDescriptor):
        calls.append(current)
        raise LocalFileInvalidError("/missing", "File does not exist")

    outcome = controller.run(_descriptor(max_retries=3), _action, retry_on=(httpx.TransportError, OSError))

    assert outcome == Failure(ErrorKind.LOCAL_FILE_INVALID)
    assert len(calls) == 1


def test_retry_warnings_carry_request_context(make_transport, make_controller, caplog):
    def _always_fail(request):
        raise httpx.ConnectError("refused", request=request)

    controller = make_controller(make_transport(_always_fail))

    with caplog.at_level(logging.WARNING, logger="HttpRelay"):
        controller.attempt(_descriptor(max_retries=2), RequestCorrelator(request_code=7))

    retry_records = [r for r in caplog.records if "retrying" in r.getMessage()]
    assert len(retry_records) == 2
    assert retry_records[0].extra_fields["request_code"] == 7
    assert retry_records[0].extra_fields["attempt"] == 1
    exhausted = [r for r in caplog.records if r.getMessage() == "Retries exhausted"]
    assert exhausted and exhausted[0].extra_fields["error_code"] == "SERVER_ERROR"


def test_debug_tracing_logs_request_and_response(make_transport, make_controller, caplog):
    controller = make_controller(make_transport(lambda request: httpx.Response(200, content=b"pong")))
    controller.debug_requests = True

    with caplog.at_level(logging.DEBUG, logger="HttpRelay"):
        controller.attempt(_descriptor(method=RequestMethod.POST, body=b"ping"))

    messages = [record.getMessage() for record in caplog.records]
    assert "POST REQUEST: https://example.org/api" in messages
    assert "POST BODY: ping" in messages
    assert "POST RESPONSE: pong\n" in messages


@pytest.mark.parametrize(("status", "expected"), [(199, False), (200, True), (299, True), (300, False)])
def test_is_success_status(status, expected):
    assert is_success_status(status) is expected


def test_controller_defaults_to_process_settings(make_transport, probe, monkeypatch):
    monkeypatch.setenv("HTTPRELAY_DEBUG_REQUESTS", "true")
    controller = RetryController(make_transport(lambda request: httpx.Response(200)), probe)
    assert controller.debug_requests is True
