"""
Request Model Tests

Covers request method coercion, descriptor immutability and the headers a
descriptor implies.
"""

from __future__ import annotations

import dataclasses

import httpx
import pytest

from HttpRelay.errors import ErrorKind, HttpRelayError, LocalFileInvalidError, UrlInvalidError
from HttpRelay.methods import RequestMethod
from HttpRelay.models import DownloadedFile, Failure, Progress, RequestCorrelator, RequestDescriptor, Success


@pytest.mark.parametrize("value", ["get", "GET", " Get ", RequestMethod.GET])
def test_method_coercion(value):
    assert RequestMethod.coerce(value) is RequestMethod.GET


def test_unknown_method_is_rejected():
    with pytest.raises(ValueError, match="Unsupported request method"):
        RequestMethod.coerce("TRACE")


def test_descriptor_is_frozen_and_copies_headers():
    headers = {"X-One": "1"}
    descriptor = RequestDescriptor("post", "https://example.org", headers=headers, body="é")
    headers["X-Two"] = "2"

    assert descriptor.method is RequestMethod.POST
    assert dict(descriptor.headers) == {"X-One": "1"}
    assert descriptor.body == "é".encode("utf-8")
    with pytest.raises(dataclasses.FrozenInstanceError):
        descriptor.address = "https://other.example.org"  # type: ignore[misc]
    with pytest.raises(TypeError):
        descriptor.headers["X-Three"] = "3"  # type: ignore[index]


def test_retry_budget_only_shrinks():
    descriptor = RequestDescriptor(RequestMethod.GET, "https://example.org", max_retries=3)

    assert descriptor.with_retries_remaining(1).retries_remaining == 1
    assert descriptor.with_retries_remaining(10).retries_remaining == 3
    assert descriptor.with_retries_remaining(-1).retries_remaining == 0
    assert descriptor.retries_remaining == 3


def test_negative_budget_is_rejected():
    with pytest.raises(ValueError):
        RequestDescriptor(RequestMethod.GET, "https://example.org", max_retries=-1)


def test_effective_headers():
    descriptor = RequestDescriptor(
        RequestMethod.POST,
        "https://example.org",
        headers={"Authorization": "Bearer t"},
        content_type="application/json",
        allow_caching=False,
    )
    headers = descriptor.effective_headers()

    assert isinstance(headers, httpx.Headers)
    assert sorted(headers.items()) == [
        ("authorization", "Bearer t"),
        ("cache-control", "no-cache"),
        ("content-type", "application/json"),
    ]


def test_implied_headers_replace_caller_headers_of_any_case():
    descriptor = RequestDescriptor(
        RequestMethod.POST,
        "https://example.org",
        headers={"content-type": "text/plain", "cache-control": "max-age=5"},
        content_type="application/json",
        allow_caching=False,
    )
    headers = descriptor.effective_headers()

    assert len(headers) == 2
    assert headers.get_list("Content-Type") == ["application/json"]
    assert headers.get_list("Cache-Control") == ["no-cache"]


def test_caller_headers_survive_when_nothing_is_implied():
    descriptor = RequestDescriptor(
        RequestMethod.GET, "https://example.org", headers={"cache-control": "max-age=5"}
    )

    assert dict(descriptor.effective_headers()) == {"cache-control": "max-age=5"}


def test_outcome_terminality():
    assert Success("x").is_terminal
    assert Failure(ErrorKind.SERVER_ERROR).is_terminal
    assert DownloadedFile("f").is_terminal
    assert not Progress(1, 2).is_terminal


def test_correlator_wants_result():
    assert RequestCorrelator(0).wants_result
    assert not RequestCorrelator(None, {"k": "v"}).wants_result


def test_error_kind_codes_are_stable():
    assert {kind.name: int(kind) for kind in ErrorKind} == {
        "EMPTY_RESPONSE": 1,
        "NO_CONNECTION": 2,
        "URL_INVALID": 3,
        "SERVER_ERROR": 4,
        "LOCAL_FILE_INVALID": 10,
        "RESPONSE_DATA_INVALID": 11,
    }


def test_exceptions_carry_kinds():
    assert UrlInvalidError("nope").kind is ErrorKind.URL_INVALID
    assert LocalFileInvalidError("/x").kind is ErrorKind.LOCAL_FILE_INVALID
    assert HttpRelayError("boom").kind is ErrorKind.SERVER_ERROR
    assert HttpRelayError("bad", kind=ErrorKind.RESPONSE_DATA_INVALID).kind is ErrorKind.RESPONSE_DATA_INVALID
