# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.models",
#   "purpose": "Request descriptors, correlators and outcome variants.",
#   "sections": [
#     {
#       "id": "requestdescriptor",
#       "name": "RequestDescriptor",
#       "anchor": "class-requestdescriptor",
#       "kind": "class"
#     },
#     {
#       "id": "requestcorrelator",
#       "name": "RequestCorrelator",
#       "anchor": "class-requestcorrelator",
#       "kind": "class"
#     },
#     {
#       "id": "outcomes",
#       "name": "Success / Failure / Progress / DownloadedFile",
#       "anchor": "section-outcomes",
#       "kind": "section"
#     }
#   ]
# }
# === /NAVMAP ===

"""Request descriptors, correlators and outcome variants.

A :class:`RequestDescriptor` captures everything needed to perform one
attempt against the transport. It is frozen; retried attempts receive a copy
carrying the decremented retry budget. A :class:`RequestCorrelator` travels
alongside it untouched so the eventual event can be matched to the call that
produced it.

Outcomes are small frozen dataclasses. Exactly one terminal outcome
(:class:`Success`, :class:`Failure` or :class:`DownloadedFile`) is produced
per logical request; :class:`Progress` may precede it any number of times.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

import httpx

from .errors import ErrorKind
from .methods import RequestMethod

__all__ = [
    "RequestDescriptor",
    "RequestCorrelator",
    "Success",
    "Failure",
    "Progress",
    "DownloadedFile",
    "Outcome",
]


def _freeze_headers(headers: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    if not headers:
        return MappingProxyType({})
    return MappingProxyType({str(key): str(value) for key, value in headers.items() if value is not None})


@dataclass(frozen=True)
class RequestDescriptor:
    """Immutable description of a request attempt."""

    method: RequestMethod
    address: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    content_type: Optional[str] = None
    allow_caching: bool = True
    connect_timeout: float = 10.0
    read_timeout: float = 10.0
    max_retries: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", RequestMethod.coerce(self.method))
        object.__setattr__(self, "headers", _freeze_headers(self.headers))
        if isinstance(self.body, str):
            object.__setattr__(self, "body", self.body.encode("utf-8"))
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")

    @property
    def retries_remaining(self) -> int:
        return self.max_retries

    def with_retries_remaining(self, remaining: int) -> "RequestDescriptor":
        """Return a copy for a retried attempt; the budget never grows."""

        return replace(self, max_retries=max(0, min(int(remaining), self.max_retries)))

    def effective_headers(self) -> httpx.Headers:
        """Caller headers plus the headers implied by the descriptor.

        Implied headers replace caller headers of the same name regardless of case.
        """

        headers = httpx.Headers(self.headers)
        if not self.allow_caching:
            headers["Cache-Control"] = "no-cache"
        if self.content_type is not None:
            headers["Content-Type"] = self.content_type
        return headers


@dataclass(frozen=True)
class RequestCorrelator:
    """Caller supplied tag and opaque extras echoed back with every event."""

    request_code: Optional[int] = None
    extras: Optional[Mapping[str, Any]] = None

    @property
    def wants_result(self) -> bool:
        return self.request_code is not None


# --- Outcomes -------------------------------------------------------------


@dataclass(frozen=True)
class Success:
    response_text: str
    is_terminal: bool = field(default=True, init=False, repr=False)


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    is_terminal: bool = field(default=True, init=False, repr=False)


@dataclass(frozen=True)
class Progress:
    bytes_processed: int
    bytes_total: int
    is_terminal: bool = field(default=False, init=False, repr=False)


@dataclass(frozen=True)
class DownloadedFile:
    path: Path
    is_terminal: bool = field(default=True, init=False, repr=False)


Outcome = Union[Success, Failure, Progress, DownloadedFile]
