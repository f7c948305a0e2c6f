# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.errors",
#   "purpose": "Error kinds reported to listeners and the exceptions that map onto them",
#   "sections": [
#     {"id": "kinds", "name": "ErrorKind", "anchor": "KND", "kind": "api"},
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "terminal", "name": "Terminal Input Errors", "anchor": "TRM", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Error kinds reported to listeners and the exceptions that map onto them.

Listeners only ever see an :class:`ErrorKind`; the exception types below are
raised inside worker threads so the retry controller can tell terminal input
problems (a malformed address, a missing local file) apart from transient
transport failures. None of them crosses the worker/consumer boundary.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Optional

__all__ = [
    "ErrorKind",
    "HttpRelayError",
    "UrlInvalidError",
    "LocalFileInvalidError",
]


class ErrorKind(IntEnum):
    """Failure categories delivered through ``on_error``.

    The integer values are stable and shared with existing consumers.
    """

    EMPTY_RESPONSE = 1
    NO_CONNECTION = 2
    URL_INVALID = 3
    SERVER_ERROR = 4
    LOCAL_FILE_INVALID = 10
    # Reserved for response-body validation performed by callers.
    RESPONSE_DATA_INVALID = 11


class HttpRelayError(RuntimeError):
    """Base exception for failures raised while executing a relay request."""

    kind: ErrorKind = ErrorKind.SERVER_ERROR

    def __init__(self, message: str, *, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class UrlInvalidError(HttpRelayError):
    """Raised when an address cannot be turned into an absolute HTTP(S) URL."""

    kind = ErrorKind.URL_INVALID

    def __init__(self, address: str, reason: str = "malformed address") -> None:
        super().__init__(f"{reason}: {address!r}")
        self.address = address


class LocalFileInvalidError(HttpRelayError):
    """Raised when a local file precondition fails (missing, unreadable, too large)."""

    kind = ErrorKind.LOCAL_FILE_INVALID

    def __init__(self, path: object, reason: str = "local file is invalid") -> None:
        super().__init__(f"{reason}: {path}")
        self.path = path
