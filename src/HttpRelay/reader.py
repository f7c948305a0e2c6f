"""Materialise a streamed response body into a single string.

The body is decoded strictly with the charset the response declares (UTF-8
otherwise) and split on ``\\r\\n``, ``\\r`` and ``\\n`` only; other Unicode
line separators such as form feeds or U+2028 stay part of the text. Lines are
reassembled with ``"\\n"`` after every line, the trailing one included, so
``"ok"`` reads back as ``"ok\\n"``. Existing consumers depend on that
terminator; it is kept deliberately.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import httpx

from .transport import Connection

__all__ = ["read_response"]

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

_LINE_BREAK = re.compile(r"\r\n|\r|\n")

_UNREADABLE = (
    httpx.ReadError,
    httpx.RemoteProtocolError,
    httpx.DecodingError,
    httpx.StreamError,
    UnicodeDecodeError,
)


def _split_lines(text: str) -> list[str]:
    lines = _LINE_BREAK.split(text)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def read_response(connection: Connection) -> Optional[str]:
    """Return the response text, or ``None`` when the body is empty or unreadable.

    Bytes that are not valid in the response charset make the body
    unreadable. Read timeouts are not swallowed here: they propagate so the
    retry controller treats them like any other timed-out attempt. The
    response stream is closed on every path.
    """

    try:
        raw = b"".join(connection.iter_bytes(READ_CHUNK_SIZE))
        text = raw.decode(connection.response_encoding, errors="strict")
    except _UNREADABLE as exc:
        logger.debug(
            "Error reading response",
            extra={"extra_fields": {"address": str(connection.url), "error": repr(exc)}},
        )
        return None
    finally:
        connection.close_response()

    lines = _split_lines(text)
    if not lines:
        return None
    return "".join(f"{line}\n" for line in lines)
