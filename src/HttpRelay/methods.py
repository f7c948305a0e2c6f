# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.methods",
#   "purpose": "HTTP verbs supported by the relay client.",
#   "sections": [
#     {
#       "id": "requestmethod",
#       "name": "RequestMethod",
#       "anchor": "class-requestmethod",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""HTTP verbs supported by the relay client."""

from __future__ import annotations

from enum import Enum


class RequestMethod(str, Enum):
    """Request methods accepted by :meth:`HttpRelayClient.execute_request`."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def coerce(cls, value: "RequestMethod | str") -> "RequestMethod":
        """Return the enum member for ``value`` (case-insensitive)."""

        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            raise ValueError(f"Unsupported request method: {value!r}") from exc


__all__ = ["RequestMethod"]
