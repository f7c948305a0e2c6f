"""Public API for the HttpRelay asynchronous HTTP client.

Requests are issued from the caller's thread, executed on background workers
with a bounded retry budget, and reported back to a single listener through a
consumer-owned delivery context.
"""

from __future__ import annotations

from .client import JSON_CONTENT_TYPE, HttpRelayClient
from .connectivity import (
    CallableConnectivityProbe,
    ConnectivityProbe,
    SocketConnectivityProbe,
    StaticConnectivityProbe,
)
from .dispatcher import (
    BaseHttpEventListener,
    DeliveryContext,
    EventDispatcher,
    HttpEventListener,
    LoopDeliveryContext,
    QueueDeliveryContext,
)
from .downloader import resolve_download_filename
from .errors import ErrorKind, HttpRelayError, LocalFileInvalidError, UrlInvalidError
from .methods import RequestMethod
from .models import (
    DownloadedFile,
    Failure,
    Outcome,
    Progress,
    RequestCorrelator,
    RequestDescriptor,
    Success,
)
from .settings import RelaySettings, get_settings
from .transport import HttpxTransport

__version__ = "0.1.0"

__all__ = [
    "BaseHttpEventListener",
    "CallableConnectivityProbe",
    "ConnectivityProbe",
    "DeliveryContext",
    "DownloadedFile",
    "ErrorKind",
    "EventDispatcher",
    "Failure",
    "HttpEventListener",
    "HttpRelayClient",
    "HttpRelayError",
    "HttpxTransport",
    "JSON_CONTENT_TYPE",
    "LocalFileInvalidError",
    "LoopDeliveryContext",
    "Outcome",
    "Progress",
    "QueueDeliveryContext",
    "RelaySettings",
    "RequestCorrelator",
    "RequestDescriptor",
    "RequestMethod",
    "SocketConnectivityProbe",
    "StaticConnectivityProbe",
    "Success",
    "UrlInvalidError",
    "get_settings",
    "resolve_download_filename",
    "__version__",
]
