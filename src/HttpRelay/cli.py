# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.cli",
#   "purpose": "Typer command line front-end for one-shot relay requests.",
#   "sections": [
#     {
#       "id": "clilistener",
#       "name": "CliListener",
#       "anchor": "class-clilistener",
#       "kind": "class"
#     },
#     {
#       "id": "build-client",
#       "name": "build_client",
#       "anchor": "function-build-client",
#       "kind": "function"
#     },
#     {
#       "id": "get",
#       "name": "get",
#       "anchor": "function-get",
#       "kind": "function"
#     },
#     {
#       "id": "post",
#       "name": "post",
#       "anchor": "function-post",
#       "kind": "function"
#     },
#     {
#       "id": "request",
#       "name": "request",
#       "anchor": "function-request",
#       "kind": "function"
#     },
#     {
#       "id": "upload",
#       "name": "upload",
#       "anchor": "function-upload",
#       "kind": "function"
#     },
#     {
#       "id": "download",
#       "name": "download",
#       "anchor": "function-download",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Typer command line front-end for one-shot relay requests.

Each command issues exactly one request with request code ``1`` and drains
the resulting events on the main thread through a
:class:`~HttpRelay.dispatcher.QueueDeliveryContext`. Plain output prints the
response body (or the downloaded path) to stdout and progress to stderr;
``--json`` prints one JSON object per event instead. The exit code is ``0``
on success and ``1`` when the request reported an error.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Callable, Optional

import typer

from .client import HttpRelayClient
from .dispatcher import BaseHttpEventListener, QueueDeliveryContext
from .logging_utils import configure_logging
from .methods import RequestMethod
from .settings import RelaySettings, get_settings

__all__ = ["CLI_REQUEST_CODE", "CliListener", "app", "build_client"]

CLI_REQUEST_CODE = 1

app = typer.Typer(
    no_args_is_help=True,
    help="Issue HTTP requests through the HttpRelay client.",
    rich_markup_mode="rich",
)

RetriesOption = Annotated[
    Optional[int],
    typer.Option("--retries", min=0, help="Retries after the first attempt (default from settings)."),
]
TimeoutOption = Annotated[
    Optional[float],
    typer.Option("--timeout", min=0.001, help="Connect/read timeout in seconds."),
]
NoCacheOption = Annotated[
    bool,
    typer.Option("--no-cache", help="Send Cache-Control: no-cache."),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Print one JSON object per event."),
]
HeaderOption = Annotated[
    Optional[list[str]],
    typer.Option("--header", "-H", help="Extra request header as 'Name: value' (repeatable)."),
]


class CliListener(BaseHttpEventListener):
    """Print events as they are delivered and remember the terminal one."""

    def __init__(self, *, as_json: bool = False) -> None:
        self.as_json = as_json
        self.finished = False
        self.failed = False

    def _emit_json(self, event: str, **fields: object) -> None:
        typer.echo(json.dumps({"event": event, **fields}, default=str))

    def on_progress(self, request_code, bytes_total, bytes_processed, extras) -> None:
        if self.as_json:
            self._emit_json(
                "progress",
                request_code=request_code,
                bytes_processed=bytes_processed,
                bytes_total=bytes_total,
            )
        else:
            total = "?" if bytes_total < 0 else str(bytes_total)
            typer.echo(f"{bytes_processed}/{total} bytes", err=True)

    def on_request_complete(self, request_code, response_text, extras) -> None:
        self.finished = True
        if self.as_json:
            self._emit_json("complete", request_code=request_code, response=response_text)
        else:
            typer.echo(response_text, nl=False)

    def on_error(self, request_code, error_kind, extras) -> None:
        self.finished = True
        self.failed = True
        if self.as_json:
            self._emit_json(
                "error", request_code=request_code, error=error_kind.name, code=int(error_kind)
            )
        else:
            typer.secho(f"Request failed: {error_kind.name} ({int(error_kind)})", err=True, fg="red")

    def on_file_downloaded(self, request_code, file_path, extras) -> None:
        self.finished = True
        if self.as_json:
            self._emit_json("downloaded", request_code=request_code, path=str(file_path))
        else:
            typer.echo(str(file_path))


def build_client(
    listener: CliListener, delivery: QueueDeliveryContext, settings: RelaySettings
) -> HttpRelayClient:
    """Construct the client used by every command."""
    return HttpRelayClient(listener, delivery=delivery, settings=settings)


def _parse_headers(values: Optional[list[str]]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values or []:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Header must look like 'Name: value', got {value!r}")
        headers[name.strip()] = content.strip()
    return headers


def _run(submit: Callable[[HttpRelayClient], object], *, as_json: bool) -> None:
    settings = get_settings()
    configure_logging(settings)
    delivery = QueueDeliveryContext()
    listener = CliListener(as_json=as_json)
    with build_client(listener, delivery, settings) as client:
        submit(client)
        delivery.process_until(lambda: listener.finished)
    if listener.failed:
        raise typer.Exit(code=1)


@app.command()
def get(
    url: Annotated[str, typer.Argument(help="Address to fetch.")],
    retries: RetriesOption = None,
    timeout: TimeoutOption = None,
    no_cache: NoCacheOption = False,
    as_json: JsonOption = False,
) -> None:
    """GET a URL and print the response body."""

    _run(
        lambda client: client.execute_get(
            CLI_REQUEST_CODE,
            url,
            max_retries=retries,
            timeout_seconds=timeout,
            allow_caching=not no_cache,
        ),
        as_json=as_json,
    )


@app.command()
def post(
    url: Annotated[str, typer.Argument(help="Address to post to.")],
    body: Annotated[str, typer.Option("--body", help="JSON/text request body.")] = "",
    header: HeaderOption = None,
    retries: RetriesOption = None,
    timeout: TimeoutOption = None,
    no_cache: NoCacheOption = False,
    as_json: JsonOption = False,
) -> None:
    """POST a body with Content-Type application/json."""

    headers = _parse_headers(header)
    _run(
        lambda client: client.execute_post(
            CLI_REQUEST_CODE,
            url,
            body,
            headers=headers,
            max_retries=retries,
            timeout_seconds=timeout,
            allow_caching=not no_cache,
        ),
        as_json=as_json,
    )


@app.command()
def request(
    method: Annotated[str, typer.Argument(help="GET, POST, PUT, PATCH or DELETE.")],
    url: Annotated[str, typer.Argument(help="Target address.")],
    body: Annotated[Optional[str], typer.Option("--body", help="Optional request body.")] = None,
    content_type: Annotated[
        Optional[str], typer.Option("--content-type", help="Content-Type of the body.")
    ] = None,
    header: HeaderOption = None,
    retries: RetriesOption = None,
    timeout: TimeoutOption = None,
    no_cache: NoCacheOption = False,
    as_json: JsonOption = False,
) -> None:
    """Issue an arbitrary request method."""

    try:
        verb = RequestMethod.coerce(method)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="METHOD") from exc
    headers = _parse_headers(header)
    _run(
        lambda client: client.execute_request(
            verb,
            CLI_REQUEST_CODE,
            url,
            headers=headers,
            content_type=content_type,
            body=body,
            max_retries=retries,
            timeout_seconds=timeout,
            allow_caching=not no_cache,
        ),
        as_json=as_json,
    )


@app.command()
def upload(
    url: Annotated[str, typer.Argument(help="Address receiving the upload.")],
    file: Annotated[Path, typer.Argument(help="Local file to upload.")],
    retries: RetriesOption = None,
    timeout: TimeoutOption = None,
    no_cache: NoCacheOption = False,
    as_json: JsonOption = False,
) -> None:
    """Upload a file as a deflate-compressed POST body."""

    _run(
        lambda client: client.execute_post_file(
            CLI_REQUEST_CODE,
            url,
            file,
            max_retries=retries,
            timeout_seconds=timeout,
            allow_caching=not no_cache,
        ),
        as_json=as_json,
    )


@app.command()
def download(
    url: Annotated[str, typer.Argument(help="Address to download.")],
    dest: Annotated[Path, typer.Argument(help="Destination directory.")],
    name: Annotated[
        Optional[str], typer.Option("--name", help="File name overriding server/URL names.")
    ] = None,
    header: HeaderOption = None,
    retries: RetriesOption = None,
    timeout: TimeoutOption = None,
    no_cache: NoCacheOption = False,
    as_json: JsonOption = False,
) -> None:
    """Download a URL into a directory and print the saved path."""

    headers = _parse_headers(header)
    _run(
        lambda client: client.download_file(
            CLI_REQUEST_CODE,
            url,
            dest,
            headers=headers,
            desired_file_name=name,
            max_retries=retries,
            timeout_seconds=timeout,
            allow_caching=not no_cache,
        ),
        as_json=as_json,
    )
