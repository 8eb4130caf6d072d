"""Typer application and CLI entry point for reqflow.

This module wires together the top-level Typer application: one command
per HTTP verb (``get``, ``post``, ``put``, ``patch``, ``delete``) and the
``cache`` sub-group for the persistent response cache.

Each verb command resolves client defaults via
:func:`~reqflow.config.resolve_client_config`, builds a
:class:`~reqflow.client.Client` backed by a
:class:`~reqflow.cache.DiskCacheStore`, runs the request through the
pipeline, and renders the envelope with
:func:`~reqflow.client.response.format_api_response`.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.  It installs signal handlers and invokes the Typer app.
Unhandled exceptions are written to a crash log under the data directory.

See Also:
    :mod:`reqflow.config`: Global/project configuration resolution.
    :mod:`reqflow.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from reqflow import __version__
from reqflow.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED


app = typer.Typer(
    name="reqflow",
    help="Send HTTP requests with caching, retries, and cancellation.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

from reqflow.commands.cache import cache_app  # noqa: E402

app.add_typer(cache_app, name="cache", help="Manage the persistent response cache.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"reqflow {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Base URL joined onto relative request URLs."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Trace every pipeline step on stderr."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~reqflow.output.OutputManager` from CLI
    flags and stores shared options in ``ctx.obj`` for the verb commands.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        base_url: Base URL override (highest precedence).
        json_output: Force JSON output format.
        plain_output: Force plain-text output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential diagnostic output.
        verbose: Enable the pipeline's debug trace.
    """
    from reqflow.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    ctx.obj["verbose"] = verbose


# ------------------------------------------------------------------ #
# Verb commands
# ------------------------------------------------------------------ #


@app.command("get")
def get_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL or path relative to the base URL."),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help="Header as 'Name: value'."),
    param: Optional[list[str]] = typer.Option(None, "--param", help="Query parameter as 'key=value'."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Per-attempt timeout in milliseconds."),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries on network or timeout errors."),
    cache: Optional[bool] = typer.Option(None, "--cache/--no-cache", help="Use the response cache."),
    cache_time: Optional[int] = typer.Option(None, "--cache-time", help="Cache TTL in milliseconds."),
) -> None:
    """Send a GET request.

    Example::

        reqflow --base-url https://api.example.com get /users --param page=2 --cache
    """
    _run_request(ctx, "GET", url, None, header, param, timeout, retries, cache, cache_time)


@app.command("delete")
def delete_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL or path relative to the base URL."),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help="Header as 'Name: value'."),
    param: Optional[list[str]] = typer.Option(None, "--param", help="Query parameter as 'key=value'."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Per-attempt timeout in milliseconds."),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries on network or timeout errors."),
) -> None:
    """Send a DELETE request."""
    _run_request(ctx, "DELETE", url, None, header, param, timeout, retries, None, None)


@app.command("post")
def post_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL or path relative to the base URL."),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Request body (JSON, or raw text)."),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help="Header as 'Name: value'."),
    param: Optional[list[str]] = typer.Option(None, "--param", help="Query parameter as 'key=value'."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Per-attempt timeout in milliseconds."),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries on network or timeout errors."),
) -> None:
    """Send a POST request.

    Example::

        reqflow post https://api.example.com/items -d '{"name": "test"}'
    """
    _run_request(ctx, "POST", url, data, header, param, timeout, retries, None, None)


@app.command("put")
def put_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL or path relative to the base URL."),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Request body (JSON, or raw text)."),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help="Header as 'Name: value'."),
    param: Optional[list[str]] = typer.Option(None, "--param", help="Query parameter as 'key=value'."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Per-attempt timeout in milliseconds."),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries on network or timeout errors."),
) -> None:
    """Send a PUT request."""
    _run_request(ctx, "PUT", url, data, header, param, timeout, retries, None, None)


@app.command("patch")
def patch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL or path relative to the base URL."),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Request body (JSON, or raw text)."),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help="Header as 'Name: value'."),
    param: Optional[list[str]] = typer.Option(None, "--param", help="Query parameter as 'key=value'."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Per-attempt timeout in milliseconds."),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries on network or timeout errors."),
) -> None:
    """Send a PATCH request."""
    _run_request(ctx, "PATCH", url, data, header, param, timeout, retries, None, None)


def _run_request(
    ctx: typer.Context,
    method: str,
    url: str,
    data: Optional[str],
    headers: Optional[list[str]],
    params: Optional[list[str]],
    timeout: Optional[int],
    retries: Optional[int],
    cache: Optional[bool],
    cache_time: Optional[int],
) -> None:
    """Shared body of the verb commands.

    A :class:`~reqflow.client.transport.Transport` placed in
    ``ctx.obj["transport"]`` by an embedding caller is used instead of the
    default httpx transport.

    Raises:
        typer.Exit: With the error's exit code when the request fails.
    """
    from reqflow.cache import DiskCacheStore
    from reqflow.client import Client
    from reqflow.client.response import format_api_response
    from reqflow.config import get_cache_dir, resolve_client_config
    from reqflow.exceptions import ApiError, ReqflowError
    from reqflow.output import error, suggest

    obj = ctx.obj or {}
    try:
        defaults = resolve_client_config(base_url=obj.get("base_url"))
        call_config: dict[str, Any] = {
            "headers": _parse_headers(headers or []),
            "params": _parse_params(params or []),
            "timeout": timeout,
            "retries": retries,
            "cache": cache,
            "cache_time": cache_time,
        }
        call_config = {k: v for k, v in call_config.items() if v is not None}
    except ReqflowError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)

    store = DiskCacheStore(get_cache_dir())

    async def _send() -> Any:
        async with Client(defaults, transport=obj.get("transport"), cache_store=store) as client:
            return await client.request(method, url, _parse_body(data), call_config)

    try:
        response = asyncio.run(_send())
    except ApiError as exc:
        if exc.response is not None:
            format_api_response(exc.response)
        error(exc.message)
        if (exc.is_network or exc.is_timeout) and not (retries or defaults.retries):
            suggest("Retry transient failures with --retries N")
        raise typer.Exit(code=exc.exit_code)
    except ReqflowError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)
    finally:
        store.close()

    format_api_response(response)


def _parse_headers(values: list[str]) -> dict[str, str]:
    """Parse ``Name: value`` strings into a header dict."""
    from reqflow.exceptions import InvalidUsageError

    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise InvalidUsageError(f"Invalid header {raw!r}, expected 'Name: value'")
        headers[name.strip()] = value.strip()
    return headers


def _parse_params(values: list[str]) -> dict[str, str]:
    """Parse ``key=value`` strings into a query parameter dict."""
    from reqflow.exceptions import InvalidUsageError

    params: dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition("=")
        if not sep or not key:
            raise InvalidUsageError(f"Invalid parameter {raw!r}, expected 'key=value'")
        params[key] = value
    return params


def _parse_body(body: Optional[str]) -> Any:
    """Parse *body* as JSON if possible, returning the raw string on failure."""
    if body is None:
        return None
    try:
        return json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path.

    Args:
        exc: The unhandled exception to log.

    Returns:
        Absolute path to the written crash log file.
    """
    from reqflow.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text("".join(traceback.format_exception(exc)))
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``reqflow`` console script.

    Unhandled :class:`~reqflow.exceptions.ReqflowError` instances cause a
    clean exit with the error's ``exit_code``.  All other exceptions
    produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        from reqflow.exceptions import ReqflowError
        from reqflow.output import error

        if isinstance(exc, ReqflowError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
