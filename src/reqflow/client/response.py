"""Response decoding and the bridge to the output system.

:func:`build_envelope` turns a transport's :class:`RawResponse` into a
:class:`~reqflow.models.ResponseEnvelope`, decoding the body according to
its content type.  :func:`format_api_response` renders an envelope through
the global :class:`~reqflow.output.OutputManager` (used by the CLI).

See Also:
    :mod:`reqflow.output` -- the output manager that renders data.
"""

from __future__ import annotations

import json
from typing import Any

from reqflow.client.transport import RawResponse
from reqflow.models import RequestDescriptor, ResponseEnvelope
from reqflow.output import get_output

_TEXT_TYPES = frozenset(
    {
        "application/xml",
        "application/javascript",
        "application/x-www-form-urlencoded",
        "application/yaml",
    }
)


def _mime_and_charset(content_type: str) -> tuple[str, str]:
    mime, _, rest = content_type.partition(";")
    charset = "utf-8"
    for param in rest.split(";"):
        name, _, value = param.strip().partition("=")
        if name.lower() == "charset" and value:
            charset = value.strip('"')
    return mime.strip().lower(), charset


def _is_json(mime: str) -> bool:
    return mime == "application/json" or mime.endswith("+json")


def _is_text(mime: str) -> bool:
    return mime.startswith("text/") or mime in _TEXT_TYPES or mime.endswith("+xml")


def extract_response_data(content: bytes, content_type: str = "") -> Any:
    """Decode a response body.

    * empty body -- ``None``
    * JSON content type -- the decoded JSON, falling back to text when the
      body is not valid JSON
    * textual content type -- ``str``
    * no content type -- JSON if it parses, else text if it decodes as
      UTF-8, else the raw bytes
    * anything else -- the raw ``bytes``

    Args:
        content: The undecoded body.
        content_type: The ``Content-Type`` header value, if any.
    """
    if not content:
        return None

    mime, charset = _mime_and_charset(content_type)
    if _is_json(mime) or not mime:
        try:
            return json.loads(content.decode(charset))
        except (json.JSONDecodeError, UnicodeDecodeError, LookupError):
            pass

    if _is_json(mime) or _is_text(mime):
        try:
            return content.decode(charset, errors="replace")
        except LookupError:
            return content.decode("utf-8", errors="replace")

    if not mime:
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError:
            pass
    return content


def build_envelope(raw: RawResponse, request: RequestDescriptor) -> ResponseEnvelope:
    """Normalize a transport response into a :class:`ResponseEnvelope`."""
    headers = {k.lower(): v for k, v in raw.headers.items()}
    return ResponseEnvelope(
        status=raw.status,
        headers=headers,
        data=extract_response_data(raw.content, headers.get("content-type", "")),
        request=request,
    )


def format_api_response(response: ResponseEnvelope) -> None:
    """Format and print an envelope using the global output system.

    Writes the status line (e.g. ``HTTP 200``, with ``(cached)`` for cache
    hits) to stderr, then renders the data to stdout.

    Args:
        response: The envelope to display.
    """
    output = get_output()
    suffix = " (cached)" if response.cached else ""
    output.info(f"HTTP {response.status}{suffix}")

    if response.data is None:
        return
    content_type = response.headers.get("content-type", "application/json")
    data = response.data
    if isinstance(data, bytes):
        output.warning(f"Binary response body ({len(data)} bytes) not shown")
        return
    output.format_response(data, content_type)
