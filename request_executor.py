"""
Request executor and response formatter.

Issues exactly one outbound HTTP call for a `RequestSpec` and renders the
outcome as a single summary line:

    Executed on <timestamp>. Status <status>; Headers: <headers>; Body: <body>

Any HTTP status, 4xx and 5xx included, is a successful outcome. A body that
cannot be decoded as text is replaced by `BODY_PARSE_FAILED`. Transport
failures (DNS, refused connections, TLS, timeouts) and headers that cannot
be put on the wire abort the invocation.
"""
from __future__ import annotations

import codecs
import json
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus

import requests
import urllib3
from requests.structures import CaseInsensitiveDict

from invoker_errors import HeaderConstructionError, TransportError, TransportTimeoutError
from request_spec import RequestSpec

logger = logging.getLogger(__name__)

BODY_PARSE_FAILED = "[FAILED TO PARSE BODY]"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
CHUNK_SIZE = 64 * 1024

# RFC 7230 token characters
_HEADER_NAME_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
# visible ASCII, space and horizontal tab
_HEADER_VALUE_RE = re.compile(r"^[\t\x20-\x7e]*$")


@dataclass(frozen=True)
class ResponseSummary:
    timestamp: str
    status_code: int
    headers: tuple[tuple[str, str], ...]
    body_text: str

    @property
    def message(self) -> str:
        return format_message(self)


def build_headers(pairs) -> CaseInsensitiveDict:
    """Convert (name, value) pairs into request headers, later names replacing earlier ones."""
    headers = CaseInsensitiveDict()
    for name, value in pairs:
        if not _HEADER_NAME_RE.match(name):
            raise HeaderConstructionError(f"Invalid header name: {name!r}", name=name)
        if not _HEADER_VALUE_RE.match(value):
            raise HeaderConstructionError(f"Invalid value for header {name!r}", name=name)
        headers[name] = value
    return headers


def execute_request(spec: RequestSpec) -> ResponseSummary:
    """
    Send the request described by `spec` and summarize the response.

    `spec.timeout_ms` is a deadline for the whole call: connecting, waiting
    for the response head and reading the body all count against it.

    Raises:
        HeaderConstructionError: If a header cannot be encoded. Nothing is sent.
        TransportTimeoutError: If the call exceeds `spec.timeout_ms`.
        TransportError: For any other failure to complete the call.

    Returns:
        ResponseSummary: Status, headers, decoded body and the formatting time.
    """
    method = spec.method.value
    headers = build_headers(spec.headers)
    deadline = time.monotonic() + spec.timeout_seconds

    try:
        response = requests.request(
            method,
            spec.url,
            headers=headers,
            data=spec.body.to_bytes(),
            timeout=_remaining(deadline, spec, method),
            stream=True,
        )
    except requests.exceptions.InvalidHeader as header_error:
        raise HeaderConstructionError(str(header_error)) from header_error
    except requests.exceptions.Timeout as timeout_error:
        _timed_out(spec, method, timeout_error)
    except requests.exceptions.RequestException as requests_error:
        logger.error(f"HTTP {method} to {spec.url} failed: %s", str(requests_error).replace('\n', ' || '))
        raise TransportError(str(requests_error), url=spec.url, method=method) from requests_error

    with response:
        response_time_ms = response.elapsed.total_seconds() * 1000
        logger.info("HTTP %s to %s returned %s in %.2f ms", method, spec.url, response.status_code, response_time_ms)

        response_headers = _received_headers(response)
        content = _read_body(response, deadline, spec, method)

    body_text = decode_body(content, _content_type(response_headers))

    return ResponseSummary(
        timestamp=datetime.now().strftime(TIMESTAMP_FORMAT),
        status_code=response.status_code,
        headers=response_headers,
        body_text=body_text,
    )


def _read_body(response: requests.Response, deadline: float, spec: RequestSpec, method: str) -> bytes:
    # read1 hands back whatever has arrived, so a trickling body still hits the deadline
    chunks = []
    try:
        while True:
            _remaining(deadline, spec, method)
            chunk = response.raw.read1(CHUNK_SIZE, decode_content=True)
            if not chunk:
                break
            chunks.append(chunk)
    except urllib3.exceptions.ReadTimeoutError as timeout_error:
        _timed_out(spec, method, timeout_error)
    except urllib3.exceptions.HTTPError as read_error:
        logger.error(f"HTTP {method} to {spec.url} failed while reading the body: %s",
                     str(read_error).replace('\n', ' || '))
        raise TransportError(str(read_error), url=spec.url, method=method) from read_error
    return b"".join(chunks)


def _remaining(deadline: float, spec: RequestSpec, method: str) -> float:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        _timed_out(spec, method)
    return remaining


def _timed_out(spec: RequestSpec, method: str, cause: Exception | None = None):
    detail = str(cause).replace('\n', ' || ') if cause is not None else "deadline exceeded"
    logger.error(f"HTTP {method} to {spec.url} timed out after {spec.timeout_ms} ms: %s", detail)
    raise TransportTimeoutError(
        f"HTTP {method} to {spec.url} timed out after {spec.timeout_ms} ms", url=spec.url, method=method
    ) from cause


def decode_body(content: bytes, content_type: str | None = None) -> str:
    """
    Decode `content` strictly with the declared charset, or return the sentinel.

    A missing or unrecognised charset label falls back to UTF-8.
    """
    encoding = _charset(content_type) or "utf-8"
    try:
        codecs.lookup(encoding)
    except LookupError:
        logger.warning("Unknown response charset %r, decoding as utf-8", encoding)
        encoding = "utf-8"
    try:
        return content.decode(encoding)
    except UnicodeDecodeError as decode_error:
        logger.warning("Failed to decode response body as %s: %s", encoding, decode_error)
        return BODY_PARSE_FAILED


def render_status(status_code: int) -> str:
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        phrase = "<unknown status code>"
    return f"{status_code} {phrase}"


def render_headers(headers) -> str:
    """Render headers as a map literal, keeping received order and duplicates."""
    entries = ", ".join(f"{json.dumps(name.lower())}: {json.dumps(value)}" for name, value in headers)
    return "{" + entries + "}"


def format_message(summary: ResponseSummary) -> str:
    return (
        f"Executed on {summary.timestamp}. "
        f"Status {render_status(summary.status_code)}; "
        f"Headers: {render_headers(summary.headers)}; "
        f"Body: {summary.body_text}"
    )


def _received_headers(response: requests.Response) -> tuple[tuple[str, str], ...]:
    # urllib3 keeps each header line; requests folds duplicates together
    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "iteritems"):
        return tuple((str(name), str(value)) for name, value in raw_headers.iteritems())
    return tuple(response.headers.items())


def _content_type(headers) -> str | None:
    for name, value in headers:
        if name.lower() == "content-type":
            return value
    return None


def _charset(content_type: str | None) -> str | None:
    if not content_type:
        return None
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset":
            return value.strip().strip("'\"") or None
    return None
