"""
Structured transaction logs for the Datadog HTTP Logs Intake API.

Shipping is opt-in: it only happens when the DD_API_KEY environment variable
is set and the event does not carry `"send_dd_logs": false`.

ENV Configuration:
    DD_API_KEY (str, optional): Datadog API key. Read at send time.
    DD_API_ENDPOINT (str, optional): The Datadog logs intake endpoint.
    DD_SOURCE, DD_SERVICE, DD_TAGS (str, optional): Datadog tags.
"""
# pylint: disable=line-too-long
import logging
import os
import traceback
from urllib.parse import urlsplit

import requests

from invoker_errors import TransportError
from request_executor import ResponseSummary, render_status

logger = logging.getLogger(__name__)

dd_endpoint = os.environ.get("DD_API_ENDPOINT", "https://http-intake.logs.datadoghq.com/api/v2/logs") # Datadog logs intake endpoint, defaults to US site

# Datadog Tags
ddsource = os.environ.get("DD_SOURCE", "lambda") # Set the DD source tag, defaults to "lambda"
service = os.environ.get("DD_SERVICE", "http_invoker_lambda") # Set the DD service tag, defaults to "http_invoker_lambda"
ddtags = os.environ.get("DD_TAGS", "environment:development") # Set the DD tags, defaults to "environment:development"


def is_enabled(event: dict) -> bool:
    return bool(os.environ.get("DD_API_KEY")) and event.get("send_dd_logs", True) is not False


def build_log_payload(event: dict, context) -> dict:
    """Start a log entry for the invocation described by `event`."""
    url = event.get("url") if isinstance(event.get("url"), str) else ""
    method = str(event.get("method") or "POST")
    raw_headers = event.get("headers") if isinstance(event.get("headers"), (list, tuple)) else []
    headers = dict(pair for pair in raw_headers if isinstance(pair, (list, tuple)) and len(pair) == 2)

    log_payload = {
        "http": {
            "url": url,
            "method": method,
            "useragent": headers.get("User-Agent", f"python-requests/{requests.__version__}"),
        },
        "ddsource": ddsource,
        "service": service,
        "ddtags": ddtags,
        "lambda_arn_or_name": getattr(context, "invoked_function_arn", None) or getattr(context, "function_name", "Unknown"),
        "aws_request_id": getattr(context, "aws_request_id", None) or "Unknown",
    }
    if url:
        parts = urlsplit(url)
        log_payload["http"]["url_details"] = {
            "host": parts.hostname or "Unknown",
            "port": str(parts.port) if parts.port else ("443" if parts.scheme == "https" else "80"),
            "path": parts.path or "/",
            "queryString": parts.query,
            "scheme": (parts.scheme or "Unknown").upper(),
        }
    return log_payload


def record_response(log_payload: dict, summary: ResponseSummary, duration_ns: int) -> None:
    status_code = summary.status_code
    log_payload["message"] = f"HTTP {log_payload['http']['method']} to {log_payload['http']['url']} returned {render_status(status_code)}"
    log_payload["http"]["status_code"] = status_code
    log_payload["duration"] = duration_ns
    if status_code >= 400:
        log_payload["status"] = "error"
    elif status_code >= 300:
        log_payload["status"] = "warn"
    else:
        log_payload["status"] = "info"


def record_error(log_payload: dict, error: Exception) -> None:
    if not isinstance(error, TransportError):
        log_payload["http"].pop("url_details", None)
    log_payload.setdefault("error", {})["kind"] = type(error).__name__
    log_payload["error"]["message"] = str(error)
    log_payload["error"]["stack"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    log_payload["message"] = str(error)
    log_payload["status"] = "error"


def send_to_datadog(input_log: dict) -> bool:
    """
    Sends a log entry to Datadog via the HTTP Logs Intake API.

    Args:
        input_log (dict): The log entry to send to Datadog, formatted as a dictionary.

    Raises:
        KeyError: If the DD_API_KEY environment variable is not set.
        requests.exceptions.RequestException: If the intake rejects the entry
            or cannot be reached.

    Returns:
        bool: True if the log was sent successfully.
    """
    try:
        api_key = os.environ['DD_API_KEY']
    except KeyError:
        logger.error("Failed to fetch environment variable DD_API_KEY")
        raise

    headers = {
        'Accept': 'application/json',
        'Content-Type': 'application/json',
        'DD-API-KEY': api_key,
    }

    try:
        response = requests.post(dd_endpoint, json=input_log, headers=headers, timeout=30)
        response.raise_for_status()
        return True
    except requests.exceptions.RequestException as dd_error:
        logger.error("Error sending log to Datadog: %s", str(dd_error).replace('\n', ' || '))
        raise
