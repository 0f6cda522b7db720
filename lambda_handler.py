"""
AWS Lambda function for executing one configurable HTTP request.

This module implements a generic HTTP request executor as an AWS Lambda
function. The `lambda_handler` function receives an event describing a single
HTTP request (URL, method, headers, body, timeout), executes it, and returns
a one-line summary of the response:

    {"message": "Executed on <timestamp>. Status <status>; Headers: <headers>; Body: <body>"}

Any received response, whatever its status code, produces a summary. Missing
configuration, invalid headers and transport failures abort the invocation.

Functions:
    handle(event): The core handler shared by every invocation mode.
    lambda_handler(event, context): The hosted entry point. Handles warmup
        events and optionally ships a transaction log to Datadog.

ENV Configuration:
    LOG_LEVEL (str, optional): Root logging level, defaults to INFO.
    DD_API_KEY (str, optional): Enables Datadog log shipping when set.
"""
# pylint: disable=broad-exception-caught
# pylint: disable=line-too-long
import logging
import os
import sys
import time

import datadog_logs
from invoker_errors import InvokerError
from request_executor import ResponseSummary, execute_request
from request_spec import build_request_spec

WARMUP_MESSAGE = "Warmup event detected, no action taken."


def log_level(name: str) -> int:
    """Map a level name such as "debug" to its logging level, INFO when unrecognised."""
    level = logging.getLevelName(str(name).strip().upper())
    return level if isinstance(level, int) else logging.INFO


logger = logging.getLogger()
logger.setLevel(log_level(os.environ.get("LOG_LEVEL", "INFO"))) # Set the default logging level to INFO, or DEBUG if needed.


# Handler for stdout (INFO and debug if debug is enabled)
stdout_handler = logging.StreamHandler(sys.stdout)
stdout_handler.setLevel(logging.DEBUG)
stdout_handler.addFilter(lambda record: record.levelno <= logging.INFO)
stdout_formatter = logging.Formatter('%(asctime)s %(levelname)s %(message)s')
stdout_handler.setFormatter(stdout_formatter)

# Handler for stderr (WARNING and higher)
stderr_handler = logging.StreamHandler(sys.stderr)
stderr_handler.setLevel(logging.WARNING)
stderr_formatter = logging.Formatter('%(asctime)s %(levelname)s %(message)s')
stderr_handler.setFormatter(stderr_formatter)

# Remove default handlers and the above custom handlers
logger.handlers = []
logger.addHandler(stdout_handler)
logger.addHandler(stderr_handler)


def run(event: dict) -> ResponseSummary:
    """Build the request from `event`, send it and summarize the response."""
    spec = build_request_spec(event)
    return execute_request(spec)


def handle(event: dict) -> dict:
    """
    Execute the HTTP request described by `event`.

    Args:
        event (dict): Expected keys:
            - 'url' (str): The target URL. Required.
            - 'method' (str, optional): OPTIONS, GET, POST, PUT, DELETE, HEAD,
              TRACE, CONNECT or PATCH. Defaults to POST.
            - 'headers' (list, optional): [name, value] pairs. Defaults to [].
            - 'body' (str | list[int], optional): Text or raw bytes. Defaults to "".
            - 'timeout' (int, optional): Timeout in milliseconds. Defaults to 10000.

    Raises:
        ConfigurationError: If 'url' is missing or a field is malformed.
        HeaderConstructionError: If a header cannot be sent.
        TransportError: If the request could not be completed.

    Returns:
        dict: {"message": <summary line>}
    """
    return {"message": run(event).message}


def lambda_handler(event, context) -> dict:
    """
    Hosted entry point: delegates to `handle` after warmup detection.

    When Datadog shipping is enabled, one transaction log is sent per
    invocation, including failed ones. Shipping problems are logged and never
    change the result of the invocation.
    """
    if isinstance(event, dict) and event.get('Action') == 'LAMBDA_WARMUP':
        logger.info(WARMUP_MESSAGE)
        return {"message": WARMUP_MESSAGE}

    if not isinstance(event, dict) or not datadog_logs.is_enabled(event):
        return handle(event)

    log_payload = datadog_logs.build_log_payload(event, context)
    started = time.perf_counter_ns()
    try:
        summary = run(event)
    except InvokerError as invocation_error:
        datadog_logs.record_error(log_payload, invocation_error)
        _ship(log_payload)
        raise

    datadog_logs.record_response(log_payload, summary, time.perf_counter_ns() - started)
    _ship(log_payload)
    return {"message": summary.message}


def _ship(log_payload: dict) -> None:
    try:
        datadog_logs.send_to_datadog(input_log=log_payload)
    except Exception as dd_error:
        logger.error("Datadog log was not delivered: %s", str(dd_error).replace('\n', ' || '))
