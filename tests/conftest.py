# tests/conftest.py
"""
Local HTTP server for end-to-end executor tests.

Routes:
- /ok            : 200, text/plain, "hello"
- /slow          : waits 500 ms, then 200 "late"
- /trickle       : 200, Content-Length 10, one byte every 100 ms
- /bin           : 200, application/octet-stream, bytes that are not UTF-8
- /latin1        : 200, text/plain; charset=iso-8859-1, "café"
- /dup           : 200 with two Set-Cookie header lines
- /status/<code> : <code>, "status <code>"
- /echo          : 200, JSON description of the received request
"""
from __future__ import annotations

import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

import pytest

BINARY_BODY = b"\xff\xfe\x00\x81\xc3\x28"


class _Handler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):  # noqa: A002 - keep test output quiet
        pass

    def _handle(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.received.append(
            {"method": self.command, "path": self.path, "headers": list(self.headers.items()), "body": body}
        )
        path = urlsplit(self.path).path

        if path == "/ok":
            self._reply(200, [("Content-Type", "text/plain")], b"hello")
        elif path == "/slow":
            time.sleep(0.5)
            self._reply(200, [("Content-Type", "text/plain")], b"late")
        elif path == "/trickle":
            self._trickle(b"x" * 10, 0.1)
        elif path == "/bin":
            self._reply(200, [("Content-Type", "application/octet-stream")], BINARY_BODY)
        elif path == "/latin1":
            self._reply(200, [("Content-Type", "text/plain; charset=iso-8859-1")], "café".encode("latin-1"))
        elif path == "/dup":
            self._reply(200, [("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")], b"dup")
        elif path.startswith("/status/"):
            code = int(path.rsplit("/", 1)[1])
            self._reply(code, [("Content-Type", "text/plain")], f"status {code}".encode())
        elif path == "/echo":
            payload = {
                "method": self.command,
                "headers": [[k, v] for k, v in self.headers.items()],
                "body": list(body),
            }
            self._reply(200, [("Content-Type", "application/json")], json.dumps(payload).encode())
        else:
            self._reply(404, [("Content-Type", "text/plain")], b"not found")

    def _trickle(self, body, delay):
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            for byte in body:
                time.sleep(delay)
                self.wfile.write(bytes([byte]))
                self.wfile.flush()
        except (BrokenPipeError, ConnectionResetError):
            pass

    def _reply(self, code, headers, body):
        try:
            self.send_response(code)
            for name, value in headers:
                self.send_header(name, value)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if self.command != "HEAD":
                self.wfile.write(body)
        except (BrokenPipeError, ConnectionResetError):
            # client gave up (timeout tests)
            pass

    do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_OPTIONS = do_HEAD = _handle


class _Server(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), _Handler)
        self.received = []


@pytest.fixture(scope="session")
def http_server():
    server = _Server()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def base_url(http_server):
    http_server.received.clear()
    host, port = http_server.server_address[:2]
    return f"http://{host}:{port}"


@pytest.fixture
def closed_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def no_network(monkeypatch):
    """Fail the test if anything tries to send a request; returns the list of attempts."""
    import request_executor

    attempts = []

    def _refuse(*args, **kwargs):
        attempts.append((args, kwargs))
        raise AssertionError("unexpected outbound request")

    monkeypatch.setattr(request_executor.requests, "request", _refuse)
    return attempts
