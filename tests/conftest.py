"""Global test fixtures for KCIS Tools."""

import socket
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from threading import Thread

import pytest
from pytest import fixture


def pytest_addoption(parser):
    """Add custom pytest command line options."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="run end-to-end tests",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "e2e: mark test as end-to-end test")


def pytest_collection_modifyitems(config, items):
    """Skip end-to-end tests unless --e2e option is used."""
    if config.getoption("--e2e"):
        # When --e2e is used, run all tests including end-to-end tests
        return

    skip_e2e = pytest.mark.skip(reason="need --e2e option to run")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


@dataclass
class RecordedRequest:
    """A request as seen by the fake portal."""

    method: str
    path: str
    headers: dict
    body: bytes


class PortalHandler(BaseHTTPRequestHandler):
    """Serve canned responses from ``server.routes``, keyed by request path.

    A route is ``(status, headers, content)`` where headers is a list of
    (name, value) pairs so Set-Cookie may repeat. Unknown paths get a 404.
    """

    def do_GET(self):
        self._respond()

    def do_POST(self):
        self._respond()

    def _respond(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.requests.append(
            RecordedRequest(self.command, self.path, dict(self.headers), body)
        )
        status, headers, content = self.server.routes.get(
            self.path, (404, [("Content-Type", "text/plain")], b"Not Found")
        )
        self.send_response(status)
        for name, value in headers:
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(content)))
        self.end_headers()
        self.wfile.write(content)

    def log_message(self, format, *args):
        pass


@fixture
def portal():
    """Run a fake portal on the loopback interface.

    Tests add entries to ``portal.routes`` and inspect ``portal.requests``;
    ``portal.base_url`` points at the server.
    """
    server = ThreadingHTTPServer(("127.0.0.1", 0), PortalHandler)
    server.routes = {}
    server.requests = []
    server.base_url = f"http://127.0.0.1:{server.server_port}/"
    thread = Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@fixture
def unreachable_url() -> str:
    """Return a base URL on a loopback port with nothing listening."""
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return f"http://127.0.0.1:{port}/"


@fixture
def logged_in_page() -> bytes:
    """Return a portal page as served to an authenticated account."""
    return '<html><body><a href="/DSAI/Logout">[登出]</a></body></html>'.encode(
        "utf-8"
    )
