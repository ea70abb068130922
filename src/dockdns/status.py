"""Read-only status page.

Serves an index page describing the configured zones and domains, plus the
packaged static assets under ``/static/``. There are no mutation endpoints.
"""

from __future__ import annotations

import html
import logging
import mimetypes
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from importlib import resources
from typing import List, Optional, Tuple

from dockdns import __version__
from dockdns.config import ZoneConfig
from dockdns.records import DomainRecord

INDEX_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>dockdns</title>
<link rel="stylesheet" href="/static/style.css">
</head>
<body>
<h1>dockdns <small>{version}</small></h1>
<h2>Zones</h2>
<table>
<tr><th>Zone</th><th>Provider</th></tr>
{zones}
</table>
<h2>Configured domains</h2>
<table>
<tr><th>Name</th><th>A</th><th>AAAA</th><th>TTL</th></tr>
{domains}
</table>
</body>
</html>
"""


def render_index(zones: List[ZoneConfig], domains: List[DomainRecord]) -> str:
    zone_rows = "\n".join(
        f"<tr><td>{html.escape(z.name)}</td><td>{html.escape(z.provider)}</td></tr>"
        for z in zones
    )
    domain_rows = "\n".join(
        "<tr>"
        f"<td>{html.escape(d.name)}</td>"
        f"<td>{html.escape(d.a or 'auto')}</td>"
        f"<td>{html.escape(d.aaaa or 'auto')}</td>"
        f"<td>{d.ttl if d.ttl is not None else 'default'}</td>"
        "</tr>"
        for d in domains
    )
    return INDEX_TEMPLATE.format(version=__version__, zones=zone_rows, domains=domain_rows)


def read_static(name: str) -> Optional[bytes]:
    """Return a packaged static asset, or None if there is no such file."""
    if not name or "/" in name or name.startswith("."):
        return None
    asset = resources.files("dockdns").joinpath("static").joinpath(name)
    if not asset.is_file():
        return None
    return asset.read_bytes()


class StatusRequestHandler(BaseHTTPRequestHandler):
    server: "_StatusHTTPServer"

    def _send(self, status: HTTPStatus, body: bytes, content_type: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def do_GET(self) -> None:
        path = self.path.split("?", 1)[0]
        if path in ("/", "/index.html"):
            self._send(HTTPStatus.OK, self.server.index, "text/html; charset=utf-8")
            return
        if path.startswith("/static/"):
            name = path[len("/static/"):]
            body = read_static(name)
            if body is not None:
                content_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
                self._send(HTTPStatus.OK, body, content_type)
                return
        self._send(HTTPStatus.NOT_FOUND, b"not found\n", "text/plain; charset=utf-8")

    do_HEAD = do_GET

    def _not_allowed(self) -> None:
        self._send(HTTPStatus.METHOD_NOT_ALLOWED, b"read-only\n", "text/plain; charset=utf-8")

    do_POST = do_PUT = do_DELETE = do_PATCH = _not_allowed

    def log_message(self, format: str, *args) -> None:
        self.server.log.debug(f"{self.address_string()} - {format % args}")


class _StatusHTTPServer(ThreadingHTTPServer):
    # Wait for in-flight requests on server_close().
    daemon_threads = False
    block_on_close = True

    def __init__(self, address: Tuple[str, int], index: bytes, log: logging.Logger):
        super().__init__(address, StatusRequestHandler)
        self.index = index
        self.log = log


class StatusServer:
    """Runs the status page on a background thread."""

    def __init__(
        self,
        host: str,
        port: int,
        zones: List[ZoneConfig],
        domains: List[DomainRecord],
        log: logging.Logger,
    ):
        self.log = log
        index = render_index(zones, domains).encode("utf-8")
        self._httpd = _StatusHTTPServer((host, port), index, log)
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        return self._httpd.server_address[:2]

    def start(self) -> None:
        self._thread = threading.Thread(target=self._serve, name="status-server", daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        host, port = self.address
        self.log.info(f"Starting status server on {host}:{port}")
        self._httpd.serve_forever()
        self.log.info("Received shutdown signal, shutting down status server ...")

    def stop(self, timeout: float = 5.0) -> bool:
        """Stop accepting connections and drain in-flight ones.

        Returns False if draining did not finish within ``timeout`` seconds.
        """
        closer = threading.Thread(target=self._close, name="status-server-close", daemon=True)
        closer.start()
        closer.join(timeout)
        if closer.is_alive():
            self.log.warning(f"Status server did not drain within {timeout} seconds")
            return False
        return True

    def _close(self) -> None:
        if self._thread is not None:
            self._httpd.shutdown()
            self._thread.join()
        self._httpd.server_close()
