"""
HTTP listener for the digest.

Serves the most recently rendered digest at "/" while the scheduler keeps
refreshing it. Any other path is a 404.
"""
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional

from .digest import HTML_MODE

logger = logging.getLogger(__name__)

PLACEHOLDER = "generating index page. please reload in a few moments ..."

CONTENT_TYPES = {
    HTML_MODE: "text/html; charset=utf-8",
}
DEFAULT_CONTENT_TYPE = "text/markdown; charset=utf-8"


class DigestRequestHandler(BaseHTTPRequestHandler):
    """Answers GET / with the current digest."""

    server: "DigestHTTPServer"

    def do_GET(self):
        if self.path.split('?', 1)[0] != '/':
            self.send_error(404)
            return

        body, content_type = self.server.digest_server.snapshot()
        data = body.encode('utf-8')
        self.send_response(200)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} {format % args}")


class DigestHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, digest_server: "DigestServer"):
        self.digest_server = digest_server
        super().__init__(address, DigestRequestHandler)


class DigestServer:
    """
    Holds the latest rendered digest and serves it on a background thread.
    """

    def __init__(self, host: str = "", port: int = 8173, mode: str = HTML_MODE):
        """
        Args:
            host: Interface to bind; empty means all interfaces
            port: TCP port; 0 picks a free port
            mode: Output mode of the digest being served
        """
        self.host = host
        self.port = port
        self.content_type = CONTENT_TYPES.get(mode, DEFAULT_CONTENT_TYPE)
        self._body = PLACEHOLDER
        self._lock = threading.Lock()
        self.httpd: Optional[DigestHTTPServer] = None
        self.thread: Optional[threading.Thread] = None

    def update(self, body: str) -> None:
        """Replace the served digest."""
        with self._lock:
            self._body = body

    def snapshot(self):
        with self._lock:
            body = self._body
        content_type = self.content_type if body != PLACEHOLDER else "text/plain; charset=utf-8"
        return body, content_type

    @property
    def server_port(self) -> int:
        return self.httpd.server_address[1] if self.httpd else self.port

    def start(self) -> None:
        """
        Bind the port and start serving.

        Raises:
            OSError: If the port cannot be bound
        """
        self.httpd = DigestHTTPServer((self.host, self.port), self)
        self.thread = threading.Thread(target=self.httpd.serve_forever, name="digest-server", daemon=True)
        self.thread.start()
        logger.info(f"Listening for HTTP requests on port {self.server_port}")

    def stop(self) -> None:
        if self.httpd is None:
            return
        self.httpd.shutdown()
        self.httpd.server_close()
        if self.thread:
            self.thread.join(timeout=5)
        self.httpd = None
        logger.info("Digest server stopped")
