"""Shared fixtures: a small local website and config factories."""

import threading
import time
from collections import Counter
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Iterator
from urllib.parse import parse_qs, urlsplit

import pytest

from static_cloner.config import CloneConfig


INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Home</title>
  <link rel="stylesheet" href="/style.css">
  <link rel="icon" href="/favicon.ico">
  <script src="/app.js"></script>
</head>
<body>
  <a href="/about">About</a>
  <a href="/blog/">Blog</a>
  <a href="docs/guide#intro">Guide</a>
  <a href="https://other.example/x">External</a>
  <a href="mailto:team@example.com">Mail</a>
  <a href="/private/secret">Secret</a>
  <a href="/report.pdf">Report</a>
  <a href="#top">Top</a>
  <img src="/logo.png" srcset="/logo.png 1x, /logo@2x.png 2x">
  <img src="data:image/gif;base64,R0lGODlhAQABAAAAACw=">
  <div style="background: url('/img/hero.jpg')"></div>
</body>
</html>
"""

ABOUT_HTML = """<!DOCTYPE html>
<html>
<head><title>About</title><link rel="stylesheet" href="/style.css"></head>
<body>
  <a href="/">Home</a>
  <a href="/deep/1">Deep</a>
  <img src="/logo.png">
  <form id="contact" method="post" action="/api/contact"><input name="email"></form>
  <script>fetch('/api/items').then(r => r.json());</script>
</body>
</html>
"""

BLOG_HTML = """<html><body><a href="/blog/post-1">Post</a><a href="/data.json">Data</a></body></html>"""
POST_HTML = """<html><body><a href="/blog/">Back</a><img src="/img/photo.jpg"></body></html>"""
GUIDE_HTML = """<html><body><h1 id="intro">Guide</h1><a href="../about">About</a></body></html>"""
SECRET_HTML = """<html><body>secret</body></html>"""

STYLE_CSS = """@import "print.css";
body { background: url("img/bg.png"); }
@font-face { font-family: F; src: url(/fonts/f.woff2) format("woff2"); }
"""

PRINT_CSS = """@media print { body { background: url('img/print-bg.png'); } }"""

APP_JS = """document.addEventListener('load', () => { fetch('/api/data'); });"""

ROBOTS_TXT = """User-agent: *
Disallow: /private/
"""

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

# path -> (content type, body)
SITE = {
    "/": ("text/html; charset=utf-8", INDEX_HTML.encode("utf-8")),
    "/about": ("text/html; charset=utf-8", ABOUT_HTML.encode("utf-8")),
    "/blog/": ("text/html", BLOG_HTML.encode("utf-8")),
    "/blog/post-1": ("text/html", POST_HTML.encode("utf-8")),
    "/docs/guide": ("text/html", GUIDE_HTML.encode("utf-8")),
    "/private/secret": ("text/html", SECRET_HTML.encode("utf-8")),
    "/deep/1": ("text/html", b'<html><body><a href="/deep/2">2</a></body></html>'),
    "/deep/2": ("text/html", b'<html><body><a href="/deep/3">3</a></body></html>'),
    "/deep/3": ("text/html", b"<html><body>bottom</body></html>"),
    # Not linked from any page
    "/media": ("text/html", b'<html><body><video src="/big.mp4" poster="/logo.png"></video></body></html>'),
    "/stream": ("text/html", b'<html><body><video src="/stream.mp4"></video></body></html>'),
    "/data.json": ("application/json", b'{"ok": true}'),
    "/style.css": ("text/css", STYLE_CSS.encode("utf-8")),
    "/print.css": ("text/css", PRINT_CSS.encode("utf-8")),
    "/app.js": ("application/javascript", APP_JS.encode("utf-8")),
    "/logo.png": ("image/png", PNG),
    "/logo@2x.png": ("image/png", PNG),
    "/favicon.ico": ("image/x-icon", PNG),
    "/img/hero.jpg": ("image/jpeg", PNG),
    "/img/bg.png": ("image/png", PNG),
    "/img/print-bg.png": ("image/png", PNG),
    "/img/photo.jpg": ("image/jpeg", PNG),
    "/fonts/f.woff2": ("font/woff2", b"wOF2" + b"\x00" * 32),
    "/report.pdf": ("application/pdf", b"%PDF-1.4"),
    "/robots.txt": ("text/plain", ROBOTS_TXT.encode("utf-8")),
    "/big.mp4": ("video/mp4", b"\x00" * 4096),
}

# Number of requests per path (GET and HEAD), shared across tests
HITS = Counter()

# Size of the body served without a Content-Length at /stream.mp4
STREAM_SIZE = 256 * 1024

# Seconds /slow waits before answering
SLOW_DELAY = 2

# Failures left per ``/flaky?id=...`` key
_FLAKY_FAILURES = 2
_flaky_seen = Counter()


class _SiteHandler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):  # noqa: A002
        pass

    def _respond(self, send_body: bool) -> None:
        parts = urlsplit(self.path)
        HITS[parts.path] += 1

        if parts.path == "/flaky":
            key = parse_qs(parts.query).get("id", [""])[0]
            _flaky_seen[key] += 1
            if _flaky_seen[key] <= _FLAKY_FAILURES:
                self._send(503, "text/plain", b"try again", send_body)
            else:
                self._send(200, "text/html", b"<html><body>ok</body></html>", send_body)
            return

        if parts.path == "/moved":
            self.send_response(301)
            self.send_header("Location", "/about")
            self.send_header("Content-Length", "0")
            self.end_headers()
            return

        if parts.path == "/stream.mp4":
            if not send_body:
                self._send(405, "text/plain", b"", send_body)
                return
            # No Content-Length: the body ends when the connection closes
            self.send_response(200)
            self.send_header("Content-Type", "video/mp4")
            self.end_headers()
            self._write_quietly(b"\x00" * STREAM_SIZE)
            return

        if parts.path == "/slow":
            time.sleep(SLOW_DELAY)
            self._send(200, "text/html", b"<html><body>slow</body></html>", send_body)
            return

        if parts.path == "/echo-headers":
            lines = [f"{key}: {value}" for key, value in self.headers.items()]
            self._send(200, "text/plain", "\n".join(lines).encode("utf-8"), send_body)
            return

        if parts.path not in SITE and parts.path + "/" in SITE:
            self.send_response(301)
            self.send_header("Location", parts.path + "/")
            self.send_header("Content-Length", "0")
            self.end_headers()
            return

        if parts.path not in SITE:
            self._send(404, "text/plain", b"not found", send_body)
            return

        content_type, body = SITE[parts.path]
        self._send(200, content_type, body, send_body)

    def _send(self, status: int, content_type: str, body: bytes, send_body: bool) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if send_body:
            self._write_quietly(body)

    def _write_quietly(self, body: bytes) -> None:
        # The client may have hung up already (cancelled or over a size limit)
        try:
            self.wfile.write(body)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def do_GET(self):  # noqa: N802
        self._respond(send_body=True)

    def do_HEAD(self):  # noqa: N802
        self._respond(send_body=False)


@pytest.fixture(scope="session")
def local_site() -> Iterator[str]:
    """Start one local HTTP server for all network tests."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _SiteHandler)
    host, port = server.server_address
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://{host}:{port}"
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def hits() -> Counter:
    return HITS


@pytest.fixture
def make_config(tmp_path):
    """Build a validated CloneConfig for a target URL, with fast network settings."""

    def _make(url: str, **sections) -> CloneConfig:
        data = {
            "target": {"url": url},
            "crawling": {"maxDepth": 3, "maxPages": 50},
            "network": {"timeout": 5000, "concurrency": 4, "retryAttempts": 3, "retryDelay": 10},
            "rateLimit": {"enabled": True, "requestsPerSecond": 1000, "burstSize": 100},
            "output": {"localDirectory": str(tmp_path / "out")},
        }
        for key, value in sections.items():
            data.setdefault(key, {}).update(value)
        return CloneConfig.from_dict(data)

    return _make
