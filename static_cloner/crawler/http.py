"""
Retrying HTTP client shared by the enumerator and the downloader.

Wraps one aiohttp session configured from the ``network`` section of the
config (user agent, headers, cookies, authentication, timeout) and maps
aiohttp failures onto the FetchError hierarchy.
"""

import asyncio
import socket
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp
from aiohttp import ClientTimeout

from ..config import NetworkConfig
from ..errors import AssetTooLarge, FetchDNS, FetchError, FetchHTTPError, FetchRefused, FetchTimeout
from ..utils.log import get_logger


HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

# Read size when a body limit is in force
CHUNK_SIZE = 64 * 1024


@dataclass
class FetchResult:
    """A successful (2xx) response with its body fully read."""

    url: str
    final_url: str
    status: int
    content_type: str
    body: bytes
    charset: Optional[str] = None

    @property
    def is_html(self) -> bool:
        return self.content_type.lower() in HTML_CONTENT_TYPES

    def text(self) -> str:
        """Decode the body using the declared charset, falling back to UTF-8."""
        try:
            return self.body.decode(self.charset or "utf-8", errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")


class HttpClient:
    """
    Async HTTP client with retry and linear backoff.

    Use as an async context manager so the underlying session is always
    closed, including on cancellation::

        async with HttpClient(config.network) as client:
            result = await client.fetch(url)
    """

    def __init__(self, network: NetworkConfig, follow_redirects: bool = True):
        """
        Initialize the client.

        Args:
            network: Network section of the configuration
            follow_redirects: Follow 3xx responses (otherwise they are errors)
        """
        self.network = network
        self.follow_redirects = follow_redirects
        self.retry_attempts = max(network.retry_attempts, 1)
        self.retry_delay = network.retry_delay_seconds
        self.logger = get_logger("http")

        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _build_headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self.network.user_agent}
        headers.update(self.network.headers)

        if self.network.cookies:
            headers["Cookie"] = "; ".join(self.network.cookies)

        auth = self.network.authentication
        if auth and auth.type == "bearer" and auth.bearer_token:
            headers["Authorization"] = f"Bearer {auth.bearer_token}"

        return headers

    async def open(self) -> None:
        """Create the aiohttp session (idempotent)."""
        if self._session is not None:
            return

        auth = None
        credentials = self.network.authentication
        if credentials and credentials.type == "basic" and credentials.username:
            auth = aiohttp.BasicAuth(credentials.username, credentials.password or "")

        self._session = aiohttp.ClientSession(
            timeout=ClientTimeout(total=self.network.timeout_seconds),
            headers=self._build_headers(),
            auth=auth,
        )

    async def close(self) -> None:
        """Close the session if it is open."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("HttpClient is not open; use 'async with HttpClient(...)'")
        return self._session

    async def fetch(self, url: str, max_bytes: Optional[int] = None) -> FetchResult:
        """
        GET a URL, retrying transient failures.

        Timeouts, refused connections, DNS failures and 408/429/5xx
        responses are retried up to ``retry_attempts`` times in total, waiting
        ``retry_delay * attempt`` between attempts. Other HTTP errors fail
        immediately.

        Args:
            url: Absolute URL to fetch
            max_bytes: Stop reading and raise AssetTooLarge once the body
                passes this many bytes

        Returns:
            FetchResult for a 2xx response

        Raises:
            FetchError: The last failure once retries are exhausted
            AssetTooLarge: The body is larger than max_bytes (never retried)
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._fetch_once(url, max_bytes)
            except FetchError as e:
                if not e.retryable or attempt >= self.retry_attempts:
                    raise
                delay = self.retry_delay * attempt
                self.logger.debug(
                    f"Attempt {attempt}/{self.retry_attempts} failed for {url} "
                    f"({e.reason}), retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

    async def _fetch_once(self, url: str, max_bytes: Optional[int] = None) -> FetchResult:
        try:
            async with self.session.get(url, allow_redirects=self.follow_redirects) as response:
                if not 200 <= response.status < 300:
                    raise FetchHTTPError(url, response.status)

                if max_bytes:
                    body = await self._read_limited(url, response, max_bytes)
                else:
                    body = await response.read()
                return FetchResult(
                    url=url,
                    final_url=str(response.url),
                    status=response.status,
                    content_type=response.content_type or "",
                    body=body,
                    charset=response.charset,
                )

        except asyncio.TimeoutError as e:
            raise FetchTimeout(url, "Request timed out") from e
        except aiohttp.InvalidURL as e:
            error = FetchError(url, "Invalid URL")
            error.retryable = False
            raise error from e
        except aiohttp.ClientConnectorError as e:
            if isinstance(e.os_error, socket.gaierror):
                raise FetchDNS(url, f"DNS lookup failed for {e.host}") from e
            raise FetchRefused(url, f"Connection failed: {e.os_error}") from e
        except aiohttp.ServerDisconnectedError as e:
            raise FetchRefused(url, "Server disconnected") from e
        except aiohttp.TooManyRedirects as e:
            error = FetchError(url, "Too many redirects")
            error.retryable = False
            raise error from e
        except aiohttp.ClientResponseError as e:
            raise FetchHTTPError(url, e.status, e.message or None) from e
        except aiohttp.ClientError as e:
            raise FetchError(url, str(e) or type(e).__name__) from e

    @staticmethod
    async def _read_limited(url: str, response: aiohttp.ClientResponse, max_bytes: int) -> bytes:
        declared = response.content_length
        if declared is not None and declared > max_bytes:
            raise AssetTooLarge(url, declared, max_bytes)

        chunks = []
        size = 0
        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
            size += len(chunk)
            if size > max_bytes:
                raise AssetTooLarge(url, size, max_bytes)
            chunks.append(chunk)
        return b"".join(chunks)

    async def head_size(self, url: str) -> Optional[int]:
        """
        Ask the server for the size of a resource without downloading it.

        Args:
            url: Asset URL

        Returns:
            Content-Length in bytes, or None when the probe fails or the
            server does not report a length
        """
        try:
            async with self.session.head(url, allow_redirects=True) as response:
                if response.status >= 400:
                    return None
                length = response.headers.get("Content-Length", "")
                return int(length) if length.isdigit() else None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.debug(f"Size probe failed for {url}: {e}")
            return None
