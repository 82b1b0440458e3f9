"""
Exception types for the static cloner.

Configuration and manifest errors abort a run; fetch errors are retried and
then counted against the single URL that caused them.
"""

from typing import Optional


class ClonerError(Exception):
    """Base class for all cloner errors."""


class ConfigError(ClonerError):
    """Configuration file is missing, unreadable or invalid."""


class ManifestError(ClonerError):
    """Discovery manifest is missing or cannot be parsed."""


class FetchError(ClonerError):
    """
    A network fetch failed.

    Attributes:
        url: URL that was requested
        reason: Short human-readable reason
    """

    retryable = True

    def __init__(self, url: str, reason: str):
        super().__init__(f"{reason}: {url}")
        self.url = url
        self.reason = reason


class FetchTimeout(FetchError):
    """The request did not complete within the configured timeout."""


class FetchRefused(FetchError):
    """The connection was refused or dropped by the server."""


class FetchDNS(FetchError):
    """The host name could not be resolved."""


class FetchHTTPError(FetchError):
    """The server answered with a non-success status code."""

    # Statuses worth asking for again; everything else fails immediately
    RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

    def __init__(self, url: str, status: int, reason: Optional[str] = None):
        super().__init__(url, reason or f"HTTP {status}")
        self.status = status
        self.retryable = status in self.RETRYABLE_STATUSES


class AssetTooLarge(ClonerError):
    """Asset exceeds the configured maximum file size."""

    def __init__(self, url: str, size: int, limit: int):
        super().__init__(f"{url} is {size} bytes (limit {limit})")
        self.url = url
        self.size = size
        self.limit = limit
