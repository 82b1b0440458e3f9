"""
Crawler module for website cloning.

Contains components for enumerating, downloading, and rewriting.
"""

from .cloner import CloneResult, SiteCloner
from .downloader import SiteDownloader
from .enumerator import Manifest, UrlEnumerator
from .http import HttpClient
from .ratelimit import RateLimiter
from .rewrite import LinkRewriter

__all__ = [
    "CloneResult",
    "SiteCloner",
    "SiteDownloader",
    "Manifest",
    "UrlEnumerator",
    "HttpClient",
    "RateLimiter",
    "LinkRewriter",
]
