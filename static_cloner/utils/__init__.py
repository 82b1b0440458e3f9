"""
Utility modules for website cloning.

Contains logging, URL and path handling, robots.txt parsing, and constants.
"""

from .log import setup_logger, get_logger
from .urls import AssetType, normalize_url, resolve_url, classify_asset
from .paths import get_asset_path, get_page_path, ensure_dir
from .robots import RobotsHandler
from .constants import (
    DEFAULT_USER_AGENT,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_PAGES,
    DEFAULT_MAX_DEPTH,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "AssetType",
    "normalize_url",
    "resolve_url",
    "classify_asset",
    "get_asset_path",
    "get_page_path",
    "ensure_dir",
    "RobotsHandler",
    "DEFAULT_USER_AGENT",
    "DEFAULT_TIMEOUT_MS",
    "DEFAULT_CONCURRENCY",
    "DEFAULT_MAX_PAGES",
    "DEFAULT_MAX_DEPTH",
]
