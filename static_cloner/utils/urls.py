"""
URL canonicalization and classification.

Pure functions used by every stage of the pipeline. None of them raise on bad
input or perform I/O: malformed URLs come back as None (or False) so callers
can silently drop them.
"""

import functools
import posixpath
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional, Pattern
from urllib.parse import (
    parse_qsl,
    quote,
    unquote,
    urlencode,
    urljoin,
    urlsplit,
    urlunsplit,
)

from .constants import (
    DEFAULT_CSS_FORMATS,
    DEFAULT_FONT_FORMATS,
    DEFAULT_IMAGE_FORMATS,
    DEFAULT_JS_FORMATS,
    DEFAULT_VIDEO_FORMATS,
    SPECIAL_PROTOCOLS,
)


HTTP_SCHEMES = ("http", "https")

DEFAULT_PORTS = {"http": 80, "https": 443}

# Characters left alone when re-quoting a path ('%' keeps quoting idempotent)
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"

# Characters that are not allowed in file names on common filesystems
_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"|?*\\]')


class AssetType(Enum):
    """Closed set of asset kinds, each stored in its own output folder."""

    IMAGE = "image"
    CSS = "css"
    JS = "js"
    FONT = "font"
    VIDEO = "video"
    OTHER = "other"

    @property
    def directory(self) -> str:
        """Folder name under ``assets/`` for this type."""
        return _ASSET_DIRECTORIES[self]


_ASSET_DIRECTORIES = {
    AssetType.IMAGE: "images",
    AssetType.CSS: "css",
    AssetType.JS: "js",
    AssetType.FONT: "fonts",
    AssetType.VIDEO: "other",
    AssetType.OTHER: "other",
}

DEFAULT_ASSET_FORMATS = {
    AssetType.IMAGE: frozenset(DEFAULT_IMAGE_FORMATS),
    AssetType.CSS: frozenset(DEFAULT_CSS_FORMATS),
    AssetType.JS: frozenset(DEFAULT_JS_FORMATS),
    AssetType.FONT: frozenset(DEFAULT_FONT_FORMATS),
    AssetType.VIDEO: frozenset(DEFAULT_VIDEO_FORMATS),
}


@dataclass(frozen=True)
class AssetClassification:
    """Result of classifying a URL by its file extension."""

    is_asset: bool
    type: AssetType


def is_special_protocol(url: str) -> bool:
    """Return True for data:, mailto:, tel:, javascript: and about: URLs."""
    if not url:
        return False
    return url.strip().lower().startswith(SPECIAL_PROTOCOLS)


def _remove_dot_segments(path: str) -> str:
    """Collapse '.' and '..' segments (RFC 3986, section 5.2.4)."""
    segments = path.split("/")
    output = []

    for segment in segments:
        if segment == ".":
            continue
        if segment == "..":
            if len(output) > 1:
                output.pop()
            continue
        output.append(segment)

    # "/a/." and "/a/.." still denote a directory
    if segments[-1] in (".", ".."):
        output.append("")

    result = "/".join(output)
    return result if result.startswith("/") else "/" + result


def resolve_url(ref: Optional[str], base_url: Optional[str]) -> Optional[str]:
    """
    Resolve a reference against a base URL.

    Special-protocol references are returned unchanged. Protocol-relative
    references (``//host/path``) take the scheme of the base.

    Args:
        ref: Reference as it appears in a document
        base_url: Absolute URL of the referencing document

    Returns:
        Absolute URL, or None if either argument is unusable
    """
    if ref is None or not base_url:
        return None

    ref = ref.strip()
    if is_special_protocol(ref):
        return ref

    try:
        base = urlsplit(base_url)
        if not base.scheme:
            return None

        if ref.startswith("//"):
            ref = f"{base.scheme}:{ref}"

        resolved = urljoin(base_url, ref)
        parts = urlsplit(resolved)
        # Accessing the port validates it
        parts.port
    except ValueError:
        return None

    if not parts.scheme:
        return None
    if parts.scheme in HTTP_SCHEMES and not parts.hostname:
        return None

    return resolved


def normalize_url(url: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """
    Canonicalize a URL for deduplication and lookups.

    The canonical form has a lowercase scheme and host, no default port, no
    dot segments, no fragment, query parameters sorted by key then value,
    and no trailing slash unless the path is the root.

    Args:
        url: URL to normalize (absolute, or relative when base_url is given)
        base_url: Base URL for resolving relative URLs

    Returns:
        Canonical URL string, or None for malformed or non-HTTP(S) input
    """
    if url is None:
        return None

    url = url.strip()
    absolute = resolve_url(url, base_url) if base_url else url

    if not absolute or is_special_protocol(absolute):
        return None

    try:
        parts = urlsplit(absolute)
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if scheme not in HTTP_SCHEMES:
        return None

    host = (parts.hostname or "").lower()
    if not host:
        return None
    if ":" in host:
        host = f"[{host}]"

    netloc = host
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{host}:{port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    path = quote(_remove_dot_segments(parts.path), safe=_PATH_SAFE)
    if path != "/":
        path = path.rstrip("/") or "/"

    query = ""
    if parts.query:
        pairs = parse_qsl(parts.query, keep_blank_values=True)
        query = urlencode(sorted(pairs))

    return urlunsplit((scheme, netloc, path, query, ""))


def is_valid_url(url: Optional[str]) -> bool:
    """Check that a URL is an absolute HTTP(S) URL with a host."""
    if not url:
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in HTTP_SCHEMES and bool(parts.hostname)


def get_domain(url: Optional[str]) -> Optional[str]:
    """
    Extract the lowercase host name from a URL.

    Args:
        url: URL to extract the host from

    Returns:
        Host name (e.g., 'example.com') or None
    """
    if not url:
        return None
    try:
        return urlsplit(url).hostname or None
    except ValueError:
        return None


def get_root_domain(host: str) -> str:
    """Return the last two labels of a host name ('a.b.example.com' -> 'example.com')."""
    labels = host.split(".")
    return ".".join(labels[-2:]) if len(labels) >= 2 else host


def is_same_domain(url: str, other_url: str, include_subdomains: bool = False) -> bool:
    """
    Check if two URLs belong to the same site.

    Args:
        url: URL to check
        other_url: URL to compare against (usually the start URL)
        include_subdomains: Treat hosts sharing the last two labels as equal

    Returns:
        True if the hosts match, False otherwise or on malformed input
    """
    host = get_domain(url)
    other_host = get_domain(other_url)

    if not host or not other_host:
        return False

    if include_subdomains:
        return get_root_domain(host) == get_root_domain(other_host)

    return host == other_host


@functools.lru_cache(maxsize=256)
def _glob_to_regex(pattern: str) -> Pattern:
    parts = re.split(r"(\*\*|\*)", pattern)
    regex = "".join(
        ".*" if part == "**" else "[^/]*" if part == "*" else re.escape(part)
        for part in parts
    )
    return re.compile(regex)


def matches_pattern(url: str, patterns: Optional[Iterable[str]]) -> bool:
    """
    Check if a URL matches any glob pattern.

    ``**`` matches across path segments, ``*`` matches within one segment.
    Each pattern must match the whole URL path or the whole URL.

    Args:
        url: Absolute URL to test
        patterns: Glob patterns such as ``/admin/**`` or ``**/*.pdf``

    Returns:
        True if any pattern matches
    """
    if not patterns:
        return False

    try:
        path = urlsplit(url).path
    except ValueError:
        return False

    for pattern in patterns:
        regex = _glob_to_regex(pattern)
        if regex.fullmatch(path) or regex.fullmatch(url):
            return True

    return False


def get_extension(url: str) -> str:
    """Return the lowercase file extension of a URL path, without the dot."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return ""
    ext = posixpath.splitext(unquote(path))[1]
    return ext[1:].lower() if ext else ""


def classify_asset(
    url: str,
    formats: Optional[Mapping[AssetType, Iterable[str]]] = None
) -> AssetClassification:
    """
    Classify a URL as an asset by its file extension.

    Both the enumerator (to keep assets out of the page frontier) and the
    downloader (to pick an output folder) go through this function.

    Args:
        url: URL to classify
        formats: Extensions per asset type; defaults to DEFAULT_ASSET_FORMATS

    Returns:
        AssetClassification; URLs without an extension are never assets
    """
    ext = get_extension(url)
    if not ext:
        return AssetClassification(False, AssetType.OTHER)

    for asset_type, extensions in (formats or DEFAULT_ASSET_FORMATS).items():
        if ext in extensions:
            return AssetClassification(True, asset_type)

    return AssetClassification(False, AssetType.OTHER)


def sanitize_filename(name: str) -> str:
    """Replace characters that are invalid in file names."""
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


def url_to_relative_file_path(url: str) -> str:
    """
    Map a URL path to a relative file path with forward slashes.

    Empty and trailing-slash paths map to ``index.html``; paths whose last
    segment has no extension get ``.html`` appended. ``.`` and ``..``
    segments are dropped so the result never leaves its root.

    Args:
        url: Page URL

    Returns:
        Relative path such as ``docs/guide.html``
    """
    try:
        path = urlsplit(url).path
    except ValueError:
        return "index.html"

    segments = [
        sanitize_filename(segment)
        for segment in unquote(path).split("/")
        if segment not in ("", ".", "..")
    ]

    if not segments or path.endswith("/"):
        segments.append("index.html")
    elif not posixpath.splitext(segments[-1])[1]:
        segments[-1] += ".html"

    return "/".join(segments)
