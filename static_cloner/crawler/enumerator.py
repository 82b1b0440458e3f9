"""
URL enumerator (map stage).

Breadth-first discovery of every page reachable from the start URL within
the configured scope. Produces a Manifest that the downloader consumes.
"""

import json
import os
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from .extractor import extract_page_links, parse_html
from .http import HttpClient
from .ratelimit import RateLimiter
from ..config import CloneConfig
from ..errors import FetchError, ManifestError
from ..utils.constants import MANIFEST_FILENAME
from ..utils.log import get_logger, print_info, print_section, print_success, print_warning
from ..utils.paths import ensure_dir
from ..utils.robots import RobotsHandler
from ..utils.urls import classify_asset, is_same_domain, matches_pattern, normalize_url


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SkipReason(Enum):
    """Why a queued URL was not fetched."""

    DEPTH = "depth"
    PATTERN = "pattern"
    NOT_ALLOWED = "not_allowed"
    ROBOTS = "robots"
    NON_HTML = "non_html"


@dataclass(frozen=True)
class FrontierEntry:
    """One queued URL."""

    url: str
    depth: int
    parent: Optional[str] = None


@dataclass(frozen=True)
class DiscoveryRecord:
    """First sighting of a canonical URL."""

    original_url: str
    canonical_url: str
    depth: int
    parent: Optional[str] = None
    discovered_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.original_url,
            "normalizedUrl": self.canonical_url,
            "depth": self.depth,
            "parent": self.parent,
            "discoveredAt": self.discovered_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscoveryRecord":
        original = data["url"]
        return cls(
            original_url=original,
            canonical_url=data.get("normalizedUrl") or normalize_url(original) or original,
            depth=int(data.get("depth", 0)),
            parent=data.get("parent"),
            discovered_at=data.get("discoveredAt") or _now_iso(),
        )


@dataclass
class Manifest:
    """Result of one enumeration, persisted as manifest.json."""

    start_url: str
    max_depth: int
    url_details: List[DiscoveryRecord] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)
    generated_at: str = field(default_factory=_now_iso)

    @property
    def total_urls(self) -> int:
        return len(self.url_details)

    @property
    def by_depth(self) -> Dict[int, List[str]]:
        """Original URLs grouped by discovery depth, in discovery order."""
        grouped: Dict[int, List[str]] = {}
        for record in self.url_details:
            grouped.setdefault(record.depth, []).append(record.original_url)
        return dict(sorted(grouped.items()))

    @property
    def actual_max_depth(self) -> int:
        return max(self.by_depth, default=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "startUrl": self.start_url,
            "totalUrls": self.total_urls,
            "maxDepth": self.max_depth,
            "actualMaxDepth": self.actual_max_depth,
            "byDepth": {str(depth): urls for depth, urls in self.by_depth.items()},
            "urlDetails": [record.to_dict() for record in self.url_details],
            "config": self.config,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        """
        Rebuild a manifest from its JSON form.

        Raises:
            ManifestError: If required keys are missing or malformed
        """
        try:
            return cls(
                start_url=data["startUrl"],
                max_depth=int(data.get("maxDepth", 0)),
                url_details=[DiscoveryRecord.from_dict(item) for item in data["urlDetails"]],
                config=dict(data.get("config") or {}),
                generated_at=data.get("generatedAt") or _now_iso(),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ManifestError(f"Malformed manifest: {e}") from e

    def save(self, output_dir: str) -> str:
        """
        Write manifest.json into the output directory.

        Args:
            output_dir: Base output directory

        Returns:
            Path of the written file
        """
        ensure_dir(output_dir)
        path = os.path.join(output_dir, MANIFEST_FILENAME)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        return path

    @classmethod
    def load(cls, path: str) -> "Manifest":
        """
        Read a manifest written by save().

        Args:
            path: manifest.json path

        Raises:
            ManifestError: If the file is missing or invalid
        """
        if not os.path.isfile(path):
            raise ManifestError(f"Manifest not found: {path}. Run enumeration first.")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ManifestError(f"Cannot read manifest {path}: {e}") from e
        if not isinstance(data, dict):
            raise ManifestError(f"Malformed manifest: {path}")
        return cls.from_dict(data)


@dataclass
class EnumerationStats:
    """Counters for the run summary."""

    processed: int = 0
    skipped: Counter = field(default_factory=Counter)
    errors: int = 0

    @property
    def total_skipped(self) -> int:
        return sum(self.skipped.values())


class UrlEnumerator:
    """
    Breadth-first URL discovery.

    A URL is discovered at most once (its first-seen depth wins) and fetched
    at most once. Discovery stops when the frontier is empty or the
    discovery cap (max_pages) is reached.
    """

    def __init__(
        self,
        config: CloneConfig,
        client: Optional[HttpClient] = None,
        rate_limiter: Optional[RateLimiter] = None
    ):
        """
        Initialize the enumerator.

        Args:
            config: Clone configuration
            client: Open HttpClient to share; a private one is opened when None
            rate_limiter: Token bucket; built from config when None
        """
        self.config = config
        self.crawling = config.crawling
        self.client = client
        self.rate_limiter = rate_limiter or RateLimiter.from_config(config.rate_limit)
        self.logger = get_logger("enumerator")

        self.start_url = normalize_url(config.target.url)
        # Hosts links must belong to; grows when the start page redirects off-host
        self.scope_urls = [self.start_url]
        self.robots: Optional[RobotsHandler] = None
        self.stats = EnumerationStats()
        self.errors: List[Dict[str, str]] = []

        self._discovered: Dict[str, DiscoveryRecord] = {}
        self._visited = set()

    async def enumerate(self) -> Manifest:
        """
        Run the breadth-first crawl.

        Returns:
            Manifest of every discovered URL
        """
        if self.client is not None:
            return await self._enumerate(self.client)

        async with HttpClient(self.config.network, self.crawling.follow_redirects) as client:
            return await self._enumerate(client)

    async def _enumerate(self, client: HttpClient) -> Manifest:
        print_section("URL Enumeration")
        print_info(f"Starting URL: {self.start_url}")
        print_info(f"Max depth: {self.crawling.max_depth}, max pages: {self.crawling.max_pages}")

        if self.crawling.respect_robots_txt:
            await self._load_robots(client)

        queue: Deque[FrontierEntry] = deque([FrontierEntry(self.start_url, 0)])
        self._discover(self.config.target.url, self.start_url, 0, None)

        while queue and len(self._discovered) < self.crawling.max_pages:
            entry = queue.popleft()

            if entry.url in self._visited:
                continue

            reason = self._skip_reason(entry)
            if reason is not None:
                self.stats.skipped[reason] += 1
                self.logger.debug(f"Skipping {entry.url} ({reason.value})")
                continue

            self._visited.add(entry.url)
            self.logger.debug(
                f"Discovered: {len(self._discovered)} | Visited: {len(self._visited)} | "
                f"Queue: {len(queue)} | Depth: {entry.depth}"
            )

            await self.rate_limiter.acquire()
            html_base = await self._fetch_page(client, entry.url)
            if html_base is None:
                continue
            html, base_url = html_base
            if entry.depth == 0:
                self._adopt_redirect_host(base_url)

            self.stats.processed += 1
            for child in self._process_links(html, base_url, entry):
                queue.append(child)

        return self._finish()

    async def _load_robots(self, client: HttpClient) -> None:
        self.robots = RobotsHandler(self.start_url, self.config.network.user_agent)
        await self.robots.load(client)

        delay = self.robots.crawl_delay
        if delay and delay > 0:
            print_info(f"robots.txt Crawl-delay: {delay}s")
            self.rate_limiter.limit_rate(1 / delay)

    def _skip_reason(self, entry: FrontierEntry) -> Optional[SkipReason]:
        if entry.depth > self.crawling.max_depth:
            return SkipReason.DEPTH
        if matches_pattern(entry.url, self.crawling.ignore_patterns):
            return SkipReason.PATTERN
        if self.crawling.allowed_patterns and not matches_pattern(
            entry.url, self.crawling.allowed_patterns
        ):
            return SkipReason.NOT_ALLOWED
        if self.robots is not None and not self.robots.is_allowed(entry.url):
            return SkipReason.ROBOTS
        return None

    async def _fetch_page(self, client: HttpClient, url: str):
        """Fetch one page; returns (html, final_url) or None."""
        try:
            result = await client.fetch(url)
        except FetchError as e:
            self.logger.error(f"Failed to fetch {url}: {e.reason}")
            self.stats.errors += 1
            self.errors.append({"url": url, "error": e.reason, "type": "enumerate_error"})
            return None

        if not result.is_html:
            self.logger.debug(f"Skipping {url} (non-HTML: {result.content_type})")
            self.stats.skipped[SkipReason.NON_HTML] += 1
            return None

        return result.text(), result.final_url

    def _process_links(self, html: str, base_url: str, entry: FrontierEntry) -> List[FrontierEntry]:
        """Record new links found on a page and return those to enqueue."""
        children: List[FrontierEntry] = []
        links = extract_page_links(parse_html(html), base_url)
        self.logger.debug(f"Found {len(links)} links on {entry.url}")

        for link in links:
            canonical = normalize_url(link)
            if not canonical or canonical in self._discovered:
                continue

            if self.crawling.same_domain_only and not self._in_scope(canonical):
                continue

            if classify_asset(canonical, self.config.assets.formats).is_asset:
                continue

            if len(self._discovered) >= self.crawling.max_pages:
                self.logger.debug(
                    f"Reached maxPages limit ({self.crawling.max_pages}), stopping URL discovery"
                )
                break

            depth = entry.depth + 1
            self._discover(link, canonical, depth, entry.url)
            if depth <= self.crawling.max_depth:
                children.append(FrontierEntry(canonical, depth, entry.url))

        return children

    def _adopt_redirect_host(self, final_url: str) -> None:
        final = normalize_url(final_url)
        if not final or self._in_scope(final):
            return
        print_info(f"Start URL redirected to {final}, following links on that host")
        self.scope_urls.append(final)

    def _in_scope(self, url: str) -> bool:
        return any(
            is_same_domain(url, scope, self.crawling.include_subdomains)
            for scope in self.scope_urls
        )

    def _discover(self, original: str, canonical: str, depth: int, parent: Optional[str]) -> None:
        self._discovered[canonical] = DiscoveryRecord(
            original_url=original,
            canonical_url=canonical,
            depth=depth,
            parent=parent,
        )

    def _finish(self) -> Manifest:
        manifest = Manifest(
            start_url=self.config.target.url,
            max_depth=self.crawling.max_depth,
            url_details=list(self._discovered.values()),
            config={
                "maxPages": self.crawling.max_pages,
                "sameDomainOnly": self.crawling.same_domain_only,
                "includeSubdomains": self.crawling.include_subdomains,
            },
        )

        print_success("Enumeration complete!")
        print_info(f"Total URLs discovered: {manifest.total_urls}")
        if manifest.total_urls >= self.crawling.max_pages:
            print_warning(f"Reached maxPages limit of {self.crawling.max_pages} URLs")
        print_info(f"URLs processed: {self.stats.processed}")
        print_info(f"URLs skipped: {self.stats.total_skipped}")
        print_info(f"Errors: {self.stats.errors}")

        return manifest
