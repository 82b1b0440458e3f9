"""
Robots.txt handler for the static cloner.

Parses robots.txt into user-agent groups and answers allow/disallow queries
for the configured user agent, including ``*`` and ``$`` wildcards.
"""

import functools
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple
from urllib.parse import urlsplit

from ..errors import FetchError, FetchHTTPError
from .log import get_logger


@dataclass
class RobotsGroup:
    """Rules that apply to one set of user agents."""

    agents: List[str] = field(default_factory=list)
    # (allow, pattern) pairs in file order
    rules: List[Tuple[bool, str]] = field(default_factory=list)
    crawl_delay: Optional[float] = None


@functools.lru_cache(maxsize=256)
def _pattern_to_regex(pattern: str) -> Pattern:
    anchored = pattern.endswith("$")
    if anchored:
        pattern = pattern[:-1]
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(regex + ("$" if anchored else ""))


class RobotsHandler:
    """
    Handler for robots.txt parsing and rule checking.

    The most specific group naming our user agent wins over the ``*`` group.
    Within a group the longest matching rule decides; on a tie Allow wins.
    """

    def __init__(self, base_url: str, user_agent: str = "*"):
        """
        Initialize the robots.txt handler.

        Args:
            base_url: Any URL on the site
            user_agent: User agent string to check rules for
        """
        self.base_url = base_url
        self.user_agent = user_agent
        self.logger = get_logger("robots")

        parsed = urlsplit(base_url)
        self.robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"

        self.groups: List[RobotsGroup] = []
        self.sitemaps: List[str] = []
        self._group: Optional[RobotsGroup] = None
        self._loaded = False

    async def load(self, client) -> bool:
        """
        Fetch and parse robots.txt with the shared HTTP client.

        A missing robots.txt allows everything. Any other failure is logged
        and also leaves the crawl unrestricted.

        Args:
            client: Open HttpClient

        Returns:
            True if rules were loaded (or the file does not exist)
        """
        try:
            result = await client.fetch(self.robots_url)
        except FetchHTTPError as e:
            if e.status == 404:
                self.logger.info("No robots.txt found - all URLs allowed")
                self._loaded = True
                return True
            self.logger.warning(f"Failed to load robots.txt: HTTP {e.status} - crawling unrestricted")
            return False
        except FetchError as e:
            self.logger.warning(f"Error fetching robots.txt: {e.reason} - crawling unrestricted")
            return False

        self.parse(result.text())
        self.logger.info(f"Loaded robots.txt from {self.robots_url}")
        return True

    def parse(self, content: str) -> None:
        """
        Parse robots.txt content.

        Args:
            content: robots.txt file content
        """
        self.groups = []
        self.sitemaps = []
        current: Optional[RobotsGroup] = None
        reading_agents = False

        for raw_line in content.splitlines():
            line = raw_line.split("#", 1)[0].strip()
            if not line or ":" not in line:
                continue

            directive, value = line.split(":", 1)
            directive = directive.strip().lower()
            value = value.strip()

            if directive == "user-agent":
                # Consecutive User-agent lines share one group
                if current is None or not reading_agents:
                    current = RobotsGroup()
                    self.groups.append(current)
                current.agents.append(value.lower())
                reading_agents = True

            elif directive in ("allow", "disallow"):
                reading_agents = False
                if current is not None and value:
                    current.rules.append((directive == "allow", value))

            elif directive == "crawl-delay":
                reading_agents = False
                if current is not None:
                    try:
                        current.crawl_delay = float(value)
                    except ValueError:
                        self.logger.debug(f"Ignoring invalid Crawl-delay: {value}")

            elif directive == "sitemap":
                # Sitemaps are global, not group-specific
                self.sitemaps.append(value)

        self._group = self._select_group()
        self._loaded = True

    def _select_group(self) -> Optional[RobotsGroup]:
        agent = self.user_agent.lower()
        best: Optional[RobotsGroup] = None
        best_length = -1
        wildcard: Optional[RobotsGroup] = None

        for group in self.groups:
            for name in group.agents:
                if name == "*":
                    wildcard = wildcard or group
                elif name in agent and len(name) > best_length:
                    best, best_length = group, len(name)

        return best or wildcard

    def is_allowed(self, url: str) -> bool:
        """
        Check if a URL is allowed to be crawled.

        Args:
            url: URL to check

        Returns:
            True if allowed, False if disallowed
        """
        if not self._loaded or self._group is None:
            return True

        parts = urlsplit(url)
        target = parts.path or "/"
        if parts.query:
            target += "?" + parts.query

        verdict = True
        longest = -1
        for allow, pattern in self._group.rules:
            if not _pattern_to_regex(pattern).match(target):
                continue
            if len(pattern) > longest or (len(pattern) == longest and allow):
                verdict, longest = allow, len(pattern)

        if not verdict:
            self.logger.debug(f"URL disallowed by robots.txt: {url}")
        return verdict

    @property
    def crawl_delay(self) -> Optional[float]:
        """Crawl-delay (seconds) of the group that applies to us, if any."""
        return self._group.crawl_delay if self._group else None
