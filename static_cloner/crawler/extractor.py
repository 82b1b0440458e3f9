"""
Reference extractor for parsing HTML and CSS.

Uses BeautifulSoup to find page links (for the enumerator) and asset
references (for the downloader), and regular expressions for url() and
@import references inside stylesheets.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from bs4 import BeautifulSoup, FeatureNotFound

from ..config import AssetConfig
from ..utils.log import get_logger
from ..utils.urls import (
    AssetType,
    classify_asset,
    get_extension,
    is_special_protocol,
    is_valid_url,
    normalize_url,
    resolve_url,
)


# CSS url() references; group 2 is the URL without its quotes
CSS_URL_PATTERN = re.compile(r"""url\s*\(\s*(['"]?)([^'")]+)\1\s*\)""", re.IGNORECASE)

# @import "file.css" (the url() form is covered by CSS_URL_PATTERN)
CSS_IMPORT_PATTERN = re.compile(r"""@import\s+(['"])([^'"]+)\1""", re.IGNORECASE)

# Start of a srcset candidate: separators, then the URL (a run of non-whitespace)
SRCSET_URL_PATTERN = re.compile(r"[\s,]*(\S+)")

# Link relations the enumerator follows besides <a href>
PAGE_LINK_RELS = ("alternate", "canonical")

# Extensions an <iframe> target may have and still be crawled as a page
FRAME_PAGE_EXTENSIONS = ("", "htm", "html")


@dataclass(frozen=True)
class AssetRef:
    """One asset referenced by a page, keyed by its canonical URL."""

    url: str
    type: AssetType


def parse_html(html: Union[str, bytes]) -> BeautifulSoup:
    """
    Parse HTML with lxml, falling back to the built-in parser.

    Args:
        html: HTML document; bytes are decoded by BeautifulSoup

    Returns:
        BeautifulSoup tree
    """
    try:
        return BeautifulSoup(html, "lxml")
    except FeatureNotFound:
        return BeautifulSoup(html, "html.parser")


def _rel_values(tag) -> List[str]:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return [value.lower() for value in rel]


def extract_page_links(soup: BeautifulSoup, page_url: str) -> List[str]:
    """
    Extract links to other pages.

    Collects ``<a href>``, ``<link rel=alternate|canonical>`` and ``<iframe
    src>`` targets; iframes only when the target has no extension or is
    ``.htm``/``.html``.

    Args:
        soup: Parsed page
        page_url: Final URL of the page, used as the resolution base

    Returns:
        Absolute http(s) URLs in document order, without duplicates
    """
    links: List[str] = []
    seen = set()

    def add(ref: Optional[str], page_only: bool = False) -> None:
        if not ref:
            return
        resolved = resolve_url(ref, page_url)
        if not resolved or is_special_protocol(resolved) or not is_valid_url(resolved):
            return
        if page_only and get_extension(resolved) not in FRAME_PAGE_EXTENSIONS:
            return
        if resolved not in seen:
            seen.add(resolved)
            links.append(resolved)

    for anchor in soup.find_all("a", href=True):
        add(anchor["href"])

    for link in soup.find_all("link", href=True, rel=True):
        if any(rel in PAGE_LINK_RELS for rel in _rel_values(link)):
            add(link["href"])

    for frame in soup.find_all("iframe", src=True):
        add(frame["src"], page_only=True)

    return links


def parse_srcset(srcset: str) -> List[Tuple[str, str]]:
    """
    Split a srcset attribute into candidates.

    Commas inside a URL (as in data: URIs) belong to the URL; a candidate
    ends at trailing commas on its URL or at the first comma after its
    descriptor.

    Args:
        srcset: srcset attribute value

    Returns:
        (url, descriptor) pairs; the descriptor keeps its leading whitespace
        and is empty when absent
    """
    candidates = []
    position = 0
    while position < len(srcset):
        match = SRCSET_URL_PATTERN.match(srcset, position)
        if not match:
            break
        url = match.group(1)
        position = match.end()

        if url.endswith(","):
            url = url.rstrip(",")
            descriptor = ""
        else:
            end = srcset.find(",", position)
            if end == -1:
                end = len(srcset)
            descriptor = srcset[position:end].rstrip()
            position = end + 1

        if url:
            candidates.append((url, descriptor))
    return candidates


def extract_css_urls(css: str) -> List[str]:
    """Return the raw url() references in a stylesheet or style attribute."""
    return [match.group(2).strip() for match in CSS_URL_PATTERN.finditer(css)]


def extract_css_refs(css: str, css_url: str) -> List[str]:
    """
    Extract canonical URLs referenced by a stylesheet.

    Args:
        css: CSS file content
        css_url: URL of the CSS file (for resolving relative URLs)

    Returns:
        Canonical URLs from url() and @import, without duplicates
    """
    refs = extract_css_urls(css)
    refs.extend(match.group(2).strip() for match in CSS_IMPORT_PATTERN.finditer(css))

    urls: List[str] = []
    for ref in refs:
        url = normalize_url(ref, css_url)
        if url and url not in urls:
            urls.append(url)
    return urls


class AssetExtractor:
    """
    Extracts asset references from saved HTML pages.

    Every reference is classified by extension through classify_asset();
    when the extension says nothing, the tag it came from decides the type.
    Types disabled in the asset config are dropped.
    """

    def __init__(self, asset_config: AssetConfig):
        """
        Initialize the asset extractor.

        Args:
            asset_config: Asset section of the configuration
        """
        self.asset_config = asset_config
        self.formats = asset_config.formats
        self.logger = get_logger("extractor")

    def extract(self, html: Union[str, bytes], page_url: str) -> List[AssetRef]:
        """
        Extract all asset references from an HTML page.

        Args:
            html: HTML content to parse
            page_url: URL of the page (for resolving relative URLs)

        Returns:
            AssetRef list in document order, one per canonical URL
        """
        soup = parse_html(html)
        refs: List[AssetRef] = []
        seen = set()

        for ref, hint in self._candidates(soup):
            url = normalize_url(ref, page_url)
            if not url or url in seen:
                continue

            classification = classify_asset(url, self.formats)
            asset_type = classification.type if classification.is_asset else hint
            if not self.asset_config.allows(asset_type):
                continue

            seen.add(url)
            refs.append(AssetRef(url=url, type=asset_type))

        self.logger.debug(f"Extracted {len(refs)} asset references from {page_url}")
        return refs

    def _candidates(self, soup: BeautifulSoup) -> Iterable[Tuple[str, AssetType]]:
        """Yield (raw reference, fallback type) pairs."""
        for link in soup.find_all("link", href=True, rel=True):
            rels = _rel_values(link)
            if "stylesheet" in rels:
                yield link["href"], AssetType.CSS
            elif any("icon" in rel for rel in rels):
                yield link["href"], AssetType.IMAGE

        for script in soup.find_all("script", src=True):
            yield script["src"], AssetType.JS

        for img in soup.find_all("img"):
            if img.get("src"):
                yield img["src"], AssetType.IMAGE
            if img.get("srcset"):
                for url, _ in parse_srcset(img["srcset"]):
                    yield url, AssetType.IMAGE

        for source in soup.find_all("source"):
            if source.get("src"):
                yield source["src"], AssetType.VIDEO
            if source.get("srcset"):
                for url, _ in parse_srcset(source["srcset"]):
                    yield url, AssetType.IMAGE

        for media in soup.find_all(["video", "audio"]):
            if media.get("src"):
                yield media["src"], AssetType.VIDEO
            if media.get("poster"):
                yield media["poster"], AssetType.IMAGE

        for element in soup.find_all(style=True):
            for url in extract_css_urls(element["style"]):
                yield url, AssetType.OTHER

        for style in soup.find_all("style"):
            css = style.string
            if not css:
                continue
            for url in extract_css_urls(css):
                yield url, AssetType.OTHER
            for match in CSS_IMPORT_PATTERN.finditer(css):
                yield match.group(2).strip(), AssetType.CSS
