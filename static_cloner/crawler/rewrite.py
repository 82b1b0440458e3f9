"""
Link rewriter for converting URLs to local relative paths.

Rewrites references in saved HTML pages and CSS files so that every
same-host page or asset that was downloaded is reached through a relative
path, and the clone can be browsed offline.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Union

from bs4 import BeautifulSoup

from .downloader import AssetMapping, AssetRecord, PageRecord
from .extractor import CSS_IMPORT_PATTERN, CSS_URL_PATTERN, parse_html, parse_srcset
from ..utils.log import get_logger, print_section, print_success
from ..utils.paths import get_relative_path
from ..utils.urls import AssetType, get_domain, is_special_protocol, normalize_url, resolve_url


# Attributes holding a single URL
URL_ATTRIBUTES = ("href", "src", "poster")


@dataclass
class RewriteStats:
    """Counters for one rewrite pass."""

    links_rewritten: int = 0
    external_links_preserved: int = 0
    special_protocols_preserved: int = 0
    html_files_processed: int = 0
    css_files_processed: int = 0
    files_failed: int = 0


class LinkRewriter:
    """
    Rewrites URLs in HTML and CSS content to local relative paths.

    A reference is rewritten only when it resolves to the same host as the
    file containing it and its canonical URL was saved locally. Everything
    else is left exactly as written.
    """

    def __init__(self, config=None):
        """
        Initialize the link rewriter.

        Args:
            config: Clone configuration (unused fields are ignored)
        """
        self.config = config
        self.stats = RewriteStats()
        self.logger = get_logger("rewriter")

    @staticmethod
    def build_url_map(
        pages: Iterable[PageRecord],
        asset_mapping: AssetMapping
    ) -> Dict[str, str]:
        """
        Build the canonical URL -> local path lookup.

        Pages are registered under their canonical URL and under the
        canonical form of the URL they were served from after redirects.

        Args:
            pages: Saved pages
            asset_mapping: Canonical asset URL -> local path

        Returns:
            Combined map
        """
        url_map: Dict[str, str] = dict(asset_mapping)
        for page in pages:
            url_map[page.canonical_url] = page.local_path
            final = normalize_url(page.url)
            if final:
                url_map.setdefault(final, page.local_path)
        return url_map

    def rewrite_all(
        self,
        pages: List[PageRecord],
        assets: List[AssetRecord],
        asset_mapping: AssetMapping
    ) -> RewriteStats:
        """
        Rewrite every saved page and stylesheet in place.

        Args:
            pages: Pages saved by the downloader
            assets: Assets saved by the downloader
            asset_mapping: Canonical asset URL -> local path

        Returns:
            RewriteStats for this pass
        """
        print_section("Rewriting Links")
        url_map = self.build_url_map(pages, asset_mapping)

        for page in pages:
            self._rewrite_file(page.local_path, page.url, url_map, is_html=True)

        for asset in assets:
            if asset.type == AssetType.CSS:
                self._rewrite_file(asset.local_path, asset.url, url_map, is_html=False)

        print_success(
            f"Rewrote {self.stats.links_rewritten} links in "
            f"{self.stats.html_files_processed} pages and "
            f"{self.stats.css_files_processed} stylesheets "
            f"({self.stats.external_links_preserved} external links preserved)"
        )
        return self.stats

    def _rewrite_file(self, path: str, url: str, url_map: Dict[str, str], is_html: bool) -> None:
        try:
            if is_html:
                with open(path, "rb") as f:
                    soup = self._rewrite_soup(parse_html(f.read()), url, path, url_map)
                with open(path, "wb") as f:
                    f.write(soup.encode("utf-8"))
                self.stats.html_files_processed += 1
            else:
                with open(path, "r", encoding="utf-8", errors="surrogateescape") as f:
                    css = f.read()
                css = self.rewrite_css(css, url, path, url_map)
                with open(path, "w", encoding="utf-8", errors="surrogateescape") as f:
                    f.write(css)
                self.stats.css_files_processed += 1
        except OSError as e:
            self.logger.error(f"Error rewriting {path}: {e}")
            self.stats.files_failed += 1

    def rewrite_url(self, ref: str, base_url: str, from_path: str, url_map: Dict[str, str]) -> str:
        """
        Rewrite one reference.

        Args:
            ref: Reference as written in the document
            base_url: URL of the document containing the reference
            from_path: Local path of that document
            url_map: Canonical URL -> local path

        Returns:
            Relative local path (with the original fragment), or ref unchanged
        """
        value = ref.strip()
        if not value or value.startswith("#"):
            return ref
        if is_special_protocol(value):
            self.stats.special_protocols_preserved += 1
            return ref

        resolved = resolve_url(value, base_url)
        if not resolved:
            return ref

        if get_domain(resolved) != get_domain(base_url):
            self.stats.external_links_preserved += 1
            return ref

        target = url_map.get(normalize_url(resolved) or "")
        if not target:
            return ref

        fragment = ""
        if "#" in value:
            fragment = "#" + value.split("#", 1)[1]

        self.stats.links_rewritten += 1
        return get_relative_path(from_path, target) + fragment

    def rewrite_srcset(self, srcset: str, base_url: str, from_path: str, url_map: Dict[str, str]) -> str:
        """Rewrite each srcset candidate, keeping descriptors verbatim."""
        candidates = []
        changed = False
        for url, descriptor in parse_srcset(srcset):
            new_url = self.rewrite_url(url, base_url, from_path, url_map)
            changed = changed or new_url != url
            candidates.append(new_url + descriptor)

        if not changed:
            return srcset
        return ", ".join(candidates)

    def rewrite_css(self, css: str, base_url: str, from_path: str, url_map: Dict[str, str]) -> str:
        """
        Rewrite url() and @import references in CSS.

        Args:
            css: CSS content
            base_url: URL of the stylesheet or page containing the CSS
            from_path: Local path of the containing file
            url_map: Canonical URL -> local path

        Returns:
            CSS with rewritten references
        """
        def replace_url(match) -> str:
            quote, ref = match.group(1), match.group(2)
            new_ref = self.rewrite_url(ref.strip(), base_url, from_path, url_map)
            if new_ref == ref.strip():
                return match.group(0)
            return f"url({quote}{new_ref}{quote})"

        def replace_import(match) -> str:
            quote, ref = match.group(1), match.group(2)
            new_ref = self.rewrite_url(ref.strip(), base_url, from_path, url_map)
            if new_ref == ref.strip():
                return match.group(0)
            return f"@import {quote}{new_ref}{quote}"

        css = CSS_URL_PATTERN.sub(replace_url, css)
        return CSS_IMPORT_PATTERN.sub(replace_import, css)

    def rewrite_html(
        self,
        html: Union[str, bytes],
        page_url: str,
        page_local_path: str,
        url_map: Dict[str, str]
    ) -> str:
        """
        Rewrite all URLs in HTML content to local paths.

        Args:
            html: HTML content to rewrite
            page_url: URL the page was served from
            page_local_path: Local file path of the page
            url_map: Canonical URL -> local path

        Returns:
            Rewritten HTML content
        """
        return str(self._rewrite_soup(parse_html(html), page_url, page_local_path, url_map))

    def _rewrite_soup(
        self,
        soup: BeautifulSoup,
        page_url: str,
        page_local_path: str,
        url_map: Dict[str, str]
    ) -> BeautifulSoup:
        for attr in URL_ATTRIBUTES:
            for element in soup.find_all(attrs={attr: True}):
                element[attr] = self.rewrite_url(element[attr], page_url, page_local_path, url_map)

        for element in soup.find_all(srcset=True):
            element["srcset"] = self.rewrite_srcset(
                element["srcset"], page_url, page_local_path, url_map
            )

        for element in soup.find_all(style=True):
            element["style"] = self.rewrite_css(element["style"], page_url, page_local_path, url_map)

        for style in soup.find_all("style"):
            css = style.string
            if css:
                # Same string class, so the CSS is not entity-escaped on output
                css.replace_with(css.__class__(
                    self.rewrite_css(str(css), page_url, page_local_path, url_map)
                ))

        # Relative paths must resolve against the file itself
        for base in soup.find_all("base"):
            base.decompose()

        return soup
