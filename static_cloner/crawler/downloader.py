"""
Site downloader for fetching and saving pages and assets.

Runs in two phases over a discovery manifest: first every page is fetched and
written to disk, then the saved pages are scanned for assets, which are
deduplicated across the whole site and fetched once each. Both phases use a
bounded pool of aiohttp workers.
"""

import asyncio
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .enumerator import DiscoveryRecord, Manifest
from .extractor import AssetExtractor, AssetRef, extract_css_refs
from .http import HttpClient
from ..config import CloneConfig
from ..errors import AssetTooLarge, FetchError
from ..utils.constants import MANIFEST_FILENAME
from ..utils.log import format_bytes, get_logger, print_info, print_section, print_success
from ..utils.paths import ensure_parent_dir, get_asset_path, get_page_path
from ..utils.urls import AssetType, classify_asset


# Nested @import / url() levels followed from downloaded stylesheets
CSS_DEPENDENCY_DEPTH = 3

# Canonical asset URL -> local file path
AssetMapping = Dict[str, str]


@dataclass
class PageRecord:
    """A page saved to disk; its content is not kept in memory."""

    url: str
    canonical_url: str
    local_path: str
    depth: int = 0
    asset_refs: List[AssetRef] = field(default_factory=list)


@dataclass
class AssetRecord:
    """One unique asset saved to disk."""

    url: str
    local_path: str
    type: AssetType
    size_bytes: int = 0


@dataclass
class DownloadStats:
    """Counters reported through the progress callback."""

    pages_total: int = 0
    pages_downloaded: int = 0
    pages_failed: int = 0
    pages_skipped: int = 0
    assets_total: int = 0
    assets_downloaded: int = 0
    assets_failed: int = 0
    assets_skipped: int = 0
    total_bytes: int = 0

    @property
    def pages_done(self) -> int:
        return self.pages_downloaded + self.pages_failed + self.pages_skipped

    @property
    def assets_done(self) -> int:
        return self.assets_downloaded + self.assets_failed + self.assets_skipped


@dataclass
class DownloadResult:
    """Everything the rewriter and the dynamic detector need."""

    pages: List[PageRecord] = field(default_factory=list)
    assets: List[AssetRecord] = field(default_factory=list)
    asset_mapping: AssetMapping = field(default_factory=dict)
    stats: DownloadStats = field(default_factory=DownloadStats)
    errors: List[Dict[str, str]] = field(default_factory=list)


ProgressCallback = Callable[[str, DownloadStats], None]


class SiteDownloader:
    """
    Downloads the pages of a manifest and the assets they reference.

    No single failure aborts a phase: failed items are logged, counted and
    collected in ``errors``.
    """

    def __init__(
        self,
        config: CloneConfig,
        client: Optional[HttpClient] = None,
        on_progress: Optional[ProgressCallback] = None
    ):
        """
        Initialize the downloader.

        Args:
            config: Clone configuration
            client: Open HttpClient to share; a private one is opened when None
            on_progress: Called as ``on_progress(phase, stats)`` after every
                item, with phase 'pages' or 'assets'
        """
        self.config = config
        self.client = client
        self.on_progress = on_progress
        self.output_dir = os.path.abspath(config.output.local_directory)
        self.max_file_size = config.assets.max_file_size
        self.extractor = AssetExtractor(config.assets)
        self.logger = get_logger("downloader")

        self.stats = DownloadStats()
        self.errors: List[Dict[str, str]] = []
        self.asset_mapping: AssetMapping = {}

        self._semaphore = asyncio.Semaphore(config.network.concurrency)
        self._seen_assets: Dict[str, AssetType] = {}

    async def download_from_manifest(self, manifest_path: Optional[str] = None) -> DownloadResult:
        """
        Load a manifest from disk and download it.

        Args:
            manifest_path: manifest.json path; defaults to the output directory

        Raises:
            ManifestError: If the manifest is missing or invalid
        """
        path = manifest_path or os.path.join(self.output_dir, MANIFEST_FILENAME)
        return await self.download(Manifest.load(path))

    async def download(self, manifest: Manifest) -> DownloadResult:
        """
        Download all pages, then all assets, of a manifest.

        Args:
            manifest: Discovery manifest

        Returns:
            DownloadResult with page and asset records
        """
        if self.client is not None:
            return await self._download(self.client, manifest)

        async with HttpClient(self.config.network, self.config.crawling.follow_redirects) as client:
            return await self._download(client, manifest)

    async def _download(self, client: HttpClient, manifest: Manifest) -> DownloadResult:
        print_section("Downloading Pages")
        pages = await self._download_pages(client, manifest.url_details)
        print_success(
            f"Pages: {self.stats.pages_downloaded} downloaded, "
            f"{self.stats.pages_failed} failed, {self.stats.pages_skipped} skipped"
        )

        print_section("Downloading Assets")
        refs = self._collect_assets(pages)
        assets = await self._download_assets(client, refs)
        assets.extend(await self._download_css_dependencies(client, assets))
        print_success(
            f"Assets: {self.stats.assets_downloaded} downloaded, "
            f"{self.stats.assets_failed} failed, {self.stats.assets_skipped} skipped "
            f"({format_bytes(self.stats.total_bytes)} total)"
        )

        return DownloadResult(
            pages=pages,
            assets=assets,
            asset_mapping=dict(self.asset_mapping),
            stats=self.stats,
            errors=list(self.errors),
        )

    def _report(self, phase: str) -> None:
        if self.on_progress:
            self.on_progress(phase, self.stats)

    def _record_error(self, url: str, error: str, kind: str) -> None:
        self.errors.append({"url": url, "error": error, "type": kind})

    # Phase A: pages

    async def _download_pages(
        self,
        client: HttpClient,
        records: List[DiscoveryRecord]
    ) -> List[PageRecord]:
        self.stats.pages_total = len(records)
        self._report("pages")
        print_info(f"Downloading {len(records)} pages...")

        results = await asyncio.gather(
            *(self._download_page(client, record) for record in records),
            return_exceptions=True
        )

        pages = []
        for record, result in zip(records, results):
            if isinstance(result, Exception):
                self.logger.error(f"Unexpected error downloading {record.canonical_url}: {result}")
                self.stats.pages_failed += 1
                self._record_error(record.canonical_url, str(result), "page_download_error")
                self._report("pages")
            elif result is not None:
                pages.append(result)
        return pages

    async def _download_page(self, client: HttpClient, record: DiscoveryRecord) -> Optional[PageRecord]:
        url = record.canonical_url
        local_path = get_page_path(url, self.output_dir)

        async with self._semaphore:
            try:
                result = await client.fetch(url)
            except FetchError as e:
                self.logger.error(f"Failed to download page {url}: {e.reason}")
                self.stats.pages_failed += 1
                self._record_error(url, e.reason, "page_download_error")
                self._report("pages")
                return None

        if not result.is_html:
            self.logger.warning(f"Skipping {url}: not HTML ({result.content_type or 'unknown'})")
            self.stats.pages_skipped += 1
            self._report("pages")
            return None

        try:
            ensure_parent_dir(local_path)
            with open(local_path, "wb") as f:
                f.write(result.body)
        except OSError as e:
            self.logger.error(f"Error saving page {url}: {e}")
            self.stats.pages_failed += 1
            self._record_error(url, str(e), "write_error")
            self._report("pages")
            return None

        self.stats.pages_downloaded += 1
        self.stats.total_bytes += len(result.body)
        self.logger.debug(f"Saved page: {url} -> {local_path}")
        self._report("pages")

        return PageRecord(
            url=result.final_url,
            canonical_url=url,
            local_path=local_path,
            depth=record.depth,
        )

    # Phase B: assets

    def _collect_assets(self, pages: List[PageRecord]) -> Dict[str, AssetType]:
        """Re-read saved pages and build the global, deduplicated asset set."""
        refs: Dict[str, AssetType] = {}

        for page in pages:
            try:
                with open(page.local_path, "rb") as f:
                    html = f.read()
            except OSError as e:
                self.logger.error(f"Cannot re-read {page.local_path}: {e}")
                continue

            page.asset_refs = self.extractor.extract(html, page.url)
            for ref in page.asset_refs:
                refs.setdefault(ref.url, ref.type)

        self._seen_assets.update(refs)
        return refs

    async def _download_assets(
        self,
        client: HttpClient,
        refs: Dict[str, AssetType]
    ) -> List[AssetRecord]:
        if not refs:
            self.logger.info("No assets to download")
            return []

        self.stats.assets_total += len(refs)
        self._report("assets")
        print_info(f"Downloading {len(refs)} assets...")

        items = list(refs.items())
        results = await asyncio.gather(
            *(self._download_asset(client, url, asset_type) for url, asset_type in items),
            return_exceptions=True
        )

        assets = []
        for (url, _), result in zip(items, results):
            if isinstance(result, Exception):
                self.logger.error(f"Unexpected error downloading {url}: {result}")
                self.stats.assets_failed += 1
                self._record_error(url, str(result), "asset_download_error")
                self._report("assets")
            elif result is not None:
                assets.append(result)
        return assets

    async def _download_asset(
        self,
        client: HttpClient,
        url: str,
        asset_type: AssetType
    ) -> Optional[AssetRecord]:
        local_path = get_asset_path(url, asset_type, self.output_dir)

        async with self._semaphore:
            try:
                if self.max_file_size:
                    size = await client.head_size(url)
                    if size is not None and size > self.max_file_size:
                        raise AssetTooLarge(url, size, self.max_file_size)

                result = await client.fetch(url, max_bytes=self.max_file_size or None)

            except AssetTooLarge as e:
                self.logger.warning(f"Skipping large asset ({format_bytes(e.size)}): {url}")
                self.stats.assets_skipped += 1
                self._report("assets")
                return None
            except FetchError as e:
                self.logger.debug(f"Failed to download asset {url}: {e.reason}")
                self.stats.assets_failed += 1
                self._record_error(url, e.reason, "asset_download_error")
                self._report("assets")
                return None

        try:
            ensure_parent_dir(local_path)
            with open(local_path, "wb") as f:
                f.write(result.body)
        except OSError as e:
            self.logger.error(f"Error saving asset {url}: {e}")
            self.stats.assets_failed += 1
            self._record_error(url, str(e), "write_error")
            self._report("assets")
            return None

        self.asset_mapping[url] = local_path
        self.stats.assets_downloaded += 1
        self.stats.total_bytes += len(result.body)
        self.logger.debug(f"Downloaded: {url} -> {local_path}")
        self._report("assets")

        return AssetRecord(url=url, local_path=local_path, type=asset_type, size_bytes=len(result.body))

    async def _download_css_dependencies(
        self,
        client: HttpClient,
        assets: List[AssetRecord]
    ) -> List[AssetRecord]:
        """Fetch fonts, images and imports referenced from downloaded stylesheets."""
        downloaded: List[AssetRecord] = []
        stylesheets = [asset for asset in assets if asset.type == AssetType.CSS]

        for level in range(CSS_DEPENDENCY_DEPTH):
            refs = self._scan_stylesheets(stylesheets)
            if not refs:
                break

            self.logger.info(f"Found {len(refs)} stylesheet dependencies (level {level + 1})")
            batch = await self._download_assets(client, refs)
            downloaded.extend(batch)
            stylesheets = [asset for asset in batch if asset.type == AssetType.CSS]

        return downloaded

    def _scan_stylesheets(self, stylesheets: List[AssetRecord]) -> Dict[str, AssetType]:
        refs: Dict[str, AssetType] = {}

        for sheet in stylesheets:
            try:
                with open(sheet.local_path, "r", encoding="utf-8", errors="replace") as f:
                    css = f.read()
            except OSError as e:
                self.logger.debug(f"Cannot read stylesheet {sheet.local_path}: {e}")
                continue

            for url in extract_css_refs(css, sheet.url):
                if url in self._seen_assets or url in refs:
                    continue
                classification = classify_asset(url, self.config.assets.formats)
                asset_type = classification.type if classification.is_asset else AssetType.OTHER
                if self.config.assets.allows(asset_type):
                    refs[url] = asset_type

        self._seen_assets.update(refs)
        return refs
