"""
Main site cloner module.

Orchestrates the pipeline: enumerate, save the manifest, download pages and
assets, rewrite links, and mark dynamic content.
"""

import json
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .downloader import DownloadResult, ProgressCallback, SiteDownloader
from .enumerator import Manifest, UrlEnumerator
from .http import HttpClient
from .rewrite import LinkRewriter, RewriteStats
from ..config import CloneConfig
from ..utils.constants import ERRORS_FILENAME, MANIFEST_FILENAME
from ..utils.log import get_logger, print_info, print_success
from ..utils.paths import ensure_dir


@dataclass
class CloneResult:
    """Results of one pipeline run."""

    manifest: Optional[Manifest] = None
    manifest_path: Optional[str] = None
    download: Optional[DownloadResult] = None
    rewrite: Optional[RewriteStats] = None
    dynamic: Optional[Any] = None  # analyzer.dynamic.DynamicReport
    errors: List[Dict[str, str]] = field(default_factory=list)
    duration_seconds: float = 0.0


class SiteCloner:
    """
    Main site cloner class.

    Coordinates the enumerator, downloader, rewriter and dynamic-content
    detector over one shared HTTP client.
    """

    def __init__(self, config: CloneConfig, on_progress: Optional[ProgressCallback] = None):
        """
        Initialize the site cloner.

        Args:
            config: Clone configuration
            on_progress: Download progress callback, see SiteDownloader
        """
        self.config = config
        self.on_progress = on_progress
        self.output_dir = os.path.abspath(config.output.local_directory)
        self.manifest_path = os.path.join(self.output_dir, MANIFEST_FILENAME)
        self.logger = get_logger("cloner")

        self._errors: List[Dict[str, str]] = []

    def _client(self) -> HttpClient:
        return HttpClient(self.config.network, self.config.crawling.follow_redirects)

    async def enumerate(self, client: Optional[HttpClient] = None) -> Manifest:
        """
        Discover pages and save manifest.json.

        Args:
            client: Open HttpClient to reuse

        Returns:
            The saved Manifest
        """
        enumerator = UrlEnumerator(self.config, client=client)
        manifest = await enumerator.enumerate()
        self._errors.extend(enumerator.errors)

        path = manifest.save(self.output_dir)
        print_success(f"Manifest saved to {path}")
        return manifest

    async def download(
        self,
        manifest_path: Optional[str] = None,
        client: Optional[HttpClient] = None
    ) -> DownloadResult:
        """
        Download the pages of a saved manifest and their assets.

        Args:
            manifest_path: manifest.json path; defaults to the output directory
            client: Open HttpClient to reuse

        Raises:
            ManifestError: If there is no usable manifest on disk
        """
        downloader = SiteDownloader(self.config, client=client, on_progress=self.on_progress)
        result = await downloader.download_from_manifest(manifest_path or self.manifest_path)
        self._errors.extend(result.errors)
        return result

    async def run(self, enumerate: bool = True, download: bool = True) -> CloneResult:
        """
        Run the selected pipeline stages.

        Downloading also rewrites links and, when enabled, marks dynamic
        content.

        Args:
            enumerate: Run URL discovery and save the manifest
            download: Download, rewrite and detect from the saved manifest

        Returns:
            CloneResult with statistics and information
        """
        start_time = time.time()
        result = CloneResult()
        self._errors = []

        print_info(f"Target: {self.config.target.url}")
        print_info(f"Output directory: {self.output_dir}")
        ensure_dir(self.output_dir)

        async with self._client() as client:
            if enumerate:
                result.manifest = await self.enumerate(client)
                result.manifest_path = self.manifest_path

            if download:
                result.download = await self.download(client=client)

        if result.download is not None:
            pages, assets = result.download.pages, result.download.assets

            rewriter = LinkRewriter(self.config)
            result.rewrite = rewriter.rewrite_all(pages, assets, result.download.asset_mapping)

            if self.config.dynamic.enabled:
                from ..analyzer.dynamic import DynamicContentDetector
                detector = DynamicContentDetector(self.config)
                result.dynamic = detector.detect_all(pages, assets)
                path = result.dynamic.save(self.output_dir)
                self.logger.info(f"Dynamic content manifest saved to {path}")

        result.errors = list(self._errors)
        self._write_error_log(result.errors)
        result.duration_seconds = time.time() - start_time
        return result

    def _write_error_log(self, errors: List[Dict[str, str]]) -> None:
        """Generate errors.json if there are errors."""
        if not errors:
            return

        errors_path = os.path.join(self.output_dir, ERRORS_FILENAME)
        with open(errors_path, "w", encoding="utf-8") as f:
            json.dump(errors, f, indent=2, ensure_ascii=False)

        self.logger.info(f"Generated error log: {errors_path}")
