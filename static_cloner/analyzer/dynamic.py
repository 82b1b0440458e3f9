"""
Dynamic content detector.

Finds the parts of a cloned site that cannot work as static files: forms
that post to a backend, scripts that call APIs or open WebSockets, and
(optionally) empty containers filled in by JavaScript. Saved pages are
marked in place; nothing is repaired.
"""

import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from ..config import CloneConfig
from ..crawler.downloader import AssetRecord, PageRecord
from ..crawler.extractor import parse_html
from ..utils.constants import DYNAMIC_MANIFEST_FILENAME
from ..utils.log import get_logger, print_info, print_section, print_success
from ..utils.paths import ensure_dir
from ..utils.urls import AssetType


# Script patterns; the group layout of each is relied on in detect_api_calls()
FETCH_PATTERN = re.compile(r"""fetch\s*\(\s*['"`]([^'"`]+)['"`]""")
XHR_PATTERN = re.compile(r"""XMLHttpRequest|\.open\s*\(\s*['"`](\w+)['"`]\s*,\s*['"`]([^'"`]+)['"`]""")
AXIOS_PATTERN = re.compile(r"""axios\.(get|post|put|delete|patch)\s*\(\s*['"`]([^'"`]+)['"`]""")
JQUERY_AJAX_PATTERN = re.compile(r"""\$\.ajax\s*\(|\.ajax\s*\(""")
WEBSOCKET_PATTERN = re.compile(r"""new\s+WebSocket\s*\(\s*['"`]([^'"`]+)['"`]""")
DYNAMIC_IMPORT_PATTERN = re.compile(r"""import\s*\(\s*['"`]([^'"`]+)['"`]\s*\)""")
API_ENDPOINT_PATTERN = re.compile(r"""['"`](/api/[^'"`]+|/graphql|/rest/[^'"`]+)['"`]""")

# Form actions that imply server-side processing
BACKEND_ACTION_MARKERS = ("/api/", "/submit", "/login", "/register")

# Class-name fragments of typical SPA mount points
APP_ROOT_MARKERS = ("app", "root")


@dataclass
class DynamicElement:
    """One detected piece of dynamic behaviour."""

    type: str
    found_in: str
    selector: Optional[str] = None
    method: Optional[str] = None
    url: Optional[str] = None
    module: Optional[str] = None
    action: Optional[str] = None
    has_file_upload: Optional[bool] = None
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type,
            "foundIn": self.found_in,
            "selector": self.selector,
            "method": self.method,
            "url": self.url,
            "module": self.module,
            "action": self.action,
            "hasFileUpload": self.has_file_upload,
            "context": self.context,
        }
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class DynamicStats:
    pages_analyzed: int = 0
    pages_with_dynamic_content: int = 0
    js_files_analyzed: int = 0
    api_endpoints_found: int = 0
    forms_found: int = 0
    websockets_found: int = 0
    dynamic_imports_found: int = 0


@dataclass
class DynamicReport:
    """Result of a detection pass, saved as dynamic-manifest.json."""

    target_url: str
    elements: List[DynamicElement] = field(default_factory=list)
    stats: DynamicStats = field(default_factory=DynamicStats)

    @property
    def recommendations(self) -> List[str]:
        """Hosting advice derived from what was found."""
        stats = self.stats
        advice = []
        if stats.api_endpoints_found:
            advice.append(
                f"Found {stats.api_endpoints_found} API endpoint(s). "
                "These require backend implementation or mock data."
            )
        if stats.forms_found:
            advice.append(
                f"Found {stats.forms_found} form(s) requiring backend processing. "
                "Consider serverless functions or an API gateway."
            )
        if stats.websockets_found:
            advice.append(
                f"Found {stats.websockets_found} WebSocket connection(s). "
                "These require real-time backend services."
            )
        if stats.dynamic_imports_found:
            advice.append(
                f"Found {stats.dynamic_imports_found} dynamic import(s). "
                "Ensure all modules are included in the deployment."
            )
        if not stats.pages_with_dynamic_content:
            advice.append(
                "No significant dynamic content detected. "
                "Site appears to be mostly static and suitable for static hosting."
            )
        return advice

    def to_dict(self) -> Dict[str, Any]:
        stats = self.stats
        return {
            "generatedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "targetUrl": self.target_url,
            "summary": {
                "pagesAnalyzed": stats.pages_analyzed,
                "pagesWithDynamicContent": stats.pages_with_dynamic_content,
                "jsFilesAnalyzed": stats.js_files_analyzed,
                "totalAPIEndpoints": stats.api_endpoints_found,
                "totalForms": stats.forms_found,
                "totalWebSockets": stats.websockets_found,
                "totalDynamicImports": stats.dynamic_imports_found,
            },
            "dynamicElements": [element.to_dict() for element in self.elements],
            "recommendations": self.recommendations,
        }

    def save(self, output_dir: str) -> str:
        """Write dynamic-manifest.json and return its path."""
        ensure_dir(output_dir)
        path = os.path.join(output_dir, DYNAMIC_MANIFEST_FILENAME)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        return path


def get_selector(element: Tag) -> str:
    """Short CSS selector for a report entry: #id, tag.class or tag."""
    if element.get("id"):
        return f"#{element['id']}"
    classes = element.get("class") or []
    if classes:
        return f"{element.name}.{classes[0]}"
    return element.name


def _is_javascript(script: Tag) -> bool:
    script_type = (script.get("type") or "").lower()
    return not script_type or "javascript" in script_type or script_type == "module"


class DynamicContentDetector:
    """
    Detects and marks dynamic content in saved pages.

    Marked elements get the configured marker attribute (default
    ``data-dynamic="true"``) and an HTML comment right before them.
    """

    def __init__(self, config: CloneConfig):
        """
        Initialize the detector.

        Args:
            config: Clone configuration; uses the ``dynamic`` section
        """
        self.config = config
        self.options = config.dynamic
        self.report = DynamicReport(target_url=config.target.url)
        self.logger = get_logger("dynamic")

    def detect_all(self, pages: List[PageRecord], assets: List[AssetRecord]) -> DynamicReport:
        """
        Analyze every saved page and downloaded script.

        Args:
            pages: Pages saved by the downloader
            assets: Assets saved by the downloader

        Returns:
            DynamicReport
        """
        print_section("Dynamic Content Detection")

        for page in pages:
            try:
                self.analyze_page(page)
            except OSError as e:
                self.logger.error(f"Failed to analyze {page.url}: {e}")

        for asset in assets:
            if asset.type != AssetType.JS:
                continue
            try:
                with open(asset.local_path, "r", encoding="utf-8", errors="replace") as f:
                    script = f.read()
            except OSError as e:
                self.logger.debug(f"Failed to analyze JS {asset.url}: {e}")
                continue
            self.report.stats.js_files_analyzed += 1
            self.detect_api_calls(script, asset.url)

        stats = self.report.stats
        print_success(f"Analyzed {stats.pages_analyzed} pages and {stats.js_files_analyzed} scripts")
        print_info(f"Pages with dynamic content: {stats.pages_with_dynamic_content}")
        print_info(
            f"API endpoints: {stats.api_endpoints_found}, forms: {stats.forms_found}, "
            f"WebSockets: {stats.websockets_found}, dynamic imports: {stats.dynamic_imports_found}"
        )
        return self.report

    def analyze_page(self, page: PageRecord) -> bool:
        """
        Detect and mark dynamic content in one saved page.

        The file is rewritten only when something was marked.

        Args:
            page: Saved page

        Returns:
            True if the page has dynamic content
        """
        with open(page.local_path, "rb") as f:
            soup = parse_html(f.read())

        has_dynamic = False

        for form, element in self.detect_forms(soup, page.url):
            has_dynamic = True
            if self.options.detect_form_submissions:
                self._mark(form, [
                    f"DYNAMIC: Form submission to {element.action}",
                    "This form requires backend API processing",
                ])

        for script in soup.find_all("script", src=False):
            if not script.string or not _is_javascript(script):
                continue
            calls = self.detect_api_calls(script.string, page.url)
            if calls:
                has_dynamic = True
                if self.options.detect_api_endpoints:
                    self._mark(script, [f"DYNAMIC: This script makes {len(calls)} API call(s)"])

        if self.options.detect_empty_divs and self._mark_empty_containers(soup, page.url):
            has_dynamic = True

        self.report.stats.pages_analyzed += 1
        if has_dynamic:
            self.report.stats.pages_with_dynamic_content += 1
            with open(page.local_path, "wb") as f:
                f.write(soup.encode("utf-8"))

        return has_dynamic

    def detect_forms(self, soup: BeautifulSoup, page_url: str) -> List[Tuple[Tag, DynamicElement]]:
        """Find forms that need a backend: POST, file upload or an API-like action."""
        found = []
        for form in soup.find_all("form"):
            action = form.get("action") or ""
            method = (form.get("method") or "get").lower()
            has_file_upload = form.find("input", attrs={"type": "file"}) is not None

            needs_backend = (
                method == "post"
                or has_file_upload
                or any(marker in action for marker in BACKEND_ACTION_MARKERS)
            )
            if not needs_backend:
                continue

            element = DynamicElement(
                type="form_submission",
                found_in=page_url,
                selector=get_selector(form),
                method=method,
                action=action or "current page",
                has_file_upload=has_file_upload,
            )
            self.report.elements.append(element)
            self.report.stats.forms_found += 1
            found.append((form, element))
        return found

    def detect_api_calls(self, script: str, source_url: str) -> List[DynamicElement]:
        """
        Find API calls, WebSockets and dynamic imports in JavaScript.

        Args:
            script: JavaScript source
            source_url: Page or script URL, for the report

        Returns:
            Detected elements (also added to the report)
        """
        calls: List[DynamicElement] = []

        def add(element_type: str, match, **kwargs) -> None:
            calls.append(DynamicElement(
                type=element_type, found_in=source_url, context=match.group(0), **kwargs
            ))

        for match in FETCH_PATTERN.finditer(script):
            add("api_endpoint", match, method="fetch", url=match.group(1))
        for match in XHR_PATTERN.finditer(script):
            add("api_endpoint", match, method=match.group(1) or "XHR", url=match.group(2) or "unknown")
        for match in AXIOS_PATTERN.finditer(script):
            add("api_endpoint", match, method=match.group(1), url=match.group(2))
        for match in JQUERY_AJAX_PATTERN.finditer(script):
            add("api_endpoint", match, method="ajax", url="unknown")
        for match in API_ENDPOINT_PATTERN.finditer(script):
            add("api_endpoint", match, method="unknown", url=match.group(1))

        api_calls = len(calls)

        for match in WEBSOCKET_PATTERN.finditer(script):
            add("websocket", match, url=match.group(1))
            self.report.stats.websockets_found += 1
        for match in DYNAMIC_IMPORT_PATTERN.finditer(script):
            add("dynamic_import", match, module=match.group(1))
            self.report.stats.dynamic_imports_found += 1

        self.report.stats.api_endpoints_found += api_calls
        self.report.elements.extend(calls)
        return calls

    def _mark_empty_containers(self, soup: BeautifulSoup, page_url: str) -> bool:
        marked = False
        for div in soup.find_all("div"):
            if div.contents:
                continue
            classes = " ".join(div.get("class") or [])
            if not div.get("id") and not any(marker in classes for marker in APP_ROOT_MARKERS):
                continue

            self._mark(div, ["DYNAMIC: This element may be populated dynamically"])
            self.report.elements.append(DynamicElement(
                type="empty_div",
                found_in=page_url,
                selector=get_selector(div),
                context="Empty container likely filled by JavaScript",
            ))
            marked = True
        return marked

    def _mark(self, element: Tag, comments: List[str]) -> None:
        element[self.options.marker_attribute] = self.options.marker_value
        for text in comments:
            element.insert_before(Comment(f" {text} "))
            element.insert_before(NavigableString("\n"))
