"""Tests for breadth-first URL enumeration and the manifest."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from static_cloner.crawler.enumerator import DiscoveryRecord, Manifest, SkipReason, UrlEnumerator
from static_cloner.crawler.http import FetchResult
from static_cloner.errors import FetchHTTPError, ManifestError


def canonical_urls(manifest, site):
    return {record.canonical_url.replace(site, "") for record in manifest.url_details}


def fake_client(pages):
    """AsyncMock client serving a dict of url -> html (or an exception)."""

    async def fetch(url):
        page = pages.get(url)
        if page is None:
            raise FetchHTTPError(url, 404)
        if isinstance(page, Exception):
            raise page
        content_type, body = page
        return FetchResult(url, url, 200, content_type, body.encode("utf-8"))

    client = AsyncMock()
    client.fetch.side_effect = fetch
    return client


class TestEnumerateLocalSite:
    """End-to-end enumeration against the local test site."""

    @pytest.mark.asyncio
    async def test_discovers_site(self, local_site, make_config):
        enumerator = UrlEnumerator(make_config(f"{local_site}/"))
        manifest = await enumerator.enumerate()

        assert canonical_urls(manifest, local_site) == {
            "/", "/about", "/blog", "/docs/guide", "/private/secret", "/report.pdf",
            "/deep/1", "/blog/post-1", "/data.json", "/deep/2", "/deep/3",
        }
        assert manifest.by_depth[0] == [f"{local_site}/"]
        assert manifest.by_depth[1] == [
            f"{local_site}/about",
            f"{local_site}/blog/",
            f"{local_site}/docs/guide#intro",
            f"{local_site}/private/secret",
            f"{local_site}/report.pdf",
        ]
        # Recorded one level past maxDepth, never fetched
        assert manifest.by_depth[4] == [f"{local_site}/deep/3"]
        assert manifest.actual_max_depth == 4

    @pytest.mark.asyncio
    async def test_skip_tallies(self, local_site, make_config):
        enumerator = UrlEnumerator(make_config(f"{local_site}/"))
        await enumerator.enumerate()

        assert enumerator.stats.processed == 7
        assert enumerator.stats.skipped[SkipReason.ROBOTS] == 1
        assert enumerator.stats.skipped[SkipReason.NON_HTML] == 2
        assert enumerator.stats.errors == 0

    @pytest.mark.asyncio
    async def test_pages_fetched_once(self, local_site, make_config, hits):
        before = hits.copy()
        await UrlEnumerator(make_config(f"{local_site}/")).enumerate()

        assert hits["/about"] - before["/about"] == 1
        assert hits["/"] - before["/"] == 1
        assert hits["/private/secret"] - before["/private/secret"] == 0
        assert hits["/deep/3"] - before["/deep/3"] == 0
        # Assets are left for the downloader
        assert hits["/logo.png"] - before["/logo.png"] == 0

    @pytest.mark.asyncio
    async def test_child_depth_is_parent_depth_plus_one(self, local_site, make_config):
        manifest = await UrlEnumerator(make_config(f"{local_site}/")).enumerate()
        records = {record.canonical_url: record for record in manifest.url_details}

        for record in manifest.url_details:
            if record.parent is None:
                assert record.depth == 0
            else:
                assert record.depth == records[record.parent].depth + 1

    @pytest.mark.asyncio
    async def test_max_pages_caps_discovery(self, local_site, make_config):
        config = make_config(f"{local_site}/", crawling={"maxPages": 3})
        manifest = await UrlEnumerator(config).enumerate()

        assert manifest.total_urls == 3
        assert canonical_urls(manifest, local_site) == {"/", "/about", "/blog"}

    @pytest.mark.asyncio
    async def test_max_depth(self, local_site, make_config):
        config = make_config(f"{local_site}/", crawling={"maxDepth": 1})
        manifest = await UrlEnumerator(config).enumerate()

        urls = canonical_urls(manifest, local_site)
        assert "/deep/1" in urls
        assert "/deep/2" not in urls
        assert manifest.actual_max_depth == 2

    @pytest.mark.asyncio
    async def test_ignore_patterns(self, local_site, make_config):
        config = make_config(f"{local_site}/", crawling={"ignorePatterns": ["/deep/**"]})
        enumerator = UrlEnumerator(config)
        manifest = await enumerator.enumerate()

        assert enumerator.stats.skipped[SkipReason.PATTERN] == 1
        assert "/deep/2" not in canonical_urls(manifest, local_site)

    @pytest.mark.asyncio
    async def test_allowed_patterns(self, local_site, make_config):
        config = make_config(f"{local_site}/", crawling={"allowedPatterns": ["/", "/blog*", "/blog/**"]})
        enumerator = UrlEnumerator(config)
        manifest = await enumerator.enumerate()

        urls = canonical_urls(manifest, local_site)
        assert "/blog/post-1" in urls
        assert "/deep/1" not in urls
        assert enumerator.stats.skipped[SkipReason.NOT_ALLOWED] > 0

    @pytest.mark.asyncio
    async def test_robots_can_be_ignored(self, local_site, make_config):
        config = make_config(f"{local_site}/", crawling={"respectRobotsTxt": False})
        enumerator = UrlEnumerator(config)
        await enumerator.enumerate()

        assert enumerator.stats.skipped[SkipReason.ROBOTS] == 0
        assert enumerator.stats.processed == 8

    @pytest.mark.asyncio
    async def test_rate_limiter_token_per_fetch(self, local_site, make_config):
        limiter = MagicMock()
        limiter.acquire = AsyncMock()
        await UrlEnumerator(make_config(f"{local_site}/"), rate_limiter=limiter).enumerate()

        # 7 HTML pages plus 2 non-HTML resources
        assert limiter.acquire.await_count == 9


class TestEnumerateFakeClient:
    """Enumeration against a scripted client."""

    @pytest.mark.asyncio
    async def test_fetch_errors_do_not_abort(self, make_config):
        client = fake_client({
            "https://ex.com/robots.txt": ("text/plain", "User-agent: *\nCrawl-delay: 4\n"),
            "https://ex.com/": ("text/html", '<a href="/broken">x</a><a href="/ok">y</a>'),
            "https://ex.com/broken": FetchHTTPError("https://ex.com/broken", 500),
            "https://ex.com/ok": ("text/html", "<p>fine</p>"),
        })
        limiter = MagicMock()
        limiter.acquire = AsyncMock()
        enumerator = UrlEnumerator(make_config("https://ex.com/"), client=client, rate_limiter=limiter)
        manifest = await enumerator.enumerate()

        assert manifest.total_urls == 3
        assert enumerator.stats.processed == 2
        assert enumerator.stats.errors == 1
        assert enumerator.errors == [
            {"url": "https://ex.com/broken", "error": "HTTP 500", "type": "enumerate_error"}
        ]
        limiter.limit_rate.assert_called_once_with(0.25)

    @pytest.mark.asyncio
    async def test_single_link(self, make_config):
        pages = {
            "https://ex.com/": ("text/html", '<a href="https://ex.com/a">a</a><a href="https://other.com/x">x</a>'),
            "https://ex.com/a": ("text/html", "<p>a</p>"),
        }
        config = make_config("https://ex.com/", crawling={"maxDepth": 1})
        manifest = await UrlEnumerator(config, client=fake_client(pages)).enumerate()

        assert manifest.by_depth == {0: ["https://ex.com/"], 1: ["https://ex.com/a"]}
        assert manifest.actual_max_depth == 1

    @pytest.mark.asyncio
    async def test_subdomains(self, make_config):
        pages = {
            "https://ex.com/": ("text/html", '<a href="https://blog.ex.com/">b</a>'),
            "https://blog.ex.com/": ("text/html", "<p>blog</p>"),
        }
        config = make_config(
            "https://ex.com/",
            crawling={"includeSubdomains": True, "respectRobotsTxt": False},
        )
        manifest = await UrlEnumerator(config, client=fake_client(pages)).enumerate()
        assert {r.canonical_url for r in manifest.url_details} == {
            "https://ex.com/", "https://blog.ex.com/",
        }

    @pytest.mark.asyncio
    async def test_start_url_redirected_to_another_host(self, make_config):
        home = '<a href="/a">a</a><a href="/b">b</a><a href="https://ex.com/c">c</a>'

        async def fetch(url):
            # Every page answers from the www host, as after an apex redirect
            final_url = url.replace("https://ex.com/", "https://www.ex.com/")
            body = home if final_url == "https://www.ex.com/" else "<p>leaf</p>"
            return FetchResult(url, final_url, 200, "text/html", body.encode("utf-8"))

        client = AsyncMock()
        client.fetch.side_effect = fetch
        config = make_config("https://ex.com/", crawling={"respectRobotsTxt": False})
        enumerator = UrlEnumerator(config, client=client)
        manifest = await enumerator.enumerate()

        assert [record.canonical_url for record in manifest.url_details] == [
            "https://ex.com/", "https://www.ex.com/a", "https://www.ex.com/b", "https://ex.com/c",
        ]
        assert enumerator.stats.processed == 4


class TestManifest:
    """Tests for Manifest persistence."""

    def make_manifest(self):
        return Manifest(
            start_url="https://ex.com/",
            max_depth=2,
            url_details=[
                DiscoveryRecord("https://ex.com/", "https://ex.com/", 0),
                DiscoveryRecord("https://ex.com/a/", "https://ex.com/a", 1, "https://ex.com/"),
                DiscoveryRecord("/b?y=1&x=2", "https://ex.com/b?x=2&y=1", 1, "https://ex.com/"),
            ],
        )

    def test_to_dict(self):
        data = self.make_manifest().to_dict()
        assert data["totalUrls"] == 3
        assert data["actualMaxDepth"] == 1
        assert data["byDepth"] == {"0": ["https://ex.com/"], "1": ["https://ex.com/a/", "/b?y=1&x=2"]}
        assert data["urlDetails"][1]["normalizedUrl"] == "https://ex.com/a"

    def test_save_and_load(self, tmp_path):
        manifest = self.make_manifest()
        path = manifest.save(str(tmp_path))
        loaded = Manifest.load(path)
        assert loaded.to_dict() == manifest.to_dict()

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(ManifestError):
            Manifest.load(str(tmp_path / "manifest.json"))

    @pytest.mark.parametrize("content", ["{ broken", "[]", json.dumps({"startUrl": "x"})])
    def test_malformed_manifest(self, tmp_path, content):
        path = tmp_path / "manifest.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ManifestError):
            Manifest.load(str(path))
