"""Tests for page link and asset reference extraction."""

from static_cloner.config import AssetConfig
from static_cloner.crawler.extractor import (
    AssetExtractor,
    AssetRef,
    extract_css_refs,
    extract_page_links,
    parse_html,
    parse_srcset,
)
from static_cloner.utils.urls import AssetType


PAGE_URL = "https://ex.com/docs/page"

PAGE = """<html><head>
<link rel="stylesheet" href="../css/main.css">
<link rel="shortcut icon" href="/favicon.ico">
<link rel="canonical" href="https://ex.com/docs/page">
<link rel="alternate" href="/docs/page-fr">
<script src="app.js?v=2"></script>
<script>var inline = true;</script>
<style>
  @import "theme.css";
  .hero { background: url('/img/hero.jpg'); }
</style>
</head><body>
<a href="intro">Intro</a>
<a href="intro">Intro again</a>
<a href="mailto:x@ex.com">Mail</a>
<a href="javascript:void(0)">Nothing</a>
<a href="#section">Anchor</a>
<iframe src="/embed/widget"></iframe>
<iframe src="/embed/doc.pdf"></iframe>
<img src="/img/a.png" srcset="/img/a.png 1x, /img/a@2x.png 2x">
<img src="data:image/gif;base64,R0lGOD=">
<picture><source srcset="/img/b.webp 480w, /img/b-large.webp 1024w"></picture>
<video src="/media/clip.mp4" poster="/img/poster.jpg"></video>
<div style="background-image: url(/img/bg)"></div>
</body></html>
"""


class TestPageLinks:
    """Tests for extract_page_links."""

    def test_links_in_document_order(self):
        links = extract_page_links(parse_html(PAGE), PAGE_URL)
        assert links == [
            "https://ex.com/docs/intro",
            "https://ex.com/docs/page#section",
            "https://ex.com/docs/page",
            "https://ex.com/docs/page-fr",
            "https://ex.com/embed/widget",
        ]

    def test_special_protocols_skipped(self):
        links = extract_page_links(parse_html(PAGE), PAGE_URL)
        assert not any(link.startswith(("mailto:", "javascript:")) for link in links)


class TestSrcset:
    """Tests for parse_srcset."""

    def test_descriptors_kept(self):
        assert parse_srcset("a.png 1x, b.png 2x") == [("a.png", " 1x"), ("b.png", " 2x")]

    def test_without_descriptor(self):
        assert parse_srcset(" a.png ,, ") == [("a.png", "")]

    def test_data_uri_kept_whole(self):
        assert parse_srcset("data:image/png;base64,AAAA 1x, /b.png 2x") == [
            ("data:image/png;base64,AAAA", " 1x"),
            ("/b.png", " 2x"),
        ]

    def test_trailing_comma_ends_candidate(self):
        assert parse_srcset("a.png, b.png 2x") == [("a.png", ""), ("b.png", " 2x")]


class TestCssRefs:
    """Tests for extract_css_refs."""

    def test_url_and_import(self):
        css = """@import "print.css";
        @import url('fonts.css');
        body { background: url(img/bg.png); }
        .a { background: url("img/bg.png"); }
        .b { background: url(data:image/png;base64,AAAA); }
        """
        refs = extract_css_refs(css, "https://ex.com/css/main.css")
        assert refs == [
            "https://ex.com/css/fonts.css",
            "https://ex.com/css/img/bg.png",
            "https://ex.com/css/print.css",
        ]

    def test_url_function_is_case_insensitive(self):
        refs = extract_css_refs('body { background: URL("/bg.png"); }', "https://ex.com/css/main.css")
        assert refs == ["https://ex.com/bg.png"]


class TestAssetExtractor:
    """Tests for AssetExtractor.extract()."""

    def test_all_asset_kinds(self):
        refs = AssetExtractor(AssetConfig()).extract(PAGE, PAGE_URL)
        found = {ref.url: ref.type for ref in refs}

        assert found["https://ex.com/css/main.css"] == AssetType.CSS
        assert found["https://ex.com/favicon.ico"] == AssetType.IMAGE
        assert found["https://ex.com/docs/app.js?v=2"] == AssetType.JS
        assert found["https://ex.com/docs/theme.css"] == AssetType.CSS
        assert found["https://ex.com/img/hero.jpg"] == AssetType.IMAGE
        assert found["https://ex.com/img/a@2x.png"] == AssetType.IMAGE
        assert found["https://ex.com/img/b-large.webp"] == AssetType.IMAGE
        assert found["https://ex.com/media/clip.mp4"] == AssetType.VIDEO
        assert found["https://ex.com/img/poster.jpg"] == AssetType.IMAGE
        # No extension: the style attribute decides
        assert found["https://ex.com/img/bg"] == AssetType.OTHER

    def test_deduplicated_and_data_urls_ignored(self):
        refs = AssetExtractor(AssetConfig()).extract(PAGE, PAGE_URL)
        urls = [ref.url for ref in refs]
        assert len(urls) == len(set(urls))
        assert urls.count("https://ex.com/img/a.png") == 1
        assert not any(url.startswith("data:") for url in urls)

    def test_disabled_types_dropped(self):
        config = AssetConfig(download_images=False, download_videos=False)
        refs = AssetExtractor(config).extract(PAGE, PAGE_URL)
        types = {ref.type for ref in refs}
        assert AssetType.IMAGE not in types
        assert AssetType.VIDEO not in types
        assert AssetRef("https://ex.com/css/main.css", AssetType.CSS) in refs

    def test_accepts_bytes(self):
        refs = AssetExtractor(AssetConfig()).extract(PAGE.encode("utf-8"), PAGE_URL)
        assert refs

    def test_data_uri_in_srcset_is_not_split(self):
        html = '<img srcset="data:image/png;base64,AAAA 1x, /img/b.png 2x">'
        refs = AssetExtractor(AssetConfig()).extract(html, PAGE_URL)
        assert [ref.url for ref in refs] == ["https://ex.com/img/b.png"]
