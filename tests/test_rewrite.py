"""Tests for rewriting references to local relative paths."""

import os

import pytest

from static_cloner.crawler.downloader import PageRecord, SiteDownloader
from static_cloner.crawler.enumerator import DiscoveryRecord, Manifest
from static_cloner.crawler.rewrite import LinkRewriter


ROOT = os.path.join(os.sep, "out", "ex.com")
GUIDE = os.path.join(ROOT, "docs", "guide.html")
ABOUT = os.path.join(ROOT, "about.html")
LOGO = os.path.join(ROOT, "assets", "images", "logo_1a2b3c4d.png")
FONT = os.path.join(ROOT, "assets", "fonts", "f_5e6f7a8b.woff2")
THEME = os.path.join(ROOT, "assets", "css", "theme_99aa88bb.css")

URL_MAP = {
    "https://ex.com/about": ABOUT,
    "https://ex.com/img/logo.png": LOGO,
    "https://ex.com/fonts/f.woff2": FONT,
    "https://ex.com/css/theme.css": THEME,
}

GUIDE_URL = "https://ex.com/docs/guide"


@pytest.fixture
def rewriter():
    return LinkRewriter()


class TestRewriteUrl:
    """Tests for LinkRewriter.rewrite_url()."""

    def test_relative_path_to_page(self, rewriter):
        assert rewriter.rewrite_url("/about", GUIDE_URL, GUIDE, URL_MAP) == "../about.html"
        assert rewriter.rewrite_url("../about/", GUIDE_URL, GUIDE, URL_MAP) == "../about.html"
        assert rewriter.stats.links_rewritten == 2

    def test_same_directory(self, rewriter):
        index = os.path.join(ROOT, "index.html")
        assert rewriter.rewrite_url("about", "https://ex.com/", index, URL_MAP) == "./about.html"

    def test_relative_path_points_at_target(self, rewriter):
        for ref, target in (("/about", ABOUT), ("/img/logo.png", LOGO), ("/fonts/f.woff2", FONT)):
            relative = rewriter.rewrite_url(ref, GUIDE_URL, GUIDE, URL_MAP)
            joined = os.path.normpath(os.path.join(os.path.dirname(GUIDE), relative))
            assert joined == target

    def test_fragment_kept(self, rewriter):
        assert rewriter.rewrite_url("/about#team", GUIDE_URL, GUIDE, URL_MAP) == "../about.html#team"

    def test_external_preserved(self, rewriter):
        ref = "https://other.example/about"
        assert rewriter.rewrite_url(ref, GUIDE_URL, GUIDE, URL_MAP) == ref
        assert rewriter.stats.external_links_preserved == 1

    def test_special_protocols_preserved(self, rewriter):
        for ref in ("mailto:a@ex.com", "tel:+1555", "javascript:void(0)", "data:image/png;base64,AA"):
            assert rewriter.rewrite_url(ref, GUIDE_URL, GUIDE, URL_MAP) == ref
        assert rewriter.stats.special_protocols_preserved == 4

    @pytest.mark.parametrize("ref", ["", "#intro", "/not-downloaded", "http://[bad"])
    def test_left_unchanged(self, rewriter, ref):
        assert rewriter.rewrite_url(ref, GUIDE_URL, GUIDE, URL_MAP) == ref
        assert rewriter.stats.links_rewritten == 0


class TestRewriteContent:
    """Tests for srcset, CSS and HTML rewriting."""

    def test_srcset_descriptors_kept(self, rewriter):
        srcset = "/img/logo.png 1x, /img/logo@2x.png 2x"
        assert rewriter.rewrite_srcset(srcset, GUIDE_URL, GUIDE, URL_MAP) == (
            "../assets/images/logo_1a2b3c4d.png 1x, /img/logo@2x.png 2x"
        )

    def test_srcset_data_uri_kept(self, rewriter):
        srcset = "data:image/png;base64,AAAA 1x, /img/logo.png 2x"
        assert rewriter.rewrite_srcset(srcset, GUIDE_URL, GUIDE, URL_MAP) == (
            "data:image/png;base64,AAAA 1x, ../assets/images/logo_1a2b3c4d.png 2x"
        )

    def test_srcset_unchanged_when_nothing_rewritten(self, rewriter):
        srcset = "data:image/png;base64,AAAA 1x,/missing.png   2x"
        assert rewriter.rewrite_srcset(srcset, GUIDE_URL, GUIDE, URL_MAP) == srcset

    def test_css_url_function_is_case_insensitive(self, rewriter):
        css = 'body { background: URL("/img/logo.png"); }'
        result = rewriter.rewrite_css(css, GUIDE_URL, GUIDE, URL_MAP)
        assert result == 'body { background: url("../assets/images/logo_1a2b3c4d.png"); }'

    def test_css(self, rewriter):
        css = (
            '@import "theme.css";\n'
            "body { background: url('/img/logo.png'); }\n"
            "@font-face { src: url(../fonts/f.woff2) format('woff2'); }\n"
            ".x { background: url(https://cdn.example.net/y.png); }\n"
        )
        sheet = os.path.join(ROOT, "assets", "css", "main_00000000.css")
        result = rewriter.rewrite_css(css, "https://ex.com/css/main.css", sheet, URL_MAP)

        assert '@import "./theme_99aa88bb.css";' in result
        assert "url('../images/logo_1a2b3c4d.png')" in result
        assert "url(../fonts/f_5e6f7a8b.woff2) format('woff2')" in result
        assert "url(https://cdn.example.net/y.png)" in result

    def test_html(self, rewriter):
        html = """<html><head><base href="https://ex.com/"></head><body>
        <a href="/about#team">About</a>
        <a href="https://other.example/">Out</a>
        <img src="/img/logo.png" srcset="/img/logo.png 2x">
        <div style="background: url(/img/logo.png)"></div>
        <style>.a { background: url("/img/logo.png"); }</style>
        </body></html>"""
        result = rewriter.rewrite_html(html, GUIDE_URL, GUIDE, URL_MAP)

        assert 'href="../about.html#team"' in result
        assert 'href="https://other.example/"' in result
        assert 'src="../assets/images/logo_1a2b3c4d.png"' in result
        assert 'srcset="../assets/images/logo_1a2b3c4d.png 2x"' in result
        assert "url(../assets/images/logo_1a2b3c4d.png)" in result
        assert 'url("../assets/images/logo_1a2b3c4d.png")' in result
        assert "<base" not in result


class TestUrlMap:
    """Tests for build_url_map()."""

    def test_pages_registered_under_final_url(self):
        page = PageRecord(
            url="https://ex.com/blog/",
            canonical_url="https://ex.com/old-blog",
            local_path=os.path.join(ROOT, "old-blog.html"),
        )
        url_map = LinkRewriter.build_url_map([page], {"https://ex.com/a.css": THEME})
        assert url_map["https://ex.com/old-blog"] == page.local_path
        assert url_map["https://ex.com/blog"] == page.local_path
        assert url_map["https://ex.com/a.css"] == THEME


class TestRewriteAll:
    """Download then rewrite the local site."""

    @pytest.mark.asyncio
    async def test_rewrites_saved_files(self, local_site, make_config):
        config = make_config(f"{local_site}/")
        manifest = Manifest(
            start_url=f"{local_site}/",
            max_depth=1,
            url_details=[
                DiscoveryRecord(f"{local_site}/", f"{local_site}/", 0),
                DiscoveryRecord(f"{local_site}/about", f"{local_site}/about", 1, f"{local_site}/"),
            ],
        )
        result = await SiteDownloader(config).download(manifest)
        stats = LinkRewriter(config).rewrite_all(result.pages, result.assets, result.asset_mapping)

        assert stats.html_files_processed == 2
        assert stats.css_files_processed == 2
        assert stats.files_failed == 0

        index = next(page for page in result.pages if page.canonical_url == f"{local_site}/")
        with open(index.local_path, encoding="utf-8") as f:
            html = f.read()
        assert 'href="./about.html"' in html
        assert 'href="/blog/"' in html
        assert 'href="https://other.example/x"' in html
        assert 'href="mailto:team@example.com"' in html
        assert 'src="./assets/images/logo_' in html
        assert 'src="data:image/gif;base64,' in html

        style_path = result.asset_mapping[f"{local_site}/style.css"]
        with open(style_path, encoding="utf-8") as f:
            css = f.read()
        assert '@import "./print_' in css
        assert 'url("../images/bg_' in css
        assert "url(../fonts/f_" in css
