"""
Tests for the URL canonicalizer and asset-URL helpers.

Covers:
  1. Resolution (relative, protocol-relative, base URL, quotes/whitespace)
  2. Optional normalization steps
  3. Rejection of empty / malformed / non-fetchable input
  4. Idempotence
  5. Asset heuristics (is_likely_asset, asset_format, css url(), srcset)
"""

import pytest

from harvester.urls import (
    CanonicalizeOptions,
    asset_format,
    best_srcset_url,
    canonicalize,
    extract_css_urls,
    is_likely_asset,
    parse_srcset,
)
from harvester.utils import site_key

BASE = "https://example.com/gallery/index.html"


# ====================================================================
# 1. Resolution
# ====================================================================

class TestResolution:

    def test_protocol_relative_with_force_https(self):
        """A protocol-relative URL expands to https and stays absolute."""
        opts = CanonicalizeOptions(force_https=True)
        result = canonicalize("//cdn.example.com/a.jpg", "https://page.example.com/", opts)
        assert result == "https://cdn.example.com/a.jpg"

    def test_protocol_relative_takes_page_scheme(self):
        result = canonicalize("//cdn.example.com/a.jpg", "http://page.example.com/")
        assert result == "http://cdn.example.com/a.jpg"

    def test_relative_resolved_against_base(self):
        assert canonicalize("img/b.png", BASE) == "https://example.com/gallery/img/b.png"

    def test_root_relative(self):
        assert canonicalize("/static/c.gif", BASE) == "https://example.com/static/c.gif"

    def test_quotes_and_whitespace_trimmed(self):
        assert canonicalize("  'https://example.com/a.jpg'  ") == "https://example.com/a.jpg"
        assert canonicalize('"https://example.com/a.jpg"') == "https://example.com/a.jpg"

    def test_host_lowercased_and_default_port_dropped(self):
        assert canonicalize("https://Example.COM:443/a.jpg") == "https://example.com/a.jpg"

    def test_non_default_port_kept(self):
        assert canonicalize("https://example.com:8443/a.jpg") == "https://example.com:8443/a.jpg"

    def test_spaces_in_path_encoded(self):
        assert canonicalize("https://example.com/a b.jpg") == "https://example.com/a%20b.jpg"

    def test_empty_path_becomes_root(self):
        assert canonicalize("https://example.com") == "https://example.com/"

    def test_data_uri_passed_through(self):
        uri = "data:image/png;base64,iVBORw0KGgo="
        assert canonicalize(uri, BASE) == uri


# ====================================================================
# 2. Optional normalization
# ====================================================================

class TestOptions:

    def test_force_https_upgrades_http(self):
        opts = CanonicalizeOptions(force_https=True)
        assert canonicalize("http://example.com/a.jpg", options=opts) == "https://example.com/a.jpg"

    def test_force_https_drops_port_80(self):
        opts = CanonicalizeOptions(force_https=True)
        assert canonicalize("http://example.com:80/a.jpg", options=opts) == "https://example.com/a.jpg"

    def test_strip_query_keeps_fragment(self):
        opts = CanonicalizeOptions(strip_query=True)
        assert canonicalize("https://e.com/a.jpg?x=1#f", options=opts) == "https://e.com/a.jpg#f"

    def test_strip_query_and_fragment(self):
        opts = CanonicalizeOptions(strip_query=True, strip_fragment=True)
        assert canonicalize("https://e.com/a.jpg?x=1#f", options=opts) == "https://e.com/a.jpg"

    def test_sort_query(self):
        opts = CanonicalizeOptions(sort_query=True)
        assert canonicalize("https://e.com/a.jpg?b=2&a=1", options=opts) == "https://e.com/a.jpg?a=1&b=2"

    def test_query_kept_by_default(self):
        assert canonicalize("https://e.com/a.jpg?b=2&a=1") == "https://e.com/a.jpg?b=2&a=1"

    def test_trailing_slash_removed(self):
        opts = CanonicalizeOptions(strip_trailing_slash=True)
        assert canonicalize("https://e.com/dir/", options=opts) == "https://e.com/dir"

    def test_root_slash_never_removed(self):
        opts = CanonicalizeOptions(strip_trailing_slash=True)
        assert canonicalize("https://e.com/", options=opts) == "https://e.com/"

    def test_data_uri_rejected_when_disallowed(self):
        opts = CanonicalizeOptions(allow_data_urls=False)
        assert canonicalize("data:image/gif;base64,R0lGOD", options=opts) is None


# ====================================================================
# 3. Rejection
# ====================================================================

class TestRejection:

    @pytest.mark.parametrize("raw", [None, "", "   ", "''", '""'])
    def test_empty_input(self, raw):
        assert canonicalize(raw, BASE) is None

    @pytest.mark.parametrize("raw", [
        "javascript:void(0)",
        "mailto:someone@example.com",
        "blob:https://example.com/1234",
        "ftp://example.com/a.jpg",
    ])
    def test_non_fetchable_schemes(self, raw):
        assert canonicalize(raw, BASE) is None

    def test_relative_without_base(self):
        assert canonicalize("img/a.jpg") is None

    def test_malformed_host(self):
        assert canonicalize("http://[::1", BASE) is None

    def test_missing_host(self):
        assert canonicalize("https:///a.jpg") is None


# ====================================================================
# 4. Idempotence
# ====================================================================

class TestIdempotence:

    @pytest.mark.parametrize("raw", [
        "//cdn.example.com/x/y.jpg",
        "img/a b.png",
        "https://Example.com:443/p/?b=2&a=1#frag",
        "/images/photo%20one.webp",
        "data:image/png;base64,AAAA",
    ])
    @pytest.mark.parametrize("opts", [
        CanonicalizeOptions(),
        CanonicalizeOptions(force_https=True, sort_query=True, strip_trailing_slash=True),
        CanonicalizeOptions(strip_query=True, strip_fragment=True),
    ])
    def test_canonicalizing_twice_changes_nothing(self, raw, opts):
        once = canonicalize(raw, BASE, opts)
        assert once is not None
        assert canonicalize(once, BASE, opts) == once


# ====================================================================
# 5. Asset heuristics
# ====================================================================

class TestAssetHeuristics:

    def test_known_extension(self):
        assert is_likely_asset("https://e.com/a.JPG")

    def test_asset_path_pattern(self):
        assert is_likely_asset("https://e.com/images/abc")
        assert is_likely_asset("https://e.com/media/12345")

    def test_document_is_not_asset(self):
        assert not is_likely_asset("https://e.com/page.html")
        assert not is_likely_asset("https://e.com/about")

    def test_data_uri_mime(self):
        assert is_likely_asset("data:image/png;base64,AAAA")
        assert not is_likely_asset("data:text/plain,hello")

    def test_restricted_formats_still_allow_path_patterns(self):
        assert is_likely_asset("https://e.com/photos/a.bmp", ["png"])
        assert not is_likely_asset("https://e.com/files/a.bmp", ["png"])

    def test_asset_format(self):
        assert asset_format("https://e.com/a.WEBP?x=1") == "webp"
        assert asset_format("data:image/svg+xml;utf8,<svg/>") == "svg"
        assert asset_format("https://e.com/images/abc") == "unknown"
        assert asset_format(None) == "unknown"

    def test_css_urls(self):
        assert extract_css_urls('url("a.png"), url(b.jpg)') == ["a.png", "b.jpg"]
        assert extract_css_urls("url( 'c.gif' )") == ["c.gif"]
        assert extract_css_urls("none") == []
        assert extract_css_urls(None) == []

    def test_srcset_parsing(self):
        assert parse_srcset("a.jpg 480w, b.jpg 1080w") == [("a.jpg", "480w"), ("b.jpg", "1080w")]

    def test_srcset_widest_wins(self):
        assert best_srcset_url("a.jpg 480w, b.jpg 1080w, c.jpg 720w") == "b.jpg"

    def test_srcset_highest_density_wins(self):
        assert best_srcset_url("a.jpg 1x, b.jpg 2x") == "b.jpg"

    def test_srcset_without_descriptors(self):
        assert best_srcset_url("a.jpg") == "a.jpg"
        assert best_srcset_url("") is None


class TestSiteKey:

    def test_first_path_segment(self):
        assert site_key("https://www.Example.com/gallery/42") == "www.example.com_gallery"

    def test_root(self):
        assert site_key("https://example.com/") == "example.com_root"
        assert site_key("https://example.com") == "example.com_root"
