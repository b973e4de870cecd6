"""Tests for preview fetching strategies."""

import asyncio

import httpx
import pytest

from liveshelf.core.settings import get_settings
from liveshelf.models.metadata import PreviewFetchStatus, PreviewSite
from liveshelf.services.preview_fetcher import (
    classify_site,
    derive_status,
    fetch_preview,
    get_meta_content,
    parse_preview_html,
    resolve_image_url,
    social_site_for,
)

ARTICLE_HTML = """
<html><head>
<title>Fallback title</title>
<meta property="og:title" content="Launch day stream">
<meta name="description" content="Generic description">
<meta property="og:description" content="We ship &amp; celebrate">
<meta property="og:image" content="/images/card.png">
<meta name="author" content="@hostname">
</head><body>hello</body></html>
"""


def _html_response(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code, content=body.encode("utf-8"), headers={"content-type": "text/html; charset=utf-8"}
    )


def _assert_all_null_failure(result):
    assert result.status == PreviewFetchStatus.FAIL
    assert result.title is None
    assert result.description is None
    assert result.image_url is None


class TestParsing:
    def test_derive_status(self):
        assert derive_status("t", "i") == PreviewFetchStatus.SUCCESS
        assert derive_status("t", None) == PreviewFetchStatus.PARTIAL
        assert derive_status(None, "i") == PreviewFetchStatus.PARTIAL
        assert derive_status(None, None) == PreviewFetchStatus.FAIL

    def test_meta_content_in_either_attribute_order(self):
        page = '<meta content="Tom &amp; Jerry" property="og:title">'
        assert get_meta_content(page, "og:title") == "Tom & Jerry"

    def test_meta_key_after_other_attributes(self):
        page = '<meta data-rh="true" property="og:title" content="Weekly show"/>'
        assert get_meta_content(page, "og:title") == "Weekly show"

        page = '<meta data-rh="true" content="Weekly show" name="og:title"/>'
        assert get_meta_content(page, "og:title") == "Weekly show"

    def test_meta_content_keeps_other_quote_character(self):
        page = """<meta property="og:title" content="Jane's live (@jane)">"""
        assert get_meta_content(page, "og:title") == "Jane's live (@jane)"

        page = """<meta content='Say "hi"' property='og:description'>"""
        assert get_meta_content(page, "og:description") == 'Say "hi"'

    def test_meta_lookalike_attributes_do_not_match(self):
        page = (
            '<meta data-name="og:title" content="wrong">'
            '<meta property="og:title:alt" content="also wrong">'
            '<meta property="og:title" content="right">'
        )
        assert get_meta_content(page, "og:title") == "right"

    def test_empty_meta_content_is_absent(self):
        assert get_meta_content('<meta property="og:title" content="  ">', "og:title") is None

    def test_parse_prefers_og_fields_and_resolves_relative_image(self):
        result = parse_preview_html(ARTICLE_HTML, "https://example.com/post/1")

        assert result.title == "Launch day stream"
        assert result.description == "We ship & celebrate"
        assert result.image_url == "https://example.com/images/card.png"
        assert result.author == "@hostname"
        assert result.site == PreviewSite.OTHER
        assert result.status == PreviewFetchStatus.SUCCESS

    def test_title_tag_is_last_resort(self):
        result = parse_preview_html("<title> Only title </title>", "https://example.com")
        assert result.title == "Only title"
        assert result.status == PreviewFetchStatus.PARTIAL

    def test_unresolvable_image_is_dropped(self):
        assert resolve_image_url("javascript:alert(1)", "https://example.com") is None
        assert resolve_image_url("https://cdn.example.com/a.png", "https://example.com") == (
            "https://cdn.example.com/a.png"
        )

    def test_site_classification(self):
        assert classify_site("https://x.com/i/broadcasts/1", "X") == PreviewSite.X
        assert classify_site("https://example.com", "Twitter") == PreviewSite.TWITTER
        assert classify_site("https://example.com", "Example News") == PreviewSite.OTHER
        assert classify_site("https://mobile.twitter.com/a", None) == PreviewSite.TWITTER
        assert classify_site("not a url", None) == PreviewSite.UNKNOWN

    def test_social_host_matching_is_exact(self):
        assert social_site_for("https://x.com/i/broadcasts/1") == PreviewSite.X
        assert social_site_for("https://mobile.twitter.com/i/broadcasts/1") == PreviewSite.TWITTER
        assert social_site_for("https://netflix.com/title/1") is None
        assert social_site_for("https://example.com/?next=x.com") is None


class TestDirectFetch:
    @pytest.mark.asyncio
    async def test_parses_html_page(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["user-agent"] == get_settings().preview_user_agent
            return _html_response(ARTICLE_HTML)

        result = await fetch_preview(
            "https://example.com/post/1", transport=httpx.MockTransport(handler)
        )

        assert result.status == PreviewFetchStatus.SUCCESS
        assert result.title == "Launch day stream"

    @pytest.mark.asyncio
    async def test_unreachable_host_is_fail(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await fetch_preview(
            "https://unreachable.invalid/", transport=httpx.MockTransport(handler)
        )

        _assert_all_null_failure(result)
        assert result.site == PreviewSite.UNKNOWN

    @pytest.mark.asyncio
    async def test_non_html_is_fail_without_parsing(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"og:title": "not parsed"},
                headers={"content-type": "application/json"},
            )

        result = await fetch_preview("https://example.com/api", transport=httpx.MockTransport(handler))

        _assert_all_null_failure(result)

    @pytest.mark.asyncio
    async def test_non_2xx_is_fail(self):
        transport = httpx.MockTransport(lambda request: _html_response(ARTICLE_HTML, 404))

        result = await fetch_preview("https://example.com/missing", transport=transport)

        _assert_all_null_failure(result)

    @pytest.mark.asyncio
    async def test_body_beyond_cap_is_truncated_not_an_error(self):
        cap = get_settings().preview_max_body_bytes
        page = "<html>" + ("a" * (cap + 1024)) + '<meta property="og:title" content="Too late">'
        transport = httpx.MockTransport(lambda request: _html_response(page))

        result = await fetch_preview("https://example.com/huge", transport=transport)

        _assert_all_null_failure(result)
        assert result.site == PreviewSite.OTHER

    @pytest.mark.asyncio
    async def test_timeout_is_fail(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "preview_direct_timeout_seconds", 0.05)

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return _html_response(ARTICLE_HTML)

        result = await fetch_preview("https://slow.example.com/", transport=httpx.MockTransport(handler))

        _assert_all_null_failure(result)


class TestRenderedFetch:
    @pytest.mark.asyncio
    async def test_x_urls_use_rendering_api(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(
                200,
                json={
                    "status": "success",
                    "data": {
                        "title": "Jane (@jane)",
                        "description": "Live Q&A",
                        "image": {"url": "https://pbs.twimg.com/card.jpg"},
                        "author": "jane",
                    },
                },
            )

        result = await fetch_preview(
            "https://x.com/i/broadcasts/abc123", transport=httpx.MockTransport(handler)
        )

        assert result.status == PreviewFetchStatus.SUCCESS
        assert result.site == PreviewSite.X
        assert result.title == "Jane (@jane)"
        assert result.image_url == "https://pbs.twimg.com/card.jpg"
        assert result.author == "jane"
        assert len(seen) == 1
        assert seen[0].host == "api.microlink.io"
        assert seen[0].params["url"] == "https://x.com/i/broadcasts/abc123"
        assert seen[0].params["prerender"] == "true"

    @pytest.mark.asyncio
    async def test_rendering_api_error_keeps_site(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))

        result = await fetch_preview("https://twitter.com/i/broadcasts/abc", transport=transport)

        _assert_all_null_failure(result)
        assert result.site == PreviewSite.TWITTER

    @pytest.mark.asyncio
    async def test_unsuccessful_payload_is_fail(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"status": "fail", "data": None})
        )

        result = await fetch_preview("https://x.com/i/broadcasts/abc", transport=transport)

        _assert_all_null_failure(result)
        assert result.site == PreviewSite.X

    @pytest.mark.asyncio
    async def test_transport_error_is_retried_once(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] == 1:
                raise httpx.ConnectError("reset", request=request)
            return httpx.Response(
                200, json={"status": "success", "data": {"title": "Only title"}}
            )

        result = await fetch_preview(
            "https://x.com/i/broadcasts/abc", transport=httpx.MockTransport(handler)
        )

        assert calls["count"] == 2
        assert result.status == PreviewFetchStatus.PARTIAL
        assert result.title == "Only title"
        assert result.image_url is None

    @pytest.mark.asyncio
    async def test_rendering_timeout_is_fail(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "preview_render_timeout_seconds", 0.05)

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, json={"status": "success", "data": {}})

        result = await fetch_preview(
            "https://x.com/i/broadcasts/abc", transport=httpx.MockTransport(handler)
        )

        _assert_all_null_failure(result)
        assert result.site == PreviewSite.X
