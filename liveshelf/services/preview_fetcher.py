"""OpenGraph / card preview fetching for broadcast pages.

X/Twitter pages only expose their metadata after scripts run, so those URLs go
through a rendering API. Every other site is fetched directly with a short
timeout and a capped body. ``fetch_preview`` never raises: any failure comes
back as a ``fail`` PreviewResult with null fields.
"""

from __future__ import annotations

import asyncio
import html
import re
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from liveshelf.core.logging import get_logger
from liveshelf.core.settings import get_settings
from liveshelf.models.metadata import PreviewFetchStatus, PreviewResult, PreviewSite
from liveshelf.services.http import HTML_ACCEPT, build_async_client, host_matches
from liveshelf.utils.error_logger import log_http_error

logger = get_logger(__name__)

X_DOMAIN = "x.com"
TWITTER_DOMAIN = "twitter.com"

PreviewFetcher = Callable[[str], Awaitable[PreviewResult]]

_TITLE_REGEX = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)


class PreviewFetchError(Exception):
    """Internal signal that a strategy could not produce metadata."""


def derive_status(title: str | None, image_url: str | None) -> PreviewFetchStatus:
    """success with title and image, partial with one of them, fail with neither."""
    if title and image_url:
        return PreviewFetchStatus.SUCCESS
    if title or image_url:
        return PreviewFetchStatus.PARTIAL
    return PreviewFetchStatus.FAIL


def social_site_for(url: str) -> PreviewSite | None:
    """Return x/twitter when the URL's host belongs to the social domain set."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    if host_matches(hostname, X_DOMAIN):
        return PreviewSite.X
    if host_matches(hostname, TWITTER_DOMAIN):
        return PreviewSite.TWITTER
    return None


_CONTENT_ATTR = r"(?<![\w-])content\s*=\s*(?P<cq>[\"'])(?P<value>(?:(?!(?P=cq)).)*)(?P=cq)"


def _meta_patterns(prop: str) -> tuple[re.Pattern[str], re.Pattern[str]]:
    """Key-then-content and content-then-key patterns; other attributes may sit anywhere."""
    key_attr = (
        rf"(?<![\w-])(?:property|name)\s*=\s*(?P<kq>[\"']?){re.escape(prop)}(?P=kq)(?=[\s/>])"
    )
    return (
        re.compile(
            rf"<meta\b[^>]*?{key_attr}[^>]*?{_CONTENT_ATTR}", re.IGNORECASE | re.DOTALL
        ),
        re.compile(
            rf"<meta\b[^>]*?{_CONTENT_ATTR}[^>]*?{key_attr}", re.IGNORECASE | re.DOTALL
        ),
    )


_META_PROPS = (
    "og:title",
    "twitter:title",
    "og:description",
    "twitter:description",
    "description",
    "og:image",
    "twitter:image",
    "og:site_name",
    "author",
    "twitter:creator",
)
_META_REGEXES = {prop: _meta_patterns(prop) for prop in _META_PROPS}


def get_meta_content(page: str, prop: str) -> str | None:
    """Return the unescaped, stripped content of a meta tag, or None when absent/empty."""
    patterns = _META_REGEXES.get(prop) or _meta_patterns(prop)
    for pattern in patterns:
        match = pattern.search(page)
        if match:
            value = html.unescape(match.group("value")).strip()
            if value:
                return value
    return None


def _first(*values: str | None) -> str | None:
    for value in values:
        if value:
            return value
    return None


def resolve_image_url(image_url: str | None, base_url: str) -> str | None:
    """Make a relative image URL absolute; None when it cannot be resolved."""
    if not image_url:
        return None
    if image_url.startswith("http"):
        return image_url
    try:
        resolved = urljoin(base_url, image_url)
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    return resolved


def classify_site(target_url: str, site_name: str | None) -> PreviewSite:
    """Classify from og:site_name when present, otherwise from the hostname."""
    if site_name:
        lowered = site_name.lower()
        if lowered == "x" or "twitter" in lowered:
            return PreviewSite.X if X_DOMAIN in target_url else PreviewSite.TWITTER
        return PreviewSite.OTHER

    try:
        hostname = urlparse(target_url).hostname
    except ValueError:
        return PreviewSite.UNKNOWN
    if not hostname:
        return PreviewSite.UNKNOWN
    if host_matches(hostname, TWITTER_DOMAIN):
        return PreviewSite.TWITTER
    if host_matches(hostname, X_DOMAIN):
        return PreviewSite.X
    return PreviewSite.OTHER


def parse_preview_html(page: str, target_url: str) -> PreviewResult:
    """Extract preview fields from (possibly truncated) HTML by pattern search."""
    title_match = _TITLE_REGEX.search(page)
    page_title = html.unescape(title_match.group(1)).strip() if title_match else None

    title = _first(
        get_meta_content(page, "og:title"),
        get_meta_content(page, "twitter:title"),
        page_title,
    )
    description = _first(
        get_meta_content(page, "og:description"),
        get_meta_content(page, "twitter:description"),
        get_meta_content(page, "description"),
    )
    author = _first(
        get_meta_content(page, "author"),
        get_meta_content(page, "twitter:creator"),
    )
    image_url = resolve_image_url(
        _first(get_meta_content(page, "og:image"), get_meta_content(page, "twitter:image")),
        target_url,
    )

    return PreviewResult(
        title=title,
        description=description,
        image_url=image_url,
        site=classify_site(target_url, get_meta_content(page, "og:site_name")),
        status=derive_status(title, image_url),
        author=author,
    )


async def _read_capped(response: httpx.Response, max_bytes: int) -> bytes:
    """Read at most ``max_bytes`` of a streamed body, dropping the rest."""
    body = bytearray()
    async for chunk in response.aiter_bytes():
        remaining = max_bytes - len(body)
        if len(chunk) >= remaining:
            body.extend(chunk[:remaining])
            logger.debug("Preview body truncated at %d bytes for %s", max_bytes, response.url)
            break
        body.extend(chunk)
    return bytes(body)


async def fetch_preview_direct(
    target_url: str, *, transport: httpx.AsyncBaseTransport | None = None
) -> PreviewResult:
    """Fetch a page directly and parse its meta tags (3 s, 2 MiB bounds)."""
    settings = get_settings()
    try:
        async with asyncio.timeout(settings.preview_direct_timeout_seconds):
            async with build_async_client(
                timeout=settings.preview_direct_timeout_seconds,
                user_agent=settings.preview_user_agent,
                accept=HTML_ACCEPT,
                transport=transport,
            ) as client:
                async with client.stream("GET", target_url) as response:
                    if not response.is_success:
                        raise PreviewFetchError(
                            f"Failed to fetch: {response.status_code} {response.reason_phrase}"
                        )
                    content_type = response.headers.get("content-type", "")
                    if "text/html" not in content_type.lower():
                        logger.info(
                            "Skipping preview parse for %s (content-type %r)",
                            target_url,
                            content_type,
                        )
                        return PreviewResult.failed()
                    body = await _read_capped(response, settings.preview_max_body_bytes)
    except TimeoutError:
        logger.warning("Preview fetch timed out for %s", target_url)
        return PreviewResult.failed()
    except (httpx.HTTPError, httpx.InvalidURL, PreviewFetchError) as e:
        logger.warning("Preview fetch failed for %s: %s", target_url, e)
        return PreviewResult.failed()

    return parse_preview_html(body.decode("utf-8", errors="replace"), target_url)


def _render_payload_to_result(payload: Any, site: PreviewSite) -> PreviewResult:
    if not isinstance(payload, dict) or payload.get("status") != "success":
        raise PreviewFetchError("Rendering API returned unsuccessful status")
    data = payload.get("data")
    if not isinstance(data, dict):
        raise PreviewFetchError("Rendering API returned no data")

    image = data.get("image")
    image_url = image.get("url") if isinstance(image, dict) else None

    def _text(key: str) -> str | None:
        value = data.get(key)
        return value.strip() or None if isinstance(value, str) else None

    title = _text("title")
    image_url = image_url if isinstance(image_url, str) and image_url else None
    return PreviewResult(
        title=title,
        description=_text("description"),
        image_url=image_url,
        site=site,
        status=derive_status(title, image_url),
        author=_text("author"),
    )


async def fetch_preview_rendered(
    target_url: str,
    site: PreviewSite,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PreviewResult:
    """Ask the rendering API (prerender on) for a script-rendered page's metadata."""
    settings = get_settings()
    params = {"url": target_url, "prerender": "true"}
    try:
        async with asyncio.timeout(settings.preview_render_timeout_seconds):
            async with build_async_client(
                timeout=settings.preview_render_timeout_seconds,
                user_agent=settings.preview_user_agent,
                transport=transport,
            ) as client:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(2),
                    wait=wait_exponential(multiplier=0.5, max=2),
                    retry=retry_if_exception_type(httpx.TransportError),
                    reraise=True,
                ):
                    with attempt:
                        response = await client.get(
                            settings.preview_render_api_url, params=params
                        )
                if not response.is_success:
                    log_http_error(
                        "preview_fetcher",
                        target_url,
                        response=response,
                        operation="render_api",
                    )
                    raise PreviewFetchError(f"Rendering API error: {response.status_code}")
                payload = response.json()
    except TimeoutError:
        logger.warning("Rendering API timed out for %s", target_url)
        return PreviewResult.failed(site)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError, PreviewFetchError) as e:
        # ValueError covers malformed JSON bodies
        logger.warning("Rendering API fetch failed for %s: %s", target_url, e)
        return PreviewResult.failed(site)

    try:
        return _render_payload_to_result(payload, site)
    except PreviewFetchError as e:
        logger.warning("Rendering API payload unusable for %s: %s", target_url, e)
        return PreviewResult.failed(site)


async def fetch_preview(
    target_url: str, *, transport: httpx.AsyncBaseTransport | None = None
) -> PreviewResult:
    """
    Fetch preview metadata for a URL, picking the strategy by domain.

    Args:
        target_url: Page to describe
        transport: Optional httpx transport override

    Returns:
        PreviewResult; failures are reported through ``status == fail``
    """
    try:
        site = social_site_for(target_url)
        if site is not None:
            logger.info("Using rendering API for %s", target_url)
            return await fetch_preview_rendered(target_url, site, transport=transport)
        logger.info("Using direct fetch for %s", target_url)
        return await fetch_preview_direct(target_url, transport=transport)
    except Exception as e:
        logger.exception("Unexpected preview fetch failure for %s: %s", target_url, e)
        return PreviewResult.failed()


def get_preview_fetcher():
    """FastAPI dependency returning the preview fetcher used by request handlers."""
    return fetch_preview
