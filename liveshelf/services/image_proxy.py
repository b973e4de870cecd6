"""Fetch, verify and cache remote images served through ``/img``."""

import asyncio
from urllib.parse import urlparse

import httpx

from liveshelf.core.logging import get_logger
from liveshelf.core.settings import get_settings
from liveshelf.services.errors import ImageProxyError
from liveshelf.services.http import (
    IMAGE_ACCEPT,
    build_async_client,
    is_private_host,
    is_valid_hostname,
)
from liveshelf.services.image_cache import CachedImage, ImageCache
from liveshelf.utils.dates import utcnow
from liveshelf.utils.error_logger import log_error, log_http_error

logger = get_logger(__name__)


def validate_target_url(target_url: str | None) -> str:
    """
    Check a proxy target before any network activity.

    Raises:
        ImageProxyError: 400 when missing, unparsable, not https or pointing at a local host
    """
    if not target_url:
        raise ImageProxyError(400, "Missing URL")
    try:
        parsed = urlparse(target_url)
        hostname = parsed.hostname
        parsed.port  # raises ValueError when out of range or non-numeric
    except ValueError as e:
        raise ImageProxyError(400, "Invalid URL") from e
    if parsed.scheme != "https":
        raise ImageProxyError(400, "Only HTTPS allowed")
    if not is_valid_hostname(hostname):
        raise ImageProxyError(400, "Invalid URL")
    if is_private_host(hostname):
        raise ImageProxyError(400, "Host not allowed")
    return target_url


async def _check_request_target(request: httpx.Request) -> None:
    """Apply the target rules to every hop, so redirects cannot leave them."""
    try:
        validate_target_url(str(request.url))
    except ImageProxyError as e:
        logger.warning("Refused image request to %s: %s", request.url, e.message)
        raise ImageProxyError(502, "Redirect target not allowed") from e


async def _read_limited(response: httpx.Response, max_bytes: int) -> bytes:
    """Read a streamed body, failing once it grows past ``max_bytes``."""
    declared = response.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise ImageProxyError(502, "Image too large")
    body = bytearray()
    async for chunk in response.aiter_bytes():
        body.extend(chunk)
        if len(body) > max_bytes:
            raise ImageProxyError(502, "Image too large")
    return bytes(body)


async def fetch_image(
    target_url: str, *, transport: httpx.AsyncBaseTransport | None = None
) -> CachedImage:
    """Download an image under the proxy timeout.

    Raises:
        ImageProxyError: 502 for non-2xx, non-image or oversized content, disallowed
            redirects and transport failures
    """
    settings = get_settings()
    try:
        async with asyncio.timeout(settings.image_proxy_timeout_seconds):
            async with build_async_client(
                timeout=settings.image_proxy_timeout_seconds,
                user_agent=settings.image_proxy_user_agent,
                accept=IMAGE_ACCEPT,
                transport=transport,
                request_hooks=[_check_request_target],
            ) as client:
                async with client.stream("GET", target_url) as response:
                    if not response.is_success:
                        log_http_error(
                            "image_proxy", target_url, response=response, operation="fetch_image"
                        )
                        raise ImageProxyError(
                            502, f"Failed to fetch image: {response.status_code}"
                        )

                    content_type = response.headers.get("content-type", "")
                    if not content_type.lower().startswith("image/"):
                        logger.warning(
                            "Rejected non-image content-type %r from %s", content_type, target_url
                        )
                        raise ImageProxyError(502, "Invalid content-type")

                    body = await _read_limited(response, settings.image_proxy_max_bytes)
    except TimeoutError as e:
        logger.warning("Image fetch timed out for %s", target_url)
        raise ImageProxyError(502, "Image fetch timed out") from e
    except httpx.HTTPError as e:
        log_http_error("image_proxy", target_url, error=e, operation="fetch_image")
        raise ImageProxyError(502, "Failed to fetch image") from e

    return CachedImage(content_type=content_type, body=body, stored_at=utcnow())


async def proxy_image(
    target_url: str | None,
    key: str,
    cache: ImageCache,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[CachedImage, bool]:
    """
    Serve an image from the shared cache, fetching and storing it on a miss.

    Args:
        target_url: Remote image URL (the ``u`` query parameter)
        key: Cache key derived from the inbound request
        cache: Shared image cache
        transport: Optional httpx transport override

    Returns:
        Tuple of (image, served_from_cache)

    Raises:
        ImageProxyError: 400 for rejected targets, 502 for upstream failures
    """
    target_url = validate_target_url(target_url)

    cached = cache.match(key)
    if cached is not None:
        return cached, True

    image = await fetch_image(target_url, transport=transport)

    try:
        cache.put(key, image)
    except Exception as e:
        log_error("image_proxy", e, operation="cache_put", context={"url": target_url})

    return image, False
