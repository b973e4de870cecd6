"""Image proxy route used by broadcast cards for third-party preview images."""

from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import PlainTextResponse, Response

from liveshelf.core.settings import get_settings
from liveshelf.services.errors import ImageProxyError
from liveshelf.services.image_cache import ImageCache, cache_key, get_image_cache
from liveshelf.services.image_proxy import proxy_image
from liveshelf.utils.error_logger import log_error

router = APIRouter(tags=["images"])


def get_image_transport() -> httpx.AsyncBaseTransport | None:
    """Outbound transport for image fetches; None means the default network transport."""
    return None


def _cache_headers() -> dict[str, str]:
    max_age = get_settings().image_cache_max_age_seconds
    return {
        "Cache-Control": f"public, s-maxage={max_age}, max-age={max_age}",
        "Access-Control-Allow-Origin": "*",
    }


@router.get(
    "/img",
    summary="Proxy a remote image",
    response_class=Response,
    responses={
        200: {"description": "Image bytes", "content": {"image/*": {}}},
        400: {"description": "Missing, invalid or non-https URL"},
        502: {"description": "Upstream failure or non-image response"},
    },
)
async def proxy(
    request: Request,
    cache: Annotated[ImageCache, Depends(get_image_cache)],
    transport: Annotated[httpx.AsyncBaseTransport | None, Depends(get_image_transport)],
    u: str | None = Query(None, description="https URL of the image"),
):
    try:
        image, hit = await proxy_image(u, cache_key(str(request.url)), cache, transport=transport)
    except ImageProxyError as exc:
        return PlainTextResponse(exc.message, status_code=exc.status_code)
    except Exception as exc:
        log_error("image_proxy", exc, operation="proxy", context={"url": u})
        return PlainTextResponse(
            "Internal Proxy Error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    headers = _cache_headers()
    headers["X-Cache"] = "HIT" if hit else "MISS"
    return Response(content=image.body, media_type=image.content_type, headers=headers)
