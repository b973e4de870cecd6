"""
Structured error logging helpers.

Records emitted here carry ``component``/``operation``/``context_data`` extras,
so the JSONL handlers configured in liveshelf/core/logging.py pick them up.

Usage:
    from liveshelf.utils.error_logger import log_error, log_http_error

    log_error("broadcast_submission", error, operation="insert_note", item_id=broadcast_id)
    log_http_error("image_proxy", url=target, response=resp, operation="fetch_image")
"""

from typing import Any

from liveshelf.core.logging import get_logger


def _extract_http_details(response: Any) -> dict[str, Any]:
    """Pull status, headers and a body excerpt off an httpx response.

    Args:
        response: HTTP response object.

    Returns:
        Dictionary with extracted HTTP details.
    """
    details: dict[str, Any] = {}
    try:
        details["status_code"] = getattr(response, "status_code", None)
        headers = getattr(response, "headers", None)
        if headers is not None:
            details["headers"] = {
                k: v[:200] if isinstance(v, str) else v for k, v in dict(headers).items()
            }
        request = getattr(response, "request", None)
        if request is not None:
            details["method"] = request.method
            details["request_url"] = str(request.url)
    except Exception as e:
        details["extraction_error"] = f"Failed to extract HTTP details: {e}"
    return {k: v for k, v in details.items() if v is not None}


def log_error(
    component: str,
    error: Exception,
    *,
    operation: str | None = None,
    context: dict[str, Any] | None = None,
    http_response: Any | None = None,
    item_id: str | int | None = None,
) -> None:
    """Log an exception with structured context to console and JSONL.

    Args:
        component: Component name for identifying the source of errors.
        error: The exception that occurred.
        operation: Name of the operation that failed.
        context: Additional context data.
        http_response: HTTP response object (if applicable).
        item_id: ID of the item being processed (if applicable).
    """
    logger = get_logger(f"error.{component}")

    operation_str = f" during {operation}" if operation else ""
    item_str = f" (item: {item_id})" if item_id else ""

    logger.error(
        f"{component} error{operation_str}{item_str}: {error}",
        exc_info=error,
        extra={
            "component": component,
            "operation": operation,
            "context_data": context,
            "http_details": _extract_http_details(http_response) if http_response else None,
            "item_id": item_id,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def log_http_error(
    component: str,
    url: str,
    *,
    response: Any | None = None,
    error: Exception | None = None,
    operation: str | None = None,
    context: dict[str, Any] | None = None,
) -> None:
    """Log an upstream HTTP failure.

    Args:
        component: Component name for identifying the source of errors.
        url: The URL that was requested.
        response: HTTP response object (if available).
        error: The exception that occurred (if any).
        operation: Name of the operation that failed.
        context: Additional context data.
    """
    full_context = {"url": url}
    if context:
        full_context.update(context)

    if error is None:
        status_code = getattr(response, "status_code", "unknown")
        error = Exception(f"HTTP error for {url} (status: {status_code})")

    log_error(
        component,
        error,
        operation=operation or "http_request",
        context=full_context,
        http_response=response,
    )
