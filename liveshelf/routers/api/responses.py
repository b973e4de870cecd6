"""JSON error envelopes shared by the API routers."""

from fastapi import status
from fastapi.responses import JSONResponse

from liveshelf.services.errors import CatalogueError
from liveshelf.utils.error_logger import log_error

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def catalogue_error_response(exc: CatalogueError) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


def internal_error_response(component: str, exc: Exception, **context) -> JSONResponse:
    """Log an unexpected failure and hide its details from the caller."""
    log_error(component, exc, operation="request", context=context or None)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)
