import json
import time

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from liveshelf.core.db import init_db
from liveshelf.core.deps import AuthenticationRequired
from liveshelf.core.logging import setup_logging
from liveshelf.core.session import PendingCookieStore, refresh_session
from liveshelf.core.settings import get_settings
from liveshelf.routers import api, images

# Initialize
settings = get_settings()
logger = setup_logging()

# Create app
app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Livestream broadcast catalogue with community notes",
)


# Exception handlers
def _serialize_validation_errors(errors: list) -> list:
    """Convert validation errors to JSON-serializable format."""
    serialized = []
    for error in errors:
        serialized_error = {
            "loc": error.get("loc"),
            "msg": str(error.get("msg", "")),
            "type": error.get("type"),
        }
        if "input" in error:
            try:
                json.dumps(error["input"])
                serialized_error["input"] = error["input"]
            except (TypeError, ValueError):
                serialized_error["input"] = str(error["input"])
        serialized.append(serialized_error)
    return serialized


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests as 400s in the API's error envelope."""
    errors = exc.errors()
    logger.warning(
        "Validation error on %s %s: %s",
        request.method,
        request.url.path,
        [(error.get("loc"), error.get("msg")) for error in errors],
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": "Invalid request",
            "detail": _serialize_validation_errors(errors),
        },
    )


@app.exception_handler(AuthenticationRequired)
async def authentication_required_handler(request: Request, exc: AuthenticationRequired):
    """Reject before any mutation when an endpoint needs a signed-in user."""
    logger.info("Authentication required for %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"success": False, "error": exc.message},
    )


# Session cookie refresh
@app.middleware("http")
async def refresh_session_cookies(request: Request, call_next):
    """Resolve the cookie session for this request and write back refreshed cookies."""
    cookies = PendingCookieStore(incoming=request.cookies)
    session = refresh_session(cookies)
    request.state.session_user_id = session.user_id

    response = await call_next(request)

    cookies.apply(response, secure=get_settings().session_cookie_secure)
    return response


# Request logging middleware with timing
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests with timing information."""
    start_time = time.perf_counter()

    logger.info(">>> %s %s", request.method, request.url.path)
    logger.debug("    Client: %s", request.client.host if request.client else "unknown")

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    method = request.method
    path = request.url.path
    status_code = response.status_code
    time_str = f"{duration_ms:.2f}ms"

    if duration_ms < 100:
        logger.info("<<< %s %s - %s [%s]", method, path, status_code, time_str)
    elif duration_ms < 500:
        logger.info("<<< %s %s - %s [%s] (slow)", method, path, status_code, time_str)
    else:
        logger.warning("<<< %s %s - %s [%s] (very slow)", method, path, status_code, time_str)

    return response


# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(api.router, prefix="/api")
app.include_router(images.router)


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    logger.info("Starting up...")
    init_db()
    logger.info("Database initialized")


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.app_name}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
