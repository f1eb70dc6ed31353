"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
create_app() builds a fresh instance, which tests use to get an app
with their own settings.

For local development:
    uvicorn media_relay.main:app --reload

For production, keep every timeout at least an hour so large relay
uploads are not cut off:
    uvicorn media_relay.main:app --timeout-keep-alive 3600
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api.dependencies import build_shared_resources
from .api.routes import auth, health, media, uploads
from .config.settings import get_settings

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the shared object store client, catalog connection pool and
    key generator on startup, and closes pooled connections on shutdown.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "Media Relay API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": {
                "snowflake": settings.snowflake_mock_mode,
                "storage": settings.storage_mock_mode,
            }
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    app.state.resources = build_shared_resources(settings)

    yield

    app.state.resources.close()
    logger.info("Media Relay API shutting down")


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
    )


def create_app() -> FastAPI:
    """
    Application factory.

    Every error leaves the service as {"success": false, "message": ...},
    whether raised by a route, by request validation, or unhandled.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        description="""
        Upload relay and catalog for a media gallery.

        ## Multipart upload (large files)

        1. `POST /api/upload/start` with `{filename, filetype}`
        2. For each part: `POST /api/upload/get-part-url`, then PUT the
           bytes to the returned URL and keep the `ETag` header
        3. `POST /api/upload/complete` with all `{PartNumber, ETag}` pairs

        ## Relay upload (small batches)

        `POST /api/upload` with up to 100 files in the `files` form field.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(auth.router, prefix="/api", tags=["Auth"])
    app.include_router(media.router, prefix="/api/media", tags=["Media"])
    app.include_router(uploads.router, prefix="/api/upload", tags=["Uploads"])

    max_batch_bytes = settings.max_file_size_bytes * settings.max_files_per_upload

    @app.middleware("http")
    async def reject_oversized_batches(request, call_next):
        """
        Refuse relay uploads whose declared size exceeds the batch limit.

        The form is spooled to disk before the route runs, so this is the
        only point where an oversized body can be refused unread.
        """
        if request.method == "POST" and request.url.path == "/api/upload":
            length = request.headers.get("content-length", "")
            if length.isdigit() and int(length) > max_batch_bytes:
                logger.info(
                    "Relay upload refused before reading body",
                    extra={"content_length": int(length), "limit": max_batch_bytes},
                )
                return _error_response(413, "Upload too large")
        return await call_next(request)

    @app.get("/", include_in_schema=False, response_class=PlainTextResponse)
    def root() -> str:
        return "Media Relay Server is Running"

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else first.get("msg")
        else:
            message = "Invalid request"
        logger.info(
            "Request validation failed",
            extra={"path": request.url.path, "error": message},
        )
        return _error_response(400, message)

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Logs the full error server-side but returns a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )
        return _error_response(500, "Internal server error")

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": __version__,
        }
    )

    return app


# Create the application instance
# This is what uvicorn imports
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "media_relay.main:app",
        host="0.0.0.0",
        port=5000,
        reload=True,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=settings.io_timeout_seconds,
    )
