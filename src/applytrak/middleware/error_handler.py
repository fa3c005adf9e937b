"""Global error handlers: consistent JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from applytrak.achievements.errors import FactCollectionError

logger = structlog.get_logger()

FACT_RETRY_AFTER_SECONDS = 30


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle validation errors with consistent JSON format."""
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(FactCollectionError)
    async def fact_collection_handler(request: Request, exc: FactCollectionError) -> JSONResponse:
        """Upstream records are unavailable; nothing was written, retry later."""
        logger.warning(
            "fact_collection_unavailable",
            path=request.url.path,
            user_id=exc.user_id,
            error=str(exc),
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Achievement data temporarily unavailable"},
            headers={"Retry-After": str(FACT_RETRY_AFTER_SECONDS)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions, always returns JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
