"""Middleware registration."""

from fastapi import FastAPI

from applytrak.config import Settings
from applytrak.middleware.error_handler import setup_error_handlers
from applytrak.middleware.logging import setup_logging
from applytrak.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, register error handlers and request-scoped middleware."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
