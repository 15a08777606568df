"""Middleware registration."""

from fastapi import FastAPI

from anky.config import Settings
from anky.middleware.cors import setup_cors
from anky.middleware.error_handler import setup_error_handlers
from anky.middleware.logging import setup_logging
from anky.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers, request ids and CORS.

    Starlette runs middleware in reverse-add order, so CORS (added last) is
    outermost and also decorates error responses.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
