"""Middleware registration."""

from fastapi import FastAPI

from careerxp.config import Settings
from careerxp.middleware.error_handler import setup_error_handlers
from careerxp.middleware.logging import setup_logging
from careerxp.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers and the request id middleware.

    Per-event rate limiting lives in the event gateway, not in HTTP middleware.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
