"""
FastAPI application entrypoint for the HighLevel token service.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from app.api.routes import router as api_router
from app.api.routes import (
    token_error_handler,
    unexpected_error_handler,
    validation_error_handler,
)
from app.core.config import get_settings
from app.core.errors import TokenError
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="HighLevel Customer Success Token Service",
        version="0.1.0",
        description="OAuth installation and token lifecycle endpoints for HighLevel.",
    )
    app.add_exception_handler(TokenError, token_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
