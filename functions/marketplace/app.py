"""
FastAPI application entry point.

    uvicorn marketplace.app:create_app --factory
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketplace import account_routes, routes
from marketplace.config import get_settings
from marketplace.context import MarketplaceContext, build_context
from marketplace.errors import (
    AuthError,
    DocumentSchemaError,
    InvalidTransitionError,
    MarketplaceError,
    NotFoundError,
    PermissionDeniedError,
    UsernameTakenError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; UsernameTakenError is a ValidationError.
ERROR_STATUS = [
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (UsernameTakenError, 409),
    (ValidationError, 400),
    (InvalidTransitionError, 409),
    (AuthError, 401),
    (DocumentSchemaError, 500),
]


def _status_for(error: MarketplaceError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    status = _status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    content = {"detail": str(exc)}
    if isinstance(exc, ValidationError) and exc.field:
        content["field"] = exc.field
    return JSONResponse(status_code=status, content=content)


def create_app(context: Optional[MarketplaceContext] = None) -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    if context is None:
        context = build_context(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.context.close()

    app = FastAPI(title="Marketplace Backend", version="0.1.0", lifespan=lifespan)
    app.state.context = context
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.include_router(account_routes.router, prefix=settings.api_prefix)
    app.include_router(routes.router, prefix=settings.api_prefix)
    return app
