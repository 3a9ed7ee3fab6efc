"""
FastAPI application entry point for the portfolio service.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portfolio_backend.config import get_settings
from portfolio_backend.errors import InvalidInputError, ServiceError
from portfolio_backend.routes import router
from portfolio_backend.schemas import HealthResponse

logger = logging.getLogger(__name__)


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    error = InvalidInputError(
        "Invalid request", extra={"errors": jsonable_encoder(exc.errors())}
    )
    return JSONResponse(status_code=error.status_code, content=error.as_dict())


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"message": "Something went wrong!", "kind": "internal"},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Portfolio Server", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(
            status="OK",
            message="Portfolio Server is running",
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
