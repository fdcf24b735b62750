"""
FastAPI Application
===================
Intake API application factory with request context and error mapping.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import AppConfig, get_config
from ..database import dispose_engine
from ..exceptions import (
    ActiveSessionExistsError,
    ConfigurationError,
    ConnectorError,
    DocumentNotFoundError,
    IngestionError,
    SessionNotFoundError,
    StorageError,
    ValidationError,
)
from ..logging_config import configure_logging, correlation_id
from .models import ErrorResponse, HealthResponse
from .routes import (
    batches_router,
    connectors_router,
    documents_router,
    inbox_router,
    sessions_router,
)


logger = logging.getLogger(__name__)

# Most specific first
_ERROR_STATUS: list[tuple[type[IngestionError], int, str]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST, "validation_error"),
    (DocumentNotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (ActiveSessionExistsError, status.HTTP_409_CONFLICT, "conflict"),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST, "configuration_error"),
    (ConnectorError, status.HTTP_502_BAD_GATEWAY, "connector_error"),
    (StorageError, status.HTTP_502_BAD_GATEWAY, "storage_error"),
]


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a correlation id to the request for log records."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        token = correlation_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        config: Application configuration. Uses the process-wide config if not provided.

    Returns:
        Configured FastAPI application.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(level=config.api.log_level, json_output=config.api.json_logs)
        logger.info(f"Starting {config.api.title} {config.api.version}")

        yield

        extraction = getattr(app.state, "extraction_service", None)
        if extraction is not None:
            await extraction.close()
        await dispose_engine()
        logger.info("Shutting down API...")

    app = FastAPI(
        title=config.api.title,
        version=config.api.version,
        debug=config.api.debug,
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(RequestContextMiddleware)
    _setup_exception_handlers(app)
    _setup_routes(app, config)

    return app


def _error_response(request: Request, status_code: int, error: str, message: str, details=None) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None) or str(uuid4())
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            message=message,
            details=details,
            request_id=request_id,
        ).model_dump(mode="json"),
    )


def _setup_exception_handlers(app: FastAPI) -> None:
    """Configure global exception handlers."""

    @app.exception_handler(IngestionError)
    async def ingestion_exception_handler(request: Request, exc: IngestionError) -> JSONResponse:
        for exc_type, status_code, error in _ERROR_STATUS:
            if isinstance(exc, exc_type):
                details = None
                if isinstance(exc, ActiveSessionExistsError):
                    details = {"active_session_id": exc.active_session_id}
                logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
                return _error_response(request, status_code, error, str(exc), details)

        logger.error(f"Intake error on {request.url.path}: {exc}")
        return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(request, exc.status_code, _status_to_error_code(exc.status_code), str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = []
        for error in exc.errors():
            loc = ".".join(str(part) for part in error["loc"])
            errors.append(f"{loc}: {error['msg']}")

        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "validation_error",
            "Request validation failed",
            {"errors": errors},
        )


def _setup_routes(app: FastAPI, config: AppConfig) -> None:
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        return HealthResponse(status="healthy", version=config.api.version)

    app.include_router(documents_router)
    app.include_router(sessions_router)
    app.include_router(batches_router)
    app.include_router(connectors_router)
    app.include_router(inbox_router)


def _status_to_error_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        422: "validation_error",
        500: "internal_error",
        502: "bad_gateway",
    }
    return mapping.get(status_code, "error")


def main() -> None:
    """CLI entry point for running the API."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="Document Intake API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    if args.reload:
        uvicorn.run("docintake.api.app:create_app", factory=True, host=args.host, port=args.port, reload=True)
    else:
        uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
