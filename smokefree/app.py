from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from smokefree.app_factory import ServiceContainer, build_container
from smokefree.core.errors import ServiceError, StorageError
from smokefree.core.logging import get_logger, set_correlation_id
from smokefree.routers import auth as auth_router
from smokefree.routers import subscriptions as subscriptions_router

logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject baseline security headers on every API response."""

    def __init__(self, app, *, enforce_hsts: bool) -> None:
        super().__init__(app)
        self._enforce_hsts = enforce_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cache-Control", "no-store")
        if self._enforce_hsts:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response


def _error_response(exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.error_code, "message": exc.message},
    )


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    container = container or build_container()
    settings = container.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container.db.create_all()
        if settings.reconciler_enabled:
            await container.worker.start()
        logger.info("app_started", app_env=settings.app_env, reconciler_enabled=settings.reconciler_enabled)
        try:
            yield
        finally:
            await container.worker.stop()
            logger.info("app_stopped")

    app = FastAPI(title="SmokeFree Identity API", lifespan=lifespan)
    app.state.container = container

    allowed_cors = {settings.public_base_url}
    if settings.app_env != "prod":
        allowed_cors.update({"http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"})
    allowed_cors = {origin for origin in allowed_cors if origin}
    app.add_middleware(
        CORSMiddleware,
        allow_origins=sorted(allowed_cors),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware, enforce_hsts=settings.app_env == "prod")

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):
        correlation_id = set_correlation_id(request.headers.get("x-request-id"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        return response

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.error_code, message=exc.message)
        return _error_response(exc)

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("storage_error", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
        return _error_response(StorageError())

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(auth_router.router)
    app.include_router(subscriptions_router.router)
    return app
