"""
FastAPI application entry point for the portfolio backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from starlette.staticfiles import StaticFiles

from portfolio.config import Settings, get_settings
from portfolio.dependencies import Services, build_services
from portfolio.errors import NotFoundError, PortfolioError
from portfolio.routes import router
from portfolio.schemas import describe_validation_errors

logger = logging.getLogger(__name__)


# Headers of a stock helmet() setup, without Content-Security-Policy.
SECURITY_HEADERS = {
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def _register_security_headers(app: FastAPI) -> None:
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PortfolioError)
    async def portfolio_error_handler(request: Request, exc: PortfolioError):
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s",
                request.method,
                request.url.path,
                exc.message,
                exc_info=exc,
            )
        else:
            logger.warning(
                "%s %s -> %d: %s",
                request.method,
                request.url.path,
                exc.status_code,
                exc.message,
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        message = describe_validation_errors(exc.errors())
        logger.warning("%s %s -> 422: %s", request.method, request.url.path, message)
        return JSONResponse(status_code=422, content={"error": message})


def _mount_static(app: FastAPI, settings: Settings) -> None:
    if settings.file_storage == "local":
        app.mount(
            settings.upload_url_prefix,
            StaticFiles(directory=settings.upload_dir, check_dir=False),
            name="uploads",
        )

    public_dir = Path(settings.public_dir)
    if not public_dir.is_dir():
        logger.info("No front-end directory at %s, serving the API only", public_dir)
        return

    admin_index = public_dir / "admin" / "index.html"

    @app.get("/admin", include_in_schema=False)
    def admin_panel():
        if not admin_index.is_file():
            raise NotFoundError("Admin panel not found")
        return FileResponse(admin_index)

    app.mount("/", StaticFiles(directory=public_dir, html=True), name="public")


def create_app(
    settings: Optional[Settings] = None, services: Optional[Services] = None
) -> FastAPI:
    settings = settings or get_settings()
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.open()
        logger.info("Portfolio backend ready on port %d", settings.port)
        yield
        services.close()
        logger.info("Portfolio backend stopped")

    app = FastAPI(title="Portfolio Backend", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_security_headers(app)
    _register_exception_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health", response_class=PlainTextResponse)
    def health():
        return "OK"

    _mount_static(app, settings)
    return app


app = create_app()
