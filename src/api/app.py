"""FastAPI application factory for the operator API."""

from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.cors import CORSMiddleware

from src.errors import (
    DomainValidationError,
    SentinelError,
    TechnicalError,
    TokenNotFoundError,
    TradeExecutionError,
    VenueNotImplementedError,
)
from src.services import Services


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto HTTP statuses."""

    @app.exception_handler(TokenNotFoundError)
    async def _not_found(request: Request, exc: TokenNotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(DomainValidationError)
    async def _invalid(request: Request, exc: DomainValidationError) -> JSONResponse:
        return _error(400, exc)

    @app.exception_handler(VenueNotImplementedError)
    async def _not_implemented(request: Request, exc: VenueNotImplementedError) -> JSONResponse:
        return _error(501, exc)

    @app.exception_handler(TradeExecutionError)
    async def _trade_failed(request: Request, exc: TradeExecutionError) -> JSONResponse:
        logger.error(f"[API] {request.method} {request.url.path}: {exc}")
        return _error(502, exc)

    @app.exception_handler(TechnicalError)
    async def _technical(request: Request, exc: TechnicalError) -> JSONResponse:
        logger.error(f"[API] {request.method} {request.url.path}: {exc}")
        return _error(500, exc)

    @app.exception_handler(SentinelError)
    async def _other(request: Request, exc: SentinelError) -> JSONResponse:
        logger.error(f"[API] {request.method} {request.url.path}: {exc}")
        return _error(500, exc)


def create_app(services: Services) -> FastAPI:
    """Build and configure the FastAPI application."""
    app = FastAPI(
        title="Token Sentinel API",
        version="0.1.0",
        docs_url="/api/docs" if os.getenv("SENTINEL_DEBUG") else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if os.getenv("SENTINEL_DEBUG") else None,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    from src.api.routers.discovery import router as discovery_router
    from src.api.routers.health import router as health_router
    from src.api.routers.positions import router as positions_router
    from src.api.routers.stats import router as stats_router
    from src.api.routers.tokens import router as tokens_router
    from src.api.routers.trades import router as trades_router
    from src.api.routers.webhooks import router as webhooks_router

    app.include_router(health_router)
    app.include_router(stats_router)
    app.include_router(discovery_router)
    app.include_router(tokens_router)
    app.include_router(trades_router)
    app.include_router(positions_router)
    app.include_router(webhooks_router)

    return app
