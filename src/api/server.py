"""Operator API server: runs uvicorn inside the pipeline's event loop."""

from __future__ import annotations

import uvicorn
from loguru import logger

from config.settings import settings
from src.services import Services


async def run_api_server(services: Services) -> None:
    """Serve the operator API until cancelled.

    Uses ``uvicorn.Server.serve()`` so it shares the loop with the
    coordinators instead of spawning its own.
    """
    from src.api.app import create_app

    app = create_app(services)
    config = uvicorn.Config(
        app=app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="warning",
        loop="none",
    )
    server = uvicorn.Server(config)
    logger.info(f"Operator API starting on http://{settings.api_host}:{settings.api_port}")
    await server.serve()
