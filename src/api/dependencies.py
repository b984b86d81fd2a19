"""FastAPI dependency injection: DB session and the service container."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session (auto-closes)."""
    async with get_services(request).session_factory() as session:
        yield session
