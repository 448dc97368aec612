"""Shared dependencies for MillesBTP web routes.

Authentication happens upstream: the proxy in front of the API sets the
X-User-Id header to the authenticated actor. Routes only ever act on
behalf of that actor.

Usage:
    from fastapi import Depends
    from millesbtp.web.dependencies import get_worksite_service

    @router.get("/api/worksites")
    async def list_worksites(service: WorksiteService = Depends(get_worksite_service)):
        ...
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from millesbtp.db.connection import get_session_factory
from millesbtp.worksites import WorksiteService


def get_actor(x_user_id: str | None = Header(default=None)) -> str:
    """Authenticated actor id, or 401 when the header is missing."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()


def get_sessions() -> async_sessionmaker[AsyncSession]:
    """Session factory; overridden in tests."""
    return get_session_factory()


def get_worksite_service(
    actor: str = Depends(get_actor),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
) -> WorksiteService:
    return WorksiteService(sessions, actor)
