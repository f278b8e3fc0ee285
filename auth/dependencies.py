"""
FastAPI dependencies for authentication.

Provides ``db_session``, ``get_settings`` and ``get_current_user_id``
dependencies that are used across all protected routes.
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings, config
from connectors.errors import NotAuthenticated
from database.session import get_db_session

_bearer_scheme = HTTPBearer(auto_error=False)


async def db_session(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers."""
    yield session


def get_settings() -> Settings:
    """Overridable in tests via ``app.dependency_overrides``."""
    return config


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Extract and verify the Bearer token, returning the authenticated
    ``user_id``.
    """
    from auth.jwt import verify_token

    if credentials is None or not credentials.credentials:
        raise NotAuthenticated("Missing Bearer token")
    return verify_token(credentials.credentials, settings)
