"""
Database helper functions shared by the connection services.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.errors import MissingParameters, ProjectAccessDenied
from database.models import Project

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def require_project_access(session: AsyncSession, user_id: str, project_id: str) -> Project:
    """Return the project if ``user_id`` owns it, else raise ``ProjectAccessDenied``."""
    if not project_id:
        raise MissingParameters("projectId is required")
    result = await session.execute(select(Project).where(Project.project_id == project_id))
    project = result.scalar_one_or_none()
    if project is None or project.owner_user_id != user_id:
        logger.info("Project access denied: user=%s project=%s", user_id, project_id)
        raise ProjectAccessDenied(f"user {user_id} cannot access project {project_id}")
    return project
