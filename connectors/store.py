"""
Connection store — one durable row per (project, platform).

Rows are never deleted: disconnecting clears the token refs and flips
``connected`` off. Writes that carry token material go through
``upsert``, which applies a compare-and-set on ``token_written_at`` so
that of two racing completions the later-timestamped one wins and the
earlier one is dropped without an error. Flipping ``auto_post`` bumps
``updated_at`` only, so it never makes a token write look stale.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.platforms import Platform
from database.helpers import utcnow
from database.models import Project, ProjectConnection

logger = logging.getLogger(__name__)

# Columns reset by a disconnect; auto_post and timestamps survive.
_CLEARED_FIELDS: Dict[str, Any] = {
    "connected": False,
    "username": None,
    "display_name": None,
    "account_id": None,
    "site_url": None,
    "followers_snapshot": None,
    "access_token_ref": None,
    "refresh_token_ref": None,
    "token_expires_at": None,
    "last_refresh_at": None,
    "scopes": [],
}


def _cleared_values() -> Dict[str, Any]:
    return {name: list(value) if isinstance(value, list) else value for name, value in _CLEARED_FIELDS.items()}


def check_token_refs(connected: bool, access_token_ref: Optional[str], refresh_token_ref: Optional[str]) -> None:
    """Connected rows hold an access token ref; disconnected rows hold none."""
    if connected and not access_token_ref:
        raise ValueError("connected connection must carry an access token ref")
    if not connected and (access_token_ref or refresh_token_ref):
        raise ValueError("disconnected connection must not carry token refs")


def new_disconnected(project_id: str, platform: Platform) -> ProjectConnection:
    """Transient placeholder for a platform that has never been connected."""
    now = utcnow()
    return ProjectConnection(
        project_id=project_id,
        platform=platform.value,
        auto_post=False,
        created_at=now,
        updated_at=now,
        **_cleared_values(),
    )


class ConnectionStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, project_id: str) -> List[ProjectConnection]:
        result = await self.session.execute(
            select(ProjectConnection).where(ProjectConnection.project_id == project_id)
        )
        return list(result.scalars().all())

    async def get_one(self, project_id: str, platform: Platform) -> Optional[ProjectConnection]:
        result = await self.session.execute(
            select(ProjectConnection).where(
                ProjectConnection.project_id == project_id,
                ProjectConnection.platform == platform.value,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        project_id: str,
        platform: Platform,
        values: Dict[str, Any],
        *,
        written_at: Optional[datetime] = None,
    ) -> ProjectConnection:
        """
        Create or update the row for (project, platform) in place.

        ``values`` must describe a full token state (``connected`` plus
        both refs). A write older than the row's last token write is
        superseded silently and the current row is returned.
        """
        check_token_refs(
            values.get("connected", False),
            values.get("access_token_ref"),
            values.get("refresh_token_ref"),
        )
        written_at = written_at or utcnow()

        existing = await self.get_one(project_id, platform)
        if existing is None:
            row = ProjectConnection(
                project_id=project_id,
                platform=platform.value,
                created_at=written_at,
                updated_at=written_at,
                token_written_at=written_at,
                **values,
            )
            try:
                async with self.session.begin_nested():
                    self.session.add(row)
                logger.info("Created %s connection for project %s", platform.value, project_id)
                return row
            except IntegrityError:
                # Lost the insert race; the other writer's row exists now.
                logger.info("Concurrent insert for %s/%s, updating instead", project_id, platform.value)
                existing = await self.get_one(project_id, platform)
                if existing is None:
                    raise

        result = await self.session.execute(
            update(ProjectConnection)
            .where(
                ProjectConnection.id == existing.id,
                or_(
                    ProjectConnection.token_written_at.is_(None),
                    ProjectConnection.token_written_at <= written_at,
                ),
            )
            .values(updated_at=utcnow(), token_written_at=written_at, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(
                "Write for %s/%s superseded by a newer update",
                project_id,
                platform.value,
            )
        else:
            logger.info("Updated %s connection for project %s", platform.value, project_id)
        await self.session.refresh(existing)
        return existing

    async def set_auto_post(self, project_id: str, platform: Platform, enabled: bool) -> ProjectConnection:
        row = await self.get_one(project_id, platform)
        if row is None:
            row = new_disconnected(project_id, platform)
            row.auto_post = enabled
            self.session.add(row)
        else:
            row.auto_post = enabled
            row.updated_at = utcnow()
        await self.session.flush()
        return row

    async def clear(self, project_id: str, platform: Platform) -> Optional[ProjectConnection]:
        """Disconnect in place. Returns None when no row exists."""
        row = await self.get_one(project_id, platform)
        if row is None:
            return None
        for name, value in _cleared_values().items():
            setattr(row, name, value)
        row.updated_at = row.token_written_at = utcnow()
        await self.session.flush()
        return row

    async def find_linked_elsewhere(
        self,
        platform: Platform,
        account_id: str,
        owner_user_id: str,
        exclude_project_id: str,
    ) -> Optional[Project]:
        """Another project of the same owner already connected to this provider account."""
        result = await self.session.execute(
            select(Project)
            .join(ProjectConnection, ProjectConnection.project_id == Project.project_id)
            .where(
                Project.owner_user_id == owner_user_id,
                Project.project_id != exclude_project_id,
                ProjectConnection.platform == platform.value,
                ProjectConnection.account_id == account_id,
                ProjectConnection.connected.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()
