"""
Pending authorization store — server-side CSRF state for in-flight OAuth
attempts.

Rows are keyed by the state token itself. A state is consumed exactly
once: ``consume`` deletes the row and only the caller whose DELETE hit the
row gets it back, so two racing callbacks cannot both proceed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.errors import InvalidOrExpiredState
from connectors.platforms import Platform
from database.helpers import as_utc, utcnow
from database.models import PendingAuthorization

logger = logging.getLogger(__name__)

STATE_BYTES = 32


def new_state_token() -> str:
    # 256 bits, URL-safe, 43 characters
    return secrets.token_urlsafe(STATE_BYTES)


class PendingAuthorizationStore:
    def __init__(self, session: AsyncSession, ttl_seconds: int = 600) -> None:
        self.session = session
        self.ttl = timedelta(seconds=ttl_seconds)

    async def create(
        self,
        platform: Platform,
        project_id: str,
        user_id: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> PendingAuthorization:
        """Record a fresh attempt, superseding any earlier one for the same project/platform."""
        await self.sweep_expired()
        superseded = await self.session.execute(
            delete(PendingAuthorization)
            .where(
                PendingAuthorization.project_id == project_id,
                PendingAuthorization.platform == platform.value,
            )
            .execution_options(synchronize_session=False)
        )
        if superseded.rowcount:
            logger.info(
                "Superseded %d pending %s authorization(s) for project %s",
                superseded.rowcount,
                platform.value,
                project_id,
            )

        now = utcnow()
        pending = PendingAuthorization(
            state=new_state_token(),
            platform=platform.value,
            project_id=project_id,
            user_id=user_id,
            redirect_uri=redirect_uri,
            code_verifier=code_verifier,
            created_at=now,
            expires_at=now + self.ttl,
        )
        self.session.add(pending)
        await self.session.flush()
        return pending

    async def get(self, state: str) -> Optional[PendingAuthorization]:
        result = await self.session.execute(
            select(PendingAuthorization).where(PendingAuthorization.state == state)
        )
        return result.scalar_one_or_none()

    async def consume(self, state: str) -> PendingAuthorization:
        """
        Atomically remove and return the pending row for ``state``.

        Raises ``InvalidOrExpiredState`` when the state is unknown, already
        consumed, or past its TTL (expired rows are removed as well).
        """
        pending = await self.get(state)
        if pending is None:
            raise InvalidOrExpiredState("state not found")

        result = await self.session.execute(
            delete(PendingAuthorization)
            .where(PendingAuthorization.state == state)
            .execution_options(synchronize_session=False)
        )
        self.session.expunge(pending)
        await self.session.flush()
        if result.rowcount != 1:
            raise InvalidOrExpiredState("state already consumed")

        if as_utc(pending.expires_at) <= utcnow():
            raise InvalidOrExpiredState("state expired")
        return pending

    async def sweep_expired(self) -> int:
        """Delete every pending row past its TTL. Returns the count removed."""
        result = await self.session.execute(
            delete(PendingAuthorization)
            .where(PendingAuthorization.expires_at <= utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.debug("Reclaimed %d expired pending authorizations", result.rowcount)
        return result.rowcount or 0
