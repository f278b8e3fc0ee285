"""
Token manager — hand out a usable access token for (project, platform),
refreshing it silently when it is about to expire.

Expired tokens that cannot be refreshed raise ``ReconnectRequired``; the
connection row itself is left untouched so the UI keeps showing the
account until the user reconnects or disconnects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings
from connectors.encryption import TokenCipher
from connectors.errors import ConnectionNotFound, ReconnectRequired, TokenExchangeFailed
from connectors.http import client_scope
from connectors.platforms import Platform
from connectors.registry import ConnectorRegistry
from connectors.store import ConnectionStore
from database.helpers import as_utc, utcnow
from database.models import ProjectConnection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenStatus:
    platform: Platform
    status: str  # valid | expiring_soon | expired | refreshed
    expires_at: Optional[datetime]


class TokenService:
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        *,
        registry: Optional[ConnectorRegistry] = None,
        cipher: Optional[TokenCipher] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.session = session
        self.settings = settings
        self.registry = registry or ConnectorRegistry(settings)
        self.cipher = cipher or TokenCipher.from_settings(settings)
        self.http_client = http_client
        self.connections = ConnectionStore(session)
        self.buffer = timedelta(seconds=settings.token_refresh_buffer_seconds)

    async def _connected_row(self, project_id: str, platform: Platform) -> ProjectConnection:
        row = await self.connections.get_one(project_id, platform)
        if row is None or not row.connected:
            raise ConnectionNotFound(f"{platform.value} is not connected for project {project_id}")
        return row

    def _needs_refresh(self, row: ProjectConnection) -> bool:
        expires_at = as_utc(row.token_expires_at)
        return expires_at is not None and expires_at - self.buffer <= utcnow()

    async def _refresh(self, row: ProjectConnection, platform: Platform) -> ProjectConnection:
        connector = self.registry.get(platform)
        refresh_token = self.cipher.decrypt(row.refresh_token_ref)
        try:
            async with client_scope(self.settings, self.http_client) as client:
                tokens = await connector.refresh_access_token(client, refresh_token)
        except TokenExchangeFailed as exc:
            logger.warning("Token refresh failed for %s/%s: %s", row.project_id, platform.value, exc.reason)
            raise ReconnectRequired(platform.value, exc.reason) from exc

        now = utcnow()
        row.access_token_ref = self.cipher.encrypt(tokens.access_token)
        # Some providers rotate refresh tokens
        if tokens.refresh_token:
            row.refresh_token_ref = self.cipher.encrypt(tokens.refresh_token)
        row.token_expires_at = now + timedelta(seconds=tokens.expires_in) if tokens.expires_in else None
        row.last_refresh_at = now
        row.updated_at = now
        row.token_written_at = now
        await self.session.commit()
        logger.info("Refreshed %s token for project %s", platform.value, row.project_id)
        return row

    async def _ensure_fresh(self, project_id: str, platform: Platform) -> tuple[ProjectConnection, bool]:
        row = await self._connected_row(project_id, platform)
        if not platform.is_oauth or not self._needs_refresh(row):
            return row, False
        if not row.refresh_token_ref:
            if as_utc(row.token_expires_at) <= utcnow():
                raise ReconnectRequired(platform.value, "token expired and no refresh token is stored")
            return row, False
        return await self._refresh(row, platform), True

    async def get_active_token(self, project_id: str, platform: Platform) -> str:
        """Return a decrypted access token that is valid right now."""
        row, _ = await self._ensure_fresh(project_id, platform)
        return self.cipher.decrypt(row.access_token_ref)

    async def token_status(self, project_id: str, platform: Platform) -> TokenStatus:
        """Like ``get_active_token`` but reports health instead of the token."""
        try:
            row, refreshed = await self._ensure_fresh(project_id, platform)
        except ReconnectRequired:
            row = await self._connected_row(project_id, platform)
            return TokenStatus(platform, "expired", as_utc(row.token_expires_at))

        expires_at = as_utc(row.token_expires_at)
        if refreshed:
            status = "refreshed"
        elif expires_at is None:
            status = "valid"
        elif expires_at <= utcnow():
            status = "expired"
        elif expires_at - self.buffer <= utcnow():
            status = "expiring_soon"
        else:
            status = "valid"
        return TokenStatus(platform, status, expires_at)
