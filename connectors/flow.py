"""
OAuth flow — begin an authorization, complete it from the provider
callback, and disconnect.

State machine per (project, platform)::

    Disconnected --begin--> AuthorizationPending --valid callback--> Connected
    AuthorizationPending --bad state / exchange failure--> Disconnected
    Connected --begin (reconnect)--> AuthorizationPending
    Connected --disconnect--> Disconnected

A failed reconnect never touches the existing connection: the row is
only written after the token exchange succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings
from connectors.base import BaseConnector, ProviderProfile
from connectors.encryption import TokenCipher
from connectors.errors import (
    AccountAlreadyLinked,
    AuthorizationDenied,
    ConnectorError,
    InvalidOrExpiredState,
    InvalidPlatform,
    MissingParameters,
    PlatformMismatch,
    ProfileFetchFailed,
    ProviderNotConfigured,
)
from connectors.http import client_scope
from connectors.pkce import generate_pkce_pair
from connectors.platforms import Platform
from connectors.probe import CredentialProbe
from connectors.registry import ConnectorRegistry
from connectors.state_store import PendingAuthorizationStore
from connectors.store import ConnectionStore, new_disconnected
from database.helpers import require_project_access, utcnow
from database.models import ProjectConnection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationStart:
    platform: Platform
    auth_url: str
    state: str
    expires_at: datetime


def state_preview(state: str) -> str:
    return f"{state[:8]}…" if state else "<empty>"


class OAuthFlow:
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
        self.probe = CredentialProbe(self.registry)
        self.cipher = cipher or TokenCipher.from_settings(settings)
        self.http_client = http_client
        self.pending = PendingAuthorizationStore(session, settings.oauth_state_ttl_seconds)
        self.connections = ConnectionStore(session)

    # ── Authorization initiator ─────────────────────────────────────────

    def _configured_connector(self, platform: Union[Platform, str]) -> BaseConnector:
        connector = self.registry.get(platform)
        missing = self.probe.list_missing(connector.platform)
        if missing:
            raise ProviderNotConfigured(connector.platform.value, missing)
        return connector

    def build_authorization(
        self,
        platform: Union[Platform, str],
        state: str,
        code_challenge: Optional[str] = None,
    ) -> Tuple[str, str]:
        """
        Build ``(auth_url, redirect_uri)`` without persisting anything.

        Diagnostics uses this directly as a dry run.
        """
        connector = self._configured_connector(platform)
        redirect_uri = connector.redirect_uri()
        return connector.get_auth_url(state, redirect_uri, code_challenge), redirect_uri

    async def begin(self, platform: Union[Platform, str], project_id: str, user_id: str) -> AuthorizationStart:
        connector = self._configured_connector(platform)
        await require_project_access(self.session, user_id, project_id)

        code_verifier = code_challenge = None
        if connector.config.requires_pkce:
            code_verifier, code_challenge = generate_pkce_pair()

        redirect_uri = connector.redirect_uri()
        pending = await self.pending.create(
            connector.platform,
            project_id,
            user_id,
            redirect_uri,
            code_verifier=code_verifier,
        )
        auth_url = connector.get_auth_url(pending.state, redirect_uri, code_challenge)
        await self.session.commit()

        logger.info(
            "OAuth authorization started: platform=%s project=%s state=%s pkce=%s",
            connector.platform.value,
            project_id,
            state_preview(pending.state),
            bool(code_verifier),
        )
        return AuthorizationStart(
            platform=connector.platform,
            auth_url=auth_url,
            state=pending.state,
            expires_at=pending.expires_at,
        )

    # ── Callback handler ────────────────────────────────────────────────

    async def complete(
        self,
        platform: Union[Platform, str],
        code: str,
        state: str,
        project_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ProjectConnection:
        """
        Validate the callback, exchange ``code`` for tokens and persist the
        connection.

        The pending row is consumed and committed before any network call,
        so a replayed callback fails with ``InvalidOrExpiredState`` no
        matter how the exchange turns out.
        """
        if not code or not state:
            raise MissingParameters("code and state are required")

        try:
            pending = await self.pending.consume(state)
        finally:
            # Expired rows are deleted by consume too; keep that even when it raises.
            await self.session.commit()

        if user_id is not None and pending.user_id != user_id:
            raise InvalidOrExpiredState(f"state belongs to another user ({state_preview(state)})")
        if project_id and pending.project_id != project_id:
            raise InvalidOrExpiredState(f"state belongs to another project ({state_preview(state)})")

        raw_platform = platform.value if isinstance(platform, Platform) else str(platform or "")
        try:
            requested = Platform.parse(raw_platform)
        except InvalidPlatform:
            raise PlatformMismatch(pending.platform, raw_platform) from None
        if requested.value != pending.platform:
            raise PlatformMismatch(pending.platform, requested.value)

        connector = self._configured_connector(requested)
        async with client_scope(self.settings, self.http_client) as client:
            tokens = await connector.exchange_code(
                client,
                code,
                pending.redirect_uri,
                code_verifier=pending.code_verifier,
            )
            try:
                profile = await connector.fetch_profile(client, tokens.access_token)
            except ProfileFetchFailed as exc:
                logger.warning("Profile fetch failed for %s, continuing without it: %s", requested.value, exc)
                profile = ProviderProfile()

        if profile.account_id:
            other = await self.connections.find_linked_elsewhere(
                requested, profile.account_id, pending.user_id, pending.project_id
            )
            if other is not None:
                raise AccountAlreadyLinked(requested.value, other.name or "another project")

        now = utcnow()
        row = await self.connections.upsert(
            pending.project_id,
            requested,
            {
                "connected": True,
                "username": profile.username or profile.display_name,
                "display_name": profile.display_name or profile.username,
                "account_id": profile.account_id,
                "site_url": None,
                "followers_snapshot": profile.followers,
                "access_token_ref": self.cipher.encrypt(tokens.access_token),
                "refresh_token_ref": self.cipher.encrypt(tokens.refresh_token) if tokens.refresh_token else None,
                "token_expires_at": now + timedelta(seconds=tokens.expires_in) if tokens.expires_in else None,
                "last_refresh_at": now,
                "scopes": tokens.scopes,
            },
            written_at=now,
        )
        await self.session.commit()

        logger.info(
            "OAuth connected: platform=%s project=%s account=%s",
            requested.value,
            pending.project_id,
            row.username or "<unknown>",
        )
        return row

    async def deny(
        self,
        platform: Union[Platform, str],
        state: str,
        error: str,
        description: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """
        Handle a callback carrying ``error`` (user declined, app
        misconfigured at the provider). The pending row is dropped so the
        attempt ends now instead of at its TTL, then ``AuthorizationDenied``
        is raised with the provider's description.
        """
        raw_platform = platform.value if isinstance(platform, Platform) else str(platform or "")
        pending = await self.pending.get(state) if state else None
        if pending is not None and (user_id is None or pending.user_id == user_id):
            try:
                await self.pending.consume(state)
            except InvalidOrExpiredState:
                pass  # raced with another callback or already past its TTL
            finally:
                await self.session.commit()
        logger.info(
            "Provider denied authorization: platform=%s state=%s error=%s",
            raw_platform or "<unknown>",
            state_preview(state),
            error,
        )
        raise AuthorizationDenied(raw_platform, error, description)

    # ── Disconnect ──────────────────────────────────────────────────────

    async def disconnect(self, platform: Union[Platform, str], project_id: str, user_id: str) -> ProjectConnection:
        """
        Clear the connection; idempotent. A platform that was never
        connected yields a disconnected placeholder instead of an error.
        """
        if not isinstance(platform, Platform):
            platform = Platform.parse(platform)
        await require_project_access(self.session, user_id, project_id)

        row = await self.connections.get_one(project_id, platform)
        if row is None:
            logger.info("Disconnect of never-connected %s for project %s", platform.value, project_id)
            return new_disconnected(project_id, platform)
        if not row.connected:
            return row

        if platform.is_oauth and row.access_token_ref:
            await self._revoke_quietly(platform, self.cipher.decrypt(row.access_token_ref))

        row = await self.connections.clear(project_id, platform)
        await self.session.commit()
        logger.info("Disconnected %s for project %s", platform.value, project_id)
        return row

    async def _revoke_quietly(self, platform: Platform, access_token: str) -> None:
        connector = self.registry.get(platform)
        try:
            async with client_scope(self.settings, self.http_client) as client:
                revoked = await connector.revoke_token(client, access_token)
            logger.debug("Provider revocation for %s: %s", platform.value, "ok" if revoked else "skipped")
        except (httpx.HTTPError, ConnectorError) as exc:
            logger.warning("Provider revocation failed for %s (local disconnect continues): %s", platform.value, exc)
