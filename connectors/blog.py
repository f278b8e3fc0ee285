"""
BlogConnector — WordPress sites linked with an Application Password.

No redirect flow: the credentials are checked against the site's REST
API once and, if accepted, stored encrypted on the ``blog`` connection.
Disconnecting goes through ``OAuthFlow.disconnect`` like any platform.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings
from connectors.encryption import TokenCipher
from connectors.errors import BlogCredentialsInvalid, MissingParameters
from connectors.http import client_scope, send_with_retry
from connectors.platforms import Platform
from connectors.store import ConnectionStore
from database.helpers import require_project_access, utcnow
from database.models import ProjectConnection

logger = logging.getLogger(__name__)

_WP_ME_PATH = "/wp-json/wp/v2/users/me"


def normalize_site_url(site_url: str) -> str:
    url = (site_url or "").strip().rstrip("/")
    if url and "://" not in url:
        url = f"https://{url}"
    return url


class BlogConnector:
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        *,
        cipher: Optional[TokenCipher] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.session = session
        self.settings = settings
        self.cipher = cipher or TokenCipher.from_settings(settings)
        self.http_client = http_client
        self.connections = ConnectionStore(session)

    async def connect(
        self,
        project_id: str,
        user_id: str,
        site_url: str,
        username: str,
        application_password: str,
    ) -> ProjectConnection:
        if not (project_id and site_url and username and application_password):
            raise MissingParameters("projectId, siteUrl, username and applicationPassword are required")
        await require_project_access(self.session, user_id, project_id)

        site = normalize_site_url(site_url)
        async with client_scope(self.settings, self.http_client) as client:
            try:
                resp = await send_with_retry(
                    client,
                    "GET",
                    f"{site}{_WP_ME_PATH}",
                    retries=self.settings.oauth_http_retries,
                    auth=(username, application_password),
                )
            except httpx.TransportError as exc:
                raise BlogCredentialsInvalid(f"could not reach {site}: {exc.__class__.__name__}") from exc

        if resp.is_error:
            logger.warning("WordPress validation failed for %s: HTTP %d", site, resp.status_code)
            raise BlogCredentialsInvalid(f"{site} returned HTTP {resp.status_code}")
        try:
            wp_user = resp.json()
        except ValueError as exc:
            raise BlogCredentialsInvalid(f"{site} did not return JSON; is the REST API enabled?") from exc
        if not isinstance(wp_user, dict):
            raise BlogCredentialsInvalid(f"{site} returned {type(wp_user).__name__} for the current user")

        display = wp_user.get("name") or username
        row = await self.connections.upsert(
            project_id,
            Platform.BLOG,
            {
                "connected": True,
                "username": display,
                "display_name": display,
                "account_id": str(wp_user["id"]) if wp_user.get("id") is not None else None,
                "site_url": site,
                "followers_snapshot": None,
                "access_token_ref": self.cipher.encrypt(application_password),
                "refresh_token_ref": None,
                "token_expires_at": None,
                "last_refresh_at": utcnow(),
                "scopes": [],
            },
        )
        await self.session.commit()
        logger.info("WordPress connected: project=%s site=%s user=%s", project_id, site, display)
        return row
