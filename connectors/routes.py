"""
Connection API routes — authorize, callback, disconnect, list/update
connections, WordPress, token status and diagnostics.

Route prefix: /api/v1
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session, get_current_user_id, get_settings
from config.settings import Settings
from connectors.blog import BlogConnector
from connectors.diagnostics import DiagnosticsService, copy_all_logs
from connectors.flow import OAuthFlow
from connectors.platforms import Platform
from connectors.registry import ConnectorRegistry
from connectors.schemas import (
    AuthorizeResponse,
    CallbackRequest,
    CallbackResponse,
    ConnectionsResponse,
    ConnectionsUpdateRequest,
    ConnectionView,
    DiagnosticsResponse,
    DisconnectRequest,
    DisconnectResponse,
    PlatformReportView,
    TokenStatusResponse,
    WordPressConnectRequest,
    WordPressDisconnectRequest,
    connection_views,
)
from connectors.store import ConnectionStore
from connectors.tokens import TokenService
from database.helpers import require_project_access

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connections"])


def get_http_client() -> Optional[httpx.AsyncClient]:
    """Provider HTTP client; ``None`` lets each service open a short-lived one."""
    return None


async def _connections_for(session: AsyncSession, project_id: str) -> List[ConnectionView]:
    return connection_views(await ConnectionStore(session).get(project_id))


# ── Providers ──────────────────────────────────────────────────────────


@router.get("/oauth/providers")
async def list_providers(settings: Settings = Depends(get_settings)) -> List[Dict[str, Any]]:
    """
    List OAuth providers and whether their client credentials are set.
    No auth required; never includes credential values.
    """
    return ConnectorRegistry(settings).list_providers()


# ── OAuth flow ─────────────────────────────────────────────────────────


@router.get("/oauth/authorize/{platform}", response_model=AuthorizeResponse)
async def authorize(
    platform: str,
    project_id: str = Query("", alias="projectId"),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> AuthorizeResponse:
    """
    Start an authorization. The frontend opens ``authUrl`` in a popup;
    ``state`` is returned for display only, the server's pending record
    is what the callback is checked against.
    """
    flow = OAuthFlow(session, settings, http_client=http_client)
    start = await flow.begin(platform, project_id, user_id)
    return AuthorizeResponse(
        auth_url=start.auth_url,
        state=start.state,
        platform=start.platform,
        expires_at=start.expires_at,
    )


async def _complete(
    request: CallbackRequest,
    user_id: str,
    session: AsyncSession,
    settings: Settings,
    http_client: Optional[httpx.AsyncClient],
) -> CallbackResponse:
    flow = OAuthFlow(session, settings, http_client=http_client)
    if request.error:
        await flow.deny(
            request.platform,
            request.state,
            request.error,
            request.error_description,
            user_id=user_id,
        )
    row = await flow.complete(
        request.platform,
        request.code,
        request.state,
        project_id=request.project_id,
        user_id=user_id,
    )
    return CallbackResponse(
        platform=Platform(row.platform),
        username=row.username,
        connection=ConnectionView.from_row(row),
        connections=await _connections_for(session, row.project_id),
    )


@router.get("/oauth/callback", response_model=CallbackResponse)
async def oauth_callback(
    code: str = Query(""),
    state: str = Query(""),
    platform: str = Query(""),
    project_id: Optional[str] = Query(None, alias="projectId"),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> CallbackResponse:
    """Callback page relays the provider's query string here."""
    request = CallbackRequest(
        code=code,
        state=state,
        platform=platform,
        project_id=project_id,
        error=error,
        error_description=error_description,
    )
    return await _complete(request, user_id, session, settings, http_client)


@router.post("/oauth/callback", response_model=CallbackResponse)
async def oauth_callback_post(
    body: CallbackRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> CallbackResponse:
    return await _complete(body, user_id, session, settings, http_client)


@router.post("/oauth/disconnect", response_model=DisconnectResponse)
async def oauth_disconnect(
    body: DisconnectRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> DisconnectResponse:
    """Disconnect a platform; disconnecting twice is not an error."""
    flow = OAuthFlow(session, settings, http_client=http_client)
    row = await flow.disconnect(body.platform, body.project_id, user_id)
    return DisconnectResponse(
        connection=ConnectionView.from_row(row),
        connections=await _connections_for(session, body.project_id),
    )


@router.get("/oauth/token-status/{platform}", response_model=TokenStatusResponse)
async def token_status(
    platform: str,
    project_id: str = Query("", alias="projectId"),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> TokenStatusResponse:
    """Report token health, refreshing silently when due. Never returns the token."""
    parsed = Platform.parse(platform)
    await require_project_access(session, user_id, project_id)
    status = await TokenService(session, settings, http_client=http_client).token_status(project_id, parsed)
    return TokenStatusResponse(platform=status.platform, status=status.status, expires_at=status.expires_at)


# ── Connections ────────────────────────────────────────────────────────


@router.get("/connections", response_model=ConnectionsResponse)
async def list_connections(
    project_id: str = Query("", alias="projectId"),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> ConnectionsResponse:
    """All nine platforms for the project, redacted."""
    await require_project_access(session, user_id, project_id)
    return ConnectionsResponse(connections=await _connections_for(session, project_id))


@router.put("/connections", response_model=ConnectionsResponse)
async def update_connections(
    body: ConnectionsUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> ConnectionsResponse:
    """Bulk update of auto-post flags; tokens and identity are untouched."""
    await require_project_access(session, user_id, body.project_id)
    store = ConnectionStore(session)
    for item in body.connections:
        await store.set_auto_post(body.project_id, item.platform, item.auto_post)
    await session.commit()
    logger.info("Updated auto-post flags for %d platform(s) in project %s", len(body.connections), body.project_id)
    return ConnectionsResponse(connections=await _connections_for(session, body.project_id))


# ── WordPress ──────────────────────────────────────────────────────────


@router.post("/wordpress/connect", response_model=CallbackResponse)
async def wordpress_connect(
    body: WordPressConnectRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> CallbackResponse:
    blog = BlogConnector(session, settings, http_client=http_client)
    row = await blog.connect(
        body.project_id,
        user_id,
        body.site_url,
        body.username,
        body.application_password,
    )
    return CallbackResponse(
        platform=Platform.BLOG,
        username=row.username,
        connection=ConnectionView.from_row(row),
        connections=await _connections_for(session, body.project_id),
    )


@router.post("/wordpress/disconnect", response_model=DisconnectResponse)
async def wordpress_disconnect(
    body: WordPressDisconnectRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
) -> DisconnectResponse:
    flow = OAuthFlow(session, settings)
    row = await flow.disconnect(Platform.BLOG, body.project_id, user_id)
    return DisconnectResponse(
        connection=ConnectionView.from_row(row),
        connections=await _connections_for(session, body.project_id),
    )


# ── Diagnostics ────────────────────────────────────────────────────────


@router.get("/oauth/diagnostics", response_model=DiagnosticsResponse)
async def diagnostics(
    project_id: str = Query("", alias="projectId"),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
) -> DiagnosticsResponse:
    """Per-platform configuration and connection report. Writes nothing."""
    await require_project_access(session, user_id, project_id)
    reports = await DiagnosticsService(session, settings).run(project_id)
    return DiagnosticsResponse(
        project_id=project_id,
        configured_count=sum(1 for r in reports if r.configured),
        connected_count=sum(1 for r in reports if r.connected),
        platforms=[PlatformReportView.from_report(r) for r in reports],
    )


@router.get("/oauth/diagnostics/logs", response_class=PlainTextResponse)
async def diagnostics_logs(
    project_id: str = Query("", alias="projectId"),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
) -> str:
    """Same report flattened to text for pasting into a bug report."""
    await require_project_access(session, user_id, project_id)
    reports = await DiagnosticsService(session, settings).run(project_id)
    return copy_all_logs(reports)
