"""
Request / response schemas for the connection routes.

Wire format is camelCase to match the dashboard client; raw tokens never
appear in any response model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from connectors.diagnostics import PlatformReport
from connectors.platforms import ALL_PLATFORMS, Platform
from database.helpers import as_utc
from database.models import ProjectConnection


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Connections ────────────────────────────────────────────────────────


class ConnectionView(_CamelModel):
    platform: Platform
    connected: bool = False
    username: Optional[str] = None
    display_name: Optional[str] = None
    account_id: Optional[str] = None
    site_url: Optional[str] = None
    followers_snapshot: Optional[int] = None
    auto_post: bool = False
    token_expires_at: Optional[datetime] = None
    last_refresh_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: ProjectConnection) -> "ConnectionView":
        return cls(
            platform=Platform(row.platform),
            connected=bool(row.connected),
            username=row.username,
            display_name=row.display_name,
            account_id=row.account_id,
            site_url=row.site_url,
            followers_snapshot=row.followers_snapshot,
            auto_post=bool(row.auto_post),
            token_expires_at=as_utc(row.token_expires_at),
            last_refresh_at=as_utc(row.last_refresh_at),
            updated_at=as_utc(row.updated_at),
        )


def connection_views(rows: Iterable[ProjectConnection]) -> List[ConnectionView]:
    """One view per platform in display order; missing rows read as disconnected."""
    by_platform: Dict[str, ProjectConnection] = {row.platform: row for row in rows}
    views = []
    for platform in ALL_PLATFORMS:
        row = by_platform.get(platform.value)
        views.append(ConnectionView.from_row(row) if row is not None else ConnectionView(platform=platform))
    return views


class ConnectionsResponse(_CamelModel):
    connections: List[ConnectionView]


class AutoPostUpdate(_CamelModel):
    platform: Platform
    auto_post: bool


class ConnectionsUpdateRequest(_CamelModel):
    project_id: str = Field(..., min_length=1)
    connections: List[AutoPostUpdate]


# ── OAuth ──────────────────────────────────────────────────────────────


class AuthorizeResponse(_CamelModel):
    auth_url: str
    state: str
    platform: Platform
    expires_at: datetime


class CallbackRequest(_CamelModel):
    code: str = ""
    state: str = ""
    platform: str = ""
    project_id: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None


class CallbackResponse(_CamelModel):
    success: bool = True
    platform: Platform
    username: Optional[str] = None
    connection: ConnectionView
    connections: List[ConnectionView]


class DisconnectRequest(_CamelModel):
    platform: str
    project_id: str = Field(..., min_length=1)


class DisconnectResponse(_CamelModel):
    success: bool = True
    connection: ConnectionView
    connections: List[ConnectionView]


class TokenStatusResponse(_CamelModel):
    platform: Platform
    status: str
    expires_at: Optional[datetime] = None


# ── WordPress ──────────────────────────────────────────────────────────


class WordPressConnectRequest(_CamelModel):
    project_id: str = ""
    site_url: str = ""
    username: str = ""
    application_password: str = ""


class WordPressDisconnectRequest(_CamelModel):
    project_id: str = Field(..., min_length=1)


# ── Diagnostics ────────────────────────────────────────────────────────


class DiagnosticLogView(_CamelModel):
    timestamp: datetime
    level: str
    message: str


class PlatformReportView(_CamelModel):
    platform: Platform
    name: str
    status: str
    configured: bool
    missing_keys: List[str]
    connected: bool
    username: Optional[str] = None
    authorize_url_ok: bool
    authorize_host: Optional[str] = None
    redirect_uri: Optional[str] = None
    error: Optional[str] = None
    logs: List[DiagnosticLogView]

    @classmethod
    def from_report(cls, report: PlatformReport) -> "PlatformReportView":
        return cls(
            platform=report.platform,
            name=report.name,
            status=report.status,
            configured=report.configured,
            missing_keys=report.missing_keys,
            connected=report.connected,
            username=report.username,
            authorize_url_ok=report.authorize_url_ok,
            authorize_host=report.authorize_host,
            redirect_uri=report.redirect_uri,
            error=report.error,
            logs=[DiagnosticLogView(timestamp=e.timestamp, level=e.level, message=e.message) for e in report.logs],
        )


class DiagnosticsResponse(_CamelModel):
    project_id: str
    configured_count: int
    connected_count: int
    platforms: List[PlatformReportView]
