"""
Diagnostics — per-platform health report for operators.

Read-only: authorize URLs are built with a throwaway state and never
persisted, and nothing in the report or its log lines carries a state
token, client secret or access token.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings
from connectors.errors import ConnectorError
from connectors.flow import OAuthFlow
from connectors.pkce import generate_pkce_pair
from connectors.platforms import DISPLAY_NAMES, OAUTH_PLATFORMS, Platform
from connectors.state_store import new_state_token
from connectors.store import ConnectionStore
from database.helpers import utcnow

logger = logging.getLogger(__name__)


@dataclass
class DiagnosticLog:
    timestamp: datetime
    level: str  # info | success | warning | error
    message: str


@dataclass
class PlatformReport:
    platform: Platform
    name: str
    configured: bool = False
    missing_keys: List[str] = field(default_factory=list)
    connected: bool = False
    username: Optional[str] = None
    authorize_url_ok: bool = False
    authorize_host: Optional[str] = None
    redirect_uri: Optional[str] = None
    error: Optional[str] = None
    logs: List[DiagnosticLog] = field(default_factory=list)

    def log(self, level: str, message: str) -> None:
        self.logs.append(DiagnosticLog(utcnow(), level, message))

    @property
    def status(self) -> str:
        if self.error:
            return "error"
        if not self.configured:
            return "warning"
        if self.connected:
            return "success"
        return "idle"


class DiagnosticsService:
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.flow = OAuthFlow(session, settings, http_client=http_client)
        self.connections = ConnectionStore(session)

    async def run(self, project_id: str, platforms: Optional[Iterable[Platform]] = None) -> List[PlatformReport]:
        rows = {row.platform: row for row in await self.connections.get(project_id)}
        reports = []
        for platform in platforms or OAUTH_PLATFORMS:
            report = PlatformReport(platform=platform, name=DISPLAY_NAMES[platform])
            report.log("info", f"Checking {report.name} configuration")
            self._check_credentials(report)
            row = rows.get(platform.value)
            if row is not None and row.connected:
                report.connected = True
                report.username = row.username
                report.log("success", f"Connected as {row.username or 'unknown account'}")
            else:
                report.log("info", "No active connection for this project")
            if report.configured:
                self._dry_run_authorize(report)
            reports.append(report)
        return reports

    def _check_credentials(self, report: PlatformReport) -> None:
        report.missing_keys = self.flow.probe.list_missing(report.platform)
        report.configured = not report.missing_keys
        if report.configured:
            report.log("success", "Client credentials configured")
        else:
            report.log("warning", f"Environment variables not configured: {', '.join(report.missing_keys)}")

    def _dry_run_authorize(self, report: PlatformReport) -> None:
        connector = self.flow.registry.get(report.platform)
        challenge = generate_pkce_pair()[1] if connector.config.requires_pkce else None
        try:
            auth_url, redirect_uri = self.flow.build_authorization(report.platform, new_state_token(), challenge)
        except ConnectorError as exc:
            report.error = exc.public_message
            report.log("error", f"Authorization URL could not be built: {exc.public_message}")
            return
        report.authorize_url_ok = True
        report.authorize_host = httpx.URL(auth_url).host
        report.redirect_uri = redirect_uri
        report.log("success", f"Authorization URL generated for {report.authorize_host}")
        report.log("info", f"Redirect URI: {redirect_uri}")


def copy_all_logs(reports: Iterable[PlatformReport]) -> str:
    """Flatten every report's log into timestamped lines for a bug report."""
    lines = []
    for report in reports:
        for entry in report.logs:
            lines.append(
                f"[{entry.timestamp.isoformat()}] [{report.platform.value}] "
                f"{entry.level.upper()} {entry.message}"
            )
    return "\n".join(lines)
