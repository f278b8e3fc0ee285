"""
ConnectorRegistry — the provider table, one connector per OAuth platform.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Type, Union

from config.settings import Settings
from connectors.base import BaseConnector, ProviderConfig
from connectors.errors import InvalidPlatform
from connectors.platforms import DISPLAY_NAMES, OAUTH_PLATFORMS, Platform
from connectors.providers import (
    FacebookConnector,
    InstagramConnector,
    LinkedInConnector,
    PinterestConnector,
    RedditConnector,
    TikTokConnector,
    TwitterConnector,
    YouTubeConnector,
)

logger = logging.getLogger(__name__)

# ── All known connectors, add new ones here ──────────────────────────────

_CONNECTOR_CLASSES: Dict[Platform, Type[BaseConnector]] = {
    Platform.TWITTER: TwitterConnector,
    Platform.INSTAGRAM: InstagramConnector,
    Platform.LINKEDIN: LinkedInConnector,
    Platform.FACEBOOK: FacebookConnector,
    Platform.YOUTUBE: YouTubeConnector,
    Platform.TIKTOK: TikTokConnector,
    Platform.PINTEREST: PinterestConnector,
    Platform.REDDIT: RedditConnector,
}

if set(_CONNECTOR_CLASSES) != set(OAUTH_PLATFORMS):
    missing = sorted(p.value for p in set(OAUTH_PLATFORMS) - set(_CONNECTOR_CLASSES))
    raise ImportError(f"OAuth platforms without a connector: {missing}")


class ConnectorRegistry:
    """Provider lookup bound to one settings object."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._connectors: Dict[Platform, BaseConnector] = {
            platform: cls(settings) for platform, cls in _CONNECTOR_CLASSES.items()
        }

    def get(self, platform: Union[Platform, str]) -> BaseConnector:
        """Return the connector, raising ``InvalidPlatform`` for unknown or non-OAuth platforms."""
        if not isinstance(platform, Platform):
            platform = Platform.parse(platform)
        connector = self._connectors.get(platform)
        if connector is None:
            raise InvalidPlatform(platform.value)
        return connector

    def get_config(self, platform: Union[Platform, str]) -> ProviderConfig:
        return self.get(platform).config

    def list_providers(self) -> List[Dict[str, object]]:
        """Return info about all OAuth providers (no credentials)."""
        from connectors.probe import CredentialProbe

        probe = CredentialProbe(self)
        return [
            {
                "provider": platform.value,
                "display_name": DISPLAY_NAMES[platform],
                "configured": probe.is_configured(platform),
            }
            for platform in OAUTH_PLATFORMS
        ]
