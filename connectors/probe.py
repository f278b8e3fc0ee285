"""
Credential probe — is a platform's OAuth client configured server-side?
"""

from __future__ import annotations

from typing import List, Union

from connectors.platforms import Platform
from connectors.registry import ConnectorRegistry


class CredentialProbe:
    def __init__(self, registry: ConnectorRegistry) -> None:
        self.registry = registry

    def list_missing(self, platform: Union[Platform, str]) -> List[str]:
        """Names of required environment keys that are unset or blank."""
        config = self.registry.get_config(platform)
        settings = self.registry.settings
        return [key for key in config.required_env_keys if not settings.env_value(key)]

    def is_configured(self, platform: Union[Platform, str]) -> bool:
        return not self.list_missing(platform)
