"""
BaseConnector — the OAuth2 authorization-code grant, parameterised by a
``ProviderConfig``.

Each platform (Twitter, Reddit, …) subclasses this, supplies its static
config and maps its profile payload; platforms with non-standard token
endpoints override the relevant hook.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

import httpx

from config.settings import Settings
from connectors.errors import ProfileFetchFailed, TokenExchangeFailed
from connectors.http import send_with_retry
from connectors.pkce import CHALLENGE_METHOD
from connectors.platforms import Platform

logger = logging.getLogger(__name__)

_PLATFORM_PLACEHOLDERS = (
    "{platform}",
    "{PLATFORM}",
    ":platform",
    ":PLATFORM",
    "%platform%",
    "%PLATFORM%",
    "${platform}",
    "${PLATFORM}",
)


@dataclass(frozen=True)
class ProviderConfig:
    platform: Platform
    authorize_url: str
    token_url: str
    scopes: str
    profile_url: Optional[str] = None
    revoke_url: Optional[str] = None
    requires_pkce: bool = False
    # "body": client credentials in the form body; "basic": HTTP Basic header
    token_auth: str = "body"
    include_client_id_in_token_body: bool = False
    client_id_param: str = "client_id"
    extra_authorize_params: Mapping[str, str] = field(default_factory=dict)

    @property
    def env_prefix(self) -> str:
        return self.platform.value.upper()

    @property
    def required_env_keys(self) -> Tuple[str, str]:
        return (f"{self.env_prefix}_CLIENT_ID", f"{self.env_prefix}_CLIENT_SECRET")


@dataclass
class TokenSet:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scopes: List[str] = field(default_factory=list)


@dataclass
class ProviderProfile:
    account_id: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None
    followers: Optional[int] = None


def _apply_placeholder(template: str, platform: str) -> str:
    result = template
    for placeholder in _PLATFORM_PLACEHOLDERS:
        if placeholder in result:
            result = result.replace(placeholder, platform)
    return result


def redirect_uri_for(settings: Settings, platform: Platform) -> str:
    """
    Resolve the callback URL registered with the provider.

    The authorize step and the token exchange must send the exact same
    string, so both go through here.
    """
    name = platform.value
    override = settings.env_value(f"{name.upper()}_REDIRECT_URI")
    if override:
        return _apply_placeholder(override, name)

    base = (settings.oauth_redirect_url or "").strip()
    if not base:
        base = f"{settings.frontend_url.rstrip('/')}/oauth/callback"

    if any(p in base for p in _PLATFORM_PLACEHOLDERS):
        return _apply_placeholder(base, name)
    if "platform=" in base.lower():
        return base

    if "?" in base:
        separator = "" if base.endswith(("?", "&")) else "&"
    else:
        separator = "?"
    return f"{base}{separator}platform={name}"


class BaseConnector:
    """OAuth2 authorization-code connector for one platform."""

    config: ProviderConfig

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    # ── Identity ────────────────────────────────────────────────────────

    @property
    def platform(self) -> Platform:
        return self.config.platform

    @property
    def client_id(self) -> str:
        return self.settings.env_value(self.config.required_env_keys[0])

    @property
    def client_secret(self) -> str:
        return self.settings.env_value(self.config.required_env_keys[1])

    def redirect_uri(self) -> str:
        return redirect_uri_for(self.settings, self.platform)

    # ── OAuth flow ──────────────────────────────────────────────────────

    def get_auth_url(self, state: str, redirect_uri: str, code_challenge: Optional[str] = None) -> str:
        params: Dict[str, str] = {
            self.config.client_id_param: self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.config.scopes,
            "state": state,
        }
        params.update(self.config.extra_authorize_params)
        if code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = CHALLENGE_METHOD
        return f"{self.config.authorize_url}?{urlencode(params)}"

    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> TokenSet:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        if code_verifier:
            data["code_verifier"] = code_verifier
        payload = await self._token_request(client, data)
        return self._parse_token_payload(payload)

    async def refresh_access_token(self, client: httpx.AsyncClient, refresh_token: str) -> TokenSet:
        payload = await self._token_request(
            client,
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        return self._parse_token_payload(payload)

    async def fetch_profile(self, client: httpx.AsyncClient, access_token: str) -> ProviderProfile:
        """Fetch the minimal account profile; raises ``ProfileFetchFailed``."""
        if not self.config.profile_url:
            return ProviderProfile()
        try:
            resp = await send_with_retry(
                client,
                "GET",
                self.config.profile_url,
                retries=self.settings.oauth_http_retries,
                **self._profile_request_kwargs(access_token),
            )
        except httpx.TransportError as exc:
            raise ProfileFetchFailed(f"{self.platform.value} profile request failed: {exc}") from exc
        if resp.is_error:
            raise ProfileFetchFailed(f"{self.platform.value} profile returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProfileFetchFailed(f"{self.platform.value} profile returned non-JSON body") from exc
        if not isinstance(data, dict):
            raise ProfileFetchFailed(f"{self.platform.value} profile returned {type(data).__name__}, expected an object")
        try:
            return self._parse_profile(data)
        except (ValueError, KeyError, TypeError, IndexError, AttributeError) as exc:
            raise ProfileFetchFailed(f"{self.platform.value} profile payload unreadable: {exc}") from exc

    async def revoke_token(self, client: httpx.AsyncClient, access_token: str) -> bool:
        """
        Revoke the token at the provider (optional).
        Returns True on success, False if the provider has no revocation
        endpoint or refused.
        """
        if not self.config.revoke_url:
            return False
        resp = await send_with_retry(
            client,
            "POST",
            self.config.revoke_url,
            retries=self.settings.oauth_http_retries,
            **self._revoke_request_kwargs(access_token),
        )
        return resp.is_success

    # ── Hooks ───────────────────────────────────────────────────────────

    def _profile_request_kwargs(self, access_token: str) -> Dict[str, Any]:
        return {"headers": {"Authorization": f"Bearer {access_token}"}}

    def _revoke_request_kwargs(self, access_token: str) -> Dict[str, Any]:
        return {"data": {"token": access_token}}

    def _parse_profile(self, data: Dict[str, Any]) -> ProviderProfile:
        return ProviderProfile(
            account_id=_str_or_none(data.get("id")),
            username=data.get("username"),
            display_name=data.get("name"),
        )

    def _parse_token_payload(self, payload: Dict[str, Any]) -> TokenSet:
        scope = payload.get("scope") or ""
        if isinstance(scope, str):
            scopes = [s for s in scope.replace(",", " ").split() if s]
        else:
            scopes = list(scope)
        expires_in = payload.get("expires_in")
        return TokenSet(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=_int_or_none(expires_in) or None,
            scopes=scopes,
        )

    # ── Helpers ─────────────────────────────────────────────────────────

    def _client_auth(self, data: Dict[str, str]) -> Dict[str, str]:
        """Attach client credentials per the provider's token auth method."""
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        if self.config.token_auth == "basic":
            raw = f"{self.client_id}:{self.client_secret}".encode()
            headers["Authorization"] = f"Basic {base64.b64encode(raw).decode()}"
            if self.config.include_client_id_in_token_body:
                data[self.config.client_id_param] = self.client_id
        else:
            data[self.config.client_id_param] = self.client_id
            data["client_secret"] = self.client_secret
        return headers

    def _scrub(self, text: str) -> str:
        secret = self.client_secret
        if secret and secret in text:
            text = text.replace(secret, "***")
        return text

    async def _token_request(self, client: httpx.AsyncClient, data: Dict[str, str]) -> Dict[str, Any]:
        name = self.platform.value
        headers = self._client_auth(data)
        try:
            resp = await send_with_retry(
                client,
                "POST",
                self.config.token_url,
                retries=self.settings.oauth_http_retries,
                data=data,
                headers=headers,
            )
        except httpx.TransportError as exc:
            raise TokenExchangeFailed(name, f"network error ({exc.__class__.__name__})") from exc

        if resp.is_error:
            body = self._scrub(resp.text[:500])
            logger.error("Token endpoint for %s returned HTTP %d: %s", name, resp.status_code, body)
            raise TokenExchangeFailed(name, f"HTTP {resp.status_code}: {body}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TokenExchangeFailed(name, "token endpoint returned non-JSON body") from exc

        if not isinstance(payload, dict):
            raise TokenExchangeFailed(name, "token endpoint returned unexpected payload")
        if "error" in payload:
            detail = payload.get("error_description") or payload["error"]
            raise TokenExchangeFailed(name, self._scrub(str(detail)))
        if not payload.get("access_token"):
            raise TokenExchangeFailed(name, "no access_token returned from provider")
        return payload


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
