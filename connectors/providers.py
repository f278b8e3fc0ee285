"""
Per-platform connectors.

Endpoints and scopes mirror what each provider's OAuth2 implementation
expects today; profile parsing maps each payload onto ``ProviderProfile``.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict

import httpx

from connectors.base import BaseConnector, ProviderConfig, ProviderProfile, _int_or_none, _str_or_none
from connectors.http import send_with_retry
from connectors.platforms import Platform

logger = logging.getLogger(__name__)


class _BasicAuthRevokeMixin:
    """Providers whose revocation endpoint wants client credentials as Basic auth."""

    def _revoke_request_kwargs(self, access_token: str) -> Dict[str, Any]:
        raw = f"{self.client_id}:{self.client_secret}".encode()
        return {
            "data": {"token": access_token, "token_type_hint": "access_token"},
            "headers": {"Authorization": f"Basic {base64.b64encode(raw).decode()}"},
        }


class _GraphRevokeMixin:
    """Facebook Graph: revoking means deleting the app's permissions."""

    async def revoke_token(self, client: httpx.AsyncClient, access_token: str) -> bool:
        resp = await send_with_retry(
            client,
            "DELETE",
            "https://graph.facebook.com/v18.0/me/permissions",
            retries=self.settings.oauth_http_retries,
            params={"access_token": access_token},
        )
        return resp.is_success


class TwitterConnector(_BasicAuthRevokeMixin, BaseConnector):
    config = ProviderConfig(
        platform=Platform.TWITTER,
        authorize_url="https://twitter.com/i/oauth2/authorize",
        token_url="https://api.twitter.com/2/oauth2/token",
        scopes="tweet.read tweet.write users.read offline.access",
        profile_url="https://api.twitter.com/2/users/me?user.fields=public_metrics",
        revoke_url="https://api.twitter.com/2/oauth2/revoke",
        requires_pkce=True,
        token_auth="basic",
        include_client_id_in_token_body=True,
    )

    def _parse_profile(self, data: Dict[str, Any]) -> ProviderProfile:
        user = data.get("data") or {}
        metrics = user.get("public_metrics") or {}
        return ProviderProfile(
            account_id=_str_or_none(user.get("id")),
            username=user.get("username"),
            display_name=user.get("name"),
            followers=_int_or_none(metrics.get("followers_count")),
        )


class InstagramConnector(_GraphRevokeMixin, BaseConnector):
    # Instagram Basic Display is gone; accounts link through Facebook Login.
    config = ProviderConfig(
        platform=Platform.INSTAGRAM,
        authorize_url="https://www.facebook.com/v18.0/dialog/oauth",
        token_url="https://graph.facebook.com/v18.0/oauth/access_token",
        scopes="email,public_profile",
        profile_url="https://graph.instagram.com/me",
    )

    def _profile_request_kwargs(self, access_token: str) -> Dict[str, Any]:
        return {"params": {"fields": "id,username", "access_token": access_token}}

    def _parse_profile(self, data: Dict[str, Any]) -> ProviderProfile:
        return ProviderProfile(
            account_id=_str_or_none(data.get("id")),
            username=data.get("username"),
            display_name=data.get("username"),
        )


class LinkedInConnector(BaseConnector):
    config = ProviderConfig(
        platform=Platform.LINKEDIN,
        authorize_url="https://www.linkedin.com/oauth/v2/authorization",
        token_url="https://www.linkedin.com/oauth/v2/accessToken",
        scopes="openid profile email",
        profile_url="https://api.linkedin.com/v2/userinfo",
    )

    def _parse_profile(self, data: Dict[str, Any]) -> ProviderProfile:
        return ProviderProfile(
            account_id=_str_or_none(data.get("sub")),
            username=data.get("email") or data.get("name"),
            display_name=data.get("name"),
        )


class FacebookConnector(_GraphRevokeMixin, BaseConnector):
    config = ProviderConfig(
        platform=Platform.FACEBOOK,
        authorize_url="https://www.facebook.com/v18.0/dialog/oauth",
        token_url="https://graph.facebook.com/v18.0/oauth/access_token",
        scopes="email,public_profile",
        profile_url="https://graph.facebook.com/me",
    )

    def _profile_request_kwargs(self, access_token: str) -> Dict[str, Any]:
        return {"params": {"fields": "id,name", "access_token": access_token}}


class YouTubeConnector(BaseConnector):
    config = ProviderConfig(
        platform=Platform.YOUTUBE,
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        scopes="https://www.googleapis.com/auth/youtube.upload https://www.googleapis.com/auth/youtube",
        profile_url="https://www.googleapis.com/youtube/v3/channels?part=snippet,statistics&mine=true",
        revoke_url="https://oauth2.googleapis.com/revoke",
        extra_authorize_params={"access_type": "offline", "prompt": "consent"},
    )

    def _parse_profile(self, data: Dict[str, Any]) -> ProviderProfile:
        items = data.get("items") or []
        if not items:
            return ProviderProfile()
        channel = items[0]
        snippet = channel.get("snippet") or {}
        stats = channel.get("statistics") or {}
        return ProviderProfile(
            account_id=_str_or_none(channel.get("id")),
            username=snippet.get("customUrl") or snippet.get("title"),
            display_name=snippet.get("title"),
            followers=_int_or_none(stats.get("subscriberCount")),
        )


class TikTokConnector(BaseConnector):
    config = ProviderConfig(
        platform=Platform.TIKTOK,
        authorize_url="https://www.tiktok.com/v2/auth/authorize/",
        token_url="https://open.tiktokapis.com/v2/oauth/token/",
        scopes="user.info.basic,video.upload",
        profile_url="https://open.tiktokapis.com/v2/user/info/?fields=open_id,display_name,follower_count",
        revoke_url="https://open.tiktokapis.com/v2/oauth/revoke/",
        client_id_param="client_key",
    )

    def _revoke_request_kwargs(self, access_token: str) -> Dict[str, Any]:
        return {
            "data": {
                "client_key": self.client_id,
                "client_secret": self.client_secret,
                "token": access_token,
            }
        }

    def _parse_profile(self, data: Dict[str, Any]) -> ProviderProfile:
        user = (data.get("data") or {}).get("user") or {}
        return ProviderProfile(
            account_id=_str_or_none(user.get("open_id")),
            username=user.get("display_name"),
            display_name=user.get("display_name"),
            followers=_int_or_none(user.get("follower_count")),
        )


class PinterestConnector(BaseConnector):
    config = ProviderConfig(
        platform=Platform.PINTEREST,
        authorize_url="https://www.pinterest.com/oauth/",
        token_url="https://api.pinterest.com/v5/oauth/token",
        scopes="boards:read,pins:read,pins:write",
        profile_url="https://api.pinterest.com/v5/user_account",
        token_auth="basic",
    )

    def _parse_profile(self, data: Dict[str, Any]) -> ProviderProfile:
        return ProviderProfile(
            account_id=_str_or_none(data.get("id")),
            username=data.get("username"),
            display_name=data.get("business_name") or data.get("username"),
            followers=_int_or_none(data.get("follower_count")),
        )


class RedditConnector(_BasicAuthRevokeMixin, BaseConnector):
    config = ProviderConfig(
        platform=Platform.REDDIT,
        authorize_url="https://www.reddit.com/api/v1/authorize",
        token_url="https://www.reddit.com/api/v1/access_token",
        scopes="submit,identity",
        profile_url="https://oauth.reddit.com/api/v1/me",
        revoke_url="https://www.reddit.com/api/v1/revoke_token",
        token_auth="basic",
        extra_authorize_params={"duration": "permanent"},
    )

    def _parse_profile(self, data: Dict[str, Any]) -> ProviderProfile:
        return ProviderProfile(
            account_id=_str_or_none(data.get("id")),
            username=data.get("name"),
            display_name=data.get("name"),
            followers=_int_or_none((data.get("subreddit") or {}).get("subscribers")),
        )
