"""
Platform identifiers.

Eight platforms connect through the OAuth2 authorization-code flow; the
ninth (``blog``) is a WordPress site authenticated with an application
password and never goes through a redirect.
"""

from __future__ import annotations

from enum import Enum
from typing import List

from connectors.errors import InvalidPlatform


class Platform(str, Enum):
    TWITTER = "twitter"
    INSTAGRAM = "instagram"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"
    PINTEREST = "pinterest"
    REDDIT = "reddit"
    BLOG = "blog"

    @property
    def is_oauth(self) -> bool:
        return self is not Platform.BLOG

    @classmethod
    def parse(cls, value: str) -> "Platform":
        """Resolve a raw path/query value, raising ``InvalidPlatform``."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise InvalidPlatform(value) from None


# Display order used by listings and diagnostics.
ALL_PLATFORMS: List[Platform] = list(Platform)
OAUTH_PLATFORMS: List[Platform] = [p for p in Platform if p.is_oauth]

DISPLAY_NAMES = {
    Platform.TWITTER: "Twitter/X",
    Platform.INSTAGRAM: "Instagram",
    Platform.LINKEDIN: "LinkedIn",
    Platform.FACEBOOK: "Facebook",
    Platform.YOUTUBE: "YouTube",
    Platform.TIKTOK: "TikTok",
    Platform.PINTEREST: "Pinterest",
    Platform.REDDIT: "Reddit",
    Platform.BLOG: "WordPress Blog",
}
