"""
JWT-style token creation and verification.

Tokens are base64-encoded JSON payloads signed with HMAC-SHA256 and are
issued by the dashboard's sign-in service; this module only needs to
verify them. ``create_token`` is kept for tests and tooling.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import b64decode, b64encode
from typing import Optional

from config.settings import Settings, config
from connectors.errors import NotAuthenticated


def create_token(user_id: str, settings: Optional[Settings] = None) -> str:
    """Create a signed token containing ``user_id`` and expiry."""
    settings = settings or config
    payload = {
        "user_id": user_id,
        "exp": int(time.time()) + settings.jwt_expiry_seconds,
    }
    raw = json.dumps(payload).encode()
    sig = hmac.new(settings.jwt_secret.encode(), raw, hashlib.sha256).hexdigest()
    return b64encode(raw).decode() + "." + sig


def verify_token(token: str, settings: Optional[Settings] = None) -> str:
    """
    Verify token and return ``user_id``.

    Raises ``NotAuthenticated`` on invalid or expired tokens.
    """
    settings = settings or config
    try:
        parts = token.split(".", 1)
        if len(parts) != 2:
            raise ValueError("bad format")
        raw = b64decode(parts[0])
        expected_sig = hmac.new(
            settings.jwt_secret.encode(), raw, hashlib.sha256
        ).hexdigest()
        if not hmac.compare_digest(parts[1], expected_sig):
            raise ValueError("bad signature")
        payload = json.loads(raw)
        if payload.get("exp", 0) < time.time():
            raise ValueError("token expired")
        return str(payload["user_id"])
    except (ValueError, KeyError, TypeError) as exc:
        raise NotAuthenticated(f"Invalid or expired token: {exc}") from exc
