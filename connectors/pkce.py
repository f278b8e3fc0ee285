"""
PKCE (RFC 7636) verifier / challenge generation.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Tuple

CHALLENGE_METHOD = "S256"


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    # 32 random bytes → 43 base64url chars, the RFC minimum
    return _b64url(secrets.token_bytes(32))


def code_challenge_for(verifier: str) -> str:
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce_pair() -> Tuple[str, str]:
    """Return ``(verifier, challenge)``."""
    verifier = generate_code_verifier()
    return verifier, code_challenge_for(verifier)
