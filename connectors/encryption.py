"""
Token encryption — encrypt / decrypt OAuth tokens and blog application
passwords at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
The key comes from ``Settings.token_encryption_key``
(env var: ``TOKEN_ENCRYPTION_KEY``).

If no key is configured, encryption is **disabled** and secrets are stored
as plaintext (with a startup warning).  Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from config.settings import Settings

logger = logging.getLogger(__name__)

# One cipher per key for the life of the process; requests reuse it.
_ciphers: Dict[str, "TokenCipher"] = {}


class TokenCipher:
    """Fernet wrapper; shared per key through ``from_settings``."""

    def __init__(self, key: Optional[str]) -> None:
        self._fernet: Optional[Fernet] = None
        if not key:
            logger.warning(
                "TOKEN_ENCRYPTION_KEY not set; OAuth tokens and blog passwords will be stored as plaintext. "
                "Generate a key: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
            )
            return
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
            logger.info("Token encryption enabled (Fernet/AES-128-CBC)")
        except (ValueError, TypeError) as exc:
            logger.error("Failed to initialise Fernet with provided key: %s", exc)
            self._fernet = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCipher":
        key = settings.token_encryption_key or ""
        cipher = _ciphers.get(key)
        if cipher is None:
            cipher = _ciphers[key] = cls(key)
        return cipher

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        """Return the Fernet ciphertext (URL-safe base64), or plaintext when disabled."""
        if self._fernet is None:
            return plaintext
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored value.

        Values written before encryption was enabled are not valid Fernet
        tokens and are returned as-is.
        """
        if self._fernet is None:
            return ciphertext
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            return ciphertext
