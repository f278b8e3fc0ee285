"""
Tests for the outbound HTTP helper, PKCE and token encryption.
"""

import base64
import hashlib
import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from cryptography.fernet import Fernet

from connectors import encryption
from connectors.encryption import TokenCipher
from connectors.flow import OAuthFlow
from connectors.http import send_with_retry
from connectors.pkce import code_challenge_for, generate_pkce_pair


class TestSendWithRetry:
    @pytest.mark.asyncio
    async def test_retries_once_on_transport_error(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"ok": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with patch("connectors.http.asyncio.sleep", new=AsyncMock()) as sleep:
                resp = await send_with_retry(client, "GET", "https://api.example.com/me", retries=1)

        assert resp.json() == {"ok": True}
        assert len(attempts) == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(httpx.ConnectError):
                await send_with_retry(client, "POST", "https://api.example.com/token", retries=1)

    @pytest.mark.asyncio
    async def test_never_retries_http_errors(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(503, json={"error": "unavailable"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            resp = await send_with_retry(client, "POST", "https://api.example.com/token", retries=3)

        assert resp.status_code == 503
        assert len(attempts) == 1


class TestPkce:
    def test_pair_matches_rfc_7636(self):
        verifier, challenge = generate_pkce_pair()
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).rstrip(b"=").decode()

        assert 43 <= len(verifier) <= 128
        assert challenge == expected
        assert "=" not in challenge

    def test_known_vector(self):
        # Appendix B of RFC 7636
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert code_challenge_for(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_pairs_are_unique(self):
        assert generate_pkce_pair()[0] != generate_pkce_pair()[0]


class TestTokenCipher:
    def test_round_trip(self):
        cipher = TokenCipher(Fernet.generate_key().decode())
        encrypted = cipher.encrypt("tok1")

        assert cipher.enabled
        assert encrypted != "tok1"
        assert cipher.decrypt(encrypted) == "tok1"

    def test_disabled_without_key(self):
        cipher = TokenCipher("")
        assert not cipher.enabled
        assert cipher.encrypt("tok1") == "tok1"

    def test_legacy_plaintext_passes_through(self):
        cipher = TokenCipher(Fernet.generate_key().decode())
        assert cipher.decrypt("stored-before-encryption") == "stored-before-encryption"

    @pytest.mark.asyncio
    async def test_plaintext_warning_logged_once_across_requests(self, session, settings, caplog, monkeypatch):
        monkeypatch.setattr(encryption, "_ciphers", {})
        plaintext = settings.model_copy(update={"token_encryption_key": ""})

        with caplog.at_level(logging.WARNING, logger="connectors.encryption"):
            first = OAuthFlow(session, plaintext)
            second = OAuthFlow(session, plaintext)

        assert first.cipher is second.cipher
        warnings = [r for r in caplog.records if "TOKEN_ENCRYPTION_KEY not set" in r.getMessage()]
        assert len(warnings) == 1
