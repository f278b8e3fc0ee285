"""
End-to-end tests for the HTTP surface, driven through the ASGI app with
the database, settings and provider network swapped out.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from auth.dependencies import get_settings
from auth.jwt import create_token
from connectors.errors import RETRY_CONNECT_MESSAGE
from connectors.routes import get_http_client
from database.session import get_db_session
from main import app

from conftest import TWITTER_PROFILE_URL, TWITTER_REVOKE_URL, TWITTER_TOKEN_URL, WP_ME_URL, count_pending


@pytest_asyncio.fixture
async def api(session_maker, settings, http_client):
    async def override_get_db_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_http_client] = lambda: http_client

    headers = {"Authorization": f"Bearer {create_token('user1', settings)}"}
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers) as client:
        yield client

    app.dependency_overrides.clear()


async def _connect_twitter(api, provider_stub) -> dict:
    provider_stub.add("POST", TWITTER_TOKEN_URL, json={"access_token": "tok1", "refresh_token": "ref1"})
    provider_stub.add("GET", TWITTER_PROFILE_URL, json={"data": {"id": "42", "username": "pubhub", "name": "PubHub"}})
    start = await api.get("/api/v1/oauth/authorize/twitter", params={"projectId": "proj1"})
    assert start.status_code == 200
    state = start.json()["state"]
    resp = await api.post(
        "/api/v1/oauth/callback",
        json={"code": "goodcode", "state": state, "platform": "twitter", "projectId": "proj1"},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestProviders:
    @pytest.mark.asyncio
    async def test_lists_configuration_without_auth(self, api):
        resp = await api.get("/api/v1/oauth/providers", headers={"Authorization": ""})

        assert resp.status_code == 200
        providers = {p["provider"]: p["configured"] for p in resp.json()}
        assert providers["twitter"] is True
        assert providers["youtube"] is False
        assert "tw-client-secret" not in resp.text


class TestAuthorizeRoute:
    @pytest.mark.asyncio
    async def test_returns_auth_url_and_state(self, api):
        resp = await api.get("/api/v1/oauth/authorize/twitter", params={"projectId": "proj1"})

        body = resp.json()
        assert resp.status_code == 200
        assert body["authUrl"].startswith("https://twitter.com/i/oauth2/authorize?")
        assert len(body["state"]) >= 22
        assert body["platform"] == "twitter"
        assert "X-Process-Time" in resp.headers

    @pytest.mark.asyncio
    async def test_requires_bearer_token(self, api):
        resp = await api.get(
            "/api/v1/oauth/authorize/twitter",
            params={"projectId": "proj1"},
            headers={"Authorization": ""},
        )
        assert resp.status_code == 401
        assert "error" in resp.json()

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, api):
        resp = await api.get("/api/v1/oauth/authorize/youtube", params={"projectId": "proj1"})

        assert resp.status_code == 400
        assert "YOUTUBE_CLIENT_ID" in resp.json()["error"]

    @pytest.mark.asyncio
    async def test_unknown_platform(self, api):
        resp = await api.get("/api/v1/oauth/authorize/myspace", params={"projectId": "proj1"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_foreign_project(self, api):
        resp = await api.get("/api/v1/oauth/authorize/twitter", params={"projectId": "proj3"})
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_project(self, api):
        resp = await api.get("/api/v1/oauth/authorize/twitter")
        assert resp.status_code == 400


class TestCallbackRoute:
    @pytest.mark.asyncio
    async def test_success_returns_redacted_connection(self, api, provider_stub):
        body = await _connect_twitter(api, provider_stub)

        assert body["success"] is True
        assert body["username"] == "pubhub"
        assert body["connection"]["connected"] is True
        assert body["connection"]["accountId"] == "42"
        assert len(body["connections"]) == 9
        flat = repr(body)
        assert "tok1" not in flat
        assert "ref1" not in flat
        assert "accessTokenRef" not in flat

    @pytest.mark.asyncio
    async def test_replay_gets_generic_message(self, api, provider_stub):
        provider_stub.add("POST", TWITTER_TOKEN_URL, json={"access_token": "tok1"})
        state = (await api.get("/api/v1/oauth/authorize/twitter", params={"projectId": "proj1"})).json()["state"]
        payload = {"code": "goodcode", "state": state, "platform": "twitter"}

        first = await api.post("/api/v1/oauth/callback", json=payload)
        second = await api.post("/api/v1/oauth/callback", json=payload)

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json() == {"error": RETRY_CONNECT_MESSAGE}

    @pytest.mark.asyncio
    async def test_get_callback_with_query_string(self, api, provider_stub):
        provider_stub.add("POST", TWITTER_TOKEN_URL, json={"access_token": "tok1"})
        state = (await api.get("/api/v1/oauth/authorize/twitter", params={"projectId": "proj1"})).json()["state"]

        resp = await api.get(
            "/api/v1/oauth/callback",
            params={"code": "goodcode", "state": state, "platform": "twitter"},
        )

        assert resp.status_code == 200
        assert resp.json()["platform"] == "twitter"

    @pytest.mark.asyncio
    async def test_exchange_failure_is_bad_gateway(self, api, provider_stub):
        provider_stub.add("POST", TWITTER_TOKEN_URL, status_code=400, json={"error": "invalid_request"})
        state = (await api.get("/api/v1/oauth/authorize/twitter", params={"projectId": "proj1"})).json()["state"]

        resp = await api.post("/api/v1/oauth/callback", json={"code": "bad", "state": state, "platform": "twitter"})

        assert resp.status_code == 502
        assert "invalid_request" in resp.json()["error"]
        assert "tw-client-secret" not in resp.text

    @pytest.mark.asyncio
    async def test_state_issued_to_another_user(self, api, provider_stub, settings):
        provider_stub.add("POST", TWITTER_TOKEN_URL, json={"access_token": "tok1"})
        state = (await api.get("/api/v1/oauth/authorize/twitter", params={"projectId": "proj1"})).json()["state"]

        resp = await api.post(
            "/api/v1/oauth/callback",
            json={"code": "goodcode", "state": state, "platform": "twitter"},
            headers={"Authorization": f"Bearer {create_token('user2', settings)}"},
        )

        assert resp.status_code == 400
        assert provider_stub.calls("POST", TWITTER_TOKEN_URL) == []

    @pytest.mark.asyncio
    async def test_provider_denial_is_reported(self, api, provider_stub, session):
        state = (await api.get("/api/v1/oauth/authorize/twitter", params={"projectId": "proj1"})).json()["state"]

        resp = await api.get(
            "/api/v1/oauth/callback",
            params={
                "state": state,
                "platform": "twitter",
                "error": "access_denied",
                "error_description": "The user denied access",
            },
        )

        assert resp.status_code == 400
        assert resp.json() == {"error": "The user denied access"}
        assert await count_pending(session) == 0
        assert provider_stub.calls("POST", TWITTER_TOKEN_URL) == []

    @pytest.mark.asyncio
    async def test_denial_in_posted_body(self, api, session):
        state = (await api.get("/api/v1/oauth/authorize/twitter", params={"projectId": "proj1"})).json()["state"]

        resp = await api.post(
            "/api/v1/oauth/callback",
            json={"state": state, "platform": "twitter", "error": "access_denied"},
        )

        assert resp.status_code == 400
        assert resp.json() == {"error": "access_denied"}
        assert await count_pending(session) == 0


class TestConnectionsRoute:
    @pytest.mark.asyncio
    async def test_lists_all_platforms_in_order(self, api):
        resp = await api.get("/api/v1/connections", params={"projectId": "proj1"})

        platforms = [c["platform"] for c in resp.json()["connections"]]
        assert platforms == [
            "twitter",
            "instagram",
            "linkedin",
            "facebook",
            "youtube",
            "tiktok",
            "pinterest",
            "reddit",
            "blog",
        ]
        assert not any(c["connected"] for c in resp.json()["connections"])

    @pytest.mark.asyncio
    async def test_update_auto_post(self, api):
        resp = await api.put(
            "/api/v1/connections",
            json={"projectId": "proj1", "connections": [{"platform": "reddit", "autoPost": True}]},
        )

        assert resp.status_code == 200
        by_platform = {c["platform"]: c for c in resp.json()["connections"]}
        assert by_platform["reddit"]["autoPost"] is True
        assert by_platform["reddit"]["connected"] is False
        assert by_platform["twitter"]["autoPost"] is False

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_platform(self, api):
        resp = await api.put(
            "/api/v1/connections",
            json={"projectId": "proj1", "connections": [{"platform": "myspace", "autoPost": True}]},
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_foreign_project(self, api):
        resp = await api.get("/api/v1/connections", params={"projectId": "proj3"})
        assert resp.status_code == 403


class TestDisconnectRoute:
    @pytest.mark.asyncio
    async def test_disconnect_twice(self, api, provider_stub):
        await _connect_twitter(api, provider_stub)
        provider_stub.add("POST", TWITTER_REVOKE_URL, json={})

        payload = {"platform": "twitter", "projectId": "proj1"}
        first = await api.post("/api/v1/oauth/disconnect", json=payload)
        second = await api.post("/api/v1/oauth/disconnect", json=payload)

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["connection"]["connected"] is False
        assert second.json()["connection"]["connected"] is False
        assert first.json()["connection"]["username"] is None


class TestWordPressRoutes:
    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, api, provider_stub):
        provider_stub.add("GET", WP_ME_URL, json={"id": 7, "name": "Jane Writer"})

        connected = await api.post(
            "/api/v1/wordpress/connect",
            json={
                "projectId": "proj1",
                "siteUrl": "https://blog.example.com",
                "username": "jane",
                "applicationPassword": "abcd efgh",
            },
        )
        assert connected.status_code == 200
        assert connected.json()["connection"]["siteUrl"] == "https://blog.example.com"
        assert "abcd efgh" not in connected.text

        disconnected = await api.post("/api/v1/wordpress/disconnect", json={"projectId": "proj1"})
        assert disconnected.status_code == 200
        assert disconnected.json()["connection"]["connected"] is False

    @pytest.mark.asyncio
    async def test_bad_credentials(self, api, provider_stub):
        provider_stub.add("GET", WP_ME_URL, status_code=401, json={"code": "invalid_username"})

        resp = await api.post(
            "/api/v1/wordpress/connect",
            json={"projectId": "proj1", "siteUrl": "blog.example.com", "username": "jane", "applicationPassword": "x"},
        )

        assert resp.status_code == 401
        assert "Application Passwords" in resp.json()["error"]


class TestTokenStatusRoute:
    @pytest.mark.asyncio
    async def test_status_never_returns_token(self, api, provider_stub):
        await _connect_twitter(api, provider_stub)

        resp = await api.get("/api/v1/oauth/token-status/twitter", params={"projectId": "proj1"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "valid"
        assert "tok1" not in resp.text

    @pytest.mark.asyncio
    async def test_not_connected(self, api):
        resp = await api.get("/api/v1/oauth/token-status/reddit", params={"projectId": "proj1"})
        assert resp.status_code == 404


class TestDiagnosticsRoutes:
    @pytest.mark.asyncio
    async def test_report(self, api):
        resp = await api.get("/api/v1/oauth/diagnostics", params={"projectId": "proj1"})

        body = resp.json()
        assert resp.status_code == 200
        assert body["configuredCount"] == 2
        assert body["connectedCount"] == 0
        twitter = next(p for p in body["platforms"] if p["platform"] == "twitter")
        assert twitter["authorizeUrlOk"] is True

    @pytest.mark.asyncio
    async def test_logs_as_text(self, api):
        resp = await api.get("/api/v1/oauth/diagnostics/logs", params={"projectId": "proj1"})

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert "[twitter] SUCCESS" in resp.text
