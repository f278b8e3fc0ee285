"""
Shared fixtures: a throwaway SQLite database, isolated settings and a
stubbed provider network.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config.settings import Settings
from connectors.encryption import TokenCipher
from connectors.flow import OAuthFlow
from database.models import Base, PendingAuthorization, Project, ProjectConnection

TWITTER_TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
TWITTER_PROFILE_URL = "https://api.twitter.com/2/users/me"
TWITTER_REVOKE_URL = "https://api.twitter.com/2/oauth2/revoke"
REDDIT_TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
WP_ME_URL = "https://blog.example.com/wp-json/wp/v2/users/me"


class ProviderStub:
    """
    httpx.MockTransport handler keyed by (method, host, path).
    Unrouted requests get a 404; every request is recorded.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    @staticmethod
    def _key(method: str, url: str) -> Tuple[str, str, str]:
        parsed = httpx.URL(url)
        return method.upper(), parsed.host, parsed.path

    def add(
        self,
        method: str,
        url: str,
        *,
        status_code: int = 200,
        json: Any = None,
        text: Optional[str] = None,
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status_code, text=text)
            return httpx.Response(status_code, json=json if json is not None else {})

        self.routes[self._key(method, url)] = respond

    def add_handler(self, method: str, url: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[self._key(method, url)] = handler

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        key = self._key(method, url)
        return [r for r in self.requests if (r.method, r.url.host, r.url.path) == key]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.host, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "not_found"})
        return handler(request)


@pytest.fixture(autouse=True)
def no_retry_backoff(monkeypatch):
    monkeypatch.setattr("connectors.http._RETRY_BACKOFF_SECONDS", 0)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        frontend_url="https://app.example.com",
        oauth_redirect_url="",
        twitter_client_id="tw-client-id",
        twitter_client_secret="tw-client-secret-XYZ",
        twitter_redirect_uri="",
        reddit_client_id="rd-client-id",
        reddit_client_secret="rd-client-secret",
        reddit_redirect_uri="",
        youtube_client_id="",
        youtube_client_secret="",
        youtube_redirect_uri="",
        token_encryption_key=Fernet.generate_key().decode(),
        jwt_secret="test-jwt-secret",
        database_url="sqlite+aiosqlite://",
    )


@pytest.fixture
def cipher(settings) -> TokenCipher:
    return TokenCipher.from_settings(settings)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'connections.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        session.add_all(
            [
                Project(project_id="proj1", owner_user_id="user1", name="Launch"),
                Project(project_id="proj2", owner_user_id="user1", name="Side Project"),
                Project(project_id="proj3", owner_user_id="user2", name="Someone Else"),
            ]
        )
        await session.commit()

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def provider_stub() -> ProviderStub:
    return ProviderStub()


@pytest_asyncio.fixture
async def http_client(provider_stub):
    async with httpx.AsyncClient(transport=httpx.MockTransport(provider_stub)) as client:
        yield client


@pytest.fixture
def make_flow(settings, http_client):
    def _make(session: AsyncSession) -> OAuthFlow:
        return OAuthFlow(session, settings, http_client=http_client)

    return _make


async def count_rows(session: AsyncSession, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def count_pending(session: AsyncSession) -> int:
    return await count_rows(session, PendingAuthorization)


async def count_connections(session: AsyncSession) -> int:
    return await count_rows(session, ProjectConnection)
