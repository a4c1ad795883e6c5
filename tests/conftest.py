"""
Shared test fixtures for the LTI roster tool.

Fixtures:
  - private_key_pem:      RSA private key (PEM) generated once per session
  - registration:         Registration for https://platform.example
  - deployment:           Deployment dep-1 for that registration
  - memory_store:         Empty InMemoryStore
  - sql_store:            Empty SQLStore on an in-memory SQLite database
  - store:                Both of the above (parametrized)
  - seeded_store:         In-memory store holding registration + deployment
  - fake_redis_client:    fakeredis.FakeRedis instance
  - platform:             FakePlatform standing in for requests.Session
  - launches:             FakeLaunchSessions (launch id -> claims)
  - tool_context:         ToolContext wired to the fakes above
  - app / client:         FastAPI app and httpx.AsyncClient for it
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from lti_roster.connector import NRPS_CLAIM, LaunchSession
from lti_roster.context import ToolContext
from lti_roster.datastore import (
    Deployment,
    InMemoryStore,
    Registration,
    SQLStore,
    seed_store,
)
from lti_roster.errors import LaunchNotFoundError
from lti_roster.lti.storage import MemoryLaunchDataStorage
from lti_roster.settings import Settings, clear_settings_cache

ISSUER = "https://platform.example"
CLIENT_ID = "abc"
DEPLOYMENT_ID = "dep-1"
MEMBERSHIPS_URL = "https://platform.example/api/lti/courses/1/names_and_roles"
DEPLOYMENT_ID_CLAIM = "https://purl.imsglobal.org/spec/lti/claim/deployment_id"
CONTEXT_CLAIM = "https://purl.imsglobal.org/spec/lti/claim/context"
INSTRUCTOR = "http://purl.imsglobal.org/vocab/lis/v2/membership#Instructor"
LEARNER = "http://purl.imsglobal.org/vocab/lis/v2/membership#Learner"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_registration(issuer: str = ISSUER, client_id: str = CLIENT_ID) -> Registration:
    return Registration(
        issuer=issuer,
        client_id=client_id,
        auth_token_uri=f"{issuer}/token",
        auth_login_uri=f"{issuer}/login",
        keyset_uri=f"{issuer}/jwks",
        target_link_uri="https://tool.example/launch",
    )


def make_claims(
    issuer: str = ISSUER,
    client_id: str = CLIENT_ID,
    deployment_id: str = DEPLOYMENT_ID,
    nrps: bool = True,
    memberships_url: str = MEMBERSHIPS_URL,
    service_versions: list[str] | None = None,
) -> dict:
    """Build launch claims mirroring what PyLTI1p3 caches after validation."""
    claims = {
        "iss": issuer,
        "aud": client_id,
        "sub": "platform-user-42",
        DEPLOYMENT_ID_CLAIM: deployment_id,
        CONTEXT_CLAIM: {"id": "ctx-1", "label": "CMPT101", "title": "CMPT 101"},
    }
    if nrps:
        claims[NRPS_CLAIM] = {
            "context_memberships_url": memberships_url,
            "service_versions": service_versions or ["2.0"],
        }
    return claims


def membership_body(members: list[dict] | None = None, title: str = "CMPT 101") -> dict:
    if members is None:
        members = [
            {"user_id": "u-1", "name": "Alice", "roles": [INSTRUCTOR], "status": "Active"},
            {"user_id": "u-2", "name": "Bob", "roles": [LEARNER], "status": "Active"},
        ]
    return {
        "id": MEMBERSHIPS_URL,
        "context": {"id": "ctx-1", "label": "CMPT101", "title": title},
        "members": members,
    }


def make_response(
    status_code: int = 200,
    body: dict | None = None,
    raw: str | None = None,
    headers: dict | None = None,
    url: str = "",
) -> requests.Response:
    """A real requests.Response with a canned body."""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response._content = (raw if raw is not None else json.dumps(body or {})).encode("utf-8")
    response.encoding = "utf-8"
    response.headers.update(headers or {})
    return response


class FakePlatform:
    """Stands in for requests.Session: canned token and service responses.

    Token requests get a fresh valid token unless ``token_responses`` holds
    queued responses. GETs are answered from ``pages[url]``; the last queued
    response for a URL is repeated. ``closed`` counts close() calls.
    """

    def __init__(self):
        self.token_responses: list[requests.Response] = []
        self.pages: dict[str, list[requests.Response]] = {}
        self.posts: list[dict] = []
        self.gets: list[dict] = []
        self.closed = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.closed += 1

    @property
    def call_count(self) -> int:
        return len(self.posts) + len(self.gets)

    def serve(self, url: str, *responses: requests.Response) -> None:
        self.pages[url] = list(responses)

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.token_responses:
            return self.token_responses.pop(0)
        return make_response(
            200,
            {"access_token": f"token-{len(self.posts)}", "token_type": "Bearer", "expires_in": 3600},
        )

    def get(self, url, headers=None, timeout=None):
        self.gets.append({"url": url, "headers": headers, "timeout": timeout})
        queue = self.pages.get(url)
        if not queue:
            return make_response(404, {"error": "not found"}, url=url)
        return queue.pop(0) if len(queue) > 1 else queue[0]


class FakeLaunchSessions:
    """Launch session provider holding simulated completed launches."""

    def __init__(self):
        self.launches: dict[str, LaunchSession] = {}

    def add(self, launch_id: str, claims: dict | None = None) -> str:
        self.launches[launch_id] = LaunchSession.from_claims(launch_id, claims or make_claims())
        return launch_id

    def get(self, launch_id: str) -> LaunchSession:
        try:
            return self.launches[launch_id]
        except KeyError:
            raise LaunchNotFoundError(f"launch {launch_id} not found") from None


# ---------------------------------------------------------------------------
# Keys and records
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def registration() -> Registration:
    return make_registration()


@pytest.fixture
def deployment() -> Deployment:
    return Deployment(issuer=ISSUER, deployment_id=DEPLOYMENT_ID)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sql_engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(sql_engine) -> SQLStore:
    return SQLStore(sql_engine)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def seeded_store(memory_store, registration, deployment) -> InMemoryStore:
    seed_store(memory_store, registration, deployment)
    return memory_store


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis_client() -> fakeredis.FakeRedis:
    server = fakeredis.FakeServer()
    return fakeredis.FakeRedis(server=server, decode_responses=True)


# ---------------------------------------------------------------------------
# Platform and launches
# ---------------------------------------------------------------------------


@pytest.fixture
def platform() -> FakePlatform:
    platform = FakePlatform()
    platform.serve(MEMBERSHIPS_URL, make_response(200, membership_body()))
    return platform


@pytest.fixture
def launches() -> FakeLaunchSessions:
    return FakeLaunchSessions()


@pytest.fixture
def tool_context(seeded_store, private_key_pem, platform, launches) -> ToolContext:
    return ToolContext(
        store=seeded_store,
        launch_data_storage=MemoryLaunchDataStorage(),
        private_key=private_key_pem,
        key_id="test-key",
        http_factory=lambda: platform,
        sessions=launches,
    )


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    clear_settings_cache()
    return Settings(
        env="local",
        datastore="memory",
        redis_url="",
        csp_frame_ancestors="https://platform.example",
        debug=True,
    )


@pytest.fixture
def app(tool_context, test_settings):
    from lti_roster.app import create_app

    return create_app(tool_context, test_settings)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator:
    from httpx import ASGITransport, AsyncClient

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
