"""Shared fixtures: a seeded in-memory store, a mock integration host, and
a service container wired around both."""
import time

import httpx
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet

from api.deps import Services
from hub.config import GatewayConfig, TelemetryConfig, UpstreamConfig
from hub.integrations.credential_vault import TokenCipher
from hub.integrations.providers import OAuthProviderConfig, ProviderRegistry
from hub.models import (
    IntegrationDescriptor,
    OAuthToken,
    Resource,
    Tool,
    User,
    UserIntegrationConnection,
)
from hub.store.memory import InMemoryStore

API_KEY = "mcp_sk_" + "ab" * 32
UPSTREAM_BASE = "http://integrations.test"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"


class MockUpstream:
    """Records outbound requests and answers from a per-URL route table."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, httpx.Response] = {}
        self.failures: dict[str, Exception] = {}

    def route(self, url: str, status_code: int = 200, json_body=None, text=None, headers=None):
        if json_body is not None:
            response = httpx.Response(status_code, json=json_body, headers=headers)
        else:
            response = httpx.Response(status_code, text=text or "", headers=headers)
        self.routes[url] = response

    def fail(self, url: str, exc: Exception):
        self.failures[url] = exc

    def calls_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) in self.failures:
            raise self.failures[str(request.url)]
        response = self.routes.get(str(request.url))
        if response is None:
            return httpx.Response(404, text="no route")
        return httpx.Response(
            response.status_code,
            content=response.content,
            headers=response.headers,
        )


@pytest.fixture
def api_key() -> str:
    return API_KEY


@pytest.fixture
def fernet_key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def cipher(fernet_key) -> TokenCipher:
    return TokenCipher(fernet_key)


@pytest.fixture
def config(fernet_key) -> GatewayConfig:
    return GatewayConfig(
        encryption_key=fernet_key,
        app_url="http://hub.test",
        database_url="sqlite+aiosqlite:///:memory:",
        telemetry=TelemetryConfig(salt="test-salt"),
        upstream=UpstreamConfig(base_url=UPSTREAM_BASE, timeout_seconds=5.0),
    )


@pytest.fixture
def user() -> User:
    return User(id="user-1", email="dev@example.com")


@pytest.fixture
def github() -> IntegrationDescriptor:
    return IntegrationDescriptor(
        id="int-github",
        slug="github",
        name="GitHub",
        function_path="/api/integrations/github",
        tools=[
            Tool(
                name="list_repos",
                description="List repositories",
                schema={"type": "object", "properties": {"org": {"type": "string"}}},
            ),
            Tool(name="create_issue", description="Open an issue"),
        ],
        resources=[Resource(uri_template="github://repos/{owner}/{repo}", description="Repository")],
    )


@pytest.fixture
def linear() -> IntegrationDescriptor:
    return IntegrationDescriptor(
        id="int-linear",
        slug="linear",
        name="Linear",
        function_path="https://linear.integrations.test/invoke",
        tools=[Tool(name="list_issues", description="List issues")],
    )


@pytest.fixture
def github_token() -> OAuthToken:
    return OAuthToken(access_token="gho_live_access", expires_in=3600, refresh_token="ghr_refresh")


@pytest.fixture
def store(user, github, linear, cipher, github_token) -> InMemoryStore:
    store = InMemoryStore()
    store.add_user(user, API_KEY)
    store.add_integration(github)
    store.add_integration(linear)
    store.add_connection(
        UserIntegrationConnection(
            user_id=user.id,
            integration_id=github.id,
            enabled=True,
            oauth_token_encrypted=cipher.encrypt_token(github_token),
            token_issued_at=int(time.time() * 1000),
        )
    )
    store.add_connection(
        UserIntegrationConnection(user_id=user.id, integration_id=linear.id, enabled=False)
    )
    return store


@pytest.fixture
def upstream() -> MockUpstream:
    return MockUpstream()


@pytest.fixture
def providers() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(
        "github",
        OAuthProviderConfig(
            provider_name="github",
            client_id="client-id",
            client_secret="client-secret",
            authorization_url="https://github.com/login/oauth/authorize",
            token_url=GITHUB_TOKEN_URL,
            redirect_uri="http://hub.test/api/oauth/github/callback",
            scopes=("repo", "read:user"),
        ),
    )
    return registry


@pytest_asyncio.fixture
async def services(config, store, upstream, providers):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    services = Services.build(config, store, http_client=http_client, providers=providers)
    yield services
    await services.aclose()
