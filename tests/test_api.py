"""Test the HTTP surface: REST gateway, JSON-RPC endpoint and OAuth flow."""
from urllib.parse import parse_qs, urlparse

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from api.main import create_app

GITHUB_URL = "http://integrations.test/api/integrations/github"
TOKEN_URL = "https://github.com/login/oauth/access_token"


@pytest_asyncio.fixture
async def client(config, services):
    app = create_app(config=config, services=services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth(api_key):
    return {"X-Api-Key": api_key}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["x-request-id"] == "req-123"
    assert (await client.get("/health")).headers["x-request-id"]


# --- REST gateway ---

@pytest.mark.asyncio
async def test_missing_api_key_is_401(client):
    response = await client.get("/gateway/tools/list")
    assert response.status_code == 401
    assert response.text == "Missing API key"


@pytest.mark.asyncio
async def test_unknown_api_key_is_401(client):
    response = await client.get("/gateway/tools/list", headers={"X-Api-Key": "mcp_sk_nope"})
    assert response.status_code == 401
    assert response.text == "Invalid API key"


@pytest.mark.asyncio
async def test_authentication_precedes_body_validation(client):
    response = await client.post("/gateway/tools/call", json={})
    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/gateway/tools/call", "/gateway/resources/read", "/gateway/prompts/get"])
async def test_authentication_precedes_body_parsing(client, path):
    response = await client.post(path, content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 401
    assert "json_invalid" not in response.text


@pytest.mark.asyncio
async def test_malformed_body_rejected_after_authentication(client, auth):
    response = await client.post(
        "/gateway/tools/call",
        content=b"{not json",
        headers={**auth, "Content-Type": "application/json"},
    )
    assert response.status_code == 422

    response = await client.post("/gateway/tools/call", json={"arguments": {}}, headers=auth)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_gateway_health_needs_no_key(client):
    response = await client.get("/gateway/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "timestamp" in response.json()


@pytest.mark.asyncio
async def test_tools_list(client, auth):
    response = await client.get("/gateway/tools/list", headers=auth)
    assert response.status_code == 200
    names = [t["name"] for t in response.json()["tools"]]
    assert names == ["github/list_repos", "github/create_issue"]


@pytest.mark.asyncio
async def test_tools_call_returns_raw_integration_json(client, auth, upstream, store):
    upstream.route(GITHUB_URL, json_body={"repos": [{"name": "hub"}], "total": 1})
    response = await client.post(
        "/gateway/tools/call",
        json={"name": "github/list_repos", "arguments": {"org": "acme"}},
        headers=auth,
    )
    assert response.status_code == 200
    assert response.json() == {"repos": [{"name": "hub"}], "total": 1}
    assert len(upstream.calls_to(GITHUB_URL)) == 1


@pytest.mark.asyncio
async def test_tools_call_passes_non_json_body_through(client, auth, upstream):
    upstream.route(GITHUB_URL, text="plain ok")
    response = await client.post(
        "/gateway/tools/call", json={"name": "github/list_repos"}, headers=auth
    )
    assert response.status_code == 200
    assert response.content == b"plain ok"
    assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "name, status",
    [
        ("nonamespace", 400),
        ("linear/list_issues", 403),
        ("jira/search", 403),
    ],
)
async def test_tools_call_error_statuses(client, auth, upstream, name, status):
    response = await client.post("/gateway/tools/call", json={"name": name}, headers=auth)
    assert response.status_code == status
    assert response.headers["content-type"].startswith("text/plain")
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_tools_call_rate_limited(client, auth, upstream):
    upstream.route(GITHUB_URL, status_code=429, text="Rate limit exceeded")
    response = await client.post("/gateway/tools/call", json={"name": "github/list_repos"}, headers=auth)
    assert response.status_code == 429
    assert response.text == "Rate limit exceeded"


@pytest.mark.asyncio
async def test_tools_call_upstream_status_passthrough(client, auth, upstream):
    upstream.route(GITHUB_URL, status_code=503, text="integration cold start")
    response = await client.post("/gateway/tools/call", json={"name": "github/list_repos"}, headers=auth)
    assert response.status_code == 503
    assert response.text == "integration cold start"


@pytest.mark.asyncio
async def test_resources(client, auth):
    listed = await client.get("/gateway/resources/list", headers=auth)
    assert listed.json()["resources"][0]["uri"] == "github://repos/{owner}/{repo}"

    read = await client.post("/gateway/resources/read", json={"uri": "github://repos/a/b"}, headers=auth)
    assert read.status_code == 200
    (content,) = read.json()["contents"]
    assert content["uri"] == "github://repos/a/b"

    malformed = await client.post("/gateway/resources/read", json={"uri": "no-scheme"}, headers=auth)
    assert malformed.status_code == 400

    disabled = await client.post("/gateway/resources/read", json={"uri": "linear://issues"}, headers=auth)
    assert disabled.status_code == 403


@pytest.mark.asyncio
async def test_prompts(client, auth):
    assert (await client.get("/gateway/prompts/list", headers=auth)).json() == {"prompts": []}
    got = await client.post("/gateway/prompts/get", json={"name": "summarize"}, headers=auth)
    assert got.json() == {"description": "Prompt 'summarize' not found", "messages": []}


# --- JSON-RPC ---

@pytest.mark.asyncio
async def test_mcp_initialize_without_key(client):
    response = await client.post("/mcp", json={"jsonrpc": "2.0", "method": "initialize", "id": 1})
    assert response.status_code == 200
    assert response.json()["result"]["serverInfo"]["name"] == "mcp-hub"


@pytest.mark.asyncio
async def test_mcp_parse_error(client):
    response = await client.post(
        "/mcp", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "error": {"code": -32700, "message": "Parse error"}, "id": None}


@pytest.mark.asyncio
async def test_mcp_notification_returns_204(client):
    response = await client.post("/mcp", json={"jsonrpc": "2.0", "method": "initialized"})
    assert response.status_code == 204
    assert response.content == b""


@pytest.mark.asyncio
async def test_mcp_auth_error_stays_in_envelope(client):
    response = await client.post("/mcp", json={"jsonrpc": "2.0", "method": "tools/list", "id": 9})
    assert response.status_code == 200
    assert response.json()["error"]["code"] == -32000


@pytest.mark.asyncio
async def test_mcp_tools_call_with_key(client, auth, upstream, store, services):
    upstream.route(GITHUB_URL, json_body={"ok": True})
    response = await client.post(
        "/mcp",
        json={"jsonrpc": "2.0", "method": "tools/call", "id": "c1", "params": {"name": "github/list_repos"}},
        headers=auth,
    )
    body = response.json()
    assert body["id"] == "c1"
    assert body["result"]["content"][0]["type"] == "text"

    await services.telemetry.flush()
    assert store.analytics[0].tool_name == "github/list_repos"


@pytest.mark.asyncio
async def test_mcp_batch(client, auth):
    response = await client.post(
        "/mcp",
        json=[
            {"jsonrpc": "2.0", "method": "ping", "id": 1},
            {"jsonrpc": "2.0", "method": "initialized"},
            {"jsonrpc": "2.0", "method": "tools/list", "id": 2},
        ],
        headers=auth,
    )
    body = response.json()
    assert [r["id"] for r in body] == [1, 2]
    assert len(body[1]["result"]["tools"]) == 2


# --- OAuth ---

@pytest.mark.asyncio
async def test_oauth_authorize_and_callback(client, auth, upstream, store, cipher):
    upstream.route(TOKEN_URL, json_body={"access_token": "gho_fresh", "expires_in": 28800})

    authorize = await client.get("/api/oauth/github/authorize", headers=auth)
    assert authorize.status_code == 200
    state = authorize.json()["state"]
    assert parse_qs(urlparse(authorize.json()["authorization_url"]).query)["state"] == [state]

    callback = await client.get("/api/oauth/github/callback", params={"code": "c0de", "state": state})
    assert callback.status_code == 200
    assert callback.json() == {"connected": True, "integration": "github"}

    stored = await store.get_user_connection("user-1", "github")
    assert cipher.decrypt_token(stored.oauth_token_encrypted).access_token == "gho_fresh"

    replay = await client.get("/api/oauth/github/callback", params={"code": "c0de", "state": state})
    assert replay.status_code == 400


@pytest.mark.asyncio
async def test_oauth_authorize_requires_key(client):
    assert (await client.get("/api/oauth/github/authorize")).status_code == 401


@pytest.mark.asyncio
async def test_oauth_callback_rejects_unknown_state(client):
    response = await client.get("/api/oauth/github/callback", params={"code": "x", "state": "forged"})
    assert response.status_code == 400
