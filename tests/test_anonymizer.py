"""Test telemetry anonymization helpers."""
import json
import random

import pytest

from hub.telemetry.anonymizer import (
    anonymize_params,
    categorize_error,
    client_ip,
    estimate_tokens,
    extract_client,
    extract_model_id,
    geo_region,
    param_complexity,
    session_hash,
)


# --- Session hash ---

def test_session_hash_is_stable_and_truncated():
    headers = {"mcp-session-id": "sess-1"}
    first = session_hash(headers, salt="s")
    assert first == session_hash(headers, salt="s")
    assert len(first) == 32
    assert "sess-1" not in first


def test_session_hash_depends_on_salt_and_signal():
    headers = {"x-forwarded-for": "203.0.113.9, 10.0.0.1", "user-agent": "claude-desktop/1.2"}
    assert session_hash(headers, "a") != session_hash(headers, "b")
    assert session_hash(headers, "a") != session_hash({**headers, "user-agent": "cursor/0.4"}, "a")


def test_session_header_takes_precedence_over_connection():
    with_session = {"mcp-session-id": "abc", "x-real-ip": "198.51.100.1"}
    other_ip = {"mcp-session-id": "abc", "x-real-ip": "198.51.100.2"}
    assert session_hash(with_session) == session_hash(other_ip)


def test_client_ip_uses_first_forwarded_hop():
    assert client_ip({"x-forwarded-for": "203.0.113.9, 10.0.0.1"}) == "203.0.113.9"
    assert client_ip({"x-real-ip": "198.51.100.7"}) == "198.51.100.7"
    assert client_ip({}) is None


# --- Parameter shape ---

def test_anonymize_params_type_tags():
    shape = anonymize_params(
        {"name": "x", "count": 3, "ratio": 0.5, "flag": True, "none": None, "tags": ["a", "b"], "empty": []}
    )
    assert shape == {
        "name": "string",
        "count": "number",
        "ratio": "number",
        "flag": "boolean",
        "none": "null",
        "tags": "array<string>",
        "empty": "array<empty>",
    }


def test_anonymize_params_nested_array_of_objects():
    shape = anonymize_params({"items": [{"id": 1, "title": "t"}]})
    assert shape["items"].startswith("array<")
    assert '"id":"number"' in shape["items"]


def test_anonymize_params_unknown_leaf_is_undefined():
    assert anonymize_params(object()) == "undefined"


@pytest.mark.parametrize(
    "params",
    [
        {"query": "zqx-secret-7781", "limit": 998877},
        {"repo": {"owner": "acme-zzq-corp", "private": True, "stars": 424242}},
        {"emails": ["leak.me@zqx.example", "other@zqx.example"]},
        [{"token": "tok_zqx_abcdef", "score": 3.14159}],
        "bare-zqx-string",
    ],
)
def test_anonymized_shape_contains_no_leaf_values(params):
    shape = json.dumps(anonymize_params(params))

    def leaves(node):
        if isinstance(node, dict):
            for v in node.values():
                yield from leaves(v)
        elif isinstance(node, list):
            for v in node:
                yield from leaves(v)
        elif not isinstance(node, bool):
            yield str(node)

    for leaf in leaves(params):
        assert leaf not in shape


def _random_params(rng, depth=0):
    """Nested dicts, lists and scalars whose leaves never look like a type tag."""
    kind = rng.choice(["dict", "list", "str", "int", "bool", "none"] if depth < 4 else ["str", "int"])
    if kind == "dict":
        return {f"k{i}": _random_params(rng, depth + 1) for i in range(rng.randint(0, 4))}
    if kind == "list":
        return [_random_params(rng, depth + 1) for _ in range(rng.randint(0, 4))]
    if kind == "str":
        return f"zq{rng.getrandbits(48):012x}"
    if kind == "int":
        return 10**9 + rng.randrange(10**9)
    return True if kind == "bool" else None


@pytest.mark.parametrize("seed", range(50))
def test_generated_params_never_leak_leaf_values(seed):
    rng = random.Random(seed)
    params = _random_params(rng)
    shape = json.dumps(anonymize_params(params))

    def leaves(node):
        if isinstance(node, dict):
            for v in node.values():
                yield from leaves(v)
        elif isinstance(node, list):
            for v in node:
                yield from leaves(v)
        elif isinstance(node, (str, int)) and not isinstance(node, bool):
            yield str(node)

    for leaf in leaves(params):
        assert leaf not in shape


# --- Complexity & tokens ---

def test_complexity_depth():
    assert param_complexity({"a": {"b": {"c": 1}}}).depth == 3


def test_complexity_array_length():
    assert param_complexity([1, 2, 3]).max_array_length == 3


def test_complexity_counts_top_level_keys_only():
    result = param_complexity({"a": 1, "b": {"c": 1, "d": 2}, "e": [[1, 2, 3, 4], [5]]})
    assert result.count == 3
    assert result.max_array_length == 4
    assert param_complexity([{"a": 1}]).count == 0
    assert param_complexity(None).depth == 0


def test_estimate_tokens():
    assert estimate_tokens(None) == 0
    assert estimate_tokens("ab") == 1  # '"ab"' is 4 chars
    assert estimate_tokens("abcd") == 2
    assert estimate_tokens({"a": 1}) == 2  # '{"a": 1}' is 8 chars
    assert estimate_tokens({"bad": object()}) == 0


# --- Errors ---

@pytest.mark.parametrize(
    "message, category",
    [
        ("Request timed out after 30s", "timeout"),
        ("429 Too Many Requests", "rate_limit"),
        ("401 Unauthorized", "auth"),
        ("Invalid tool name format", "validation"),
        ("segfault in integration", "unknown"),
        # Ordered buckets: timeout wins over the 'token' auth keyword.
        ("token refresh timeout", "timeout"),
    ],
)
def test_categorize_error(message, category):
    assert categorize_error(message) == category
    assert categorize_error(RuntimeError(message)) == category


def test_categorize_none():
    assert categorize_error(None) == "unknown"


# --- Client context ---

def test_geo_region_buckets():
    assert geo_region({"x-vercel-ip-country": "DE"}) == "europe"
    assert geo_region({"x-vercel-ip-country": "us"}) == "north_america"
    assert geo_region({"x-vercel-ip-country": "ZZ"}) == "other"
    assert geo_region({"x-vercel-ip-country": "Germany"}) is None
    assert geo_region({}) is None
    assert geo_region({"cf-ipcountry": "JP"}, header_name="cf-ipcountry") == "asia"


def test_extract_client_from_headers_or_user_agent():
    assert extract_client({"x-client-name": "Cursor", "x-client-version": "0.42"}) == ("cursor", "0.42")
    assert extract_client({"user-agent": "claude-desktop/1.2.3 (darwin)"}) == ("claude-desktop", "1.2.3")
    assert extract_client({}) == (None, None)


def test_extract_model_id():
    assert extract_model_id({"x-model-id": "some-model"}) == "some-model"
    assert extract_model_id({}) is None
