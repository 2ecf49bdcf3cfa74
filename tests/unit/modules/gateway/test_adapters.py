"""Adapter registry and response handling tests."""

import json

import pytest

from src.modules.gateway.adapters import UpstreamError, get_adapter, registered_adapters
from src.modules.proxies.pool import UpstreamResponse


def test_lookup_is_case_insensitive_and_aliased():
    assert get_adapter("GEMINI").provider_name == "Gemini"
    assert get_adapter("google") is get_adapter("gemini")
    assert get_adapter("Stability AI").name == "stability"
    assert get_adapter("unknown") is None
    assert get_adapter(None) is None


def test_registered_adapters_are_unique():
    names = [a.name for a in registered_adapters()]
    assert names == sorted(set(names))
    assert {"gemini", "openai", "deepseek", "stability"} <= set(names)


def test_capabilities():
    assert get_adapter("stability").supports_text is False
    assert get_adapter("gemini").supports_images is True
    assert get_adapter("deepseek").supports_images is False


@pytest.mark.parametrize(
    "adapter_name, status, body, expected",
    [
        ("openai", 400, {"error": {"type": "invalid_request_error"}}, "bad_request"),
        ("openai", 401, {"error": {"code": "invalid_api_key"}}, "invalid_key"),
        ("deepseek", 429, {"error": {"message": "rate limit"}}, "quota_exceeded"),
        ("gemini", 400, {"error": {"status": "INVALID_ARGUMENT"}}, "bad_request"),
        (
            "gemini",
            400,
            {"error": {"details": [{"reason": "API_KEY_INVALID"}]}},
            "invalid_key",
        ),
        ("gemini", 503, {"error": {"status": "UNAVAILABLE"}}, "http_error"),
    ],
)
def test_error_kind_from_response(adapter_name, status, body, expected):
    response = UpstreamResponse(status=status, body=json.dumps(body).encode())

    with pytest.raises(UpstreamError) as exc_info:
        get_adapter(adapter_name).check_response(response)

    assert exc_info.value.error_kind == expected
    assert exc_info.value.status_code == status


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "adapter_name, url_suffix, auth_header, auth_value",
    [
        ("openai", "/models", "Authorization", "Bearer k-1"),
        ("deepseek", "/models", "Authorization", "Bearer k-1"),
        ("gemini", "/models", "x-goog-api-key", "k-1"),
        ("stability", "/user/account", "Authorization", "Bearer k-1"),
    ],
)
async def test_verify_key_is_an_authenticated_get(
    adapter_name, url_suffix, auth_header, auth_value
):
    calls = []

    async def send(method, url, *, headers=None, json=None):
        calls.append((method, url, headers, json))
        return UpstreamResponse(status=200, body=b"{}")

    await get_adapter(adapter_name).verify_key(send, "k-1")

    method, url, headers, body = calls[0]
    assert method == "GET"
    assert url.endswith(url_suffix)
    assert headers[auth_header] == auth_value
    assert body is None


@pytest.mark.asyncio
async def test_verify_key_raises_on_rejection():
    async def send(method, url, *, headers=None, json=None):
        return UpstreamResponse(status=403, body=b'{"error": "forbidden"}')

    with pytest.raises(UpstreamError) as exc_info:
        await get_adapter("openai").verify_key(send, "k-1")

    assert exc_info.value.error_kind == "invalid_key"
