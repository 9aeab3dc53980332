"""Tests for the OpenAI-compatible chat completion clients.

Covers:
- Successful completion with token usage
- Retry on 5xx and on 429 with Retry-After, no retry on auth failures
- Unconfigured client and open circuit short-circuit
- Perplexity citations and shipping research prompt
"""

import json
import time
from collections.abc import Callable

import httpx
import pytest

from app.core.circuit_breaker import CircuitState
from app.integrations.openai import OpenAIClient, json_schema_format
from app.integrations.perplexity import PerplexityClient

BASE_URL = "https://llm.test/v1"

Handler = Callable[[httpx.Request], httpx.Response]


def chat_response(text: str, **extra) -> httpx.Response:
    payload = {
        "choices": [{"message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 5},
        **extra,
    }
    return httpx.Response(200, json=payload, headers={"x-request-id": "req-1"})


def with_transport(client: OpenAIClient, handler: Handler) -> OpenAIClient:
    client._client = httpx.AsyncClient(
        base_url=BASE_URL, transport=httpx.MockTransport(handler)
    )
    return client


def make_client(handler: Handler, cls: type[OpenAIClient] = OpenAIClient, **kwargs):
    params = {
        "api_key": "sk-test",
        "base_url": BASE_URL,
        "model": "test-model",
        "max_retries": 3,
        "retry_delay": 0,
    }
    params.update(kwargs)
    return with_transport(cls(**params), handler)


class TestComplete:
    async def test_success_returns_text_and_usage(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return chat_response("hello")

        client = make_client(handler)
        result = await client.complete("Say hi", system_prompt="Be brief", max_tokens=50)
        await client.close()

        assert result.success is True
        assert result.text == "hello"
        assert result.input_tokens == 12
        assert result.output_tokens == 5
        assert result.request_id == "req-1"
        assert result.citations == []

        body = json.loads(requests[0].content)
        assert requests[0].url.path.endswith("/chat/completions")
        assert body["model"] == "test-model"
        assert body["max_tokens"] == 50
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert "return_citations" not in body

    async def test_response_format_is_forwarded(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return chat_response("[]")

        schema = {"type": "object", "properties": {}}
        client = make_client(handler)
        await client.complete("x", response_format=json_schema_format("comps", schema))

        assert seen["response_format"]["type"] == "json_schema"
        assert seen["response_format"]["json_schema"]["name"] == "comps"
        assert seen["response_format"]["json_schema"]["strict"] is True

    async def test_retries_server_errors(self) -> None:
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] < 3:
                return httpx.Response(503)
            return chat_response("recovered")

        client = make_client(handler, max_retries=3)
        result = await client.complete("x")

        assert result.success is True
        assert result.text == "recovered"
        assert calls["count"] == 3

    async def test_server_error_after_all_retries(self) -> None:
        client = make_client(lambda r: httpx.Response(500), max_retries=2)

        result = await client.complete("x")

        assert result.success is False
        assert result.status_code == 500
        assert result.error == "Server error (500)"

    async def test_rate_limit_honors_retry_after(self) -> None:
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] == 1:
                return httpx.Response(429, headers={"retry-after": "0.01"})
            return chat_response("after wait")

        client = make_client(handler)
        result = await client.complete("x")

        assert result.success is True
        assert calls["count"] == 2

    async def test_rate_limit_without_retry_after(self) -> None:
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            return httpx.Response(429)

        client = make_client(handler)
        result = await client.complete("x")

        assert result.success is False
        assert result.status_code == 429
        assert result.error == "Rate limit exceeded"
        assert calls["count"] == 1

    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_failure_is_not_retried(self, status: int) -> None:
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            return httpx.Response(status)

        client = make_client(handler)
        result = await client.complete("x")

        assert result.success is False
        assert result.status_code == status
        assert calls["count"] == 1

    async def test_client_error_message_is_surfaced(self) -> None:
        client = make_client(
            lambda r: httpx.Response(400, json={"error": {"message": "bad schema"}})
        )

        result = await client.complete("x")

        assert result.success is False
        assert result.error == "Client error (400): bad schema"

    async def test_timeout_exhausts_retries(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = make_client(handler, max_retries=2)
        result = await client.complete("x", timeout=5)

        assert result.success is False
        assert "timed out" in (result.error or "")

    async def test_unconfigured_client_makes_no_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        client = with_transport(
            OpenAIClient(api_key="", base_url=BASE_URL, model="m"), handler
        )

        result = await client.complete("x")

        assert client.available is False
        assert result.success is False
        assert "not configured" in (result.error or "")

    async def test_open_circuit_rejects(self) -> None:
        client = make_client(lambda r: chat_response("unused"))
        client.circuit_breaker._state = CircuitState.OPEN
        client.circuit_breaker._last_failure_time = time.monotonic()

        result = await client.complete("x")

        assert result.success is False
        assert result.error == "Circuit breaker is open"


class TestPerplexity:
    async def test_citations_are_returned(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return chat_response(
                "Free shipping: over $50", citations=["https://acme.com/shipping"]
            )

        client = make_client(handler, cls=PerplexityClient)
        result = await client.complete("x")

        assert seen["return_citations"] is True
        assert result.citations == ["https://acme.com/shipping"]

    async def test_research_shipping_prompt(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return chat_response("Free shipping: Free shipping on orders over $50")

        client = make_client(handler, cls=PerplexityClient)
        result = await client.research_shipping("acme.com", timeout=10)

        assert result.success is True
        assert seen["max_tokens"] == 400
        assert seen["temperature"] == 0.1
        assert "acme.com" in seen["messages"][-1]["content"]
        assert "Free shipping:" in seen["messages"][-1]["content"]
