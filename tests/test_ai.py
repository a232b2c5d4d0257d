"""Tests for the AI provider client."""

from __future__ import annotations

import json

import httpx
import pytest

from blockterm.services.ai import NO_RESPONSE, AIProvider, ConversationContext, ProviderError


def provider_with(app_config, handler, provider="gemini"):
    app_config.ai.provider = provider
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AIProvider(app_config, client=client)


class TestConversationContext:
    def test_empty_prompt_is_passthrough(self):
        assert ConversationContext().build_prompt("hello") == "hello"

    def test_accumulates(self):
        context = ConversationContext()
        context.add("User: a\nAI: b")
        context.add("User: c\nAI: d")
        assert len(context) == 2
        assert context.build_prompt("e") == "User: a\nAI: b\nUser: c\nAI: d\nUser: e"
        assert context.entries == ("User: a\nAI: b", "User: c\nAI: d")


class TestAIProvider:
    @pytest.mark.asyncio
    async def test_gemini_success(self, app_config):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["key"] = request.headers.get("x-goog-api-key")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Hi there"}]}}]})

        provider = provider_with(app_config, handler)
        text = await provider.generate_response("hello", max_tokens=50, temperature=0.2)

        assert text == "Hi there"
        assert "models/gemini-1.5-flash:generateContent" in captured["url"]
        assert captured["key"] == "test-key"
        assert captured["body"]["contents"][0]["parts"][0]["text"] == "hello"
        assert captured["body"]["generationConfig"] == {"maxOutputTokens": 50, "temperature": 0.2}

    @pytest.mark.asyncio
    async def test_openai_success(self, app_config):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["auth"] = request.headers.get("authorization")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "From GPT"}}]})

        provider = provider_with(app_config, handler, provider="openai")
        text = await provider.generate_response("hello")

        assert text == "From GPT"
        assert captured["auth"] == "Bearer test-key"
        assert captured["body"]["model"] == "gpt-4"
        assert captured["body"]["max_tokens"] == 256
        assert captured["body"]["messages"][-1] == {"role": "user", "content": "hello"}

    @pytest.mark.asyncio
    async def test_missing_text_fallback(self, app_config):
        provider = provider_with(app_config, lambda request: httpx.Response(200, json={"candidates": []}))
        assert await provider.generate_response("hello") == NO_RESPONSE

    @pytest.mark.asyncio
    async def test_http_error_status(self, app_config):
        provider = provider_with(app_config, lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(ProviderError, match="HTTP 503"):
            await provider.generate_response("hello")

    @pytest.mark.asyncio
    async def test_explicit_error_payload(self, app_config):
        provider = provider_with(
            app_config,
            lambda request: httpx.Response(400, json={"error": {"message": "API key not valid"}}),
        )
        with pytest.raises(ProviderError, match="API key not valid"):
            await provider.generate_response("hello")

    @pytest.mark.asyncio
    async def test_plain_string_error_is_verbatim(self, app_config):
        provider = provider_with(
            app_config,
            lambda request: httpx.Response(429, json={"error": "Quota exceeded for today"}),
        )
        with pytest.raises(ProviderError) as excinfo:
            await provider.generate_response("hello")
        assert str(excinfo.value) == "Quota exceeded for today"

    @pytest.mark.asyncio
    async def test_explicit_zero_max_tokens_is_sent(self, app_config):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"candidates": []})

        provider = provider_with(app_config, handler)
        await provider.generate_response("hello", max_tokens=0)
        assert captured["body"]["generationConfig"]["maxOutputTokens"] == 0

    @pytest.mark.asyncio
    async def test_invalid_json(self, app_config):
        provider = provider_with(app_config, lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderError, match="Invalid JSON"):
            await provider.generate_response("hello")

    @pytest.mark.asyncio
    async def test_empty_body(self, app_config):
        provider = provider_with(app_config, lambda request: httpx.Response(200, text="  "))
        with pytest.raises(ProviderError, match="Empty response"):
            await provider.generate_response("hello")

    @pytest.mark.asyncio
    async def test_transport_failure(self, app_config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = provider_with(app_config, handler)
        with pytest.raises(ProviderError, match="connection refused"):
            await provider.generate_response("hello")

    @pytest.mark.asyncio
    async def test_unsupported_provider(self, app_config):
        provider = provider_with(app_config, lambda request: httpx.Response(200), provider="nope")
        with pytest.raises(ProviderError, match="Unsupported AI provider"):
            await provider.generate_response("hello")

    @pytest.mark.asyncio
    async def test_demo_mode_skips_network(self, app_config):
        app_config.ai.api_key = ""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("network must not be used in demo mode")

        provider = provider_with(app_config, handler)
        assert provider.is_demo
        assert "Demo Mode" in await provider.generate_response("hello")

    def test_provider_info(self, app_config):
        info = AIProvider(app_config).provider_info()
        assert info["provider"] == "gemini"
        assert info["model"] == "gemini-1.5-flash"
        assert info["demo"] is False
