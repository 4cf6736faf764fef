"""
Unit tests for the Grok chat completion client.

The xAI API is replaced by an httpx.MockTransport.
"""

import json

import httpx
import pytest

from app.config.settings import Settings
from app.infrastructure.ai import GrokService
from app.infrastructure.exceptions import AIServiceError, ConfigurationError


def settings(**overrides) -> Settings:
    values = dict(
        supabase_url="https://example.supabase.co",
        supabase_service_role_key="service-role",
        grok_api_key="xai-test-key",
        grok_api_url="https://api.x.ai/v1/chat/completions",
        grok_model="grok-3-mini",
    )
    values.update(overrides)
    return Settings(**values)


def service_with(handler, **overrides) -> GrokService:
    return GrokService(settings(**overrides), transport=httpx.MockTransport(handler))


class TestGrokService:

    async def test_complete_returns_content_and_usage(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "choices": [{"message": {"role": "assistant", "content": "Build a habit tracker"}}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 5},
            })

        result = await service_with(handler).complete([{"role": "user", "content": "idea?"}])

        assert result == {
            "content": "Build a habit tracker",
            "usage": {"prompt_tokens": 12, "completion_tokens": 5},
        }
        assert seen["auth"] == "Bearer xai-test-key"
        assert seen["body"]["model"] == "grok-3-mini"
        assert seen["body"]["temperature"] == GrokService.DEFAULT_TEMPERATURE
        assert seen["body"]["max_tokens"] == GrokService.DEFAULT_MAX_TOKENS

    async def test_overrides_are_forwarded(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"choices": []})

        result = await service_with(handler).complete(
            [{"role": "user", "content": "x"}], model="grok-4", temperature=0, max_tokens=100
        )

        assert seen["model"] == "grok-4"
        assert seen["temperature"] == 0
        assert seen["max_tokens"] == 100
        assert result["content"] == ""

    async def test_error_status_raises(self):
        service = service_with(lambda request: httpx.Response(429, text="rate limited"))

        with pytest.raises(AIServiceError) as excinfo:
            await service.complete([{"role": "user", "content": "x"}])

        assert excinfo.value.details["status_code"] == 429

    async def test_transport_failure_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AIServiceError, match="Grok request failed"):
            await service_with(handler).complete([{"role": "user", "content": "x"}])

    async def test_missing_key_raises_configuration_error(self):
        service = service_with(lambda request: httpx.Response(200, json={}), grok_api_key=None)

        assert service.is_configured is False
        with pytest.raises(ConfigurationError):
            service.api_key
        with pytest.raises(ConfigurationError):
            await service.complete([{"role": "user", "content": "x"}])
