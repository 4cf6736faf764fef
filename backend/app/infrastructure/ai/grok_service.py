"""
Grok AI Service for App Ideas Finder

Server-side proxy to the xAI chat completions API so the API key never
reaches the browser.
"""

import logging
from typing import Any, Optional

import httpx
from fastapi import Depends

from app.config.settings import Settings, get_settings
from app.infrastructure.exceptions import AIServiceError, ConfigurationError


logger = logging.getLogger(__name__)


class GrokService:
    """
    Chat completion client for Grok.

    Defaults mirror what the analysis UI expects: low temperature and a
    large output budget for structured idea reports.
    """

    DEFAULT_TEMPERATURE = 0.2
    DEFAULT_MAX_TOKENS = 5000

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._api_key = settings.grok_api_key
        self._api_url = settings.grok_api_url
        self._model = settings.grok_model
        self._timeout = settings.grok_timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def api_key(self) -> str:
        if not self._api_key:
            raise ConfigurationError("Grok API key not configured", missing_keys=["GROK_API_KEY"])
        return self._api_key

    async def complete(
        self,
        messages: list[dict[str, Any]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Run one chat completion.

        Returns:
            {"content": str, "usage": dict | None}

        Raises:
            ConfigurationError: no API key
            AIServiceError: transport failure or non-2xx answer
        """
        model = model or self._model
        payload = {
            "model": model,
            "messages": messages,
            "temperature": self.DEFAULT_TEMPERATURE if temperature is None else temperature,
            "max_tokens": max_tokens or self.DEFAULT_MAX_TOKENS,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Grok request failed: {e}")
            raise AIServiceError(f"Grok request failed: {e}", model=model, original_error=e)

        if response.status_code >= 400:
            logger.error(f"Grok API error {response.status_code}: {response.text[:500]}")
            raise AIServiceError(
                f"Grok API error: {response.status_code}",
                model=model,
                status_code=response.status_code,
            )

        data = response.json()
        choices = data.get("choices") or []
        content = ""
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""

        return {"content": content, "usage": data.get("usage")}


def get_grok_service(settings: Settings = Depends(get_settings)) -> GrokService:
    """Per-request GrokService built from settings."""
    return GrokService(settings)
