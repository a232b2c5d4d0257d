"""AI provider client service."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from blockterm.config import AppConfig

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"

SYSTEM_PROMPT = (
    "You are an expert software developer and AI assistant. Help the user with code "
    "analysis, editing, and development tasks. Always be precise and helpful."
)
NO_RESPONSE = "No response received."


class ProviderError(Exception):
    """Raised when the AI provider cannot produce a response."""


class ConversationContext:
    """Append-only transcript of AI exchanges for the current run."""

    def __init__(self) -> None:
        self._entries: list[str] = []

    def add(self, entry: str) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def render(self) -> str:
        return "\n".join(self._entries)

    def build_prompt(self, text: str) -> str:
        history = self.render()
        return f"{history}\nUser: {text}" if history else text

    def __len__(self) -> int:
        return len(self._entries)


class AIProvider:
    """Generate text through the configured provider's HTTP API."""

    def __init__(self, config: AppConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client

    @property
    def provider(self) -> str:
        return self.config.ai.provider

    @property
    def model(self) -> str:
        return self.config.ai.resolved_model

    @property
    def is_demo(self) -> bool:
        return not self.config.ai.api_key

    def provider_info(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "max_tokens": self.config.ai.max_tokens,
            "temperature": self.config.ai.temperature,
            "demo": self.is_demo,
        }

    async def generate_response(
        self,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send a prompt and return the generated text."""
        if self.is_demo:
            return self._demo_response(prompt)

        max_tokens = self.config.ai.max_tokens if max_tokens is None else max_tokens
        temperature = self.config.ai.temperature if temperature is None else temperature

        if self.provider == "gemini":
            url, headers, body = self._gemini_request(prompt, max_tokens, temperature)
        elif self.provider == "openai":
            url, headers, body = self._openai_request(prompt, max_tokens, temperature)
        else:
            raise ProviderError(f"Unsupported AI provider: {self.provider}")

        data = await self._post(url, headers, body)
        if data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                raise ProviderError(error.get("message") or json.dumps(error))
            raise ProviderError(str(error))

        if self.provider == "gemini":
            return _dig(data, "candidates", 0, "content", "parts", 0, "text") or NO_RESPONSE
        return _dig(data, "choices", 0, "message", "content") or NO_RESPONSE

    def _gemini_request(self, prompt: str, max_tokens: int, temperature: float) -> tuple[str, dict, dict]:
        model = self.model if self.model.startswith("models/") else f"models/{self.model}"
        url = f"{GEMINI_BASE_URL}/{model}:generateContent"
        headers = {"x-goog-api-key": self.config.ai.api_key}
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": max_tokens, "temperature": temperature},
        }
        return url, headers, body

    def _openai_request(self, prompt: str, max_tokens: int, temperature: float) -> tuple[str, dict, dict]:
        url = f"{OPENAI_BASE_URL}/chat/completions"
        headers = {"Authorization": f"Bearer {self.config.ai.api_key}"}
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        return url, headers, body

    async def _post(self, url: str, headers: dict, body: dict) -> dict[str, Any]:
        try:
            if self._client is not None:
                response = await self._client.post(url, headers=headers, json=body)
            else:
                async with httpx.AsyncClient(timeout=self.config.ai.timeout) as client:
                    response = await client.post(url, headers=headers, json=body)
        except httpx.TimeoutException:
            raise ProviderError(f"AI request timed out after {self.config.ai.timeout}s")
        except httpx.HTTPError as e:
            logger.error("AI provider transport error: %s", e)
            raise ProviderError(f"AI request failed: {e}") from e

        if response.status_code >= 400 and not _has_error_field(response):
            raise ProviderError(f"HTTP {response.status_code}: {response.text[:200]}")

        text = response.text
        if not text.strip():
            raise ProviderError("Empty response from API")
        try:
            data = response.json()
        except ValueError:
            raise ProviderError(f"Invalid JSON response: {text[:200]}...")
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected response payload: {text[:200]}")
        return data

    def _demo_response(self, prompt: str) -> str:
        key_var = f"{self.provider.upper()}_API_KEY"
        return (
            f"Demo Mode: I understand you're asking about: {prompt[:50]}... "
            "In demo mode I can't provide real AI responses.\n\n"
            "To enable full AI features:\n"
            f"1. Get an API key for {self.provider}\n"
            f"2. Export it: {key_var}=your_key_here (or set ai.api_key in the config)\n"
            "3. Restart the terminal"
        )


def _has_error_field(response: httpx.Response) -> bool:
    try:
        data = response.json()
    except ValueError:
        return False
    return isinstance(data, dict) and bool(data.get("error"))


def _dig(data: Any, *path: str | int) -> Any:
    for key in path:
        try:
            data = data[key]
        except (KeyError, IndexError, TypeError):
            return None
    return data
