"""OpenRouter chat-completions client."""

from __future__ import annotations

import httpx
import structlog

from shinobi.config import Settings, get_settings
from shinobi.errors import UpstreamProviderError

logger = structlog.get_logger()


class OpenRouterClient:
    """Thin async wrapper over ``POST {base_url}/chat/completions``.

    Pass ``http`` to reuse a client (tests hand in one built on
    ``httpx.MockTransport``); otherwise a short-lived client is opened per call.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://openrouter.ai/api/v1",
        model: str = "deepseek/deepseek-r1:free",
        referer: str = "http://localhost:3000",
        timeout: float = 30.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.referer = referer
        self.timeout = timeout
        self._http = http

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> OpenRouterClient:
        settings = settings or get_settings()
        return cls(
            settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            model=settings.openrouter_model,
            referer=settings.frontend_base_url,
            timeout=settings.openrouter_timeout_seconds,
        )

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
        }
        url = f"{self.base_url}/chat/completions"
        if self._http is not None:
            return await self._http.post(url, headers=headers, json=payload, timeout=self.timeout)
        async with httpx.AsyncClient() as client:
            return await client.post(url, headers=headers, json=payload, timeout=self.timeout)

    async def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> str:
        """Return the first choice's message content.

        Raises:
            UpstreamProviderError: no API key, transport failure, non-2xx
                answer, or a body without a message.
        """
        if not self.api_key:
            raise UpstreamProviderError("OpenRouter API key is not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            raise UpstreamProviderError(f"OpenRouter request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning("openrouter_error", status=response.status_code, body=response.text[:500])
            raise UpstreamProviderError(f"OpenRouter API error: {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamProviderError("OpenRouter returned an unexpected response") from e
        if not isinstance(content, str):
            raise UpstreamProviderError("OpenRouter returned an empty message")
        return content
