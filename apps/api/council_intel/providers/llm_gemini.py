from __future__ import annotations

import logging
from typing import Any

import httpx

from council_intel.errors import ConfigurationError
from council_intel.providers.llm import LLMProvider
from council_intel.settings import _gemini_api_key, _gemini_base_url, _llm_model_id, _llm_timeout_seconds
from council_intel.text_utils import _extract_suggestion_items

logger = logging.getLogger(__name__)


class GeminiLLMProvider(LLMProvider):
    """
    Gemini `generateContent` implementation of LLMProvider, asking for a JSON response body.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model_id: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        temperature: float = 0.4,
        max_output_tokens: int = 8192,
    ) -> None:
        self.api_key = api_key if api_key is not None else _gemini_api_key()
        self.model_id = model_id or _llm_model_id()
        self.base_url = (base_url or _gemini_base_url()).rstrip("/")
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else _llm_timeout_seconds()
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._client: httpx.Client | None = None

    @property
    def provider_family(self) -> str:
        return "gemini"

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout_seconds)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError("COUNCIL_GEMINI_API_KEY not configured")

    def generate_suggestions(self, prompt: str, options: dict[str, Any] | None = None) -> list[Any]:
        self.ensure_configured()
        options = options or {}
        model_id = options.get("model_id") or self.model_id
        url = f"{self.base_url}/models/{model_id}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": options.get("temperature", self.temperature),
                "maxOutputTokens": options.get("max_tokens", self.max_output_tokens),
                "responseMimeType": "application/json",
            },
        }

        try:
            resp = self._http().post(url, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Gemini generateContent failed (%s): %s", model_id, exc)
            return []
        if resp.status_code >= 400:
            logger.warning("Gemini generateContent returned %s: %s", resp.status_code, resp.text[:200])
            return []

        try:
            data = resp.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.warning("Gemini response had no candidate text: %s", exc)
            return []

        items = _extract_suggestion_items(text)
        if items is None:
            logger.warning("Gemini response was not valid JSON; treating stage as empty.")
            return []
        return items
