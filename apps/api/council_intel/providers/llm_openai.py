from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from council_intel.errors import ConfigurationError
from council_intel.providers.llm import LLMProvider
from council_intel.settings import _llm_model_id, _llm_timeout_seconds
from council_intel.text_utils import _extract_suggestion_items

logger = logging.getLogger(__name__)


class OpenAILLMProvider(LLMProvider):
    """
    OpenAI-compatible implementation of LLMProvider (vLLM, llama.cpp server, Azure via base_url).
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        model_id: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.base_url = base_url if base_url is not None else os.environ.get("COUNCIL_LLM_BASE_URL")
        self.api_key = api_key if api_key is not None else os.environ.get("COUNCIL_LLM_API_KEY")
        self.model_id = model_id or _llm_model_id()
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else _llm_timeout_seconds()
        self._client: httpx.Client | None = None

    @property
    def provider_family(self) -> str:
        return "openai"

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout_seconds)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def ensure_configured(self) -> None:
        if not self.base_url:
            raise ConfigurationError("COUNCIL_LLM_BASE_URL not configured")

    def generate_suggestions(self, prompt: str, options: dict[str, Any] | None = None) -> list[Any]:
        self.ensure_configured()
        options = options or {}
        model_id = options.get("model_id") or self.model_id
        url = self.base_url.rstrip("/") + "/chat/completions"

        payload: dict[str, Any] = {
            "model": model_id,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.get("temperature", 0.4),
            "response_format": {"type": "json_object"},
        }
        if options.get("max_tokens"):
            payload["max_tokens"] = options["max_tokens"]
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            resp = self._http().post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("LLM call failed (%s): %s", model_id, exc)
            return []
        if resp.status_code >= 400:
            logger.warning("LLM call returned %s: %s", resp.status_code, resp.text[:200])
            return []

        try:
            data = resp.json()
            raw_text = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.warning("LLM response had no message content: %s", exc)
            return []

        items = _extract_suggestion_items(raw_text)
        if items is None:
            logger.warning("Failed to parse JSON from LLM output; treating stage as empty.")
            return []
        return items
