from __future__ import annotations

from council_intel.providers.llm import LLMProvider
from council_intel.providers.llm_gemini import GeminiLLMProvider
from council_intel.providers.llm_openai import OpenAILLMProvider
from council_intel.settings import _llm_provider_name


def get_llm_provider(name: str | None = None) -> LLMProvider:
    """
    Returns the configured LLMProvider.
    `COUNCIL_LLM_PROVIDER` selects 'gemini' (default) or 'openai'.
    """
    provider = (name or _llm_provider_name()).strip().lower()
    if provider == "gemini":
        return GeminiLLMProvider()
    if provider in {"openai", "oss"}:
        return OpenAILLMProvider()
    raise ValueError(f"Unknown LLM provider: {provider}")
