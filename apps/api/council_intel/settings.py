from __future__ import annotations

import os


GEMINI_DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _env_float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _gemini_api_key() -> str | None:
    return os.environ.get("COUNCIL_GEMINI_API_KEY") or os.environ.get("GEMINI_API_KEY")


def _gemini_base_url() -> str:
    return os.environ.get("COUNCIL_GEMINI_BASE_URL") or GEMINI_DEFAULT_BASE_URL


def _embeddings_model_id() -> str:
    return os.environ.get("COUNCIL_EMBEDDINGS_MODEL_ID") or "text-embedding-004"


def _embeddings_dim() -> int:
    return _env_int("COUNCIL_EMBEDDINGS_DIM", 768)


def _embed_batch_size() -> int:
    return max(1, min(_env_int("COUNCIL_EMBED_BATCH_SIZE", 50), 100))


def _embed_batch_delay_seconds() -> float:
    return max(0.0, _env_float("COUNCIL_EMBED_BATCH_DELAY_SECONDS", 1.1))


def _llm_provider_name() -> str:
    return (os.environ.get("COUNCIL_LLM_PROVIDER") or "gemini").strip().lower()


def _llm_model_id() -> str:
    return os.environ.get("COUNCIL_LLM_MODEL_ID") or os.environ.get("GEMINI_MODEL") or "gemini-2.5-pro"


def _llm_timeout_seconds() -> float:
    return _env_float("COUNCIL_LLM_TIMEOUT_SECONDS", 90.0)


def _retrieval_timeout_seconds() -> float:
    return _env_float("COUNCIL_RETRIEVAL_TIMEOUT_SECONDS", 5.0)


def _retrieval_limit() -> int:
    return max(1, min(_env_int("COUNCIL_RETRIEVAL_LIMIT", 4), 20))


def _cached_stage_delay_seconds() -> float:
    return max(0.0, _env_float("COUNCIL_CACHED_STAGE_DELAY_SECONDS", 0.35))
