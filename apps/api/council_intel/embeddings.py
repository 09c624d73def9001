from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable

import httpx

from .errors import ConfigurationError, UpstreamError
from .models import PlanChunk
from .settings import (
    _embed_batch_delay_seconds,
    _embed_batch_size,
    _embeddings_model_id,
    _gemini_api_key,
    _gemini_base_url,
)

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 100


class EmbeddingTask(str, Enum):
    """
    Task hint sent with every embedding request.

    Retrieval encoders are asymmetric: ingested chunks and search queries must be embedded
    with different hints.
    """

    DOCUMENT = "RETRIEVAL_DOCUMENT"
    QUERY = "RETRIEVAL_QUERY"


def document_text(chunk: PlanChunk) -> str:
    # The section heading gives each chunk its policy context.
    return f"{chunk.section}\n\n{chunk.text}"


class EmbeddingClient:
    """
    Batch client for the Gemini `batchEmbedContents` endpoint.

    Owns its HTTP client; call `open()`/`close()` or use it as a context manager.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model_id: str | None = None,
        base_url: str | None = None,
        batch_size: int | None = None,
        batch_delay_seconds: float | None = None,
        timeout_seconds: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key if api_key is not None else _gemini_api_key()
        self.model_id = model_id or _embeddings_model_id()
        self.base_url = (base_url or _gemini_base_url()).rstrip("/")
        size = batch_size if batch_size is not None else _embed_batch_size()
        self.batch_size = max(1, min(int(size), MAX_BATCH_SIZE))
        self.batch_delay_seconds = (
            batch_delay_seconds if batch_delay_seconds is not None else _embed_batch_delay_seconds()
        )
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._client: httpx.Client | None = None

    def open(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout_seconds)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "EmbeddingClient":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _require_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("COUNCIL_GEMINI_API_KEY not configured")
        return self.api_key

    def _request_batch(self, texts: list[str], task: EmbeddingTask) -> list[list[float]]:
        api_key = self._require_key()
        client = self.open()

        model_path = f"models/{self.model_id}"
        payload = {
            "requests": [
                {"model": model_path, "content": {"parts": [{"text": t}]}, "taskType": task.value}
                for t in texts
            ]
        }
        url = f"{self.base_url}/{model_path}:batchEmbedContents"
        try:
            resp = client.post(url, params={"key": api_key}, json=payload)
        except httpx.TimeoutException as exc:
            raise TimeoutError(f"Embedding request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Embedding request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise UpstreamError(f"batchEmbedContents failed ({resp.status_code}): {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError("batchEmbedContents returned non-JSON body") from exc

        embeddings = data.get("embeddings") if isinstance(data, dict) else None
        if not isinstance(embeddings, list):
            raise UpstreamError("batchEmbedContents response has no embeddings list")
        if len(embeddings) != len(texts):
            raise UpstreamError(f"Embedding count mismatch: sent {len(texts)}, got {len(embeddings)}")

        out: list[list[float]] = []
        for item in embeddings:
            values = item.get("values") if isinstance(item, dict) else None
            if not isinstance(values, list) or not values:
                raise UpstreamError("batchEmbedContents returned an empty embedding")
            out.append([float(x) for x in values])
        return out

    def embed_batch(self, texts: list[str], task: EmbeddingTask = EmbeddingTask.DOCUMENT) -> list[list[float]]:
        """
        Embeds `texts` in upstream batches, pausing between batches for rate limits.

        The output is index-aligned with `texts`.
        """
        if not texts:
            return []
        self._require_key()

        vectors: list[list[float]] = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            batch_num = start // self.batch_size + 1
            logger.debug(
                "Embedding batch %s/%s (%s-%s of %s)",
                batch_num,
                total_batches,
                start + 1,
                start + len(batch),
                len(texts),
            )
            vectors.extend(self._request_batch(batch, task))
            if start + self.batch_size < len(texts) and self.batch_delay_seconds > 0:
                self._sleep(self.batch_delay_seconds)
        return vectors

    def embed_one(self, text: str, task: EmbeddingTask = EmbeddingTask.QUERY) -> list[float]:
        [vector] = self._request_batch([text], task)
        return vector
