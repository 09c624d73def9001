from __future__ import annotations

import json
import re
from typing import Any


def _strip_json_fence(text: str) -> str:
    if "```" not in text:
        return text
    cleaned = text.replace("```json", "```")
    parts = cleaned.split("```")
    if len(parts) >= 2:
        return parts[1].strip()
    return cleaned


def _extract_json(text: str | None) -> Any | None:
    """
    Best-effort extraction of a JSON value from an LLM response.

    Tries the (fence-stripped) text as-is first, then the outermost array, then the outermost object.
    """
    raw = _strip_json_fence(text or "").strip()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        pass
    for pattern in (r"\[.*\]", r"\{.*\}"):
        match = re.search(pattern, raw, flags=re.DOTALL)
        if not match:
            continue
        try:
            return json.loads(match.group(0))
        except ValueError:
            continue
    return None


def _extract_suggestion_items(text: str | None) -> list[Any] | None:
    """
    Pulls the list of raw suggestion items out of a model response.

    Accepts a bare JSON array or an object carrying a `suggestions` array. Returns None when the
    response cannot be parsed at all.
    """
    payload = _extract_json(text)
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        items = payload.get("suggestions")
        if isinstance(items, list):
            return items
        return []
    return None


def _truncate_text(text: str | None, limit: int) -> str:
    if not isinstance(text, str):
        return ""
    if len(text) <= limit:
        return text
    return text[:limit]
