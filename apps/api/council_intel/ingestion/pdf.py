from __future__ import annotations

import io
import logging
from pathlib import Path

from pypdf import PdfReader

logger = logging.getLogger(__name__)


def extract_page_lines(source: str | Path | bytes) -> list[tuple[int, list[str]]]:
    """
    Returns `(page_number, lines)` for every page of a PDF, 1-based.

    Pages whose text layer cannot be extracted come back with no lines.
    """
    if isinstance(source, (bytes, bytearray)):
        reader = PdfReader(io.BytesIO(bytes(source)))
    else:
        reader = PdfReader(str(source))

    pages: list[tuple[int, list[str]]] = []
    for idx, page in enumerate(reader.pages, start=1):
        try:
            text = page.extract_text() or ""
        except Exception as exc:  # noqa: BLE001
            logger.warning("Text extraction failed on page %s: %s", idx, exc)
            text = ""
        pages.append((idx, text.splitlines()))
    return pages
