from __future__ import annotations

import re
from dataclasses import dataclass
from uuid import uuid4

from council_intel.models import PlanChunk

MAX_CHUNK_CHARS = 900
MIN_CHUNK_CHARS = 60

# First match wins.
_HEADING_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    # "Policy H1:", "Policy SA(BE) 1:", "Policy DH(a)1:"
    ("policy", re.compile(r"^Policy\s+[A-Z][A-Z\d()]*\s*\d*[a-z]?\s*:", re.IGNORECASE)),
    ("appendix", re.compile(r"^Appendix\s+[A-Z0-9]", re.IGNORECASE)),
    # "1 INTRODUCTION", "2 SPATIAL STRATEGY"
    ("chapter", re.compile(r"^\d{1,2}\s+[A-Z][A-Z ]{3,60}$")),
    ("chapter", re.compile(r"^(CHAPTER|PART|SECTION)\s+[A-Z0-9]", re.IGNORECASE)),
    # "1.1 Background", "2.3.4 Policy Context" sit beneath a chapter
    ("supporting-text", re.compile(r"^\d+\.\d+(\.\d+)?\s+[A-Z][a-z]")),
]

_REPLACEMENTS = (
    ("ﬁ", "fi"),
    ("ﬂ", "fl"),
    ("–", "-"),
    ("—", " - "),
    ("’", "'"),
)


def normalise_line(line: str) -> str:
    for old, new in _REPLACEMENTS:
        line = line.replace(old, new)
    return re.sub(r"\s+", " ", line).strip()


def detect_heading(line: str) -> tuple[str, str] | None:
    """Returns (section_type, heading_text) when `line` looks like a plan section heading."""
    text = line.strip()
    if len(text) < 4 or len(text) > 130:
        return None
    for section_type, pattern in _HEADING_PATTERNS:
        if pattern.match(text):
            return section_type, text
    return None


@dataclass
class _Section:
    title: str = "Preamble"
    section_type: str = "supporting-text"


def chunk_plan_pages(
    pages: list[tuple[int, list[str]]],
    *,
    source: str,
    council: str,
    max_chunk_chars: int = MAX_CHUNK_CHARS,
    min_chunk_chars: int = MIN_CHUNK_CHARS,
) -> list[PlanChunk]:
    """
    Splits page lines into plan chunks.

    A chunk is flushed at every section heading and whenever the buffer would exceed
    `max_chunk_chars`. Every chunk carries the heading and page it started under; chunks shorter
    than `min_chunk_chars` are discarded as noise.
    """
    chunks: list[PlanChunk] = []
    section = _Section()
    buffer = ""
    buffer_page = 1

    def flush(next_page: int) -> None:
        nonlocal buffer, buffer_page
        text = re.sub(r"\s+", " ", buffer).strip()
        if len(text) >= min_chunk_chars:
            chunks.append(
                PlanChunk(
                    chunk_id=str(uuid4()),
                    source=source,
                    council=council,
                    section=section.title,
                    section_type=section.section_type,
                    page_start=buffer_page,
                    chunk_index=len(chunks),
                    text=text,
                    char_count=len(text),
                )
            )
        buffer = ""
        buffer_page = next_page

    last_page = 1
    for page_num, lines in pages:
        last_page = page_num
        for raw in lines:
            line = normalise_line(raw)
            if not line:
                continue
            heading = detect_heading(line)
            if heading:
                flush(page_num)
                section = _Section(title=heading[1], section_type=heading[0])
                continue
            if line.isdigit() or len(line) < 4:
                # lone page numbers, stray fragments
                continue
            if buffer and len(buffer) + len(line) + 1 > max_chunk_chars:
                flush(page_num)
            if not buffer:
                buffer_page = page_num
            buffer = f"{buffer} {line}" if buffer else line

    flush(last_page)
    return chunks
