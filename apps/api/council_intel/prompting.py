from __future__ import annotations

from .models import Bounds, ScoredChunk, Suggestion, SuggestionCategory
from .stages import StageDefinition
from .text_utils import _truncate_text

PLAN_CONTEXT_CHUNK_CHARS = 600

_CATEGORIES = "|".join(c.value for c in SuggestionCategory)
_IMPLEMENTATION_CATEGORIES = "|".join(
    c.value for c in SuggestionCategory if c not in (SuggestionCategory.TROUBLED_AREA, SuggestionCategory.OPPORTUNITY_ZONE)
)

OUTPUT_SCHEMA = f"""{{
  "suggestions": [
    {{
      "title": "string - specific area name (e.g. 'South Thamesmead Employment Land')",
      "type": "one of: {_CATEGORIES}",
      "status": "existing or proposed - existing = already built/approved/in-place; proposed = recommendation or gap requiring action",
      "rationale": "string - 1-2 sentence summary for map tooltip",
      "reasoning": "string - 3-5 detailed paragraphs with inline (LP PolicyRef) and (DP) citation prefixes",
      "priority": "high|medium|low",
      "centerPoint": [longitude, latitude],
      "radiusM": number,
      "evidenceSources": ["string - each prefixed with (LP PolicyRef) or (DP)"],
      "policyBasis": "string - specific policy reference",
      "problem": "string - 1-2 sentences naming the specific issue or gap at this location",
      "overallOutcome": "string - projected outcome if the full delivery plan is executed, quantified where possible",
      "relatedToTitle": "string|null - exact title of a previously identified suggestion that this is a close sub-task or geographic sibling of. null if standalone.",
      "implementations": [
        {{
          "type": "one of: {_IMPLEMENTATION_CATEGORIES}",
          "title": "string",
          "description": "string",
          "centerPoint": [longitude, latitude],
          "radiusM": number,
          "heightM": number or null,
          "color": [r, g, b, a],
          "policyBasis": "string",
          "order": 1,
          "projectedEffect": "string - specific projected outcome of completing this step"
        }}
      ]
    }}
  ]
}}"""


def format_plan_context(chunks: list[ScoredChunk]) -> str:
    if not chunks:
        return ""
    blocks = []
    for item in chunks:
        c = item.chunk
        header = f"[{c.section_type.upper()} - {c.section}, p.{c.page_start}]"
        blocks.append(f"  {header}\n  {_truncate_text(c.text, PLAN_CONTEXT_CHUNK_CHARS)}")
    return "LOCAL PLAN CONTEXT (relevant policies and supporting text)\n" + "\n\n".join(blocks) + "\n\n"


def summarise_suggestions(suggestions: list[Suggestion]) -> str:
    """One line per suggestion, fed forward so later stages can reference and deduplicate."""
    if not suggestions:
        return ""
    return "\n".join(s.summary_line() for s in suggestions) + "\n"


def build_stage_prompt(
    *,
    stage: StageDefinition,
    bounds: Bounds,
    council: str,
    plan_chunks: list[ScoredChunk],
    previous_summary: str,
) -> str:
    w, s, e, n = bounds
    plan_context = format_plan_context(plan_chunks)
    previous = f"Previous analysis stages have identified:\n{previous_summary}\n\n" if previous_summary else ""

    return f"""You are an AI planning intelligence system supporting {council} council in England.

Analysis region bounds: West={w}, South={s}, East={e}, North={n} (WGS84)

{plan_context}{previous}
STAGE {stage.stage_num} FOCUS: {stage.focus}

Generate only as many suggestions as genuine evidence warrants for this stage. **0 is valid** if nothing significant applies. Do not pad. Typical range 0-5, but let evidence dictate the number. Each suggestion MUST name the problem it solves in the `problem` field. Each implementation step is a numbered delivery stage: include `order` and a concrete `projectedEffect`. Use `relatedToTitle` when a suggestion is geographically co-located with or a component of a previously identified suggestion.

Each suggestion must:
- Reference a real area within the bounds above
- Have realistic, precise centerPoint coordinates within [{w},{s}] to [{e},{n}]
- Include specific Local Plan policy references
- Provide 3-5 paragraphs of detailed reasoning
- Include 1-3 concrete implementation options where applicable

CITATION RULES (apply in ALL reasoning text and evidenceSources):
- Prefix with (LP PolicyRef) when drawing from the LOCAL PLAN CONTEXT injected above, e.g. "(LP Policy RE1)"
- Prefix with (DP) when drawing from general planning data, statistics, or training knowledge, e.g. "(DP) PTAL 1a rating"
Apply these prefixes inline within sentences, not just at paragraph starts.

Respond ONLY with valid JSON matching this exact schema:
{OUTPUT_SCHEMA}"""
