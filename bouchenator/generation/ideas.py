"""
Idea generation: 15 prototype ideas per job, 3 per effort level.

The context bundle is the only source of company context fed to the
providers. Output that parses but misses the 15-item minimum or the
3-per-effort split is retried once with a targeted reminder; on the final
attempt an uneven effort split is accepted and normalised by a stable sort.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from bouchenator.core.config import GenerationConfig, get_settings
from bouchenator.core.exceptions import ResponseParseError, SchemaValidationError
from bouchenator.core.models import EFFORT_ORDER, ContextBundle, Idea, IdeaOutline, effort_order
from bouchenator.generation.cascade import CascadeOutcome, GenerationCascade
from bouchenator.generation.gemini_config import log_gemini_call
from bouchenator.generation.mock_generator import IDEAS_PER_EFFORT, generate_mock_ideas
from bouchenator.generation.providers import GenerationRequest
from bouchenator.intelligence.context_bundle import (
    context_bundle_to_prompt,
    summarize_context_bundle_for_logs,
)
from bouchenator.intelligence.json_utils import extract_json

logger = structlog.get_logger("ideas")

IDEA_COUNT = 15
DEFAULT_EFFORT = "1hr"

IDEAS_SYSTEM = """You are a product strategist who turns company research into prototype ideas.
Generate exactly 15 quick-win prototype ideas for the company described below.
Every idea is a web-app prototype that can be built with Next.js and Tailwind CSS.

RULES:
- Exactly 3 ideas for each effort level: "15min", "1hr", "4hr", "8hr", "1-3days"
- Order the list from the smallest effort (15min) to the largest (1-3days)
- Tie each idea to the company's domain, products and recent news
- Use the gathered context (site content, press, news) to make the ideas specific
- When common product patterns are listed, ground each idea's inspiredAngle in one of them
  and do not name the source index; otherwise base inspiredAngle on the company's own context
- Every idea must be distinct, buildable and worth demoing

Output ONLY valid JSON: an array of 15 objects with these fields:
- title (string, short and memorable)
- summary (string, 1-2 sentences)
- effort (string, one of "15min", "1hr", "4hr", "8hr", "1-3days")
- outline (object with pages: string[], components: string[], data: string[], niceToHave: string[])
- inspiredAngle (string, 1 sentence)

No markdown, no code fences, no commentary. Just the JSON array."""

COUNT_HINT = (
    "IMPORTANT: Your previous response did not contain 15 complete ideas. Return a JSON array "
    "of exactly 15 idea objects, each with title, summary, effort and outline."
)

SPLIT_HINT = (
    "IMPORTANT: Your previous response did not have exactly 3 ideas per effort level. Return "
    "exactly 3 ideas for each of 15min, 1hr, 4hr, 8hr and 1-3days, ordered from 15min to 1-3days."
)


@dataclass
class IdeasResult:
    ideas: List[Idea]
    provider: str
    duration_ms: int
    error: Optional[str] = None

    @property
    def used_gemini(self) -> bool:
        return self.provider.startswith("gemini")


def _idea_items(parsed: Any) -> List[Dict[str, Any]]:
    if isinstance(parsed, dict) and isinstance(parsed.get("ideas"), list):
        parsed = parsed["ideas"]
    if not isinstance(parsed, list):
        raise ResponseParseError(f"Expected a JSON array of ideas, got {type(parsed).__name__}",
                                 details={"hint": COUNT_HINT})
    return [item for item in parsed if isinstance(item, dict) and str(item.get("title") or "").strip()]


def _to_idea(job_id: str, index: int, item: Dict[str, Any]) -> Idea:
    effort = item.get("effort")
    outline = item.get("outline") if isinstance(item.get("outline"), dict) else {}
    return Idea(
        id=f"{job_id}-{index}",
        job_id=job_id,
        title=str(item["title"]).strip(),
        summary=str(item.get("summary") or ""),
        effort=effort if effort in EFFORT_ORDER else DEFAULT_EFFORT,
        outline=IdeaOutline(
            pages=outline.get("pages"),
            components=outline.get("components"),
            data=outline.get("data"),
            nice_to_have=outline.get("niceToHave", outline.get("nice_to_have")),
        ),
        inspired_angle=item.get("inspiredAngle") or None,
    )


def parse_ideas(job_id: str, text: str, final: bool) -> List[Idea]:
    """
    Parse a provider response into exactly 15 ideas.

    Raises ``ResponseParseError`` / ``SchemaValidationError`` (with a retry
    hint in ``details``) when the output is unusable. The effort split is only
    enforced before the final attempt.
    """
    items = _idea_items(extract_json(text))
    if len(items) < IDEA_COUNT:
        raise SchemaValidationError(f"Expected {IDEA_COUNT} ideas, got {len(items)}",
                                    details={"hint": COUNT_HINT, "count": len(items)})

    ideas = [_to_idea(job_id, i, item) for i, item in enumerate(items[:IDEA_COUNT])]

    split = Counter(idea.effort for idea in ideas)
    uneven = [e for e in EFFORT_ORDER if split.get(e, 0) != IDEAS_PER_EFFORT]
    if uneven and not final:
        raise SchemaValidationError(
            f"Effort split is uneven ({', '.join(f'{e}={split.get(e, 0)}' for e in EFFORT_ORDER)})",
            details={"hint": SPLIT_HINT},
        )

    ordered = sorted(ideas, key=lambda idea: effort_order(idea.effort))
    for i, idea in enumerate(ordered):
        idea.id = f"{job_id}-{i}"
    return ordered


async def generate_ideas(
    job_id: str,
    bundle: ContextBundle,
    cascade: GenerationCascade,
    config: Optional[GenerationConfig] = None,
) -> IdeasResult:
    """Run the cascade for one job; never raises for provider trouble."""
    config = config or get_settings().generation
    summary = summarize_context_bundle_for_logs(bundle)
    logger.info("ideas_context", job=job_id[:8], context=summary.line)
    logger.debug("ideas_context_preview", job=job_id[:8], preview=summary.preview)

    request = GenerationRequest(
        stage="ideas",
        system_prompt=IDEAS_SYSTEM,
        context=context_bundle_to_prompt(bundle),
        temperature=0.85,
        max_tokens=8192,
        timeout=config.ideas_timeout,
    )
    outcome: CascadeOutcome[List[Idea]] = await cascade.run(
        request,
        parse=lambda text, final: parse_ideas(job_id, text, final),
        fallback=lambda: generate_mock_ideas(job_id, bundle.company.name),
    )
    log_gemini_call("ideas", config, outcome.duration_ms, used=outcome.provider, fallback=outcome.used_fallback)
    return IdeasResult(ideas=outcome.value, provider=outcome.provider,
                       duration_ms=outcome.duration_ms, error=outcome.error)
