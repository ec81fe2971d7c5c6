"""Custom ideas: one idea generated from a user's own description plus the job context."""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from typing import Optional

from bouchenator.core.config import GenerationConfig, get_settings
from bouchenator.core.exceptions import SchemaValidationError, ValidationError
from bouchenator.core.models import EFFORT_ORDER, CompanyContext, Evidence, IdeaOutline
from bouchenator.generation.cascade import GenerationCascade
from bouchenator.generation.gemini_config import log_gemini_call
from bouchenator.generation.providers import GenerationRequest
from bouchenator.intelligence.json_utils import coerce_json_payload

MIN_DESCRIPTION_CHARS = 40
MAX_DESCRIPTION_CHARS = 600
DEFAULT_CUSTOM_EFFORT = "4hr"

CUSTOM_SYSTEM = """You are a product strategist. Given a user's own prototype idea and the company context, produce ONE structured idea.

Output ONLY valid JSON with these fields:
- title (string, short and memorable, at most 8 words)
- summary (string, 2-3 sentences describing the prototype)
- effort (string, one of "15min", "1hr", "4hr", "8hr", "1-3days")
- outline (object with pages: string[], components: string[], data: string[], niceToHave: string[])
- inspiredAngle (string, 1 sentence on the creative angle)

Keep it specific to the company and to the user's description, easy to demo and buildable.
Output ONLY the JSON object. No markdown, no fences."""


@dataclass
class CustomIdeaFields:
    title: str
    summary: str
    effort: str
    outline: IdeaOutline
    inspired_angle: Optional[str] = None


@dataclass
class CustomIdeaResult:
    fields: CustomIdeaFields
    provider: str
    duration_ms: int
    error: Optional[str] = None

    @property
    def used_gemini(self) -> bool:
        return self.provider.startswith("gemini")


def validate_description(description: Optional[str]) -> str:
    """Strip and length-check a custom idea description; raises ``ValidationError``."""
    text = (description or "").strip()
    if len(text) < MIN_DESCRIPTION_CHARS:
        raise ValidationError(
            f"Description must be at least {MIN_DESCRIPTION_CHARS} characters. "
            "Include who it's for, what it does, and a key constraint.",
            details={"length": len(text)},
        )
    if len(text) > MAX_DESCRIPTION_CHARS:
        raise ValidationError(f"Description must be {MAX_DESCRIPTION_CHARS} characters or fewer.",
                              details={"length": len(text)})
    return text


def new_custom_idea_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"custom-{int(time.time() * 1000)}-{suffix}"


def build_custom_context(ctx: CompanyContext, evidence: Optional[Evidence] = None) -> str:
    parts = [f"Company: {ctx.name}"]
    if ctx.url:
        parts.append(f"Website: {ctx.url}")
    if ctx.description:
        parts.append(f"Description: {ctx.description}")
    if ctx.industry_hints:
        parts.append(f"Industry: {', '.join(ctx.industry_hints)}")
    if ctx.headings:
        parts.append("Key headings:\n  " + "\n  ".join(ctx.headings[:10]))
    if ctx.press_headlines:
        parts.append("Press topics:\n  " + "\n  ".join(ctx.press_headlines[:5]))
    if evidence is not None:
        if evidence.news.items:
            parts.append("Recent news:\n  " + "\n  ".join(f"• {n.title}" for n in evidence.news.items[:3]))
        pack = evidence.inspiration_pack
        if pack is not None and pack.common_patterns:
            parts.append("Product inspiration patterns:\n  " + "\n  ".join(pack.common_patterns[:4]))
    return "\n\n".join(parts)


def fallback_idea_fields(description: str, company_name: str) -> CustomIdeaFields:
    """Deterministic idea: effort grows with description length, title from the first words."""
    effort = EFFORT_ORDER[min(len(description) // 50, len(EFFORT_ORDER) - 1)]
    words = description.split()[:6]
    title = " ".join(words[:5]) if len(words) >= 3 else f"Custom prototype for {company_name}"
    return CustomIdeaFields(
        title=title[:1].upper() + title[1:],
        summary=description[:200],
        effort=effort,
        outline=IdeaOutline(
            pages=["src/app/page.tsx"],
            components=["MainSection", "InteractiveWidget", "ResultsDisplay"],
            data=["Mock data array", "User input state"],
            nice_to_have=["Loading skeleton", "Share button"],
        ),
        inspired_angle=f"A lightweight {company_name} prototype exploring: {description[:60]}…",
    )


def parse_custom_idea(text: str, final: bool) -> CustomIdeaFields:
    payload = coerce_json_payload(text)
    title = str(payload.get("title") or "").strip()
    summary = str(payload.get("summary") or "").strip()
    if not title or not summary:
        raise SchemaValidationError("Custom idea is missing a title or summary")

    outline = payload.get("outline") if isinstance(payload.get("outline"), dict) else {}
    effort = payload.get("effort")
    return CustomIdeaFields(
        title=title,
        summary=summary,
        effort=effort if effort in EFFORT_ORDER else DEFAULT_CUSTOM_EFFORT,
        outline=IdeaOutline(
            pages=outline.get("pages"),
            components=outline.get("components"),
            data=outline.get("data"),
            nice_to_have=outline.get("niceToHave", outline.get("nice_to_have")),
        ),
        inspired_angle=payload.get("inspiredAngle") or None,
    )


async def generate_custom_idea(
    description: str,
    ctx: CompanyContext,
    cascade: GenerationCascade,
    evidence: Optional[Evidence] = None,
    config: Optional[GenerationConfig] = None,
) -> CustomIdeaResult:
    config = config or get_settings().generation
    context = (f"{build_custom_context(ctx, evidence)}\n\n"
               f"--- USER'S IDEA DESCRIPTION ---\n{description}")
    request = GenerationRequest(
        stage="custom",
        system_prompt=CUSTOM_SYSTEM,
        context=context,
        temperature=0.8,
        max_tokens=2048,
        timeout=config.custom_timeout,
    )
    outcome = await cascade.run(
        request,
        parse=parse_custom_idea,
        fallback=lambda: fallback_idea_fields(description, ctx.name),
    )
    log_gemini_call("custom", config, outcome.duration_ms, used=outcome.provider, fallback=outcome.used_fallback)
    return CustomIdeaResult(fields=outcome.value, provider=outcome.provider,
                            duration_ms=outcome.duration_ms, error=outcome.error)
