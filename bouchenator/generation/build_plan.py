"""
Build-plan generation for one idea.

Providers are asked for a beginner-friendly sequence of Cursor prompts whose
count depends on the idea's effort level. Responses are normalised from the
current ``{"prompts": [...]}`` shape, the legacy ``prompt1/prompt2/prompt3``
shape, a ``steps`` array, or a bare array. The deterministic fallback plan
always carries the brand vibe block in its PM+UX step.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import structlog

from bouchenator.core.config import GenerationConfig, get_settings
from bouchenator.core.exceptions import ResponseParseError, SchemaValidationError
from bouchenator.core.models import BuildPlan, BuildStep, CompanyContext, Evidence, Idea, Theme
from bouchenator.generation.cascade import DEFAULT_RETRY_HINT, GenerationCascade
from bouchenator.generation.gemini_config import get_gemini_api_version, get_gemini_model, log_gemini_call
from bouchenator.generation.mock_generator import (
    build_folder_name,
    build_terminal_setup,
    generate_mock_build_plan,
)
from bouchenator.generation.providers import GenerationRequest
from bouchenator.intelligence.json_utils import extract_json
from bouchenator.intelligence.theme import default_theme

logger = structlog.get_logger("steps")

DEFAULT_FONT = "system-ui, -apple-system, sans-serif"
USED_FALLBACK = "fallback"
USED_CACHE = "cache"

PROMPT_COUNT_RANGES: Dict[str, Tuple[int, int]] = {
    "15min": (2, 3),
    "1hr": (3, 5),
    "4hr": (5, 8),
    "8hr": (5, 8),
    "1-3days": (8, 14),
}

THEME_REMINDER = (
    "CRITICAL REMINDER: Your previous attempt ignored the Brand Vibe Pack. Every promptText "
    "must use the theme: reference PROTOTYPE_THEME or the CSS variables (--ab-primary, "
    "--ab-accent, ...). This is mandatory."
)

_THEME_MARKERS = ("prototypetheme", "prototype_theme", "--ab-primary", "brand vibe", "theme")


def prompt_count_range(effort: str) -> Tuple[int, int]:
    return PROMPT_COUNT_RANGES.get(effort, (3, 8))


def is_prompt_count_valid(count: int, effort: str) -> bool:
    low, high = prompt_count_range(effort)
    return low <= count <= high


def _resolved_theme(theme: Optional[Theme]) -> Theme:
    base = default_theme()
    if theme is None:
        return base
    return base.model_copy(update=theme.model_dump(exclude_none=True))


def _company_name(theme: Theme, ctx_name: Optional[str], idea: Idea) -> str:
    return theme.company_name or ctx_name or idea.title.split(" ")[0]


def build_step_context(idea: Idea, ctx: CompanyContext, theme: Optional[Theme],
                       evidence: Optional[Evidence] = None) -> str:
    """Company, evidence, selected idea and brand vibe pack as one prompt block."""
    lines = ["=== COMPANY ===", f"Name: {ctx.name}"]
    if ctx.url:
        lines.append(f"Website: {ctx.url}")
    if ctx.description:
        lines.append(f"Description: {ctx.description}")
    if ctx.industry_hints:
        lines.append(f"Industry: {', '.join(ctx.industry_hints)}")
    if ctx.wikidata_id:
        lines.append(f"Wikidata: {ctx.wikidata_id}")

    if ctx.headings:
        lines.append("\n=== KEY PAGE HIGHLIGHTS ===")
        lines.append("\n".join(f"• {h}" for h in ctx.headings[:12]))

    if ctx.press_headlines:
        lines.append("\n=== PRESS TOPICS ===")
        lines.append("\n".join(f"• {h}" for h in ctx.press_headlines[:5]))

    if evidence is not None and evidence.news.items:
        lines.append(f"\n=== RECENT NEWS ({evidence.news.provider}) ===")
        lines.append("\n".join(f"• {n.title} ({n.source})" for n in evidence.news.items[:5]))

    pack = evidence.inspiration_pack if evidence is not None else None
    if pack is not None:
        lines.append("\n=== INSPIRATION PATTERNS ===")
        if pack.common_patterns:
            lines.append("\n".join(f"• {p}" for p in pack.common_patterns))
        if pack.products:
            lines.append("\nTop products for reference:")
            for product in pack.products[:6]:
                features = f" [{'; '.join(product.inferred_features)}]" if product.inferred_features else ""
                lines.append(f"  • {product.name}: {product.tagline}{features}")

    lines.append("\n=== SELECTED IDEA ===")
    lines.append(f"Title: {idea.title}")
    lines.append(f"Summary: {idea.summary}")
    lines.append(f"Effort: {idea.effort}")
    if idea.inspired_angle:
        lines.append(f"Inspired angle: {idea.inspired_angle}")
    lines.append(f"Pages: {', '.join(idea.outline.pages)}")
    lines.append(f"Components: {', '.join(idea.outline.components)}")
    lines.append(f"Data: {', '.join(idea.outline.data)}")
    if idea.outline.nice_to_have:
        lines.append(f"Nice-to-have: {', '.join(idea.outline.nice_to_have)}")

    t = _resolved_theme(theme)
    lines.append("\n=== BRAND VIBE PACK ===")
    lines.append(f"primary: {t.primary}")
    lines.append(f"accent: {t.accent}")
    lines.append(f"bg: {t.bg}")
    lines.append(f"text: {t.text}")
    lines.append(f"fontFamily: {t.font_family or DEFAULT_FONT}")
    lines.append(f"radiusPx: {t.radius_px}")
    lines.append(f"companyName: {_company_name(t, ctx.name, idea)}")
    if t.favicon_url:
        lines.append(f"faviconUrl: {t.favicon_url}")
    if t.logo_url:
        lines.append(f"logoUrl: {t.logo_url}")
    return "\n".join(lines)


def build_steps_system_prompt(effort: str) -> str:
    low, high = prompt_count_range(effort)
    return f"""You are an engineering coach writing a guided workshop for beginners.
The user pastes your prompts into Cursor AI one at a time to build a STANDALONE Next.js prototype
(its own fresh app; the main page is src/app/page.tsx).

PLANNING:
A. List the milestones a beginner reaches while building this idea. Each milestone is a visible
   checkpoint ("the page now shows X and Y works"), not just "add a file".
B. Decide how many prompts those milestones need. The count follows from the milestones:
   merge small milestones if you have fewer than {low}, combine related ones if you have more
   than {high}. The final count MUST be between {low} and {high} inclusive.
C. Write the prompts.

OUTPUT valid JSON:
{{
  "totalPrompts": <number>,
  "rationaleForPromptCount": "<1-3 sentences tying the count to the milestones>",
  "prompts": [
    {{
      "role": "PM+UX" | "FE" | "FE+QA",
      "title": "plain-language title",
      "goal": "1-2 sentences on why this milestone matters",
      "promptText": "the full Cursor prompt, pasted verbatim",
      "doneLooksLike": ["what the user sees when it worked", "bullet 2", "bullet 3"]
    }}
  ]
}}

RULES:
1. promptText starts with "BMAD ROLE: <ROLE> — <one-sentence role instruction>" on its first line.
2. The FIRST prompt (PM+UX) assumes create-next-app already ran, replaces src/app/page.tsx with a
   "use client" branded skeleton, creates src/lib/prototypeTheme.ts exporting PROTOTYPE_THEME with
   the EXACT Brand Vibe Pack values (primary, accent, bg, text, fontFamily, radiusPx, companyName,
   faviconUrl), applies them as CSS variables on the root element (--ab-primary, --ab-accent,
   --ab-bg, --ab-text, --ab-font, --ab-radius), and builds the header (company name plus a
   "Prototype" badge), hero and placeholder sections with TODO markers.
3. Every FE prompt delivers one milestone with visible progress, styles only through
   PROTOTYPE_THEME or the CSS variables, wires inline data, makes every button change visible
   state, builds on earlier prompts and includes the sentence
   "Use the theme from src/lib/prototypeTheme.ts for all styling (colors, radius, font)."
4. The LAST prompt (FE+QA) fixes TS/ESLint/runtime errors, replaces any hardcoded colors with theme
   variables, adds empty states, tightens spacing and adds one microinteraction. No new packages.
5. doneLooksLike has at most 3 bullets describing what the user sees.
6. Label any unavoidable sample data "temporary sample data". Avoid databases, auth and external
   APIs unless the idea truly needs them.
7. NEVER reference /p/<slug> routes. Use src/app/page.tsx.
8. Output ONLY the JSON. No markdown, no fences, no explanation."""


@dataclass
class PlanDraft:
    prompts: List[Dict[str, Any]]
    total_prompts: int
    rationale: Optional[str] = None
    bmad_explanation: str = ""


def normalize_plan_response(raw: Any) -> Optional[PlanDraft]:
    """Accept ``prompts``, legacy ``prompt1..3``, ``steps`` or a bare array; None otherwise."""
    if isinstance(raw, list):
        raw = {"prompts": raw}
    if not isinstance(raw, dict):
        return None

    rationale = raw.get("rationaleForPromptCount")
    rationale = rationale if isinstance(rationale, str) else None
    explanation = raw.get("bmadExplanation") if isinstance(raw.get("bmadExplanation"), str) else ""

    prompts = raw.get("prompts")
    if isinstance(prompts, list) and len(prompts) >= 2:
        total = raw.get("totalPrompts")
        return PlanDraft(prompts=prompts, total_prompts=total if isinstance(total, int) else len(prompts),
                         rationale=rationale, bmad_explanation=explanation)

    legacy = [raw.get(f"prompt{i}") for i in (1, 2, 3)]
    if all(isinstance(p, dict) and p.get("promptText") for p in legacy[:2]):
        prompts = [p for p in legacy if isinstance(p, dict) and p.get("promptText")]
        return PlanDraft(prompts=prompts, total_prompts=len(prompts), bmad_explanation=explanation)

    steps = raw.get("steps")
    if isinstance(steps, list) and len(steps) >= 2:
        prompts = [
            {**s, "promptText": s.get("promptText") or s.get("cursorPrompt"),
             "goal": s.get("goal") or s.get("instruction")}
            for s in steps if isinstance(s, dict)
        ]
        return PlanDraft(prompts=prompts, total_prompts=len(prompts), rationale=rationale,
                         bmad_explanation=explanation)
    return None


def is_valid_step(step: Any) -> bool:
    if not isinstance(step, dict):
        return False
    prompt = step.get("promptText")
    role = step.get("role")
    return isinstance(prompt, str) and len(prompt) > 10 and isinstance(role, str) and bool(role)


def to_build_step(step: Dict[str, Any]) -> BuildStep:
    done = step.get("doneLooksLike")
    if isinstance(done, list):
        done = "\n".join(b if str(b).startswith("•") else f"• {b}" for b in done)
    elif not isinstance(done, str):
        done = ""
    return BuildStep(
        title=step.get("title") or "Untitled",
        role=step.get("role") or "FE",
        instruction=step.get("goal") or "",
        cursor_prompt=step.get("promptText") or "",
        done_looks_like=done,
    )


def steps_use_theme(steps: List[BuildStep]) -> bool:
    """True when the first prompt references the theme contract."""
    if not steps:
        return False
    first = steps[0].cursor_prompt.lower()
    return any(marker in first for marker in _THEME_MARKERS)


def parse_build_plan(idea: Idea, text: str, final: bool, folder_name: str, terminal_setup: str) -> BuildPlan:
    """
    Validate one provider response into a plan.

    Before the final attempt, a prompt count outside the effort's range or a
    first prompt that ignores the theme raises with a targeted hint. On the
    final attempt the count is still enforced; a missing theme is tolerated.
    """
    try:
        raw = extract_json(text)
    except ResponseParseError as e:
        raise ResponseParseError(e.message, details={**e.details,
                                                     "hint": f"{DEFAULT_RETRY_HINT}\n\n{THEME_REMINDER}"})

    draft = normalize_plan_response(raw)
    if draft is None:
        raise SchemaValidationError("Plan response has no usable prompt list",
                                    details={"hint": f"{DEFAULT_RETRY_HINT}\n\n{THEME_REMINDER}"})

    steps = [to_build_step(s) for s in draft.prompts if is_valid_step(s)]
    if len(steps) < 2:
        raise SchemaValidationError(f"Only {len(steps)} valid steps out of {len(draft.prompts)}")

    uses_theme = steps_use_theme(steps)
    low, high = prompt_count_range(idea.effort)
    logger.info("plan_candidate", idea=idea.id, effort=idea.effort, expected=f"{low}-{high}",
                got=len(steps), theme=uses_theme, rationale=(draft.rationale or "")[:120])

    if not is_prompt_count_valid(len(steps), idea.effort):
        hint = (f"IMPORTANT: Your previous plan had {len(steps)} prompts. The prompt count MUST be "
                f"between {low} and {high} inclusive.")
        if not uses_theme:
            hint = f"{hint}\n\n{THEME_REMINDER}"
        raise SchemaValidationError(f"Prompt count {len(steps)} outside {low}-{high}",
                                    details={"hint": hint})

    if not uses_theme and not final:
        raise SchemaValidationError("First prompt does not reference the theme",
                                    details={"hint": THEME_REMINDER})

    return BuildPlan(
        idea_id=idea.id,
        bmad_explanation=draft.bmad_explanation,
        terminal_setup=terminal_setup,
        folder_name=folder_name,
        steps=steps,
        rationale_for_prompt_count=draft.rationale,
    )


def build_brand_vibe_block(theme: Optional[Theme], company_name: str) -> str:
    """Concrete theme values for the PM+UX prompt."""
    t = _resolved_theme(theme)
    radius = t.radius_px
    theme_lines = [
        f'  primary: "{t.primary}",',
        f'  accent: "{t.accent}",',
        f'  bg: "{t.bg}",',
        f'  text: "{t.text}",',
        f'  fontFamily: "{t.font_family or DEFAULT_FONT}",',
        f"  radiusPx: {radius},",
        f'  companyName: "{company_name}",',
        f'  faviconUrl: "{t.favicon_url}",' if t.favicon_url else "  faviconUrl: undefined,",
    ]
    header = (
        f'Header: <img src="{t.favicon_url}" className="h-6 w-6" /> + "{company_name}" + "Prototype" badge'
        if t.favicon_url
        else f'Header: "{company_name}" + "Prototype" badge'
    )
    return "\n".join([
        "",
        f"--- BRAND VIBE (makes it feel like {company_name}) ---",
        "",
        "Create src/lib/prototypeTheme.ts:",
        "",
        "export const PROTOTYPE_THEME = {",
        *theme_lines,
        "} as const;",
        "",
        "In src/app/page.tsx, import PROTOTYPE_THEME and set CSS vars on the wrapper:",
        '  style={{ "--ab-primary": PROTOTYPE_THEME.primary, "--ab-accent": PROTOTYPE_THEME.accent, '
        '"--ab-bg": PROTOTYPE_THEME.bg, "--ab-text": PROTOTYPE_THEME.text, '
        '"--ab-font": PROTOTYPE_THEME.fontFamily } as React.CSSProperties}',
        "",
        header,
        f"Buttons: bg var(--ab-primary), border-radius {radius}px",
        f"Cards: border-radius {radius}px, hover ring var(--ab-accent)",
        "Links: color var(--ab-primary)",
        "Badges: bg color-mix(in srgb, var(--ab-accent) 15%, transparent), text var(--ab-accent)",
    ])


def inject_brand_vibe(plan: BuildPlan, idea: Idea, theme: Optional[Theme]) -> BuildPlan:
    """Append the brand vibe block to every PM+UX step and tag its first done bullet."""
    t = _resolved_theme(theme)
    company_name = t.company_name or idea.title.split(" ")[0]
    block = build_brand_vibe_block(t, company_name)

    steps = []
    for step in plan.steps:
        if step.role != "PM+UX":
            steps.append(step)
            continue
        steps.append(step.model_copy(update={
            "cursor_prompt": f"{step.cursor_prompt}\n{block}",
            "done_looks_like": re.sub(r"^(• .+)$", lambda m: f"{m.group(1)} (styled for {company_name})",
                                      step.done_looks_like, count=1, flags=re.MULTILINE),
        }))
    return plan.model_copy(update={"steps": steps})


@dataclass
class BuildPlanResult:
    plan: BuildPlan
    used: str
    duration_ms: int
    error: Optional[str] = None


async def generate_build_plan(
    idea: Idea,
    ctx: CompanyContext,
    theme: Optional[Theme],
    cascade: GenerationCascade,
    evidence: Optional[Evidence] = None,
    config: Optional[GenerationConfig] = None,
) -> BuildPlanResult:
    """Generate a plan through the cascade; the fallback plan carries the brand vibe block."""
    config = config or get_settings().generation
    company_name = ctx.name or idea.title.split(" ")[0]
    folder_name = build_folder_name(company_name, idea.title)
    terminal_setup = build_terminal_setup(folder_name)

    def fallback() -> BuildPlan:
        plan = generate_mock_build_plan(idea, company_name)
        plan = plan.model_copy(update={"folder_name": folder_name, "terminal_setup": terminal_setup})
        return inject_brand_vibe(plan, idea, theme)

    request = GenerationRequest(
        stage="steps",
        system_prompt=build_steps_system_prompt(idea.effort),
        context=build_step_context(idea, ctx, theme, evidence),
        temperature=0.8,
        max_tokens=8192,
        timeout=config.steps_timeout,
        context_header="--- CONTEXT ---",
    )
    outcome = await cascade.run(
        request,
        parse=lambda text, final: parse_build_plan(idea, text, final, folder_name, terminal_setup),
        fallback=fallback,
    )

    used = USED_FALLBACK if outcome.used_fallback else outcome.provider
    log_gemini_call("steps", config, outcome.duration_ms, used=used, fallback=outcome.used_fallback)
    logger.info("plan_generated", idea=idea.id, effort=idea.effort, model=get_gemini_model("steps", config),
                api_version=get_gemini_api_version(config), used=used, duration_ms=outcome.duration_ms,
                steps=len(outcome.value.steps))
    return BuildPlanResult(plan=outcome.value, used=used, duration_ms=outcome.duration_ms,
                           error=outcome.error)
