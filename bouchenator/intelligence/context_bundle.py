"""
Context bundle: the single payload handed from the pipeline to generation.

``build_context_bundle`` merges company context, evidence and theme;
``context_bundle_to_prompt`` renders it as prompt text with empty sections
omitted; ``summarize_context_bundle_for_logs`` produces a compact,
secret-free log summary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from bouchenator.core.models import (
    BundleBrand,
    BundleCompany,
    BundleNews,
    BundlePage,
    BundlePages,
    BundlePress,
    BundlePressItem,
    BundleProduct,
    BundleProductHunt,
    CompanyContext,
    ContextBundle,
    Evidence,
    NewsItem,
    Theme,
    ThemeSource,
)

MAX_BUNDLE_HEADINGS = 20
PROMPT_HEADINGS = 15
PROMPT_PRESS_HEADLINES = 8
PROMPT_PRESS_URLS = 5
PROMPT_NEWS = 5
PROMPT_PRODUCTS = 8


def build_context_bundle(ctx: CompanyContext, evidence: Evidence,
                         theme: Optional[Theme] = None) -> ContextBundle:
    """Pure merge; headings are attributed to the first page read."""
    items = [BundlePage(url=url) for url in evidence.key_pages]
    if items and ctx.headings:
        items[0] = BundlePage(url=items[0].url, headings=ctx.headings[:MAX_BUNDLE_HEADINGS])

    pack = evidence.inspiration_pack
    return ContextBundle(
        company=BundleCompany(
            name=ctx.name,
            url=ctx.url,
            description=ctx.description,
            wikidata_id=ctx.wikidata_id,
            industry_hints=list(ctx.industry_hints),
        ),
        pages=BundlePages(
            items=items,
            nav_labels=list(ctx.nav_labels),
            thin_content=len(ctx.headings) < 2 or not items,
        ),
        brand=BundleBrand(
            found=theme is not None and theme.source != ThemeSource.DEFAULT.value,
            source=theme.source if theme else None,
            primary=theme.primary if theme else None,
            accent=theme.accent if theme else None,
            font_family=theme.font_family if theme else None,
            favicon_url=theme.favicon_url if theme else None,
        ),
        press=BundlePress(
            items=[BundlePressItem(url=url) for url in evidence.press_links],
            headlines=list(ctx.press_headlines),
        ),
        gdelt=BundleNews(items=[NewsItem(**n.model_dump()) for n in evidence.news.items]),
        product_hunt=BundleProductHunt(
            items=[BundleProduct(name=p.name, tagline=p.tagline, url=p.url) for p in pack.products]
            if pack else [],
            keywords=list(pack.keywords) if pack else [],
            mode_used=pack.mode_used if pack else None,
            common_patterns=list(pack.common_patterns) if pack else [],
        ),
    )


def _all_headings(bundle: ContextBundle) -> List[str]:
    return [h for page in bundle.pages.items for h in page.headings]


def context_bundle_to_prompt(bundle: ContextBundle) -> str:
    """Prompt text for the generators; only sections with data are emitted."""
    company = bundle.company
    parts = [f"Company: {company.name}"]
    if company.url:
        parts.append(f"Website: {company.url}")
    if company.description:
        parts.append(f"Description: {company.description}")
    if company.wikidata_id:
        parts.append(f"Wikidata ID: {company.wikidata_id}")
    if company.industry_hints:
        parts.append(f"Industry/type: {', '.join(company.industry_hints)}")

    if bundle.pages.items:
        parts.append(f"Key pages fetched: {', '.join(p.url for p in bundle.pages.items)}")
        headings = _all_headings(bundle)
        if headings:
            parts.append("Key headings from site:\n  " + "\n  ".join(headings[:PROMPT_HEADINGS]))
    if bundle.pages.nav_labels:
        parts.append(f"Navigation labels: {', '.join(bundle.pages.nav_labels)}")

    if bundle.press.headlines:
        parts.append("Press headlines:\n  " + "\n  ".join(bundle.press.headlines[:PROMPT_PRESS_HEADLINES]))
    if bundle.press.items:
        urls = ", ".join(p.url for p in bundle.press.items[:PROMPT_PRESS_URLS])
        parts.append(f"Press/newsroom URLs ({len(bundle.press.items)}): {urls}")

    if bundle.gdelt.items:
        lines = [
            f"• {n.title} ({n.source}{', ' + n.date if n.date else ''})"
            for n in bundle.gdelt.items[:PROMPT_NEWS]
        ]
        parts.append("Recent external news (GDELT):\n  " + "\n  ".join(lines))

    ph = bundle.product_hunt
    if ph.items:
        parts.append(
            f"\n--- INSPIRATION PACK ({len(ph.items)} products, mode: {ph.mode_used or 'unknown'}, "
            f"keywords: {', '.join(ph.keywords)}) ---"
        )
        parts.append("Products for inspiration:")
        parts.extend(f"  • {p.name}: {p.tagline}" for p in ph.items[:PROMPT_PRODUCTS])
        if ph.common_patterns:
            parts.append("")
            parts.append("Common patterns observed:")
            parts.extend(f"  • {pattern}" for pattern in ph.common_patterns)

    return "\n\n".join(parts)


@dataclass
class ContextBundleSummary:
    line: str
    preview: str


def summarize_context_bundle_for_logs(bundle: ContextBundle) -> ContextBundleSummary:
    headings = _all_headings(bundle)
    line = " ".join([
        f"pages={len(bundle.pages.items)}",
        f"press={len(bundle.press.items)}",
        f"gdelt={len(bundle.gdelt.items)}",
        f"ph={len(bundle.product_hunt.items)}",
        f"brand={str(bundle.brand.found).lower()}",
        f"thinContent={str(bundle.pages.thin_content).lower()}",
    ])

    preview = []
    if bundle.pages.items:
        preview.append(f"  pages: {', '.join(p.url for p in bundle.pages.items[:3])}")
        if headings:
            preview.append(f"  headings({len(headings)}): {'; '.join(headings[:3])}")
    if bundle.press.headlines:
        preview.append(f"  press({len(bundle.press.headlines)}): {'; '.join(bundle.press.headlines[:3])}")
    if bundle.gdelt.items:
        preview.append(f"  gdelt({len(bundle.gdelt.items)}): {'; '.join(n.title for n in bundle.gdelt.items[:3])}")
    if bundle.product_hunt.items:
        names = "; ".join(p.name for p in bundle.product_hunt.items[:3])
        preview.append(f"  ph({len(bundle.product_hunt.items)}): {names}")
    if not preview:
        preview.append("  (no external context gathered)")

    return ContextBundleSummary(line=line, preview="\n".join(preview))
