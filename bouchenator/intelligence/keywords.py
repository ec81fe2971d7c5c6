"""Deterministic search keywords from gathered company context."""

from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, List

from bouchenator.core.models import CompanyContext

STOP_WORDS = frozenset("""
    the a an and or but in on at to for of with by from is it its this that as are was were be
    has have had do does did will can could would should may might shall not no nor so if then
    than too very just about up out new also more our we you your their all each every both few
    some any most other into over such only own same how what which who when where why
    company inc ltd llc corp corporation group solutions services platform
""".split())

MAX_KEYWORDS = 10

GENERIC_KEYWORDS = ("app", "tool", "platform", "dashboard", "productivity")


def extract_words(text: str) -> List[str]:
    """Lowercase words of 3+ chars with punctuation and stop words removed."""
    cleaned = re.sub(r"[^a-z0-9\s-]", " ", text.lower())
    return [w for w in cleaned.split() if len(w) >= 3 and w not in STOP_WORDS]


def _words(texts: Iterable[str]) -> List[str]:
    return [w for t in texts for w in extract_words(t)]


def derive_keywords(ctx: CompanyContext) -> List[str]:
    """
    Rank words by how many context sources mention them.

    Sources are industry hints, description, first 10 headings, nav labels,
    first 5 press headlines and first 5 news items. Words from the company
    name are dropped unless fewer than 3 would remain. When the sources yield
    no words, the name words are padded with GENERIC_KEYWORDS.
    """
    sources: List[List[str]] = []
    if ctx.industry_hints:
        sources.append(_words(ctx.industry_hints))
    if ctx.description:
        sources.append(extract_words(ctx.description))
    if ctx.headings:
        sources.append(_words(ctx.headings[:10]))
    if ctx.nav_labels:
        sources.append(_words(ctx.nav_labels))
    if ctx.press_headlines:
        sources.append(_words(ctx.press_headlines[:5]))
    if ctx.news_items:
        sources.append(_words(ctx.news_items[:5]))

    counts: Counter = Counter()
    for words in sources:
        counts.update(dict.fromkeys(words, 1))
    ranked = [word for word, _ in counts.most_common()]

    if not ranked:
        name_words = list(dict.fromkeys(extract_words(ctx.name)))[:5]
        generic = [w for w in GENERIC_KEYWORDS if w not in name_words]
        return (name_words + generic)[:MAX_KEYWORDS]

    name_words = set(extract_words(ctx.name))
    filtered = [w for w in ranked if w not in name_words]
    return (filtered if len(filtered) >= 3 else ranked)[:MAX_KEYWORDS]
