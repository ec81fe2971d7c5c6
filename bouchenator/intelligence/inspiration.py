"""
Inspiration pack builder.

Turns Product Hunt products into inferred feature bullets and the UI
patterns they share. Pure and deterministic.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import List

from bouchenator.core.models import InspirationPack, InspirationProduct, PHInspiration

FEATURE_RULES = [
    (r"automat|ai-powered|\bai\b|machine learning", "AI-powered automation"),
    (r"collaborat|team|workspace|together", "Team collaboration"),
    (r"analytic|dashboard|insight|metric|track", "Analytics dashboard"),
    (r"api|integrat|connect|sync", "Integrations and API access"),
    (r"design|\bui\b|\bux\b|beautiful|visual", "Visual design tooling"),
    (r"secur|privac|encrypt", "Security first"),
    (r"fast|speed|perform|instant|real-?time", "Real-time responsiveness"),
    (r"free|open.?source|affordable", "Low-cost access"),
    (r"manage|organiz|workflow|productiv", "Workflow management"),
    (r"custom|personaliz|tailor", "Personalised experience"),
    (r"notif|alert|monitor", "Smart alerts"),
    (r"search|discover|find|explor", "Search and discovery"),
]

PATTERN_RULES = [
    (r"ai|automat|machine",
     "Automation is the headline value: try auto-suggest, one-click generate or smart defaults"),
    (r"collaborat|team|share",
     "Shared views keep people coming back: add sharing, comments or a team feed"),
    (r"dashboard|analytic|metric",
     "A metrics dashboard demos instantly: lead with a few charts and KPIs"),
    (r"integrat|api|connect",
     "Integrations signal an ecosystem: even mocked connectors make the demo feel real"),
    (r"workflow|manage|organiz",
     "Daily workflows earn loyalty: drag and drop boards or guided step flows"),
    (r"search|discover|find",
     "Discovery UIs feel powerful: filters, facets and suggested results"),
    (r"custom|personaliz",
     "Personalisation delights: saved preferences and views that adapt to the user"),
    (r"notif|alert|monitor",
     "Status updates create habit: alerts, activity feeds and live badges"),
    (r"visual|design|beauti",
     "Polish sells the idea: tidy type scale, even spacing and small transitions"),
    (r"fast|speed|real-?time",
     "Perceived speed impresses: optimistic updates and skeleton loaders"),
    (r"secur|privac",
     "Trust cues matter: privacy notes and visible security badges"),
    (r"free|open|accessib",
     "Zero-friction onboarding wins: make the demo usable without signing up"),
]

UNIVERSAL_PATTERNS = [
    "One page, one job: keep each screen focused on a single action",
    "Every click deserves feedback: hovers, pressed states and transitions",
    "Reveal detail progressively: basics first, depth on demand",
]

MAX_PRODUCTS = 12
MAX_FEATURES = 3
MAX_PATTERNS = 6
MIN_PATTERNS = 3


def infer_features(product: PHInspiration) -> List[str]:
    """Up to 3 feature bullets from tagline keywords and the first two topics."""
    tagline = product.tagline or ""
    lowered = tagline.lower()
    features = [label for pattern, label in FEATURE_RULES if re.search(pattern, lowered)]

    for topic in product.topics[:2]:
        if not any(topic.lower() in f.lower() for f in features):
            features.append(f"{topic} focus")

    if not features and len(tagline) > 10:
        first_clause = re.split(r"[.!,—–-]", tagline)[0].strip()
        if 5 < len(first_clause) < 60:
            features.append(first_clause)
    return features[:MAX_FEATURES]


def derive_common_patterns(products: List[InspirationProduct]) -> List[str]:
    counts: Counter = Counter()
    for product in products:
        text = " ".join([product.tagline, *product.inferred_features, *product.topics])
        for pattern, label in PATTERN_RULES:
            if re.search(pattern, text, re.IGNORECASE):
                counts[label] += 1
    return [label for label, _ in counts.most_common(MAX_PATTERNS)]


def build_inspiration_pack(products: List[PHInspiration], keywords: List[str],
                           mode_used: str) -> InspirationPack:
    inspiration = [
        InspirationProduct(
            name=p.name,
            tagline=p.tagline,
            url=p.url,
            topics=list(p.topics),
            inferred_features=infer_features(p),
        )
        for p in products[:MAX_PRODUCTS]
    ]
    patterns = derive_common_patterns(inspiration)
    if len(patterns) < MIN_PATTERNS:
        for universal in UNIVERSAL_PATTERNS:
            if len(patterns) >= MAX_PATTERNS:
                break
            if universal not in patterns:
                patterns.append(universal)

    return InspirationPack(mode_used=mode_used, keywords=list(keywords), products=inspiration,
                           common_patterns=patterns)
