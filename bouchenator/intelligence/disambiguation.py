"""
Entity resolution and disambiguation policy.

Combines Wikidata search results with a small table of names known to be
ambiguous, then decides whether the caller has to pick an entity before the
pipeline can start.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog

from bouchenator.core.models import DisambiguationOption
from bouchenator.intelligence.wikidata import WikidataClient
from bouchenator.utils.text import is_url

logger = structlog.get_logger(__name__)

MAX_OPTIONS = 6


def _opt(label: str, description: str, domain: Optional[str] = None,
         wikidata_id: Optional[str] = None) -> DisambiguationOption:
    return DisambiguationOption(label=label, description=description, domain=domain,
                                wikidata_id=wikidata_id)


KNOWN_AMBIGUOUS: Dict[str, List[DisambiguationOption]] = {
    "apple": [
        _opt("Apple Inc.", "Technology: iPhone, Mac, iOS", "apple.com", "Q312"),
        _opt("Apple Records", "Record label founded by The Beatles", "applerecords.com", "Q213660"),
        _opt("Apple Federal Credit Union", "Financial institution", "applefcu.org"),
    ],
    "delta": [
        _opt("Delta Air Lines", "Major US airline", "delta.com", "Q188920"),
        _opt("Delta Faucet", "Kitchen and bath fixtures", "deltafaucet.com"),
        _opt("Delta Dental", "Dental insurance provider", "deltadental.com"),
    ],
    "mercury": [
        _opt("Mercury (fintech)", "Banking for startups", "mercury.com"),
        _opt("Mercury Insurance", "Auto insurance company", "mercuryinsurance.com"),
        _opt("Mercury Systems", "Defense electronics", "mrcy.com"),
    ],
    "amazon": [
        _opt("Amazon.com", "E-commerce and cloud computing", "amazon.com", "Q3884"),
        _opt("Amazon (region)", "South American rainforest region"),
    ],
    "atlas": [
        _opt("MongoDB Atlas", "Cloud database service", "mongodb.com"),
        _opt("Atlas Copco", "Industrial equipment", "atlascopco.com"),
        _opt("Atlas VPN", "VPN service provider", "atlasvpn.com"),
    ],
    "notion": [
        _opt("Notion", "Workspace and note-taking app", "notion.so", "Q60747998"),
        _opt("Notion Capital", "European venture capital", "notion.vc"),
    ],
    "linear": [
        _opt("Linear", "Project management for teams", "linear.app"),
        _opt("Linear Finance", "DeFi protocol", "linear.finance"),
    ],
    "spark": [
        _opt("Apache Spark", "Big data processing", "spark.apache.org"),
        _opt("Spark Mail", "Email client by Readdle", "sparkmailapp.com"),
        _opt("Spark Networks", "Online dating company", "spark.net"),
    ],
    "scout": [
        _opt("Scout APM", "Application monitoring", "scoutapm.com"),
        _opt("Scout Motors", "Electric vehicles", "scoutmotors.com"),
        _opt("Scout24", "Digital marketplace", "scout24.com"),
    ],
    "frontier": [
        _opt("Frontier Airlines", "US low-cost airline", "flyfrontier.com"),
        _opt("Frontier Communications", "Telecom provider", "frontier.com"),
    ],
    "sage": [
        _opt("Sage (accounting)", "Accounting software", "sage.com"),
        _opt("Sage Therapeutics", "Biopharmaceutical company", "sagerx.com"),
    ],
}


@dataclass
class AutoResolved:
    wikidata_id: str
    label: str
    description: str
    website: Optional[str] = None


@dataclass
class DisambiguationResult:
    """Outcome of the resolution policy."""

    needed: bool
    options: List[DisambiguationOption] = field(default_factory=list)
    auto_resolved: Optional[AutoResolved] = None
    candidates_count: int = 0
    rule: str = "none"


def is_likely_ambiguous(text: str) -> bool:
    """Short inputs (one or two words) that are not URLs."""
    cleaned = text.strip()
    if is_url(cleaned):
        return False
    return len(cleaned.split()) <= 2


def known_options(text: str) -> List[DisambiguationOption]:
    return [o.model_copy() for o in KNOWN_AMBIGUOUS.get(text.strip().lower(), [])]


def merge_options(primary: List[DisambiguationOption],
                  secondary: List[DisambiguationOption]) -> List[DisambiguationOption]:
    """Knowledge-service options first, then table options; dedup by lowercase label; cap 6."""
    seen = set()
    merged = []
    for option in list(primary) + list(secondary):
        key = option.label.lower()
        if key in seen:
            continue
        seen.add(key)
        merged.append(option)
    return merged[:MAX_OPTIONS]


class EntityResolver:
    """Decides whether a free-text subject needs a disambiguation choice."""

    def __init__(self, wikidata: WikidataClient):
        self.wikidata = wikidata

    async def resolve(self, text: str) -> DisambiguationResult:
        """
        Apply the resolution rules in order.

        1. Short input with two or more merged options: ask.
        2. Two or more knowledge-service candidates: ask.
        3. One candidate and a 3+ word input: auto-resolve.
        4. Only table options (two or more): ask with those.
        5. One candidate and a short input: ask, with a "use as typed" escape.
        6. Otherwise proceed with the input as-is.

        Lookup failures degrade to table-only data and never raise.
        """
        if is_url(text):
            return DisambiguationResult(needed=False, rule="url")

        ambiguous = is_likely_ambiguous(text)
        table = known_options(text)

        candidates = await self.wikidata.search(text.strip())
        wiki_options = [c.to_option() for c in candidates]
        merged = merge_options(wiki_options, table)
        count = len(candidates)

        if ambiguous and len(merged) >= 2:
            result = DisambiguationResult(needed=True, options=merged, candidates_count=count,
                                          rule="short_input")
        elif len(wiki_options) >= 2:
            result = DisambiguationResult(needed=True, options=merged, candidates_count=count,
                                          rule="multiple_candidates")
        elif len(wiki_options) == 1 and not ambiguous:
            top = candidates[0]
            result = DisambiguationResult(
                needed=False,
                auto_resolved=AutoResolved(
                    wikidata_id=top.id,
                    label=top.label,
                    description=top.description,
                    website=top.website,
                ),
                candidates_count=count,
                rule="auto_resolved",
            )
        elif len(table) >= 2:
            result = DisambiguationResult(needed=True, options=table, candidates_count=0,
                                          rule="known_table")
        elif len(wiki_options) == 1 and ambiguous:
            escape = DisambiguationOption(
                label=f'"{text.strip()}" — use as-is',
                description="Proceed without Wikidata enrichment",
            )
            result = DisambiguationResult(needed=True, options=wiki_options + [escape],
                                          candidates_count=count, rule="single_short")
        else:
            result = DisambiguationResult(needed=False, candidates_count=0, rule="none")

        logger.info(
            "disambiguation_decided",
            input=text,
            rule=result.rule,
            needed=result.needed,
            options=len(result.options),
            candidates=count,
        )
        return result
