"""
Wikidata enrichment client.

Searches for company entities and fetches profile data through the MediaWiki
API (``wbsearchentities`` + ``wbgetentities``). Best-effort: public methods
log and return empty results instead of raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog

from bouchenator.core.config import get_settings
from bouchenator.core.exceptions import DataAccessError
from bouchenator.core.models import DisambiguationOption, WikidataProfile
from bouchenator.utils.reliability import raise_for_transient, with_retry
from bouchenator.utils.text import domain_from_url

logger = structlog.get_logger(__name__)

USER_AGENT = "Bouchenator/1.0 (company research pipeline)"

P_OFFICIAL_WEBSITE = "P856"
P_INDUSTRY = "P452"
P_INSTANCE_OF = "P31"

# P31 classes that mark an entity as an organisation
ORG_CLASSES = {
    "Q4830453",  # business
    "Q783794",  # company
    "Q6881511",  # enterprise
    "Q43229",  # organization
    "Q3918",  # technology company
    "Q891723",  # public company
    "Q431289",  # brand
    "Q4611891",  # internet company
    "Q18388277",  # startup company
}

COMPANY_HINTS = re.compile(
    r"\b(company|corporation|inc\b|ltd\b|gmbh|plc\b|enterprise|firm|startup|organization|"
    r"organisation|business|brand|manufacturer|provider|service|platform|software|tech|bank|"
    r"airline|insurer)\b",
    re.IGNORECASE,
)

MAX_CANDIDATES = 5
MAX_INDUSTRY_HINTS = 5


@dataclass
class WikidataCandidate:
    """A search hit with enough claims to judge whether it is a company."""

    id: str
    label: str
    description: str
    website: Optional[str] = None
    is_likely_company: bool = False

    def to_option(self) -> DisambiguationOption:
        return DisambiguationOption(
            label=self.label,
            description=self.description,
            domain=domain_from_url(self.website),
            wikidata_id=self.id,
        )


def _claim_string(claims: Dict[str, Any], prop: str) -> Optional[str]:
    values = claims.get(prop) or []
    if not values:
        return None
    datavalue = (values[0].get("mainsnak") or {}).get("datavalue") or {}
    if datavalue.get("type") == "string":
        return datavalue.get("value")
    return None


def _claim_entity_ids(claims: Dict[str, Any], prop: str) -> List[str]:
    ids = []
    for claim in claims.get(prop) or []:
        value = ((claim.get("mainsnak") or {}).get("datavalue") or {}).get("value")
        if isinstance(value, dict) and value.get("id"):
            ids.append(value["id"])
    return ids


class WikidataClient:
    """Thin async client over the Wikidata MediaWiki API."""

    def __init__(self, client: httpx.AsyncClient, api_url: Optional[str] = None,
                 timeout: Optional[float] = None):
        config = get_settings().evidence
        self.client = client
        self.api_url = api_url or config.wikidata_api_url
        self.timeout = timeout if timeout is not None else config.wikidata_timeout

    @with_retry(max_attempts=2)
    async def _get_json(self, params: Dict[str, str]) -> Dict[str, Any]:
        query = {"format": "json", "origin": "*", **params}
        response = await self.client.get(
            self.api_url,
            params=query,
            headers={"User-Agent": USER_AGENT},
            timeout=self.timeout,
        )
        raise_for_transient("wikidata", response)
        if response.status_code != 200:
            raise DataAccessError(f"wikidata HTTP {response.status_code}")
        return response.json()

    async def search(self, query: str) -> List[WikidataCandidate]:
        """
        Search for company entities matching ``query``.

        Returns up to 5 likely-company candidates enriched with their official
        website; an empty list on any failure.
        """
        if not query or len(query) < 2:
            return []

        try:
            search_data = await self._get_json({
                "action": "wbsearchentities",
                "search": query,
                "language": "en",
                "type": "item",
                "limit": "10",
            })
            raw_results = search_data.get("search") or []
            if not raw_results:
                return []

            ids = [r["id"] for r in raw_results if r.get("id")]
            entity_data = await self._get_json({
                "action": "wbgetentities",
                "ids": "|".join(ids),
                "props": "claims|descriptions",
                "languages": "en",
            })
        except (httpx.HTTPError, DataAccessError, ValueError) as e:
            logger.warning("wikidata_search_failed", query=query, error=str(e))
            return []

        entities = entity_data.get("entities") or {}
        candidates: List[WikidataCandidate] = []
        for raw in raw_results:
            entity = entities.get(raw.get("id"))
            if not entity:
                continue
            description = (
                ((entity.get("descriptions") or {}).get("en") or {}).get("value")
                or raw.get("description")
                or ""
            )
            claims = entity.get("claims") or {}
            website = _claim_string(claims, P_OFFICIAL_WEBSITE)
            org_like = any(i in ORG_CLASSES for i in _claim_entity_ids(claims, P_INSTANCE_OF))
            candidates.append(
                WikidataCandidate(
                    id=raw["id"],
                    label=raw.get("label") or raw["id"],
                    description=description,
                    website=website,
                    is_likely_company=org_like or bool(website) or bool(COMPANY_HINTS.search(description)),
                )
            )

        companies = [c for c in candidates if c.is_likely_company][:MAX_CANDIDATES]
        logger.debug("wikidata_search_completed", query=query, hits=len(raw_results), companies=len(companies))
        return companies

    async def _resolve_labels(self, ids: List[str]) -> Dict[str, str]:
        if not ids:
            return {}
        try:
            data = await self._get_json({
                "action": "wbgetentities",
                "ids": "|".join(ids),
                "props": "labels",
                "languages": "en",
            })
        except (httpx.HTTPError, DataAccessError, ValueError) as e:
            logger.debug("wikidata_label_lookup_failed", ids=len(ids), error=str(e))
            return {}
        labels = {}
        for entity_id, entity in (data.get("entities") or {}).items():
            labels[entity_id] = ((entity.get("labels") or {}).get("en") or {}).get("value") or entity_id
        return labels

    async def get_profile(self, entity_id: str) -> Optional[WikidataProfile]:
        """Full profile for one entity, or None on failure."""
        try:
            data = await self._get_json({
                "action": "wbgetentities",
                "ids": entity_id,
                "props": "claims|descriptions|labels",
                "languages": "en",
            })
        except (httpx.HTTPError, DataAccessError, ValueError) as e:
            logger.warning("wikidata_profile_failed", entity_id=entity_id, error=str(e))
            return None

        entity = (data.get("entities") or {}).get(entity_id)
        if not entity or "missing" in entity:
            return None

        claims = entity.get("claims") or {}
        industry_ids = _claim_entity_ids(claims, P_INDUSTRY)
        instance_ids = _claim_entity_ids(claims, P_INSTANCE_OF)
        label_ids = list(dict.fromkeys(industry_ids + instance_ids))
        labels = await self._resolve_labels(label_ids)

        hints = []
        for hint_id in industry_ids + instance_ids:
            hint = labels.get(hint_id, hint_id)
            if len(hint) > 2 and hint.lower() not in ("entity", "item") and hint not in hints:
                hints.append(hint)

        return WikidataProfile(
            id=entity_id,
            label=((entity.get("labels") or {}).get("en") or {}).get("value") or entity_id,
            description=((entity.get("descriptions") or {}).get("en") or {}).get("value") or "",
            website=_claim_string(claims, P_OFFICIAL_WEBSITE),
            industry_hints=hints[:MAX_INDUSTRY_HINTS],
        )
