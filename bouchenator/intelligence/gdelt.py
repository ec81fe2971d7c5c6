"""
GDELT Doc API client for recent news mentions.

Queries widen in order: name + domain over 30 days, name over 30 days,
name + domain over 90 days, then name over 90 days. The first non-empty
result wins. No authentication; failures yield an empty list.
"""

from __future__ import annotations

import re
from typing import List, Optional

import httpx
import structlog

from bouchenator.core.config import get_settings
from bouchenator.core.models import NewsItem

logger = structlog.get_logger(__name__)

MAX_RECORDS = 5


def _format_seendate(seendate: Optional[str]) -> Optional[str]:
    """``20240131T120000Z`` -> ``2024-01-31``."""
    if not seendate or len(seendate) < 8:
        return None
    return f"{seendate[0:4]}-{seendate[4:6]}-{seendate[6:8]}"


class GdeltClient:
    def __init__(self, client: httpx.AsyncClient, api_url: Optional[str] = None,
                 timeout: Optional[float] = None, user_agent: Optional[str] = None):
        settings = get_settings()
        self.client = client
        self.api_url = api_url or settings.evidence.gdelt_api_url
        self.timeout = timeout if timeout is not None else settings.evidence.gdelt_timeout
        self.user_agent = user_agent or settings.fetch.user_agent

    async def query(self, company_name: str, domain: Optional[str], timespan: str) -> List[NewsItem]:
        q = f'"{company_name}"'
        if domain:
            q += f" domain:{domain}"
        response = await self.client.get(
            self.api_url,
            params={
                "query": q,
                "mode": "artlist",
                "maxrecords": str(MAX_RECORDS),
                "format": "json",
                "timespan": timespan,
            },
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
        )
        if not response.is_success:
            return []
        articles = (response.json() or {}).get("articles") or []
        return [
            NewsItem(
                title=(a.get("title") or "").strip(),
                source=re.sub(r"^www\.", "", a.get("domain") or ""),
                url=a.get("url") or "",
                date=_format_seendate(a.get("seendate")),
            )
            for a in articles[:MAX_RECORDS]
        ]

    async def fetch_news(self, company_name: str, domain: Optional[str] = None) -> List[NewsItem]:
        """Up to 5 recent articles mentioning ``company_name``; never raises."""
        if not company_name or len(company_name) < 2:
            return []

        strategies = []
        if domain:
            strategies.append((domain, "30d"))
        strategies.append((None, "30d"))
        if domain:
            strategies.append((domain, "90d"))
        strategies.append((None, "90d"))

        try:
            for strategy_domain, timespan in strategies:
                items = await self.query(company_name, strategy_domain, timespan)
                if items:
                    logger.debug("gdelt_news_found", company=company_name, domain=strategy_domain,
                                 timespan=timespan, count=len(items))
                    return items
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("gdelt_query_failed", company=company_name, error=str(e))
        return []
