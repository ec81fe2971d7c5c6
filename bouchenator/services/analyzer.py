"""
Pipeline orchestrator.

Runs the eight analysis steps of a job strictly in order, mutating the job
and writing it through the store after every transition so pollers always
see current progress. Each step recovers its own external failures; only an
unexpected exception (or cancellation) fails the job.
"""

from __future__ import annotations

import asyncio
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx
import structlog

from bouchenator.core.config import Settings, get_settings
from bouchenator.core.exceptions import BouchenatorError
from bouchenator.core.logging import JobLogger
from bouchenator.core.models import (
    AnalysisStep,
    CompanyContext,
    DisambiguationOption,
    Evidence,
    EvidencePHItem,
    EvidenceNews,
    FetchStatus,
    Job,
    JobStatus,
    NewsFetchAttempt,
    StepStatus,
    ThemeSource,
    WikidataEvidence,
    WikidataProfile,
)
from bouchenator.generation.cascade import GenerationCascade
from bouchenator.generation.ideas import generate_ideas
from bouchenator.generation.providers import default_providers
from bouchenator.intelligence.context_bundle import build_context_bundle
from bouchenator.intelligence.disambiguation import EntityResolver
from bouchenator.intelligence.gdelt import GdeltClient
from bouchenator.intelligence.inspiration import build_inspiration_pack
from bouchenator.intelligence.keywords import derive_keywords
from bouchenator.intelligence.page_reader import PageReader
from bouchenator.intelligence.producthunt import ProductHuntClient
from bouchenator.intelligence.site_fetch import SiteFetcher
from bouchenator.intelligence.theme import default_theme
from bouchenator.intelligence.theme_sampler import ThemeSampler
from bouchenator.intelligence.wikidata import WikidataClient
from bouchenator.services.job_store import JobStore
from bouchenator.utils.reliability import elapsed_ms, enforce_min_duration
from bouchenator.utils.text import domain_from_url, domain_to_name, extract_domain_name, is_url, normalize_url

logger = structlog.get_logger("analyze")

STEP_DEFINITIONS = [
    ("resolve", "Resolving company identity"),
    ("website", "Finding official website"),
    ("pages", "Reading key pages"),
    ("brandstyle", "Sampling brand styles (colors + fonts)"),
    ("press", "Checking newsroom / press releases"),
    ("news", "Checking recent news"),
    ("producthunt", "Checking Product Hunt for inspiration"),
    ("generate", "Generating Amuse Bouchenator suggestions"),
]

PROVIDER_LABELS = {
    "gemini": "Gemini",
    "gemini-rest": "Gemini REST",
    "openai": "OpenAI",
    "mock": "Mock fallback",
}

ASSET_RE = re.compile(
    r"\.(css|js|woff2?|ttf|otf|eot|png|jpe?g|gif|svg|ico|webp|avif|mp4|mp3|pdf|zip)(\?|$)",
    re.IGNORECASE,
)

MAX_CONTEXT_HEADINGS = 25
MAX_PRESS_HEADLINES = 10
MAX_NEWS_FALLBACK = 5

# Failures a step absorbs; anything else fails the job
STEP_ERRORS = (httpx.HTTPError, asyncio.TimeoutError, BouchenatorError)


def build_initial_steps() -> List[AnalysisStep]:
    return [AnalysisStep(id=step_id, label=label) for step_id, label in STEP_DEFINITIONS]


def set_step(job: Job, step_id: str, status: StepStatus, note: Optional[str] = None) -> None:
    """Move a step to ``status``; a terminal step never goes back to running."""
    step = job.get_step(step_id)
    if step is None:
        return
    if step.is_terminal and status == StepStatus.RUNNING:
        logger.warning("step_regression_ignored", job=job.id[:8], step=step_id, status=step.status)
        return
    step.status = status
    if note is not None:
        step.note = note


def strip_parenthetical(text: str) -> str:
    """``"Apple (Technology company)"`` -> ``"Apple"``."""
    return re.sub(r"\s*\(.*?\)\s*$", "", text).strip()


def is_asset_url(url: str) -> bool:
    try:
        path = httpx.URL(url).path
    except (httpx.InvalidURL, TypeError):
        return False
    return bool(ASSET_RE.search(path))


@dataclass
class StartResult:
    """Outcome of submitting an input: either options to choose from or a job."""

    needs_disambiguation: bool
    options: List[DisambiguationOption] = field(default_factory=list)
    job: Optional[Job] = None

    def to_wire(self) -> Dict:
        if self.needs_disambiguation:
            return {"needsDisambiguation": True, "options": [o.to_wire() for o in self.options]}
        return {"jobId": self.job.id, "needsDisambiguation": False}


class Analyzer:
    """Owns the evidence clients and runs one job end to end."""

    def __init__(
        self,
        store: JobStore,
        client: httpx.AsyncClient,
        settings: Optional[Settings] = None,
        cascade: Optional[GenerationCascade] = None,
        wikidata: Optional[WikidataClient] = None,
        page_reader: Optional[PageReader] = None,
        site_fetcher: Optional[SiteFetcher] = None,
        theme_sampler: Optional[ThemeSampler] = None,
        gdelt: Optional[GdeltClient] = None,
        product_hunt: Optional[ProductHuntClient] = None,
    ):
        self.store = store
        self.client = client
        self.settings = settings or get_settings()
        self.cascade = cascade or GenerationCascade(default_providers(client, self.settings.generation))
        self.wikidata = wikidata or WikidataClient(client)
        self.resolver = EntityResolver(self.wikidata)
        self.page_reader = page_reader or PageReader(client, self.settings.fetch)
        self.site_fetcher = site_fetcher or SiteFetcher(client, self.settings.fetch)
        self.theme_sampler = theme_sampler or ThemeSampler(client, config=self.settings.fetch)
        self.gdelt = gdelt or GdeltClient(client)
        self.product_hunt = product_hunt or ProductHuntClient(client)

    # Submission

    async def prepare(self, text: str, disambiguation_choice: Optional[str] = None,
                      wikidata_id: Optional[str] = None) -> StartResult:
        """Resolve the input (unless a choice was already made) and create the job."""
        profile: Optional[WikidataProfile] = None
        if disambiguation_choice:
            if wikidata_id:
                profile = await self.wikidata.get_profile(wikidata_id)
        else:
            decision = await self.resolver.resolve(text)
            if decision.needed and decision.options:
                return StartResult(needs_disambiguation=True, options=decision.options)
            if decision.auto_resolved is not None:
                profile = await self.wikidata.get_profile(decision.auto_resolved.wikidata_id)

        job = Job(
            id=str(uuid.uuid4()),
            input=text,
            disambiguation_choice=disambiguation_choice,
            wikidata_profile=profile,
            steps=build_initial_steps(),
            company_context=CompanyContext(name=text),
        )
        self.store.create_job(job)
        logger.info("job_created", job=job.id[:8], input=text, profile=profile.id if profile else None)
        return StartResult(needs_disambiguation=False, job=job)

    # Execution

    async def _update(self, job: Job, step_id: str, status: StepStatus, note: Optional[str] = None) -> None:
        set_step(job, step_id, status, note)
        await self.store.save_job_async(job)

    async def _begin(self, job: Job, step_id: str, log: JobLogger) -> float:
        await self._update(job, step_id, StepStatus.RUNNING)
        log.start(step_id)
        return time.perf_counter()

    async def _finish(self, job: Job, step_id: str, t0: float) -> None:
        await enforce_min_duration(t0, self.settings.demo_min_step_ms)
        job.evidence.timings_ms[step_id] = elapsed_ms(t0)
        await self.store.save_job_async(job)

    def mark_failed(self, job: Job, note: Optional[str] = None) -> None:
        job.status = JobStatus.FAILED
        for step in job.steps:
            if step.status == StepStatus.RUNNING.value:
                step.status = StepStatus.FAILED
                if note:
                    step.note = note
        self.store.save_job(job)

    async def run(self, job_id: str) -> None:
        job = self.store.require_job(job_id)
        job.status = JobStatus.RUNNING
        ctx = CompanyContext(name=job.input)
        job.company_context = ctx
        job.evidence = Evidence()
        log = JobLogger(job_id)
        t_total = time.perf_counter()
        logger.info("pipeline_started", job=job_id[:8], input=job.input)

        try:
            await self._resolve(job, ctx, log)
            await self._website(job, ctx, log)
            await self._pages(job, ctx, log)
            await self._brandstyle(job, ctx, log)
            await self._press(job, ctx, log)
            await self._news(job, ctx, log)
            await self._producthunt(job, ctx, log)
            await self._generate(job, ctx, log)
        except asyncio.CancelledError:
            self.mark_failed(job, "Cancelled")
            logger.warning("pipeline_cancelled", job=job_id[:8])
            raise
        except Exception as e:
            # Fatal: the user restarts the search rather than retrying in place.
            self.mark_failed(job)
            logger.exception("pipeline_failed", job=job_id[:8], error=str(e))
            return

        job.status = JobStatus.DONE
        await self.store.save_job_async(job)
        ev = job.evidence
        attempts = ev.page_fetch_attempts
        logger.info(
            "pipeline_completed",
            job=job_id[:8],
            duration_ms=elapsed_ms(t_total),
            pages_attempted=len(attempts),
            pages_ok=sum(1 for a in attempts if a.status == FetchStatus.OK.value),
            pages_blocked=sum(1 for a in attempts if a.status == FetchStatus.BLOCKED.value),
            thin_content=len(ctx.headings) < 3,
            news=ev.news.count,
            press_headlines=len(ctx.press_headlines),
            provider=ev.provider_used,
        )

    # Step 1
    async def _resolve(self, job: Job, ctx: CompanyContext, log: JobLogger) -> None:
        t0 = await self._begin(job, "resolve", log)
        ev = job.evidence
        raw = job.disambiguation_choice or job.input

        if is_url(raw):
            ctx.url = normalize_url(raw)
            ctx.name = domain_to_name(extract_domain_name(ctx.url))
        else:
            ctx.name = strip_parenthetical(raw) or raw

        profile = job.wikidata_profile
        candidates_count = 1 if profile else 0
        if profile is None and not is_url(raw):
            try:
                candidates = await self.wikidata.search(ctx.name)
                candidates_count = len(candidates)
                if candidates:
                    profile = await self.wikidata.get_profile(candidates[0].id)
            except STEP_ERRORS as e:
                log.warn("resolve", "knowledge lookup failed", error=str(e))
            ev.wikidata = WikidataEvidence(candidates_count=candidates_count)

        note = None
        if profile is not None:
            ctx.name = profile.label
            ctx.description = profile.description or ctx.description
            ctx.wikidata_id = profile.id
            ctx.industry_hints = profile.industry_hints
            if profile.website and not ctx.url:
                ctx.url = profile.website
            ev.wikidata = WikidataEvidence(used=True, selected_id=profile.id,
                                           candidates_count=candidates_count)
            note = f"{ctx.name} (Wikidata: {ctx.wikidata_id})"

        job.company_context = ctx
        await self._update(job, "resolve", StepStatus.DONE, note)
        log.info("resolve", note or ctx.name, url=ctx.url, duration=log.ms(t0))
        await self._finish(job, "resolve", t0)

    # Step 2
    async def _website(self, job: Job, ctx: CompanyContext, log: JobLogger) -> None:
        t0 = await self._begin(job, "website", log)
        if not ctx.url:
            slug = re.sub(r"[^a-z0-9]+", "", ctx.name.lower())
            guess = f"https://www.{slug}.com"
            if slug:
                try:
                    response = await self.client.head(
                        guess,
                        follow_redirects=True,
                        headers={"User-Agent": self.settings.fetch.user_agent},
                        timeout=self.settings.fetch.website_guess_timeout,
                    )
                    if response.is_success:
                        ctx.url = guess
                except httpx.HTTPError as e:
                    log.warn("website", "guess failed", url=guess, error=type(e).__name__)

        if ctx.url:
            await self._update(job, "website", StepStatus.DONE, domain_from_url(ctx.url))
            log.info("website", domain_from_url(ctx.url) or ctx.url, duration=log.ms(t0))
        else:
            await self._update(job, "website", StepStatus.SKIPPED)
            log.warn("website", "no website found", duration=log.ms(t0))
        await self._finish(job, "website", t0)

    # Step 3
    async def _pages(self, job: Job, ctx: CompanyContext, log: JobLogger) -> None:
        t0 = await self._begin(job, "pages", log)
        ev = job.evidence
        ev.resolved_base_url = ctx.url
        if not ctx.url:
            await self._update(job, "pages", StepStatus.SKIPPED, "No website URL")
            log.warn("pages", "skipped (no URL)")
            await self._finish(job, "pages", t0)
            return

        try:
            result = await self.page_reader.read_key_pages(ctx.url)
        except STEP_ERRORS as e:
            await self._update(job, "pages", StepStatus.SKIPPED, "Page read failed")
            log.warn("pages", "page read failed", error=str(e), duration=log.ms(t0))
            await self._finish(job, "pages", t0)
            return

        ev.page_fetch_attempts = result.attempts
        if result.homepage is not None:
            if not ctx.description:
                ctx.description = result.homepage.meta_description
            headings = list(result.homepage.headings)
            for page in result.key_pages:
                headings.extend(page.headings)
            ctx.headings = headings[:MAX_CONTEXT_HEADINGS]
            ctx.nav_labels = result.homepage.nav_labels
            ev.key_pages = [result.homepage.url] + [p.url for p in result.key_pages]

        method = "Playwright fallback" if result.playwright_used else "fetch"
        counts = f"{result.total_pages} page(s), {result.total_headings} heading(s)"
        if result.thin_content and result.thin_note:
            note = f"{counts} via {method} — {result.thin_note}" if result.total_pages > 0 else result.thin_note
            log.warn("pages", note, duration=log.ms(t0))
        elif ctx.headings:
            note = f"{counts} via {method}"
            log.info("pages", note, duration=log.ms(t0))
        else:
            note = f"{counts} via {method} (no headings found)"
            log.warn("pages", note, duration=log.ms(t0))
        await self._update(job, "pages", StepStatus.DONE, note)
        log.info(
            "pages",
            "attempt summary",
            attempted=len(result.attempts),
            ok=sum(1 for a in result.attempts if a.status == FetchStatus.OK.value),
            blocked=sum(1 for a in result.attempts if a.status == FetchStatus.BLOCKED.value),
            thin_content=result.thin_content,
        )
        await self._finish(job, "pages", t0)

    # Step 4
    async def _brandstyle(self, job: Job, ctx: CompanyContext, log: JobLogger) -> None:
        t0 = await self._begin(job, "brandstyle", log)
        ev = job.evidence
        ev.cache.theme = self.theme_sampler.is_cached(ctx.url)
        cached = " [cached]" if ev.cache.theme else ""
        try:
            theme = await self.theme_sampler.get_company_theme(ctx.url, ctx.name)
        except STEP_ERRORS as e:
            job.theme = default_theme().model_copy(update={"company_name": ctx.name})
            await self._update(job, "brandstyle", StepStatus.SKIPPED, "Using neutral theme — extraction error")
            log.error("brandstyle", "extraction error, using neutral", error=str(e))
            await self._finish(job, "brandstyle", t0)
            return

        job.theme = theme
        if theme.source != ThemeSource.DEFAULT.value:
            await self._update(job, "brandstyle", StepStatus.DONE, f"Applied theme ({theme.source}){cached}")
            log.info("brandstyle", f"source={theme.source}", primary=theme.primary, cached=ev.cache.theme)
        elif theme.note and "name-derived" in theme.note:
            await self._update(job, "brandstyle", StepStatus.DONE, f"Name-derived palette{cached}")
            log.info("brandstyle", "name-derived", primary=theme.primary)
        else:
            note = f"Using neutral theme — {theme.note}" if theme.note else "Using neutral theme"
            await self._update(job, "brandstyle", StepStatus.SKIPPED, note)
            log.info("brandstyle", "neutral", primary=theme.primary)
        await self._finish(job, "brandstyle", t0)

    # Step 5
    async def _press(self, job: Job, ctx: CompanyContext, log: JobLogger) -> None:
        t0 = await self._begin(job, "press", log)
        ev = job.evidence
        if not ctx.url:
            await self._update(job, "press", StepStatus.SKIPPED)
            log.warn("press", "skipped (no URL)")
            await self._finish(job, "press", t0)
            return

        try:
            press_urls, site_data = await asyncio.gather(
                self.site_fetcher.discover_press_urls(ctx.url),
                self.site_fetcher.fetch_site_data(ctx.url),
            )
        except STEP_ERRORS as e:
            await self._update(job, "press", StepStatus.SKIPPED)
            log.warn("press", "fetch failed", error=str(e), duration=log.ms(t0))
            await self._finish(job, "press", t0)
            return

        links = list(press_urls)
        for page in site_data.press_pages:
            if page.url not in links:
                links.append(page.url)
        ev.press_links = [u for u in links if not is_asset_url(u)]

        headlines = [h for page in site_data.press_pages for h in page.headings][:MAX_PRESS_HEADLINES]
        if headlines:
            ctx.press_headlines = headlines

        if ev.press_links:
            await self._update(job, "press", StepStatus.DONE,
                         f"{len(ev.press_links)} URL(s), {len(headlines)} headline(s)")
        else:
            await self._update(job, "press", StepStatus.SKIPPED)
        log.info("press", f"{len(ev.press_links)} URL(s), {len(headlines)} headline(s)", duration=log.ms(t0))
        await self._finish(job, "press", t0)

    # Step 6
    async def _news(self, job: Job, ctx: CompanyContext, log: JobLogger) -> None:
        t0 = await self._begin(job, "news", log)
        ev = job.evidence
        attempts: List[NewsFetchAttempt] = []
        press_count = len(ctx.press_headlines)
        domain = domain_from_url(ctx.url)

        try:
            articles = await self.gdelt.fetch_news(ctx.name, domain)
        except STEP_ERRORS as e:
            attempts.append(NewsFetchAttempt(source="gdelt", count=0, note=f"Failed: {e}"))
            if press_count:
                ctx.news_items = ctx.press_headlines[:MAX_NEWS_FALLBACK]
                attempts.append(NewsFetchAttempt(source="press-headlines", count=press_count,
                                                 note="GDELT failed, using press"))
                note = f"{press_count} headline(s) from press (GDELT failed)"
                log.warn("news", note)
            else:
                note = "0 found — GDELT failed, no press headlines available"
                log.error("news", note)
            ev.news_fetch_attempts = attempts
            await self._update(job, "news", StepStatus.DONE, note)
            await self._finish(job, "news", t0)
            return

        attempts.append(NewsFetchAttempt(source="gdelt", count=len(articles),
                                         note=None if articles else "No articles matched"))
        ev.news = EvidenceNews(provider="GDELT", count=len(articles), items=articles)
        if articles:
            ctx.news_items = [a.title for a in articles]
        elif press_count:
            ctx.news_items = ctx.press_headlines[:MAX_NEWS_FALLBACK]
            attempts.append(NewsFetchAttempt(source="press-headlines", count=press_count,
                                             note="Used as GDELT fallback"))
        ev.news_fetch_attempts = attempts

        if ctx.news_items:
            note = (f"{len(articles)} article(s) via GDELT" if articles
                    else f"{press_count} headline(s) from press pages (GDELT returned 0)")
            log.info("news", note, duration=log.ms(t0))
        else:
            tried = f" (domain: {domain})" if domain else ""
            note = f"0 found — tried GDELT{tried}{' + press' if press_count else ''}"
            log.warn("news", note, duration=log.ms(t0))
        await self._update(job, "news", StepStatus.DONE, note)
        await self._finish(job, "news", t0)

    # Step 7
    async def _producthunt(self, job: Job, ctx: CompanyContext, log: JobLogger) -> None:
        t0 = await self._begin(job, "producthunt", log)
        ev = job.evidence
        keywords = derive_keywords(ctx)
        log.info("producthunt", "keywords derived", token=self.product_hunt.configured, keywords=keywords[:3])

        if not self.product_hunt.configured:
            await self._update(job, "producthunt", StepStatus.SKIPPED,
                         "No Product Hunt token configured (set PRODUCT_HUNT_TOKEN)")
            log.warn("producthunt", "skipped: no token")
            await self._finish(job, "producthunt", t0)
            return

        try:
            result = await self.product_hunt.fetch_by_keywords(keywords)
        except STEP_ERRORS as e:
            await self._update(job, "producthunt", StepStatus.SKIPPED, "API call failed — using other context")
            log.error("producthunt", "fetch failed", error=str(e))
            await self._finish(job, "producthunt", t0)
            return

        ev.cache.product_hunt = result.from_cache
        cached = " [cached]" if result.from_cache else ""
        if result.products:
            ctx.product_hunt_inspiration = result.products
            ev.product_hunt = [
                EvidencePHItem(name=p.name, tagline=p.tagline or None, url=p.url or None)
                for p in result.products
            ]
            ev.inspiration_pack = build_inspiration_pack(result.products, result.keywords, result.mode_used)
            note = (f"{len(result.products)} product(s) via {result.mode_used} "
                    f"({', '.join(result.keywords[:3])}){cached}")
            await self._update(job, "producthunt", StepStatus.DONE, note)
            log.info("producthunt", note, duration=log.ms(t0))
        else:
            await self._update(job, "producthunt", StepStatus.SKIPPED, "API returned no results — using other context")
            log.warn("producthunt", "0 products", error=result.error or "empty results")
        await self._finish(job, "producthunt", t0)

    # Step 8
    async def _generate(self, job: Job, ctx: CompanyContext, log: JobLogger) -> None:
        t0 = await self._begin(job, "generate", log)
        ev = job.evidence
        job.company_context = ctx

        bundle = build_context_bundle(ctx, ev, job.theme)
        job.context_bundle = bundle

        result = await generate_ideas(job.id, bundle, self.cascade, self.settings.generation)
        ev.provider_used = result.provider
        ev.used_gemini = result.used_gemini
        ev.generation_error = result.error

        for idea in result.ideas:
            idea.theme = job.theme
            await self.store.store_idea_async(idea)
        job.ideas = result.ideas

        label = PROVIDER_LABELS.get(result.provider, result.provider)
        await self._update(job, "generate", StepStatus.DONE, f"{len(result.ideas)} ideas via {label}")
        log.info("generate", f"{len(result.ideas)} ideas via {label}", duration=log.ms(t0))
        await self._finish(job, "generate", t0)


class JobRunner:
    """One ``asyncio.Task`` per job, tracked so it can be cancelled."""

    def __init__(self, analyzer: Analyzer):
        self.analyzer = analyzer
        self._tasks: Dict[str, asyncio.Task] = {}

    async def submit(self, text: str, disambiguation_choice: Optional[str] = None,
                     wikidata_id: Optional[str] = None) -> StartResult:
        result = await self.analyzer.prepare(text, disambiguation_choice, wikidata_id)
        if result.job is not None:
            self.start(result.job.id)
        return result

    def start(self, job_id: str) -> asyncio.Task:
        task = asyncio.create_task(self.analyzer.run(job_id), name=f"job-{job_id[:8]}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        return task

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    async def wait(self, job_id: str) -> None:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)

    async def cancel(self, job_id: str) -> bool:
        """Cancel an in-flight job; False when there is nothing to cancel."""
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        job = self.analyzer.store.get_job(job_id)
        if job is not None and not job.is_terminal:
            # Cancelled before the first step ran
            self.analyzer.mark_failed(job, "Cancelled")
        logger.info("job_cancelled", job=job_id[:8])
        return True

    async def shutdown(self) -> None:
        for job_id in list(self._tasks):
            await self.cancel(job_id)
