"""Idea-level operations served after a job completes."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import structlog

from bouchenator.core.config import GenerationConfig, get_settings
from bouchenator.core.exceptions import NotFoundError, ValidationError
from bouchenator.core.models import CompanyContext, Idea, IdeaSource
from bouchenator.generation.build_plan import USED_CACHE, generate_build_plan
from bouchenator.generation.cascade import GenerationCascade
from bouchenator.generation.custom_idea import (
    generate_custom_idea,
    new_custom_idea_id,
    validate_description,
)
from bouchenator.generation.gemini_config import log_gemini_call
from bouchenator.intelligence.producthunt import ProductHuntClient
from bouchenator.services.job_store import JobStore
from bouchenator.utils.reliability import elapsed_ms

logger = structlog.get_logger("ideas")

IDEA_EXPIRED_MESSAGE = "Idea not found — your session may have expired. Try starting a new search."


class IdeasService:
    def __init__(self, store: JobStore, cascade: GenerationCascade,
                 product_hunt: Optional[ProductHuntClient] = None,
                 config: Optional[GenerationConfig] = None):
        self.store = store
        self.cascade = cascade
        self.config = config or get_settings().generation
        self.product_hunt = product_hunt

    def get_idea_detail(self, idea_id: str) -> Dict[str, Any]:
        """The idea plus its resolved theme (the idea's own, else the job's)."""
        idea = self.store.require_idea(idea_id)
        job = self.store.get_job(idea.job_id)
        theme = idea.theme or (job.theme if job else None)
        payload = idea.to_wire()
        payload["theme"] = theme.to_wire() if theme else None
        return payload

    async def generate_steps(self, idea_id: str) -> Dict[str, Any]:
        """
        Build plan for an idea: the cached plan when present, else generate and cache.

        The response carries ``used`` (provider, ``fallback`` or ``cache``) and
        ``durationMs``.
        """
        t0 = time.perf_counter()
        if not idea_id:
            raise ValidationError("ideaId is required")

        cached = self.store.get_build_plan(idea_id)
        if cached is not None:
            duration_ms = elapsed_ms(t0)
            log_gemini_call("steps", self.config, duration_ms, used=USED_CACHE, fallback=False)
            return {**cached.to_wire(), "used": USED_CACHE, "durationMs": duration_ms}

        idea = self.store.get_idea(idea_id)
        if idea is None:
            logger.warning("idea_not_found", idea=idea_id)
            raise NotFoundError("Idea", idea_id, details={"user_message": IDEA_EXPIRED_MESSAGE})

        job = self.store.get_job(idea.job_id)
        ctx = job.company_context if job else CompanyContext(name="Unknown")
        theme = idea.theme or (job.theme if job else None)
        evidence = job.evidence if job else None

        result = await generate_build_plan(idea, ctx, theme, self.cascade, evidence=evidence,
                                           config=self.config)
        self.store.store_build_plan(result.plan)
        return {**result.plan.to_wire(), "used": result.used, "durationMs": elapsed_ms(t0)}

    async def create_custom_idea(self, job_id: Optional[str], description: Optional[str]) -> Idea:
        job_id = (job_id or "").strip()
        if not job_id or not (description or "").strip():
            raise ValidationError("jobId and description are required")
        text = validate_description(description)
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id, details={"user_message": "Job not found"})

        result = await generate_custom_idea(text, job.company_context, self.cascade, evidence=job.evidence,
                                            config=self.config)
        fields = result.fields
        idea = Idea(
            id=new_custom_idea_id(),
            job_id=job_id,
            title=fields.title,
            summary=fields.summary,
            effort=fields.effort,
            outline=fields.outline,
            inspired_angle=fields.inspired_angle,
            theme=job.theme,
            source=IdeaSource.CUSTOM,
            original_prompt=text,
        )
        self.store.store_idea(idea)
        job.ideas.append(idea)
        self.store.save_job(job)
        logger.info("custom_idea_created", job=job_id[:8], idea=idea.id, provider=result.provider,
                    title=idea.title)
        return idea

    async def regenerate_custom_idea(self, idea_id: Optional[str], description: Optional[str]) -> Idea:
        """Regenerate an idea in place from a new description."""
        idea_id = (idea_id or "").strip()
        if not idea_id or not (description or "").strip():
            raise ValidationError("ideaId and description are required")
        text = validate_description(description)
        idea = self.store.get_idea(idea_id)
        if idea is None:
            raise NotFoundError("Idea", idea_id, details={"user_message": "Idea not found"})

        job = self.store.get_job(idea.job_id)
        ctx = job.company_context if job else CompanyContext(name="Unknown")
        result = await generate_custom_idea(text, ctx, self.cascade, evidence=job.evidence if job else None,
                                            config=self.config)

        fields = result.fields
        idea.title = fields.title
        idea.summary = fields.summary
        idea.effort = fields.effort
        idea.outline = fields.outline
        idea.inspired_angle = fields.inspired_angle
        idea.original_prompt = text
        self.store.store_idea(idea)
        if job is not None:
            for i, existing in enumerate(job.ideas):
                if existing.id == idea.id:
                    job.ideas[i] = idea
            self.store.save_job(job)
        logger.info("custom_idea_regenerated", idea=idea_id, provider=result.provider, title=idea.title)
        return idea

    async def trending_inspiration(self) -> List[Dict[str, Any]]:
        if self.product_hunt is None:
            return []
        posts = await self.product_hunt.fetch_trending()
        return [p.to_wire() for p in posts]
