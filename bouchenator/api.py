"""FastAPI application wiring for Bouchenator."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from bouchenator.core.config import Settings, get_settings, missing_optional_settings
from bouchenator.core.exceptions import NotFoundError, ValidationError
from bouchenator.generation.cascade import GenerationCascade
from bouchenator.generation.providers import default_providers
from bouchenator.services.analyzer import Analyzer, JobRunner
from bouchenator.services.ideas_service import IdeasService
from bouchenator.services.job_store import JobStore

logger = structlog.get_logger("api")


class CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalyzeRequest(CamelRequest):
    input: Optional[str] = None
    disambiguation_choice: Optional[str] = None
    wikidata_id: Optional[str] = None


class StepsRequest(CamelRequest):
    idea_id: Optional[str] = None


class CustomIdeaRequest(CamelRequest):
    job_id: Optional[str] = None
    description: Optional[str] = None


class RegenerateIdeaRequest(CamelRequest):
    idea_id: Optional[str] = None
    description: Optional[str] = None


def build_app(
    settings: Optional[Settings] = None,
    store: Optional[JobStore] = None,
    client: Optional[httpx.AsyncClient] = None,
    cascade: Optional[GenerationCascade] = None,
) -> FastAPI:
    """Create a configured FastAPI instance; services are built when the app starts."""
    settings = settings or get_settings()
    store = store or JobStore(settings.resolved_data_dir())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = client is None
        http = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": settings.fetch.user_agent},
        )
        gen = cascade or GenerationCascade(default_providers(http, settings.generation))
        analyzer = Analyzer(store, http, settings=settings, cascade=gen)
        app.state.runner = JobRunner(analyzer)
        app.state.ideas = IdeasService(store, gen, product_hunt=analyzer.product_hunt,
                                       config=settings.generation)
        missing = missing_optional_settings()
        logger.info("service_started", data_dir=str(store.data_dir), missing_optional=missing)
        try:
            yield
        finally:
            await app.state.runner.shutdown()
            if owns_client:
                await http.aclose()
            logger.info("service_stopped")

    app = FastAPI(title="Bouchenator", version="0.1.0", lifespan=lifespan)

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        message = exc.details.get("user_message") or f"{exc.kind} not found"
        return JSONResponse(status_code=404, content={"error": message, "code": exc.code})

    @app.exception_handler(ValidationError)
    async def invalid(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.get("/health")
    def health() -> dict:
        return {
            "status": "ok",
            "dataDir": str(store.data_dir) if store.data_dir else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/api/analyze")
    async def analyze(request: AnalyzeRequest) -> dict:
        text = (request.input or "").strip()
        if not text:
            raise ValidationError("Input is required")
        result = await app.state.runner.submit(text, request.disambiguation_choice, request.wikidata_id)
        return result.to_wire()

    @app.get("/api/jobs/{job_id}")
    def get_job(job_id: str) -> dict:
        job = store.get_job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id, details={"user_message": "Job not found"})
        return job.snapshot()

    @app.delete("/api/jobs/{job_id}")
    async def cancel_job(job_id: str) -> dict:
        if store.get_job(job_id) is None:
            raise NotFoundError("Job", job_id, details={"user_message": "Job not found"})
        cancelled = await app.state.runner.cancel(job_id)
        return {"ok": True, "cancelled": cancelled}

    @app.get("/api/idea/{idea_id}")
    def get_idea(idea_id: str) -> dict:
        return app.state.ideas.get_idea_detail(idea_id)

    @app.post("/api/steps/generate")
    async def generate_steps(request: StepsRequest) -> dict:
        return await app.state.ideas.generate_steps(request.idea_id)

    @app.post("/api/ideas/custom")
    async def create_custom_idea(request: CustomIdeaRequest) -> dict:
        idea = await app.state.ideas.create_custom_idea(request.job_id, request.description)
        return {"ideaId": idea.id}

    @app.post("/api/ideas/custom/regenerate")
    async def regenerate_custom_idea(request: RegenerateIdeaRequest) -> dict:
        await app.state.ideas.regenerate_custom_idea(request.idea_id, request.description)
        return {"ok": True}

    @app.get("/api/inspiration/producthunt")
    async def producthunt_trending() -> dict:
        return {"posts": await app.state.ideas.trending_inspiration()}

    return app
