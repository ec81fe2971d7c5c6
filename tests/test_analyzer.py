"""
Pipeline tests with every external service unreachable.

The pipeline must still reach ``done`` with 15 fallback ideas; each evidence
step absorbs its own failure.
"""

import asyncio

import httpx
import pytest

from conftest import mock_client, unreachable
from bouchenator.core.models import Job, JobStatus, StepStatus
from bouchenator.generation.cascade import GenerationCascade
from bouchenator.intelligence.producthunt import ProductHuntClient
from bouchenator.intelligence.theme_sampler import ThemeSampler
from bouchenator.services.analyzer import (
    STEP_DEFINITIONS,
    Analyzer,
    JobRunner,
    build_initial_steps,
    is_asset_url,
    set_step,
    strip_parenthetical,
)


def _analyzer(store, client, theme_cache) -> Analyzer:
    return Analyzer(
        store,
        client,
        cascade=GenerationCascade([]),
        theme_sampler=ThemeSampler(client, cache=theme_cache),
        product_hunt=ProductHuntClient(client, token=""),
    )


def _run_to_completion(store, theme_cache, text, handler=unreachable):
    async def run():
        async with mock_client(handler) as client:
            runner = JobRunner(_analyzer(store, client, theme_cache))
            result = await runner.submit(text)
            if result.job is not None:
                await runner.wait(result.job.id)
            return result

    result = asyncio.run(run())
    return result, (store.get_job(result.job.id) if result.job else None)


class TestHelpers:
    def test_initial_steps_are_pending_and_ordered(self):
        steps = build_initial_steps()

        assert [s.id for s in steps] == [step_id for step_id, _ in STEP_DEFINITIONS]
        assert len(steps) == 8
        assert all(s.status == StepStatus.PENDING.value for s in steps)

    def test_terminal_step_never_goes_back_to_running(self):
        job = Job(id="j", input="Acme", steps=build_initial_steps(), company_context={"name": "Acme"})
        set_step(job, "resolve", StepStatus.DONE, "ok")

        set_step(job, "resolve", StepStatus.RUNNING)

        assert job.get_step("resolve").status == StepStatus.DONE.value
        assert job.get_step("resolve").note == "ok"

    def test_strip_parenthetical(self):
        assert strip_parenthetical("Apple (Technology company)") == "Apple"
        assert strip_parenthetical("Acme") == "Acme"

    def test_asset_urls(self):
        assert is_asset_url("https://acme.com/press/logo.png")
        assert is_asset_url("https://acme.com/app.js?v=3")
        assert not is_asset_url("https://acme.com/press")


class TestPipeline:
    def test_offline_run_completes_with_fallback_ideas(self, store, theme_cache):
        result, job = _run_to_completion(store, theme_cache, "https://acme.com")

        assert result.needs_disambiguation is False
        assert job.status == JobStatus.DONE.value
        assert not any(s.status == StepStatus.RUNNING.value for s in job.steps)
        assert len(job.ideas) == 15
        assert job.evidence.provider_used == "mock"
        assert job.company_context.name == "Acme"
        assert job.company_context.url == "https://acme.com/"

        producthunt = job.get_step("producthunt")
        assert producthunt.status == StepStatus.SKIPPED.value
        assert producthunt.note == "No Product Hunt token configured (set PRODUCT_HUNT_TOKEN)"
        assert job.get_step("generate").note == "15 ideas via Mock fallback"
        assert set(job.evidence.timings_ms) == {step_id for step_id, _ in STEP_DEFINITIONS}

    def test_ideas_are_stored_with_job_theme(self, store, theme_cache):
        _, job = _run_to_completion(store, theme_cache, "https://acme.com")

        idea = store.get_idea(job.ideas[0].id)
        assert idea is not None
        assert idea.theme == job.theme
        assert job.context_bundle.company.name == "Acme"

    def test_snapshot_survives_memory_loss(self, store, theme_cache):
        _, job = _run_to_completion(store, theme_cache, "https://acme.com")

        store.clear_memory()
        snapshot = store.get_job(job.id).snapshot()

        assert snapshot["status"] == "done"
        assert len(snapshot["ideas"]) == 15

    def test_ambiguous_name_returns_options_without_a_job(self, store, theme_cache):
        result, job = _run_to_completion(store, theme_cache, "apple")

        assert result.needs_disambiguation is True
        assert job is None
        assert result.to_wire()["options"][0]["label"] == "Apple Inc."

    def test_disambiguation_choice_skips_resolution(self, store, theme_cache):
        async def run():
            async with mock_client(unreachable) as client:
                runner = JobRunner(_analyzer(store, client, theme_cache))
                result = await runner.submit("apple", disambiguation_choice="Apple Records (record label)")
                await runner.wait(result.job.id)
                return result

        result = asyncio.run(run())
        job = store.get_job(result.job.id)

        assert job.status == JobStatus.DONE.value
        assert job.company_context.name == "Apple Records"


class TestCancellation:
    def test_cancel_marks_job_failed(self, store, theme_cache):
        async def run():
            entered = asyncio.Event()

            async def stall(request: httpx.Request) -> httpx.Response:
                entered.set()
                await asyncio.Event().wait()

            async with mock_client(stall) as client:
                runner = JobRunner(_analyzer(store, client, theme_cache))
                result = await runner.submit("https://acme.com")
                await asyncio.wait_for(entered.wait(), timeout=5)
                cancelled = await runner.cancel(result.job.id)
                again = await runner.cancel(result.job.id)
                return result.job.id, cancelled, again, runner.is_running(result.job.id)

        job_id, cancelled, again, running = asyncio.run(run())
        job = store.get_job(job_id)

        assert cancelled is True
        assert again is False
        assert running is False
        assert job.status == JobStatus.FAILED.value
        assert job.get_step("pages").status == StepStatus.FAILED.value
        assert job.get_step("pages").note == "Cancelled"
        assert job.snapshot()["ideas"] == []

    def test_cancel_unknown_job(self, store, theme_cache, offline_client):
        async def run():
            async with offline_client as client:
                return await JobRunner(_analyzer(store, client, theme_cache)).cancel("nope")

        assert asyncio.run(run()) is False


@pytest.mark.parametrize("text", ["https://acme.com", "acme.com"])
def test_url_inputs_never_ask_for_disambiguation(store, theme_cache, text):
    result, job = _run_to_completion(store, theme_cache, text)

    assert result.needs_disambiguation is False
    assert job.status == JobStatus.DONE.value
