"""Tests for build-plan parsing, the fallback plan and the ideas service."""

import asyncio
import json

import pytest

from bouchenator.core.exceptions import NotFoundError, SchemaValidationError, ValidationError
from bouchenator.core.models import CompanyContext, Idea, IdeaOutline, IdeaSource, Job, Theme
from bouchenator.generation.build_plan import (
    THEME_REMINDER,
    USED_CACHE,
    USED_FALLBACK,
    generate_build_plan,
    inject_brand_vibe,
    normalize_plan_response,
    parse_build_plan,
    prompt_count_range,
)
from bouchenator.generation.cascade import GenerationCascade
from bouchenator.generation.mock_generator import generate_mock_build_plan
from bouchenator.services.ideas_service import IDEA_EXPIRED_MESSAGE, IdeasService

ACME_THEME = Theme(primary="#635bff", accent="#00d4ff", bg="#ffffff", text="#0f172a",
                   company_name="Acme", source="site-css")


def _idea(effort: str = "1hr", idea_id: str = "job1-3") -> Idea:
    return Idea(
        id=idea_id,
        job_id="job1",
        title="Fleet Tracker",
        summary="Track every robot on one map.",
        effort=effort,
        outline=IdeaOutline(pages=["Map"], components=["RobotMap", "RobotList", "StatusPill"],
                            data=["Robots"], nice_to_have=["Heatmap"]),
    )


def _prompt(role: str, text: str) -> dict:
    return {"role": role, "title": f"{role} step", "goal": "Make progress",
            "promptText": text, "doneLooksLike": ["It renders", "It works"]}


def _plan_json(count: int, first_text: str = "BMAD ROLE: PM+UX — use PROTOTYPE_THEME everywhere") -> str:
    prompts = [_prompt("PM+UX", first_text)]
    prompts += [_prompt("FE", f"BMAD ROLE: FE — build feature {i}") for i in range(count - 2)]
    prompts.append(_prompt("FE+QA", "BMAD ROLE: FE+QA — fix and polish"))
    return json.dumps({"totalPrompts": count, "rationaleForPromptCount": "Four milestones.",
                       "prompts": prompts})


def _parse(text: str, effort: str = "1hr", final: bool = False):
    return parse_build_plan(_idea(effort), text, final, "v01-acme-fleet-tracker", "cd ~/Desktop")


class TestParseBuildPlan:
    def test_valid_plan(self):
        plan = _parse(_plan_json(4))

        assert [s.role for s in plan.steps] == ["PM+UX", "FE", "FE", "FE+QA"]
        assert plan.steps[0].done_looks_like == "• It renders\n• It works"
        assert plan.rationale_for_prompt_count == "Four milestones."
        assert plan.folder_name == "v01-acme-fleet-tracker"

    def test_count_outside_range_is_rejected_with_hint(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            _parse(_plan_json(7), effort="1hr", final=True)

        assert "MUST be between 3 and 5 inclusive" in exc_info.value.details["hint"]

    def test_missing_theme_is_retried_then_tolerated(self):
        text = _plan_json(4, first_text="BMAD ROLE: PM+UX — lay out the page skeleton")

        with pytest.raises(SchemaValidationError) as exc_info:
            _parse(text, final=False)
        assert exc_info.value.details["hint"] == THEME_REMINDER

        assert len(_parse(text, final=True).steps) == 4

    def test_steps_with_short_prompts_are_dropped(self):
        payload = json.loads(_plan_json(4))
        payload["prompts"][1]["promptText"] = "too short"

        plan = _parse(json.dumps(payload))

        assert len(plan.steps) == 3

    def test_legacy_prompt_keys_are_accepted(self):
        raw = {"prompt1": _prompt("PM+UX", "BMAD ROLE: PM+UX — theme first"),
               "prompt2": _prompt("FE", "BMAD ROLE: FE — features"),
               "prompt3": _prompt("FE+QA", "BMAD ROLE: FE+QA — polish")}

        draft = normalize_plan_response(raw)

        assert draft is not None
        assert draft.total_prompts == 3

    def test_ranges_by_effort(self):
        assert prompt_count_range("15min") == (2, 3)
        assert prompt_count_range("1-3days") == (8, 14)
        assert prompt_count_range("unknown") == (3, 8)


class TestFallbackPlan:
    @pytest.mark.parametrize("effort,expected", [
        ("15min", 3), ("1hr", 4), ("4hr", 6), ("8hr", 7), ("1-3days", 10),
    ])
    def test_step_count_by_effort(self, effort, expected):
        plan = generate_mock_build_plan(_idea(effort), "Acme")

        assert len(plan.steps) == expected
        assert plan.steps[0].role == "PM+UX"
        assert plan.steps[-1].role == "FE+QA"
        assert all(s.role == "FE" for s in plan.steps[1:-1])

    def test_brand_vibe_only_touches_pm_ux_steps(self):
        plan = generate_mock_build_plan(_idea(), "Acme")

        branded = inject_brand_vibe(plan, _idea(), ACME_THEME)

        first = branded.steps[0]
        assert "--- BRAND VIBE (makes it feel like Acme) ---" in first.cursor_prompt
        assert "PROTOTYPE_THEME" in first.cursor_prompt
        assert '#635bff' in first.cursor_prompt
        assert first.done_looks_like.splitlines()[0].endswith("(styled for Acme)")
        assert branded.steps[1] == plan.steps[1]

    def test_brand_name_falls_back_to_first_word_of_title(self):
        branded = inject_brand_vibe(generate_mock_build_plan(_idea(), "Acme"), _idea(), None)

        assert "makes it feel like Fleet" in branded.steps[0].cursor_prompt

    def test_generate_without_providers_returns_branded_fallback(self):
        result = asyncio.run(generate_build_plan(_idea(), CompanyContext(name="Acme Corp"), ACME_THEME,
                                                 GenerationCascade([])))

        assert result.used == USED_FALLBACK
        assert result.plan.folder_name == "v01-acme-corp-fleet-tracker"
        assert "npx create-next-app@latest" in result.plan.terminal_setup
        assert "BRAND VIBE" in result.plan.steps[0].cursor_prompt


def _seed_job(store, theme=None) -> Job:
    job = Job(id="job1", input="Acme", company_context=CompanyContext(name="Acme"), theme=theme)
    idea = _idea()
    job.ideas.append(idea)
    store.create_job(job)
    store.store_idea(idea)
    return job


DESCRIPTION = "A dock scheduler for warehouse leads that books inbound trucks into free door slots."


class TestIdeasService:
    def test_idea_detail_inherits_job_theme(self, store):
        _seed_job(store, theme=ACME_THEME)

        detail = IdeasService(store, GenerationCascade([])).get_idea_detail("job1-3")

        assert detail["title"] == "Fleet Tracker"
        assert detail["theme"]["primary"] == "#635bff"

    def test_second_request_is_served_from_cache(self, store):
        _seed_job(store)
        service = IdeasService(store, GenerationCascade([]))

        first = asyncio.run(service.generate_steps("job1-3"))
        second = asyncio.run(service.generate_steps("job1-3"))

        assert first["used"] == USED_FALLBACK
        assert second["used"] == USED_CACHE
        assert second["steps"] == first["steps"]
        assert "durationMs" in second

    def test_unknown_idea_reports_expired_session(self, store):
        service = IdeasService(store, GenerationCascade([]))

        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(service.generate_steps("missing"))

        assert exc_info.value.code == "IDEA_NOT_FOUND"
        assert exc_info.value.details["user_message"] == IDEA_EXPIRED_MESSAGE

    def test_blank_idea_id_is_a_validation_error(self, store):
        with pytest.raises(ValidationError):
            asyncio.run(IdeasService(store, GenerationCascade([])).generate_steps(""))

    def test_custom_idea_is_appended_to_job(self, store):
        _seed_job(store, theme=ACME_THEME)
        service = IdeasService(store, GenerationCascade([]))

        idea = asyncio.run(service.create_custom_idea("job1", DESCRIPTION))

        assert idea.source == IdeaSource.CUSTOM.value
        assert idea.original_prompt == DESCRIPTION
        assert idea.theme.primary == "#635bff"
        assert store.get_idea(idea.id) is not None
        assert [i.id for i in store.get_job("job1").ideas][-1] == idea.id

    def test_custom_idea_for_unknown_job(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(IdeasService(store, GenerationCascade([])).create_custom_idea("nope", DESCRIPTION))

        assert exc_info.value.details["user_message"] == "Job not found"

    def test_custom_idea_requires_fields(self, store):
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(IdeasService(store, GenerationCascade([])).create_custom_idea("job1", "  "))

        assert exc_info.value.message == "jobId and description are required"

    def test_regenerate_replaces_idea_in_place(self, store):
        _seed_job(store)
        service = IdeasService(store, GenerationCascade([]))
        idea = asyncio.run(service.create_custom_idea("job1", DESCRIPTION))

        new_description = "A returns portal where shoppers print labels and track refunds without calling support."
        updated = asyncio.run(service.regenerate_custom_idea(idea.id, new_description))

        assert updated.id == idea.id
        assert updated.original_prompt == new_description
        job_ideas = store.get_job("job1").ideas
        assert sum(1 for i in job_ideas if i.id == idea.id) == 1
        assert [i for i in job_ideas if i.id == idea.id][0].title == "A returns portal where shoppers"
