"""
Tests for the generation cascade, idea generation and custom ideas.

Providers are replaced by scripted fakes; no credentials are configured so the
real providers always report themselves unavailable.
"""

import asyncio
import json
from typing import List, Optional

import pytest
from structlog.testing import capture_logs

from bouchenator.core.config import GenerationConfig
from bouchenator.core.exceptions import SchemaValidationError, ValidationError
from bouchenator.core.models import EFFORT_ORDER, CompanyContext, Evidence
from bouchenator.generation import gemini_config
from bouchenator.generation.cascade import MOCK_PROVIDER, GenerationCascade
from bouchenator.generation.custom_idea import (
    fallback_idea_fields,
    generate_custom_idea,
    new_custom_idea_id,
    parse_custom_idea,
    validate_description,
)
from bouchenator.generation.ideas import COUNT_HINT, SPLIT_HINT, generate_ideas, parse_ideas
from bouchenator.generation.providers import (
    GeminiRESTProvider,
    GeminiSDKProvider,
    GenerationRequest,
    OpenAIProvider,
    Provider,
)
from bouchenator.intelligence.context_bundle import build_context_bundle


class ScriptedProvider(Provider):
    """Answers each attempt with the next scripted response."""

    def __init__(self, name: str, responses: List[Optional[str]]):
        super().__init__()
        self.name = name
        self.responses = list(responses)
        self.requests: List[GenerationRequest] = []

    def available(self) -> bool:
        return True

    async def _call(self, request: GenerationRequest) -> Optional[str]:
        self.requests.append(request)
        return self.responses.pop(0) if self.responses else None


def _idea(title: str, effort: str) -> dict:
    return {
        "title": title,
        "summary": f"{title} summary",
        "effort": effort,
        "outline": {"pages": ["Home"], "components": ["Card"], "data": ["items"], "niceToHave": ["Share"]},
        "inspiredAngle": "Because dashboards demo well",
    }


def _ideas_json(efforts: List[str]) -> str:
    return json.dumps([_idea(f"Idea {i}", effort) for i, effort in enumerate(efforts)])


BALANCED_DESCENDING = [e for e in reversed(EFFORT_ORDER) for _ in range(3)]


def _bundle(name: str = "Acme"):
    return build_context_bundle(CompanyContext(name=name), Evidence())


def _generate(cascade: GenerationCascade, job_id: str = "job1"):
    return asyncio.run(generate_ideas(job_id, _bundle(), cascade))


class TestParseIdeas:
    def test_sorts_by_effort_and_reassigns_ids(self):
        ideas = parse_ideas("job1", _ideas_json(BALANCED_DESCENDING), final=False)

        assert [i.effort for i in ideas] == [e for e in EFFORT_ORDER for _ in range(3)]
        assert [i.id for i in ideas] == [f"job1-{n}" for n in range(15)]
        assert ideas[0].outline.nice_to_have == ["Share"]

    def test_accepts_wrapped_object_and_fenced_output(self):
        text = "```json\n" + json.dumps({"ideas": json.loads(_ideas_json(BALANCED_DESCENDING))}) + "\n```"

        assert len(parse_ideas("job1", text, final=False)) == 15

    def test_too_few_ideas_carries_count_hint(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            parse_ideas("job1", _ideas_json(["1hr"]), final=True)

        assert exc_info.value.details["hint"] == COUNT_HINT

    def test_uneven_split_is_rejected_until_final_attempt(self):
        text = _ideas_json(["1hr"] * 15)

        with pytest.raises(SchemaValidationError) as exc_info:
            parse_ideas("job1", text, final=False)
        assert exc_info.value.details["hint"] == SPLIT_HINT

        assert len(parse_ideas("job1", text, final=True)) == 15

    def test_unknown_effort_becomes_one_hour(self):
        efforts = BALANCED_DESCENDING[:-1] + ["2 weeks"]

        ideas = parse_ideas("job1", _ideas_json(efforts), final=True)

        assert sum(1 for i in ideas if i.effort == "1hr") == 4


class TestCascade:
    def test_all_providers_unavailable_yields_fifteen_ordered_mock_ideas(self):
        cascade = GenerationCascade([GeminiSDKProvider(), OpenAIProvider(), GeminiRESTProvider()])

        result = _generate(cascade)

        assert result.provider == MOCK_PROVIDER
        assert len(result.ideas) == 15
        assert [i.effort for i in result.ideas] == [e for e in EFFORT_ORDER for _ in range(3)]
        assert result.used_gemini is False

    def test_short_response_is_retried_exactly_once_with_hint(self):
        provider = ScriptedProvider("fake", [_ideas_json(["1hr"]), _ideas_json(["1hr"])])

        result = _generate(GenerationCascade([provider]))

        assert len(provider.requests) == 2
        assert provider.requests[0].hint is None
        assert provider.requests[1].hint == COUNT_HINT
        assert result.provider == MOCK_PROVIDER
        assert "fake" in result.error

    def test_retry_can_succeed(self):
        provider = ScriptedProvider("fake", [_ideas_json(["1hr"]), _ideas_json(BALANCED_DESCENDING)])

        result = _generate(GenerationCascade([provider]))

        assert result.provider == "fake"
        assert len(result.ideas) == 15

    def test_empty_response_moves_to_next_provider_without_retry(self):
        first = ScriptedProvider("first", [None])
        second = ScriptedProvider("second", [_ideas_json(BALANCED_DESCENDING)])

        result = _generate(GenerationCascade([first, second]))

        assert len(first.requests) == 1
        assert result.provider == "second"
        assert result.error.startswith("first:")

    def test_mock_ideas_are_deterministic_per_company(self):
        a = _generate(GenerationCascade([]), job_id="a")
        b = _generate(GenerationCascade([]), job_id="b")

        assert [i.title for i in a.ideas] == [i.title for i in b.ideas]
        assert all("Acme" in i.title or "Acme" in i.summary for i in a.ideas)


class TestCustomIdeas:
    def test_description_length_bounds(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_description("too short")
        assert exc_info.value.message.startswith("Description must be at least 40 characters")

        with pytest.raises(ValidationError):
            validate_description("x" * 601)

        assert validate_description("  " + "y" * 40 + "  ") == "y" * 40

    def test_custom_ids_are_unique(self):
        first, second = new_custom_idea_id(), new_custom_idea_id()

        assert first.startswith("custom-")
        assert first != second

    def test_fallback_effort_grows_with_description_length(self):
        fields = fallback_idea_fields("A kiosk app for warehouse staff " + "x" * 90, "Acme")

        assert fields.effort == "4hr"
        assert fields.title == "A kiosk app for warehouse"

    def test_fallback_title_for_very_short_descriptions(self):
        assert fallback_idea_fields("x" * 45, "Acme").title == "Custom prototype for Acme"

    def test_parse_requires_title_and_summary(self):
        with pytest.raises(SchemaValidationError):
            parse_custom_idea('{"title": "Only a title"}', final=True)

        fields = parse_custom_idea('{"title": "Dock", "summary": "Docks", "effort": "nope"}', final=True)
        assert fields.effort == "4hr"

    def test_generate_custom_idea_uses_provider_output(self):
        provider = ScriptedProvider("fake", [json.dumps(_idea("Dock Planner", "8hr"))])
        description = "A planner that lets warehouse leads schedule dock doors for inbound trucks."

        result = asyncio.run(generate_custom_idea(description, CompanyContext(name="Acme"),
                                                  GenerationCascade([provider])))

        assert result.provider == "fake"
        assert result.fields.title == "Dock Planner"
        assert result.fields.effort == "8hr"
        assert "USER'S IDEA DESCRIPTION" in provider.requests[0].context

    def test_generate_custom_idea_falls_back_without_providers(self):
        description = "A planner that lets warehouse leads schedule dock doors for inbound trucks."

        result = asyncio.run(generate_custom_idea(description, CompanyContext(name="Acme"),
                                                  GenerationCascade([])))

        assert result.provider == MOCK_PROVIDER
        assert result.fields.title == "A planner that lets warehouse"


class TestGeminiCallLog:
    def test_log_line_uses_the_config_passed_in(self, monkeypatch):
        config = GenerationConfig(GEMINI_MODEL="gemini-house", GEMINI_IDEAS_MODEL="gemini-ideas",
                                  GEMINI_API_VERSION="v1")

        def settings_lookup():
            raise AssertionError("global settings consulted")

        monkeypatch.setattr(gemini_config, "get_settings", settings_lookup)

        with capture_logs() as logs:
            gemini_config.log_gemini_call("ideas", config, 120, used="mock", fallback=True)
            gemini_config.log_gemini_call("steps", config, 80, used="cache", fallback=False)

        assert [entry["model"] for entry in logs] == ["gemini-ideas", "gemini-house"]
        assert logs[0]["apiVersion"] == "v1"
        assert logs[0]["event"] == "gemini_call"
        assert logs[1]["used"] == "cache"
