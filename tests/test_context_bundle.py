"""Tests for the context bundle, keyword derivation and the inspiration pack."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from bouchenator.core.models import (
    CompanyContext,
    Evidence,
    EvidenceNews,
    NewsItem,
    PHInspiration,
)
from bouchenator.intelligence.context_bundle import (
    build_context_bundle,
    context_bundle_to_prompt,
    summarize_context_bundle_for_logs,
)
from bouchenator.intelligence.inspiration import build_inspiration_pack, infer_features
from bouchenator.intelligence.keywords import GENERIC_KEYWORDS, derive_keywords
from bouchenator.intelligence.theme import theme_from_name


@pytest.fixture
def rich_context():
    ctx = CompanyContext(
        name="Acme",
        url="https://acme.test/",
        description="Warehouse robots for small teams",
        headings=["Robots for everyone", "Fleet analytics", "Warehouse automation"],
        nav_labels=["Products", "Pricing"],
        press_headlines=["Acme raises Series B for warehouse robots"],
        wikidata_id="Q42",
        industry_hints=["robotics"],
    )
    products = [
        PHInspiration(name="Fleetboard", tagline="Real-time analytics dashboard for fleets", topics=["Robots"]),
        PHInspiration(name="Pickly", tagline="AI-powered automation for pickers", topics=["AI"]),
    ]
    evidence = Evidence(
        key_pages=["https://acme.test/", "https://acme.test/pricing"],
        press_links=["https://acme.test/press"],
        news=EvidenceNews(count=1, items=[
            NewsItem(title="Acme opens Berlin office", source="example.com", date="2026-09-01"),
        ]),
        inspiration_pack=build_inspiration_pack(products, ["warehouse", "robots"], "keyword"),
    )
    return ctx, evidence


class TestContextBundle:
    def test_empty_sections_are_omitted_from_prompt(self):
        bundle = build_context_bundle(CompanyContext(name="Acme"), Evidence())

        prompt = context_bundle_to_prompt(bundle)

        assert prompt == "Company: Acme"
        assert bundle.pages.thin_content is True
        assert bundle.brand.found is False

    def test_full_bundle_renders_every_section(self, rich_context):
        ctx, evidence = rich_context
        bundle = build_context_bundle(ctx, evidence, theme_from_name("Acme"))

        prompt = context_bundle_to_prompt(bundle)

        assert "Website: https://acme.test/" in prompt
        assert "Wikidata ID: Q42" in prompt
        assert "Key headings from site:\n  Robots for everyone" in prompt
        assert "Press headlines:" in prompt
        assert "Press/newsroom URLs (1): https://acme.test/press" in prompt
        assert "• Acme opens Berlin office (example.com, 2026-09-01)" in prompt
        assert "--- INSPIRATION PACK (2 products, mode: keyword, keywords: warehouse, robots) ---" in prompt
        assert "Common patterns observed:" in prompt

    def test_headings_are_attributed_to_first_page(self, rich_context):
        ctx, evidence = rich_context
        bundle = build_context_bundle(ctx, evidence)

        assert bundle.pages.items[0].headings == ctx.headings
        assert bundle.pages.items[1].headings == []
        assert bundle.pages.thin_content is False

    def test_name_derived_theme_is_not_a_found_brand(self, rich_context):
        ctx, evidence = rich_context

        assert build_context_bundle(ctx, evidence, theme_from_name("Acme")).brand.found is False

    def test_bundle_is_frozen(self):
        bundle = build_context_bundle(CompanyContext(name="Acme"), Evidence())

        with pytest.raises(PydanticValidationError):
            bundle.company = bundle.company

    def test_log_summary(self, rich_context):
        ctx, evidence = rich_context
        summary = summarize_context_bundle_for_logs(build_context_bundle(ctx, evidence))

        assert summary.line == "pages=2 press=1 gdelt=1 ph=2 brand=false thinContent=false"
        assert "headings(3)" in summary.preview

    def test_log_summary_of_empty_bundle(self):
        summary = summarize_context_bundle_for_logs(build_context_bundle(CompanyContext(name="Acme"), Evidence()))

        assert summary.preview == "  (no external context gathered)"


class TestKeywords:
    def test_words_mentioned_by_more_sources_rank_first(self, rich_context):
        ctx, _ = rich_context

        keywords = derive_keywords(ctx)

        assert keywords[0] in ("warehouse", "robots")
        assert "acme" not in keywords
        assert "the" not in keywords

    def test_name_only_context_uses_name_words_then_generic_ones(self):
        keywords = derive_keywords(CompanyContext(name="Globex Robotics"))

        assert keywords == ["globex", "robotics", "app", "tool", "platform", "dashboard", "productivity"]

    def test_short_name_still_yields_keywords(self):
        assert derive_keywords(CompanyContext(name="AI")) == list(GENERIC_KEYWORDS)
        assert derive_keywords(CompanyContext(name="The Co", description="the and")) == list(GENERIC_KEYWORDS)


class TestInspirationPack:
    def test_features_inferred_from_tagline_and_topics(self):
        product = PHInspiration(name="Fleetboard", tagline="Real-time analytics dashboard", topics=["Robots"])

        features = infer_features(product)

        assert features == ["Analytics dashboard", "Real-time responsiveness", "Robots focus"]

    def test_pack_always_has_at_least_three_patterns(self):
        pack = build_inspiration_pack([PHInspiration(name="Plain", tagline="")], ["x"], "trending")

        assert len(pack.common_patterns) >= 3
        assert pack.mode_used == "trending"
