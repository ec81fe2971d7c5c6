"""
Data models and type definitions for Bouchenator.

Provides type-safe data structures with validation for all application data.
Models serialise with camelCase aliases so API payloads keep their wire shape.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class EffortLevel(str, Enum):
    """Ordered build-effort buckets, shortest first."""

    MIN_15 = "15min"
    HOUR_1 = "1hr"
    HOUR_4 = "4hr"
    HOUR_8 = "8hr"
    DAYS_1_3 = "1-3days"


EFFORT_ORDER: List[str] = [e.value for e in EffortLevel]

EFFORT_LABELS: Dict[str, str] = {
    "15min": "15 minutes",
    "1hr": "1 hour",
    "4hr": "4 hours",
    "8hr": "8 hours",
    "1-3days": "1-3 days",
}


def effort_order(effort: str) -> int:
    """Position of an effort level in the canonical ordering (unknown sorts first)."""
    try:
        return EFFORT_ORDER.index(effort)
    except ValueError:
        return 0


class StepStatus(str, Enum):
    """Status of a pipeline step."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


TERMINAL_STEP_STATUSES = {StepStatus.DONE.value, StepStatus.SKIPPED.value, StepStatus.FAILED.value}


class JobStatus(str, Enum):
    """Overall job status."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class ThemeSource(str, Enum):
    """Provenance of a theme's colors."""

    SITE_CSS = "site-css"
    FAVICON = "favicon"
    DEFAULT = "default"


class FetchStatus(str, Enum):
    """Outcome of one page fetch attempt."""

    OK = "ok"
    BLOCKED = "blocked"
    TIMEOUT = "timeout"
    ERROR = "error"
    NOT_FOUND = "not_found"
    EMPTY = "empty"


class IdeaSource(str, Enum):
    GENERATED = "generated"
    CUSTOM = "custom"


# Base Models


class WireModel(BaseModel):
    """Base class for all models exchanged over the API or persisted to disk."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_assignment=True,
        validate_default=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Serialise with camelCase keys, dropping unset optionals."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# Pipeline models


class AnalysisStep(WireModel):
    """A named pipeline stage."""

    id: str
    label: str
    status: StepStatus = StepStatus.PENDING
    note: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STEP_STATUSES


class Theme(WireModel):
    """Brand visual attributes for one subject."""

    primary: str
    accent: str
    bg: str
    text: str
    font_family: Optional[str] = None
    source: ThemeSource = ThemeSource.DEFAULT
    note: Optional[str] = None
    favicon_url: Optional[str] = None
    logo_url: Optional[str] = None
    company_name: Optional[str] = None
    radius_px: int = 12


class PHInspiration(WireModel):
    """A product returned by the product-discovery index."""

    name: str
    tagline: str = ""
    topics: List[str] = Field(default_factory=list)
    url: Optional[str] = None


class WikidataProfile(WireModel):
    """Knowledge-service profile of a resolved entity."""

    id: str
    label: str
    description: str = ""
    website: Optional[str] = None
    industry_hints: List[str] = Field(default_factory=list)


class CompanyContext(WireModel):
    """Descriptive attributes of the resolved subject, built up step by step."""

    name: str
    url: Optional[str] = None
    description: Optional[str] = None
    headings: List[str] = Field(default_factory=list)
    nav_labels: List[str] = Field(default_factory=list)
    press_headlines: List[str] = Field(default_factory=list)
    news_items: List[str] = Field(default_factory=list)
    product_hunt_inspiration: List[PHInspiration] = Field(default_factory=list)
    wikidata_id: Optional[str] = None
    industry_hints: List[str] = Field(default_factory=list)


# Evidence


class NewsItem(WireModel):
    title: str
    source: str = ""
    url: str = ""
    date: Optional[str] = None


class EvidenceNews(WireModel):
    provider: str = "GDELT"
    count: int = 0
    items: List[NewsItem] = Field(default_factory=list)


class NewsFetchAttempt(WireModel):
    source: str
    count: int = 0
    note: Optional[str] = None


class PageFetchAttempt(WireModel):
    """Diagnostic record for one attempted URL."""

    url: str
    method: str = "fetch"
    status: FetchStatus
    http_status: Optional[int] = None
    headings_count: int = 0
    text_length: int = 0
    note: Optional[str] = None


class EvidencePHItem(WireModel):
    name: str
    tagline: Optional[str] = None
    url: Optional[str] = None


class InspirationProduct(WireModel):
    name: str
    tagline: str = ""
    url: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    inferred_features: List[str] = Field(default_factory=list)


class InspirationPack(WireModel):
    mode_used: str = "keyword"
    keywords: List[str] = Field(default_factory=list)
    products: List[InspirationProduct] = Field(default_factory=list)
    common_patterns: List[str] = Field(default_factory=list)


class CacheFlags(WireModel):
    theme: bool = False
    news: bool = False
    product_hunt: bool = False


class WikidataEvidence(WireModel):
    used: bool = False
    candidates_count: Optional[int] = None
    selected_id: Optional[str] = None


class Evidence(WireModel):
    """Observability record attached to every job."""

    cache: CacheFlags = Field(default_factory=CacheFlags)
    timings_ms: Dict[str, int] = Field(default_factory=dict)
    key_pages: List[str] = Field(default_factory=list)
    press_links: List[str] = Field(default_factory=list)
    news: EvidenceNews = Field(default_factory=EvidenceNews)
    news_fetch_attempts: List[NewsFetchAttempt] = Field(default_factory=list)
    page_fetch_attempts: List[PageFetchAttempt] = Field(default_factory=list)
    resolved_base_url: Optional[str] = None
    product_hunt: List[EvidencePHItem] = Field(default_factory=list)
    provider_used: Optional[str] = None
    used_gemini: bool = False
    generation_error: Optional[str] = None
    wikidata: WikidataEvidence = Field(default_factory=WikidataEvidence)
    inspiration_pack: Optional[InspirationPack] = None


# Context bundle


class BundleCompany(WireModel):
    name: str
    url: Optional[str] = None
    description: Optional[str] = None
    wikidata_id: Optional[str] = None
    industry_hints: List[str] = Field(default_factory=list)


class BundlePage(WireModel):
    url: str
    headings: List[str] = Field(default_factory=list)


class BundlePages(WireModel):
    items: List[BundlePage] = Field(default_factory=list)
    nav_labels: List[str] = Field(default_factory=list)
    thin_content: bool = True


class BundleBrand(WireModel):
    found: bool = False
    source: Optional[ThemeSource] = None
    primary: Optional[str] = None
    accent: Optional[str] = None
    font_family: Optional[str] = None
    favicon_url: Optional[str] = None


class BundlePressItem(WireModel):
    url: str


class BundlePress(WireModel):
    items: List[BundlePressItem] = Field(default_factory=list)
    headlines: List[str] = Field(default_factory=list)


class BundleNews(WireModel):
    items: List[NewsItem] = Field(default_factory=list)


class BundleProduct(WireModel):
    name: str
    tagline: str = ""
    url: Optional[str] = None


class BundleProductHunt(WireModel):
    items: List[BundleProduct] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    mode_used: Optional[str] = None
    common_patterns: List[str] = Field(default_factory=list)


class ContextBundle(WireModel):
    """Canonical, generation-ready merge of context, theme and evidence."""

    model_config = ConfigDict(frozen=True)

    company: BundleCompany
    pages: BundlePages = Field(default_factory=BundlePages)
    brand: BundleBrand = Field(default_factory=BundleBrand)
    press: BundlePress = Field(default_factory=BundlePress)
    gdelt: BundleNews = Field(default_factory=BundleNews)
    product_hunt: BundleProductHunt = Field(default_factory=BundleProductHunt)


# Ideas and build plans


class IdeaOutline(WireModel):
    pages: List[str] = Field(default_factory=list)
    components: List[str] = Field(default_factory=list)
    data: List[str] = Field(default_factory=list)
    nice_to_have: List[str] = Field(default_factory=list)

    @field_validator("pages", "components", "data", "nice_to_have", mode="before")
    @classmethod
    def coerce_list(cls, v):
        """Accept a single string or null from LLM output."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(item) for item in v]


class Idea(WireModel):
    """One generated or user-described prototype concept."""

    id: str
    job_id: str
    title: str
    summary: str = ""
    effort: EffortLevel = EffortLevel.HOUR_1
    outline: IdeaOutline = Field(default_factory=IdeaOutline)
    theme: Optional[Theme] = None
    inspired_angle: Optional[str] = None
    source: IdeaSource = IdeaSource.GENERATED
    original_prompt: Optional[str] = None


class BuildStep(WireModel):
    title: str
    role: str
    instruction: str = ""
    cursor_prompt: str
    done_looks_like: str = ""


class BuildPlan(WireModel):
    """Step-by-step instructions for building one idea."""

    idea_id: str
    bmad_explanation: str = ""
    terminal_setup: str
    folder_name: str
    steps: List[BuildStep] = Field(default_factory=list)
    rationale_for_prompt_count: Optional[str] = None


class DisambiguationOption(WireModel):
    label: str
    description: str = ""
    domain: Optional[str] = None
    wikidata_id: Optional[str] = None


# Job


class Job(WireModel):
    """One end-to-end analysis run; mutated only by the orchestrator."""

    id: str
    input: str
    disambiguation_choice: Optional[str] = None
    wikidata_profile: Optional[WikidataProfile] = None
    steps: List[AnalysisStep] = Field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    ideas: List[Idea] = Field(default_factory=list)
    company_context: CompanyContext
    theme: Optional[Theme] = None
    evidence: Optional[Evidence] = None
    context_bundle: Optional[ContextBundle] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.DONE.value, JobStatus.FAILED.value)

    def get_step(self, step_id: str) -> Optional[AnalysisStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def snapshot(self) -> Dict[str, Any]:
        """Read-only status view served to pollers; ideas appear once the job is done."""
        data = self.model_copy(deep=True)
        return {
            "id": data.id,
            "status": data.status,
            "steps": [s.to_wire() for s in data.steps],
            "ideas": [i.to_wire() for i in data.ideas] if data.status == JobStatus.DONE.value else [],
            "companyContext": data.company_context.to_wire(),
            "theme": data.theme.to_wire() if data.theme else None,
            "evidence": data.evidence.to_wire() if data.evidence else None,
            "contextBundle": data.context_bundle.to_wire() if data.context_bundle else None,
        }
