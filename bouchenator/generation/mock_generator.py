"""
Deterministic generator used when no provider produces usable output.

Ideas are drawn from a fixed template pool, shuffled per effort level with a
seed derived from the company name, so the same company always gets the same
15 ideas. Build plans follow the PM+UX / FE / FE+QA shape with a step count
set by effort.
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar

from bouchenator.core.models import (
    EFFORT_ORDER,
    BuildPlan,
    BuildStep,
    Idea,
    IdeaOutline,
)
from bouchenator.utils.text import slugify, string_hash

T = TypeVar("T")

IDEAS_PER_EFFORT = 3

# (title, summary, pages, components, data, nice_to_have); "{co}" is the company name
Template = Tuple[str, str, List[str], List[str], List[str], List[str]]

POOL: Dict[str, List[Template]] = {
    "15min": [
        ("{co} Uptime Board",
         "One screen that shows whether each {co} service is healthy, with colored dots and a last-checked time.",
         ["Status page"], ["ServiceRow", "HealthDot", "CheckedAt"], ["Hardcoded service list"],
         ["Refresh button"]),
        ("{co} Release Notes",
         "A tidy reverse-chronological feed of what {co} shipped recently, grouped by version.",
         ["Release notes page"], ["ReleaseEntry", "VersionTag"], ["Inline release array"],
         ["Filter by tag"]),
        ("{co} Idea Upvotes",
         "A small board where visitors suggest improvements to {co} and upvote the ones they want.",
         ["Board page"], ["SuggestionCard", "UpvoteButton", "SuggestForm"], ["In-memory suggestions"],
         ["Sort by votes"]),
        ("{co} Quick Answers",
         "A search box that matches a visitor's question to {co}'s most common answers as they type.",
         ["Answers page"], ["QuestionInput", "AnswerCard", "NoMatchHint"], ["FAQ array"],
         ["Fuzzy matching"]),
        ("{co} People Grid",
         "A responsive grid introducing the {co} team with roles and a short line about each person.",
         ["Team page"], ["PersonCard", "RoleFilter"], ["Team array"], ["Department filter"]),
        ("{co} Plan Picker",
         "Side-by-side {co} plans with feature ticks and one recommended tier highlighted.",
         ["Plans page"], ["PlanColumn", "FeatureTick", "ChooseButton"], ["Plan tiers array"],
         ["Monthly/yearly switch"]),
        ("{co} Love Wall",
         "A masonry wall of short customer quotes and logos that shows people enjoying {co}.",
         ["Quotes page"], ["QuoteCard", "LogoRow"], ["Quotes array"], ["Staggered fade-in"]),
        ("{co} Early Access",
         "A single-screen signup for {co}'s next launch with a countdown and a friendly confirmation.",
         ["Signup page"], ["EmailCapture", "Countdown", "HeroBlock"], ["Launch date constant"],
         ["Confetti on submit"]),
    ],
    "1hr": [
        ("{co} Connector Catalog",
         "A searchable catalog of tools that work with {co}, filterable by category.",
         ["Catalog page", "Connector detail"], ["SearchField", "CategoryFilter", "ConnectorCard"],
         ["Connectors array"], ["Popularity badges"]),
        ("{co} Setup Guide",
         "A guided multi-step setup that walks a new {co} user through their first configuration.",
         ["Setup wizard"], ["StepRail", "SettingsForm", "ProgressMeter", "DoneScreen"],
         ["Wizard steps config"], ["Skip step", "Inline tips"]),
        ("{co} Help Center",
         "A help center for {co} with categories, article pages and highlighted search hits.",
         ["Home", "Category", "Article"], ["SearchField", "ArticleTile", "Breadcrumbs", "OnThisPage"],
         ["Articles array"], ["Was this helpful vote"]),
        ("{co} Events Calendar",
         "A month view of {co} webinars and meetups with a simple RSVP toggle.",
         ["Calendar", "Event detail"], ["MonthGrid", "EventTile", "RsvpToggle"], ["Events array"],
         ["Add to calendar link"]),
        ("{co} Customer Stories",
         "A gallery of {co} customer stories with headline metrics and industry tags.",
         ["Stories gallery", "Story detail"], ["StoryCard", "MetricStrip", "PullQuote", "IndustryFilter"],
         ["Stories array"], ["Print view"]),
        ("{co} Compare View",
         "A comparison table placing {co} next to alternatives across features and price.",
         ["Compare page"], ["CompareTable", "FeatureSwitch", "ScorePill", "InfoTooltip"],
         ["Alternatives array"], ["Weighted scoring"]),
        ("{co} Resource Library",
         "A library of {co} guides, templates and videos with type filters.",
         ["Library", "Resource detail"], ["ResourceTile", "TypeFilter", "DownloadLink"],
         ["Resources array"], ["Bookmarks"]),
        ("{co} Careers Page",
         "Open roles at {co} with team and location filters and an apply link per role.",
         ["Roles list", "Role detail"], ["RoleCard", "TeamFilter", "LocationChip", "ApplyLink"],
         ["Roles array"], ["Remote-only toggle"]),
    ],
    "4hr": [
        ("{co} Savings Estimator",
         "An interactive estimator showing prospects the time and money they could save with {co}.",
         ["Estimator", "Results"], ["RangeSlider", "SavingsChart", "BeforeAfterTable", "ShareLink"],
         ["Pricing assumptions", "Benchmark figures"], ["Export summary"]),
        ("{co} API Explorer",
         "A docs-style explorer for {co}'s API with sample requests and a fake response viewer.",
         ["Overview", "Endpoint reference", "Try it"], ["NavSidebar", "CodeSample", "CopyButton",
                                                      "ResponsePanel"],
         ["Endpoint catalog"], ["Dark mode", "cURL snippet"]),
        ("{co} Product Tour",
         "A click-through tour of {co}'s core workflow with annotated steps and a closing call to action.",
         ["Tour start", "Tour step", "Wrap-up"], ["TourCard", "Callout", "StepDots", "FinalCta"],
         ["Tour steps array"], ["Branching paths"]),
        ("{co} Insights Dashboard",
         "A KPI dashboard for {co} users with trend charts and a date range picker.",
         ["Dashboard", "Metric detail"], ["KpiTile", "TrendChart", "BarBreakdown", "RangePicker"],
         ["Sample time series"], ["Live refresh"]),
        ("{co} Request Tracker",
         "A lightweight tracker where {co} customers log requests and watch them move through stages.",
         ["Board", "Request detail"], ["StageColumn", "RequestCard", "NewRequestForm", "StatusBadge"],
         ["Requests array"], ["Drag between stages"]),
        ("{co} Community Q&A",
         "A question-and-answer space for the {co} community with voting and accepted answers.",
         ["Questions", "Question detail"], ["QuestionRow", "AnswerBlock", "VoteControl", "AskForm"],
         ["Questions array"], ["Tag filter"]),
        ("{co} Config Builder",
         "A form-driven builder that assembles a {co} configuration and previews the result live.",
         ["Builder"], ["OptionGroup", "LivePreview", "SummaryPanel", "ResetButton"],
         ["Options schema"], ["Shareable link"]),
        ("{co} Feedback Inbox",
         "An inbox that groups {co} customer feedback by theme with sentiment tags.",
         ["Inbox", "Theme detail"], ["FeedbackRow", "ThemeChip", "SentimentTag", "SearchField"],
         ["Feedback array"], ["Bulk tagging"]),
    ],
    "8hr": [
        ("{co} Partner Portal",
         "A portal where {co} partners see their deals, resources and a simple performance summary.",
         ["Overview", "Deals", "Resources"], ["DealTable", "PerformanceCard", "ResourceList",
                                               "PartnerHeader"],
         ["Deals array", "Resources array"], ["CSV export"]),
        ("{co} Learning Path",
         "A course-style learning path for {co} with lessons, quizzes and progress tracking.",
         ["Path overview", "Lesson", "Quiz"], ["LessonCard", "QuizQuestion", "ProgressRing",
                                               "CertificateBanner"],
         ["Lessons array", "Quiz bank"], ["Completion badge"]),
        ("{co} Ops Console",
         "An operations console for {co} showing incidents, owners and a running timeline.",
         ["Incidents", "Incident detail"], ["IncidentRow", "OwnerAvatar", "TimelineEvent",
                                            "SeverityBadge"],
         ["Incidents array"], ["Keyboard shortcuts"]),
        ("{co} Marketplace",
         "A small marketplace of {co} add-ons with listings, a cart and a mock checkout.",
         ["Listings", "Listing detail", "Cart"], ["ListingCard", "CartDrawer", "QuantityStepper",
                                                  "CheckoutSummary"],
         ["Add-ons array"], ["Promo codes"]),
        ("{co} Booking Flow",
         "An appointment booking flow for {co} with slot selection and confirmation.",
         ["Pick service", "Pick time", "Confirm"], ["ServiceOption", "SlotGrid", "BookingSummary",
                                                    "ConfirmDialog"],
         ["Availability array"], ["Reschedule link"]),
        ("{co} Content Studio",
         "A drafting studio for {co} announcements with a live preview and a review checklist.",
         ["Drafts", "Editor"], ["DraftList", "EditorPane", "PreviewPane", "ChecklistPanel"],
         ["Drafts array"], ["Version history"]),
        ("{co} Account Health",
         "An account health view scoring {co} customers by usage and flagging ones at risk.",
         ["Accounts", "Account detail"], ["HealthScore", "UsageSparkline", "RiskFlag", "AccountTable"],
         ["Accounts array"], ["Saved filters"]),
        ("{co} Roadmap Explorer",
         "A public roadmap for {co} with now/next/later lanes and item detail drawers.",
         ["Roadmap", "Item detail"], ["Lane", "RoadmapCard", "DetailDrawer", "StatusFilter"],
         ["Roadmap items array"], ["Subscribe to updates"]),
    ],
    "1-3days": [
        ("{co} Customer Workspace",
         "A logged-in style workspace where {co} customers manage projects, members and settings.",
         ["Home", "Projects", "Members", "Settings"], ["ProjectTable", "MemberInvite", "SettingsForm",
                                                       "ActivityFeed", "AppShell"],
         ["Projects", "Members", "Activity"], ["Role permissions", "Audit trail"]),
        ("{co} Insights Suite",
         "A multi-page analytics suite for {co} with dashboards, saved reports and drilldowns.",
         ["Overview", "Reports", "Report builder", "Drilldown"], ["ChartCard", "ReportBuilder",
                                                                  "FilterBar", "DataGrid"],
         ["Metrics series", "Saved reports"], ["Scheduled digests"]),
        ("{co} Support Desk",
         "A support desk for {co} with a ticket queue, conversation view and canned replies.",
         ["Queue", "Ticket", "Macros"], ["TicketRow", "ConversationThread", "ReplyBox", "MacroPicker",
                                         "SlaTimer"],
         ["Tickets", "Messages", "Macros"], ["Assignment rules"]),
        ("{co} Commerce Storefront",
         "A storefront for {co} with catalog, search, product pages, cart and order confirmation.",
         ["Catalog", "Product", "Cart", "Order confirmed"], ["ProductGrid", "SearchFacets",
                                                             "ProductGallery", "CartSummary"],
         ["Products", "Orders"], ["Wishlist", "Reviews"]),
        ("{co} Planning Board",
         "A planning tool for {co} teams with boards, timelines and workload views.",
         ["Boards", "Timeline", "Workload"], ["KanbanBoard", "GanttRow", "WorkloadBar", "TaskModal"],
         ["Tasks", "People"], ["Dependencies"]),
        ("{co} Community Hub",
         "A community hub for {co} with forums, member profiles, events and a news feed.",
         ["Feed", "Forums", "Profile", "Events"], ["PostCard", "ThreadView", "ProfileHeader",
                                                   "EventList"],
         ["Posts", "Members", "Events"], ["Reactions", "Mentions"]),
        ("{co} Onboarding Platform",
         "An onboarding platform for {co} admins to design checklists and track new-user progress.",
         ["Checklists", "Checklist editor", "Progress"], ["ChecklistEditor", "ProgressTable",
                                                          "StepCard", "ReminderPanel"],
         ["Checklists", "Users", "Progress events"], ["Email reminders"]),
        ("{co} Admin Center",
         "An admin center for {co} with user management, roles, audit log and configuration.",
         ["Dashboard", "Users", "Roles", "Audit log", "Settings"], ["DataTable", "UserForm",
                                                                    "RoleMatrix", "AuditRow",
                                                                    "ConfigSwitch"],
         ["Users", "Roles", "Audit events", "Settings"], ["Bulk actions", "API keys"]),
    ],
}

# Prompt counts for the fallback build plan, by effort
PLAN_STEP_COUNTS = {"15min": 2, "1hr": 4, "4hr": 6, "8hr": 7, "1-3days": 10}


def seeded_shuffle(items: Sequence[T], seed: int) -> List[T]:
    """Fisher-Yates shuffle driven by the Park-Miller step ``s = s * 16807 % (2**31 - 1)``."""
    shuffled = list(items)
    s = seed
    for i in range(len(shuffled) - 1, 0, -1):
        s = (s * 16807) % 2147483647
        j = s % (i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def generate_mock_ideas(job_id: str, company_name: Optional[str]) -> List[Idea]:
    """15 ideas, 3 per effort level in order; ids ``<job_id>-<n>``."""
    co = company_name or "Acme"
    seed = string_hash(co.lower())
    ideas: List[Idea] = []
    for order, effort in enumerate(EFFORT_ORDER, start=1):
        shuffled = seeded_shuffle(POOL[effort], seed + order)
        for i in range(IDEAS_PER_EFFORT):
            title, summary, pages, components, data, nice = shuffled[i % len(shuffled)]
            ideas.append(
                Idea(
                    id=f"{job_id}-{len(ideas)}",
                    job_id=job_id,
                    title=title.replace("{co}", co),
                    summary=summary.replace("{co}", co),
                    effort=effort,
                    outline=IdeaOutline(pages=pages, components=components, data=data,
                                        nice_to_have=nice),
                )
            )
    return ideas


def build_folder_name(company_name: str, idea_title: str) -> str:
    return f"v01-{slugify(company_name)[:20]}-{slugify(idea_title)[:25]}"


def build_terminal_setup(folder_name: str) -> str:
    return "\n".join([
        "cd ~/Desktop",
        "mkdir -p cursor-prototypes && cd cursor-prototypes",
        f"mkdir {folder_name} && cd {folder_name}",
        'npx create-next-app@latest . --typescript --tailwind --eslint --app --src-dir '
        '--import-alias "@/*" --use-npm',
        "npm run dev",
    ])


def chunk(items: Sequence[T], n: int) -> List[List[T]]:
    """Split into ``n`` consecutive chunks of ``ceil(len/n)``; trailing chunks may be empty."""
    if n <= 0:
        return [list(items)]
    size = max(1, math.ceil(len(items) / n))
    return [list(items[i * size:(i + 1) * size]) for i in range(n)]


def _skeleton_step(idea: Idea, co: str) -> BuildStep:
    o = idea.outline
    prompt = [
        "BMAD ROLE: PM+UX — Lay out the branded page skeleton with CSS variables and TODO "
        "markers. No real features yet.",
        "",
        f'Prototype: "{idea.title}"',
        idea.summary,
        "",
        'Replace src/app/page.tsx with a "use client" page (TypeScript, Tailwind).',
        "",
        "Page structure:",
        f'1. Header: "{co}" plus a "Prototype" badge',
        f'2. Hero: "{idea.title}" as the h1 and a one-line pitch',
        "3. Main section with a placeholder card for each of:",
        *[f"   • {p}" for p in o.pages],
        "   Mark each with a {/* TODO: implement */} comment",
        "4. A primary call-to-action button and a secondary ghost button",
        "5. A short footer",
        "",
        "Styling:",
        "- Wrap the page in a <div> that sets --ab-primary, --ab-accent, --ab-bg, --ab-text, --ab-font",
        "- Buttons: background var(--ab-primary), radius 12px",
        "- Cards: radius 12px, hover ring var(--ab-accent)",
        "",
        f"Stub components: {', '.join(o.components[:5])}",
        f"Define TypeScript interfaces for: {', '.join(o.data)}",
        "",
        "Skeleton and TODOs only. Do not implement logic.",
    ]
    return BuildStep(
        title="Set up the branded page skeleton",
        role="PM+UX",
        instruction=f'Create the branded page skeleton for "{idea.title}" with header, hero, '
                    f"placeholder sections and TODO markers.",
        cursor_prompt="\n".join(prompt),
        done_looks_like="\n".join([
            "• localhost:3000 shows the header, hero and placeholder cards",
            "• The wrapper sets the CSS variables and buttons use var(--ab-primary)",
            "• Every section has a TODO marker in the code",
        ]),
    )


def _feature_step(idea: Idea, components: List[str], index: int, total: int) -> BuildStep:
    is_last = index == total - 1
    prompt = [
        "BMAD ROLE: FE — Wire real interaction and inline data. Keep it simple and demo-safe.",
        "",
        "In src/app/page.tsx, replace the TODO markers for these components with working code:",
        *[f"  - {c}: typed props and real inline data" for c in components],
        "",
        "Requirements:",
        "- Inline data so lists and cards show real content",
        "- Every button causes a visible state change",
        "- Reuse the CSS variables (--ab-primary, --ab-accent)",
        "- Responsive, mobile-first Tailwind",
    ]
    if is_last and idea.outline.nice_to_have:
        prompt.append(f"- If quick: {', '.join(idea.outline.nice_to_have)}")
    prompt += ["", "No external APIs and no new UI libraries."]
    return BuildStep(
        title="Build the core features" if total == 1 else f"Build features — part {index + 1} of {total}",
        role="FE",
        instruction=f"Implement {', '.join(components)} with real data and interaction.",
        cursor_prompt="\n".join(prompt),
        done_looks_like="\n".join([
            f"• {components[0] if components else 'The component'} renders with real data",
            "• Clicking buttons gives visible feedback",
            "• The console stays free of errors",
        ]),
    )


def _polish_step(idea: Idea) -> BuildStep:
    prompt = [
        "BMAD ROLE: FE+QA — Fix errors, tighten the polish and add one microinteraction. "
        "No new libraries.",
        "",
        "Go through src/app/page.tsx and any files it imports:",
        "",
        "1. Fix TypeScript and ESLint errors",
        "2. Fix runtime and console errors",
        '3. Give empty lists an empty state ("Nothing here yet")',
        "4. Even out padding and remove awkward gaps",
        "5. Add one microinteraction, e.g. hover:scale-[1.02] on cards or a fade-in",
        "",
        "Do not add npm packages. Polish what exists.",
    ]
    return BuildStep(
        title="Fix errors and add polish",
        role="FE+QA",
        instruction=f'Fix errors, add empty states, tighten spacing and add one microinteraction '
                    f'to "{idea.title}".',
        cursor_prompt="\n".join(prompt),
        done_looks_like="\n".join([
            "• npx tsc --noEmit passes",
            "• No runtime console errors",
            "• One visible animation on hover or entrance",
        ]),
    )


def generate_mock_build_plan(idea: Idea, company_name: Optional[str] = None) -> BuildPlan:
    """PM+UX skeleton, FE steps over component chunks, then FE+QA polish."""
    co = company_name or idea.title.split(" ")[0]
    folder = build_folder_name(co, idea.title)
    count = PLAN_STEP_COUNTS.get(idea.effort, 4)
    fe_count = max(1, count - 2)

    components = idea.outline.components
    steps = [_skeleton_step(idea, co)]
    for i, chunk_components in enumerate(chunk(components, fe_count)):
        steps.append(_feature_step(idea, chunk_components or list(components[:2]), i, fe_count))
    steps.append(_polish_step(idea))

    return BuildPlan(
        idea_id=idea.id,
        terminal_setup=build_terminal_setup(folder),
        folder_name=folder,
        steps=steps,
    )
