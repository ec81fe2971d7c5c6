"""
Main application entry point for Bouchenator.

Provides CLI interface for running analyses, build plans and the HTTP service.
"""

import asyncio
import json
import sys
from typing import Optional

import click
import httpx
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from bouchenator.core.config import (
    get_settings,
    missing_optional_settings,
    validate_generation_config,
)
from bouchenator.core.exceptions import BouchenatorError
from bouchenator.core.logging import set_correlation_id, setup_logging
from bouchenator.core.models import Job
from bouchenator.generation.cascade import GenerationCascade
from bouchenator.generation.providers import default_providers
from bouchenator.services.analyzer import Analyzer, JobRunner
from bouchenator.services.ideas_service import IdeasService
from bouchenator.services.job_store import JobStore

console = Console()


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--correlation-id", help="Set correlation ID for request tracing")
@click.pass_context
def main(ctx, debug: bool, correlation_id: Optional[str]):
    """Company-tailored prototype ideas and build plans.

    Resolves a company name or URL, gathers evidence from its website, news and
    Product Hunt, and generates ranked prototype ideas with Cursor build plans.
    """
    ctx.ensure_object(dict)
    load_dotenv()
    setup_logging(debug=debug, rich_output=True)

    if correlation_id:
        set_correlation_id(correlation_id)

    ctx.obj["debug"] = debug
    ctx.obj["correlation_id"] = correlation_id


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=True,
        headers={"User-Agent": get_settings().fetch.user_agent},
    )


async def _run_analysis(text: str, choice: Optional[str], wikidata_id: Optional[str]):
    settings = get_settings()
    store = JobStore(settings.resolved_data_dir())
    async with _http_client() as client:
        runner = JobRunner(Analyzer(store, client, settings=settings))
        result = await runner.submit(text, choice, wikidata_id)
        if result.job is None:
            return result, None
        await runner.wait(result.job.id)
        return result, store.require_job(result.job.id)


async def _run_plan(idea_id: str) -> dict:
    settings = get_settings()
    store = JobStore(settings.resolved_data_dir())
    async with _http_client() as client:
        cascade = GenerationCascade(default_providers(client, settings.generation))
        return await IdeasService(store, cascade).generate_steps(idea_id)


@main.command()
@click.argument("text")
@click.option("--choice", help="Disambiguation choice label (skips entity resolution)")
@click.option("--wikidata-id", help="Wikidata id of the chosen entity")
@click.option("--json", "as_json", is_flag=True, help="Print the job snapshot as JSON")
@click.pass_context
def analyze(ctx, text: str, choice: Optional[str], wikidata_id: Optional[str], as_json: bool):
    """Run the full analysis pipeline for a company name or URL."""
    try:
        result, job = asyncio.run(_run_analysis(text, choice, wikidata_id))
    except BouchenatorError as e:
        console.print(f"[red]Analysis Error:[/red] {e.message}")
        sys.exit(1)

    if job is None:
        console.print(f"[yellow]'{text}' is ambiguous.[/yellow] Re-run with --choice and --wikidata-id:")
        table = Table(title="Candidates")
        table.add_column("Label", style="cyan")
        table.add_column("Description", style="white")
        table.add_column("Wikidata", style="dim")
        for option in result.options:
            table.add_row(option.label, option.description or "", option.wikidata_id or "")
        console.print(table)
        sys.exit(2)

    if as_json:
        click.echo(json.dumps(job.snapshot(), indent=2))
    else:
        _display_job(job)
    sys.exit(0 if job.status == "done" else 1)


@main.command()
@click.argument("idea_id")
@click.option("--json", "as_json", is_flag=True, help="Print the build plan as JSON")
def plan(idea_id: str, as_json: bool):
    """Generate (or load the cached) build plan for an idea."""
    try:
        result = asyncio.run(_run_plan(idea_id))
    except BouchenatorError as e:
        console.print(f"[red]Build Plan Error:[/red] {e.details.get('user_message') or e.message}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    console.print(f"[blue]{result['folderName']}[/blue] via {result['used']} ({result['durationMs']}ms)")
    console.print(f"[dim]{result['terminalSetup']}[/dim]\n")
    for i, step in enumerate(result["steps"], start=1):
        console.print(f"[cyan]{i}. {step['title']}[/cyan] [dim]{step['role']}[/dim]")
        console.print(step["cursorPrompt"])
        console.print()


@main.command()
@click.option("--host", help="Bind address (default: SERVICE_HOST)")
@click.option("--port", type=int, help="Port (default: SERVICE_PORT)")
def serve(host: Optional[str], port: Optional[int]):
    """Run the HTTP API."""
    import uvicorn

    from bouchenator.api import build_app

    settings = get_settings()
    uvicorn.run(
        build_app(settings),
        host=host or settings.service_host,
        port=port or settings.service_port,
        reload=False,
    )


@main.command()
def config():
    """Display current configuration."""
    settings = get_settings()
    console.print("[blue]Bouchenator Configuration[/blue]")

    table = Table()
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Environment", settings.environment)
    table.add_row("Debug Mode", str(settings.debug))
    table.add_row("Data Dir", str(settings.resolved_data_dir()))
    table.add_row("Min Step Duration", f"{settings.demo_min_step_ms}ms")
    table.add_row("Gemini Model", settings.generation.gemini_model)
    table.add_row("OpenAI Model", settings.generation.openai_model)
    table.add_row("Playwright", "✓" if settings.fetch.enable_playwright else "✗")
    for provider, status in validate_generation_config().items():
        table.add_row(f"Provider: {provider}", status)
    console.print(table)

    missing = missing_optional_settings()
    if missing:
        console.print("[yellow]Optional settings not set:[/yellow]")
        for item in missing:
            console.print(f"  • {item}")


def _display_job(job: Job) -> None:
    if job.status == "done":
        console.print(f"[green]✅ Analysis of {job.company_context.name} completed[/green]")
    else:
        console.print(f"[red]❌ Analysis of {job.input} failed[/red]")

    steps = Table(title="Steps")
    steps.add_column("Step", style="cyan")
    steps.add_column("Status")
    steps.add_column("Note", style="dim")
    for step in job.steps:
        steps.add_row(step.label, step.status, step.note or "")
    console.print(steps)

    if not job.ideas:
        return
    ideas = Table(title=f"Ideas ({len(job.ideas)})")
    ideas.add_column("Id", style="dim")
    ideas.add_column("Effort", style="magenta")
    ideas.add_column("Title", style="white")
    for idea in job.ideas:
        ideas.add_row(idea.id, idea.effort, idea.title)
    console.print(ideas)


if __name__ == "__main__":
    main()
