"""CLI entry point for the lead intelligence pipeline."""

from __future__ import annotations

import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from lead_intel.config import Config, load_config
from lead_intel.crm.tasks import ActionItemNotFound, convert_action_item
from lead_intel.db.database import Database
from lead_intel.db.migrations import run_migrations
from lead_intel.db.repository import ResearchRepository
from lead_intel.models import ProviderConfig
from lead_intel.pipeline import JobNotFound, JobStateError, ResearchPipeline
from lead_intel.progress.broadcaster import ProgressBroadcaster

console = Console()

_STATUS_STYLE = {
    "COMPLETED": "bold green",
    "FAILED": "bold red",
}


def _open_pipeline(config: Config) -> ResearchPipeline:
    db = Database(config.db_path)
    db.connect()
    run_migrations(db)
    broadcaster = ProgressBroadcaster(
        queue_size=config.broadcast_queue_size,
        backlog_size=config.broadcast_backlog,
        retained_jobs=config.broadcast_retained_jobs,
    )
    return ResearchPipeline(config, ResearchRepository(db), broadcaster)


async def _run_with_progress(pipeline: ResearchPipeline, job_id: int, coro) -> None:
    """Run a pipeline coroutine while printing its progress lines."""
    sub = pipeline.broadcaster.subscribe(job_id)

    async def printer():
        async for evt in sub:
            style = _STATUS_STYLE.get(evt.status or "", "dim")
            console.print(f"[{style}]{evt.timestamp[11:19]}[/{style}] {evt.message}")

    printer_task = asyncio.create_task(printer())
    try:
        await coro
    finally:
        sub.close()
        await printer_task


def _print_snapshot(pipeline: ResearchPipeline, job_id: int) -> None:
    snap = pipeline.get_snapshot(job_id)
    job = snap.job
    style = _STATUS_STYLE.get(job.status, "bold")
    console.print(f"\n[{style}]Job {job.id}: {job.status}[/{style}]")
    if job.cached_from_job_id:
        console.print(f"  [dim]Served from cache (job {job.cached_from_job_id})[/dim]")
    if job.error_message:
        hint = "retryable" if job.retryable else "not retryable"
        console.print(f"  [red]{job.error_message}[/red] [dim]({hint})[/dim]")
    console.print(f"  Sources: {snap.source_count}")

    if snap.insights:
        console.print("\n[bold]Insights[/bold]")
        for ins in snap.insights:
            console.print(f"  - {ins.title} [dim]({ins.category}, {ins.confidence:.0%})[/dim]")
    if snap.action_items:
        console.print("\n[bold]Action items[/bold]")
        for item in snap.action_items:
            console.print(f"  [{item.id}] {item.priority:<6} effort {item.effort}  {item.description}")
    if snap.leads:
        console.print(f"\n[bold]Leads (group {snap.lead_group_id})[/bold]")
        for lead in snap.leads:
            promoted = " [green]promoted[/green]" if lead.promoted_to_crm_id else ""
            console.print(
                f"  {lead.tier:<8} {lead.score if lead.score is not None else '-':>3}  "
                f"{lead.company} ({lead.name}){promoted}"
            )
    console.print()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Research the web, synthesize insights and route qualified leads to a sales pipeline."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
    )
    ctx.obj = load_config()


@cli.command()
@click.argument("prompt")
@click.option("--user", "user_id", default="local", show_default=True, help="Owning user id")
@click.option(
    "--type", "job_type",
    type=click.Choice(["RESEARCH", "LEAD_GENERATION"]),
    default="RESEARCH", show_default=True,
)
@click.option("--provider", type=click.Choice(["anthropic", "openai", "groq"]), default=None,
              help="LLM provider (default: LLM_PROVIDER)")
@click.option("--model", default=None, help="Override the provider's default model")
@click.option("--strategy", type=click.Choice(["jina", "browser", "http"]), default=None,
              help="Extraction strategy (default: EXTRACTION_STRATEGY)")
@click.option("--url", "urls", multiple=True, help="Scrape this URL instead of searching (repeatable)")
@click.pass_obj
def research(
    config: Config,
    prompt: str,
    user_id: str,
    job_type: str,
    provider: str | None,
    model: str | None,
    strategy: str | None,
    urls: tuple[str, ...],
) -> None:
    """Run one research job and stream its progress."""
    pipeline = _open_pipeline(config)
    try:
        job = pipeline.create_job(user_id, prompt, job_type)
        provider_config = ProviderConfig(
            provider=provider or config.llm_provider, model=model,
        )
        console.print(f"[bold green]Research job {job.id}[/bold green] [dim]{prompt[:80]}[/dim]\n")
        asyncio.run(_run_with_progress(
            pipeline, job.id,
            pipeline.run_job(
                job.id, provider_config=provider_config,
                urls=list(urls) or None, strategy=strategy,
            ),
        ))
        _print_snapshot(pipeline, job.id)
        if pipeline.repo.get_job(job.id).status == "FAILED":
            sys.exit(1)
    finally:
        pipeline.repo.db.close()


@cli.command()
@click.argument("job_id", type=int)
@click.option("--provider", type=click.Choice(["anthropic", "openai", "groq"]), required=True)
@click.option("--model", default=None)
@click.pass_obj
def retry(config: Config, job_id: int, provider: str, model: str | None) -> None:
    """Re-run the analysis stage of a finished job with another provider."""
    pipeline = _open_pipeline(config)
    try:
        asyncio.run(_run_with_progress(
            pipeline, job_id, pipeline.retry_analysis(job_id, provider, model),
        ))
        _print_snapshot(pipeline, job_id)
    except (JobNotFound, JobStateError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    finally:
        pipeline.repo.db.close()


@cli.command()
@click.argument("group_id", type=int)
@click.option("--user", "user_id", default="local", show_default=True)
@click.option("--rescore", is_flag=True, help="Rescore leads that already have a score")
@click.pass_obj
def score(config: Config, group_id: int, user_id: str, rescore: bool) -> None:
    """Score the leads of a lead group against the user's target profile."""
    pipeline = _open_pipeline(config)
    try:
        if pipeline.repo.get_lead_group(group_id) is None:
            console.print(f"[red]Lead group {group_id} not found[/red]")
            sys.exit(1)
        counts = pipeline.scoring.score_batch(group_id, user_id, rescore=rescore)
        console.print(
            f"[red]{counts.hot} hot[/red] / [yellow]{counts.warm} warm[/yellow] / "
            f"[blue]{counts.cold} cold[/blue] / [dim]{counts.discard} discard[/dim]"
        )
    finally:
        pipeline.repo.db.close()


@cli.command()
@click.argument("group_id", type=int)
@click.option("--user", "user_id", default="local", show_default=True)
@click.pass_obj
def promote(config: Config, group_id: int, user_id: str) -> None:
    """Promote a lead group's HOT and WARM leads into the sales pipeline."""
    pipeline = _open_pipeline(config)
    try:
        if pipeline.repo.get_lead_group(group_id) is None:
            console.print(f"[red]Lead group {group_id} not found[/red]")
            sys.exit(1)
        summary = pipeline.promotion.promote_batch(group_id, user_id)
        console.print(
            f"Promoted {summary.promoted} ({summary.hot} hot, {summary.warm} warm), "
            f"skipped {summary.skipped}"
        )
    finally:
        pipeline.repo.db.close()


@cli.command("convert")
@click.argument("action_item_id", type=int)
@click.pass_obj
def convert(config: Config, action_item_id: int) -> None:
    """Turn an action item into a task."""
    pipeline = _open_pipeline(config)
    try:
        result = convert_action_item(pipeline.repo, action_item_id)
        verb = "Created" if result.created else "Already converted to"
        console.print(f"{verb} task {result.task_id}")
    except ActionItemNotFound as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    finally:
        pipeline.repo.db.close()


@cli.command("cache-stats")
@click.pass_obj
def cache_stats(config: Config) -> None:
    """Show what the research cache currently holds."""
    pipeline = _open_pipeline(config)
    try:
        for label, info in pipeline.cache.stats().items():
            console.print(
                f"[bold]{label}[/bold]: {info['count']} "
                f"[dim](oldest {info['oldest'] or '-'}, newest {info['newest'] or '-'})[/dim]"
            )
    finally:
        pipeline.repo.db.close()


@cli.command()
@click.option("--host", default=None, help="Bind address (default: WEB_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: WEB_PORT)")
@click.pass_obj
def serve(config: Config, host: str | None, port: int | None) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "lead_intel.web.app:app",
        host=host or config.web_host,
        port=port or config.web_port,
    )


main = cli

if __name__ == "__main__":
    cli()
