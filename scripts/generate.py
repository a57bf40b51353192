#!/usr/bin/env python3
"""
JOBSMITH Generation CLI

Runs generation workflows against the SQLite store at JOBSMITH_DB_PATH and
prints the workflow result as JSON.

Usage:
    # Create tables
    python scripts/generate.py init-db

    # Job-based artifacts
    python scripts/generate.py resume USER_ID 42 --tone concise
    python scripts/generate.py cover-letter USER_ID 42 --length brief
    python scripts/generate.py skills USER_ID 42
    python scripts/generate.py experience USER_ID 42

    # Research
    python scripts/generate.py company USER_ID "Acme Robotics"
    python scripts/generate.py salary USER_ID "Data Engineer" --location "Austin, TX" --years 4

    # Maintenance
    python scripts/generate.py purge-cache
    python scripts/generate.py artifacts USER_ID --kind resume
"""

import json
import os
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from typing_extensions import Annotated

from jobsmith.contexts.generation import GenerationOrchestrator, WorkflowResult
from jobsmith.contexts.generation.logger import setup_generation_logger
from jobsmith.contexts.persistence import PersistenceError, PersistenceGateway, SQLiteDataAccess
from jobsmith.contexts.research import ContentRetriever, ResearchCache
from jobsmith.contexts.research.cache import RESEARCH_CACHE_TTL_DAYS
from jobsmith.utils.background import BackgroundTaskQueue
from jobsmith.utils.llm import get_provider

load_dotenv()
PENDING_WRITE_WAIT_S = float(os.getenv("PENDING_WRITE_WAIT_S", "5"))

app = typer.Typer(
    help="Generate resumes, cover letters, and research artifacts",
    add_completion=False,
)

DbPathOption = Annotated[
    Optional[Path],
    typer.Option("--db", help="SQLite database (defaults to JOBSMITH_DB_PATH)", dir_okay=False),
]
ModelOption = Annotated[Optional[str], typer.Option("--model", "-m", help="Requested model")]
ToneOption = Annotated[Optional[str], typer.Option("--tone", "-t", help="Writing tone")]
FocusOption = Annotated[Optional[str], typer.Option("--focus", "-f", help="Focus area")]
PromptOption = Annotated[
    Optional[str], typer.Option("--prompt", "-p", help="Extra instructions appended to the prompt")
]


def _gateway(db_path: Optional[Path]) -> PersistenceGateway:
    gateway = PersistenceGateway(db_path)
    if not gateway.can_persist():
        typer.echo("Error: set JOBSMITH_DB_PATH or pass --db", err=True)
        raise typer.Exit(code=1)
    return gateway


def _orchestrator(db_path: Optional[Path]) -> GenerationOrchestrator:
    gateway = _gateway(db_path)
    generator = get_provider()
    setup_generation_logger(provider=generator.name)

    background = BackgroundTaskQueue()
    cache = ResearchCache(generator, gateway, background, retriever=ContentRetriever())
    return GenerationOrchestrator(
        generator=generator,
        data_access=SQLiteDataAccess(gateway.db_path),
        gateway=gateway,
        research_cache=cache,
        background=background,
    )


def _options(**options) -> dict:
    return {key: value for key, value in options.items() if value is not None}


def _report(orchestrator: GenerationOrchestrator, result: WorkflowResult) -> None:
    """Print the result, let background writes finish, and exit non-zero on error."""
    typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False, default=str))

    if not orchestrator.background.wait_for_all(timeout=PENDING_WRITE_WAIT_S):
        typer.echo("Warning: background writes still running at exit", err=True)
    orchestrator.background.shutdown()

    if not result.ok:
        raise typer.Exit(code=1)


@app.command("init-db")
def init_db(db: DbPathOption = None):
    """Create the database tables (safe to re-run)."""
    gateway = _gateway(db)
    try:
        gateway.initialize()
    except PersistenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✓ Database ready: {gateway.db_path}")


@app.command()
def resume(
    user_id: str,
    job_id: str,
    tone: ToneOption = None,
    focus: FocusOption = None,
    model: ModelOption = None,
    prompt: PromptOption = None,
    variant: Annotated[Optional[str], typer.Option("--variant", help="Variant label")] = None,
    db: DbPathOption = None,
):
    """Tailor a resume to a saved job."""
    orchestrator = _orchestrator(db)
    options = _options(tone=tone, focus=focus, model=model, prompt=prompt, variant=variant)
    _report(orchestrator, orchestrator.generate_resume(user_id, job_id, options))


@app.command("cover-letter")
def cover_letter(
    user_id: str,
    job_id: str,
    tone: ToneOption = None,
    focus: FocusOption = None,
    length: Annotated[
        Optional[str], typer.Option("--length", help="brief | standard | detailed")
    ] = None,
    culture: Annotated[
        Optional[str], typer.Option("--culture", help="startup | corporate | academic | nonprofit")
    ] = None,
    model: ModelOption = None,
    prompt: PromptOption = None,
    db: DbPathOption = None,
):
    """Write a cover letter for a saved job."""
    orchestrator = _orchestrator(db)
    options = _options(
        tone=tone, focus=focus, length=length, culture=culture, model=model, prompt=prompt
    )
    _report(orchestrator, orchestrator.generate_cover_letter(user_id, job_id, options))


@app.command()
def skills(
    user_id: str,
    job_id: str,
    model: ModelOption = None,
    prompt: PromptOption = None,
    db: DbPathOption = None,
):
    """Analyze skill fit for a saved job."""
    orchestrator = _orchestrator(db)
    _report(orchestrator, orchestrator.optimize_skills(user_id, job_id, _options(model=model, prompt=prompt)))


@app.command()
def experience(
    user_id: str,
    job_id: str,
    tone: ToneOption = None,
    model: ModelOption = None,
    prompt: PromptOption = None,
    db: DbPathOption = None,
):
    """Rewrite experience bullets for a saved job."""
    orchestrator = _orchestrator(db)
    options = _options(tone=tone, model=model, prompt=prompt)
    _report(orchestrator, orchestrator.tailor_experience(user_id, job_id, options))


@app.command()
def company(
    user_id: str,
    company_name: str,
    job_id: Annotated[Optional[str], typer.Option("--job", "-j", help="Related job id")] = None,
    model: ModelOption = None,
    db: DbPathOption = None,
):
    """Research a company (served from cache when fresh)."""
    orchestrator = _orchestrator(db)
    _report(
        orchestrator,
        orchestrator.research_company(user_id, company_name, job_id, _options(model=model)),
    )


@app.command()
def salary(
    user_id: str,
    title: str,
    location: Annotated[Optional[str], typer.Option("--location", "-l")] = None,
    years: Annotated[Optional[float], typer.Option("--years", "-y", help="Years of experience")] = None,
    model: ModelOption = None,
    db: DbPathOption = None,
):
    """Research the salary range for a role."""
    orchestrator = _orchestrator(db)
    _report(
        orchestrator,
        orchestrator.research_salary(user_id, title, location, years, _options(model=model)),
    )


@app.command("purge-cache")
def purge_cache(
    ttl_days: Annotated[
        Optional[float],
        typer.Option("--ttl-days", help="Age limit (defaults to RESEARCH_CACHE_TTL_DAYS)"),
    ] = None,
    db: DbPathOption = None,
):
    """Delete company research entries older than the TTL."""
    gateway = _gateway(db)
    ttl = timedelta(days=RESEARCH_CACHE_TTL_DAYS if ttl_days is None else ttl_days)
    try:
        deleted = gateway.purge_expired_research(ttl)
    except PersistenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✓ Purged {deleted} expired research entries")


@app.command()
def artifacts(
    user_id: str,
    kind: Annotated[Optional[str], typer.Option("--kind", "-k")] = None,
    limit: Annotated[int, typer.Option("--limit", "-n")] = 10,
    db: DbPathOption = None,
):
    """List a user's stored artifacts, newest first."""
    gateway = _gateway(db)
    try:
        rows = gateway.list_artifacts(user_id, kind=kind, limit=limit)
    except PersistenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    if not rows:
        typer.echo("No artifacts found")
        return
    for row in rows:
        typer.echo(f"{row['id']:>5}  {row['created_at']}  {row['kind']:<20} {row['title'] or ''}")


if __name__ == "__main__":
    app()
