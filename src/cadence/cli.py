"""
Cadence CLI

Command-line interface for the Cadence platform.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
import orjson
import structlog

from cadence import __version__
from cadence.config import settings

logger = structlog.get_logger()


def _read_json(path: Path):
    try:
        return orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}") from e


def _write_json(data, output: Optional[Path]) -> None:
    payload = orjson.dumps(data, option=orjson.OPT_INDENT_2)
    if output:
        output.write_bytes(payload)
        click.echo(f"  Output: {output}")
    else:
        click.echo(payload.decode())


# ══════════════════════════════════════════════════════════════
# CLI Group
# ══════════════════════════════════════════════════════════════


@click.group()
@click.version_option(version=__version__, prog_name="cadence")
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Cadence - conversation transcription and speech analytics."""
    if debug:
        import logging
        logging.basicConfig(level=logging.DEBUG)
        structlog.configure(
            wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        )


# ══════════════════════════════════════════════════════════════
# Server Commands
# ══════════════════════════════════════════════════════════════


@cli.command()
@click.option("--host", default="0.0.0.0", help="Host to bind to")
@click.option("--port", default=8000, help="Port to bind to")
@click.option("--reload/--no-reload", default=False, help="Enable auto-reload")
@click.option("--workers", default=1, help="Number of worker processes")
def serve(host: str, port: int, reload: bool, workers: int) -> None:
    """Start the Cadence API and realtime WebSocket server."""
    import uvicorn

    click.echo(f"Starting Cadence API on {host}:{port}")
    click.echo(f"  Realtime: ws://{host}:{port}/ws/conversations/{{conversation_id}}")

    uvicorn.run(
        "cadence.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        workers=workers if not reload else 1,
        factory=True,
    )


# ══════════════════════════════════════════════════════════════
# Pipeline Commands
# ══════════════════════════════════════════════════════════════


@cli.command()
@click.argument("events_file", type=click.Path(exists=True, path_type=Path))
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Output JSON file")
@click.option("--merge-gap", type=float, default=None, help="Merge gap in seconds")
def assemble(events_file: Path, output: Optional[Path], merge_gap: Optional[float]) -> None:
    """Assemble transcript events into speaker turns.

    EVENTS_FILE: JSON list of transcript events, or a provider json-v2
    transcript (an object with a "results" list).
    """
    from pydantic import ValidationError

    from cadence.core.models import TranscriptEvent
    from cadence.pipeline import TurnAssembler, turns_from_batch_transcript

    data = _read_json(events_file)

    if isinstance(data, dict):
        turns = turns_from_batch_transcript(data)
    else:
        try:
            events = [TranscriptEvent.model_validate(item) for item in data]
        except ValidationError as e:
            raise click.ClickException(f"Invalid transcript event: {e}") from e

        assembler = TurnAssembler(merge_gap_seconds=merge_gap)
        assembler.feed_all(events)
        discarded = assembler.discard_pending()
        if discarded:
            click.echo(f"Discarded unterminated sentence ({len(discarded.split())} words)", err=True)
        turns = assembler.turns

    click.echo(f"✓ Assembled {len(turns)} turns", err=True)
    _write_json([turn.model_dump(mode="json", exclude_none=True) for turn in turns], output)


@cli.command()
@click.argument("turns_file", type=click.Path(exists=True, path_type=Path))
@click.option("--duration", "-d", type=float, default=1.0, help="Conversation duration in minutes")
@click.option("--speaker", "-s", default=None, help="Only analyze turns with this speaker label")
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Output JSON file")
def analyze(turns_file: Path, duration: float, speaker: Optional[str], output: Optional[Path]) -> None:
    """Compute speech analytics over a list of turns.

    TURNS_FILE: JSON list of turns as produced by `cadence assemble`.
    """
    from pydantic import ValidationError

    from cadence.core.models import Turn
    from cadence.pipeline import SpeechAnalyticsEngine

    try:
        turns = [Turn.model_validate(item) for item in _read_json(turns_file)]
    except ValidationError as e:
        raise click.ClickException(f"Invalid turn: {e}") from e

    if speaker:
        turns = [turn for turn in turns if turn.speaker_label == speaker]

    result = SpeechAnalyticsEngine().analyze_turns(turns, duration)
    if result is None:
        click.echo("✗ No analytics available", err=True)
        sys.exit(1)

    click.echo(
        f"✓ Clarity {result.scores.clarity}, "
        f"conciseness {result.scores.conciseness}, "
        f"confidence {result.scores.confidence}",
        err=True,
    )
    _write_json(result.model_dump(mode="json"), output)


# ══════════════════════════════════════════════════════════════
# Database Commands
# ══════════════════════════════════════════════════════════════


def _alembic(*args: str) -> None:
    import subprocess
    result = subprocess.run(
        ["alembic", *args],
        capture_output=True,
        text=True,
    )
    click.echo(result.stdout)
    if result.returncode != 0:
        click.echo(result.stderr, err=True)
        sys.exit(1)


@cli.group()
def db() -> None:
    """Database management commands."""
    pass


@db.command("init")
def db_init() -> None:
    """Check the database connection."""
    click.echo("Initializing database...")

    async def init():
        from sqlalchemy import text

        from cadence.db import close_db, get_session, init_db

        await init_db()
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
        await close_db()

    asyncio.run(init())
    click.echo("Database reachable. Run migrations with: cadence db upgrade")


@db.command("migrate")
@click.option("--message", "-m", required=True, help="Migration message")
def db_migrate(message: str) -> None:
    """Create a new migration."""
    _alembic("revision", "--autogenerate", "-m", message)


@db.command("upgrade")
@click.argument("revision", default="head")
def db_upgrade(revision: str) -> None:
    """Upgrade database to a revision."""
    _alembic("upgrade", revision)


@db.command("downgrade")
@click.argument("revision", default="-1")
def db_downgrade(revision: str) -> None:
    """Downgrade database to a revision."""
    _alembic("downgrade", revision)


# ══════════════════════════════════════════════════════════════
# Worker Commands
# ══════════════════════════════════════════════════════════════

PRIORITY_CHOICES = ["high", "normal", "low"]


def _priority(name: str):
    from cadence.worker.queue import JobPriority

    return {"high": JobPriority.HIGH, "normal": JobPriority.NORMAL, "low": JobPriority.LOW}[name]


@cli.group()
def worker() -> None:
    """Background worker commands."""
    pass


@worker.command("start")
@click.option("--concurrency", "-c", default=None, type=int, help="Max concurrent jobs")
@click.option(
    "--queue", "-q",
    type=click.Choice(PRIORITY_CHOICES),
    default="normal",
    help="Queue to process",
)
@click.option("--burst/--no-burst", default=False, help="Exit when queue is empty")
def worker_start(concurrency: int | None, queue: str, burst: bool) -> None:
    """Start an ARQ background worker."""
    from arq import run_worker as arq_run_worker

    from cadence.worker.queue import get_worker_settings

    settings_dict = get_worker_settings(_priority(queue))

    if concurrency:
        settings_dict["max_jobs"] = concurrency

    # Burst mode for CI/testing
    if burst:
        settings_dict["burst"] = True

    click.echo(f"Starting Cadence ARQ worker: queue={settings_dict['queue_name']}, max_jobs={settings_dict['max_jobs']}")

    arq_run_worker(settings_dict)


@worker.command("enqueue")
@click.argument(
    "task_name",
    type=click.Choice(["analyze_conversation", "reconcile_conversation"]),
)
@click.option("--conversation-id", "-c", required=True, help="Conversation ID to process")
@click.option("--force/--no-force", default=False, help="Recompute existing analytics")
@click.option("--priority", "-p", type=click.Choice(PRIORITY_CHOICES), default="normal")
def worker_enqueue(task_name: str, conversation_id: str, force: bool, priority: str) -> None:
    """Manually enqueue a conversation task."""
    from cadence.worker.queue import enqueue_job

    args = (conversation_id, force) if task_name == "analyze_conversation" else (conversation_id,)

    async def enqueue():
        job_id = await enqueue_job(task_name, *args, priority=_priority(priority))
        if job_id:
            click.echo(f"Task enqueued: {job_id}")
        else:
            click.echo("Failed to enqueue task", err=True)
            sys.exit(1)

    asyncio.run(enqueue())


# ══════════════════════════════════════════════════════════════
# Config Commands
# ══════════════════════════════════════════════════════════════


@cli.command()
def config() -> None:
    """Show current configuration."""
    click.echo("Cadence Configuration\n")

    config_items = [
        ("Environment", settings.app_env),
        ("Debug", str(settings.debug)),
        ("Store", settings.store_backend),
        ("Database", settings.database_url.unicode_string() if settings.database_url else "Not set"),
        ("Redis", str(settings.redis_url)),
        ("Speechmatics Key", settings.speechmatics_api_key),
        ("Speechmatics Language", settings.speechmatics_language),
        ("LLM Provider", settings.llm_provider),
        ("LLM Model", settings.llm_model),
        ("Turn Merge Gap", f"{settings.turn_merge_gap_seconds}s"),
    ]

    for key, value in config_items:
        # Mask sensitive values
        if "key" in key.lower() or "secret" in key.lower():
            value = "***" if value else "Not set"
        click.echo(f"  {key:22} {value}")


# ══════════════════════════════════════════════════════════════
# Entry Point
# ══════════════════════════════════════════════════════════════


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
