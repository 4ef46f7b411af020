"""CLI commands for storypipe using Typer and Rich.

Implements all 5 CLI commands:
- generate: Plan a new storyboard and generate all of its scenes
- resume: Continue an interrupted storyboard
- status: Show detailed storyboard information
- list: List all storyboards in a table
- delete: Remove a stored storyboard
"""

import asyncio
import uuid
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from storypipe import configure_logging, validate_dependencies
from storypipe.config import settings
from storypipe.db import init_database
from storypipe.orchestrator import (
    CompletionEvent,
    GenerationRequest,
    JobNotFoundError,
    Orchestrator,
    ProgressEvent,
    can_resume,
    should_resume,
)
from storypipe.pipeline.scene_task import LLMGenerationService
from storypipe.pipeline.storyboard import DecompositionError, LLMDecompositionService
from storypipe.schemas.job import JobState
from storypipe.services.checkpoint_store import SqlCheckpointStore

app = typer.Typer(name="storypipe", help="Resumable multi-scene storyboard generation")
console = Console()


@app.callback()
def main():
    """Configure logging for every command."""
    configure_logging()


def _build_orchestrator(status, tracked: dict) -> Orchestrator:
    """Orchestrator whose callbacks drive a rich status line."""

    def on_progress(event: ProgressEvent):
        tracked["job_id"] = event.job_id
        resumed = f" (resumed from {event.resumed_from})" if event.resumed_from is not None else ""
        status.update(f"[bold green]Generated {event.current}/{event.total} scenes{resumed}")

    def on_complete(event: CompletionEvent):
        tracked["errors"] = event.errors

    def on_id_change(old: uuid.UUID, new: uuid.UUID):
        tracked["job_id"] = new
        console.print(f"[yellow]Storyboard id reassigned:[/yellow] {old} -> {new}")

    return Orchestrator(
        SqlCheckpointStore(),
        LLMDecompositionService(),
        LLMGenerationService(),
        on_progress=on_progress,
        on_complete=on_complete,
        on_id_change=on_id_change,
    )


def _print_result(job: JobState, errors: dict[int, str]):
    """Print the outcome of a finished (or aborted) run."""
    total = job.status.total_scenes
    done = job.status.completed_scenes
    if job.status.in_progress:
        console.print(f"[yellow]Stopped at {done}/{total} scenes.[/yellow]")
        console.print(f"[yellow]You can resume with:[/yellow] storypipe resume {job.id}")
        return

    mark = "[green]✓[/green]" if not job.status.error else "[yellow]![/yellow]"
    console.print(f"{mark} Storyboard complete: {done}/{total} scenes")
    for index in sorted(errors):
        console.print(f"  [red]Scene {index + 1} failed:[/red] {errors[index]}")
    if job.status.error and not errors:
        console.print(f"[yellow]Note:[/yellow] {job.status.error}")
    console.print(f"[green]Storyboard:[/green] {job.id}")


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="Movie concept to turn into a storyboard"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Model id, e.g. gemini-2.5-flash or ollama/llama3.1"),
    scenes: Optional[int] = typer.Option(None, "--scenes", "-n", min=1, help="Number of scenes (model chooses when omitted)"),
):
    """Generate a new storyboard from a text prompt.

    Plans the scenes once, then generates every scene with a checkpoint after
    each one so an interrupted run can be resumed.
    """
    provider = provider or settings.models.default_provider

    # Fail-fast dependency validation
    try:
        validate_dependencies(provider)
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    tracked: dict = {"job_id": None, "errors": {}}
    try:
        asyncio.run(_generate_async(prompt, provider, scenes, tracked))
    except KeyboardInterrupt:
        console.print()
        console.print("[yellow]Generation interrupted.[/yellow]")
        if tracked["job_id"] is not None:
            console.print(f"[yellow]You can resume later with:[/yellow] storypipe resume {tracked['job_id']}")
        raise typer.Exit(code=130)


async def _generate_async(prompt: str, provider: str, scenes: Optional[int], tracked: dict):
    """Async implementation of generate command."""
    await init_database()

    with console.status("[bold green]Planning storyboard...") as status:
        orchestrator = _build_orchestrator(status, tracked)
        try:
            job = await orchestrator.start(
                GenerationRequest(prompt=prompt, provider=provider, scene_count_hint=scenes)
            )
        except DecompositionError as e:
            console.print(f"[red]✗ Storyboard planning failed:[/red] {str(e)}")
            raise typer.Exit(code=1)

        tracked["job_id"] = job.id
        console.print(f"[green]Created storyboard:[/green] {job.id} ({job.name})")
        console.print(f"[green]Scenes:[/green] {job.status.total_scenes}")
        status.update("[bold green]Generating scenes...")

        final = await orchestrator.execute(job)

    _print_result(final, tracked["errors"])


@app.command()
def resume(
    storyboard_id: str = typer.Argument(..., help="Storyboard UUID to resume"),
):
    """Resume an interrupted storyboard from its last committed scene."""
    job_uuid = _parse_uuid(storyboard_id)
    tracked: dict = {"job_id": job_uuid, "errors": {}}
    try:
        asyncio.run(_resume_async(job_uuid, tracked))
    except KeyboardInterrupt:
        console.print()
        console.print("[yellow]Resume interrupted. You can resume again with:[/yellow]")
        console.print(f"  storypipe resume {tracked['job_id']}")
        raise typer.Exit(code=130)


async def _resume_async(job_uuid: uuid.UUID, tracked: dict):
    """Async implementation of resume command."""
    await init_database()

    store = SqlCheckpointStore()
    job = await store.read(job_uuid)
    if job is None:
        console.print(f"[red]Error:[/red] Storyboard not found: {job_uuid}")
        raise typer.Exit(code=1)

    if not can_resume(job):
        console.print("[green]Storyboard already complete![/green]")
        return

    # Fail-fast dependency validation
    try:
        validate_dependencies(job.provider)
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    console.print(f"[yellow]Resuming storyboard:[/yellow] {job.id}")
    console.print(f"[yellow]Committed scenes:[/yellow] {len(job.clips)}/{job.status.total_scenes}")
    console.print()

    with console.status("[bold green]Resuming generation...") as status:
        orchestrator = _build_orchestrator(status, tracked)
        try:
            final = await orchestrator.resume(job_uuid)
        except JobNotFoundError as e:
            console.print(f"[red]Error:[/red] {str(e)}")
            raise typer.Exit(code=1)

    _print_result(final, tracked["errors"])


@app.command()
def status(
    storyboard_id: str = typer.Argument(..., help="Storyboard UUID"),
):
    """Show detailed storyboard status and information."""
    asyncio.run(_status_async(_parse_uuid(storyboard_id)))


async def _status_async(job_uuid: uuid.UUID):
    """Async implementation of status command."""
    await init_database()

    job = await SqlCheckpointStore().read(job_uuid)
    if job is None:
        console.print(f"[red]Error:[/red] Storyboard not found: {job_uuid}")
        raise typer.Exit(code=1)

    state = _state_label(job)
    color = _get_status_color(state)
    prompt_display = job.prompt if len(job.prompt) <= 80 else job.prompt[:77] + "..."

    info_lines = [
        f"[bold]ID:[/bold] {job.id}",
        f"[bold]Name:[/bold] {job.name}",
        f"[bold]Prompt:[/bold] {prompt_display}",
        f"[bold]Provider:[/bold] {job.provider}",
        f"[bold]Status:[/bold] [{color}]{state}[/{color}]",
        f"[bold]Scenes:[/bold] {job.status.completed_scenes}/{job.status.total_scenes}",
        f"[bold]Created:[/bold] {job.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"[bold]Updated:[/bold] {job.updated_at.strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    if job.status.completed_at:
        info_lines.append(f"[bold]Completed:[/bold] {job.status.completed_at.strftime('%Y-%m-%d %H:%M:%S')}")
    if job.status.in_progress:
        info_lines.append(f"[bold]Resume:[/bold] {should_resume(job).value}")
    if job.status.error:
        info_lines.append(f"[bold]Error:[/bold] [red]{job.status.error}[/red]")

    console.print(Panel(
        "\n".join(info_lines),
        title="[bold]Storyboard Status[/bold]",
        border_style="blue",
    ))

    if job.clips:
        table = Table(show_header=True, header_style="bold blue")
        table.add_column("#", justify="right")
        table.add_column("Clip")
        table.add_column("Duration", justify="right")
        table.add_column("Provider")
        for clip in job.clips:
            table.add_row(str(clip.order), clip.name, f"{clip.duration_seconds:g}s", clip.provider)
        console.print(table)


@app.command(name="list")
def list_storyboards():
    """List all storyboards."""
    asyncio.run(_list_async())


async def _list_async():
    """Async implementation of list command."""
    await init_database()

    jobs = await SqlCheckpointStore().list_jobs()
    if not jobs:
        console.print("[yellow]No storyboards found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Scenes", justify="right")
    table.add_column("Status")
    table.add_column("Created")

    for job in jobs:
        id_display = str(job.id)[:8] + "..."
        name_display = job.name if len(job.name) <= 50 else job.name[:47] + "..."
        state = _state_label(job)
        color = _get_status_color(state)
        table.add_row(
            id_display,
            name_display,
            f"{job.status.completed_scenes}/{job.status.total_scenes}",
            f"[{color}]{state}[/{color}]",
            job.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command()
def delete(
    storyboard_id: str = typer.Argument(..., help="Storyboard UUID to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a stored storyboard."""
    job_uuid = _parse_uuid(storyboard_id)
    if not yes:
        typer.confirm(f"Delete storyboard {job_uuid}?", abort=True)
    asyncio.run(_delete_async(job_uuid))


async def _delete_async(job_uuid: uuid.UUID):
    """Async implementation of delete command."""
    await init_database()

    if not await SqlCheckpointStore().delete(job_uuid):
        console.print(f"[red]Error:[/red] Storyboard not found: {job_uuid}")
        raise typer.Exit(code=1)
    console.print(f"[green]Deleted storyboard:[/green] {job_uuid}")


def _parse_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        console.print(f"[red]Error:[/red] Invalid storyboard UUID: {value}")
        raise typer.Exit(code=1)


def _state_label(job: JobState) -> str:
    if job.status.in_progress:
        return "in_progress"
    return "partial" if job.status.error else "complete"


def _get_status_color(state: str) -> str:
    """Get Rich color for a storyboard state.

    Color coding:
    - complete: green
    - partial: red
    - in_progress: yellow
    """
    if state == "complete":
        return "green"
    elif state == "partial":
        return "red"
    elif state == "in_progress":
        return "yellow"
    else:
        return "white"
