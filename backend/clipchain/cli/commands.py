"""CLI commands for clipchain using Typer and Rich.

Implements 3 CLI commands:
- generate: Run a chain of prompts from a start image, each clip seeded by
  the previous clip's last frame
- serve: Run the generation gateway
- inspect-job: Decode a simulated job id
"""

import asyncio
import logging
import signal
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from clipchain import validate_dependencies
from clipchain.chain import ClipChainStore, ClipStatus, Phase
from clipchain.config import settings
from clipchain.errors import GenerationError
from clipchain.orchestrator.cancellation import CancellationToken
from clipchain.orchestrator.pipeline import generate_clip
from clipchain.services.file_manager import FileManager
from clipchain.services.frame_extractor import extract_continuation_frame
from clipchain.services.job_transport import ApiKeyAuth, JobTransport
from clipchain.services.providers import JobNotFoundError
from clipchain.services.providers.simulation import decode_job_id

app = typer.Typer(name="clipchain", help="Continuous multi-clip AI video generation")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def generate(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Start image"),
    prompts: List[str] = typer.Option(
        ..., "--prompt", "-p", help="Scene prompt; repeat for each clip in the chain",
    ),
    gateway_url: Optional[str] = typer.Option(None, "--gateway-url", help="Gateway base URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Gateway X-API-Key"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Where clips are stored"),
):
    """Generate a chain of clips from a start image.

    Each prompt becomes one clip. After a clip succeeds, its last frame seeds
    the next one and the two most recent prompts are woven into the next
    prompt as narrative context. Press Ctrl-C to cancel the running clip.
    """
    # Fail-fast dependency validation
    try:
        validate_dependencies()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    blank = [i + 1 for i, p in enumerate(prompts) if not p.strip()]
    if blank:
        console.print(f"[red]Error:[/red] Empty prompt at position(s) {blank}")
        raise typer.Exit(code=1)

    store = asyncio.run(_generate_async(
        image,
        prompts,
        gateway_url or settings.client.gateway_url,
        api_key or settings.client.api_key,
        output_dir,
    ))

    console.print()
    console.print(_summary_table(store))

    if not store.clips or store.clips[-1].status != ClipStatus.DONE:
        raise typer.Exit(code=1)


async def _generate_async(
    image: Path,
    prompts: List[str],
    gateway_url: str,
    api_key: Optional[str],
    output_dir: Optional[Path],
) -> ClipChainStore:
    """Async implementation of generate command."""
    file_mgr = FileManager(uuid.uuid4().hex[:8], base_dir=output_dir)
    store = ClipChainStore(release=file_mgr.release)
    store.select_image(str(image))
    store.set_phase(Phase.PROMPT)

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except NotImplementedError:
        # Windows event loops; Ctrl-C falls back to KeyboardInterrupt
        pass

    auth = ApiKeyAuth(api_key) if api_key else None
    console.print(f"[green]Chain directory:[/green] {file_mgr.chain_dir}")
    console.print(f"[green]Gateway:[/green] {gateway_url}")
    console.print()

    try:
        async with JobTransport(
            gateway_url, auth=auth, timeout=settings.client.request_timeout,
        ) as transport:
            for index, prompt in enumerate(prompts, start=1):
                if index > 1 and not store.use_last_frame():
                    console.print("[yellow]No continuation frame available; stopping the chain.[/yellow]")
                    break

                console.print(f"[bold]Clip {index}/{len(prompts)}:[/bold] {prompt}")
                try:
                    with console.status("[bold green]Starting generation...") as status:
                        def callback_wrapper(msg: str):
                            status.update(f"[bold green]{msg}")

                        result = await generate_clip(
                            store,
                            transport,
                            prompt,
                            materialize=file_mgr.download_video,
                            extract_frame=extract_continuation_frame,
                            token=token,
                            on_status=callback_wrapper,
                        )
                except GenerationError as e:
                    console.print(f"[red]✗ Clip failed:[/red] {str(e)}")
                    break

                if result.cancelled:
                    console.print("[yellow]Generation cancelled.[/yellow]")
                    break

                console.print(f"[green]✓[/green] {result.clip.output_video_ref}")
                if result.frame_error:
                    console.print(f"[yellow]Last frame unavailable:[/yellow] {result.frame_error}")
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass

    return store


def _summary_table(store: ClipChainStore) -> Table:
    table = Table(show_header=True, header_style="bold blue")
    table.add_column("#", style="dim")
    table.add_column("Prompt")
    table.add_column("Status")
    table.add_column("Job", style="dim")
    table.add_column("Output")

    for position, clip in enumerate(store.clips, start=1):
        # Truncate prompt to 50 chars
        prompt_display = clip.prompt_text if len(clip.prompt_text) <= 50 else clip.prompt_text[:47] + "..."

        status_color = _get_status_color(clip.status)
        status_display = f"[{status_color}]{clip.status.value}[/{status_color}]"

        if clip.status == ClipStatus.DONE:
            output = clip.output_video_ref or ""
        else:
            output = f"[red]{clip.error_message or ''}[/red]"

        table.add_row(str(position), prompt_display, status_display, clip.job_id or "-", output)

    return table


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Run the generation gateway.

    Serves the Kling provider when its keys are configured and simulated
    jobs otherwise.
    """
    import uvicorn

    uvicorn.run(
        "clipchain.api.app:app",
        host=host or settings.gateway.host,
        port=port or settings.gateway.port,
        reload=False,
    )


@app.command(name="inspect-job")
def inspect_job(
    job_id: str = typer.Argument(..., help="Simulated job id (sim_<epoch ms>)"),
):
    """Show when a simulated job is considered finished."""
    try:
        ready_at_ms = decode_job_id(job_id)
    except JobNotFoundError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    ready_at = datetime.fromtimestamp(ready_at_ms / 1000, tz=timezone.utc)
    remaining = (ready_at - datetime.now(timezone.utc)).total_seconds()

    console.print(f"[bold]Job:[/bold] {job_id}")
    console.print(f"[bold]Ready at:[/bold] {ready_at.isoformat()}")
    if remaining > 0:
        console.print(f"[bold]Phase:[/bold] [yellow]processing[/yellow] ({remaining:.1f}s left)")
    else:
        console.print("[bold]Phase:[/bold] [green]completed[/green]")


def _get_status_color(status: ClipStatus) -> str:
    """Get Rich color for a clip status.

    Color coding:
    - done: green
    - failed: red
    - in_flight: yellow
    - pending: dim
    """
    if status == ClipStatus.DONE:
        return "green"
    elif status == ClipStatus.FAILED:
        return "red"
    elif status == ClipStatus.IN_FLIGHT:
        return "yellow"
    return "dim"
