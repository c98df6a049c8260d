import typer
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn
from rich.table import Table

from mediaconv.config.encoding import build_output_path
from mediaconv.config.loader import load_config
from mediaconv.config.models import AppConfig
from mediaconv.domain.errors import ConversionError
from mediaconv.domain.models import ProgressSample
from mediaconv.infrastructure.logging import setup_logging
from mediaconv.pipeline.orchestrator import ConversionOrchestrator

app = typer.Typer(help="mediaconv - ffmpeg conversion with hardware encoder detection")
console = Console()


def _load(config_path: Optional[Path]) -> AppConfig:
    try:
        return load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _format_size(size_bytes: int) -> str:
    size = float(size_bytes)
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


@app.command()
def convert(
    input_path: Path = typer.Argument(..., help="Local media file to convert"),
    output_path: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: input with the format's extension)"),
    output_format: str = typer.Option("H264", "--format", "-f", help="H264, ProRes, DNxHR or 'Audio only'"),
    quality: str = typer.Option("1080p", "--quality", "-q", help="Quality tier (4K, 2160p, 1440p, 1080p, 720p, 480p, 360p)"),
    gpu: Optional[bool] = typer.Option(None, "--gpu/--cpu", help="Prefer hardware encoding when available"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Convert one local file and show progress."""
    config = _load(config_path)
    if gpu is not None: config.encoding.prefer_gpu = gpu
    if log_path is not None: config.logging.log_path = log_path
    if debug: config.logging.debug = True

    setup_logging(config.logging.log_path, debug=config.logging.debug)
    orchestrator = ConversionOrchestrator(config)

    try:
        target = output_path or build_output_path(input_path, output_format)
    except ConversionError as exc:
        typer.secho(f"Error: {exc.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    duration = None
    if config.probes.auto_duration and input_path.exists():
        duration = orchestrator.get_duration(input_path)
        config.probes.auto_duration = False  # already probed for the progress bar

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.fields[status]}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(f"{input_path.name} -> {target.name}", total=100 if duration else None, status="")

        def on_progress(sample: ProgressSample):
            status = f"{sample.elapsed_seconds:.0f}s"
            if sample.speed_multiplier is not None:
                status += f" @ {sample.speed_multiplier:g}x"
            if sample.percent is not None:
                progress.update(task, completed=sample.percent, status=status)
            else:
                progress.update(task, status=status)

        try:
            handle = orchestrator.start(
                input_path,
                target,
                output_format,
                quality,
                duration_seconds=duration,
                on_progress=on_progress,
            )
            result = handle.result()
        except KeyboardInterrupt:
            cancelled = orchestrator.cancel_all()
            typer.secho(f"\nConversion stopped by user ({cancelled} cancelled)", fg=typer.colors.YELLOW)
            raise typer.Exit(code=130)
        except ConversionError as exc:
            failure = exc.to_failure()
            typer.secho(f"Conversion failed [{failure.kind.value}]: {failure.message}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

    console.print(f"[bold green]✔ {result.output_path}[/bold green] ({_format_size(result.file_size_bytes)}, {result.elapsed_seconds:.1f}s)")


@app.command()
def caps(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    as_json: bool = typer.Option(False, "--json", help="Print the snapshot as JSON"),
):
    """Show hardware encoders detected through ffmpeg."""
    config = _load(config_path)
    snapshot = ConversionOrchestrator(config).detect_capabilities()

    if as_json:
        typer.echo(snapshot.model_dump_json(indent=2))
        return

    table = Table(title="Encoder capabilities", show_header=False)
    table.add_column("field", style="bold cyan")
    table.add_column("value")
    table.add_row("Platform", f"{snapshot.platform} ({snapshot.arch})")
    table.add_row("GPU", "[green]yes[/green]" if snapshot.has_gpu else "[yellow]no[/yellow]")
    table.add_row("Type", snapshot.type.value)
    table.add_row("Description", snapshot.description or "-")
    table.add_row("Encoders", ", ".join(snapshot.encoders) or "-")
    table.add_row("Decoders", ", ".join(snapshot.decoders) or "-")
    if snapshot.error:
        table.add_row("Error", f"[red]{snapshot.error}[/red]")
    console.print(table)


@app.command()
def duration(
    input_path: Path = typer.Argument(..., help="Local media file"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Print an input's duration in seconds, or 'unknown'."""
    config = _load(config_path)
    seconds = ConversionOrchestrator(config).get_duration(input_path)
    typer.echo(f"{seconds:.3f}" if seconds is not None else "unknown")


if __name__ == "__main__":
    app()
