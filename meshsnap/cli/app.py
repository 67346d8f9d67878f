"""Command-line interface for MeshSnap."""

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from meshsnap import __version__
from meshsnap.core import ClipBox, Config, MeshSnapError, load_config
from meshsnap.core.pipeline import ExportPipeline
from meshsnap.encoders import EncoderFactory, ExportFormat
from meshsnap.processing import MeshValidator, format_fingerprint, load_capture
from meshsnap.processing.dedup import fingerprint
from meshsnap.utils import setup_logging

app = typer.Typer(
    name="meshsnap",
    help="Export captured render meshes to STL, OBJ and GLB",
    add_completion=False,
)
console = Console()


def parse_clip_box(text: str) -> ClipBox:
    """Parse ``xmin,xmax,ymin,ymax,zmin,zmax`` into a clip box."""
    try:
        values = [float(v) for v in text.split(",")]
        return ClipBox.from_sequence(values)
    except ValueError as e:
        raise typer.BadParameter(f"Expected six comma separated numbers: {e}")


def _apply_overrides(
    cfg: Config,
    format_name: Optional[str],
    clip_mode: Optional[str],
    merge: Optional[bool],
) -> Config:
    data = cfg.to_dict()
    if format_name:
        data["export"]["format"] = format_name.lower()
    if clip_mode:
        data["clip"]["mode"] = clip_mode
    if merge is not None:
        data["merge"]["enabled"] = merge
    # Rebuilt so command-line values are validated like file values
    return Config.from_dict(data)


@app.command()
def export(
    inputs: List[Path] = typer.Argument(
        ...,
        exists=True,
        help="Capture dumps (.json) or mesh files to export",
    ),
    format_name: Optional[str] = typer.Option(
        None,
        "--format",
        "-f",
        help="Output format: stl, obj or glb",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file, or directory for the default file name",
    ),
    clip: Optional[str] = typer.Option(
        None,
        "--clip",
        help="Clip box as xmin,xmax,ymin,ymax,zmin,zmax",
    ),
    viewport_clip: bool = typer.Option(
        False,
        "--viewport-clip",
        help="Clip to the viewport bounds recorded in the capture",
    ),
    clip_mode: Optional[str] = typer.Option(
        None,
        "--clip-mode",
        help="max_offset or sequential",
    ),
    merge: Optional[bool] = typer.Option(
        None,
        "--merge/--no-merge",
        help="Merge consecutive instances of one shape",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file",
    ),
) -> None:
    """Export meshes to a single 3D model file."""
    try:
        cfg = _apply_overrides(load_config(config), format_name, clip_mode, merge)
        setup_logging(cfg.logging)

        pipeline = ExportPipeline(cfg)
        clip_box = parse_clip_box(clip) if clip else None

        with console.status("Collecting meshes..."):
            for path in inputs:
                capture = load_capture(path)
                pipeline.collect(capture.meshes)
                if viewport_clip and clip_box is None and capture.bounds is not None:
                    clip_box = capture.bounds

        with console.status("Encoding..."):
            result = pipeline.export(clip_box=clip_box)

        target = output or Path(result.filename)
        if target.is_dir():
            target = target / result.filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(result.data)

    except MeshSnapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Invalid option: {e}[/red]")
        raise typer.Exit(1)

    stats = result.stats
    table = Table(title="Export Summary", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("File", str(target))
    table.add_row("Format", f"{result.format.value.upper()} ({result.mime_type})")
    table.add_row("Size", f"{len(result.data):,} bytes")
    table.add_row("Meshes received", f"{stats.received:,}")
    table.add_row("Rejected", f"{stats.rejected:,}")
    table.add_row("Duplicates skipped", f"{stats.duplicates:,}")
    table.add_row("Decorations skipped", f"{stats.decorations:,}")
    table.add_row("Clipped away", f"{stats.clipped_away:,}")
    table.add_row("Merged", f"{stats.merged:,}")
    table.add_row("Meshes written", f"{stats.exported:,}")
    table.add_row("Triangles", f"{stats.triangles:,}")
    console.print(table)

    for reason, count in stats.rejections.items():
        console.print(f"  • {reason}: {count}", style="yellow")


@app.command()
def analyze(
    input_file: Path = typer.Argument(
        ...,
        exists=True,
        help="Capture dump or mesh file to analyze",
    ),
) -> None:
    """Validate every mesh of an input file and show the results."""
    try:
        capture = load_capture(input_file)
    except MeshSnapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    validator = MeshValidator()
    table = Table(title=f"Meshes in {input_file.name}")
    table.add_column("#", style="dim")
    table.add_column("Status")
    table.add_column("Vertices", justify="right")
    table.add_column("Triangles", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Fingerprint", style="cyan")
    table.add_column("Reason", style="red")

    for i, raw in enumerate(capture.meshes):
        report = validator.validate(raw)
        if report.is_valid:
            table.add_row(
                str(i),
                "[green]valid[/green]",
                f"{report.vertex_count:,}",
                f"{report.triangle_count:,}",
                f"{report.used_percentage:.1f}%",
                format_fingerprint(fingerprint(report.record)),
                "",
            )
        else:
            table.add_row(str(i), "[red]rejected[/red]", "-", "-", "-", "-", report.reason.value)
    console.print(table)

    if capture.bounds is not None:
        console.print(f"Viewport bounds: {capture.bounds.as_tuple()}")


@app.command()
def info() -> None:
    """Display information about MeshSnap."""
    console.print(f"\n[cyan]MeshSnap[/cyan] {__version__} - captured mesh exporter")

    table = Table(title="Export Formats")
    table.add_column("Format", style="cyan")
    table.add_column("File", style="white")
    table.add_column("MIME type", style="green")
    for name in EncoderFactory.available_formats():
        fmt = ExportFormat(name)
        table.add_row(name, fmt.filename, fmt.mime_type)
    console.print(table)


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
