"""
Command-line interface for meshmaker.

    meshmaker [options] file.map

Reads a density map, contours it at the given level and writes the
surface as STL, legacy VTK or XML VTK PolyData.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from meshmaker.config import ConfigurationError, RunConfig
from meshmaker.core.io import InputDecodeError
from meshmaker.export import WriteError
from meshmaker.pipeline import MeshPipeline, PipelineResult

app = typer.Typer(
    name="meshmaker",
    help="Generate a surface mesh from an MRC/MAP density map at a contour level",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

# Exit statuses
EXIT_USAGE = 2
EXIT_FAILURE = 1


def _show_help(ctx: typer.Context, value: bool) -> None:
    if value and not ctx.resilient_parsing:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=EXIT_USAGE)


@app.command(add_help_option=False)
def main(
    input_path: Optional[Path] = typer.Argument(None, help="Input MRC/MAP file (or .npy array)", show_default=False),
    clevel: Optional[str] = typer.Option(None, "-c", "--clevel", help="Contour level [default: 0.0]"),
    output: Optional[str] = typer.Option(None, "-o", "--output", help="Output prefix; the extension is added [default: out]"),
    stl: bool = typer.Option(False, "-S", "--stl", help="Write STL (.stl)"),
    vtk: bool = typer.Option(False, "-V", "--vtk", help="Write legacy VTK (.vtk)"),
    vtp: bool = typer.Option(False, "-X", "--vtp", help="Write XML VTK PolyData (.vtp) [default]"),
    decimate: bool = typer.Option(False, "-D", "--decimate", help="Decimate the mesh"),
    smooth: bool = typer.Option(False, "-s", "--smooth", help="Smooth the mesh"),
    smooth_iter: Optional[str] = typer.Option(None, "-i", "--smooth-iter", help="Smoothing iterations [default: 20]"),
    target_reduction: Optional[str] = typer.Option(
        None, "-t", "--target-reduction", help="Fraction of triangles to remove, in (0, 1) [default: 0.9]"
    ),
    max_strip_length: Optional[str] = typer.Option(
        None, "-m", "--max-strip-length", help="Maximum triangles per strip [default: 1000]"
    ),
    strips: bool = typer.Option(True, "--strips/--no-strips", help="Write triangle strips instead of triangles"),
    ascii_: bool = typer.Option(False, "-A", "--ascii", help="Write ASCII instead of binary"),
    uint64: bool = typer.Option(False, "-U", "--uint64", help="UInt64 headers (XML only)"),
    int32: bool = typer.Option(False, "-I", "--int32", help="Int32 index arrays (XML only)"),
    save_config: Optional[Path] = typer.Option(None, "--save-config", help="Save the run configuration as YAML"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Report each stage and a mesh summary"),
    help_: bool = typer.Option(
        False, "-h", "--help", is_eager=True, expose_value=False, callback=_show_help,
        help="Show this message and exit",
    ),
):
    """
    Generate a mesh from the MAP/MRC file using the specified options.
    """
    try:
        config = RunConfig.from_options(
            input_path=input_path,
            contour_level=clevel,
            output_prefix=output,
            stl=stl,
            vtk=vtk,
            vtp=vtp,
            decimate=decimate,
            smooth=smooth,
            smooth_iterations=smooth_iter,
            target_reduction=target_reduction,
            max_strip_length=max_strip_length,
            strips=strips,
            ascii=ascii_,
            uint64=uint64,
            int32=int32,
            verbose=verbose,
        )
    except ConfigurationError as e:
        for error in e.errors:
            err_console.print(f"[bold red]Error:[/bold red] {escape(error)}")
        err_console.print("Try 'meshmaker -h' for help.")
        raise typer.Exit(code=EXIT_USAGE)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s - %(message)s",
    )
    for warning in config.warnings():
        err_console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

    if save_config:
        config.save(save_config)
        console.print(f"[green]Config saved to:[/green] {save_config}")

    if verbose:
        console.print(f"[bold blue]Reading:[/bold blue] {config.input_path}")
        console.print(f"Contour level: {config.contour_level}")

    pipeline = MeshPipeline.from_config(config)
    try:
        result = pipeline.run(config.input_path, config.output_path, enable_timing=verbose)
    except InputDecodeError as e:
        err_console.print(f"[bold red]Cannot read input:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_FAILURE)
    except WriteError as e:
        err_console.print(f"[bold red]Cannot write output:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_FAILURE)

    if verbose:
        _print_summary(result)

    console.print(f"[green]Saved to:[/green] {result.output_path}")


def _print_summary(result: PipelineResult) -> None:
    """Per-stage sizes, timings and the final topology."""
    table = Table(title="Pipeline Stages")
    table.add_column("Stage", style="cyan")
    table.add_column("Vertices", justify="right")
    table.add_column("Triangles", justify="right")
    table.add_column("Time (s)", justify="right")

    for stage in result.stages:
        table.add_row(stage.name, str(stage.num_vertices), str(stage.num_triangles), f"{stage.elapsed_seconds:.3f}")
    console.print(table)

    mesh = result.mesh
    if mesh.has_strips:
        console.print(f"Strips: {mesh.num_strips} ({mesh.num_triangles} triangles)")
    if result.topology is not None:
        console.print(f"Topology: {result.topology.summary()}")
    if result.timing is not None:
        slowest = ", ".join(str(entry) for entry in result.timing.get_slowest(2))
        console.print(f"Slowest: {slowest}")
        console.print(f"[bold]Total: {result.timing.total_time():.3f}s[/bold]")


if __name__ == "__main__":
    app()
