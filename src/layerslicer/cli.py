"""
Command-line interface for LayerSlicer.

Loads meshes with trimesh, slices them and prints per-layer summaries.
"""

from pathlib import Path
from typing import Any, Optional

import click
import trimesh
from rich.console import Console
from rich.table import Table

from layerslicer import __version__
from layerslicer.core.config import ProfileManager, SliceConfig
from layerslicer.core.exceptions import LayerSlicerError
from layerslicer.core.logging import configure_logging
from layerslicer.geometry.components import split_shape
from layerslicer.geometry.shape import Shape
from layerslicer.slicing.slicer import Slicer

console = Console()


def _load_shape(path: Path) -> Shape:
    mesh = trimesh.load(str(path), force="mesh")
    shape = Shape.from_trimesh(mesh, name=path.stem)
    shape.place_on_platform()
    return shape


def _resolve_config(config_dir: Path, profile: Optional[str], **overrides: Any) -> SliceConfig:
    if profile:
        config = ProfileManager(config_dir).get_profile(profile)
    else:
        config = SliceConfig()
    updates = {k: v for k, v in overrides.items() if v is not None}
    if not updates:
        return config
    return SliceConfig(**{**config.model_dump(), **updates})


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default="config",
    help="Configuration directory",
)
@click.option("--log-level", default="WARNING", help="Log level")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also write logs to this file")
@click.pass_context
def main(
    ctx: click.Context, config_dir: Path, log_level: str, json_logs: bool, log_file: Optional[str],
) -> None:
    """LayerSlicer - mesh to layer region slicer."""
    configure_logging(level=log_level, json_output=json_logs, log_file=log_file)
    ctx.ensure_object(dict)
    ctx.obj["config_dir"] = config_dir


# =============================================================================
# Slicing Commands
# =============================================================================


@main.command("slice")
@click.argument("mesh_path", type=click.Path(exists=True, path_type=Path))
@click.option("--profile", "-p", help="Slicing profile name")
@click.option("--layer-height", type=float, help="Layer height (mm)")
@click.option("--shells", "shell_count", type=int, help="Number of shells")
@click.option("--infill-percent", type=float, help="Sparse infill density (%)")
@click.option("--support/--no-support", default=None, help="Generate support")
@click.option("--skirt/--no-skirt", default=None, help="Generate a skirt")
@click.option("--split", "split_components", is_flag=True, help="Slice each component as its own shape")
@click.pass_context
def slice_mesh(
    ctx: click.Context,
    mesh_path: Path,
    profile: Optional[str],
    layer_height: Optional[float],
    shell_count: Optional[int],
    infill_percent: Optional[float],
    support: Optional[bool],
    skirt: Optional[bool],
    split_components: bool,
) -> None:
    """Slice a mesh file and print the layer summary."""
    try:
        config = _resolve_config(
            ctx.obj["config_dir"], profile,
            layer_height=layer_height, shell_count=shell_count,
            infill_percent=infill_percent, support=support, skirt=skirt,
        )
        shape = _load_shape(mesh_path)
        shapes = split_shape(shape, config.adjacency_sq_tolerance) if split_components else [shape]
        layers = Slicer(config).slice(shapes)
    except (LayerSlicerError, ValueError, OSError) as e:
        console.print(f"[red]✗[/red] Slicing failed: {e}")
        raise SystemExit(1)

    table = Table(title=f"Layers: {mesh_path.name}")
    table.add_column("No", justify="right", style="cyan")
    table.add_column("Z", justify="right")
    table.add_column("Polys", justify="right")
    table.add_column("Shells", justify="right")
    table.add_column("Full", justify="right")
    table.add_column("Bridges", justify="right")
    table.add_column("Support", justify="right")
    table.add_column("Fill lines", justify="right")

    for layer in layers:
        infill = layer.infill
        lines = len(infill.normal) + len(infill.full) if infill is not None else 0
        table.add_row(
            str(layer.layer_no),
            f"{layer.z:.3f}",
            str(len(layer.polygons)),
            str(len(layer.shells)),
            str(len(layer.full_fill_polygons)),
            str(len(layer.bridge_polygons)),
            str(len(layer.support_polygons)),
            str(lines),
        )

    console.print(table)
    console.print(f"[green]✓[/green] {len(layers)} layers")


@main.command("split")
@click.argument("mesh_path", type=click.Path(exists=True, path_type=Path))
def split_mesh(mesh_path: Path) -> None:
    """List the connected components of a mesh file."""
    try:
        shape = _load_shape(mesh_path)
        parts = split_shape(shape, SliceConfig().adjacency_sq_tolerance)
    except (LayerSlicerError, ValueError, OSError) as e:
        console.print(f"[red]✗[/red] Failed to split mesh: {e}")
        raise SystemExit(1)

    table = Table(title=f"Components: {mesh_path.name}")
    table.add_column("Name", style="cyan")
    table.add_column("Triangles", justify="right")
    table.add_column("Volume", justify="right")
    table.add_column("Min")
    table.add_column("Max")

    for part in parts:
        table.add_row(
            part.name,
            str(len(part)),
            f"{part.volume():.2f}",
            ", ".join(f"{v:.2f}" for v in part.min),
            ", ".join(f"{v:.2f}" for v in part.max),
        )

    console.print(table)


# =============================================================================
# Configuration Commands
# =============================================================================


@main.command("profiles")
@click.pass_context
def list_profiles(ctx: click.Context) -> None:
    """List available slicing profiles."""
    try:
        profiles = ProfileManager(ctx.obj["config_dir"])
        names = profiles.list_profiles()
    except LayerSlicerError as e:
        console.print(f"[red]✗[/red] Failed to list profiles: {e}")
        raise SystemExit(1)

    if not names:
        console.print("[yellow]No slicing profiles found.[/yellow]")
        return

    table = Table(title="Slicing Profiles")
    table.add_column("Name", style="cyan")
    table.add_column("Layer height", justify="right")
    table.add_column("Shells", justify="right")
    table.add_column("Infill %", justify="right")

    for name in names:
        config = profiles.get_profile(name)
        table.add_row(
            name, f"{config.layer_height}", str(config.shell_count), f"{config.infill_percent}",
        )

    console.print(table)


if __name__ == "__main__":
    main()
