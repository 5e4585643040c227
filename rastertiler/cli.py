#!/usr/bin/env python3
"""rastertiler CLI - Render single-band rasters to MBTiles PNG tilesets"""

import logging
import sys
import traceback
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from . import mbtiles
from .render import RenderOptions, render_tiles
from .tileid import MAX_ZOOM


def setup_logging(verbose: bool):
    """Configure logging based on verbosity."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
        )


def _fail(error: Exception, verbose: bool):
    click.echo(f"Error: {error}", err=True)
    if verbose:
        traceback.print_exc()
    sys.exit(1)


@click.group()
@click.version_option(package_name="rastertiler")
def cli():
    """rastertiler - Render single-band rasters to MBTiles PNG tilesets.

    \b
    Examples:
        rastertiler render input.tif output.mbtiles -Z 0 -z 8
        rastertiler merge west.mbtiles east.mbtiles world.mbtiles
        rastertiler inspect output.mbtiles
    """
    pass


@cli.command("render")
@click.argument("tiff", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("mbtiles_file", metavar="MBTILES", type=click.Path(dir_okay=False, path_type=Path))
@click.option("-Z", "--minzoom", type=click.IntRange(0, MAX_ZOOM), default=0, show_default=True, help="Minimum zoom level")
@click.option("-z", "--maxzoom", type=click.IntRange(0, MAX_ZOOM), default=0, show_default=True, help="Maximum zoom level")
@click.option("-s", "--tilesize", type=int, default=512, show_default=True, help="Tile size in pixels per side, a power of two")
@click.option("-n", "--name", help="Tileset name (default: output filename)")
@click.option("-d", "--description", help="Tileset description")
@click.option("-a", "--attribution", help="Tileset attribution")
@click.option("-w", "--workers", type=click.IntRange(min=1), default=4, show_default=True, help="Number of workers to create tiles")
@click.option("-c", "--colormap", help='Colormap for uint8 data as "<value>:<hex>,<value>:<hex>"')
@click.option("--disable-overviews", is_flag=True, help="Read full resolution data instead of raster overviews")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def render_command(
    tiff: Path,
    mbtiles_file: Path,
    minzoom: int,
    maxzoom: int,
    tilesize: int,
    name: str | None,
    description: str | None,
    attribution: str | None,
    workers: int,
    colormap: str | None,
    disable_overviews: bool,
    verbose: bool,
):
    """Render a single-band GeoTIFF into an MBTiles tileset.

    TIFF is the input raster (uint8 or uint32 data); MBTILES is the output
    file, replaced if it exists.

    \b
    Examples:
        rastertiler render landcover.tif landcover.mbtiles -z 10 -c "1:#FF0000,2:#00FF00"
        rastertiler render rgb.tif rgb.mbtiles -Z 2 -z 8 -s 256 -w 8
    """
    setup_logging(verbose)

    options = RenderOptions(
        input_path=tiff,
        output_path=mbtiles_file,
        minzoom=minzoom,
        maxzoom=maxzoom,
        tile_size=tilesize,
        name=name,
        description=description,
        attribution=attribution,
        workers=workers,
        colormap=colormap,
        disable_overviews=disable_overviews,
    )

    try:
        click.echo(f"Rendering {tiff} to {mbtiles_file} (zooms {minzoom}-{maxzoom})...")
        render_tiles(options)
        click.echo(f"Done: {mbtiles_file}")
    except Exception as e:
        _fail(e, verbose)


@cli.command("merge")
@click.argument("left", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("right", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def merge_command(left: Path, right: Path, output: Path, verbose: bool):
    """Merge two MBTiles tilesets into OUTPUT.

    Tiles present in both LEFT and RIGHT are taken from LEFT.
    """
    setup_logging(verbose)

    try:
        mbtiles.merge(left, right, output)
        click.echo(f"Merged {left} and {right} into {output}")
    except Exception as e:
        _fail(e, verbose)


@cli.command("inspect")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def inspect_command(file: Path, verbose: bool):
    """Display metadata and tile counts of an MBTiles file."""
    setup_logging(verbose)
    console = Console()

    try:
        with mbtiles.MBTiles.open(file) as db:
            metadata = db.get_metadata()
            zooms = db.zoom_summary()
    except Exception as e:
        _fail(e, verbose)

    console.print(f"\n[bold blue]MBTiles File:[/bold blue] {file.name}")
    console.print(f"[dim]Path: {file.absolute()}[/dim]\n")

    metadata_table = Table(title="Metadata", show_header=False)
    metadata_table.add_column("Property", style="cyan")
    metadata_table.add_column("Value")
    for key, value in metadata.items():
        metadata_table.add_row(key, value)
    console.print(metadata_table)

    tiles_table = Table(title="Tiles")
    tiles_table.add_column("Zoom", style="cyan")
    tiles_table.add_column("Tiles")
    tiles_table.add_column("Unique Images")
    for zoom, count, unique in zooms:
        tiles_table.add_row(str(zoom), str(count), str(unique))
    console.print(tiles_table)
    console.print()


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
