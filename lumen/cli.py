#!/usr/bin/env python3
"""
Lumen Command Line Interface

Inspect RAW files, render them with their persisted edits, and export JPEGs
without opening the interactive editor.
"""

import sys
import json
import logging
from pathlib import Path
from typing import Optional

import click
import numpy as np

from . import __version__
from .config import load_config
from .exceptions import LumenError
from .utils.logging import setup_console_logging

logger = logging.getLogger(__name__)


def _load_edits(raw_path: Path, store_folder: Optional[str], config: dict):
    """Persisted parameters for ``raw_path`` from its folder's edit store."""
    from .io.sidecar import deserialize_record
    from .io.store import FolderEditStore

    folder = Path(store_folder) if store_folder else raw_path.parent
    store = FolderEditStore(folder, config['autosave']['store_filename'])
    params, _, _ = deserialize_record(store.load(raw_path.name))
    return params


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True),
              help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress non-error output')
@click.pass_context
def main(ctx, config: Optional[str] = None, verbose: bool = False, quiet: bool = False):
    """
    Lumen - non-destructive RAW photo editing

    Decodes RAW files, applies the edits saved next to them, and renders or
    exports the result.
    """
    if ctx.obj is None:
        ctx.obj = {}

    cfg = load_config(config) if config else load_config()
    level = cfg['logging']['level']
    if verbose:
        level = 'DEBUG'
    elif quiet:
        level = 'ERROR'
    setup_console_logging(level, cfg['logging']['color'])

    ctx.obj['config'] = cfg
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet


@main.command()
@click.argument('raw_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--json', 'as_json', is_flag=True, help='Print metadata as JSON')
@click.pass_context
def info(ctx, raw_file: str, as_json: bool):
    """
    Show capture metadata for a RAW file.

    RAW_FILE: Path to the RAW file
    """
    from .raw.metadata import extract_metadata

    config = ctx.obj['config']
    buffer = Path(raw_file).read_bytes()
    dcraw = config['decoder']['dcraw_path'] if config['decoder']['use_dcraw'] else None
    meta = extract_metadata(buffer, dcraw)

    if as_json:
        click.echo(json.dumps(meta.to_dict(), indent=2))
        return

    def show(value):
        return 'unknown' if value is None else value

    click.echo(f"File:         {Path(raw_file).name}")
    click.echo(f"Camera:       {show(meta.camera)}")
    click.echo(f"ISO:          {show(meta.iso)}")
    click.echo(f"Shutter:      {show(meta.shutter_speed)}")
    click.echo(f"Aperture:     {show(meta.aperture)}")
    click.echo(f"Focal length: {show(meta.focal_length)}")
    if meta.width and meta.height:
        click.echo(f"Dimensions:   {meta.width}x{meta.height}")
    else:
        click.echo("Dimensions:   unknown")


@main.command()
@click.argument('raw_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--store', 'store_folder', type=click.Path(file_okay=False),
              help='Folder holding the edit store (defaults to the RAW file folder)')
@click.option('--no-edits', is_flag=True, help='Render with default parameters')
@click.pass_context
def histogram(ctx, raw_file: str, store_folder: Optional[str], no_edits: bool):
    """
    Summarise the histogram of the rendered frame.

    RAW_FILE: Path to the RAW file
    """
    from .engine.histogram import compute_histogram
    from .engine.pipeline import ColorPipeline
    from .processing.edits import create_default
    from .raw.decoder import RawDecoder

    config = ctx.obj['config']
    raw_path = Path(raw_file)
    try:
        image = RawDecoder.from_config(config).decode(raw_path.read_bytes(), half_size=True)
        params = create_default() if no_edits else _load_edits(raw_path, store_folder, config)
        with ColorPipeline() as pipeline:
            frame = pipeline.render_to_buffer(params, source=image.pixels)
    except LumenError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    data = compute_histogram(frame, config['histogram']['sample_stride'])
    bins = np.arange(256)
    click.echo(f"Samples: {data.sample_count} ({frame.shape[1]}x{frame.shape[0]} frame)")
    for name in ('red', 'green', 'blue', 'luminance'):
        counts = getattr(data, name)
        total = max(1, counts.sum())
        mean = float((counts * bins).sum()) / total
        shadows = 100.0 * counts[0] / total
        highlights = 100.0 * counts[255] / total
        click.echo(f"{name.title():<10} mean {mean:6.1f}   clipped shadows {shadows:5.2f}%   "
                   f"clipped highlights {highlights:5.2f}%")


@main.command()
@click.argument('raw_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('output', type=click.Path(dir_okay=False))
@click.option('--quality', type=click.IntRange(1, 100), help='JPEG quality (1-100)')
@click.option('--border', type=click.Choice(['none', 'white', 'black']), help='Border colour')
@click.option('--border-width', type=float, help='Border width, percent of the shorter side')
@click.option('--store', 'store_folder', type=click.Path(file_okay=False),
              help='Folder holding the edit store (defaults to the RAW file folder)')
@click.pass_context
def export(ctx, raw_file: str, output: str, quality: Optional[int], border: Optional[str],
           border_width: Optional[float], store_folder: Optional[str]):
    """
    Render a RAW file with its saved edits and write a JPEG.

    RAW_FILE: Path to the RAW file
    OUTPUT: Destination JPEG path
    """
    from .engine.pipeline import ColorPipeline
    from .io.export import ExportOptions, export_image, write_export
    from .raw.decoder import RawDecoder

    config = ctx.obj['config']
    quiet = ctx.obj['quiet']
    raw_path = Path(raw_file)

    try:
        options = ExportOptions.from_config(config, quality=quality, border=border,
                                            border_width=border_width)
        params = _load_edits(raw_path, store_folder, config)
        image = RawDecoder.from_config(config).decode(raw_path.read_bytes(), half_size=False)
        with ColorPipeline() as pipeline:
            data = export_image(pipeline, params, image.pixels, options)
        path = write_export(output, data)
    except LumenError as e:
        click.echo(f"Error: {e}", err=True)
        if ctx.obj['verbose']:
            import traceback
            traceback.print_exc()
        sys.exit(1)

    if not quiet:
        click.echo(f"Exported {raw_path.name} -> {path}")


@main.command()
@click.argument('raw_file', type=click.Path(dir_okay=False))
@click.option('--store', 'store_folder', type=click.Path(file_okay=False),
              help='Folder holding the edit store (defaults to the RAW file folder)')
@click.pass_context
def edits(ctx, raw_file: str, store_folder: Optional[str]):
    """
    Print the saved edits of a file as a sparse JSON diff.

    RAW_FILE: File name or path of the RAW file
    """
    from .io.store import FolderEditStore

    config = ctx.obj['config']
    raw_path = Path(raw_file)
    folder = Path(store_folder) if store_folder else raw_path.parent
    store = FolderEditStore(folder, config['autosave']['store_filename'])

    try:
        record = store.load(raw_path.name)
    except LumenError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not record or not record.get('edits'):
        click.echo(f"No edits saved for {raw_path.name}")
        return

    click.echo(json.dumps(record['edits'], indent=2))
    history = record.get('history')
    if history and not ctx.obj['quiet']:
        click.echo(f"History: {len(history.get('entries', []))} entries, "
                   f"at index {history.get('index')}", err=True)


@main.command()
def version():
    """Show Lumen version information."""
    click.echo(f"Lumen v{__version__}")
    click.echo("Non-destructive RAW photo editing engine")


if __name__ == '__main__':
    main()
