"""Click CLI commands for CityScene."""

import logging

import click

from .builder import SceneBuilder
from .cache import ResponseCache
from .config import PipelineConfig
from .glb import export_glb
from .osm_data import ParseError
from .query import DataQuery, FetchError, QueryError, QueryKind, fetch

logger = logging.getLogger(__name__)

_output_option = click.option('--output', '-o', default='city.glb',
                              help='Output GLB file path')


@click.group()
def cli():
    """CityScene CLI for building 3D scenes from OpenStreetMap data."""
    pass


@cli.command()
@click.argument('name')
@_output_option
def city(name: str, output: str):
    """Load every renderable feature of a city by name."""
    run_load(QueryKind.CITY, name, output)


@cli.command('file')
@click.argument('path', type=click.Path(dir_okay=False))
@_output_option
def file_(path: str, output: str):
    """Load an OSM JSON file."""
    run_load(QueryKind.FILE, path, output)


@cli.command()
@click.argument('ql')
@_output_option
def overpass(ql: str, output: str):
    """Run a raw Overpass QL query (must request [out:json])."""
    run_load(QueryKind.OVERPASS, ql, output)


@cli.command()
@_output_option
def replay(output: str):
    """Rebuild from the last successful response."""
    run_load(QueryKind.REPLAY, "", output)


def run_load(kind: QueryKind, text: str, output: str,
             cache: ResponseCache | None = None) -> str:
    """Fetch, build and export one scene; returns the GLB path."""
    cache = cache or ResponseCache()

    def _progress(pct, msg):
        click.echo(f"[{pct:3.0f}%] {msg}")

    try:
        query = DataQuery.parse(kind, text)
        raw = fetch(query, cache=cache)
        scene = SceneBuilder(PipelineConfig.from_env()).build(
            raw, query.identity, progress_callback=_progress)
        if query.kind != QueryKind.REPLAY:
            cache.store(raw)
        path = export_glb(scene, output)
    except (QueryError, FetchError, ParseError) as e:
        logger.error(f"Error loading scene: {e}")
        raise click.ClickException(str(e))

    summary = scene.summary
    click.echo(f"\n{'=' * 50}")
    click.echo(f"Parsed {summary.parsed}, classified {summary.classified}, "
               f"triangulated {summary.triangulated}, skipped {summary.skipped}")
    for reason, count in sorted(summary.skip_reasons.items()):
        click.echo(f"  skipped {reason}: {count}")
    for reason, count in sorted(summary.dropped_rings.items()):
        click.echo(f"  dropped ring {reason}: {count}")
    click.echo(f"Road graph: {scene.road_graph.node_count} nodes, "
               f"{scene.road_graph.edge_count} edges")
    click.echo(f"Scene written to {path}")
    click.echo(f"{'=' * 50}")
    return path
