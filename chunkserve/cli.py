"""chunkserve CLI - split, build and serve chunked Closure entry points."""

from __future__ import annotations

import asyncio
import json
import logging

import click

from chunkserve.errors import ChunkServeError

logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
)


def _load(config: str | None):
    from chunkserve.config import load_server_config
    from chunkserve.pipeline.pipeline import ChunkPipeline

    cfg = load_server_config(config)
    return cfg, ChunkPipeline(cfg)


@click.group()
def cli():
    """chunkserve - split, build and serve chunked Closure entry points."""
    pass


@cli.command()
@click.option("--config", "-c", default=None, help="Server configuration file path")
@click.argument("entry_ids", nargs=-1, required=True)
def validate(config: str | None, entry_ids: tuple[str, ...]):
    """Validate entry configs and their chunk DAGs.

    Args:
        config: Server configuration file path
        entry_ids: Entry config ids to check
    """
    from chunkserve.pipeline.dag import ChunkDag

    try:
        _, pipeline = _load(config)
        for entry_id in entry_ids:
            entry = pipeline.load_entry(entry_id)
            if entry.modules is None:
                click.echo(f"✓ {entry_id}: page with {len(entry.inputs)} input(s)")
                continue
            dag = ChunkDag.build(entry.modules)
            click.echo(f"✓ {entry_id}: chunks {' -> '.join(dag.get_sorted_ids())}")

    except ChunkServeError as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        raise click.Abort()


@cli.command(name="split")
@click.option("--config", "-c", default=None, help="Server configuration file path")
@click.option("--json", "as_json", is_flag=True, help="Print the placement as JSON")
@click.argument("entry_id")
def split_command(config: str | None, entry_id: str, as_json: bool):
    """Print the file placement of a chunked entry.

    Args:
        config: Server configuration file path
        entry_id: Entry config id
        as_json: Print JSON instead of a listing
    """
    try:
        _, pipeline = _load(config)
        entry = pipeline.load_entry(entry_id)
        plan = asyncio.run(pipeline.plan(entry))
        if as_json:
            click.echo(json.dumps(plan.placement.to_dict(), indent=2))
            return
        for chunk_id in plan.placement.sorted_ids:
            files = plan.placement.chunks[chunk_id]
            click.echo(f"{chunk_id} ({len(files)} files)")
            for path in files:
                click.echo(f"  {path}")

    except ChunkServeError as e:
        click.echo(f"✗ Split failed: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.option("--config", "-c", default=None, help="Server configuration file path")
@click.argument("entry_ids", nargs=-1, required=True)
def build(config: str | None, entry_ids: tuple[str, ...]):
    """Compile entries and write their output files.

    Args:
        config: Server configuration file path
        entry_ids: Entry config ids to build
    """
    try:
        _, pipeline = _load(config)
        for entry_id in entry_ids:
            entry = pipeline.load_entry(entry_id)
            click.echo(f"Building {entry_id}...")
            outputs = asyncio.run(pipeline.build(entry))
            for path in outputs:
                click.echo(f"✓ {path}")

    except ChunkServeError as e:
        click.echo(f"✗ Build failed: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.option("--config", "-c", default=None, help="Server configuration file path")
@click.option("--host", default=None, help="Bind host (overrides config)")
@click.option("--port", default=None, type=int, help="Bind port (overrides config)")
def serve(config: str | None, host: str | None, port: int | None):
    """Start the development chunk server.

    Args:
        config: Server configuration file path
        host: Bind host
        port: Bind port
    """
    import uvicorn

    from chunkserve.api import dependencies
    from chunkserve.api.app import create_app

    try:
        cfg, pipeline = _load(config)
    except ChunkServeError as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        raise click.Abort()

    dependencies.set_pipeline(pipeline)

    click.echo("Starting dev server...")
    uvicorn.run(create_app(cfg), host=host or cfg.host, port=port or cfg.port)


def main():
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
